"""Embedding provider implementations.

Embeddings convert chunk text and search queries into vectors that the
vector index compares by cosine similarity.

    OpenAIEmbeddingProvider: text-embedding-3-small (1536 dims), or any
    OpenAI-compatible endpoint configured via OPENAI_BASE_URL.
"""

from knowledge_base.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
