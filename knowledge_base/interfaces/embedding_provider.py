"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into embedding vectors.  Ingestion
embeds chunks in bulk; retrieval embeds a single query.  Implementations
may wrap OpenAI ``text-embedding-3-small`` or any OpenAI-compatible API.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider : text-embedding-3-small (requires API key)
# Located in: knowledge_base/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services.

    Embeddings are stored in and queried against
    :class:`~knowledge_base.interfaces.vector_index_provider.IVectorIndexProvider`.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations split the
            input into provider-sized requests internally.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.  Each
            inner list has length equal to :meth:`get_dimension`.

        Raises
        ------
        knowledge_base.utils.errors.EmbeddingProviderError
            If any underlying request fails.  No partial results are
            returned.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        Parameters
        ----------
        text:
            The text string to embed, typically a search query.

        Returns
        -------
        list[float]
            The embedding vector with length equal to :meth:`get_dimension`.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Must stay constant for the lifetime of the provider and match the
        dimension of vectors already stored in the index.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider has the credentials it needs."""
