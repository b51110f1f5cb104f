"""Vector index provider implementations.

ChromaDB is the sole implementation: each namespace (``shared`` and
``avatar-<tenant_id>``) is a separate cosine-distance collection.  To use
another vector database, implement IVectorIndexProvider and wire it in
knowledge_base/main.py.
"""

from knowledge_base.providers.vector_index.chromadb_provider import ChromaDBProvider

__all__ = ["ChromaDBProvider"]
