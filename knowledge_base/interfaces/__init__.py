"""Abstract provider interfaces (adapter pattern).

Business logic in ``knowledge_base.services`` depends only on these ABCs;
concrete adapters live in ``knowledge_base.providers`` and are wired in
``knowledge_base.main``.
"""

from knowledge_base.interfaces.cache_provider import ICacheProvider
from knowledge_base.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_base.interfaces.object_store import IObjectStore
from knowledge_base.interfaces.vector_index_provider import IVectorIndexProvider

__all__ = ["ICacheProvider", "IEmbeddingProvider", "IObjectStore", "IVectorIndexProvider"]
