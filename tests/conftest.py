"""Shared pytest fixtures for the knowledge base test suite."""

from __future__ import annotations

import hashlib
import math
import re
from typing import Any

import pytest

from knowledge_base.config.settings import Settings
from knowledge_base.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_base.interfaces.vector_index_provider import IVectorIndexProvider
from knowledge_base.models.knowledge import IndexStats, VectorMatch, VectorRecord
from knowledge_base.providers.cache.memory_cache import MemoryCacheProvider
from knowledge_base.providers.object_store.memory_object_store import MemoryObjectStore
from knowledge_base.services.deletion_reconciler import DeletionReconciler
from knowledge_base.services.ingestion.chunker import TextChunker
from knowledge_base.services.ingestion.extractor import TextExtractor
from knowledge_base.services.ingestion.ingestion_service import IngestionService
from knowledge_base.services.knowledge_base_service import KnowledgeBaseService
from knowledge_base.services.metadata_store import MetadataStore
from knowledge_base.services.retrieval_service import RetrievalService
from knowledge_base.services.status_store import ProcessingStatusStore
from knowledge_base.utils.errors import EmbeddingProviderError, VectorIndexError

EMBEDDING_DIM = 64

_WORD_RE = re.compile(r"[a-z0-9]+")


# ---------------------------------------------------------------------------
# Deterministic embeddings
# ---------------------------------------------------------------------------


def _hash_to_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Bag-of-words vector: each lowercase word is hashed into one bucket.

    Texts sharing words get a positive cosine similarity, unrelated texts
    score close to zero, and the same text always maps to the same vector.
    Text without words maps to the zero vector.
    """
    values = [0.0] * dim
    for word in _WORD_RE.findall(text.lower()):
        bucket = int.from_bytes(hashlib.sha256(word.encode("utf-8")).digest()[:4], "little")
        values[bucket % dim] += 1.0
    magnitude = math.sqrt(sum(v * v for v in values))
    if magnitude == 0:
        return values
    return [v / magnitude for v in values]


def _cosine(a: list[float], b: list[float]) -> float:
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return sum(x * y for x, y in zip(a, b)) / (norm_a * norm_b)


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    Set ``fail_with`` to make every call raise it.
    """

    def __init__(self) -> None:
        self.fail_with: Exception | None = None
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_with is not None:
            raise self.fail_with
        return [_hash_to_vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# In-memory vector index
# ---------------------------------------------------------------------------


class MockVectorIndex(IVectorIndexProvider):
    """Namespaced in-memory vector index scored by cosine similarity.

    ``failing_namespaces`` makes queries against those namespaces raise
    :class:`VectorIndexError`.  ``ignore_deletes`` turns deletes into
    no-ops so leftover handling can be exercised.
    """

    def __init__(self) -> None:
        self.namespaces: dict[str, dict[str, VectorRecord]] = {}
        self.failing_namespaces: set[str] = set()
        self.ignore_deletes = False
        self.ready = False
        self.query_calls: list[dict[str, Any]] = []
        self.delete_calls: list[tuple[str, list[str]]] = []

    def records(self, namespace: str) -> dict[str, VectorRecord]:
        return self.namespaces.get(namespace, {})

    async def ensure_index(self) -> None:
        self.namespaces.setdefault("shared", {})
        self.ready = True

    async def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        bucket = self.namespaces.setdefault(namespace, {})
        for record in records:
            bucket[record.id] = record
        return len(records)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        self.query_calls.append(
            {"namespace": namespace, "top_k": top_k, "filter": filter, "vector": vector}
        )
        if namespace in self.failing_namespaces:
            raise VectorIndexError(message=f"namespace {namespace} unavailable", provider_name="mock")

        matches = [
            VectorMatch(
                id=record.id,
                score=max(0.0, min(1.0, _cosine(vector, record.values))),
                metadata=dict(record.metadata),
            )
            for record in self.records(namespace).values()
            if not filter or all(record.metadata.get(k) == v for k, v in filter.items())
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    async def delete(self, namespace: str, ids: list[str]) -> None:
        self.delete_calls.append((namespace, list(ids)))
        if self.ignore_deletes:
            return
        bucket = self.namespaces.get(namespace, {})
        for vid in ids:
            bucket.pop(vid, None)

    async def delete_namespace(self, namespace: str) -> None:
        self.namespaces.pop(namespace, None)

    async def get_stats(self) -> IndexStats:
        counts = {ns: len(records) for ns, records in self.namespaces.items()}
        return IndexStats(
            total_vectors=sum(counts.values()),
            namespaces=counts,
            dimension=EMBEDDING_DIM,
        )

    def get_provider_name(self) -> str:
        return "mock-index"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the developer's .env file."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        s3_bucket="",
        deletion_min_id_sweep=50,
        deletion_batch_size=10,
        deletion_probe_top_k=100,
    )


@pytest.fixture
def embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def vector_index() -> MockVectorIndex:
    return MockVectorIndex()


@pytest.fixture
def object_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def status_store(object_store: MemoryObjectStore) -> ProcessingStatusStore:
    return ProcessingStatusStore(
        cache=MemoryCacheProvider(max_size=100, ttl=600),
        object_store=object_store,
        retention_seconds=600,
    )


@pytest.fixture
def metadata_store(object_store: MemoryObjectStore) -> MetadataStore:
    return MetadataStore(object_store)


@pytest.fixture
def ingestion_service(
    embedding_provider: MockEmbeddingProvider,
    vector_index: MockVectorIndex,
    metadata_store: MetadataStore,
    status_store: ProcessingStatusStore,
) -> IngestionService:
    return IngestionService(
        extractor=TextExtractor(),
        chunker=TextChunker(max_tokens=500, overlap_tokens=50),
        embedding_provider=embedding_provider,
        vector_index=vector_index,
        metadata_store=metadata_store,
        status_store=status_store,
    )


@pytest.fixture
def retrieval_service(
    embedding_provider: MockEmbeddingProvider,
    vector_index: MockVectorIndex,
) -> RetrievalService:
    return RetrievalService(embedding_provider, vector_index, min_score=0.2, default_top_k=5)


@pytest.fixture
def reconciler(vector_index: MockVectorIndex) -> DeletionReconciler:
    return DeletionReconciler(
        vector_index,
        dimension=EMBEDDING_DIM,
        min_id_sweep=50,
        batch_size=10,
        probe_top_k=100,
    )


@pytest.fixture
def knowledge_base(
    ingestion_service: IngestionService,
    retrieval_service: RetrievalService,
    reconciler: DeletionReconciler,
    metadata_store: MetadataStore,
    vector_index: MockVectorIndex,
) -> KnowledgeBaseService:
    return KnowledgeBaseService(
        ingestion=ingestion_service,
        retrieval=retrieval_service,
        reconciler=reconciler,
        metadata_store=metadata_store,
        vector_index=vector_index,
    )


@pytest.fixture
def embedding_outage() -> EmbeddingProviderError:
    return EmbeddingProviderError(message="embedding service unavailable", provider_name="mock")
