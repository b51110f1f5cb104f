"""ChromaDB vector index provider adapter.

Implements :class:`IVectorIndexProvider` with one Chroma collection per
namespace, named ``<index_name>-<namespace>`` (e.g. ``knowledge-shared``,
``knowledge-avatar-42``).  Namespaces that Chroma cannot use verbatim (spaces,
slashes, more than 63 characters) map to ``<index_name>-ns-<sha1 prefix>``;
the real namespace is kept in the collection metadata.  Collections use
cosine distance; scores are reported as ``1 - distance`` clamped to ``[0, 1]``.

Works against a local ``PersistentClient`` or a Chroma server via
``HttpClient``.  The SDK is synchronous, so every call runs on a worker
thread under the configured timeout.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import re
from typing import Any

# ChromaDB reports anonymous telemetry through PostHog.  A version mismatch
# between its bundled client and the installed posthog breaks capture(), so
# telemetry is switched off at the env var, the SDK and the client settings.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from knowledge_base.config.settings import Settings
from knowledge_base.interfaces.vector_index_provider import IVectorIndexProvider
from knowledge_base.models.knowledge import (
    SHARED_NAMESPACE,
    IndexStats,
    VectorMatch,
    VectorRecord,
)
from knowledge_base.utils.concurrency import run_blocking
from knowledge_base.utils.errors import IndexNotReadyTimeoutError, VectorIndexError

logger = structlog.get_logger(logger_name=__name__)

_VALID_COLLECTION_NAME = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_-]{1,61}[a-zA-Z0-9]$")
_NAMESPACE_KEY = "namespace"


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that is never called.

    Vectors always arrive pre-computed.  Without this, Chroma loads its
    default ONNX model the first time a collection is created.
    """

    def __init__(self) -> None:
        pass

    def is_legacy(self) -> bool:
        # Nothing to serialise; Chroma stores the collection without an embedding config.
        return True

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "Embeddings are pre-computed; Chroma's built-in embedding must not run."
        )

    def name(self) -> str:
        return "noop_precomputed"


def _is_missing_collection(exc: Exception) -> bool:
    # NotFoundError in chromadb>=1.0; ValueError/InvalidCollectionException before.
    return type(exc).__name__ in {"NotFoundError", "InvalidCollectionException"} or (
        "does not exist" in str(exc).lower()
    )


class ChromaDBProvider(IVectorIndexProvider):
    """Namespaced vector index backed by ChromaDB collections.

    Parameters
    ----------
    client:
        A ``chromadb`` client (``PersistentClient`` or ``HttpClient``).
    index_name:
        Prefix shared by every namespace collection.
    dimension:
        Embedding dimension, reported by :meth:`get_stats`.
    upsert_batch_size:
        Records per sequential upsert call.
    ready_max_attempts / ready_delay:
        Readiness polling budget used by :meth:`ensure_index`.
    timeout:
        Deadline in seconds for each SDK call.
    """

    def __init__(
        self,
        client: Any,
        index_name: str = "knowledge",
        dimension: int | None = None,
        upsert_batch_size: int = 100,
        ready_max_attempts: int = 30,
        ready_delay: float = 1.0,
        timeout: float | None = 30.0,
    ) -> None:
        self._client = client
        self._index_name = index_name
        self._dimension = dimension
        self._batch_size = max(1, upsert_batch_size)
        self._ready_max_attempts = max(1, ready_max_attempts)
        self._ready_delay = ready_delay
        self._timeout = timeout
        self._collections: dict[str, Any] = {}

    @classmethod
    def from_settings(cls, settings: Settings, dimension: int | None = None) -> ChromaDBProvider:
        """Build a provider with a client chosen by ``CHROMA_HOST``."""
        chroma_settings = chromadb.config.Settings(anonymized_telemetry=False)
        if settings.uses_remote_chroma():
            client = chromadb.HttpClient(
                host=settings.chroma_host,
                port=settings.chroma_port,
                settings=chroma_settings,
            )
        else:
            client = chromadb.PersistentClient(
                path=settings.chroma_persist_dir,
                settings=chroma_settings,
            )
        return cls(
            client=client,
            index_name=settings.vector_index_name,
            dimension=dimension,
            upsert_batch_size=settings.vector_upsert_batch_size,
            ready_max_attempts=settings.index_ready_max_attempts,
            ready_delay=settings.index_ready_delay_seconds,
            timeout=settings.external_call_timeout,
        )

    # ------------------------------------------------------------------
    # Collection helpers
    # ------------------------------------------------------------------

    def collection_name(self, namespace: str) -> str:
        """Return the Chroma collection name that stores *namespace*.

        Distinct namespaces always get distinct names: readable names never
        start with ``ns-`` after the index prefix, hashed ones always do.
        """
        readable = f"{self._index_name}-{namespace}"
        if _VALID_COLLECTION_NAME.match(readable) and not namespace.startswith("ns-"):
            return readable
        digest = hashlib.sha1(namespace.encode("utf-8")).hexdigest()[:16]
        return f"{self._index_name}-ns-{digest}"

    def _open_collection(self, namespace: str, create: bool) -> Any | None:
        cached = self._collections.get(namespace)
        if cached is not None:
            return cached

        name = self.collection_name(namespace)
        if create:
            try:
                collection = self._client.get_or_create_collection(
                    name=name,
                    metadata={"hnsw:space": "cosine", _NAMESPACE_KEY: namespace},
                    embedding_function=_NoopEmbeddingFunction(),
                )
            except ValueError:
                # Collection persisted with a different embedding function.
                collection = self._client.get_or_create_collection(
                    name=name,
                    metadata={"hnsw:space": "cosine", _NAMESPACE_KEY: namespace},
                )
        else:
            try:
                collection = self._client.get_collection(
                    name=name, embedding_function=_NoopEmbeddingFunction()
                )
            except Exception as exc:
                if _is_missing_collection(exc):
                    return None
                raise

        self._collections[namespace] = collection
        return collection

    async def _call(self, operation: str, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run a blocking SDK call and wrap failures in :class:`VectorIndexError`."""
        try:
            return await run_blocking(func, *args, timeout=self._timeout, **kwargs)
        except VectorIndexError:
            raise
        except asyncio.TimeoutError as exc:
            raise VectorIndexError(
                message=f"ChromaDB {operation} timed out after {self._timeout}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except Exception as exc:
            raise VectorIndexError(
                message=f"ChromaDB {operation} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    @staticmethod
    def _translate_filter(filter: dict[str, Any] | None) -> dict[str, Any] | None:
        """Convert a flat equality dict into a Chroma ``where`` clause."""
        if not filter:
            return None
        clauses = [{key: {"$eq": value}} for key, value in filter.items()]
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    # ------------------------------------------------------------------
    # IVectorIndexProvider implementation
    # ------------------------------------------------------------------

    async def ensure_index(self) -> None:
        """Wait for the server to answer and the shared collection to exist."""
        last_error: Exception | None = None
        for attempt in range(1, self._ready_max_attempts + 1):
            try:
                await self._call("heartbeat", self._client.heartbeat)
                await self._call(
                    "create_collection", self._open_collection, SHARED_NAMESPACE, True
                )
                logger.info(
                    "vector_index_ready",
                    index=self._index_name,
                    attempts=attempt,
                )
                return
            except VectorIndexError as exc:
                last_error = exc
                logger.warning(
                    "vector_index_not_ready",
                    index=self._index_name,
                    attempt=attempt,
                    max_attempts=self._ready_max_attempts,
                    error=str(exc),
                )
                if attempt < self._ready_max_attempts:
                    await asyncio.sleep(self._ready_delay)

        raise IndexNotReadyTimeoutError(
            message=(
                f"Index '{self._index_name}' not ready after "
                f"{self._ready_max_attempts} attempts: {last_error}"
            ),
            provider_name=self.get_provider_name(),
        )

    async def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        """Upsert records in sequential batches, creating the namespace if needed."""
        if not records:
            return 0

        collection = await self._call("open_collection", self._open_collection, namespace, True)

        total = 0
        for start in range(0, len(records), self._batch_size):
            batch = records[start : start + self._batch_size]
            await self._call(
                "upsert",
                collection.upsert,
                ids=[r.id for r in batch],
                embeddings=[r.values for r in batch],
                metadatas=[r.metadata for r in batch],
            )
            total += len(batch)

        logger.info(
            "chromadb_upsert",
            namespace=namespace,
            count=total,
            batches=(len(records) + self._batch_size - 1) // self._batch_size,
        )
        return total

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Cosine-similarity search within one namespace."""
        if top_k <= 0:
            return []

        collection = await self._call("open_collection", self._open_collection, namespace, False)
        if collection is None:
            return []

        count = await self._call("count", collection.count)
        if count == 0:
            return []

        kwargs: dict[str, Any] = {
            "query_embeddings": [vector],
            "n_results": min(top_k, count),
            "include": ["metadatas", "distances"],
        }
        where = self._translate_filter(filter)
        if where:
            kwargs["where"] = where

        results = await self._call("query", collection.query, **kwargs)

        ids = results["ids"][0] if results.get("ids") else []
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [1.0] * len(ids)

        matches = [
            VectorMatch(
                id=vid,
                score=max(0.0, min(1.0, 1.0 - float(distance))),
                metadata=dict(meta or {}),
            )
            for vid, meta, distance in zip(ids, metadatas, distances, strict=True)
        ]
        matches.sort(key=lambda m: m.score, reverse=True)

        logger.debug(
            "chromadb_query",
            namespace=namespace,
            requested=top_k,
            results_count=len(matches),
            top_score=matches[0].score if matches else 0.0,
        )
        return matches

    async def delete(self, namespace: str, ids: list[str]) -> None:
        """Delete by id; unknown ids and missing namespaces are ignored."""
        if not ids:
            return
        collection = await self._call("open_collection", self._open_collection, namespace, False)
        if collection is None:
            return
        await self._call("delete", collection.delete, ids=list(ids))

    async def delete_namespace(self, namespace: str) -> None:
        """Drop the collection backing *namespace*."""
        self._collections.pop(namespace, None)
        name = self.collection_name(namespace)
        try:
            await run_blocking(self._client.delete_collection, name=name, timeout=self._timeout)
        except Exception as exc:
            if _is_missing_collection(exc):
                return
            raise VectorIndexError(
                message=f"ChromaDB delete_namespace failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("chromadb_namespace_deleted", namespace=namespace)

    async def get_stats(self) -> IndexStats:
        """Count vectors in every collection that belongs to this index."""
        listed = await self._call("list_collections", self._client.list_collections)
        prefix = f"{self._index_name}-"

        namespaces: dict[str, int] = {}
        for item in listed:
            # chromadb<0.6 returns Collection objects, later versions names.
            name = item if isinstance(item, str) else item.name
            if not name.startswith(prefix):
                continue
            collection = await self._call("get_collection", self._client.get_collection, name=name)
            stored = getattr(collection, "metadata", None)
            namespace = name[len(prefix):]
            if isinstance(stored, dict) and stored.get(_NAMESPACE_KEY):
                namespace = stored[_NAMESPACE_KEY]
            namespaces[namespace] = await self._call("count", collection.count)

        return IndexStats(
            total_vectors=sum(namespaces.values()),
            namespaces=namespaces,
            dimension=self._dimension,
        )

    def get_provider_name(self) -> str:
        return "chromadb"
