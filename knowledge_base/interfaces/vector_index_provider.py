"""Abstract base class for the namespaced vector index.

The index is partitioned into namespaces: ``shared`` for documents visible
to every tenant, and ``avatar-<tenant_id>`` for each tenant's private
documents.  A query never crosses namespaces unless the caller asks for a
combined search.
"""

from __future__ import annotations

import asyncio
import math
from abc import ABC, abstractmethod
from typing import Any

import structlog

from knowledge_base.models.knowledge import (
    SHARED_NAMESPACE,
    IndexStats,
    VectorMatch,
    VectorRecord,
    namespace_for,
)

logger = structlog.get_logger(logger_name=__name__)


# Concrete implementations:
#   ChromaDBProvider: one Chroma collection per namespace
# Located in: knowledge_base/providers/vector_index/
class IVectorIndexProvider(ABC):
    """Contract for vector storage and similarity search.

    All operations are async so network-backed databases do not block the
    event loop.  Implementations wrap SDK failures in
    :class:`~knowledge_base.utils.errors.VectorIndexError`.
    """

    @abstractmethod
    async def ensure_index(self) -> None:
        """Make sure the index exists and is ready to serve requests.

        Idempotent.  Creates the index (and the shared namespace) when
        absent, then polls readiness with a bounded number of attempts.

        Raises
        ------
        knowledge_base.utils.errors.IndexNotReadyTimeoutError
            If the index is still not ready after the last attempt.
        """

    @abstractmethod
    async def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        """Insert or overwrite *records* in *namespace*.

        Records are written in sequential fixed-size batches.

        Returns
        -------
        int
            Number of records written.
        """

    @abstractmethod
    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Return up to *top_k* matches in *namespace*, best first.

        Parameters
        ----------
        namespace:
            Namespace to search.  A namespace that does not exist yet
            yields an empty list.
        vector:
            Query embedding.
        top_k:
            Maximum number of matches.
        filter:
            Optional equality filter on metadata, e.g. ``{"source_id": "x"}``.
        """

    @abstractmethod
    async def delete(self, namespace: str, ids: list[str]) -> None:
        """Delete records by id.  Ids that do not exist are not an error."""

    @abstractmethod
    async def delete_namespace(self, namespace: str) -> None:
        """Remove every record in *namespace*."""

    @abstractmethod
    async def get_stats(self) -> IndexStats:
        """Return vector counts per namespace."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"chromadb"``."""

    # ------------------------------------------------------------------
    # Shared behaviour
    # ------------------------------------------------------------------

    async def search_combined(
        self,
        tenant_id: str,
        vector: list[float],
        top_k: int,
    ) -> list[VectorMatch]:
        """Search the shared and tenant namespaces concurrently and merge.

        Each namespace is asked for ``ceil(top_k / 2)`` matches.  Results are
        merged, sorted by descending score and truncated to *top_k*.  A
        failing tenant namespace contributes nothing; a failing shared
        namespace propagates.
        """
        per_namespace = math.ceil(top_k / 2)
        tenant_namespace = namespace_for(tenant_id)

        shared_matches, tenant_matches = await asyncio.gather(
            self.query(SHARED_NAMESPACE, vector, per_namespace),
            self._query_tenant(tenant_namespace, vector, per_namespace),
        )

        merged = sorted(
            [*shared_matches, *tenant_matches],
            key=lambda m: m.score,
            reverse=True,
        )
        return merged[:top_k]

    async def _query_tenant(
        self, namespace: str, vector: list[float], top_k: int
    ) -> list[VectorMatch]:
        try:
            return await self.query(namespace, vector, top_k)
        except Exception as exc:  # noqa: BLE001
            logger.warning("tenant_namespace_query_failed", namespace=namespace, error=str(exc))
            return []
