"""Query-time retrieval of knowledge base passages.

Embeds the query once, searches the shared namespace (plus the tenant's
namespace when a tenant is given), drops weak matches and shapes the rest
into a :class:`RetrievalContext` for the chat prompt.

Retrieval never raises: any failure is logged and an empty context is
returned so the conversation can continue without augmentation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from knowledge_base.models.knowledge import (
    SHARED_NAMESPACE,
    ContextChunk,
    RetrievalContext,
    VectorMatch,
)

if TYPE_CHECKING:
    from knowledge_base.interfaces.embedding_provider import IEmbeddingProvider
    from knowledge_base.interfaces.vector_index_provider import IVectorIndexProvider

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_MIN_SCORE = 0.2


class RetrievalService:
    """Semantic search over the shared and tenant namespaces.

    Parameters
    ----------
    embedding_provider:
        Embeds the query text.
    vector_index:
        Namespaced similarity search.
    min_score:
        Matches scoring at or below this value are discarded.
    default_top_k:
        Result count used when the caller does not pass one.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_index: IVectorIndexProvider,
        min_score: float = DEFAULT_MIN_SCORE,
        default_top_k: int = 5,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._vector_index = vector_index
        self._min_score = min_score
        self._default_top_k = default_top_k

    async def search(
        self,
        query: str,
        tenant_id: str | None = None,
        top_k: int | None = None,
    ) -> RetrievalContext:
        """Return passages relevant to *query*, best first."""
        top_k = self._default_top_k if top_k is None else top_k
        if not query or not query.strip() or top_k <= 0:
            return RetrievalContext()

        try:
            vector = await self._embedding_provider.embed_single(query)
            if tenant_id:
                matches = await self._vector_index.search_combined(tenant_id, vector, top_k)
            else:
                matches = await self._vector_index.query(SHARED_NAMESPACE, vector, top_k)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "knowledge_search_failed",
                tenant_id=tenant_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return RetrievalContext()

        context = self._build_context(matches)
        logger.info(
            "knowledge_search",
            tenant_id=tenant_id,
            query_length=len(query),
            raw_matches=len(matches),
            kept=len(context.chunks),
            top_score=context.chunks[0].score if context.chunks else 0.0,
        )
        return context

    def _build_context(self, matches: list[VectorMatch]) -> RetrievalContext:
        chunks: list[ContextChunk] = []
        sources: list[str] = []
        seen: set[str] = set()

        for match in matches:
            if match.score <= self._min_score:
                continue
            title = str(match.metadata.get("title", "") or "Unknown source")
            chunks.append(
                ContextChunk(
                    text=str(match.metadata.get("original_text", "")),
                    source=title,
                    score=match.score,
                    metadata=match.metadata,
                )
            )
            if title not in seen:
                seen.add(title)
                sources.append(title)

        return RetrievalContext(chunks=chunks, sources=sources)
