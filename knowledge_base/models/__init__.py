"""Pydantic data models shared across the knowledge base."""

from knowledge_base.models.knowledge import (
    SHARED_NAMESPACE,
    Chunk,
    ContextChunk,
    DeletionReport,
    IndexStats,
    KnowledgeBaseEntry,
    ProcessingState,
    ProcessingStatus,
    RetrievalContext,
    VectorMatch,
    VectorRecord,
    namespace_for,
    scope_for,
    vector_id,
)

__all__ = [
    "SHARED_NAMESPACE",
    "Chunk",
    "ContextChunk",
    "DeletionReport",
    "IndexStats",
    "KnowledgeBaseEntry",
    "ProcessingState",
    "ProcessingStatus",
    "RetrievalContext",
    "VectorMatch",
    "VectorRecord",
    "namespace_for",
    "scope_for",
    "vector_id",
]
