"""Pydantic request/response schemas for the knowledge base API.

Request schemas end with ``Request`` and response schemas with
``Response``.  Domain models (:class:`KnowledgeBaseEntry`,
:class:`ContextChunk`) are embedded directly where their shape is already
the public one.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from knowledge_base.models.knowledge import ContextChunk, KnowledgeBaseEntry, ProcessingState


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class UploadResponse(BaseModel):
    """Returned once an upload has been accepted and processed."""

    processing_id: str
    status: ProcessingState
    message: str


class ProcessingStatusResponse(BaseModel):
    """Current state of one ingestion job."""

    processing_id: str
    source_id: str | None = None
    status: ProcessingState
    progress: int = Field(ge=0, le=100)
    message: str
    created_at: datetime
    completed_at: datetime | None = None
    error: str | None = None


class DocumentListResponse(BaseModel):
    """Documents visible to the caller, newest first."""

    documents: list[KnowledgeBaseEntry] = Field(default_factory=list)
    count: int = 0


class DeleteDocumentRequest(BaseModel):
    """Identifies the document to delete and the caller's scope."""

    source_id: str = Field(..., min_length=1)
    tenant_id: str | None = None


class DeleteDocumentResponse(BaseModel):
    """Outcome of a document deletion."""

    success: bool
    source_id: str
    complete: bool = Field(description="False when some vectors could not be confirmed deleted")
    remaining_ids: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Knowledge search & stats
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    """Semantic search over the shared and (optionally) a tenant namespace."""

    query: str = Field(..., min_length=1, max_length=2000)
    tenant_id: str | None = None
    top_k: int = Field(default=5, ge=1, le=50)


class SearchResponse(BaseModel):
    """Matched passages plus the rendered prompt context."""

    chunks: list[ContextChunk] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    context: str = Field(default="", description="Prompt block built from the chunks")


class IndexStatsResponse(BaseModel):
    """Vector counts for the index and per namespace."""

    total_vectors: int
    namespaces: dict[str, int] = Field(default_factory=dict)
    dimension: int | None = None
