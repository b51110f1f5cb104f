"""Data models for the knowledge base.

Pydantic v2 models for documents, chunks, vector records, processing
status, retrieval context and deletion reports.  All models are frozen;
state changes produce a new instance via ``model_copy(update=...)``.

How the pieces relate:

    1. INGESTION: a raw document becomes a :class:`KnowledgeBaseEntry`
       (metadata) plus N :class:`Chunk` objects.
    2. EMBEDDING: each chunk becomes a :class:`VectorRecord` whose id is
       ``<source_id>_chunk_<index>``.
    3. RETRIEVAL: the vector index returns :class:`VectorMatch` objects that
       are filtered and mapped into a :class:`RetrievalContext`.
    4. DELETION: the reconciler removes records and reports what it found
       in a :class:`DeletionReport`.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

SHARED_NAMESPACE = "shared"
TENANT_NAMESPACE_PREFIX = "avatar-"


def namespace_for(tenant_id: str | None) -> str:
    """Return the vector index namespace for *tenant_id* (``shared`` when ``None``)."""
    if tenant_id:
        return f"{TENANT_NAMESPACE_PREFIX}{tenant_id}"
    return SHARED_NAMESPACE


def scope_for(tenant_id: str | None) -> str:
    """Return the document scope label: ``shared`` or ``avatar:<tenant_id>``."""
    if tenant_id:
        return f"avatar:{tenant_id}"
    return SHARED_NAMESPACE


def vector_id(source_id: str, chunk_index: int) -> str:
    """Deterministic vector id for chunk *chunk_index* of *source_id*."""
    return f"{source_id}_chunk_{chunk_index}"


class ProcessingState(str, Enum):  # noqa: UP042
    """Lifecycle of an ingestion job.  ``processing`` is the only non-terminal state."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ProcessingState.PROCESSING


# ---------------------------------------------------------------------------
# Chunk: one embedding-sized slice of a document.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A contiguous slice of cleaned document text.

    For a document split into N chunks, indices run ``0..N-1`` and every
    chunk reports ``total_chunks == N``.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="The chunk's textual content.")
    chunk_index: int = Field(ge=0, description="Zero-based position within the document.")
    total_chunks: int = Field(ge=1, description="Number of chunks the document produced.")


class VectorRecord(BaseModel):
    """An embedding plus the metadata stored alongside it in the index."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Deterministic id: <source_id>_chunk_<index>.")
    values: list[float] = Field(description="Embedding vector.")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description=(
            "Flat scalar metadata: source, source_id, tenant_id (omitted when "
            "shared), upload_date, chunk_index, total_chunks, title, original_text."
        ),
    )


class VectorMatch(BaseModel):
    """A single similarity-search hit."""

    model_config = ConfigDict(frozen=True)

    id: str
    score: float = Field(description="Similarity score, higher is closer.")
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# KnowledgeBaseEntry: the metadata record persisted per document.
# ---------------------------------------------------------------------------
class KnowledgeBaseEntry(BaseModel):
    """Metadata describing one ingested document.

    Written once by the ingestion coordinator after vectors are stored and
    removed by document deletion.  ``tenant_id`` is ``None`` for shared
    documents.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Same value as source_id; kept for listing clients.")
    source_id: str = Field(description="Stable unique identifier of the document.")
    title: str
    source: str = Field(default="file", description="Origin of the document content.")
    filename: str | None = None
    media_type: str | None = None
    scope: str = Field(default=SHARED_NAMESPACE, description="'shared' or 'avatar:<tenant_id>'.")
    tenant_id: str | None = None
    upload_date: datetime
    chunk_count: int = Field(default=0, ge=0)
    status: ProcessingState = ProcessingState.COMPLETED
    summary: str | None = None

    @property
    def is_shared(self) -> bool:
        return self.tenant_id is None


# ---------------------------------------------------------------------------
# ProcessingStatus: the pollable state of an ingestion job.
# ---------------------------------------------------------------------------
class ProcessingStatus(BaseModel):
    """Progress snapshot for one ingestion job.

    Transitions only ``processing -> completed`` or ``processing -> failed``.
    Progress never decreases.  ``completed_at`` is set on entering a
    terminal state; ``error`` only when failed.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Processing id returned by ingest().")
    source_id: str | None = None
    state: ProcessingState = ProcessingState.PROCESSING
    progress: int = Field(default=0, ge=0, le=100)
    message: str = ""
    created_at: datetime
    completed_at: datetime | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------
class ContextChunk(BaseModel):
    """A retrieved passage ready to be placed in a conversational prompt."""

    model_config = ConfigDict(frozen=True)

    text: str
    source: str = Field(description="Title of the document the passage came from.")
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class RetrievalContext(BaseModel):
    """Passages above the score threshold plus their distinct source titles."""

    model_config = ConfigDict(frozen=True)

    chunks: list[ContextChunk] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    def to_prompt(self) -> str:
        """Render the context block appended to a chat system prompt.

        Returns an empty string when nothing was retrieved so callers can
        concatenate unconditionally.
        """
        if not self.chunks:
            return ""
        context_text = "\n".join(
            f"[Source {i}: {chunk.source}]\n{chunk.text}\n"
            for i, chunk in enumerate(self.chunks, start=1)
        )
        return (
            "## Knowledge Base Context\n\n"
            "You have access to the following relevant information from your "
            f"knowledge base:\n\n{context_text}\n\n"
            f"Sources: {', '.join(self.sources)}\n\n"
            "When answering questions, prioritize information from your knowledge "
            "base when relevant. If you reference specific information from the "
            "knowledge base, you can mention the source."
        )


# ---------------------------------------------------------------------------
# Deletion & stats
# ---------------------------------------------------------------------------
class DeletionReport(BaseModel):
    """Outcome of reconciling the vectors of one document."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    namespace: str
    phase_one_ids: int = Field(default=0, ge=0, description="Ids submitted in the id sweep.")
    phase_two_ids: list[str] = Field(
        default_factory=list, description="Ids discovered and deleted by similarity probes."
    )
    remaining_ids: list[str] = Field(
        default_factory=list, description="Ids still present after the verification probe."
    )
    verified: bool = Field(
        default=True, description="False when the verification probe itself failed."
    )

    @property
    def complete(self) -> bool:
        return self.verified and not self.remaining_ids


class IndexStats(BaseModel):
    """Vector counts for the whole index and per namespace."""

    model_config = ConfigDict(frozen=True)

    total_vectors: int = Field(default=0, ge=0)
    namespaces: dict[str, int] = Field(default_factory=dict)
    dimension: int | None = None
