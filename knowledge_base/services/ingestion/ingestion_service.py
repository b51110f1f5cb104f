"""Orchestrator for the document ingestion pipeline.

Pipeline stages: **store raw -> extract -> chunk -> embed -> index -> record**.

The :class:`IngestionService` coordinates its collaborators (extractor,
chunker, embedding provider, vector index, metadata store, status store)
without any of them knowing about each other.  All dependencies are
injected via the constructor, so tests swap in fakes and production swaps
providers without touching this class.

Each run is tracked by a :class:`ProcessingStatus` that moves through fixed
checkpoints::

    processing   0  Starting document processing...
    processing  10  Storing original file and extracting text...
    processing  30  Split into N chunks
    processing  60  Generating embeddings...
    processing  90  Storing in knowledge base...
    completed  100  Document processing completed
      (or)
    failed          <error captured at the aborting stage>

Validation problems (unsupported type, oversized file, missing tenant) are
raised before a processing id exists.  Anything after that is recorded on
the status and never raised; side effects already written (the raw file,
for example) are left in place.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

import structlog

from knowledge_base.models.knowledge import (
    KnowledgeBaseEntry,
    ProcessingState,
    ProcessingStatus,
    VectorRecord,
    namespace_for,
    scope_for,
    vector_id,
)
from knowledge_base.services.ingestion.chunker import TextChunker
from knowledge_base.services.ingestion.extractor import TextExtractor
from knowledge_base.utils.errors import (
    EmbeddingProviderError,
    FileTooLargeError,
    InsufficientContentError,
    InvalidRequestError,
    UnsupportedFormatError,
)
from knowledge_base.utils.text import generate_summary

if TYPE_CHECKING:
    from knowledge_base.interfaces.embedding_provider import IEmbeddingProvider
    from knowledge_base.interfaces.vector_index_provider import IVectorIndexProvider
    from knowledge_base.models.knowledge import Chunk
    from knowledge_base.services.metadata_store import MetadataStore
    from knowledge_base.services.status_store import ProcessingStatusStore

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_processing_id() -> str:
    return f"doc_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def new_source_id(tenant_id: str | None) -> str:
    owner = tenant_id or "shared"
    return f"{owner}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class IngestionService:
    """Runs one document through the ingestion pipeline and tracks its status.

    Parameters
    ----------
    extractor:
        Converts raw bytes to text.
    chunker:
        Splits text into overlapping embedding-sized chunks.
    embedding_provider:
        Generates one vector per chunk (all-or-nothing).
    vector_index:
        Stores the vectors in the document's namespace.
    metadata_store:
        Holds the raw upload and the document's metadata entry.
    status_store:
        Write-through persistence for processing statuses.
    max_upload_bytes:
        Upper bound on the size of an uploaded buffer.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        vector_index: IVectorIndexProvider,
        metadata_store: MetadataStore,
        status_store: ProcessingStatusStore,
        max_upload_bytes: int = _DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._extractor = extractor
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._vector_index = vector_index
        self._metadata_store = metadata_store
        self._status_store = status_store
        self._max_upload_bytes = max_upload_bytes

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate(
        self,
        buffer: bytes,
        media_type: str,
        tenant_id: str | None,
        is_shared: bool,
    ) -> None:
        """Reject requests that must fail before any work starts."""
        if not self._extractor.is_supported(media_type):
            raise UnsupportedFormatError(
                message=(
                    f"Unsupported file type: {media_type}. "
                    f"Allowed: {', '.join(self._extractor.supported_media_types())}"
                )
            )
        if len(buffer) > self._max_upload_bytes:
            raise FileTooLargeError(
                message=(
                    f"File too large: {len(buffer)} bytes. "
                    f"Maximum: {self._max_upload_bytes} bytes."
                )
            )
        if not is_shared and not tenant_id:
            raise InvalidRequestError(message="tenant_id is required for non-shared documents")

    async def ingest(
        self,
        buffer: bytes,
        media_type: str,
        filename: str,
        title: str | None = None,
        tenant_id: str | None = None,
        is_shared: bool = False,
    ) -> str:
        """Ingest one document and return its processing id.

        The full pipeline runs before this returns.  Poll
        :meth:`get_status` with the returned id to see whether it
        completed or failed.
        """
        self.validate(buffer, media_type, tenant_id, is_shared)
        owner = None if is_shared else tenant_id

        processing_id = new_processing_id()
        source_id = new_source_id(owner)
        safe_filename = PurePosixPath(filename.replace("\\", "/")).name or "document"
        doc_title = (title or "").strip() or safe_filename

        log = logger.bind(processing_id=processing_id, source_id=source_id, tenant_id=owner)

        tracker = _StatusTracker(
            self._status_store,
            ProcessingStatus(
                id=processing_id,
                source_id=source_id,
                state=ProcessingState.PROCESSING,
                progress=0,
                message="Starting document processing...",
                created_at=_utcnow(),
            ),
        )
        await tracker.save()
        log.info("ingestion_started", filename=safe_filename, media_type=media_type, size=len(buffer))

        start = time.monotonic()
        try:
            entry = await self._run(
                tracker,
                buffer=buffer,
                media_type=media_type,
                filename=safe_filename,
                title=doc_title,
                tenant_id=owner,
                source_id=source_id,
            )
        except asyncio.CancelledError:
            if not tracker.current.state.is_terminal:
                await tracker.finish(
                    ProcessingState.FAILED, "Document processing cancelled", "cancelled"
                )
            log.warning("ingestion_cancelled", progress=tracker.current.progress)
            raise
        except Exception as exc:  # noqa: BLE001
            if not tracker.current.state.is_terminal:
                await tracker.finish(ProcessingState.FAILED, "Document processing failed", str(exc))
            log.error(
                "ingestion_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                progress=tracker.current.progress,
            )
            return processing_id

        log.info(
            "ingestion_complete",
            chunks=entry.chunk_count,
            elapsed=round(time.monotonic() - start, 2),
        )
        return processing_id

    async def get_status(self, processing_id: str) -> ProcessingStatus | None:
        return await self._status_store.get(processing_id)

    def supported_media_types(self) -> list[str]:
        return self._extractor.supported_media_types()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run(
        self,
        tracker: _StatusTracker,
        *,
        buffer: bytes,
        media_type: str,
        filename: str,
        title: str,
        tenant_id: str | None,
        source_id: str,
    ) -> KnowledgeBaseEntry:
        # Stage 1: keep the original upload, then extract its text.
        await tracker.advance(10, "Storing original file and extracting text...")
        await self._metadata_store.put_raw_file(source_id, filename, buffer, media_type)
        text = await asyncio.to_thread(self._extractor.extract, buffer, media_type)

        # Stage 2: chunk.
        chunks = self._chunker.chunk(text)
        if not chunks:
            raise InsufficientContentError(
                message=f"Insufficient content: no text could be extracted from {filename}"
            )
        await tracker.advance(30, f"Split into {len(chunks)} chunks")

        # Stage 3: embed every chunk before anything is indexed.
        await tracker.advance(60, "Generating embeddings...")
        embeddings = await self._embedding_provider.embed([c.text for c in chunks])
        if len(embeddings) != len(chunks):
            raise EmbeddingProviderError(
                message=(
                    f"Embedding count mismatch: {len(chunks)} chunks, "
                    f"{len(embeddings)} vectors"
                ),
                provider_name=self._embedding_provider.get_provider_name(),
            )

        # Stage 4: index and record.
        await tracker.advance(90, "Storing in knowledge base...")
        upload_date = _utcnow()
        records = self._build_records(chunks, embeddings, source_id, tenant_id, title, upload_date)
        await self._vector_index.upsert(namespace_for(tenant_id), records)

        entry = KnowledgeBaseEntry(
            id=source_id,
            source_id=source_id,
            title=title,
            filename=filename,
            media_type=media_type,
            scope=scope_for(tenant_id),
            tenant_id=tenant_id,
            upload_date=upload_date,
            chunk_count=len(chunks),
            status=ProcessingState.COMPLETED,
            summary=generate_summary(text),
        )
        await self._metadata_store.write(entry)

        await tracker.finish(ProcessingState.COMPLETED, "Document processing completed")
        return entry

    @staticmethod
    def _build_records(
        chunks: list[Chunk],
        embeddings: list[list[float]],
        source_id: str,
        tenant_id: str | None,
        title: str,
        upload_date: datetime,
    ) -> list[VectorRecord]:
        records: list[VectorRecord] = []
        for chunk, embedding in zip(chunks, embeddings, strict=True):
            metadata: dict[str, object] = {
                "source": "file",
                "source_id": source_id,
                "upload_date": upload_date.isoformat(),
                "chunk_index": chunk.chunk_index,
                "total_chunks": chunk.total_chunks,
                "title": title,
                "original_text": chunk.text,
            }
            # Vector metadata cannot hold nulls; shared documents omit the key.
            if tenant_id:
                metadata["tenant_id"] = tenant_id
            records.append(
                VectorRecord(
                    id=vector_id(source_id, chunk.chunk_index),
                    values=embedding,
                    metadata=metadata,
                )
            )
        return records


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


class _StatusTracker:
    """Holds the latest status of one run and persists every transition.

    Progress only moves forward and a terminal state is never left.
    """

    def __init__(self, store: ProcessingStatusStore, status: ProcessingStatus) -> None:
        self._store = store
        self._status = status

    @property
    def current(self) -> ProcessingStatus:
        return self._status

    async def save(self) -> None:
        await self._store.save(self._status)

    async def advance(self, progress: int, message: str) -> None:
        if self._status.state.is_terminal:
            raise ValueError(
                f"Cannot update terminal status {self._status.id} ({self._status.state.value})"
            )
        self._status = self._status.model_copy(
            update={"progress": max(self._status.progress, progress), "message": message}
        )
        await self.save()

    async def finish(self, state: ProcessingState, message: str, error: str | None = None) -> None:
        if self._status.state.is_terminal:
            raise ValueError(f"Status {self._status.id} is already {self._status.state.value}")
        update: dict[str, object] = {
            "state": state,
            "message": message,
            "completed_at": _utcnow(),
            "error": error,
        }
        if state is ProcessingState.COMPLETED:
            update["progress"] = 100
        self._status = self._status.model_copy(update=update)
        await self.save()
