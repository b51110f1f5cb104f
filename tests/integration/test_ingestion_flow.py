"""Integration tests for the ingestion pipeline.

Runs IngestionService end-to-end against the in-memory object store, the
mock vector index and the deterministic mock embedding provider, checking
status checkpoints, stored vectors, metadata and failure handling.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from knowledge_base.models.knowledge import ProcessingState, ProcessingStatus
from knowledge_base.providers.cache.memory_cache import MemoryCacheProvider
from knowledge_base.providers.object_store.memory_object_store import MemoryObjectStore
from knowledge_base.services.ingestion.chunker import TextChunker
from knowledge_base.services.ingestion.extractor import PDF_MEDIA_TYPE, TextExtractor
from knowledge_base.services.ingestion.ingestion_service import IngestionService
from knowledge_base.services.metadata_store import MetadataStore
from knowledge_base.services.status_store import ProcessingStatusStore
from knowledge_base.utils.errors import (
    EmbeddingProviderError,
    FileTooLargeError,
    InvalidRequestError,
    UnsupportedFormatError,
)
from tests.conftest import MockEmbeddingProvider, MockVectorIndex

_POLICY_TEXT = (
    "Refund policy. Customers may request a refund within thirty days of purchase. "
    "Refunds are processed within five business days of approval. "
) * 40


@pytest.fixture()
def recorded_statuses(
    status_store: ProcessingStatusStore, monkeypatch: pytest.MonkeyPatch
) -> list[ProcessingStatus]:
    """Capture every status snapshot the pipeline saves."""
    recorded: list[ProcessingStatus] = []
    original_save = status_store.save

    async def recording_save(status: ProcessingStatus) -> None:
        recorded.append(status)
        await original_save(status)

    monkeypatch.setattr(status_store, "save", recording_save)
    return recorded


class TestSuccessfulIngestion:
    @pytest.mark.asyncio
    async def test_shared_text_document(
        self,
        ingestion_service: IngestionService,
        vector_index: MockVectorIndex,
        metadata_store: MetadataStore,
    ) -> None:
        processing_id = await ingestion_service.ingest(
            _POLICY_TEXT.encode("utf-8"), "text/plain", "policy.txt", title="Refund Policy", is_shared=True
        )

        status = await ingestion_service.get_status(processing_id)
        assert status is not None
        assert status.state is ProcessingState.COMPLETED
        assert status.progress == 100
        assert status.completed_at is not None
        assert status.error is None
        assert processing_id.startswith("doc_")

        source_id = status.source_id
        assert source_id is not None and source_id.startswith("shared_")

        records = vector_index.records("shared")
        entry = await metadata_store.get(source_id)
        assert entry is not None
        assert entry.title == "Refund Policy"
        assert entry.scope == "shared"
        assert entry.tenant_id is None
        assert entry.chunk_count == len(records) > 1
        assert entry.summary

        first = records[f"{source_id}_chunk_0"]
        assert first.metadata["source_id"] == source_id
        assert first.metadata["title"] == "Refund Policy"
        assert first.metadata["chunk_index"] == 0
        assert first.metadata["total_chunks"] == entry.chunk_count
        assert "tenant_id" not in first.metadata
        assert first.metadata["original_text"].startswith("Refund policy.")

    @pytest.mark.asyncio
    async def test_tenant_document_goes_to_tenant_namespace(
        self,
        ingestion_service: IngestionService,
        vector_index: MockVectorIndex,
        metadata_store: MetadataStore,
    ) -> None:
        processing_id = await ingestion_service.ingest(
            b"Acme onboarding checklist for new staff.", "text/plain", "onboarding.txt", tenant_id="acme"
        )

        status = await ingestion_service.get_status(processing_id)
        assert status is not None and status.state is ProcessingState.COMPLETED
        assert status.source_id.startswith("acme_")

        records = vector_index.records("avatar-acme")
        assert len(records) == 1
        (record,) = records.values()
        assert record.metadata["tenant_id"] == "acme"
        assert vector_index.records("shared") == {}

        entry = await metadata_store.get(status.source_id)
        assert entry.scope == "avatar:acme"
        assert entry.title == "onboarding.txt"

    @pytest.mark.asyncio
    async def test_is_shared_wins_over_tenant(
        self, ingestion_service: IngestionService, vector_index: MockVectorIndex
    ) -> None:
        processing_id = await ingestion_service.ingest(
            b"Company holidays list.", "text/plain", "holidays.txt", tenant_id="acme", is_shared=True
        )

        status = await ingestion_service.get_status(processing_id)
        assert status.source_id.startswith("shared_")
        assert len(vector_index.records("shared")) == 1
        assert vector_index.records("avatar-acme") == {}

    @pytest.mark.asyncio
    async def test_raw_file_is_stored(
        self,
        ingestion_service: IngestionService,
        metadata_store: MetadataStore,
    ) -> None:
        processing_id = await ingestion_service.ingest(
            b"Raw bytes kept.", "text/plain", "../../etc/notes.txt", is_shared=True
        )

        status = await ingestion_service.get_status(processing_id)
        entry = await metadata_store.get(status.source_id)
        assert entry.filename == "notes.txt"
        assert await metadata_store.get_raw_file(status.source_id, "notes.txt") == b"Raw bytes kept."

    @pytest.mark.asyncio
    async def test_progress_checkpoints(
        self,
        ingestion_service: IngestionService,
        recorded_statuses: list[ProcessingStatus],
    ) -> None:
        await ingestion_service.ingest(_POLICY_TEXT.encode("utf-8"), "text/plain", "p.txt", is_shared=True)

        progress = [s.progress for s in recorded_statuses]
        assert progress == [0, 10, 30, 60, 90, 100]
        assert progress == sorted(progress)
        assert [s.state for s in recorded_statuses[:-1]] == [ProcessingState.PROCESSING] * 5
        assert recorded_statuses[-1].state is ProcessingState.COMPLETED
        assert recorded_statuses[2].message.startswith("Split into ")

    @pytest.mark.asyncio
    async def test_status_readable_from_another_process(
        self, ingestion_service: IngestionService, object_store: MemoryObjectStore
    ) -> None:
        processing_id = await ingestion_service.ingest(b"Shared text.", "text/plain", "a.txt", is_shared=True)

        other_process = ProcessingStatusStore(MemoryCacheProvider(), object_store)
        status = await other_process.get(processing_id)
        assert status is not None
        assert status.state is ProcessingState.COMPLETED


class TestFailedIngestion:
    @pytest.mark.asyncio
    @patch("knowledge_base.services.ingestion.extractor.fitz")
    async def test_empty_pdf_fails_with_insufficient_content(
        self,
        mock_fitz: MagicMock,
        ingestion_service: IngestionService,
        vector_index: MockVectorIndex,
        metadata_store: MetadataStore,
        recorded_statuses: list[ProcessingStatus],
    ) -> None:
        doc = MagicMock()
        doc.__len__.return_value = 1
        page = MagicMock()
        page.get_text.return_value = "   "
        doc.__getitem__.side_effect = lambda i: page
        mock_fitz.open.return_value = doc

        processing_id = await ingestion_service.ingest(
            b"%PDF-1.7 scanned", PDF_MEDIA_TYPE, "scan.pdf", is_shared=True
        )

        status = await ingestion_service.get_status(processing_id)
        assert status.state is ProcessingState.FAILED
        assert "Insufficient content" in status.error
        assert status.completed_at is not None
        assert status.progress == 10
        assert vector_index.records("shared") == {}
        assert await metadata_store.list() == []
        assert [s.progress for s in recorded_statuses] == [0, 10, 10]

    @pytest.mark.asyncio
    async def test_embedding_outage_fails_without_vectors(
        self,
        ingestion_service: IngestionService,
        embedding_provider: MockEmbeddingProvider,
        embedding_outage: EmbeddingProviderError,
        vector_index: MockVectorIndex,
        metadata_store: MetadataStore,
    ) -> None:
        embedding_provider.fail_with = embedding_outage

        processing_id = await ingestion_service.ingest(
            _POLICY_TEXT.encode("utf-8"), "text/plain", "policy.txt", tenant_id="acme"
        )

        status = await ingestion_service.get_status(processing_id)
        assert status.state is ProcessingState.FAILED
        assert status.error
        assert "embedding service unavailable" in status.error
        assert status.progress == 60
        assert vector_index.records("avatar-acme") == {}
        assert await metadata_store.list("acme") == []
        # The raw upload written before the failure stays in place.
        assert await metadata_store.get_raw_file(status.source_id, "policy.txt") is not None

    @pytest.mark.asyncio
    async def test_undecodable_text_fails(
        self,
        embedding_provider: MockEmbeddingProvider,
        vector_index: MockVectorIndex,
        metadata_store: MetadataStore,
        status_store: ProcessingStatusStore,
    ) -> None:
        service = IngestionService(
            extractor=TextExtractor(encodings=("utf-8", "ascii")),
            chunker=TextChunker(),
            embedding_provider=embedding_provider,
            vector_index=vector_index,
            metadata_store=metadata_store,
            status_store=status_store,
        )

        processing_id = await service.ingest(b"\xff\xfe broken", "text/plain", "b.txt", is_shared=True)

        status = await service.get_status(processing_id)
        assert status.state is ProcessingState.FAILED
        assert embedding_provider.calls == []


class TestValidation:
    @pytest.mark.asyncio
    async def test_unsupported_type_raises_before_processing(
        self, ingestion_service: IngestionService, recorded_statuses: list[ProcessingStatus]
    ) -> None:
        with pytest.raises(UnsupportedFormatError):
            await ingestion_service.ingest(b"\x89PNG", "image/png", "logo.png", is_shared=True)
        assert recorded_statuses == []

    @pytest.mark.asyncio
    async def test_missing_tenant_raises(self, ingestion_service: IngestionService) -> None:
        with pytest.raises(InvalidRequestError):
            await ingestion_service.ingest(b"text", "text/plain", "a.txt")

    @pytest.mark.asyncio
    async def test_oversized_buffer_raises(
        self,
        embedding_provider: MockEmbeddingProvider,
        vector_index: MockVectorIndex,
        metadata_store: MetadataStore,
        status_store: ProcessingStatusStore,
    ) -> None:
        service = IngestionService(
            extractor=TextExtractor(),
            chunker=TextChunker(),
            embedding_provider=embedding_provider,
            vector_index=vector_index,
            metadata_store=metadata_store,
            status_store=status_store,
            max_upload_bytes=16,
        )

        with pytest.raises(FileTooLargeError):
            await service.ingest(b"x" * 17, "text/plain", "big.txt", is_shared=True)

    @pytest.mark.asyncio
    async def test_unknown_processing_id(self, ingestion_service: IngestionService) -> None:
        assert await ingestion_service.get_status("doc_0_missing") is None
