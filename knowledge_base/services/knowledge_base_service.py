"""Facade over ingestion, retrieval and deletion.

:class:`KnowledgeBaseService` is the single object the HTTP routes and the
CLI talk to.  It owns no state of its own; every collaborator is injected
by :func:`knowledge_base.main.build_components` (or by a test).
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import structlog

from knowledge_base.models.knowledge import (
    DeletionReport,
    IndexStats,
    KnowledgeBaseEntry,
    ProcessingStatus,
    RetrievalContext,
    namespace_for,
)
from knowledge_base.utils.errors import AccessDeniedError, DocumentNotFoundError

if TYPE_CHECKING:
    from knowledge_base.interfaces.vector_index_provider import IVectorIndexProvider
    from knowledge_base.services.deletion_reconciler import DeletionReconciler
    from knowledge_base.services.ingestion.ingestion_service import IngestionService
    from knowledge_base.services.metadata_store import MetadataStore
    from knowledge_base.services.retrieval_service import RetrievalService

logger = structlog.get_logger(logger_name=__name__)


class KnowledgeBaseService:
    """Entry points for document ingestion, search, listing and deletion."""

    def __init__(
        self,
        ingestion: IngestionService,
        retrieval: RetrievalService,
        reconciler: DeletionReconciler,
        metadata_store: MetadataStore,
        vector_index: IVectorIndexProvider,
    ) -> None:
        self._ingestion = ingestion
        self._retrieval = retrieval
        self._reconciler = reconciler
        self._metadata_store = metadata_store
        self._vector_index = vector_index

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(
        self,
        buffer: bytes,
        media_type: str,
        filename: str,
        title: str | None = None,
        tenant_id: str | None = None,
        is_shared: bool = False,
    ) -> str:
        """Run the ingestion pipeline and return the processing id.

        Raises
        ------
        UnsupportedFormatError, FileTooLargeError, InvalidRequestError
            For requests rejected before processing starts.  Failures after
            that point are reported through :meth:`get_status`.
        """
        return await self._ingestion.ingest(
            buffer,
            media_type,
            filename,
            title=title,
            tenant_id=tenant_id,
            is_shared=is_shared,
        )

    async def get_status(self, processing_id: str) -> ProcessingStatus | None:
        return await self._ingestion.get_status(processing_id)

    def supported_media_types(self) -> list[str]:
        return self._ingestion.supported_media_types()

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        tenant_id: str | None = None,
        top_k: int = 5,
    ) -> RetrievalContext:
        return await self._retrieval.search(query, tenant_id=tenant_id, top_k=top_k)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def list_documents(self, tenant_id: str | None = None) -> list[KnowledgeBaseEntry]:
        """Tenant documents when *tenant_id* is given, shared documents otherwise."""
        return await self._metadata_store.list(tenant_id)

    async def delete_document(
        self, source_id: str, tenant_id: str | None = None
    ) -> DeletionReport:
        """Remove a document's vectors, metadata and stored objects.

        Vector removal is best-effort and its outcome is returned as a
        :class:`DeletionReport`.  Metadata and raw-file removal run after
        it and their failures propagate.

        Raises
        ------
        DocumentNotFoundError
            If no metadata exists for *source_id*.  Leftovers of a failed
            ingestion owned by the caller are still swept first.
        AccessDeniedError
            If the document does not belong to the caller's scope.
        """
        entry = await self._metadata_store.get(source_id)
        if entry is None:
            await self._sweep_orphan(source_id, tenant_id)
            raise DocumentNotFoundError(message=f"Document not found: {source_id}")
        self._check_owner(entry, tenant_id)
        namespace = namespace_for(entry.tenant_id)

        report = await self._reconciler.delete(
            source_id, namespace, expected_chunks=entry.chunk_count
        )
        await self._metadata_store.delete(source_id)
        await self._metadata_store.purge(source_id)

        logger.info(
            "document_deleted",
            source_id=source_id,
            tenant_id=entry.tenant_id,
            complete=report.complete,
        )
        return report

    async def download_document(
        self, source_id: str, tenant_id: str | None = None
    ) -> tuple[bytes, str, str]:
        """Return ``(data, filename, media_type)`` of the original upload."""
        entry = await self._get_owned_entry(source_id, tenant_id)
        if not entry.filename:
            raise DocumentNotFoundError(message=f"No stored file for document {source_id}")

        data = await self._metadata_store.get_raw_file(source_id, entry.filename)
        if data is None:
            raise DocumentNotFoundError(message=f"Stored file missing for document {source_id}")

        return data, entry.filename, entry.media_type or "application/octet-stream"

    async def delete_tenant(self, tenant_id: str) -> None:
        """Drop every vector in the tenant's namespace.

        Metadata entries are left in place; callers delete documents
        individually when they also need the stored files removed.
        """
        await self._vector_index.delete_namespace(namespace_for(tenant_id))
        logger.info("tenant_namespace_deleted", tenant_id=tenant_id)

    async def get_index_stats(self) -> IndexStats:
        return await self._vector_index.get_stats()

    async def _sweep_orphan(self, source_id: str, tenant_id: str | None) -> None:
        """Remove vectors and stored objects an interrupted ingestion left behind.

        Only ids minted for the caller (``<owner>_<ms>_<hex>``) are touched.
        """
        owner = re.escape(tenant_id or "shared")
        if not re.fullmatch(rf"{owner}_\d+_[0-9a-f]+", source_id):
            return
        report = await self._reconciler.delete(source_id, namespace_for(tenant_id))
        removed = await self._metadata_store.purge(source_id)
        logger.info(
            "orphaned_document_swept",
            source_id=source_id,
            tenant_id=tenant_id,
            objects_removed=removed,
            complete=report.complete,
        )

    async def _get_owned_entry(
        self, source_id: str, tenant_id: str | None
    ) -> KnowledgeBaseEntry:
        entry = await self._metadata_store.get(source_id)
        if entry is None:
            raise DocumentNotFoundError(message=f"Document not found: {source_id}")
        self._check_owner(entry, tenant_id)
        return entry

    @staticmethod
    def _check_owner(entry: KnowledgeBaseEntry, tenant_id: str | None) -> None:
        if entry.tenant_id != (tenant_id or None):
            logger.warning(
                "document_access_denied",
                source_id=entry.source_id,
                owner=entry.tenant_id,
                requested_by=tenant_id,
            )
            raise AccessDeniedError(message=f"Access denied to document {entry.source_id}")
