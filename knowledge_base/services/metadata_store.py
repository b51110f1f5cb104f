"""Durable per-document metadata and raw-file storage on the object store.

Key layout::

    knowledge-base/<source_id>/raw/<filename>  original upload
    knowledge-base/<source_id>/metadata.json   KnowledgeBaseEntry JSON

Uploads live one level down so no filename can shadow the metadata object.

Listing is a prefix scan over ``knowledge-base/``; every metadata object is
read and filtered by tenant.  Entries that fail to parse are skipped with a
warning so one corrupt object cannot break listing.
"""

from __future__ import annotations

import structlog
from pydantic import ValidationError

from knowledge_base.interfaces.object_store import IObjectStore
from knowledge_base.models.knowledge import KnowledgeBaseEntry

logger = structlog.get_logger(logger_name=__name__)

KNOWLEDGE_BASE_PREFIX = "knowledge-base/"
_METADATA_FILENAME = "metadata.json"
_RAW_DIR = "raw"


def document_prefix(source_id: str) -> str:
    return f"{KNOWLEDGE_BASE_PREFIX}{source_id}/"


def metadata_key(source_id: str) -> str:
    return f"{document_prefix(source_id)}{_METADATA_FILENAME}"


def raw_file_key(source_id: str, filename: str) -> str:
    return f"{document_prefix(source_id)}{_RAW_DIR}/{filename}"


class MetadataStore:
    """Reads and writes :class:`KnowledgeBaseEntry` records and raw files."""

    def __init__(self, object_store: IObjectStore) -> None:
        self._store = object_store

    # ------------------------------------------------------------------
    # Metadata entries
    # ------------------------------------------------------------------

    async def write(self, entry: KnowledgeBaseEntry) -> None:
        await self._store.put(
            metadata_key(entry.source_id),
            entry.model_dump_json().encode("utf-8"),
            content_type="application/json",
        )
        logger.debug("metadata_written", source_id=entry.source_id)

    async def get(self, source_id: str) -> KnowledgeBaseEntry | None:
        data = await self._store.get(metadata_key(source_id))
        if data is None:
            return None
        return KnowledgeBaseEntry.model_validate_json(data)

    async def delete(self, source_id: str) -> None:
        await self._store.delete(metadata_key(source_id))
        logger.debug("metadata_deleted", source_id=source_id)

    async def list(self, tenant_id: str | None = None) -> list[KnowledgeBaseEntry]:
        """Return entries visible to *tenant_id*, newest first.

        With a tenant id only that tenant's documents are returned; without
        one only shared documents are returned.
        """
        keys = await self._store.list(KNOWLEDGE_BASE_PREFIX)
        entries: list[KnowledgeBaseEntry] = []

        for key in keys:
            if key[len(KNOWLEDGE_BASE_PREFIX) :].split("/")[1:] != [_METADATA_FILENAME]:
                continue
            data = await self._store.get(key)
            if data is None:
                continue
            try:
                entry = KnowledgeBaseEntry.model_validate_json(data)
            except ValidationError as exc:
                logger.warning("metadata_parse_failed", key=key, error=str(exc))
                continue
            if entry.tenant_id == tenant_id:
                entries.append(entry)

        entries.sort(key=lambda e: e.upload_date, reverse=True)
        return entries

    # ------------------------------------------------------------------
    # Raw files
    # ------------------------------------------------------------------

    async def put_raw_file(
        self, source_id: str, filename: str, data: bytes, media_type: str | None
    ) -> str:
        key = raw_file_key(source_id, filename)
        await self._store.put(key, data, content_type=media_type)
        logger.debug("raw_file_stored", key=key, size=len(data))
        return key

    async def get_raw_file(self, source_id: str, filename: str) -> bytes | None:
        return await self._store.get(raw_file_key(source_id, filename))

    async def purge(self, source_id: str) -> int:
        """Delete every object under the document's prefix (raw file included)."""
        removed = await self._store.delete_prefix(document_prefix(source_id))
        logger.info("document_objects_purged", source_id=source_id, removed=removed)
        return removed
