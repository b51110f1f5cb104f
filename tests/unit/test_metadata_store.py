"""Unit tests for MetadataStore."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from knowledge_base.models.knowledge import KnowledgeBaseEntry, scope_for
from knowledge_base.providers.object_store.memory_object_store import MemoryObjectStore
from knowledge_base.services.metadata_store import MetadataStore, metadata_key, raw_file_key

_BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _entry(source_id: str, tenant_id: str | None = None, age_days: int = 0) -> KnowledgeBaseEntry:
    return KnowledgeBaseEntry(
        id=source_id,
        source_id=source_id,
        title=f"Doc {source_id}",
        filename="doc.txt",
        media_type="text/plain",
        scope=scope_for(tenant_id),
        tenant_id=tenant_id,
        upload_date=_BASE - timedelta(days=age_days),
        chunk_count=3,
    )


class TestMetadataStore:
    def test_key_layout(self) -> None:
        assert metadata_key("abc") == "knowledge-base/abc/metadata.json"
        assert raw_file_key("abc", "notes.pdf") == "knowledge-base/abc/raw/notes.pdf"

    @pytest.mark.asyncio
    async def test_write_and_get(self, metadata_store: MetadataStore) -> None:
        entry = _entry("doc_a", tenant_id="7")

        await metadata_store.write(entry)

        assert await metadata_store.get("doc_a") == entry
        assert await metadata_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_list_filters_by_tenant(self, metadata_store: MetadataStore) -> None:
        await metadata_store.write(_entry("shared_1"))
        await metadata_store.write(_entry("tenant_1", tenant_id="1"))
        await metadata_store.write(_entry("tenant_2", tenant_id="2"))

        assert [e.source_id for e in await metadata_store.list()] == ["shared_1"]
        assert [e.source_id for e in await metadata_store.list("1")] == ["tenant_1"]
        assert await metadata_store.list("3") == []

    @pytest.mark.asyncio
    async def test_list_newest_first(self, metadata_store: MetadataStore) -> None:
        await metadata_store.write(_entry("older", age_days=5))
        await metadata_store.write(_entry("newest", age_days=0))
        await metadata_store.write(_entry("middle", age_days=2))

        assert [e.source_id for e in await metadata_store.list()] == ["newest", "middle", "older"]

    @pytest.mark.asyncio
    async def test_list_skips_corrupt_and_raw_files(
        self, metadata_store: MetadataStore, object_store: MemoryObjectStore
    ) -> None:
        await metadata_store.write(_entry("good"))
        await metadata_store.put_raw_file("good", "doc.txt", b"raw text", "text/plain")
        await object_store.put(metadata_key("broken"), b'{"title": 1}')

        entries = await metadata_store.list()

        assert [e.source_id for e in entries] == ["good"]

    @pytest.mark.asyncio
    async def test_upload_named_metadata_json_kept_apart(self, metadata_store: MetadataStore) -> None:
        await metadata_store.put_raw_file("doc_m", "metadata.json", b'{"plain": "upload"}', None)
        await metadata_store.write(_entry("doc_m"))

        assert await metadata_store.get_raw_file("doc_m", "metadata.json") == b'{"plain": "upload"}'
        assert (await metadata_store.get("doc_m")).source_id == "doc_m"
        assert [e.source_id for e in await metadata_store.list()] == ["doc_m"]

    @pytest.mark.asyncio
    async def test_raw_file_round_trip_and_purge(
        self, metadata_store: MetadataStore, object_store: MemoryObjectStore
    ) -> None:
        await metadata_store.write(_entry("doc_p"))
        key = await metadata_store.put_raw_file("doc_p", "doc.txt", b"content", "text/plain")

        assert key == "knowledge-base/doc_p/raw/doc.txt"
        assert await metadata_store.get_raw_file("doc_p", "doc.txt") == b"content"

        removed = await metadata_store.purge("doc_p")

        assert removed == 2
        assert await object_store.list("knowledge-base/doc_p/") == []

    @pytest.mark.asyncio
    async def test_delete_removes_only_metadata(self, metadata_store: MetadataStore) -> None:
        await metadata_store.write(_entry("doc_d"))
        await metadata_store.put_raw_file("doc_d", "doc.txt", b"content", None)

        await metadata_store.delete("doc_d")

        assert await metadata_store.get("doc_d") is None
        assert await metadata_store.get_raw_file("doc_d", "doc.txt") == b"content"
