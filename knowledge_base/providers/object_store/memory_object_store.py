"""In-process object store.

Used for local development when no S3 bucket is configured, and by the
test suite.  Contents are lost when the process exits.
"""

from __future__ import annotations

import asyncio

from knowledge_base.interfaces.object_store import IObjectStore


class MemoryObjectStore(IObjectStore):
    """Dict-backed :class:`IObjectStore`."""

    def __init__(self) -> None:
        self._objects: dict[str, tuple[bytes, str | None]] = {}
        self._lock = asyncio.Lock()

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        async with self._lock:
            self._objects[key] = (bytes(data), content_type)

    async def get(self, key: str) -> bytes | None:
        item = self._objects.get(key)
        return item[0] if item is not None else None

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._objects.pop(key, None)

    async def list(self, prefix: str) -> list[str]:
        return sorted(k for k in self._objects if k.startswith(prefix))

    def content_type(self, key: str) -> str | None:
        item = self._objects.get(key)
        return item[1] if item is not None else None

    def get_provider_name(self) -> str:
        return "memory"
