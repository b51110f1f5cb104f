"""Abstract base class for the blob/object store.

Raw uploads, per-document metadata and processing statuses all live in the
object store under these key layouts:

    knowledge-base/<source_id>/raw/<filename>  original file bytes
    knowledge-base/<source_id>/metadata.json   KnowledgeBaseEntry JSON
    processing-status/<processing_id>.json     ProcessingStatus JSON
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class IObjectStore(ABC):
    """Contract for a flat key/value blob store (S3 or compatible)."""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        """Write *data* under *key*, replacing any existing object."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the bytes stored under *key*, or ``None`` if absent."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*.  Missing keys are not an error."""

    @abstractmethod
    async def list(self, prefix: str) -> list[str]:
        """Return every key starting with *prefix*."""

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every object whose key starts with *prefix*.

        Returns the number of keys removed.
        """
        keys = await self.list(prefix)
        for key in keys:
            await self.delete(key)
        return len(keys)

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"s3"``."""
