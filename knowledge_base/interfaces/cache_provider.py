"""Contract for the short-lived status cache.

Processing-status polling hits this first; the object store keeps the
durable copy.  Backends only need async get/set/delete plus key listing
so the retention sweeper can walk entries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ICacheProvider(ABC):
    """Async key-value store holding recently written processing statuses."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value under *key*, or ``None`` when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Write *value* under *key*, replacing any previous entry."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Drop *key*.  Deleting an unknown key is not an error."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """List live keys; entries past their TTL are not included."""
