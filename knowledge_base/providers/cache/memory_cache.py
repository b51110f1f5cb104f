"""Process-local status cache on top of ``cachetools.TTLCache``."""

from __future__ import annotations

from typing import Any

import structlog
from cachetools import TTLCache

from knowledge_base.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """Bounded TTL cache for processing statuses.

    Every entry shares the same *ttl* (seconds); rewriting a key restarts
    its clock.  Once *max_size* entries are held the least recently used
    one is evicted.  Nothing here survives a restart, which is why the
    status store also writes each status to the object store.
    """

    def __init__(self, max_size: int = 1000, ttl: int = 3600) -> None:
        self._entries: TTLCache[str, Any] = TTLCache(maxsize=max_size, ttl=ttl)

    async def get(self, key: str) -> Any | None:
        found = self._entries.get(key)
        logger.debug("status_cache_lookup", key=key, hit=found is not None)
        return found

    async def set(self, key: str, value: Any) -> None:
        self._entries[key] = value
        logger.debug("status_cache_write", key=key, size=len(self._entries))

    async def delete(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            logger.debug("status_cache_evict", key=key)

    async def keys(self) -> list[str]:
        self._entries.expire()
        return list(self._entries)
