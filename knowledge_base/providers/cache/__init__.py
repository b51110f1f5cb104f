"""Cache providers.

MemoryCacheProvider is a TTLCache-backed cache, fast but not shared across
processes.  For multi-worker deployments, swap in a Redis adapter
implementing ICacheProvider.
"""

from knowledge_base.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
