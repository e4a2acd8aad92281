"""
Two-tier cache coordinator.
"""

from datetime import datetime
from typing import Any, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger
from .memory_cache import MemoryCache, DEFAULT_MAX_ENTRIES, DEFAULT_TTL_SECONDS
from .redis_cache import RedisCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class CacheCoordinator:
    """Read-through/write-through over the in-process and Redis tiers.

    The in-process tier is authoritative for staleness; Redis only widens
    the hit rate across processes and restarts. Redis failures never reach
    the caller, they are handled inside ``RedisCache``.
    """

    def __init__(
        self,
        name: str,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        enabled: bool = True,
        memory_cache: Optional[MemoryCache] = None,
        redis_cache: Optional[RedisCache] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self.memory_cache = memory_cache or MemoryCache(max_entries)
        self.redis_cache = redis_cache
        self.metrics = metrics
        self.logger = get_logger(f"cache.{name}")

    def _redis_available(self) -> bool:
        return self.redis_cache is not None and self.redis_cache.is_available()

    def _record(self, tier: str, result: str) -> None:
        if self.metrics:
            self.metrics.record_cache_request(self.name, tier, result)

    async def read(self, key: str) -> Optional[Any]:
        """Look ``key`` up in memory, then Redis; a Redis hit is copied into memory.

        Staleness is not checked here; callers probe the source of truth
        before trusting a hit.
        """
        if not self.enabled:
            return None

        value = self.memory_cache.get(key)
        if value is not None:
            self._record("memory", "hit")
            return value
        self._record("memory", "miss")

        if not self._redis_available():
            return None

        envelope = await self.redis_cache.get_envelope(key)
        if envelope is None or envelope.data is None:
            self._record("redis", "miss")
            return None

        self._record("redis", "hit")
        self.memory_cache.set(key, envelope.data, self.ttl_seconds, envelope.last_modified)
        self.logger.debug("Back-filled memory cache from redis", key=key)
        return envelope.data

    async def write(self, key: str, value: Any, last_modified: Optional[datetime] = None) -> None:
        """Store ``value`` in memory, then in Redis when available."""
        if not self.enabled:
            return

        self.memory_cache.set(key, value, self.ttl_seconds, last_modified)

        if self._redis_available():
            await self.redis_cache.set(key, value, self.ttl_seconds, last_modified)

    async def invalidate(self, key: str) -> None:
        """Remove ``key`` from both tiers."""
        self.memory_cache.delete(key)

        if self._redis_available():
            await self.redis_cache.delete(key)

        if self.metrics:
            self.metrics.record_invalidation(self.name, "key")

    async def invalidate_pattern(self, pattern: Optional[str] = None) -> None:
        """Remove keys matching a glob ``pattern``, or everything when None.

        The in-process tier does not match patterns: any pattern clears it
        entirely. Redis deletes only the matching keys.
        """
        self.memory_cache.clear()

        if self._redis_available():
            await self.redis_cache.clear(pattern)

        if self.metrics:
            self.metrics.record_invalidation(self.name, "pattern" if pattern else "all")

    def is_stale(self, key: str, last_modified: datetime) -> bool:
        return self.memory_cache.is_stale(key, last_modified)

    def get_stats(self) -> Dict[str, Any]:
        """Get tier sizes and remote availability."""
        memory = self.memory_cache.get_stats()
        if self.metrics:
            self.metrics.set_gauge("cache_primary_entries", memory["size"], service=self.name)

        return {
            "primary_size": memory["size"],
            "primary_max_size": memory["max_size"],
            "secondary_available": self._redis_available(),
        }
