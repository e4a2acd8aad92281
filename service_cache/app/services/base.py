"""
Base class for cached data-access services.
"""

import asyncio
from contextlib import nullcontext
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple, TYPE_CHECKING

from shared.logging import get_logger
from ..caching.coordinator import CacheCoordinator
from ..store.document_store import DocumentStore, Filter, utcnow

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


StalenessProbe = Tuple[str, Optional[Filter]]


class BaseCacheService:
    """Shared read-through plumbing for the per-entity services.

    Subclasses compose a key per query, name the collections whose changes
    make that key stale, and provide the fetch that rebuilds the value.
    """

    name = "base"

    def __init__(
        self,
        store: DocumentStore,
        coordinator: CacheCoordinator,
        *,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.cache = coordinator
        self.metrics = metrics
        self._clock = clock
        self.logger = get_logger(f"cache.{self.name}_service")

    async def latest_modified(self, probes: Sequence[StalenessProbe]) -> Optional[datetime]:
        """Newest modification time across ``probes``, None when all are empty."""
        timestamps = await asyncio.gather(
            *(self.store.latest_modified(collection, filter) for collection, filter in probes)
        )
        present = [timestamp for timestamp in timestamps if timestamp is not None]
        return max(present) if present else None

    async def read_through(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        probes: Sequence[StalenessProbe],
    ) -> Any:
        """Serve ``key`` from cache unless the probed collections changed since it was built.

        A hit costs one ``latest_modified`` lookup per probe. On a miss or
        stale hit ``fetch`` runs and its result is cached, stamped with the
        time the fetch started so that writes racing the fetch still mark
        the entry stale. Fetch errors propagate and nothing is cached.
        """
        cached = await self.cache.read(key)
        if cached is not None:
            latest = await self.latest_modified(probes)
            if latest is None or not self.cache.is_stale(key, latest):
                return cached
            self.logger.debug("Cached value is stale", key=key, latest_modified=latest.isoformat())

        fetch_started = self._clock()
        timer = (
            self.metrics.time_operation("cache_source_fetch_duration_seconds", service=self.name)
            if self.metrics else nullcontext()
        )
        try:
            with timer:
                result = await fetch()
        except Exception as exc:
            self.logger.error("Error fetching from source", key=key, error=str(exc))
            raise

        if result is not None:
            await self.cache.write(key, result, fetch_started)
        return result

    async def invalidate_cache(self, key: str) -> None:
        await self.cache.invalidate(key)

    async def clear_cache(self, pattern: Optional[str] = None) -> None:
        await self.cache.invalidate_pattern(pattern)

    async def invalidate_all(self) -> None:
        """Drop every key this service owns."""
        raise NotImplementedError

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.get_stats()
