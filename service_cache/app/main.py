"""
Document cache service: admin HTTP surface over the cache manager.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from shared.base_service import BaseService
from .caching.cache_manager import CacheManager, create_cache_manager
from .store.document_store import DocumentStore, MutationKind


class EnabledRequest(BaseModel):
    """Body for toggling the cache on or off."""
    enabled: bool


class CacheService(BaseService):
    """Cache service implementation."""

    def __init__(self, store: Optional[DocumentStore] = None, **config_overrides):
        super().__init__("cache", 8020, **config_overrides)

        self.manager: CacheManager = create_cache_manager(self.config, store, metrics=self.metrics)

        self._setup_cache_routes()

    def _setup_cache_routes(self):
        """Set up cache-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "cache",
                "message": "Tiered document cache",
                "version": "1.0.0",
                "capabilities": ["memory_cache", "redis_cache", "auto_invalidation"]
            }

        @self.app.get("/cache/stats")
        async def cache_stats():
            """Per-service tier sizes and remote availability."""
            return {
                "enabled": self.manager.is_enabled(),
                "services": self.manager.get_stats(),
                "subscriptions": self.manager.subscriptions,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

        @self.app.post("/cache/invalidate")
        async def invalidate_all():
            """Drop every cached value."""
            await self.manager.invalidate_all()
            return {"status": "ok", "invalidated": "all"}

        @self.app.post("/cache/invalidate/{collection}")
        async def invalidate_collection(collection: str):
            """Run the invalidations routed for ``collection`` as if it had changed."""
            await self.manager.dispatch(collection, MutationKind.UPDATE)
            return {"status": "ok", "invalidated": collection}

        @self.app.put("/cache/enabled")
        async def set_enabled(request: EnabledRequest):
            """Turn caching on or off for every service."""
            self.manager.set_enabled(request.enabled)
            return {"enabled": self.manager.is_enabled()}

    async def _check_dependencies(self):
        """Check cache service dependencies."""
        dependencies = {}

        redis_cache = self.manager.redis_cache
        if not redis_cache.is_available():
            dependencies["redis"] = "disabled"
        elif await redis_cache.health_check():
            dependencies["redis"] = "ok"
        else:
            dependencies["redis"] = "error"

        connected = getattr(self.manager.store, "is_connected", True)
        dependencies["document_store"] = "ok" if connected else "error"

        return dependencies

    async def start(self):
        """Start cache service components."""
        await self.manager.start()
        self.logger.info("Cache service started")

    async def stop(self):
        """Stop cache service components."""
        await self.manager.stop()
        self.logger.info("Cache service stopped")


def create_app(store: Optional[DocumentStore] = None, **config_overrides):
    """Create cache service application."""
    service = CacheService(store, **config_overrides)
    return service.app


if __name__ == "__main__":
    service = CacheService()
    service.run()
