"""
Cache manager: owns the per-entity services and routes mutation events
to their invalidation methods.
"""

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional

from shared.config import CacheSettings
from shared.errors import SubscriptionError, UnknownCollectionError
from shared.logging import get_logger, reset_collection_context, set_collection_context
from shared.metrics import MetricsCollector
from .coordinator import CacheCoordinator
from .redis_cache import RedisCache
from ..services.catalog_service import CatalogService
from ..services.product_service import ProductService
from ..services.sales_service import SalesService
from ..store.collections import (
    BRANDS, CATEGORIES, PRODUCTS, SALES_NOTES, SERVICE_REQUESTS, SPECIFICATIONS, SUPPLIERS
)
from ..store.document_store import DocumentStore, InMemoryDocumentStore, MutationEvent, MutationKind


Invalidation = Callable[[], Awaitable[None]]


class CacheManager:
    """Manager for the cached product, catalog and sales services.

    Build exactly one per process (``create_cache_manager``) and pass it to
    whatever needs the services; all of them are safe for concurrent use.
    """

    def __init__(
        self,
        settings: CacheSettings,
        store: DocumentStore,
        *,
        metrics: Optional[MetricsCollector] = None,
        redis_cache: Optional[RedisCache] = None,
    ):
        self.settings = settings
        self.store = store
        self.logger = get_logger("cache.manager")
        self.metrics = metrics or MetricsCollector("cache")
        self.redis_cache = redis_cache or RedisCache(
            settings.redis_url,
            settings.redis_token,
            namespace=settings.redis_namespace,
            timeout_seconds=settings.redis_timeout_seconds,
            metrics=self.metrics,
        )

        self.product_service = ProductService(store, self._coordinator("product"), metrics=self.metrics)
        self.catalog_service = CatalogService(store, self._coordinator("catalog"), metrics=self.metrics)
        self.sales_service = SalesService(store, self._coordinator("sales"), metrics=self.metrics)

        self.routes = self._build_routes()
        self.subscriptions: Dict[str, bool] = {}

    def _coordinator(self, name: str) -> CacheCoordinator:
        return CacheCoordinator(
            name,
            ttl_seconds=self.settings.ttl_seconds,
            max_entries=self.settings.max_entries,
            enabled=self.settings.enabled,
            redis_cache=self.redis_cache,
            metrics=self.metrics,
        )

    def _build_routes(self) -> Dict[str, List[Invalidation]]:
        """Collection -> invalidations run when it changes.

        Products embed category, brand and supplier names, so changes to
        those collections also drop the product listings.
        """
        products = self.product_service.invalidate_product_cache
        catalog = self.catalog_service.invalidate_specific_cache

        return {
            PRODUCTS: [products],
            CATEGORIES: [partial(catalog, "categories"), products],
            BRANDS: [partial(catalog, "brands"), products],
            SUPPLIERS: [partial(catalog, "suppliers"), products],
            SPECIFICATIONS: [partial(catalog, "specifications")],
            SALES_NOTES: [self.sales_service.invalidate_sales_cache],
            SERVICE_REQUESTS: [self.sales_service.invalidate_service_cache],
        }

    @property
    def services(self) -> Dict[str, Any]:
        return {
            "product": self.product_service,
            "catalog": self.catalog_service,
            "sales": self.sales_service,
        }

    async def start(self) -> None:
        """Wire mutation subscriptions and optionally start from an empty cache."""
        if self.settings.auto_invalidate:
            self.setup_auto_invalidation()

        if self.settings.invalidate_on_start:
            await self.invalidate_all()

        self.logger.info(
            "Cache manager started",
            enabled=self.is_enabled(),
            redis_available=self.redis_cache.is_available(),
            subscriptions=self.subscriptions,
        )

    async def stop(self) -> None:
        await self.redis_cache.close()
        self.logger.info("Cache manager stopped")

    def setup_auto_invalidation(self) -> Dict[str, bool]:
        """Subscribe to every routed collection; returns which subscriptions succeeded."""
        for collection in self.routes:
            self.subscriptions[collection] = self._subscribe(collection)
        return dict(self.subscriptions)

    def _subscribe(self, collection: str) -> bool:
        try:
            subscribe = getattr(self.store, "subscribe", None)
            if not callable(subscribe):
                raise SubscriptionError(collection, "document store does not expose mutation subscriptions")
            subscribe(collection, self._on_mutation)
            return True
        except Exception as exc:
            self.logger.warning(
                "Could not set up cache invalidation hooks",
                collection=collection,
                error=str(exc)
            )
            return False

    async def _on_mutation(self, event: MutationEvent) -> None:
        await self.dispatch(event.collection, event.operation)

    async def dispatch(self, collection: str, operation: MutationKind = MutationKind.UPDATE) -> None:
        """Run the invalidations routed for a change to ``collection``."""
        invalidations = self.routes.get(collection)
        if invalidations is None:
            raise UnknownCollectionError(collection)

        token = set_collection_context(collection)
        try:
            await asyncio.gather(*(invalidate() for invalidate in invalidations))
            self.logger.info(
                "Invalidated caches for mutation",
                collection=collection,
                operation=MutationKind(operation).value
            )
        finally:
            reset_collection_context(token)

    async def invalidate_all(self) -> None:
        """Manually invalidate every cache."""
        await asyncio.gather(*(service.invalidate_all() for service in self.services.values()))
        self.logger.info("Invalidated all caches")

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        """Get cache statistics from all services."""
        return {name: service.get_cache_stats() for name, service in self.services.items()}

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable caching for every service."""
        self.settings.enabled = enabled
        for service in self.services.values():
            service.cache.enabled = enabled
        self.logger.info("Cache enabled flag changed", enabled=enabled)

    def is_enabled(self) -> bool:
        return self.settings.enabled


def create_cache_manager(
    settings: Optional[CacheSettings] = None,
    store: Optional[DocumentStore] = None,
    **kwargs
) -> CacheManager:
    """Build the process-wide cache manager."""
    return CacheManager(settings or CacheSettings(), store or InMemoryDocumentStore(), **kwargs)
