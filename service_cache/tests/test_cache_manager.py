"""
Tests for the cache manager and mutation-driven invalidation.
"""

from unittest.mock import AsyncMock

import pytest

from service_cache.app.caching.cache_manager import CacheManager, create_cache_manager
from service_cache.app.caching.redis_cache import RedisCache
from service_cache.app.services.product_service import PRODUCTS_ALL_KEY
from service_cache.app.store.collections import ALL_COLLECTIONS, BRANDS, CATEGORIES, PRODUCTS, SALES_NOTES
from service_cache.app.store.document_store import InMemoryDocumentStore, MutationKind
from shared.config import CacheSettings
from shared.errors import UnknownCollectionError
from shared.test_helpers import InMemoryRedisClient, seed_store


class BrandlessStore(InMemoryDocumentStore):
    """Store that refuses subscriptions on the brands collection."""

    def subscribe(self, collection, callback):
        if collection == BRANDS:
            raise RuntimeError("change streams unavailable")
        super().subscribe(collection, callback)


@pytest.fixture
def settings():
    return CacheSettings(ttl_seconds=60, max_entries=100, redis_url=None)


@pytest.fixture
async def store():
    store = InMemoryDocumentStore()
    await seed_store(store)
    return store


@pytest.fixture
def client():
    return InMemoryRedisClient()


@pytest.fixture
def manager(settings, store, client):
    return CacheManager(settings, store, redis_cache=RedisCache(None, client=client))


class TestCacheManager:
    """Test cases for CacheManager."""

    @pytest.mark.asyncio
    async def test_routes_cover_every_collection(self, manager):
        assert set(manager.routes) == set(ALL_COLLECTIONS)

    @pytest.mark.asyncio
    async def test_services_share_one_remote_client(self, manager):
        """Test every coordinator talks to the same remote tier."""
        remotes = {id(service.cache.redis_cache) for service in manager.services.values()}

        assert remotes == {id(manager.redis_cache)}
        assert {service.cache.ttl_seconds for service in manager.services.values()} == {60}

    @pytest.mark.asyncio
    async def test_category_change_invalidates_product_listings(self, manager, store):
        """Test a category rename reaches product listings through the hook."""
        await manager.start()
        await manager.product_service.get_all_products()
        assert manager.product_service.cache.memory_cache.get(PRODUCTS_ALL_KEY) is not None

        await store.update(CATEGORIES, "cat-1", {"name": "Oil filters"})

        assert manager.product_service.cache.memory_cache.get(PRODUCTS_ALL_KEY) is None
        products = {product["id"]: product for product in await manager.product_service.get_all_products()}
        assert products["prod-1"]["category_name"] == "Oil filters"

    @pytest.mark.asyncio
    async def test_category_change_invalidates_catalog_keys(self, manager, store):
        await manager.start()
        categories = await manager.catalog_service.get_categories()
        brands = await manager.catalog_service.get_brands()
        assert categories and brands

        await store.insert(CATEGORIES, {"name": "Lamps", "slug": "lamps"})

        assert len(await manager.catalog_service.get_categories()) == 3

    @pytest.mark.asyncio
    async def test_delete_invalidates_through_hook(self, manager, store):
        """Test deletes, which do not move latest_modified, still invalidate."""
        await manager.start()
        assert len(await manager.product_service.get_all_products()) == 3

        await store.delete(PRODUCTS, "prod-3")

        assert len(await manager.product_service.get_all_products()) == 2

    @pytest.mark.asyncio
    async def test_sales_and_service_routes(self, manager):
        await manager.sales_service.get_sales_stats()
        await manager.sales_service.get_service_stats()

        await manager.dispatch(SALES_NOTES, MutationKind.CREATE)

        cache = manager.sales_service.cache
        assert await cache.read("sales:stats") is None
        assert await cache.read("service:stats") is not None

    @pytest.mark.asyncio
    async def test_dispatch_unknown_collection(self, manager):
        with pytest.raises(UnknownCollectionError) as exc_info:
            await manager.dispatch("widgets")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_subscription_failure_is_isolated(self, settings, client):
        """Test one failed subscription leaves the others working."""
        store = BrandlessStore()
        await seed_store(store)
        manager = CacheManager(settings, store, redis_cache=RedisCache(None, client=client))

        subscriptions = manager.setup_auto_invalidation()

        assert subscriptions[BRANDS] is False
        assert all(subscriptions[name] for name in subscriptions if name != BRANDS)

        await manager.product_service.get_all_products()
        await store.update(PRODUCTS, "prod-1", {"stock": 7})
        assert manager.product_service.cache.memory_cache.get(PRODUCTS_ALL_KEY) is None

    @pytest.mark.asyncio
    async def test_start_without_auto_invalidation(self, store, client):
        settings = CacheSettings(auto_invalidate=False, invalidate_on_start=False)
        manager = CacheManager(settings, store, redis_cache=RedisCache(None, client=client))

        await manager.start()

        assert manager.subscriptions == {}

    @pytest.mark.asyncio
    async def test_start_clears_existing_entries(self, manager, client):
        """Test invalidate_on_start empties both tiers."""
        await manager.product_service.cache.write("products:all", [1])
        client.data["other:key"] = "kept"

        await manager.start()

        assert await manager.product_service.cache.read("products:all") is None
        assert list(client.data) == ["other:key"]

    @pytest.mark.asyncio
    async def test_invalidate_all(self, manager):
        await manager.product_service.get_all_products()
        await manager.catalog_service.get_full_catalog_data()
        await manager.sales_service.get_service_stats()

        await manager.invalidate_all()

        stats = manager.get_stats()
        assert {name: service["primary_size"] for name, service in stats.items()} == {
            "product": 0, "catalog": 0, "sales": 0
        }

    @pytest.mark.asyncio
    async def test_get_stats(self, manager):
        await manager.product_service.get_all_products()

        stats = manager.get_stats()

        assert stats["product"] == {"primary_size": 1, "primary_max_size": 100, "secondary_available": True}
        assert stats["catalog"]["primary_size"] == 0

    @pytest.mark.asyncio
    async def test_set_enabled_propagates(self, manager, store):
        """Test disabling turns every service into a pass-through."""
        manager.set_enabled(False)

        assert manager.is_enabled() is False
        assert all(service.cache.enabled is False for service in manager.services.values())

        store.find = AsyncMock(wraps=store.find)
        await manager.catalog_service.get_brands()
        await manager.catalog_service.get_brands()
        assert store.find.await_count == 2

        manager.set_enabled(True)
        assert all(service.cache.enabled for service in manager.services.values())

    @pytest.mark.asyncio
    async def test_stop_closes_remote_client(self, manager, client):
        await manager.stop()
        assert client.closed is True

    def test_create_cache_manager_defaults(self):
        """Test the factory builds an in-memory store and an inert remote tier."""
        manager = create_cache_manager(CacheSettings(redis_url=None))

        assert isinstance(manager.store, InMemoryDocumentStore)
        assert manager.redis_cache.is_available() is False
