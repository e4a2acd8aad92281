"""
Unit tests for the in-memory document store.
"""

from unittest.mock import AsyncMock

import pytest

from service_cache.app.store.collections import CATEGORIES, PRODUCTS, SPECIFICATIONS
from service_cache.app.store.document_store import (
    ASCENDING,
    DESCENDING,
    InMemoryDocumentStore,
    MutationEvent,
    MutationKind,
    matches,
    sort_documents,
)
from shared.errors import SourceFetchError
from shared.test_helpers import ManualDateTimeClock, seed_store


class TestMatches:
    """Test cases for filter evaluation."""

    def test_no_filter_matches_everything(self):
        assert matches({"a": 1}, None) is True

    def test_equality_and_list_membership(self):
        document = {"status": "Pending", "category_ids": ["cat-1", "cat-2"]}

        assert matches(document, {"status": "Pending"}) is True
        assert matches(document, {"status": "Completed"}) is False
        assert matches(document, {"category_ids": "cat-2"}) is True
        assert matches(document, {"category_ids": "cat-9"}) is False

    def test_callable_filters(self):
        document = {"stock": 3}

        assert matches(document, {"stock": lambda value: value < 5}) is True
        assert matches(document, lambda doc: doc["stock"] > 5) is False


class TestSortDocuments:
    """Test cases for sorting."""

    def test_multi_key_sort_with_missing_values_last(self):
        documents = [
            {"id": "a", "group": 1, "rank": 2},
            {"id": "b", "group": None, "rank": 1},
            {"id": "c", "group": 2, "rank": 1},
            {"id": "d", "group": 1, "rank": 1},
        ]

        ordered = sort_documents(documents, [("group", DESCENDING), ("rank", ASCENDING)])

        assert [doc["id"] for doc in ordered] == ["c", "d", "a", "b"]


class TestInMemoryDocumentStore:
    """Test cases for InMemoryDocumentStore."""

    @pytest.fixture
    def clock(self):
        return ManualDateTimeClock()

    @pytest.fixture
    async def store(self, clock):
        store = InMemoryDocumentStore(clock=clock)
        await seed_store(store, now=clock())
        return store

    @pytest.mark.asyncio
    async def test_find_with_filter_sort_and_pagination(self, store):
        """Test query options compose."""
        products = await store.find(PRODUCTS, {"category_id": "cat-1"}, sort=[("stock", DESCENDING)])
        assert [doc["id"] for doc in products] == ["prod-2", "prod-1"]

        page = await store.find(PRODUCTS, sort=[("stock", ASCENDING)], skip=1, limit=1)
        assert [doc["id"] for doc in page] == ["prod-1"]

    @pytest.mark.asyncio
    async def test_find_returns_copies(self, store):
        """Test callers cannot mutate stored documents."""
        products = await store.find(PRODUCTS, {"id": "prod-1"})
        products[0]["name"] = "changed"

        stored = await store.find_one(PRODUCTS, "prod-1")
        assert stored["name"] == "Oil filter W712"

    @pytest.mark.asyncio
    async def test_insert_stamps_timestamps_and_id(self, store, clock):
        """Test writes record creation and modification times."""
        clock.advance(5)
        created = await store.insert(CATEGORIES, {"name": "Lamps"})

        assert created["id"]
        assert created["created_at"] == clock()
        assert created["updated_at"] == clock()
        assert await store.count(CATEGORIES) == 3

    @pytest.mark.asyncio
    async def test_latest_modified_tracks_updates(self, store, clock):
        """Test latest_modified reflects the newest write in scope."""
        seeded_at = clock()
        assert await store.latest_modified(PRODUCTS) == seeded_at

        clock.advance(30)
        await store.update(PRODUCTS, "prod-2", {"stock": 39})

        assert await store.latest_modified(PRODUCTS) == clock()
        assert await store.latest_modified(PRODUCTS, {"category_id": "cat-2"}) == seeded_at
        assert await store.latest_modified("empty") is None

    @pytest.mark.asyncio
    async def test_latest_modified_with_list_filter(self, store, clock):
        """Test scoped probes over list fields."""
        clock.advance(10)
        await store.update(SPECIFICATIONS, "spec-3", {"name": "Capacity (Ah)"})

        assert await store.latest_modified(SPECIFICATIONS, {"category_ids": "cat-2"}) == clock()
        assert await store.latest_modified(SPECIFICATIONS, {"category_ids": "cat-1"}) < clock()

    @pytest.mark.asyncio
    async def test_update_and_delete_missing(self, store):
        """Test writes against unknown ids."""
        assert await store.update(PRODUCTS, "nope", {"stock": 1}) is None
        assert await store.delete(PRODUCTS, "nope") is False

    @pytest.mark.asyncio
    async def test_subscribers_notified_per_collection(self, store):
        """Test mutation events reach only the subscribed collection."""
        product_callback = AsyncMock()
        category_callback = AsyncMock()
        store.subscribe(PRODUCTS, product_callback)
        store.subscribe(CATEGORIES, category_callback)

        await store.update(PRODUCTS, "prod-1", {"stock": 10})
        await store.delete(PRODUCTS, "prod-2")

        assert product_callback.await_args_list[0].args[0] == MutationEvent(PRODUCTS, MutationKind.UPDATE, "prod-1")
        assert product_callback.await_args_list[1].args[0] == MutationEvent(PRODUCTS, MutationKind.DELETE, "prod-2")
        category_callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_fail_write(self, store):
        """Test subscriber errors are contained."""
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        store.subscribe(PRODUCTS, failing)
        store.subscribe(PRODUCTS, healthy)

        updated = await store.update(PRODUCTS, "prod-1", {"stock": 10})

        assert updated["stock"] == 10
        healthy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disconnected_store_raises(self, store):
        """Test reads fail while disconnected and recover after connect."""
        await store.disconnect()

        with pytest.raises(SourceFetchError) as exc_info:
            await store.find(PRODUCTS)
        assert exc_info.value.code == "SOURCE_FETCH_ERROR"

        await store.connect()
        assert await store.count(PRODUCTS) == 3
