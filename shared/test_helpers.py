"""
Test helper functions and factory methods for the tiered document cache.
"""

import fnmatch
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional, List

from redis.exceptions import ConnectionError as RedisConnectionError


class ManualClock:
    """Controllable wall clock for expiry tests (seconds since the epoch)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualDateTimeClock:
    """Controllable ``datetime`` clock for staleness tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class InMemoryRedisClient:
    """Async stand-in for the handful of redis client calls the cache uses.

    Set ``fail`` to make every call raise ``ConnectionError`` the way a
    dropped connection would.
    """

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.fail = False
        self.closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.data.get(key)

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*", count: Optional[int] = None):
        self._check()
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        self.closed = True


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    @staticmethod
    def create_test_categories() -> List[Dict[str, Any]]:
        return [
            {"id": "cat-1", "name": "Filters", "slug": "filters", "low_stock_threshold": 5},
            {"id": "cat-2", "name": "Batteries", "slug": "batteries", "low_stock_threshold": 3},
        ]

    @staticmethod
    def create_test_brands() -> List[Dict[str, Any]]:
        return [
            {"id": "brand-1", "name": "Bosch"},
            {"id": "brand-2", "name": "Mann"},
        ]

    @staticmethod
    def create_test_suppliers() -> List[Dict[str, Any]]:
        return [
            {"id": "sup-1", "name": "North Parts"},
        ]

    @staticmethod
    def create_test_products() -> List[Dict[str, Any]]:
        return [
            {
                "id": "prod-1",
                "name": "Oil filter W712",
                "internal_code": "OF-712",
                "barcodes": ["7790001"],
                "category_id": "cat-1",
                "brand_id": "brand-2",
                "supplier_id": "sup-1",
                "price": 12.5,
                "stock": 2,
                "low_stock_threshold": 5,
                "active_ecommerce": True,
            },
            {
                "id": "prod-2",
                "name": "Air filter C27",
                "internal_code": "AF-027",
                "barcodes": ["7790002"],
                "category_id": "cat-1",
                "brand_id": "brand-2",
                "supplier_id": "sup-1",
                "price": 18.0,
                "stock": 40,
                "low_stock_threshold": 5,
                "active_ecommerce": False,
            },
            {
                "id": "prod-3",
                "name": "Battery S4 60Ah",
                "internal_code": "BT-060",
                "barcodes": ["7790003", "7790004"],
                "category_id": "cat-2",
                "brand_id": "brand-1",
                "supplier_id": "sup-1",
                "price": 95.0,
                "stock": 1,
                "low_stock_threshold": 3,
                "active_ecommerce": True,
            },
        ]

    @staticmethod
    def create_test_specifications() -> List[Dict[str, Any]]:
        return [
            {"id": "spec-1", "name": "Thread", "category_ids": ["cat-1"], "is_active": True},
            {"id": "spec-2", "name": "Legacy size", "category_ids": ["cat-1"], "is_active": False},
            {"id": "spec-3", "name": "Capacity", "category_ids": ["cat-2"], "is_active": True},
        ]

    @staticmethod
    def create_test_sales_notes(now: datetime) -> List[Dict[str, Any]]:
        return [
            {"id": "sale-1", "customer_name": "ACME", "date": now - timedelta(hours=1), "total": 100.0},
            {"id": "sale-2", "customer_name": "Globex", "date": now - timedelta(days=40), "total": 50.0},
        ]

    @staticmethod
    def create_test_service_requests() -> List[Dict[str, Any]]:
        return [
            {"id": "sr-1", "status": "Pending", "total_cost": 0, "is_archived": False},
            {"id": "sr-2", "status": "In Progress", "total_cost": 0, "is_archived": False},
            {"id": "sr-3", "status": "Completed", "total_cost": 120.0, "is_archived": False},
            {"id": "sr-4", "status": "Completed", "total_cost": 80.0, "is_archived": True},
        ]


async def seed_store(store, now: Optional[datetime] = None) -> None:
    """Load the factory data into an ``InMemoryDocumentStore``."""
    now = now or datetime.now(timezone.utc)
    seeds = {
        "categories": TestDataFactory.create_test_categories(),
        "brands": TestDataFactory.create_test_brands(),
        "suppliers": TestDataFactory.create_test_suppliers(),
        "products": TestDataFactory.create_test_products(),
        "specifications": TestDataFactory.create_test_specifications(),
        "sales_notes": TestDataFactory.create_test_sales_notes(now),
        "service_requests": TestDataFactory.create_test_service_requests(),
    }
    for collection, documents in seeds.items():
        for document in documents:
            await store.insert(collection, document)


class TestEnvironment:
    """Test environment configuration."""

    __test__ = False

    @staticmethod
    def get_mock_config() -> Dict[str, Any]:
        """Get mock environment configuration."""
        return {
            "DOCCACHE_ENV": "test",
            "DOCCACHE_LOG_LEVEL": "debug",
            "DOCCACHE_TTL_SECONDS": "60",
            "DOCCACHE_MAX_ENTRIES": "100",
            "DOCCACHE_REDIS_URL": "redis://localhost:6379/0",
        }
