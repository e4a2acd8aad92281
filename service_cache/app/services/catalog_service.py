"""
Cached catalog reference data: categories, brands, suppliers and
specifications.
"""

import asyncio
from collections import Counter
from typing import Any, Dict, List, Literal

from .base import BaseCacheService
from ..store.collections import BRANDS, CATEGORIES, PRODUCTS, SPECIFICATIONS, SUPPLIERS
from ..store.document_store import ASCENDING, Document


CATEGORIES_KEY = "catalog:categories"
BRANDS_KEY = "catalog:brands"
SUPPLIERS_KEY = "catalog:suppliers"
FULL_CATALOG_KEY = "catalog:full"
CATEGORIES_WITH_PRODUCTS_KEY = "catalog:categories-with-products"
SPECIFICATIONS_PATTERN = "catalog:specs:*"

CatalogKind = Literal["categories", "brands", "suppliers", "specifications"]

BY_NAME = [("name", ASCENDING)]


class CatalogService(BaseCacheService):
    """Reference data that product listings point to."""

    name = "catalog"

    async def _list_sorted(self, key: str, collection: str) -> List[Document]:
        async def fetch() -> List[Document]:
            return await self.store.find(collection, sort=BY_NAME)

        return await self.read_through(key, fetch, [(collection, None)])

    async def get_categories(self) -> List[Document]:
        return await self._list_sorted(CATEGORIES_KEY, CATEGORIES)

    async def get_brands(self) -> List[Document]:
        return await self._list_sorted(BRANDS_KEY, BRANDS)

    async def get_suppliers(self) -> List[Document]:
        return await self._list_sorted(SUPPLIERS_KEY, SUPPLIERS)

    async def get_specifications_by_category(self, category_id: str) -> List[Document]:
        """Get the active specifications that apply to ``category_id``."""
        cache_key = f"catalog:specs:{category_id}"

        async def fetch() -> List[Document]:
            return await self.store.find(
                SPECIFICATIONS,
                {"category_ids": category_id, "is_active": True},
                sort=BY_NAME,
            )

        return await self.read_through(cache_key, fetch, [(SPECIFICATIONS, {"category_ids": category_id})])

    async def get_full_catalog_data(self) -> Dict[str, List[Document]]:
        """Get all catalog collections in one value."""

        async def fetch() -> Dict[str, List[Document]]:
            categories, brands, suppliers, specifications = await asyncio.gather(
                self.store.find(CATEGORIES, sort=BY_NAME),
                self.store.find(BRANDS, sort=BY_NAME),
                self.store.find(SUPPLIERS, sort=BY_NAME),
                self.store.find(SPECIFICATIONS, {"is_active": True}, sort=BY_NAME),
            )
            return {
                "categories": categories,
                "brands": brands,
                "suppliers": suppliers,
                "specifications": specifications,
            }

        probes = [(CATEGORIES, None), (BRANDS, None), (SUPPLIERS, None), (SPECIFICATIONS, None)]
        return await self.read_through(FULL_CATALOG_KEY, fetch, probes)

    async def get_categories_with_products(self) -> List[Dict[str, Any]]:
        """Get categories that have at least one product, with their product count."""

        async def fetch() -> List[Dict[str, Any]]:
            products, categories = await asyncio.gather(
                self.store.find(PRODUCTS),
                self.store.find(CATEGORIES),
            )
            counts = Counter(product.get("category_id") for product in products)
            by_id = {category["id"]: category for category in categories}

            rows = [
                {"id": category_id, "name": by_id[category_id].get("name"), "product_count": count}
                for category_id, count in counts.items()
                if category_id in by_id
            ]
            return sorted(rows, key=lambda row: row["name"] or "")

        probes = [(CATEGORIES, None), (PRODUCTS, None)]
        return await self.read_through(CATEGORIES_WITH_PRODUCTS_KEY, fetch, probes)

    async def invalidate_catalog_cache(self) -> None:
        """Invalidate every catalog key."""
        await asyncio.gather(
            self.invalidate_cache(CATEGORIES_KEY),
            self.invalidate_cache(BRANDS_KEY),
            self.invalidate_cache(SUPPLIERS_KEY),
            self.invalidate_cache(FULL_CATALOG_KEY),
            self.invalidate_cache(CATEGORIES_WITH_PRODUCTS_KEY),
            self.clear_cache(SPECIFICATIONS_PATTERN),
        )

    async def invalidate_specific_cache(self, kind: CatalogKind) -> None:
        """Invalidate the keys derived from one catalog collection."""
        if kind == "categories":
            keys = [CATEGORIES_KEY, FULL_CATALOG_KEY, CATEGORIES_WITH_PRODUCTS_KEY]
        elif kind == "brands":
            keys = [BRANDS_KEY, FULL_CATALOG_KEY]
        elif kind == "suppliers":
            keys = [SUPPLIERS_KEY, FULL_CATALOG_KEY]
        elif kind == "specifications":
            await asyncio.gather(
                self.clear_cache(SPECIFICATIONS_PATTERN),
                self.invalidate_cache(FULL_CATALOG_KEY),
            )
            return
        else:
            raise ValueError(f"Unknown catalog kind: {kind}")

        await asyncio.gather(*(self.invalidate_cache(key) for key in keys))

    async def invalidate_all(self) -> None:
        await self.invalidate_catalog_cache()
