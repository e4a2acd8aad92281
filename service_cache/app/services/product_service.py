"""
Cached product queries.
"""

import asyncio
import base64
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .base import BaseCacheService
from ..store.collections import BRANDS, CATEGORIES, PRODUCTS, SUPPLIERS
from ..store.document_store import ASCENDING, DESCENDING, Document


PRODUCTS_ALL_KEY = "products:all"
PRODUCTS_LOW_STOCK_KEY = "products:low-stock"
PRODUCTS_QUERY_PATTERN = "products:query:*"
PRODUCTS_SEARCH_PATTERN = "products:search:*"
CATALOG_DATA_KEY = "catalog:data"

# Listings embed category, brand and supplier names.
PRODUCT_LISTING_PROBES = [(PRODUCTS, None), (CATEGORIES, None), (BRANDS, None), (SUPPLIERS, None)]


class ProductQuery(BaseModel):
    """Filtering, sorting and pagination for product listings."""

    search: Optional[str] = None
    category_id: Optional[str] = None
    brand_id: Optional[str] = None
    supplier_id: Optional[str] = None
    active_ecommerce: Optional[bool] = None
    low_stock: bool = False
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1)
    sort_by: Literal["name", "price", "stock", "updated_at"] = "updated_at"
    sort_order: Literal["asc", "desc"] = "desc"

    def cache_key(self) -> str:
        encoded = base64.urlsafe_b64encode(self.model_dump_json().encode()).decode()
        return f"products:query:{encoded}"


def is_low_stock(product: Document) -> bool:
    stock = product.get("stock")
    threshold = product.get("low_stock_threshold")
    return stock is not None and threshold is not None and stock <= threshold


def matches_search(product: Document, term: str) -> bool:
    """Case-insensitive match on name, internal code or any barcode."""
    needle = term.lower()
    fields = [product.get("name"), product.get("internal_code")] + list(product.get("barcodes") or [])
    return any(needle in str(value).lower() for value in fields if value)


class ProductService(BaseCacheService):
    """Product listings, search and the reference data embedded in them."""

    name = "product"

    async def _reference_names(self) -> Dict[str, Dict[str, Document]]:
        categories, brands, suppliers = await asyncio.gather(
            self.store.find(CATEGORIES),
            self.store.find(BRANDS),
            self.store.find(SUPPLIERS),
        )
        return {
            "categories": {doc["id"]: doc for doc in categories},
            "brands": {doc["id"]: doc for doc in brands},
            "suppliers": {doc["id"]: doc for doc in suppliers},
        }

    async def _enrich(self, products: List[Document]) -> List[Document]:
        """Attach brand, category and supplier names to each product."""
        references = await self._reference_names()
        enriched = []
        for product in products:
            brand = references["brands"].get(product.get("brand_id"), {})
            category = references["categories"].get(product.get("category_id"), {})
            supplier = references["suppliers"].get(product.get("supplier_id"), {})
            enriched.append({
                **product,
                "brand_name": brand.get("name"),
                "category_name": category.get("name"),
                "category_slug": category.get("slug"),
                "supplier_name": supplier.get("name"),
            })
        return enriched

    async def get_all_products(self) -> List[Document]:
        """Get every product, newest first."""

        async def fetch() -> List[Document]:
            products = await self.store.find(PRODUCTS, sort=[("updated_at", DESCENDING)])
            return await self._enrich(products)

        return await self.read_through(PRODUCTS_ALL_KEY, fetch, PRODUCT_LISTING_PROBES)

    async def get_products(self, query: Optional[ProductQuery] = None) -> Dict[str, Any]:
        """Get one page of products matching ``query``."""
        query = query or ProductQuery()

        def product_filter(product: Document) -> bool:
            if query.search and not matches_search(product, query.search):
                return False
            if query.category_id and product.get("category_id") != query.category_id:
                return False
            if query.brand_id and product.get("brand_id") != query.brand_id:
                return False
            if query.supplier_id and product.get("supplier_id") != query.supplier_id:
                return False
            if query.active_ecommerce is not None and product.get("active_ecommerce") != query.active_ecommerce:
                return False
            if query.low_stock and not is_low_stock(product):
                return False
            return True

        async def fetch() -> Dict[str, Any]:
            total = await self.store.count(PRODUCTS, product_filter)
            total_pages = -(-total // query.limit)
            direction = ASCENDING if query.sort_order == "asc" else DESCENDING

            products = await self.store.find(
                PRODUCTS,
                product_filter,
                sort=[(query.sort_by, direction)],
                skip=(query.page - 1) * query.limit,
                limit=query.limit,
            )

            return {
                "products": await self._enrich(products),
                "total": total,
                "page": query.page,
                "total_pages": total_pages,
                "has_next_page": query.page < total_pages,
                "has_prev_page": query.page > 1,
            }

        return await self.read_through(query.cache_key(), fetch, PRODUCT_LISTING_PROBES)

    async def get_catalog_data(self) -> Dict[str, List[Document]]:
        """Get category, brand and supplier names for product forms."""

        async def fetch() -> Dict[str, List[Document]]:
            categories, brands, suppliers = await asyncio.gather(
                self.store.find(CATEGORIES, sort=[("name", ASCENDING)]),
                self.store.find(BRANDS, sort=[("name", ASCENDING)]),
                self.store.find(SUPPLIERS, sort=[("name", ASCENDING)]),
            )
            return {
                "categories": [{"id": doc["id"], "name": doc.get("name"), "slug": doc.get("slug")} for doc in categories],
                "brands": [{"id": doc["id"], "name": doc.get("name")} for doc in brands],
                "suppliers": [{"id": doc["id"], "name": doc.get("name")} for doc in suppliers],
            }

        probes = [(CATEGORIES, None), (BRANDS, None), (SUPPLIERS, None)]
        return await self.read_through(CATALOG_DATA_KEY, fetch, probes)

    async def get_low_stock_products(self) -> List[Document]:
        """Get products at or below their low-stock threshold, lowest stock first."""

        async def fetch() -> List[Document]:
            products = await self.store.find(PRODUCTS, is_low_stock, sort=[("stock", ASCENDING)])
            return await self._enrich(products)

        return await self.read_through(PRODUCTS_LOW_STOCK_KEY, fetch, PRODUCT_LISTING_PROBES)

    async def search_products(self, search_term: str, limit: int = 20) -> List[Document]:
        """Search products by name, internal code or barcode."""
        if not search_term.strip():
            return []

        cache_key = f"products:search:{search_term.lower()}:{limit}"

        async def fetch() -> List[Document]:
            products = await self.store.find(
                PRODUCTS,
                lambda product: matches_search(product, search_term),
                limit=limit,
            )
            return await self._enrich(products)

        return await self.read_through(cache_key, fetch, PRODUCT_LISTING_PROBES)

    async def invalidate_product_cache(self) -> None:
        """Invalidate all product listings."""
        await asyncio.gather(
            self.invalidate_cache(PRODUCTS_ALL_KEY),
            self.invalidate_cache(PRODUCTS_LOW_STOCK_KEY),
            self.clear_cache(PRODUCTS_QUERY_PATTERN),
            self.clear_cache(PRODUCTS_SEARCH_PATTERN),
        )

    async def invalidate_catalog_cache(self) -> None:
        await self.invalidate_cache(CATALOG_DATA_KEY)

    async def invalidate_all(self) -> None:
        await asyncio.gather(self.invalidate_product_cache(), self.invalidate_catalog_cache())
