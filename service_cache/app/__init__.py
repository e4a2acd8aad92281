"""
Document cache service package.

Read-through caching for the product, catalog and sales data-access
services that front the document store:
- Primary tier: bounded in-process cache with lazy expiry.
- Secondary tier: optional shared Redis cache, best-effort.
- Staleness checks against the store's latest modification time.
- Invalidation routed from store mutation events.

Structure:
- app.main: FastAPI admin surface (stats, manual invalidation, health).
- app.caching: Cache tiers, coordinator and the invalidation router.
- app.services: Per-entity data-access services built on the coordinator.
- app.store: Document store contract and the in-memory implementation.
"""
