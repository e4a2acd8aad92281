"""
Shared utilities for the tiered document cache.

This package holds the building blocks the cache service is assembled from:

- config: Cache settings via pydantic-settings
- logging: Structured logging with request and collection correlation
- metrics: Prometheus metrics helpers
- errors: Cache layer error types and responses
- base_service: FastAPI service shell (health, metrics, error handling)
- test_helpers: Clocks, an in-memory Redis stand-in and seed data for tests

Do not import from service packages into shared/.
"""
