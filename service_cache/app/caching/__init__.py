"""
Caching package.

Two tiers (in-process and Redis) behind a coordinator, plus the manager
that owns the per-entity services and routes mutation events to their
invalidation methods. Prefer explicit invalidation; TTL is a backstop.
"""
