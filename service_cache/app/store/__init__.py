"""
Document store package.

Defines the contract the cache layer consumes from the data-access layer
(latest modification time per collection, mutation subscriptions, simple
queries) and an in-memory implementation of it.
"""
