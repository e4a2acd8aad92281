"""
Redis caching layer (secondary tier).
"""

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Dict, Optional, TYPE_CHECKING

import redis.asyncio as redis

from shared.errors import CacheBackendError, CacheConfigurationError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_NAMESPACE = "doccache:"
DEFAULT_TIMEOUT_SECONDS = 2.0
SCAN_BATCH_SIZE = 500


@dataclass
class CachedEnvelope:
    """Self-describing payload stored under each remote key."""
    data: Any
    timestamp: float
    last_modified: Optional[datetime] = None


DATETIME_TAG = "$datetime"
SET_TAG = "$set"


def _json_default(value: Any) -> Any:
    """Tag the non-JSON types documents carry so they decode back unchanged."""
    if isinstance(value, datetime):
        return {DATETIME_TAG: value.isoformat()}
    if isinstance(value, (set, frozenset)):
        return {SET_TAG: sorted(value)}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _json_object_hook(obj: Dict[str, Any]) -> Any:
    if len(obj) == 1:
        if DATETIME_TAG in obj:
            return datetime.fromisoformat(obj[DATETIME_TAG])
        if SET_TAG in obj:
            return set(obj[SET_TAG])
    return obj


class RedisCache:
    """Best-effort shared cache backed by Redis.

    Availability is decided once, at construction: without a URL, or when
    the client cannot be built from it, the instance stays inert and every
    operation is a no-op. Runtime failures (connection errors, timeouts,
    undecodable payloads) are logged and reported as a miss or a no-op;
    nothing raised by Redis reaches the caller.
    """

    def __init__(
        self,
        redis_url: Optional[str],
        token: Optional[str] = None,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        metrics: Optional["MetricsCollector"] = None,
        client: Optional[redis.Redis] = None,
    ):
        self.namespace = namespace
        self.timeout_seconds = timeout_seconds
        self.metrics = metrics
        self.logger = get_logger("cache.redis")
        self._client: Optional[redis.Redis] = client

        if self._client is None and redis_url:
            try:
                self._client = self._create_client(redis_url, token)
            except CacheConfigurationError as exc:
                self.logger.warning(
                    "Redis cache unavailable, continuing with in-process cache only",
                    error=exc.message
                )
        elif self._client is None:
            self.logger.info("Redis cache not configured")

    def _create_client(self, redis_url: str, token: Optional[str]) -> redis.Redis:
        """Build the client; no connection is opened here."""
        options = {
            "encoding": "utf-8",
            "decode_responses": True,
            "socket_connect_timeout": self.timeout_seconds,
            "socket_timeout": self.timeout_seconds,
        }
        if token:
            options["password"] = token

        try:
            return redis.from_url(redis_url, **options)
        except (ValueError, TypeError) as exc:
            raise CacheConfigurationError(str(exc), {"redis_url": redis_url}) from exc

    def is_available(self) -> bool:
        return self._client is not None

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    async def _bounded(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        """Await a Redis call under the operation timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise CacheBackendError(operation, "timed out") from exc
        except (redis.RedisError, OSError) as exc:
            raise CacheBackendError(operation, str(exc)) from exc

    def _record_failure(self, operation: str, key: Optional[str], exc: Exception) -> None:
        self.logger.error(f"Redis cache {operation} error", key=key, error=str(exc))
        if self.metrics:
            self.metrics.record_backend_error(operation)

    async def set(self, key: str, data: Any, ttl: int, last_modified: Optional[datetime] = None) -> None:
        """Store ``data`` wrapped in an envelope with a TTL of ``ttl`` seconds."""
        if not self._client:
            return

        try:
            payload = json.dumps(
                {
                    "data": data,
                    "timestamp": time.time(),
                    "last_modified": last_modified,
                },
                default=_json_default
            )
            await self._bounded("set", self._client.setex(self._key(key), ttl, payload))
            self.logger.debug("Cached value", key=key, ttl=ttl)
        except (CacheBackendError, TypeError, ValueError) as exc:
            self._record_failure("set", key, exc)

    async def get_envelope(self, key: str) -> Optional[CachedEnvelope]:
        """Get the stored envelope for ``key``, or None on miss or failure."""
        if not self._client:
            return None

        try:
            raw = await self._bounded("get", self._client.get(self._key(key)))
            if raw is None:
                return None

            parsed = json.loads(raw, object_hook=_json_object_hook)
            if not isinstance(parsed, dict) or "data" not in parsed:
                raise ValueError("payload is not a cache envelope")

            last_modified = parsed.get("last_modified")
            if last_modified is not None and not isinstance(last_modified, datetime):
                raise ValueError("envelope last_modified is not a timestamp")

            return CachedEnvelope(
                data=parsed["data"],
                timestamp=parsed.get("timestamp", 0.0),
                last_modified=last_modified
            )
        except (CacheBackendError, ValueError, KeyError, TypeError) as exc:
            self._record_failure("get", key, exc)
            return None

    async def get(self, key: str) -> Optional[Any]:
        """Get the cached value for ``key``."""
        envelope = await self.get_envelope(key)
        return envelope.data if envelope is not None else None

    async def delete(self, key: str) -> None:
        if not self._client:
            return

        try:
            await self._bounded("delete", self._client.delete(self._key(key)))
        except CacheBackendError as exc:
            self._record_failure("delete", key, exc)

    async def clear(self, pattern: Optional[str] = None) -> int:
        """Delete keys matching ``pattern`` (glob), or the whole namespace.

        Keys are enumerated with SCAN, so only keys under this instance's
        namespace are ever touched. Returns the number of deleted keys.
        """
        if not self._client:
            return 0

        match = self._key(pattern if pattern else "*")
        deleted = 0
        try:
            batch = []
            async for redis_key in self._client.scan_iter(match=match, count=SCAN_BATCH_SIZE):
                batch.append(redis_key)
                if len(batch) >= SCAN_BATCH_SIZE:
                    deleted += await self._bounded("clear", self._client.delete(*batch))
                    batch = []

            if batch:
                deleted += await self._bounded("clear", self._client.delete(*batch))

            self.logger.info("Cleared redis keys", pattern=match, count=deleted)
        except (CacheBackendError, redis.RedisError, OSError) as exc:
            self._record_failure("clear", match, exc)

        return deleted

    async def health_check(self) -> bool:
        """Check Redis health."""
        if not self._client:
            return False

        try:
            await self._bounded("ping", self._client.ping())
            return True
        except CacheBackendError:
            return False

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self.logger.info("Redis cache stopped")
