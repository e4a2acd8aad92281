"""
Bounded in-process cache (primary tier).
"""

import copy
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional


DEFAULT_TTL_SECONDS = 3600
DEFAULT_MAX_ENTRIES = 1000


@dataclass
class CacheEntry:
    """A cached value with its absolute expiry and source timestamp."""
    key: str
    value: Any
    expires_at: float
    last_modified: Optional[datetime] = None

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class MemoryCache:
    """Size-bounded key/value store with lazy per-entry expiry.

    Entries are evicted oldest-inserted first once ``max_size`` is reached;
    reads do not refresh an entry's position. Expiry is only enforced when
    an entry is read, there is no background sweep. Values are copied in
    and out, so callers never share an object with the cache.

    All map access goes through one lock so a reader sees an entry either
    before or after a concurrent write, and eviction plus insert happen as
    a single step.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_ENTRIES, clock: Callable[[], float] = time.time):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def set(
        self,
        key: str,
        value: Any,
        ttl: int = DEFAULT_TTL_SECONDS,
        last_modified: Optional[datetime] = None
    ) -> None:
        """Insert or overwrite ``key``; an overwrite becomes the newest entry."""
        entry = CacheEntry(
            key=key,
            value=copy.deepcopy(value),
            expires_at=self._clock() + ttl,
            last_modified=last_modified
        )

        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = entry

    def get(self, key: str) -> Optional[Any]:
        """Return the live value for ``key`` or None, dropping it if expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None

        return copy.deepcopy(entry.value)

    def is_stale(self, key: str, last_modified: datetime) -> bool:
        """Whether ``last_modified`` is newer than what the entry was built from.

        Missing entries and entries written without a source timestamp are
        always stale. Expiry is not consulted.
        """
        with self._lock:
            entry = self._entries.get(key)

        if entry is None or entry.last_modified is None:
            return True

        return last_modified > entry.last_modified

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> Dict[str, int]:
        """Get entry count and capacity."""
        with self._lock:
            size = len(self._entries)

        return {
            "size": size,
            "max_size": self.max_size
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries
