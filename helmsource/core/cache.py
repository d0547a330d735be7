"""In-memory TTL cache of parsed repository indexes.

Keys are artifact storage paths. Those are unique per object, so one tenant
can never read an index cached for another tenant's repository.
"""

from __future__ import annotations

import threading
import time
from typing import Any


class CacheFullError(RuntimeError):
    """Raised when an item cannot be added because the cache is full."""


class IndexCache:
    """Thread-safe key/value cache with per-item expiration.

    Parameters
    ----------
    max_items:
        Upper bound on live items. Expired items are evicted before a
        ``set`` is refused.
    """

    def __init__(self, max_items: int, *, clock=time.monotonic) -> None:
        self._max_items = max_items
        self._clock = clock
        self._lock = threading.Lock()
        self._items: dict[str, tuple[Any, float]] = {}

    def _evict_expired(self, now: float) -> None:
        expired = [k for k, (_, expires) in self._items.items() if expires <= now]
        for key in expired:
            del self._items[key]

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        with self._lock:
            now = self._clock()
            if key not in self._items and len(self._items) >= self._max_items:
                self._evict_expired(now)
                if len(self._items) >= self._max_items:
                    raise CacheFullError(f"cache is full ({self._max_items} items)")
            self._items[key] = (value, now + ttl)

    def get(self, key: str) -> Any | None:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            value, expires = item
            if expires <= self._clock():
                del self._items[key]
                return None
            return value

    def set_expiration(self, key: str, ttl: float) -> None:
        """Extend the lifetime of a live item; absent keys are ignored."""
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return
            now = self._clock()
            if item[1] <= now:
                del self._items[key]
                return
            self._items[key] = (item[0], now + ttl)

    def expiration(self, key: str) -> float | None:
        """Remaining lifetime of ``key`` in seconds, or None when absent."""
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            return item[1] - self._clock()

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def item_count(self) -> int:
        with self._lock:
            self._evict_expired(self._clock())
            return len(self._items)
