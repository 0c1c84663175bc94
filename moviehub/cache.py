"""A thread-safe in-memory cache with per-item expiry and hit statistics."""

from __future__ import annotations

import threading
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

_NANOS_PER_SECOND = 1_000_000_000


@dataclass(frozen=True)
class CacheItem:
    """A cached value; ``expiration`` is a Unix time in nanoseconds, 0 for never."""

    value: Any
    expiration: int = 0

    def expired(self) -> bool:
        """Whether the item has expired as of now."""
        return self._expired_at(time.time_ns())

    def _expired_at(self, now: int) -> bool:
        return self.expiration > 0 and now > self.expiration


class MemoryCache:
    """In-memory key/value cache.

    Durations are in seconds. A default expiration of zero or less means
    items never expire; a positive cleanup interval starts a background
    thread that removes expired items.
    """

    def __init__(
        self,
        default_expiration: float = 300.0,
        cleanup_interval: float = 600.0,
        *,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        self.default_expiration = default_expiration
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._items: dict[str, CacheItem] = {}
        self._lock = threading.RLock()
        self._counter_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stop = threading.Event()
        self._cleaner: threading.Thread | None = None
        if cleanup_interval > 0:
            self._cleaner = threading.Thread(
                target=self._cleanup_loop, name="cache-cleanup", daemon=True
            )
            self._cleaner.start()

    def __enter__(self) -> MemoryCache:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop_cleanup()

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` with the default expiration."""
        self.set_with_expiration(key, value, self.default_expiration)

    def set_with_expiration(self, key: str, value: Any, duration: float) -> None:
        """Store ``value`` for ``duration`` seconds; 0 means the default, negative means forever."""
        if duration == 0:
            duration = self.default_expiration
        expiration = 0
        if duration > 0:
            expiration = self._clock() + int(duration * _NANOS_PER_SECOND)
        with self._lock:
            self._items[key] = CacheItem(value, expiration)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value under ``key``, or ``default`` on a miss."""
        with self._lock:
            item = self._items.get(key)
        if item is None or item._expired_at(self._clock()):
            with self._counter_lock:
                self._misses += 1
            return default
        with self._counter_lock:
            self._hits += 1
        return item.value

    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        with self._lock:
            self._items.pop(key, None)

    def flush(self) -> None:
        """Remove every item."""
        with self._lock:
            self._items = {}

    def delete_expired(self) -> None:
        """Remove every expired item."""
        now = self._clock()
        with self._lock:
            self._items = {
                key: item for key, item in self._items.items() if not item._expired_at(now)
            }

    def stop_cleanup(self) -> None:
        """Stop the background cleanup thread, if one is running."""
        self._stop.set()
        if self._cleaner is not None and self._cleaner is not threading.current_thread():
            self._cleaner.join()

    def stats(self) -> dict[str, Any]:
        """Counts of items, expired items, key prefixes, hits and misses."""
        with self._lock:
            keys = list(self._items)
            items = list(self._items.values())
        with self._counter_lock:
            hits, misses = self._hits, self._misses
        total_requests = hits + misses
        hit_rate = hits / total_requests * 100 if total_requests else 0.0
        now = self._clock()
        return {
            "total": len(items),
            "expired": sum(1 for item in items if item._expired_at(now)),
            "typeStats": dict(Counter(key.split(":", 1)[0] for key in keys)),
            "hits": hits,
            "misses": misses,
            "hitRate": hit_rate,
            "totalRequests": total_requests,
        }

    def _cleanup_loop(self) -> None:
        while not self._stop.wait(self.cleanup_interval):
            self.delete_expired()