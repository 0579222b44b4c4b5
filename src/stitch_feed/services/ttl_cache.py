"""Small time-bounded cache shared by the feed and lane services."""

from __future__ import annotations

import time
from collections.abc import Callable, Hashable
from threading import Lock
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """In-process mapping whose entries expire ``ttl_seconds`` after insertion.

    With ``max_entries`` set, a full cache first drops expired entries and then
    evicts the least recently stored key. Access is serialised with a lock so a
    cache may be shared between threads.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[K, tuple[V, float]] = {}
        self._lock = Lock()

    def get(self, key: K) -> V | None:
        """Return the live value for ``key`` or None; expired entries are dropped."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= now:
                self._entries.pop(key, None)
                return None
            return value

    def put(self, key: K, value: V, ttl_seconds: float | None = None) -> None:
        """Store ``value``; ``ttl_seconds`` overrides the cache default."""
        ttl = self.ttl_seconds if ttl_seconds is None else float(ttl_seconds)
        now = self._clock()
        with self._lock:
            # Re-inserting moves the key to the back of the eviction order.
            self._entries.pop(key, None)
            if self.max_entries is not None and len(self._entries) >= self.max_entries:
                self._evict(now)
            self._entries[key] = (value, now + ttl)

    def _evict(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        while self.max_entries is not None and self._entries and len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]

    def remaining(self, key: K) -> float | None:
        """Return the seconds left before ``key`` expires, or None if absent."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or entry[1] <= now:
            return None
        return entry[1] - now

    def invalidate(self, key: K) -> None:
        """Drop ``key`` if present."""
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_where(self, predicate: Callable[[K], bool]) -> int:
        """Drop every key matching ``predicate`` and return how many were removed."""
        with self._lock:
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for _, expires_at in self._entries.values() if expires_at > now)
