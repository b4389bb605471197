"""Generic in-memory key/value store with per-entry time-to-live.

Expired entries are never returned. They are dropped lazily when read and
eagerly by cleanup_expired(), which the service runs periodically from its
lifespan task. Both paths give the same observable behavior.

The store knows nothing about the values it holds; request-level semantics
live in request_store.py.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Optional, TypeVar

log = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class CacheMetrics:
    """Counters for store operations, exposed on /admin.

    Attributes:
        hits: Reads that returned a live value.
        misses: Reads that found nothing (including expired entries).
        writes: set() and update() calls.
        expirations: Entries dropped because their TTL elapsed.
    """

    hits: int = 0
    misses: int = 0
    writes: int = 0
    expirations: int = 0

    def hit_rate(self) -> float:
        """Hit rate as float (0.0 to 1.0), or 0.0 if no reads."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "writes": self.writes,
            "expirations": self.expirations,
            "hit_rate": round(self.hit_rate(), 4),
        }


@dataclass
class _CacheEntry(Generic[V]):
    """Internal entry with TTL tracking.

    Attributes:
        value: The stored value.
        expires_at: Clock reading after which the entry is dead.
    """

    value: V
    expires_at: float


class ExpiringStore(Generic[V]):
    """Async-safe key/value store with per-entry TTL.

    All operations hold a single asyncio.Lock for in-memory work only, so
    operations on one key are linearizable and nothing awaits I/O while the
    lock is held.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """Initialize an empty store.

        Args:
            clock: Returns the current time in seconds. Injected by tests.
        """
        self._entries: Dict[Hashable, _CacheEntry[V]] = {}
        self._clock = clock
        self._lock = asyncio.Lock()
        self._metrics = CacheMetrics()

    def now(self) -> float:
        """Current reading of the store clock."""
        return self._clock()

    async def get(self, key: Hashable) -> Optional[V]:
        """Return the value for key, or None if absent or expired."""
        async with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                self._metrics.misses += 1
                return None
            self._metrics.hits += 1
            return entry.value

    async def set(self, key: Hashable, value: V, ttl_seconds: float) -> None:
        """Store value under key for ttl_seconds, replacing any prior entry."""
        async with self._lock:
            self._write(key, value, ttl_seconds)

    async def update(
        self,
        key: Hashable,
        mutate: Callable[[Optional[V]], V],
        ttl_seconds: float,
    ) -> V:
        """Atomically replace the value for key with mutate(current).

        mutate receives the live value (or None when the key is absent or
        expired) and returns the value to store. The entry gets a fresh TTL.

        Returns:
            The stored value.
        """
        async with self._lock:
            entry = self._live_entry(key)
            value = mutate(entry.value if entry is not None else None)
            self._write(key, value, ttl_seconds)
            return value

    async def cleanup_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed.
        """
        async with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
            self._metrics.expirations += len(expired)
            return len(expired)

    async def clear(self) -> None:
        """Drop all entries."""
        async with self._lock:
            self._entries.clear()

    def _live_entry(self, key: Hashable) -> Optional[_CacheEntry[V]]:
        """Return the unexpired entry for key (caller must hold lock)."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            self._metrics.expirations += 1
            return None
        return entry

    def _write(self, key: Hashable, value: V, ttl_seconds: float) -> None:
        """Store an entry (caller must hold lock)."""
        self._entries[key] = _CacheEntry(
            value=value,
            expires_at=self._clock() + max(0.0, ttl_seconds),
        )
        self._metrics.writes += 1

    @property
    def size(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""
        return len(self._entries)

    def metrics(self) -> CacheMetrics:
        return self._metrics
