"""
Read-through cache for synthesized playlists.

Entries expire after a short TTL so that days still being captured ("today")
pick up new segments. At most one computation runs per key at a time: callers
for the same key wait on a per-key lock and then re-check the cache.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class PlaylistCache:
    """TTL cache with a per-key in-flight guard."""

    def __init__(self, ttl: float = 30.0, max_entries: int = 256, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}
        self.computations = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """Cached value for key, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: Hashable, value: Any) -> None:
        if len(self._entries) >= self.max_entries:
            self._evict()
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + self.ttl)

    def _evict(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            del self._entries[key]
        # Still full: drop the entry closest to expiry
        if len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k].expires_at)
            del self._entries[oldest]

    async def get_or_compute(self, key: Hashable, compute: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value for key, computing it at most once concurrently.

        Args:
            key: Cache key
            compute: Coroutine factory producing the value

        Returns:
            Cached or freshly computed value. Exceptions from compute propagate
            and nothing is cached.
        """
        value = self.get(key)
        if value is not None:
            return value

        # Get or create lock for this key; it goes away with its last waiter
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        lock = self._locks[key]
        self._waiters[key] = self._waiters.get(key, 0) + 1

        try:
            async with lock:
                # Check again in case another task computed it
                value = self.get(key)
                if value is not None:
                    return value

                self.computations += 1
                value = await compute()
                if self.ttl > 0:
                    self.set(key, value)
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

        return value

    def clear(self) -> None:
        self._entries.clear()
