"""
In-process location cache for development and tests.

Entries can optionally expire after a TTL and the number of entries can
be bounded, in which case the least recently written user is evicted.
The cache is process-local, so it must not be used when several
processes consume partitions of the same stream.
"""

import asyncio
import time
from collections import OrderedDict
from datetime import timedelta
from typing import Callable, Optional

from location_cache.store import LocationCache
from movement.models import CachedLocation


class InMemoryLocationCache(LocationCache):
    """
    Dict-backed location cache.

    Attributes:
        ttl: Optional expiry for entries; None keeps them forever
        max_entries: Optional bound on the number of users kept
    """

    def __init__(
        self,
        ttl: Optional[timedelta] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[CachedLocation, Optional[float]]]" = OrderedDict()
        self._lock = asyncio.Lock()

    async def get(self, user_id: str) -> Optional[CachedLocation]:
        async with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            location, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[user_id]
                return None
            return location

    async def set(self, user_id: str, location: CachedLocation) -> None:
        async with self._lock:
            expires_at = None
            if self.ttl is not None:
                expires_at = self._clock() + self.ttl.total_seconds()
            self._entries[user_id] = (location, expires_at)
            self._entries.move_to_end(user_id)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)

    async def health_check(self) -> bool:
        return True

    def snapshot(self) -> dict[str, CachedLocation]:
        """Current non-expired entries keyed by userID."""
        now = self._clock()
        return {
            user_id: location
            for user_id, (location, expires_at) in self._entries.items()
            if expires_at is None or now < expires_at
        }

    def __len__(self) -> int:
        return len(self.snapshot())
