"""Fixed-capacity LRU cache with a per-entry time to live.

Expiry is checked lazily: an expired entry is purged the next time it is
read. Independent module-level instances exist per upstream kind so that a
burst of one kind of lookup cannot evict another kind's entries.
"""

import time
from collections import OrderedDict
from typing import Any, Callable, Generic, Hashable, Optional, Tuple, TypeVar

from storylines.core import constants

V = TypeVar("V")


class LRUCache(Generic[V]):
    """Least-recently-used cache where every entry also expires after ``ttl`` seconds.

    Args:
        max: Maximum number of entries
        ttl: Seconds an entry stays valid after it was written or last read
        clock: Monotonic time source, injectable for tests
    """

    def __init__(self, max: int = 100, ttl: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        if max < 1:
            raise ValueError("max must be at least 1")
        self.max = max
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[V, float]]" = OrderedDict()

    def _expired(self, stamp: float, now: float) -> bool:
        return now - stamp > self.ttl

    def get(self, key: Hashable) -> Optional[V]:
        """Return the cached value, or None if absent or expired.

        A hit refreshes the entry's recency and timestamp.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, stamp = entry
        now = self._clock()
        if self._expired(stamp, now):
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        self._entries[key] = (value, now)
        return value

    def set(self, key: Hashable, value: V) -> None:
        """Insert or replace ``key``, evicting the LRU entry when at capacity."""
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max:
            self._entries.popitem(last=False)
        self._entries[key] = (value, self._clock())

    def has(self, key: Hashable) -> bool:
        """Check presence without refreshing recency; purges an expired entry."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._expired(entry[1], self._clock()):
            del self._entries[key]
            return False
        return True

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        stale = [key for key, (_, stamp) in self._entries.items() if self._expired(stamp, now)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.has(key)


# Shared instances, one per upstream kind
api_cache: LRUCache[Any] = LRUCache(max=constants.API_CACHE_MAX, ttl=constants.API_CACHE_TTL)
llm_cache: LRUCache[Any] = LRUCache(max=constants.LLM_CACHE_MAX, ttl=constants.LLM_CACHE_TTL)
image_cache: LRUCache[Optional[str]] = LRUCache(max=constants.IMAGE_CACHE_MAX, ttl=constants.IMAGE_CACHE_TTL)
