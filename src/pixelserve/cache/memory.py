"""In-memory LRU cache with time-based expiry."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import NamedTuple

from pixelserve.config import defaults


class MemoryEntry(NamedTuple):
    data: bytes
    created_at: float


class MemoryCache:
    """Bounded LRU store of artifact bytes.

    The bound is an item count only; values are never rejected for size.
    Lookups and inserts both move a key to the most-recent end. Expired
    entries are dropped lazily on ``get`` and eagerly by ``cleanup``.
    """

    def __init__(
        self,
        max_items: int = defaults.DEFAULT_MAX_MEMORY_CACHE_ITEMS,
        ttl_seconds: float = defaults.DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store: OrderedDict[str, MemoryEntry] = OrderedDict()
        self._max_items = max_items
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def get(self, key: str) -> bytes | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._store[key]
            return None
        # Move to end (most recently used)
        self._store.move_to_end(key)
        return entry.data

    def set(self, key: str, data: bytes) -> None:
        self._store.pop(key, None)
        while len(self._store) >= self._max_items and self._store:
            self._store.popitem(last=False)
        self._store[key] = MemoryEntry(data=data, created_at=self._clock())

    def cleanup(self) -> int:
        """Remove every expired entry. Returns count removed."""
        now = self._clock()
        expired = [key for key, entry in self._store.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._store[key]
        return len(expired)

    def size(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def _is_expired(self, entry: MemoryEntry, now: float) -> bool:
        return now - entry.created_at > self._ttl_seconds
