from __future__ import annotations

import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

STALE_AFTER_SECONDS = 5 * 60
EVICT_AFTER_SECONDS = 10 * 60

QueryKey = tuple[Hashable, ...]


@dataclass(slots=True)
class CacheEntry:
    value: Any
    fetched_at: float
    last_access: float


class QueryCache:
    """Keyed results with a freshness window and idle eviction.

    Fresh entries are served without refetching; stale entries are still
    returned by ``get`` with ``fresh=False`` so callers decide whether to
    refetch. Entries untouched for ``evict_after`` seconds are dropped.
    """

    def __init__(
        self,
        *,
        stale_after: float = STALE_AFTER_SECONDS,
        evict_after: float = EVICT_AFTER_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stale_after = stale_after
        self.evict_after = evict_after
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[QueryKey, CacheEntry] = {}

    def get(self, key: QueryKey) -> tuple[Any, bool] | None:
        now = self._clock()
        with self._lock:
            self._evict_idle(now)
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry.last_access = now
            return entry.value, now - entry.fetched_at < self.stale_after

    def set(self, key: QueryKey, value: Any) -> None:
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(value=value, fetched_at=now, last_access=now)

    def invalidate(self, prefix: QueryKey = ()) -> int:
        """Drop every key starting with ``prefix``; an empty prefix clears the cache."""
        with self._lock:
            doomed = [key for key in self._entries if key[: len(prefix)] == prefix]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            self._evict_idle(self._clock())
            return len(self._entries)

    def _evict_idle(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if now - entry.last_access >= self.evict_after]
        for key in expired:
            del self._entries[key]
