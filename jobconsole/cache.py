"""Keyed query cache with staleness windows and prefix invalidation.

Keys are tuples such as ``("jobs", "detail", 7)``. Invalidating a prefix marks
every key that starts with it stale; the next read of such a key re-fetches.
Entries nobody has read or written for ``gc_after`` seconds are evicted unless
a subscription retains the key.
"""
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

import structlog

from . import config
from . import metrics

logger = structlog.get_logger(__name__)

QueryKey = Tuple[Hashable, ...]


def key_kind(key: QueryKey) -> str:
    """'detail' for ('jobs', 'detail', 7), 'stats' for ('jobs', 'stats')."""
    return str(key[1]) if len(key) > 1 else str(key[0])


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float
    updated_at: Optional[datetime] = None
    stale: bool = False
    used_at: float = 0.0


class QueryCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic, gc_after: float = None):
        self._clock = clock
        self.gc_after = config.CACHE_GC_SECONDS if gc_after is None else gc_after
        self._entries: Dict[QueryKey, CacheEntry] = {}
        # bumped on every invalidation of a key, so in-flight fetches can tell
        self._generations: Dict[QueryKey, int] = {}
        self._inflight: Dict[QueryKey, int] = {}
        self._retained: Dict[QueryKey, int] = {}
        self._listeners: List[Callable[[QueryKey], None]] = []
        self._eviction_listeners: List[Callable[[List[QueryKey]], None]] = []

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> List[QueryKey]:
        return list(self._entries)

    def add_listener(self, listener: Callable[[QueryKey], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[QueryKey], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def add_eviction_listener(self, listener: Callable[[List[QueryKey]], None]) -> None:
        self._eviction_listeners.append(listener)

    def _notify(self, key: QueryKey) -> None:
        for listener in list(self._listeners):
            listener(key)

    def generation(self, key: QueryKey) -> int:
        # registers the key, so an invalidation racing a first fetch is seen
        return self._generations.setdefault(key, 0)

    def begin_fetch(self, key: QueryKey) -> int:
        """Mark a fetch of ``key`` in flight and return the generation it started at."""
        self._inflight[key] = self._inflight.get(key, 0) + 1
        return self.generation(key)

    def end_fetch(self, key: QueryKey) -> None:
        remaining = self._inflight.get(key, 0) - 1
        if remaining > 0:
            self._inflight[key] = remaining
        else:
            self._inflight.pop(key, None)
            if key not in self._entries:
                self._generations.pop(key, None)

    def retain(self, key: QueryKey) -> None:
        self._retained[key] = self._retained.get(key, 0) + 1

    def release(self, key: QueryKey) -> None:
        remaining = self._retained.get(key, 0) - 1
        if remaining > 0:
            self._retained[key] = remaining
        else:
            self._retained.pop(key, None)
            entry = self._entries.get(key)
            if entry is not None:
                entry.used_at = self._clock()

    def peek(self, key: QueryKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def is_fresh(self, key: QueryKey, stale_after: float) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.stale:
            return False
        return self._clock() - entry.fetched_at < stale_after

    def get(self, key: QueryKey, stale_after: float) -> Optional[CacheEntry]:
        """Return the entry if it is inside its staleness window, else None."""
        entry = self._entries.get(key)
        if entry is not None:
            entry.used_at = self._clock()
        if self.is_fresh(key, stale_after):
            metrics.cache_hits_total.labels(key_kind(key)).inc()
            return entry
        metrics.cache_misses_total.labels(key_kind(key)).inc()
        return None

    def set(self, key: QueryKey, value: Any, updated_at: Optional[datetime] = None,
            generation: Optional[int] = None) -> bool:
        """Store a fetched value. Returns False when the write was rejected.

        A value older (by ``updated_at``) than the cached one is never applied.
        A value fetched before the key was invalidated is stored but stays stale.
        """
        current = self._entries.get(key)
        current_generation = self.generation(key)
        now = self._clock()
        if (current is not None and updated_at is not None and current.updated_at is not None
                and updated_at < current.updated_at):
            current.used_at = now
            metrics.stale_writes_rejected_total.inc()
            logger.debug("cache_write_rejected", key=key, cached=str(current.updated_at), fetched=str(updated_at))
            return False
        stale = generation is not None and generation != current_generation
        self._entries[key] = CacheEntry(
            value=value,
            fetched_at=now,
            updated_at=updated_at,
            stale=stale,
            used_at=now,
        )
        self._notify(key)
        self.collect()
        return True

    def collect(self) -> List[QueryKey]:
        """Evict entries unused for ``gc_after`` seconds. Returns the evicted keys."""
        now = self._clock()
        evicted = [
            key for key, entry in self._entries.items()
            if key not in self._retained and now - entry.used_at >= self.gc_after
        ]
        for key in evicted:
            del self._entries[key]
        # generations are only needed while an entry exists or a fetch is running
        for key in [k for k in self._generations if k not in self._entries and k not in self._inflight]:
            del self._generations[key]
        if evicted:
            metrics.cache_evictions_total.inc(len(evicted))
            logger.debug("cache_evicted", keys=len(evicted))
            for listener in list(self._eviction_listeners):
                listener(evicted)
        return evicted

    def invalidate(self, prefix: QueryKey) -> int:
        """Mark every key starting with ``prefix`` stale. Returns how many were hit."""
        count = 0
        n = len(prefix)
        for key in list(self._generations):
            if key[:n] != prefix:
                continue
            self._generations[key] += 1
            entry = self._entries.get(key)
            if entry is not None:
                entry.stale = True
                count += 1
            self._notify(key)
        metrics.cache_invalidations_total.inc(count)
        logger.debug("cache_invalidated", prefix=prefix, keys=count)
        return count

    def remove(self, prefix: QueryKey) -> int:
        n = len(prefix)
        doomed = [key for key in self._entries if key[:n] == prefix]
        for key in doomed:
            del self._entries[key]
            self._generations[key] += 1
            self._notify(key)
        return len(doomed)

    def clear(self) -> None:
        for key in self._generations:
            self._generations[key] += 1
        self._entries.clear()
