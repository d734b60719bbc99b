"""
In-memory audio cache keyed by fragment meaning.

LRU by byte size. Entries pinned by an in-flight playback are skipped by
eviction, so the cache may briefly sit above its ceiling.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter, OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, Iterator, List, Optional

from ..models.fragments import AudioCacheEntry, CacheKey, describe_key
from .config import CACHE_MAX_BYTES

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class FragmentCache:
    """
    Maps CacheKey -> AudioCacheEntry.

    All access goes through one lock; entries are immutable, so a reader
    never sees a half-written entry.
    """

    def __init__(self, max_bytes: int = CACHE_MAX_BYTES) -> None:
        if max_bytes <= 0:
            raise ValueError("Cache ceiling must be positive")
        self.max_bytes = max_bytes
        self.stats = CacheStats()
        self._entries: "OrderedDict[CacheKey, AudioCacheEntry]" = OrderedDict()
        self._pins: Counter = Counter()
        self._total_bytes = 0
        self._lock = threading.RLock()

    def get(self, key: CacheKey) -> Optional[AudioCacheEntry]:
        """Return the entry and mark it most recently used, or None on miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                logger.debug("Cache miss %s", describe_key(key))
                return None
            entry = replace(entry, last_accessed=time.time())
            self._entries[key] = entry
            self._entries.move_to_end(key)
            self.stats.hits += 1
            logger.debug("Cache hit %s", describe_key(key))
            return entry

    def put(self, key: CacheKey, entry: AudioCacheEntry) -> None:
        """Insert or replace an entry, then evict down to the ceiling."""
        if entry.key != key:
            raise ValueError("Entry key does not match the key it is stored under")
        with self._lock:
            old = self._entries.pop(key, None)
            if old is not None:
                self._total_bytes -= old.size_bytes
            self._entries[key] = entry
            self._total_bytes += entry.size_bytes
            self._evict()

    def peek(self, key: CacheKey) -> Optional[AudioCacheEntry]:
        """Like get, without touching recency or stats."""
        with self._lock:
            return self._entries.get(key)

    def contains(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries

    __contains__ = contains

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    @contextmanager
    def pinned(self, keys: Iterable[CacheKey]) -> Iterator[None]:
        """Protect keys from eviction for the duration of the block."""
        keys = list(keys)
        with self._lock:
            self._pins.update(keys)
        try:
            yield
        finally:
            with self._lock:
                self._pins.subtract(keys)
                self._pins += Counter()  # drop zero counts
                self._evict()

    def snapshot(self) -> List[AudioCacheEntry]:
        """Entries from least to most recently used."""
        with self._lock:
            return list(self._entries.values())

    def load(self, entries: Iterable[AudioCacheEntry]) -> int:
        """Bulk insert, e.g. from persistent storage. Returns entries inserted."""
        count = 0
        for entry in entries:
            self.put(entry.key, entry)
            count += 1
        return count

    def describe(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "total_bytes": self._total_bytes,
                "max_bytes": self.max_bytes,
                "pinned": sum(1 for k in self._pins if self._pins[k] > 0),
                "hits": self.stats.hits,
                "misses": self.stats.misses,
                "evictions": self.stats.evictions,
                "hit_rate": round(self.stats.hit_rate, 4),
            }

    def _evict(self) -> None:
        if self._total_bytes <= self.max_bytes:
            return
        for key in list(self._entries):
            if self._total_bytes <= self.max_bytes:
                break
            if self._pins.get(key, 0) > 0:
                continue
            entry = self._entries.pop(key)
            self._total_bytes -= entry.size_bytes
            self.stats.evictions += 1
            logger.debug("Evicted %s (%d bytes)", describe_key(key), entry.size_bytes)
