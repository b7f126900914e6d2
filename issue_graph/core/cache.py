"""Process-local LRU cache for analysis artifacts keyed by snapshot fingerprints."""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .config import CACHE_MAX_AGE_SECONDS, CACHE_MAX_ENTRIES

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CacheKey:
    head_id: str
    data_hash: str
    options_hash: str

    def __str__(self) -> str:
        return f"{self.head_id}:{self.data_hash}:{self.options_hash}"


class CacheOutcome(StrEnum):
    HIT = "hit"
    MISS = "miss"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class CacheLookup:
    outcome: CacheOutcome
    value: Any = None

    @property
    def hit(self) -> bool:
        return self.outcome == CacheOutcome.HIT


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Basic cache metrics for diagnostics."""

    size: int
    max_size: int
    hits: int
    misses: int
    max_age_seconds: float
    oldest_entry_at: float | None = None
    newest_entry_at: float | None = None

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class AnalysisCache:
    """LRU cache with a max age; every operation runs under one lock.

    Entries are ``(stored_at, value)`` pairs in an ``OrderedDict`` whose order
    is recency (last = most recently used). An entry older than ``max_age``
    is dropped on access and reported as a miss.
    """

    def __init__(
        self,
        max_age: float = CACHE_MAX_AGE_SECONDS,
        max_size: int = CACHE_MAX_ENTRIES,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_age = float(max_age) if max_age and max_age > 0 else float(CACHE_MAX_AGE_SECONDS)
        self.max_size = int(max_size) if max_size and max_size > 0 else CACHE_MAX_ENTRIES
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[CacheKey, tuple[float, Any]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def lookup(self, key: CacheKey) -> CacheLookup:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return CacheLookup(CacheOutcome.MISS)
            stored_at, value = entry
            if self._clock() - stored_at > self.max_age:
                del self._entries[key]
                self._misses += 1
                return CacheLookup(CacheOutcome.EXPIRED)
            self._entries.move_to_end(key)
            self._hits += 1
            return CacheLookup(CacheOutcome.HIT, value)

    def get(self, key: CacheKey) -> Any | None:
        return self.lookup(key).value

    def put(self, key: CacheKey, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted)

    def invalidate(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Invalidated %s cache entries", count)

    def invalidate_for_head(self, head_id: str) -> None:
        """Drop every entry computed for a head other than ``head_id``."""
        with self._lock:
            stale = [key for key in self._entries if key.head_id != head_id]
            for key in stale:
                del self._entries[key]
        logger.info("Invalidated %s cache entries not at head %s", len(stale), head_id)

    def stats(self) -> CacheStats:
        with self._lock:
            stamps = [stored_at for stored_at, _ in self._entries.values()]
            return CacheStats(
                size=len(self._entries),
                max_size=self.max_size,
                hits=self._hits,
                misses=self._misses,
                max_age_seconds=self.max_age,
                oldest_entry_at=min(stamps) if stamps else None,
                newest_entry_at=max(stamps) if stamps else None,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
