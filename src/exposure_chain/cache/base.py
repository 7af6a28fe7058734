"""Bounded in-memory memoization shared by the per-run caches."""

from __future__ import annotations

import logging
from collections.abc import Hashable
from typing import Generic, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class CacheStats(BaseModel):
    hits: int = 0
    misses: int = 0
    entries: int = 0
    hit_rate: float = 0.0


class BoundedCache(Generic[K, V]):
    """Dictionary with hit/miss counters and insertion-order eviction.

    Eviction removes the oldest inserted key once ``max_entries`` would be
    exceeded; reads do not refresh an entry's position. Overwriting an
    existing key keeps its original position. Counters survive ``clear()``.
    """

    name = "cache"

    def __init__(self, max_entries: int = 1000) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._entries: dict[K, V] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: K) -> V | None:
        """Return the cached value, or None on a miss. Counts the lookup."""
        if key in self._entries:
            self._hits += 1
            return self._entries[key]
        self._misses += 1
        return None

    def set(self, key: K, value: V) -> None:
        if key not in self._entries:
            while len(self._entries) >= self._max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
        self._entries[key] = value

    def has(self, key: K) -> bool:
        """Membership test; does not count as a hit or miss."""
        return key in self._entries

    def delete(self, key: K) -> bool:
        return self._entries.pop(key, _ABSENT) is not _ABSENT

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[K]:
        return list(self._entries)

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def hit_rate(self) -> float:
        """Fraction of counted lookups served from the cache (0.0 when none)."""
        total = self._hits + self._misses
        return self._hits / total if total else 0.0

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            entries=len(self._entries),
            hit_rate=self.hit_rate,
        )

    def log_stats(self) -> None:
        stats = self.stats()
        logger.info(
            "%s: %d hits, %d misses, %d entries, hit_rate=%.2f",
            self.name,
            stats.hits,
            stats.misses,
            stats.entries,
            stats.hit_rate,
        )


_ABSENT = object()
