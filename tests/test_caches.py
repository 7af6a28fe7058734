"""Tests for the per-run query and identity caches."""

from datetime import UTC, datetime, timedelta

import pytest

from exposure_chain.cache import (
    NOT_FOUND,
    BoundedCache,
    QueryCache,
    QueryType,
    UserLookupCache,
    query_key,
)
from fakes import make_identity


class TestBoundedCache:
    """Tests for eviction and counters."""

    def test_evicts_oldest_insert(self):
        """With max_entries=3, the fourth insert evicts the first."""
        cache: BoundedCache[str, int] = BoundedCache(max_entries=3)
        for i, key in enumerate(["a", "b", "c", "d"]):
            cache.set(key, i)

        assert cache.keys() == ["b", "c", "d"]
        assert "a" not in cache
        assert len(cache) == 3

    def test_reads_do_not_refresh_position(self):
        cache: BoundedCache[str, int] = BoundedCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert "a" not in cache

    def test_overwrite_keeps_position(self):
        cache: BoundedCache[str, int] = BoundedCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        cache.set("c", 3)
        assert cache.keys() == ["b", "c"]

    def test_hit_and_miss_counting(self):
        cache: BoundedCache[str, int] = BoundedCache()
        cache.set("a", 1)
        assert cache.get("a") == 1
        assert cache.get("b") is None

        stats = cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5

    def test_has_is_not_counted(self):
        cache: BoundedCache[str, int] = BoundedCache()
        cache.set("a", 1)
        assert cache.has("a")
        assert not cache.has("b")
        assert cache.stats().hits == 0
        assert cache.stats().misses == 0

    def test_hit_rate_without_lookups(self):
        assert BoundedCache().hit_rate == 0.0

    def test_clear_keeps_counters(self):
        cache: BoundedCache[str, int] = BoundedCache()
        cache.set("a", 1)
        cache.get("a")
        cache.clear()
        assert len(cache) == 0
        assert cache.stats().hits == 1

    def test_delete(self):
        cache: BoundedCache[str, int] = BoundedCache()
        cache.set("a", 1)
        assert cache.delete("a")
        assert not cache.delete("a")

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            BoundedCache(max_entries=0)


class TestQueryCache:
    def test_key_format(self):
        start = datetime(2026, 1, 1, tzinfo=UTC)
        end = start + timedelta(seconds=1)
        key = query_key(QueryType.INTERACTIONS, "abc", start, end)
        start_ms = int(start.timestamp() * 1000)
        assert key == f"interactions:abc:{start_ms}:{start_ms + 1000}"

    def test_default_capacity(self):
        assert QueryCache().max_entries == 1000


class TestUserLookupCache:
    """Tests for identity caching with confirmed absences."""

    def test_default_capacity(self):
        assert UserLookupCache().max_entries == 500

    def test_not_found_is_cached(self):
        """Two lookups of a missing id: one resolution, two hits."""
        cache = UserLookupCache()
        assert cache.uncached(["ghost"]) == ["ghost"]
        cache.set_many_not_found(["ghost"])

        assert cache.uncached(["ghost"]) == []
        assert cache.get("ghost") is NOT_FOUND
        assert cache.resolved("ghost") is None
        assert cache.stats().hits == 2
        assert cache.stats().null_entries == 1

    def test_unresolved_returns_none(self):
        cache = UserLookupCache()
        assert cache.get("unknown") is None

    def test_populate_and_resolve(self):
        identity = make_identity("alice")
        cache = UserLookupCache()
        cache.populate({identity.interaction_identity: identity})
        assert cache.resolved(identity.interaction_identity) == identity
        assert cache.stats().null_entries == 0

    def test_uncached_dedups_in_order(self):
        cache = UserLookupCache()
        cache.set_not_found("b")
        assert cache.uncached(["a", "b", "c", "a"]) == ["a", "c"]
