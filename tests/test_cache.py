"""Tests for the semantic search result cache."""

from usufruit.search.cache import SemanticSearchCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


HITS = [("book_a", 0.9), ("book_b", 0.5)]


class TestSemanticSearchCache:
    def test_hit_and_normalized_key(self):
        cache = SemanticSearchCache()
        cache.set("library_1", "Electronics ", 0.4, HITS)

        assert cache.get("library_1", "  electronics", 0.4) == HITS
        assert cache.get("library_1", "electronics", 0.5) is None
        assert cache.get("library_2", "electronics", 0.4) is None

    def test_returned_list_is_a_copy(self):
        cache = SemanticSearchCache()
        cache.set("library_1", "q", 0.4, HITS)
        cache.get("library_1", "q", 0.4).clear()
        assert cache.get("library_1", "q", 0.4) == HITS

    def test_entries_expire(self):
        clock = FakeClock()
        cache = SemanticSearchCache(ttl_seconds=300, clock=clock)
        cache.set("library_1", "q", 0.4, HITS)

        clock.now += 300
        assert cache.get("library_1", "q", 0.4) == HITS
        clock.now += 1
        assert cache.get("library_1", "q", 0.4) is None
        assert len(cache) == 0

    def test_expired_entries_evicted_when_full(self):
        clock = FakeClock()
        cache = SemanticSearchCache(ttl_seconds=10, max_entries=2, clock=clock)
        cache.set("library_1", "old-1", 0.4, HITS)
        cache.set("library_1", "old-2", 0.4, HITS)

        clock.now += 11
        cache.set("library_1", "fresh", 0.4, HITS)

        assert len(cache) == 1
        assert cache.get("library_1", "fresh", 0.4) == HITS

    def test_fresh_entries_survive_overflow(self):
        cache = SemanticSearchCache(max_entries=1)
        cache.set("library_1", "a", 0.4, HITS)
        cache.set("library_1", "b", 0.4, HITS)
        assert len(cache) == 2

    def test_invalidate_library(self):
        cache = SemanticSearchCache()
        cache.set("library_1", "a", 0.4, HITS)
        cache.set("library_1", "b", 0.4, HITS)
        cache.set("library_2", "a", 0.4, HITS)

        cache.invalidate_library("library_1")

        assert len(cache) == 1
        assert cache.get("library_2", "a", 0.4) == HITS
