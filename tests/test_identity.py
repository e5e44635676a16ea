"""Tests for the mention cache."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from discirc.identity import MentionCache, raw_mention


def test_raw_mention():
    assert raw_mention(123) == "<@123>"
    assert raw_mention("45") == "<@45>"


class TestMentionCache:
    def test_unknown_is_none(self):
        assert MentionCache().resolve(1) is None

    def test_observe_then_resolve(self):
        cache = MentionCache()
        cache.observe(1, "alice")
        assert cache.resolve(1) == "alice"
        assert 1 in cache
        assert len(cache) == 1

    def test_string_and_int_ids_are_the_same_key(self):
        cache = MentionCache()
        cache.observe("1", "alice")
        assert cache.resolve(1) == "alice"
        assert "1" in cache

    def test_last_write_wins(self):
        cache = MentionCache()
        cache.observe(1, "alice")
        cache.observe(1, "alice2")
        assert cache.resolve(1) == "alice2"
        assert len(cache) == 1

    def test_empty_name_ignored(self):
        cache = MentionCache()
        cache.observe(1, "alice")
        cache.observe(1, "")
        assert cache.resolve(1) == "alice"

    def test_contains_garbage(self):
        assert "nope" not in MentionCache()
        assert None not in MentionCache()

    def test_never_evicts(self):
        cache = MentionCache()
        for i in range(5000):
            cache.observe(i, f"user{i}")
        assert len(cache) == 5000
        assert cache.resolve(0) == "user0"

    def test_concurrent_writers(self):
        cache = MentionCache()

        def write(base):
            for i in range(200):
                cache.observe(base * 1000 + i, f"u{base}-{i}")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(write, range(8)))

        assert len(cache) == 1600


class TestResolveOrSearch:
    def test_cache_hit(self):
        cache = MentionCache()
        cache.observe(5, "eve")
        assert cache.resolve_or_search(5) == "@eve"

    def test_cache_wins_over_context(self):
        cache = MentionCache()
        cache.observe(5, "eve")
        assert cache.resolve_or_search(5, {5: "other"}) == "@eve"

    def test_context_hit_written_back(self):
        cache = MentionCache()
        assert cache.resolve_or_search(5, {"5": "eve"}) == "@eve"
        assert cache.resolve(5) == "eve"

    def test_miss_returns_raw_form(self):
        cache = MentionCache()
        assert cache.resolve_or_search(5, {6: "frank"}) == "<@5>"
        assert 5 not in cache
