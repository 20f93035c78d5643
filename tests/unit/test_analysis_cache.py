"""Unit tests for audio_insight.analysis_cache."""

from __future__ import annotations

import pytest

from audio_insight.analysis_cache import AnalysisCache, build_cache_key
from audio_insight.models import AnalysisOptions


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# build_cache_key
# ---------------------------------------------------------------------------


class TestBuildCacheKey:
    def test_deterministic_sha256(self) -> None:
        key1 = build_cache_key("Hello", AnalysisOptions(), "all")
        key2 = build_cache_key("Hello", AnalysisOptions(), "all")
        assert key1 == key2
        assert len(key1) == 64
        int(key1, 16)

    def test_text_is_trimmed_and_lowercased(self) -> None:
        key1 = build_cache_key("  Hello World ", AnalysisOptions(), "all")
        key2 = build_cache_key("hello world", AnalysisOptions(), "all")
        assert key1 == key2

    def test_options_change_key(self) -> None:
        key1 = build_cache_key("text", AnalysisOptions(), "all")
        key2 = build_cache_key("text", AnalysisOptions(summary_style="brief"), "all")
        assert key1 != key2

    def test_kind_changes_key(self) -> None:
        options = AnalysisOptions()
        assert build_cache_key("text", options, "all") != build_cache_key(
            "text", options, "summary"
        )

    def test_shared_prefix_collides(self) -> None:
        """Only the first 100 normalized characters participate in the key."""
        prefix = "a" * 100
        key1 = build_cache_key(prefix + " first ending", AnalysisOptions(), "all")
        key2 = build_cache_key(prefix + " a different ending", AnalysisOptions(), "all")
        assert key1 == key2

    def test_prefix_length_is_configurable(self) -> None:
        prefix = "a" * 100
        key1 = build_cache_key(prefix + "x", AnalysisOptions(), "all", prefix_length=200)
        key2 = build_cache_key(prefix + "y", AnalysisOptions(), "all", prefix_length=200)
        assert key1 != key2


# ---------------------------------------------------------------------------
# AnalysisCache
# ---------------------------------------------------------------------------


class TestAnalysisCache:
    def test_put_then_get(self) -> None:
        cache = AnalysisCache()
        cache.put("k", {"v": 1})
        assert cache.get("k") == {"v": 1}
        assert cache.has("k")
        assert cache.size == 1

    def test_miss_returns_none(self) -> None:
        assert AnalysisCache().get("missing") is None

    def test_entry_expires_after_ttl(self) -> None:
        clock = FakeClock()
        cache = AnalysisCache(ttl_seconds=3600, clock=clock)
        cache.put("k", "v")

        clock.now += 3600
        assert cache.get("k") == "v"

        clock.now += 1
        assert cache.get("k") is None
        assert cache.size == 0

    def test_fifty_first_insert_evicts_oldest(self) -> None:
        cache = AnalysisCache(max_entries=50)
        for index in range(50):
            cache.put(f"k{index}", index)
        cache.put("k50", 50)

        assert cache.size == 50
        assert cache.get("k0") is None
        assert all(cache.get(f"k{index}") == index for index in range(1, 51))

    def test_reput_moves_key_to_newest(self) -> None:
        cache = AnalysisCache(max_entries=3)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("c", 3)
        cache.put("a", 10)
        cache.put("d", 4)

        assert cache.get("b") is None
        assert cache.get("a") == 10
        assert cache.size == 3

    def test_reput_refreshes_timestamp(self) -> None:
        clock = FakeClock()
        cache = AnalysisCache(ttl_seconds=10, clock=clock)
        cache.put("k", 1)
        clock.now += 8
        cache.put("k", 2)
        clock.now += 8
        assert cache.get("k") == 2

    def test_delete_and_clear(self) -> None:
        cache = AnalysisCache()
        cache.put("a", 1)
        cache.put("b", 2)
        assert cache.delete("a")
        assert not cache.delete("a")
        cache.clear()
        assert cache.size == 0

    def test_zero_capacity_rejected(self) -> None:
        with pytest.raises(ValueError):
            AnalysisCache(max_entries=0)
