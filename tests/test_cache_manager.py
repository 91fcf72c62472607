from pathlib import Path

from insight_stream.cache import CacheManager, analysis_cache_key


def test_cache_hit_miss_and_invalidate(tmp_path: Path) -> None:
    cache = CacheManager(cache_dir=tmp_path)
    key = "cache:v1:analysis:abc"
    value = {"ok": True}

    assert cache.get(key) is None
    cache.set(key, value)
    assert cache.get(key) == value

    cache.invalidate_prefix("cache:v1:analysis:")
    assert cache.get(key) is None


def test_analysis_cache_key_is_stable() -> None:
    rows = [{"a": 1, "b": "x"}]
    key = analysis_cache_key(rows, "sales.csv", {"detail_level": "standard"})
    assert key.startswith("cache:v1:analysis:")
    assert key == analysis_cache_key([{"b": "x", "a": 1}], "sales.csv", {"detail_level": "standard"})
    assert key != analysis_cache_key(rows, "sales.csv", {"detail_level": "deep"})
