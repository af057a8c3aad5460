import os
import time

from hashget.storage.cache import HashCache


def test_put_then_get(tmp_path):
    source = tmp_path / "source.bin"
    source.write_bytes(b"payload")
    cache = HashCache(tmp_path / "cache")

    assert cache.put("ABCD", source)

    entry = cache.get("abcd")
    assert entry is not None
    assert entry.read_bytes() == b"payload"
    assert entry.name == "abcd"


def test_get_missing_entry(tmp_path):
    assert HashCache(tmp_path / "cache").get("00ff") is None


def test_expired_entries_are_dropped(tmp_path):
    source = tmp_path / "source.bin"
    source.write_bytes(b"payload")
    cache = HashCache(tmp_path / "cache", max_age_days=1)
    cache.put("aa", source)
    old = time.time() - 3 * 86400
    os.utime(cache.cache_dir / "aa", (old, old))

    assert cache.get("aa") is None
    assert not (cache.cache_dir / "aa").exists()


def test_cleanup_expired_counts_removed_files(tmp_path):
    source = tmp_path / "source.bin"
    source.write_bytes(b"payload")
    cache = HashCache(tmp_path / "cache", max_age_days=1)
    cache.put("aa", source)
    cache.put("bb", source)
    old = time.time() - 3 * 86400
    os.utime(cache.cache_dir / "aa", (old, old))

    assert cache.cleanup_expired() == 1
    assert [p.name for p in cache.entries()] == ["bb"]


def test_discard_and_clear(tmp_path):
    source = tmp_path / "source.bin"
    source.write_bytes(b"payload")
    cache = HashCache(tmp_path / "cache")
    cache.put("aa", source)
    cache.put("bb", source)

    cache.discard("aa")
    assert cache.get("aa") is None

    assert cache.clear()
    assert cache.entries() == []
