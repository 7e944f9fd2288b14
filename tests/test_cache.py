import json

from cachecopy.cache import CacheEntry, GlobalCache, local_cache_file


def test_missing_file_starts_empty(tmp_path, capsys):
    cache = GlobalCache(tmp_path / "cache.json")
    assert cache.keys() == []
    assert "No cache file found" in capsys.readouterr().err


def test_update_get_remove(tmp_path):
    cache = GlobalCache(tmp_path / "cache.json")
    cache.update("a/b.txt", 10, 12345, 1700000000)
    assert cache.get("a/b.txt") == CacheEntry(10, 12345, 1700000000)
    assert "a/b.txt" in cache
    cache.remove("a/b.txt")
    assert cache.get("a/b.txt") is None
    cache.remove("a/b.txt")
    assert len(cache) == 0


def test_update_replaces_entry(tmp_path):
    cache = GlobalCache(tmp_path / "cache.json")
    cache.update("f", 1, 2, 3)
    cache.update("f", 4, 5, 6)
    assert cache.get("f") == CacheEntry(4, 5, 6)
    assert cache.keys() == ["f"]


def test_save_and_reload_round_trip(tmp_path):
    path = tmp_path / "cache.json"
    cache = GlobalCache(path)
    big_hash = 2**64 - 1
    cache.update("x.bin", 100, big_hash, 42)
    cache.update("dir/y.bin", 0, 7, 0)
    cache.save()
    reloaded = GlobalCache(path)
    assert sorted(reloaded.keys()) == ["dir/y.bin", "x.bin"]
    assert reloaded.get("x.bin") == CacheEntry(100, big_hash, 42)
    assert reloaded.get("dir/y.bin") == CacheEntry(0, 7, 0)


def test_saved_json_uses_field_names_and_is_minified(tmp_path):
    path = tmp_path / "cache.json"
    cache = GlobalCache(path)
    cache.update("k", 3, 4, 5)
    cache.save()
    text = path.read_text()
    assert json.loads(text) == {"k": {"Size": 3, "Hash": 4, "ModTime": 5}}
    assert " " not in text and "\n" not in text


def test_corrupt_file_gives_empty_cache(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("{not json")
    assert GlobalCache(path).keys() == []


def test_clear(tmp_path):
    cache = GlobalCache(tmp_path / "cache.json")
    cache.update("a", 1, 1, 1)
    cache.update("b", 2, 2, 2)
    cache.clear()
    assert cache.keys() == []


def test_clean_up_missing_files(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "kept.txt").write_text("x")
    cache = GlobalCache(tmp_path / "cache.json")
    cache.update("kept.txt", 1, 1, 1)
    cache.update("gone.txt", 1, 1, 1)
    cache.clean_up_missing_files(src)
    assert cache.keys() == ["kept.txt"]


def test_local_cache_file_shape(tmp_path):
    src = tmp_path / "my src"
    dst = tmp_path / "dst"
    name = local_cache_file(src, dst)
    prefix = ".cache_cache_copy/my_src_to_dst_"
    assert name.startswith(prefix)
    assert name.endswith(".json")
    digest = name[len(prefix):-len(".json")]
    assert len(digest) == 8
    assert set(digest) <= set("0123456789abcdef")


def test_local_cache_file_depends_on_pair(tmp_path):
    first = local_cache_file(tmp_path / "a", tmp_path / "b")
    assert first == local_cache_file(tmp_path / "a", tmp_path / "b")
    assert first != local_cache_file(tmp_path / "a", tmp_path / "c")
    assert local_cache_file(str(tmp_path / "a") + "/", tmp_path / "b") == first