import os
import time

import pytest

from cachecopy.cache import CACHE_DIR, GlobalCache
from cachecopy.cli import (
    build_parser,
    gather_tree,
    main,
    prune_cache,
    resolve_root_destination,
    split_arguments,
)

DAY = 24 * 60 * 60


def _tree(root):
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"alpha contents")
    (root / "sub" / "b.txt").write_bytes(b"beta contents, a little longer")
    return root


# split_arguments


def test_split_arguments_positionals_and_flags():
    src, dst, flags = split_arguments(["in", "--mirror", "out", "--workers", "8"])
    assert (src, dst) == ("in", "out")
    assert flags == ["--mirror", "--workers", "8"]


def test_split_arguments_missing_destination():
    src, dst, flags = split_arguments(["-verbose=2", "only"])
    assert src == "only"
    assert dst == ""
    assert flags == ["-verbose=2"]


def test_split_arguments_empty():
    assert split_arguments([]) == ("", "", [])


# build_parser


def test_parser_defaults():
    options = build_parser().parse_args([])
    assert options.buffer_size == "4MB"
    assert options.max_cache_age == 90
    assert options.verbose == 0
    assert options.auto_clean is True
    assert options.mirror is False
    assert options.workers == (os.cpu_count() or 1)


def test_parser_single_and_double_dash_forms():
    options = build_parser().parse_args(
        ["-workers=3", "--mirror", "-auto-clean=false", "--verbose", "2", "-no-tui"]
    )
    assert options.workers == 3
    assert options.mirror is True
    assert options.auto_clean is False
    assert options.verbose == 2
    assert options.no_tui is True


def test_parser_rejects_unknown_flag():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--no-such-flag"])


def test_parser_rejects_bad_boolean():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--mirror=maybe"])


# resolve_root_destination


def test_root_destination_nests_source_directory():
    assert resolve_root_destination("data", "out") == os.path.join("out", "data")


def test_root_destination_copies_contents_with_trailing_separator():
    assert resolve_root_destination("data" + os.sep, "out") == "out"


def test_root_destination_uses_last_component():
    src = os.path.join("a", "b", "data")
    assert resolve_root_destination(src, "out") == os.path.join("out", "data")


# gather_tree


def test_gather_tree_lists_dirs_and_files(tmp_path):
    src = _tree(tmp_path / "src")
    dirs, files = gather_tree(str(src))
    assert dirs == [".", "sub"]
    assert files == ["a.txt", os.path.join("sub", "b.txt")]


def test_gather_tree_missing_source(tmp_path):
    with pytest.raises(FileNotFoundError):
        gather_tree(str(tmp_path / "missing"))


# prune_cache


def test_prune_cache_removes_stale_entries(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "keep.txt").write_bytes(b"x")
    cache = GlobalCache(tmp_path / "cache.json")
    now = int(time.time())
    cache.update("keep.txt", 1, 1, now)
    cache.update("gone.txt", 1, 1, now)
    stale, expired = prune_cache(cache, str(src), 90, True, 0)
    assert stale == ["gone.txt"]
    assert expired == []
    assert cache.keys() == ["keep.txt"]


def test_prune_cache_without_auto_clean_keeps_stale(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    cache = GlobalCache(tmp_path / "cache.json")
    cache.update("gone.txt", 1, 1, int(time.time()))
    stale, _ = prune_cache(cache, str(src), 90, False, 0)
    assert stale == []
    assert "gone.txt" in cache


def test_prune_cache_removes_expired_entries(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "old.txt").write_bytes(b"o")
    (src / "new.txt").write_bytes(b"n")
    cache = GlobalCache(tmp_path / "cache.json")
    now = int(time.time())
    cache.update("old.txt", 1, 1, now - 100 * DAY)
    cache.update("new.txt", 1, 1, now)
    _, expired = prune_cache(cache, str(src), 90, True, 0)
    assert expired == ["old.txt"]
    assert cache.keys() == ["new.txt"]
    assert os.path.exists(cache.path)


def test_prune_cache_deletes_file_when_nothing_recent(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "a.txt").write_bytes(b"a")
    cache = GlobalCache(tmp_path / "cache.json")
    cache.update("a.txt", 1, 1, 0)
    cache.save()
    prune_cache(cache, str(src), 90, True, 0)
    assert not os.path.exists(cache.path)
    assert len(cache) == 1


# main


def test_main_without_paths_prints_help(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["only-source"]) == 0
    assert "[src] [dst]" in capsys.readouterr().err


def test_main_copies_tree_and_then_skips(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    src = _tree(tmp_path / "src")
    dst = tmp_path / "dst"

    assert main([str(src), str(dst), "--no-tui", "--verbose", "2", "--workers", "2"]) == 0
    first = capsys.readouterr().out
    assert (dst / "src" / "a.txt").read_bytes() == b"alpha contents"
    assert (dst / "src" / "sub" / "b.txt").read_bytes() == b"beta contents, a little longer"
    assert "Copying file" in first
    assert "Copy process completed." in first
    assert len(os.listdir(tmp_path / CACHE_DIR)) == 1

    assert main([str(src), str(dst), "--no-tui", "--verbose", "2"]) == 0
    second = capsys.readouterr().out
    assert "Skipping file (cached)" in second
    assert "Copying file" not in second


def test_main_copies_contents_with_trailing_separator(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    src = _tree(tmp_path / "src")
    dst = tmp_path / "dst"
    assert main([str(src) + os.sep, str(dst), "--no-tui"]) == 0
    assert (dst / "a.txt").read_bytes() == b"alpha contents"
    assert not (dst / "src").exists()


def test_main_mirror_deletes_extra_files(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    src = _tree(tmp_path / "src")
    dst = tmp_path / "dst"
    (dst / "src" / "junk").mkdir(parents=True)
    (dst / "src" / "extra.txt").write_bytes(b"extra")
    (dst / "src" / "junk" / "x.txt").write_bytes(b"x")
    assert main([str(src), str(dst), "--no-tui", "--mirror"]) == 0
    assert not (dst / "src" / "extra.txt").exists()
    assert not (dst / "src" / "junk").exists()
    assert (dst / "src" / "a.txt").read_bytes() == b"alpha contents"


def test_main_validate_run(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    src = _tree(tmp_path / "src")
    dst = tmp_path / "dst"
    assert main([str(src), str(dst), "--no-tui"]) == 0
    capsys.readouterr()
    assert main([str(src), str(dst), "--no-tui", "--validate", "--verbose", "1"]) == 0
    out = capsys.readouterr().out
    assert "Validation completed successfully for all files" in out
    assert "SUCCESS" in out


def test_main_rejects_invalid_buffer_size(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    src = _tree(tmp_path / "src")
    dst = tmp_path / "dst"
    assert main([str(src), str(dst), "--no-tui", "--buffer-size", "4GB"]) == 1
    assert "Invalid buffer size" in capsys.readouterr().out
    assert not (dst / "src" / "a.txt").exists()


def test_main_writes_log_file(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    src = _tree(tmp_path / "src")
    dst = tmp_path / "dst"
    log_path = tmp_path / "copy.log"
    assert main([str(src), str(dst), "--no-tui", "--log-path", str(log_path)]) == 0
    assert "Copy process completed." in log_path.read_text(encoding="utf-8")


def test_main_missing_source_fails(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main([str(tmp_path / "missing"), str(tmp_path / "dst"), "--no-tui"]) == 1
    assert "Error gathering file list" in capsys.readouterr().err