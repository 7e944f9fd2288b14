"""Persistent per-pair cache of copied file metadata."""

from __future__ import annotations

import hashlib
import json
import os
import sys
import threading
from dataclasses import dataclass
from os import PathLike

from cachecopy.helpers import timestamp

CACHE_DIR = ".cache_cache_copy"


@dataclass
class CacheEntry:
    """Size, content hash and recording time of a copied file."""

    size: int
    hash: int
    mod_time: int

    def to_json(self) -> dict[str, int]:
        return {"Size": self.size, "Hash": self.hash, "ModTime": self.mod_time}

    @classmethod
    def from_json(cls, obj: dict) -> CacheEntry:
        return cls(
            size=int(obj.get("Size", 0)),
            hash=int(obj.get("Hash", 0)),
            mod_time=int(obj.get("ModTime", 0)),
        )


class GlobalCache:
    """Map of relative paths to cache entries, stored as minified JSON.

    Every method is thread-safe; hold ``lock`` to group several calls.
    """

    def __init__(self, path: str | PathLike[str]) -> None:
        self.path = os.fspath(path)
        self.lock = threading.RLock()
        self._data: dict[str, CacheEntry] = {}
        self._load()

    def _load(self) -> None:
        try:
            with open(self.path, encoding="utf-8") as handle:
                text = handle.read()
        except FileNotFoundError:
            print(f"[{timestamp()}] [INFO] No cache file found: {self.path}", file=sys.stderr)
            return
        except OSError as exc:
            print(
                f"[{timestamp()}] [ERROR] Error opening cache file {self.path}: {exc}",
                file=sys.stderr,
            )
            return
        try:
            raw, _ = json.JSONDecoder().raw_decode(text.lstrip())
        except ValueError:
            return
        if not isinstance(raw, dict):
            return
        for key, value in raw.items():
            if isinstance(value, dict):
                try:
                    self._data[key] = CacheEntry.from_json(value)
                except (TypeError, ValueError):
                    continue

    def save(self) -> None:
        """Write the cache to disk as minified JSON."""
        with self.lock:
            payload = json.dumps(
                {key: entry.to_json() for key, entry in self._data.items()},
                sort_keys=True,
                separators=(",", ":"),
                ensure_ascii=False,
            )
            with open(self.path, "w", encoding="utf-8") as handle:
                handle.write(payload)

    def update(self, rel_path: str, size: int, hash_value: int, mod_time: int) -> None:
        """Add or replace the entry for a file."""
        with self.lock:
            self._data[rel_path] = CacheEntry(size, hash_value, mod_time)

    def remove(self, rel_path: str) -> None:
        """Drop the entry for a path, if any."""
        with self.lock:
            self._data.pop(rel_path, None)

    def keys(self) -> list[str]:
        """All cached relative paths."""
        with self.lock:
            return list(self._data)

    def get(self, rel_path: str) -> CacheEntry | None:
        """The entry for a path, or None."""
        with self.lock:
            return self._data.get(rel_path)

    def clean_up_missing_files(self, src_dir: str | PathLike[str]) -> None:
        """Remove entries whose file no longer exists under src_dir."""
        with self.lock:
            missing = [
                key for key in self._data
                if not _path_present(os.path.join(src_dir, key))
            ]
            for key in missing:
                del self._data[key]

    def clear(self) -> None:
        """Remove every entry."""
        with self.lock:
            self._data.clear()

    def __len__(self) -> int:
        with self.lock:
            return len(self._data)

    def __contains__(self, rel_path: object) -> bool:
        with self.lock:
            return rel_path in self._data


def _path_present(path: str) -> bool:
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError:
        return True
    return True


def _clean_base(path: str) -> str:
    base = os.path.basename(path.rstrip(os.sep)) or "."
    return base.replace(":", "_").replace(" ", "_")


def local_cache_file(src: str | PathLike[str], dst: str | PathLike[str]) -> str:
    """Cache file path unique to a source/destination pair."""
    abs_src = os.path.abspath(src)
    abs_dst = os.path.abspath(dst)
    digest = hashlib.sha256(f"{abs_src}|{abs_dst}".encode()).hexdigest()[:8]
    return f"{CACHE_DIR}/{_clean_base(abs_src)}_to_{_clean_base(abs_dst)}_{digest}.json"