"""Sequential directory copier that consults the file cache."""

from __future__ import annotations

import os
import stat
from collections.abc import Callable, Iterable
from os import PathLike

from cachecopy.cache import GlobalCache
from cachecopy.hashing import file_hash
from cachecopy.helpers import timestamp
from cachecopy.logger import Logger

DEFAULT_BUFFER_SIZE = 4 * 1024 * 1024

ProgressCallback = Callable[[int, int], None]


def copy_file(
    src: str | PathLike[str],
    dst: str | PathLike[str],
    buf_size: int = DEFAULT_BUFFER_SIZE,
) -> int:
    """Copy src to dst in chunks of buf_size bytes; return the bytes copied."""
    copied = 0
    with open(src, "rb") as source:
        parent = os.path.dirname(os.fspath(dst))
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(dst, "wb") as target:
            while chunk := source.read(buf_size):
                target.write(chunk)
                copied += len(chunk)
    return copied


class Copier:
    """Copies a list of files one at a time, skipping those the cache knows."""

    def __init__(
        self,
        verify: bool,
        include: str,
        exclude: str,
        logger: Logger | None,
        cache: GlobalCache,
        clear_cache: bool,
    ) -> None:
        if clear_cache:
            cache.clear()
        self.verify = verify
        self.include = include
        self.exclude = exclude
        self.logger = logger
        self.cache = cache
        self.clear_cache = clear_cache

    def match(self, path: str) -> bool:
        """True if the path passes the exclude and include suffix filters."""
        if self.exclude and path.endswith(self.exclude):
            return False
        if self.include and not path.endswith(self.include):
            return False
        return True

    def copy_dir_with_progress(
        self,
        src: str | PathLike[str],
        dst: str | PathLike[str],
        file_list: Iterable[str],
        total_files: int,
        progress_cb: ProgressCallback | None,
    ) -> None:
        """Copy every relative path in file_list from src to dst, reporting bytes done."""
        files = list(file_list)
        print(f"[{timestamp()}] [INFO] Using 1 worker(s)")
        print(f"[{timestamp()}] [INFO] Using buffer size: 4.00 MB (4194304 bytes)")

        total_bytes = sum(os.stat(os.path.join(src, rel)).st_size for rel in files)
        copied_bytes = 0
        skipped: list[str] = []

        for rel_path in files:
            src_path = os.path.join(src, rel_path)
            dst_path = os.path.join(dst, rel_path)
            parent = os.path.dirname(dst_path)
            if parent:
                os.makedirs(parent, exist_ok=True)

            info = os.stat(src_path)
            digest = file_hash(src_path)

            entry = self.cache.get(rel_path)
            if (
                entry is not None
                and entry.size == info.st_size
                and entry.hash == digest
                and _is_regular_file(dst_path)
            ):
                skipped.append(f"Skipped (cached): {src_path}")
            else:
                self.copy_file(src_path, dst_path, rel_path)
                self.cache.update(rel_path, info.st_size, digest, int(info.st_mtime))

            copied_bytes += info.st_size
            if progress_cb is not None:
                progress_cb(copied_bytes, total_bytes)

        print()
        for message in skipped:
            print(message)

        self.cache.clean_up_missing_files(src)

    def copy_file(
        self,
        src: str | PathLike[str],
        dst: str | PathLike[str],
        rel_path: str,
    ) -> None:
        """Copy one regular file and record it in the cache."""
        info = os.stat(src)
        if not stat.S_ISREG(info.st_mode):
            raise ValueError(f"not a regular file: {os.fspath(src)}")
        copy_file(src, dst, DEFAULT_BUFFER_SIZE)
        digest = file_hash(src)
        self.cache.update(rel_path, info.st_size, digest, int(info.st_mtime))


def _is_regular_file(path: str) -> bool:
    try:
        return stat.S_ISREG(os.stat(path).st_mode)
    except OSError:
        return False