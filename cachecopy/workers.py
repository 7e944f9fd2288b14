"""Concurrent, cache-aware file copying and destination mirroring."""

from __future__ import annotations

import os
import queue
import shutil
import stat
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from os import PathLike

from cachecopy.cache import GlobalCache
from cachecopy.hashing import file_hash
from cachecopy.helpers import create_with_retry, exists, open_with_retry, timestamp

LogFunc = Callable[[str], None]
ProgressFunc = Callable[[int, int], None]

_LARGE_FILE = 1000 * 1024 * 1024
_MB = float(1 << 20)
_OPEN_RETRIES = 5
_SYNC_RETRIES = 3
_SYNC_DELAY = 0.5
_PROGRESS_INTERVAL = 0.1


class CopyError(Exception):
    """A fatal error that stops the copy run."""


def _save_quietly(cache: GlobalCache) -> None:
    try:
        cache.save()
    except OSError:
        pass


def _is_regular(path: str) -> bool:
    try:
        return stat.S_ISREG(os.stat(path).st_mode)
    except OSError:
        return False


class _CopyJob:
    """State shared by the worker threads of one run."""

    def __init__(
        self,
        src: str,
        root_dst: str,
        cache: GlobalCache,
        buf_size: int,
        no_cache: bool,
        validate: bool,
        verbose: int,
        total_bytes: int,
        logger: LogFunc,
        progress: ProgressFunc,
    ) -> None:
        self.src = src
        self.root_dst = root_dst
        self.cache = cache
        self.buf_size = buf_size
        self.no_cache = no_cache
        self.validate = validate
        self.verbose = verbose
        self.total_bytes = total_bytes
        self.log = logger
        self.progress = progress
        self.copied = 0
        self.lock = threading.Lock()
        self.stop = threading.Event()
        self.failure: CopyError | None = None

    def work(self, pending: queue.SimpleQueue[str]) -> None:
        last_update = time.monotonic()
        try:
            while not self.stop.is_set():
                try:
                    rel_path = pending.get_nowait()
                except queue.Empty:
                    return
                try:
                    size = self._process(rel_path)
                except CopyError as exc:
                    with self.lock:
                        if self.failure is None:
                            self.failure = exc
                    self.stop.set()
                    return
                if size is None:
                    continue
                with self.lock:
                    self.copied += size
                    now = time.monotonic()
                    if now - last_update > _PROGRESS_INTERVAL or self.copied == self.total_bytes:
                        last_update = now
                        self.progress(self.copied, self.total_bytes)
        finally:
            _save_quietly(self.cache)

    def _fatal(self, message: str) -> CopyError:
        _save_quietly(self.cache)
        return CopyError(message)

    def _process(self, rel_path: str) -> int | None:
        src_path = os.path.join(self.src, rel_path)
        dst_path = os.path.join(self.root_dst, rel_path)
        try:
            size = os.stat(src_path).st_size
        except OSError as exc:
            self.log(f"[{timestamp()}] [ERROR] Failed to stat {src_path}: {exc}")
            return None

        if self.validate:
            should_copy = self._needs_copy_after_validation(rel_path, src_path, dst_path, size)
        elif not self.no_cache:
            should_copy = not self._cached(rel_path, src_path, dst_path, size)
        else:
            should_copy = True

        self._announce(should_copy, src_path, size)
        if should_copy:
            self._copy(rel_path, src_path, dst_path, size)
        return size

    def _cached(self, rel_path: str, src_path: str, dst_path: str, size: int) -> bool:
        entry = self.cache.get(rel_path)
        if entry is None or entry.size != size:
            return False
        try:
            digest = file_hash(src_path)
        except OSError:
            return False
        if entry.hash != digest:
            return False
        fresh = _is_regular(dst_path)
        if self.verbose >= 3:
            self.log(f"Checking file: {rel_path}")
            self.log("Cache entry exists: true")
            self.log(f"Cache size={entry.size}, current size={size}")
            self.log(f"Cache hash={entry.hash}, current hash={digest}")
            self.log(f"Destination exists: {str(os.path.exists(dst_path)).lower()}")
        return fresh

    def _needs_copy_after_validation(
        self, rel_path: str, src_path: str, dst_path: str, size: int
    ) -> bool:
        if self.verbose >= 2:
            self.log(f"[{timestamp()}] [VALIDATE] Starting validation for: {rel_path}")

        if not _is_regular(dst_path):
            if self.verbose >= 2:
                self.log(f"[{timestamp()}] [VALIDATE] MISMATCH - Destination file missing: {rel_path}")
            return True

        dst_size = os.stat(dst_path).st_size
        if dst_size != size:
            self.log(f"[{timestamp()}] [VALIDATE] MISMATCH - Size differs for {rel_path}")
            self.log(f"[{timestamp()}] [VALIDATE]   Source size: {size} bytes")
            self.log(f"[{timestamp()}] [VALIDATE]   Destination size: {dst_size} bytes")
            return True

        if self.verbose >= 3:
            self.log(f"[{timestamp()}] [VALIDATE] Size match - calculating hashes for: {rel_path}")
        try:
            src_hash = file_hash(src_path)
        except OSError as exc:
            self.log(
                f"[{timestamp()}] [VALIDATE] ERROR - Cannot calculate source hash for {rel_path}: {exc}"
            )
            return True
        try:
            dst_hash = file_hash(dst_path)
        except OSError as exc:
            self.log(
                f"[{timestamp()}] [VALIDATE] ERROR - Cannot calculate destination hash for "
                f"{rel_path}: {exc}"
            )
            return True
        if src_hash != dst_hash:
            self.log(f"[{timestamp()}] [VALIDATE] MISMATCH - Hash differs for {rel_path}")
            self.log(f"[{timestamp()}] [VALIDATE]   Source hash: {src_hash}")
            self.log(f"[{timestamp()}] [VALIDATE]   Destination hash: {dst_hash}")
            return True

        if self.verbose >= 2:
            self.log(
                f"[{timestamp()}] [VALIDATE] SUCCESS - File validated: {rel_path} "
                f"(size: {size}, hash: {src_hash})"
            )
        elif self.verbose == 1:
            self.log(f"[{timestamp()}] [VALIDATE] SUCCESS - {rel_path}")

        if not self.no_cache:
            self.cache.update(rel_path, size, src_hash, int(time.time()))
            if self.verbose >= 3:
                self.log(f"[{timestamp()}] [CACHE] Updated after validation: {rel_path}")
        return False

    def _announce(self, should_copy: bool, src_path: str, size: int) -> None:
        megabytes = size / _MB
        if should_copy:
            if self.verbose >= 2:
                self.log(f"[{timestamp()}] [VERBOSE] Copying file: {src_path} ({megabytes:.2f} MB)")
            elif self.verbose == 1 and size > _LARGE_FILE:
                self.log(
                    f"[{timestamp()}] [VERBOSE] Copying large file: {src_path} ({megabytes:.2f} MB)"
                )
        elif self.verbose >= 2:
            self.log(
                f"[{timestamp()}] [VERBOSE] Skipping file (cached): {src_path} ({megabytes:.2f} MB)"
            )
        elif self.verbose == 1 and size > _LARGE_FILE:
            self.log(
                f"[{timestamp()}] [VERBOSE] Skipping large file (cached): {src_path} "
                f"({megabytes:.2f} MB)"
            )

    def _copy(self, rel_path: str, src_path: str, dst_path: str, size: int) -> None:
        parent = os.path.dirname(dst_path)
        if parent:
            try:
                os.makedirs(parent, exist_ok=True)
            except OSError as exc:
                raise self._fatal(f"Failed to create directory {parent}: {exc}") from exc

        if os.path.exists(dst_path):
            try:
                os.remove(dst_path)
            except OSError as exc:
                raise self._fatal(
                    f"Failed to remove old destination file {dst_path}: {exc}"
                ) from exc

        try:
            source = open_with_retry(src_path, _OPEN_RETRIES)
        except OSError as exc:
            raise self._fatal(f"Failed to open source file {src_path}: {exc}") from exc
        try:
            target = create_with_retry(dst_path, _OPEN_RETRIES)
        except OSError as exc:
            source.close()
            raise self._fatal(f"Failed to create destination file {dst_path}: {exc}") from exc

        copy_error: OSError | None = None
        try:
            shutil.copyfileobj(source, target, self.buf_size)
        except OSError as exc:
            copy_error = exc

        for attempt in range(_SYNC_RETRIES):
            try:
                target.flush()
                os.fsync(target.fileno())
                break
            except OSError as exc:
                if attempt == _SYNC_RETRIES - 1:
                    source.close()
                    raise self._fatal(f"Error syncing destination file {dst_path}: {exc}") from exc
                time.sleep(_SYNC_DELAY)

        try:
            target.close()
        except OSError as exc:
            source.close()
            raise self._fatal(f"Error closing destination file {dst_path}: {exc}") from exc
        try:
            source.close()
        except OSError as exc:
            raise self._fatal(f"Error closing source file {src_path}: {exc}") from exc

        if copy_error is not None:
            raise self._fatal(f"Failed to copy {src_path} to {dst_path}: {copy_error}")

        if self.no_cache:
            return
        try:
            digest = file_hash(src_path)
        except OSError:
            digest = 0
        with self.cache.lock:
            existed = rel_path in self.cache
            self.cache.update(rel_path, size, digest, int(time.time()))
        if self.verbose >= 3:
            action = "Updated cache entry" if existed else "Added new cache entry"
            self.log(f"[{timestamp()}] [CACHE] {action}: {rel_path} (size={size}, hash={digest})")
        _save_quietly(self.cache)


def run_copy_workers(
    file_list: Iterable[str],
    src: str,
    root_dst: str,
    cache: GlobalCache,
    buf_size: int,
    no_cache: bool,
    validate: bool,
    verbose: int,
    workers: int,
    total_bytes: int,
    logger: LogFunc,
    progress: ProgressFunc,
) -> None:
    """Copy the relative paths in file_list from src to root_dst using worker threads.

    Files the cache (or validation) shows to be current are skipped. Raises
    CopyError on the first fatal failure, after the workers have stopped.
    """
    job = _CopyJob(
        src, root_dst, cache, buf_size, no_cache, validate, verbose, total_bytes, logger, progress
    )
    pending: queue.SimpleQueue[str] = queue.SimpleQueue()
    for rel_path in file_list:
        pending.put(rel_path)

    threads = [
        threading.Thread(target=job.work, args=(pending,), daemon=True) for _ in range(workers)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    _save_quietly(cache)
    if job.failure is not None:
        raise job.failure


def _walk(path: str) -> Iterator[tuple[str, bool]]:
    is_dir = stat.S_ISDIR(os.lstat(path).st_mode)
    yield path, is_dir
    if is_dir:
        for name in sorted(os.listdir(path)):
            yield from _walk(os.path.join(path, name))


def delete_extra_files(
    src_dir: str | PathLike[str],
    dst_dir: str | PathLike[str],
    cache: GlobalCache,
) -> None:
    """Delete files and directories under dst_dir that have no counterpart in src_dir.

    Walk failures propagate as OSError; failed deletions raise CopyError.
    """
    src_root = os.fspath(src_dir)
    dst_root = os.fspath(dst_dir)
    doomed_dirs: list[str] = []
    for dst_path, is_dir in _walk(dst_root):
        if not exists(dst_path):
            continue
        rel_path = os.path.relpath(dst_path, dst_root)
        if exists(os.path.join(src_root, rel_path)):
            continue
        if is_dir:
            print(f"[{timestamp()}] [INFO] Marking directory for deletion: {dst_path}")
            doomed_dirs.append(dst_path)
        else:
            print(f"[{timestamp()}] [INFO] Deleting extra file: {dst_path}")
            try:
                os.remove(dst_path)
            except OSError as exc:
                raise CopyError(f"failed to delete file {dst_path}: {exc}") from exc

    for directory in doomed_dirs:
        try:
            shutil.rmtree(directory, ignore_errors=False)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise CopyError(f"failed to delete directory {directory}: {exc}") from exc
        cache.remove(directory)
        _save_quietly(cache)