"""Command-line entry point: copy a directory tree, skipping files a cache knows."""

from __future__ import annotations

import argparse
import os
import stat
import sys
import threading
import time
from collections import deque
from collections.abc import Callable, Sequence
from contextlib import ExitStack
from dataclasses import dataclass
from typing import TextIO

from rich.console import Console, ConsoleOptions, RenderResult
from rich.live import Live
from rich.text import Text

from cachecopy.cache import CACHE_DIR, GlobalCache, local_cache_file
from cachecopy.helpers import (
    exists,
    human_size,
    monitor_line,
    parse_size,
    render_progress_bar,
    timestamp,
)
from cachecopy.workers import CopyError, delete_extra_files, run_copy_workers

PROG = "cachecopy"
_MIB = 1024 * 1024
_GIB = 1024 * 1024 * 1024
_BUFFER_WARNING_LIMIT = 2 * _GIB
_SECONDS_PER_DAY = 24 * 60 * 60
_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_WORDS = {"0", "f", "F", "FALSE", "false", "False"}

_DESCRIPTION = """\
Copy [src] into [dst], remembering what was copied so that unchanged files
are skipped on the next run. Both paths are required.

If [src] ends with a path separator, the contents of [src] are copied into
[dst]; otherwise [src] itself becomes a subdirectory of [dst]. The same rule
decides which destination directory --mirror cleans up.

Verbosity: 0 shows progress and errors, 1 adds files over 1000 MB,
2 adds every file, 3 adds cache details."""

_EPILOG = """\
Cache files live in .cache_cache_copy/, one per source/destination pair, and
record each file's size, content hash and the time it was recorded. Stale
entries are dropped on every run unless --auto-clean=false is given.

Examples:
  cachecopy /source/folder /destination/folder
  cachecopy /source/folder/ /destination/folder --mirror
  cachecopy /source /dest --workers 8 --buffer-size 8MB --verbose 2
  cachecopy /source /dest --validate --no-cache --verbose 3"""


def split_arguments(argv: Sequence[str]) -> tuple[str, str, list[str]]:
    """Pick the source and destination out of argv; everything else is a flag.

    Missing paths come back as empty strings.
    """
    src = ""
    dst = ""
    flags: list[str] = []
    for arg in argv:
        if arg.startswith("-"):
            flags.append(arg)
        elif not src:
            src = arg
        elif not dst:
            dst = arg
        else:
            flags.append(arg)
    return src, dst, flags


def _parse_bool(text: str) -> bool:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value: {text!r}")


def build_parser() -> argparse.ArgumentParser:
    """Parser for the options; each accepts one or two leading dashes."""
    parser = argparse.ArgumentParser(
        prog=PROG,
        usage="%(prog)s [src] [dst] [options]",
        description=_DESCRIPTION,
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )

    def option(name: str, **kwargs: object) -> None:
        parser.add_argument(f"-{name}", f"--{name}", dest=name.replace("-", "_"), **kwargs)

    def flag(name: str, default: bool, help_text: str) -> None:
        option(
            name,
            type=_parse_bool,
            nargs="?",
            const=True,
            default=default,
            metavar="BOOL",
            help=help_text,
        )

    option(
        "workers",
        type=int,
        default=os.cpu_count() or 1,
        help="number of concurrent copy workers (default: number of CPUs)",
    )
    flag("clear-cache", False, "delete the cache file before copying")
    flag("mirror", False, "delete files in the destination that are not in the source")
    flag("no-cache", False, "ignore the cache and copy every file")
    option(
        "max-cache-age",
        type=int,
        default=90,
        help="drop cache entries older than this many days (default: 90)",
    )
    option("verbose", type=int, default=0, help="verbosity level 0-3 (default: 0)")
    option("log-path", default="", help="also append log output to this file")
    option(
        "buffer-size",
        default="4MB",
        help="copy buffer size, e.g. 4MB, 256KB or 1048576 (default: 4MB)",
    )
    flag("no-tui", False, "plain terminal output instead of the live display")
    flag("validate", False, "compare size and content hash of source and destination")
    flag("auto-clean", True, "drop cache entries for files missing from the source")
    parser.add_argument("extra", nargs="*", help=argparse.SUPPRESS)
    return parser


def resolve_root_destination(src: str, dst: str) -> str:
    """Directory the source tree is copied into."""
    if src.endswith(os.sep):
        return dst
    base = os.path.basename(os.path.normpath(src))
    return os.path.normpath(os.path.join(dst, base))


def _save(cache: GlobalCache) -> None:
    try:
        cache.save()
    except OSError:
        pass


def _err(message: str) -> None:
    print(message, file=sys.stderr)


def prune_cache(
    cache: GlobalCache,
    src: str,
    max_cache_age: int,
    auto_clean: bool,
    verbose: int,
) -> tuple[list[str], list[str]]:
    """Drop stale and expired entries; return (stale, expired) keys removed.

    If no entry recorded within the age limit remains, the cache file is deleted.
    """
    stale: list[str] = []
    if auto_clean:
        with cache.lock:
            stale = [key for key in cache.keys() if not exists(os.path.join(src, key))]
            for key in stale:
                if verbose >= 3:
                    _err(f"[CACHE] Removing stale entry: {key}")
                cache.remove(key)
        if stale:
            if verbose >= 1:
                _err(f"[{timestamp()}] [INFO] Auto-cleaned {len(stale)} stale cache entries")
            _save(cache)

    now = int(time.time())
    max_age = max_cache_age * _SECONDS_PER_DAY
    with cache.lock:
        expired = [
            key
            for key in cache.keys()
            if (entry := cache.get(key)) is not None
            and entry.mod_time > 0
            and now - entry.mod_time > max_age
        ]
        for key in expired:
            cache.remove(key)
    _save(cache)

    with cache.lock:
        entries = [entry for key in cache.keys() if (entry := cache.get(key)) is not None]
    recent = any(e.mod_time > 0 and now - e.mod_time <= max_age for e in entries)
    if entries and not recent:
        _err(
            f"[{timestamp()}] [INFO] All cache entries older than {max_cache_age} days, "
            f"deleting cache file: {cache.path}"
        )
        try:
            os.remove(cache.path)
        except OSError:
            pass
    return stale, expired


def gather_tree(src: str) -> tuple[list[str], list[str]]:
    """Relative paths of all directories (including '.') and files under src."""
    dirs: list[str] = []
    files: list[str] = []

    def visit(path: str) -> None:
        rel = os.path.relpath(path, src)
        if stat.S_ISDIR(os.lstat(path).st_mode):
            dirs.append(rel)
            for name in sorted(os.listdir(path)):
                visit(os.path.join(path, name))
        else:
            files.append(rel)

    visit(src)
    return dirs, files


def _size_or_zero(path: str) -> int:
    try:
        return os.stat(path).st_size
    except OSError:
        return 0


def _format_elapsed(seconds: float) -> str:
    total = int(seconds + 0.5)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def _progress_line(copied: int, total: int, elapsed: float) -> str:
    return (
        f"Total: {copied / _MIB:.2f} MB / {total / _MIB:.2f} MB "
        f"{render_progress_bar(copied, total, 40)} | {_format_elapsed(elapsed)}"
    )


def _line_writer(stream: TextIO) -> Callable[[str], None]:
    def write(message: str) -> None:
        stream.write(message if message.endswith("\n") else message + "\n")
        stream.flush()

    return write


class _Sink:
    """Sends each message to every registered target, one message at a time."""

    def __init__(self, *targets: Callable[[str], None]) -> None:
        self._targets = list(targets)
        self._lock = threading.Lock()

    def add(self, target: Callable[[str], None]) -> None:
        self._targets.append(target)

    def __call__(self, message: str) -> None:
        with self._lock:
            for target in self._targets:
                target(message)


class _ProgressState:
    def __init__(self) -> None:
        self.copied = 0

    def update(self, copied: int, total: int) -> None:
        self.copied = copied


@dataclass
class _Job:
    src: str
    root_dst: str
    cache: GlobalCache
    files: list[str]
    total_bytes: int


def _warn_buffer(emit: Callable[[str], None], workers: int, buf_size: int) -> None:
    total = workers * buf_size
    if total > _BUFFER_WARNING_LIMIT:
        emit(
            f"[{timestamp()}] [WARN] Total buffer allocation is {total / _GIB:.2f} GB "
            f"({workers} workers × {human_size(buf_size)})"
        )
        emit(
            f"[{timestamp()}] [WARN] Consider reducing --workers or --buffer-size "
            "to avoid running out of memory."
        )


def _announce(
    emit: Callable[[str], None],
    options: argparse.Namespace,
    buf_size: int,
    command: str | None = None,
) -> None:
    emit(f"[{timestamp()}] [INFO] Using {options.workers} worker(s)")
    emit(f"[{timestamp()}] [INFO] Using buffer size: {human_size(buf_size)} ({buf_size} bytes)")
    if command is not None:
        emit(f"[{timestamp()}] [INFO] Command: {command}")
    if options.validate:
        emit(f"[{timestamp()}] [VALIDATE] Validation mode enabled - all files will be verified")
        if options.verbose >= 1:
            emit(f"[{timestamp()}] [VALIDATE] This will compare file sizes and content hashes")


def _copy(
    job: _Job,
    options: argparse.Namespace,
    buf_size: int,
    logger: Callable[[str], None],
    state: _ProgressState,
) -> None:
    run_copy_workers(
        job.files,
        job.src,
        job.root_dst,
        job.cache,
        buf_size,
        options.no_cache,
        options.validate,
        options.verbose,
        options.workers,
        job.total_bytes,
        logger,
        state.update,
    )


def _run_classic(job: _Job, options: argparse.Namespace) -> int:
    with ExitStack() as stack:
        emit = _Sink(_line_writer(sys.stdout))
        if options.log_path:
            try:
                log_file = stack.enter_context(open(options.log_path, "a", encoding="utf-8"))
            except OSError as exc:
                emit(f"[{timestamp()}] [ERROR] Failed to open log file {options.log_path}: {exc}")
            else:
                emit.add(_line_writer(log_file))

        try:
            buf_size = parse_size(options.buffer_size)
        except ValueError as exc:
            emit(f"[{timestamp()}] [ERROR] Invalid buffer size: {exc}")
            _save(job.cache)
            return 1

        _warn_buffer(emit, options.workers, buf_size)
        _announce(emit, options, buf_size)

        state = _ProgressState()
        start = time.monotonic()
        done = threading.Event()

        def tick() -> None:
            while True:
                line = _progress_line(state.copied, job.total_bytes, time.monotonic() - start)
                sys.stdout.write("\r" + line)
                sys.stdout.flush()
                if done.wait(0.5):
                    return

        def log(message: str) -> None:
            sys.stdout.write("\n")
            emit(message)

        ticker = threading.Thread(target=tick, daemon=True)
        ticker.start()
        try:
            _copy(job, options, buf_size, log, state)
        except CopyError as exc:
            _save(job.cache)
            emit(f"[{timestamp()}] [ERROR] {exc}")
            return 1
        finally:
            done.set()
            ticker.join()
            sys.stdout.write("\n")
            sys.stdout.flush()

        if options.validate:
            emit(f"[{timestamp()}] [VALIDATE] Validation completed successfully for all files")
        emit(f"[{timestamp()}] [INFO] Copy process completed.")
        _save(job.cache)
        return 0


class _Dashboard:
    """Live view: a monitor line, the most recent log lines and a progress line."""

    def __init__(self, max_lines: int = 1000) -> None:
        self._lock = threading.Lock()
        self._lines: deque[str] = deque(maxlen=max_lines)
        self.monitor = ""
        self.progress = ""

    def add(self, message: str) -> None:
        with self._lock:
            self._lines.extend(message.rstrip("\n").split("\n"))

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        height = options.height or console.size.height
        room = max(height - 2, 1)
        with self._lock:
            lines = list(self._lines)[-room:]
            monitor = self.monitor
            progress = self.progress
        yield Text(monitor, no_wrap=True, overflow="ellipsis")
        for line in lines:
            yield Text(line, no_wrap=True, overflow="ellipsis")
        yield Text(progress, no_wrap=True, overflow="ellipsis")


def _run_tui(job: _Job, options: argparse.Namespace, command: str) -> int:
    try:
        buf_size = parse_size(options.buffer_size)
    except ValueError as exc:
        _err(f"[{timestamp()}] [ERROR] Invalid buffer size: {exc}")
        _save(job.cache)
        return 1

    dashboard = _Dashboard()
    with ExitStack() as stack:
        _warn_buffer(dashboard.add, options.workers, buf_size)
        sink = _Sink(dashboard.add)
        if options.log_path:
            try:
                log_file = stack.enter_context(open(options.log_path, "a", encoding="utf-8"))
            except OSError as exc:
                dashboard.add(
                    f"[{timestamp()}] [ERROR] Failed to open log file {options.log_path}: {exc}"
                )
            else:
                sink.add(_line_writer(log_file))
        _announce(sink, options, buf_size, command)

        state = _ProgressState()
        start = time.monotonic()
        done = threading.Event()

        def watch_system() -> None:
            while True:
                dashboard.monitor = monitor_line()
                if done.wait(1.0):
                    return

        def tick() -> None:
            while True:
                dashboard.progress = _progress_line(
                    state.copied, job.total_bytes, time.monotonic() - start
                )
                if done.wait(1.0):
                    return

        threads = [
            threading.Thread(target=watch_system, daemon=True),
            threading.Thread(target=tick, daemon=True),
        ]
        with Live(dashboard, console=Console(), refresh_per_second=4):
            for thread in threads:
                thread.start()
            try:
                _copy(job, options, buf_size, sink, state)
            except CopyError as exc:
                _save(job.cache)
                dashboard.add(f"[{timestamp()}] [ERROR] {exc}")
                return 1
            finally:
                done.set()
                for thread in threads:
                    thread.join()
                dashboard.progress = _progress_line(
                    state.copied, job.total_bytes, time.monotonic() - start
                )
            _save(job.cache)
            if options.validate:
                sink(f"[{timestamp()}] [VALIDATE] Validation completed successfully for all files")
            dashboard.add(f"[{timestamp()}] [INFO] Copy process completed.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the copy; return the process exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    command = " ".join([PROG, *args])
    os.makedirs(CACHE_DIR, exist_ok=True)

    src, dst, flag_args = split_arguments(args)
    parser = build_parser()
    options = parser.parse_args(flag_args)
    if not src or not dst:
        sys.stderr.write(parser.format_help())
        return 0

    _err(f"[{timestamp()}] [INFO] Command: {command}")
    root_dst = resolve_root_destination(src, dst)
    cache_path = local_cache_file(src, root_dst)
    _err(f"[{timestamp()}] [INFO] Using cache file: {cache_path}")

    if options.clear_cache:
        try:
            os.remove(cache_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            _err(f"[{timestamp()}] [ERROR] Failed to delete cache: {exc}")
            return 1
        else:
            _err(f"[{timestamp()}] [INFO] Cache deleted: {cache_path}")

    cache = GlobalCache(cache_path)
    prune_cache(cache, src, options.max_cache_age, options.auto_clean, options.verbose)

    if options.mirror:
        try:
            os.makedirs(root_dst, exist_ok=True)
        except OSError as exc:
            _save(cache)
            _err(
                f"[{timestamp()}] [ERROR] Failed to create root destination directory "
                f"{root_dst}: {exc}"
            )
            return 1
        try:
            delete_extra_files(src, root_dst, cache)
        except (CopyError, OSError) as exc:
            _save(cache)
            _err(f"[{timestamp()}] [ERROR] Error deleting extra files: {exc}")
            return 1
        _save(cache)

    try:
        dirs, files = gather_tree(src)
    except OSError as exc:
        _err(f"[{timestamp()}] [ERROR] Error gathering file list: {exc}")
        _save(cache)
        return 1

    total_bytes = sum(_size_or_zero(os.path.join(src, rel)) for rel in files)
    for rel_dir in dirs:
        dst_dir = os.path.join(root_dst, rel_dir)
        try:
            os.makedirs(dst_dir, exist_ok=True)
        except OSError as exc:
            _err(f"[{timestamp()}] [ERROR] Failed to create directory {dst_dir}: {exc}")

    job = _Job(src, root_dst, cache, files, total_bytes)
    if options.no_tui:
        return _run_classic(job, options)
    return _run_tui(job, options, command)


if __name__ == "__main__":
    sys.exit(main())