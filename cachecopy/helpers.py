"""Small helpers: retrying file opens, size parsing and formatting, progress bars."""

from __future__ import annotations

import errno
import os
import re
import time
from datetime import datetime
from os import PathLike
from typing import BinaryIO

import psutil

_RETRYABLE = {errno.EINTR, errno.EAGAIN, errno.EIO, errno.EBUSY}
_RETRY_DELAY = 0.2
_SIZE_PATTERN = re.compile(r"\s*([+-]?\d+)\s*(\S*)")
_UNITS = {"B": 1, "KB": 1024, "MB": 1024 * 1024}
_GIB = 1024 * 1024 * 1024


def timestamp() -> str:
    """Current local time as 'YYYY-MM-DD HH:MM:SS.mmm'."""
    now = datetime.now()
    return now.strftime("%Y-%m-%d %H:%M:%S.") + f"{now.microsecond // 1000:03d}"


def _open_retrying(path: str | PathLike[str], mode: str, max_retries: int) -> BinaryIO:
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")
    for attempt in range(max_retries):
        try:
            return open(path, mode)
        except OSError as exc:
            if exc.errno not in _RETRYABLE or attempt == max_retries - 1:
                raise
            time.sleep(_RETRY_DELAY)
    raise AssertionError("unreachable")


def open_with_retry(path: str | PathLike[str], max_retries: int) -> BinaryIO:
    """Open a file for binary reading, retrying on transient errors."""
    return _open_retrying(path, "rb", max_retries)


def create_with_retry(path: str | PathLike[str], max_retries: int) -> BinaryIO:
    """Create or truncate a file for binary writing, retrying on transient errors."""
    return _open_retrying(path, "wb", max_retries)


def parse_size(text: str) -> int:
    """Parse '4MB', '256KB', '10B' or a plain byte count into bytes."""
    match = _SIZE_PATTERN.match(text)
    if match is None:
        raise ValueError(f"invalid size format: {text}")
    size = int(match.group(1))
    unit = match.group(2)
    if not unit:
        return size
    multiplier = _UNITS.get(unit.upper())
    if multiplier is None:
        raise ValueError(f"unknown size unit: {unit}")
    return size * multiplier


def human_size(n: int) -> str:
    """Format a byte count as MB, KB or bytes."""
    if n >= 1024 * 1024:
        return f"{n / (1024 * 1024):.2f} MB"
    if n >= 1024:
        return f"{n / 1024:.2f} KB"
    return f"{n} bytes"


def render_progress_bar(current: int, total: int, width: int) -> str:
    """Render a text progress bar such as '[===>----]  40%'."""
    if total == 0:
        return "[----------] 0%"
    fraction = current / total
    filled = int(fraction * width)
    bar = "=" * filled
    if filled < width:
        bar += ">" + "-" * (width - filled - 1)
    return f"[{bar}] {fraction * 100:3.0f}%"


def exists(path: str | PathLike[str]) -> bool:
    """True unless the path is definitely absent."""
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError:
        return True
    return True


def monitor_line() -> str:
    """One line describing current CPU and memory usage."""
    cpu = psutil.cpu_percent(interval=None)
    vmem = psutil.virtual_memory()
    return (
        f"[MONITOR] CPU: {cpu:.2f}% | Mem: {vmem.percent:.2f}% "
        f"({vmem.used / _GIB:.2f} GB/{vmem.total / _GIB:.2f} GB)"
    )