"""Timestamped line logger writing to a file or standard output."""

from __future__ import annotations

import sys
from datetime import datetime
from typing import TextIO


class Logger:
    """Writes '[INFO]' and '[ERROR]' lines prefixed with date and time."""

    def __init__(self, log_file: str = "") -> None:
        self._owned = False
        self._stream: TextIO = sys.stdout
        if log_file:
            try:
                self._stream = open(log_file, "a", encoding="utf-8")
                self._owned = True
            except OSError as exc:
                print(f"Failed to open log file {log_file}: {exc}. Logging to stdout.")
                self._stream = sys.stdout

    def _write(self, level: str, msg: str) -> None:
        stamp = datetime.now().strftime("%Y/%m/%d %H:%M:%S")
        self._stream.write(f"{stamp} [{level}] {msg}\n")
        self._stream.flush()

    def info(self, msg: str) -> None:
        """Log an informational message."""
        self._write("INFO", msg)

    def error(self, msg: str) -> None:
        """Log an error message."""
        self._write("ERROR", msg)

    def close(self) -> None:
        """Close the log file if this logger opened one."""
        if self._owned:
            self._stream.close()
            self._owned = False
            self._stream = sys.stdout

    def __enter__(self) -> Logger:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()