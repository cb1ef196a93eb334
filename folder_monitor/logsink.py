"""Size-rotating log file for Folder Monitor.

Every component writes through a single :class:`LogSink`.  Lines look like::

    [2024-05-01 08:30:01.123] [WARNING] No new files in /data/in for 30.0 minutes

When the active file reaches ``max_size_bytes`` it is renamed to
``<base>_<yyyyMMdd_HHmmss><ext>`` and a fresh file is started.  Logging is
best-effort: I/O failures are echoed to a fallback stream (stderr by
default) and never raised to the caller.
"""

from __future__ import annotations

import os
import sys
import threading
from collections.abc import Callable
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import TextIO

DEFAULT_MAX_SIZE_BYTES = 2 * 1024 * 1024


class LogLevel(IntEnum):
    """Sink severities; values line up with the :mod:`logging` levels."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


def format_timestamp(moment: datetime) -> str:
    """Return *moment* as ``yyyy-MM-dd HH:mm:ss.fff``."""
    return moment.strftime("%Y-%m-%d %H:%M:%S.") + f"{moment.microsecond // 1000:03d}"


def format_line(moment: datetime, level: LogLevel, message: str) -> str:
    """Build one newline-terminated log line."""
    return f"[{format_timestamp(moment)}] [{level.name}] {message}\n"


class LogSink:
    """Thread-safe, append-only log writer with size-based rotation.

    Parameters
    ----------
    path : str or Path
        The active log file.  Its parent directory is created if needed.
    max_size_bytes : int
        Rotate before writing once the active file is at least this large.
    fallback : TextIO, optional
        Stream that receives lines the file could not take (default stderr).
    clock : callable, optional
        Returns the current local time; used for line and backup timestamps.
    """

    def __init__(
        self,
        path: str | Path,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        fallback: TextIO | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if max_size_bytes <= 0:
            raise ValueError("max_size_bytes must be positive")
        self._path = Path(path)
        self._max_size = max_size_bytes
        self._fallback = fallback
        self._clock = clock
        self._lock = threading.Lock()
        self._closed = False
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self._echo(f"[LOGSINK ERROR] Cannot create log directory: {exc}")

    # ---- writing ----

    def write(self, level: LogLevel, message: str) -> None:
        """Append one entry; blank messages and writes after close are ignored."""
        if self._closed or not message or not message.strip():
            return
        with self._lock:
            if self._closed:
                return
            self._write_locked(LogLevel(level), message)

    def debug(self, message: str) -> None:
        self.write(LogLevel.DEBUG, message)

    def info(self, message: str) -> None:
        self.write(LogLevel.INFO, message)

    def warning(self, message: str) -> None:
        self.write(LogLevel.WARNING, message)

    def error(self, message: str) -> None:
        self.write(LogLevel.ERROR, message)

    def critical(self, message: str) -> None:
        self.write(LogLevel.CRITICAL, message)

    def _write_locked(self, level: LogLevel, message: str) -> None:
        try:
            if self._size_locked() >= self._max_size:
                self._rotate_locked()
        except OSError as exc:
            self._echo(f"[LOGSINK ERROR] Failed to rotate log file: {exc}")
        self._append_locked(format_line(self._clock(), level, message))

    def _append_locked(self, line: str) -> None:
        try:
            with open(self._path, "a", encoding="utf-8", newline="") as fh:
                fh.write(line)
        except (OSError, ValueError) as exc:
            self._echo(f"[LOGSINK ERROR] Failed to write to log file: {exc}")
            self._echo(line.rstrip("\n"))

    # ---- rotation ----

    def backup_path(self, moment: datetime) -> Path:
        """Return the rotated-file name for a rotation happening at *moment*."""
        stamp = moment.strftime("%Y%m%d_%H%M%S")
        return self._path.with_name(f"{self._path.stem}_{stamp}{self._path.suffix}")

    def _rotate_locked(self) -> None:
        now = self._clock()
        backup = self.backup_path(now)
        # os.replace overwrites a backup made earlier in the same second
        os.replace(self._path, backup)
        self._append_locked(
            format_line(
                now,
                LogLevel.INFO,
                f"Log rotated at {format_timestamp(now)} - "
                f"Previous log saved as {backup.name}",
            )
        )

    # ---- introspection ----

    def _size_locked(self) -> int:
        try:
            return self._path.stat().st_size
        except FileNotFoundError:
            return 0

    def current_size(self) -> int:
        """Return the active file size in bytes (0 if it does not exist yet)."""
        with self._lock:
            try:
                return self._size_locked()
            except OSError:
                return 0

    def path(self) -> Path:
        """Return the active log file path."""
        with self._lock:
            return self._path

    @property
    def max_size_bytes(self) -> int:
        return self._max_size

    @property
    def closed(self) -> bool:
        return self._closed

    # ---- lifecycle ----

    def close(self) -> None:
        """Write a final closing entry; later writes become no-ops."""
        with self._lock:
            if self._closed:
                return
            self._write_locked(LogLevel.INFO, "Log sink closing")
            self._closed = True

    def __enter__(self) -> LogSink:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _echo(self, text: str) -> None:
        stream = self._fallback or sys.stderr
        try:
            print(text, file=stream, flush=True)
        except (OSError, ValueError):
            pass
