"""File system watcher for Folder Monitor.

Uses the watchdog library to receive create/change/delete notifications
for the monitored folder.  Notifications are pushed onto a bounded queue
and consumed by a single processing thread, which keeps the shared
"time of last activity" up to date.
"""

from __future__ import annotations

import contextlib
import enum
import os
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from folder_monitor.bridge import TraceBridge
from folder_monitor.logsink import LogLevel


class DirectoryUnavailable(FileNotFoundError):
    """The folder to watch does not exist or cannot be watched."""


class ActivityState:
    """Lock-guarded holder for the time of the last qualifying file event.

    ``touch`` only ever moves the value forward; ``reset`` overwrites it
    and is reserved for the staleness monitor after it has fired an alert.
    """

    def __init__(self, initial: datetime):
        self._last = initial
        self._lock = threading.Lock()

    @property
    def last_activity(self) -> datetime:
        with self._lock:
            return self._last

    def touch(self, when: datetime) -> datetime:
        """Record activity at *when*; returns the stored value."""
        with self._lock:
            if when > self._last:
                self._last = when
            return self._last

    def reset(self, when: datetime) -> None:
        with self._lock:
            self._last = when


class NotificationKind(enum.Enum):
    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"
    ERROR = "error"


@dataclass(frozen=True)
class FileNotification:
    """One value produced by a directory watch."""

    kind: NotificationKind
    path: str
    detail: str = ""


class DirectoryWatch(Protocol):
    """Capability that delivers notifications for one directory."""

    def start(self, path: str, notify: Callable[[FileNotification], None]) -> None:
        """Begin delivering notifications for *path* to *notify*."""
        ...

    def stop(self) -> None:
        """Stop delivering notifications and release the watch handle."""
        ...

    @property
    def is_alive(self) -> bool:
        """Return whether notifications are currently being delivered."""
        ...


class _NotificationHandler(FileSystemEventHandler):
    """Watchdog handler that turns file events into FileNotification values."""

    def __init__(self, root: str, notify: Callable[[FileNotification], None]):
        super().__init__()
        self._root = os.path.normcase(os.path.abspath(root))
        self._notify = notify

    def _is_root(self, path: str) -> bool:
        return os.path.normcase(os.path.abspath(path)) == self._root

    def on_created(self, event: FileSystemEvent) -> None:
        # A folder dropped into the watched path is an arrival as well
        self._notify(FileNotification(NotificationKind.CREATED, os.fsdecode(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory "modified" events only echo changes to their entries
        if event.is_directory:
            return
        self._notify(FileNotification(NotificationKind.CHANGED, os.fsdecode(event.src_path)))

    def on_deleted(self, event: FileSystemEvent) -> None:
        path = os.fsdecode(event.src_path)
        if event.is_directory and self._is_root(path):
            self._notify(FileNotification(NotificationKind.ERROR, path, "watched folder was deleted"))
            return
        self._notify(FileNotification(NotificationKind.DELETED, path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if self._is_root(os.fsdecode(event.src_path)):
            return
        # An entry renamed into place counts as an arrival
        dest = os.fsdecode(event.dest_path)
        self._notify(FileNotification(NotificationKind.CREATED, dest))


class WatchdogDirectoryWatch:
    """:class:`DirectoryWatch` backed by a watchdog observer."""

    def __init__(
        self,
        recursive: bool = False,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self._recursive = recursive
        self._observer_factory = observer_factory
        self._observer: Any | None = None

    def start(self, path: str, notify: Callable[[FileNotification], None]) -> None:
        observer = self._observer_factory()
        observer.schedule(_NotificationHandler(path, notify), path, recursive=self._recursive)
        try:
            observer.start()
        except Exception:
            observer.stop()
            raise
        self._observer = observer

    def stop(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=5)

    @property
    def is_alive(self) -> bool:
        return self._observer is not None and self._observer.is_alive()


class FileActivityTracker:
    """Keeps :class:`ActivityState` current from directory notifications.

    Usage:
        tracker = FileActivityTracker(state, log)
        tracker.start("/data/incoming")
        ...
        tracker.stop()

    Creations and changes move the activity clock forward.  Deletions are
    logged only.  A watch error triggers one re-arm attempt; if that fails
    monitoring stays disabled until the next ``start``.
    """

    def __init__(
        self,
        state: ActivityState,
        log: TraceBridge,
        watch: DirectoryWatch | None = None,
        clock: Callable[[], datetime] = datetime.now,
        recursive: bool = False,
        queue_size: int = 1024,
        poll_seconds: float = 1.0,
    ):
        self._state = state
        self._log = log.for_source("watcher")
        self._watch = watch if watch is not None else WatchdogDirectoryWatch(recursive)
        self._clock = clock
        self._poll_seconds = poll_seconds
        self._queue: queue.Queue[FileNotification | None] = queue.Queue(maxsize=queue_size)
        self._stop = threading.Event()
        self._rearm_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._path: str | None = None
        self._monitoring = False

    # ---- lifecycle ----

    def start(self, path: str | os.PathLike[str]) -> None:
        """Start watching *path*; raises :class:`DirectoryUnavailable`."""
        folder = str(path)
        if not os.path.isdir(folder):
            self._log.error(f"Folder does not exist: {folder}")
            raise DirectoryUnavailable(f"Folder does not exist: {folder}")
        self.stop()
        try:
            self._watch.start(folder, self._enqueue)
        except OSError as exc:
            self._log.exception(f"Cannot watch folder {folder}", exc)
            raise DirectoryUnavailable(f"Cannot watch folder {folder}: {exc}") from exc

        self._path = folder
        self._monitoring = True
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._process, daemon=True, name="FileActivityTracker"
        )
        self._thread.start()
        self._log.info(f"Watching '{folder}'")

    def stop(self) -> None:
        """Stop watching; safe to call repeatedly or before ``start``."""
        was_running = self._thread is not None
        self._stop.set()
        with self._rearm_lock:
            self._monitoring = False
            try:
                self._watch.stop()
            except OSError as exc:
                self._log.exception(
                    "Error while stopping the directory watch", exc, LogLevel.WARNING
                )
        with contextlib.suppress(queue.Full):
            self._queue.put_nowait(None)  # wake the processing thread
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        if was_running:
            self._log.info("Watcher stopped.")

    # ---- status ----

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    @property
    def path(self) -> str | None:
        return self._path

    # ---- notification processing ----

    def _enqueue(self, notification: FileNotification) -> None:
        try:
            self._queue.put(notification, timeout=self._poll_seconds)
        except queue.Full:
            self._log.warning(f"Notification queue full; dropped {notification.kind.value} "
                              f"event for {notification.path}")

    def _process(self) -> None:
        while not self._stop.is_set():
            try:
                notification = self._queue.get(timeout=self._poll_seconds)
            except queue.Empty:
                self._check_alive()
                continue
            if notification is None:
                continue
            try:
                self.handle(notification)
            except Exception as exc:
                self._log.exception(f"Error handling notification for {notification.path}", exc)

    def _check_alive(self) -> None:
        with self._rearm_lock:
            if self._monitoring and self._path and not self._watch.is_alive:
                self._rearm_locked(
                    FileNotification(
                        NotificationKind.ERROR, self._path, "watch stopped unexpectedly"
                    )
                )

    def handle(self, notification: FileNotification) -> None:
        """Apply one notification to the activity state and the log."""
        kind = notification.kind
        if kind is NotificationKind.CREATED:
            self._log.info(f"File created: {notification.path}")
            self._state.touch(self._clock())
        elif kind is NotificationKind.CHANGED:
            self._log.debug(f"File changed: {notification.path}")
            self._state.touch(self._clock())
        elif kind is NotificationKind.DELETED:
            self._log.warning(f"File deleted: {notification.path}")
        else:
            self._rearm(notification)

    def _rearm(self, notification: FileNotification) -> None:
        with self._rearm_lock:
            self._rearm_locked(notification)

    def _rearm_locked(self, notification: FileNotification) -> None:
        if not self._monitoring or self._path is None:
            return
        folder = self._path
        self._log.error(f"Directory watch error on {folder}: {notification.detail or 'unknown'}")
        try:
            self._watch.stop()
            if not os.path.isdir(folder):
                raise DirectoryUnavailable(f"Folder does not exist: {folder}")
            self._watch.start(folder, self._enqueue)
        except OSError as exc:
            self._monitoring = False
            self._log.exception(
                f"Could not re-arm directory watch for {folder}; monitoring disabled",
                exc,
                LogLevel.CRITICAL,
            )
            return
        self._log.warning(f"Directory watch re-armed for {folder}")
