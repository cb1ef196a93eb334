"""
Background service support for Folder Monitor.

Runs the monitoring core headless: log sink, folder watcher, staleness
monitor and alert mail.

**Windows** — runs as a Windows service via pywin32:
    folder-monitor service install
    folder-monitor service start
    folder-monitor service stop
    folder-monitor service remove

**All platforms** — runs as a foreground process:
    folder-monitor run            (blocks until Ctrl-C / SIGTERM)
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from folder_monitor import __app_name__, __version__
from folder_monitor.alerts import AlertDispatcher, MailTransport, SmtpMailTransport
from folder_monitor.bridge import LogSinkHandler, TraceBridge
from folder_monitor.config import Config, ConfigError
from folder_monitor.logsink import LogLevel, LogSink
from folder_monitor.monitor import StalenessMonitor
from folder_monitor.platform_utils import IS_WINDOWS
from folder_monitor.watcher import ActivityState, DirectoryWatch, FileActivityTracker

logger = logging.getLogger(__name__)

# ---- Windows service (pywin32) -----------------------------------------

_HAS_WIN32 = False
if IS_WINDOWS:
    try:
        import servicemanager  # type: ignore[import-untyped]
        import win32event  # type: ignore[import-untyped]
        import win32service  # type: ignore[import-untyped]
        import win32serviceutil  # type: ignore[import-untyped]
        _HAS_WIN32 = True
    except ImportError:
        pass


class FolderMonitorService:
    """
    Owns and wires the monitoring core.

    Startup order: log sink, configuration, activity state, watcher,
    monitor.  Shutdown order: watcher, monitor, log sink.  ``stop`` is
    idempotent and safe after a partially failed ``start``.

    The mail transport, directory watch and clock can be injected; by
    default an SMTP transport is built from the configuration and the
    folder is watched with watchdog.
    """

    def __init__(
        self,
        config: Config | None = None,
        transport: MailTransport | None = None,
        watch: DirectoryWatch | None = None,
        clock: Callable[[], datetime] = datetime.now,
        attach_root_logger: bool = True,
    ):
        self._cfg = config
        self._transport = transport
        self._watch = watch
        self._clock = clock
        self._attach_root_logger = attach_root_logger
        self._lock = threading.Lock()
        self.sink: LogSink | None = None
        self.log: TraceBridge | None = None
        self.state: ActivityState | None = None
        self.tracker: FileActivityTracker | None = None
        self.monitor: StalenessMonitor | None = None
        self._handler: LogSinkHandler | None = None
        self._root_level: int | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start everything; on failure shut down what was started and re-raise."""
        with self._lock:
            try:
                self._start_locked()
            except Exception as exc:
                if self.log is not None:
                    self.log.exception("Service failed to start", exc, LogLevel.CRITICAL)
                else:
                    logger.critical("Service failed to start: %s", exc)
                self._stop_locked()
                raise

    def _start_locked(self) -> None:
        cfg = self._cfg = self._cfg or Config()

        log_settings = cfg.log_settings()
        self.sink = LogSink(log_settings.path, log_settings.max_size_bytes, clock=self._clock)
        self.log = TraceBridge(self.sink)
        if self._attach_root_logger:
            root_logger = logging.getLogger()
            self._handler = self.log.handler()
            root_logger.addHandler(self._handler)
            if root_logger.getEffectiveLevel() > logging.INFO:
                self._root_level = root_logger.level
                root_logger.setLevel(logging.INFO)
        self.log.info(f"{__app_name__} {__version__} is starting.", "service")
        self.log.info(f"Configuration file: {cfg.path}", "service")

        settings = cfg.monitor_config()
        if self._transport is None:
            mail = cfg.mail_settings()
            self._transport = SmtpMailTransport(mail)
            subject = mail.subject
        else:
            subject = str(cfg.get("MailSubject"))

        folder = settings.watched_path
        if settings.create_folder and not folder.exists():
            folder.mkdir(parents=True, exist_ok=True)
            self.log.info(f"Created monitor folder {folder}", "service")

        self.state = ActivityState(self._clock())
        self.tracker = FileActivityTracker(
            self.state,
            self.log,
            watch=self._watch,
            clock=self._clock,
            recursive=settings.recursive,
        )
        dispatcher = AlertDispatcher(self._transport, subject, self.log)
        self.monitor = StalenessMonitor(settings, self.state, dispatcher, self.log, self._clock)

        self.tracker.start(folder)
        self.monitor.start()
        self.log.info("Service started successfully.", "service")

    def stop(self) -> None:
        """Disable the watch, stop the timer, flush the log sink."""
        with self._lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        if self.sink is None or self.sink.closed:
            return
        if self.log is not None:
            self.log.info("Service is stopping.", "service")
        if self.tracker is not None:
            self.tracker.stop()
        if self.monitor is not None:
            self.monitor.stop()
        if self.log is not None:
            self.log.info("Service stopped successfully.", "service")
        if self._handler is not None:
            logging.getLogger().removeHandler(self._handler)
            self._handler = None
        if self._root_level is not None:
            logging.getLogger().setLevel(self._root_level)
            self._root_level = None
        self.sink.close()

    @property
    def is_running(self) -> bool:
        return (
            self.monitor is not None
            and self.monitor.is_running
            and self.sink is not None
            and not self.sink.closed
        )


# ======================================================================
# Windows service
# ======================================================================

if _HAS_WIN32:

    class FolderMonitorWindowsService(win32serviceutil.ServiceFramework):
        """Windows service implementation for Folder Monitor."""

        _svc_name_ = "FolderMonitorService"
        _svc_display_name_ = "Folder Monitor"
        _svc_description_ = (
            "Watches a folder and sends an alert email when no new files "
            "arrive within the configured interval."
        )

        def __init__(self, args):
            super().__init__(args)
            self._stop_event = win32event.CreateEvent(None, 0, 0, None)
            self._service = FolderMonitorService()

        def SvcStop(self):
            self.ReportServiceStatus(win32service.SERVICE_STOP_PENDING)
            win32event.SetEvent(self._stop_event)

        def SvcDoRun(self):
            servicemanager.LogMsg(
                servicemanager.EVENTLOG_INFORMATION_TYPE,
                servicemanager.PYS_SERVICE_STARTED,
                (self._svc_name_, ""),
            )
            try:
                self._service.start()
                win32event.WaitForSingleObject(self._stop_event, win32event.INFINITE)
            except Exception as exc:
                servicemanager.LogErrorMsg(f"Folder Monitor error: {exc}")
            finally:
                self._service.stop()


# ======================================================================
# Cross-platform headless runner
# ======================================================================

def _setup_console_logging() -> None:
    """Echo log records to stderr while running in the foreground."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    sh = logging.StreamHandler(sys.stderr)
    sh.setFormatter(fmt)
    root_logger.addHandler(sh)


def run_foreground(config_path: Path | None = None) -> int:
    """Run the service in the foreground until SIGINT/SIGTERM."""
    _setup_console_logging()
    service = FolderMonitorService(Config(config_path))
    try:
        service.start()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except FileNotFoundError as exc:
        print(f"Cannot start: {exc}", file=sys.stderr)
        return 1

    stop = False

    def _handler(sig, frame):
        nonlocal stop
        stop = True

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)

    print(f"{__app_name__} running (press Ctrl-C to stop)…")
    try:
        while not stop:
            time.sleep(1)
    finally:
        service.stop()
    print(f"{__app_name__} stopped.")
    return 0


# ======================================================================
# CLI entry
# ======================================================================

def main(args: list[str] | None = None, config_path: Path | None = None) -> int:
    """Handle ``service`` sub-commands."""
    args = list(sys.argv[2:] if args is None else args)
    cmd = args[0] if args else ""

    if cmd == "run":
        return run_foreground(config_path)

    if IS_WINDOWS:
        if not _HAS_WIN32:
            print("ERROR: pywin32 is required for service mode on Windows.")
            print("       pip install pywin32")
            return 1
        if cmd == "":
            servicemanager.Initialize()
            servicemanager.PrepareToHostSingle(FolderMonitorWindowsService)
            servicemanager.StartServiceCtrlDispatcher()
        else:
            win32serviceutil.HandleCommandLine(
                FolderMonitorWindowsService, argv=[sys.argv[0], *args]
            )
        return 0

    if cmd == "start":
        return run_foreground(config_path)
    _show_help()
    return 1


def _show_help() -> None:
    platform = "Windows" if IS_WINDOWS else "this platform"
    print(f"{__app_name__} — Background Service  ({platform})")
    print()
    print("Usage:")
    if IS_WINDOWS:
        print("  folder-monitor service install   Install the Windows service")
        print("  folder-monitor service start     Start the service")
        print("  folder-monitor service stop      Stop the service")
        print("  folder-monitor service remove    Uninstall the service")
    else:
        print("  folder-monitor service start     Run in foreground (Ctrl-C to stop)")
    print("  folder-monitor run               Run in foreground (Ctrl-C to stop)")
