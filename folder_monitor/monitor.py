"""Periodic staleness check for Folder Monitor.

Once per tick the monitor decides whether it is inside the daily
monitoring window (Armed) or outside it (Idle).  When armed and no
qualifying file activity has been seen for longer than the threshold it
dispatches an alert and resets the activity clock so the next tick does
not alert again.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, time

from folder_monitor.alerts import AlertDispatcher, AlertEvent, DispatchResult
from folder_monitor.bridge import TraceBridge
from folder_monitor.config import MonitorConfig
from folder_monitor.watcher import ActivityState


def in_window(moment: time, start: time, end: time) -> bool:
    """Return True if *moment* lies in ``[start, end]`` (inclusive).

    A window whose end is earlier than its start wraps past midnight,
    e.g. 22:00-06:00 covers 23:30 and 05:00.
    """
    if start <= end:
        return start <= moment <= end
    return moment >= start or moment <= end


class StalenessMonitor:
    """Timer-driven Idle/Armed state machine over :class:`ActivityState`."""

    def __init__(
        self,
        config: MonitorConfig,
        state: ActivityState,
        dispatcher: AlertDispatcher,
        log: TraceBridge,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._config = config
        self._state = state
        self._dispatcher = dispatcher
        self._log = log.for_source("monitor")
        self._clock = clock
        self._dispatch_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.alerts_fired = 0

    # ---- lifecycle ----

    def start(self) -> None:
        """Start ticking every ``config.tick_interval`` on a daemon thread."""
        if self.is_running:
            return
        cfg = self._config
        if cfg.window_wraps_midnight:
            self._log.warning(
                f"Monitoring window {cfg.window_start:%H:%M}-{cfg.window_end:%H:%M} "
                "wraps past midnight"
            )
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="StalenessMonitor")
        self._thread.start()
        self._log.info(
            f"Monitor started (threshold={cfg.alert_threshold.total_seconds() / 60:g} min, "
            f"window={cfg.window_start:%H:%M}-{cfg.window_end:%H:%M}, "
            f"tick={cfg.tick_interval.total_seconds():g}s)"
        )

    def stop(self) -> None:
        """Stop the timer; safe to call repeatedly."""
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is None:
            return
        if thread is not threading.current_thread():
            thread.join(timeout=5)
        self._log.info("Monitor stopped.")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        interval = self._config.tick_interval.total_seconds()
        while not self._stop.wait(timeout=interval):
            try:
                self.tick()
            except Exception as exc:
                self._log.exception("Unexpected error during staleness check", exc)

    # ---- state machine ----

    def is_armed(self, now: datetime) -> bool:
        cfg = self._config
        return in_window(now.time(), cfg.window_start, cfg.window_end)

    def tick(self, now: datetime | None = None) -> DispatchResult | None:
        """Run one check; returns the dispatch result if an alert fired."""
        if now is None:
            now = self._clock()
        cfg = self._config
        if not self.is_armed(now):
            self._log.debug(
                f"Outside monitoring window ({cfg.window_start:%H:%M}-{cfg.window_end:%H:%M}); idle"
            )
            return None

        # Held across check, dispatch and reset so alerts never overlap
        with self._dispatch_lock:
            last = self._state.last_activity
            elapsed = now - last
            self._log.debug(f"{elapsed.total_seconds() / 60:.2f} minutes since last file activity")
            if elapsed <= cfg.alert_threshold:
                return None

            self._log.warning(
                f"No new files detected in {cfg.watched_path} within "
                f"{cfg.alert_threshold.total_seconds() / 60:g} minutes "
                f"(last activity {last:%Y-%m-%d %H:%M:%S})"
            )
            event = AlertEvent(
                fired_at=now,
                folder_path=str(cfg.watched_path),
                threshold=cfg.alert_threshold,
                time_since_last_activity=elapsed,
                last_activity_time=last,
            )
            try:
                result = self._dispatcher.dispatch(event)
            finally:
                self._state.reset(now)
                self.alerts_fired += 1
            return result
