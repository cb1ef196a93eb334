"""Shared fixtures for folder_monitor tests."""

import threading
from datetime import datetime, time, timedelta

import pytest

from folder_monitor.bridge import TraceBridge
from folder_monitor.config import MonitorConfig
from folder_monitor.logsink import LogSink
from folder_monitor.watcher import FileNotification


class FakeClock:
    """Settable clock; ``advance`` moves it forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, when: datetime) -> None:
        self.now = when

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeWatch:
    """In-memory DirectoryWatch; tests push notifications through ``emit``."""

    def __init__(self, fail_on_start: int | None = None):
        self.notify = None
        self.path = None
        self.alive = False
        self.starts = 0
        self.stops = 0
        self._fail_on_start = fail_on_start

    def start(self, path, notify):
        self.starts += 1
        if self._fail_on_start is not None and self.starts >= self._fail_on_start:
            raise OSError("watch handle unavailable")
        self.path = path
        self.notify = notify
        self.alive = True

    def stop(self):
        self.stops += 1
        self.alive = False

    @property
    def is_alive(self):
        return self.alive

    def emit(self, notification: FileNotification) -> None:
        self.notify(notification)


class FakeTransport:
    """Records sent mails; optionally fails."""

    def __init__(self, fail: Exception | None = None, result=True):
        self.sent = []
        self._fail = fail
        self._result = result
        self._lock = threading.Lock()

    def send(self, subject, body):
        with self._lock:
            self.sent.append((subject, body))
        if self._fail is not None:
            raise self._fail
        return self._result


@pytest.fixture
def log_path(tmp_path):
    return tmp_path / "logs" / "folder_monitor.log"


@pytest.fixture
def sink(log_path):
    s = LogSink(log_path)
    yield s
    s.close()


@pytest.fixture
def bridge(sink):
    return TraceBridge(sink)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 6, 8, 0, 0))


@pytest.fixture
def monitor_config(tmp_path):
    return MonitorConfig(
        watched_path=tmp_path,
        alert_threshold=timedelta(minutes=30),
        window_start=time(8, 0),
        window_end=time(18, 0),
        tick_interval=timedelta(seconds=60),
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def fake_watch():
    return FakeWatch()


@pytest.fixture
def make_watch():
    return FakeWatch


@pytest.fixture
def make_transport():
    return FakeTransport
