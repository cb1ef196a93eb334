"""Fan-in adapter from event and trace style calls onto a LogSink."""

from __future__ import annotations

import logging

from folder_monitor.logsink import LogLevel, LogSink

_RECORD_LEVELS = (
    (logging.CRITICAL, LogLevel.CRITICAL),
    (logging.ERROR, LogLevel.ERROR),
    (logging.WARNING, LogLevel.WARNING),
    (logging.INFO, LogLevel.INFO),
)


def level_for_record(levelno: int) -> LogLevel:
    """Map a :mod:`logging` level number onto the nearest sink level."""
    for threshold, level in _RECORD_LEVELS:
        if levelno >= threshold:
            return level
    return LogLevel.DEBUG


class TraceBridge:
    """Translate every call into exactly one :meth:`LogSink.write`.

    Two surfaces are offered:

    - event style: ``debug``/``info``/``warning``/``error``/``critical``
      with an optional ``source`` tag, rendered as ``[source] message``;
    - trace style: ``trace_info``/``trace_warning``/``trace_error``.

    The bridge holds nothing but the sink and a default source tag.
    """

    def __init__(self, sink: LogSink, source: str | None = None):
        self._sink = sink
        self._source = source

    @property
    def sink(self) -> LogSink:
        return self._sink

    def for_source(self, source: str) -> TraceBridge:
        """Return a bridge onto the same sink that tags calls with *source*."""
        return TraceBridge(self._sink, source)

    # ---- event surface ----

    def event(self, level: LogLevel, message: str, source: str | None = None) -> None:
        tag = source if source is not None else self._source
        if tag and message and message.strip():
            message = f"[{tag}] {message}"
        self._sink.write(level, message)

    def debug(self, message: str, source: str | None = None) -> None:
        self.event(LogLevel.DEBUG, message, source)

    def info(self, message: str, source: str | None = None) -> None:
        self.event(LogLevel.INFO, message, source)

    def warning(self, message: str, source: str | None = None) -> None:
        self.event(LogLevel.WARNING, message, source)

    def error(self, message: str, source: str | None = None) -> None:
        self.event(LogLevel.ERROR, message, source)

    def critical(self, message: str, source: str | None = None) -> None:
        self.event(LogLevel.CRITICAL, message, source)

    def exception(
        self,
        message: str,
        exc: BaseException,
        level: LogLevel = LogLevel.ERROR,
        source: str | None = None,
    ) -> None:
        """Log *message* together with the exception that caused it."""
        self.event(level, f"{message} | Exception: {exc!r}", source)

    # ---- trace surface ----

    def trace_info(self, message: str) -> None:
        self._sink.write(LogLevel.INFO, message.rstrip("\r\n"))

    def trace_warning(self, message: str) -> None:
        self._sink.write(LogLevel.WARNING, message.rstrip("\r\n"))

    def trace_error(self, message: str) -> None:
        self._sink.write(LogLevel.ERROR, message.rstrip("\r\n"))

    # ---- stdlib logging ----

    def handler(self) -> LogSinkHandler:
        """Return a :class:`logging.Handler` that forwards records here."""
        return LogSinkHandler(self)


class LogSinkHandler(logging.Handler):
    """Routes :mod:`logging` records (config layer, watchdog) into the sink.

    Each record becomes one sink line: embedded line breaks are folded and
    attached exception info is rendered as ``| Exception: <repr>`` rather
    than a multi-line traceback.
    """

    def __init__(self, bridge: TraceBridge, level: int = logging.DEBUG):
        super().__init__(level)
        self._bridge = bridge

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = " ".join(record.getMessage().splitlines())
            if record.exc_info and record.exc_info[1] is not None:
                message = f"{message} | Exception: {record.exc_info[1]!r}"
            self._bridge.event(level_for_record(record.levelno), message, record.name)
        except Exception:
            self.handleError(record)
