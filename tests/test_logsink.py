"""Functional tests for LogSink - line format, rotation, concurrency, failure handling."""

import io
import re
import threading
from datetime import datetime

import pytest

from folder_monitor.logsink import LogLevel, LogSink, format_line

LINE_RE = re.compile(
    r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{3}\] "
    r"\[(DEBUG|INFO|WARNING|ERROR|CRITICAL)\] .+$"
)


def _lines(path):
    return path.read_text(encoding="utf-8").splitlines()


def _message(line):
    return line.split("] ", 2)[2]


# ---------------------------------------------------------------------------
# Format
# ---------------------------------------------------------------------------

class TestFormat:
    def test_line_layout(self):
        """Timestamp has millisecond precision and the level is upper-case."""
        moment = datetime(2024, 5, 6, 8, 30, 1, 123456)
        assert format_line(moment, LogLevel.WARNING, "hello") == (
            "[2024-05-06 08:30:01.123] [WARNING] hello\n"
        )

    def test_write_appends_utf8_line(self, sink, log_path):
        """Each write becomes one newline-terminated UTF-8 line."""
        sink.info("Fil skapad: rapport_åäö.csv")
        sink.debug("second")

        raw = log_path.read_bytes()
        assert raw.endswith(b"\n")
        assert "rapport_åäö.csv".encode("utf-8") in raw
        lines = _lines(log_path)
        assert len(lines) == 2
        assert all(LINE_RE.match(line) for line in lines)
        assert "[INFO] Fil skapad" in lines[0]
        assert "[DEBUG] second" in lines[1]

    @pytest.mark.parametrize("message", ["", "   ", "\n\t"])
    def test_blank_messages_dropped(self, sink, log_path, message):
        """Empty or whitespace-only messages are not written."""
        sink.write(LogLevel.ERROR, message)
        assert not log_path.exists()

    def test_introspection(self, sink, log_path):
        """current_size tracks the file; path returns the active file."""
        assert sink.current_size() == 0
        assert sink.path() == log_path
        sink.info("x")
        assert sink.current_size() == log_path.stat().st_size > 0

    def test_rejects_non_positive_max(self, tmp_path):
        """A zero size cap is a programming error."""
        with pytest.raises(ValueError):
            LogSink(tmp_path / "a.log", max_size_bytes=0)


# ---------------------------------------------------------------------------
# Rotation
# ---------------------------------------------------------------------------

class TestRotation:
    def test_backup_name(self, tmp_path):
        """Backups are named <base>_<yyyyMMdd_HHmmss><ext>."""
        sink = LogSink(tmp_path / "service.log")
        backup = sink.backup_path(datetime(2024, 5, 6, 8, 30, 1))
        assert backup == tmp_path / "service_20240506_083001.log"

    def test_rotation_splits_lines_between_files(self, log_path, clock):
        """Lines before the cap go to the backup; the write after it starts a new file."""
        sink = LogSink(log_path, max_size_bytes=500, clock=clock)
        before = []
        i = 0
        while sink.current_size() < 500:
            msg = f"entry {i:04d}"
            sink.info(msg)
            before.append(msg)
            i += 1

        after = ["first write at cap", "after 1", "after 2"]
        for msg in after:
            sink.info(msg)

        backup = sink.backup_path(clock.now)
        files = sorted(p.name for p in log_path.parent.iterdir())
        assert files == sorted([log_path.name, backup.name])

        assert [_message(line) for line in _lines(backup)] == before

        active = _lines(log_path)
        assert "Log rotated at" in active[0]
        assert backup.name in active[0]
        assert [_message(line) for line in active[1:]] == after
        assert sink.current_size() < 500

    def test_rotation_replaces_same_second_backup(self, log_path, clock):
        """An existing backup with the identical name is overwritten."""
        sink = LogSink(log_path, max_size_bytes=10, clock=clock)
        backup = sink.backup_path(clock.now)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        backup.write_text("stale backup\n", encoding="utf-8")

        sink.info("first line is longer than ten bytes")
        sink.info("second")

        content = backup.read_text(encoding="utf-8")
        assert "stale backup" not in content
        assert "first line" in content
        assert "second" in log_path.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

class TestConcurrency:
    def test_two_writers_never_interleave(self, sink, log_path):
        """2 x 1000 concurrent writes produce 2000 intact lines."""
        barrier = threading.Barrier(2)

        def writer(name):
            barrier.wait()
            for n in range(1000):
                sink.info(f"{name}-{n:04d}")

        threads = [threading.Thread(target=writer, args=(name,)) for name in ("a", "b")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = _lines(log_path)
        assert len(lines) == 2000
        assert all(LINE_RE.match(line) for line in lines)
        messages = {_message(line) for line in lines}
        assert messages == {f"{name}-{n:04d}" for name in ("a", "b") for n in range(1000)}


# ---------------------------------------------------------------------------
# Failure handling and close
# ---------------------------------------------------------------------------

class TestFailures:
    def test_write_failure_goes_to_fallback(self, tmp_path):
        """An unwritable log path never raises; the line lands on the fallback stream."""
        target = tmp_path / "is_a_directory"
        target.mkdir()
        fallback = io.StringIO()
        sink = LogSink(target, fallback=fallback)

        sink.error("disk trouble")
        sink.info("still alive")

        out = fallback.getvalue()
        assert "[LOGSINK ERROR]" in out
        assert "[ERROR] disk trouble" in out
        assert "[INFO] still alive" in out

    def test_close_writes_final_entry(self, log_path):
        """close() logs a closing entry; later writes are ignored."""
        sink = LogSink(log_path)
        sink.info("working")
        sink.close()
        sink.info("too late")
        sink.close()

        lines = _lines(log_path)
        assert len(lines) == 2
        assert lines[-1].endswith("[INFO] Log sink closing")
        assert sink.closed

    def test_context_manager_closes(self, log_path):
        """Leaving the with-block closes the sink."""
        with LogSink(log_path) as sink:
            sink.warning("inside")
        assert sink.closed
        assert _lines(log_path)[-1].endswith("Log sink closing")
