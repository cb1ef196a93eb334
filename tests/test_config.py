"""Tests for the JSON configuration layer."""

import json
from datetime import time, timedelta
from pathlib import Path

import pytest

from folder_monitor import config as config_module
from folder_monitor.config import (
    DEFAULT_CONFIG,
    Config,
    ConfigError,
    parse_time_of_day,
    split_addresses,
)
from folder_monitor.credentials import encode_secret


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "cfg" / "config.json"


def write_config(path: Path, **values) -> Config:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(values), encoding="utf-8")
    return Config(path)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class TestPersistence:
    def test_missing_file_writes_defaults(self, config_path):
        """First load creates the file with every default key."""
        cfg = Config(config_path)
        assert config_path.exists()
        stored = json.loads(config_path.read_text(encoding="utf-8"))
        assert stored == DEFAULT_CONFIG
        assert not cfg.is_configured()

    def test_stored_values_override_defaults(self, config_path):
        """Keys from the file win; missing keys keep their defaults."""
        cfg = write_config(config_path, MonitorFolder="/data/in")
        assert cfg.monitor_folder == "/data/in"
        assert cfg.get("CheckIntervalSeconds") == 60

    def test_corrupt_file_falls_back(self, config_path):
        """Unreadable JSON is logged and replaced by defaults."""
        config_path.parent.mkdir(parents=True)
        config_path.write_text("{not json", encoding="utf-8")
        cfg = Config(config_path)
        assert cfg.monitor_folder == ""

    def test_save_roundtrip(self, config_path):
        """Saved values are read back by a new instance."""
        cfg = Config(config_path)
        cfg.monitor_folder = "/srv/drop"
        cfg.set("AlertIntervalMinutes", 12.5)
        cfg.save()
        again = Config(config_path)
        assert again.monitor_folder == "/srv/drop"
        assert again.get("AlertIntervalMinutes") == 12.5

    def test_default_path_uses_platform_dir(self, tmp_path, monkeypatch):
        """Without a path the platform config directory is used."""
        monkeypatch.setattr(config_module, "_platform_config_dir", lambda: tmp_path)
        cfg = Config()
        assert cfg.path == tmp_path / "config.json"


# ---------------------------------------------------------------------------
# Monitor settings
# ---------------------------------------------------------------------------

class TestMonitorConfig:
    def test_parsed_values(self, config_path, tmp_path):
        """Threshold, window and tick are converted to time types."""
        cfg = write_config(
            config_path,
            MonitorFolder=str(tmp_path),
            AlertIntervalMinutes="45.5",
            MonitorStartTime="07:30",
            MonitorEndTime="19:15:30",
            CheckIntervalSeconds=30,
            CreateMonitorFolder="true",
        )
        mc = cfg.monitor_config()
        assert mc.watched_path == tmp_path
        assert mc.alert_threshold == timedelta(minutes=45.5)
        assert mc.window_start == time(7, 30)
        assert mc.window_end == time(19, 15, 30)
        assert mc.tick_interval == timedelta(seconds=30)
        assert mc.create_folder is True
        assert mc.recursive is False
        assert not mc.window_wraps_midnight

    def test_immutable(self, config_path, tmp_path):
        """MonitorConfig cannot be modified after creation."""
        mc = write_config(config_path, MonitorFolder=str(tmp_path)).monitor_config()
        with pytest.raises(AttributeError):
            mc.alert_threshold = timedelta(0)

    def test_wrapping_window_flag(self, config_path, tmp_path):
        mc = write_config(
            config_path, MonitorFolder=str(tmp_path), MonitorStartTime="22:00", MonitorEndTime="06:00"
        ).monitor_config()
        assert mc.window_wraps_midnight

    @pytest.mark.parametrize(
        "overrides,needle",
        [
            ({"MonitorFolder": ""}, "MonitorFolder"),
            ({"AlertIntervalMinutes": "soon"}, "AlertIntervalMinutes"),
            ({"AlertIntervalMinutes": 0}, "AlertIntervalMinutes"),
            ({"AlertIntervalMinutes": None}, "AlertIntervalMinutes"),
            ({"MonitorStartTime": "8am"}, "MonitorStartTime"),
            ({"MonitorEndTime": "25:00"}, "MonitorEndTime"),
            ({"CheckIntervalSeconds": -5}, "CheckIntervalSeconds"),
        ],
    )
    def test_invalid_values(self, config_path, overrides, needle):
        """Missing or unparseable settings raise ConfigError naming the key."""
        values = {"MonitorFolder": "/data/in", **overrides}
        cfg = write_config(config_path, **values)
        with pytest.raises(ConfigError, match=needle):
            cfg.monitor_config()

    def test_parse_time_of_day(self):
        assert parse_time_of_day(" 08:05 ", "k") == time(8, 5)
        with pytest.raises(ConfigError):
            parse_time_of_day("", "k")


# ---------------------------------------------------------------------------
# Mail and log settings
# ---------------------------------------------------------------------------

class TestMailSettings:
    def test_password_decoded(self, config_path):
        """The stored base64 password is decoded before use."""
        cfg = write_config(
            config_path,
            SmtpServer="smtp.example.com",
            SmtpPort="2525",
            SmtpUser="bot",
            SmtpPassword=encode_secret("pässword"),
            EnableSsl="false",
            MailFrom="bot@example.com",
            MailTo="a@example.com; b@example.com,",
            MailSubject="Drop folder",
        )
        mail = cfg.mail_settings()
        assert mail.password == "pässword"
        assert mail.port == 2525
        assert mail.use_tls is False
        assert mail.mail_to == ("a@example.com", "b@example.com")
        assert mail.subject == "Drop folder"
        assert mail.timeout == 30

    @pytest.mark.parametrize(
        "overrides,needle",
        [
            ({"SmtpServer": ""}, "SmtpServer"),
            ({"MailTo": " ; "}, "MailTo"),
            ({"SmtpPort": "smtp"}, "SmtpPort"),
            ({"SmtpPort": 70000}, "SmtpPort"),
            ({"SmtpPassword": "not*base64"}, "SmtpPassword"),
        ],
    )
    def test_invalid_mail_settings(self, config_path, overrides, needle):
        values = {
            "SmtpServer": "smtp.example.com",
            "MailFrom": "bot@example.com",
            "MailTo": "ops@example.com",
            **overrides,
        }
        with pytest.raises(ConfigError, match=needle):
            write_config(config_path, **values).mail_settings()

    def test_split_addresses(self):
        assert split_addresses("a@x, b@x;c@x") == ("a@x", "b@x", "c@x")
        assert split_addresses("") == ()


class TestLogSettings:
    def test_explicit_path(self, config_path, tmp_path):
        cfg = write_config(config_path, LogFilePath=str(tmp_path / "x.log"), LogMaxSizeBytes=1024)
        settings = cfg.log_settings()
        assert settings.path == tmp_path / "x.log"
        assert settings.max_size_bytes == 1024

    def test_default_path(self, config_path, tmp_path, monkeypatch):
        """A blank LogFilePath uses the platform log location and a 2 MiB cap."""
        monkeypatch.setattr(config_module, "_platform_log_path", lambda: tmp_path / "default.log")
        settings = Config(config_path).log_settings()
        assert settings.path == tmp_path / "default.log"
        assert settings.max_size_bytes == 2 * 1024 * 1024

    def test_invalid_size(self, config_path):
        with pytest.raises(ConfigError, match="LogMaxSizeBytes"):
            write_config(config_path, LogMaxSizeBytes=0).log_settings()
