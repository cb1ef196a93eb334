"""Configuration management for Folder Monitor.

Stores and retrieves service settings from a JSON config file in the
platform-appropriate application data directory, and turns them into the
immutable value objects the monitoring core consumes.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from pathlib import Path
from typing import Any

from folder_monitor.credentials import decode_secret
from folder_monitor.logsink import DEFAULT_MAX_SIZE_BYTES
from folder_monitor.platform_utils import (
    get_config_dir as _platform_config_dir,
)
from folder_monitor.platform_utils import (
    get_log_path as _platform_log_path,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, Any] = {
    "MonitorFolder": "",
    "CreateMonitorFolder": False,  # create the folder at startup if missing
    "MonitorSubfolders": False,
    "AlertIntervalMinutes": 30,
    "MonitorStartTime": "08:00",
    "MonitorEndTime": "18:00",
    "CheckIntervalSeconds": 60,
    # ---- mail transport ----
    "SmtpServer": "",
    "SmtpPort": 587,
    "SmtpUser": "",
    "SmtpPassword": "",  # base64, see `folder-monitor encode-password`
    "EnableSsl": True,
    "SmtpTimeoutSeconds": 30,
    "MailFrom": "",
    "MailTo": "",  # comma or semicolon separated
    "MailSubject": "Folder monitor alert",
    # ---- log sink ----
    "LogFilePath": "",  # blank = platform default
    "LogMaxSizeBytes": DEFAULT_MAX_SIZE_BYTES,
}

_TIME_FORMATS = ("%H:%M", "%H:%M:%S")


class ConfigError(ValueError):
    """A required setting is missing or cannot be parsed."""


def get_config_dir() -> Path:
    """Return the platform-appropriate application config directory."""
    return _platform_config_dir()


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    return get_config_dir() / "config.json"


def get_log_path() -> Path:
    """Return the default path of the log file."""
    return _platform_log_path()


def parse_time_of_day(value: Any, key: str) -> time:
    """Parse ``HH:mm`` (or ``HH:mm:ss``) into a :class:`datetime.time`."""
    text = str(value).strip()
    for fmt in _TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ConfigError(f"{key} must be a time of day as HH:mm, got {value!r}")


def _positive_float(value: Any, key: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}") from None
    if not number > 0:
        raise ConfigError(f"{key} must be greater than zero, got {value!r}")
    return number


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def split_addresses(value: str) -> tuple[str, ...]:
    """Split a comma/semicolon separated address list."""
    return tuple(part.strip() for part in re.split(r"[,;]", value or "") if part.strip())


@dataclass(frozen=True)
class MonitorConfig:
    """Settings for the watch and the staleness check; never mutated."""

    watched_path: Path
    alert_threshold: timedelta
    window_start: time
    window_end: time
    tick_interval: timedelta = timedelta(seconds=60)
    create_folder: bool = False
    recursive: bool = False

    @property
    def window_wraps_midnight(self) -> bool:
        return self.window_end < self.window_start


@dataclass(frozen=True)
class MailSettings:
    """Resolved mail transport parameters (password already decoded)."""

    server: str
    port: int
    username: str
    password: str
    use_tls: bool
    mail_from: str
    mail_to: tuple[str, ...]
    subject: str
    timeout: float = 30.0


@dataclass(frozen=True)
class LogSettings:
    path: Path
    max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES


class Config:
    """Configuration manager backed by a JSON file."""

    def __init__(self, path: Path | None = None):
        """Load config from *path*, falling back to the platform default."""
        self._path = path or get_config_path()
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    # ---- persistence ----

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys."""
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as fh:
                    stored = json.load(fh)
                if not isinstance(stored, dict):
                    raise ValueError("top level must be an object")
                # Merge stored values over defaults so new keys get defaults
                self._data = {**DEFAULT_CONFIG, **stored}
                logger.info("Configuration loaded from %s", self._path)
            except (ValueError, OSError) as exc:
                logger.warning("Could not read config (%s); using defaults.", exc)
                self._data = dict(DEFAULT_CONFIG)
        else:
            self._data = dict(DEFAULT_CONFIG)
            self.save()
            logger.info("Created default configuration at %s", self._path)

    def save(self) -> None:
        """Persist the current configuration to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2)
            logger.info("Configuration saved.")
        except OSError as exc:
            logger.error("Failed to save configuration: %s", exc)

    # ---- raw access ----

    def get(self, key: str) -> Any:
        return self._data.get(key, DEFAULT_CONFIG.get(key))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    # ---- accessors ----

    @property
    def monitor_folder(self) -> str:
        """Return the watched folder path."""
        return str(self.get("MonitorFolder") or "").strip()

    @monitor_folder.setter
    def monitor_folder(self, value: str) -> None:
        self._data["MonitorFolder"] = value

    @property
    def smtp_password(self) -> str:
        """Return the stored (base64 encoded) SMTP password."""
        return str(self.get("SmtpPassword") or "")

    @smtp_password.setter
    def smtp_password(self, encoded: str) -> None:
        self._data["SmtpPassword"] = encoded

    def is_configured(self) -> bool:
        """Return True when a folder to watch has been set."""
        return bool(self.monitor_folder)

    # ---- value objects ----

    def monitor_config(self) -> MonitorConfig:
        """Build the monitor settings; raises :class:`ConfigError`."""
        if not self.is_configured():
            raise ConfigError("MonitorFolder is not configured")
        minutes = _positive_float(self.get("AlertIntervalMinutes"), "AlertIntervalMinutes")
        seconds = _positive_float(self.get("CheckIntervalSeconds"), "CheckIntervalSeconds")
        return MonitorConfig(
            watched_path=Path(self.monitor_folder).expanduser(),
            alert_threshold=timedelta(minutes=minutes),
            window_start=parse_time_of_day(self.get("MonitorStartTime"), "MonitorStartTime"),
            window_end=parse_time_of_day(self.get("MonitorEndTime"), "MonitorEndTime"),
            tick_interval=timedelta(seconds=seconds),
            create_folder=_as_bool(self.get("CreateMonitorFolder")),
            recursive=_as_bool(self.get("MonitorSubfolders")),
        )

    def mail_settings(self) -> MailSettings:
        """Build the mail transport settings; raises :class:`ConfigError`."""
        server = str(self.get("SmtpServer") or "").strip()
        mail_from = str(self.get("MailFrom") or "").strip()
        mail_to = split_addresses(str(self.get("MailTo") or ""))
        for key, value in (("SmtpServer", server), ("MailFrom", mail_from), ("MailTo", mail_to)):
            if not value:
                raise ConfigError(f"{key} is not configured")
        try:
            port = int(self.get("SmtpPort"))
        except (TypeError, ValueError):
            raise ConfigError(f"SmtpPort must be an integer, got {self.get('SmtpPort')!r}") from None
        if not 0 < port < 65536:
            raise ConfigError(f"SmtpPort out of range: {port}")
        try:
            password = decode_secret(self.smtp_password) if self.smtp_password else ""
        except ValueError as exc:
            raise ConfigError(f"SmtpPassword is not valid base64: {exc}") from exc
        return MailSettings(
            server=server,
            port=port,
            username=str(self.get("SmtpUser") or ""),
            password=password,
            use_tls=_as_bool(self.get("EnableSsl")),
            mail_from=mail_from,
            mail_to=mail_to,
            subject=str(self.get("MailSubject") or DEFAULT_CONFIG["MailSubject"]),
            timeout=_positive_float(self.get("SmtpTimeoutSeconds"), "SmtpTimeoutSeconds"),
        )

    def log_settings(self) -> LogSettings:
        """Build the log sink settings; raises :class:`ConfigError`."""
        raw_path = str(self.get("LogFilePath") or "").strip()
        try:
            max_size = int(self.get("LogMaxSizeBytes"))
        except (TypeError, ValueError):
            raise ConfigError(
                f"LogMaxSizeBytes must be an integer, got {self.get('LogMaxSizeBytes')!r}"
            ) from None
        if max_size <= 0:
            raise ConfigError(f"LogMaxSizeBytes must be greater than zero, got {max_size}")
        path = Path(raw_path).expanduser() if raw_path else get_log_path()
        return LogSettings(path=path, max_size_bytes=max_size)
