"""
Alert mail for Folder Monitor.

Builds the "no new files" notification and hands it to a mail transport.
Dispatch is synchronous and single-shot: a failed send is logged at
Error and reported back to the caller, never raised and never retried.
"""

from __future__ import annotations

import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timedelta
from email.message import EmailMessage
from typing import Protocol

from folder_monitor import __app_name__, __version__
from folder_monitor.bridge import TraceBridge
from folder_monitor.config import MailSettings
from folder_monitor.platform_utils import get_host_name

_SMTPS_PORT = 465


@dataclass(frozen=True)
class AlertEvent:
    """Snapshot taken when the staleness threshold is breached."""

    fired_at: datetime
    folder_path: str
    threshold: timedelta
    time_since_last_activity: timedelta
    last_activity_time: datetime

    @property
    def elapsed_minutes(self) -> float:
        return self.time_since_last_activity.total_seconds() / 60

    @property
    def threshold_minutes(self) -> float:
        return self.threshold.total_seconds() / 60


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    error: str = ""


class MailTransport(Protocol):
    """Sends one plain-text mail.

    Implementations either raise on failure or return ``False``.
    """

    def send(self, subject: str, body: str) -> bool | None:
        ...


class SmtpMailTransport:
    """:class:`MailTransport` that talks to an SMTP server via smtplib."""

    def __init__(self, settings: MailSettings):
        self._settings = settings

    def build_message(self, subject: str, body: str) -> EmailMessage:
        s = self._settings
        msg = EmailMessage()
        msg["From"] = s.mail_from
        msg["To"] = ", ".join(s.mail_to)
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def send(self, subject: str, body: str) -> bool:
        s = self._settings
        msg = self.build_message(subject, body)
        if s.use_tls and s.port == _SMTPS_PORT:
            client: smtplib.SMTP = smtplib.SMTP_SSL(
                s.server, s.port, timeout=s.timeout, context=ssl.create_default_context()
            )
        else:
            client = smtplib.SMTP(s.server, s.port, timeout=s.timeout)
        with client:
            if s.use_tls and s.port != _SMTPS_PORT:
                client.starttls(context=ssl.create_default_context())
            if s.username:
                client.login(s.username, s.password)
            client.send_message(msg)
        return True


def format_subject(subject: str, fired_at: datetime) -> str:
    """Return ``[ALERT] <subject> - <yyyy-MM-dd HH:mm>``."""
    return f"[ALERT] {subject} - {fired_at:%Y-%m-%d %H:%M}"


def format_body(event: AlertEvent, host_name: str, version: str) -> str:
    """Return the plain-text alert body."""
    return (
        f"No new files have arrived in {event.folder_path} "
        f"during the last {event.threshold_minutes:g} minutes.\n"
        "\n"
        f"Alert time:          {event.fired_at:%Y-%m-%d %H:%M:%S}\n"
        f"Monitored folder:    {event.folder_path}\n"
        f"Alert threshold:     {event.threshold_minutes:g} minutes\n"
        f"Minutes since file:  {event.elapsed_minutes:.1f}\n"
        f"Last file activity:  {event.last_activity_time:%Y-%m-%d %H:%M:%S}\n"
        f"Host:                {host_name}\n"
        f"{__app_name__} version: {version}\n"
    )


class AlertDispatcher:
    """
    Formats and sends alert mails.

    Parameters
    ----------
    transport : MailTransport
        Already-configured mail capability.
    subject : str
        Configured subject text; wrapped as ``[ALERT] ... - <time>``.
    log : TraceBridge
        Where send progress and failures are reported.
    host_name : str, optional
        Machine identifier for the body (default: this host).
    version : str, optional
        Component version for the body.
    """

    def __init__(
        self,
        transport: MailTransport,
        subject: str,
        log: TraceBridge,
        host_name: str | None = None,
        version: str = __version__,
    ):
        self._transport = transport
        self._subject = subject
        self._log = log.for_source("alerts")
        self._host_name = host_name or get_host_name()
        self._version = version

    def dispatch(self, event: AlertEvent) -> DispatchResult:
        """Send one alert for *event*; never raises."""
        subject = format_subject(self._subject, event.fired_at)
        body = format_body(event, self._host_name, self._version)
        self._log.info(f"Sending alert email for {event.folder_path}")
        try:
            sent = self._transport.send(subject, body)
        except Exception as exc:
            self._log.exception("Failed to send alert email", exc)
            return DispatchResult(False, str(exc) or type(exc).__name__)
        if sent is False:
            self._log.error("Failed to send alert email: transport reported failure")
            return DispatchResult(False, "transport reported failure")
        self._log.info("Alert email sent successfully.")
        return DispatchResult(True)
