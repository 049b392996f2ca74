"""
Outbound notifications (verification emails).

notify() is fire-and-forget: SMTP delivery happens on a background thread
and its failures are only logged. Callers still guard notify() itself, so a
notifier that raises cannot fail the request that triggered it.
"""
from __future__ import annotations

import logging
import random
import smtplib
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    event: str
    recipient: str
    subject: str
    body: str


class Notifier(ABC):
    """Interface: deliver a notification without blocking the caller."""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        ...


class LoggingNotifier(Notifier):
    """Used when no mail server is configured (dev); only logs the event."""

    def notify(self, notification: Notification) -> None:
        logger.info("notification %s for %s: %s", notification.event, notification.recipient, notification.subject)


class RecordingNotifier(Notifier):
    """
    Keeps notifications in memory. Handy for tests and local tooling.
    With fail=True notify() raises, standing in for a broken transport.
    """

    def __init__(self, fail: bool = False):
        self.sent: List[Notification] = []
        self.fail = fail

    def notify(self, notification: Notification) -> None:
        if self.fail:
            raise ConnectionError("notifier unavailable")
        self.sent.append(notification)


class SMTPNotifier(Notifier):
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
        max_attempts: int = 3,
    ):
        self.host = host
        self.port = int(port)
        self.username = username
        self.password = password
        self.sender = sender or username or "no-reply@localhost"
        self.use_tls = use_tls
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))

    def notify(self, notification: Notification) -> None:
        thread = threading.Thread(
            target=self._deliver,
            args=(notification,),
            name=f"notify:{notification.event}",
            daemon=True,
        )
        thread.start()

    def _build_message(self, notification: Notification) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = notification.recipient
        msg["Subject"] = notification.subject
        msg.set_content(notification.body)
        return msg

    def _send(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)

    def _deliver(self, notification: Notification) -> None:
        msg = self._build_message(notification)
        for attempt in range(self.max_attempts):
            try:
                self._send(msg)
                logger.info("Sent %s email to %s", notification.event, notification.recipient)
                return
            except (smtplib.SMTPException, OSError) as exc:
                logger.warning(
                    "Attempt %d/%d to send %s email to %s failed: %s",
                    attempt + 1,
                    self.max_attempts,
                    notification.event,
                    notification.recipient,
                    exc,
                )
                if attempt + 1 < self.max_attempts:
                    # Exponential backoff with jitter
                    time.sleep(min(6.0, 0.5 * (2 ** attempt)) + random.random() * 0.25)
        logger.error("Giving up on %s email to %s", notification.event, notification.recipient)


def build_notifier(config) -> Notifier:
    """Pick SMTP when MAIL_HOST is configured, otherwise log only."""
    host = config.get("MAIL_HOST")
    if not host:
        return LoggingNotifier()
    return SMTPNotifier(
        host=host,
        port=config.get("MAIL_PORT", 587),
        username=config.get("MAIL_USERNAME"),
        password=config.get("MAIL_PASSWORD"),
        sender=config.get("MAIL_SENDER"),
        use_tls=config.get("MAIL_USE_TLS", True),
    )


def verification_notification(email: str, first_name: str, token: str, verify_url_base: str) -> Notification:
    link = f"{verify_url_base.rstrip('/')}?token={token}"
    return Notification(
        event="account.verification",
        recipient=email,
        subject="Please verify your email address",
        body=(
            f"Hi {first_name},\n\n"
            f"Click the following link to verify your email: {link}\n\n"
            "If you did not create an account you can ignore this message.\n"
        ),
    )
