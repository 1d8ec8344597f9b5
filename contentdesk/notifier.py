"""
Outbound notification collaborator.

``Notifier.send`` delivers one message and raises on failure.  Callers
dispatch it as a background task after the response has been sent, so a
slow or failing mail server never affects the request that triggered it.
"""
from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

from contentdesk.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    to: str
    subject: str
    body: str


class Notifier(Protocol):
    async def send(self, message: Message) -> None: ...


class LoggingNotifier:
    """Development notifier: records the message in the log and succeeds."""

    async def send(self, message: Message) -> None:
        logger.info("Notification to %s: %s", message.to, message.subject)


class SmtpNotifier:
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        user: str | None = None,
        password: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.user = user
        self.password = password
        self.timeout = timeout

    def _deliver(self, email: EmailMessage) -> None:
        smtp_cls = smtplib.SMTP_SSL if self.port == 465 else smtplib.SMTP
        with smtp_cls(self.host, self.port, timeout=self.timeout) as smtp:
            if smtp_cls is smtplib.SMTP:
                smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password or "")
            smtp.send_message(email)

    async def send(self, message: Message) -> None:
        email = EmailMessage()
        email["From"] = self.sender
        email["To"] = message.to
        email["Subject"] = message.subject
        email.set_content(message.body)
        await asyncio.to_thread(self._deliver, email)


_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        if settings.NOTIFIER == "smtp":
            _notifier = SmtpNotifier(
                settings.SMTP_HOST,
                settings.SMTP_PORT,
                settings.SMTP_FROM,
                settings.SMTP_USER,
                settings.SMTP_PASSWORD,
            )
        else:
            _notifier = LoggingNotifier()
    return _notifier
