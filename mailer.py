"""
Outbound mail for password recovery.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from email.utils import formatdate
from typing import List, Optional, Protocol

from errors import NotificationError

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send(self, to: str, subject: str, body: str) -> None:
        """Deliver a plain-text message or raise NotificationError."""
        ...


@dataclass
class SentMessage:
    to: str
    subject: str
    body: str


@dataclass
class InMemoryMailer:
    """Collects messages instead of sending them."""

    outbox: List[SentMessage] = field(default_factory=list)
    fail_with: Optional[str] = None

    def send(self, to: str, subject: str, body: str) -> None:
        if self.fail_with:
            raise NotificationError(self.fail_with)
        self.outbox.append(SentMessage(to=to, subject=subject, body=body))


@dataclass
class SmtpMailer:
    host: str
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None
    timeout: float = 30.0

    def send(self, to: str, subject: str, body: str) -> None:
        sender = self.sender or self.username or ""
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to
        msg["Date"] = formatdate(localtime=True)

        try:
            if self.port == 465:
                server = smtplib.SMTP_SSL(
                    self.host, self.port, timeout=self.timeout,
                    context=ssl.create_default_context(),
                )
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            with server:
                if self.port != 465:
                    server.starttls(context=ssl.create_default_context())
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(sender, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Sending mail to %s failed: %s", to, exc)
            raise NotificationError(str(exc) or "Failed to send email") from exc
        logger.info("Mail '%s' sent to %s", subject, to)
