"""
auth/mailer.py -- Outbound email collaborator.

Delivery is all-or-nothing: send() either hands the message to the transport
or raises MailDeliveryError. There is no partial state and no retry here --
the caller decides what a failure means (forgot-password clears the reset
token so a half-delivered token is never left active).

Two implementations:
  LogMailer  -- development default when SMTP_HOST is empty. Writes the
                message to the log instead of sending it. The body contains
                the reset link, so never enable it in production.
  SmtpMailer -- stdlib smtplib over STARTTLS.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage as MimeMessage
from typing import Protocol

logger = logging.getLogger("trailgate.auth.mailer")


class MailDeliveryError(Exception):
    """The transport did not accept the message."""


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    body: str


class Mailer(Protocol):
    def send(self, message: EmailMessage) -> None: ...


class LogMailer:
    """Logs messages instead of delivering them. Development only."""

    def send(self, message: EmailMessage) -> None:
        logger.info("Email to %s -- %s\n%s", message.to, message.subject, message.body)


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        starttls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self._username = username
        self._password = password
        self.starttls = starttls
        self.timeout = timeout

    def send(self, message: EmailMessage) -> None:
        mime = MimeMessage()
        mime["From"] = self.sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime.set_content(message.body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self._username:
                    smtp.login(self._username, self._password)
                smtp.send_message(mime)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"SMTP delivery to {self.host}:{self.port} failed") from exc
