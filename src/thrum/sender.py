"""SMTP client — builds and sends outgoing messages."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formatdate, make_msgid, parseaddr
from typing import Protocol

from thrum.models import OutgoingEmail, SmtpConfig

logger = logging.getLogger(__name__)

TIMEOUT = 30


class SendError(Exception):
    """Sending failed; the message was not accepted by the server."""


class MailSender(Protocol):
    def send(self, email: OutgoingEmail) -> bytes: ...


def _bracket(msg_id: str) -> str:
    return f"<{msg_id}>"


def build_message(email: OutgoingEmail) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = email.sender
    if email.to:
        msg["To"] = ", ".join(email.to)
    if email.cc:
        msg["Cc"] = ", ".join(email.cc)
    msg["Subject"] = email.subject
    msg["Date"] = formatdate(localtime=True)
    domain = parseaddr(email.sender)[1].partition("@")[2] or None
    msg["Message-ID"] = make_msgid(domain=domain)
    if email.in_reply_to:
        msg["In-Reply-To"] = _bracket(email.in_reply_to)
    if email.references:
        msg["References"] = " ".join(_bracket(r) for r in email.references)
    msg.set_content(email.body)
    return msg


class SMTPSender:
    def __init__(self, config: SmtpConfig) -> None:
        self.config = config

    def send(self, email: OutgoingEmail) -> bytes:
        """Send ``email`` and return the message as transmitted.

        Bcc recipients only appear in the envelope, never in the headers.
        """
        if not email.recipients:
            raise SendError("No recipients")
        msg = build_message(email)
        logger.debug("sending %r to %d recipients", email.subject, len(email.recipients))

        try:
            if self.config.port == 465:
                with smtplib.SMTP_SSL(self.config.host, self.config.port, timeout=TIMEOUT) as server:
                    server.login(self.config.user, self.config.password)
                    server.send_message(msg, to_addrs=email.recipients)
            else:
                with smtplib.SMTP(self.config.host, self.config.port, timeout=TIMEOUT) as server:
                    server.ehlo()
                    server.starttls()
                    server.ehlo()
                    server.login(self.config.user, self.config.password)
                    server.send_message(msg, to_addrs=email.recipients)
        except (smtplib.SMTPException, OSError) as e:
            raise SendError(f"Failed to send: {e}") from e

        logger.debug("message %s sent", msg["Message-ID"])
        return msg.as_bytes()
