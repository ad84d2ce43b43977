"""Data models for thrum."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


@dataclass
class EmailSummary:
    """Lightweight per-message metadata used for the inbox listing.

    Message-ids are stored without angle brackets so that ``in_reply_to``,
    ``references`` and ``message_id`` compare directly.
    """

    uid: int
    folder: str
    subject: str
    sender: str
    to: str
    date: str
    seen: bool = False
    snippet: str = ""
    message_id: str | None = None
    in_reply_to: str | None = None
    references: list[str] = field(default_factory=list)


@dataclass
class EmailBody:
    uid: int
    subject: str
    sender: str
    to: list[str]
    date: str
    body_text: str


@dataclass
class OutgoingEmail:
    sender: str
    to: list[str]
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    subject: str = ""
    body: str = ""
    in_reply_to: str | None = None
    references: list[str] = field(default_factory=list)

    @property
    def recipients(self) -> list[str]:
        return self.to + self.cc + self.bcc


@dataclass
class ThreadMessage:
    email_index: int
    body: EmailBody | None = None

    @property
    def expanded(self) -> bool:
        return self.body is not None


@dataclass
class DetailState:
    thread: list[ThreadMessage]
    active_index: int = 0
    scroll_offset: int = 0
    status_message: str | None = None

    @property
    def active(self) -> ThreadMessage:
        return self.thread[self.active_index]

    @property
    def line_count(self) -> int:
        """Lines of the rendered thread before wrapping.

        One title rule, one row per collapsed message, and for an expanded
        message a five-line header block, its body and a trailing blank line.
        """
        count = 1
        for message in self.thread:
            if message.body is None:
                count += 1
            else:
                count += 6 + len(message.body.body_text.splitlines())
        return count


@dataclass
class InboxView:
    """The inbox carries no state of its own; selection lives on the session."""


class ViewTag(enum.Enum):
    INBOX = "inbox"
    DETAIL = "detail"
    COMPOSE = "compose"


@dataclass
class ImapConfig:
    host: str
    user: str
    password: str
    port: int = 993
    folders: list[str] = field(default_factory=lambda: ["INBOX"])
    trash_folder: str = "Trash"
    archive_folder: str = "Archive"
    sent_folder: str | None = None


@dataclass
class SmtpConfig:
    host: str
    user: str
    password: str
    port: int = 587


@dataclass
class SenderConfig:
    address: str
    name: str | None = None

    @property
    def formatted_from(self) -> str:
        if self.name:
            return f"{self.name} <{self.address}>"
        return self.address


@dataclass
class Config:
    imap: ImapConfig
    smtp: SmtpConfig
    sender: SenderConfig
