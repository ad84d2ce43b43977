"""IMAP client — connection, inbox listing, body fetches and message moves."""

from __future__ import annotations

import imaplib
import logging
import re
import time
from typing import Protocol

from thrum.models import EmailBody, EmailSummary, ImapConfig
from thrum.parser import parse_body, parse_summary

logger = logging.getLogger(__name__)

SUMMARY_QUERY = "(UID FLAGS BODY.PEEK[HEADER] BODY.PEEK[TEXT]<0.200>)"
BODY_QUERY = "(UID FLAGS BODY.PEEK[HEADER] BODY.PEEK[TEXT])"

_MESSAGE_START = re.compile(rb"^\d+ \(")


class MailStoreError(Exception):
    """Any failure talking to the mail store."""


class MailStore(Protocol):
    def fetch_inbox(self) -> list[EmailSummary]: ...

    def fetch_email(self, uid: int, folder: str) -> EmailBody: ...

    def mark_seen(self, uid: int, folder: str) -> None: ...

    def delete_email(self, uid: int, folder: str) -> None: ...

    def archive_email(self, uid: int, folder: str) -> None: ...

    def append(self, folder: str, content: bytes) -> None: ...


class IMAPClient:
    def __init__(self, config: ImapConfig) -> None:
        self.config = config
        self._conn: imaplib.IMAP4_SSL | None = None

    def connect(self) -> None:
        logger.debug("connecting to %s:%s", self.config.host, self.config.port)
        try:
            self._conn = imaplib.IMAP4_SSL(self.config.host, self.config.port)
            self._conn.login(self.config.user, self.config.password)
        except (imaplib.IMAP4.error, OSError) as e:
            self._conn = None
            raise MailStoreError(f"Cannot connect to {self.config.host}: {e}") from e
        logger.debug("logged in as %s", self.config.user)

    def disconnect(self) -> None:
        if self._conn:
            try:
                self._conn.logout()
            except (imaplib.IMAP4.error, OSError):
                pass
            self._conn = None

    @property
    def conn(self) -> imaplib.IMAP4_SSL:
        if self._conn is None:
            raise MailStoreError("Not connected to IMAP server")
        return self._conn

    def _command(self, name: str, *args: str) -> list:
        """Run an IMAP command, turning protocol and socket errors into MailStoreError."""
        try:
            status, data = getattr(self.conn, name)(*args)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailStoreError(f"{name.upper()} failed: {e}") from e
        if status != "OK":
            raise MailStoreError(f"{name.upper()} failed: {_describe(data)}")
        return data

    def _uid(self, command: str, *args: str) -> list:
        return self._command("uid", command, *args)

    def select_folder(self, folder: str) -> int:
        data = self._command("select", _quote(folder))
        return int(data[0] or 0)

    def fetch_inbox(self) -> list[EmailSummary]:
        emails: list[EmailSummary] = []
        seen_ids: set[str] = set()

        for folder in self.config.folders:
            if self.select_folder(folder) == 0:
                continue
            data = self._command("fetch", "1:*", SUMMARY_QUERY)
            messages = _group_fetch_response(data)
            logger.debug("fetched %d messages from %s", len(messages), folder)

            for meta, literals in messages:
                summary = parse_summary(
                    literals.get("HEADER", b""),
                    literals.get("TEXT", b""),
                    uid=_extract_uid(meta),
                    folder=folder,
                    flags=_extract_flags(meta),
                )
                if summary.message_id:
                    if summary.message_id in seen_ids:
                        continue
                    seen_ids.add(summary.message_id)
                emails.append(summary)

        logger.debug("inbox holds %d messages", len(emails))
        return emails

    def fetch_email(self, uid: int, folder: str) -> EmailBody:
        self.select_folder(folder)
        data = self._uid("fetch", str(uid), BODY_QUERY)
        messages = _group_fetch_response(data)
        if not messages:
            raise MailStoreError(f"message not found: uid {uid} in {folder}")
        _, literals = messages[0]
        return parse_body(literals.get("HEADER", b""), literals.get("TEXT", b""), uid)

    def mark_seen(self, uid: int, folder: str) -> None:
        logger.debug("marking %s/%s seen", folder, uid)
        self.select_folder(folder)
        self._uid("store", str(uid), "+FLAGS", "(\\Seen)")

    def move_email(self, uid: int, dest_folder: str, src_folder: str) -> None:
        self.select_folder(src_folder)
        self._uid("copy", str(uid), _quote(dest_folder))
        self._uid("store", str(uid), "+FLAGS", "(\\Deleted)")
        self._command("expunge")

    def delete_email(self, uid: int, folder: str) -> None:
        logger.debug("moving %s/%s to %s", folder, uid, self.config.trash_folder)
        self.move_email(uid, self.config.trash_folder, folder)

    def archive_email(self, uid: int, folder: str) -> None:
        logger.debug("moving %s/%s to %s", folder, uid, self.config.archive_folder)
        self.move_email(uid, self.config.archive_folder, folder)

    def append(self, folder: str, content: bytes) -> None:
        logger.debug("appending %d bytes to %s", len(content), folder)
        self._command(
            "append",
            _quote(folder),
            "(\\Seen)",
            imaplib.Time2Internaldate(time.time()),
            content,
        )


def _quote(folder: str) -> str:
    return f'"{folder}"'


def _describe(data: list) -> str:
    parts = [
        item.decode("utf-8", errors="replace") if isinstance(item, bytes) else str(item)
        for item in data or []
        if item is not None
    ]
    return " ".join(parts) or "no response"


def _group_fetch_response(data: list) -> list[tuple[str, dict[str, bytes]]]:
    """Regroup imaplib's flat FETCH response into one entry per message.

    Each entry is the concatenated metadata text (UID, FLAGS, literal
    markers) and the literals keyed by section name (``HEADER``/``TEXT``).
    """
    messages: list[tuple[list[str], dict[str, bytes]]] = []
    for item in data:
        if item is None:
            continue
        meta_raw = item[0] if isinstance(item, tuple) else item
        if not isinstance(meta_raw, bytes):
            continue
        if _MESSAGE_START.match(meta_raw) or not messages:
            messages.append(([], {}))
        meta_parts, literals = messages[-1]
        meta = meta_raw.decode("utf-8", errors="replace")
        meta_parts.append(meta)
        if isinstance(item, tuple) and len(item) >= 2:
            section = "TEXT" if "BODY[TEXT]" in meta.upper() else "HEADER"
            literals[section] = item[1]
    return [(" ".join(meta), literals) for meta, literals in messages]


def _extract_uid(meta: str) -> int:
    match = re.search(r"UID\s+(\d+)", meta)
    return int(match.group(1)) if match else 0


def _extract_flags(meta: str) -> set[str]:
    match = re.search(r"FLAGS\s+\(([^)]*)\)", meta)
    if not match:
        return set()
    return {f.strip() for f in match.group(1).split() if f.strip()}
