"""Turn raw IMAP payloads into summaries, bodies and readable text.

The body extraction is deliberately simple: it looks for a multipart
boundary, prefers a ``text/plain`` part over a ``text/html`` one, and strips
markup with a plain in/out-of-tag scan. A ``>`` inside an attribute value
ends the tag early; that is a known limitation, not something handled here.
No charset or transfer-encoding decoding is performed.
"""

from __future__ import annotations

import email
import email.policy
import re
from email.message import EmailMessage
from email.utils import getaddresses

from thrum.models import EmailBody, EmailSummary

SNIPPET_LENGTH = 100

_BOUNDARY = re.compile(r'boundary="?([^";\s]+)"?', re.IGNORECASE)
_PLAIN_PART = re.compile(r"content-type:\s*text/plain", re.IGNORECASE)
_HTML_PART = re.compile(r"content-type:\s*text/html", re.IGNORECASE)
_NESTED_PART = re.compile(r"content-type:\s*multipart/", re.IGNORECASE)
_CONTENT_TYPE_LINE = re.compile(r"^content-type:", re.IGNORECASE | re.MULTILINE)
_ENTITY = re.compile(r"&(nbsp|amp|lt|gt|quot|#39|apos);")
_ENTITIES = {
    "nbsp": " ",
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "#39": "'",
    "apos": "'",
}
_STRIPPED_BLOCKS = ("style", "script")


def _decode(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def _split_headers(text: str) -> tuple[str, str] | None:
    """Split at the first blank line, accepting CRLF and bare LF."""
    positions = [
        (pos, len(sep))
        for sep in ("\r\n\r\n", "\n\n")
        if (pos := text.find(sep)) != -1
    ]
    if not positions:
        return None
    pos, width = min(positions)
    return text[:pos], text[pos + width:]


def _find_boundary(text: str) -> str | None:
    lines = text.splitlines()
    # BODY[TEXT] of a multipart message starts with the delimiter itself.
    first = lines[0].rstrip() if lines else ""
    if first.startswith("--") and len(first) > 2:
        return first[2:]
    for line in lines:
        if "boundary=" in line.lower():
            match = _BOUNDARY.search(line)
            if match:
                return match.group(1)
    return None


def _trim_delimiter_break(body: str) -> str:
    # The line break before a boundary delimiter belongs to the delimiter.
    if body.endswith("\r\n"):
        return body[:-2]
    if body.endswith("\n"):
        return body[:-1]
    return body


def extract_mime_text(text: str, boundary: str | None = None) -> str | None:
    """Return the preferred text of a multipart payload, or None."""
    boundary = boundary or _find_boundary(text)
    if boundary is None:
        return None

    plain: str | None = None
    html: str | None = None
    for part in text.split(f"--{boundary}"):
        split = _split_headers(part)
        if split is None:
            continue
        headers, body = split
        if _NESTED_PART.search(headers):
            inner = _BOUNDARY.search(headers)
            nested = extract_mime_text(body, inner.group(1) if inner else None)
            if nested is not None and plain is None:
                plain = nested
        elif _PLAIN_PART.search(headers):
            if plain is None:
                plain = _trim_delimiter_break(body)
        elif _HTML_PART.search(headers):
            if html is None:
                html = strip_html_tags(_trim_delimiter_break(body))

    if plain is not None:
        return plain
    return html


def _looks_like_html(text: str) -> bool:
    start = text.lstrip()
    return start.startswith(("<!", "<html", "<HTML"))


def _select_body(text: str) -> str:
    mime_text = extract_mime_text(text)
    if mime_text is not None:
        # parts are already decided: plain verbatim, html stripped once
        return mime_text
    if _looks_like_html(text):
        return strip_html_tags(text)
    if _CONTENT_TYPE_LINE.search(text):
        split = _split_headers(text)
        body = split[1] if split is not None else text
    else:
        body = text

    if "<" in body and ">" in body:
        body = strip_html_tags(body)
    return body


def extract_body_text(raw: bytes | str) -> str:
    """Full readable text of a message body."""
    return _select_body(_decode(raw))


def extract_snippet(raw: bytes | str) -> str:
    """A one-line preview of at most ``SNIPPET_LENGTH`` characters plus ``...``."""
    collapsed = " ".join(_select_body(_decode(raw)).split())
    return truncate_at_word_boundary(collapsed, SNIPPET_LENGTH)


def _remove_blocks(text: str, tag: str) -> str:
    opening = re.compile(rf"<{tag}", re.IGNORECASE)
    closing = re.compile(rf"</{tag}>", re.IGNORECASE)
    while True:
        start = opening.search(text)
        if start is None:
            return text
        end = closing.search(text, start.start())
        if end is None:
            # unterminated block: drop everything from the opening tag on
            return text[: start.start()]
        text = text[: start.start()] + text[end.end():]


def strip_html_tags(html: str) -> str:
    text = html
    for tag in _STRIPPED_BLOCKS:
        text = _remove_blocks(text, tag)

    out: list[str] = []
    in_tag = False
    for ch in text:
        if ch == "<":
            in_tag = True
        elif ch == ">":
            in_tag = False
        elif not in_tag:
            out.append(ch)

    return _ENTITY.sub(lambda m: _ENTITIES[m.group(1)], "".join(out))


def truncate_at_word_boundary(text: str, limit: int = SNIPPET_LENGTH) -> str:
    if len(text) <= limit:
        return text
    truncated = text[:limit]
    last_space = truncated.rfind(" ")
    if last_space != -1:
        return f"{text[:last_space]}..."
    return f"{truncated}..."


def parse_references(raw: bytes | str) -> list[str]:
    """Every ``<id>`` in order, without the brackets."""
    text = _decode(raw)
    refs: list[str] = []
    start: int | None = None
    for i, ch in enumerate(text):
        if ch == "<":
            start = i + 1
        elif ch == ">" and start is not None:
            msg_id = text[start:i].strip()
            if msg_id:
                refs.append(msg_id)
            start = None
    return refs


def strip_message_id(value: str | None) -> str | None:
    if not value:
        return None
    ids = parse_references(value)
    if ids:
        return ids[0]
    return value.strip() or None


def format_address(header: str) -> str:
    """``Name <addr>`` when a display name is present, else the bare address."""
    addresses = getaddresses([header])
    if not addresses:
        return header.strip()
    name, addr = addresses[0]
    if name and addr:
        return f"{name} <{addr}>"
    return addr or header.strip()


def _address_list(header: str | None) -> list[str]:
    if not header:
        return []
    return [
        f"{name} <{addr}>" if name else addr
        for name, addr in getaddresses([str(header)])
        if addr
    ]


def _parse_headers(raw_header: bytes) -> EmailMessage:
    return email.message_from_bytes(raw_header, policy=email.policy.default)


def _header(msg: EmailMessage, name: str) -> str:
    value = msg.get(name)
    return str(value) if value is not None else ""


def parse_summary(
    raw_header: bytes,
    raw_text: bytes,
    uid: int,
    folder: str,
    flags: set[str] | None = None,
) -> EmailSummary:
    msg = _parse_headers(raw_header)
    recipients = _address_list(_header(msg, "To"))
    return EmailSummary(
        uid=uid,
        folder=folder,
        subject=_header(msg, "Subject"),
        sender=format_address(_header(msg, "From")),
        to=recipients[0] if recipients else "",
        date=_header(msg, "Date"),
        seen="\\Seen" in (flags or set()),
        snippet=extract_snippet(raw_text),
        message_id=strip_message_id(_header(msg, "Message-ID")),
        in_reply_to=strip_message_id(_header(msg, "In-Reply-To")),
        references=parse_references(_header(msg, "References")),
    )


def parse_body(raw_header: bytes, raw_text: bytes, uid: int) -> EmailBody:
    msg = _parse_headers(raw_header)
    return EmailBody(
        uid=uid,
        subject=_header(msg, "Subject"),
        sender=format_address(_header(msg, "From")),
        to=_address_list(_header(msg, "To")),
        date=_header(msg, "Date"),
        body_text=extract_body_text(raw_text),
    )
