"""The compose wizard: Body, Subject, To, Cc, Bcc, then send."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from thrum.models import EmailBody, EmailSummary, OutgoingEmail
from thrum.threads import strip_reply_prefix


class ComposeStep(enum.Enum):
    BODY = "Body"
    SUBJECT = "Subject"
    TO = "To"
    CC = "CC"
    BCC = "BCC"

    @property
    def label(self) -> str:
        return self.value


_FIELD_STEPS = {
    ComposeStep.SUBJECT: "subject",
    ComposeStep.TO: "to",
    ComposeStep.CC: "cc",
    ComposeStep.BCC: "bcc",
}

_REQUIRED = {
    ComposeStep.SUBJECT: "Subject cannot be empty",
    ComposeStep.TO: "At least one recipient is required",
}


def reply_subject(subject: str) -> str:
    return f"Re: {strip_reply_prefix(subject)}"


def extract_address(sender: str) -> str:
    """The part between ``<`` and ``>``, or the whole string."""
    start = sender.find("<")
    end = sender.find(">", start + 1)
    if start != -1 and end != -1:
        return sender[start + 1:end].strip()
    return sender.strip()


def quote_message(body: EmailBody) -> str:
    lines = [f"On {body.date}, {body.sender} wrote:"]
    lines.extend(f"> {line}" for line in body.body_text.splitlines())
    return "\n".join(lines)


def split_addresses(value: str) -> list[str]:
    return [addr.strip() for addr in value.split(",") if addr.strip()]


@dataclass
class ComposeState:
    step: ComposeStep = ComposeStep.BODY
    is_reply: bool = False
    body_lines: list[str] = field(default_factory=lambda: [""])
    cursor_row: int = 0
    cursor_col: int = 0
    subject: str = ""
    subject_cursor: int = 0
    to: str = ""
    to_cursor: int = 0
    cc: str = ""
    cc_cursor: int = 0
    bcc: str = ""
    bcc_cursor: int = 0
    in_reply_to: str | None = None
    references: list[str] = field(default_factory=list)
    quoted_text: str = ""
    status_message: str | None = None

    @classmethod
    def blank(cls) -> ComposeState:
        return cls()

    @classmethod
    def reply(cls, original: EmailSummary, quoted_text: str = "") -> ComposeState:
        subject = reply_subject(original.subject)
        to = extract_address(original.sender)
        references = list(original.references)
        if original.message_id and original.message_id not in references:
            references.append(original.message_id)
        return cls(
            is_reply=True,
            subject=subject,
            subject_cursor=len(subject),
            to=to,
            to_cursor=len(to),
            in_reply_to=original.message_id,
            references=references,
            quoted_text=quoted_text,
        )

    @property
    def steps(self) -> list[ComposeStep]:
        if self.is_reply:
            return [s for s in ComposeStep if s is not ComposeStep.SUBJECT]
        return list(ComposeStep)

    @property
    def is_last_step(self) -> bool:
        return self.step is self.steps[-1]

    def advance(self) -> bool:
        """Validate the current step and move to the next one.

        Returns True when the final step was passed and the message should be
        sent. A failed validation leaves the step unchanged and sets
        ``status_message``.
        """
        error = _REQUIRED.get(self.step)
        if error and not self._field_value().strip():
            self.status_message = error
            return False

        self.status_message = None
        if self.is_last_step:
            return True
        steps = self.steps
        self.step = steps[steps.index(self.step) + 1]
        return False

    def to_outgoing(self, sender: str) -> OutgoingEmail:
        body = "\n".join(self.body_lines)
        if self.quoted_text:
            body = f"{body}\n\n{self.quoted_text}"
        return OutgoingEmail(
            sender=sender,
            to=split_addresses(self.to),
            cc=split_addresses(self.cc),
            bcc=split_addresses(self.bcc),
            subject=self.subject,
            body=body,
            in_reply_to=self.in_reply_to,
            references=list(self.references),
        )

    # single-line fields

    def _field_value(self) -> str:
        name = _FIELD_STEPS.get(self.step)
        return getattr(self, name) if name else ""

    def _field(self) -> tuple[str, int]:
        name = _FIELD_STEPS[self.step]
        return getattr(self, name), getattr(self, f"{name}_cursor")

    def _set_field(self, value: str, cursor: int) -> None:
        name = _FIELD_STEPS[self.step]
        setattr(self, name, value)
        setattr(self, f"{name}_cursor", max(0, min(cursor, len(value))))

    # editing

    def insert_char(self, ch: str) -> None:
        if self.step is ComposeStep.BODY:
            line = self.body_lines[self.cursor_row]
            self.body_lines[self.cursor_row] = line[: self.cursor_col] + ch + line[self.cursor_col:]
            self.cursor_col += len(ch)
        else:
            value, cursor = self._field()
            self._set_field(value[:cursor] + ch + value[cursor:], cursor + len(ch))

    def newline(self) -> None:
        if self.step is not ComposeStep.BODY:
            return
        line = self.body_lines[self.cursor_row]
        self.body_lines[self.cursor_row] = line[: self.cursor_col]
        self.body_lines.insert(self.cursor_row + 1, line[self.cursor_col:])
        self.cursor_row += 1
        self.cursor_col = 0

    def backspace(self) -> None:
        if self.step is not ComposeStep.BODY:
            value, cursor = self._field()
            if cursor > 0:
                self._set_field(value[: cursor - 1] + value[cursor:], cursor - 1)
            return

        if self.cursor_col > 0:
            line = self.body_lines[self.cursor_row]
            self.body_lines[self.cursor_row] = line[: self.cursor_col - 1] + line[self.cursor_col:]
            self.cursor_col -= 1
        elif self.cursor_row > 0:
            line = self.body_lines.pop(self.cursor_row)
            self.cursor_row -= 1
            self.cursor_col = len(self.body_lines[self.cursor_row])
            self.body_lines[self.cursor_row] += line

    def delete(self) -> None:
        if self.step is not ComposeStep.BODY:
            value, cursor = self._field()
            self._set_field(value[:cursor] + value[cursor + 1:], cursor)
            return

        line = self.body_lines[self.cursor_row]
        if self.cursor_col < len(line):
            self.body_lines[self.cursor_row] = line[: self.cursor_col] + line[self.cursor_col + 1:]
        elif self.cursor_row + 1 < len(self.body_lines):
            self.body_lines[self.cursor_row] = line + self.body_lines.pop(self.cursor_row + 1)

    def move_left(self) -> None:
        if self.step is not ComposeStep.BODY:
            value, cursor = self._field()
            self._set_field(value, cursor - 1)
        elif self.cursor_col > 0:
            self.cursor_col -= 1
        elif self.cursor_row > 0:
            self.cursor_row -= 1
            self.cursor_col = len(self.body_lines[self.cursor_row])

    def move_right(self) -> None:
        if self.step is not ComposeStep.BODY:
            value, cursor = self._field()
            self._set_field(value, cursor + 1)
        elif self.cursor_col < len(self.body_lines[self.cursor_row]):
            self.cursor_col += 1
        elif self.cursor_row + 1 < len(self.body_lines):
            self.cursor_row += 1
            self.cursor_col = 0

    def move_up(self) -> None:
        if self.step is ComposeStep.BODY and self.cursor_row > 0:
            self.cursor_row -= 1
            self.cursor_col = min(self.cursor_col, len(self.body_lines[self.cursor_row]))

    def move_down(self) -> None:
        if self.step is ComposeStep.BODY and self.cursor_row + 1 < len(self.body_lines):
            self.cursor_row += 1
            self.cursor_col = min(self.cursor_col, len(self.body_lines[self.cursor_row]))

    def move_home(self) -> None:
        if self.step is ComposeStep.BODY:
            self.cursor_col = 0
        else:
            value, _ = self._field()
            self._set_field(value, 0)

    def move_end(self) -> None:
        if self.step is ComposeStep.BODY:
            self.cursor_col = len(self.body_lines[self.cursor_row])
        else:
            value, _ = self._field()
            self._set_field(value, len(value))
