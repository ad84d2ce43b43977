"""Rich-based rendering — turns a Session into a screen of ANSI text.

Nothing in here mutates the session.
"""

from __future__ import annotations

import io
from datetime import datetime
from email.utils import parsedate_to_datetime

from rich.console import Console, Group, RenderableType
from rich.markup import escape
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from thrum.compose import ComposeState, ComposeStep
from thrum.models import DetailState
from thrum.session import Session

THEME = Theme(
    {
        "hint": "bold",
        "unread": "bold white",
        "read": "grey70",
        "marker": "bold blue",
        "count": "cyan",
        "snippet": "grey42",
        "date": "green",
        "sender": "bold",
        "selected": "white on grey30",
        "label": "bold",
        "active": "yellow",
        "cursor": "black on white",
        "quoted": "grey42",
        "success": "bold green",
        "error": "bold red",
        "info": "bold cyan",
        "muted": "dim",
    }
)

console = Console(theme=THEME)

DETAIL_INDENT = "  "


def print_error(message: str) -> None:
    console.print(f"  [error]✗[/error] {escape(message)}")


def format_date(raw: str) -> str:
    """Today shows the time, this year shows month and day, older adds the year."""
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        return raw
    if parsed is None:
        return raw

    local = parsed.astimezone()
    today = datetime.now().astimezone().date()
    if local.date() == today:
        return f"{local.hour % 12 or 12}:{local:%M %p}"
    if local.year == today.year:
        return f"{local:%b} {local.day}"
    return f"{local:%b} {local.day}, {local.year}"


# inbox


def render_inbox(session: Session) -> RenderableType:
    if not session.threads:
        return Text("  No messages", style="muted")

    table = Table.grid(padding=(0, 1), expand=True)
    table.add_column(width=2, no_wrap=True)
    table.add_column(width=20, no_wrap=True)
    table.add_column(ratio=1, no_wrap=True)
    table.add_column(width=12, justify="right", no_wrap=True)

    for row, thread in enumerate(session.threads):
        email = session.emails[thread[-1]]
        style = "read" if email.seen else "unread"
        if row == session.selected:
            style = "selected"

        marker = Text("  " if email.seen else "● ", style="marker")
        subject = Text(email.subject or "(no subject)", overflow="ellipsis", no_wrap=True)
        if len(thread) > 1:
            subject.append(f" ({len(thread)})", style="count")
        if email.snippet:
            subject.append(f" {email.snippet}", style="snippet")

        table.add_row(
            marker,
            Text(email.sender, overflow="ellipsis", no_wrap=True),
            subject,
            Text(format_date(email.date), style="date"),
            style=style,
        )
    return table


def inbox_status(session: Session) -> str:
    if session.status_message:
        return session.status_message
    if not session.threads:
        return ""
    selected = (session.selected or 0) + 1
    return f"{selected}/{len(session.threads)} conversations"


# detail


def render_detail(session: Session, state: DetailState) -> RenderableType:
    lines: list[Text] = []
    for i, message in enumerate(state.thread):
        email = session.emails[message.email_index]
        is_active = i == state.active_index
        style = "selected" if is_active else ""

        if message.body is not None:
            body = message.body
            header = Text("▼ From: ", style=style or "label")
            header.append(body.sender, style=style)
            lines.append(header)
            lines.append(Text(f"  To:   {', '.join(body.to)}", style=style))
            lines.append(Text(f"  Date: {format_date(body.date)}", style=style))
            lines.append(Text(f"  Subj: {body.subject}", style=style))
            lines.append(Text(""))
            lines.extend(Text(f"{DETAIL_INDENT}{line}") for line in body.body_text.splitlines())
            lines.append(Text(""))
        else:
            row = Text("▶ ", style=style or "read")
            row.append(email.sender, style=style or "sender")
            row.append(f" — {format_date(email.date)} — {email.subject}", style=style or "read")
            lines.append(row)

    return Group(Rule(Text(" Email "), style="muted"), *lines)


# compose


def _field_line(label: str, value: str, cursor: int, active: bool) -> Text:
    line = Text(f"  {label:<5}", style="label")
    if not active:
        line.append(value)
        return line
    line.append(value[:cursor], style="active")
    line.append(value[cursor:cursor + 1] or " ", style="cursor")
    line.append(value[cursor + 1:], style="active")
    return line


def render_compose(state: ComposeState) -> RenderableType:
    title = f" Reply: {state.subject} " if state.is_reply else " New Email "
    lines: list[Text] = []

    if not state.is_reply:
        lines.append(
            _field_line("Sub:", state.subject, state.subject_cursor, state.step is ComposeStep.SUBJECT)
        )
    lines.append(_field_line("To:", state.to, state.to_cursor, state.step is ComposeStep.TO))
    lines.append(_field_line("CC:", state.cc, state.cc_cursor, state.step is ComposeStep.CC))
    lines.append(_field_line("BCC:", state.bcc, state.bcc_cursor, state.step is ComposeStep.BCC))
    lines.append(Text("  " + "─" * 41, style="muted"))

    for row, body_line in enumerate(state.body_lines):
        text = Text(DETAIL_INDENT)
        if state.step is ComposeStep.BODY and row == state.cursor_row:
            col = state.cursor_col
            text.append(body_line[:col])
            text.append(body_line[col:col + 1] or " ", style="cursor")
            text.append(body_line[col + 1:])
        else:
            text.append(body_line)
        lines.append(text)

    if state.quoted_text:
        lines.append(Text(""))
        lines.extend(
            Text(f"{DETAIL_INDENT}{quoted}", style="quoted") for quoted in state.quoted_text.splitlines()
        )

    return Group(Rule(Text(title), style="muted"), *lines)


def compose_hints(state: ComposeState) -> str:
    action = "Send" if state.is_last_step else "Next"
    return f"Esc=Cancel  Alt+S={action}"


def compose_status(state: ComposeState) -> str:
    return state.status_message or f"Step: {state.step.label}"


# screen


def _capture(renderable: RenderableType, width: int) -> list[str]:
    buffer = io.StringIO()
    capture = Console(
        file=buffer,
        force_terminal=True,
        color_system="256",
        width=max(width, 20),
        theme=THEME,
    )
    capture.print(renderable)
    return buffer.getvalue().splitlines()


def _bar(text: str, style: str = "") -> Text:
    return Text(f" {text}", style=style, no_wrap=True, overflow="ellipsis")


def render_to_ansi(session: Session, width: int, height: int) -> str:
    """Render the whole screen: hint bar, main area, status bar."""
    view = session.view
    body_height = max(0, height - 2)
    offset = 0

    if isinstance(view, DetailState):
        hints = session.detail_hints
        main = render_detail(session, view)
        status = view.status_message or ""
        offset = view.scroll_offset
    elif isinstance(view, ComposeState):
        hints = compose_hints(view)
        main = render_compose(view)
        status = compose_status(view)
    else:
        hints = session.inbox_hints
        main = render_inbox(session)
        status = inbox_status(session)
        if session.selected is not None:
            # keep the selected row on screen
            offset = max(0, session.selected - body_height + 1)

    if session.pending_prefix:
        status = "m-"

    rendered = _capture(main, width)
    # collapsing a message can leave the offset past the end
    offset = min(offset, max(0, len(rendered) - 1))
    main_lines = rendered[offset:][:body_height]
    main_lines.extend([""] * (body_height - len(main_lines)))

    screen = _capture(_bar(hints, "hint"), width) + main_lines + _capture(_bar(status), width)
    return "\n".join(screen)
