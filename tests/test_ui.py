"""Tests for screen rendering."""

from datetime import datetime, timedelta
from email.utils import format_datetime
from unittest.mock import MagicMock

from rich.text import Text

from thrum.compose import ComposeState, ComposeStep
from thrum.models import EmailBody, EmailSummary
from thrum.session import Session
from thrum.ui import (
    compose_hints,
    compose_status,
    format_date,
    inbox_status,
    render_compose,
    render_to_ansi,
    _capture,
    _field_line,
)


def _make_summary(uid, subject, **kwargs):
    return EmailSummary(
        uid=uid,
        folder="INBOX",
        subject=subject,
        sender="Alice <alice@example.com>",
        to="me@example.com",
        date="Fri, 15 Jun 2001 09:30:00 +0000",
        **kwargs,
    )


def _make_session(emails=None):
    if emails is None:
        emails = [
            _make_summary(1, "Hello", message_id="a"),
            _make_summary(2, "Re: Hello", message_id="b", in_reply_to="a", snippet="Sounds good"),
            _make_summary(3, "Quarterly report", seen=True),
        ]
    store = MagicMock()
    store.fetch_email.side_effect = lambda uid, folder: EmailBody(
        uid=uid,
        subject="Hello",
        sender="Alice <alice@example.com>",
        to=["me@example.com"],
        date="Fri, 15 Jun 2001 09:30:00 +0000",
        body_text=f"Body of message {uid}",
    )
    return Session(emails, store, MagicMock(), "me@example.com")


def _plain(text):
    return Text.from_ansi(text).plain


class TestFormatDate:
    def test_unparseable_returned_raw(self):
        assert format_date("not a date") == "not a date"
        assert format_date("") == ""

    def test_older_year(self):
        assert format_date("Fri, 15 Jun 2001 12:00:00 +0000") == "Jun 15, 2001"

    def test_today_shows_time(self):
        now = datetime.now().astimezone().replace(hour=15, minute=5)
        assert format_date(format_datetime(now)) == "3:05 PM"

    def test_this_year_shows_month_and_day(self):
        now = datetime.now().astimezone()
        earlier = now - timedelta(days=40)
        if earlier.year != now.year:
            earlier = now + timedelta(days=40)
            if earlier.year != now.year:
                return
        assert format_date(format_datetime(earlier)) == f"{earlier:%b} {earlier.day}"


class TestInbox:
    def test_rows_and_status(self):
        screen = _plain(render_to_ansi(_make_session(), width=100, height=10))
        lines = screen.split("\n")

        assert len(lines) == 10
        assert "q=Quit" in lines[0]
        assert "Quarterly report" in screen
        assert "Re: Hello (2)" in screen
        assert "Sounds good" in screen
        assert lines[-1].strip() == "1/2 conversations"

    def test_empty_inbox(self):
        screen = _plain(render_to_ansi(_make_session([]), width=80, height=5))
        assert "No messages" in screen

    def test_status_message_shown(self):
        session = _make_session()
        session.status_message = "Deleted 1 message"
        assert inbox_status(session) == "Deleted 1 message"

    def test_pending_prefix_indicator(self):
        session = _make_session()
        session.handle_key("m")
        lines = _plain(render_to_ansi(session, width=80, height=6)).split("\n")
        assert lines[-1].strip() == "m-"

    def test_selection_kept_on_screen(self):
        emails = [_make_summary(i, f"Subject {i}") for i in range(1, 11)]
        session = _make_session(emails)
        session.handle_key("G")
        screen = _plain(render_to_ansi(session, width=80, height=5))
        assert "Subject 3" in screen
        assert "Subject 4" not in screen
        assert "10/10 conversations" in screen


class TestDetail:
    def test_expanded_and_collapsed(self):
        session = _make_session()
        session.handle_key("j")
        session.handle_key("enter")
        screen = _plain(render_to_ansi(session, width=100, height=20))

        assert "Email" in screen
        assert "▼ From: Alice <alice@example.com>" in screen
        assert "Body of message 2" in screen
        assert "▶ Alice <alice@example.com>" in screen
        assert "Body of message 1" not in screen

    def test_scroll_offset_hides_top(self):
        session = _make_session()
        session.handle_key("j")
        session.handle_key("enter")
        session.view.scroll_offset = 2
        screen = _plain(render_to_ansi(session, width=100, height=20))
        assert "▶ Alice" not in screen

    def test_offset_past_end_after_collapse(self):
        session = _make_session()
        session.handle_key("j")
        session.handle_key("enter")
        for _ in range(10):
            session.handle_key("j")
        session.handle_key("enter")
        screen = _plain(render_to_ansi(session, width=100, height=20))
        assert "▶ Alice" in screen


class TestCompose:
    def test_new_message_fields(self):
        state = ComposeState.blank()
        text = _capture_plain(render_compose(state))
        assert "New Email" in text
        assert "Sub:" in text
        assert "BCC:" in text

    def test_reply_hides_subject(self):
        state = ComposeState(is_reply=True, subject="Re: Hello", quoted_text="> quoted line")
        text = _capture_plain(render_compose(state))
        assert "Reply: Re: Hello" in text
        assert "Sub:" not in text
        assert "> quoted line" in text

    def test_hints_and_status(self):
        state = ComposeState.blank()
        assert compose_hints(state) == "Esc=Cancel  Alt+S=Next"
        assert compose_status(state) == "Step: Body"

        state.step = ComposeStep.BCC
        assert compose_hints(state) == "Esc=Cancel  Alt+S=Send"

        state.status_message = "At least one recipient is required"
        assert compose_status(state) == "At least one recipient is required"

    def test_field_line_cursor(self):
        line = _field_line("To:", "abc", 1, active=True)
        assert line.plain == "  To:  abc"

        line = _field_line("To:", "abc", 3, active=True)
        assert line.plain == "  To:  abc "

    def test_full_screen_in_compose(self):
        session = _make_session()
        session.handle_key("c")
        for ch in "Hi":
            session.handle_key(ch)
        lines = _plain(render_to_ansi(session, width=80, height=14)).split("\n")

        assert "Alt+S=Next" in lines[0]
        assert lines[-1].strip() == "Step: Body"
        assert any(line.strip() == "Hi" for line in lines)


def _capture_plain(renderable):
    return _plain("\n".join(_capture(renderable, 80)))
