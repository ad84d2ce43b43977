"""Tests for body extraction, snippets and header parsing."""

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from thrum.parser import (
    extract_body_text,
    extract_snippet,
    format_address,
    parse_body,
    parse_references,
    parse_summary,
    strip_html_tags,
    strip_message_id,
    truncate_at_word_boundary,
)


def _build_multipart_email(plain_body="Plain text", html_body="<p>HTML text</p>") -> bytes:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = "Multipart Email"
    msg["From"] = "Alice <alice@example.com>"
    if plain_body is not None:
        msg.attach(MIMEText(plain_body, "plain"))
    if html_body is not None:
        msg.attach(MIMEText(html_body, "html"))
    return msg.as_bytes()


def _build_header(**overrides) -> bytes:
    headers = {
        "From": "Alice Smith <alice@example.com>",
        "To": "Bob <bob@example.com>, carol@example.com",
        "Subject": "Quarterly numbers",
        "Date": "Thu, 20 Feb 2026 10:30:00 +0000",
        "Message-ID": "<m2@example.com>",
        "In-Reply-To": "<m1@example.com>",
        "References": "<m0@example.com> <m1@example.com>",
    }
    headers.update(overrides)
    lines = [f"{k}: {v}" for k, v in headers.items() if v is not None]
    return ("\r\n".join(lines) + "\r\n\r\n").encode()


BODY_TEXT_MULTIPART = (
    "--b1\r\n"
    "Content-Type: text/html; charset=utf-8\r\n"
    "\r\n"
    "<div>Rich <b>version</b></div>\r\n"
    "--b1\r\n"
    "Content-Type: text/plain; charset=utf-8\r\n"
    "\r\n"
    "Plain version\r\n"
    "--b1--\r\n"
).encode()


class TestExtractBodyText:
    def test_plain_text_unchanged(self):
        raw = b"Hello,\n\nSee you tomorrow.\n-- \nAlice"
        assert extract_body_text(raw) == raw.decode()

    def test_invalid_utf8_is_replaced(self):
        assert extract_body_text(b"caf\xe9") == "caf�"

    def test_multipart_prefers_plain(self):
        body = extract_body_text(_build_multipart_email())
        assert body.strip() == "Plain text"
        assert "HTML text" not in body

    def test_multipart_plain_after_html(self):
        body = extract_body_text(BODY_TEXT_MULTIPART)
        assert body == "Plain version"
        assert "Rich" not in body

    def test_multipart_html_only(self):
        body = extract_body_text(_build_multipart_email(plain_body=None, html_body="<h1>Hello</h1><p>World</p>"))
        assert "Hello" in body
        assert "World" in body
        assert "<" not in body

    def test_lf_only_multipart(self):
        raw = b"--xyz\nContent-Type: text/plain\n\nUnix lines\n--xyz--\n"
        assert extract_body_text(raw) == "Unix lines"

    def test_case_insensitive_part_headers(self):
        raw = b"--xyz\r\nCONTENT-TYPE:TEXT/PLAIN\r\n\r\nShouting\r\n--xyz--"
        assert extract_body_text(raw) == "Shouting"

    def test_nested_multipart(self):
        raw = (
            "--outer\r\n"
            'Content-Type: multipart/alternative; boundary="inner"\r\n'
            "\r\n"
            "--inner\r\n"
            "Content-Type: text/plain\r\n"
            "\r\n"
            "Nested plain\r\n"
            "--inner--\r\n"
            "--outer\r\n"
            "Content-Type: application/pdf\r\n"
            "\r\n"
            "%PDF\r\n"
            "--outer--\r\n"
        ).encode()
        assert extract_body_text(raw) == "Nested plain"

    def test_multipart_plain_keeps_angle_brackets(self):
        raw = (
            "--b1\r\n"
            "Content-Type: text/plain\r\n"
            "\r\n"
            "On Mon, Bob <bob@example.com> wrote:\r\n"
            "> a < b and c > d\r\n"
            "--b1--\r\n"
        ).encode()
        assert extract_body_text(raw) == "On Mon, Bob <bob@example.com> wrote:\r\n> a < b and c > d"

    def test_multipart_html_entities_decoded_once(self):
        raw = (
            "--b1\r\n"
            "Content-Type: text/html\r\n"
            "\r\n"
            "<p>Use &lt;div&gt; tags</p>\r\n"
            "--b1--\r\n"
        ).encode()
        assert extract_body_text(raw) == "Use <div> tags"

    def test_single_part_with_headers(self):
        raw = b"Content-Type: text/plain\r\nContent-Transfer-Encoding: 7bit\r\n\r\nJust the body"
        assert extract_body_text(raw) == "Just the body"

    def test_raw_html_document(self):
        raw = b"<!DOCTYPE html><html><body><p>Hi &amp; bye</p></body></html>"
        assert extract_body_text(raw) == "Hi & bye"

    def test_headerless_html_fragment_stripped(self):
        assert extract_body_text(b"Hello <b>there</b>") == "Hello there"


class TestExtractSnippet:
    def test_short_text(self):
        assert extract_snippet(b"Hello   world\n\nagain") == "Hello world again"

    def test_truncates_at_word_boundary(self):
        text = ("word " * 40).encode()
        snippet = extract_snippet(text)
        assert snippet.endswith("...")
        assert len(snippet) <= 103
        assert not snippet[:-3].endswith(" ")
        assert snippet[:-3].split(" ")[-1] == "word"

    def test_hard_truncates_without_spaces(self):
        snippet = extract_snippet(b"a" * 150)
        assert snippet == "a" * 100 + "..."

    def test_never_longer_than_limit(self):
        for length in (0, 99, 100, 101, 250):
            snippet = extract_snippet(("xy " * length).encode())
            assert len(snippet) <= 103

    def test_html_snippet(self):
        snippet = extract_snippet(b"<html><style>p {color: red}</style><p>Visible   text</p></html>")
        assert snippet == "Visible text"

    def test_multipart_snippet(self):
        assert extract_snippet(BODY_TEXT_MULTIPART) == "Plain version"


class TestStripHtmlTags:
    def test_removes_tags(self):
        assert strip_html_tags("<p>Hello <i>world</i></p>") == "Hello world"

    def test_removes_script_and_style(self):
        html = "<STYLE>.x{}</STYLE>Before<script>alert('x')</Script>After"
        assert strip_html_tags(html) == "BeforeAfter"

    def test_unterminated_script_truncates(self):
        assert strip_html_tags("Keep<script>var leaked = 1;") == "Keep"

    def test_entities(self):
        html = "a&nbsp;b &amp; c &lt;d&gt; &quot;e&quot; &#39;f&apos;"
        assert strip_html_tags(html) == "a b & c <d> \"e\" 'f'"

    def test_entities_decoded_once(self):
        assert strip_html_tags("&amp;lt;") == "&lt;"

    def test_unknown_entities_left_alone(self):
        assert strip_html_tags("&copy; 2026") == "&copy; 2026"


class TestTruncate:
    def test_no_truncation_needed(self):
        assert truncate_at_word_boundary("short", 10) == "short"

    def test_exact_limit(self):
        assert truncate_at_word_boundary("x" * 100) == "x" * 100

    def test_word_boundary(self):
        assert truncate_at_word_boundary("hello brave new world", 12) == "hello brave..."


class TestParseReferences:
    def test_two_ids(self):
        assert parse_references("<a@x> <b@x>") == ["a@x", "b@x"]

    def test_bytes_input(self):
        assert parse_references(b"<a@x>\r\n\t<b@x>") == ["a@x", "b@x"]

    def test_no_brackets(self):
        assert parse_references("a@x b@x") == []

    def test_empty_brackets_skipped(self):
        assert parse_references("<> < a@x >") == ["a@x"]

    def test_strip_message_id(self):
        assert strip_message_id("<id@host>") == "id@host"
        assert strip_message_id("id@host") == "id@host"
        assert strip_message_id("") is None
        assert strip_message_id(None) is None


class TestFormatAddress:
    def test_with_name(self):
        assert format_address("Alice Smith <alice@example.com>") == "Alice Smith <alice@example.com>"

    def test_bare_address(self):
        assert format_address("bob@example.com") == "bob@example.com"

    def test_empty(self):
        assert format_address("") == ""


class TestParseSummary:
    def test_fields(self):
        summary = parse_summary(_build_header(), b"Hi team, numbers attached.", uid=42, folder="INBOX", flags={"\\Seen"})

        assert summary.uid == 42
        assert summary.folder == "INBOX"
        assert summary.subject == "Quarterly numbers"
        assert summary.sender == "Alice Smith <alice@example.com>"
        assert summary.to == "Bob <bob@example.com>"
        assert summary.date == "Thu, 20 Feb 2026 10:30:00 +0000"
        assert summary.seen is True
        assert summary.snippet == "Hi team, numbers attached."
        assert summary.message_id == "m2@example.com"
        assert summary.in_reply_to == "m1@example.com"
        assert summary.references == ["m0@example.com", "m1@example.com"]

    def test_missing_headers(self):
        raw = _build_header(Subject=None, **{"Message-ID": None, "In-Reply-To": None, "References": None})
        summary = parse_summary(raw, b"", uid=1, folder="INBOX")

        assert summary.subject == ""
        assert summary.seen is False
        assert summary.message_id is None
        assert summary.in_reply_to is None
        assert summary.references == []


class TestParseBody:
    def test_fields(self):
        body = parse_body(_build_header(), BODY_TEXT_MULTIPART, uid=7)

        assert body.uid == 7
        assert body.subject == "Quarterly numbers"
        assert body.sender == "Alice Smith <alice@example.com>"
        assert body.to == ["Bob <bob@example.com>", "carol@example.com"]
        assert body.body_text == "Plain version"
