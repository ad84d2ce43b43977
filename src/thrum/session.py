"""Session state — the mailbox, its threads, and the active view.

``Session.handle_key`` is the only way state changes. Each call runs to
completion, including any mail-store or SMTP round trip, before the next
frame is drawn.

Error policy per call site:

* mark-seen, delete, archive, reply prefetch and the sent-copy append are
  best effort. Local state changes regardless and failures are only logged.
* body fetches on expand leave the message collapsed when they fail.
* send failures keep the compose view open with the error as its status.
"""

from __future__ import annotations

import logging
from typing import Callable

from thrum.client import MailStore, MailStoreError
from thrum.compose import ComposeState, quote_message
from thrum.keymap import (
    ALT,
    BACKSPACE,
    CTRL,
    DELETE,
    DOWN,
    END,
    ENTER,
    ESCAPE,
    HOME,
    LEFT,
    NO_MODIFIERS,
    RIGHT,
    UP,
    KeyMap,
)
from thrum.models import DetailState, EmailBody, EmailSummary, InboxView, ThreadMessage, ViewTag
from thrum.sender import MailSender, SendError
from thrum.threads import build_threads

logger = logging.getLogger(__name__)

View = InboxView | DetailState | ComposeState

ADVANCE_KEY = "s"
LABELS_NOT_IMPLEMENTED = "Labels are not implemented yet"


class Session:
    def __init__(
        self,
        emails: list[EmailSummary],
        mail_client: MailStore,
        send_client: MailSender,
        sender_from: str,
        sent_folder: str | None = None,
    ) -> None:
        # The store lists oldest first; everything here works newest first.
        self.emails: list[EmailSummary] = list(reversed(emails))
        self.mail_client = mail_client
        self.send_client = send_client
        self.sender_from = sender_from
        self.sent_folder = sent_folder

        self.threads: list[list[int]] = build_threads(self.emails)
        self.selected: int | None = 0 if self.threads else None
        self.view: View = InboxView()
        self.status_message: str | None = None
        self.pending_prefix = False
        self.should_quit = False

        self.inbox_keys = KeyMap()
        self.detail_keys = KeyMap()
        self.chord_keys = KeyMap()
        self._register_keys()

    def _register_keys(self) -> None:
        i = self.inbox_keys
        i.register("q", self.quit, description="Quit")
        i.register("j", self.select_next, aliases=[DOWN], description="Down")
        i.register("k", self.select_previous, aliases=[UP], description="Up")
        i.register("g", self.select_first, aliases=[HOME])
        i.register("G", self.select_last, aliases=[END])
        i.register(ENTER, self.open_selected_thread)
        i.register("r", self.reply_to_selected_thread, description="Reply")
        i.register("c", self.start_compose, description="Compose")
        i.register("m", self.arm_prefix)

        d = self.detail_keys
        d.register(ESCAPE, self.close_detail, description="Back")
        d.register("q", self.quit)
        d.register("j", self.detail_next, aliases=[DOWN], description="Down")
        d.register("k", self.detail_previous, aliases=[UP], description="Up")
        d.register(ENTER, self.toggle_active_message, description="Expand")
        d.register("r", self.reply_to_active_message, description="Reply")
        d.register("c", self.start_compose, description="Compose")
        d.register("m", self.arm_prefix)

        c = self.chord_keys
        c.register("d", self.delete_targets, description="Delete")
        c.register("a", self.archive_targets, description="Archive")
        c.register("r", self.mark_targets_seen, description="Read")
        c.register("l", self.show_labels, description="Labels")

    # read-only views for the renderer

    @property
    def view_tag(self) -> ViewTag:
        if isinstance(self.view, DetailState):
            return ViewTag.DETAIL
        if isinstance(self.view, ComposeState):
            return ViewTag.COMPOSE
        return ViewTag.INBOX

    @property
    def selected_thread(self) -> list[int] | None:
        if self.selected is None or not 0 <= self.selected < len(self.threads):
            return None
        return self.threads[self.selected]

    @property
    def inbox_hints(self) -> str:
        return f"{self.inbox_keys.hints()}  {self.chord_keys.hints(prefix='m-')}"

    @property
    def detail_hints(self) -> str:
        return f"{self.detail_keys.hints()}  {self.chord_keys.hints(prefix='m-')}"

    # dispatch

    def handle_key(self, key: str, modifiers: frozenset[str] = NO_MODIFIERS) -> None:
        if self.pending_prefix:
            self.pending_prefix = False
            # unbound second keys just cancel the chord
            self.chord_keys.dispatch(key)
            return

        if isinstance(self.view, ComposeState):
            self._handle_compose_key(self.view, key, modifiers)
            return

        if CTRL in modifiers or ALT in modifiers:
            return
        if isinstance(self.view, DetailState):
            self.detail_keys.dispatch(key)
        else:
            self.status_message = None
            self.inbox_keys.dispatch(key)

    def quit(self) -> None:
        self.should_quit = True

    def arm_prefix(self) -> None:
        self.pending_prefix = True

    def _set_status(self, message: str) -> None:
        if isinstance(self.view, (DetailState, ComposeState)):
            self.view.status_message = message
        else:
            self.status_message = message

    # inbox

    def _select(self, index: int) -> None:
        if not self.threads:
            return
        self.selected = max(0, min(index, len(self.threads) - 1))

    def select_next(self) -> None:
        if self.selected is not None:
            self._select(self.selected + 1)

    def select_previous(self) -> None:
        if self.selected is not None:
            self._select(self.selected - 1)

    def select_first(self) -> None:
        self._select(0)

    def select_last(self) -> None:
        self._select(len(self.threads) - 1)

    def open_selected_thread(self) -> None:
        thread = self.selected_thread
        if not thread:
            return
        newest = thread[-1]
        email = self.emails[newest]
        email.seen = True
        self._best_effort(self.mail_client.mark_seen, "mark seen", email)

        messages = [ThreadMessage(email_index=i) for i in thread]
        messages[-1].body = self._fetch_body(newest)
        self.view = DetailState(thread=messages, active_index=len(messages) - 1)

    def reply_to_selected_thread(self) -> None:
        thread = self.selected_thread
        if not thread:
            return
        self._start_reply(thread[-1], thread, {})

    def start_compose(self) -> None:
        self.view = ComposeState.blank()

    # detail

    def close_detail(self) -> None:
        self.view = InboxView()

    def detail_next(self) -> None:
        state = self.view
        if not isinstance(state, DetailState):
            return
        if state.active_index < len(state.thread) - 1:
            state.active_index += 1
        else:
            # the last line stays on screen
            state.scroll_offset = min(state.scroll_offset + 1, max(0, state.line_count - 1))

    def detail_previous(self) -> None:
        state = self.view
        if not isinstance(state, DetailState):
            return
        if state.active_index > 0:
            state.active_index -= 1
        else:
            state.scroll_offset = max(0, state.scroll_offset - 1)

    def toggle_active_message(self) -> None:
        state = self.view
        if not isinstance(state, DetailState) or not state.thread:
            return
        message = state.active
        if message.expanded:
            message.body = None
        else:
            message.body = self._fetch_body(message.email_index)

    def reply_to_active_message(self) -> None:
        state = self.view
        if not isinstance(state, DetailState) or not state.thread:
            return
        cached = {m.email_index: m.body for m in state.thread if m.body is not None}
        thread = [m.email_index for m in state.thread]
        self._start_reply(state.active.email_index, thread, cached)

    # prefix chord actions

    def _chord_targets(self) -> list[int]:
        if isinstance(self.view, DetailState):
            return [self.view.active.email_index] if self.view.thread else []
        if isinstance(self.view, InboxView):
            return list(self.selected_thread or [])
        return []

    def delete_targets(self) -> None:
        self._remove_targets(self.mail_client.delete_email, "delete", "Deleted")

    def archive_targets(self) -> None:
        self._remove_targets(self.mail_client.archive_email, "archive", "Archived")

    def _remove_targets(
        self,
        action: Callable[[int, str], None],
        label: str,
        done: str,
    ) -> None:
        targets = self._chord_targets()
        if not targets:
            return
        for index in targets:
            self._best_effort(action, label, self.emails[index])

        doomed = set(targets)
        self.emails = [e for i, e in enumerate(self.emails) if i not in doomed]
        self._rebuild_threads()
        self.view = InboxView()
        plural = "" if len(targets) == 1 else "s"
        self.status_message = f"{done} {len(targets)} message{plural}"

    def mark_targets_seen(self) -> None:
        for index in self._chord_targets():
            email = self.emails[index]
            email.seen = True
            self._best_effort(self.mail_client.mark_seen, "mark seen", email)

    def show_labels(self) -> None:
        self._set_status(LABELS_NOT_IMPLEMENTED)

    def _rebuild_threads(self) -> None:
        self.threads = build_threads(self.emails)
        if not self.threads:
            self.selected = None
        elif self.selected is None:
            self.selected = 0
        elif self.selected >= len(self.threads):
            self.selected = len(self.threads) - 1

    # compose

    def _start_reply(self, seed: int, thread: list[int], cached: dict[int, EmailBody]) -> None:
        quoted: list[str] = []
        for index in reversed(thread):
            body = cached.get(index) or self._fetch_body(index)
            if body is not None:
                quoted.append(quote_message(body))
        self.view = ComposeState.reply(self.emails[seed], "\n\n".join(quoted))

    def _handle_compose_key(self, state: ComposeState, key: str, modifiers: frozenset[str]) -> None:
        if key == ESCAPE:
            self.view = InboxView()
            return
        if ALT in modifiers:
            if key.lower() == ADVANCE_KEY and state.advance():
                self._send(state)
            return
        if CTRL in modifiers:
            return

        editors: dict[str, Callable[[], None]] = {
            ENTER: state.newline,
            BACKSPACE: state.backspace,
            DELETE: state.delete,
            LEFT: state.move_left,
            RIGHT: state.move_right,
            UP: state.move_up,
            DOWN: state.move_down,
            HOME: state.move_home,
            END: state.move_end,
        }
        if key in editors:
            editors[key]()
        elif len(key) == 1 and key.isprintable():
            state.insert_char(key)

    def _send(self, state: ComposeState) -> None:
        outgoing = state.to_outgoing(self.sender_from)
        try:
            raw = self.send_client.send(outgoing)
        except SendError as e:
            logger.warning("send failed: %s", e)
            state.status_message = f"Send failed: {e}"
            return

        self.view = InboxView()
        self.status_message = "Message sent"
        if self.sent_folder:
            try:
                self.mail_client.append(self.sent_folder, raw)
            except MailStoreError as e:
                logger.warning("could not save sent copy to %s: %s", self.sent_folder, e)

    # collaborator helpers

    def _fetch_body(self, index: int) -> EmailBody | None:
        email = self.emails[index]
        try:
            return self.mail_client.fetch_email(email.uid, email.folder)
        except MailStoreError as e:
            logger.warning("could not fetch %s/%s: %s", email.folder, email.uid, e)
            return None

    def _best_effort(
        self,
        action: Callable[[int, str], None],
        label: str,
        email: EmailSummary,
    ) -> None:
        try:
            action(email.uid, email.folder)
        except MailStoreError as e:
            logger.warning("%s failed for %s/%s: %s", label, email.folder, email.uid, e)
