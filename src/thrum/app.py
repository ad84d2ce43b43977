"""Main application — startup, the full-screen key loop, and the thrum command."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
from prompt_toolkit import Application
from prompt_toolkit.application import get_app
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.key_binding import KeyBindings, KeyPressEvent
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl

from thrum import __version__, config, keymap, ui
from thrum.client import IMAPClient, MailStoreError
from thrum.config import ConfigError
from thrum.sender import SMTPSender
from thrum.session import Session

logger = logging.getLogger(__name__)

LOG_FILE = "thrum.log"

# prompt_toolkit key names -> session key names
NAMED_KEYS = {
    "enter": keymap.ENTER,
    "escape": keymap.ESCAPE,
    "up": keymap.UP,
    "down": keymap.DOWN,
    "left": keymap.LEFT,
    "right": keymap.RIGHT,
    "home": keymap.HOME,
    "end": keymap.END,
    "backspace": keymap.BACKSPACE,
    "delete": keymap.DELETE,
    "tab": keymap.TAB,
}

ALT_ONLY = frozenset({keymap.ALT})


class App:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.application: Application = Application(
            layout=Layout(Window(FormattedTextControl(self._render), wrap_lines=False)),
            key_bindings=self._key_bindings(),
            full_screen=True,
        )

    def _render(self) -> ANSI:
        size = get_app().output.get_size()
        return ANSI(ui.render_to_ansi(self.session, size.columns, size.rows))

    def _feed(self, event: KeyPressEvent, key: str, modifiers: frozenset[str] = keymap.NO_MODIFIERS) -> None:
        logger.debug("key %r %s", key, sorted(modifiers))
        self.session.handle_key(key, modifiers)
        if self.session.should_quit:
            event.app.exit()

    def _key_bindings(self) -> KeyBindings:
        kb = KeyBindings()

        # Later registrations win over Keys.Any, so it goes first.
        @kb.add(Keys.Any)
        def _any(event: KeyPressEvent) -> None:
            self._feed(event, event.data)

        @kb.add("escape", Keys.Any)
        def _alt(event: KeyPressEvent) -> None:
            self._feed(event, event.key_sequence[-1].data, ALT_ONLY)

        for name, key in NAMED_KEYS.items():
            kb.add(name)(lambda event, key=key: self._feed(event, key))

        @kb.add("c-c")
        def _interrupt(event: KeyPressEvent) -> None:
            event.app.exit()

        return kb

    def run(self) -> None:
        self.application.run()


def _configure_logging(debug: bool) -> None:
    if debug:
        logging.basicConfig(
            filename=LOG_FILE,
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    else:
        logging.getLogger("thrum").addHandler(logging.NullHandler())


def run(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config file (default: ~/.config/thrum.toml)"),
    ] = None,
    debug: Annotated[bool, typer.Option("--debug", help=f"Write a trace log to {LOG_FILE}")] = False,
) -> None:
    """A terminal email client."""
    _configure_logging(debug)

    try:
        settings = config.load(config_path)
    except ConfigError as e:
        ui.print_error(str(e))
        raise typer.Exit(1) from e

    imap = IMAPClient(settings.imap)
    try:
        with ui.console.status("[info]Connecting...[/info]", spinner="dots"):
            imap.connect()
        with ui.console.status("[info]Fetching inbox...[/info]", spinner="dots"):
            emails = imap.fetch_inbox()
    except MailStoreError as e:
        imap.disconnect()
        ui.print_error(str(e))
        raise typer.Exit(1) from e

    logger.debug("thrum %s starting with %d messages", __version__, len(emails))
    session = Session(
        emails,
        imap,
        SMTPSender(settings.smtp),
        settings.sender.formatted_from,
        sent_folder=settings.imap.sent_folder,
    )
    try:
        App(session).run()
    finally:
        imap.disconnect()


def main() -> None:
    typer.run(run)
