"""Configuration — reads ~/.config/thrum.toml.

Example::

    [imap]
    host = "imap.example.com"
    port = 993
    user = "me@example.com"
    pass = "`pass show mail/imap`"
    folders = ["INBOX", "Sent"]

    [smtp]
    host = "smtp.example.com"
    port = 587
    user = "me@example.com"
    pass = "hunter2"

    [sender]
    from = "me@example.com"
    name = "Me"

A password wrapped in backticks is run as a shell command and its output is
used instead. An empty or missing password is looked up in the system
keychain.
"""

from __future__ import annotations

import logging
import subprocess
import tomllib
from pathlib import Path

from thrum.auth import get_password
from thrum.models import Config, ImapConfig, SenderConfig, SmtpConfig

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config"
CONFIG_FILE = CONFIG_DIR / "thrum.toml"


class ConfigError(Exception):
    """The configuration file is missing, malformed or incomplete."""


def expand_command(value: str) -> str:
    """Run a backtick-wrapped value as a shell command and return its stdout."""
    trimmed = value.strip()
    if len(trimmed) < 2 or not (trimmed.startswith("`") and trimmed.endswith("`")):
        return value

    cmd = trimmed[1:-1]
    logger.debug("running password command")
    try:
        result = subprocess.run(["sh", "-c", cmd], capture_output=True, text=True)
    except OSError as e:
        raise ConfigError(f"failed to execute password command: {e}") from e
    if result.returncode != 0:
        raise ConfigError(
            f"password command failed ({result.returncode}): {result.stderr.strip()}"
        )
    return result.stdout.strip()


def load_config(path: Path | None = None) -> dict:
    config_path = path or CONFIG_FILE
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {config_path}") from e
    except OSError as e:
        raise ConfigError(f"failed to read config file: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"failed to parse config file: {e}") from e


def _section(config: dict, name: str) -> dict:
    section = config.get(name)
    if not isinstance(section, dict):
        raise ConfigError(f"missing [{name}] section")
    return section


def _require(section: dict, name: str, key: str) -> str:
    value = section.get(key)
    if not value:
        raise ConfigError(f"missing {name}.{key}")
    return str(value)


def _password(section: dict, name: str) -> str:
    user = _require(section, name, "user")
    raw = str(section.get("pass", ""))
    password = expand_command(raw) if raw else ""
    if not password:
        password = get_password(user) or ""
    if not password:
        raise ConfigError(f"no password for {name}.user {user!r} in config or keychain")
    return password


def parse_config(config: dict) -> Config:
    imap = _section(config, "imap")
    smtp = _section(config, "smtp")
    sender = _section(config, "sender")

    folders = imap.get("folders", ["INBOX"])
    if isinstance(folders, str):
        folders = [folders]

    return Config(
        imap=ImapConfig(
            host=_require(imap, "imap", "host"),
            port=int(imap.get("port", 993)),
            user=_require(imap, "imap", "user"),
            password=_password(imap, "imap"),
            folders=list(folders),
            trash_folder=imap.get("trash", "Trash"),
            archive_folder=imap.get("archive", "Archive"),
            sent_folder=imap.get("sent"),
        ),
        smtp=SmtpConfig(
            host=_require(smtp, "smtp", "host"),
            port=int(smtp.get("port", 587)),
            user=_require(smtp, "smtp", "user"),
            password=_password(smtp, "smtp"),
        ),
        sender=SenderConfig(
            address=_require(sender, "sender", "from"),
            name=sender.get("name") or None,
        ),
    )


def load(path: Path | None = None) -> Config:
    return parse_config(load_config(path))
