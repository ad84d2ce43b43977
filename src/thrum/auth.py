"""Credential lookup in the system keychain via keyring.

Lookups that fail (no backend, locked keychain) return None so the caller
can report a missing password instead of crashing.
"""

from __future__ import annotations

import keyring
from keyring.errors import KeyringError

SERVICE_NAME = "thrum"


def get_password(user: str) -> str | None:
    try:
        return keyring.get_password(SERVICE_NAME, user)
    except KeyringError:
        return None
