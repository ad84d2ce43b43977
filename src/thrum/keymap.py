"""Key names and the key map that routes key presses to handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

ENTER = "enter"
ESCAPE = "escape"
UP = "up"
DOWN = "down"
LEFT = "left"
RIGHT = "right"
HOME = "home"
END = "end"
BACKSPACE = "backspace"
DELETE = "delete"
TAB = "tab"

ALT = "alt"
CTRL = "ctrl"

NO_MODIFIERS: frozenset[str] = frozenset()

KeyHandler = Callable[[], None]


@dataclass
class Binding:
    key: str
    handler: KeyHandler
    aliases: list[str]
    description: str


class KeyMap:
    def __init__(self) -> None:
        self._bindings: dict[str, Binding] = {}
        self._alias_map: dict[str, str] = {}

    def register(
        self,
        key: str,
        handler: KeyHandler,
        aliases: list[str] | None = None,
        description: str = "",
    ) -> None:
        binding = Binding(key=key, handler=handler, aliases=aliases or [], description=description)
        self._bindings[key] = binding
        for alias in binding.aliases:
            self._alias_map[alias] = key

    def get(self, key: str) -> Binding | None:
        if key in self._bindings:
            return self._bindings[key]
        canonical = self._alias_map.get(key)
        if canonical:
            return self._bindings.get(canonical)
        return None

    def dispatch(self, key: str) -> bool:
        """Run the handler bound to ``key``; False when nothing is bound."""
        binding = self.get(key)
        if binding is None:
            return False
        binding.handler()
        return True

    def hints(self, prefix: str = "") -> str:
        """One-line ``key=Description`` summary for the hint bar."""
        return "  ".join(
            f"{prefix}{b.key}={b.description}" for b in self._bindings.values() if b.description
        )
