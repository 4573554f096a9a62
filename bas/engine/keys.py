from dataclasses import dataclass, replace
from typing import Tuple


@dataclass(frozen=True)
class KeyMap:
    """Key names as reported by Textual's ``events.Key.key``."""

    hard_quit: Tuple[str, ...] = ("ctrl+c",)
    quit: Tuple[str, ...] = ("q",)
    back: Tuple[str, ...] = ("escape", "backspace")
    up: Tuple[str, ...] = ("up", "k", "w")
    down: Tuple[str, ...] = ("down", "j", "s")
    enter: Tuple[str, ...] = ("enter",)
    tab: Tuple[str, ...] = ("tab",)
    shift_tab: Tuple[str, ...] = ("shift+tab",)

    def for_text_input(self) -> "KeyMap":
        """Bindings that leave letters and backspace to a focused text field."""
        return replace(self, up=("up",), down=("down",), back=("escape",), quit=())


def matches(key: str, *bindings: Tuple[str, ...]) -> bool:
    return any(key in binding for binding in bindings)


DEFAULT_KEYS = KeyMap()
