from dataclasses import dataclass

from rich.markup import escape

from ..engine.messages import KeyMsg
from ..theme import Theme


@dataclass
class TextField:
    """Single-line text buffer driven by key messages."""

    value: str = ""
    placeholder: str = ""
    limit: int = 100

    def handle_key(self, msg: KeyMsg) -> bool:
        """Apply an editing key. Returns False when the key is not an edit."""
        if msg.key == "backspace":
            self.value = self.value[:-1]
            return True
        if msg.key == "ctrl+u":
            self.value = ""
            return True
        char = msg.character
        if char and len(char) == 1 and char.isprintable():
            if len(self.value) < self.limit:
                self.value += char
            return True
        return False

    def render(self, theme: Theme, focused: bool, width: int = 0) -> str:
        text = self.value or self.placeholder
        style = theme.normal if self.value else theme.subtle
        if width > 4 and len(text) > width - 4:
            text = "…" + text[-(width - 5):]
        cursor = theme.paint(theme.focused, " ") if focused else ""
        marker = theme.paint(theme.title, "> ") if focused else "  "
        return f"{marker}[{style}]{escape(text)}[/]{cursor}"
