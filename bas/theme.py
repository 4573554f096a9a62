"""Rich markup styles for stage views."""

from dataclasses import dataclass

from rich.markup import escape


@dataclass(frozen=True)
class Theme:
    title: str = "bold #7d56f4"
    subtle: str = "#767676"
    normal: str = "#dddddd"
    error: str = "bold #ff5f87"
    success: str = "bold #04b575"
    spinner: str = "#ff87d7"
    focused: str = "reverse #7d56f4"
    # Space the host reserves around the stage body (border + padding).
    pad_x: int = 4
    pad_y: int = 2

    def paint(self, style: str, text: str) -> str:
        return f"[{style}]{escape(text)}[/]"

    def heading(self, text: str) -> str:
        return self.paint(self.title, text)

    def hint(self, text: str) -> str:
        return self.paint(self.subtle, text)

    def failure(self, text: str) -> str:
        return self.paint(self.error, text)

    def ok(self, text: str) -> str:
        return self.paint(self.success, text)


DEFAULT_THEME = Theme()
