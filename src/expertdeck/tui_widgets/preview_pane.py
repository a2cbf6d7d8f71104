"""
Preview pane widget for the tower.

Shows the focused expert's latest pane snapshot.
"""

from typing import List

from rich.text import Text
from textual.containers import ScrollableContainer
from textual.css.query import NoMatches
from textual.widgets import Static

from ..tui_helpers import tail_lines


class PreviewPane(ScrollableContainer):
    """Focused expert's terminal output, following the bottom."""

    MAX_LINES = 200

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.content_lines: List[str] = []
        self.expert_name: str = ""

    def compose(self):
        yield Static(id="preview-content")

    def _build_content(self) -> Text:
        content = Text()
        pane_width = self.size.width if self.size.width > 0 else 80
        header = f"─── {self.expert_name} " if self.expert_name else "─── Preview "
        content.append(header, style="bold cyan")
        content.append("─" * max(0, pane_width - len(header)), style="dim")
        content.append("\n")

        if not self.content_lines:
            content.append("(no output)", style="dim italic")
        else:
            for line in self.content_lines:
                content.append(Text.from_ansi(line))
                content.append("\n")
        return content

    def show(self, expert_name: str, pane_content: str) -> None:
        self.expert_name = expert_name
        self.content_lines = tail_lines(pane_content, self.MAX_LINES)
        try:
            self.query_one("#preview-content", Static).update(self._build_content())
        except NoMatches:
            return
        self.scroll_end(animate=False)
