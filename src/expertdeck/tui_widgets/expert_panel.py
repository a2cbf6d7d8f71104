"""
Expert row widget for the tower.
"""

from typing import Optional

from textual.widgets import Static

from ..tower import ExpertView
from ..tui_helpers import build_expert_line


class ExpertPanel(Static):
    """One expert's line in the list. Re-rendered every tick."""

    def __init__(self, expert_id: int, **kwargs):
        super().__init__("", **kwargs)
        self.expert_id = expert_id
        self.expert_view: Optional[ExpertView] = None
        self.focused_expert = False

    def apply(self, view: ExpertView, focused: bool) -> None:
        if view == self.expert_view and focused == self.focused_expert:
            return
        self.expert_view = view
        self.focused_expert = focused
        self.set_class(focused, "focused")
        self.update(build_expert_line(view, focused))
