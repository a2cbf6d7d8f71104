"""
TUI widget components for the expertdeck tower.
"""

from .expert_panel import ExpertPanel
from .input_bars import BranchBar, ExpertInputBar, RoleBar, TaskBar
from .preview_pane import PreviewPane

__all__ = [
    "BranchBar",
    "ExpertInputBar",
    "ExpertPanel",
    "PreviewPane",
    "RoleBar",
    "TaskBar",
]
