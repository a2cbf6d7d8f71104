"""
One-line inputs that act on a single expert.

Each bar stays hidden until opened for an expert; Enter submits what was
typed, Escape (or an empty submit) cancels.
"""

from typing import Optional

from rich.text import Text
from textual import events
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.message import Message
from textual.widgets import Input, Label, Static


class ExpertInputBar(Static):
    """Base class for the worktree, role and task bars."""

    ACTION = ""
    PLACEHOLDER = ""

    target_expert: Optional[int] = None

    class Cancelled(Message):
        pass

    def compose(self) -> ComposeResult:
        with Horizontal(classes="bar-container"):
            yield Label("", classes="bar-label")
            yield Input(classes="bar-input", placeholder=self.PLACEHOLDER)

    def open_for(self, expert_id: int, expert_name: str, value: str = "") -> None:
        self.target_expert = expert_id
        self.query_one(Label).update(Text(f"[{expert_name} → {self.ACTION}] "))
        input_widget = self.query_one(Input)
        input_widget.value = value
        self.add_class("visible")
        input_widget.focus()

    def close(self) -> None:
        self.target_expert = None
        self.remove_class("visible")

    def submitted(self, expert_id: int, value: str) -> Message:
        raise NotImplementedError

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        value = event.value.strip()
        target = self.target_expert
        self.close()
        if target is None or not value:
            self.post_message(self.Cancelled())
            return
        self.post_message(self.submitted(target, value))

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            event.stop()
            self.close()
            self.post_message(self.Cancelled())


class BranchBar(ExpertInputBar):
    """Feature or branch name to relocate an expert to."""

    ACTION = "worktree"
    PLACEHOLDER = "Feature / branch name (Enter to create worktree)..."

    class WorktreeRequested(Message):
        """Posted with the raw feature name the user typed."""

        def __init__(self, expert_id: int, feature: str):
            super().__init__()
            self.expert_id = expert_id
            self.feature = feature

    def submitted(self, expert_id: int, value: str) -> Message:
        return self.WorktreeRequested(expert_id, value)


class RoleBar(ExpertInputBar):
    ACTION = "role"
    PLACEHOLDER = "Role (applies on next launch)..."

    class RoleRequested(Message):
        def __init__(self, expert_id: int, role: str):
            super().__init__()
            self.expert_id = expert_id
            self.role = role

    def submitted(self, expert_id: int, value: str) -> Message:
        return self.RoleRequested(expert_id, value)


class TaskBar(ExpertInputBar):
    """Task text typed into the expert's agent prompt."""

    ACTION = "task"
    PLACEHOLDER = "Describe the task (Enter to send)..."

    class TaskSubmitted(Message):
        def __init__(self, expert_id: int, task: str):
            super().__init__()
            self.expert_id = expert_id
            self.task = task

    def submitted(self, expert_id: int, value: str) -> Message:
        return self.TaskSubmitted(expert_id, value)
