"""
Expert action methods for the tower.

Launch, relocate into a worktree, return to the project root, assign a
role and send a task. Launches and tasks are only queued as guarded
operations; the work happens off the UI thread and its outcome shows up
on a later tick.
"""

import time
from typing import Callable

from ..exceptions import InvalidBranchNameError
from ..launch_sequence import LaunchOptions
from ..status_constants import is_active_status
from ..worktree import sanitize_branch_name


class ExpertActionsMixin:
    """Mixin providing expert actions for TowerApp."""

    CONFIRM_TIMEOUT = 3.0

    def _confirm_double_press(self, action_key: str, message: str, callback: Callable[[], None]) -> None:
        """Run callback on the second press of the same action for the same expert."""
        now = time.time()
        pending = self._pending_confirmations.pop(action_key, None)
        if pending is not None:
            expert_id, pressed_at = pending
            if expert_id == self.focused_expert and now - pressed_at < self.CONFIRM_TIMEOUT:
                callback()
                return
        self._pending_confirmations[action_key] = (self.focused_expert, now)
        self.notify(message, severity="warning", timeout=int(self.CONFIRM_TIMEOUT))

    def _focused_is_active(self) -> bool:
        view = self._view_for(self.focused_expert)
        return view is not None and is_active_status(view.status)

    def _queue(self, options: LaunchOptions) -> None:
        self.tower.request_launch(self.focused_expert, options)
        self.run_tick()

    def action_launch_expert(self) -> None:
        """Launch (or restart) the focused expert's agent."""
        name = self.tower.config.get_expert_name(self.focused_expert)
        if self._focused_is_active():
            self._confirm_double_press(
                "launch",
                f"{name} is running. Press l again to restart it",
                lambda: self._queue(LaunchOptions()),
            )
            return
        self._queue(LaunchOptions())

    def action_fresh_launch(self) -> None:
        """Restart the focused expert without resuming its conversation."""
        name = self.tower.config.get_expert_name(self.focused_expert)
        self._confirm_double_press(
            "fresh",
            f"Press L again to restart {name} with a fresh conversation",
            lambda: self._queue(LaunchOptions(fresh=True)),
        )

    def action_open_worktree_bar(self) -> None:
        self._open_bar("#branch-bar")

    def on_branch_bar_worktree_requested(self, message) -> None:
        try:
            branch = sanitize_branch_name(message.feature)
        except InvalidBranchNameError as e:
            self.notify(str(e), severity="error")
            return
        self.tower.request_launch(message.expert_id, LaunchOptions(branch=branch))
        self.set_focus(None)
        self.run_tick()

    def action_open_role_bar(self) -> None:
        view = self._view_for(self.focused_expert)
        self._open_bar("#role-bar", view.role if view is not None else "")

    def on_role_bar_role_requested(self, message) -> None:
        self.tower.set_role(message.expert_id, message.role)
        self.set_focus(None)
        self.run_tick()

    def action_open_task_bar(self) -> None:
        if not self._focused_is_active():
            name = self.tower.config.get_expert_name(self.focused_expert)
            self.notify(f"{name} is not running. Press l to launch it first", severity="warning")
            return
        self._open_bar("#task-bar")

    def on_task_bar_task_submitted(self, message) -> None:
        self.tower.request_task(message.expert_id, message.task)
        self.set_focus(None)
        self.run_tick()

    def on_expert_input_bar_cancelled(self, message) -> None:
        self.set_focus(None)

    def _open_bar(self, selector: str, value: str = "") -> None:
        from ..tui_widgets import ExpertInputBar
        for bar in self.query(ExpertInputBar):
            bar.close()
        bar = self.query_one(selector, ExpertInputBar)
        bar.open_for(self.focused_expert, self.tower.config.get_expert_name(self.focused_expert), value)

    def action_return_to_root(self) -> None:
        view = self._view_for(self.focused_expert)
        name = self.tower.config.get_expert_name(self.focused_expert)
        if view is None or not view.branch:
            self.notify(f"{name} is already in the project root", severity="information")
            return
        self._confirm_double_press(
            "return",
            f"Press r again to move {name} out of '{view.branch}'",
            lambda: self._queue(LaunchOptions(return_to_root=True)),
        )
