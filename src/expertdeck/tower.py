"""
The tower control loop, independent of any UI.

A tick dispatches queued commands (which only ever start guarded
operations), polls every guarded resource and turns finished operations
into status messages, then classifies every expert. Nothing in tick()
blocks on tmux, git or the agent.

Pane snapshots are refreshed separately by refresh_snapshots(), which
does block and belongs on a worker thread.
"""

import logging
import queue
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Deque, Hashable, List, Optional, Union

import yaml

from .bootstrap import Services
from .coordinator import PollResult, PollStatus, expert_key
from .exceptions import GuardRejected
from .launch_sequence import LaunchOptions, LaunchResult, TaskResult
from .logging_config import get_logger
from .status_constants import ExpertStatus

logger = get_logger("tower")

MAX_MESSAGES = 100

_LOG_LEVELS = {"information": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


class TowerState(str, Enum):
    BOOTSTRAPPING = "bootstrapping"
    RUNNING = "running"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class StatusMessage:
    text: str
    severity: str = "information"   # information | warning | error
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class LaunchCommand:
    expert_id: int
    options: LaunchOptions = LaunchOptions()


@dataclass(frozen=True)
class TaskCommand:
    expert_id: int
    task: str


@dataclass(frozen=True)
class ExpertView:
    """Render-ready state of one expert for a single tick."""

    expert_id: int
    name: str
    role: str
    color: str
    status: ExpertStatus
    branch: Optional[str] = None
    operation: Optional[str] = None


class Tower:
    """Drives guarded operations and observes experts for one session."""

    def __init__(self, services: Services, max_messages: int = MAX_MESSAGES):
        self.services = services
        self.config = services.config
        self.coordinator = services.coordinator
        self.state = TowerState.BOOTSTRAPPING
        self.messages: Deque[StatusMessage] = deque(maxlen=max_messages)
        self._commands: "queue.SimpleQueue[Union[LaunchCommand, TaskCommand]]" = queue.SimpleQueue()
        self._roles = {i: services.role_for(i) for i in self.config.expert_ids}
        self._branches = {i: None for i in self.config.expert_ids}
        self.views: List[ExpertView] = []

    # Lifecycle ----------------------------------------------------------

    def start(self) -> None:
        """Enter RUNNING and report stale worktree assignments."""
        for warning in self.restore_worktree_paths():
            self.notify(warning, "warning")
        for note in self.services.notes:
            self.notify(note)
        self.state = TowerState.RUNNING
        logger.info("Tower running for %s", self.config.session_name)

    def terminate(self) -> None:
        """Stop tracking background work. Agents and git keep running."""
        if self.state == TowerState.TERMINATED:
            return
        in_flight = self.coordinator.in_progress()
        self.coordinator.abandon()
        self.state = TowerState.TERMINATED
        logger.info("Tower terminated, abandoned %d operation(s)", len(in_flight))

    @property
    def running(self) -> bool:
        return self.state == TowerState.RUNNING

    # Messages -----------------------------------------------------------

    def notify(self, text: str, severity: str = "information") -> StatusMessage:
        message = StatusMessage(text, severity)
        self.messages.append(message)
        logger.log(_LOG_LEVELS.get(severity, logging.INFO), text)
        return message

    def drain_messages(self) -> List[StatusMessage]:
        drained = list(self.messages)
        self.messages.clear()
        return drained

    @property
    def last_message(self) -> Optional[StatusMessage]:
        return self.messages[-1] if self.messages else None

    # Guarded operations -------------------------------------------------

    def request_launch(self, expert_id: int, options: Optional[LaunchOptions] = None) -> None:
        """Queue a launch; it is started on the next tick."""
        self._commands.put(LaunchCommand(expert_id, options or LaunchOptions()))

    def start_guarded_launch(self, expert_id: int, options: Optional[LaunchOptions] = None) -> bool:
        """Start a launch/relocation in the background.

        Returns:
            True if started, False if rejected (a notice is recorded)
        """
        if self.state == TowerState.TERMINATED:
            self.notify("Tower is shutting down", "warning")
            return False
        if self.config.get_expert(expert_id) is None:
            self.notify(f"No expert with id {expert_id}", "error")
            return False

        options = options or LaunchOptions()
        name = self.config.get_expert_name(expert_id)
        operation = self.services.guarded_launch(expert_id, options, role=self._roles.get(expert_id))
        try:
            self.coordinator.start(expert_key(expert_id), operation.run, label=options.label)
        except GuardRejected as e:
            self.notify(f"{name}: {options.label} rejected, {e.label or 'another operation'} already in progress", "warning")
            return False

        if options.branch:
            self.notify(f"Creating worktree '{options.branch}' for {name}...")
        elif options.return_to_root:
            self.notify(f"Returning {name} to project root...")
        else:
            self.notify(f"Launching {name}...")
        return True

    def request_task(self, expert_id: int, task: str) -> None:
        """Queue a task for an expert; it is sent on the next tick."""
        self._commands.put(TaskCommand(expert_id, task))

    def start_guarded_task(self, expert_id: int, task: str) -> bool:
        """Send a task in the background, under the expert's guard."""
        if self.state == TowerState.TERMINATED:
            self.notify("Tower is shutting down", "warning")
            return False
        if self.config.get_expert(expert_id) is None:
            self.notify(f"No expert with id {expert_id}", "error")
            return False
        if not task.strip():
            self.notify("Task description is empty", "warning")
            return False

        name = self.config.get_expert_name(expert_id)
        operation = self.services.guarded_task(expert_id, task)
        try:
            self.coordinator.start(expert_key(expert_id), operation.run, label="task")
        except GuardRejected as e:
            self.notify(f"{name}: task rejected, {e.label or 'another operation'} in progress", "warning")
            return False
        self.notify(f"Sending task to {name}...")
        return True

    def poll(self, resource_key: Hashable) -> PollResult:
        """Poll one guarded resource; a terminal outcome becomes a message."""
        result = self.coordinator.poll(resource_key)
        if result.is_terminal:
            self._report(result)
        return result

    def _report(self, result: PollResult) -> None:
        if result.status == PollStatus.FAILED:
            self.notify(f"{result.label or 'Operation'} failed for {result.resource_key}: {result.error}", "error")
            return

        outcome = result.result
        if isinstance(outcome, TaskResult):
            for warning in outcome.warnings:
                self.notify(f"{outcome.expert_name}: {warning}", "warning")
            self.notify(outcome.message, "error" if outcome.error else "information")
            return
        if not isinstance(outcome, LaunchResult):
            self.notify(f"{result.label or 'Operation'} finished for {result.resource_key}")
            return

        self._branches[outcome.expert_id] = outcome.branch
        for warning in outcome.warnings:
            self.notify(f"{outcome.expert_name}: {warning}", "warning")
        if outcome.previous_worktree and (outcome.branch or outcome.reset):
            self.notify(f"{outcome.expert_name}: previous worktree left at {outcome.previous_worktree}", "warning")
        if outcome.error:
            severity = "error"
        elif not outcome.ready:
            severity = "warning"
        else:
            severity = "information"
        self.notify(outcome.message, severity)

    # Ticking ------------------------------------------------------------

    def dispatch_commands(self) -> int:
        dispatched = 0
        while True:
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                return dispatched
            if isinstance(command, TaskCommand):
                self.start_guarded_task(command.expert_id, command.task)
            else:
                self.start_guarded_launch(command.expert_id, command.options)
            dispatched += 1

    def tick(self) -> List[ExpertView]:
        if self.state != TowerState.RUNNING:
            return self.views
        self.dispatch_commands()
        for key in list(self.coordinator.in_progress()):
            self.poll(key)
        self.views = self.classify()
        return self.views

    def classify(self) -> List[ExpertView]:
        in_flight = self.coordinator.in_progress()
        views = []
        for expert_id, status in self.services.detector.classify_all(self.config.expert_ids):
            expert = self.config.get_expert(expert_id)
            slot = in_flight.get(expert_key(expert_id))
            if slot is not None and slot.label != "task":
                status = ExpertStatus.STARTING
            views.append(ExpertView(
                expert_id=expert_id,
                name=expert.name,
                role=self._roles.get(expert_id, expert.role),
                color=expert.color,
                status=status,
                branch=self._branches.get(expert_id),
                operation=slot.label if slot is not None else None,
            ))
        return views

    def refresh_snapshots(self) -> None:
        """Capture every pane into the snapshot cache. Blocking."""
        self.services.snapshots.refresh(self.services.tmux, self.config.expert_ids)

    # Context ------------------------------------------------------------

    def restore_worktree_paths(self) -> List[str]:
        """Load recorded worktree assignments; describe any that are gone."""
        warnings = []
        store = self.services.context_store
        for expert_id in self.config.expert_ids:
            try:
                ctx = store.load_expert_context(self.config.session_hash, expert_id)
            except (yaml.YAMLError, ValueError) as e:
                warnings.append(f"{self.config.get_expert_name(expert_id)}: unreadable context ({e})")
                continue
            if ctx is None or not ctx.worktree_path:
                continue
            if Path(ctx.worktree_path).is_dir():
                self._branches[expert_id] = ctx.worktree_branch
            else:
                warnings.append(
                    f"{ctx.expert_name}: worktree '{ctx.worktree_branch}' no longer exists at {ctx.worktree_path}"
                )
        return warnings

    def set_role(self, expert_id: int, role: str) -> None:
        self.services.assign_role(expert_id, role)
        self._roles[expert_id] = role
        self.notify(f"{self.config.get_expert_name(expert_id)} is now {role}; relaunch to apply")
