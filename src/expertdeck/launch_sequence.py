"""
The guarded launch sequence.

GuardedLaunch.run() is what the coordinator executes in the background
for an expert: optionally move the expert into a worktree (or back to the
project root), then (re)start its agent, wait for it to come up and hand
it its role instructions. GuardedTask hands a task to an expert whose
agent is already running.

Relocation steps (stopping the old agent, creating the worktree, linking
the data root) raise on failure; the operation then fails as a whole and
the context is left untouched. Everything after that is folded into
LaunchResult.error so the caller always gets a result to display.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

import yaml

from .claude_manager import ClaudeManager
from .config import SessionConfig
from .context_models import Decision, ExpertContext
from .context_store import ContextStore
from .exceptions import ExpertdeckError
from .instructions import build_instruction, write_instruction_file, write_settings_file
from .logging_config import get_structured_logger
from .status_constants import SHELL_COMMANDS
from .status_detector import ExpertStateDetector
from .tmux_manager import TmuxManager
from .worktree import WorktreeManager

log = get_structured_logger("launch")


@dataclass(frozen=True)
class LaunchOptions:
    """What a guarded launch should do besides (re)starting the agent.

    branch: relocate the expert into the worktree for this branch
    return_to_root: move the expert out of its worktree, back to the project root
    fresh: start a new agent conversation even if a resume token is stored
    forget: drop everything stored about the expert (conversation and
        worktree assignment) and restart it in the project root
    """

    branch: Optional[str] = None
    return_to_root: bool = False
    fresh: bool = False
    forget: bool = False
    send_instructions: bool = True

    def __post_init__(self):
        if self.branch and self.return_to_root:
            raise ValueError("branch and return_to_root are mutually exclusive")
        if self.forget and self.relocating:
            raise ValueError("forget cannot be combined with a relocation")

    @property
    def relocating(self) -> bool:
        return bool(self.branch) or self.return_to_root

    @property
    def label(self) -> str:
        if self.branch:
            return f"worktree:{self.branch}"
        if self.return_to_root:
            return "return-to-root"
        if self.forget:
            return "reset"
        return "launch"


@dataclass
class LaunchResult:
    expert_id: int
    expert_name: str
    working_dir: str = ""
    branch: Optional[str] = None
    ready: bool = False
    resumed: bool = False
    instruction_sent: bool = False
    used_general_fallback: bool = False
    previous_worktree: Optional[str] = None
    returned_to_root: bool = False
    reset: bool = False
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def message(self) -> str:
        """One-line summary for the status bar."""
        if self.error:
            return f"{self.expert_name}: launch failed: {self.error}"
        if self.reset:
            if self.ready:
                return f"{self.expert_name} reset"
            return f"{self.expert_name} reset but Claude may still be starting"
        if self.branch:
            if self.ready:
                return f"{self.expert_name} launched in worktree '{self.branch}'"
            return f"Worktree '{self.branch}' created but Claude may still be starting"
        if self.returned_to_root:
            if self.ready:
                return f"{self.expert_name} returned to project root"
            return f"{self.expert_name} returned to project root but Claude may still be starting"
        if self.ready:
            return f"{self.expert_name} {'resumed' if self.resumed else 'launched'}"
        return f"{self.expert_name} launched but Claude may still be starting"


class GuardedLaunch:
    """One launch/relocation of one expert. Run it at most once."""

    def __init__(
        self,
        config: SessionConfig,
        expert_id: int,
        options: LaunchOptions,
        tmux: TmuxManager,
        claude: ClaudeManager,
        context_store: ContextStore,
        worktrees: Optional[WorktreeManager],
        detector: Optional[ExpertStateDetector] = None,
        role: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.expert_id = expert_id
        self.options = options
        self.tmux = tmux
        self.claude = claude
        self.context_store = context_store
        self.worktrees = worktrees
        self.detector = detector
        self.role = role or config.get_expert_role(expert_id)
        self._sleep = sleep
        self.expert_name = config.get_expert_name(expert_id)
        self.log = log.with_context(expert=self.expert_name, op=options.label)

    def run(self) -> LaunchResult:
        result = LaunchResult(self.expert_id, self.expert_name, branch=self.options.branch)
        self.log.info("Launch started")

        worktree_path = self._relocate()

        try:
            self._launch(result, worktree_path)
        except (ExpertdeckError, OSError, yaml.YAMLError, ValueError) as e:
            result.error = str(e)
            self.log.error("Launch failed", error=e)
            return result

        self.log.info("Launch finished", ready=result.ready, dir=result.working_dir)
        return result

    # Steps 1-3: relocation. Errors propagate.

    def _agent_running(self) -> bool:
        command = self.tmux.pane_current_command(self.expert_id)
        return command is not None and command not in SHELL_COMMANDS

    def _stop_agent(self) -> None:
        try:
            self.claude.send_exit(self.expert_id)
        except ExpertdeckError as e:
            self.log.warning("Exit request failed, continuing", error=e)
        self._sleep(self.config.timeouts.relocation_grace)

    def _relocate(self) -> Optional[Path]:
        if not self.options.relocating:
            if self._agent_running():
                self.log.info("Agent already running, restarting it")
                self._stop_agent()
            return None

        self._stop_agent()
        if self.options.return_to_root:
            return None

        if self.worktrees is None:
            raise ExpertdeckError("worktrees are unavailable for this session")
        path = self.worktrees.create_worktree(self.options.branch)
        self.log.info("Worktree ready", path=path)
        self.worktrees.establish_alias(path)
        return path

    # Steps 4-8.

    def _load_context(self, result: LaunchResult) -> ExpertContext:
        try:
            ctx = self.context_store.load_expert_context(self.config.session_hash, self.expert_id)
        except (yaml.YAMLError, ValueError) as e:
            result.warnings.append(f"stored context is unreadable, starting over ({e})")
            self.log.warning("Unreadable context, starting over", error=e)
            ctx = None
        if ctx is None or self.options.forget:
            if ctx is not None and ctx.worktree_path:
                result.previous_worktree = ctx.worktree_path
                result.returned_to_root = True
            ctx = ExpertContext(self.expert_id, self.expert_name, self.config.session_hash)
        ctx.role = self.role
        return ctx

    def _launch(self, result: LaunchResult, worktree_path: Optional[Path]) -> None:
        ctx = self._load_context(result)
        result.reset = self.options.forget

        if worktree_path is not None:
            if ctx.worktree_path and Path(ctx.worktree_path) != Path(worktree_path):
                result.previous_worktree = ctx.worktree_path
                self.log.warning("Leaving previous worktree on disk", previous=ctx.worktree_path)
            ctx.relocate(self.options.branch, worktree_path)
        elif self.options.return_to_root:
            if ctx.worktree_path:
                result.previous_worktree = ctx.worktree_path
            ctx.return_to_root()
            result.returned_to_root = True
        elif ctx.worktree_path and not Path(ctx.worktree_path).is_dir():
            result.warnings.append(f"worktree {ctx.worktree_path} is missing, using project root")
            self.log.warning("Recorded worktree missing, returning to root", path=ctx.worktree_path)
            ctx.return_to_root()
            result.returned_to_root = True

        if self.options.fresh:
            ctx.clear_session()
        self.context_store.save_expert_context(ctx)

        working_dir = ctx.worktree_path or str(self.config.project_path)
        result.working_dir = working_dir
        result.branch = ctx.worktree_branch
        result.resumed = ctx.claude_session_id is not None

        status_file = self.config.status_file_path(self.expert_id)
        settings_file = write_settings_file(self.config.queue_path, self.expert_id, status_file)
        if self.detector is not None:
            self.detector.clear_marker(self.expert_id)

        # Readiness and the session id are read from the pane
        self.tmux.clear_pane(self.expert_id)
        self.claude.launch(
            self.expert_id,
            working_dir,
            resume_token=ctx.claude_session_id,
            settings_file=str(settings_file),
        )

        result.ready = self.claude.wait_for_ready(self.expert_id, self.config.timeouts.agent_ready)
        if not result.ready:
            self.log.warning("Agent not ready in time", timeout=self.config.timeouts.agent_ready)
            return

        if self.options.send_instructions:
            instruction = build_instruction(
                self.config.instructions_path,
                self.role,
                self.expert_id,
                self.expert_name,
                status_file,
                worktree_path=ctx.worktree_path,
                reports_dir=self.config.reports_path,
            )
            result.used_general_fallback = instruction.used_general_fallback
            if instruction.content:
                write_instruction_file(self.config.queue_path, self.expert_id, instruction.content)
                self.claude.send_instruction(self.expert_id, instruction.content)
                result.instruction_sent = True

        session_id = self.claude.capture_session_id(self.expert_id)
        if session_id and session_id != ctx.claude_session_id:
            ctx.set_session_id(session_id)
            self.context_store.save_expert_context(ctx)


@dataclass
class TaskResult:
    expert_id: int
    expert_name: str
    task: str
    delivered: bool = False
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def message(self) -> str:
        if self.error:
            return f"{self.expert_name}: task not sent: {self.error}"
        return f"Task assigned to {self.expert_name}"


class GuardedTask:
    """Type one task into a running expert's prompt and record the assignment."""

    def __init__(
        self,
        config: SessionConfig,
        expert_id: int,
        task: str,
        tmux: TmuxManager,
        claude: ClaudeManager,
        context_store: ContextStore,
    ):
        self.config = config
        self.expert_id = expert_id
        self.task = task
        self.tmux = tmux
        self.claude = claude
        self.context_store = context_store
        self.expert_name = config.get_expert_name(expert_id)
        self.log = log.with_context(expert=self.expert_name, op="task")

    def run(self) -> TaskResult:
        result = TaskResult(self.expert_id, self.expert_name, self.task)
        command = self.tmux.pane_current_command(self.expert_id)
        if command is None or command in SHELL_COMMANDS:
            result.error = "agent is not running, launch it first"
            return result

        try:
            self.claude.send_instruction(self.expert_id, self.task)
        except ExpertdeckError as e:
            result.error = str(e)
            self.log.error("Task delivery failed", error=e)
            return result
        result.delivered = True

        decision = Decision(
            made_by=self.expert_id,
            topic=f"Task Assignment to {self.expert_name}",
            decision=f"Assigned: {self.task[:100]}",
            affects_experts=[self.expert_id],
        )
        try:
            self.context_store.add_decision(self.config.session_hash, decision)
        except (OSError, yaml.YAMLError, ValueError) as e:
            result.warnings.append(f"assignment not recorded ({e})")
            self.log.warning("Could not record task assignment", error=e)
        self.log.info("Task delivered", length=len(self.task))
        return result
