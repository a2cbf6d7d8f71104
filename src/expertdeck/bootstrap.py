"""
Session bootstrap.

Turns a project path into a fully wired set of services: checks the
external tools, resolves the git root and session identity, prepares the
data directories and creates (or reattaches to) the tmux session.

Every failure here is an InfrastructureError; nothing concurrent has been
started yet when it is raised.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .claude_manager import ClaudeManager
from .config import DATA_DIR_NAME, SessionConfig, load_config
from .context_models import SessionExpertRoles
from .context_store import ContextStore
from .coordinator import BackgroundTaskCoordinator
from .dependency_check import require_claude, require_git, require_tmux
from .exceptions import ExpertdeckError, InfrastructureError
from .launch_sequence import GuardedLaunch, GuardedTask, LaunchOptions
from .logging_config import get_logger
from .protocols import CommandRunner, TmuxInterface
from .status_detector import ExpertStateDetector, PaneSnapshotCache
from .tmux_manager import ENV_CREATED_AT, ENV_NUM_EXPERTS, ENV_PROJECT_PATH, TmuxManager
from .worktree import WorktreeManager, resolve_git_root

logger = get_logger("bootstrap")


@dataclass
class Services:
    """Everything the tower and the CLI need for one session."""

    config: SessionConfig
    tmux: TmuxManager
    claude: ClaudeManager
    context_store: ContextStore
    worktrees: WorktreeManager
    detector: ExpertStateDetector
    snapshots: PaneSnapshotCache
    coordinator: BackgroundTaskCoordinator
    created: bool = False
    notes: List[str] = field(default_factory=list)

    def _session_roles(self) -> Optional[SessionExpertRoles]:
        try:
            return self.context_store.load_session_roles(self.config.session_hash)
        except (yaml.YAMLError, ValueError) as e:
            logger.warning("Ignoring unreadable role assignments: %s", e)
            return None

    def role_for(self, expert_id: int) -> str:
        roles = self._session_roles()
        if roles is not None:
            assigned = roles.get_role(expert_id)
            if assigned:
                return assigned
        return self.config.get_expert_role(expert_id)

    def assign_role(self, expert_id: int, role: str) -> None:
        roles = self._session_roles()
        if roles is None:
            roles = SessionExpertRoles(self.config.session_hash)
        roles.set_role(expert_id, role)
        self.context_store.save_session_roles(roles)
        logger.info("Assigned role %s to expert%d", role, expert_id)

    def guarded_launch(
        self,
        expert_id: int,
        options: Optional[LaunchOptions] = None,
        role: Optional[str] = None,
        sleep=None,
    ) -> GuardedLaunch:
        kwargs = {"sleep": sleep} if sleep is not None else {}
        return GuardedLaunch(
            self.config,
            expert_id,
            options or LaunchOptions(),
            tmux=self.tmux,
            claude=self.claude,
            context_store=self.context_store,
            worktrees=self.worktrees,
            detector=self.detector,
            role=role or self.role_for(expert_id),
            **kwargs,
        )

    def guarded_task(self, expert_id: int, task: str) -> GuardedTask:
        return GuardedTask(
            self.config,
            expert_id,
            task,
            tmux=self.tmux,
            claude=self.claude,
            context_store=self.context_store,
        )


class SessionBootstrap:
    """Builds Services for a project. Inject tmux/runner for tests."""

    def __init__(
        self,
        project_path: Path,
        num_experts: Optional[int] = None,
        config_data: Optional[Dict[str, Any]] = None,
        tmux: Optional[TmuxInterface] = None,
        runner: Optional[CommandRunner] = None,
        check_dependencies: bool = True,
        claude_poll_interval: float = 0.5,
    ):
        self.project_path = Path(project_path)
        self.num_experts = num_experts
        self.config_data = load_config() if config_data is None else config_data
        self._tmux = tmux
        self._runner = runner
        self.check_dependencies = check_dependencies
        self.claude_poll_interval = claude_poll_interval

    @property
    def tmux_interface(self) -> TmuxInterface:
        if self._tmux is None:
            from .implementations import RealTmux
            self._tmux = RealTmux()
        return self._tmux

    def resolve_config(self, num_experts: Optional[int] = None) -> SessionConfig:
        if not self.project_path.is_dir():
            raise InfrastructureError(f"Project path does not exist: {self.project_path}")
        try:
            git_root = resolve_git_root(self.project_path, self._runner)
        except (ExpertdeckError, OSError) as e:
            raise InfrastructureError(str(e)) from e
        return SessionConfig.from_project(
            git_root,
            num_experts=num_experts if num_experts is not None else self.num_experts,
            config_data=self.config_data,
            data_root=git_root / DATA_DIR_NAME,
        )

    def prepare_data_dirs(self, config: SessionConfig) -> None:
        """Create the data layout and keep it out of `git status`."""
        try:
            for path in (
                config.status_dir,
                config.reports_path,
                config.settings_path,
                config.generated_instructions_path,
                config.worktrees_path,
            ):
                path.mkdir(parents=True, exist_ok=True)
            ignore = config.data_root / ".gitignore"
            if not ignore.exists():
                ignore.write_text("*\n")
        except OSError as e:
            raise InfrastructureError(f"Cannot prepare {config.data_root}: {e}") from e

    def build_services(self, config: SessionConfig) -> Services:
        tmux = TmuxManager(config.session_name, self.tmux_interface)
        snapshots = PaneSnapshotCache()
        context_store = ContextStore(config.queue_path)
        return Services(
            config=config,
            tmux=tmux,
            claude=ClaudeManager(
                tmux,
                claude_command=config.claude_command,
                poll_interval=self.claude_poll_interval,
                env={"EXPERTDECK_SESSION": config.session_name},
            ),
            context_store=context_store,
            worktrees=WorktreeManager(config.project_path, data_root=config.data_root, runner=self._runner),
            detector=ExpertStateDetector(
                config.status_dir, snapshots=snapshots, stuck_after=config.timeouts.stuck_after
            ),
            snapshots=snapshots,
            coordinator=BackgroundTaskCoordinator(max_workers=max(config.num_experts, 1)),
        )

    def _create_tmux_session(self, services: Services) -> None:
        config = services.config
        tmux = services.tmux
        tmux.create_session(config.num_experts, str(config.project_path))
        for expert_id in config.expert_ids:
            tmux.set_pane_title(expert_id, config.get_expert_name(expert_id))
        tmux.set_env(ENV_PROJECT_PATH, str(config.project_path))
        tmux.set_env(ENV_NUM_EXPERTS, str(config.num_experts))
        tmux.set_env(ENV_CREATED_AT, datetime.now().isoformat())

    def run(self, create: bool = True) -> Services:
        """Bootstrap the session.

        Args:
            create: Create the tmux session when it does not exist yet;
                otherwise a missing session is an error

        Raises:
            InfrastructureError: Anything that prevents a usable session
        """
        if self.check_dependencies:
            require_tmux()
            require_git()
        config = self.resolve_config()
        if self.check_dependencies:
            require_claude(config.claude_command)

        exists = self.tmux_interface.has_session(config.session_name)
        if exists:
            recorded = self._recorded_num_experts(config)
            if recorded is not None and recorded != config.num_experts:
                if self.num_experts is not None:
                    raise InfrastructureError(
                        f"Session {config.session_name} is already running with {recorded} experts"
                    )
                config = self.resolve_config(num_experts=recorded)

        self.prepare_data_dirs(config)
        services = self.build_services(config)
        services.context_store.init_session(config.session_hash, config.num_experts)
        services.detector.ensure_status_dir()

        if exists:
            services.notes.append(f"Attached to running session {config.session_name}")
        elif not create:
            raise InfrastructureError(
                f"Session {config.session_name} does not exist. Run 'expertdeck start' first."
            )
        else:
            try:
                self._create_tmux_session(services)
            except ExpertdeckError as e:
                raise InfrastructureError(f"Failed to set up tmux session: {e}") from e
            services.created = True

        logger.info(
            "Session %s ready (%d experts, %s)",
            config.session_name, config.num_experts, "created" if services.created else "attached",
        )
        return services

    def _recorded_num_experts(self, config: SessionConfig) -> Optional[int]:
        recorded = self.tmux_interface.get_environment(config.session_name, ENV_NUM_EXPERTS)
        if recorded and recorded.isdigit():
            return int(recorded)
        return None


def bootstrap(
    project_path: Path,
    num_experts: Optional[int] = None,
    create: bool = True,
    **kwargs,
) -> Services:
    return SessionBootstrap(project_path, num_experts=num_experts, **kwargs).run(create=create)
