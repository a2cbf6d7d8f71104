"""
Tmux session and pane management.

One tmux session per expertdeck session; every expert owns one pane of
window 0, addressed by its expert id. Each operation is a synchronous
external call that raises ExternalCommandFailed on failure.
"""

import shlex
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .exceptions import ExternalCommandFailed
from .logging_config import get_logger
from .protocols import TmuxInterface

logger = get_logger("tmux")

ENV_PROJECT_PATH = "EXPERTDECK_PROJECT_PATH"
ENV_NUM_EXPERTS = "EXPERTDECK_NUM_EXPERTS"
ENV_CREATED_AT = "EXPERTDECK_CREATED_AT"


class TmuxManager:
    """Manages the tmux session hosting the experts."""

    def __init__(self, session_name: str, tmux: Optional[TmuxInterface] = None):
        """Initialize the manager.

        Args:
            session_name: Name of the tmux session
            tmux: Optional TmuxInterface for dependency injection (testing)
        """
        self.session_name = session_name
        if tmux is None:
            from .implementations import RealTmux
            tmux = RealTmux()
        self._tmux = tmux

    @property
    def tmux(self) -> TmuxInterface:
        return self._tmux

    def _error(self, action: str) -> ExternalCommandFailed:
        return ExternalCommandFailed(
            f"tmux {action} failed for session '{self.session_name}'",
            command=["tmux", action],
            stderr=self._tmux.last_error or "",
        )

    def session_exists(self) -> bool:
        return self._tmux.has_session(self.session_name)

    def create_session(self, num_panes: int, working_dir: str) -> None:
        """Create the session with one pane per expert, tiled."""
        if not self._tmux.new_session(self.session_name, cwd=working_dir):
            raise self._error("new-session")
        for i in range(1, num_panes):
            if self._tmux.split_pane(self.session_name, cwd=working_dir) is None:
                raise ExternalCommandFailed(
                    f"Failed to create pane {i}",
                    command=["tmux", "split-window"],
                    stderr=self._tmux.last_error or "",
                )
        self._tmux.select_layout(self.session_name, "tiled")
        logger.info("Created tmux session %s with %d panes", self.session_name, num_panes)

    def kill_session(self) -> None:
        if not self._tmux.kill_session(self.session_name):
            raise self._error("kill-session")

    def set_pane_title(self, pane_id: int, title: str) -> None:
        if not self._tmux.set_pane_title(self.session_name, pane_id, title):
            raise self._error(f"select-pane -T (pane {pane_id})")

    def send_keys(self, pane_id: int, keys: str, literal: bool = False) -> None:
        if not self._tmux.send_keys(self.session_name, pane_id, keys, enter=False, literal=literal):
            raise self._error(f"send-keys (pane {pane_id})")

    def send_keys_with_enter(self, pane_id: int, keys: str) -> None:
        """Clear the input line, type the text, press Enter."""
        self.send_keys(pane_id, "C-u")
        self.send_keys(pane_id, keys, literal=True)
        self.send_keys(pane_id, "Enter")

    def change_directory(self, pane_id: int, directory: str) -> None:
        self.send_keys_with_enter(pane_id, f"cd {shlex.quote(directory)}")

    def exec(self, pane_id: int, command: str) -> None:
        """Run a shell command line in the pane."""
        self.send_keys_with_enter(pane_id, command)

    def capture_pane(self, pane_id: int, lines: int = 100) -> str:
        content = self._tmux.capture_pane(self.session_name, pane_id, lines=lines)
        if content is None:
            raise self._error(f"capture-pane (pane {pane_id})")
        return content

    def clear_pane(self, pane_id: int) -> None:
        """Blank the pane and its scrollback so later captures only show new output."""
        if not self._tmux.clear_pane(self.session_name, pane_id):
            raise self._error(f"clear-history (pane {pane_id})")

    def pane_current_command(self, pane_id: int) -> Optional[str]:
        return self._tmux.pane_current_command(self.session_name, pane_id)

    def set_env(self, key: str, value: str) -> None:
        if not self._tmux.set_environment(self.session_name, key, value):
            raise self._error(f"setenv {key}")

    def get_env(self, key: str) -> Optional[str]:
        return self._tmux.get_environment(self.session_name, key)

    def session_info(self) -> "SessionInfo":
        """What the session recorded about itself when it was created."""
        num_experts = self.get_env(ENV_NUM_EXPERTS)
        created_at = self.get_env(ENV_CREATED_AT)
        try:
            created = datetime.fromisoformat(created_at) if created_at else None
        except ValueError:
            created = None
        return SessionInfo(
            session_name=self.session_name,
            project_path=self.get_env(ENV_PROJECT_PATH),
            num_experts=int(num_experts) if num_experts and num_experts.isdigit() else None,
            created_at=created,
        )


@dataclass
class SessionInfo:
    session_name: str
    project_path: Optional[str] = None
    num_experts: Optional[int] = None
    created_at: Optional[datetime] = None


def list_sessions(prefix: str, tmux: Optional[TmuxInterface] = None) -> List[SessionInfo]:
    """Every running session named <prefix>-..., sorted by name."""
    if tmux is None:
        from .implementations import RealTmux
        tmux = RealTmux()
    names = sorted(s for s in tmux.list_sessions() if s.startswith(f"{prefix}-"))
    return [TmuxManager(name, tmux).session_info() for name in names]
