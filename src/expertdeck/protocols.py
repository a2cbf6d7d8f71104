"""
Protocol definitions for external dependencies.

These interfaces allow dependency injection for testing, enabling us to
swap real implementations (libtmux, subprocess calls to git) with mock
implementations in tests.
"""

from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class TmuxInterface(Protocol):
    """Interface for pane-level tmux operations.

    Every expert lives in one pane of window 0 of the session; panes are
    addressed by their index. Methods return False/None on failure and
    leave a description of the failure in ``last_error``.
    """

    last_error: Optional[str]

    def has_session(self, session: str) -> bool:
        ...

    def new_session(self, session: str, cwd: Optional[str] = None) -> bool:
        ...

    def split_pane(self, session: str, cwd: Optional[str] = None) -> Optional[int]:
        """Split window 0 and return the new pane index."""
        ...

    def select_layout(self, session: str, layout: str = "tiled") -> bool:
        ...

    def kill_session(self, session: str) -> bool:
        ...

    def list_sessions(self) -> List[str]:
        ...

    def set_pane_title(self, session: str, pane: int, title: str) -> bool:
        ...

    def send_keys(self, session: str, pane: int, keys: str, enter: bool = False, literal: bool = False) -> bool:
        """Send keys to a pane.

        Args:
            keys: text or a tmux key name ("Enter", "C-u")
            enter: press Enter after the keys
            literal: send the text literally (tmux send-keys -l)
        """
        ...

    def capture_pane(self, session: str, pane: int, lines: int = 100) -> Optional[str]:
        ...

    def clear_pane(self, session: str, pane: int) -> bool:
        """Reset the visible screen and drop the scrollback of a pane."""
        ...

    def pane_current_command(self, session: str, pane: int) -> Optional[str]:
        """Name of the foreground process in the pane, None if the pane is gone."""
        ...

    def set_environment(self, session: str, key: str, value: str) -> bool:
        ...

    def get_environment(self, session: str, key: str) -> Optional[str]:
        ...


class CommandResult:
    """Outcome of an external command."""

    __slots__ = ("args", "returncode", "stdout", "stderr")

    def __init__(self, args: Sequence[str], returncode: int, stdout: str = "", stderr: str = ""):
        self.args = list(args)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def __repr__(self) -> str:
        return f"CommandResult(args={self.args!r}, returncode={self.returncode})"


@runtime_checkable
class CommandRunner(Protocol):
    """Interface for running non-tmux commands (git)."""

    def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[Path] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """Run a command and capture its output.

        Never raises for a non-zero exit; raises OSError only if the
        executable cannot be started.
        """
        ...
