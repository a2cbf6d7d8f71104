"""
Interfaces plus in-memory test doubles.

Re-exports the protocols and production implementations, and provides
MockTmux / MockCommandRunner for tests that must not touch a real tmux
server or git repository.
"""

import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .protocols import CommandResult, CommandRunner, TmuxInterface
from .implementations import RealCommandRunner, RealTmux

__all__ = [
    "CommandResult",
    "CommandRunner",
    "TmuxInterface",
    "RealCommandRunner",
    "RealTmux",
    "MockTmux",
    "MockCommandRunner",
]


class MockTmux:
    """In-memory implementation of TmuxInterface for testing."""

    def __init__(self):
        self.sessions: Dict[str, List[Dict]] = {}
        self.environment: Dict[str, Dict[str, str]] = {}
        self.sent_keys: List[Tuple[str, int, str, bool]] = []
        self.pane_content: Dict[Tuple[str, int], str] = {}
        self.pane_commands: Dict[Tuple[str, int], str] = {}
        self.cleared: List[Tuple[str, int]] = []
        # Operation names listed here fail until removed
        self.fail_ops: set = set()
        # Optional hook called on every send_keys, e.g. to make a pane "ready"
        self.on_send_keys: Optional[Callable[[str, int, str], None]] = None
        self.last_error: Optional[str] = None
        self._lock = threading.Lock()

    def _failing(self, op: str) -> bool:
        if op in self.fail_ops:
            self.last_error = f"mock {op} failure"
            return True
        return False

    def has_session(self, session: str) -> bool:
        return session in self.sessions

    def new_session(self, session: str, cwd: Optional[str] = None) -> bool:
        if self._failing("new_session"):
            return False
        if session in self.sessions:
            self.last_error = f"duplicate session: {session}"
            return False
        self.sessions[session] = [{"title": "", "cwd": cwd}]
        self.environment[session] = {}
        return True

    def split_pane(self, session: str, cwd: Optional[str] = None) -> Optional[int]:
        if self._failing("split_pane") or session not in self.sessions:
            return None
        self.sessions[session].append({"title": "", "cwd": cwd})
        return len(self.sessions[session]) - 1

    def select_layout(self, session: str, layout: str = "tiled") -> bool:
        return session in self.sessions

    def kill_session(self, session: str) -> bool:
        if self._failing("kill_session") or session not in self.sessions:
            return False
        del self.sessions[session]
        self.environment.pop(session, None)
        return True

    def list_sessions(self) -> List[str]:
        return list(self.sessions)

    def _pane_exists(self, session: str, pane: int) -> bool:
        return session in self.sessions and 0 <= pane < len(self.sessions[session])

    def set_pane_title(self, session: str, pane: int, title: str) -> bool:
        if self._failing("set_pane_title"):
            return False
        if not self._pane_exists(session, pane):
            self.last_error = f"can't find pane: {pane}"
            return False
        self.sessions[session][pane]["title"] = title
        return True

    def send_keys(self, session: str, pane: int, keys: str, enter: bool = False, literal: bool = False) -> bool:
        if self._failing("send_keys"):
            return False
        if not self._pane_exists(session, pane):
            self.last_error = f"can't find pane: {pane}"
            return False
        with self._lock:
            self.sent_keys.append((session, pane, keys, enter))
        if self.on_send_keys is not None:
            self.on_send_keys(session, pane, keys)
        return True

    def capture_pane(self, session: str, pane: int, lines: int = 100) -> Optional[str]:
        if self._failing("capture_pane") or not self._pane_exists(session, pane):
            return None
        return self.pane_content.get((session, pane), "")

    def clear_pane(self, session: str, pane: int) -> bool:
        if self._failing("clear_pane") or not self._pane_exists(session, pane):
            return False
        self.pane_content[(session, pane)] = ""
        self.cleared.append((session, pane))
        return True

    def pane_current_command(self, session: str, pane: int) -> Optional[str]:
        if not self._pane_exists(session, pane):
            return None
        return self.pane_commands.get((session, pane), "zsh")

    def set_environment(self, session: str, key: str, value: str) -> bool:
        if session not in self.sessions:
            return False
        self.environment[session][key] = value
        return True

    def get_environment(self, session: str, key: str) -> Optional[str]:
        return self.environment.get(session, {}).get(key)

    # Test helpers -------------------------------------------------------

    def set_pane_content(self, session: str, pane: int, content: str) -> None:
        self.pane_content[(session, pane)] = content

    def keys_sent_to(self, pane: int) -> List[str]:
        with self._lock:
            return [k for (_, p, k, _) in self.sent_keys if p == pane]


class MockCommandRunner:
    """Records commands and replays scripted results.

    Responses are matched by the longest registered argument prefix; the
    default response is a successful, empty result.
    """

    def __init__(self):
        self.calls: List[Tuple[List[str], Optional[Path]]] = []
        self._responses: List[Tuple[Tuple[str, ...], CommandResult]] = []

    def respond(self, prefix: Sequence[str], returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self._responses.append((tuple(prefix), CommandResult(prefix, returncode, stdout, stderr)))

    def run(self, cmd, cwd=None, timeout=None, env=None) -> CommandResult:
        cmd = list(cmd)
        self.calls.append((cmd, cwd))
        best = None
        for prefix, result in self._responses:
            if tuple(cmd[:len(prefix)]) == prefix:
                if best is None or len(prefix) > len(best[0]):
                    best = (prefix, result)
        if best is None:
            return CommandResult(cmd, 0, "", "")
        result = best[1]
        return CommandResult(cmd, result.returncode, result.stdout, result.stderr)
