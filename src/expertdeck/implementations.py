"""
Real implementations of protocol interfaces.

These are production implementations that use libtmux for tmux operations
and subprocess for git.
"""

import os
import subprocess
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import libtmux
from libtmux.exc import LibTmuxException
from libtmux._internal.query_list import ObjectDoesNotExist

from .protocols import CommandResult


class RealTmux:
    """Production implementation of TmuxInterface using libtmux.

    Session objects are cached briefly because libtmux spawns a subprocess
    for every lookup, and the tower captures every pane several times a
    second.
    """

    _CACHE_TTL = 30.0

    def __init__(self, socket_name: Optional[str] = None):
        """Initialize with optional socket name for test isolation.

        If no socket_name is provided, checks EXPERTDECK_TMUX_SOCKET env var.
        """
        self._socket_name = socket_name or os.environ.get("EXPERTDECK_TMUX_SOCKET")
        self._server: Optional[libtmux.Server] = None
        # session_name -> (session_obj, timestamp)
        self._session_cache: Dict[str, tuple] = {}
        self.last_error: Optional[str] = None

    @property
    def server(self) -> libtmux.Server:
        """Lazy-load the tmux server connection."""
        if self._server is None:
            if self._socket_name:
                self._server = libtmux.Server(socket_name=self._socket_name)
            else:
                self._server = libtmux.Server()
        return self._server

    def _fail(self, message: str) -> None:
        self.last_error = message

    def _get_session(self, session: str) -> Optional[libtmux.Session]:
        now = time.time()
        cached = self._session_cache.get(session)
        if cached is not None and now - cached[1] < self._CACHE_TTL:
            return cached[0]
        try:
            sess = self.server.sessions.get(session_name=session)
        except (LibTmuxException, ObjectDoesNotExist) as e:
            self._fail(f"session '{session}' not found: {e}")
            return None
        self._session_cache[session] = (sess, now)
        return sess

    def _get_window(self, session: str) -> Optional[libtmux.Window]:
        sess = self._get_session(session)
        if sess is None:
            return None
        try:
            windows = sess.windows
        except LibTmuxException as e:
            self._session_cache.pop(session, None)
            self._fail(str(e))
            return None
        if not windows:
            self._fail(f"session '{session}' has no windows")
            return None
        return windows[0]

    def _get_pane(self, session: str, pane: int) -> Optional[libtmux.Pane]:
        win = self._get_window(session)
        if win is None:
            return None
        try:
            panes = win.panes
        except LibTmuxException as e:
            self._fail(str(e))
            return None
        if pane < 0 or pane >= len(panes):
            self._fail(f"pane {pane} does not exist in session '{session}'")
            return None
        return panes[pane]

    def invalidate_cache(self, session: Optional[str] = None) -> None:
        if session is None:
            self._session_cache.clear()
        else:
            self._session_cache.pop(session, None)

    def has_session(self, session: str) -> bool:
        try:
            return self.server.has_session(session)
        except LibTmuxException:
            return False

    def new_session(self, session: str, cwd: Optional[str] = None) -> bool:
        kwargs = {"session_name": session, "attach": False}
        if cwd:
            kwargs["start_directory"] = cwd
        try:
            self.server.new_session(**kwargs)
        except LibTmuxException as e:
            self._fail(str(e))
            return False
        self.invalidate_cache(session)
        return True

    def split_pane(self, session: str, cwd: Optional[str] = None) -> Optional[int]:
        win = self._get_window(session)
        if win is None:
            return None
        try:
            kwargs = {"attach": False}
            if cwd:
                kwargs["start_directory"] = cwd
            win.split(**kwargs)
            # tmux refuses further splits once the panes get too small
            win.select_layout("tiled")
            return len(win.panes) - 1
        except LibTmuxException as e:
            self._fail(str(e))
            return None

    def select_layout(self, session: str, layout: str = "tiled") -> bool:
        win = self._get_window(session)
        if win is None:
            return False
        try:
            win.select_layout(layout)
            return True
        except LibTmuxException as e:
            self._fail(str(e))
            return False

    def kill_session(self, session: str) -> bool:
        sess = self._get_session(session)
        if sess is None:
            return False
        try:
            sess.kill()
        except LibTmuxException as e:
            self._fail(str(e))
            return False
        finally:
            self.invalidate_cache(session)
        return True

    def list_sessions(self) -> List[str]:
        try:
            return [s.session_name for s in self.server.sessions]
        except LibTmuxException:
            return []

    def set_pane_title(self, session: str, pane: int, title: str) -> bool:
        p = self._get_pane(session, pane)
        if p is None:
            return False
        proc = p.cmd("select-pane", "-T", title)
        if proc.stderr:
            self._fail("\n".join(proc.stderr))
            return False
        return True

    def send_keys(self, session: str, pane: int, keys: str, enter: bool = False, literal: bool = False) -> bool:
        p = self._get_pane(session, pane)
        if p is None:
            return False
        try:
            p.send_keys(keys, enter=enter, literal=literal)
            return True
        except LibTmuxException as e:
            self._fail(str(e))
            return False

    def capture_pane(self, session: str, pane: int, lines: int = 100) -> Optional[str]:
        p = self._get_pane(session, pane)
        if p is None:
            return None
        try:
            captured = p.capture_pane(start=-lines)
        except LibTmuxException as e:
            self.invalidate_cache(session)
            self._fail(str(e))
            return None
        if isinstance(captured, list):
            return "\n".join(captured)
        return captured

    def clear_pane(self, session: str, pane: int) -> bool:
        p = self._get_pane(session, pane)
        if p is None:
            return False
        for args in (("send-keys", "-R"), ("clear-history",)):
            proc = p.cmd(*args)
            if proc.stderr:
                self._fail("\n".join(proc.stderr))
                return False
        return True

    def pane_current_command(self, session: str, pane: int) -> Optional[str]:
        p = self._get_pane(session, pane)
        if p is None:
            return None
        try:
            p.refresh()
        except LibTmuxException:
            return None
        return p.pane_current_command

    def set_environment(self, session: str, key: str, value: str) -> bool:
        sess = self._get_session(session)
        if sess is None:
            return False
        try:
            sess.set_environment(key, value)
            return True
        except LibTmuxException as e:
            self._fail(str(e))
            return False

    def get_environment(self, session: str, key: str) -> Optional[str]:
        sess = self._get_session(session)
        if sess is None:
            return None
        try:
            value = sess.getenv(key)
        except LibTmuxException:
            return None
        return value if isinstance(value, str) else None


class RealCommandRunner:
    """Production implementation of CommandRunner"""

    def run(
        self,
        cmd: Sequence[str],
        cwd: Optional[Path] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)
        try:
            result = subprocess.run(
                list(cmd),
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=full_env,
            )
        except subprocess.TimeoutExpired as e:
            return CommandResult(cmd, -1, "", f"timed out after {e.timeout}s")
        return CommandResult(cmd, result.returncode, result.stdout, result.stderr)
