"""
Dependency checking for external executables.

Bootstrap refuses to start a session unless tmux, git and the agent CLI
are all available.
"""

import shutil
import subprocess
from typing import Optional, Tuple

from .exceptions import ClaudeNotFoundError, GitNotFoundError, TmuxNotFoundError


def find_executable(name: str) -> Optional[str]:
    """Find the path to an executable, or None if it is not on PATH."""
    return shutil.which(name)


def _check_version(name: str, version_args: list, timeout: float = 5) -> Tuple[bool, Optional[str], Optional[str]]:
    path = find_executable(name)
    if not path:
        return False, None, None

    try:
        result = subprocess.run(
            [name, *version_args],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        version = result.stdout.strip() if result.returncode == 0 else None
        return True, path, version
    except (subprocess.SubprocessError, OSError):
        return True, path, None


def check_tmux() -> Tuple[bool, Optional[str], Optional[str]]:
    """Check if tmux is available and get its version.

    Returns:
        Tuple of (is_available, path, version)
    """
    return _check_version("tmux", ["-V"])


def check_git() -> Tuple[bool, Optional[str], Optional[str]]:
    return _check_version("git", ["--version"])


def check_claude(command: str = "claude") -> Tuple[bool, Optional[str], Optional[str]]:
    """Check if the agent CLI is available.

    Version output looks like "2.0.75 (Claude Code)".
    """
    return _check_version(command, ["--version"], timeout=10)


def require_tmux() -> str:
    available, path, _ = check_tmux()
    if not available:
        raise TmuxNotFoundError(
            "tmux is required but not found. "
            "Install it with: brew install tmux (macOS) or apt install tmux (Linux)"
        )
    return path


def require_git() -> str:
    available, path, _ = check_git()
    if not available:
        raise GitNotFoundError("git is required but not found on PATH")
    return path


def require_claude(command: str = "claude") -> str:
    """Ensure the agent CLI is available.

    Raises:
        ClaudeNotFoundError: If the command is not found
    """
    available, path, _ = check_claude(command)
    if not available:
        raise ClaudeNotFoundError(
            f"'{command}' is required but not found. "
            "Install Claude Code from: https://claude.ai/claude-code"
        )
    return path
