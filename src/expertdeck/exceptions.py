"""
Exception hierarchy for expertdeck.

Bootstrap-time failures derive from InfrastructureError and abort the
session. Everything raised inside a guarded background operation is
captured by the coordinator and surfaced through poll().
"""

from typing import Optional, Sequence


class ExpertdeckError(Exception):
    """Base class for all expertdeck errors."""


class InfrastructureError(ExpertdeckError):
    """The session infrastructure could not be set up. Fatal."""


class TmuxNotFoundError(InfrastructureError):
    """tmux executable is not installed."""


class ClaudeNotFoundError(InfrastructureError):
    """Claude Code CLI is not installed."""


class GitNotFoundError(InfrastructureError):
    """git executable is not installed."""


class GuardRejected(ExpertdeckError):
    """A guarded operation is already in progress for this resource."""

    def __init__(self, resource_key, label: Optional[str] = None):
        self.resource_key = resource_key
        self.label = label
        detail = f" ({label})" if label else ""
        super().__init__(f"Operation already in progress for {resource_key}{detail}")


class ExternalCommandFailed(ExpertdeckError):
    """An external command (git, tmux, agent) exited unsuccessfully."""

    def __init__(
        self,
        message: str,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: str = "",
    ):
        self.command = list(command) if command else []
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        full = message
        if self.stderr:
            full = f"{message}: {self.stderr}"
        super().__init__(full)


class StaleResourceState(ExpertdeckError):
    """A worktree or alias was left inconsistent by an earlier failure."""

    def __init__(self, message: str, hint: Optional[str] = None):
        self.hint = hint
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message)


class InvalidBranchNameError(ExpertdeckError):
    """Feature name cannot be turned into a usable branch name."""

    def __init__(self, name: str, reason: str = "must contain letters or digits"):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid branch name '{name}': {reason}")
