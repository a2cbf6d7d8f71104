"""
Status constants and mappings for expertdeck.

Centralizes expert status values, marker file contents and the display
mappings used by the tower and the CLI.
"""

from enum import Enum
from typing import Tuple


# =============================================================================
# Expert Status Values
# =============================================================================


class ExpertStatus(str, Enum):
    """Observed status of an expert. Derived on every poll, never stored."""

    PENDING = "pending"    # No agent running in the pane
    STARTING = "starting"  # Agent launched, prompt not shown yet
    READY = "ready"        # Agent idle at its prompt
    BUSY = "busy"          # Agent is processing a prompt
    STUCK = "stuck"        # Busy for longer than timeouts.stuck_after
    UNKNOWN = "unknown"    # Marker unreadable or inconsistent

    def __str__(self) -> str:
        return self.value


# =============================================================================
# Status Marker File Contents
# =============================================================================

# Written by the agent hooks into queue/status/expert<N>
MARKER_PENDING = "pending"
MARKER_PROCESSING = "processing"

# Foreground commands that mean "no agent running in this pane"
SHELL_COMMANDS = frozenset({"bash", "zsh", "sh", "fish", "dash", "ksh", "tcsh", "login"})

DEFAULT_CAPTURE_LINES = 50


# =============================================================================
# Status to Symbol+Color (combined for display)
# =============================================================================

STATUS_SYMBOLS = {
    ExpertStatus.PENDING: ("○", "dim"),
    ExpertStatus.STARTING: ("◐", "cyan"),
    ExpertStatus.READY: ("●", "green"),
    ExpertStatus.BUSY: ("◉", "yellow"),
    ExpertStatus.STUCK: ("✖", "red"),
    ExpertStatus.UNKNOWN: ("?", "magenta"),
}


def get_status_symbol(status: ExpertStatus) -> Tuple[str, str]:
    """Get (symbol, color) tuple for an expert status."""
    return STATUS_SYMBOLS.get(status, ("?", "dim"))


def get_status_color(status: ExpertStatus) -> str:
    return get_status_symbol(status)[1]


# =============================================================================
# Status Categorization
# =============================================================================


def is_active_status(status: ExpertStatus) -> bool:
    """An agent process is believed to be running."""
    return status in (ExpertStatus.STARTING, ExpertStatus.READY, ExpertStatus.BUSY, ExpertStatus.STUCK)


def accepts_instructions(status: ExpertStatus) -> bool:
    return status == ExpertStatus.READY
