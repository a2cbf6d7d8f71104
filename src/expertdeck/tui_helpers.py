"""
Pure formatting helpers for the tower UI.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from rich.text import Text

from .status_constants import ExpertStatus, get_status_symbol
from .tower import ExpertView, StatusMessage


def format_ago(dt: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Format datetime as time ago string.

    Returns:
        String like "30s ago", "5m ago", "2.5h ago", or "never"
    """
    if not dt:
        return "never"
    if now is None:
        now = datetime.now()
    delta = (now - dt).total_seconds()
    if delta < 60:
        return f"{int(delta)}s ago"
    elif delta < 3600:
        return f"{int(delta // 60)}m ago"
    else:
        return f"{delta / 3600:.1f}h ago"


def truncate_name(name: str, max_len: int = 12) -> str:
    """Truncate and pad name for display."""
    return name[:max_len].ljust(max_len)


def severity_style(severity: str) -> str:
    return {"error": "bold red", "warning": "yellow"}.get(severity, "green")


def build_expert_line(view: ExpertView, focused: bool = False, name_width: int = 12) -> Text:
    """One row of the expert list: marker, symbol, id, name, role, status, location."""
    symbol, color = get_status_symbol(view.status)
    line = Text()
    line.append("▶ " if focused else "  ", style="bold cyan")
    line.append(f"{symbol} ", style=color)
    line.append(f"[{view.expert_id}] ", style="dim")
    line.append(truncate_name(view.name, name_width), style=f"bold {view.color}")
    line.append(f" {truncate_name(view.role, 10)} ", style="dim")
    line.append(f"{view.status.value:<8}", style=color)
    if view.operation:
        line.append(f"  ⟳ {view.operation}", style="cyan")
    if view.branch:
        line.append(f"  ⎇ {view.branch}", style="magenta")
    return line


def build_message_line(message: Optional[StatusMessage]) -> Text:
    if message is None:
        return Text("")
    line = Text()
    line.append(f"{message.timestamp.strftime('%H:%M:%S')} ", style="dim")
    line.append(message.text, style=severity_style(message.severity))
    return line


def count_by_status(views: List[ExpertView]) -> List[Tuple[ExpertStatus, int]]:
    """Non-zero status counts in display order."""
    counts = []
    for status in ExpertStatus:
        n = sum(1 for v in views if v.status == status)
        if n:
            counts.append((status, n))
    return counts


def build_summary_line(session_name: str, views: List[ExpertView]) -> Text:
    line = Text()
    line.append(session_name, style="bold")
    for status, n in count_by_status(views):
        symbol, color = get_status_symbol(status)
        line.append(f"  {symbol} {n} {status.value}", style=color)
    return line


def tail_lines(content: str, max_lines: int) -> List[str]:
    """Last max_lines non-trailing-blank lines of a pane capture."""
    lines = content.rstrip("\n").split("\n") if content else []
    while lines and not lines[-1].strip():
        lines.pop()
    return lines[-max_lines:]
