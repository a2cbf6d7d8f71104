"""
Unit tests for TUI helper functions.

These are pure functions that can be tested without the Textual app.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from expertdeck.status_constants import ExpertStatus
from expertdeck.tower import ExpertView, StatusMessage
from expertdeck.tui_helpers import (
    build_expert_line,
    build_message_line,
    build_summary_line,
    count_by_status,
    format_ago,
    severity_style,
    tail_lines,
    truncate_name,
)


def view(expert_id=0, status=ExpertStatus.READY, **kwargs):
    defaults = dict(name="architect", role="architect", color="red")
    defaults.update(kwargs)
    return ExpertView(expert_id=expert_id, status=status, **defaults)


class TestFormatAgo:
    """Test format_ago function"""

    def test_none_returns_never(self):
        assert format_ago(None) == "never"

    def test_seconds(self):
        now = datetime(2024, 1, 1, 12, 0, 0)
        assert format_ago(now - timedelta(seconds=30), now) == "30s ago"

    def test_minutes(self):
        now = datetime(2024, 1, 1, 12, 0, 0)
        assert format_ago(now - timedelta(minutes=5), now) == "5m ago"

    def test_hours(self):
        now = datetime(2024, 1, 1, 12, 0, 0)
        assert format_ago(now - timedelta(hours=2, minutes=30), now) == "2.5h ago"


class TestTruncateName:
    def test_short_padded(self):
        assert truncate_name("abc", 6) == "abc   "

    def test_long_truncated(self):
        assert truncate_name("abcdefghij", 4) == "abcd"


class TestExpertLine:
    """Test the expert row"""

    def test_contains_id_name_status(self):
        text = build_expert_line(view(expert_id=2, name="backend")).plain
        assert "[2]" in text
        assert "backend" in text
        assert "ready" in text

    def test_focus_marker(self):
        assert build_expert_line(view(), focused=True).plain.startswith("▶")
        assert not build_expert_line(view(), focused=False).plain.startswith("▶")

    def test_branch_and_operation(self):
        text = build_expert_line(view(branch="feature-x", operation="relocate")).plain
        assert "⎇ feature-x" in text
        assert "⟳ relocate" in text


class TestSummaryAndMessages:
    def test_count_by_status_skips_zero(self):
        views = [view(0), view(1, ExpertStatus.BUSY), view(2, ExpertStatus.BUSY)]
        assert count_by_status(views) == [(ExpertStatus.READY, 1), (ExpertStatus.BUSY, 2)]

    def test_summary_line(self):
        text = build_summary_line("expertdeck-abcd1234", [view(0), view(1, ExpertStatus.BUSY)]).plain
        assert text.startswith("expertdeck-abcd1234")
        assert "1 ready" in text
        assert "1 busy" in text

    def test_message_line(self):
        message = StatusMessage("architect launched", timestamp=datetime(2024, 1, 1, 9, 5, 7))
        assert build_message_line(message).plain == "09:05:07 architect launched"

    def test_no_message(self):
        assert build_message_line(None).plain == ""

    def test_severity_style(self):
        assert severity_style("error") == "bold red"
        assert severity_style("warning") == "yellow"
        assert severity_style("information") == "green"


class TestTailLines:
    def test_trailing_blanks_dropped(self):
        assert tail_lines("a\nb\n\n  \n", 10) == ["a", "b"]

    def test_limit(self):
        assert tail_lines("1\n2\n3\n4", 2) == ["3", "4"]

    def test_empty(self):
        assert tail_lines("", 5) == []
