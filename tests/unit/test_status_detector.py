"""
Unit tests for expert status detection.
"""

import os
import sys
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from expertdeck.interfaces import MockTmux
from expertdeck.status_constants import (
    ExpertStatus,
    accepts_instructions,
    get_status_symbol,
    is_active_status,
)
from expertdeck.status_detector import ExpertStateDetector, PaneSnapshot, PaneSnapshotCache
from expertdeck.tmux_manager import TmuxManager
from fakes import READY_SCREEN


@pytest.fixture
def detector(tmp_path):
    d = ExpertStateDetector(tmp_path / "status", stuck_after=600)
    d.ensure_status_dir()
    return d


class TestPaneSnapshot:
    def test_ready_prompt_detected_through_ansi(self):
        snapshot = PaneSnapshot("\x1b[32mbypass permissions\x1b[0m on", "claude", 0.0)
        assert snapshot.shows_ready_prompt

    def test_shell_detection(self):
        assert PaneSnapshot("", "zsh", 0.0).at_shell
        assert not PaneSnapshot("", "claude", 0.0).at_shell
        assert not PaneSnapshot("", None, 0.0).at_shell


class TestClassifyWithoutMarker:
    """No marker file: the pane snapshot decides"""

    def test_nothing_known_is_pending(self, detector):
        assert detector.classify(0) == ExpertStatus.PENDING

    def test_shell_in_pane_is_pending(self, detector):
        detector.snapshots.update(0, "$ ", "bash")
        assert detector.classify(0) == ExpertStatus.PENDING

    def test_agent_starting(self, detector):
        detector.snapshots.update(0, "Loading...", "claude")
        assert detector.classify(0) == ExpertStatus.STARTING

    def test_agent_showing_prompt_is_ready(self, detector):
        detector.snapshots.update(0, READY_SCREEN, "claude")
        assert detector.classify(0) == ExpertStatus.READY


class TestClassifyWithMarker:
    """The hook-written marker file decides"""

    def test_pending_marker_is_ready(self, detector):
        detector.set_marker(0, "pending")
        assert detector.classify(0) == ExpertStatus.READY

    def test_processing_marker_is_busy(self, detector):
        detector.set_marker(0, "processing")
        assert detector.classify(0) == ExpertStatus.BUSY

    def test_old_processing_marker_is_stuck(self, tmp_path):
        now = time.time()
        detector = ExpertStateDetector(tmp_path / "status", stuck_after=60, clock=lambda: now + 120)
        detector.set_marker(0, "processing")
        assert detector.classify(0) == ExpertStatus.STUCK

    def test_empty_marker_is_unknown(self, detector):
        detector.marker_path(0).write_text("")
        assert detector.classify(0) == ExpertStatus.UNKNOWN

    def test_garbage_marker_is_unknown(self, detector):
        detector.marker_path(0).write_bytes(b"\xff\xfe\x00garbage")
        assert detector.classify(0) == ExpertStatus.UNKNOWN

    def test_unexpected_word_is_unknown(self, detector):
        detector.set_marker(0, "dancing")
        assert detector.classify(0) == ExpertStatus.UNKNOWN

    def test_shell_overrides_stale_marker(self, detector):
        detector.set_marker(0, "processing")
        detector.snapshots.update(0, "$ ", "zsh")
        assert detector.classify(0) == ExpertStatus.PENDING

    def test_marker_change_is_picked_up(self, detector):
        detector.set_marker(0, "processing")
        assert detector.classify(0) == ExpertStatus.BUSY

        detector.set_marker(0, "pending")
        stat = detector.marker_path(0).stat()
        os.utime(detector.marker_path(0), ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000))

        assert detector.classify(0) == ExpertStatus.READY

    def test_clear_marker(self, detector):
        detector.set_marker(0, "pending")
        detector.clear_marker(0)
        detector.clear_marker(0)
        assert not detector.marker_path(0).exists()

    def test_read_marker_returns_mtime(self, detector):
        detector.set_marker(1, "pending")
        content, mtime = detector.read_marker(1)
        assert content == "pending"
        assert mtime == pytest.approx(detector.marker_path(1).stat().st_mtime)

    def test_classify_never_raises(self, detector, monkeypatch):
        def broken(expert_id):
            raise OSError("transient")
        monkeypatch.setattr(detector, "read_marker", broken)
        detector.set_marker(0, "pending")

        assert detector.classify(0) == ExpertStatus.UNKNOWN

    def test_classify_all(self, detector):
        detector.set_marker(1, "processing")
        assert detector.classify_all([0, 1]) == [(0, ExpertStatus.PENDING), (1, ExpertStatus.BUSY)]


class TestSnapshotCache:
    def test_refresh_captures_every_pane(self):
        mock = MockTmux()
        manager = TmuxManager("s", tmux=mock)
        manager.create_session(2, "/tmp")
        mock.set_pane_content("s", 1, "output")
        mock.pane_commands[("s", 1)] = "claude"
        cache = PaneSnapshotCache()

        cache.refresh(manager, [0, 1])

        assert cache.get(0).content == ""
        assert cache.get(1).content == "output"
        assert cache.get(1).current_command == "claude"

    def test_failed_capture_discards_snapshot(self):
        mock = MockTmux()
        manager = TmuxManager("s", tmux=mock)
        manager.create_session(1, "/tmp")
        cache = PaneSnapshotCache()
        cache.update(0, "old", "claude")
        mock.fail_ops.add("capture_pane")

        cache.refresh(manager, [0])

        assert cache.get(0) is None


class TestStatusHelpers:
    def test_every_status_has_symbol(self):
        for status in ExpertStatus:
            symbol, color = get_status_symbol(status)
            assert symbol and color

    def test_active_statuses(self):
        assert is_active_status(ExpertStatus.BUSY)
        assert is_active_status(ExpertStatus.STARTING)
        assert not is_active_status(ExpertStatus.PENDING)
        assert not is_active_status(ExpertStatus.UNKNOWN)

    def test_only_ready_accepts_instructions(self):
        assert accepts_instructions(ExpertStatus.READY)
        assert not accepts_instructions(ExpertStatus.BUSY)

    def test_str_is_value(self):
        assert str(ExpertStatus.BUSY) == "busy"
