"""
Unit tests for TmuxManager.

These tests use MockTmux to test all tmux operations without
requiring a real tmux installation.
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from expertdeck.exceptions import ExternalCommandFailed
from expertdeck.interfaces import MockTmux
from expertdeck.tmux_manager import (
    ENV_CREATED_AT,
    ENV_NUM_EXPERTS,
    ENV_PROJECT_PATH,
    SessionInfo,
    TmuxManager,
    list_sessions,
)


@pytest.fixture
def mock_tmux():
    return MockTmux()


@pytest.fixture
def manager(mock_tmux):
    m = TmuxManager("expertdeck-abcd1234", tmux=mock_tmux)
    m.create_session(3, "/project")
    return m


class TestTmuxManagerSession:
    """Test session management operations"""

    def test_session_exists_returns_false_when_no_session(self, mock_tmux):
        """Returns False when session doesn't exist"""
        manager = TmuxManager("expertdeck-abcd1234", tmux=mock_tmux)
        assert manager.session_exists() is False

    def test_create_session_makes_one_pane_per_expert(self, manager, mock_tmux):
        """Creates the session with the requested number of panes"""
        assert manager.session_exists()
        assert len(mock_tmux.sessions["expertdeck-abcd1234"]) == 3
        assert all(p["cwd"] == "/project" for p in mock_tmux.sessions["expertdeck-abcd1234"])

    def test_create_duplicate_session_fails(self, manager):
        """Creating an existing session raises with the tmux error"""
        with pytest.raises(ExternalCommandFailed) as exc_info:
            manager.create_session(3, "/project")
        assert "duplicate session" in str(exc_info.value)

    def test_split_failure_is_reported(self, mock_tmux):
        mock_tmux.fail_ops.add("split_pane")
        manager = TmuxManager("s", tmux=mock_tmux)

        with pytest.raises(ExternalCommandFailed) as exc_info:
            manager.create_session(2, "/project")

        assert "pane 1" in str(exc_info.value)

    def test_kill_session(self, manager):
        """Can kill a session"""
        manager.kill_session()
        assert not manager.session_exists()

    def test_kill_missing_session_raises(self, mock_tmux):
        with pytest.raises(ExternalCommandFailed):
            TmuxManager("nope", tmux=mock_tmux).kill_session()

    def test_list_sessions_by_prefix(self, mock_tmux):
        for name in ("expertdeck-2222", "other", "expertdeck-1111", "expertdeckish"):
            mock_tmux.new_session(name)

        sessions = list_sessions("expertdeck", tmux=mock_tmux)

        assert [s.session_name for s in sessions] == ["expertdeck-1111", "expertdeck-2222"]

    def test_session_info_from_environment(self, manager, mock_tmux):
        manager.set_env(ENV_NUM_EXPERTS, "3")
        manager.set_env(ENV_PROJECT_PATH, "/project")
        manager.set_env(ENV_CREATED_AT, "2024-01-15T10:31:00")

        (info,) = list_sessions("expertdeck", tmux=mock_tmux)

        assert info == SessionInfo(
            "expertdeck-abcd1234", project_path="/project", num_experts=3,
            created_at=datetime(2024, 1, 15, 10, 31),
        )

    def test_session_info_tolerates_bad_values(self, manager):
        manager.set_env(ENV_NUM_EXPERTS, "many")
        manager.set_env(ENV_CREATED_AT, "yesterday")

        info = manager.session_info()

        assert info.num_experts is None
        assert info.created_at is None
        assert info.project_path is None


class TestTmuxManagerPanes:
    """Test pane operations"""

    def test_set_pane_title(self, manager, mock_tmux):
        manager.set_pane_title(1, "frontend")
        assert mock_tmux.sessions["expertdeck-abcd1234"][1]["title"] == "frontend"

    def test_set_title_on_missing_pane(self, manager):
        with pytest.raises(ExternalCommandFailed) as exc_info:
            manager.set_pane_title(9, "ghost")
        assert "can't find pane" in str(exc_info.value)

    def test_send_keys_with_enter_clears_line_first(self, manager, mock_tmux):
        manager.send_keys_with_enter(0, "echo hi")
        assert mock_tmux.keys_sent_to(0) == ["C-u", "echo hi", "Enter"]

    def test_change_directory_quotes_path(self, manager, mock_tmux):
        manager.change_directory(2, "/path with spaces")
        assert mock_tmux.keys_sent_to(2)[1] == "cd '/path with spaces'"

    def test_exec_types_command(self, manager, mock_tmux):
        manager.exec(1, "ls -la")
        assert "ls -la" in mock_tmux.keys_sent_to(1)

    def test_send_keys_failure_raises(self, manager, mock_tmux):
        mock_tmux.fail_ops.add("send_keys")
        with pytest.raises(ExternalCommandFailed) as exc_info:
            manager.exec(0, "ls")
        assert exc_info.value.command[0] == "tmux"

    def test_capture_pane(self, manager, mock_tmux):
        mock_tmux.set_pane_content("expertdeck-abcd1234", 0, "line1\nline2")
        assert manager.capture_pane(0) == "line1\nline2"

    def test_capture_missing_pane_raises(self, manager):
        with pytest.raises(ExternalCommandFailed):
            manager.capture_pane(7)

    def test_clear_pane_drops_old_output(self, manager, mock_tmux):
        mock_tmux.set_pane_content("expertdeck-abcd1234", 2, "session: old\n$ ")

        manager.clear_pane(2)

        assert manager.capture_pane(2) == ""
        assert mock_tmux.cleared == [("expertdeck-abcd1234", 2)]

    def test_clear_failure_raises(self, manager, mock_tmux):
        mock_tmux.fail_ops.add("clear_pane")
        with pytest.raises(ExternalCommandFailed, match="clear-history"):
            manager.clear_pane(0)

    def test_pane_current_command(self, manager, mock_tmux):
        mock_tmux.pane_commands[("expertdeck-abcd1234", 1)] = "claude"
        assert manager.pane_current_command(1) == "claude"
        assert manager.pane_current_command(0) == "zsh"
        assert manager.pane_current_command(9) is None


class TestTmuxManagerEnvironment:
    def test_set_and_get_env(self, manager):
        manager.set_env("EXPERTDECK_NUM_EXPERTS", "3")
        assert manager.get_env("EXPERTDECK_NUM_EXPERTS") == "3"
        assert manager.get_env("MISSING") is None

    def test_set_env_without_session_raises(self, mock_tmux):
        with pytest.raises(ExternalCommandFailed):
            TmuxManager("nope", tmux=mock_tmux).set_env("K", "V")
