"""
Unit tests for CLI using Typer.

Bootstrap is patched to build services on MockTmux, so the commands run
end to end without tmux, git or the agent.
"""

import re
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from expertdeck.cli import app
from expertdeck.context_models import Decision, ExpertContext
from expertdeck.exceptions import InfrastructureError
from expertdeck.tmux_manager import list_sessions
from expertdeck.worktree import WorktreeManager
from fakes import make_ready_on_launch


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text."""
    return re.sub(r'\x1b\[[0-9;]*m', '', text)


runner = CliRunner(env={"COLUMNS": "200"})


@pytest.fixture
def fake_bootstrap(make_services):
    """Route the CLI's bootstrap through MockTmux."""
    def _bootstrap(project_path, num_experts=None, create=True, **kwargs):
        return make_services(num_experts=num_experts, create=create)

    with patch("expertdeck.cli._shared.bootstrap", side_effect=_bootstrap) as mock:
        yield mock


@pytest.fixture
def running(make_services, fake_bootstrap):
    """A session that is already up."""
    return make_services()


class TestCLICommands:
    """Test CLI surface"""

    def test_main_help(self):
        """Main help lists every command"""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        output = strip_ansi(result.stdout)
        assert "Run a deck of Claude Code experts" in output
        for command in (
            "start", "tower", "status", "sessions", "worktrees", "remove-worktree", "decisions",
            "reports", "down", "launch", "reset", "task", "role", "roles",
        ):
            assert command in output

    def test_launch_help(self):
        result = runner.invoke(app, ["launch", "--help"])
        assert result.exit_code == 0
        output = strip_ansi(result.stdout)
        assert "--branch" in output
        assert "--root" in output
        assert "--fresh" in output

    def test_infrastructure_error_exits_1(self):
        with patch("expertdeck.cli._shared.bootstrap", side_effect=InfrastructureError("tmux is required")):
            result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "tmux is required" in result.output


class TestStartCommand:
    """Test session start"""

    def test_start_launches_every_expert(self, fake_bootstrap, mock_tmux):
        make_ready_on_launch(mock_tmux)

        result = runner.invoke(app, ["start", "--experts", "2"])

        assert result.exit_code == 0, result.output
        assert "architect launched" in result.output
        assert "frontend launched" in result.output
        assert "tmux attach -t expertdeck-" in result.output

    def test_start_when_running(self, running):
        result = runner.invoke(app, ["start"])

        assert result.exit_code == 0
        assert "already running" in result.output


class TestLaunchCommand:
    """Test launching one expert"""

    def test_branch_and_root_conflict(self):
        result = runner.invoke(app, ["launch", "0", "--branch", "x", "--root"])
        assert result.exit_code == 1
        assert "cannot be combined" in result.output

    def test_invalid_branch(self):
        result = runner.invoke(app, ["launch", "0", "--branch", "!!!"])
        assert result.exit_code == 1
        assert "Invalid branch name" in result.output

    def test_unknown_expert(self, running):
        result = runner.invoke(app, ["launch", "nobody"])
        assert result.exit_code == 1
        assert "No expert 'nobody'" in result.output

    def test_launch_by_name(self, running, mock_tmux):
        make_ready_on_launch(mock_tmux)

        result = runner.invoke(app, ["launch", "backend"])

        assert result.exit_code == 0, result.output
        assert "backend launched" in result.output
        assert any("--dangerously-skip-permissions" in k for k in mock_tmux.keys_sent_to(2))

    def test_launch_without_session(self, fake_bootstrap):
        result = runner.invoke(app, ["launch", "0"])
        assert result.exit_code == 1
        assert "expertdeck start" in result.output


class TestRoleCommands:
    def test_assign_role(self, running):
        result = runner.invoke(app, ["role", "tester", "backend"])

        assert result.exit_code == 0
        assert "tester is now backend" in result.output
        assert running.role_for(3) == "backend"

    def test_unknown_role_warns(self, running):
        result = runner.invoke(app, ["role", "0", "astronaut"])

        assert result.exit_code == 0
        assert "'general' will be used" in result.output

    def test_roles_table(self, running):
        result = runner.invoke(app, ["roles"])

        assert result.exit_code == 0
        assert "architect" in result.output
        assert "general" in result.output


class TestStatusCommand:
    def test_status_table(self, running):
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        output = strip_ansi(result.output)
        for name in ("architect", "frontend", "backend", "tester"):
            assert name in output
        assert "pending" in output


class TestDownCommand:
    """Test stopping the session"""

    def test_down_kills_session(self, running, mock_tmux):
        result = runner.invoke(app, ["down"])

        assert result.exit_code == 0
        assert "stopped" in result.output
        assert running.config.session_name not in mock_tmux.sessions

    def test_down_sends_exit_to_active_experts(self, running, mock_tmux):
        mock_tmux.pane_commands[(running.config.session_name, 1)] = "claude"
        running.detector.set_marker(1, "processing")

        runner.invoke(app, ["down"])

        assert "/exit" in mock_tmux.keys_sent_to(1)
        assert "/exit" not in mock_tmux.keys_sent_to(0)

    def test_down_cleanup(self, running):
        result = runner.invoke(app, ["down", "--cleanup"])

        assert result.exit_code == 0
        assert not running.context_store.session_exists(running.config.session_hash)

    def test_kill_failure_exits_1(self, running, mock_tmux):
        mock_tmux.fail_ops.add("kill_session")

        result = runner.invoke(app, ["down"])

        assert result.exit_code == 1


class TestResetCommand:
    """Test restarting one expert"""

    def test_flags_conflict(self):
        result = runner.invoke(app, ["reset", "0", "--keep-history", "--full"])
        assert result.exit_code == 1
        assert "cannot be combined" in result.output

    def test_reset_starts_new_conversation(self, running, mock_tmux):
        make_ready_on_launch(mock_tmux)
        running.context_store.save_expert_context(ExpertContext(
            2, "backend", running.config.session_hash, claude_session_id="old-conversation",
        ))

        result = runner.invoke(app, ["reset", "backend"])

        assert result.exit_code == 0, result.output
        assert "Resetting backend" in result.output
        launch_line = [k for k in mock_tmux.keys_sent_to(2) if "--dangerously-skip-permissions" in k][-1]
        assert "--resume" not in launch_line

    def test_keep_history_resumes(self, running, mock_tmux):
        make_ready_on_launch(mock_tmux)
        running.context_store.save_expert_context(ExpertContext(
            2, "backend", running.config.session_hash, claude_session_id="old-conversation",
        ))

        result = runner.invoke(app, ["reset", "backend", "--keep-history"])

        assert result.exit_code == 0, result.output
        assert "backend resumed" in result.output

    def test_full_reset_leaves_worktree(self, running, mock_tmux, tmp_path):
        make_ready_on_launch(mock_tmux)
        wt = tmp_path / "wt-feature"
        wt.mkdir()
        running.context_store.save_expert_context(ExpertContext(
            3, "tester", running.config.session_hash, worktree_branch="feature", worktree_path=str(wt),
        ))

        result = runner.invoke(app, ["reset", "tester", "--full"])

        assert result.exit_code == 0, result.output
        output = strip_ansi(result.output)
        assert "tester reset" in output
        assert f"Previous worktree left at {wt}" in output
        ctx = running.context_store.load_expert_context(running.config.session_hash, 3)
        assert ctx.worktree_path is None


class TestTaskCommand:
    """Test sending a task from the command line"""

    def test_idle_expert_exits_1(self, running, mock_tmux):
        result = runner.invoke(app, ["task", "backend", "Add pagination"])

        assert result.exit_code == 1
        assert "task not sent" in result.output
        assert mock_tmux.keys_sent_to(2) == []

    def test_task_delivered(self, running, mock_tmux):
        mock_tmux.pane_commands[(running.config.session_name, 2)] = "claude"

        result = runner.invoke(app, ["task", "backend", "Add pagination"])

        assert result.exit_code == 0, result.output
        assert "Task assigned to backend" in result.output
        assert "Add pagination" in mock_tmux.keys_sent_to(2)

    def test_empty_task(self):
        result = runner.invoke(app, ["task", "0", "  "])
        assert result.exit_code == 1
        assert "empty" in result.output


class TestSessionsCommand:
    @pytest.fixture(autouse=True)
    def mock_listing(self, mock_tmux, monkeypatch):
        monkeypatch.setattr("expertdeck.cli.session.load_config", lambda: {})
        monkeypatch.setattr(
            "expertdeck.cli.session.list_sessions", lambda prefix: list_sessions(prefix, tmux=mock_tmux)
        )

    def test_no_sessions(self, mock_tmux):
        mock_tmux.new_session("unrelated")

        result = runner.invoke(app, ["sessions"])

        assert result.exit_code == 0
        assert "No expertdeck sessions running" in result.output

    def test_running_session_listed(self, running):
        result = runner.invoke(app, ["sessions"])

        assert result.exit_code == 0
        output = strip_ansi(result.output)
        assert running.config.session_name in output
        assert str(running.config.project_path) in output


class TestDecisionsCommand:
    def test_no_decisions(self, running):
        result = runner.invoke(app, ["decisions"])
        assert result.exit_code == 0
        assert "No decisions recorded" in result.output

    def test_filters(self, running):
        store = running.context_store
        store.add_decision(running.config.session_hash, Decision(0, "API style", "Use REST", affects_experts=[2]))
        store.add_decision(running.config.session_hash, Decision(3, "Test runner", "Use pytest", affects_experts=[3]))

        everything = strip_ansi(runner.invoke(app, ["decisions"]).output)
        for_backend = strip_ansi(runner.invoke(app, ["decisions", "--expert", "backend"]).output)
        by_topic = strip_ansi(runner.invoke(app, ["decisions", "--topic", "runner"]).output)

        assert "Use REST" in everything and "Use pytest" in everything
        assert "Use REST" in for_backend and "Use pytest" not in for_backend
        assert "Use pytest" in by_topic and "Use REST" not in by_topic

    def test_unreadable_decisions_exit_1(self, running):
        path = running.context_store.shared_path(running.config.session_hash) / "decisions.yaml"
        path.write_text("decisions:\n  - just text\n")

        result = runner.invoke(app, ["decisions"])

        assert result.exit_code == 1
        assert "unreadable decisions" in result.output


class TestReportsCommand:
    def write_report(self, services, name, **fields):
        data = {"task_id": name, "expert_id": 1, "expert_name": "frontend", "status": "done",
                "summary": "Added the login form", **fields}
        (services.config.reports_path / f"{name}.yaml").write_text(yaml.safe_dump(data))

    def test_no_reports(self, running):
        result = runner.invoke(app, ["reports"])
        assert result.exit_code == 0
        assert "No reports" in result.output

    def test_reports_listed_and_filtered(self, running):
        self.write_report(running, "task-1")
        self.write_report(running, "task-2", expert_id=3, expert_name="tester", status="failed")
        (running.config.reports_path / "broken.yaml").write_text("task_id: [unclosed")

        everything = strip_ansi(runner.invoke(app, ["reports"]).output)
        for_tester = strip_ansi(runner.invoke(app, ["reports", "--expert", "tester"]).output)

        assert "task-1" in everything and "task-2" in everything
        assert "task-2" in for_tester and "task-1" not in for_tester


class TestRemoveWorktreeCommand:
    @pytest.fixture
    def removed(self, monkeypatch):
        calls = []
        monkeypatch.setattr(
            WorktreeManager, "remove_worktree", lambda self, branch, force=False: calls.append((branch, force))
        )
        return calls

    def test_unknown_worktree(self, running, removed):
        result = runner.invoke(app, ["remove-worktree", "feature-x"])

        assert result.exit_code == 1
        assert "no expert worktree for 'feature-x'" in result.output
        assert removed == []

    def test_assigned_worktree_is_refused(self, running, removed):
        wt = running.config.worktrees_path / "feature-x"
        wt.mkdir(parents=True)
        running.context_store.save_expert_context(ExpertContext(
            3, "tester", running.config.session_hash, worktree_branch="feature-x", worktree_path=str(wt),
        ))

        result = runner.invoke(app, ["remove-worktree", "feature-x"])

        assert result.exit_code == 1
        assert "assigned to tester" in result.output
        assert removed == []

    def test_unassigned_worktree_is_removed(self, running, removed):
        (running.config.worktrees_path / "feature-x").mkdir(parents=True)

        result = runner.invoke(app, ["remove-worktree", "feature-x", "--force"])

        assert result.exit_code == 0, result.output
        assert "Removed worktree" in result.output
        assert removed == [("feature-x", True)]


class TestUnreadableContext:
    def test_status_survives_context_without_identity(self, running):
        path = running.context_store.expert_path(running.config.session_hash, 1) / "context.yaml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("worktree_path: /gone\n")

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0, result.output
        assert "frontend" in strip_ansi(result.output)


@pytest.mark.requires_git
class TestWorktreesCommand:
    def test_no_worktrees(self, git_repo):
        result = runner.invoke(app, ["worktrees", str(git_repo)])

        assert result.exit_code == 0
        assert "No expert worktrees" in result.output
