"""
Unit test configuration for expertdeck.

Provides a fake project whose git root resolves through MockCommandRunner,
a services factory wired to MockTmux, and a real git repository for the
worktree tests that need one.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from expertdeck.bootstrap import SessionBootstrap
from expertdeck.interfaces import MockTmux
from fakes import FAST_CONFIG, git_root_runner, run_git


@pytest.fixture
def project(tmp_path):
    """An empty project directory."""
    path = tmp_path / "project"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def mock_tmux():
    return MockTmux()


@pytest.fixture
def make_services(project, mock_tmux):
    """Factory building Services on MockTmux for the project fixture."""
    def _make(num_experts=None, tmux=None, runner=None, config_data=None, create=True):
        return SessionBootstrap(
            project,
            num_experts=num_experts,
            config_data=FAST_CONFIG if config_data is None else config_data,
            tmux=tmux or mock_tmux,
            runner=runner or git_root_runner(project),
            check_dependencies=False,
            claude_poll_interval=0.01,
        ).run(create=create)
    return _make


@pytest.fixture
def git_repo(tmp_path):
    """A real git repository with one commit on main."""
    repo = tmp_path / "repo"
    repo.mkdir()
    run_git(repo, "init", "-q")
    run_git(repo, "config", "user.email", "test@example.com")
    run_git(repo, "config", "user.name", "Test")
    run_git(repo, "config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("# test\n")
    run_git(repo, "add", "README.md")
    run_git(repo, "commit", "-q", "-m", "initial")
    return repo.resolve()
