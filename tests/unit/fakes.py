"""
Shared test doubles and helpers for expertdeck unit tests.
"""

import subprocess
from pathlib import Path

from expertdeck.interfaces import MockCommandRunner, MockTmux

READY_SCREEN = (
    "╭──────────────────────────────────────────╮\n"
    "│ >                                        │\n"
    "╰──────────────────────────────────────────╯\n"
    "  ⏵⏵ bypass permissions on (shift+tab to cycle)\n"
)

# Fast timeouts so launch tests never sit in a grace period
FAST_CONFIG = {"timeouts": {"agent_ready": 2, "relocation_grace": 0}}


def make_ready_on_launch(mock_tmux: MockTmux, screen: str = READY_SCREEN, scroll: bool = False) -> None:
    """Make a pane show the agent prompt as soon as the launch line is typed.

    With scroll=True the prompt is appended below whatever the pane
    already holds, the way a terminal keeps its scrollback.
    """
    def hook(session, pane, keys):
        if "--dangerously-skip-permissions" in keys:
            before = mock_tmux.pane_content.get((session, pane), "") if scroll else ""
            mock_tmux.set_pane_content(session, pane, before + screen)
    mock_tmux.on_send_keys = hook


def git_root_runner(project: Path) -> MockCommandRunner:
    """MockCommandRunner that reports project as its own git root."""
    runner = MockCommandRunner()
    runner.respond(
        ["git", "rev-parse", "--path-format=absolute", "--git-common-dir"],
        stdout=f"{project}/.git\n",
    )
    return runner


def run_git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=True)
    return result.stdout.strip()


class WorktreeRunner(MockCommandRunner):
    """MockCommandRunner whose `git worktree add` creates the checkout directory."""

    def run(self, cmd, cwd=None, timeout=None, env=None):
        result = super().run(cmd, cwd=cwd, timeout=timeout, env=env)
        cmd = list(cmd)
        if cmd[:3] == ["git", "worktree", "add"] and result.ok:
            Path(cmd[3]).mkdir(parents=True, exist_ok=True)
        return result


def worktree_runner(project: Path) -> WorktreeRunner:
    runner = WorktreeRunner()
    runner.respond(
        ["git", "rev-parse", "--path-format=absolute", "--git-common-dir"],
        stdout=f"{project}/.git\n",
    )
    return runner
