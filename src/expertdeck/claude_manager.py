"""
Agent process management inside expert panes.

Claude Code runs interactively in each expert's pane. It is started by
typing a shell command line, driven by keystrokes, and observed through
pane captures. Nothing here tracks the agent's PID.
"""

import re
import shlex
import time
from typing import Dict, Optional

from .logging_config import get_logger
from .tmux_manager import TmuxManager

logger = get_logger("claude")

READY_MARKER = "bypass permissions"
INSTRUCTION_CHUNK_SIZE = 200

# Claude prints its session id in one of these shapes
SESSION_ID_PATTERNS = (
    re.compile(r"Session:\s*([a-zA-Z0-9_-]+)"),
    re.compile(r"(?i)session[:\s]+([a-f0-9-]{36})"),
)

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]")


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE.sub("", text)


def build_launch_command(
    working_dir: str,
    claude_command: str = "claude",
    resume_token: Optional[str] = None,
    settings_file: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> str:
    """Build the shell line that starts the agent in a directory.

    >>> build_launch_command("/tmp/x")
    'cd /tmp/x && claude --dangerously-skip-permissions'
    """
    args = [claude_command, "--dangerously-skip-permissions"]
    if settings_file:
        args.extend(["--settings", settings_file])
    if resume_token:
        args.extend(["--resume", resume_token])
    cmd = shlex.join(args)
    if env:
        prefix = " ".join(f"{k}={shlex.quote(v)}" for k, v in env.items())
        cmd = f"{prefix} {cmd}"
    return f"cd {shlex.quote(working_dir)} && {cmd}"


class ClaudeManager:
    """Starts, drives and observes the agent in each expert pane."""

    def __init__(
        self,
        tmux_manager: TmuxManager,
        claude_command: str = "claude",
        poll_interval: float = 0.5,
        chunk_delay: float = 0.05,
        env: Optional[Dict[str, str]] = None,
    ):
        """Initialize the manager.

        Args:
            tmux_manager: TmuxManager owning the expert panes
            claude_command: Agent executable
            poll_interval: Seconds between readiness captures
            chunk_delay: Pause between instruction chunks
            env: Extra environment variables set on every launch line
        """
        self.tmux = tmux_manager
        self.claude_command = claude_command
        self.poll_interval = poll_interval
        self.chunk_delay = chunk_delay
        self.env = dict(env or {})

    def launch(
        self,
        expert_id: int,
        working_dir: str,
        resume_token: Optional[str] = None,
        settings_file: Optional[str] = None,
    ) -> None:
        """Start the agent in the expert's pane.

        Raises:
            ExternalCommandFailed: If the keystrokes could not be delivered
        """
        env = dict(self.env)
        env["EXPERTDECK_EXPERT_ID"] = str(expert_id)
        cmd = build_launch_command(
            str(working_dir),
            claude_command=self.claude_command,
            resume_token=resume_token,
            settings_file=settings_file,
            env=env,
        )
        logger.info(
            "Launching agent for expert%d in %s%s",
            expert_id, working_dir, " (resume)" if resume_token else "",
        )
        self.tmux.exec(expert_id, cmd)

    def send_exit(self, expert_id: int) -> None:
        self.tmux.send_keys_with_enter(expert_id, "/exit")

    def send_instruction(self, expert_id: int, text: str) -> None:
        """Type an instruction into the agent prompt and submit it.

        Long text is sent in fixed-size chunks; an empty instruction sends
        nothing at all.
        """
        if not text:
            return
        for start in range(0, len(text), INSTRUCTION_CHUNK_SIZE):
            self.tmux.send_keys(expert_id, text[start:start + INSTRUCTION_CHUNK_SIZE], literal=True)
            if self.chunk_delay:
                time.sleep(self.chunk_delay)
        self.tmux.send_keys(expert_id, "Enter")

    def is_ready(self, content: str) -> bool:
        return READY_MARKER in strip_ansi(content)

    def wait_for_ready(self, expert_id: int, timeout: float) -> bool:
        """Poll the pane until the agent shows its prompt.

        Returns:
            True once ready, False if the timeout elapsed first
        """
        deadline = time.monotonic() + timeout
        while True:
            if self.is_ready(self.tmux.capture_pane(expert_id)):
                return True
            if time.monotonic() >= deadline:
                logger.warning("expert%d not ready after %.1fs", expert_id, timeout)
                return False
            time.sleep(self.poll_interval)

    def capture_session_id(self, expert_id: int) -> Optional[str]:
        """Extract the agent's resumable session id from the pane, if shown."""
        content = strip_ansi(self.tmux.capture_pane(expert_id, lines=200))
        for pattern in SESSION_ID_PATTERNS:
            match = pattern.search(content)
            if match:
                return match.group(1)
        return None
