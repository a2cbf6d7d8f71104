"""
Role instructions and per-expert agent settings.

Instructions are assembled from <instructions_dir>/core.md followed by
the role text: <instructions_dir>/roles/<role>.md, the bundled default
for the role, or finally the "general" text. Placeholders use
string.Template syntax (${expert_id}, ${expert_name}, ${status_file},
${worktree_path}).

The settings file passed to the agent with --settings installs the hooks
that keep the expert's status marker current.
"""

import json
import shlex
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import Dict, List, Optional

from .logging_config import get_logger
from .status_constants import MARKER_PENDING, MARKER_PROCESSING

logger = get_logger("instructions")


DEFAULT_ROLE_INSTRUCTIONS: Dict[str, str] = {
    "architect": """\
You are ${expert_name}, the architect. Own the overall design: break work
into pieces other experts can take, record design decisions, and review
structural changes before they land.
""",
    "frontend": """\
You are ${expert_name}, the frontend expert. Own user-facing code: UI
components, styling and client-side state. Keep the interface consistent
with the architect's decisions.
""",
    "backend": """\
You are ${expert_name}, the backend expert. Own services, APIs, storage
and data models. Keep interfaces stable and documented for the other
experts.
""",
    "tester": """\
You are ${expert_name}, the tester. Write and run tests for the work the
other experts deliver, and report failures with exact reproduction steps.
""",
    "general": """\
You are ${expert_name}, a general-purpose engineer on this team. Take the
tasks you are given, keep changes focused, and report when you are done.
""",
}

CORE_FOOTER = """\
Your expert id is ${expert_id}. Your status is tracked in ${status_file};
do not edit it yourself.
${reports_note}
"""

REPORTS_NOTE = (
    "When you finish a task, write a YAML report to {reports_dir}/<task_id>.yaml\n"
    "with task_id, expert_id, expert_name, status (done or failed), summary and\n"
    "optional details (findings, recommendations, files_modified, files_created)."
)

@dataclass
class RoleInfo:
    name: str
    display_name: str
    description: str


@dataclass
class InstructionResult:
    content: str
    requested_role: str
    used_general_fallback: bool = False


def render(template_text: str, **values) -> str:
    """Fill ${name} placeholders; unknown placeholders are left in place."""
    return Template(template_text).safe_substitute({k: "" if v is None else str(v) for k, v in values.items()})


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text()
    except (OSError, UnicodeDecodeError):
        return None


def load_role_text(instructions_dir: Optional[Path], role: str):
    """Return (text, used_general_fallback) for a role."""
    if instructions_dir is not None:
        custom = _read_text(Path(instructions_dir) / "roles" / f"{role}.md")
        if custom is not None:
            return custom, False
    if role in DEFAULT_ROLE_INSTRUCTIONS:
        return DEFAULT_ROLE_INSTRUCTIONS[role], False
    if instructions_dir is not None:
        general = _read_text(Path(instructions_dir) / "roles" / "general.md")
        if general is not None:
            return general, True
    return DEFAULT_ROLE_INSTRUCTIONS["general"], True


def build_instruction(
    instructions_dir: Optional[Path],
    role: str,
    expert_id: int,
    expert_name: str,
    status_file: Path,
    worktree_path: Optional[str] = None,
    reports_dir: Optional[Path] = None,
) -> InstructionResult:
    """Assemble and render the instruction sent to an expert after launch."""
    parts = []
    core = _read_text(Path(instructions_dir) / "core.md") if instructions_dir is not None else None
    if core is not None:
        parts.append(core)
    role_text, fallback = load_role_text(instructions_dir, role)
    parts.append(role_text)
    if core is None:
        parts.append(CORE_FOOTER)

    text = render(
        "\n\n".join(p.strip("\n") for p in parts if p.strip()),
        expert_id=expert_id,
        expert_name=expert_name,
        status_file=status_file,
        worktree_path=worktree_path or "",
        reports_dir=reports_dir or "",
        reports_note=REPORTS_NOTE.format(reports_dir=reports_dir) if reports_dir else "",
    )
    if fallback:
        logger.info("No instructions for role '%s', using general", role)
    return InstructionResult(content=text.strip(), requested_role=role, used_general_fallback=fallback)


def available_roles(instructions_dir: Optional[Path]) -> List[RoleInfo]:
    """Bundled roles plus any <instructions_dir>/roles/*.md, sorted by name."""
    sources: Dict[str, str] = dict(DEFAULT_ROLE_INSTRUCTIONS)
    if instructions_dir is not None:
        roles_dir = Path(instructions_dir) / "roles"
        if roles_dir.is_dir():
            for path in roles_dir.glob("*.md"):
                text = _read_text(path)
                if text is not None:
                    sources[path.stem] = text

    roles = []
    for name, text in sources.items():
        description = next(
            (line.strip() for line in text.splitlines() if line.strip() and not line.startswith("#")),
            "",
        )
        roles.append(RoleInfo(name=name, display_name=name[:1].upper() + name[1:], description=description))
    return sorted(roles, key=lambda r: r.name)


# =============================================================================
# Generated files
# =============================================================================


def instruction_file_path(queue_path: Path, expert_id: int) -> Path:
    return Path(queue_path) / "instructions" / f"expert{expert_id}.md"


def write_instruction_file(queue_path: Path, expert_id: int, content: str) -> Path:
    path = instruction_file_path(queue_path, expert_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def settings_file_path(queue_path: Path, expert_id: int) -> Path:
    return Path(queue_path) / "settings" / f"expert{expert_id}.json"


def generate_hooks_settings(status_file: Path) -> dict:
    """Claude settings whose hooks mirror prompt activity into the marker file."""
    quoted = shlex.quote(str(status_file))
    return {
        "hooks": {
            "UserPromptSubmit": [{
                "hooks": [{"type": "command", "command": f"printf '%s' {MARKER_PROCESSING} >| {quoted}"}],
            }],
            "Stop": [{
                "hooks": [{"type": "command", "command": f"printf '%s' {MARKER_PENDING} >| {quoted}"}],
            }],
        }
    }


def write_settings_file(queue_path: Path, expert_id: int, status_file: Path) -> Path:
    path = settings_file_path(queue_path, expert_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(generate_hooks_settings(status_file), indent=2) + "\n")
    return path
