"""
Configuration for expertdeck.

User configuration lives in ~/.expertdeck/config.yaml (or $EXPERTDECK_CONFIG).
Missing or malformed files fall back to defaults; they never abort startup.

SessionConfig is built once during bootstrap from the project path and the
user configuration, and is read-only from then on.
"""

import hashlib
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

CONFIG_PATH = Path(os.environ.get("EXPERTDECK_CONFIG", Path.home() / ".expertdeck" / "config.yaml"))

DATA_DIR_NAME = ".expertdeck"
DEFAULT_SESSION_PREFIX = "expertdeck"


def load_config() -> Dict[str, Any]:
    """Load the user config file.

    Returns:
        Parsed mapping, or {} if the file is missing, invalid, or not a mapping
    """
    if not CONFIG_PATH.exists():
        return {}
    try:
        with open(CONFIG_PATH) as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, IOError):
        return {}
    if not isinstance(data, dict):
        return {}
    return data


@dataclass(frozen=True)
class ExpertConfig:
    name: str
    role: str = "general"
    color: str = "white"


@dataclass(frozen=True)
class TimeoutConfig:
    """Per-operation timeouts in seconds."""

    agent_ready: float = 30.0
    graceful_shutdown: float = 10.0
    relocation_grace: float = 3.0
    stuck_after: float = 600.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TimeoutConfig":
        if not isinstance(data, dict):
            return cls()
        defaults = cls()
        values = {}
        for name in ("agent_ready", "graceful_shutdown", "relocation_grace", "stuck_after"):
            raw = data.get(name, getattr(defaults, name))
            try:
                values[name] = float(raw)
            except (TypeError, ValueError):
                values[name] = getattr(defaults, name)
        return cls(**values)


DEFAULT_EXPERTS: Tuple[ExpertConfig, ...] = (
    ExpertConfig("architect", role="architect", color="red"),
    ExpertConfig("frontend", role="frontend", color="blue"),
    ExpertConfig("backend", role="backend", color="green"),
    ExpertConfig("tester", role="tester", color="yellow"),
)


def compute_session_hash(project_path: Path) -> str:
    """Derive the session identity from the canonical project path.

    First 4 bytes of the SHA-256 of the resolved path, hex-encoded.
    """
    try:
        abs_path = Path(project_path).resolve(strict=True)
    except OSError:
        abs_path = Path(project_path).absolute()
    digest = hashlib.sha256(str(abs_path).encode("utf-8")).hexdigest()
    return digest[:8]


def _experts_from_config(data: Dict[str, Any]) -> List[ExpertConfig]:
    raw = data.get("experts")
    if not isinstance(raw, list) or not raw:
        return list(DEFAULT_EXPERTS)
    experts = []
    for idx, entry in enumerate(raw):
        if isinstance(entry, str):
            experts.append(ExpertConfig(entry, role=entry))
        elif isinstance(entry, dict):
            name = str(entry.get("name") or f"expert{idx}")
            experts.append(ExpertConfig(
                name=name,
                role=str(entry.get("role") or name),
                color=str(entry.get("color") or "white"),
            ))
    return experts or list(DEFAULT_EXPERTS)


def _resize_experts(experts: List[ExpertConfig], num_experts: int) -> List[ExpertConfig]:
    experts = list(experts[:num_experts])
    while len(experts) < num_experts:
        idx = len(experts)
        experts.append(ExpertConfig(f"expert{idx}"))
    return experts


@dataclass(frozen=True)
class SessionConfig:
    """Immutable configuration of one expertdeck session."""

    project_path: Path
    data_root: Path
    session_hash: str
    session_prefix: str = DEFAULT_SESSION_PREFIX
    experts: Tuple[ExpertConfig, ...] = DEFAULT_EXPERTS
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    claude_command: str = "claude"
    instructions_path: Optional[Path] = None

    @classmethod
    def from_project(
        cls,
        project_path: Path,
        num_experts: Optional[int] = None,
        config_data: Optional[Dict[str, Any]] = None,
        data_root: Optional[Path] = None,
    ) -> "SessionConfig":
        """Build a session config for a project directory.

        Args:
            project_path: Project root (resolved to a canonical path)
            num_experts: Override the number of experts
            config_data: Parsed user config (defaults to load_config())
            data_root: Override the shared data root (defaults to <project>/.expertdeck)
        """
        data = load_config() if config_data is None else config_data
        project_path = Path(project_path).resolve()

        experts = _experts_from_config(data)
        count = num_experts if num_experts is not None else data.get("num_experts")
        if isinstance(count, int) and count > 0:
            experts = _resize_experts(experts, count)

        instructions = data.get("instructions_dir")
        instructions_path = Path(instructions).expanduser() if instructions else project_path / "instructions"

        return cls(
            project_path=project_path,
            data_root=Path(data_root) if data_root else project_path / DATA_DIR_NAME,
            session_hash=compute_session_hash(project_path),
            session_prefix=str(data.get("session_prefix") or DEFAULT_SESSION_PREFIX),
            experts=tuple(experts),
            timeouts=TimeoutConfig.from_dict(data.get("timeouts")),
            claude_command=os.environ.get("CLAUDE_COMMAND") or str(data.get("claude_command") or "claude"),
            instructions_path=instructions_path,
        )

    @property
    def num_experts(self) -> int:
        return len(self.experts)

    @property
    def session_name(self) -> str:
        return f"{self.session_prefix}-{self.session_hash}"

    @property
    def expert_ids(self) -> List[int]:
        return list(range(self.num_experts))

    # Session data layout ------------------------------------------------

    @property
    def queue_path(self) -> Path:
        return self.data_root / "queue"

    @property
    def status_dir(self) -> Path:
        return self.queue_path / "status"

    @property
    def sessions_path(self) -> Path:
        return self.queue_path / "sessions"

    @property
    def reports_path(self) -> Path:
        return self.queue_path / "reports"

    @property
    def settings_path(self) -> Path:
        return self.queue_path / "settings"

    @property
    def generated_instructions_path(self) -> Path:
        return self.queue_path / "instructions"

    @property
    def worktrees_path(self) -> Path:
        return self.data_root / "worktrees"

    def status_file_path(self, expert_id: int) -> Path:
        return self.status_dir / f"expert{expert_id}"

    def get_expert(self, expert_id: int) -> Optional[ExpertConfig]:
        if 0 <= expert_id < len(self.experts):
            return self.experts[expert_id]
        return None

    def get_expert_name(self, expert_id: int) -> str:
        expert = self.get_expert(expert_id)
        return expert.name if expert else f"expert{expert_id}"

    def get_expert_role(self, expert_id: int) -> str:
        expert = self.get_expert(expert_id)
        return expert.role if expert else "general"

    def find_expert(self, name_or_id: str) -> Optional[int]:
        """Resolve an expert by numeric id or case-insensitive name."""
        if name_or_id.isdigit():
            idx = int(name_or_id)
            return idx if self.get_expert(idx) else None
        for idx, expert in enumerate(self.experts):
            if expert.name.lower() == name_or_id.lower():
                return idx
        return None
