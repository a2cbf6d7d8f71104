"""
YAML persistence for session context.

Layout under <queue>/sessions/<session_hash>/:
    experts/expert<N>/context.yaml
    shared/decisions.yaml
    expert_roles.yaml

Every file is written to a unique temp file in the same directory and
moved into place, so concurrent saves never leave a torn record and the
last writer wins.
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

import yaml

from .context_models import Decision, ExpertContext, SessionExpertRoles, SharedContext
from .logging_config import get_logger

logger = get_logger("context")

T = TypeVar("T")


def atomic_write_yaml(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def _read_yaml(path: Path) -> Optional[Dict[str, Any]]:
    if not path.exists():
        return None
    with open(path) as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else None


def _load_record(path: Path, factory: Callable[[Dict[str, Any]], T]) -> Optional[T]:
    """Read one record file; None if absent.

    Raises:
        yaml.YAMLError: If the file cannot be parsed
        ValueError: If it parses but is not a valid record (message names the file)
    """
    data = _read_yaml(path)
    if data is None:
        return None
    try:
        return factory(data)
    except ValueError as e:
        raise ValueError(f"{path}: {e}") from e


class ContextStore:
    """Reads and writes session context files."""

    def __init__(self, queue_path: Path):
        self.base_path = Path(queue_path) / "sessions"

    def session_path(self, session_hash: str) -> Path:
        return self.base_path / session_hash

    def expert_path(self, session_hash: str, expert_id: int) -> Path:
        return self.session_path(session_hash) / "experts" / f"expert{expert_id}"

    def shared_path(self, session_hash: str) -> Path:
        return self.session_path(session_hash) / "shared"

    def init_session(self, session_hash: str, num_experts: int) -> None:
        self.shared_path(session_hash).mkdir(parents=True, exist_ok=True)
        for expert_id in range(num_experts):
            self.expert_path(session_hash, expert_id).mkdir(parents=True, exist_ok=True)

    def session_exists(self, session_hash: str) -> bool:
        return self.session_path(session_hash).exists()

    # Expert context -----------------------------------------------------

    def load_expert_context(self, session_hash: str, expert_id: int) -> Optional[ExpertContext]:
        """Load an expert's context, or None if it was never saved.

        Raises:
            yaml.YAMLError: If the file exists but cannot be parsed
            ValueError: If the file parses but is not a valid context
        """
        return _load_record(self.expert_path(session_hash, expert_id) / "context.yaml", ExpertContext.from_dict)

    def save_expert_context(self, ctx: ExpertContext) -> None:
        path = self.expert_path(ctx.session_hash, ctx.expert_id) / "context.yaml"
        atomic_write_yaml(path, ctx.to_dict())
        logger.debug("Saved context for expert%d", ctx.expert_id)

    def clear_expert_context(self, session_hash: str, expert_id: int) -> None:
        path = self.expert_path(session_hash, expert_id) / "context.yaml"
        if path.exists():
            path.unlink()

    def list_expert_contexts(self, session_hash: str) -> List[ExpertContext]:
        """All saved contexts of a session, ordered by expert id."""
        experts_dir = self.session_path(session_hash) / "experts"
        if not experts_dir.exists():
            return []
        contexts = []
        for entry in experts_dir.iterdir():
            if not entry.name.startswith("expert"):
                continue
            suffix = entry.name[len("expert"):]
            if not suffix.isdigit():
                continue
            try:
                ctx = self.load_expert_context(session_hash, int(suffix))
            except (yaml.YAMLError, ValueError) as e:
                logger.warning("Unreadable context for %s: %s", entry.name, e)
                continue
            if ctx is not None:
                contexts.append(ctx)
        return sorted(contexts, key=lambda c: c.expert_id)

    # Shared context -----------------------------------------------------

    def load_shared_context(self, session_hash: str) -> SharedContext:
        ctx = _load_record(self.shared_path(session_hash) / "decisions.yaml", SharedContext.from_dict)
        return ctx if ctx is not None else SharedContext()

    def save_shared_context(self, session_hash: str, ctx: SharedContext) -> None:
        atomic_write_yaml(self.shared_path(session_hash) / "decisions.yaml", ctx.to_dict())

    def add_decision(self, session_hash: str, decision: Decision) -> None:
        ctx = self.load_shared_context(session_hash)
        ctx.add_decision(decision)
        self.save_shared_context(session_hash, ctx)

    # Roles --------------------------------------------------------------

    def load_session_roles(self, session_hash: str) -> Optional[SessionExpertRoles]:
        return _load_record(self.session_path(session_hash) / "expert_roles.yaml", SessionExpertRoles.from_dict)

    def save_session_roles(self, roles: SessionExpertRoles) -> None:
        atomic_write_yaml(self.session_path(roles.session_hash) / "expert_roles.yaml", roles.to_dict())

    # Sessions -----------------------------------------------------------

    def cleanup_session(self, session_hash: str) -> None:
        path = self.session_path(session_hash)
        if path.exists():
            shutil.rmtree(path)
            logger.info("Removed session context %s", session_hash)

    def list_sessions(self) -> List[str]:
        if not self.base_path.exists():
            return []
        return sorted(p.name for p in self.base_path.iterdir() if p.is_dir())
