"""
Persistent records kept per session: expert contexts, shared decisions
and role assignments.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union


def _parse_time(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        try:
            return datetime.fromisoformat(str(value))
        except ValueError:
            pass
    return datetime.now()


@dataclass
class ExpertContext:
    """What the session remembers about one expert across launches.

    The worktree fields are only changed through relocate() and
    return_to_root(); both clear the resume token in the same update, so a
    token never outlives the directory it was created in.
    """

    expert_id: int
    expert_name: str
    session_hash: str
    role: Optional[str] = None
    claude_session_id: Optional[str] = None
    worktree_branch: Optional[str] = None
    worktree_path: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def touch(self) -> None:
        self.updated_at = datetime.now()

    def set_session_id(self, session_id: Optional[str]) -> None:
        self.claude_session_id = session_id
        self.touch()

    def clear_session(self) -> None:
        self.claude_session_id = None
        self.touch()

    def relocate(self, branch: str, path: Union[str, Path]) -> None:
        """Record a new worktree and drop the resume token."""
        self.worktree_branch = branch
        self.worktree_path = str(path)
        self.claude_session_id = None
        self.touch()

    def return_to_root(self) -> None:
        """Forget the worktree and drop the resume token."""
        self.worktree_branch = None
        self.worktree_path = None
        self.claude_session_id = None
        self.touch()

    @property
    def in_worktree(self) -> bool:
        return self.worktree_path is not None

    def to_dict(self) -> dict:
        return {
            "expert_id": self.expert_id,
            "expert_name": self.expert_name,
            "session_hash": self.session_hash,
            "role": self.role,
            "claude_session_id": self.claude_session_id,
            "worktree_branch": self.worktree_branch,
            "worktree_path": self.worktree_path,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExpertContext":
        """Build a context from its stored form.

        Raises:
            ValueError: If expert_id or session_hash is missing or malformed
        """
        missing = [key for key in ("expert_id", "session_hash") if data.get(key) is None]
        if missing:
            raise ValueError(f"expert context is missing {', '.join(missing)}")
        try:
            expert_id = int(data["expert_id"])
        except (TypeError, ValueError):
            raise ValueError(f"expert context has a bad expert_id: {data['expert_id']!r}")
        return cls(
            expert_id=expert_id,
            expert_name=str(data.get("expert_name") or f"expert{expert_id}"),
            session_hash=str(data["session_hash"]),
            role=data.get("role"),
            claude_session_id=data.get("claude_session_id"),
            worktree_branch=data.get("worktree_branch"),
            worktree_path=data.get("worktree_path"),
            created_at=_parse_time(data.get("created_at")),
            updated_at=_parse_time(data.get("updated_at")),
        )


@dataclass
class Decision:
    """A design decision recorded by one expert for the others."""

    made_by: int
    topic: str
    decision: str
    rationale: str = ""
    affects_experts: List[int] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = f"decision-{int(self.timestamp.timestamp())}"

    def affects(self, expert_id: int) -> bool:
        return not self.affects_experts or expert_id in self.affects_experts

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "made_by": self.made_by,
            "timestamp": self.timestamp.isoformat(),
            "topic": self.topic,
            "decision": self.decision,
            "rationale": self.rationale,
            "affects_experts": list(self.affects_experts),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Decision":
        return cls(
            made_by=int(data.get("made_by", 0)),
            topic=str(data.get("topic", "")),
            decision=str(data.get("decision", "")),
            rationale=str(data.get("rationale", "")),
            affects_experts=[int(e) for e in data.get("affects_experts") or []],
            timestamp=_parse_time(data.get("timestamp")),
            id=str(data.get("id", "")),
        )


@dataclass
class SharedContext:
    decisions: List[Decision] = field(default_factory=list)

    def add_decision(self, decision: Decision) -> None:
        self.decisions.append(decision)

    def decisions_for_expert(self, expert_id: int) -> List[Decision]:
        return [d for d in self.decisions if d.affects(expert_id)]

    def decisions_by_topic(self, topic: str) -> List[Decision]:
        needle = topic.lower()
        return [d for d in self.decisions if needle in d.topic.lower()]

    def to_dict(self) -> dict:
        return {"decisions": [d.to_dict() for d in self.decisions]}

    @classmethod
    def from_dict(cls, data: dict) -> "SharedContext":
        try:
            return cls(decisions=[Decision.from_dict(d) for d in data.get("decisions") or []])
        except (AttributeError, TypeError, ValueError) as e:
            raise ValueError(f"malformed decision: {e!r}")


@dataclass
class RoleAssignment:
    expert_id: int
    role: str
    assigned_at: datetime = field(default_factory=datetime.now)


@dataclass
class SessionExpertRoles:
    """Role overrides for a session; experts without one use their configured role."""

    session_hash: str
    assignments: List[RoleAssignment] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def get_role(self, expert_id: int) -> Optional[str]:
        for assignment in self.assignments:
            if assignment.expert_id == expert_id:
                return assignment.role
        return None

    def set_role(self, expert_id: int, role: str) -> None:
        now = datetime.now()
        self.updated_at = now
        for assignment in self.assignments:
            if assignment.expert_id == expert_id:
                assignment.role = role
                assignment.assigned_at = now
                return
        self.assignments.append(RoleAssignment(expert_id, role, now))

    def to_dict(self) -> dict:
        return {
            "session_hash": self.session_hash,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "assignments": [
                {"expert_id": a.expert_id, "role": a.role, "assigned_at": a.assigned_at.isoformat()}
                for a in self.assignments
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionExpertRoles":
        """Raises ValueError if the session hash or an assignment is malformed."""
        if data.get("session_hash") is None:
            raise ValueError("role assignments are missing session_hash")
        try:
            assignments = [
                RoleAssignment(int(a["expert_id"]), str(a["role"]), _parse_time(a.get("assigned_at")))
                for a in data.get("assignments") or []
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"malformed role assignment: {e!r}")
        return cls(
            session_hash=str(data["session_hash"]),
            assignments=assignments,
            created_at=_parse_time(data.get("created_at")),
            updated_at=_parse_time(data.get("updated_at")),
        )
