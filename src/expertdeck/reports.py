"""
Task reports written by experts into <queue>/reports/*.yaml.

Experts write these files themselves, so anything unreadable is skipped
with a warning instead of failing the listing.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import yaml

from .logging_config import get_logger

logger = get_logger("reports")

REPORT_STATUSES = ("pending", "in_progress", "done", "failed", "cancelled")


def _parse_time(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _strings(value) -> List[str]:
    if not value:
        return []
    if not isinstance(value, list):
        raise ValueError(f"expected a list, got {type(value).__name__}")
    return [str(v) for v in value]


@dataclass
class Finding:
    description: str
    severity: str = "info"
    file: Optional[str] = None
    line: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Finding":
        if not isinstance(data, dict) or not data.get("description"):
            raise ValueError(f"malformed finding: {data!r}")
        line = data.get("line")
        return cls(
            description=str(data["description"]),
            severity=str(data.get("severity") or "info"),
            file=data.get("file"),
            line=int(line) if line is not None else None,
        )


@dataclass
class Report:
    """One expert's account of a finished (or failed) task."""

    task_id: str
    expert_id: int
    expert_name: str
    status: str
    summary: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    findings: List[Finding] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    files_modified: List[str] = field(default_factory=list)
    files_created: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Report":
        """Build a report from its YAML form.

        The finding and file lists live under "details".

        Raises:
            ValueError: If a required field is missing or malformed
        """
        missing = [k for k in ("task_id", "expert_id", "status") if data.get(k) is None]
        if missing:
            raise ValueError(f"report is missing {', '.join(missing)}")
        status = str(data["status"]).lower()
        if status not in REPORT_STATUSES:
            raise ValueError(f"unknown report status '{data['status']}'")
        details = data.get("details") or {}
        if not isinstance(details, dict):
            raise ValueError("report details must be a mapping")
        try:
            expert_id = int(data["expert_id"])
        except (TypeError, ValueError) as e:
            raise ValueError(f"bad expert_id {data['expert_id']!r}") from e
        return cls(
            task_id=str(data["task_id"]),
            expert_id=expert_id,
            expert_name=str(data.get("expert_name") or f"expert{expert_id}"),
            status=status,
            summary=str(data.get("summary") or ""),
            started_at=_parse_time(data.get("started_at")),
            completed_at=_parse_time(data.get("completed_at")),
            findings=[Finding.from_dict(f) for f in details.get("findings") or []],
            recommendations=_strings(details.get("recommendations")),
            files_modified=_strings(details.get("files_modified")),
            files_created=_strings(details.get("files_created")),
            errors=_strings(data.get("errors")),
        )

    @property
    def sort_key(self) -> datetime:
        return self.completed_at or self.started_at or datetime.min


def load_report(path: Path) -> Report:
    """Raises yaml.YAMLError or ValueError for an unusable file."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError("not a mapping")
    return Report.from_dict(data)


def load_reports(reports_path: Path, expert_id: Optional[int] = None) -> List[Report]:
    """Every readable report, newest first."""
    reports_path = Path(reports_path)
    if not reports_path.is_dir():
        return []
    reports = []
    for path in sorted(reports_path.glob("*.yaml")):
        try:
            report = load_report(path)
        except (OSError, yaml.YAMLError, ValueError) as e:
            logger.warning("Skipping unreadable report %s: %s", path.name, e)
            continue
        if expert_id is None or report.expert_id == expert_id:
            reports.append(report)
    return sorted(reports, key=lambda r: r.sort_key.replace(tzinfo=None), reverse=True)
