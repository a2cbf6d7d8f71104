"""
Expert status detection.

Status comes from two observations:
- the marker file queue/status/expert<N>, written by the agent's
  UserPromptSubmit/Stop hooks ("processing" / "pending"), and its mtime;
- the latest pane snapshot, captured off the control loop by a worker
  and kept in a PaneSnapshotCache.

classify() only reads the cache and stats a small local file, so it is
cheap enough to run for every expert on every tick. It never raises:
anything ambiguous is UNKNOWN.
"""

import os
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .claude_manager import READY_MARKER, strip_ansi
from .exceptions import ExternalCommandFailed
from .logging_config import get_logger
from .status_constants import (
    DEFAULT_CAPTURE_LINES,
    MARKER_PENDING,
    MARKER_PROCESSING,
    SHELL_COMMANDS,
    ExpertStatus,
)

logger = get_logger("detector")


@dataclass(frozen=True)
class PaneSnapshot:
    content: str
    current_command: Optional[str]
    captured_at: float

    @property
    def shows_ready_prompt(self) -> bool:
        return READY_MARKER in strip_ansi(self.content)

    @property
    def at_shell(self) -> bool:
        return (self.current_command or "") in SHELL_COMMANDS


class PaneSnapshotCache:
    """Latest pane captures, written by a worker thread and read by the loop."""

    def __init__(self):
        self._snapshots: Dict[int, PaneSnapshot] = {}
        self._lock = threading.Lock()

    def update(self, expert_id: int, content: str, current_command: Optional[str] = None) -> None:
        snapshot = PaneSnapshot(content, current_command, time.time())
        with self._lock:
            self._snapshots[expert_id] = snapshot

    def get(self, expert_id: int) -> Optional[PaneSnapshot]:
        with self._lock:
            return self._snapshots.get(expert_id)

    def discard(self, expert_id: int) -> None:
        with self._lock:
            self._snapshots.pop(expert_id, None)

    def refresh(self, tmux_manager, expert_ids: Iterable[int], lines: int = DEFAULT_CAPTURE_LINES) -> None:
        """Capture every pane. Blocking; run from a worker, not the loop."""
        for expert_id in expert_ids:
            try:
                content = tmux_manager.capture_pane(expert_id, lines=lines)
            except ExternalCommandFailed as e:
                logger.debug("capture failed for expert%d: %s", expert_id, e)
                self.discard(expert_id)
                continue
            self.update(expert_id, content, tmux_manager.pane_current_command(expert_id))


class ExpertStateDetector:
    """Classifies each expert from its marker file and pane snapshot."""

    def __init__(
        self,
        status_dir: Path,
        snapshots: Optional[PaneSnapshotCache] = None,
        stuck_after: float = 600.0,
        clock: Callable[[], float] = time.time,
    ):
        self.status_dir = Path(status_dir)
        self.snapshots = snapshots or PaneSnapshotCache()
        self.stuck_after = stuck_after
        self._clock = clock
        # path -> (mtime_ns, size, content)
        self._marker_cache: Dict[Path, Tuple[int, int, Optional[str]]] = {}

    def marker_path(self, expert_id: int) -> Path:
        return self.status_dir / f"expert{expert_id}"

    def ensure_status_dir(self) -> None:
        self.status_dir.mkdir(parents=True, exist_ok=True)

    def set_marker(self, expert_id: int, content: str) -> None:
        """Replace the marker atomically so readers never see a partial write."""
        self.ensure_status_dir()
        fd, tmp = tempfile.mkstemp(dir=self.status_dir, prefix=f".expert{expert_id}.")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.replace(tmp, self.marker_path(expert_id))
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def clear_marker(self, expert_id: int) -> None:
        try:
            self.marker_path(expert_id).unlink()
        except FileNotFoundError:
            pass

    def read_marker(self, expert_id: int) -> Tuple[Optional[str], Optional[float]]:
        """Return (content, mtime); content is None when missing or undecodable.

        The file is only re-read when its mtime or size changed.
        """
        path = self.marker_path(expert_id)
        try:
            st = os.stat(path)
        except OSError:
            self._marker_cache.pop(path, None)
            return None, None

        cached = self._marker_cache.get(path)
        if cached is not None and cached[0] == st.st_mtime_ns and cached[1] == st.st_size:
            return cached[2], st.st_mtime

        try:
            content = path.read_bytes().decode("utf-8").strip()
        except (OSError, UnicodeDecodeError):
            content = None
        self._marker_cache[path] = (st.st_mtime_ns, st.st_size, content)
        return content, st.st_mtime

    def classify(self, expert_id: int) -> ExpertStatus:
        try:
            return self._classify(expert_id)
        except Exception as e:
            logger.debug("classify expert%d failed: %s", expert_id, e)
            return ExpertStatus.UNKNOWN

    def _classify(self, expert_id: int) -> ExpertStatus:
        snapshot = self.snapshots.get(expert_id)
        path_exists = self.marker_path(expert_id).exists()
        content, mtime = self.read_marker(expert_id)

        if snapshot is not None and snapshot.at_shell:
            return ExpertStatus.PENDING

        if not path_exists:
            if snapshot is None:
                return ExpertStatus.PENDING
            if snapshot.shows_ready_prompt:
                return ExpertStatus.READY
            return ExpertStatus.STARTING

        if not content:
            return ExpertStatus.UNKNOWN
        if content == MARKER_PENDING:
            return ExpertStatus.READY
        if content == MARKER_PROCESSING:
            if mtime is not None and self._clock() - mtime > self.stuck_after:
                return ExpertStatus.STUCK
            return ExpertStatus.BUSY
        return ExpertStatus.UNKNOWN

    def classify_all(self, expert_ids: Iterable[int]) -> List[Tuple[int, ExpertStatus]]:
        return [(expert_id, self.classify(expert_id)) for expert_id in expert_ids]
