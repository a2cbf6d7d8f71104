"""
Background task coordination.

Long-running per-expert operations (agent launch, worktree relocation)
run on a thread pool so the control loop never blocks on them. Each
operation is guarded by a resource key: while one is in flight for a key,
further start() calls for that key are rejected, never queued.

The control loop owns the slots. start() fills a slot, poll() empties it
exactly once when the operation has finished. Operations report back
only through their return value or exception.

There is no cancellation. abandon() forgets in-flight operations and lets
their threads run to completion unobserved.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Optional

from .exceptions import GuardRejected
from .logging_config import get_logger

logger = get_logger("coordinator")

DEFAULT_MAX_WORKERS = 8


class PollStatus(str, Enum):
    IDLE = "idle"            # nothing tracked for this key
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class InProgress:
    resource_key: Hashable
    future: Future
    started_at: float
    label: Optional[str] = None

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


@dataclass(frozen=True)
class PollResult:
    resource_key: Hashable
    status: PollStatus
    result: Any = None
    error: Optional[BaseException] = None
    label: Optional[str] = None
    elapsed: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (PollStatus.COMPLETED, PollStatus.FAILED)


def expert_key(expert_id: int) -> str:
    """Resource key guarding launch/relocation of one expert."""
    return f"expert:{expert_id}"


class BackgroundTaskCoordinator:
    """At most one in-flight operation per resource key."""

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS, executor: Optional[ThreadPoolExecutor] = None):
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="expertdeck-op"
        )
        self._slots: Dict[Hashable, InProgress] = {}
        self._lock = threading.Lock()
        self._closed = False

    def start(self, resource_key: Hashable, fn: Callable[..., Any], *args, label: Optional[str] = None, **kwargs) -> InProgress:
        """Run fn(*args, **kwargs) in the background, guarded by resource_key.

        Returns immediately.

        Raises:
            GuardRejected: An operation for this key is still being tracked
                (running, or finished but not yet polled)
            RuntimeError: The coordinator has been abandoned
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("coordinator has been shut down")
            current = self._slots.get(resource_key)
            if current is not None:
                logger.info("Rejected %s for %s: %s still in progress", label, resource_key, current.label)
                raise GuardRejected(resource_key, current.label)
            future = self._executor.submit(fn, *args, **kwargs)
            slot = InProgress(resource_key, future, time.monotonic(), label)
            self._slots[resource_key] = slot
        logger.info("Started %s for %s", label or "operation", resource_key)
        return slot

    def poll(self, resource_key: Hashable) -> PollResult:
        """Report on the operation for a key.

        A finished operation is reported once (COMPLETED or FAILED) and
        its slot is freed; afterwards the key polls IDLE.
        """
        with self._lock:
            slot = self._slots.get(resource_key)
            if slot is None:
                return PollResult(resource_key, PollStatus.IDLE)
            if not slot.future.done():
                return PollResult(resource_key, PollStatus.RUNNING, label=slot.label, elapsed=slot.elapsed)
            del self._slots[resource_key]

        elapsed = slot.elapsed
        error = slot.future.exception()
        if error is not None:
            logger.error("%s for %s failed after %.1fs: %s", slot.label or "operation", resource_key, elapsed, error)
            return PollResult(resource_key, PollStatus.FAILED, error=error, label=slot.label, elapsed=elapsed)
        logger.info("%s for %s completed in %.1fs", slot.label or "operation", resource_key, elapsed)
        return PollResult(
            resource_key, PollStatus.COMPLETED, result=slot.future.result(), label=slot.label, elapsed=elapsed
        )

    def poll_all(self) -> List[PollResult]:
        """Poll every tracked key and return only the terminal outcomes."""
        with self._lock:
            keys = list(self._slots)
        results = []
        for key in keys:
            result = self.poll(key)
            if result.is_terminal:
                results.append(result)
        return results

    def is_busy(self, resource_key: Hashable) -> bool:
        with self._lock:
            return resource_key in self._slots

    def in_progress(self) -> Dict[Hashable, InProgress]:
        with self._lock:
            return dict(self._slots)

    def wait(self, resource_key: Hashable, timeout: Optional[float] = None) -> PollResult:
        """Block until the operation for a key finishes, then poll it.

        For the CLI, which has no render loop to keep alive.
        """
        with self._lock:
            slot = self._slots.get(resource_key)
        if slot is not None:
            try:
                slot.future.exception(timeout=timeout)
            except TimeoutError:
                pass
        return self.poll(resource_key)

    def abandon(self) -> None:
        """Stop tracking everything. Running operations are not interrupted."""
        with self._lock:
            abandoned = list(self._slots.values())
            self._slots.clear()
            self._closed = True
        for slot in abandoned:
            logger.warning("Abandoning %s for %s", slot.label or "operation", slot.resource_key)
        self._executor.shutdown(wait=False)
