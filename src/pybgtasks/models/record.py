"""Task record: the mutable execution state of one scheduled request.

Records are created only by the catalog's schedule(), mutated only by the
dispatcher (tick or completion processing) and removed only by prune().
Everything handed out to callers or executors is a copy.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

from pybgtasks.models.request import TaskRequest
from pybgtasks.models.status import ExecutionPolicy, TaskState


@dataclass
class TaskRecord:
    """Mutable bookkeeping for a task request.

    Timestamps are milliseconds from the scheduler's clock.
    """

    id: int
    """Monotonic id assigned at creation (starts at 1)."""

    identifier: str
    request: TaskRequest
    policy: ExecutionPolicy
    state: TaskState = TaskState.PENDING

    attempt_count: int = 0
    """Failures in the current retry chain. Reset by a periodic success."""

    scheduled_time: int = 0
    """When schedule() created the record; tie-breaker for equal priorities."""

    last_run_time: int | None = None
    next_run_time: int | None = None

    last_error: str | None = None
    output: Any = None

    cancel_requested: bool = False
    """Set when a RUNNING record is cancelled; the run stops cooperatively."""

    run_id: str | None = None
    """Id of the execution in flight, None when not running."""

    @property
    def is_finished(self) -> bool:
        return self.state.is_terminal

    def is_due(self, now: int) -> bool:
        return self.next_run_time is not None and self.next_run_time <= now

    def can_retry(self) -> bool:
        return not self.is_finished and self.attempt_count < self.request.max_retries

    def snapshot(self) -> TaskRecord:
        """Shallow copy safe to hand to callers; the request is immutable."""
        return copy.copy(self)

    def __repr__(self) -> str:
        return (
            f"TaskRecord(id={self.id}, identifier={self.identifier!r}, "
            f"state={self.state}, attempt_count={self.attempt_count}, "
            f"next_run_time={self.next_run_time})"
        )
