"""
Run outcomes and completion messages.

An executor returns a TaskOutcome; the worker wraps it in a Completion and
posts it on the dispatcher's completion channel. Executors never touch a
TaskRecord directly; the dispatcher applies the state transition when it
drains the channel.

Example:
    ```python
    async def execute(record, token):
        data = await fetch(record.request.payload)
        return TaskOutcome.success(data)
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pybgtasks.models.status import TaskResult

__all__ = [
    "TaskOutcome",
    "Completion",
]


@dataclass(frozen=True)
class TaskOutcome:
    """Result of one executor run.

    Attributes:
        result: SUCCESS, FAILURE or RETRY
        output: Optional output payload, stored on the record
        error: Error text for FAILURE/RETRY, stored as last_error
    """

    result: TaskResult
    output: Any = None
    error: str | None = None

    @classmethod
    def success(cls, output: Any = None) -> TaskOutcome:
        return cls(TaskResult.SUCCESS, output=output)

    @classmethod
    def failure(cls, error: str | None = None, output: Any = None) -> TaskOutcome:
        return cls(TaskResult.FAILURE, output=output, error=error)

    @classmethod
    def retry(cls, error: str | None = None, output: Any = None) -> TaskOutcome:
        return cls(TaskResult.RETRY, output=output, error=error)

    def is_success(self) -> bool:
        return self.result.is_success


@dataclass(frozen=True)
class Completion:
    """Message posted by a worker when a run ends.

    run_id ties the message to the admission that produced it; the
    dispatcher drops completions whose run_id no longer matches the record.
    """

    record_id: int
    run_id: str
    outcome: TaskOutcome
    finished_at: int
