"""Status enumerations for background task tracking.

Defines the lifecycle states of a task record, the result an executor
reports back, and the conflict policy applied when an identifier is
scheduled twice.
"""

from enum import Enum


class TaskState(Enum):
    """State of a task record in the catalog.

    Lifecycle:
        PENDING → SCHEDULED → RUNNING → COMPLETED/FAILED/CANCELLED/EXPIRED

    A RUNNING task that fails with retries left returns to SCHEDULED.
    A periodic task that completes returns to SCHEDULED as well.
    Terminal states never transition further.
    """

    PENDING = "PENDING"
    """Created, not yet armed with a run time."""

    SCHEDULED = "SCHEDULED"
    """Armed; waiting for its run time and constraints."""

    RUNNING = "RUNNING"
    """Handed to an executor."""

    COMPLETED = "COMPLETED"
    """One-shot task finished successfully."""

    FAILED = "FAILED"
    """Retries exhausted or forced to fail while healing an invariant."""

    CANCELLED = "CANCELLED"
    """Cancelled by the caller."""

    EXPIRED = "EXPIRED"
    """Never ran within the configured maximum lifetime."""

    @property
    def is_terminal(self) -> bool:
        """Check if this state is terminal (no more transitions)."""
        return self in (
            TaskState.COMPLETED,
            TaskState.FAILED,
            TaskState.CANCELLED,
            TaskState.EXPIRED,
        )

    @property
    def is_waiting(self) -> bool:
        """Check if the record is waiting to be admitted."""
        return self in (TaskState.PENDING, TaskState.SCHEDULED)

    def __str__(self) -> str:
        return self.value


class TaskResult(Enum):
    """Result reported by an executor for one run."""

    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    RETRY = "RETRY"

    @property
    def is_success(self) -> bool:
        return self == TaskResult.SUCCESS

    def __str__(self) -> str:
        return self.value


class ExecutionPolicy(Enum):
    """Conflict rule applied when scheduling an identifier that is already active.

    REPLACE cancels the existing record and inserts the new one.
    KEEP rejects the new request with TaskAlreadyExists.
    APPEND inserts an independent record; copies may run concurrently.
    """

    REPLACE = "REPLACE"
    KEEP = "KEEP"
    APPEND = "APPEND"

    def __str__(self) -> str:
        return self.value
