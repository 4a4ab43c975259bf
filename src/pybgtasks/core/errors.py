"""Exception hierarchy for the background task scheduler.

Scheduling errors (TaskAlreadyExists, TaskNotFound, InvalidRequest) are
raised synchronously to the caller. Execution errors (ExecutorFailure,
ExecutorTimeout) never reach the caller of schedule(); they are recorded
on the task record as last_error and drive retry/backoff.
"""


class TaskError(Exception):
    """Base class for all scheduler errors."""

    pass


class TaskAlreadyExists(TaskError):
    """A non-terminal record already exists under the KEEP policy."""

    def __init__(self, identifier: str):
        super().__init__(f"Task already exists: {identifier!r}")
        self.identifier = identifier


class TaskNotFound(TaskError):
    """No record matches the requested id or identifier."""

    def __init__(self, key: int | str):
        super().__init__(f"Task not found: {key!r}")
        self.key = key


class InvalidRequest(TaskError, ValueError):
    """Malformed task request.

    Out-of-range periodic intervals are clamped, not rejected; this is
    raised for values that cannot be repaired (empty identifier, negative
    delays or retry counts).
    """

    pass


class ExecutorFailure(TaskError):
    """An executor raised or reported failure.

    Wraps the underlying exception (available as __cause__) so the
    dispatcher can record a single error type on the task record.
    """

    def __init__(self, message: str, *, record_id: int | None = None):
        super().__init__(message)
        self.record_id = record_id


class ExecutorTimeout(ExecutorFailure):
    """An executor did not return before its deadline and grace period."""

    pass


class InvariantViolation(TaskError, AssertionError):
    """Internal invariant broken (raised only when strict invariants are on)."""

    pass


class StorageError(TaskError):
    """Task store operation failed.

    Raised by TaskStore backends; the scheduler logs it and retries the
    write on the next tick.
    """

    pass
