"""
pybgtasks: background task scheduling for Python

Schedules deferred and periodic work under device constraints (network,
charging, idle, battery, storage), resolves identifier conflicts with
replace/keep/append policies, retries failures with linear or
exponential backoff and runs admitted tasks on a bounded asyncio worker
pool with cooperative cancellation.

Design Pattern: Façade Pattern
This module re-exports the public surface; Scheduler is the entry point.

Example:
    ```python
    import asyncio
    from pybgtasks import (
        ExecutionPolicy, NetworkType, Scheduler, TaskConstraints,
        TaskOutcome, TaskRequest,
    )

    async def upload(record, token):
        if token.is_cancelled:
            return TaskOutcome.retry("cancelled")
        await send(record.request.payload)
        return TaskOutcome.success()

    async def main():
        scheduler = Scheduler(upload)
        scheduler.schedule(
            TaskRequest.one_time("upload-photos")
            .with_constraints(TaskConstraints().with_network(NetworkType.UNMETERED))
            .with_payload(["a.jpg", "b.jpg"]),
            ExecutionPolicy.KEEP,
        )
        handle = await scheduler.start()
        await asyncio.sleep(10)
        await handle.shutdown()

    asyncio.run(main())
    ```
"""

from pybgtasks.core import (
    CancellationToken,
    Clock,
    ExecutorFailure,
    ExecutorTimeout,
    InvalidRequest,
    InvariantViolation,
    ManualClock,
    StorageError,
    SystemClock,
    TaskAlreadyExists,
    TaskError,
    TaskNotFound,
)
from pybgtasks.core.config import SchedulerConfig
from pybgtasks.core.platform import (
    BackgroundMode,
    ForegroundServiceType,
    TaskPlatform,
    current_platform,
    is_background_tasks_available,
    minimum_periodic_interval,
)
from pybgtasks.models import (
    DEFAULT_MAX_BACKOFF_MS,
    MINIMUM_PERIODIC_INTERVAL_MINUTES,
    BackoffPolicy,
    EnvironmentSnapshot,
    ExecutionPolicy,
    NetworkType,
    PeriodicInterval,
    TaskConstraints,
    TaskKind,
    TaskPriority,
    TaskRecord,
    TaskRequest,
    TaskResult,
    TaskState,
    TaskType,
    calculate_delay,
)
from pybgtasks.executor import (
    EnvironmentProvider,
    Executor,
    FunctionExecutor,
    Scheduler,
    SchedulerError,
    SchedulerHandle,
    TaskOutcome,
    ThreadedExecutor,
    is_satisfied,
)
from pybgtasks.storage import InMemoryTaskStore, SqliteTaskStore, TaskStore

# Version
__version__ = "0.1.0"

__all__ = [
    # Scheduler
    "Scheduler",
    "SchedulerHandle",
    "SchedulerError",
    "SchedulerConfig",
    # Requests and records
    "TaskRequest",
    "TaskRecord",
    "TaskType",
    "TaskKind",
    "TaskPriority",
    "PeriodicInterval",
    "MINIMUM_PERIODIC_INTERVAL_MINUTES",
    "TaskState",
    "TaskResult",
    "ExecutionPolicy",
    # Constraints
    "TaskConstraints",
    "NetworkType",
    "EnvironmentSnapshot",
    "is_satisfied",
    # Backoff
    "BackoffPolicy",
    "calculate_delay",
    "DEFAULT_MAX_BACKOFF_MS",
    # Executors
    "Executor",
    "EnvironmentProvider",
    "FunctionExecutor",
    "ThreadedExecutor",
    "TaskOutcome",
    "CancellationToken",
    # Time
    "Clock",
    "SystemClock",
    "ManualClock",
    # Platforms
    "TaskPlatform",
    "ForegroundServiceType",
    "BackgroundMode",
    "current_platform",
    "minimum_periodic_interval",
    "is_background_tasks_available",
    # Storage
    "TaskStore",
    "InMemoryTaskStore",
    "SqliteTaskStore",
    # Errors
    "TaskError",
    "TaskAlreadyExists",
    "TaskNotFound",
    "InvalidRequest",
    "ExecutorFailure",
    "ExecutorTimeout",
    "InvariantViolation",
    "StorageError",
]
