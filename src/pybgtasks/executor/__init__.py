"""
Executor module - runtime engine for background tasks.

This module contains the execution components:
- catalog: TaskCatalog, the single owner of task records
- constraints: evaluation of TaskConstraints against an EnvironmentSnapshot
- policy: replace/keep/append conflict resolution
- dispatcher: the tick loop (completions, expiry, admission)
- registry: executors per task type
- outcome: TaskOutcome and the Completion message
- scheduler: Scheduler façade and SchedulerHandle
"""

from pybgtasks.executor.catalog import TaskCatalog
from pybgtasks.executor.constraints import is_satisfied, unmet_constraints
from pybgtasks.executor.dispatcher import Dispatcher, admission_order
from pybgtasks.executor.outcome import Completion, TaskOutcome
from pybgtasks.executor.policy import Resolution, blocks_admission, resolve
from pybgtasks.executor.registry import (
    EnvironmentProvider,
    ExecuteFn,
    Executor,
    FunctionExecutor,
    Registry,
    ThreadedExecutor,
    as_executor,
)
from pybgtasks.executor.scheduler import Scheduler, SchedulerError, SchedulerHandle

__all__ = [
    # Catalog and policies
    "TaskCatalog",
    "Resolution",
    "resolve",
    "blocks_admission",
    # Constraints
    "is_satisfied",
    "unmet_constraints",
    # Dispatcher
    "Dispatcher",
    "admission_order",
    # Executors
    "Executor",
    "ExecuteFn",
    "EnvironmentProvider",
    "FunctionExecutor",
    "ThreadedExecutor",
    "Registry",
    "as_executor",
    "TaskOutcome",
    "Completion",
    # Scheduler
    "Scheduler",
    "SchedulerError",
    "SchedulerHandle",
]
