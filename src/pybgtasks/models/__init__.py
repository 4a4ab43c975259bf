"""Core data models for background task scheduling.

Defines the request/record pair, the constraint and environment value
objects, lifecycle enumerations and the backoff strategy.

Design: Dependency-Free Models
These types depend only on each other and on pybgtasks.core.errors, so
executor and storage modules can import them without cycles.
"""

from pybgtasks.models.constraints import EnvironmentSnapshot, NetworkType, TaskConstraints
from pybgtasks.models.record import TaskRecord
from pybgtasks.models.request import (
    MINIMUM_PERIODIC_INTERVAL_MINUTES,
    PeriodicInterval,
    TaskKind,
    TaskPriority,
    TaskRequest,
    TaskType,
)
from pybgtasks.models.retry import DEFAULT_MAX_BACKOFF_MS, BackoffPolicy, calculate_delay
from pybgtasks.models.status import ExecutionPolicy, TaskResult, TaskState

__all__ = [
    "BackoffPolicy",
    "calculate_delay",
    "DEFAULT_MAX_BACKOFF_MS",
    "EnvironmentSnapshot",
    "ExecutionPolicy",
    "MINIMUM_PERIODIC_INTERVAL_MINUTES",
    "NetworkType",
    "PeriodicInterval",
    "TaskConstraints",
    "TaskKind",
    "TaskPriority",
    "TaskRecord",
    "TaskRequest",
    "TaskResult",
    "TaskState",
    "TaskType",
]
