"""
Core runtime types for pybgtasks.

- Clock / SystemClock / ManualClock: injectable time source (milliseconds)
- CancellationToken: cooperative cancellation signal for executor runs
- SchedulerConfig: tunables with environment-variable support
- TaskPlatform helpers: host scheduler, foreground service and background mode descriptors
- Error hierarchy rooted at TaskError
"""

from pybgtasks.core.cancellation import CancellationToken
from pybgtasks.core.clock import Clock, ManualClock, SystemClock
from pybgtasks.core.errors import (
    ExecutorFailure,
    ExecutorTimeout,
    InvalidRequest,
    InvariantViolation,
    StorageError,
    TaskAlreadyExists,
    TaskError,
    TaskNotFound,
)

# Lazy imports to avoid circular dependency:
# pybgtasks.models imports pybgtasks.core.errors, and the config and
# platform modules import pybgtasks.models.


def __getattr__(name: str):
    """Lazy import of the modules that depend on pybgtasks.models."""
    if name == "SchedulerConfig":
        from pybgtasks.core.config import SchedulerConfig

        return SchedulerConfig
    if name in (
        "TaskPlatform",
        "ForegroundServiceType",
        "BackgroundMode",
        "current_platform",
        "minimum_periodic_interval",
        "is_background_tasks_available",
    ):
        from pybgtasks.core import platform

        return getattr(platform, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "CancellationToken",
    "Clock",
    "ManualClock",
    "SystemClock",
    "SchedulerConfig",
    "TaskPlatform",
    "ForegroundServiceType",
    "BackgroundMode",
    "current_platform",
    "minimum_periodic_interval",
    "is_background_tasks_available",
    "TaskError",
    "TaskAlreadyExists",
    "TaskNotFound",
    "InvalidRequest",
    "ExecutorFailure",
    "ExecutorTimeout",
    "InvariantViolation",
    "StorageError",
]
