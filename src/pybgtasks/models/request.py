"""Task request: the immutable description of a unit of deferred work.

A TaskRequest is created once by the caller and never mutated. Builders
follow the copy-on-write style: every `with_*` method returns a new
request, and validation runs again on each copy.

Example:
    request = (
        TaskRequest.one_time("sync-inbox")
        .with_priority(TaskPriority.HIGH)
        .with_constraints(TaskConstraints().with_network(NetworkType.CONNECTED))
        .with_retries(5, BackoffPolicy.LINEAR, 10_000)
        .with_tag("sync")
    )
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any

from pybgtasks.core.errors import InvalidRequest
from pybgtasks.models.constraints import TaskConstraints
from pybgtasks.models.retry import BackoffPolicy

MINIMUM_PERIODIC_INTERVAL_MINUTES = 15
"""Shortest periodic interval most platforms honour."""

_MINUTE_MS = 60 * 1000


class TaskType(Enum):
    """Category of background work; determines the default run timeout."""

    PROCESSING = "PROCESSING"
    APP_REFRESH = "APP_REFRESH"
    CONNECTIVITY = "CONNECTIVITY"
    CHARGING = "CHARGING"
    LOW_BATTERY_OK = "LOW_BATTERY_OK"

    @property
    def default_timeout_s(self) -> float:
        return _DEFAULT_TIMEOUTS[self]

    def __str__(self) -> str:
        return self.value


_DEFAULT_TIMEOUTS = {
    TaskType.PROCESSING: 30.0,
    TaskType.APP_REFRESH: 30.0,
    TaskType.CONNECTIVITY: 600.0,
    TaskType.CHARGING: 1800.0,
    TaskType.LOW_BATTERY_OK: 60.0,
}


class TaskPriority(IntEnum):
    """Ordinal priority; higher values are admitted first."""

    LOW = 1
    NORMAL = 5
    HIGH = 8
    EXPEDITED = 10


class TaskKind(Enum):
    ONE_SHOT = "ONE_SHOT"
    PERIODIC = "PERIODIC"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PeriodicInterval:
    """Repeat interval of a periodic task.

    The interval is clamped up to the platform minimum (15 minutes) and the
    flex window is clamped to at most half the interval.
    """

    minutes: int
    flex_minutes: int | None = None

    def __post_init__(self) -> None:
        minutes = max(MINIMUM_PERIODIC_INTERVAL_MINUTES, int(self.minutes))
        object.__setattr__(self, "minutes", minutes)
        if self.flex_minutes is not None:
            flex = max(0, min(int(self.flex_minutes), minutes // 2))
            object.__setattr__(self, "flex_minutes", flex)

    @classmethod
    def every(cls, minutes: int) -> PeriodicInterval:
        return cls(minutes=minutes)

    @classmethod
    def every_hours(cls, hours: int) -> PeriodicInterval:
        return cls.every(hours * 60)

    @classmethod
    def every_days(cls, days: int) -> PeriodicInterval:
        return cls.every(days * 24 * 60)

    def with_flexibility(self, flex_minutes: int) -> PeriodicInterval:
        return replace(self, flex_minutes=flex_minutes)

    def to_milliseconds(self) -> int:
        return self.minutes * _MINUTE_MS

    def earliest_run_offset_ms(self) -> int:
        """Offset from the previous run after which the next run may start."""
        if self.flex_minutes is not None:
            return (self.minutes - self.flex_minutes) * _MINUTE_MS
        return self.to_milliseconds()


@dataclass(frozen=True)
class TaskRequest:
    """Immutable description of a task, created once by the caller.

    Use TaskRequest.one_time() or TaskRequest.periodic() rather than the
    constructor; they carry the platform defaults.
    """

    identifier: str
    """Caller-chosen name; the deduplication key for execution policy."""

    task_type: TaskType = TaskType.PROCESSING
    priority: TaskPriority = TaskPriority.NORMAL
    constraints: TaskConstraints = field(default_factory=TaskConstraints)

    initial_delay_ms: int = 0
    """Delay between scheduling and the first eligible run."""

    periodic_interval: PeriodicInterval | None = None
    """Set for periodic tasks, None for one-shot tasks."""

    max_retries: int = 3
    backoff_policy: BackoffPolicy = BackoffPolicy.EXPONENTIAL
    backoff_delay_ms: int = 30_000

    tags: frozenset[str] = frozenset()
    payload: Any = None
    """Opaque input handed to the executor."""

    timeout_s: float | None = None
    """Run deadline override; None uses the task type default."""

    def __post_init__(self) -> None:
        if not isinstance(self.identifier, str) or not self.identifier.strip():
            raise InvalidRequest("identifier must be a non-empty string")
        if self.initial_delay_ms < 0:
            raise InvalidRequest(f"initial_delay_ms must be >= 0, got {self.initial_delay_ms}")
        if self.max_retries < 0:
            raise InvalidRequest(f"max_retries must be >= 0, got {self.max_retries}")
        if self.backoff_delay_ms < 0:
            raise InvalidRequest(f"backoff_delay_ms must be >= 0, got {self.backoff_delay_ms}")
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise InvalidRequest(f"timeout_s must be > 0, got {self.timeout_s}")
        if not isinstance(self.priority, TaskPriority):
            try:
                object.__setattr__(self, "priority", TaskPriority(self.priority))
            except ValueError as e:
                raise InvalidRequest(f"unknown priority: {self.priority!r}") from e
        if not isinstance(self.tags, frozenset):
            object.__setattr__(self, "tags", frozenset(self.tags))

    @classmethod
    def one_time(cls, identifier: str) -> TaskRequest:
        """One-shot processing task with three exponential retries (30s base)."""
        return cls(identifier=identifier)

    @classmethod
    def periodic(cls, identifier: str, interval: PeriodicInterval) -> TaskRequest:
        """Periodic app-refresh task with no retries."""
        return cls(
            identifier=identifier,
            task_type=TaskType.APP_REFRESH,
            periodic_interval=interval,
            max_retries=0,
        )

    @property
    def kind(self) -> TaskKind:
        return TaskKind.PERIODIC if self.periodic_interval is not None else TaskKind.ONE_SHOT

    @property
    def is_periodic(self) -> bool:
        return self.periodic_interval is not None

    @property
    def effective_timeout_s(self) -> float:
        if self.timeout_s is not None:
            return self.timeout_s
        return self.task_type.default_timeout_s

    def with_task_type(self, task_type: TaskType) -> TaskRequest:
        return replace(self, task_type=task_type)

    def with_priority(self, priority: TaskPriority) -> TaskRequest:
        return replace(self, priority=priority)

    def with_constraints(self, constraints: TaskConstraints) -> TaskRequest:
        return replace(self, constraints=constraints)

    def with_initial_delay(self, delay_ms: int) -> TaskRequest:
        return replace(self, initial_delay_ms=delay_ms)

    def with_periodic_interval(self, interval: PeriodicInterval | None) -> TaskRequest:
        return replace(self, periodic_interval=interval)

    def with_retries(
        self, max_retries: int, policy: BackoffPolicy, delay_ms: int
    ) -> TaskRequest:
        return replace(
            self, max_retries=max_retries, backoff_policy=policy, backoff_delay_ms=delay_ms
        )

    def with_payload(self, payload: Any) -> TaskRequest:
        return replace(self, payload=payload)

    def with_timeout(self, timeout_s: float | None) -> TaskRequest:
        return replace(self, timeout_s=timeout_s)

    def with_tag(self, tag: str) -> TaskRequest:
        return replace(self, tags=self.tags | {tag})

    def with_tags(self, tags: Iterable[str]) -> TaskRequest:
        return replace(self, tags=self.tags | frozenset(tags))
