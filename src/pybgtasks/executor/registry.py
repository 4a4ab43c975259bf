"""Executor registry and collaborator protocols.

Executors do the real work of a task. They are caller-supplied per task
type and looked up by the dispatcher at admission time. An executor gets a
copy of the record plus a cancellation token and returns a TaskOutcome
(or raises, which counts as a failure).

Blocking code can be wrapped with ThreadedExecutor so it runs off the
event loop via asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from pybgtasks.core.cancellation import CancellationToken
from pybgtasks.executor.outcome import TaskOutcome
from pybgtasks.models.constraints import EnvironmentSnapshot
from pybgtasks.models.record import TaskRecord
from pybgtasks.models.request import TaskType

logger = logging.getLogger(__name__)

ExecuteFn = Callable[[TaskRecord, CancellationToken], Awaitable[TaskOutcome]]


@runtime_checkable
class Executor(Protocol):
    """Does the work of a task run.

    Must observe `token` and return promptly once it is signalled. Must not
    mutate the record it receives; results flow back only through the
    returned TaskOutcome.
    """

    async def execute(self, record: TaskRecord, token: CancellationToken) -> TaskOutcome: ...


@runtime_checkable
class EnvironmentProvider(Protocol):
    """Supplies the device conditions used for constraint evaluation."""

    def snapshot(self) -> EnvironmentSnapshot: ...


class FunctionExecutor:
    """Adapts a plain async function to the Executor protocol."""

    def __init__(self, fn: ExecuteFn):
        self._fn = fn

    async def execute(self, record: TaskRecord, token: CancellationToken) -> TaskOutcome:
        return await self._fn(record, token)

    def __repr__(self) -> str:
        return f"FunctionExecutor({getattr(self._fn, '__name__', self._fn)!r})"


class ThreadedExecutor:
    """Runs a blocking callable in a worker thread.

    The callable receives the same (record, token) pair and should poll
    token.is_cancelled between units of work.

    Example:
        def compress(record, token):
            for chunk in chunks(record.request.payload):
                if token.is_cancelled:
                    return TaskOutcome.retry("cancelled")
                write(chunk)
            return TaskOutcome.success()

        scheduler.register(TaskType.PROCESSING, ThreadedExecutor(compress))
    """

    def __init__(self, fn: Callable[[TaskRecord, CancellationToken], TaskOutcome]):
        self._fn = fn

    async def execute(self, record: TaskRecord, token: CancellationToken) -> TaskOutcome:
        return await asyncio.to_thread(self._fn, record, token)

    def __repr__(self) -> str:
        return f"ThreadedExecutor({getattr(self._fn, '__name__', self._fn)!r})"


def as_executor(executor: Executor | ExecuteFn) -> Executor:
    """Accept an Executor or a bare async function."""
    if isinstance(executor, Executor):
        return executor
    if callable(executor):
        return FunctionExecutor(executor)
    raise TypeError(f"not an executor: {executor!r}")


class Registry:
    """Maps task types to their executors, with an optional fallback.

    Example:
        registry = Registry()
        registry.register(TaskType.APP_REFRESH, refresh_feeds)
        registry.register_default(generic_executor)
    """

    def __init__(self) -> None:
        self._executors: dict[TaskType, Executor] = {}
        self._default: Executor | None = None

    def register(self, task_type: TaskType, executor: Executor | ExecuteFn) -> None:
        self._executors[task_type] = as_executor(executor)
        logger.debug(f"Registered executor for task type: {task_type}")

    def register_default(self, executor: Executor | ExecuteFn) -> None:
        self._default = as_executor(executor)

    def get_executor(self, task_type: TaskType) -> Executor | None:
        return self._executors.get(task_type, self._default)

    def __len__(self) -> int:
        return len(self._executors) + (1 if self._default is not None else 0)

    def is_empty(self) -> bool:
        return len(self) == 0
