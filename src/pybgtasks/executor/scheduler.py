"""
Scheduler - the public API of the background task engine.

Design Pattern: Façade Pattern
Scheduler hides the catalog, dispatcher, executor registry and optional
store behind one explicitly owned object. There is no module-level
state: create a Scheduler and pass it to whoever needs it.

Two ways to drive it:

- Background loop: `handle = await scheduler.start()` ticks every
  tick_interval_s, or immediately after schedule/cancel/set_context or a
  run completing. `await handle.shutdown()` stops it gracefully.
- Manual ticks: `await scheduler.tick()` runs one pass; useful with a
  ManualClock in tests.

Usage:
    async def refresh(record, token):
        await sync_feeds(record.request.payload)
        return TaskOutcome.success()

    scheduler = Scheduler(refresh).with_max_workers(2)
    scheduler.schedule(
        TaskRequest.periodic("feeds", PeriodicInterval.every_hours(1)),
        ExecutionPolicy.REPLACE,
    )
    handle = await scheduler.start()
    ...
    await handle.shutdown()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from pybgtasks.core.clock import Clock, SystemClock
from pybgtasks.core.config import SchedulerConfig
from pybgtasks.core.errors import InvariantViolation, TaskError
from pybgtasks.executor.catalog import TaskCatalog
from pybgtasks.executor.dispatcher import Dispatcher
from pybgtasks.executor.registry import EnvironmentProvider, ExecuteFn, Executor, Registry
from pybgtasks.models.constraints import EnvironmentSnapshot
from pybgtasks.models.record import TaskRecord
from pybgtasks.models.request import TaskRequest, TaskType
from pybgtasks.models.status import ExecutionPolicy, TaskState
from pybgtasks.storage.base import TaskStore

logger = logging.getLogger(__name__)


class Scheduler:
    """Owns one task catalog and drives it with a dispatcher.

    All public methods except tick/wait_idle/start/shutdown/restore are
    synchronous and safe to call from any thread; they run against the
    catalog under its exclusive lock.

    Builder methods configure the scheduler before start():
    - with_max_workers(n)
    - with_tick_interval(seconds)
    - with_environment_provider(provider)
    - with_store(store)
    - with_config(config)
    """

    def __init__(
        self,
        executor: Executor | ExecuteFn | None = None,
        *,
        clock: Clock | None = None,
        config: SchedulerConfig | None = None,
        environment_provider: EnvironmentProvider | None = None,
        store: TaskStore | None = None,
    ):
        """Initialize a scheduler.

        All dependencies passed explicitly, no globals.

        Args:
            executor: Default executor for every task type (optional;
                register per-type executors with register())
            clock: Time source; SystemClock if omitted
            config: Tunables; SchedulerConfig() if omitted
            environment_provider: Polled each tick for an EnvironmentSnapshot;
                when omitted, set_context() supplies the environment
            store: Optional persistence backend
        """
        self._config = config or SchedulerConfig()
        self._clock = clock or SystemClock()
        self._registry = Registry()
        if executor is not None:
            self._registry.register_default(executor)

        self._catalog = TaskCatalog(track_changes=store is not None)
        self._store = store

        self._dispatcher = Dispatcher(
            self._catalog, self._registry, self._clock, self._config, environment_provider
        )
        self._dispatcher.on_completion = self._wake

        self._loop: asyncio.AbstractEventLoop | None = None
        self._wake_event: asyncio.Event | None = None
        self._shutdown_event = asyncio.Event()
        self._running = False

    def __repr__(self) -> str:
        return (
            f"Scheduler(tasks={self._catalog.task_count()}, "
            f"max_workers={self._config.max_workers}, running={self._running})"
        )

    # ========================================================================
    # Builders
    # ========================================================================

    def with_config(self, config: SchedulerConfig) -> Scheduler:
        self._config = config
        self._dispatcher.config = config
        return self

    def with_max_workers(self, max_workers: int) -> Scheduler:
        """Set the number of concurrent runs (worker-pool slots)."""
        return self.with_config(replace(self._config, max_workers=max_workers))

    def with_tick_interval(self, interval: float) -> Scheduler:
        """Set seconds between ticks when nothing wakes the loop."""
        return self.with_config(replace(self._config, tick_interval_s=interval))

    def with_environment_provider(self, provider: EnvironmentProvider) -> Scheduler:
        self._dispatcher.environment_provider = provider
        return self

    def with_store(self, store: TaskStore) -> Scheduler:
        """Persist record changes to `store` after every tick."""
        self._store = store
        self._catalog.track_changes = True
        return self

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def store(self) -> TaskStore | None:
        return self._store

    # ========================================================================
    # Executors
    # ========================================================================

    def register(self, task_type: TaskType, executor: Executor | ExecuteFn) -> None:
        """Register the executor for one task type."""
        self._registry.register(task_type, executor)

    def register_default(self, executor: Executor | ExecuteFn) -> None:
        """Register the executor used when a task type has none."""
        self._registry.register_default(executor)

    # ========================================================================
    # Scheduling API
    # ========================================================================

    def schedule(
        self, request: TaskRequest, policy: ExecutionPolicy = ExecutionPolicy.KEEP
    ) -> TaskRecord:
        """
        Schedule a request.

        Args:
            request: What to run, when and under which constraints
            policy: Conflict rule for an identifier that is already active

        Returns:
            Copy of the new record (state SCHEDULED)

        Raises:
            TaskAlreadyExists: Under KEEP when the identifier is active
        """
        record = self._catalog.schedule(request, policy, self._clock.now())
        self._wake()
        return record

    def cancel(self, identifier: str) -> bool:
        cancelled = self._catalog.cancel(identifier)
        if cancelled:
            self._wake()
        return cancelled

    def cancel_by_id(self, record_id: int) -> bool:
        """Cancel one record; raises TaskNotFound for an unknown id."""
        cancelled = self._catalog.cancel_by_id(record_id)
        if cancelled:
            self._wake()
        return cancelled

    def cancel_all(self) -> int:
        count = self._catalog.cancel_all()
        if count:
            self._wake()
        return count

    def cancel_by_tag(self, tag: str) -> int:
        count = self._catalog.cancel_by_tag(tag)
        if count:
            self._wake()
        return count

    def get_by_identifier(self, identifier: str) -> TaskRecord | None:
        return self._catalog.get_by_identifier(identifier)

    def get_all_by_identifier(self, identifier: str) -> list[TaskRecord]:
        return self._catalog.get_all_by_identifier(identifier)

    def get_by_id(self, record_id: int) -> TaskRecord | None:
        return self._catalog.get_by_id(record_id)

    def require(self, record_id: int) -> TaskRecord:
        return self._catalog.require(record_id)

    def records(self) -> list[TaskRecord]:
        return self._catalog.records()

    def pending_count(self) -> int:
        """Records waiting to run (PENDING or SCHEDULED)."""
        return self._catalog.pending_count()

    def running_count(self) -> int:
        return self._catalog.running_count()

    def completed_count(self) -> int:
        return self._catalog.completed_count()

    def task_count(self) -> int:
        return self._catalog.task_count()

    def set_context(self, context: EnvironmentSnapshot) -> None:
        """Push a new environment snapshot; the next tick evaluates against it."""
        self._dispatcher.set_context(context)
        self._wake()

    @property
    def context(self) -> EnvironmentSnapshot:
        return self._dispatcher.context

    def set_enabled(self, enabled: bool) -> None:
        """Pause or resume admission. Completions are still processed."""
        self._dispatcher.set_enabled(enabled)
        self._wake()

    @property
    def is_enabled(self) -> bool:
        return self._dispatcher.enabled

    def prune(self) -> int:
        """Remove terminal records; returns how many were removed."""
        return self._catalog.prune()

    # ========================================================================
    # Driving
    # ========================================================================

    async def tick(self) -> list[TaskRecord]:
        """Run one dispatcher pass, then flush changes to the store.

        Returns:
            Copies of the records admitted during this tick
        """
        admitted = await self._dispatcher.tick()
        await self._flush()
        return admitted

    async def wait_idle(self) -> None:
        """Wait for every run in flight to post its completion."""
        await self._dispatcher.wait_idle()

    async def run_until_idle(self, max_ticks: int = 1000) -> int:
        """Tick until nothing is due, running or awaiting processing.

        Time does not advance on its own; with a ManualClock, records due
        in the future stay SCHEDULED.

        Returns:
            Number of ticks performed
        """
        for ticks in range(1, max_ticks + 1):
            admitted = await self.tick()
            if self._dispatcher.in_flight:
                await self.wait_idle()
                continue
            if not admitted and not self._dispatcher.has_pending_completions():
                return ticks
        raise SchedulerError(f"scheduler did not settle within {max_ticks} ticks")

    async def restore(self) -> int:
        """Load records from the store into the catalog.

        Records that were RUNNING when persisted were interrupted; they
        return to SCHEDULED (due now), or become CANCELLED if their
        cancellation had been requested.

        Returns:
            Number of records loaded

        Raises:
            SchedulerError: If no store is configured, or the catalog
                already holds records
        """
        if self._store is None:
            raise SchedulerError("restore() requires a store; use with_store()")
        self._check_empty_for_restore()

        records = await self._store.load_records()
        now = self._clock.now()
        interrupted = []
        for record in records:
            if record.state is not TaskState.RUNNING:
                continue
            record.run_id = None
            if record.cancel_requested:
                record.state = TaskState.CANCELLED
            else:
                record.state = TaskState.SCHEDULED
                record.next_run_time = now
            record.cancel_requested = False
            interrupted.append(record)

        with self._catalog.lock:
            # schedule() may have run while the store was loading.
            self._check_empty_for_restore()
            count = self._catalog.load(records)
            for record in interrupted:
                self._catalog.mark_dirty(record)

        if interrupted:
            logger.warning(f"Restored {len(interrupted)} interrupted run(s)")
        logger.info(f"Restored {count} task record(s) from {self._store!r}")
        self._wake()
        return count

    def _check_empty_for_restore(self) -> None:
        if self._catalog.task_count():
            raise SchedulerError(
                f"restore() must run before anything is scheduled; "
                f"the catalog already holds {self._catalog.task_count()} record(s)"
            )

    async def _flush(self) -> None:
        if self._store is None:
            return

        changed, deleted = self._catalog.take_changes()
        if not changed and not deleted:
            return
        try:
            await self._store.save_records(changed)
            await self._store.delete_records(deleted)
        except Exception as e:
            logger.error(f"Failed to persist task changes (will retry next tick): {e}")
            self._catalog.requeue_changes([r.id for r in changed], deleted)

    # ========================================================================
    # Background loop
    # ========================================================================

    async def start(self) -> SchedulerHandle:
        """Start the background loop.

        Returns SchedulerHandle immediately, letting the caller decide
        whether to await or run concurrently.

        Raises:
            SchedulerError: If the loop is already running
        """
        if self._running:
            raise SchedulerError("scheduler is already running")

        self._loop = asyncio.get_running_loop()
        self._wake_event = asyncio.Event()
        self._shutdown_event = asyncio.Event()
        self._running = True
        task = asyncio.create_task(self._run(), name="pybgtasks-scheduler")
        return SchedulerHandle(self, task)

    async def _run(self) -> None:
        logger.info(f"Scheduler started (max_workers={self._config.max_workers})")
        try:
            while self._running and not self._shutdown_event.is_set():
                try:
                    await self.tick()
                except InvariantViolation:
                    raise
                except Exception as e:
                    logger.error(f"Scheduler tick error: {e}")

                try:
                    await asyncio.wait_for(
                        self._wake_event.wait(), timeout=self._config.tick_interval_s
                    )
                except TimeoutError:
                    pass
                self._wake_event.clear()
        finally:
            self._running = False
            logger.info("Scheduler stopped")

    def _wake(self) -> None:
        """Wake the background loop. Safe to call from any thread."""
        loop, event = self._loop, self._wake_event
        if loop is None or event is None or loop.is_closed():
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is loop:
            event.set()
        else:
            loop.call_soon_threadsafe(event.set)

    async def shutdown(self) -> None:
        """Gracefully stop the loop.

        Waits for runs in flight, applies their completions without
        admitting anything new, then flushes the store.
        """
        logger.info("Scheduler shutting down...")
        self._running = False
        self._shutdown_event.set()
        self._wake()

        if self._dispatcher.in_flight:
            logger.info(f"Waiting for {self._dispatcher.in_flight} run(s) to complete...")
        await self.wait_idle()

        enabled = self._dispatcher.enabled
        self._dispatcher.set_enabled(False)
        try:
            await self.tick()
        finally:
            self._dispatcher.set_enabled(enabled)


class SchedulerHandle:
    """Handle for controlling a running scheduler loop.

    Composition - handle HAS-A scheduler, not IS-A scheduler.

    Usage:
        handle = await scheduler.start()
        await handle.shutdown()
    """

    def __init__(self, scheduler: Scheduler, task: asyncio.Task):
        self._scheduler = scheduler
        self._task = task

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    def is_running(self) -> bool:
        return not self._task.done()

    async def shutdown(self) -> None:
        """Shutdown the scheduler and wait for the loop task to finish."""
        await self._scheduler.shutdown()
        await self._task
        logger.info("Scheduler handle closed")

    def abort(self) -> None:
        """Cancel the loop immediately without waiting for runs in flight.

        Prefer shutdown() for normal termination.
        """
        self._task.cancel()


class SchedulerError(TaskError):
    """Scheduler lifecycle operation failed."""

    pass
