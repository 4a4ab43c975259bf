"""Dispatcher: the scheduling control loop.

Each tick:
1. Drain the completion channel and apply state transitions
   (terminal, retry with backoff, or periodic re-arm)
2. Expire waiting records that never ran within the maximum lifetime
3. Check the one-run-per-identifier invariant (raise or self-heal)
4. Collect candidates: waiting, due, constraints satisfied, not blocked
   by a run of the same identifier (abandoned runs still executing count)
5. Order by (priority desc, scheduled_time asc) and admit up to the
   free worker slots

Admitted runs execute as asyncio tasks. They report back exclusively by
posting a Completion on the channel; the tick itself never awaits an
executor and never performs blocking I/O.

Design: Information Hiding (Parnas)
Retry, expiry and healing rules are isolated here so the catalog only
stores state and the scheduler façade only exposes the API.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable

from uuid_extensions import uuid7

from pybgtasks.core.cancellation import CancellationToken
from pybgtasks.core.clock import Clock
from pybgtasks.core.config import SchedulerConfig
from pybgtasks.core.errors import ExecutorFailure, ExecutorTimeout, InvariantViolation
from pybgtasks.executor.catalog import TaskCatalog
from pybgtasks.executor.constraints import unmet_constraints
from pybgtasks.executor.outcome import Completion, TaskOutcome
from pybgtasks.executor.policy import blocks_admission
from pybgtasks.executor.registry import EnvironmentProvider, Executor, Registry
from pybgtasks.models.constraints import EnvironmentSnapshot
from pybgtasks.models.record import TaskRecord
from pybgtasks.models.retry import calculate_delay
from pybgtasks.models.status import ExecutionPolicy, TaskResult, TaskState

logger = logging.getLogger(__name__)

__all__ = ["Dispatcher", "admission_order"]


def admission_order(record: TaskRecord) -> tuple[int, int, int]:
    """Sort key: priority descending, then scheduled_time, then id."""
    return (-int(record.request.priority), record.scheduled_time, record.id)


class Dispatcher:
    """Drives record state transitions and admits runs to a bounded pool.

    The dispatcher is the sole mutator of record state. It holds the
    catalog lock only for the synchronous part of a tick.
    """

    def __init__(
        self,
        catalog: TaskCatalog,
        registry: Registry,
        clock: Clock,
        config: SchedulerConfig,
        environment_provider: EnvironmentProvider | None = None,
    ):
        self._catalog = catalog
        self._registry = registry
        self._clock = clock
        self.config = config
        self.environment_provider = environment_provider

        self._context = EnvironmentSnapshot.defaults()
        self._enabled = True

        # Completion channel: workers post, the tick drains.
        self._completions: asyncio.Queue[Completion] = asyncio.Queue()

        # Runs in flight. Save a reference to avoid tasks disappearing mid-execution.
        self._tasks: set[asyncio.Task] = set()

        # Timed-out runs that ignored their token, with the record they ran.
        # Their results are discarded, but they hold a slot and their
        # identifier until they actually return.
        self._orphans: dict[asyncio.Future, TaskRecord] = {}

        self.on_completion: Callable[[], None] | None = None
        """Called after a completion is posted (wakes the scheduler loop)."""

    # ========================================================================
    # Environment and switches
    # ========================================================================

    @property
    def context(self) -> EnvironmentSnapshot:
        return self._context

    def set_context(self, context: EnvironmentSnapshot) -> None:
        self._context = context
        logger.debug(f"Environment updated: {context}")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info(f"Dispatcher {'enabled' if enabled else 'disabled'}")

    def _current_environment(self) -> EnvironmentSnapshot:
        if self.environment_provider is None:
            return self._context
        try:
            self._context = self.environment_provider.snapshot()
        except Exception as e:
            logger.warning(f"Environment provider failed, using last snapshot: {e}")
        return self._context

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ========================================================================
    # Tick
    # ========================================================================

    async def tick(self) -> list[TaskRecord]:
        """Run one scheduling pass.

        Returns:
            Copies of the records admitted during this tick
        """
        now = self._clock.now()
        env = self._current_environment()

        with self._catalog.lock:
            self._drain_completions()
            self._expire(now)
            self._check_running_invariant()
            if not self._enabled:
                return []
            admitted = self._admit(now, env)

        if admitted:
            logger.debug(f"Tick at {now}: admitted {[r.id for r in admitted]}")
        return admitted

    async def wait_idle(self) -> None:
        """Wait until every admitted run has posted its completion."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def has_pending_completions(self) -> bool:
        return not self._completions.empty()

    # ========================================================================
    # Completion processing
    # ========================================================================

    def _drain_completions(self) -> None:
        while True:
            try:
                completion = self._completions.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._apply_completion(completion)

    def _apply_completion(self, completion: Completion) -> None:
        record = self._catalog.live_record(completion.record_id)
        if (
            record is None
            or record.state is not TaskState.RUNNING
            or record.run_id != completion.run_id
        ):
            logger.debug(
                f"Ignoring stale completion for task {completion.record_id} "
                f"(run_id={completion.run_id})"
            )
            return

        self._catalog.detach_token(record.id)
        record.run_id = None
        outcome = completion.outcome
        now = completion.finished_at
        if outcome.output is not None:
            record.output = outcome.output

        if record.cancel_requested:
            record.state = TaskState.CANCELLED
            record.last_error = outcome.error
            logger.info(f"Task {record.id} ({record.identifier!r}) cancelled while running")
        elif outcome.is_success():
            self._apply_success(record, now)
        else:
            self._apply_failure(record, outcome, now)

        self._catalog.mark_dirty(record)

    def _apply_success(self, record: TaskRecord, now: int) -> None:
        record.last_error = None
        interval = record.request.periodic_interval

        if interval is None:
            record.state = TaskState.COMPLETED
            logger.info(f"Task {record.id} ({record.identifier!r}) completed")
            return

        record.state = TaskState.SCHEDULED
        record.attempt_count = 0
        record.next_run_time = now + interval.earliest_run_offset_ms()
        logger.info(
            f"Periodic task {record.id} ({record.identifier!r}) completed, "
            f"next run at {record.next_run_time}"
        )

    def _apply_failure(self, record: TaskRecord, outcome: TaskOutcome, now: int) -> None:
        request = record.request
        record.last_error = outcome.error or str(outcome.result)

        if record.attempt_count < request.max_retries:
            record.attempt_count += 1
            delay = calculate_delay(
                request.backoff_policy,
                request.backoff_delay_ms,
                record.attempt_count,
                max_delay_ms=self.config.max_backoff_ms,
            )
            record.state = TaskState.SCHEDULED
            record.next_run_time = now + delay
            logger.info(
                f"Retrying task {record.id} ({record.identifier!r}): "
                f"attempt={record.attempt_count}/{request.max_retries}, delay={delay}ms, "
                f"error={record.last_error}"
            )
            return

        record.attempt_count += 1
        record.state = TaskState.FAILED
        logger.error(
            f"Task {record.id} ({record.identifier!r}) failed after "
            f"{record.attempt_count} attempt(s): {record.last_error}"
        )

    # ========================================================================
    # Expiry and invariants
    # ========================================================================

    def _expire(self, now: int) -> None:
        lifetime = self.config.max_lifetime_ms
        if lifetime is None:
            return

        for record in self._catalog.live_records():
            if (
                record.state.is_waiting
                and record.last_run_time is None
                and now - record.scheduled_time >= lifetime
            ):
                record.state = TaskState.EXPIRED
                self._catalog.mark_dirty(record)
                logger.warning(
                    f"Task {record.id} ({record.identifier!r}) expired without running"
                )

    def _check_running_invariant(self) -> None:
        """At most one RUNNING record per identifier, except between APPEND copies.

        With strict invariants this raises InvariantViolation; otherwise
        the oldest run is kept and the others are forced to FAILED.
        """
        running: dict[str, list[TaskRecord]] = defaultdict(list)
        for record in self._catalog.live_records():
            if record.state is TaskState.RUNNING:
                running[record.identifier].append(record)

        for identifier, runs in running.items():
            if len(runs) < 2:
                continue
            if all(r.policy is ExecutionPolicy.APPEND for r in runs):
                continue

            message = (
                f"{len(runs)} running records for identifier {identifier!r}: "
                f"{[r.id for r in runs]}"
            )
            if self.config.strict_invariants:
                raise InvariantViolation(message)

            logger.error(f"Invariant violation, healing: {message}")
            runs.sort(key=lambda r: (r.last_run_time or 0, r.id))
            for duplicate in runs[1:]:
                self._force_fail(duplicate, f"InvariantViolation: {message}")

    def _force_fail(self, record: TaskRecord, error: str) -> None:
        token = self._catalog.detach_token(record.id)
        if token is not None:
            token.cancel("invariant")
        record.state = TaskState.FAILED
        record.run_id = None
        record.last_error = error
        self._catalog.mark_dirty(record)

    # ========================================================================
    # Admission
    # ========================================================================

    def _admit(self, now: int, env: EnvironmentSnapshot) -> list[TaskRecord]:
        records = self._catalog.live_records()
        running = [r for r in records if r.state is TaskState.RUNNING]
        running.extend(self._orphans.values())
        free_slots = self.config.max_workers - len(running)
        if free_slots <= 0:
            return []

        candidates = []
        for record in records:
            if not record.state.is_waiting or not record.is_due(now):
                continue
            if any(blocks_admission(record, run) for run in running):
                continue
            unmet = unmet_constraints(
                record.request.constraints,
                env,
                low_battery_threshold=self.config.low_battery_threshold,
                low_storage_threshold_mb=self.config.low_storage_threshold_mb,
            )
            if unmet:
                logger.debug(f"Task {record.id} waiting on constraints: {', '.join(unmet)}")
                continue
            candidates.append(record)

        candidates.sort(key=admission_order)

        admitted: list[TaskRecord] = []
        for record in candidates:
            if len(admitted) >= free_slots:
                break
            # Two candidates may share an identifier within one tick.
            if any(blocks_admission(record, run) for run in running):
                continue
            self._start(record, now)
            running.append(record)
            admitted.append(record.snapshot())
        return admitted

    def _start(self, record: TaskRecord, now: int) -> None:
        token = CancellationToken()
        run_id = str(uuid7())

        record.state = TaskState.RUNNING
        record.last_run_time = now
        record.run_id = run_id
        record.cancel_requested = False
        self._catalog.attach_token(record.id, token)
        self._catalog.mark_dirty(record)

        executor = self._registry.get_executor(record.request.task_type)
        logger.info(
            f"Admitted task {record.id} ({record.identifier!r}, "
            f"priority={record.request.priority.name}, attempt={record.attempt_count + 1})"
        )

        if executor is None:
            error = ExecutorFailure(
                f"No executor registered for task type: {record.request.task_type}. "
                f"Did you forget to call scheduler.register()?",
                record_id=record.id,
            )
            logger.error(str(error))
            self._post(
                Completion(record.id, run_id, TaskOutcome.failure(f"ExecutorFailure: {error}"), now)
            )
            return

        task = asyncio.create_task(
            self._run(executor, record.snapshot(), token, run_id),
            name=f"pybgtasks-run-{record.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ========================================================================
    # Worker side (runs off the tick path)
    # ========================================================================

    async def _run(
        self, executor: Executor, record: TaskRecord, token: CancellationToken, run_id: str
    ) -> None:
        timeout = record.request.effective_timeout_s
        try:
            outcome = await self._invoke(executor, record, token, timeout)
        except ExecutorTimeout as e:
            logger.warning(f"Task {record.id} ({record.identifier!r}) timed out: {e}")
            outcome = TaskOutcome.failure(f"ExecutorTimeout: {e}")
        except Exception as e:
            logger.error(f"Task {record.id} ({record.identifier!r}) executor raised: {e}")
            outcome = TaskOutcome.failure(f"ExecutorFailure: {type(e).__name__}: {e}")

        self._post(Completion(record.id, run_id, outcome, self._clock.now()))

    async def _invoke(
        self,
        executor: Executor,
        record: TaskRecord,
        token: CancellationToken,
        timeout: float,
    ) -> TaskOutcome:
        run = asyncio.ensure_future(executor.execute(record, token))
        try:
            done, _ = await asyncio.wait({run}, timeout=timeout)
            if not done:
                token.cancel("timeout")
                done, _ = await asyncio.wait({run}, timeout=self.config.cancel_grace_s)
        except asyncio.CancelledError:
            # Scheduler aborted: ask the executor to stop and leave it be.
            token.cancel("cancelled")
            self._orphan(run, record)
            raise

        if not done:
            self._orphan(run, record)
            raise ExecutorTimeout(
                f"run exceeded {timeout}s and ignored cancellation for "
                f"{self.config.cancel_grace_s}s",
                record_id=record.id,
            )

        if run.cancelled():
            raise ExecutorFailure("executor run was cancelled", record_id=record.id)
        return _coerce_outcome(run.result())

    def _orphan(self, run: asyncio.Future, record: TaskRecord) -> None:
        logger.warning(
            f"Task {record.id} ({record.identifier!r}) ignored cancellation; "
            f"its slot stays taken until the run returns"
        )
        self._orphans[run] = record
        run.add_done_callback(self._discard_orphan)

    def _discard_orphan(self, run: asyncio.Future) -> None:
        self._orphans.pop(run, None)
        if self.on_completion is not None:
            self.on_completion()
        if not run.cancelled() and run.exception() is not None:
            logger.debug(f"Orphaned run finished with error: {run.exception()}")

    def _post(self, completion: Completion) -> None:
        self._completions.put_nowait(completion)
        if self.on_completion is not None:
            self.on_completion()


def _coerce_outcome(value: object) -> TaskOutcome:
    """Accept TaskOutcome, a bare TaskResult, or None (success)."""
    if isinstance(value, TaskOutcome):
        return value
    if isinstance(value, TaskResult):
        return TaskOutcome(value)
    if value is None:
        return TaskOutcome.success()
    raise TypeError(f"executor returned {type(value).__name__}, expected TaskOutcome")
