"""
Pytest configuration and fixtures for pybgtasks tests.

Provides a deterministic clock, scripted and blocking executors, scheduler
and store fixtures, and Hypothesis strategies for the value types.
"""

import asyncio
import shutil
import tempfile
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from hypothesis import strategies as st

from pybgtasks import (
    BackoffPolicy,
    EnvironmentSnapshot,
    ManualClock,
    NetworkType,
    Scheduler,
    SchedulerConfig,
    TaskConstraints,
    TaskOutcome,
)
from pybgtasks.storage import InMemoryTaskStore, SqliteTaskStore

# ==============================================================================
# Executors
# ==============================================================================


class ScriptedExecutor:
    """Returns queued outcomes in order, then `default` forever.

    Outcomes may be TaskOutcome values or exceptions to raise.
    """

    def __init__(self, *outcomes, default=None):
        self._outcomes = list(outcomes)
        self.default = default if default is not None else TaskOutcome.success()
        self.calls = []

    async def execute(self, record, token):
        self.calls.append((record.id, record.attempt_count))
        outcome = self._outcomes.pop(0) if self._outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def calls_for(self, record_id):
        return [call for call in self.calls if call[0] == record_id]


class BlockingExecutor:
    """Holds every run until `gate` is set or the run's token is signalled.

    A signalled run returns RETRY carrying the token's reason.
    """

    def __init__(self):
        self.gate = asyncio.Event()
        self.started = []
        self.active = 0
        self.max_active = 0

    async def execute(self, record, token):
        self.started.append(record.id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = asyncio.ensure_future(self.gate.wait())
            cancelled = asyncio.ensure_future(token.wait())
            _, pending = await asyncio.wait(
                {gate, cancelled}, return_when=asyncio.FIRST_COMPLETED
            )
            for waiter in pending:
                waiter.cancel()
            if token.is_cancelled:
                return TaskOutcome.retry(f"stopped: {token.reason}")
            return TaskOutcome.success(output=record.id)
        finally:
            self.active -= 1


async def settle(scheduler):
    """Admit due records, let their runs finish, then apply the completions."""
    admitted = await scheduler.tick()
    await scheduler.wait_idle()
    await scheduler.tick()
    return admitted


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=0)


@pytest.fixture
def config() -> SchedulerConfig:
    return SchedulerConfig(max_workers=4, cancel_grace_s=0.05)


@pytest.fixture
def executor() -> ScriptedExecutor:
    return ScriptedExecutor()


@pytest.fixture
def blocking_executor() -> BlockingExecutor:
    return BlockingExecutor()


@pytest.fixture
def scheduler(executor, clock, config) -> Scheduler:
    """Scheduler driven by manual ticks and a ManualClock."""
    return Scheduler(executor, clock=clock, config=config)


@pytest.fixture
async def blocking_scheduler(blocking_executor, clock, config) -> AsyncGenerator[Scheduler, None]:
    """Scheduler whose runs block until released; releases them on teardown."""
    scheduler = Scheduler(blocking_executor, clock=clock, config=config)
    yield scheduler
    blocking_executor.gate.set()
    await scheduler.wait_idle()


@pytest.fixture
async def in_memory_store() -> AsyncGenerator[InMemoryTaskStore, None]:
    store = InMemoryTaskStore()
    yield store
    await store.reset()


@pytest.fixture
async def sqlite_memory_store() -> AsyncGenerator[SqliteTaskStore, None]:
    store = SqliteTaskStore(":memory:")
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def temp_db_path():
    """Temporary database file path with automatic cleanup."""
    tmpdir = Path(tempfile.mkdtemp())
    db_path = tmpdir / "tasks.db"
    yield db_path
    shutil.rmtree(tmpdir, ignore_errors=True)


# ==============================================================================
# Hypothesis strategies
# ==============================================================================

network_types = st.sampled_from(list(NetworkType))
backoff_policies = st.sampled_from(list(BackoffPolicy))

constraints_strategy = st.builds(
    TaskConstraints,
    network=network_types,
    requires_charging=st.booleans(),
    requires_device_idle=st.booleans(),
    requires_battery_not_low=st.booleans(),
    requires_storage_not_low=st.booleans(),
)

environments = st.builds(
    EnvironmentSnapshot,
    has_network=st.booleans(),
    network_is_metered=st.booleans(),
    is_roaming=st.booleans(),
    is_charging=st.booleans(),
    is_idle=st.booleans(),
    battery_level=st.integers(min_value=0, max_value=100),
    available_storage_mb=st.integers(min_value=0, max_value=5000),
)
