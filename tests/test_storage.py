"""Tests for task stores and scheduler persistence."""

import aiosqlite
import pytest

from conftest import BlockingExecutor, ScriptedExecutor, settle
from pybgtasks import (
    ExecutionPolicy,
    NetworkType,
    Scheduler,
    SchedulerError,
    StorageError,
    TaskConstraints,
    TaskPriority,
    TaskRecord,
    TaskRequest,
    TaskState,
)
from pybgtasks.storage import InMemoryTaskStore, SqliteTaskStore


@pytest.fixture(params=["memory", "sqlite"])
async def store(request):
    """Each test runs against both backends."""
    if request.param == "memory":
        backend = InMemoryTaskStore()
    else:
        backend = await SqliteTaskStore.in_memory()
    yield backend
    await backend.close()


def _record(record_id=1, identifier="sync", **kwargs) -> TaskRecord:
    request = (
        TaskRequest.one_time(identifier)
        .with_priority(TaskPriority.HIGH)
        .with_constraints(TaskConstraints().with_network(NetworkType.UNMETERED))
        .with_tags(["net", "user"])
        .with_payload({"files": ["a.jpg", "b.jpg"]})
    )
    return TaskRecord(
        id=record_id,
        identifier=identifier,
        request=request,
        policy=ExecutionPolicy.REPLACE,
        state=kwargs.pop("state", TaskState.SCHEDULED),
        scheduled_time=10,
        next_run_time=20,
        **kwargs,
    )


class FlakyStore(InMemoryTaskStore):
    def __init__(self):
        super().__init__()
        self.fail = False

    async def save_records(self, records):
        if self.fail:
            raise StorageError("disk full")
        await super().save_records(records)


# ==============================================================================
# Store contract
# ==============================================================================


@pytest.mark.asyncio
async def test_round_trip(store):
    record = _record(attempt_count=2, last_run_time=15, last_error="offline", output=[1, 2])

    await store.save_records([record])

    assert await store.load_records() == [record]


@pytest.mark.asyncio
async def test_save_is_an_upsert(store):
    record = _record()
    await store.save_records([record])

    record.state = TaskState.COMPLETED
    record.cancel_requested = True
    await store.save_records([record])

    loaded = await store.load_records()
    assert len(loaded) == 1
    assert loaded[0].state is TaskState.COMPLETED
    assert loaded[0].cancel_requested is True


@pytest.mark.asyncio
async def test_load_is_ordered_by_id(store):
    await store.save_records([_record(3, "c"), _record(1, "a"), _record(2, "b")])

    assert [r.id for r in await store.load_records()] == [1, 2, 3]


@pytest.mark.asyncio
async def test_delete_ignores_unknown_ids(store):
    await store.save_records([_record(1), _record(2)])

    await store.delete_records([1, 99])

    assert [r.id for r in await store.load_records()] == [2]


@pytest.mark.asyncio
async def test_reset(store):
    await store.save_records([_record(1), _record(2)])
    await store.reset()
    assert await store.load_records() == []


@pytest.mark.asyncio
async def test_unpicklable_payload_raises_storage_error(store):
    record = _record()
    record.output = lambda: None

    with pytest.raises(StorageError):
        await store.save_records([record])


@pytest.mark.asyncio
async def test_sqlite_requires_connect():
    store = SqliteTaskStore(":memory:")
    with pytest.raises(StorageError):
        await store.load_records()


@pytest.mark.asyncio
async def test_sqlite_failed_begin_raises_storage_error(monkeypatch):
    store = await SqliteTaskStore.in_memory()
    connection = store._connection
    execute = connection.execute

    def failing_execute(sql, *args, **kwargs):
        if sql == "BEGIN IMMEDIATE":
            raise aiosqlite.OperationalError("database is locked")
        return execute(sql, *args, **kwargs)

    monkeypatch.setattr(connection, "execute", failing_execute)
    try:
        with pytest.raises(StorageError, match="database is locked"):
            await store.save_records([_record()])
    finally:
        monkeypatch.undo()
        await store.close()


@pytest.mark.asyncio
async def test_sqlite_file_survives_reconnect(temp_db_path):
    store = SqliteTaskStore(str(temp_db_path))
    await store.connect()
    await store.save_records([_record()])
    await store.close()

    reopened = SqliteTaskStore(str(temp_db_path))
    await reopened.connect()
    try:
        assert await reopened.load_records() == [_record()]
    finally:
        await reopened.close()


# ==============================================================================
# Scheduler persistence
# ==============================================================================


@pytest.mark.asyncio
async def test_scheduler_flushes_changes(store, clock):
    scheduler = Scheduler(ScriptedExecutor(), clock=clock).with_store(store)
    record = scheduler.schedule(TaskRequest.one_time("sync"))

    await settle(scheduler)

    assert [(r.id, r.state) for r in await store.load_records()] == [
        (record.id, TaskState.COMPLETED)
    ]

    scheduler.prune()
    await scheduler.tick()
    assert await store.load_records() == []


@pytest.mark.asyncio
async def test_replace_deletes_from_store(store, clock):
    scheduler = Scheduler(ScriptedExecutor(), clock=clock).with_store(store)
    scheduler.schedule(TaskRequest.one_time("sync").with_initial_delay(1000))
    await scheduler.tick()

    new = scheduler.schedule(TaskRequest.one_time("sync"), ExecutionPolicy.REPLACE)
    await scheduler.tick()

    assert [r.id for r in await store.load_records()] == [new.id]
    await scheduler.wait_idle()


@pytest.mark.asyncio
async def test_failed_flush_is_retried(clock):
    store = FlakyStore()
    scheduler = Scheduler(ScriptedExecutor(), clock=clock).with_store(store)
    scheduler.schedule(TaskRequest.one_time("sync").with_initial_delay(1000))

    store.fail = True
    await scheduler.tick()
    assert await store.load_records() == []

    store.fail = False
    await scheduler.tick()
    assert len(await store.load_records()) == 1


@pytest.mark.asyncio
async def test_restore_resets_interrupted_runs(store, clock):
    blocking = BlockingExecutor()
    first = Scheduler(blocking, clock=clock).with_store(store)
    running = first.schedule(TaskRequest.one_time("running"))
    waiting = first.schedule(TaskRequest.one_time("waiting").with_initial_delay(5000))
    await first.tick()

    clock.advance(100)
    second = Scheduler(ScriptedExecutor(), clock=clock).with_store(store)
    assert await second.restore() == 2

    restored = second.get_by_id(running.id)
    assert restored.state is TaskState.SCHEDULED
    assert restored.next_run_time == 100
    assert restored.run_id is None
    assert second.get_by_id(waiting.id).next_run_time == 5000

    # Ids continue after the restored ones.
    assert second.schedule(TaskRequest.one_time("new")).id == 3

    await settle(second)
    assert second.get_by_id(running.id).state is TaskState.COMPLETED

    blocking.gate.set()
    await first.wait_idle()


@pytest.mark.asyncio
async def test_restore_finishes_requested_cancellation(store, clock):
    blocking = BlockingExecutor()
    first = Scheduler(blocking, clock=clock).with_store(store)
    record = first.schedule(TaskRequest.one_time("sync"))
    await first.tick()
    first.cancel("sync")
    await first.tick()

    second = Scheduler(ScriptedExecutor(), clock=clock).with_store(store)
    await second.restore()

    restored = second.get_by_id(record.id)
    assert restored.state is TaskState.CANCELLED
    assert not restored.cancel_requested

    await first.wait_idle()


@pytest.mark.asyncio
async def test_restore_refuses_a_catalog_in_use(store, clock):
    first = Scheduler(ScriptedExecutor(), clock=clock).with_store(store)
    first.schedule(TaskRequest.one_time("persisted").with_initial_delay(1000))
    await first.tick()

    second = Scheduler(ScriptedExecutor(), clock=clock).with_store(store)
    fresh = second.schedule(TaskRequest.one_time("fresh"))

    with pytest.raises(SchedulerError, match="before anything is scheduled"):
        await second.restore()

    assert second.get_by_id(fresh.id).identifier == "fresh"
    assert second.task_count() == 1


@pytest.mark.asyncio
async def test_restore_requires_store():
    with pytest.raises(SchedulerError):
        await Scheduler().restore()
