"""SQLite-backed task store.

Design Pattern: Adapter Pattern
SqliteTaskStore adapts an SQLite database to the TaskStore interface.

Implementation details:
- aiosqlite for async operations
- WAL mode for concurrent reads
- scalar record fields in columns (queryable), the TaskRequest and the
  output payload pickled into BLOBs
- INTEGER millisecond timestamps, UPPERCASE state values
"""

from __future__ import annotations

import asyncio
import pickle
from collections.abc import Sequence
from pathlib import Path

import aiosqlite

from pybgtasks.core.errors import StorageError
from pybgtasks.models.record import TaskRecord
from pybgtasks.models.status import ExecutionPolicy, TaskState
from pybgtasks.storage.base import TaskStore


class SqliteTaskStore(TaskStore):
    """SQLite durable store for task records.

    After __init__, the instance is not yet usable. Call connect() first.

    Usage:
        store = SqliteTaskStore("tasks.db")
        await store.connect()
        try:
            scheduler = Scheduler(executor).with_store(store)
            await scheduler.restore()
        finally:
            await store.close()
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()  # Serialize access to shared connection

    @classmethod
    async def in_memory(cls) -> SqliteTaskStore:
        """Create and connect an in-memory store (for tests)."""
        instance = cls(":memory:")
        await instance.connect()
        return instance

    def __repr__(self) -> str:
        if self.db_path == ":memory:":
            return "SqliteTaskStore(in-memory)"
        return f"SqliteTaskStore({self.db_path})"

    async def connect(self) -> None:
        """Open the connection and create the schema. Idempotent."""
        if self._connection is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            timeout=5.0,
            isolation_level=None,  # Autocommit mode
        )

        # In-memory databases report "memory" and don't support WAL
        cursor = await self._connection.execute("PRAGMA journal_mode=WAL")
        result = await cursor.fetchone()
        await cursor.close()
        if result and result[0].upper() not in ("WAL", "MEMORY"):
            raise StorageError(f"Failed to enable WAL mode, got: {result[0]}")

        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")
        await self._create_schema()

    async def _create_schema(self) -> None:
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS task_records (
                id INTEGER PRIMARY KEY,
                identifier TEXT NOT NULL,
                policy TEXT NOT NULL,
                state TEXT CHECK( state IN (
                    'PENDING','SCHEDULED','RUNNING','COMPLETED','FAILED','CANCELLED','EXPIRED'
                ) ) NOT NULL,
                attempt_count INTEGER NOT NULL DEFAULT 0,
                scheduled_time INTEGER NOT NULL,
                last_run_time INTEGER,
                next_run_time INTEGER,
                last_error TEXT,
                cancel_requested INTEGER NOT NULL DEFAULT 0,
                request BLOB NOT NULL,
                output BLOB
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_task_records_identifier
            ON task_records(identifier)
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_task_records_due
            ON task_records(state, next_run_time)
        """)

    def _check_connected(self) -> None:
        if self._connection is None:
            raise StorageError("SqliteTaskStore is not connected; call connect() first")

    async def save_records(self, records: Sequence[TaskRecord]) -> None:
        self._check_connected()
        if not records:
            return

        try:
            rows = [_to_row(record) for record in records]
        except Exception as e:
            raise StorageError(f"Failed to serialize task records: {e}") from e

        async with self._lock:
            try:
                await self._connection.execute("BEGIN IMMEDIATE")
                await self._connection.executemany(
                    """
                    INSERT INTO task_records (
                        id, identifier, policy, state, attempt_count,
                        scheduled_time, last_run_time, next_run_time,
                        last_error, cancel_requested, request, output
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        identifier = excluded.identifier,
                        policy = excluded.policy,
                        state = excluded.state,
                        attempt_count = excluded.attempt_count,
                        scheduled_time = excluded.scheduled_time,
                        last_run_time = excluded.last_run_time,
                        next_run_time = excluded.next_run_time,
                        last_error = excluded.last_error,
                        cancel_requested = excluded.cancel_requested,
                        request = excluded.request,
                        output = excluded.output
                    """,
                    rows,
                )
                await self._connection.execute("COMMIT")
            except aiosqlite.Error as e:
                if self._connection.in_transaction:
                    await self._connection.execute("ROLLBACK")
                raise StorageError(f"Failed to save task records: {e}") from e

    async def delete_records(self, record_ids: Sequence[int]) -> None:
        self._check_connected()
        if not record_ids:
            return

        async with self._lock:
            try:
                await self._connection.executemany(
                    "DELETE FROM task_records WHERE id = ?",
                    [(record_id,) for record_id in record_ids],
                )
            except aiosqlite.Error as e:
                raise StorageError(f"Failed to delete task records: {e}") from e

    async def load_records(self) -> list[TaskRecord]:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute("""
                SELECT id, identifier, policy, state, attempt_count,
                       scheduled_time, last_run_time, next_run_time,
                       last_error, cancel_requested, request, output
                FROM task_records
                ORDER BY id
            """)
            rows = await cursor.fetchall()
            await cursor.close()

        try:
            return [_from_row(row) for row in rows]
        except Exception as e:
            raise StorageError(f"Failed to deserialize task records: {e}") from e

    async def reset(self) -> None:
        self._check_connected()
        async with self._lock:
            await self._connection.execute("DELETE FROM task_records")

    async def close(self) -> None:
        """Close the connection. Explicit resource cleanup, not relying on GC."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None


def _to_row(record: TaskRecord) -> tuple:
    return (
        record.id,
        record.identifier,
        record.policy.value,
        record.state.value,
        record.attempt_count,
        record.scheduled_time,
        record.last_run_time,
        record.next_run_time,
        record.last_error,
        int(record.cancel_requested),
        pickle.dumps(record.request),
        pickle.dumps(record.output) if record.output is not None else None,
    )


def _from_row(row: Sequence) -> TaskRecord:
    (
        record_id,
        identifier,
        policy,
        state,
        attempt_count,
        scheduled_time,
        last_run_time,
        next_run_time,
        last_error,
        cancel_requested,
        request,
        output,
    ) = row
    return TaskRecord(
        id=record_id,
        identifier=identifier,
        request=pickle.loads(request),
        policy=ExecutionPolicy(policy),
        state=TaskState(state),
        attempt_count=attempt_count,
        scheduled_time=scheduled_time,
        last_run_time=last_run_time,
        next_run_time=next_run_time,
        last_error=last_error,
        output=pickle.loads(output) if output is not None else None,
        cancel_requested=bool(cancel_requested),
    )
