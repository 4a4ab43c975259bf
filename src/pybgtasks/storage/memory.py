"""In-memory task store.

Records are kept as pickled bytes so callers can never share mutable
state with the store, and so anything that would fail to persist in the
SQLite store fails here too.

Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio
import pickle
from collections.abc import Sequence

from pybgtasks.core.errors import StorageError
from pybgtasks.models.record import TaskRecord
from pybgtasks.storage.base import TaskStore


class InMemoryTaskStore(TaskStore):
    """Volatile store for tests and single-process hosts.

    Usage:
        store = InMemoryTaskStore()
        scheduler = Scheduler(executor).with_store(store)
    """

    def __init__(self) -> None:
        self._records: dict[int, bytes] = {}
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"InMemoryTaskStore(records={len(self._records)})"

    async def save_records(self, records: Sequence[TaskRecord]) -> None:
        async with self._lock:
            for record in records:
                try:
                    self._records[record.id] = pickle.dumps(record)
                except Exception as e:
                    raise StorageError(f"Failed to serialize task {record.id}: {e}") from e

    async def delete_records(self, record_ids: Sequence[int]) -> None:
        async with self._lock:
            for record_id in record_ids:
                self._records.pop(record_id, None)

    async def load_records(self) -> list[TaskRecord]:
        async with self._lock:
            return [pickle.loads(self._records[rid]) for rid in sorted(self._records)]

    async def reset(self) -> None:
        async with self._lock:
            self._records.clear()
