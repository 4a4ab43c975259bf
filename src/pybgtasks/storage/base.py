"""
TaskStore - abstract interface for persisting the task catalog.

Design Pattern: Adapter Pattern
TaskStore defines the target interface; SQLite and in-memory backends
adapt to it. The scheduler depends only on this abstraction, and works
without any store at all.

The persisted schema is exactly the TaskRecord field set (the record
embeds its TaskRequest). Records are written after each tick and
deleted when pruned or replaced.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from pybgtasks.core.errors import StorageError
from pybgtasks.models.record import TaskRecord

__all__ = ["TaskStore", "StorageError"]


class TaskStore(ABC):
    """Abstract persistence backend for task records."""

    @abstractmethod
    async def save_records(self, records: Sequence[TaskRecord]) -> None:
        """
        Insert or update records by id.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_records(self, record_ids: Sequence[int]) -> None:
        """Delete records by id. Unknown ids are ignored."""
        pass

    @abstractmethod
    async def load_records(self) -> list[TaskRecord]:
        """Return every persisted record, ordered by id."""
        pass

    async def close(self) -> None:
        """Release resources. Default: nothing to release."""
        return None

    async def reset(self) -> None:
        """Delete everything (for tests and demos)."""
        await self.delete_records([r.id for r in await self.load_records()])
