"""Optional persistence backends for the task catalog.

Provides storage implementations behind a common interface:
    - TaskStore: Abstract interface
    - SqliteTaskStore: SQLite-backed storage (aiosqlite)
    - InMemoryTaskStore: In-memory storage for testing

Design: Adapter Pattern + Dependency Inversion (SOLID)
    The scheduler depends on TaskStore only; backends are interchangeable.
"""

from pybgtasks.storage.base import StorageError, TaskStore


def __getattr__(name: str):
    """Lazy import of the storage backends."""
    if name == "InMemoryTaskStore":
        from pybgtasks.storage.memory import InMemoryTaskStore

        return InMemoryTaskStore
    elif name == "SqliteTaskStore":
        from pybgtasks.storage.sqlite import SqliteTaskStore

        return SqliteTaskStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "TaskStore",
    "StorageError",
    "SqliteTaskStore",
    "InMemoryTaskStore",
]
