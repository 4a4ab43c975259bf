"""Task catalog: the set of task records and their requests.

The catalog owns every TaskRecord. All mutations happen under a single
exclusive lock (a threading.RLock, so public API calls are safe from any
thread). Readers always receive copies; the live objects never leave the
catalog except to the dispatcher, which holds the lock while it uses them.

Lifecycle:
    - records are created only by schedule()
    - state transitions happen in the dispatcher (tick / completion)
    - cancel*() mark records CANCELLED (or request cancellation of a run)
    - records are removed only by prune(), or by a REPLACE resolution
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from pybgtasks.core.cancellation import CancellationToken
from pybgtasks.core.errors import TaskNotFound
from pybgtasks.executor.policy import resolve
from pybgtasks.models.record import TaskRecord
from pybgtasks.models.request import TaskRequest
from pybgtasks.models.status import ExecutionPolicy, TaskState

logger = logging.getLogger(__name__)


class TaskCatalog:
    """Owns task records; exposes schedule/cancel/query/prune.

    Usage:
        catalog = TaskCatalog()
        record = catalog.schedule(TaskRequest.one_time("sync"), ExecutionPolicy.KEEP, now=0)
        catalog.cancel("sync")
    """

    def __init__(self, track_changes: bool = False) -> None:
        self._lock = threading.RLock()
        self.track_changes = track_changes
        self._records: dict[int, TaskRecord] = {}
        self._tokens: dict[int, CancellationToken] = {}
        self._next_id = 1

        # Change tracking for an optional TaskStore
        self._dirty: set[int] = set()
        self._deleted: set[int] = set()

    def __repr__(self) -> str:
        return f"TaskCatalog(records={len(self._records)})"

    @property
    def lock(self) -> threading.RLock:
        """The exclusive lock serializing every catalog mutation."""
        return self._lock

    # ========================================================================
    # Scheduling
    # ========================================================================

    def schedule(self, request: TaskRequest, policy: ExecutionPolicy, now: int) -> TaskRecord:
        """Insert a new record for `request`, resolving conflicts per `policy`.

        The conflict resolution and the insert happen in one critical
        section.

        Returns:
            Copy of the new record (state SCHEDULED)

        Raises:
            TaskAlreadyExists: Under KEEP when the identifier is active
        """
        with self._lock:
            resolution = resolve(policy, request.identifier, self._records.values())

            for old in resolution.remove:
                old.state = TaskState.CANCELLED
                self._delete(old.id)
                logger.debug(f"Replaced task {old.id} ({old.identifier!r})")

            for old in resolution.cancel_running:
                self._request_cancel(old)
                logger.debug(f"Requested cancellation of running task {old.id} for replace")

            record = TaskRecord(
                id=self._next_id,
                identifier=request.identifier,
                request=request,
                policy=policy,
                state=TaskState.SCHEDULED,
                scheduled_time=now,
                next_run_time=now + request.initial_delay_ms,
            )
            self._next_id += 1
            self._records[record.id] = record
            self.mark_dirty(record)

            logger.info(
                f"Scheduled task {record.id} ({record.identifier!r}, {request.kind}, "
                f"policy={policy}, next_run_time={record.next_run_time})"
            )
            return record.snapshot()

    # ========================================================================
    # Cancellation
    # ========================================================================

    def cancel(self, identifier: str) -> bool:
        """Cancel every non-terminal record sharing `identifier`.

        Waiting records become CANCELLED immediately; running records only
        get their cancellation token signalled.

        Returns:
            True if at least one record was cancelled
        """
        with self._lock:
            cancelled = False
            for record in self._records.values():
                if record.identifier == identifier and self._cancel_record(record):
                    cancelled = True
            return cancelled

    def cancel_by_id(self, record_id: int) -> bool:
        """Cancel one record by id.

        Returns:
            True if the record was cancelled, False if already terminal

        Raises:
            TaskNotFound: If no record has this id
        """
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise TaskNotFound(record_id)
            return self._cancel_record(record)

    def cancel_all(self) -> int:
        with self._lock:
            return sum(1 for record in list(self._records.values()) if self._cancel_record(record))

    def cancel_by_tag(self, tag: str) -> int:
        """Cancel every non-terminal record whose request carries `tag`.

        Linear scan over the catalog.
        """
        with self._lock:
            count = 0
            for record in self._records.values():
                if tag in record.request.tags and self._cancel_record(record):
                    count += 1
            return count

    def _cancel_record(self, record: TaskRecord) -> bool:
        if record.is_finished:
            return False
        if record.state is TaskState.RUNNING:
            if record.cancel_requested:
                return False
            self._request_cancel(record)
            logger.info(f"Cancellation requested for running task {record.id}")
            return True

        record.state = TaskState.CANCELLED
        self.mark_dirty(record)
        logger.info(f"Cancelled task {record.id} ({record.identifier!r})")
        return True

    def _request_cancel(self, record: TaskRecord) -> None:
        record.cancel_requested = True
        self.mark_dirty(record)
        token = self._tokens.get(record.id)
        if token is not None:
            token.cancel("cancelled")

    # ========================================================================
    # Queries (copies only)
    # ========================================================================

    def get_by_identifier(self, identifier: str) -> TaskRecord | None:
        """Return the most recent record for `identifier`, or None."""
        with self._lock:
            latest = None
            for record in self._records.values():
                if record.identifier == identifier:
                    latest = record
            return latest.snapshot() if latest is not None else None

    def get_all_by_identifier(self, identifier: str) -> list[TaskRecord]:
        with self._lock:
            return [r.snapshot() for r in self._records.values() if r.identifier == identifier]

    def get_by_id(self, record_id: int) -> TaskRecord | None:
        with self._lock:
            record = self._records.get(record_id)
            return record.snapshot() if record is not None else None

    def require(self, record_id: int) -> TaskRecord:
        """Like get_by_id(), but raise TaskNotFound on a miss."""
        record = self.get_by_id(record_id)
        if record is None:
            raise TaskNotFound(record_id)
        return record

    def records(self) -> list[TaskRecord]:
        """Snapshot of every record, in creation order."""
        with self._lock:
            return [record.snapshot() for record in self._records.values()]

    def count_in(self, *states: TaskState) -> int:
        with self._lock:
            return sum(1 for record in self._records.values() if record.state in states)

    def pending_count(self) -> int:
        return self.count_in(TaskState.PENDING, TaskState.SCHEDULED)

    def running_count(self) -> int:
        return self.count_in(TaskState.RUNNING)

    def completed_count(self) -> int:
        return self.count_in(TaskState.COMPLETED)

    def task_count(self) -> int:
        with self._lock:
            return len(self._records)

    def __len__(self) -> int:
        return self.task_count()

    # ========================================================================
    # Maintenance
    # ========================================================================

    def prune(self) -> int:
        """Remove terminal records.

        The surviving mapping is built from a snapshot and swapped in, so
        an iteration in progress over the old mapping is never disturbed.

        Returns:
            Number of records removed
        """
        with self._lock:
            snapshot = list(self._records.items())
            kept = {rid: record for rid, record in snapshot if not record.is_finished}
            removed = [rid for rid, record in snapshot if record.is_finished]
            self._records = kept
            for rid in removed:
                self._tokens.pop(rid, None)
                self._dirty.discard(rid)
                if self.track_changes:
                    self._deleted.add(rid)

        if removed:
            logger.info(f"Pruned {len(removed)} terminal task(s)")
        return len(removed)

    def load(self, records: Iterable[TaskRecord]) -> int:
        """Insert previously persisted records (used by Scheduler.restore()).

        A loaded record replaces any record with the same id, so the
        scheduler only loads into an empty catalog. The id counter moves
        past the highest loaded id so new records stay monotonic.
        """
        with self._lock:
            count = 0
            for record in records:
                self._records[record.id] = record
                self._next_id = max(self._next_id, record.id + 1)
                count += 1
            self._records = dict(sorted(self._records.items()))
            return count

    # ========================================================================
    # Dispatcher access (call with the lock held)
    # ========================================================================

    def live_records(self) -> list[TaskRecord]:
        """The live record objects. Dispatcher use only, under the lock."""
        return list(self._records.values())

    def live_record(self, record_id: int) -> TaskRecord | None:
        return self._records.get(record_id)

    def attach_token(self, record_id: int, token: CancellationToken) -> None:
        self._tokens[record_id] = token

    def detach_token(self, record_id: int) -> CancellationToken | None:
        return self._tokens.pop(record_id, None)

    def mark_dirty(self, record: TaskRecord) -> None:
        if self.track_changes:
            self._dirty.add(record.id)

    def _delete(self, record_id: int) -> None:
        self._records.pop(record_id, None)
        self._tokens.pop(record_id, None)
        self._dirty.discard(record_id)
        if self.track_changes:
            self._deleted.add(record_id)

    def take_changes(self) -> tuple[list[TaskRecord], list[int]]:
        """Return (changed record copies, deleted ids) since the last call."""
        with self._lock:
            changed = [
                self._records[rid].snapshot() for rid in sorted(self._dirty) if rid in self._records
            ]
            deleted = sorted(self._deleted)
            self._dirty.clear()
            self._deleted.clear()
            return changed, deleted

    def requeue_changes(self, record_ids: Iterable[int], deleted: Iterable[int]) -> None:
        """Put changes back after a failed store write so the next flush retries them."""
        with self._lock:
            self._dirty.update(rid for rid in record_ids if rid in self._records)
            self._deleted.update(deleted)
