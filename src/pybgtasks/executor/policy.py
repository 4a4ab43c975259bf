"""Execution policy resolution.

Decides what happens to existing records when a new request shares their
identifier. The resolver is a pure decision; the catalog applies the
resulting Resolution inside the same critical section that inserts the
new record, so no tick can observe the old and new records as eligible
at the same time.

Design: Information Hiding (Parnas)
Conflict rules live here, so the catalog only knows how to apply a
Resolution, not why.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from pybgtasks.core.errors import TaskAlreadyExists
from pybgtasks.models.record import TaskRecord
from pybgtasks.models.status import ExecutionPolicy, TaskState

__all__ = ["Resolution", "resolve", "blocks_admission"]


@dataclass
class Resolution:
    """What the catalog must do before inserting the new record.

    Attributes:
        remove: Waiting records to mark CANCELLED and drop from the catalog
        cancel_running: RUNNING records whose token must be signalled; they
            stay in the catalog until their run returns
    """

    remove: list[TaskRecord] = field(default_factory=list)
    cancel_running: list[TaskRecord] = field(default_factory=list)


def resolve(
    policy: ExecutionPolicy, identifier: str, existing: Iterable[TaskRecord]
) -> Resolution:
    """Resolve a scheduling conflict for `identifier`.

    Args:
        policy: Policy of the incoming request
        identifier: Identifier being scheduled
        existing: Records currently in the catalog (any identifier)

    Returns:
        Resolution to apply before the insert

    Raises:
        TaskAlreadyExists: Under KEEP when a non-terminal record exists
    """
    active = [r for r in existing if r.identifier == identifier and not r.is_finished]

    if policy is ExecutionPolicy.APPEND or not active:
        return Resolution()

    if policy is ExecutionPolicy.KEEP:
        raise TaskAlreadyExists(identifier)

    resolution = Resolution()
    for record in active:
        if record.state is TaskState.RUNNING:
            resolution.cancel_running.append(record)
        else:
            resolution.remove.append(record)
    return resolution


def blocks_admission(candidate: TaskRecord, running: TaskRecord) -> bool:
    """Return True if `running` keeps `candidate` from being admitted.

    At most one run per identifier, except between APPEND copies, which
    are allowed to overlap.
    """
    if candidate.identifier != running.identifier:
        return False
    return not (
        candidate.policy is ExecutionPolicy.APPEND and running.policy is ExecutionPolicy.APPEND
    )
