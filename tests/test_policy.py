"""Tests for execution policy resolution."""

import pytest

from pybgtasks import ExecutionPolicy, TaskAlreadyExists, TaskRecord, TaskRequest, TaskState
from pybgtasks.executor.policy import blocks_admission, resolve


def _record(record_id, identifier="sync", state=TaskState.SCHEDULED, policy=ExecutionPolicy.KEEP):
    return TaskRecord(
        id=record_id,
        identifier=identifier,
        request=TaskRequest.one_time(identifier),
        policy=policy,
        state=state,
    )


def test_no_conflict_resolves_to_nothing():
    for policy in ExecutionPolicy:
        resolution = resolve(policy, "sync", [_record(1, identifier="other")])
        assert resolution.remove == []
        assert resolution.cancel_running == []


def test_keep_rejects_active_identifier():
    with pytest.raises(TaskAlreadyExists) as exc_info:
        resolve(ExecutionPolicy.KEEP, "sync", [_record(1)])
    assert exc_info.value.identifier == "sync"


def test_terminal_records_do_not_conflict():
    existing = [_record(1, state=TaskState.COMPLETED), _record(2, state=TaskState.CANCELLED)]
    resolution = resolve(ExecutionPolicy.KEEP, "sync", existing)
    assert resolution.remove == []


def test_replace_splits_waiting_and_running():
    waiting = _record(1)
    running = _record(2, state=TaskState.RUNNING)
    done = _record(3, state=TaskState.FAILED)

    resolution = resolve(ExecutionPolicy.REPLACE, "sync", [waiting, running, done])

    assert resolution.remove == [waiting]
    assert resolution.cancel_running == [running]


def test_append_never_conflicts():
    resolution = resolve(ExecutionPolicy.APPEND, "sync", [_record(1, state=TaskState.RUNNING)])
    assert resolution.remove == []
    assert resolution.cancel_running == []


@pytest.mark.parametrize(
    "candidate_policy,running_policy,blocked",
    [
        (ExecutionPolicy.APPEND, ExecutionPolicy.APPEND, False),
        (ExecutionPolicy.APPEND, ExecutionPolicy.KEEP, True),
        (ExecutionPolicy.KEEP, ExecutionPolicy.APPEND, True),
        (ExecutionPolicy.REPLACE, ExecutionPolicy.REPLACE, True),
    ],
)
def test_blocks_admission(candidate_policy, running_policy, blocked):
    candidate = _record(1, policy=candidate_policy)
    running = _record(2, state=TaskState.RUNNING, policy=running_policy)
    assert blocks_admission(candidate, running) is blocked


def test_other_identifiers_never_block():
    candidate = _record(1)
    running = _record(2, identifier="other", state=TaskState.RUNNING)
    assert not blocks_admission(candidate, running)
