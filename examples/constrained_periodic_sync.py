"""
Constrained Periodic Sync

Drives the scheduler by hand with a ManualClock to show constraint
gating, periodic re-arming and retry backoff without waiting in real
time.

Run:
    PYTHONPATH=src python examples/constrained_periodic_sync.py
"""

import asyncio
import logging

from pybgtasks import (
    BackoffPolicy,
    EnvironmentSnapshot,
    ExecutionPolicy,
    ManualClock,
    NetworkType,
    PeriodicInterval,
    Scheduler,
    TaskConstraints,
    TaskOutcome,
    TaskRequest,
)

logging.basicConfig(level=logging.INFO, format="%(name)s - %(levelname)s - %(message)s")

attempts = {"count": 0}


async def sync_feeds(record, token):
    attempts["count"] += 1
    # First run fails to show the retry path.
    if attempts["count"] == 1:
        return TaskOutcome.retry("server returned 503")
    return TaskOutcome.success(output={"synced": attempts["count"]})


async def step(scheduler, clock, label):
    await scheduler.tick()
    await scheduler.wait_idle()
    await scheduler.tick()
    record = scheduler.get_by_identifier("feeds")
    print(
        f"t={clock.now():>9}ms  {label:<28} state={record.state} "
        f"attempts={record.attempt_count} next={record.next_run_time}"
    )


async def main():
    clock = ManualClock()
    scheduler = Scheduler(sync_feeds, clock=clock)
    scheduler.set_context(EnvironmentSnapshot(has_network=False))

    request = (
        TaskRequest.periodic("feeds", PeriodicInterval.every(30))
        .with_constraints(TaskConstraints().with_network(NetworkType.UNMETERED))
        .with_retries(2, BackoffPolicy.LINEAR, 10_000)
    )
    scheduler.schedule(request, ExecutionPolicy.REPLACE)

    await step(scheduler, clock, "offline")

    scheduler.set_context(EnvironmentSnapshot(has_network=True))
    await step(scheduler, clock, "online, first run fails")

    clock.advance(10_000)
    await step(scheduler, clock, "retry succeeds")

    clock.advance(30 * 60_000)
    await step(scheduler, clock, "next period")


if __name__ == "__main__":
    asyncio.run(main())
