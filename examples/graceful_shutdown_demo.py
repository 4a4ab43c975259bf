"""
Graceful Shutdown Demonstration

The scheduler tracks in-flight runs and waits for them during shutdown,
so no admitted work is lost. Records still waiting when shutdown starts
are not admitted.

Scenario:
- 6 uploads (each takes 2 seconds)
- 2 worker slots
- Shutdown triggered while uploads are still running

Run:
    PYTHONPATH=src python examples/graceful_shutdown_demo.py
"""

import asyncio
import logging

from pybgtasks import Scheduler, TaskOutcome, TaskRequest, TaskState

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def upload(record, token):
    logger.info(f"[{record.identifier}] uploading ({record.request.payload}s)")
    try:
        await asyncio.wait_for(token.wait(), timeout=record.request.payload)
    except TimeoutError:
        logger.info(f"[{record.identifier}] done")
        return TaskOutcome.success()
    logger.info(f"[{record.identifier}] stopped: {token.reason}")
    return TaskOutcome.retry(token.reason)


async def main():
    scheduler = Scheduler(upload).with_max_workers(2).with_tick_interval(0.1)
    records = [
        scheduler.schedule(TaskRequest.one_time(f"upload-{i}").with_payload(2.0))
        for i in range(6)
    ]

    handle = await scheduler.start()
    await asyncio.sleep(1.0)

    logger.info(f"Shutting down with {scheduler.running_count()} run(s) in flight")
    await handle.shutdown()

    for record in records:
        state = scheduler.get_by_id(record.id).state
        logger.info(f"{record.identifier}: {state}")

    completed = sum(1 for r in scheduler.records() if r.state is TaskState.COMPLETED)
    print(f"\n{completed} completed, {scheduler.pending_count()} still scheduled")


if __name__ == "__main__":
    asyncio.run(main())
