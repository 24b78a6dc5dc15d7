"""Run a poller that posts each claimed item to a webhook.

The claim stays open while the webhook is called: a failed POST rolls the
claim back and the schedule is retried on the next tick.

    CADENCE_DATABASE_URL=sqlite+aiosqlite:///cadence.db python examples/webhook_dispatcher.py
"""

import asyncio
import logging
import os

import httpx

from cadence.core.config import get_settings
from cadence.core.database import init_database
from cadence.daemon.poller import SchedulePoller
from cadence.services.claim_queue import ClaimQueue

WEBHOOK_URL = os.environ.get("WEBHOOK_URL", "http://localhost:9000/run")


async def post_batch(batch):
    async with httpx.AsyncClient(timeout=10) as client:
        for item in batch:
            resp = await client.post(
                WEBHOOK_URL,
                json={
                    "workflow_id": item.workflow_id,
                    "schedule_id": item.schedule_id,
                    "metadata": item.schedule.metadata,
                    "claimed_at": item.claimed_at.isoformat(),
                },
            )
            resp.raise_for_status()


async def main():
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    database = init_database(settings.database_url, settings.pool_config())
    await database.create_tables()

    poller = SchedulePoller(
        ClaimQueue(database, skip_locked=settings.skip_locked),
        dispatcher=post_batch,
        batch_size=settings.batch_size,
    )
    try:
        while True:
            await poller.poll_once()
            await asyncio.sleep(settings.poll_interval)
    finally:
        await database.close()


if __name__ == "__main__":
    asyncio.run(main())
