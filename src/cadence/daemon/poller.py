"""Schedule poller — claims due schedules on an interval and dispatches them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cadence.core.errors import DatabaseError
from cadence.models.types import utcnow
from cadence.schemas.schedule import ClaimedItem
from cadence.services.claim_queue import ClaimQueue

logger = logging.getLogger("cadence.poller")

Dispatcher = Callable[[list[ClaimedItem]], Awaitable[None]]

POLL_JOB_ID = "cadence.poll"


async def log_dispatcher(batch: list[ClaimedItem]) -> None:
    """Default dispatcher: record the claim and hand nothing further on."""
    for item in batch:
        logger.info(
            f"Dispatch workflow {item.workflow_id} for schedule {item.schedule_id} "
            f"(due {item.schedule.due_at.isoformat()})"
        )


@dataclass
class PollerStats:
    polls: int = 0
    claimed: int = 0
    failures: int = 0
    last_poll_at: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "polls": self.polls,
            "claimed": self.claimed,
            "failures": self.failures,
            "last_poll_at": self.last_poll_at.isoformat() if self.last_poll_at else None,
            "last_error": self.last_error,
        }


class SchedulePoller:
    """Runs one claim per tick inside this process.

    The dispatcher is awaited while the claim transaction is still open: if it
    raises, the claim rolls back and the schedules are picked up again by the
    next poll from any worker.
    """

    def __init__(
        self,
        queue: ClaimQueue,
        dispatcher: Dispatcher = log_dispatcher,
        batch_size: int = 10,
        poll_interval: float = 5.0,
    ):
        self.queue = queue
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.stats = PollerStats()
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def poll_once(self, now: datetime | None = None) -> int:
        """Claim one batch and dispatch it. Returns the number of items dispatched."""
        self.stats.polls += 1
        self.stats.last_poll_at = now or utcnow()
        try:
            async with self.queue.claim(self.batch_size, now) as batch:
                if batch:
                    await self.dispatcher(batch)
        except DatabaseError as e:
            self.stats.failures += 1
            self.stats.last_error = str(e)
            level = logging.WARNING if e.retryable else logging.ERROR
            logger.log(level, f"Poll failed ({e.kind}): {e}")
            return 0
        except Exception as e:
            self.stats.failures += 1
            self.stats.last_error = str(e)
            logger.error(f"Dispatch failed, claim rolled back: {e}", exc_info=True)
            return 0

        self.stats.claimed += len(batch)
        return len(batch)

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.poll_once,
            trigger=IntervalTrigger(seconds=self.poll_interval),
            id=POLL_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"Poller started (every {self.poll_interval}s, batch {self.batch_size})")

    def stop(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Poller stopped")
        self._scheduler = None

    def info(self) -> dict:
        next_run = None
        if self.running:
            job = self._scheduler.get_job(POLL_JOB_ID)
            if job is not None and job.next_run_time is not None:
                next_run = job.next_run_time.isoformat()
        return {
            "running": self.running,
            "poll_interval": self.poll_interval,
            "batch_size": self.batch_size,
            "next_run": next_run,
            **self.stats.to_dict(),
        }
