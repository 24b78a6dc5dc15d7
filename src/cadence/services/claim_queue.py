"""Claim queue — hands due schedules to exactly one worker at a time.

Workers poll a shared table instead of a broker. Each claim runs in a single
transaction:

1. select up to ``max_batch_size`` due (workflow, schedule) pairs, locking the
   schedule rows (``FOR UPDATE OF schedules``, optionally ``SKIP LOCKED``);
2. set ``updated_at = now`` on every selected schedule, which moves its due
   time ``update_interval`` seconds past ``now``;
3. commit.

A concurrent claimer either waits for the lock and then sees the rows as no
longer due, or skips them. If the transaction aborts before commit nothing is
advanced and the schedules stay due, so dispatch is at-least-once.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from cadence.core.database import Database
from cadence.models.schedule import Schedule
from cadence.models.types import as_utc, utcnow
from cadence.repositories.schedule_repo import ScheduleRepository, WorkflowScheduleRepository
from cadence.schemas.schedule import ClaimedItem, ScheduleView

logger = logging.getLogger("cadence.claims")


class ClaimQueue:
    def __init__(self, database: Database, skip_locked: bool = True):
        self.database = database
        self.skip_locked = skip_locked

    async def claim_due(self, max_batch_size: int, now: datetime | None = None) -> list[ClaimedItem]:
        """Claim and commit a batch of due schedules."""
        async with self.claim(max_batch_size, now) as batch:
            return batch

    @asynccontextmanager
    async def claim(self, max_batch_size: int, now: datetime | None = None) -> AsyncIterator[list[ClaimedItem]]:
        """Claim a batch and keep its transaction open while the body runs.

        The claim commits when the body exits normally and rolls back when it
        raises, leaving the schedules due for the next poll.

        Usage::

            async with queue.claim(10) as batch:
                for item in batch:
                    await dispatch(item)
        """
        if max_batch_size <= 0:
            raise ValueError(f"max_batch_size must be positive, got {max_batch_size}")
        now = as_utc(now) if now is not None else utcnow()

        async with self.database.transaction("claim_due", max_batch_size=max_batch_size) as session:
            batch = await self._claim(session, max_batch_size, now)
            yield batch

        if batch:
            logger.info(f"Claimed {len(batch)} item(s) across {len({i.schedule_id for i in batch})} schedule(s)")

    async def _claim(self, session: AsyncSession, max_batch_size: int, now: datetime) -> list[ClaimedItem]:
        schedules = ScheduleRepository(session)
        rows = await schedules.select_due(max_batch_size, now, skip_locked=self.skip_locked)
        if not rows:
            logger.debug("No due schedules")
            return []

        if len(rows) == max_batch_size:
            rows = await self._drop_split_fanout(session, rows)

        snapshots: dict[str, ScheduleView] = {}
        items = []
        for workflow_id, schedule in rows:
            if schedule.id not in snapshots:
                snapshots[schedule.id] = ScheduleView.model_validate(schedule)
            items.append(
                ClaimedItem(
                    workflow_id=workflow_id,
                    schedule_id=schedule.id,
                    schedule=snapshots[schedule.id],
                    claimed_at=now,
                )
            )

        touched = await schedules.touch(snapshots.keys(), now)
        if touched != len(snapshots):
            # Rows are locked and were live when selected; anything else means
            # the lock did not hold.
            raise RuntimeError(f"claimed {len(snapshots)} schedules but advanced {touched}")
        return items

    async def _drop_split_fanout(
        self, session: AsyncSession, rows: list[tuple[str, Schedule]]
    ) -> list[tuple[str, Schedule]]:
        """Leave the trailing schedule for the next poll if the limit cut its fan-out."""
        last = rows[-1][1]
        included = sum(1 for _, schedule in rows if schedule.id == last.id)
        if included == len(rows):
            # Only schedule in the batch: take the partial fan-out to make progress.
            return rows
        links = await WorkflowScheduleRepository(session).count_live_workflows(last.id)
        if links > included:
            logger.debug(f"Deferring schedule {last.id}: {included} of {links} workflow(s) fit in batch")
            return [row for row in rows if row[1].id != last.id]
        return rows
