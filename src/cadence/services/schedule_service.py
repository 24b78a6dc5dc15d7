"""Schedule service — lifecycle of schedules and their workflow links."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable

from cadence.core.database import Database
from cadence.core.errors import NotFoundError
from cadence.models.types import as_utc, utcnow
from cadence.repositories.schedule_repo import ScheduleRepository, WorkflowScheduleRepository
from cadence.repositories.workflow_repo import WorkflowRepository
from cadence.schemas.schedule import ScheduleView

logger = logging.getLogger("cadence.schedules")


def _check_interval(update_interval: int) -> None:
    if update_interval <= 0:
        raise ValueError(f"update_interval must be a positive number of seconds, got {update_interval}")


class ScheduleService:
    def __init__(self, database: Database):
        self.database = database

    async def create_schedule(
        self,
        owner_id: str,
        update_interval: int,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> ScheduleView:
        _check_interval(update_interval)
        now = as_utc(now) if now is not None else utcnow()
        async with self.database.transaction("create_schedule", owner_id=owner_id) as session:
            schedule = await ScheduleRepository(session).create(
                owner_id=owner_id,
                update_interval=update_interval,
                payload=metadata or {},
                created_at=now,
                updated_at=now,
            )
            view = ScheduleView.model_validate(schedule)
        logger.info(f"Created schedule {view.id} (every {update_interval}s) for owner {owner_id}")
        return view

    async def view_schedule(self, schedule_id: str) -> ScheduleView:
        async with self.database.transaction("view_schedule", schedule_id=schedule_id) as session:
            schedule = await ScheduleRepository(session).get_by_id(schedule_id)
            if schedule is None:
                raise NotFoundError("schedule not found", "view_schedule", schedule_id=schedule_id)
            return ScheduleView.model_validate(schedule)

    async def list_schedules(self, owner_id: str) -> list[ScheduleView]:
        async with self.database.transaction("list_schedules", owner_id=owner_id) as session:
            schedules = await ScheduleRepository(session).list_by_owner(owner_id)
            return [ScheduleView.model_validate(s) for s in schedules]

    async def update_schedule(
        self,
        schedule_id: str,
        metadata: dict[str, Any] | None = None,
        update_interval: int | None = None,
    ) -> None:
        """Change mutable fields only. ``updated_at`` is left for claims to move."""
        values: dict[str, Any] = {}
        if metadata is not None:
            values["payload"] = metadata
        if update_interval is not None:
            _check_interval(update_interval)
            values["update_interval"] = update_interval

        async with self.database.transaction("update_schedule", schedule_id=schedule_id) as session:
            repo = ScheduleRepository(session)
            if values:
                changed = await repo.update_live(schedule_id, **values)
            else:
                changed = 1 if await repo.get_by_id(schedule_id) is not None else 0
            if not changed:
                raise NotFoundError("schedule not found", "update_schedule", schedule_id=schedule_id)

    async def delete_schedule(self, schedule_id: str, now: datetime | None = None) -> None:
        """Soft-delete a schedule. Deleting an already-deleted schedule is a no-op."""
        now = as_utc(now) if now is not None else utcnow()
        async with self.database.transaction("delete_schedule", schedule_id=schedule_id) as session:
            repo = ScheduleRepository(session)
            schedule = await repo.get_by_id(schedule_id, include_deleted=True, lock=True)
            if schedule is None:
                raise NotFoundError("schedule not found", "delete_schedule", schedule_id=schedule_id)
            if schedule.deleted_at is not None:
                return
            await repo.soft_delete([schedule_id], now)
        logger.info(f"Deleted schedule {schedule_id}")

    async def delete_owner_schedules(self, owner_id: str, now: datetime | None = None) -> int:
        """Soft-delete every live schedule of an owner; returns how many were deleted."""
        now = as_utc(now) if now is not None else utcnow()
        async with self.database.transaction("delete_owner_schedules", owner_id=owner_id) as session:
            deleted = await ScheduleRepository(session).soft_delete_by_owner(owner_id, now)
        logger.info(f"Deleted {deleted} schedule(s) of owner {owner_id}")
        return deleted

    async def replace_workflow_links(self, workflow_id: str, schedule_ids: Iterable[str]) -> None:
        """Replace the workflow's schedule set: delete all links, then insert the new ones.

        Runs in one transaction, so a failure keeps the previous set.
        """
        ids = sorted(set(schedule_ids))
        async with self.database.transaction("replace_workflow_links", workflow_id=workflow_id) as session:
            workflow = await WorkflowRepository(session).get_by_id(workflow_id, lock=True)
            if workflow is None:
                raise NotFoundError("workflow not found", "replace_workflow_links", workflow_id=workflow_id)

            missing = sorted(set(ids) - await ScheduleRepository(session).live_ids(ids))
            if missing:
                raise NotFoundError(
                    "schedule not found",
                    "replace_workflow_links",
                    workflow_id=workflow_id,
                    schedule_ids=missing,
                )

            links = WorkflowScheduleRepository(session)
            await links.delete_all(workflow_id)
            await links.create_all(workflow_id, ids)
        logger.info(f"Linked workflow {workflow_id} to {len(ids)} schedule(s)")

    async def list_workflow_links(self, workflow_id: str) -> list[str]:
        async with self.database.transaction("list_workflow_links", workflow_id=workflow_id) as session:
            if await WorkflowRepository(session).get_by_id(workflow_id) is None:
                raise NotFoundError("workflow not found", "list_workflow_links", workflow_id=workflow_id)
            return await WorkflowScheduleRepository(session).list_schedule_ids(workflow_id)
