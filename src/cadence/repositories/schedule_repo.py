"""Schedule repository — statement construction for schedules and workflow links.

Repositories never commit; callers run them inside ``Database.transaction()``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import case, delete, func, insert, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.models.schedule import Schedule, WorkflowSchedule
from cadence.models.types import UTCDateTime
from cadence.models.workflow import Workflow


def _deleted_at(now: datetime):
    # deleted_at must never precede updated_at, even when a claimer's clock
    # ran ahead of ours.
    return case((Schedule.updated_at > now, Schedule.updated_at), else_=literal(now, UTCDateTime()))


class ScheduleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Schedule:
        schedule = Schedule(**kwargs)
        self.session.add(schedule)
        await self.session.flush()
        return schedule

    async def get_by_id(self, schedule_id: str, include_deleted: bool = False, lock: bool = False) -> Schedule | None:
        stmt = select(Schedule).where(Schedule.id == schedule_id)
        if not include_deleted:
            stmt = stmt.where(Schedule.deleted_at.is_(None))
        if lock:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_owner(self, owner_id: str) -> list[Schedule]:
        result = await self.session.execute(
            select(Schedule)
            .where(Schedule.owner_id == owner_id, Schedule.deleted_at.is_(None))
            .order_by(Schedule.created_at.asc(), Schedule.id.asc())
        )
        return list(result.scalars().all())

    async def live_ids(self, schedule_ids: Iterable[str]) -> set[str]:
        ids = list(schedule_ids)
        if not ids:
            return set()
        result = await self.session.execute(
            select(Schedule.id).where(Schedule.id.in_(ids), Schedule.deleted_at.is_(None))
        )
        return set(result.scalars().all())

    async def update_live(self, schedule_id: str, **values: Any) -> int:
        """Update a non-deleted schedule; returns the number of rows changed."""
        result = await self.session.execute(
            update(Schedule)
            .where(Schedule.id == schedule_id, Schedule.deleted_at.is_(None))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def soft_delete(self, schedule_ids: Iterable[str], now: datetime) -> int:
        ids = list(schedule_ids)
        if not ids:
            return 0
        result = await self.session.execute(
            update(Schedule)
            .where(Schedule.id.in_(ids), Schedule.deleted_at.is_(None))
            .values(deleted_at=_deleted_at(now))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def soft_delete_by_owner(self, owner_id: str, now: datetime) -> int:
        result = await self.session.execute(
            update(Schedule)
            .where(Schedule.owner_id == owner_id, Schedule.deleted_at.is_(None))
            .values(deleted_at=_deleted_at(now))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    def due_statement(limit: int, now: datetime, skip_locked: bool = False):
        """Up to ``limit`` due (workflow_id, schedule) pairs, locking the schedule rows.

        Ordered by due time, then schedule id, then workflow id.
        """
        due = Schedule.due_at_expr()
        return (
            select(Workflow.id, Schedule)
            .select_from(Workflow)
            .join(WorkflowSchedule, WorkflowSchedule.workflow_id == Workflow.id)
            .join(Schedule, Schedule.id == WorkflowSchedule.schedule_id)
            .where(
                Workflow.deleted_at.is_(None),
                Schedule.deleted_at.is_(None),
                due <= now,
            )
            .order_by(due.asc(), Schedule.id.asc(), Workflow.id.asc())
            .limit(limit)
            .with_for_update(of=Schedule, skip_locked=skip_locked)
        )

    async def select_due(
        self, limit: int, now: datetime, skip_locked: bool = False
    ) -> list[tuple[str, Schedule]]:
        """Run :meth:`due_statement`; the rows stay locked until the transaction ends."""
        result = await self.session.execute(self.due_statement(limit, now, skip_locked))
        return [(workflow_id, schedule) for workflow_id, schedule in result.all()]

    async def touch(self, schedule_ids: Iterable[str], now: datetime) -> int:
        """Set ``updated_at = now`` on live schedules, pushing their due time forward."""
        ids = list(schedule_ids)
        if not ids:
            return 0
        result = await self.session.execute(
            update(Schedule)
            .where(Schedule.id.in_(ids), Schedule.deleted_at.is_(None))
            .values(updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class WorkflowScheduleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def delete_all(self, workflow_id: str) -> None:
        await self.session.execute(
            delete(WorkflowSchedule).where(WorkflowSchedule.workflow_id == workflow_id)
        )

    async def create_all(self, workflow_id: str, schedule_ids: Iterable[str]) -> None:
        rows = [{"workflow_id": workflow_id, "schedule_id": sid} for sid in schedule_ids]
        if rows:
            await self.session.execute(insert(WorkflowSchedule), rows)

    async def list_schedule_ids(self, workflow_id: str) -> list[str]:
        result = await self.session.execute(
            select(WorkflowSchedule.schedule_id)
            .join(Schedule, Schedule.id == WorkflowSchedule.schedule_id)
            .where(WorkflowSchedule.workflow_id == workflow_id, Schedule.deleted_at.is_(None))
            .order_by(WorkflowSchedule.schedule_id.asc())
        )
        return list(result.scalars().all())

    async def count_live_workflows(self, schedule_id: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(WorkflowSchedule)
            .join(Workflow, Workflow.id == WorkflowSchedule.workflow_id)
            .where(WorkflowSchedule.schedule_id == schedule_id, Workflow.deleted_at.is_(None))
        )
        return result.scalar_one()

    async def orphaned_by(self, workflow_id: str) -> list[str]:
        """Schedules linked to ``workflow_id`` with no other live workflow link."""
        other = (
            select(WorkflowSchedule.schedule_id)
            .join(Workflow, Workflow.id == WorkflowSchedule.workflow_id)
            .where(Workflow.id != workflow_id, Workflow.deleted_at.is_(None))
        )
        result = await self.session.execute(
            select(WorkflowSchedule.schedule_id).where(
                WorkflowSchedule.workflow_id == workflow_id,
                WorkflowSchedule.schedule_id.not_in(other),
            )
        )
        return list(result.scalars().all())
