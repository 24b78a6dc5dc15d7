"""Workflow repository."""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.models.workflow import Workflow


class WorkflowRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Workflow:
        workflow = Workflow(**kwargs)
        self.session.add(workflow)
        await self.session.flush()
        return workflow

    async def get_by_id(self, workflow_id: str, include_deleted: bool = False, lock: bool = False) -> Workflow | None:
        stmt = select(Workflow).where(Workflow.id == workflow_id)
        if not include_deleted:
            stmt = stmt.where(Workflow.deleted_at.is_(None))
        if lock:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def soft_delete(self, workflow_id: str, now: datetime) -> int:
        result = await self.session.execute(
            update(Workflow)
            .where(Workflow.id == workflow_id, Workflow.deleted_at.is_(None))
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
