"""Workflow service — just enough workflow lifecycle for schedule ownership."""

from __future__ import annotations

import logging
from datetime import datetime

from cadence.core.database import Database
from cadence.core.errors import NotFoundError
from cadence.models.types import as_utc, utcnow
from cadence.repositories.schedule_repo import ScheduleRepository, WorkflowScheduleRepository
from cadence.repositories.workflow_repo import WorkflowRepository
from cadence.schemas.schedule import WorkflowView

logger = logging.getLogger("cadence.workflows")


class WorkflowService:
    def __init__(self, database: Database):
        self.database = database

    async def create_workflow(self, owner_id: str, name: str, now: datetime | None = None) -> WorkflowView:
        now = as_utc(now) if now is not None else utcnow()
        async with self.database.transaction("create_workflow", owner_id=owner_id) as session:
            workflow = await WorkflowRepository(session).create(
                owner_id=owner_id, name=name, created_at=now, updated_at=now
            )
            return WorkflowView.model_validate(workflow)

    async def view_workflow(self, workflow_id: str) -> WorkflowView:
        async with self.database.transaction("view_workflow", workflow_id=workflow_id) as session:
            workflow = await WorkflowRepository(session).get_by_id(workflow_id)
            if workflow is None:
                raise NotFoundError("workflow not found", "view_workflow", workflow_id=workflow_id)
            return WorkflowView.model_validate(workflow)

    async def delete_workflow(self, workflow_id: str, now: datetime | None = None) -> None:
        """Soft-delete a workflow and the schedules no other live workflow uses."""
        now = as_utc(now) if now is not None else utcnow()
        async with self.database.transaction("delete_workflow", workflow_id=workflow_id) as session:
            workflows = WorkflowRepository(session)
            workflow = await workflows.get_by_id(workflow_id, include_deleted=True, lock=True)
            if workflow is None:
                raise NotFoundError("workflow not found", "delete_workflow", workflow_id=workflow_id)
            if workflow.deleted_at is not None:
                return

            orphaned = await WorkflowScheduleRepository(session).orphaned_by(workflow_id)
            await workflows.soft_delete(workflow_id, max(now, as_utc(workflow.updated_at)))
            deleted = await ScheduleRepository(session).soft_delete(orphaned, now)
        logger.info(f"Deleted workflow {workflow_id} and {deleted} orphaned schedule(s)")
