"""Workflow API endpoints — workflow records and their schedule links."""

from fastapi import APIRouter, Depends, status

from cadence.core.auth import verify_api_key
from cadence.core.database import Database, get_database
from cadence.schemas.schedule import WorkflowCreate, WorkflowLinks, WorkflowView
from cadence.services.schedule_service import ScheduleService
from cadence.services.workflow_service import WorkflowService

router = APIRouter(prefix="/workflows", tags=["workflows"])


@router.post("", response_model=WorkflowView, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    body: WorkflowCreate,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    return await WorkflowService(database).create_workflow(body.owner_id, body.name)


@router.get("/{workflow_id}", response_model=WorkflowView)
async def view_workflow(
    workflow_id: str,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    return await WorkflowService(database).view_workflow(workflow_id)


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(
    workflow_id: str,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    await WorkflowService(database).delete_workflow(workflow_id)


@router.put("/{workflow_id}/schedules", response_model=WorkflowLinks)
async def replace_links(
    workflow_id: str,
    body: WorkflowLinks,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    service = ScheduleService(database)
    await service.replace_workflow_links(workflow_id, body.schedule_ids)
    return WorkflowLinks(schedule_ids=await service.list_workflow_links(workflow_id))


@router.get("/{workflow_id}/schedules", response_model=WorkflowLinks)
async def list_links(
    workflow_id: str,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    schedule_ids = await ScheduleService(database).list_workflow_links(workflow_id)
    return WorkflowLinks(schedule_ids=schedule_ids)
