"""Schedule API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from cadence.core.auth import verify_api_key
from cadence.core.database import Database, get_database
from cadence.schemas.schedule import (
    ScheduleCreate,
    ScheduleListResponse,
    ScheduleUpdate,
    ScheduleView,
)
from cadence.services.schedule_service import ScheduleService

router = APIRouter(tags=["schedules"])


@router.post("/schedules", response_model=ScheduleView, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    body: ScheduleCreate,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    return await ScheduleService(database).create_schedule(
        owner_id=body.owner_id,
        update_interval=body.update_interval,
        metadata=body.metadata,
    )


@router.get("/schedules", response_model=ScheduleListResponse)
async def list_schedules(
    owner_id: str,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    schedules = await ScheduleService(database).list_schedules(owner_id)
    return ScheduleListResponse(schedules=schedules, total=len(schedules))


@router.get("/schedules/{schedule_id}", response_model=ScheduleView)
async def view_schedule(
    schedule_id: str,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    return await ScheduleService(database).view_schedule(schedule_id)


@router.patch("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_schedule(
    schedule_id: str,
    body: ScheduleUpdate,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    await ScheduleService(database).update_schedule(
        schedule_id,
        metadata=body.metadata,
        update_interval=body.update_interval,
    )


@router.delete("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(
    schedule_id: str,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    await ScheduleService(database).delete_schedule(schedule_id)


@router.delete("/owners/{owner_id}/schedules")
async def delete_owner_schedules(
    owner_id: str,
    database: Database = Depends(get_database),
    _: str = Depends(verify_api_key),
):
    deleted = await ScheduleService(database).delete_owner_schedules(owner_id)
    return {"owner_id": owner_id, "deleted": deleted}
