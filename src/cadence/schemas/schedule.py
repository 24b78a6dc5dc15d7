"""Pydantic schemas for schedules, workflow links and claims."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, PositiveInt, computed_field, field_validator

from cadence.models.types import as_utc


class ScheduleCreate(BaseModel):
    owner_id: str
    update_interval: PositiveInt
    metadata: dict[str, Any] = Field(default_factory=dict)


class ScheduleUpdate(BaseModel):
    metadata: dict[str, Any] | None = None
    update_interval: PositiveInt | None = None


class ScheduleView(BaseModel):
    """Detached snapshot of a schedule row."""

    model_config = {"from_attributes": True}

    id: str
    owner_id: str
    update_interval: int
    metadata: dict[str, Any] = Field(validation_alias=AliasChoices("payload", "metadata"))
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    @field_validator("created_at", "updated_at", "deleted_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @computed_field
    @property
    def due_at(self) -> datetime:
        return self.updated_at + timedelta(seconds=self.update_interval)


class ScheduleListResponse(BaseModel):
    schedules: list[ScheduleView]
    total: int


class WorkflowCreate(BaseModel):
    owner_id: str
    name: str


class WorkflowView(BaseModel):
    model_config = {"from_attributes": True}

    id: str
    owner_id: str
    name: str
    created_at: datetime
    deleted_at: datetime | None = None


class WorkflowLinks(BaseModel):
    schedule_ids: list[str]


class ClaimRequest(BaseModel):
    max_batch_size: PositiveInt = 10
    now: datetime | None = None


class ClaimedItem(BaseModel):
    """One (workflow, schedule) pair handed to a worker by a claim."""

    workflow_id: str
    schedule_id: str
    schedule: ScheduleView
    claimed_at: datetime


class ClaimBatchResponse(BaseModel):
    items: list[ClaimedItem]
    total: int
    claimed_at: datetime
