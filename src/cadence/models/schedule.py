"""Schedule SQLAlchemy models."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cadence.core.database import Base
from cadence.models.types import UTCDateTime, due_at as due_at_clause, utcnow


class Schedule(Base):
    """A recurring trigger, due every ``update_interval`` seconds after ``updated_at``."""

    __tablename__ = "schedules"
    __table_args__ = (
        CheckConstraint("update_interval > 0", name="ck_schedules_update_interval_positive"),
        CheckConstraint("updated_at >= created_at", name="ck_schedules_updated_after_created"),
        CheckConstraint(
            "deleted_at IS NULL OR deleted_at >= updated_at",
            name="ck_schedules_deleted_after_updated",
        ),
        Index("ix_schedules_live_owner", "owner_id", "deleted_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id: Mapped[str] = mapped_column(String(36), nullable=False)
    update_interval: Mapped[int] = mapped_column(Integer, nullable=False)
    # "metadata" is reserved on declarative classes
    payload: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)

    @property
    def due_at(self) -> datetime:
        return self.updated_at + timedelta(seconds=self.update_interval)

    @classmethod
    def due_at_expr(cls):
        return due_at_clause(cls.updated_at, cls.update_interval)


class WorkflowSchedule(Base):
    """Many-to-many link between a workflow and a schedule."""

    __tablename__ = "workflow_schedules"

    workflow_id: Mapped[str] = mapped_column(String(36), ForeignKey("workflows.id"), primary_key=True)
    schedule_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("schedules.id"), primary_key=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
