"""Cadence — interval schedule claim queue on a relational store."""

__version__ = "0.1.0"

from cadence.core.database import Database
from cadence.services.claim_queue import ClaimQueue
from cadence.services.schedule_service import ScheduleService
from cadence.services.workflow_service import WorkflowService

__all__ = ["Database", "ClaimQueue", "ScheduleService", "WorkflowService", "__version__"]
