"""Schedule lifecycle and the claim queue."""

from cadence.services.claim_queue import ClaimQueue
from cadence.services.schedule_service import ScheduleService
from cadence.services.workflow_service import WorkflowService

__all__ = ["ClaimQueue", "ScheduleService", "WorkflowService"]
