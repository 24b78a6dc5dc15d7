from cadence.core.database import Base
from cadence.models.schedule import Schedule, WorkflowSchedule
from cadence.models.workflow import Workflow

__all__ = ["Base", "Schedule", "WorkflowSchedule", "Workflow"]
