"""Domain entities and aggregates.

Pure domain models; no ORM or persistence concerns.
"""

from app.domain.entities.workflow import (
    Action,
    Condition,
    ErrorHandlingPolicy,
    ExecutionStats,
    Trigger,
    TriggerSchedule,
    WorkflowEntity,
    WorkflowLimits,
    WorkflowVersion,
)
from app.domain.entities.workflow_execution import (
    ActionResult,
    AdmissionBudget,
    WorkflowExecutionEntity,
)

__all__ = [
    "Action",
    "ActionResult",
    "AdmissionBudget",
    "Condition",
    "ErrorHandlingPolicy",
    "ExecutionStats",
    "Trigger",
    "TriggerSchedule",
    "WorkflowEntity",
    "WorkflowExecutionEntity",
    "WorkflowLimits",
    "WorkflowVersion",
]
