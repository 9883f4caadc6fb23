"""Domain layer: workflow entities and exceptions.

No dependencies on infrastructure or presentation. Used by application
and infrastructure layers.
"""

from app.domain.entities import (
    Action,
    ActionResult,
    Condition,
    ErrorHandlingPolicy,
    ExecutionStats,
    Trigger,
    TriggerSchedule,
    WorkflowEntity,
    WorkflowExecutionEntity,
    WorkflowLimits,
    WorkflowVersion,
)
from app.domain.exceptions import (
    ActionConfigException,
    ActionException,
    ActionExecutionException,
    AdmissionRejectedException,
    AutomationException,
    ConditionEvaluationException,
    ExecutionAlreadyFinalizedException,
    ExecutionTimeoutException,
    ResourceNotFoundException,
    ValidationException,
    WorkflowInactiveException,
    WorkflowStateException,
    WorkflowVersionConflictException,
)

__all__ = [
    # Entities
    "Action",
    "ActionResult",
    "Condition",
    "ErrorHandlingPolicy",
    "ExecutionStats",
    "Trigger",
    "TriggerSchedule",
    "WorkflowEntity",
    "WorkflowExecutionEntity",
    "WorkflowLimits",
    "WorkflowVersion",
    # Exceptions
    "ActionConfigException",
    "ActionException",
    "ActionExecutionException",
    "AdmissionRejectedException",
    "AutomationException",
    "ConditionEvaluationException",
    "ExecutionAlreadyFinalizedException",
    "ExecutionTimeoutException",
    "ResourceNotFoundException",
    "ValidationException",
    "WorkflowInactiveException",
    "WorkflowStateException",
    "WorkflowVersionConflictException",
]
