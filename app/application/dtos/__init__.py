"""Application DTOs (no ORM dependency)."""

from app.application.dtos.workflow import (
    ActionOutcome,
    DispatchResult,
    RejectedMatch,
    TenantWorkflowStats,
    TriggerEvent,
    WorkflowCreate,
    WorkflowUpdate,
)

__all__ = [
    "ActionOutcome",
    "DispatchResult",
    "RejectedMatch",
    "TenantWorkflowStats",
    "TriggerEvent",
    "WorkflowCreate",
    "WorkflowUpdate",
]
