"""Shared utilities: enums, telemetry, and cross-cutting helpers.

Used by domain, application, and infrastructure. No business logic.
"""

from app.shared.enums import (
    ActionResultStatus,
    ActionType,
    ConditionOperator,
    ScheduleFrequency,
    TriggerType,
    WorkflowCategory,
    WorkflowExecutionStatus,
    WorkflowStatus,
)
from app.shared.utils import ensure_utc, generate_cuid, utc_now

__all__ = [
    "ActionResultStatus",
    "ActionType",
    "ConditionOperator",
    "ScheduleFrequency",
    "TriggerType",
    "WorkflowCategory",
    "WorkflowExecutionStatus",
    "WorkflowStatus",
    "generate_cuid",
    "utc_now",
    "ensure_utc",
]
