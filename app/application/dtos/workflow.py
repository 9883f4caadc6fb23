"""DTOs for workflow definitions, trigger events and dispatch results (no dependency on ORM)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain.entities.workflow import (
    Action,
    ErrorHandlingPolicy,
    Trigger,
    WorkflowLimits,
)
from app.domain.entities.workflow_execution import WorkflowExecutionEntity
from app.shared.enums import TriggerType, WorkflowCategory


@dataclass(frozen=True)
class WorkflowCreate:
    """Input for creating a workflow definition (always starts in draft)."""

    name: str
    trigger: Trigger
    actions: list[Action]
    description: str | None = None
    limits: WorkflowLimits | None = None
    error_handling: ErrorHandlingPolicy | None = None
    category: WorkflowCategory = WorkflowCategory.CUSTOM
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class WorkflowUpdate:
    """Partial update; None means "leave unchanged"."""

    name: str | None = None
    description: str | None = None
    trigger: Trigger | None = None
    actions: list[Action] | None = None
    limits: WorkflowLimits | None = None
    error_handling: ErrorHandlingPolicy | None = None
    category: WorkflowCategory | None = None
    tags: list[str] | None = None
    expected_version: int | None = None

    def changes(self) -> dict[str, Any]:
        """Return only the fields that were provided."""
        names = (
            "name",
            "description",
            "trigger",
            "actions",
            "limits",
            "error_handling",
            "category",
            "tags",
        )
        return {n: getattr(self, n) for n in names if getattr(self, n) is not None}


@dataclass(frozen=True)
class TriggerEvent:
    """Domain event offered to the dispatcher.

    payload is the triggering record (e.g. the lead as it looks after the
    change); record_id falls back to payload["id"].
    """

    tenant_id: str
    trigger_type: TriggerType
    payload: dict[str, Any] = field(default_factory=dict)
    record_id: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime | None = None

    @property
    def target_record_id(self) -> str | None:
        if self.record_id:
            return self.record_id
        value = self.payload.get("id")
        return str(value) if value is not None else None


@dataclass(frozen=True)
class RejectedMatch:
    """A matching workflow that admission control turned away."""

    workflow_id: str
    reason: str


@dataclass
class DispatchResult:
    """What the dispatcher did with one event."""

    matched_workflow_ids: list[str] = field(default_factory=list)
    executions: list[WorkflowExecutionEntity] = field(default_factory=list)
    rejected: list[RejectedMatch] = field(default_factory=list)


@dataclass(frozen=True)
class ActionOutcome:
    """Result returned by the action executor for one successful action."""

    detail: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TenantWorkflowStats:
    """Aggregate of all workflows of one tenant."""

    total_workflows: int
    active_workflows: int
    total_executions: int
    successful_executions: int
    failed_executions: int
    by_category: dict[str, int]
