"""Workflow execution domain entity (audit record of one run)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.shared.enums import ActionResultStatus, ActionType, TriggerType, WorkflowExecutionStatus
from app.shared.utils.datetime import ensure_utc


@dataclass(frozen=True)
class AdmissionBudget:
    """One execution budget: at most `limit` executions created since `since`."""

    window: str
    limit: int
    since: datetime


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one action within an execution."""

    order: int
    type: ActionType
    status: ActionResultStatus
    attempts: int = 0
    duration_ms: float = 0.0
    error: str | None = None
    reason: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionResult:
        return cls(
            order=int(data["order"]),
            type=ActionType(data["type"]),
            status=ActionResultStatus(data["status"]),
            attempts=int(data.get("attempts", 0)),
            duration_ms=float(data.get("duration_ms", 0.0)),
            error=data.get("error"),
            reason=data.get("reason"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": self.order,
            "type": self.type.value,
            "status": self.status.value,
            "attempts": self.attempts,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "reason": self.reason,
        }


@dataclass
class WorkflowExecutionEntity:
    """One run of a workflow against one triggering record.

    Created pending at admission, moved to running by the engine, and
    finalized exactly once as completed or failed.
    """

    id: str
    tenant_id: str
    workflow_id: str
    workflow_version: int
    trigger_type: TriggerType
    record_id: str | None = None
    trigger_data: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    status: WorkflowExecutionStatus = WorkflowExecutionStatus.PENDING
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    execution_time_ms: float | None = None
    error_message: str | None = None
    action_results: list[ActionResult] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.created_at = ensure_utc(self.created_at)
        self.started_at = ensure_utc(self.started_at)
        self.completed_at = ensure_utc(self.completed_at)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def actions_with_status(self, status: ActionResultStatus) -> list[ActionResult]:
        return [r for r in self.action_results if r.status == status]
