"""Workflow domain entity.

A workflow is a tenant-owned automation definition: a trigger (event class,
conditions, optional schedule), an ordered list of actions, run limits, an
error-handling policy, aggregate execution statistics, and an append-only
version history.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain.exceptions import ValidationException, WorkflowStateException
from app.shared.enums import (
    ActionType,
    ScheduleFrequency,
    TriggerType,
    WorkflowCategory,
    WorkflowStatus,
)
from app.shared.utils.datetime import ensure_utc


@dataclass(frozen=True)
class Condition:
    """Field/operator/value predicate gating a trigger or an action.

    operator is kept as a plain string so that unknown operators survive
    persistence and fail closed at evaluation time.
    """

    field: str
    operator: str
    value: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        return cls(
            field=data.get("field", ""),
            operator=str(data.get("operator", "")),
            value=data.get("value"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "operator": self.operator, "value": self.value}


@dataclass(frozen=True)
class TriggerSchedule:
    """Wall-clock schedule for time_based triggers (evaluated by the external scheduler)."""

    enabled: bool = False
    frequency: ScheduleFrequency | None = None
    time: str | None = None  # HH:MM, UTC
    days_of_week: tuple[int, ...] = ()  # 0=Sunday .. 6=Saturday
    day_of_month: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TriggerSchedule:
        frequency = data.get("frequency")
        return cls(
            enabled=bool(data.get("enabled", False)),
            frequency=ScheduleFrequency(frequency) if frequency else None,
            time=data.get("time"),
            days_of_week=tuple(int(d) for d in data.get("days_of_week") or ()),
            day_of_month=data.get("day_of_month"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "frequency": self.frequency.value if self.frequency else None,
            "time": self.time,
            "days_of_week": list(self.days_of_week),
            "day_of_month": self.day_of_month,
        }


@dataclass(frozen=True)
class Trigger:
    """Event class and condition set that makes a workflow a dispatch candidate."""

    type: TriggerType
    conditions: tuple[Condition, ...] = ()
    schedule: TriggerSchedule | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Trigger:
        schedule = data.get("schedule")
        return cls(
            type=TriggerType(data["type"]),
            conditions=tuple(Condition.from_dict(c) for c in data.get("conditions") or ()),
            schedule=TriggerSchedule.from_dict(schedule) if schedule else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "conditions": [c.to_dict() for c in self.conditions],
            "schedule": self.schedule.to_dict() if self.schedule else None,
        }


@dataclass(frozen=True)
class Action:
    """One ordered step. delay is in minutes and applies before the next action."""

    type: ActionType
    order: int
    delay: float = 0
    conditions: tuple[Condition, ...] = ()
    config: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.delay < 0:
            raise ValidationException("Action delay must be non-negative", field="delay")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Action:
        return cls(
            type=ActionType(data["type"]),
            order=int(data["order"]),
            delay=data.get("delay") or 0,
            conditions=tuple(Condition.from_dict(c) for c in data.get("conditions") or ()),
            config=dict(data.get("config") or {}),
            enabled=bool(data.get("enabled", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "order": self.order,
            "delay": self.delay,
            "conditions": [c.to_dict() for c in self.conditions],
            "config": copy.deepcopy(self.config),
            "enabled": self.enabled,
        }


@dataclass(frozen=True)
class WorkflowLimits:
    """Admission budgets and the per-execution timeout. None disables a budget."""

    max_executions_per_day: int | None = 1000
    max_executions_per_hour: int | None = 100
    execution_timeout_ms: int = 30_000

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> WorkflowLimits:
        if not data:
            return cls()
        defaults = cls()
        return cls(
            max_executions_per_day=data.get("max_executions_per_day", defaults.max_executions_per_day),
            max_executions_per_hour=data.get("max_executions_per_hour", defaults.max_executions_per_hour),
            execution_timeout_ms=data.get("execution_timeout_ms", defaults.execution_timeout_ms),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_executions_per_day": self.max_executions_per_day,
            "max_executions_per_hour": self.max_executions_per_hour,
            "execution_timeout_ms": self.execution_timeout_ms,
        }


@dataclass(frozen=True)
class ErrorHandlingPolicy:
    """Retry policy for failing actions.

    stop_on_error is stored for API compatibility; a failed action always
    aborts the remaining actions of the run.
    """

    retry_on_failure: bool = False
    max_retries: int = 3
    retry_delay_ms: int = 300_000
    stop_on_error: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ErrorHandlingPolicy:
        if not data:
            return cls()
        defaults = cls()
        return cls(
            retry_on_failure=bool(data.get("retry_on_failure", defaults.retry_on_failure)),
            max_retries=int(data.get("max_retries", defaults.max_retries)),
            retry_delay_ms=int(data.get("retry_delay_ms", defaults.retry_delay_ms)),
            stop_on_error=bool(data.get("stop_on_error", defaults.stop_on_error)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "retry_on_failure": self.retry_on_failure,
            "max_retries": self.max_retries,
            "retry_delay_ms": self.retry_delay_ms,
            "stop_on_error": self.stop_on_error,
        }


@dataclass(frozen=True)
class ExecutionStats:
    """Aggregate counters for a workflow. Read-only snapshot; updated atomically by repositories."""

    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    last_executed_at: datetime | None = None
    average_execution_time_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        """Percentage of successful executions (0 when none ran)."""
        if self.total_executions == 0:
            return 0.0
        return self.successful_executions / self.total_executions * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_executions": self.total_executions,
            "successful_executions": self.successful_executions,
            "failed_executions": self.failed_executions,
            "last_executed_at": self.last_executed_at,
            "average_execution_time_ms": self.average_execution_time_ms,
            "success_rate": self.success_rate,
        }


@dataclass(frozen=True)
class WorkflowVersion:
    """Immutable snapshot of a workflow definition as it was at `version`."""

    version: int
    snapshot: dict[str, Any]
    created_at: datetime


def sort_actions(actions: list[Action]) -> list[Action]:
    """Return actions ordered by `order`; sorted() is stable so ties keep insertion order."""
    return sorted(actions, key=lambda a: a.order)


# Fields whose change creates a new definition version.
STRUCTURAL_FIELDS = frozenset({"trigger", "actions", "limits", "error_handling"})


@dataclass
class WorkflowEntity:
    """Domain entity for a workflow definition (trigger + actions + policy)."""

    id: str
    tenant_id: str
    name: str
    trigger: Trigger
    actions: list[Action]
    description: str | None = None
    status: WorkflowStatus = WorkflowStatus.DRAFT
    is_active: bool = False
    limits: WorkflowLimits = field(default_factory=WorkflowLimits)
    error_handling: ErrorHandlingPolicy = field(default_factory=ErrorHandlingPolicy)
    execution_stats: ExecutionStats = field(default_factory=ExecutionStats)
    version: int = 1
    previous_versions: list[WorkflowVersion] = field(default_factory=list)
    category: WorkflowCategory = WorkflowCategory.CUSTOM
    tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    def __post_init__(self) -> None:
        self.actions = sort_actions(list(self.actions))
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    def belongs_to_tenant(self, tenant_id: str) -> bool:
        """Return whether this workflow belongs to the given tenant."""
        return self.tenant_id == tenant_id

    def can_trigger_on(self, trigger_type: TriggerType) -> bool:
        """Return whether this workflow is active, not deleted, and listens to trigger_type."""
        return (
            self.is_active
            and self.status == WorkflowStatus.ACTIVE
            and self.deleted_at is None
            and self.trigger.type == trigger_type
        )

    def definition_snapshot(self) -> dict[str, Any]:
        """Serializable copy of the definition (no stats, no history)."""
        return {
            "name": self.name,
            "description": self.description,
            "trigger": self.trigger.to_dict(),
            "actions": [a.to_dict() for a in self.actions],
            "limits": self.limits.to_dict(),
            "error_handling": self.error_handling.to_dict(),
            "category": self.category.value,
            "tags": list(self.tags),
            "version": self.version,
        }

    def activate(self) -> None:
        """draft/inactive -> active. Requires at least one action."""
        if self.status == WorkflowStatus.ARCHIVED:
            raise WorkflowStateException(self.id, self.status.value, "activate")
        if not self.actions:
            raise ValidationException(
                "A workflow needs at least one action before activation", field="actions"
            )
        self.status = WorkflowStatus.ACTIVE
        self.is_active = True

    def deactivate(self) -> None:
        """Any non-archived status -> inactive. Running executions are unaffected."""
        if self.status == WorkflowStatus.ARCHIVED:
            raise WorkflowStateException(self.id, self.status.value, "deactivate")
        self.status = WorkflowStatus.INACTIVE
        self.is_active = False

    def archive(self) -> None:
        """Any non-archived status -> archived (inactive, read-only)."""
        if self.status == WorkflowStatus.ARCHIVED:
            raise WorkflowStateException(self.id, self.status.value, "archive")
        self.status = WorkflowStatus.ARCHIVED
        self.is_active = False

    def apply_edit(self, changes: dict[str, Any], at: datetime) -> WorkflowVersion | None:
        """Apply field changes; structural changes push a snapshot and bump version.

        Returns the history entry that was appended, or None for
        descriptive-only edits (name, description, category, tags).
        """
        if self.status == WorkflowStatus.ARCHIVED:
            raise WorkflowStateException(self.id, self.status.value, "edit")
        changes = dict(changes)
        if "actions" in changes:
            changes["actions"] = sort_actions(list(changes["actions"]))
        structural = any(
            key in STRUCTURAL_FIELDS and changes[key] != getattr(self, key)
            for key in changes
        )
        entry: WorkflowVersion | None = None
        if structural:
            entry = WorkflowVersion(
                version=self.version,
                snapshot=self.definition_snapshot(),
                created_at=at,
            )
            self.previous_versions.append(entry)
            self.version += 1
        for key, value in changes.items():
            setattr(self, key, value)
        self.updated_at = at
        return entry
