"""Workflow API schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from app.application.dtos.workflow import TriggerEvent, WorkflowCreate, WorkflowUpdate
from app.domain.entities.workflow import (
    Action,
    Condition,
    ErrorHandlingPolicy,
    Trigger,
    TriggerSchedule,
    WorkflowLimits,
)
from app.schemas.action_config import ACTION_CONFIG_MODELS
from app.shared.enums import (
    ActionResultStatus,
    ActionType,
    ScheduleFrequency,
    TriggerType,
    WorkflowCategory,
    WorkflowExecutionStatus,
    WorkflowStatus,
)


class ConditionSchema(BaseModel):
    """field (dot path) / operator / value predicate."""

    model_config = ConfigDict(from_attributes=True)

    field: str = Field(..., min_length=1, max_length=255)
    operator: str = Field(..., min_length=1, max_length=64)
    value: Any = None

    def to_domain(self) -> Condition:
        return Condition(field=self.field, operator=self.operator, value=self.value)


class ScheduleSchema(BaseModel):
    """Schedule for time_based triggers (UTC)."""

    model_config = ConfigDict(from_attributes=True)

    enabled: bool = False
    frequency: ScheduleFrequency | None = None
    time: str | None = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    days_of_week: list[int] = Field(default_factory=list)
    day_of_month: int | None = Field(default=None, ge=1, le=31)

    @model_validator(mode="after")
    def check_days(self) -> "ScheduleSchema":
        if any(d < 0 or d > 6 for d in self.days_of_week):
            raise ValueError("days_of_week values must be 0 (Sunday) to 6 (Saturday)")
        return self

    def to_domain(self) -> TriggerSchedule:
        return TriggerSchedule(
            enabled=self.enabled,
            frequency=self.frequency,
            time=self.time,
            days_of_week=tuple(self.days_of_week),
            day_of_month=self.day_of_month,
        )


class TriggerSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: TriggerType
    conditions: list[ConditionSchema] = Field(default_factory=list)
    schedule: ScheduleSchema | None = None

    def to_domain(self) -> Trigger:
        return Trigger(
            type=self.type,
            conditions=tuple(c.to_domain() for c in self.conditions),
            schedule=self.schedule.to_domain() if self.schedule else None,
        )


class ActionSchema(BaseModel):
    """Single workflow action; config is validated against the model for its type."""

    model_config = ConfigDict(from_attributes=True)

    type: ActionType
    order: int
    delay: float = Field(default=0, ge=0, description="Minutes to wait before the next action")
    conditions: list[ConditionSchema] = Field(default_factory=list)
    config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True

    @model_validator(mode="after")
    def check_config(self) -> "ActionSchema":
        try:
            ACTION_CONFIG_MODELS[self.type].model_validate(self.config)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in e.errors()
            )
            raise ValueError(f"Invalid config for {self.type.value}: {problems}") from None
        return self

    def to_domain(self) -> Action:
        return Action(
            type=self.type,
            order=self.order,
            delay=self.delay,
            conditions=tuple(c.to_domain() for c in self.conditions),
            config=dict(self.config),
            enabled=self.enabled,
        )


class LimitsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    max_executions_per_day: int | None = Field(default=1000, gt=0)
    max_executions_per_hour: int | None = Field(default=100, gt=0)
    execution_timeout_ms: int = Field(default=30_000, gt=0)

    def to_domain(self) -> WorkflowLimits:
        return WorkflowLimits(
            max_executions_per_day=self.max_executions_per_day,
            max_executions_per_hour=self.max_executions_per_hour,
            execution_timeout_ms=self.execution_timeout_ms,
        )


class ErrorHandlingSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    retry_on_failure: bool = False
    max_retries: int = Field(default=3, ge=0)
    retry_delay_ms: int = Field(default=300_000, ge=0)
    stop_on_error: bool = True

    def to_domain(self) -> ErrorHandlingPolicy:
        return ErrorHandlingPolicy(
            retry_on_failure=self.retry_on_failure,
            max_retries=self.max_retries,
            retry_delay_ms=self.retry_delay_ms,
            stop_on_error=self.stop_on_error,
        )


class WorkflowCreateRequest(BaseModel):
    """Request body for creating a workflow (created in draft)."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    trigger: TriggerSchema
    actions: list[ActionSchema] = Field(default_factory=list)
    limits: LimitsSchema | None = None
    error_handling: ErrorHandlingSchema | None = None
    category: WorkflowCategory = WorkflowCategory.CUSTOM
    tags: list[str] = Field(default_factory=list)

    def to_dto(self) -> WorkflowCreate:
        return WorkflowCreate(
            name=self.name,
            description=self.description,
            trigger=self.trigger.to_domain(),
            actions=[a.to_domain() for a in self.actions],
            limits=self.limits.to_domain() if self.limits else None,
            error_handling=self.error_handling.to_domain() if self.error_handling else None,
            category=self.category,
            tags=list(self.tags),
        )


class WorkflowUpdateRequest(BaseModel):
    """Request body for updating a workflow (partial).

    expected_version enables optimistic concurrency: the update fails with
    409 when the workflow changed since it was read.
    """

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    trigger: TriggerSchema | None = None
    actions: list[ActionSchema] | None = None
    limits: LimitsSchema | None = None
    error_handling: ErrorHandlingSchema | None = None
    category: WorkflowCategory | None = None
    tags: list[str] | None = None
    expected_version: int | None = Field(default=None, ge=1)

    def to_dto(self) -> WorkflowUpdate:
        return WorkflowUpdate(
            name=self.name,
            description=self.description,
            trigger=self.trigger.to_domain() if self.trigger else None,
            actions=[a.to_domain() for a in self.actions] if self.actions is not None else None,
            limits=self.limits.to_domain() if self.limits else None,
            error_handling=self.error_handling.to_domain() if self.error_handling else None,
            category=self.category,
            tags=self.tags,
            expected_version=self.expected_version,
        )


class ExecutionStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_executions: int
    successful_executions: int
    failed_executions: int
    last_executed_at: datetime | None
    average_execution_time_ms: float
    success_rate: float


class WorkflowResponse(BaseModel):
    """Workflow response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    name: str
    description: str | None
    status: WorkflowStatus
    is_active: bool
    trigger: TriggerSchema
    actions: list[dict[str, Any]]
    limits: LimitsSchema
    error_handling: ErrorHandlingSchema
    execution_stats: ExecutionStatsResponse
    version: int
    category: WorkflowCategory
    tags: list[str]
    created_at: datetime | None
    updated_at: datetime | None

    @model_validator(mode="before")
    @classmethod
    def serialize_actions(cls, data: Any) -> Any:
        # Action configs are free-form; skip re-validation on the way out.
        actions = getattr(data, "actions", None)
        if actions is not None and not isinstance(data, dict):
            return {
                **{name: getattr(data, name) for name in cls.model_fields if name != "actions"},
                "actions": [a.to_dict() for a in actions],
            }
        return data


class WorkflowVersionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    version: int
    snapshot: dict[str, Any]
    created_at: datetime


class ActionResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order: int
    type: ActionType
    status: ActionResultStatus
    attempts: int
    duration_ms: float
    error: str | None
    reason: str | None


class WorkflowExecutionResponse(BaseModel):
    """Workflow execution response."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    workflow_id: str
    workflow_version: int
    trigger_type: TriggerType
    record_id: str | None
    trigger_data: dict[str, Any]
    context: dict[str, Any]
    status: WorkflowExecutionStatus
    created_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    execution_time_ms: float | None
    error_message: str | None
    action_results: list[ActionResultResponse]


class ManualTriggerRequest(BaseModel):
    """Request body for POST /workflows/{id}/trigger."""

    record_id: str = Field(..., min_length=1)
    context: dict[str, Any] = Field(default_factory=dict)
    wait: bool = Field(default=False, description="Wait for the run to finish")


class EventDispatchRequest(BaseModel):
    """Request body for POST /events (a domain event from the CRM)."""

    trigger_type: TriggerType
    payload: dict[str, Any] = Field(default_factory=dict)
    record_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime | None = None
    wait: bool = False

    def to_event(self, tenant_id: str) -> TriggerEvent:
        return TriggerEvent(
            tenant_id=tenant_id,
            trigger_type=self.trigger_type,
            payload=dict(self.payload),
            record_id=self.record_id,
            context=dict(self.context),
            occurred_at=self.occurred_at,
        )


class RejectedMatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    workflow_id: str
    reason: str


class DispatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    matched_workflow_ids: list[str]
    executions: list[WorkflowExecutionResponse]
    rejected: list[RejectedMatchResponse]


class TenantStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_workflows: int
    active_workflows: int
    total_executions: int
    successful_executions: int
    failed_executions: int
    by_category: dict[str, int]
