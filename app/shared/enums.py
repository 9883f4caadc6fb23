"""Shared enumerations for the CRM automation engine.

Cross-cutting enums used by domain, application and infrastructure
(workflow lifecycle, trigger and action types, condition operators).
"""

from enum import Enum


class _ValuesMixin:
    """Mixin that adds a values() classmethod to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]


class WorkflowStatus(_ValuesMixin, str, Enum):
    """Workflow definition lifecycle status."""

    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class WorkflowCategory(_ValuesMixin, str, Enum):
    """Workflow grouping shown in listings."""

    LEAD_NURTURING = "lead_nurturing"
    FOLLOW_UP = "follow_up"
    ONBOARDING = "onboarding"
    RE_ENGAGEMENT = "re_engagement"
    CUSTOM = "custom"


class WorkflowExecutionStatus(_ValuesMixin, str, Enum):
    """Workflow execution lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowExecutionStatus.COMPLETED, WorkflowExecutionStatus.FAILED)


class TriggerType(_ValuesMixin, str, Enum):
    """Event classes that can start a workflow."""

    LEAD_CREATED = "lead_created"
    LEAD_STATUS_CHANGED = "lead_status_changed"
    LEAD_SCORE_CHANGED = "lead_score_changed"
    LEAD_TAGGED = "lead_tagged"
    TIME_BASED = "time_based"
    MANUAL = "manual"


class ActionType(_ValuesMixin, str, Enum):
    """Side-effecting step types a workflow can run."""

    SEND_EMAIL = "send_email"
    SEND_WHATSAPP = "send_whatsapp"
    CREATE_TASK = "create_task"
    UPDATE_LEAD = "update_lead"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    CHANGE_STATUS = "change_status"
    ASSIGN_USER = "assign_user"
    WEBHOOK = "webhook"


class ActionResultStatus(_ValuesMixin, str, Enum):
    """Outcome of a single action within an execution."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ConditionOperator(_ValuesMixin, str, Enum):
    """Operators supported by the condition evaluator."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


class ScheduleFrequency(_ValuesMixin, str, Enum):
    """How often a time_based trigger fires."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class WebhookMethod(_ValuesMixin, str, Enum):
    """HTTP methods allowed for the webhook action."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
