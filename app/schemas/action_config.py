"""Per-type action config schemas.

Each ActionType has a model describing its required and optional config
keys. The action executor validates an action's raw config dict against
the model for its type before calling any collaborator.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.shared.enums import ActionType, WebhookMethod
from app.shared.utils.durations import parse_relative_duration


class _ActionConfig(BaseModel):
    """Base for action configs; unknown keys are kept for forward compatibility."""

    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)


class SendEmailConfig(_ActionConfig):
    """send_email: inline subject+body, or a named template."""

    subject: str | None = None
    body: str | None = None
    template: str | None = None
    recipients: list[str] | None = None

    @model_validator(mode="after")
    def require_content(self) -> "SendEmailConfig":
        if self.template:
            return self
        if not self.subject or not self.body:
            raise ValueError("subject and body are required unless template is set")
        return self


class SendWhatsAppConfig(_ActionConfig):
    """send_whatsapp: message text, optional media and phone override."""

    message: str = Field(..., min_length=1)
    media_url: str | None = None
    phone: str | None = None


class CreateTaskConfig(_ActionConfig):
    """create_task: title and relative due date ("2 days", "1 week")."""

    task_title: str = Field(..., min_length=1)
    due_date: str = Field(..., min_length=1)
    task_description: str | None = None
    assignee: str | None = None

    @field_validator("due_date")
    @classmethod
    def due_date_is_relative(cls, value: str) -> str:
        parse_relative_duration(value)
        return value


class UpdateLeadConfig(_ActionConfig):
    """update_lead: set one field to a value (string values are templated)."""

    field: str = Field(..., min_length=1)
    value: Any

    @model_validator(mode="before")
    @classmethod
    def require_value(cls, data: Any) -> Any:
        if isinstance(data, dict) and "value" not in data:
            raise ValueError("value is required")
        return data


class TagConfig(_ActionConfig):
    """add_tag / remove_tag."""

    tag: str = Field(..., min_length=1)


class ChangeStatusConfig(_ActionConfig):
    status: str = Field(..., min_length=1)


class AssignUserConfig(_ActionConfig):
    assignee: str = Field(..., min_length=1)


class WebhookConfig(_ActionConfig):
    """webhook: outbound HTTP call; url and body are templated."""

    url: str = Field(..., min_length=1)
    method: WebhookMethod
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | dict[str, Any] | None = None

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


ACTION_CONFIG_MODELS: dict[ActionType, type[_ActionConfig]] = {
    ActionType.SEND_EMAIL: SendEmailConfig,
    ActionType.SEND_WHATSAPP: SendWhatsAppConfig,
    ActionType.CREATE_TASK: CreateTaskConfig,
    ActionType.UPDATE_LEAD: UpdateLeadConfig,
    ActionType.ADD_TAG: TagConfig,
    ActionType.REMOVE_TAG: TagConfig,
    ActionType.CHANGE_STATUS: ChangeStatusConfig,
    ActionType.ASSIGN_USER: AssignUserConfig,
    ActionType.WEBHOOK: WebhookConfig,
}
