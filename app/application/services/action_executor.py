"""Action executor: runs one workflow action against its target lead.

A dispatch table maps every ActionType to a handler. Config is validated
per type before any collaborator is called; collaborator failures surface
as ActionExecutionException so the engine can retry or fail the run.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ValidationError

from app.application.dtos.workflow import ActionOutcome
from app.application.interfaces.services import (
    ILeadStore,
    IMessagingChannel,
    ITaskService,
    ITemplateRenderer,
    IWebhookCaller,
)
from app.domain.entities.workflow import Action
from app.domain.entities.workflow_execution import WorkflowExecutionEntity
from app.domain.exceptions import (
    ActionConfigException,
    ActionException,
    ActionExecutionException,
    ResourceNotFoundException,
)
from app.schemas.action_config import (
    ACTION_CONFIG_MODELS,
    AssignUserConfig,
    ChangeStatusConfig,
    CreateTaskConfig,
    SendEmailConfig,
    SendWhatsAppConfig,
    TagConfig,
    UpdateLeadConfig,
    WebhookConfig,
)
from app.shared.enums import ActionType
from app.shared.telemetry.logging import get_logger
from app.shared.telemetry.tracing import add_span_attributes, traced
from app.shared.utils.datetime import utc_now
from app.shared.utils.durations import parse_relative_duration

logger = get_logger(__name__)

_Handler = Callable[
    [Action, Any, dict[str, Any], WorkflowExecutionEntity],
    Awaitable[dict[str, Any]],
]


class ActionExecutor:
    """Executes single actions by type (email, WhatsApp, task, lead mutation, webhook)."""

    def __init__(
        self,
        *,
        lead_store: ILeadStore,
        messaging: IMessagingChannel,
        task_service: ITaskService,
        webhook_caller: IWebhookCaller,
        template_renderer: ITemplateRenderer,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._leads = lead_store
        self._messaging = messaging
        self._tasks = task_service
        self._webhooks = webhook_caller
        self._renderer = template_renderer
        self._clock = clock
        self._handlers: dict[ActionType, _Handler] = {
            ActionType.SEND_EMAIL: self._send_email,
            ActionType.SEND_WHATSAPP: self._send_whatsapp,
            ActionType.CREATE_TASK: self._create_task,
            ActionType.UPDATE_LEAD: self._update_lead,
            ActionType.ADD_TAG: self._add_tag,
            ActionType.REMOVE_TAG: self._remove_tag,
            ActionType.CHANGE_STATUS: self._change_status,
            ActionType.ASSIGN_USER: self._assign_user,
            ActionType.WEBHOOK: self._call_webhook,
        }
        missing = set(ActionType) - set(self._handlers)
        if missing:
            raise RuntimeError(
                f"No action handler for: {', '.join(sorted(m.value for m in missing))}"
            )

    @traced("action_executor.execute")
    async def execute(
        self,
        action: Action,
        target: dict[str, Any],
        execution: WorkflowExecutionEntity,
    ) -> ActionOutcome:
        """Run one action. Raises ActionConfigException or ActionExecutionException."""
        add_span_attributes(action_type=action.type.value, action_order=action.order)
        handler = self._handlers[action.type]
        config = self._validate_config(action)
        logger.debug(
            "Executing action %s (order=%s) for execution %s",
            action.type.value,
            action.order,
            execution.id,
        )
        try:
            detail = await handler(action, config, target or {}, execution)
        except ActionException:
            raise
        except ResourceNotFoundException as e:
            # Missing targets are permanent failures.
            raise ActionExecutionException(
                action.type.value, e.message, action.order, retryable=False
            ) from e
        except Exception as e:
            raise ActionExecutionException(
                action.type.value, str(e) or e.__class__.__name__, action.order
            ) from e
        return ActionOutcome(detail=detail)

    def _validate_config(self, action: Action) -> Any:
        model: type[BaseModel] = ACTION_CONFIG_MODELS[action.type]
        try:
            return model.model_validate(action.config or {})
        except ValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            messages = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in e.errors()
            )
            raise ActionConfigException(
                action.type.value, messages, action.order, fields
            ) from e

    def _template_context(
        self, target: dict[str, Any], execution: WorkflowExecutionEntity
    ) -> dict[str, Any]:
        return {
            "lead": target,
            "trigger": execution.trigger_data,
            "context": execution.context,
            "execution": {
                "id": execution.id,
                "workflow_id": execution.workflow_id,
                "record_id": execution.record_id,
            },
        }

    def _render(
        self,
        action: Action,
        source: str | None,
        target: dict[str, Any],
        execution: WorkflowExecutionEntity,
    ) -> str:
        if not source:
            return ""
        try:
            return self._renderer.render_text(source, self._template_context(target, execution))
        except ValueError as e:
            raise ActionConfigException(action.type.value, str(e), action.order) from e

    def _require_record_id(self, action: Action, execution: WorkflowExecutionEntity) -> str:
        if not execution.record_id:
            raise ActionConfigException(
                action.type.value,
                "execution has no target record id",
                action.order,
                ["record_id"],
            )
        return execution.record_id

    async def _send_email(
        self,
        action: Action,
        config: SendEmailConfig,
        target: dict[str, Any],
        execution: WorkflowExecutionEntity,
    ) -> dict[str, Any]:
        if config.template:
            try:
                subject, body = self._renderer.render_named(
                    config.template, self._template_context(target, execution)
                )
            except ValueError as e:
                raise ActionConfigException(action.type.value, str(e), action.order) from e
        else:
            subject = self._render(action, config.subject, target, execution)
            body = self._render(action, config.body, target, execution)
        raw_recipients = config.recipients or [target.get("email") or ""]
        recipients = [
            r for r in (self._render(action, x, target, execution).strip() for x in raw_recipients) if r
        ]
        if not recipients:
            raise ActionConfigException(
                action.type.value, "no recipients and lead has no email", action.order, ["recipients"]
            )
        meta = await self._messaging.send_email(execution.tenant_id, recipients, subject, body)
        return {"recipients": recipients, **(meta or {})}

    async def _send_whatsapp(
        self,
        action: Action,
        config: SendWhatsAppConfig,
        target: dict[str, Any],
        execution: WorkflowExecutionEntity,
    ) -> dict[str, Any]:
        phone = self._render(action, config.phone, target, execution) or target.get("phone")
        if not phone:
            raise ActionConfigException(
                action.type.value, "no phone and lead has no phone", action.order, ["phone"]
            )
        message = self._render(action, config.message, target, execution)
        meta = await self._messaging.send_whatsapp(
            execution.tenant_id, str(phone), message, config.media_url
        )
        return {"phone": str(phone), **(meta or {})}

    async def _create_task(
        self,
        action: Action,
        config: CreateTaskConfig,
        target: dict[str, Any],
        execution: WorkflowExecutionEntity,
    ) -> dict[str, Any]:
        due_at = self._clock() + parse_relative_duration(config.due_date)
        task_id = await self._tasks.create_task(
            execution.tenant_id,
            self._render(action, config.task_title, target, execution),
            description=self._render(action, config.task_description, target, execution) or None,
            due_at=due_at,
            assignee=config.assignee or target.get("assigned_to"),
            lead_id=execution.record_id,
        )
        return {"task_id": task_id, "due_at": due_at.isoformat()}

    async def _update_lead(
        self,
        action: Action,
        config: UpdateLeadConfig,
        target: dict[str, Any],
        execution: WorkflowExecutionEntity,
    ) -> dict[str, Any]:
        lead_id = self._require_record_id(action, execution)
        value = config.value
        if isinstance(value, str):
            value = self._render(action, value, target, execution)
        await self._leads.update(execution.tenant_id, lead_id, {config.field: value})
        return {"field": config.field, "value": value}

    async def _add_tag(
        self,
        action: Action,
        config: TagConfig,
        target: dict[str, Any],
        execution: WorkflowExecutionEntity,
    ) -> dict[str, Any]:
        lead_id = self._require_record_id(action, execution)
        tag = self._render(action, config.tag, target, execution)
        await self._leads.add_tag(execution.tenant_id, lead_id, tag)
        return {"tag": tag}

    async def _remove_tag(
        self,
        action: Action,
        config: TagConfig,
        target: dict[str, Any],
        execution: WorkflowExecutionEntity,
    ) -> dict[str, Any]:
        lead_id = self._require_record_id(action, execution)
        tag = self._render(action, config.tag, target, execution)
        await self._leads.remove_tag(execution.tenant_id, lead_id, tag)
        return {"tag": tag}

    async def _change_status(
        self,
        action: Action,
        config: ChangeStatusConfig,
        target: dict[str, Any],
        execution: WorkflowExecutionEntity,
    ) -> dict[str, Any]:
        lead_id = self._require_record_id(action, execution)
        await self._leads.change_status(execution.tenant_id, lead_id, config.status)
        return {"old_status": target.get("status"), "new_status": config.status}

    async def _assign_user(
        self,
        action: Action,
        config: AssignUserConfig,
        target: dict[str, Any],
        execution: WorkflowExecutionEntity,
    ) -> dict[str, Any]:
        lead_id = self._require_record_id(action, execution)
        await self._leads.assign_user(execution.tenant_id, lead_id, config.assignee)
        return {"assigned_to": config.assignee}

    async def _call_webhook(
        self,
        action: Action,
        config: WebhookConfig,
        target: dict[str, Any],
        execution: WorkflowExecutionEntity,
    ) -> dict[str, Any]:
        url = self._render(action, config.url, target, execution)
        headers = dict(config.headers)
        body: str | None
        if isinstance(config.body, dict):
            body = json.dumps(config.body, default=str)
            headers.setdefault("Content-Type", "application/json")
        else:
            body = self._render(action, config.body, target, execution) or None
        return await self._webhooks.call(url, config.method.value, headers, body)
