"""ActionExecutor unit tests with mocked collaborators."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from app.application.services.action_executor import ActionExecutor
from app.domain.entities.workflow import Action
from app.domain.entities.workflow_execution import WorkflowExecutionEntity
from app.domain.exceptions import (
    ActionConfigException,
    ActionExecutionException,
    ResourceNotFoundException,
)
from app.infrastructure.services import WorkflowTemplateRenderer
from app.shared.enums import ActionType, TriggerType

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


def _execution(record_id: str | None = "lead-1", **trigger_data) -> WorkflowExecutionEntity:
    return WorkflowExecutionEntity(
        id="ex1",
        tenant_id="t1",
        workflow_id="wf1",
        workflow_version=1,
        trigger_type=TriggerType.LEAD_CREATED,
        record_id=record_id,
        trigger_data=trigger_data,
        context={"topic": "pricing"},
    )


@pytest.fixture
def collaborators():
    leads = AsyncMock()
    messaging = AsyncMock()
    messaging.send_email = AsyncMock(return_value={"message_id": "m1"})
    messaging.send_whatsapp = AsyncMock(return_value={"message_id": "w1"})
    tasks = AsyncMock()
    tasks.create_task = AsyncMock(return_value="task-1")
    webhooks = AsyncMock()
    webhooks.call = AsyncMock(return_value={"status_code": 204, "response_excerpt": ""})
    executor = ActionExecutor(
        lead_store=leads,
        messaging=messaging,
        task_service=tasks,
        webhook_caller=webhooks,
        template_renderer=WorkflowTemplateRenderer(),
        clock=lambda: NOW,
    )
    return executor, leads, messaging, tasks, webhooks


LEAD = {"id": "lead-1", "name": "Ada", "email": "ada@example.com", "phone": "+1555", "status": "new", "assigned_to": "u7"}


async def test_send_email_renders_inline_template(collaborators) -> None:
    executor, _, messaging, _, _ = collaborators
    action = Action(
        type=ActionType.SEND_EMAIL,
        order=1,
        config={"subject": "Hi {{ lead.name }}", "body": "About {{ context.topic }}"},
    )
    outcome = await executor.execute(action, LEAD, _execution())
    messaging.send_email.assert_awaited_once_with("t1", ["ada@example.com"], "Hi Ada", "About pricing")
    assert outcome.detail == {"recipients": ["ada@example.com"], "message_id": "m1"}


async def test_send_email_named_template_and_explicit_recipients(collaborators) -> None:
    executor, _, messaging, _, _ = collaborators
    action = Action(
        type=ActionType.SEND_EMAIL,
        order=1,
        config={"template": "welcome", "recipients": ["sales@example.com"]},
    )
    await executor.execute(action, LEAD, _execution())
    _, recipients, subject, _ = messaging.send_email.await_args.args
    assert recipients == ["sales@example.com"]
    assert subject == "Welcome, Ada!"


async def test_send_email_without_any_recipient_is_config_error(collaborators) -> None:
    executor, _, messaging, _, _ = collaborators
    action = Action(type=ActionType.SEND_EMAIL, order=1, config={"subject": "s", "body": "b"})
    with pytest.raises(ActionConfigException):
        await executor.execute(action, {"id": "lead-1"}, _execution())
    messaging.send_email.assert_not_awaited()


async def test_send_email_unknown_named_template_is_config_error(collaborators) -> None:
    executor, *_ = collaborators
    action = Action(type=ActionType.SEND_EMAIL, order=1, config={"template": "nope"})
    with pytest.raises(ActionConfigException):
        await executor.execute(action, LEAD, _execution())


async def test_missing_required_config_is_rejected_before_collaborator(collaborators) -> None:
    executor, _, messaging, _, _ = collaborators
    action = Action(type=ActionType.SEND_EMAIL, order=3, config={"subject": "only subject"})
    with pytest.raises(ActionConfigException) as exc_info:
        await executor.execute(action, LEAD, _execution())
    assert exc_info.value.error_code == "ACTION_CONFIG_ERROR"
    assert exc_info.value.order == 3
    messaging.send_email.assert_not_awaited()


async def test_send_whatsapp_defaults_to_lead_phone(collaborators) -> None:
    executor, _, messaging, _, _ = collaborators
    action = Action(type=ActionType.SEND_WHATSAPP, order=1, config={"message": "Hello {{ lead.name }}"})
    await executor.execute(action, LEAD, _execution())
    messaging.send_whatsapp.assert_awaited_once_with("t1", "+1555", "Hello Ada", None)


async def test_create_task_due_date_is_relative_to_clock(collaborators) -> None:
    executor, _, _, tasks, _ = collaborators
    action = Action(
        type=ActionType.CREATE_TASK,
        order=1,
        config={"task_title": "Call {{ lead.name }}", "due_date": "2 days"},
    )
    outcome = await executor.execute(action, LEAD, _execution())
    tasks.create_task.assert_awaited_once_with(
        "t1",
        "Call Ada",
        description=None,
        due_at=NOW + timedelta(days=2),
        assignee="u7",
        lead_id="lead-1",
    )
    assert outcome.detail["task_id"] == "task-1"


async def test_create_task_rejects_bad_due_date(collaborators) -> None:
    executor, *_ = collaborators
    action = Action(
        type=ActionType.CREATE_TASK, order=1, config={"task_title": "x", "due_date": "soon"}
    )
    with pytest.raises(ActionConfigException):
        await executor.execute(action, LEAD, _execution())


async def test_lead_mutations_use_execution_record_id(collaborators) -> None:
    executor, leads, *_ = collaborators
    execution = _execution()
    await executor.execute(Action(type=ActionType.ADD_TAG, order=1, config={"tag": "vip"}), LEAD, execution)
    await executor.execute(Action(type=ActionType.REMOVE_TAG, order=2, config={"tag": "cold"}), LEAD, execution)
    await executor.execute(
        Action(type=ActionType.CHANGE_STATUS, order=3, config={"status": "qualified"}), LEAD, execution
    )
    await executor.execute(
        Action(type=ActionType.ASSIGN_USER, order=4, config={"assignee": "u9"}), LEAD, execution
    )
    await executor.execute(
        Action(type=ActionType.UPDATE_LEAD, order=5, config={"field": "score", "value": 90}),
        LEAD,
        execution,
    )
    leads.add_tag.assert_awaited_once_with("t1", "lead-1", "vip")
    leads.remove_tag.assert_awaited_once_with("t1", "lead-1", "cold")
    leads.change_status.assert_awaited_once_with("t1", "lead-1", "qualified")
    leads.assign_user.assert_awaited_once_with("t1", "lead-1", "u9")
    leads.update.assert_awaited_once_with("t1", "lead-1", {"score": 90})


async def test_update_lead_requires_value_key(collaborators) -> None:
    executor, leads, *_ = collaborators
    action = Action(type=ActionType.UPDATE_LEAD, order=1, config={"field": "score"})
    with pytest.raises(ActionConfigException):
        await executor.execute(action, LEAD, _execution())
    leads.update.assert_not_awaited()


async def test_lead_mutation_without_record_id_is_config_error(collaborators) -> None:
    executor, *_ = collaborators
    action = Action(type=ActionType.ADD_TAG, order=1, config={"tag": "vip"})
    with pytest.raises(ActionConfigException):
        await executor.execute(action, {}, _execution(record_id=None))


async def test_webhook_dict_body_is_json_encoded(collaborators) -> None:
    executor, _, _, _, webhooks = collaborators
    action = Action(
        type=ActionType.WEBHOOK,
        order=1,
        config={
            "url": "https://hooks.example.com/{{ lead.id }}",
            "method": "post",
            "body": {"lead": "lead-1"},
        },
    )
    outcome = await executor.execute(action, LEAD, _execution())
    url, method, headers, body = webhooks.call.await_args.args
    assert url == "https://hooks.example.com/lead-1"
    assert method == "POST"
    assert headers["Content-Type"] == "application/json"
    assert json.loads(body) == {"lead": "lead-1"}
    assert outcome.detail["status_code"] == 204


async def test_webhook_rejects_unsupported_method(collaborators) -> None:
    executor, *_ = collaborators
    action = Action(type=ActionType.WEBHOOK, order=1, config={"url": "https://x", "method": "PATCH"})
    with pytest.raises(ActionConfigException):
        await executor.execute(action, LEAD, _execution())


async def test_collaborator_error_becomes_execution_error(collaborators) -> None:
    executor, _, messaging, _, _ = collaborators
    messaging.send_email.side_effect = ConnectionError("smtp down")
    action = Action(type=ActionType.SEND_EMAIL, order=2, config={"subject": "s", "body": "b"})
    with pytest.raises(ActionExecutionException) as exc_info:
        await executor.execute(action, LEAD, _execution())
    assert exc_info.value.message == "smtp down"
    assert exc_info.value.retryable is True
    assert isinstance(exc_info.value.__cause__, ConnectionError)


async def test_collaborator_action_execution_error_passes_through(collaborators) -> None:
    executor, _, _, _, webhooks = collaborators
    original = ActionExecutionException("webhook", "returned 400", retryable=False)
    webhooks.call.side_effect = original
    action = Action(type=ActionType.WEBHOOK, order=1, config={"url": "https://x", "method": "GET"})
    with pytest.raises(ActionExecutionException) as exc_info:
        await executor.execute(action, LEAD, _execution())
    assert exc_info.value is original


async def test_missing_lead_is_non_retryable_execution_error(collaborators) -> None:
    executor, leads, _, _, _ = collaborators
    leads.add_tag.side_effect = ResourceNotFoundException("lead", "lead-1")
    action = Action(type=ActionType.ADD_TAG, order=3, config={"tag": "vip"})
    with pytest.raises(ActionExecutionException) as exc_info:
        await executor.execute(action, LEAD, _execution())
    assert exc_info.value.retryable is False
    assert exc_info.value.message == "lead not found: lead-1"
    assert exc_info.value.order == 3
