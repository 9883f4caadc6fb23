"""Execution engine: ordering, delays, skips, failures, retries, timeouts and stats."""

import asyncio

import pytest

from app.application.dtos.workflow import TriggerEvent, WorkflowUpdate
from app.domain.entities.workflow import (
    Action,
    Condition,
    ErrorHandlingPolicy,
    Trigger,
    WorkflowLimits,
)
from app.domain.exceptions import (
    ActionExecutionException,
    ExecutionAlreadyFinalizedException,
)
from app.shared.enums import (
    ActionResultStatus,
    ActionType,
    TriggerType,
    WorkflowExecutionStatus,
)
from app.shared.utils.datetime import utc_now
from tests.helpers import TENANT, build_harness, email_action, tag_action, task_action

UNLIMITED = WorkflowLimits(max_executions_per_day=None, max_executions_per_hour=None)


def _event(lead: dict, trigger_type: TriggerType = TriggerType.LEAD_CREATED) -> TriggerEvent:
    return TriggerEvent(tenant_id=TENANT, trigger_type=trigger_type, payload=lead)


async def test_new_website_lead_gets_welcome_tag(harness, lead) -> None:
    harness.lead_store.put(TENANT, lead)
    workflow = await harness.create_active(
        [tag_action(1, "welcome")],
        trigger=Trigger(
            type=TriggerType.LEAD_CREATED,
            conditions=(Condition(field="source", operator="equals", value="website"),),
        ),
    )

    result = await harness.service.dispatch_event(_event(lead), wait=True)

    assert result.matched_workflow_ids == [workflow.id]
    [execution] = result.executions
    assert execution.status == WorkflowExecutionStatus.COMPLETED
    assert execution.record_id == "lead-1"
    stored_lead = await harness.lead_store.get(TENANT, "lead-1")
    assert stored_lead["tags"] == ["welcome"]
    stats = (await harness.service.get_workflow(TENANT, workflow.id)).execution_stats
    assert stats.total_executions == 1
    assert stats.successful_executions == 1
    assert stats.last_executed_at is not None


async def test_trigger_conditions_filter_events(harness, lead) -> None:
    harness.lead_store.put(TENANT, lead)
    await harness.create_active(
        [tag_action(1)],
        trigger=Trigger(
            type=TriggerType.LEAD_CREATED,
            conditions=(Condition(field="source", operator="equals", value="referral"),),
        ),
    )
    result = await harness.service.dispatch_event(_event(lead), wait=True)
    assert result.matched_workflow_ids == []
    assert result.executions == []


async def test_failing_email_aborts_delayed_task(harness, lead) -> None:
    async def failing_send(*args, **kwargs):
        raise ConnectionError("smtp unreachable")

    harness.messaging.send_email = failing_send
    harness.lead_store.put(TENANT, lead)
    workflow = await harness.create_active([email_action(1, delay=60), task_action(2)])

    result = await harness.service.dispatch_event(_event(lead), wait=True)

    [execution] = result.executions
    assert execution.status == WorkflowExecutionStatus.FAILED
    assert execution.error_message == "smtp unreachable"
    assert [r.status for r in execution.action_results] == [ActionResultStatus.FAILED]
    assert list(harness.task_service.tasks) == []
    assert harness.sleeps == []
    stats = (await harness.service.get_workflow(TENANT, workflow.id)).execution_stats
    assert stats.failed_executions == 1
    assert stats.successful_executions == 0


async def test_condition_skipped_action_does_not_stop_run(harness, lead) -> None:
    harness.lead_store.put(TENANT, lead)
    hot_only = (Condition(field="score", operator="greater_than", value=50),)
    await harness.create_active(
        [tag_action(1, "hot", conditions=hot_only), tag_action(2, "nurture")]
    )

    result = await harness.service.dispatch_event(_event(lead), wait=True)

    [execution] = result.executions
    assert execution.status == WorkflowExecutionStatus.COMPLETED
    first, second = execution.action_results
    assert first.status == ActionResultStatus.SKIPPED
    assert first.reason == "conditions_not_met"
    assert second.status == ActionResultStatus.COMPLETED
    assert (await harness.lead_store.get(TENANT, "lead-1"))["tags"] == ["nurture"]


async def test_disabled_action_is_skipped(harness, lead) -> None:
    harness.lead_store.put(TENANT, lead)
    disabled = Action(type=ActionType.ADD_TAG, order=1, config={"tag": "x"}, enabled=False)
    workflow = await harness.create_active([disabled, tag_action(2, "y")])
    execution = await harness.dispatcher.run_workflow(workflow, _event(lead), wait=True)
    assert [r.reason for r in execution.action_results] == ["disabled", None]
    assert (await harness.lead_store.get(TENANT, "lead-1"))["tags"] == ["y"]


async def test_actions_run_in_order_with_delay_between(harness, lead) -> None:
    harness.lead_store.put(TENANT, lead)
    workflow = await harness.create_active(
        [tag_action(3, "third"), email_action(1, delay=2), tag_action(2, "second")]
    )

    execution = await harness.dispatcher.run_workflow(workflow, _event(lead), wait=True)

    assert [r.order for r in execution.action_results] == [1, 2, 3]
    assert harness.sleeps == [120.0]
    assert (await harness.lead_store.get(TENANT, "lead-1"))["tags"] == ["second", "third"]


async def test_delay_on_last_action_is_not_awaited(harness, lead) -> None:
    harness.lead_store.put(TENANT, lead)
    workflow = await harness.create_active([tag_action(1), email_action(2, delay=30)])
    execution = await harness.dispatcher.run_workflow(workflow, _event(lead), wait=True)
    assert execution.status == WorkflowExecutionStatus.COMPLETED
    assert harness.sleeps == []


async def test_deactivation_does_not_affect_running_execution(harness, lead) -> None:
    entered = asyncio.Event()
    release = asyncio.Event()

    async def slow_send(tenant_id, recipients, subject, body):
        entered.set()
        await release.wait()
        return {"message_id": "m1"}

    harness.messaging.send_email = slow_send
    harness.lead_store.put(TENANT, lead)
    workflow = await harness.create_active([email_action(1), tag_action(2, "welcome")])

    started = await harness.service.dispatch_event(_event(lead))
    await entered.wait()
    await harness.service.deactivate(TENANT, workflow.id)

    again = await harness.service.dispatch_event(_event(lead))
    assert again.matched_workflow_ids == []

    release.set()
    await harness.dispatcher.drain()
    execution = await harness.service.get_execution(TENANT, started.executions[0].id)
    assert execution.status == WorkflowExecutionStatus.COMPLETED
    assert len(execution.action_results) == 2
    assert (await harness.lead_store.get(TENANT, "lead-1"))["tags"] == ["welcome"]


async def test_edit_during_run_uses_admitted_definition(harness, lead) -> None:
    entered = asyncio.Event()
    release = asyncio.Event()

    async def slow_send(tenant_id, recipients, subject, body):
        entered.set()
        await release.wait()
        return {}

    harness.messaging.send_email = slow_send
    harness.lead_store.put(TENANT, lead)
    workflow = await harness.create_active([email_action(1), tag_action(2, "v1")])

    started = await harness.service.dispatch_event(_event(lead))
    await entered.wait()
    await harness.service.update_workflow(
        TENANT, workflow.id, WorkflowUpdate(actions=[tag_action(1, "v2")])
    )
    release.set()
    await harness.dispatcher.drain()

    execution = await harness.service.get_execution(TENANT, started.executions[0].id)
    assert execution.workflow_version == 1
    assert (await harness.lead_store.get(TENANT, "lead-1"))["tags"] == ["v1"]


async def test_concurrent_triggers_count_every_execution(harness, lead) -> None:
    harness.lead_store.put(TENANT, lead)
    workflow = await harness.create_active([email_action(1)], limits=UNLIMITED)

    await asyncio.gather(*(harness.service.dispatch_event(_event(lead)) for _ in range(100)))
    await harness.dispatcher.drain()

    stats = (await harness.service.get_workflow(TENANT, workflow.id)).execution_stats
    assert stats.total_executions == 100
    assert stats.successful_executions == 100
    assert stats.failed_executions == 0
    executions = await harness.service.list_executions(TENANT, workflow.id, limit=1000)
    assert len(executions) == 100
    assert all(e.status == WorkflowExecutionStatus.COMPLETED for e in executions)


async def test_delay_in_one_workflow_does_not_block_another(lead) -> None:
    harness = build_harness(sleep=asyncio.sleep, delay_unit_seconds=0.2)
    harness.lead_store.put(TENANT, lead)
    await harness.create_active(
        [email_action(1, delay=1), tag_action(2, "slow-done")], limits=UNLIMITED
    )
    await harness.create_active(
        [tag_action(1, "fast")],
        trigger=Trigger(type=TriggerType.LEAD_STATUS_CHANGED),
        limits=UNLIMITED,
    )

    slow = await harness.service.dispatch_event(_event(lead))
    fast = await harness.service.dispatch_event(
        _event(lead, TriggerType.LEAD_STATUS_CHANGED), wait=True
    )

    assert fast.executions[0].status == WorkflowExecutionStatus.COMPLETED
    waiting = await harness.service.get_execution(TENANT, slow.executions[0].id)
    assert waiting.status in (WorkflowExecutionStatus.PENDING, WorkflowExecutionStatus.RUNNING)
    assert (await harness.lead_store.get(TENANT, "lead-1"))["tags"] == ["fast"]

    await harness.dispatcher.drain()
    finished = await harness.service.get_execution(TENANT, slow.executions[0].id)
    assert finished.status == WorkflowExecutionStatus.COMPLETED
    assert (await harness.lead_store.get(TENANT, "lead-1"))["tags"] == ["fast", "slow-done"]


async def test_execution_timeout_fails_the_run(lead) -> None:
    harness = build_harness(sleep=asyncio.sleep, delay_unit_seconds=1.0)
    harness.lead_store.put(TENANT, lead)
    workflow = await harness.create_active(
        [email_action(1, delay=5), tag_action(2)],
        limits=WorkflowLimits(execution_timeout_ms=50),
    )

    execution = await harness.dispatcher.run_workflow(workflow, _event(lead), wait=True)

    assert execution.status == WorkflowExecutionStatus.FAILED
    assert "timeout of 50 ms" in execution.error_message
    assert [r.status for r in execution.action_results] == [ActionResultStatus.COMPLETED]
    assert (await harness.lead_store.get(TENANT, "lead-1"))["tags"] == []
    stats = (await harness.service.get_workflow(TENANT, workflow.id)).execution_stats
    assert stats.failed_executions == 1


async def test_retryable_failure_is_retried_per_policy(harness, lead) -> None:
    harness.webhook_caller.call.side_effect = [
        ActionExecutionException("webhook", "returned 503"),
        ActionExecutionException("webhook", "returned 503"),
        {"status_code": 200, "response_excerpt": "ok"},
    ]
    webhook = Action(
        type=ActionType.WEBHOOK, order=1, config={"url": "https://hooks.example.com", "method": "POST"}
    )
    workflow = await harness.create_active(
        [webhook],
        error_handling=ErrorHandlingPolicy(retry_on_failure=True, max_retries=3, retry_delay_ms=250),
    )

    execution = await harness.dispatcher.run_workflow(workflow, _event(lead), wait=True)

    assert execution.status == WorkflowExecutionStatus.COMPLETED
    assert execution.action_results[0].attempts == 3
    assert harness.sleeps == [0.25, 0.25]


async def test_retries_exhausted_fail_the_run(harness, lead) -> None:
    harness.webhook_caller.call.side_effect = ActionExecutionException("webhook", "returned 503")
    webhook = Action(
        type=ActionType.WEBHOOK, order=1, config={"url": "https://hooks.example.com", "method": "GET"}
    )
    workflow = await harness.create_active(
        [webhook],
        error_handling=ErrorHandlingPolicy(retry_on_failure=True, max_retries=2, retry_delay_ms=0),
    )
    execution = await harness.dispatcher.run_workflow(workflow, _event(lead), wait=True)
    assert execution.status == WorkflowExecutionStatus.FAILED
    assert execution.action_results[0].attempts == 3
    assert harness.webhook_caller.call.await_count == 3


async def test_non_retryable_failure_is_not_retried(harness, lead) -> None:
    harness.webhook_caller.call.side_effect = ActionExecutionException(
        "webhook", "returned 400", retryable=False
    )
    webhook = Action(
        type=ActionType.WEBHOOK, order=1, config={"url": "https://hooks.example.com", "method": "GET"}
    )
    workflow = await harness.create_active(
        [webhook], error_handling=ErrorHandlingPolicy(retry_on_failure=True, max_retries=5)
    )
    execution = await harness.dispatcher.run_workflow(workflow, _event(lead), wait=True)
    assert execution.status == WorkflowExecutionStatus.FAILED
    assert harness.webhook_caller.call.await_count == 1


async def test_missing_target_lead_is_not_retried(harness, lead) -> None:
    workflow = await harness.create_active(
        [tag_action(1)],
        error_handling=ErrorHandlingPolicy(retry_on_failure=True, max_retries=3, retry_delay_ms=100),
    )

    execution = await harness.dispatcher.run_workflow(workflow, _event(lead), wait=True)

    assert execution.status == WorkflowExecutionStatus.FAILED
    assert execution.error_message == "lead not found: lead-1"
    assert execution.action_results[0].attempts == 1
    assert harness.sleeps == []


async def test_config_error_is_not_retried(harness, lead) -> None:
    broken = Action(type=ActionType.ADD_TAG, order=1, config={})
    workflow = await harness.create_active(
        [broken], error_handling=ErrorHandlingPolicy(retry_on_failure=True, max_retries=3)
    )
    execution = await harness.dispatcher.run_workflow(workflow, _event(lead), wait=True)
    assert execution.status == WorkflowExecutionStatus.FAILED
    assert execution.action_results[0].attempts == 1
    assert "Invalid config for add_tag" in execution.error_message
    assert harness.sleeps == []


async def test_terminal_fields_are_written_once(harness, lead) -> None:
    harness.lead_store.put(TENANT, lead)
    workflow = await harness.create_active([tag_action(1)])
    execution = await harness.dispatcher.run_workflow(workflow, _event(lead), wait=True)
    assert execution.status == WorkflowExecutionStatus.COMPLETED
    assert execution.started_at is not None
    assert execution.completed_at >= execution.started_at
    assert execution.execution_time_ms >= 0

    with pytest.raises(ExecutionAlreadyFinalizedException):
        await harness.execution_repo.finalize(
            execution.id,
            TENANT,
            status=WorkflowExecutionStatus.FAILED,
            completed_at=utc_now(),
            execution_time_ms=1.0,
            error_message="late",
            action_results=[],
        )
    reloaded = await harness.service.get_execution(TENANT, execution.id)
    assert reloaded.status == WorkflowExecutionStatus.COMPLETED
    assert reloaded.error_message is None


async def test_average_time_counts_successful_runs_only(harness, lead) -> None:
    workflow = await harness.create_active([tag_action(1)])
    repo = harness.workflow_repo
    now = utc_now()
    await repo.record_execution_outcome(workflow.id, TENANT, succeeded=True, execution_time_ms=100.0, at=now)
    await repo.record_execution_outcome(workflow.id, TENANT, succeeded=False, execution_time_ms=9000.0, at=now)
    await repo.record_execution_outcome(workflow.id, TENANT, succeeded=True, execution_time_ms=300.0, at=now)

    stats = (await harness.service.get_workflow(TENANT, workflow.id)).execution_stats
    assert stats.total_executions == 3
    assert stats.average_execution_time_ms == pytest.approx(200.0)
    assert stats.success_rate == pytest.approx(200 / 3)
