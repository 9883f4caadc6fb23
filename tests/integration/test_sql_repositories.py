"""SQL repository integration tests on an in-memory SQLite database (aiosqlite)."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from app.application.dtos.workflow import TriggerEvent
from app.application.services import ActionExecutor, TriggerDispatcher, WorkflowEngine
from app.core.config import Settings
from app.domain.entities.workflow import (
    Action,
    Trigger,
    WorkflowEntity,
    WorkflowLimits,
)
from app.domain.entities.workflow_execution import (
    ActionResult,
    AdmissionBudget,
    WorkflowExecutionEntity,
)
from app.domain.exceptions import (
    AdmissionRejectedException,
    ExecutionAlreadyFinalizedException,
    ResourceNotFoundException,
    WorkflowVersionConflictException,
)
from app.infrastructure.persistence.database import (
    create_engine_for,
    create_session_factory,
    init_models,
)
from app.infrastructure.persistence.repositories import (
    SqlWorkflowExecutionRepository,
    SqlWorkflowRepository,
)
from app.infrastructure.persistence.repositories.workflow_execution_repo import (
    _advisory_lock_key,
)
from app.infrastructure.services import (
    InMemoryLeadStore,
    InMemoryTaskService,
    LogOnlyMessagingChannel,
    WorkflowTemplateRenderer,
)
from app.shared.enums import (
    ActionResultStatus,
    ActionType,
    TriggerType,
    WorkflowExecutionStatus,
    WorkflowStatus,
)
from tests.helpers import OTHER_TENANT, TENANT, sample_lead, tag_action

T0 = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
async def session_factory():
    settings = Settings(database_backend="sqlite", database_url="sqlite+aiosqlite:///:memory:")
    engine = create_engine_for(settings)
    await init_models(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def workflow_repo(session_factory) -> SqlWorkflowRepository:
    return SqlWorkflowRepository(session_factory)


@pytest.fixture
def execution_repo(session_factory) -> SqlWorkflowExecutionRepository:
    return SqlWorkflowExecutionRepository(session_factory)


def _workflow(workflow_id: str = "wf-1", tenant_id: str = TENANT, **overrides) -> WorkflowEntity:
    data = {
        "id": workflow_id,
        "tenant_id": tenant_id,
        "name": "Welcome",
        "trigger": Trigger(type=TriggerType.LEAD_CREATED),
        "actions": [tag_action(1)],
        "status": WorkflowStatus.ACTIVE,
        "is_active": True,
        "created_at": T0,
        "updated_at": T0,
        **overrides,
    }
    return WorkflowEntity(**data)


def _execution(execution_id: str, created_at: datetime = T0) -> WorkflowExecutionEntity:
    return WorkflowExecutionEntity(
        id=execution_id,
        tenant_id=TENANT,
        workflow_id="wf-1",
        workflow_version=1,
        trigger_type=TriggerType.LEAD_CREATED,
        record_id="lead-1",
        trigger_data={"id": "lead-1"},
        created_at=created_at,
    )


async def test_create_and_get_round_trip_is_tenant_scoped(workflow_repo) -> None:
    created = await workflow_repo.create(_workflow())

    found = await workflow_repo.get_by_id_and_tenant("wf-1", TENANT)

    assert found is not None
    assert found.trigger == created.trigger
    assert found.actions == created.actions
    assert found.created_at == T0
    assert await workflow_repo.get_by_id_and_tenant("wf-1", OTHER_TENANT) is None


async def test_active_by_trigger_excludes_inactive_and_deleted(workflow_repo) -> None:
    await workflow_repo.create(_workflow("wf-1"))
    await workflow_repo.create(_workflow("wf-2", status=WorkflowStatus.DRAFT, is_active=False))
    await workflow_repo.create(_workflow("wf-3"))
    await workflow_repo.create(_workflow("wf-4", tenant_id=OTHER_TENANT))
    await workflow_repo.soft_delete("wf-3", TENANT)

    active = await workflow_repo.get_active_by_trigger(TENANT, TriggerType.LEAD_CREATED)

    assert [w.id for w in active] == ["wf-1"]
    assert await workflow_repo.get_active_by_trigger(TENANT, TriggerType.MANUAL) == []


async def test_save_definition_appends_history(workflow_repo) -> None:
    workflow = await workflow_repo.create(_workflow())
    entry = workflow.apply_edit({"actions": [tag_action(1, "vip")]}, T0 + timedelta(minutes=1))

    saved = await workflow_repo.save_definition(workflow, expected_version=1, history_entry=entry)

    assert saved.version == 2
    assert saved.actions[0].config == {"tag": "vip"}
    [version] = await workflow_repo.get_versions("wf-1", TENANT)
    assert version.version == 1
    assert version.snapshot["actions"][0]["config"] == {"tag": "welcome"}
    assert saved.previous_versions == [version]


async def test_save_definition_with_stale_version_conflicts(workflow_repo) -> None:
    workflow = await workflow_repo.create(_workflow())
    first = await workflow_repo.get_by_id_and_tenant("wf-1", TENANT)
    second = await workflow_repo.get_by_id_and_tenant("wf-1", TENANT)
    entry = first.apply_edit({"actions": [tag_action(1, "a")]}, T0)
    await workflow_repo.save_definition(first, expected_version=workflow.version, history_entry=entry)

    entry = second.apply_edit({"actions": [tag_action(1, "b")]}, T0)
    with pytest.raises(WorkflowVersionConflictException):
        await workflow_repo.save_definition(second, expected_version=1, history_entry=entry)

    assert len(await workflow_repo.get_versions("wf-1", TENANT)) == 1


async def test_save_definition_for_missing_workflow(workflow_repo) -> None:
    with pytest.raises(ResourceNotFoundException):
        await workflow_repo.save_definition(_workflow("ghost"), expected_version=1)


async def test_set_status_and_soft_delete(workflow_repo) -> None:
    await workflow_repo.create(_workflow())
    updated = await workflow_repo.set_status("wf-1", TENANT, WorkflowStatus.INACTIVE, False)
    assert (updated.status, updated.is_active) == (WorkflowStatus.INACTIVE, False)
    assert await workflow_repo.set_status("wf-1", OTHER_TENANT, WorkflowStatus.ACTIVE, True) is None

    assert await workflow_repo.soft_delete("wf-1", TENANT) is True
    assert await workflow_repo.soft_delete("wf-1", TENANT) is False
    assert await workflow_repo.get_by_tenant(TENANT) == []


async def test_record_execution_outcome_keeps_success_mean(workflow_repo) -> None:
    await workflow_repo.create(_workflow())
    await workflow_repo.record_execution_outcome(
        "wf-1", TENANT, succeeded=True, execution_time_ms=100.0, at=T0
    )
    await workflow_repo.record_execution_outcome(
        "wf-1", TENANT, succeeded=False, execution_time_ms=9000.0, at=T0
    )
    await workflow_repo.record_execution_outcome(
        "wf-1", TENANT, succeeded=True, execution_time_ms=200.0, at=T0 + timedelta(minutes=5)
    )

    stats = (await workflow_repo.get_by_id_and_tenant("wf-1", TENANT)).execution_stats

    assert stats.total_executions == 3
    assert stats.successful_executions == 2
    assert stats.failed_executions == 1
    assert stats.average_execution_time_ms == pytest.approx(150.0)
    assert stats.last_executed_at == T0 + timedelta(minutes=5)


async def test_concurrent_outcomes_are_not_lost(workflow_repo) -> None:
    await workflow_repo.create(_workflow())
    await asyncio.gather(
        *(
            workflow_repo.record_execution_outcome(
                "wf-1", TENANT, succeeded=i % 2 == 0, execution_time_ms=10.0, at=T0
            )
            for i in range(20)
        )
    )
    stats = (await workflow_repo.get_by_id_and_tenant("wf-1", TENANT)).execution_stats
    assert (stats.total_executions, stats.successful_executions, stats.failed_executions) == (
        20,
        10,
        10,
    )


async def test_execution_lifecycle_finalizes_once(workflow_repo, execution_repo) -> None:
    await workflow_repo.create(_workflow())
    created = await execution_repo.create(_execution("ex-1"))
    assert created.status == WorkflowExecutionStatus.PENDING

    running = await execution_repo.mark_running("ex-1", TENANT, T0)
    assert running.status == WorkflowExecutionStatus.RUNNING
    results = [ActionResult(order=1, type=ActionType.ADD_TAG, status=ActionResultStatus.COMPLETED, attempts=1)]
    done = await execution_repo.finalize(
        "ex-1",
        TENANT,
        status=WorkflowExecutionStatus.COMPLETED,
        completed_at=T0 + timedelta(seconds=1),
        execution_time_ms=1000.0,
        error_message=None,
        action_results=results,
    )
    assert done.status == WorkflowExecutionStatus.COMPLETED
    assert done.action_results == results
    assert done.completed_at == T0 + timedelta(seconds=1)

    with pytest.raises(ExecutionAlreadyFinalizedException):
        await execution_repo.finalize(
            "ex-1",
            TENANT,
            status=WorkflowExecutionStatus.FAILED,
            completed_at=T0,
            execution_time_ms=1.0,
            error_message="late",
            action_results=[],
        )
    with pytest.raises(ExecutionAlreadyFinalizedException):
        await execution_repo.mark_running("ex-1", TENANT, T0)
    with pytest.raises(ResourceNotFoundException):
        await execution_repo.mark_running("ex-1", OTHER_TENANT, T0)


async def test_create_if_under_budget_counts_window_and_listing(
    workflow_repo, execution_repo
) -> None:
    await workflow_repo.create(_workflow())
    await execution_repo.create(_execution("ex-old", T0 - timedelta(hours=2)))
    await execution_repo.create(_execution("ex-1", T0))
    hour = [AdmissionBudget("hour", 3, T0)]

    await execution_repo.create_if_under_budget(
        _execution("ex-2", T0 + timedelta(minutes=10)), hour
    )

    listed = await execution_repo.get_by_workflow("wf-1", TENANT, limit=2)
    assert [e.id for e in listed] == ["ex-2", "ex-1"]


async def test_create_if_under_budget_rejects_at_limit_and_persists_nothing(
    workflow_repo, execution_repo
) -> None:
    await workflow_repo.create(_workflow())
    await execution_repo.create(_execution("ex-1", T0))
    await execution_repo.create(_execution("ex-2", T0 + timedelta(minutes=1)))
    budgets = [
        AdmissionBudget("hour", 10, T0),
        AdmissionBudget("day", 2, T0 - timedelta(hours=9)),
    ]

    with pytest.raises(AdmissionRejectedException) as exc_info:
        await execution_repo.create_if_under_budget(
            _execution("ex-3", T0 + timedelta(minutes=2)), budgets
        )

    assert exc_info.value.details["window"] == "day"
    assert await execution_repo.get_by_id("ex-3", TENANT) is None


def test_advisory_lock_key_is_stable_and_fits_bigint() -> None:
    key = _advisory_lock_key("wf-1", TENANT, T0.date())

    assert key == _advisory_lock_key("wf-1", TENANT, T0.date())
    assert 0 <= key < 2**63
    assert key != _advisory_lock_key("wf-1", OTHER_TENANT, T0.date())
    assert key != _advisory_lock_key("wf-1", TENANT, (T0 + timedelta(days=1)).date())


async def test_dispatch_end_to_end_over_sql(workflow_repo, execution_repo) -> None:
    leads = InMemoryLeadStore()
    leads.put(TENANT, sample_lead())
    engine = WorkflowEngine(
        workflow_repo=workflow_repo,
        execution_repo=execution_repo,
        action_executor=ActionExecutor(
            lead_store=leads,
            messaging=LogOnlyMessagingChannel(),
            task_service=InMemoryTaskService(),
            webhook_caller=AsyncMock(),
            template_renderer=WorkflowTemplateRenderer(),
        ),
    )
    dispatcher = TriggerDispatcher(
        workflow_repo=workflow_repo, execution_repo=execution_repo, engine=engine
    )
    await workflow_repo.create(
        _workflow(
            actions=[tag_action(1), Action(type=ActionType.CHANGE_STATUS, order=2, config={"status": "contacted"})],
            limits=WorkflowLimits(max_executions_per_hour=1, max_executions_per_day=None),
        )
    )
    event = TriggerEvent(tenant_id=TENANT, trigger_type=TriggerType.LEAD_CREATED, payload=sample_lead())

    first = await dispatcher.dispatch_and_wait(event)
    second = await dispatcher.dispatch_and_wait(event)

    [execution] = first.executions
    assert execution.status == WorkflowExecutionStatus.COMPLETED
    assert [r.status for r in execution.action_results] == [ActionResultStatus.COMPLETED] * 2
    assert second.executions == []
    assert len(second.rejected) == 1
    lead = await leads.get(TENANT, "lead-1")
    assert lead["tags"] == ["welcome"]
    assert lead["status"] == "contacted"
    stats = (await workflow_repo.get_by_id_and_tenant("wf-1", TENANT)).execution_stats
    assert stats.successful_executions == 1
