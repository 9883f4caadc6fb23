"""Shared builders for tests: an in-memory service harness and action factories."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock

from app.application.dtos.workflow import WorkflowCreate
from app.application.services import (
    ActionExecutor,
    ConditionEvaluator,
    ScheduleTicker,
    TriggerDispatcher,
    WorkflowEngine,
)
from app.application.use_cases.workflows import WorkflowService
from app.domain.entities.workflow import (
    Action,
    Condition,
    ErrorHandlingPolicy,
    Trigger,
    WorkflowEntity,
    WorkflowLimits,
)
from app.infrastructure.memory import (
    InMemoryWorkflowExecutionRepository,
    InMemoryWorkflowRepository,
)
from app.infrastructure.services import (
    InMemoryLeadStore,
    InMemoryTaskService,
    LogOnlyMessagingChannel,
    WorkflowTemplateRenderer,
)
from app.shared.enums import ActionType, TriggerType

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


@dataclass
class Harness:
    """Real services over in-memory stores; sleeps are recorded, not awaited."""

    workflow_repo: InMemoryWorkflowRepository
    execution_repo: InMemoryWorkflowExecutionRepository
    lead_store: InMemoryLeadStore
    task_service: InMemoryTaskService
    messaging: LogOnlyMessagingChannel
    webhook_caller: AsyncMock
    executor: ActionExecutor
    engine: WorkflowEngine
    dispatcher: TriggerDispatcher
    service: WorkflowService
    ticker: ScheduleTicker
    sleeps: list[float] = field(default_factory=list)

    async def create_active(
        self,
        actions: list[Action],
        *,
        trigger: Trigger | None = None,
        limits: WorkflowLimits | None = None,
        error_handling: ErrorHandlingPolicy | None = None,
        tenant_id: str = TENANT,
        name: str = "Test workflow",
    ) -> WorkflowEntity:
        workflow = await self.service.create_workflow(
            tenant_id,
            WorkflowCreate(
                name=name,
                trigger=trigger or Trigger(type=TriggerType.LEAD_CREATED),
                actions=actions,
                limits=limits,
                error_handling=error_handling,
            ),
        )
        return await self.service.activate(tenant_id, workflow.id)


def build_harness(
    sleep: Callable[[float], Awaitable[None]] | None = None,
    delay_unit_seconds: float = 60.0,
) -> Harness:
    sleeps: list[float] = []

    async def recording_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        await asyncio.sleep(0)

    workflow_repo = InMemoryWorkflowRepository()
    execution_repo = InMemoryWorkflowExecutionRepository()
    lead_store = InMemoryLeadStore()
    task_service = InMemoryTaskService()
    messaging = LogOnlyMessagingChannel()
    webhook_caller = AsyncMock()
    webhook_caller.call = AsyncMock(return_value={"status_code": 200, "response_excerpt": ""})
    conditions = ConditionEvaluator()
    executor = ActionExecutor(
        lead_store=lead_store,
        messaging=messaging,
        task_service=task_service,
        webhook_caller=webhook_caller,
        template_renderer=WorkflowTemplateRenderer(),
    )
    engine = WorkflowEngine(
        workflow_repo=workflow_repo,
        execution_repo=execution_repo,
        action_executor=executor,
        condition_evaluator=conditions,
        delay_unit_seconds=delay_unit_seconds,
        sleep=sleep or recording_sleep,
    )
    dispatcher = TriggerDispatcher(
        workflow_repo=workflow_repo,
        execution_repo=execution_repo,
        engine=engine,
        condition_evaluator=conditions,
    )
    service = WorkflowService(workflow_repo, execution_repo, dispatcher, lead_store)
    return Harness(
        workflow_repo=workflow_repo,
        execution_repo=execution_repo,
        lead_store=lead_store,
        task_service=task_service,
        messaging=messaging,
        webhook_caller=webhook_caller,
        executor=executor,
        engine=engine,
        dispatcher=dispatcher,
        service=service,
        ticker=ScheduleTicker(workflow_repo, dispatcher, conditions),
        sleeps=sleeps,
    )


def sample_lead(**overrides: Any) -> dict[str, Any]:
    return {
        "id": "lead-1",
        "name": "Ada",
        "email": "ada@example.com",
        "phone": "+15550001",
        "source": "website",
        "status": "new",
        "score": 42,
        "tags": [],
        **overrides,
    }


def email_action(order: int, delay: float = 0, **config: Any) -> Action:
    return Action(
        type=ActionType.SEND_EMAIL,
        order=order,
        delay=delay,
        config={"subject": "Hi {{ lead.name }}", "body": "Welcome", **config},
    )


def tag_action(
    order: int, tag: str = "welcome", conditions: tuple[Condition, ...] = ()
) -> Action:
    return Action(type=ActionType.ADD_TAG, order=order, config={"tag": tag}, conditions=conditions)


def task_action(order: int, delay: float = 0) -> Action:
    return Action(
        type=ActionType.CREATE_TASK,
        order=order,
        delay=delay,
        config={"task_title": "Call {{ lead.name }}", "due_date": "2 days"},
    )


def seeded_lead_store(settings: Any) -> InMemoryLeadStore:
    """CRM_LEAD_STORE target for tests: an in-memory store holding sample_lead()."""
    store = InMemoryLeadStore()
    store.put(TENANT, sample_lead())
    store.seeded_from = settings
    return store
