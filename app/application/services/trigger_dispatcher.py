"""Trigger dispatcher: matches domain events to active workflows and starts executions.

Each admitted match runs as its own asyncio task; a failing run never
affects the event producer or other runs. Admission (hourly and daily
budgets) is checked and the pending execution record created in one
atomic repository step, so concurrent events cannot overshoot a budget.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from datetime import datetime

from app.application.dtos.workflow import DispatchResult, RejectedMatch, TriggerEvent
from app.application.interfaces.repositories import (
    IWorkflowExecutionRepository,
    IWorkflowRepository,
)
from app.application.services.condition_evaluator import ConditionEvaluator
from app.application.services.workflow_engine import WorkflowEngine
from app.domain.entities.workflow import WorkflowEntity
from app.domain.entities.workflow_execution import (
    AdmissionBudget,
    WorkflowExecutionEntity,
)
from app.domain.exceptions import (
    AdmissionRejectedException,
    AutomationException,
    ResourceNotFoundException,
)
from app.shared.telemetry.logging import get_logger
from app.shared.telemetry.tracing import add_span_attributes, traced
from app.shared.utils.datetime import start_of_day, start_of_hour, utc_now
from app.shared.utils.generators import generate_cuid

logger = get_logger(__name__)


class TriggerDispatcher:
    """Routes trigger events to matching workflows with admission control."""

    def __init__(
        self,
        *,
        workflow_repo: IWorkflowRepository,
        execution_repo: IWorkflowExecutionRepository,
        engine: WorkflowEngine,
        condition_evaluator: ConditionEvaluator | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.workflow_repo = workflow_repo
        self.execution_repo = execution_repo
        self.engine = engine
        self._conditions = condition_evaluator or ConditionEvaluator()
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task[WorkflowExecutionEntity]] = set()

    @property
    def in_flight(self) -> int:
        """Number of executions currently running in this process."""
        return len(self._tasks)

    @traced("trigger_dispatcher.dispatch")
    async def dispatch(self, event: TriggerEvent) -> DispatchResult:
        """Start an execution for every admitted match; does not wait for them."""
        result, _ = await self._dispatch(event)
        return result

    async def dispatch_and_wait(self, event: TriggerEvent) -> DispatchResult:
        """Dispatch and wait for the started runs; executions are returned in final state."""
        result, tasks = await self._dispatch(event)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        result.executions = await self._reload(result.executions)
        return result

    async def run_workflow(
        self,
        workflow: WorkflowEntity,
        event: TriggerEvent,
        *,
        wait: bool = False,
    ) -> WorkflowExecutionEntity:
        """Run one workflow directly (manual invoke), skipping trigger matching.

        Admission control still applies; AdmissionRejectedException propagates.
        """
        if not workflow.belongs_to_tenant(event.tenant_id):
            raise ResourceNotFoundException("workflow", workflow.id)
        execution = await self.admit(workflow, event)
        task = self._start(workflow, execution)
        if not wait:
            return execution
        await asyncio.gather(task, return_exceptions=True)
        reloaded = await self._reload([execution])
        return reloaded[0] if reloaded else execution

    async def admit(
        self, workflow: WorkflowEntity, event: TriggerEvent
    ) -> WorkflowExecutionEntity:
        """Check hourly/daily budgets and create the pending execution record.

        Raises AdmissionRejectedException when a budget is exhausted; nothing
        is persisted in that case. The repository counts and inserts in one
        atomic step (an advisory-locked transaction on PostgreSQL); the
        per-workflow lock serializes admissions within this process.
        """
        async with self._lock_for(workflow.id):
            now = self._clock()
            limits = workflow.limits
            budgets = [
                AdmissionBudget(window, limit, since)
                for window, limit, since in (
                    ("hour", limits.max_executions_per_hour, start_of_hour(now)),
                    ("day", limits.max_executions_per_day, start_of_day(now)),
                )
                if limit is not None
            ]
            execution = WorkflowExecutionEntity(
                id=generate_cuid(),
                tenant_id=workflow.tenant_id,
                workflow_id=workflow.id,
                workflow_version=workflow.version,
                trigger_type=event.trigger_type,
                record_id=event.target_record_id,
                trigger_data=dict(event.payload),
                context=dict(event.context),
                created_at=now,
            )
            return await self.execution_repo.create_if_under_budget(execution, budgets)

    async def drain(self) -> None:
        """Wait until every in-flight execution has finished (used at shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _dispatch(
        self, event: TriggerEvent
    ) -> tuple[DispatchResult, list[asyncio.Task[WorkflowExecutionEntity]]]:
        add_span_attributes(
            tenant_id=event.tenant_id, trigger_type=event.trigger_type.value
        )
        workflows = await self.workflow_repo.get_active_by_trigger(
            event.tenant_id, event.trigger_type
        )
        result = DispatchResult()
        tasks: list[asyncio.Task[WorkflowExecutionEntity]] = []
        for workflow in workflows:
            if not (
                workflow.belongs_to_tenant(event.tenant_id)
                and workflow.can_trigger_on(event.trigger_type)
            ):
                continue
            if not self._conditions.evaluate(workflow.trigger.conditions, event.payload):
                continue
            result.matched_workflow_ids.append(workflow.id)
            try:
                execution = await self.admit(workflow, event)
            except AdmissionRejectedException as e:
                logger.warning(
                    "Workflow %s rejected for tenant %s: %s",
                    workflow.id,
                    event.tenant_id,
                    e.message,
                )
                result.rejected.append(RejectedMatch(workflow_id=workflow.id, reason=e.message))
                continue
            tasks.append(self._start(workflow, execution))
            result.executions.append(execution)
        logger.info(
            "Dispatched %s for tenant %s: %d matched, %d started, %d rejected",
            event.trigger_type.value,
            event.tenant_id,
            len(result.matched_workflow_ids),
            len(result.executions),
            len(result.rejected),
        )
        return result, tasks

    def _start(
        self, workflow: WorkflowEntity, execution: WorkflowExecutionEntity
    ) -> asyncio.Task[WorkflowExecutionEntity]:
        snapshot = copy.deepcopy(workflow)
        task = asyncio.create_task(
            self.engine.run(snapshot, execution),
            name=f"workflow-execution-{execution.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[WorkflowExecutionEntity]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Workflow execution task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, AutomationException):
            logger.warning("Workflow execution task %s failed: %s", task.get_name(), exc.message)
        else:
            logger.error(
                "Workflow execution task %s crashed",
                task.get_name(),
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def _lock_for(self, workflow_id: str) -> asyncio.Lock:
        lock = self._locks.get(workflow_id)
        if lock is None:
            lock = self._locks[workflow_id] = asyncio.Lock()
        return lock

    async def _reload(
        self, executions: list[WorkflowExecutionEntity]
    ) -> list[WorkflowExecutionEntity]:
        reloaded: list[WorkflowExecutionEntity] = []
        for execution in executions:
            current = await self.execution_repo.get_by_id(execution.id, execution.tenant_id)
            reloaded.append(current or execution)
        return reloaded
