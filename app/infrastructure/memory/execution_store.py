"""In-memory workflow execution store."""

from __future__ import annotations

import copy
from collections.abc import Sequence
from datetime import datetime

from app.domain.entities.workflow_execution import (
    ActionResult,
    AdmissionBudget,
    WorkflowExecutionEntity,
)
from app.domain.exceptions import (
    AdmissionRejectedException,
    ExecutionAlreadyFinalizedException,
    ResourceNotFoundException,
)
from app.shared.enums import WorkflowExecutionStatus
from app.shared.utils.datetime import utc_now


class InMemoryWorkflowExecutionRepository:
    """In-memory IWorkflowExecutionRepository. Single event loop; no awaits inside updates."""

    def __init__(self) -> None:
        self._executions: dict[str, WorkflowExecutionEntity] = {}

    def _require(self, execution_id: str, tenant_id: str) -> WorkflowExecutionEntity:
        execution = self._executions.get(execution_id)
        if execution is None or execution.tenant_id != tenant_id:
            raise ResourceNotFoundException("workflow_execution", execution_id)
        return execution

    async def create(self, execution: WorkflowExecutionEntity) -> WorkflowExecutionEntity:
        stored = copy.deepcopy(execution)
        stored.created_at = stored.created_at or utc_now()
        self._executions[stored.id] = stored
        return copy.deepcopy(stored)

    async def mark_running(
        self, execution_id: str, tenant_id: str, started_at: datetime
    ) -> WorkflowExecutionEntity:
        stored = self._require(execution_id, tenant_id)
        if stored.status != WorkflowExecutionStatus.PENDING:
            raise ExecutionAlreadyFinalizedException(execution_id, stored.status.value)
        stored.status = WorkflowExecutionStatus.RUNNING
        stored.started_at = started_at
        return copy.deepcopy(stored)

    async def finalize(
        self,
        execution_id: str,
        tenant_id: str,
        *,
        status: WorkflowExecutionStatus,
        completed_at: datetime,
        execution_time_ms: float,
        error_message: str | None,
        action_results: list[ActionResult],
    ) -> WorkflowExecutionEntity:
        if not status.is_terminal:
            raise ValueError(f"finalize requires a terminal status, got {status.value}")
        stored = self._require(execution_id, tenant_id)
        if stored.is_terminal:
            raise ExecutionAlreadyFinalizedException(execution_id, stored.status.value)
        stored.status = status
        stored.completed_at = completed_at
        stored.execution_time_ms = execution_time_ms
        stored.error_message = error_message
        stored.action_results = list(action_results)
        return copy.deepcopy(stored)

    async def get_by_id(
        self, execution_id: str, tenant_id: str
    ) -> WorkflowExecutionEntity | None:
        execution = self._executions.get(execution_id)
        if execution is None or execution.tenant_id != tenant_id:
            return None
        return copy.deepcopy(execution)

    async def get_by_workflow(
        self,
        workflow_id: str,
        tenant_id: str,
        *,
        status: WorkflowExecutionStatus | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[WorkflowExecutionEntity]:
        matches = [
            e
            for e in self._executions.values()
            if e.workflow_id == workflow_id
            and e.tenant_id == tenant_id
            and (status is None or e.status == status)
        ]
        matches = sorted(reversed(matches), key=lambda e: e.created_at, reverse=True)
        return [copy.deepcopy(e) for e in matches[skip : skip + limit]]

    async def create_if_under_budget(
        self,
        execution: WorkflowExecutionEntity,
        budgets: Sequence[AdmissionBudget],
    ) -> WorkflowExecutionEntity:
        for budget in budgets:
            count = sum(
                1
                for e in self._executions.values()
                if e.workflow_id == execution.workflow_id
                and e.tenant_id == execution.tenant_id
                and e.created_at is not None
                and e.created_at >= budget.since
            )
            if count >= budget.limit:
                raise AdmissionRejectedException(
                    execution.workflow_id, budget.window, budget.limit
                )
        return await self.create(execution)
