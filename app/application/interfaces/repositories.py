"""Repository interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill (DIP).
All types reference domain entities only; no infrastructure imports.
Two implementations exist: SQLAlchemy (postgres/sqlite) and in-memory.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from app.domain.entities.workflow import WorkflowEntity, WorkflowVersion
    from app.domain.entities.workflow_execution import (
        ActionResult,
        AdmissionBudget,
        WorkflowExecutionEntity,
    )
    from app.shared.enums import (
        TriggerType,
        WorkflowCategory,
        WorkflowExecutionStatus,
        WorkflowStatus,
    )


# Workflow definition store
class IWorkflowRepository(Protocol):
    """Protocol for the workflow definition store (definitions, history, stats)."""

    async def create(self, workflow: WorkflowEntity) -> WorkflowEntity:
        """Persist a new definition; return it as stored."""

    async def get_by_id_and_tenant(
        self, workflow_id: str, tenant_id: str
    ) -> WorkflowEntity | None:
        """Return a non-deleted workflow with its version history, or None."""

    async def get_by_tenant(
        self,
        tenant_id: str,
        *,
        status: WorkflowStatus | None = None,
        category: WorkflowCategory | None = None,
        is_active: bool | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[WorkflowEntity]:
        """Return non-deleted workflows of a tenant, newest first."""

    async def get_active_by_trigger(
        self, tenant_id: str, trigger_type: TriggerType
    ) -> list[WorkflowEntity]:
        """Return active, non-deleted workflows of a tenant listening to trigger_type."""

    async def save_definition(
        self,
        workflow: WorkflowEntity,
        expected_version: int,
        history_entry: WorkflowVersion | None = None,
    ) -> WorkflowEntity:
        """Write definition fields guarded by version (optimistic lock).

        Appends history_entry when given. Never writes execution stats.
        Raises WorkflowVersionConflictException when the stored version
        no longer equals expected_version.
        """

    async def set_status(
        self,
        workflow_id: str,
        tenant_id: str,
        status: WorkflowStatus,
        is_active: bool,
    ) -> WorkflowEntity | None:
        """Update lifecycle status only; return the updated workflow or None."""

    async def soft_delete(self, workflow_id: str, tenant_id: str) -> bool:
        """Mark deleted (and inactive). Return False when not found."""

    async def record_execution_outcome(
        self,
        workflow_id: str,
        tenant_id: str,
        *,
        succeeded: bool,
        execution_time_ms: float,
        at: datetime,
    ) -> None:
        """Atomically fold one finished execution into the workflow's stats.

        Success: total+1, successful+1, last_executed_at=at, running mean
        of execution time over successful runs. Failure: total+1, failed+1.
        """

    async def get_versions(
        self, workflow_id: str, tenant_id: str
    ) -> list[WorkflowVersion]:
        """Return history entries, oldest first."""


# Workflow execution audit store
class IWorkflowExecutionRepository(Protocol):
    """Protocol for workflow execution records (audit trail)."""

    async def create(self, execution: WorkflowExecutionEntity) -> WorkflowExecutionEntity:
        """Persist a new pending execution."""

    async def mark_running(
        self, execution_id: str, tenant_id: str, started_at: datetime
    ) -> WorkflowExecutionEntity:
        """Move a pending execution to running."""

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
        """Write terminal fields once. Raises ExecutionAlreadyFinalizedException on a second call."""

    async def get_by_id(
        self, execution_id: str, tenant_id: str
    ) -> WorkflowExecutionEntity | None:
        """Return an execution of the tenant, or None."""

    async def get_by_workflow(
        self,
        workflow_id: str,
        tenant_id: str,
        *,
        status: WorkflowExecutionStatus | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[WorkflowExecutionEntity]:
        """Return executions of a workflow, newest first."""

    async def create_if_under_budget(
        self,
        execution: WorkflowExecutionEntity,
        budgets: Sequence[AdmissionBudget],
    ) -> WorkflowExecutionEntity:
        """Count executions per budget and persist `execution` in one atomic step.

        Raises AdmissionRejectedException (nothing persisted) when the number of
        executions of the workflow created since `budget.since` has reached
        `budget.limit` for any budget.
        """
