"""Workflow execution repository (SQLAlchemy)."""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from datetime import date, datetime

from sqlalchemy import func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

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
from app.infrastructure.persistence.models.workflow import WorkflowExecution
from app.infrastructure.persistence.repositories.base import BaseRepository
from app.shared.enums import TriggerType, WorkflowExecutionStatus
from app.shared.utils.datetime import utc_now

_OPEN_STATUSES = (
    WorkflowExecutionStatus.PENDING.value,
    WorkflowExecutionStatus.RUNNING.value,
)


def _advisory_lock_key(workflow_id: str, tenant_id: str, day: date) -> int:
    """Stable 63-bit key for pg_advisory_xact_lock (workflow + tenant + day)."""
    raw = hashlib.sha256(f"{workflow_id}:{tenant_id}:{day.isoformat()}".encode()).digest()[:8]
    return int.from_bytes(raw, "big") % (2**63)


def _new_row(execution: WorkflowExecutionEntity) -> WorkflowExecution:
    now = utc_now()
    return WorkflowExecution(
        id=execution.id,
        tenant_id=execution.tenant_id,
        workflow_id=execution.workflow_id,
        workflow_version=execution.workflow_version,
        trigger_type=execution.trigger_type.value,
        record_id=execution.record_id,
        trigger_data=dict(execution.trigger_data),
        context=dict(execution.context),
        status=execution.status.value,
        started_at=execution.started_at,
        action_results=[],
        created_at=execution.created_at or now,
        updated_at=now,
    )


def _to_entity(row: WorkflowExecution) -> WorkflowExecutionEntity:
    return WorkflowExecutionEntity(
        id=row.id,
        tenant_id=row.tenant_id,
        workflow_id=row.workflow_id,
        workflow_version=row.workflow_version,
        trigger_type=TriggerType(row.trigger_type),
        record_id=row.record_id,
        trigger_data=dict(row.trigger_data or {}),
        context=dict(row.context or {}),
        status=WorkflowExecutionStatus(row.status),
        created_at=row.created_at,
        started_at=row.started_at,
        completed_at=row.completed_at,
        execution_time_ms=row.execution_time_ms,
        error_message=row.error_message,
        action_results=[ActionResult.from_dict(r) for r in row.action_results or []],
    )


class SqlWorkflowExecutionRepository(BaseRepository[WorkflowExecution]):
    """Execution audit repository (implements IWorkflowExecutionRepository)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__(session_factory, WorkflowExecution)

    async def create(self, execution: WorkflowExecutionEntity) -> WorkflowExecutionEntity:
        row = _new_row(execution)
        async with self._write() as session:
            session.add(row)
        return _to_entity(row)

    async def create_if_under_budget(
        self,
        execution: WorkflowExecutionEntity,
        budgets: Sequence[AdmissionBudget],
    ) -> WorkflowExecutionEntity:
        """Count and insert in one transaction.

        On PostgreSQL the transaction first takes a per workflow/tenant/day
        advisory lock, so concurrent admissions from several processes
        serialize on it; the lock is released at commit or rollback.
        """
        row = _new_row(execution)
        async with self._write() as session:
            connection = await session.connection()
            if connection.dialect.name == "postgresql":
                lock_key = _advisory_lock_key(
                    execution.workflow_id, execution.tenant_id, row.created_at.date()
                )
                await session.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"), {"key": lock_key}
                )
            for budget in budgets:
                result = await session.execute(
                    select(func.count(WorkflowExecution.id)).where(
                        WorkflowExecution.workflow_id == execution.workflow_id,
                        WorkflowExecution.tenant_id == execution.tenant_id,
                        WorkflowExecution.created_at >= budget.since,
                    )
                )
                if (result.scalar_one() or 0) >= budget.limit:
                    raise AdmissionRejectedException(
                        execution.workflow_id, budget.window, budget.limit
                    )
            session.add(row)
        return _to_entity(row)

    async def mark_running(
        self, execution_id: str, tenant_id: str, started_at: datetime
    ) -> WorkflowExecutionEntity:
        async with self._write() as session:
            result = await session.execute(
                update(WorkflowExecution)
                .where(
                    WorkflowExecution.id == execution_id,
                    WorkflowExecution.tenant_id == tenant_id,
                    WorkflowExecution.status == WorkflowExecutionStatus.PENDING.value,
                )
                .values(
                    status=WorkflowExecutionStatus.RUNNING.value,
                    started_at=started_at,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_not_open(session, execution_id, tenant_id)
        return await self._require(execution_id, tenant_id)

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
        """Conditional UPDATE on open statuses, so terminal fields are written once."""
        if not status.is_terminal:
            raise ValueError(f"finalize requires a terminal status, got {status.value}")
        async with self._write() as session:
            result = await session.execute(
                update(WorkflowExecution)
                .where(
                    WorkflowExecution.id == execution_id,
                    WorkflowExecution.tenant_id == tenant_id,
                    WorkflowExecution.status.in_(_OPEN_STATUSES),
                )
                .values(
                    status=status.value,
                    completed_at=completed_at,
                    execution_time_ms=execution_time_ms,
                    error_message=error_message,
                    action_results=[r.to_dict() for r in action_results],
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_not_open(session, execution_id, tenant_id)
        return await self._require(execution_id, tenant_id)

    async def get_by_id(
        self, execution_id: str, tenant_id: str
    ) -> WorkflowExecutionEntity | None:
        async with self._read() as session:
            row = await self._get_scoped(session, execution_id, tenant_id)
        return _to_entity(row) if row else None

    async def get_by_workflow(
        self,
        workflow_id: str,
        tenant_id: str,
        *,
        status: WorkflowExecutionStatus | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[WorkflowExecutionEntity]:
        q = select(WorkflowExecution).where(
            WorkflowExecution.workflow_id == workflow_id,
            WorkflowExecution.tenant_id == tenant_id,
        )
        if status is not None:
            q = q.where(WorkflowExecution.status == status.value)
        q = (
            q.order_by(WorkflowExecution.created_at.desc(), WorkflowExecution.id.desc())
            .offset(skip)
            .limit(limit)
        )
        async with self._read() as session:
            result = await session.execute(q)
            rows = list(result.scalars().all())
        return [_to_entity(r) for r in rows]

    async def _require(self, execution_id: str, tenant_id: str) -> WorkflowExecutionEntity:
        execution = await self.get_by_id(execution_id, tenant_id)
        if execution is None:
            raise ResourceNotFoundException("workflow_execution", execution_id)
        return execution

    async def _raise_not_open(
        self, session: AsyncSession, execution_id: str, tenant_id: str
    ) -> None:
        row = await self._get_scoped(session, execution_id, tenant_id)
        if row is None:
            raise ResourceNotFoundException("workflow_execution", execution_id)
        raise ExecutionAlreadyFinalizedException(execution_id, row.status)
