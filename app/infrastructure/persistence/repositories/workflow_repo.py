"""Workflow definition repository (SQLAlchemy)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.entities.workflow import (
    Action,
    ErrorHandlingPolicy,
    ExecutionStats,
    Trigger,
    WorkflowEntity,
    WorkflowLimits,
    WorkflowVersion,
)
from app.domain.exceptions import (
    ResourceNotFoundException,
    WorkflowVersionConflictException,
)
from app.infrastructure.persistence.models.workflow import Workflow, WorkflowVersionRecord
from app.infrastructure.persistence.repositories.base import BaseRepository
from app.shared.enums import TriggerType, WorkflowCategory, WorkflowStatus
from app.shared.utils.datetime import ensure_utc, utc_now


def _to_version(row: WorkflowVersionRecord) -> WorkflowVersion:
    return WorkflowVersion(
        version=row.version,
        snapshot=dict(row.snapshot or {}),
        created_at=ensure_utc(row.created_at),
    )


def _to_entity(row: Workflow, versions: list[WorkflowVersion] | None = None) -> WorkflowEntity:
    return WorkflowEntity(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name,
        description=row.description,
        trigger=Trigger.from_dict(row.trigger),
        actions=[Action.from_dict(a) for a in row.actions or []],
        status=WorkflowStatus(row.status),
        is_active=row.is_active,
        limits=WorkflowLimits.from_dict(row.limits),
        error_handling=ErrorHandlingPolicy.from_dict(row.error_handling),
        execution_stats=ExecutionStats(
            total_executions=row.total_executions,
            successful_executions=row.successful_executions,
            failed_executions=row.failed_executions,
            last_executed_at=ensure_utc(row.last_executed_at),
            average_execution_time_ms=row.average_execution_time_ms,
        ),
        version=row.version,
        previous_versions=list(versions or []),
        category=WorkflowCategory(row.category),
        tags=list(row.tags or []),
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=ensure_utc(row.deleted_at),
    )


def _definition_values(workflow: WorkflowEntity) -> dict:
    return {
        "name": workflow.name,
        "description": workflow.description,
        "trigger_type": workflow.trigger.type.value,
        "trigger": workflow.trigger.to_dict(),
        "actions": [a.to_dict() for a in workflow.actions],
        "limits": workflow.limits.to_dict(),
        "error_handling": workflow.error_handling.to_dict(),
        "category": workflow.category.value,
        "tags": list(workflow.tags),
    }


class SqlWorkflowRepository(BaseRepository[Workflow]):
    """Workflow repository (implements IWorkflowRepository)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__(session_factory, Workflow)

    async def create(self, workflow: WorkflowEntity) -> WorkflowEntity:
        now = utc_now()
        row = Workflow(
            id=workflow.id,
            tenant_id=workflow.tenant_id,
            status=workflow.status.value,
            is_active=workflow.is_active,
            version=workflow.version,
            total_executions=workflow.execution_stats.total_executions,
            successful_executions=workflow.execution_stats.successful_executions,
            failed_executions=workflow.execution_stats.failed_executions,
            last_executed_at=workflow.execution_stats.last_executed_at,
            average_execution_time_ms=workflow.execution_stats.average_execution_time_ms,
            created_at=workflow.created_at or now,
            updated_at=workflow.updated_at or now,
            **_definition_values(workflow),
        )
        async with self._write() as session:
            session.add(row)
            for entry in workflow.previous_versions:
                session.add(self._version_row(workflow, entry))
        return _to_entity(row, list(workflow.previous_versions))

    async def get_by_id_and_tenant(
        self, workflow_id: str, tenant_id: str
    ) -> WorkflowEntity | None:
        async with self._read() as session:
            row = await self._get_live(session, workflow_id, tenant_id)
            if row is None:
                return None
            versions = await self._load_versions(session, workflow_id, tenant_id)
        return _to_entity(row, versions)

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
        """Return workflows without version history (use get_by_id_and_tenant for that)."""
        q = select(Workflow).where(
            Workflow.tenant_id == tenant_id,
            Workflow.deleted_at.is_(None),
        )
        if status is not None:
            q = q.where(Workflow.status == status.value)
        if category is not None:
            q = q.where(Workflow.category == category.value)
        if is_active is not None:
            q = q.where(Workflow.is_active.is_(is_active))
        q = q.order_by(Workflow.created_at.desc(), Workflow.id.desc()).offset(skip).limit(limit)
        async with self._read() as session:
            result = await session.execute(q)
            rows = list(result.scalars().all())
        return [_to_entity(r) for r in rows]

    async def get_active_by_trigger(
        self, tenant_id: str, trigger_type: TriggerType
    ) -> list[WorkflowEntity]:
        async with self._read() as session:
            result = await session.execute(
                select(Workflow)
                .where(
                    Workflow.tenant_id == tenant_id,
                    Workflow.trigger_type == trigger_type.value,
                    Workflow.is_active.is_(True),
                    Workflow.status == WorkflowStatus.ACTIVE.value,
                    Workflow.deleted_at.is_(None),
                )
                .order_by(Workflow.created_at.asc(), Workflow.id.asc())
            )
            rows = list(result.scalars().all())
        return [_to_entity(r) for r in rows]

    async def save_definition(
        self,
        workflow: WorkflowEntity,
        expected_version: int,
        history_entry: WorkflowVersion | None = None,
    ) -> WorkflowEntity:
        async with self._write() as session:
            result = await session.execute(
                update(Workflow)
                .where(
                    Workflow.id == workflow.id,
                    Workflow.tenant_id == workflow.tenant_id,
                    Workflow.deleted_at.is_(None),
                    Workflow.version == expected_version,
                )
                .values(
                    version=workflow.version,
                    updated_at=workflow.updated_at or utc_now(),
                    **_definition_values(workflow),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                if await self._get_live(session, workflow.id, workflow.tenant_id) is None:
                    raise ResourceNotFoundException("workflow", workflow.id)
                raise WorkflowVersionConflictException(workflow.id, expected_version)
            if history_entry is not None:
                session.add(self._version_row(workflow, history_entry))
        saved = await self.get_by_id_and_tenant(workflow.id, workflow.tenant_id)
        if saved is None:
            raise ResourceNotFoundException("workflow", workflow.id)
        return saved

    async def set_status(
        self,
        workflow_id: str,
        tenant_id: str,
        status: WorkflowStatus,
        is_active: bool,
    ) -> WorkflowEntity | None:
        async with self._write() as session:
            result = await session.execute(
                update(Workflow)
                .where(
                    Workflow.id == workflow_id,
                    Workflow.tenant_id == tenant_id,
                    Workflow.deleted_at.is_(None),
                )
                .values(status=status.value, is_active=is_active, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
        return await self.get_by_id_and_tenant(workflow_id, tenant_id)

    async def soft_delete(self, workflow_id: str, tenant_id: str) -> bool:
        now = utc_now()
        async with self._write() as session:
            result = await session.execute(
                update(Workflow)
                .where(
                    Workflow.id == workflow_id,
                    Workflow.tenant_id == tenant_id,
                    Workflow.deleted_at.is_(None),
                )
                .values(deleted_at=now, is_active=False, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    async def record_execution_outcome(
        self,
        workflow_id: str,
        tenant_id: str,
        *,
        succeeded: bool,
        execution_time_ms: float,
        at: datetime,
    ) -> None:
        """Single UPDATE statement; right-hand sides read the pre-update row."""
        stmt = update(Workflow).where(
            Workflow.id == workflow_id, Workflow.tenant_id == tenant_id
        )
        if succeeded:
            stmt = stmt.values(
                total_executions=Workflow.total_executions + 1,
                successful_executions=Workflow.successful_executions + 1,
                last_executed_at=at,
                average_execution_time_ms=(
                    Workflow.average_execution_time_ms * Workflow.successful_executions
                    + float(execution_time_ms)
                )
                / (Workflow.successful_executions + 1),
            )
        else:
            stmt = stmt.values(
                total_executions=Workflow.total_executions + 1,
                failed_executions=Workflow.failed_executions + 1,
            )
        async with self._write() as session:
            await session.execute(stmt.execution_options(synchronize_session=False))

    async def get_versions(
        self, workflow_id: str, tenant_id: str
    ) -> list[WorkflowVersion]:
        async with self._read() as session:
            return await self._load_versions(session, workflow_id, tenant_id)

    async def _get_live(
        self, session: AsyncSession, workflow_id: str, tenant_id: str
    ) -> Workflow | None:
        row = await self._get_scoped(session, workflow_id, tenant_id)
        if row is None or row.deleted_at is not None:
            return None
        return row

    async def _load_versions(
        self, session: AsyncSession, workflow_id: str, tenant_id: str
    ) -> list[WorkflowVersion]:
        result = await session.execute(
            select(WorkflowVersionRecord)
            .where(
                WorkflowVersionRecord.workflow_id == workflow_id,
                WorkflowVersionRecord.tenant_id == tenant_id,
            )
            .order_by(WorkflowVersionRecord.version.asc())
        )
        return [_to_version(r) for r in result.scalars().all()]

    @staticmethod
    def _version_row(workflow: WorkflowEntity, entry: WorkflowVersion) -> WorkflowVersionRecord:
        return WorkflowVersionRecord(
            workflow_id=workflow.id,
            tenant_id=workflow.tenant_id,
            version=entry.version,
            snapshot=entry.snapshot,
            created_at=entry.created_at,
        )
