"""In-memory workflow definition store.

Entities are copied on the way in and out, so callers never share state
with the store. Stats updates and versioned writes run under a
per-workflow asyncio.Lock.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import replace
from datetime import datetime

from app.domain.entities.workflow import WorkflowEntity, WorkflowVersion
from app.domain.exceptions import (
    ResourceNotFoundException,
    WorkflowVersionConflictException,
)
from app.shared.enums import TriggerType, WorkflowCategory, WorkflowStatus
from app.shared.utils.datetime import utc_now

_DEFINITION_FIELDS = (
    "name",
    "description",
    "trigger",
    "actions",
    "limits",
    "error_handling",
    "category",
    "tags",
    "version",
    "updated_at",
)


class InMemoryWorkflowRepository:
    """In-memory IWorkflowRepository."""

    def __init__(self) -> None:
        self._workflows: dict[str, WorkflowEntity] = {}
        self._versions: dict[str, list[WorkflowVersion]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, workflow_id: str) -> asyncio.Lock:
        lock = self._locks.get(workflow_id)
        if lock is None:
            lock = self._locks[workflow_id] = asyncio.Lock()
        return lock

    def _live(self, workflow_id: str, tenant_id: str) -> WorkflowEntity | None:
        workflow = self._workflows.get(workflow_id)
        if workflow is None or workflow.tenant_id != tenant_id or workflow.deleted_at:
            return None
        return workflow

    def _export(self, workflow: WorkflowEntity, with_history: bool = True) -> WorkflowEntity:
        result = copy.deepcopy(workflow)
        result.previous_versions = (
            list(self._versions.get(workflow.id, [])) if with_history else []
        )
        return result

    async def create(self, workflow: WorkflowEntity) -> WorkflowEntity:
        stored = copy.deepcopy(workflow)
        now = utc_now()
        stored.created_at = stored.created_at or now
        stored.updated_at = stored.updated_at or now
        self._workflows[stored.id] = stored
        self._versions[stored.id] = list(workflow.previous_versions)
        return self._export(stored)

    async def get_by_id_and_tenant(
        self, workflow_id: str, tenant_id: str
    ) -> WorkflowEntity | None:
        workflow = self._live(workflow_id, tenant_id)
        return self._export(workflow) if workflow else None

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
        matches = [
            w
            for w in self._workflows.values()
            if w.tenant_id == tenant_id
            and w.deleted_at is None
            and (status is None or w.status == status)
            and (category is None or w.category == category)
            and (is_active is None or w.is_active == is_active)
        ]
        # dicts keep insertion order, so reversed() is newest first for equal timestamps
        matches = sorted(reversed(matches), key=lambda w: w.created_at, reverse=True)
        return [self._export(w, with_history=False) for w in matches[skip : skip + limit]]

    async def get_active_by_trigger(
        self, tenant_id: str, trigger_type: TriggerType
    ) -> list[WorkflowEntity]:
        return [
            self._export(w, with_history=False)
            for w in self._workflows.values()
            if w.tenant_id == tenant_id and w.can_trigger_on(trigger_type)
        ]

    async def save_definition(
        self,
        workflow: WorkflowEntity,
        expected_version: int,
        history_entry: WorkflowVersion | None = None,
    ) -> WorkflowEntity:
        async with self._lock(workflow.id):
            stored = self._live(workflow.id, workflow.tenant_id)
            if stored is None:
                raise ResourceNotFoundException("workflow", workflow.id)
            if stored.version != expected_version:
                raise WorkflowVersionConflictException(workflow.id, expected_version)
            for name in _DEFINITION_FIELDS:
                setattr(stored, name, copy.deepcopy(getattr(workflow, name)))
            stored.updated_at = stored.updated_at or utc_now()
            if history_entry is not None:
                self._versions.setdefault(workflow.id, []).append(history_entry)
            return self._export(stored)

    async def set_status(
        self,
        workflow_id: str,
        tenant_id: str,
        status: WorkflowStatus,
        is_active: bool,
    ) -> WorkflowEntity | None:
        async with self._lock(workflow_id):
            stored = self._live(workflow_id, tenant_id)
            if stored is None:
                return None
            stored.status = status
            stored.is_active = is_active
            stored.updated_at = utc_now()
            return self._export(stored)

    async def soft_delete(self, workflow_id: str, tenant_id: str) -> bool:
        async with self._lock(workflow_id):
            stored = self._live(workflow_id, tenant_id)
            if stored is None:
                return False
            now = utc_now()
            stored.deleted_at = now
            stored.is_active = False
            stored.updated_at = now
            return True

    async def record_execution_outcome(
        self,
        workflow_id: str,
        tenant_id: str,
        *,
        succeeded: bool,
        execution_time_ms: float,
        at: datetime,
    ) -> None:
        async with self._lock(workflow_id):
            stored = self._workflows.get(workflow_id)
            if stored is None or stored.tenant_id != tenant_id:
                return
            stats = stored.execution_stats
            if succeeded:
                successful = stats.successful_executions
                stored.execution_stats = replace(
                    stats,
                    total_executions=stats.total_executions + 1,
                    successful_executions=successful + 1,
                    last_executed_at=at,
                    average_execution_time_ms=(
                        stats.average_execution_time_ms * successful + execution_time_ms
                    )
                    / (successful + 1),
                )
            else:
                stored.execution_stats = replace(
                    stats,
                    total_executions=stats.total_executions + 1,
                    failed_executions=stats.failed_executions + 1,
                )

    async def get_versions(
        self, workflow_id: str, tenant_id: str
    ) -> list[WorkflowVersion]:
        workflow = self._workflows.get(workflow_id)
        if workflow is None or workflow.tenant_id != tenant_id:
            return []
        return list(self._versions.get(workflow_id, []))
