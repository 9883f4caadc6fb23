"""Workflow operations: definition CRUD, lifecycle, version history, manual runs, stats."""

from __future__ import annotations

from collections import Counter

from app.application.dtos.workflow import (
    DispatchResult,
    TenantWorkflowStats,
    TriggerEvent,
    WorkflowCreate,
    WorkflowUpdate,
)
from app.application.interfaces.repositories import (
    IWorkflowExecutionRepository,
    IWorkflowRepository,
)
from app.application.interfaces.services import ILeadEventObserver, ILeadStore
from app.application.services.trigger_dispatcher import TriggerDispatcher
from app.domain.entities.workflow import (
    ErrorHandlingPolicy,
    WorkflowEntity,
    WorkflowLimits,
    WorkflowVersion,
)
from app.domain.entities.workflow_execution import WorkflowExecutionEntity
from app.domain.exceptions import (
    ResourceNotFoundException,
    ValidationException,
    WorkflowInactiveException,
    WorkflowVersionConflictException,
)
from app.shared.enums import (
    TriggerType,
    WorkflowCategory,
    WorkflowExecutionStatus,
    WorkflowStatus,
)
from app.shared.telemetry.logging import get_logger
from app.shared.utils.datetime import utc_now
from app.shared.utils.generators import generate_cuid

logger = get_logger(__name__)

NAME_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
_STATS_PAGE_SIZE = 500


def validate_definition(workflow: WorkflowEntity) -> None:
    """Check definition-level rules not expressible on the value objects themselves."""
    name = (workflow.name or "").strip()
    if not name or len(name) > NAME_MAX_LENGTH:
        raise ValidationException(
            f"Workflow name must be 1-{NAME_MAX_LENGTH} characters", field="name"
        )
    if workflow.description and len(workflow.description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationException(
            f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters",
            field="description",
        )
    limits = workflow.limits
    if limits.execution_timeout_ms <= 0:
        raise ValidationException(
            "execution_timeout_ms must be positive", field="limits.execution_timeout_ms"
        )
    for key in ("max_executions_per_day", "max_executions_per_hour"):
        value = getattr(limits, key)
        if value is not None and value <= 0:
            raise ValidationException(f"{key} must be positive", field=f"limits.{key}")
    policy = workflow.error_handling
    if policy.max_retries < 0 or policy.retry_delay_ms < 0:
        raise ValidationException(
            "max_retries and retry_delay_ms must be non-negative", field="error_handling"
        )
    schedule = workflow.trigger.schedule
    if workflow.trigger.type == TriggerType.TIME_BASED and schedule and schedule.enabled:
        if schedule.frequency is None or not schedule.time:
            raise ValidationException(
                "An enabled schedule needs frequency and time", field="trigger.schedule"
            )


class WorkflowService:
    """Tenant-scoped workflow definitions, lifecycle and execution queries."""

    def __init__(
        self,
        workflow_repo: IWorkflowRepository,
        execution_repo: IWorkflowExecutionRepository,
        dispatcher: TriggerDispatcher,
        lead_store: ILeadStore,
        default_limits: WorkflowLimits | None = None,
    ) -> None:
        self.workflow_repo = workflow_repo
        self.execution_repo = execution_repo
        self.dispatcher = dispatcher
        self.lead_store = lead_store
        self.default_limits = default_limits or WorkflowLimits()

    async def create_workflow(self, tenant_id: str, data: WorkflowCreate) -> WorkflowEntity:
        """Create a workflow in draft (inactive)."""
        now = utc_now()
        workflow = WorkflowEntity(
            id=generate_cuid(),
            tenant_id=tenant_id,
            name=data.name.strip(),
            description=data.description,
            trigger=data.trigger,
            actions=list(data.actions),
            status=WorkflowStatus.DRAFT,
            is_active=False,
            limits=data.limits or self.default_limits,
            error_handling=data.error_handling or ErrorHandlingPolicy(),
            category=data.category,
            tags=list(data.tags),
            created_at=now,
            updated_at=now,
        )
        validate_definition(workflow)
        created = await self.workflow_repo.create(workflow)
        logger.info("Workflow %s created for tenant %s", created.id, tenant_id)
        return created

    async def get_workflow(self, tenant_id: str, workflow_id: str) -> WorkflowEntity:
        """Return the workflow or raise ResourceNotFoundException."""
        workflow = await self.workflow_repo.get_by_id_and_tenant(workflow_id, tenant_id)
        if not workflow:
            raise ResourceNotFoundException("workflow", workflow_id)
        return workflow

    async def list_workflows(
        self,
        tenant_id: str,
        *,
        status: WorkflowStatus | None = None,
        category: WorkflowCategory | None = None,
        is_active: bool | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[WorkflowEntity]:
        return await self.workflow_repo.get_by_tenant(
            tenant_id,
            status=status,
            category=category,
            is_active=is_active,
            skip=skip,
            limit=limit,
        )

    async def update_workflow(
        self, tenant_id: str, workflow_id: str, data: WorkflowUpdate
    ) -> WorkflowEntity:
        """Apply a partial edit. Structural edits push history and bump version.

        data.expected_version, when given, must match the stored version;
        the write itself is also version-guarded against concurrent edits.
        """
        workflow = await self.get_workflow(tenant_id, workflow_id)
        if data.expected_version is not None and data.expected_version != workflow.version:
            raise WorkflowVersionConflictException(workflow_id, data.expected_version)
        expected_version = workflow.version
        changes = data.changes()
        if not changes:
            return workflow
        entry = workflow.apply_edit(changes, utc_now())
        validate_definition(workflow)
        saved = await self.workflow_repo.save_definition(
            workflow, expected_version=expected_version, history_entry=entry
        )
        if entry:
            logger.info(
                "Workflow %s updated to version %d (tenant=%s)",
                workflow_id,
                saved.version,
                tenant_id,
            )
        return saved

    async def activate(self, tenant_id: str, workflow_id: str) -> WorkflowEntity:
        workflow = await self.get_workflow(tenant_id, workflow_id)
        workflow.activate()
        return await self._save_status(workflow)

    async def deactivate(self, tenant_id: str, workflow_id: str) -> WorkflowEntity:
        """Stop new dispatches; executions already running finish normally."""
        workflow = await self.get_workflow(tenant_id, workflow_id)
        workflow.deactivate()
        return await self._save_status(workflow)

    async def archive(self, tenant_id: str, workflow_id: str) -> WorkflowEntity:
        workflow = await self.get_workflow(tenant_id, workflow_id)
        workflow.archive()
        return await self._save_status(workflow)

    async def _save_status(self, workflow: WorkflowEntity) -> WorkflowEntity:
        updated = await self.workflow_repo.set_status(
            workflow.id, workflow.tenant_id, workflow.status, workflow.is_active
        )
        if not updated:
            raise ResourceNotFoundException("workflow", workflow.id)
        logger.info(
            "Workflow %s is now %s (tenant=%s)",
            workflow.id,
            workflow.status.value,
            workflow.tenant_id,
        )
        return updated

    async def delete_workflow(self, tenant_id: str, workflow_id: str) -> None:
        """Soft delete; execution history is kept."""
        deleted = await self.workflow_repo.soft_delete(workflow_id, tenant_id)
        if not deleted:
            raise ResourceNotFoundException("workflow", workflow_id)
        logger.info("Workflow %s deleted (tenant=%s)", workflow_id, tenant_id)

    async def list_versions(self, tenant_id: str, workflow_id: str) -> list[WorkflowVersion]:
        await self.get_workflow(tenant_id, workflow_id)
        return await self.workflow_repo.get_versions(workflow_id, tenant_id)

    async def trigger_manual(
        self,
        tenant_id: str,
        workflow_id: str,
        record_id: str,
        context: dict | None = None,
        *,
        wait: bool = False,
    ) -> WorkflowExecutionEntity:
        """Run an active workflow against one lead, bypassing trigger matching.

        Admission control still applies. With wait=True the execution is
        returned in its final state.
        """
        workflow = await self.get_workflow(tenant_id, workflow_id)
        if not (workflow.is_active and workflow.status == WorkflowStatus.ACTIVE):
            raise WorkflowInactiveException(workflow_id)
        lead = await self.lead_store.get(tenant_id, record_id)
        if lead is None:
            raise ResourceNotFoundException("lead", record_id)
        event = TriggerEvent(
            tenant_id=tenant_id,
            trigger_type=TriggerType.MANUAL,
            payload=lead,
            record_id=record_id,
            context=dict(context or {}),
            occurred_at=utc_now(),
        )
        return await self.dispatcher.run_workflow(workflow, event, wait=wait)

    async def dispatch_event(self, event: TriggerEvent, *, wait: bool = False) -> DispatchResult:
        """Offer a domain event to every matching workflow of its tenant.

        A lead store that observes events adopts the lead from the payload
        first, so the started runs can act on it.
        """
        if isinstance(self.lead_store, ILeadEventObserver):
            self.lead_store.observe_event(event.tenant_id, event.trigger_type, event.payload)
        if wait:
            return await self.dispatcher.dispatch_and_wait(event)
        return await self.dispatcher.dispatch(event)

    async def get_execution(
        self, tenant_id: str, execution_id: str
    ) -> WorkflowExecutionEntity:
        execution = await self.execution_repo.get_by_id(execution_id, tenant_id)
        if not execution:
            raise ResourceNotFoundException("workflow_execution", execution_id)
        return execution

    async def list_executions(
        self,
        tenant_id: str,
        workflow_id: str,
        *,
        status: WorkflowExecutionStatus | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[WorkflowExecutionEntity]:
        return await self.execution_repo.get_by_workflow(
            workflow_id, tenant_id, status=status, skip=skip, limit=limit
        )

    async def get_tenant_stats(self, tenant_id: str) -> TenantWorkflowStats:
        """Sum counters over all (non-deleted) workflows of the tenant."""
        workflows: list[WorkflowEntity] = []
        skip = 0
        while True:
            page = await self.workflow_repo.get_by_tenant(
                tenant_id, skip=skip, limit=_STATS_PAGE_SIZE
            )
            workflows.extend(page)
            if len(page) < _STATS_PAGE_SIZE:
                break
            skip += _STATS_PAGE_SIZE
        by_category = Counter(w.category.value for w in workflows)
        return TenantWorkflowStats(
            total_workflows=len(workflows),
            active_workflows=sum(1 for w in workflows if w.is_active),
            total_executions=sum(w.execution_stats.total_executions for w in workflows),
            successful_executions=sum(
                w.execution_stats.successful_executions for w in workflows
            ),
            failed_executions=sum(w.execution_stats.failed_executions for w in workflows),
            by_category=dict(by_category),
        )
