"""Workflow API: thin routes delegating to WorkflowService."""

from fastapi import APIRouter, Query, Response

from app.api.v1.dependencies import TenantId, WorkflowServiceDep
from app.schemas.workflow import (
    ManualTriggerRequest,
    TenantStatsResponse,
    WorkflowCreateRequest,
    WorkflowExecutionResponse,
    WorkflowResponse,
    WorkflowUpdateRequest,
    WorkflowVersionResponse,
)
from app.shared.enums import WorkflowCategory, WorkflowExecutionStatus, WorkflowStatus

router = APIRouter()


@router.post("", response_model=WorkflowResponse, status_code=201)
async def create_workflow(
    body: WorkflowCreateRequest,
    tenant_id: TenantId,
    service: WorkflowServiceDep,
):
    """Create a workflow in draft (tenant-scoped)."""
    workflow = await service.create_workflow(tenant_id, body.to_dto())
    return WorkflowResponse.model_validate(workflow)


@router.get("", response_model=list[WorkflowResponse])
async def list_workflows(
    tenant_id: TenantId,
    service: WorkflowServiceDep,
    status: WorkflowStatus | None = None,
    category: WorkflowCategory | None = None,
    is_active: bool | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
):
    """List workflows for tenant (paginated, newest first)."""
    workflows = await service.list_workflows(
        tenant_id,
        status=status,
        category=category,
        is_active=is_active,
        skip=skip,
        limit=limit,
    )
    return [WorkflowResponse.model_validate(w) for w in workflows]


@router.get("/stats", response_model=TenantStatsResponse)
async def get_tenant_stats(tenant_id: TenantId, service: WorkflowServiceDep):
    """Workflow counts and summed execution counters for the tenant."""
    stats = await service.get_tenant_stats(tenant_id)
    return TenantStatsResponse.model_validate(stats)


@router.get("/executions/{execution_id}", response_model=WorkflowExecutionResponse)
async def get_execution(
    execution_id: str,
    tenant_id: TenantId,
    service: WorkflowServiceDep,
):
    """Get workflow execution by id. Tenant-scoped."""
    execution = await service.get_execution(tenant_id, execution_id)
    return WorkflowExecutionResponse.model_validate(execution)


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(workflow_id: str, tenant_id: TenantId, service: WorkflowServiceDep):
    """Get workflow by id (tenant-scoped)."""
    workflow = await service.get_workflow(tenant_id, workflow_id)
    return WorkflowResponse.model_validate(workflow)


@router.patch("/{workflow_id}", response_model=WorkflowResponse)
async def update_workflow(
    workflow_id: str,
    body: WorkflowUpdateRequest,
    tenant_id: TenantId,
    service: WorkflowServiceDep,
):
    """Partially update a workflow. Structural changes bump the version.

    Send expected_version to fail with 409 instead of overwriting a
    concurrent edit.
    """
    workflow = await service.update_workflow(tenant_id, workflow_id, body.to_dto())
    return WorkflowResponse.model_validate(workflow)


@router.delete("/{workflow_id}", status_code=204)
async def delete_workflow(workflow_id: str, tenant_id: TenantId, service: WorkflowServiceDep):
    """Soft-delete workflow. Execution history is kept."""
    await service.delete_workflow(tenant_id, workflow_id)
    return Response(status_code=204)


@router.post("/{workflow_id}/activate", response_model=WorkflowResponse)
async def activate_workflow(workflow_id: str, tenant_id: TenantId, service: WorkflowServiceDep):
    workflow = await service.activate(tenant_id, workflow_id)
    return WorkflowResponse.model_validate(workflow)


@router.post("/{workflow_id}/deactivate", response_model=WorkflowResponse)
async def deactivate_workflow(
    workflow_id: str, tenant_id: TenantId, service: WorkflowServiceDep
):
    """Stop new dispatches. Running executions are not cancelled."""
    workflow = await service.deactivate(tenant_id, workflow_id)
    return WorkflowResponse.model_validate(workflow)


@router.post("/{workflow_id}/archive", response_model=WorkflowResponse)
async def archive_workflow(workflow_id: str, tenant_id: TenantId, service: WorkflowServiceDep):
    workflow = await service.archive(tenant_id, workflow_id)
    return WorkflowResponse.model_validate(workflow)


@router.get("/{workflow_id}/versions", response_model=list[WorkflowVersionResponse])
async def list_workflow_versions(
    workflow_id: str, tenant_id: TenantId, service: WorkflowServiceDep
):
    """Previous definitions of the workflow, oldest first."""
    versions = await service.list_versions(tenant_id, workflow_id)
    return [WorkflowVersionResponse.model_validate(v) for v in versions]


@router.post(
    "/{workflow_id}/trigger",
    response_model=WorkflowExecutionResponse,
    status_code=202,
)
async def trigger_workflow(
    workflow_id: str,
    body: ManualTriggerRequest,
    tenant_id: TenantId,
    service: WorkflowServiceDep,
    response: Response,
):
    """Run an active workflow against one lead.

    Returns 202 with the pending execution, or 200 with the finished one
    when wait is true.
    """
    execution = await service.trigger_manual(
        tenant_id, workflow_id, body.record_id, body.context, wait=body.wait
    )
    if body.wait:
        response.status_code = 200
    return WorkflowExecutionResponse.model_validate(execution)


@router.get(
    "/{workflow_id}/executions",
    response_model=list[WorkflowExecutionResponse],
)
async def list_workflow_executions(
    workflow_id: str,
    tenant_id: TenantId,
    service: WorkflowServiceDep,
    status: WorkflowExecutionStatus | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
):
    """Execution history for a workflow, newest first. Tenant-scoped."""
    await service.get_workflow(tenant_id, workflow_id)
    executions = await service.list_executions(
        tenant_id, workflow_id, status=status, skip=skip, limit=limit
    )
    return [WorkflowExecutionResponse.model_validate(e) for e in executions]
