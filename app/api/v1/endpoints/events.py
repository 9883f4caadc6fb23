"""Event API: domain events from the CRM and the schedule tick hook."""

from datetime import datetime

from fastapi import APIRouter, Response

from app.api.v1.dependencies import ScheduleTickerDep, TenantId, WorkflowServiceDep
from app.schemas.workflow import DispatchResponse, EventDispatchRequest

router = APIRouter()


@router.post("", response_model=DispatchResponse, status_code=202)
async def dispatch_event(
    body: EventDispatchRequest,
    tenant_id: TenantId,
    service: WorkflowServiceDep,
    response: Response,
):
    """Offer a domain event to every active workflow of the tenant with a matching trigger.

    Matching workflows that exceed their execution budget are listed under
    rejected; nothing is persisted for them. With wait=true the response is
    sent after all started executions finished.
    """
    result = await service.dispatch_event(body.to_event(tenant_id), wait=body.wait)
    if body.wait:
        response.status_code = 200
    return DispatchResponse.model_validate(result)


@router.post("/schedule-tick", response_model=DispatchResponse, status_code=202)
async def schedule_tick(
    tenant_id: TenantId,
    ticker: ScheduleTickerDep,
    now: datetime | None = None,
):
    """Fire time_based workflows due at `now` (default: current minute). Called by cron."""
    result = await ticker.tick(tenant_id, now)
    return DispatchResponse.model_validate(result)
