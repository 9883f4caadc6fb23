"""Presentation-layer dependency injection.

Long-lived services are built once in app.core.lifespan and kept on
app.state; these Depends() functions hand them to routes so that routes
never construct repositories or services themselves.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from app.application.services.schedule import ScheduleTicker
from app.application.use_cases.workflows import WorkflowService
from app.core.config import get_settings
from app.core.tenant_context import get_tenant_id as get_context_tenant_id
from app.domain.exceptions import ValidationException
from app.middleware.tenant_context import TENANT_ID_MAX_LENGTH


async def get_tenant_id(request: Request) -> str:
    """Resolve the tenant for this request.

    TenantContextMiddleware normally sets the context variable; the header is
    read directly as a fallback (e.g. when the app runs without middleware).
    """
    tenant_id = get_context_tenant_id()
    if tenant_id:
        return tenant_id
    name = get_settings().tenant_header_name
    value = (request.headers.get(name) or "").strip()
    if not value:
        raise ValidationException(f"Missing required header: {name}", field=name)
    if len(value) > TENANT_ID_MAX_LENGTH:
        raise ValidationException(
            f"Tenant ID must be at most {TENANT_ID_MAX_LENGTH} characters", field=name
        )
    return value


async def get_workflow_service(request: Request) -> WorkflowService:
    return request.app.state.workflow_service


async def get_schedule_ticker(request: Request) -> ScheduleTicker:
    return request.app.state.schedule_ticker


TenantId = Annotated[str, Depends(get_tenant_id)]
WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]
ScheduleTickerDep = Annotated[ScheduleTicker, Depends(get_schedule_ticker)]
