"""Tenant context middleware.

Reads the tenant from the configured header (X-Tenant-ID) into the request
context so that logging and API dependencies see it. Authentication is
handled upstream of this service; the header is trusted.
Raw ASGI so the context variable is visible to the route handler.
"""

from __future__ import annotations

from typing import Callable

from app.core.tenant_context import current_tenant_id
from app.middleware.request_id import get_header

TENANT_ID_MAX_LENGTH = 64


def TenantContextMiddleware(app: Callable, header_name: str = "X-Tenant-ID") -> Callable:
    """Set tenant context from header before the route runs; reset afterwards."""

    async def asgi_app(scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await app(scope, receive, send)
            return
        raw = (get_header(scope, header_name) or "").strip()
        tenant_id = raw if 0 < len(raw) <= TENANT_ID_MAX_LENGTH else None
        token = current_tenant_id.set(tenant_id)
        try:
            await app(scope, receive, send)
        finally:
            current_tenant_id.reset(token)

    return asgi_app
