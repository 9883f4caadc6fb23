"""Correlation ID middleware.

Propagates X-Correlation-ID for distributed tracing (forward from client or use request ID)
and exposes it to logging through the request context variable.
Uses raw ASGI (no BaseHTTPMiddleware) so the context variable is visible to the route.
"""

import uuid
from typing import Callable

from app.core.tenant_context import current_correlation_id
from app.middleware.request_id import get_header, sanitize_request_id


def CorrelationIDMiddleware(
    app: Callable, header_name: str = "X-Correlation-ID"
) -> Callable:
    """Add or forward X-Correlation-ID; fall back to request_id if set on scope state. Raw ASGI."""

    async def asgi_app(scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await app(scope, receive, send)
            return
        raw = get_header(scope, header_name)
        correlation_id = (
            sanitize_request_id(raw)
            if raw
            else scope.get("state", {}).get("request_id") or str(uuid.uuid4())
        )
        scope.setdefault("state", {})["correlation_id"] = correlation_id
        token = current_correlation_id.set(correlation_id)

        async def send_wrapper(message: dict) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((header_name.encode(), correlation_id.encode()))
                message["headers"] = headers
            await send(message)

        try:
            await app(scope, receive, send_wrapper)
        finally:
            current_correlation_id.reset(token)

    return asgi_app
