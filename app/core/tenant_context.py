"""Request-scoped context: tenant and correlation id.

Middleware sets these context variables per request; the logging filter
stamps them on every record, and API dependencies read the tenant from here.
Tasks created during a request (workflow executions) inherit a copy.
"""

from contextvars import ContextVar

# Current tenant ID for the request (set by TenantContextMiddleware).
current_tenant_id: ContextVar[str | None] = ContextVar(
    "current_tenant_id", default=None
)
# Correlation ID for the request (set by CorrelationIDMiddleware).
current_correlation_id: ContextVar[str | None] = ContextVar(
    "current_correlation_id", default=None
)


def set_tenant_id(tenant_id: str | None) -> None:
    """Set the current tenant ID for this context (e.g. request)."""
    current_tenant_id.set(tenant_id)


def get_tenant_id() -> str | None:
    """Return the current tenant ID if set."""
    return current_tenant_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    current_correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    return current_correlation_id.get()
