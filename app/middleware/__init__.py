"""Raw-ASGI middlewares registered by app.main.create_app().

Request id runs outermost so the correlation id can fall back to it; the
tenant header is read innermost, just before routing.
"""

from app.middleware.correlation_id import CorrelationIDMiddleware
from app.middleware.request_id import RequestIDMiddleware
from app.middleware.tenant_context import TenantContextMiddleware

__all__ = [
    "CorrelationIDMiddleware",
    "RequestIDMiddleware",
    "TenantContextMiddleware",
]
