"""FastAPI application for the workflow automation engine.

create_app() wires the lifespan (backend, collaborators, engine, dispatcher),
the exception handlers, the request/correlation/tenant middlewares and the
v1 router. Settings are read inside create_app() so tests can override the
environment and clear the get_settings cache first.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import api_router
from app.core.config import get_settings
from app.core.exception_handlers import register_exception_handlers
from app.core.lifespan import create_lifespan
from app.middleware import (
    CorrelationIDMiddleware,
    RequestIDMiddleware,
    TenantContextMiddleware,
)

OPENAPI_TAGS = [
    {"name": "workflows", "description": "Workflow definitions, lifecycle, runs and statistics."},
    {"name": "events", "description": "Domain events and the schedule tick hook."},
    {"name": "health", "description": "Liveness and readiness probes."},
]


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Multi-tenant CRM workflow automation: triggers, conditions, actions.",
        debug=settings.debug,
        lifespan=create_lifespan,
        openapi_tags=OPENAPI_TAGS,
    )

    register_exception_handlers(app)

    # Last added runs outermost: request id, correlation id, tenant, CORS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.allowed_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TenantContextMiddleware, header_name=settings.tenant_header_name)
    app.add_middleware(CorrelationIDMiddleware, header_name=settings.correlation_id_header)
    app.add_middleware(RequestIDMiddleware, header_name=settings.request_id_header)

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/", include_in_schema=False)
    def root() -> dict[str, str]:
        """Service name, version and where the API docs live."""
        return {"name": settings.app_name, "version": settings.app_version, "docs": "/docs"}

    return app


app = create_app()
