"""Application lifespan: startup and shutdown.

Single place for all startup/shutdown logic. Builds the automation
services once per process and keeps them on app.state for the API
dependencies; no business logic here, only wiring.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI

from app.application.services import (
    ActionExecutor,
    ConditionEvaluator,
    ScheduleTicker,
    TriggerDispatcher,
    WorkflowEngine,
)
from app.application.use_cases.workflows import WorkflowService
from app.core.config import Settings, get_settings
from app.domain.entities.workflow import WorkflowLimits
from app.infrastructure.memory import (
    InMemoryWorkflowExecutionRepository,
    InMemoryWorkflowRepository,
)
from app.infrastructure.persistence import database
from app.infrastructure.persistence.repositories import (
    SqlWorkflowExecutionRepository,
    SqlWorkflowRepository,
)
from app.infrastructure.services import (
    CollaboratorFactory,
    HttpxWebhookCaller,
    WorkflowTemplateRenderer,
)
from app.shared.telemetry.logging import setup_logging

logger = logging.getLogger(__name__)


def build_services(app: FastAPI, settings: Settings, http_client: httpx.AsyncClient) -> None:
    """Wire repositories, adapters and services onto app.state."""
    if settings.uses_sql:
        session_factory = database.get_session_factory()
        workflow_repo = SqlWorkflowRepository(session_factory)
        execution_repo = SqlWorkflowExecutionRepository(session_factory)
    else:
        session_factory = None
        workflow_repo = InMemoryWorkflowRepository()
        execution_repo = InMemoryWorkflowExecutionRepository()

    lead_store = CollaboratorFactory.create_lead_store(settings)
    task_service = CollaboratorFactory.create_task_service(settings)
    messaging = CollaboratorFactory.create_messaging_channel(settings)
    conditions = ConditionEvaluator()
    executor = ActionExecutor(
        lead_store=lead_store,
        messaging=messaging,
        task_service=task_service,
        webhook_caller=HttpxWebhookCaller(
            http_client,
            timeout_seconds=settings.webhook_timeout_seconds,
            user_agent=settings.webhook_user_agent,
        ),
        template_renderer=WorkflowTemplateRenderer(),
    )
    engine = WorkflowEngine(
        workflow_repo=workflow_repo,
        execution_repo=execution_repo,
        action_executor=executor,
        condition_evaluator=conditions,
        delay_unit_seconds=settings.workflow_delay_unit_seconds,
    )
    dispatcher = TriggerDispatcher(
        workflow_repo=workflow_repo,
        execution_repo=execution_repo,
        engine=engine,
        condition_evaluator=conditions,
    )

    app.state.session_factory = session_factory
    app.state.lead_store = lead_store
    app.state.task_service = task_service
    app.state.messaging = messaging
    app.state.dispatcher = dispatcher
    app.state.schedule_ticker = ScheduleTicker(workflow_repo, dispatcher, conditions)
    app.state.workflow_service = WorkflowService(
        workflow_repo,
        execution_repo,
        dispatcher,
        lead_store,
        default_limits=WorkflowLimits(
            max_executions_per_day=settings.workflow_default_max_executions_per_day,
            max_executions_per_hour=settings.workflow_default_max_executions_per_hour,
            execution_timeout_ms=settings.workflow_default_execution_timeout_ms,
        ),
    )


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run startup then yield; on exit run shutdown.

    Startup order: logging, SQL tables (if DATABASE_AUTO_CREATE), shared
    HTTP client, services. Shutdown order: wait for in-flight executions,
    HTTP client close, SQL engine dispose.
    """
    settings = get_settings()
    setup_logging()

    # ---- Startup ----
    if settings.uses_sql and settings.database_auto_create:
        database.get_session_factory()
        await database.init_models(database.engine)
        logger.info("Database tables created (%s)", settings.database_backend)

    # Shared HTTP client for webhook actions (connection reuse).
    app.state.http_client = httpx.AsyncClient(timeout=settings.webhook_timeout_seconds)
    build_services(app, settings, app.state.http_client)
    logger.info(
        "Automation engine started (backend=%s, delay unit=%ss)",
        settings.database_backend,
        settings.workflow_delay_unit_seconds,
    )

    yield

    # ---- Shutdown ----
    dispatcher = getattr(app.state, "dispatcher", None)
    if dispatcher is not None and dispatcher.in_flight:
        logger.info("Waiting for %d in-flight executions", dispatcher.in_flight)
        await dispatcher.drain()

    if getattr(app.state, "http_client", None) is not None:
        await app.state.http_client.aclose()
        app.state.http_client = None
        logger.info("HTTP client closed")

    if database.engine is not None:
        await database.dispose_engine()
        logger.info("Database engine disposed")
