"""Pydantic request/response schemas for the API."""

from app.schemas.action_config import ACTION_CONFIG_MODELS
from app.schemas.health import HealthResponse, ReadinessResponse
from app.schemas.workflow import (
    DispatchResponse,
    EventDispatchRequest,
    ManualTriggerRequest,
    TenantStatsResponse,
    WorkflowCreateRequest,
    WorkflowExecutionResponse,
    WorkflowResponse,
    WorkflowUpdateRequest,
    WorkflowVersionResponse,
)

__all__ = [
    "ACTION_CONFIG_MODELS",
    "DispatchResponse",
    "EventDispatchRequest",
    "HealthResponse",
    "ManualTriggerRequest",
    "ReadinessResponse",
    "TenantStatsResponse",
    "WorkflowCreateRequest",
    "WorkflowExecutionResponse",
    "WorkflowResponse",
    "WorkflowUpdateRequest",
    "WorkflowVersionResponse",
]
