"""Persistence models: ORM entities and mixins."""

from app.infrastructure.persistence.models.mixins import (
    CuidMixin,
    MultiTenantModel,
    SoftDeleteMixin,
    TenantMixin,
    TimestampMixin,
    VersionedMixin,
)
from app.infrastructure.persistence.models.workflow import (
    Workflow,
    WorkflowExecution,
    WorkflowVersionRecord,
)

__all__ = [
    "CuidMixin",
    "MultiTenantModel",
    "SoftDeleteMixin",
    "TenantMixin",
    "TimestampMixin",
    "VersionedMixin",
    "Workflow",
    "WorkflowExecution",
    "WorkflowVersionRecord",
]
