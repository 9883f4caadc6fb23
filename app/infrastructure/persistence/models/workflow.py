"""Workflow, WorkflowVersion and WorkflowExecution ORM models."""

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.infrastructure.persistence.database import Base
from app.infrastructure.persistence.models.mixins import (
    CuidMixin,
    MultiTenantModel,
    SoftDeleteMixin,
    TenantMixin,
    VersionedMixin,
)
from app.shared.enums import WorkflowExecutionStatus, WorkflowStatus
from app.shared.utils.datetime import utc_now


def _in_values(column: str, values: list[str]) -> str:
    quoted = ", ".join("'{}'".format(v.replace("'", "''")) for v in values)
    return f"{column} IN ({quoted})"


class Workflow(MultiTenantModel, SoftDeleteMixin, VersionedMixin, Base):
    """Workflow definition plus aggregate stats. Table: workflow.

    Definition columns are written with a version guard; stats columns are
    only ever changed by single-statement increments.
    """

    __tablename__ = "workflow"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=WorkflowStatus.DRAFT.value, index=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa.false()
    )
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="custom")
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    trigger_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    trigger: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    actions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    limits: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    error_handling: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    total_executions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    successful_executions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    failed_executions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=sa.text("0")
    )
    last_executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    average_execution_time_ms: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, server_default=sa.text("0")
    )

    __table_args__ = (
        Index("ix_workflow_tenant_trigger_active", "tenant_id", "trigger_type", "is_active"),
        CheckConstraint(
            _in_values("status", WorkflowStatus.values()),
            name="workflow_status_check",
        ),
    )


class WorkflowVersionRecord(CuidMixin, TenantMixin, Base):
    """Append-only definition history. Table: workflow_version. Rows are never updated."""

    __tablename__ = "workflow_version"

    workflow_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("workflow.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("workflow_id", "version", name="uq_workflow_version"),
    )


class WorkflowExecution(MultiTenantModel, Base):
    """Workflow execution audit. Table: workflow_execution."""

    __tablename__ = "workflow_execution"

    workflow_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("workflow.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workflow_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    trigger_type: Mapped[str] = mapped_column(String(64), nullable=False)
    record_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    trigger_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    context: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=WorkflowExecutionStatus.PENDING.value,
        index=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    execution_time_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_results: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )

    __table_args__ = (
        Index(
            "ix_workflow_execution_tenant_workflow",
            "tenant_id",
            "workflow_id",
        ),
        Index(
            "ix_workflow_execution_workflow_created",
            "workflow_id",
            "created_at",
        ),
        CheckConstraint(
            _in_values("status", WorkflowExecutionStatus.values()),
            name="workflow_execution_status_check",
        ),
    )
