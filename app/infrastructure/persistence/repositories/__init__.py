"""SQLAlchemy repositories (postgres / sqlite backends)."""

from app.infrastructure.persistence.repositories.base import BaseRepository
from app.infrastructure.persistence.repositories.workflow_execution_repo import (
    SqlWorkflowExecutionRepository,
)
from app.infrastructure.persistence.repositories.workflow_repo import (
    SqlWorkflowRepository,
)

__all__ = [
    "BaseRepository",
    "SqlWorkflowExecutionRepository",
    "SqlWorkflowRepository",
]
