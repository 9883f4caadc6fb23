"""In-memory repositories (database_backend=memory): process-local, for development and tests."""

from app.infrastructure.memory.execution_store import InMemoryWorkflowExecutionRepository
from app.infrastructure.memory.workflow_store import InMemoryWorkflowRepository

__all__ = [
    "InMemoryWorkflowExecutionRepository",
    "InMemoryWorkflowRepository",
]
