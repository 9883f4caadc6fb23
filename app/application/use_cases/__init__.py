"""Application use cases: one entry point per workflow."""

from app.application.use_cases.workflows import WorkflowService

__all__ = ["WorkflowService"]
