"""Infrastructure implementations of application service interfaces."""

from app.infrastructure.services.factory import CollaboratorFactory
from app.infrastructure.services.lead_store import InMemoryLeadStore, InMemoryTaskService
from app.infrastructure.services.messaging_channel import LogOnlyMessagingChannel
from app.infrastructure.services.webhook_caller import HttpxWebhookCaller
from app.infrastructure.services.workflow_template_renderer import WorkflowTemplateRenderer

__all__ = [
    "CollaboratorFactory",
    "HttpxWebhookCaller",
    "InMemoryLeadStore",
    "InMemoryTaskService",
    "LogOnlyMessagingChannel",
    "WorkflowTemplateRenderer",
]
