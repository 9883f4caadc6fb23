"""Application interfaces (ports): repository and collaborator protocols."""

from app.application.interfaces.repositories import (
    IWorkflowExecutionRepository,
    IWorkflowRepository,
)
from app.application.interfaces.services import (
    ILeadEventObserver,
    ILeadStore,
    IMessagingChannel,
    ITaskService,
    ITemplateRenderer,
    IWebhookCaller,
)

__all__ = [
    "ILeadEventObserver",
    "ILeadStore",
    "IMessagingChannel",
    "ITaskService",
    "ITemplateRenderer",
    "IWebhookCaller",
    "IWorkflowExecutionRepository",
    "IWorkflowRepository",
]
