"""Application layer: interfaces, services, use cases.

Depends only on domain and protocol definitions (DIP).
Infrastructure implements the interfaces (repositories, messaging, webhooks).
"""

from app.application.interfaces import (
    ILeadStore,
    IMessagingChannel,
    ITaskService,
    ITemplateRenderer,
    IWebhookCaller,
    IWorkflowExecutionRepository,
    IWorkflowRepository,
)
from app.application.services.action_executor import ActionExecutor
from app.application.services.condition_evaluator import ConditionEvaluator
from app.application.services.trigger_dispatcher import TriggerDispatcher
from app.application.services.workflow_engine import WorkflowEngine
from app.application.use_cases.workflows import WorkflowService

__all__ = [
    "ActionExecutor",
    "ConditionEvaluator",
    "ILeadStore",
    "IMessagingChannel",
    "ITaskService",
    "ITemplateRenderer",
    "IWebhookCaller",
    "IWorkflowExecutionRepository",
    "IWorkflowRepository",
    "TriggerDispatcher",
    "WorkflowEngine",
    "WorkflowService",
]
