"""Application services: condition evaluation, action execution, engine, dispatch, schedules."""

from app.application.services.action_executor import ActionExecutor
from app.application.services.condition_evaluator import (
    UNDEFINED,
    ConditionEvaluator,
    evaluate,
    resolve_path,
)
from app.application.services.schedule import ScheduleTicker, is_schedule_due
from app.application.services.trigger_dispatcher import TriggerDispatcher
from app.application.services.workflow_engine import WorkflowEngine

__all__ = [
    "UNDEFINED",
    "ActionExecutor",
    "ConditionEvaluator",
    "ScheduleTicker",
    "TriggerDispatcher",
    "WorkflowEngine",
    "evaluate",
    "is_schedule_due",
    "resolve_path",
]
