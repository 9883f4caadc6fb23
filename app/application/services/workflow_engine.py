"""Workflow execution engine: runs one admitted execution to a terminal state.

pending -> running -> completed | failed. Actions run sequentially in
ascending order; delays and retry back-off are cancellable sleeps bounded
by the workflow's execution timeout. The terminal record and the
workflow's statistics are both written before run() returns or raises.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime

from app.application.interfaces.repositories import (
    IWorkflowExecutionRepository,
    IWorkflowRepository,
)
from app.application.services.action_executor import ActionExecutor
from app.application.services.condition_evaluator import ConditionEvaluator
from app.domain.entities.workflow import Action, WorkflowEntity, sort_actions
from app.domain.entities.workflow_execution import ActionResult, WorkflowExecutionEntity
from app.domain.exceptions import (
    ActionConfigException,
    ActionException,
    ActionExecutionException,
    AutomationException,
    ExecutionTimeoutException,
)
from app.shared.enums import ActionResultStatus, WorkflowExecutionStatus
from app.shared.telemetry.logging import get_logger
from app.shared.telemetry.tracing import add_span_attributes, add_span_event, traced
from app.shared.utils.datetime import utc_now

logger = get_logger(__name__)

SKIP_DISABLED = "disabled"
SKIP_CONDITIONS = "conditions_not_met"


class WorkflowEngine:
    """Executes workflow actions for an admitted execution and records the outcome."""

    def __init__(
        self,
        *,
        workflow_repo: IWorkflowRepository,
        execution_repo: IWorkflowExecutionRepository,
        action_executor: ActionExecutor,
        condition_evaluator: ConditionEvaluator | None = None,
        delay_unit_seconds: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.workflow_repo = workflow_repo
        self.execution_repo = execution_repo
        self._executor = action_executor
        self._conditions = condition_evaluator or ConditionEvaluator()
        self._delay_unit_seconds = delay_unit_seconds
        self._sleep = sleep
        self._clock = clock

    @traced("workflow_engine.run")
    async def run(
        self, workflow: WorkflowEntity, execution: WorkflowExecutionEntity
    ) -> WorkflowExecutionEntity:
        """Run all actions of `workflow` for a pending `execution`.

        `workflow` is the definition snapshot taken at admission; later
        edits or deactivation do not affect this run. Returns the completed
        execution, or raises the error that failed it (after recording it).
        """
        add_span_attributes(
            workflow_id=workflow.id,
            execution_id=execution.id,
            tenant_id=execution.tenant_id,
        )
        started_at = self._clock()
        started = time.monotonic()
        execution = await self.execution_repo.mark_running(
            execution.id, execution.tenant_id, started_at
        )
        logger.info(
            "Workflow %s execution %s started (tenant=%s, record=%s)",
            workflow.id,
            execution.id,
            execution.tenant_id,
            execution.record_id,
        )
        results: list[ActionResult] = []
        timeout_ms = workflow.limits.execution_timeout_ms

        try:
            async with asyncio.timeout(timeout_ms / 1000):
                await self._run_actions(workflow, execution, results)
        except asyncio.CancelledError:
            await asyncio.shield(
                self._finish(
                    workflow, execution, started, results,
                    succeeded=False, error_message="Execution cancelled",
                )
            )
            raise
        except TimeoutError:
            error = ExecutionTimeoutException(workflow.id, timeout_ms)
            await self._finish(
                workflow, execution, started, results,
                succeeded=False, error_message=error.message,
            )
            raise error from None
        except AutomationException as e:
            await self._finish(
                workflow, execution, started, results,
                succeeded=False, error_message=e.message,
            )
            raise
        except Exception as e:
            await self._finish(
                workflow, execution, started, results,
                succeeded=False, error_message=str(e) or e.__class__.__name__,
            )
            raise
        return await self._finish(
            workflow, execution, started, results, succeeded=True, error_message=None
        )

    async def _run_actions(
        self,
        workflow: WorkflowEntity,
        execution: WorkflowExecutionEntity,
        results: list[ActionResult],
    ) -> None:
        actions = sort_actions(workflow.actions)
        target = execution.trigger_data
        for index, action in enumerate(actions):
            if not action.enabled:
                results.append(_skipped(action, SKIP_DISABLED))
                continue
            if not self._conditions.evaluate(action.conditions, target):
                results.append(_skipped(action, SKIP_CONDITIONS))
                continue
            await self._execute_with_retry(workflow, action, execution, results)
            if action.delay > 0 and index < len(actions) - 1:
                add_span_event("workflow.delay", {"order": action.order, "minutes": action.delay})
                await self._sleep(action.delay * self._delay_unit_seconds)

    async def _execute_with_retry(
        self,
        workflow: WorkflowEntity,
        action: Action,
        execution: WorkflowExecutionEntity,
        results: list[ActionResult],
    ) -> None:
        """Execute one action, retrying ActionExecutionException when the policy allows."""
        policy = workflow.error_handling
        max_attempts = 1 + (max(policy.max_retries, 0) if policy.retry_on_failure else 0)
        started = time.monotonic()
        attempts = 0
        while True:
            attempts += 1
            try:
                await self._executor.execute(action, execution.trigger_data, execution)
            except ActionExecutionException as e:
                if e.retryable and attempts < max_attempts:
                    logger.warning(
                        "Action %s (order=%s) of execution %s failed, retry %d/%d: %s",
                        action.type.value,
                        action.order,
                        execution.id,
                        attempts,
                        max_attempts - 1,
                        e.message,
                    )
                    add_span_event("workflow.retry", {"order": action.order, "attempt": attempts})
                    await self._sleep(policy.retry_delay_ms / 1000)
                    continue
                results.append(_failed(action, attempts, started, e))
                raise
            except ActionConfigException as e:
                results.append(_failed(action, attempts, started, e))
                raise
            results.append(
                ActionResult(
                    order=action.order,
                    type=action.type,
                    status=ActionResultStatus.COMPLETED,
                    attempts=attempts,
                    duration_ms=_elapsed_ms(started),
                )
            )
            return

    async def _finish(
        self,
        workflow: WorkflowEntity,
        execution: WorkflowExecutionEntity,
        started: float,
        results: list[ActionResult],
        *,
        succeeded: bool,
        error_message: str | None,
    ) -> WorkflowExecutionEntity:
        completed_at = self._clock()
        elapsed_ms = _elapsed_ms(started)
        status = (
            WorkflowExecutionStatus.COMPLETED if succeeded else WorkflowExecutionStatus.FAILED
        )
        final = await self.execution_repo.finalize(
            execution.id,
            execution.tenant_id,
            status=status,
            completed_at=completed_at,
            execution_time_ms=elapsed_ms,
            error_message=error_message,
            action_results=list(results),
        )
        await self.workflow_repo.record_execution_outcome(
            workflow.id,
            workflow.tenant_id,
            succeeded=succeeded,
            execution_time_ms=elapsed_ms,
            at=completed_at,
        )
        if succeeded:
            logger.info(
                "Workflow %s execution %s completed in %.1f ms",
                workflow.id,
                execution.id,
                elapsed_ms,
            )
        else:
            logger.warning(
                "Workflow %s execution %s failed after %.1f ms: %s",
                workflow.id,
                execution.id,
                elapsed_ms,
                error_message,
            )
        return final


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000


def _skipped(action: Action, reason: str) -> ActionResult:
    return ActionResult(
        order=action.order,
        type=action.type,
        status=ActionResultStatus.SKIPPED,
        reason=reason,
    )


def _failed(action: Action, attempts: int, started: float, error: ActionException) -> ActionResult:
    return ActionResult(
        order=action.order,
        type=action.type,
        status=ActionResultStatus.FAILED,
        attempts=attempts,
        duration_ms=_elapsed_ms(started),
        error=error.message,
    )
