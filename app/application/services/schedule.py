"""Schedule matching for time_based triggers.

The service does not poll. An external scheduler (cron, k8s CronJob, a
worker) calls ScheduleTicker.tick() once a minute per tenant; the ticker
hands due workflows to the dispatcher with a synthesized time_based event.
"""

from __future__ import annotations

import calendar
from datetime import datetime

from app.application.dtos.workflow import DispatchResult, RejectedMatch, TriggerEvent
from app.application.interfaces.repositories import IWorkflowRepository
from app.application.services.condition_evaluator import ConditionEvaluator
from app.application.services.trigger_dispatcher import TriggerDispatcher
from app.domain.entities.workflow import TriggerSchedule
from app.domain.exceptions import AdmissionRejectedException
from app.shared.enums import ScheduleFrequency, TriggerType
from app.shared.telemetry.logging import get_logger
from app.shared.telemetry.tracing import traced
from app.shared.utils.datetime import ensure_utc, utc_now

logger = get_logger(__name__)


def _parse_time(value: str) -> tuple[int, int] | None:
    try:
        hour_s, minute_s = value.split(":", 1)
        hour, minute = int(hour_s), int(minute_s)
    except (AttributeError, ValueError):
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def is_schedule_due(schedule: TriggerSchedule | None, at: datetime) -> bool:
    """Return whether the schedule fires in the UTC minute containing `at`.

    daily: every day at `time`. weekly: on `days_of_week` (0=Sunday) at
    `time`. monthly: on `day_of_month` at `time`; a day past the end of
    the month fires on its last day. Disabled or incomplete schedules never fire.
    """
    if schedule is None or not schedule.enabled or schedule.frequency is None:
        return False
    parsed = _parse_time(schedule.time or "")
    if parsed is None:
        return False
    at = ensure_utc(at)
    if (at.hour, at.minute) != parsed:
        return False

    if schedule.frequency == ScheduleFrequency.DAILY:
        return True
    if schedule.frequency == ScheduleFrequency.WEEKLY:
        sunday_based = (at.weekday() + 1) % 7
        return sunday_based in schedule.days_of_week
    if schedule.frequency == ScheduleFrequency.MONTHLY:
        if not schedule.day_of_month:
            return False
        last_day = calendar.monthrange(at.year, at.month)[1]
        return at.day == min(schedule.day_of_month, last_day)
    return False


class ScheduleTicker:
    """Fires due time_based workflows of a tenant; at most once per workflow per minute."""

    def __init__(
        self,
        workflow_repo: IWorkflowRepository,
        dispatcher: TriggerDispatcher,
        condition_evaluator: ConditionEvaluator | None = None,
    ) -> None:
        self.workflow_repo = workflow_repo
        self.dispatcher = dispatcher
        self._conditions = condition_evaluator or ConditionEvaluator()
        self._last_fired: dict[str, datetime] = {}

    @traced("schedule_ticker.tick")
    async def tick(self, tenant_id: str, now: datetime | None = None) -> DispatchResult:
        """Start executions for every workflow whose schedule is due at `now`."""
        now = ensure_utc(now) if now else utc_now()
        minute = now.replace(second=0, microsecond=0)
        workflows = await self.workflow_repo.get_active_by_trigger(
            tenant_id, TriggerType.TIME_BASED
        )
        result = DispatchResult()
        for workflow in workflows:
            if not is_schedule_due(workflow.trigger.schedule, minute):
                continue
            if self._last_fired.get(workflow.id) == minute:
                continue
            event = TriggerEvent(
                tenant_id=tenant_id,
                trigger_type=TriggerType.TIME_BASED,
                payload={"scheduled_at": minute.isoformat(), "workflow_id": workflow.id},
                occurred_at=now,
            )
            if not self._conditions.evaluate(workflow.trigger.conditions, event.payload):
                continue
            self._last_fired[workflow.id] = minute
            result.matched_workflow_ids.append(workflow.id)
            try:
                execution = await self.dispatcher.run_workflow(workflow, event)
            except AdmissionRejectedException as e:
                result.rejected.append(RejectedMatch(workflow_id=workflow.id, reason=e.message))
                continue
            result.executions.append(execution)
        if result.matched_workflow_ids:
            logger.info(
                "Schedule tick for tenant %s at %s: %d due, %d started",
                tenant_id,
                minute.isoformat(),
                len(result.matched_workflow_ids),
                len(result.executions),
            )
        return result
