"""Process-local lead and task stores (implement ILeadStore / ITaskService).

The CRM owns leads and tasks; these stand in for it in development, in
tests, and behind the HTTP API when no CRM adapter is wired.
"""

from __future__ import annotations

import copy
from collections import deque
from datetime import datetime
from typing import Any

from app.domain.exceptions import ResourceNotFoundException
from app.shared.enums import TriggerType
from app.shared.utils.datetime import utc_now
from app.shared.utils.generators import generate_cuid


class InMemoryLeadStore:
    """ILeadStore over a dict keyed by (tenant_id, lead_id)."""

    def __init__(self) -> None:
        self._leads: dict[tuple[str, str], dict[str, Any]] = {}

    def put(self, tenant_id: str, lead: dict[str, Any]) -> dict[str, Any]:
        """Insert or replace a lead (lead["id"] required)."""
        record = copy.deepcopy(lead)
        record.setdefault("tags", [])
        self._leads[(tenant_id, str(record["id"]))] = record
        return copy.deepcopy(record)

    def observe_event(
        self, tenant_id: str, trigger_type: TriggerType, payload: dict[str, Any]
    ) -> None:
        """Adopt the lead carried by a lead event payload (payload["id"] required).

        An unknown lead is inserted; a known one has the payload fields merged
        into it, so fields the event omits are kept.
        """
        if not trigger_type.value.startswith("lead_") or payload.get("id") in (None, ""):
            return
        existing = self._leads.get((tenant_id, str(payload["id"])))
        if existing is None:
            self.put(tenant_id, payload)
            return
        existing.update(copy.deepcopy(payload))

    def _require(self, tenant_id: str, lead_id: str) -> dict[str, Any]:
        lead = self._leads.get((tenant_id, lead_id))
        if lead is None:
            raise ResourceNotFoundException("lead", lead_id)
        return lead

    async def get(self, tenant_id: str, lead_id: str) -> dict[str, Any] | None:
        lead = self._leads.get((tenant_id, lead_id))
        return copy.deepcopy(lead) if lead is not None else None

    async def update(
        self, tenant_id: str, lead_id: str, patch: dict[str, Any]
    ) -> dict[str, Any]:
        lead = self._require(tenant_id, lead_id)
        lead.update(copy.deepcopy(patch))
        lead["updated_at"] = utc_now().isoformat()
        return copy.deepcopy(lead)

    async def add_tag(self, tenant_id: str, lead_id: str, tag: str) -> dict[str, Any]:
        lead = self._require(tenant_id, lead_id)
        tags = lead.setdefault("tags", [])
        if tag not in tags:
            tags.append(tag)
        return copy.deepcopy(lead)

    async def remove_tag(self, tenant_id: str, lead_id: str, tag: str) -> dict[str, Any]:
        lead = self._require(tenant_id, lead_id)
        lead["tags"] = [t for t in lead.get("tags", []) if t != tag]
        return copy.deepcopy(lead)

    async def change_status(
        self, tenant_id: str, lead_id: str, status: str
    ) -> dict[str, Any]:
        return await self.update(tenant_id, lead_id, {"status": status})

    async def assign_user(
        self, tenant_id: str, lead_id: str, user_id: str
    ) -> dict[str, Any]:
        return await self.update(tenant_id, lead_id, {"assigned_to": user_id})


class InMemoryTaskService:
    """ITaskService that keeps the most recent `history_limit` created tasks."""

    def __init__(self, history_limit: int = 1000) -> None:
        self.tasks: deque[dict[str, Any]] = deque(maxlen=history_limit)

    async def create_task(
        self,
        tenant_id: str,
        title: str,
        *,
        description: str | None,
        due_at: datetime,
        assignee: str | None,
        lead_id: str | None,
    ) -> str:
        task_id = generate_cuid()
        self.tasks.append(
            {
                "id": task_id,
                "tenant_id": tenant_id,
                "title": title,
                "description": description,
                "due_at": due_at,
                "assignee": assignee,
                "lead_id": lead_id,
                "status": "pending",
                "priority": "medium",
            }
        )
        return task_id
