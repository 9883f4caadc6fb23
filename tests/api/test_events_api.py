"""Event dispatch and schedule tick endpoints."""

from httpx import ASGITransport, AsyncClient

from app.main import create_app
from tests.helpers import OTHER_TENANT, TENANT, sample_lead

TAG_ON_CREATE = {
    "name": "Tag website leads",
    "trigger": {
        "type": "lead_created",
        "conditions": [{"field": "source", "operator": "equals", "value": "website"}],
    },
    "actions": [{"type": "add_tag", "order": 1, "config": {"tag": "web"}}],
}

NIGHTLY = {
    "name": "Nightly digest",
    "trigger": {
        "type": "time_based",
        "schedule": {"enabled": True, "frequency": "daily", "time": "09:00"},
    },
    "actions": [
        {
            "type": "create_task",
            "order": 1,
            "config": {"task_title": "Review pipeline", "due_date": "1 day"},
        }
    ],
}


async def _activate(client: AsyncClient, body: dict, tenant_id: str = TENANT) -> str:
    headers = {"X-Tenant-ID": tenant_id}
    created = await client.post("/api/v1/workflows", json=body, headers=headers)
    workflow_id = created.json()["id"]
    await client.post(f"/api/v1/workflows/{workflow_id}/activate", headers=headers)
    return workflow_id


async def test_event_runs_matching_workflows(app, client: AsyncClient) -> None:
    app.state.lead_store.put(TENANT, sample_lead())
    workflow_id = await _activate(client, TAG_ON_CREATE)
    await _activate(client, TAG_ON_CREATE, tenant_id=OTHER_TENANT)

    response = await client.post(
        "/api/v1/events",
        json={"trigger_type": "lead_created", "payload": sample_lead(), "wait": True},
    )

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["matched_workflow_ids"] == [workflow_id]
    assert data["rejected"] == []
    [execution] = data["executions"]
    assert execution["status"] == "completed"
    assert execution["record_id"] == "lead-1"
    lead = await app.state.lead_store.get(TENANT, "lead-1")
    assert lead["tags"] == ["web"]


async def test_event_not_matching_conditions_starts_nothing(client: AsyncClient) -> None:
    await _activate(client, TAG_ON_CREATE)
    response = await client.post(
        "/api/v1/events",
        json={"trigger_type": "lead_created", "payload": sample_lead(source="referral")},
    )
    assert response.status_code == 202
    assert response.json() == {"matched_workflow_ids": [], "executions": [], "rejected": []}


async def test_event_over_budget_is_reported_as_rejected(app, client: AsyncClient) -> None:
    app.state.lead_store.put(TENANT, sample_lead())
    workflow_id = await _activate(
        client, {**TAG_ON_CREATE, "limits": {"max_executions_per_hour": 1, "max_executions_per_day": None}}
    )
    body = {"trigger_type": "lead_created", "payload": sample_lead(), "wait": True}

    await client.post("/api/v1/events", json=body)
    response = await client.post("/api/v1/events", json=body)

    data = response.json()
    assert data["executions"] == []
    assert data["rejected"] == [
        {
            "workflow_id": workflow_id,
            "reason": "Rate limit exceeded: max_executions_per_hour (1) reached",
        }
    ]


async def test_unknown_trigger_type_returns_422(client: AsyncClient) -> None:
    response = await client.post("/api/v1/events", json={"trigger_type": "lead_deleted"})
    assert response.status_code == 422


async def test_schedule_tick_fires_due_workflow_once(app, client: AsyncClient) -> None:
    workflow_id = await _activate(client, NIGHTLY)
    params = {"now": "2025-03-10T09:00:15Z"}

    first = await client.post("/api/v1/events/schedule-tick", params=params)
    second = await client.post("/api/v1/events/schedule-tick", params=params)
    await app.state.dispatcher.drain()

    assert first.status_code == 202
    assert first.json()["matched_workflow_ids"] == [workflow_id]
    assert second.json()["matched_workflow_ids"] == []
    assert [t["title"] for t in app.state.task_service.tasks] == ["Review pipeline"]


async def test_lead_event_makes_lead_available_to_manual_trigger(client: AsyncClient) -> None:
    workflow_id = await _activate(client, TAG_ON_CREATE)
    trigger_url = f"/api/v1/workflows/{workflow_id}/trigger"

    unknown = await client.post(trigger_url, json={"record_id": "lead-1", "wait": True})
    assert unknown.status_code == 404

    event = await client.post(
        "/api/v1/events",
        json={"trigger_type": "lead_created", "payload": sample_lead(), "wait": True},
    )
    [execution] = event.json()["executions"]
    assert execution["status"] == "completed", execution
    assert [r["status"] for r in execution["action_results"]] == ["completed"]

    manual = await client.post(trigger_url, json={"record_id": "lead-1", "wait": True})
    assert manual.status_code == 200, manual.text
    assert manual.json()["status"] == "completed"


async def test_lead_store_is_configured_from_settings(monkeypatch) -> None:
    monkeypatch.setenv("CRM_LEAD_STORE", "tests.helpers:seeded_lead_store")
    application = create_app()
    async with application.router.lifespan_context(application):
        transport = ASGITransport(app=application)
        async with AsyncClient(
            transport=transport, base_url="http://test", headers={"X-Tenant-ID": TENANT}
        ) as client:
            workflow_id = await _activate(client, TAG_ON_CREATE)
            response = await client.post(
                f"/api/v1/workflows/{workflow_id}/trigger",
                json={"record_id": "lead-1", "wait": True},
            )

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "completed"
