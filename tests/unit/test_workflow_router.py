from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from apps.api_gateway.main import create_app
from fieldsight_agent.assistant.mock import MockVisionAssistant
from fieldsight_agent.common.config import Settings, get_settings
from fieldsight_agent.realtime.gateway import RealtimeGateway
from fieldsight_agent.storage.memory import MemoryInspectionStore


@pytest.fixture()
def auth_settings():
    s = get_settings()
    keys = ["auth_required", "jwt_shared_secret"]
    snapshot = {k: getattr(s, k) for k in keys}
    try:
        yield s
    finally:
        for k, v in snapshot.items():
            setattr(s, k, v)


@pytest.fixture()
def client(auth_settings) -> TestClient:
    auth_settings.auth_required = False
    s = Settings()
    for name in type(s).model_fields:
        if name.startswith(("workflow_ticket_", "workflow_notify_")):
            setattr(s, name, None)
    gateway = RealtimeGateway(settings=s, assistant=MockVisionAssistant(), store=MemoryInspectionStore())
    return TestClient(create_app(gateway=gateway))


def _create_inspection(client: TestClient) -> str:
    resp = client.post("/v1/inspections", json={"technicianId": "tech-1", "siteId": "site-1"})
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "in_progress"
    return body["id"]


def test_log_issue_appends_event(client) -> None:
    inspection_id = _create_inspection(client)

    resp = client.post(
        f"/v1/inspections/{inspection_id}/workflow-actions",
        json={"action": "log_issue", "note": "Valve leak"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["result"] == {"status": "completed", "resultMessage": "Issue logged: Valve leak"}
    assert body["event"]["action"] == "log_issue"
    assert body["event"]["note"] == "Valve leak"

    events = client.get(f"/v1/inspections/{inspection_id}/workflow-events").json()["events"]
    assert [e["resultMessage"] for e in events] == ["Issue logged: Valve leak"]


def test_idempotency_header_replays_result(client) -> None:
    inspection_id = _create_inspection(client)
    url = f"/v1/inspections/{inspection_id}/workflow-actions"

    first = client.post(url, json={"action": "create_ticket"}, headers={"Idempotency-Key": "k-1"})
    second = client.post(url, json={"action": "create_ticket"}, headers={"Idempotency-Key": "k-1"})
    other = client.post(url, json={"action": "create_ticket", "idempotencyKey": "k-2"})

    ref = first.json()["result"]["externalReferenceId"]
    assert ref.startswith("ticket_")
    assert second.json()["result"]["externalReferenceId"] == ref
    assert other.json()["result"]["externalReferenceId"] != ref


def test_unknown_inspection_returns_404(client) -> None:
    resp = client.post("/v1/inspections/missing/workflow-actions", json={"action": "log_issue"})
    assert resp.status_code == 404
    assert client.get("/v1/inspections/missing/workflow-events").status_code == 404


def test_invalid_action_is_422(client) -> None:
    inspection_id = _create_inspection(client)
    resp = client.post(
        f"/v1/inspections/{inspection_id}/workflow-actions", json={"action": "reboot_plant"}
    )
    assert resp.status_code == 422


def test_http_requires_bearer_when_auth_enabled(client, auth_settings) -> None:
    auth_settings.auth_required = True
    auth_settings.jwt_shared_secret = "test-secret-0123456789abcdef-0123456789"

    resp = client.post("/v1/inspections", json={"technicianId": "t", "siteId": "s"})
    assert resp.status_code == 401
    assert resp.json() == {"detail": "Unauthorized"}
