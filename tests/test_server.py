import pytest
from fastapi.testclient import TestClient

from gmudgate.config import GateSettings
from gmudgate.gmud.workflow import GmudWorkflow
from gmudgate.integrations.clickup.client import ClickUpClientError
from gmudgate.integrations.clickup.types import Ticket
from gmudgate.observability.internal_metrics import incr
from gmudgate.server import app, get_settings, get_workflow
from tests.clickup_fakes import FakeClickUp


class ServerFakeClickUp(FakeClickUp):
    def get_task(self, task_id):
        return Ticket(task_id=task_id, name="[GMUD] acme - prod (por alice)", status=self.get_status(task_id))


@pytest.fixture
def clickup():
    return ServerFakeClickUp(statuses=["EM ANÁLISE", "APROVADAS"], task_id="999")


@pytest.fixture
def client(settings, clickup, notifier, fake_clock):
    workflow = GmudWorkflow(settings, clickup, notifier, clock=fake_clock, sleep=fake_clock.sleep)
    app.dependency_overrides[get_workflow] = lambda: workflow
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert "timestamp" in body


def test_metrics_exposes_counters(client):
    incr("gmud_created")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert 'gmudgate_metric_total{metric="gmud_created"} 1' in resp.text


def test_create_gmud(client, clickup, notifier):
    resp = client.post(
        "/gmud",
        json={"house": "acme", "environment": "prod", "actor": "alice", "pipeline_url": "https://ci/run/1"},
    )

    assert resp.status_code == 200
    assert resp.json() == {
        "taskId": "999",
        "name": "[GMUD] acme - prod (por alice)",
        "status": "EM ANÁLISE",
        "url": "https://app.clickup.com/t/999",
        "message": "GMUD created",
    }
    assert clickup.created == [("901321558663", "[GMUD] acme - prod (por alice)", "EM ANÁLISE")]
    assert "https://ci/run/1" in clickup.comments[0][1]
    assert len(notifier.messages) == 1


def test_create_gmud_accepts_portuguese_fields(client, clickup):
    resp = client.post(
        "/gmud",
        json={"casa": "br4bet", "ambiente": "prd", "usuario": "rafael.silva", "status": "TO DO"},
    )

    assert resp.status_code == 200
    assert clickup.created == [("901321558663", "[GMUD] br4bet - prd (por rafael.silva)", "TO DO")]


def test_create_gmud_skips_non_production(client, clickup, notifier):
    resp = client.post("/gmud", json={"house": "acme", "environment": "staging"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["taskId"] is None
    assert body["status"] == "SKIPPED"
    assert body["approved"] is True
    assert clickup.created == []
    assert clickup.comments == []
    assert notifier.messages == []


def test_create_gmud_requires_house_and_environment(client, clickup):
    resp = client.post("/gmud", json={"house": "acme"})
    assert resp.status_code == 400
    assert clickup.created == []


def test_create_gmud_upstream_failure(client, clickup):
    clickup.fail_create = True
    resp = client.post("/gmud", json={"house": "acme", "environment": "prod"})
    assert resp.status_code == 502
    assert resp.json()["detail"]["upstream_status"] == 401


def test_get_status(client):
    resp = client.get("/gmud/999/status")
    assert resp.status_code == 200
    body = resp.json()
    assert body["taskId"] == "999"
    assert body["status"]["status"] == "EM ANÁLISE"


def test_get_status_upstream_failure(client, clickup, monkeypatch):
    def _boom(task_id):
        raise ClickUpClientError("Fetch GMUD failed: HTTP 404", status_code=404)

    monkeypatch.setattr(clickup, "get_task", _boom)
    resp = client.get("/gmud/404/status")
    assert resp.status_code == 502


def test_wait_approved(client, clickup, fake_clock):
    resp = client.post("/gmud/999/wait", json={"pollIntervalSeconds": 5})

    assert resp.status_code == 200
    assert resp.json() == {
        "approved": True,
        "taskId": "999",
        "status": "APROVADAS",
        "outcome": "APPROVED",
        "message": "GMUD approved",
    }
    assert fake_clock.sleeps == [5.0]
    assert clickup.status_updates == [("999", "COMPLETE")]


def test_wait_without_body_uses_defaults(client, fake_clock):
    resp = client.post("/gmud/999/wait")
    assert resp.status_code == 200
    assert fake_clock.sleeps == [30.0]


def test_wait_timeout_is_reported_distinctly(client, clickup):
    clickup.statuses = ["EM ANÁLISE"]
    resp = client.post("/gmud/999/wait", json={"timeoutMinutes": 1, "pollIntervalSeconds": 30})

    assert resp.status_code == 200
    body = resp.json()
    assert body["approved"] is False
    assert body["outcome"] == "TIMED_OUT"


def test_wait_rejected_with_custom_labels(client, clickup):
    clickup.statuses = ["blocked"]
    resp = client.post(
        "/gmud/999/wait",
        json={"approvedStatus": "shipped", "rejectedStatus": "Blocked"},
    )
    body = resp.json()
    assert body["outcome"] == "REJECTED"
    assert body["status"] == "BLOCKED"


def test_wait_rejects_identical_labels(client):
    resp = client.post("/gmud/999/wait", json={"approvedStatus": "done", "rejectedStatus": "DONE"})
    assert resp.status_code == 400


def test_update_status(client, clickup):
    resp = client.put("/gmud/999/status", json={"status": "COMPLETE"})
    assert resp.status_code == 200
    assert clickup.status_updates == [("999", "COMPLETE")]


def test_update_status_requires_status(client, clickup):
    resp = client.put("/gmud/999/status", json={})
    assert resp.status_code == 400
    assert clickup.status_updates == []


def test_clickup_webhook_is_acknowledged(client):
    resp = client.post(
        "/webhook/clickup",
        json={"event": "taskStatusUpdated", "task_id": "999", "status": "APROVADAS"},
    )
    assert resp.json() == {"received": True}


def test_unconfigured_service_answers_500():
    app.dependency_overrides[get_settings] = lambda: GateSettings()
    try:
        resp = TestClient(app).get("/gmud/999/status")
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 500
