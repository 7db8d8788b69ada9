"""
Tests for the REST API.
"""

import pytest
from fastapi.testclient import TestClient

from dispatcher.api import create_app


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["jobs"] == 5


def test_snapshot_upload(client):
    response = client.post("/snapshot", json={
        "jobs": [{"id": "j9", "title": "Gutter clean"}, {"id": "j10", "status": "en_route"}],
        "technicians": [],
    })
    assert response.status_code == 200
    body = response.json()
    assert body["jobs_imported"] == 1
    assert len(body["errors"]) == 1


def test_slots(client):
    response = client.post("/slots", json={"day": "2025-03-03"})
    assert response.status_code == 200
    slots = response.json()["slots"]
    assert [[s["start_minute"], s["end_minute"]] for s in slots] == [[750, 1020]]


def test_suggestions_for_unknown_job(client):
    response = client.post("/suggestions", json={"job_id": "missing"})
    assert response.status_code == 404


def test_suggestions(client):
    response = client.post("/suggestions", json={
        "job_id": "j3",
        "customer_preference": {"preferred_times": ["morning"]},
        "days_to_analyze": 7,
    })
    assert response.status_code == 200
    body = response.json()
    assert body["meta"]["has_customer_preferences"] is True
    assert body["meta"]["analyzed_days"] == 7


def test_conflict_check(client):
    response = client.post("/conflicts", json={
        "proposed_start": "2025-03-03T10:30:00",
        "proposed_end": "2025-03-03T11:30:00",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["has_conflicts"] is True
    assert body["has_hard_conflicts"] is False


def test_assign_conflict_returns_409(client):
    response = client.post("/jobs/j2/assign", json={"tech_id": "t1"})
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["type"] == "assignment_conflict"
    assert detail["conflicts"][0]["conflict_type"] == "time_conflict"

    response = client.post("/jobs/j2/assign", json={"tech_id": "t1", "override": True})
    assert response.status_code == 200
    assert response.json()["assigned_technician_id"] == "t1"


def test_assign_completed_job_returns_422(client):
    response = client.post("/jobs/j4/assign", json={"tech_id": "t1"})
    assert response.status_code == 422


def test_unassign(client):
    response = client.post("/jobs/j1/unassign")
    assert response.status_code == 200
    assert response.json()["assigned_technician_id"] is None


def test_assignment_suggestions(client):
    response = client.post("/assignments/suggest", json={"job_id": "j2"})
    assert response.status_code == 200
    body = response.json()
    assert body["top_pick"] == "t2"
    assert body["suggestions"][-1]["is_blocked"] is True


def test_auto_assign_commit(client, service):
    response = client.post("/assignments/auto", json={"day": "2025-03-03", "commit": True})
    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["assigned"] == 1
    assert body["successful"][0]["job_id"] == "j2"
    assert body["successful"][0]["tech_id"] == "t2"
    assert service.repo.get_job("j2").assigned_technician_id == "t2"


def test_bulk_assign(client):
    response = client.post("/assignments/bulk", json={
        "assignments": [{"job_id": "j2", "tech_id": "t2"}, {"job_id": "j3", "tech_id": "t2"}],
    })
    assert response.status_code == 200
    results = response.json()["results"]
    assert [r["success"] for r in results] == [True, False]
    assert "pending_schedule" in results[1]["error"]


def test_route(client):
    response = client.get("/routes/t1/2025-03-03")
    assert response.status_code == 200
    assert response.json()["stops"] == ["j1"]

    assert client.get("/routes/nobody/2025-03-03").status_code == 404


def test_config_roundtrip(client, service):
    config = client.get("/config").json()
    assert config["scheduling"]["buffer_minutes"] == 30
    assert "database" not in config

    response = client.put("/config", json={"overrides": {"scheduling.buffer_minutes": 15}})
    assert response.status_code == 200
    assert service.preferences.buffer_minutes == 15

    response = client.put("/config", json={"overrides": {"scheduling.buffer_minutes": -600}})
    assert response.status_code == 400
    assert service.preferences.buffer_minutes == 15
