import pytest
from fastapi.testclient import TestClient

from job_orchestrator.app import create_app
from job_orchestrator.config import get_settings
from job_orchestrator.errors import PlanParseError


class StubOrchestrator:
    def __init__(self, job_id="job-7", error=None):
        self.job_id = job_id
        self.error = error
        self.requests = []
        self.jobs = ["job-7"]

    async def handle_request(self, user_id, message, channel_target, tool_results=()):
        self.requests.append((user_id, message, channel_target, list(tool_results)))
        if self.error is not None:
            raise self.error
        return self.job_id

    def active_jobs(self):
        return list(self.jobs)

    def cancel(self, job_id):
        return job_id in self.jobs


@pytest.fixture
def admin_token(monkeypatch):
    monkeypatch.setenv("ADMIN_TOKEN", "s3cret")
    get_settings.cache_clear()
    yield "s3cret"
    get_settings.cache_clear()


def _client(orch):
    return TestClient(create_app(orch))


def test_create_job_accepted():
    orch = StubOrchestrator()
    with _client(orch) as client:
        r = client.post("/jobs", json={"user_id": "u1", "message": "find and enrich plumbers", "channel_target": "42"})
    assert r.status_code == 202
    assert r.json() == {"job_id": "job-7", "complex": True}
    assert orch.requests == [("u1", "find and enrich plumbers", "42", [])]


def test_simple_request_is_not_a_job():
    with _client(StubOrchestrator(job_id=None)) as client:
        r = client.post("/jobs", json={"user_id": "u1", "message": "hi", "channel_target": "42"})
    assert r.status_code == 200
    assert r.json() == {"job_id": None, "complex": False}


def test_planning_failure_is_bad_gateway():
    orch = StubOrchestrator(error=PlanParseError("Failed to parse plan: no JSON array", raw="nope"))
    with _client(orch) as client:
        r = client.post("/jobs", json={"user_id": "u1", "message": "find and enrich plumbers", "channel_target": "42"})
    assert r.status_code == 502
    assert "Failed to parse plan" in r.json()["detail"]


def test_missing_fields_rejected():
    with _client(StubOrchestrator()) as client:
        r = client.post("/jobs", json={"user_id": "u1"})
    assert r.status_code == 422


def test_list_jobs():
    with _client(StubOrchestrator()) as client:
        r = client.get("/jobs")
    assert r.json() == {"count": 1, "jobs": ["job-7"]}


def test_cancel_requires_token(admin_token):
    with _client(StubOrchestrator()) as client:
        assert client.delete("/jobs/job-7").status_code == 401
        assert client.delete("/jobs/job-7", headers={"X-Admin-Token": "wrong"}).status_code == 401
        r = client.delete("/jobs/job-7", headers={"X-Admin-Token": admin_token})
    assert r.status_code == 200
    assert r.json() == {"cancelled": True, "job_id": "job-7"}


def test_cancel_unknown_job(admin_token):
    with _client(StubOrchestrator()) as client:
        r = client.delete("/jobs/job-404", headers={"X-Admin-Token": admin_token})
    assert r.status_code == 404
