from __future__ import annotations

import asyncio
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from jobagent.main import app
from jobagent.services.repository import get_repository
from jobagent.services.store import InMemoryRepository


@pytest.fixture
def repository() -> Iterator[InMemoryRepository]:
    store = InMemoryRepository()
    asyncio.run(
        store.insert_job(
            url="https://jobs.example.com/1",
            company="Acme",
            title="Platform Engineer",
            description="Kubernetes",
            fingerprint="acme__platform-engineer",
            source_id="adzuna",
            match_score=77,
        )
    )
    app.dependency_overrides[get_repository] = lambda: store
    yield store
    app.dependency_overrides.clear()


def test_list_jobs_returns_count(repository: InMemoryRepository) -> None:
    client = TestClient(app)
    response = client.get("/jobs", params={"status": "new", "min_score": 50})
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["jobs"][0]["fingerprint"] == "acme__platform-engineer"


def test_list_jobs_rejects_unknown_status(repository: InMemoryRepository) -> None:
    client = TestClient(app)
    response = client.get("/jobs", params={"status": "archived"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_STATUS"


def test_list_jobs_rejects_out_of_range_min_score(repository: InMemoryRepository) -> None:
    client = TestClient(app)
    response = client.get("/jobs", params={"min_score": 101})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_MIN_SCORE"


def test_patch_status_approves_new_job(repository: InMemoryRepository) -> None:
    client = TestClient(app)
    response = client.patch("/jobs/1/status", json={"status": "approved"})
    assert response.status_code == 200
    assert response.json()["status"] == "approved"


def test_new_job_cannot_jump_to_applied(repository: InMemoryRepository) -> None:
    client = TestClient(app)
    response = client.patch("/jobs/1/status", json={"status": "applied"})
    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "INVALID_STATE_TRANSITION"
    assert error["retryable"] is False
    assert error["details"] == {"from_status": "new", "to_status": "applied"}
    assert asyncio.run(repository.get_job(1))["status"] == "new"


def test_patch_status_rejects_unknown_status(repository: InMemoryRepository) -> None:
    client = TestClient(app)
    response = client.patch("/jobs/1/status", json={"status": "archived"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_STATUS"


def test_get_job_validates_id_and_existence(repository: InMemoryRepository) -> None:
    client = TestClient(app)
    assert client.get("/jobs/abc").json()["error"]["code"] == "INVALID_JOB_ID"
    missing = client.get("/jobs/42")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "JOB_NOT_FOUND"


def test_list_submissions_for_job(repository: InMemoryRepository) -> None:
    asyncio.run(
        repository.record_submission(
            job_id=1,
            session_id="auto-1-1700000000000",
            profile={"full_name": "Dana Doe", "email": "dana@example.com", "resume_text": "Engineer"},
        )
    )
    client = TestClient(app)
    response = client.get("/jobs/1/submissions")
    assert response.status_code == 200
    assert response.json()[0]["session_id"] == "auto-1-1700000000000"


def test_unknown_route_uses_error_envelope() -> None:
    client = TestClient(app)
    response = client.get("/nope")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"
