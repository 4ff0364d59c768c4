from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from jobagent.main import app
from jobagent.services.repository import get_repository
from jobagent.services.store import InMemoryRepository

PROFILE = {
    "full_name": "Dana Doe",
    "email": "dana@example.com",
    "resume_text": "Ten years of Python services.",
    "preferred_technologies": ["Python", "Postgres"],
}


@pytest.fixture
def client() -> Iterator[TestClient]:
    store = InMemoryRepository()
    app.dependency_overrides[get_repository] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_missing_profile_returns_404(client: TestClient) -> None:
    response = client.get("/profile")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "PROFILE_NOT_FOUND"


def test_put_then_get_profile(client: TestClient) -> None:
    created = client.put("/profile", json=PROFILE)
    assert created.status_code == 200
    assert created.json()["preferred_technologies"] == ["Python", "Postgres"]

    updated = client.put("/profile", json={**PROFILE, "location": "Tel Aviv"})
    assert updated.json()["created_at"] == created.json()["created_at"]

    fetched = client.get("/profile").json()
    assert fetched["location"] == "Tel Aviv"
    assert fetched["desired_locations"] == []


def test_invalid_email_is_rejected(client: TestClient) -> None:
    response = client.put("/profile", json={**PROFILE, "email": "not-an-email"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_EMAIL"


def test_oversized_resume_is_rejected(client: TestClient) -> None:
    response = client.put("/profile", json={**PROFILE, "resume_text": "x" * 50_001})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "RESUME_TOO_LONG"


def test_missing_required_fields_fail_validation(client: TestClient) -> None:
    response = client.put("/profile", json={"full_name": "Dana"})
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
