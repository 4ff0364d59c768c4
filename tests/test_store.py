from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from jobagent.services.repository import (
    DuplicatePostingError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)
from jobagent.services.store import InMemoryRepository


def _posting(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "url": "https://jobs.example.com/123",
        "company": "Acme",
        "title": "Backend Engineer",
        "description": "Python and Postgres",
        "fingerprint": "acme__backend-engineer",
        "source_id": "rss",
    }
    payload.update(overrides)
    return payload


def test_duplicate_url_is_rejected_and_only_one_row_stored() -> None:
    async def run() -> InMemoryRepository:
        repository = InMemoryRepository()
        await repository.insert_job(**_posting())
        with pytest.raises(DuplicatePostingError) as exc_info:
            await repository.insert_job(**_posting(fingerprint="other__role"))
        assert exc_info.value.field == "url"
        return repository

    repository = asyncio.run(run())
    assert len(repository.jobs) == 1


def test_duplicate_fingerprint_is_rejected() -> None:
    async def run() -> None:
        repository = InMemoryRepository()
        await repository.insert_job(**_posting())
        with pytest.raises(DuplicatePostingError) as exc_info:
            await repository.insert_job(**_posting(url="https://jobs.example.com/456"))
        assert exc_info.value.field == "fingerprint"

    asyncio.run(run())


def test_match_score_must_be_in_range() -> None:
    async def run() -> None:
        repository = InMemoryRepository()
        with pytest.raises(RepositoryValidationError):
            await repository.insert_job(**_posting(match_score=101))

    asyncio.run(run())


def test_list_jobs_filters_by_status_and_min_score() -> None:
    async def run() -> list[dict[str, Any]]:
        repository = InMemoryRepository(clock=lambda: datetime(2024, 5, 1, tzinfo=timezone.utc))
        low = await repository.insert_job(**_posting(url="https://a.example/1", fingerprint="a__1", match_score=40))
        high = await repository.insert_job(**_posting(url="https://a.example/2", fingerprint="a__2", match_score=90))
        await repository.insert_job(**_posting(url="https://a.example/3", fingerprint="a__3"))
        await repository.update_job_status(job_id=low["id"], status="approved")
        await repository.update_job_status(job_id=high["id"], status="approved")
        return await repository.list_jobs(status="approved", min_score=50)

    rows = asyncio.run(run())
    assert [row["match_score"] for row in rows] == [90]


def test_get_missing_job_and_profile() -> None:
    async def run() -> None:
        repository = InMemoryRepository()
        with pytest.raises(RepositoryNotFoundError):
            await repository.get_job(99)
        with pytest.raises(RepositoryNotFoundError):
            await repository.get_profile()

    asyncio.run(run())


def test_submission_snapshot_survives_retention() -> None:
    now = datetime(2024, 5, 10, tzinfo=timezone.utc)

    async def run() -> InMemoryRepository:
        repository = InMemoryRepository(clock=lambda: now)
        job = await repository.insert_job(**_posting(posted_at=now - timedelta(days=30)))
        profile = await repository.upsert_profile(
            {"full_name": "Dana Doe", "email": "dana@example.com", "resume_text": "Engineer"}
        )
        await repository.record_submission(job_id=job["id"], session_id="auto-1-1", profile=profile)
        deleted = await repository.delete_jobs_older_than(now - timedelta(days=7))
        assert deleted == 1
        return repository

    repository = asyncio.run(run())
    assert repository.jobs == {}
    assert repository.submissions[0]["full_name"] == "Dana Doe"
    assert repository.submissions[0]["session_id"] == "auto-1-1"
