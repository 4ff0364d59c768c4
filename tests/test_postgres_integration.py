from __future__ import annotations

import asyncio
import os
from collections.abc import Coroutine
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest

from jobagent.services.repository import (
    DuplicatePostingError,
    InvalidStatusTransitionError,
    PostgresRepository,
    RepositoryNotFoundError,
)

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("JSA_DATABASE_URL")
    if not url:
        pytest.skip("integration tests require JSA_DATABASE_URL")
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    _run(_reset(database_url))


def test_postgres_repository_round_trip(database_url: str) -> None:
    async def run() -> None:
        repository = PostgresRepository(database_url, min_pool_size=1, max_pool_size=2)
        try:
            job = await repository.insert_job(
                url="https://jobs.example.com/pg-1",
                company="Acme",
                title="Engineer",
                description="Postgres",
                fingerprint="acme__engineer",
                source_id="rss",
                match_score=64,
            )
            assert job["status"] == "new"

            with pytest.raises(DuplicatePostingError) as duplicate:
                await repository.insert_job(
                    url="https://jobs.example.com/pg-2",
                    company="Acme",
                    title="Engineer",
                    description="",
                    fingerprint="acme__engineer",
                )
            assert duplicate.value.field == "fingerprint"

            with pytest.raises(InvalidStatusTransitionError):
                await repository.update_job_status(job_id=job["id"], status="applied")
            assert (await repository.get_job(job["id"]))["status"] == "new"

            approved = await repository.update_job_status(job_id=job["id"], status="approved")
            assert approved["status"] == "approved"
            assert [row["id"] for row in await repository.list_jobs(status="approved", min_score=60)] == [job["id"]]

            with pytest.raises(RepositoryNotFoundError):
                await repository.get_profile()
            profile = await repository.upsert_profile(
                {
                    "full_name": "Dana Doe",
                    "email": "dana@example.com",
                    "resume_text": "Engineer",
                    "structured_data": {"skills": ["python"]},
                    "desired_job_titles": ["Engineer"],
                }
            )
            assert profile["structured_data"] == {"skills": ["python"]}

            await repository.record_submission(job_id=job["id"], session_id="auto-1-1", profile=profile)
            deleted = await repository.delete_jobs_older_than(datetime.now(timezone.utc) + timedelta(days=1))
            assert deleted == 1
            submissions = await repository.list_submissions(job["id"])
            assert submissions[0]["email"] == "dana@example.com"
        finally:
            await repository.close()

    _run(run())


async def _reset(database_url: str) -> None:
    repository = PostgresRepository(database_url, min_pool_size=1, max_pool_size=1)
    try:
        await repository.migrate()
    finally:
        await repository.close()
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute("truncate table application_submissions, candidate_profile, job_postings restart identity")
    finally:
        await conn.close()


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)
