from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from itertools import count
from typing import Any

from jobagent.services.job_status import InvalidStatusTransition, validate_job_status_transition
from jobagent.services.repository import (
    PROFILE_FIELDS,
    SNAPSHOT_FIELDS,
    DuplicatePostingError,
    InvalidStatusTransitionError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRepository:
    """Process-local store used when no database is configured, and by tests.

    Mirrors the Postgres constraints: unique URL, unique fingerprint, bounded score
    and validated status transitions.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._job_ids = count(1)
        self._submission_ids = count(1)
        self.jobs: dict[int, dict[str, Any]] = {}
        self.profile: dict[str, Any] | None = None
        self.submissions: list[dict[str, Any]] = []

    async def close(self) -> None:
        return None

    async def migrate(self) -> None:
        return None

    async def get_job(self, job_id: int) -> dict[str, Any]:
        job = self.jobs.get(job_id)
        if job is None:
            raise RepositoryNotFoundError("job not found")
        return dict(job)

    async def list_jobs(self, *, status: str | None = None, min_score: int | None = None) -> list[dict[str, Any]]:
        rows = list(self.jobs.values())
        if status:
            rows = [row for row in rows if row["status"] == status]
        if min_score is not None:
            rows = [row for row in rows if row["match_score"] is not None and row["match_score"] >= min_score]
        rows.sort(key=lambda row: row["id"], reverse=True)
        rows.sort(key=lambda row: -1 if row["match_score"] is None else row["match_score"], reverse=True)
        rows.sort(key=lambda row: row["created_at"], reverse=True)
        return [dict(row) for row in rows]

    async def fingerprint_exists(self, fingerprint: str) -> bool:
        return any(row["fingerprint"] == fingerprint for row in self.jobs.values())

    async def url_exists(self, url: str) -> bool:
        return any(row["url"] == url for row in self.jobs.values())

    async def insert_job(
        self,
        *,
        url: str,
        company: str,
        title: str,
        description: str,
        fingerprint: str,
        source_id: str | None = None,
        match_score: int | None = None,
        posted_at: datetime | None = None,
    ) -> dict[str, Any]:
        if await self.url_exists(url):
            raise DuplicatePostingError("url", url)
        if await self.fingerprint_exists(fingerprint):
            raise DuplicatePostingError("fingerprint", fingerprint)
        if match_score is not None and not 0 <= match_score <= 100:
            raise RepositoryValidationError(f"match_score out of range: {match_score}")

        now = self._clock()
        job = {
            "id": next(self._job_ids),
            "url": url,
            "company": company,
            "title": title,
            "description": description,
            "fingerprint": fingerprint,
            "source_id": source_id,
            "match_score": match_score,
            "status": "new",
            "posted_at": posted_at,
            "created_at": now,
            "updated_at": now,
        }
        self.jobs[job["id"]] = job
        return dict(job)

    async def update_job_status(self, *, job_id: int, status: str) -> dict[str, Any]:
        job = self.jobs.get(job_id)
        if job is None:
            raise RepositoryNotFoundError("job not found")
        try:
            validate_job_status_transition(from_status=job["status"], to_status=status)
        except InvalidStatusTransition as exc:
            raise InvalidStatusTransitionError(job["status"], status) from exc
        job["status"] = status
        job["updated_at"] = self._clock()
        return dict(job)

    async def delete_jobs_older_than(self, cutoff: datetime) -> int:
        expired = [
            job_id
            for job_id, job in self.jobs.items()
            if (job["posted_at"] or job["created_at"]) < cutoff
        ]
        for job_id in expired:
            del self.jobs[job_id]
        return len(expired)

    async def get_profile(self) -> dict[str, Any]:
        if self.profile is None:
            raise RepositoryNotFoundError("profile not found")
        return dict(self.profile)

    async def upsert_profile(self, payload: dict[str, Any]) -> dict[str, Any]:
        now = self._clock()
        created_at = self.profile["created_at"] if self.profile else now
        profile = {field: payload.get(field) for field in PROFILE_FIELDS}
        for list_field in ("desired_job_titles", "desired_locations", "excluded_keywords", "preferred_technologies"):
            profile[list_field] = list(profile.get(list_field) or [])
        profile["created_at"] = created_at
        profile["updated_at"] = now
        self.profile = profile
        return dict(profile)

    async def record_submission(self, *, job_id: int, session_id: str, profile: dict[str, Any]) -> dict[str, Any]:
        submission = {
            "id": next(self._submission_ids),
            "job_id": job_id,
            "session_id": session_id,
            **{field: profile.get(field) for field in SNAPSHOT_FIELDS},
            "submitted_at": self._clock(),
        }
        self.submissions.append(submission)
        return dict(submission)

    async def list_submissions(self, job_id: int) -> list[dict[str, Any]]:
        rows = [dict(row) for row in self.submissions if row["job_id"] == job_id]
        rows.reverse()
        return rows
