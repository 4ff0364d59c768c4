from __future__ import annotations

from datetime import datetime
from functools import lru_cache
import json
from typing import TYPE_CHECKING, Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from jobagent.core.config import get_settings
from jobagent.services.job_status import InvalidStatusTransition, validate_job_status_transition

if TYPE_CHECKING:
    from jobagent.services.store import InMemoryRepository


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates uniqueness or state transition rules."""


class DuplicatePostingError(RepositoryConflictError):
    """Raised when a posting URL or fingerprint is already stored."""

    def __init__(self, field: str, value: str) -> None:
        super().__init__(f"posting with {field} already exists: {value}")
        self.field = field
        self.value = value


class InvalidStatusTransitionError(RepositoryConflictError):
    code = InvalidStatusTransition.code

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Cannot transition from '{from_status}' to '{to_status}'")
        self.from_status = from_status
        self.to_status = to_status


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


PROFILE_FIELDS = (
    "full_name",
    "email",
    "phone",
    "github_url",
    "linkedin_url",
    "location",
    "resume_text",
    "bio",
    "structured_data",
    "desired_job_titles",
    "desired_locations",
    "excluded_keywords",
    "preferred_technologies",
)
SNAPSHOT_FIELDS = ("full_name", "email", "phone", "github_url", "linkedin_url", "location", "resume_text", "bio")

SCHEMA_SQL = """
create table if not exists job_postings (
  id bigserial primary key,
  url text not null unique,
  company text not null,
  title text not null,
  description text not null default '',
  fingerprint text not null unique,
  source_id text,
  match_score integer check (match_score between 0 and 100),
  status text not null default 'new' check (status in ('new', 'approved', 'rejected', 'applied')),
  posted_at timestamptz,
  created_at timestamptz not null default now(),
  updated_at timestamptz not null default now()
);
create index if not exists job_postings_status_idx on job_postings (status);
create index if not exists job_postings_created_at_idx on job_postings (created_at desc);

create table if not exists candidate_profile (
  id integer primary key default 1 check (id = 1),
  full_name text not null,
  email text not null,
  phone text,
  github_url text,
  linkedin_url text,
  location text,
  resume_text text not null,
  bio text,
  structured_data jsonb,
  desired_job_titles text[] not null default '{}',
  desired_locations text[] not null default '{}',
  excluded_keywords text[] not null default '{}',
  preferred_technologies text[] not null default '{}',
  created_at timestamptz not null default now(),
  updated_at timestamptz not null default now()
);

create table if not exists application_submissions (
  id bigserial primary key,
  job_id bigint not null,
  session_id text not null,
  full_name text not null,
  email text not null,
  phone text,
  github_url text,
  linkedin_url text,
  location text,
  resume_text text not null,
  bio text,
  submitted_at timestamptz not null default now()
);
create index if not exists application_submissions_job_idx on application_submissions (job_id);
"""

JOB_COLUMNS = """
  id,
  url,
  company,
  title,
  description,
  fingerprint,
  source_id,
  match_score,
  status,
  posted_at,
  created_at,
  updated_at
"""


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def migrate(self) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    async def get_job(self, job_id: int) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(f"select {JOB_COLUMNS} from job_postings where id = $1", job_id)
        if not row:
            raise RepositoryNotFoundError("job not found")
        return self._job_row_to_dict(row)

    async def list_jobs(self, *, status: str | None = None, min_score: int | None = None) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        conditions: list[str] = []
        params: list[Any] = []
        if status:
            params.append(status)
            conditions.append(f"status = ${len(params)}")
        if min_score is not None:
            params.append(min_score)
            conditions.append(f"match_score >= ${len(params)}")
        where_sql = " and ".join(conditions) if conditions else "true"
        rows = await pool.fetch(
            f"""
            select {JOB_COLUMNS}
            from job_postings
            where {where_sql}
            order by created_at desc, match_score desc nulls last, id desc
            """,
            *params,
        )
        return [self._job_row_to_dict(row) for row in rows]

    async def fingerprint_exists(self, fingerprint: str) -> bool:
        pool = await self._get_pool()
        return bool(await pool.fetchval("select exists(select 1 from job_postings where fingerprint = $1)", fingerprint))

    async def url_exists(self, url: str) -> bool:
        pool = await self._get_pool()
        return bool(await pool.fetchval("select exists(select 1 from job_postings where url = $1)", url))

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
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into job_postings (url, company, title, description, fingerprint, source_id, match_score, posted_at)
                values ($1, $2, $3, $4, $5, $6, $7, $8)
                returning {JOB_COLUMNS}
                """,
                url,
                company,
                title,
                description,
                fingerprint,
                source_id,
                match_score,
                posted_at,
            )
        except pg_exc.UniqueViolationError as exc:
            constraint = getattr(exc, "constraint_name", "") or ""
            if "fingerprint" in constraint:
                raise DuplicatePostingError("fingerprint", fingerprint) from exc
            raise DuplicatePostingError("url", url) from exc
        except pg_exc.CheckViolationError as exc:
            raise RepositoryValidationError(f"invalid posting payload: {exc}") from exc
        return self._job_row_to_dict(row)

    async def update_job_status(self, *, job_id: int, status: str) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await conn.fetchrow(
                    "select status from job_postings where id = $1 for update",
                    job_id,
                )
                if not current:
                    raise RepositoryNotFoundError("job not found")
                from_status = str(current["status"])
                self._validate_job_status_transition(from_status=from_status, to_status=status)
                row = await conn.fetchrow(
                    f"""
                    update job_postings
                    set status = $2, updated_at = now()
                    where id = $1
                    returning {JOB_COLUMNS}
                    """,
                    job_id,
                    status,
                )
                return self._job_row_to_dict(row)

    async def delete_jobs_older_than(self, cutoff: datetime) -> int:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            delete from job_postings
            where (posted_at is not null and posted_at < $1)
               or (posted_at is null and created_at < $1)
            returning id
            """,
            cutoff,
        )
        return len(rows)

    async def get_profile(self) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow("select * from candidate_profile where id = 1")
        if not row:
            raise RepositoryNotFoundError("profile not found")
        return self._profile_row_to_dict(row)

    async def upsert_profile(self, payload: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        values = [payload.get(field) for field in PROFILE_FIELDS]
        structured_index = PROFILE_FIELDS.index("structured_data")
        if values[structured_index] is not None:
            values[structured_index] = json.dumps(values[structured_index])
        for list_field in ("desired_job_titles", "desired_locations", "excluded_keywords", "preferred_technologies"):
            index = PROFILE_FIELDS.index(list_field)
            values[index] = list(values[index] or [])

        columns = ", ".join(PROFILE_FIELDS)
        placeholders = ", ".join(
            f"${index + 1}::jsonb" if field == "structured_data" else f"${index + 1}"
            for index, field in enumerate(PROFILE_FIELDS)
        )
        assignments = ", ".join(f"{field} = excluded.{field}" for field in PROFILE_FIELDS)
        row = await pool.fetchrow(
            f"""
            insert into candidate_profile (id, {columns})
            values (1, {placeholders})
            on conflict (id) do update set {assignments}, updated_at = now()
            returning *
            """,
            *values,
        )
        return self._profile_row_to_dict(row)

    async def record_submission(self, *, job_id: int, session_id: str, profile: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            insert into application_submissions (job_id, session_id, {", ".join(SNAPSHOT_FIELDS)})
            values ($1, $2, {", ".join(f"${index + 3}" for index in range(len(SNAPSHOT_FIELDS)))})
            returning *
            """,
            job_id,
            session_id,
            *[profile.get(field) for field in SNAPSHOT_FIELDS],
        )
        return dict(row)

    async def list_submissions(self, job_id: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            "select * from application_submissions where job_id = $1 order by submitted_at desc, id desc",
            job_id,
        )
        return [dict(row) for row in rows]

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("JSA_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _validate_job_status_transition(*, from_status: str, to_status: str) -> None:
        try:
            validate_job_status_transition(from_status=from_status, to_status=to_status)
        except InvalidStatusTransition as exc:
            raise InvalidStatusTransitionError(from_status, to_status) from exc

    @staticmethod
    def _job_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "url": row["url"],
            "company": row["company"],
            "title": row["title"],
            "description": row["description"],
            "fingerprint": row["fingerprint"],
            "source_id": row["source_id"],
            "match_score": row["match_score"],
            "status": row["status"],
            "posted_at": row["posted_at"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _profile_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        profile = {field: row[field] for field in PROFILE_FIELDS}
        structured = profile.get("structured_data")
        if isinstance(structured, str):
            try:
                profile["structured_data"] = json.loads(structured)
            except json.JSONDecodeError:
                profile["structured_data"] = None
        for list_field in ("desired_job_titles", "desired_locations", "excluded_keywords", "preferred_technologies"):
            profile[list_field] = list(profile.get(list_field) or [])
        profile["created_at"] = row["created_at"]
        profile["updated_at"] = row["updated_at"]
        return profile


@lru_cache
def get_repository() -> PostgresRepository | InMemoryRepository:
    settings = get_settings()
    if not settings.database_url:
        from jobagent.services.store import InMemoryRepository

        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
