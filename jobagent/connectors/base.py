from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal, Protocol

MissingDatePolicy = Literal["accept", "discard"]


class ConnectorConfigurationError(Exception):
    """Raised when a connector is missing credentials or settings it needs to run."""


@dataclass(slots=True)
class ScrapedJob:
    url: str
    company: str
    title: str
    description: str
    posted_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class FreshnessPolicy:
    horizon: timedelta
    missing_date: MissingDatePolicy = "accept"

    def admits(self, posted_at: datetime | None, *, now: datetime | None = None) -> bool:
        if posted_at is None:
            return self.missing_date == "accept"
        current = now or datetime.now(timezone.utc)
        if posted_at.tzinfo is None:
            posted_at = posted_at.replace(tzinfo=timezone.utc)
        return current - posted_at <= self.horizon


class SourceConnector(Protocol):
    """One external job source.

    ``scrape_jobs`` yields each candidate once; callers run ``init`` before and
    ``close`` after iterating, whether or not iteration completed.
    """

    source_id: str

    async def init(self) -> None: ...

    def scrape_jobs(self, query: str, max_jobs: int) -> AsyncIterator[ScrapedJob]: ...

    async def close(self) -> None: ...


def parse_timestamp(value: object) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
