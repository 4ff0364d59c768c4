from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

from jobagent.services.store import InMemoryRepository
from jobagent.worker.retention import execute_retention_sweep

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_retention_uses_posted_at_and_falls_back_to_created_at() -> None:
    created = {"value": NOW - timedelta(days=10)}

    async def run() -> tuple[dict[str, Any], set[str]]:
        repository = InMemoryRepository(clock=lambda: created["value"])
        # Undated and ingested 10 days ago: expired.
        await repository.insert_job(
            url="https://x.example/old-undated", company="A", title="T1", description="", fingerprint="a__t1"
        )
        # Ingested 10 days ago but posted yesterday: kept.
        await repository.insert_job(
            url="https://x.example/recent-posted",
            company="A",
            title="T2",
            description="",
            fingerprint="a__t2",
            posted_at=NOW - timedelta(days=1),
        )
        created["value"] = NOW
        # Ingested now but posted 8 days ago: expired.
        await repository.insert_job(
            url="https://x.example/old-posted",
            company="A",
            title="T3",
            description="",
            fingerprint="a__t3",
            posted_at=NOW - timedelta(days=8),
        )
        result = await execute_retention_sweep(repository, retention_days=7, now=NOW)
        return result, {job["url"] for job in repository.jobs.values()}

    result, remaining = asyncio.run(run())
    assert result == {"deleted": 2, "cutoff": (NOW - timedelta(days=7)).isoformat()}
    assert remaining == {"https://x.example/recent-posted"}
