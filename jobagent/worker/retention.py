from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any

logger = logging.getLogger(__name__)


async def execute_retention_sweep(repository: Any, *, retention_days: int, now: datetime | None = None) -> dict[str, Any]:
    """Delete postings whose posted_at (or created_at when undated) falls before the retention horizon."""
    current = now or datetime.now(timezone.utc)
    cutoff = current - timedelta(days=retention_days)
    deleted = await repository.delete_jobs_older_than(cutoff)
    if deleted:
        logger.info("retention sweep deleted=%s cutoff=%s", deleted, cutoff.isoformat())
    return {"deleted": deleted, "cutoff": cutoff.isoformat()}
