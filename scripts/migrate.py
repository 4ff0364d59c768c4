#!/usr/bin/env python3
"""Create the job agent tables in the database named by JSA_DATABASE_URL."""

from __future__ import annotations

import asyncio
import sys

from jobagent.core.config import get_settings
from jobagent.services.repository import get_repository


async def _migrate() -> int:
    if not get_settings().database_url:
        print("JSA_DATABASE_URL is not set; nothing to migrate", file=sys.stderr)
        return 1
    repository = get_repository()
    try:
        await repository.migrate()
    finally:
        await repository.close()
    print("schema is up to date")
    return 0


def main() -> int:
    return asyncio.run(_migrate())


if __name__ == "__main__":
    raise SystemExit(main())
