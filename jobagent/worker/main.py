from __future__ import annotations

import argparse
import asyncio
from functools import partial
import logging
import random
import signal
from typing import Any

from opentelemetry import trace

from jobagent.connectors.factory import create_connector
from jobagent.connectors.registry import available_sources, enabled_sources, missing_auth_settings
from jobagent.core.config import Settings, get_settings
from jobagent.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from jobagent.services.ingestion import IngestionOrchestrator
from jobagent.services.oracle import get_scoring_oracle
from jobagent.services.rate_limit import DomainRateLimiter
from jobagent.services.repository import get_repository
from jobagent.services.scoring import MatchScorer
from jobagent.worker.retention import execute_retention_sweep

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def build_orchestrator(settings: Settings, repository: Any, limiter: DomainRateLimiter) -> IngestionOrchestrator:
    for source in enabled_sources(settings):
        missing = missing_auth_settings(source, settings)
        if missing:
            logger.warning("skipping source=%s missing credentials=%s", source.id, ",".join(missing))
    return IngestionOrchestrator(
        repository=repository,
        scorer=MatchScorer(get_scoring_oracle()),
        sources=available_sources(settings),
        connector_factory=partial(create_connector, settings=settings, limiter=limiter),
    )


async def run_cycle(settings: Settings, repository: Any, orchestrator: IngestionOrchestrator) -> dict[str, Any]:
    with tracer.start_as_current_span("worker.ingestion_cycle"):
        summary = await orchestrator.run(settings.search_query)
        retention = await execute_retention_sweep(repository, retention_days=settings.retention_days)
    return {"ingestion": summary.as_dict(), "retention": retention}


async def ingestion_loop(settings: Settings, stop: asyncio.Event) -> None:
    """Run ingestion cycles until ``stop`` is set; a failed cycle backs off instead of ending the loop."""
    repository = get_repository()
    orchestrator = build_orchestrator(settings, repository, DomainRateLimiter())
    backoff = settings.ingestion_interval_seconds
    while not stop.is_set():
        try:
            await run_cycle(settings, repository, orchestrator)
            sleep_for = settings.ingestion_interval_seconds
            backoff = settings.ingestion_interval_seconds
        except Exception as exc:
            jitter = random.uniform(0.0, 0.5)
            sleep_for = min(backoff * (2.0 + jitter), settings.max_backoff_seconds)
            logger.exception("ingestion cycle failed: %s; retry in %.1fs", exc, sleep_for)
            backoff = sleep_for
        try:
            await asyncio.wait_for(stop.wait(), timeout=sleep_for)
        except asyncio.TimeoutError:
            pass


async def run_worker(*, once: bool = False) -> None:
    settings = get_settings()
    configure_logging()
    telemetry_runtime = setup_telemetry(settings, component="worker")
    repository = get_repository()
    try:
        if once:
            orchestrator = build_orchestrator(settings, repository, DomainRateLimiter())
            result = await run_cycle(settings, repository, orchestrator)
            logger.info("single ingestion cycle finished result=%s", result)
            return

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, stop.set)
        await ingestion_loop(settings, stop)
    finally:
        await repository.close()
        shutdown_telemetry(telemetry_runtime)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the job ingestion worker.")
    parser.add_argument("--once", action="store_true", help="run a single ingestion cycle and exit")
    args = parser.parse_args()
    asyncio.run(run_worker(once=args.once))


if __name__ == "__main__":
    main()
