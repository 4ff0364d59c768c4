from __future__ import annotations

from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass, field
import logging
from typing import Any

from opentelemetry import trace

from jobagent.connectors.base import ScrapedJob, SourceConnector
from jobagent.connectors.registry import SourceConfig
from jobagent.core.fingerprint import fingerprint
from jobagent.services.repository import DuplicatePostingError, RepositoryNotFoundError
from jobagent.services.scoring import MatchScorer, build_profile_text

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ConnectorFactory = Callable[[SourceConfig], SourceConnector | None]


@dataclass(slots=True)
class IngestionSummary:
    inserted: int = 0
    duplicates: int = 0
    examined: int = 0
    failed_sources: list[str] = field(default_factory=list)
    per_source: dict[str, dict[str, int]] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "inserted": self.inserted,
            "duplicates": self.duplicates,
            "examined": self.examined,
            "failed_sources": list(self.failed_sources),
            "per_source": {key: dict(value) for key, value in self.per_source.items()},
        }


class IngestionOrchestrator:
    """Pulls candidates from every enabled source in priority order and stores the new ones as ``new`` postings."""

    def __init__(
        self,
        repository: Any,
        scorer: MatchScorer,
        sources: list[SourceConfig],
        connector_factory: ConnectorFactory,
    ) -> None:
        self.repository = repository
        self.scorer = scorer
        self.sources = sources
        self.connector_factory = connector_factory

    async def run(self, query: str) -> IngestionSummary:
        summary = IngestionSummary()
        with tracer.start_as_current_span("ingestion.run") as span:
            span.set_attribute("ingestion.query", query)
            profile_text = await self._load_profile_text()
            for source in sorted(self.sources, key=lambda item: item.priority):
                if not source.enabled:
                    continue
                try:
                    await self._run_source(source, query, profile_text, summary)
                except Exception:
                    logger.exception("source failed source=%s; continuing with next source", source.id)
                    summary.failed_sources.append(source.id)
            span.set_attribute("ingestion.inserted", summary.inserted)
            span.set_attribute("ingestion.duplicates", summary.duplicates)
            span.set_attribute("ingestion.examined", summary.examined)
        logger.info(
            "ingestion finished inserted=%s duplicates=%s examined=%s failed_sources=%s",
            summary.inserted,
            summary.duplicates,
            summary.examined,
            ",".join(summary.failed_sources) or "-",
        )
        return summary

    async def _run_source(self, source: SourceConfig, query: str, profile_text: str | None, summary: IngestionSummary) -> None:
        connector = self.connector_factory(source)
        if connector is None:
            raise LookupError(f"no connector registered for source {source.id}")

        counts = summary.per_source.setdefault(source.id, {"inserted": 0, "duplicates": 0, "examined": 0})
        with tracer.start_as_current_span("ingestion.source") as span:
            span.set_attribute("source.id", source.id)
            try:
                await connector.init()
                async with aclosing(connector.scrape_jobs(query, source.max_jobs)) as jobs:
                    async for job in jobs:
                        outcome = await self._ingest(job, source.id, profile_text)
                        summary.examined += 1
                        counts["examined"] += 1
                        if outcome == "inserted":
                            summary.inserted += 1
                            counts["inserted"] += 1
                        else:
                            summary.duplicates += 1
                            counts["duplicates"] += 1
            finally:
                try:
                    await connector.close()
                except Exception:
                    logger.exception("connector close failed source=%s", source.id)
        logger.info(
            "source finished source=%s inserted=%s duplicates=%s examined=%s",
            source.id,
            counts["inserted"],
            counts["duplicates"],
            counts["examined"],
        )

    async def _ingest(self, job: ScrapedJob, source_id: str, profile_text: str | None) -> str:
        key = fingerprint(job.company, job.title)
        if await self.repository.fingerprint_exists(key) or await self.repository.url_exists(job.url):
            logger.debug("skipping duplicate fingerprint=%s url=%s", key, job.url)
            return "duplicate"

        score: int | None = None
        if profile_text:
            score = await self.scorer.score(f"{job.title} at {job.company}\n\n{job.description}", profile_text)

        try:
            await self.repository.insert_job(
                url=job.url,
                company=job.company,
                title=job.title,
                description=job.description,
                fingerprint=key,
                source_id=source_id,
                match_score=score,
                posted_at=job.posted_at,
            )
        except DuplicatePostingError:
            return "duplicate"
        logger.info("stored posting source=%s fingerprint=%s score=%s", source_id, key, score)
        return "inserted"

    async def _load_profile_text(self) -> str | None:
        try:
            profile = await self.repository.get_profile()
        except RepositoryNotFoundError:
            logger.warning("no candidate profile; postings will be stored unscored")
            return None
        return build_profile_text(profile) or None
