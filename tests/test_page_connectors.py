from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any

import pytest

from jobagent.connectors.base import ConnectorConfigurationError, FreshnessPolicy, ScrapedJob
from jobagent.connectors.factory import create_connector
from jobagent.connectors.indeed import IndeedConnector
from jobagent.connectors.linkedin import LinkedInConnector
from jobagent.connectors.linkedin_public import LinkedInPublicConnector
from jobagent.connectors.page_scrape import BrowserPageScraper
from jobagent.connectors.registry import get_source
from jobagent.core.config import Settings
from jobagent.services.rate_limit import DomainRateLimiter


async def _no_sleep(_: float) -> None:
    return None


class CardDriver:
    def __init__(self, cards: list[dict[str, str | None]], statuses: list[int | None] | None = None) -> None:
        self.cards = cards
        self.statuses = statuses or []
        self.visited: list[str] = []
        self.closed = False

    async def navigate(self, url: str, *, timeout_ms: int = 30_000) -> int | None:
        self.visited.append(url)
        return self.statuses.pop(0) if self.statuses else 200

    async def collect(self, card_selector: str, fields: dict[str, Any]) -> list[dict[str, str | None]]:
        return self.cards

    async def close(self) -> None:
        self.closed = True


class StaticLauncher:
    def __init__(self, driver: CardDriver) -> None:
        self.driver = driver

    async def launch(self) -> CardDriver:
        return self.driver


def _scraper(driver: CardDriver) -> BrowserPageScraper:
    return BrowserPageScraper(StaticLauncher(driver), DomainRateLimiter(0.0, sleep=_no_sleep), sleep=_no_sleep)


def test_indeed_reads_cards_and_skips_incomplete_ones() -> None:
    driver = CardDriver(
        [
            {"job_key": "abc123", "company": "Hooli", "title": "Python Engineer", "snippet": "APIs"},
            {"job_key": None, "company": "Hooli", "title": "No key"},
        ],
        statuses=[429, 200],
    )

    async def run() -> list[ScrapedJob]:
        connector = IndeedConnector(_scraper(driver), FreshnessPolicy(timedelta(days=7)))
        await connector.init()
        try:
            return [job async for job in connector.scrape_jobs("python", 10)]
        finally:
            await connector.close()

    jobs = asyncio.run(run())
    assert [job.url for job in jobs] == ["https://www.indeed.com/viewjob?jk=abc123"]
    assert jobs[0].description == "APIs"
    assert len(driver.visited) == 2
    assert driver.closed is True


def test_linkedin_login_requires_credentials() -> None:
    async def run() -> None:
        connector = LinkedInConnector(
            _scraper(CardDriver([])),
            FreshnessPolicy(timedelta(days=7)),
            email=None,
            password=None,
        )
        with pytest.raises(ConnectorConfigurationError):
            await connector.init()

    asyncio.run(run())


def test_factory_builds_registered_connectors() -> None:
    settings = Settings()
    limiter = DomainRateLimiter(0.0)
    public = get_source(settings, "linkedin-public")
    assert public is not None
    assert isinstance(create_connector(public, settings=settings, limiter=limiter), LinkedInPublicConnector)

    indeed = get_source(settings, "indeed")
    assert indeed is not None
    connector = create_connector(indeed, settings=settings, limiter=limiter, launcher=StaticLauncher(CardDriver([])))
    assert isinstance(connector, IndeedConnector)
