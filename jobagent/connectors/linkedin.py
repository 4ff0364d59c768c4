from __future__ import annotations

from collections.abc import AsyncIterator
import logging
from urllib.parse import urlencode

from jobagent.connectors.base import ConnectorConfigurationError, FreshnessPolicy, ScrapedJob, parse_timestamp
from jobagent.connectors.page_scrape import BrowserPageScraper
from jobagent.core.urls import normalize_url

logger = logging.getLogger(__name__)

LOGIN_URL = "https://www.linkedin.com/login"
SEARCH_URL = "https://www.linkedin.com/jobs/search/"
CARD_SELECTOR = ".base-card"
CARD_FIELDS = {
    "url": ("a.base-card__full-link", "href"),
    "company": (".base-search-card__subtitle", None),
    "title": (".base-search-card__title", None),
    "listed": ("time", "datetime"),
}
PLACEHOLDER_DESCRIPTION = "Full job description available on LinkedIn"


class LinkedInConnector:
    source_id = "linkedin"

    def __init__(
        self,
        scraper: BrowserPageScraper,
        policy: FreshnessPolicy,
        *,
        email: str | None,
        password: str | None,
    ) -> None:
        self.scraper = scraper
        self.policy = policy
        self.email = email
        self.password = password

    async def init(self) -> None:
        if not self.email or not self.password:
            raise ConnectorConfigurationError("linkedin requires JSA_LINKEDIN_EMAIL and JSA_LINKEDIN_PASSWORD")
        driver = await self.scraper.open()
        await self.scraper.navigate(LOGIN_URL)
        await driver.fill("#username", self.email)
        await driver.fill("#password", self.password)
        await driver.click('button[type="submit"]')
        logger.info("linkedin login submitted for account=%s", self.email)

    async def close(self) -> None:
        await self.scraper.close()

    async def scrape_jobs(self, query: str, max_jobs: int) -> AsyncIterator[ScrapedJob]:
        await self.scraper.navigate(f"{SEARCH_URL}?{urlencode({'keywords': query, 'location': 'Worldwide'})}")
        driver = self.scraper.driver
        if driver is None:
            return
        cards = await driver.collect(CARD_SELECTOR, CARD_FIELDS)
        yielded = 0
        for card in cards:
            if yielded >= max_jobs:
                return
            url, company, title = card.get("url"), card.get("company"), card.get("title")
            if not url or not company or not title:
                continue
            # Search cards carry a listing date only, which is enough for the coarse horizon.
            posted_at = parse_timestamp(card.get("listed"))
            if not self.policy.admits(posted_at):
                continue
            yielded += 1
            yield ScrapedJob(
                url=normalize_url(url),
                company=company,
                title=title,
                description=PLACEHOLDER_DESCRIPTION,
                posted_at=posted_at,
            )
