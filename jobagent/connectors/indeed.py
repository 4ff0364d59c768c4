from __future__ import annotations

from collections.abc import AsyncIterator
import logging
from urllib.parse import urlencode

from jobagent.connectors.base import FreshnessPolicy, ScrapedJob
from jobagent.connectors.page_scrape import BrowserPageScraper
from jobagent.core.urls import normalize_url

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.indeed.com/jobs"
VIEW_URL = "https://www.indeed.com/viewjob?jk={job_key}"
CARD_SELECTOR = ".job_seen_beacon"
CARD_FIELDS = {
    "job_key": ("a[data-jk]", "data-jk"),
    "company": ('[data-testid="company-name"]', None),
    "title": (".jobTitle", None),
    "snippet": (".job-snippet", None),
}


class IndeedConnector:
    source_id = "indeed"

    def __init__(self, scraper: BrowserPageScraper, policy: FreshnessPolicy) -> None:
        self.scraper = scraper
        self.policy = policy

    async def init(self) -> None:
        await self.scraper.open()

    async def close(self) -> None:
        await self.scraper.close()

    async def scrape_jobs(self, query: str, max_jobs: int) -> AsyncIterator[ScrapedJob]:
        await self.scraper.navigate(f"{SEARCH_URL}?{urlencode({'q': query, 'l': ''})}")
        driver = self.scraper.driver
        if driver is None:
            return
        cards = await driver.collect(CARD_SELECTOR, CARD_FIELDS)
        if not cards:
            logger.info("indeed returned no job cards; page structure may have changed")
        yielded = 0
        for card in cards:
            if yielded >= max_jobs:
                return
            job_key, company, title = card.get("job_key"), card.get("company"), card.get("title")
            if not job_key or not company or not title:
                continue
            # Result cards only show relative ages; treated as undated.
            if not self.policy.admits(None):
                continue
            yielded += 1
            yield ScrapedJob(
                url=normalize_url(VIEW_URL.format(job_key=job_key)),
                company=company,
                title=title,
                description=card.get("snippet") or "No description available",
            )
