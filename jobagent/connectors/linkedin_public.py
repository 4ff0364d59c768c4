from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta, timezone
import logging
import re

from bs4 import BeautifulSoup

from jobagent.connectors.base import FreshnessPolicy, ScrapedJob
from jobagent.connectors.fetch import FETCH_ERRORS, RateLimitedFetcher
from jobagent.core.urls import normalize_url

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.linkedin.com/jobs-guest/jobs/api/seeMoreJobPostings/search"
DETAIL_URL = "https://www.linkedin.com/jobs-guest/jobs/api/jobPosting/{job_id}"
VIEW_URL = "https://www.linkedin.com/jobs/view/{job_id}"
LOCATIONS = ("Tel Aviv, Israel", "Israel", "Remote")
LAST_24_HOURS = "r86400"

_POSTED_AGO_RE = re.compile(r"(\d+)\s+(minute|hour|day|week|month)s?\s+ago", re.IGNORECASE)
_UNIT_DELTAS = {
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
}
_URN_ID_RE = re.compile(r"(\d+)$")


def parse_posted_ago(text: str, *, now: datetime) -> datetime | None:
    match = _POSTED_AGO_RE.search(text)
    if match is None:
        return None
    amount = int(match.group(1))
    return now - amount * _UNIT_DELTAS[match.group(2).lower()]


def parse_search_cards(html: str) -> list[tuple[str, str, str]]:
    """Return ``(job_id, title, company)`` for each job card of a guest search page."""
    soup = BeautifulSoup(html, "html.parser")
    cards: list[tuple[str, str, str]] = []
    for node in soup.select("[data-entity-urn], [data-job-id]"):
        raw_id = node.get("data-job-id") or node.get("data-entity-urn") or ""
        id_match = _URN_ID_RE.search(str(raw_id))
        title_node = node.find("h3")
        company_node = node.find("h4")
        if id_match is None or title_node is None or company_node is None:
            continue
        title = title_node.get_text(" ", strip=True)
        company = company_node.get_text(" ", strip=True)
        if title and company:
            cards.append((id_match.group(1), title, company))
    return cards


def parse_detail(html: str, *, now: datetime) -> tuple[str | None, datetime | None]:
    soup = BeautifulSoup(html, "html.parser")
    description_node = soup.select_one(".show-more-less-html__markup") or soup.select_one("[class*=description]")
    description = description_node.get_text(" ", strip=True) if description_node is not None else None
    posted_node = soup.select_one(".posted-time-ago__text")
    posted_text = posted_node.get_text(" ", strip=True) if posted_node is not None else soup.get_text(" ", strip=True)
    return description or None, parse_posted_ago(posted_text, now=now)


class LinkedInPublicConnector:
    source_id = "linkedin-public"

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        policy: FreshnessPolicy,
        *,
        locations: tuple[str, ...] = LOCATIONS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.fetcher = fetcher
        self.policy = policy
        self.locations = locations
        self._clock = clock

    async def init(self) -> None:
        await self.fetcher.open()

    async def close(self) -> None:
        await self.fetcher.close()

    async def scrape_jobs(self, query: str, max_jobs: int) -> AsyncIterator[ScrapedJob]:
        yielded = 0
        seen: set[str] = set()
        for location in self.locations:
            if yielded >= max_jobs:
                return
            try:
                html = await self.fetcher.get_text(
                    SEARCH_URL,
                    params={"keywords": query, "location": location, "f_TPR": LAST_24_HOURS, "start": "0", "sortBy": "DD"},
                )
            except FETCH_ERRORS as exc:
                logger.warning("linkedin-public search failed location=%s error=%s", location, exc)
                continue

            for job_id, title, company in parse_search_cards(html):
                if yielded >= max_jobs:
                    return
                if job_id in seen:
                    continue
                seen.add(job_id)

                description: str | None = None
                posted_at: datetime | None = None
                try:
                    detail_html = await self.fetcher.get_text(DETAIL_URL.format(job_id=job_id))
                    description, posted_at = parse_detail(detail_html, now=self._clock())
                except FETCH_ERRORS as exc:
                    logger.info("linkedin-public detail unavailable job_id=%s error=%s", job_id, exc)

                if not self.policy.admits(posted_at, now=self._clock()):
                    logger.debug("linkedin-public skipping stale job_id=%s posted_at=%s", job_id, posted_at)
                    continue
                yielded += 1
                yield ScrapedJob(
                    url=normalize_url(VIEW_URL.format(job_id=job_id)),
                    company=company,
                    title=title,
                    description=description or "No description available",
                    posted_at=posted_at,
                )
