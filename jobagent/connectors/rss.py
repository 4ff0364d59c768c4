from __future__ import annotations

import calendar
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
import logging
import re
from typing import Any

from bs4 import BeautifulSoup
import feedparser

from jobagent.connectors.base import FreshnessPolicy, ScrapedJob
from jobagent.connectors.fetch import FETCH_ERRORS, RateLimitedFetcher
from jobagent.core.urls import normalize_url

logger = logging.getLogger(__name__)

FEEDS = (
    "https://remoteok.com/remote-dev-jobs.rss",
    "https://remoteok.com/remote-software-engineer-jobs.rss",
    "https://remoteok.com/remote-full-stack-jobs.rss",
    "https://remoteok.com/remote-backend-jobs.rss",
    "https://remoteok.com/remote-frontend-jobs.rss",
    "https://hnrss.org/jobs",
    "https://weworkremotely.com/categories/remote-programming-jobs.rss",
    "https://weworkremotely.com/categories/remote-full-stack-programming-jobs.rss",
    "https://remotive.com/api/remote-jobs/feed",
    "https://lobste.rs/t/job.rss",
)

_AT_COMPANY_RE = re.compile(r"\bat\s+(.+?)(?:\s*\||$)", re.IGNORECASE)
_COMPANY_DASH_RE = re.compile(r"^(.+?)\s+[-–]\s+")
_PAREN_COMPANY_RE = re.compile(r"\(([^)]+)\)")


def extract_company(title: str) -> str:
    """Guess the company from feed titles like "Role at Acme", "Acme - Role" or "Role (Acme)"."""
    for pattern in (_AT_COMPANY_RE, _COMPANY_DASH_RE, _PAREN_COMPANY_RE):
        match = pattern.search(title)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return "Unknown Company"


def strip_html(value: str) -> str:
    return BeautifulSoup(value, "html.parser").get_text(" ", strip=True)


def entry_published_at(entry: Any) -> datetime | None:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)


class RssConnector:
    source_id = "rss"

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        policy: FreshnessPolicy,
        *,
        feeds: tuple[str, ...] = FEEDS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.fetcher = fetcher
        self.policy = policy
        self.feeds = feeds
        self._clock = clock

    async def init(self) -> None:
        await self.fetcher.open()

    async def close(self) -> None:
        await self.fetcher.close()

    async def scrape_jobs(self, query: str, max_jobs: int) -> AsyncIterator[ScrapedJob]:
        yielded = 0
        for feed_url in self.feeds:
            if yielded >= max_jobs:
                return
            try:
                text = await self.fetcher.get_text(feed_url)
            except FETCH_ERRORS as exc:
                logger.warning("rss feed fetch failed url=%s error=%s", feed_url, exc)
                continue

            feed = feedparser.parse(text)
            if feed.get("bozo") and not feed.entries:
                logger.warning("rss feed unparseable url=%s error=%s", feed_url, feed.get("bozo_exception"))
                continue

            for entry in feed.entries:
                if yielded >= max_jobs:
                    return
                title = str(entry.get("title") or "").strip()
                link = str(entry.get("link") or entry.get("id") or "").strip()
                if not link or not title:
                    continue
                posted_at = entry_published_at(entry)
                if not self.policy.admits(posted_at, now=self._clock()):
                    logger.debug("rss skipping entry title=%s posted_at=%s", title, posted_at)
                    continue
                raw_description = entry.get("summary") or entry.get("description") or ""
                yielded += 1
                yield ScrapedJob(
                    url=normalize_url(link),
                    company=extract_company(title),
                    title=title,
                    description=strip_html(raw_description) or "No description available",
                    posted_at=posted_at,
                )
