from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
import logging

from jobagent.connectors.base import ConnectorConfigurationError, FreshnessPolicy, ScrapedJob, parse_timestamp
from jobagent.connectors.fetch import FETCH_ERRORS, RateLimitedFetcher
from jobagent.core.urls import normalize_url

logger = logging.getLogger(__name__)

BASE_URL = "https://api.adzuna.com/v1/api/jobs"
COUNTRIES = (("il", "Israel"), ("us", "United States"), ("gb", "United Kingdom"))
RESULTS_PER_PAGE = 50


class AdzunaConnector:
    source_id = "adzuna"

    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        policy: FreshnessPolicy,
        *,
        app_id: str | None,
        api_key: str | None,
        countries: tuple[tuple[str, str], ...] = COUNTRIES,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.fetcher = fetcher
        self.policy = policy
        self.app_id = app_id
        self.api_key = api_key
        self.countries = countries
        self._clock = clock

    async def init(self) -> None:
        if not self.app_id or not self.api_key:
            raise ConnectorConfigurationError("adzuna requires JSA_ADZUNA_APP_ID and JSA_ADZUNA_API_KEY")
        await self.fetcher.open()

    async def close(self) -> None:
        await self.fetcher.close()

    async def scrape_jobs(self, query: str, max_jobs: int) -> AsyncIterator[ScrapedJob]:
        yielded = 0
        for country_code, country_name in self.countries:
            if yielded >= max_jobs:
                return
            try:
                payload = await self.fetcher.get_json(
                    f"{BASE_URL}/{country_code}/search/1",
                    params={
                        "app_id": self.app_id,
                        "app_key": self.api_key,
                        "results_per_page": str(RESULTS_PER_PAGE),
                        "what": query,
                        "max_days_old": "1",
                        "sort_by": "date",
                    },
                    headers={"Accept": "application/json"},
                )
            except FETCH_ERRORS as exc:
                logger.warning("adzuna search failed country=%s error=%s", country_name, exc)
                continue

            results = payload.get("results") if isinstance(payload, dict) else None
            if not results:
                logger.info("adzuna returned no results country=%s", country_name)
                continue

            for item in results:
                if yielded >= max_jobs:
                    return
                url = str(item.get("redirect_url") or "").strip()
                title = str(item.get("title") or "").strip()
                if not url or not title:
                    continue
                posted_at = parse_timestamp(item.get("created"))
                if not self.policy.admits(posted_at, now=self._clock()):
                    continue
                company = (item.get("company") or {}).get("display_name") or "Unknown Company"
                yielded += 1
                yield ScrapedJob(
                    url=normalize_url(url),
                    company=str(company).strip(),
                    title=title,
                    description=str(item.get("description") or "No description available").strip(),
                    posted_at=posted_at,
                )
