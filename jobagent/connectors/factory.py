from __future__ import annotations

import logging

import httpx

from jobagent.automation.driver import BrowserLauncher, PlaywrightLauncher
from jobagent.connectors.adzuna import AdzunaConnector
from jobagent.connectors.base import SourceConnector
from jobagent.connectors.fetch import USER_AGENT, RateLimitedFetcher
from jobagent.connectors.indeed import IndeedConnector
from jobagent.connectors.linkedin import LinkedInConnector
from jobagent.connectors.linkedin_public import LinkedInPublicConnector
from jobagent.connectors.page_scrape import BrowserPageScraper
from jobagent.connectors.registry import SourceConfig
from jobagent.connectors.rss import RssConnector
from jobagent.core.config import Settings
from jobagent.services.rate_limit import DomainRateLimiter

logger = logging.getLogger(__name__)


def create_connector(
    source: SourceConfig,
    *,
    settings: Settings,
    limiter: DomainRateLimiter,
    client: httpx.AsyncClient | None = None,
    launcher: BrowserLauncher | None = None,
) -> SourceConnector | None:
    """Build the connector registered under ``source.id``; unknown ids yield None."""
    if source.id == "linkedin-public":
        return LinkedInPublicConnector(RateLimitedFetcher(limiter, client=client), source.freshness)
    if source.id == "adzuna":
        return AdzunaConnector(
            RateLimitedFetcher(limiter, client=client),
            source.freshness,
            app_id=settings.adzuna_app_id,
            api_key=settings.adzuna_api_key,
        )
    if source.id == "rss":
        return RssConnector(RateLimitedFetcher(limiter, client=client), source.freshness)

    page_launcher = launcher or PlaywrightLauncher(headless=True, slow_mo_ms=0, user_agent=USER_AGENT)
    if source.id == "linkedin":
        return LinkedInConnector(
            BrowserPageScraper(page_launcher, limiter),
            source.freshness,
            email=settings.linkedin_email,
            password=settings.linkedin_password,
        )
    if source.id == "indeed":
        return IndeedConnector(BrowserPageScraper(page_launcher, limiter), source.freshness)

    logger.warning("unknown source id=%s", source.id)
    return None
