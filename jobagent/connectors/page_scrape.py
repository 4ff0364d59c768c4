from __future__ import annotations

import asyncio
import logging

from jobagent.automation.driver import BrowserLauncher, PageDriver
from jobagent.core.urls import domain_of
from jobagent.services.rate_limit import DomainRateLimiter, Sleep, ThrottledError, call_with_backoff

logger = logging.getLogger(__name__)


class BrowserPageScraper:
    """Owns one headless page for a page-scrape connector; navigation is rate limited and backs off on 429."""

    def __init__(self, launcher: BrowserLauncher, limiter: DomainRateLimiter, *, sleep: Sleep = asyncio.sleep) -> None:
        self.launcher = launcher
        self.limiter = limiter
        self._sleep = sleep
        self.driver: PageDriver | None = None

    async def open(self) -> PageDriver:
        if self.driver is None:
            self.driver = await self.launcher.launch()
        return self.driver

    async def close(self) -> None:
        if self.driver is not None:
            driver, self.driver = self.driver, None
            await driver.close()

    async def navigate(self, url: str) -> None:
        driver = self.driver
        if driver is None:
            raise RuntimeError("browser not initialized; call init() first")

        async def goto() -> None:
            status = await driver.navigate(url)
            if status == 429:
                raise ThrottledError(f"429 from {url}")

        await call_with_backoff(goto, domain=domain_of(url), limiter=self.limiter, sleep=self._sleep)
