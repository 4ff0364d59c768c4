from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Protocol

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from jobagent.services.rate_limit import TransientNetworkError

logger = logging.getLogger(__name__)

NAVIGATION_TIMEOUT_MS = 30_000
LAUNCH_TIMEOUT_MS = 30_000


class PageDriver(Protocol):
    """The slice of a browser page the automation and scraping code drives."""

    async def navigate(self, url: str, *, timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> int | None: ...

    async def content(self) -> str: ...

    async def query_selector(self, selector: str) -> bool: ...

    async def collect(self, card_selector: str, fields: dict[str, tuple[str, str | None]]) -> list[dict[str, str | None]]: ...

    async def fill(self, selector: str, value: str) -> None: ...

    async def set_input_file(self, selector: str, path: str) -> None: ...

    async def click(self, selector: str) -> None: ...

    async def evaluate(self, script: str, arg: Any = None, *, selector: str | None = None) -> Any: ...

    async def wait(self, milliseconds: int) -> None: ...

    async def close(self) -> None: ...


class BrowserLauncher(Protocol):
    async def launch(self) -> PageDriver: ...


class PlaywrightPageDriver:
    def __init__(self, playwright: Playwright, browser: Browser, page: Page) -> None:
        self._playwright = playwright
        self._browser = browser
        self.page = page
        self._closed = False

    async def navigate(self, url: str, *, timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> int | None:
        """Load ``url`` and wait for the network to go idle; returns the HTTP status when known.

        Timeouts and ``net::ERR`` faults surface as TransientNetworkError.
        """
        try:
            response = await self.page.goto(url, wait_until="networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise TransientNetworkError(f"navigation timeout for {url}: {exc.message}") from exc
        except PlaywrightError as exc:
            if "net::ERR" in exc.message:
                raise TransientNetworkError(f"navigation failed for {url}: {exc.message}") from exc
            raise
        return response.status if response is not None else None

    async def content(self) -> str:
        return await self.page.content()

    async def query_selector(self, selector: str) -> bool:
        return await self.page.query_selector(selector) is not None

    async def collect(self, card_selector: str, fields: dict[str, tuple[str, str | None]]) -> list[dict[str, str | None]]:
        rows: list[dict[str, str | None]] = []
        for card in await self.page.query_selector_all(card_selector):
            row: dict[str, str | None] = {}
            for name, (selector, attribute) in fields.items():
                element = await card.query_selector(selector)
                if element is None:
                    row[name] = None
                elif attribute:
                    row[name] = await element.get_attribute(attribute)
                else:
                    text = await element.text_content()
                    row[name] = text.strip() if text else None
            rows.append(row)
        return rows

    async def fill(self, selector: str, value: str) -> None:
        await self.page.fill(selector, value)

    async def set_input_file(self, selector: str, path: str) -> None:
        await self.page.set_input_files(selector, path)

    async def click(self, selector: str) -> None:
        await self.page.click(selector)

    async def evaluate(self, script: str, arg: Any = None, *, selector: str | None = None) -> Any:
        """Run ``script`` in the page, or against the first element matching ``selector`` when given."""
        if selector is not None:
            return await self.page.locator(selector).first.evaluate(script, arg)
        return await self.page.evaluate(script, arg)

    async def wait(self, milliseconds: int) -> None:
        await self.page.wait_for_timeout(milliseconds)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


@dataclass(slots=True)
class PlaywrightLauncher:
    headless: bool = False
    slow_mo_ms: int = 100
    user_agent: str | None = None

    async def launch(self) -> PlaywrightPageDriver:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                headless=self.headless,
                slow_mo=self.slow_mo_ms,
                timeout=LAUNCH_TIMEOUT_MS,
            )
            page = await browser.new_page(user_agent=self.user_agent) if self.user_agent else await browser.new_page()
        except Exception:
            await playwright.stop()
            raise
        logger.info("browser launched headless=%s slow_mo_ms=%s", self.headless, self.slow_mo_ms)
        return PlaywrightPageDriver(playwright, browser, page)
