from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from jobagent.core.urls import domain_of
from jobagent.services.rate_limit import (
    BackoffExhaustedError,
    DomainRateLimiter,
    NetworkRetriesExhaustedError,
    Sleep,
    ThrottledError,
    TransientNetworkError,
    call_with_backoff,
)

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 JobSearchAgent/1.0"
)
REQUEST_TIMEOUT_SECONDS = 30.0

FETCH_ERRORS: tuple[type[Exception], ...] = (
    httpx.HTTPStatusError,
    BackoffExhaustedError,
    NetworkRetriesExhaustedError,
)


class RateLimitedFetcher:
    """httpx client whose every request passes through the per-domain limiter and backoff policy."""

    def __init__(
        self,
        limiter: DomainRateLimiter,
        *,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.limiter = limiter
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    async def open(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=REQUEST_TIMEOUT_SECONDS,
                headers={"User-Agent": USER_AGENT, "Accept-Language": "en-US,en;q=0.5"},
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def get(self, url: str, *, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None) -> httpx.Response:
        client = await self.open()

        async def send() -> httpx.Response:
            try:
                response = await client.get(url, params=params, headers=headers)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                raise TransientNetworkError(f"{type(exc).__name__}: {exc}") from exc
            if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
                raise ThrottledError(f"429 from {url}")
            response.raise_for_status()
            return response

        return await call_with_backoff(send, domain=domain_of(url), limiter=self.limiter, sleep=self._sleep)

    async def get_text(self, url: str, **kwargs: Any) -> str:
        response = await self.get(url, **kwargs)
        return response.text

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        response = await self.get(url, **kwargs)
        return response.json()
