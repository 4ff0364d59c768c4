from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging
import time
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_REQUEST_INTERVAL_SECONDS = 30.0
BACKOFF_LADDER_MS: tuple[int, ...] = (60_000, 120_000, 240_000)
NETWORK_RETRY_ATTEMPTS = 3
NETWORK_RETRY_DELAY_SECONDS = 5.0

Sleep = Callable[[float], Awaitable[None]]


class ThrottledError(Exception):
    """Raised by a fetch when the upstream explicitly signals rate limiting (HTTP 429)."""


class TransientNetworkError(Exception):
    """Raised by a fetch on timeouts and connection-level faults."""


class BackoffExhaustedError(Exception):
    """Raised when a throttled operation is still throttled after the full backoff ladder."""


class NetworkRetriesExhaustedError(Exception):
    """Raised when transient network faults outlast the retry budget."""


class DomainRateLimiter:
    """Minimum spacing between requests to the same domain.

    Requests to one domain are serialized by a per-domain lock; different domains never wait on each other.
    """

    def __init__(
        self,
        min_interval_seconds: float = MIN_REQUEST_INTERVAL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._last_request_at: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def last_request_at(self, domain: str) -> float | None:
        return self._last_request_at.get(domain)

    async def acquire(self, domain: str) -> None:
        lock = self._locks.setdefault(domain, asyncio.Lock())
        async with lock:
            last = self._last_request_at.get(domain)
            if last is not None:
                wait_for = self.min_interval_seconds - (self._clock() - last)
                if wait_for > 0:
                    logger.info("rate limiting domain=%s wait_seconds=%.1f", domain, wait_for)
                    await self._sleep(wait_for)
            self._last_request_at[domain] = self._clock()


async def call_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    domain: str,
    limiter: DomainRateLimiter,
    sleep: Sleep = asyncio.sleep,
    ladder_ms: tuple[int, ...] = BACKOFF_LADDER_MS,
    network_retries: int = NETWORK_RETRY_ATTEMPTS,
    network_retry_delay_seconds: float = NETWORK_RETRY_DELAY_SECONDS,
) -> T:
    """Run ``operation`` against ``domain`` under the rate limit.

    Throttling walks the backoff ladder; transient network faults use a separate
    fixed-delay retry budget. Each attempt goes back through the limiter.
    """
    throttle_step = 0
    network_failures = 0
    while True:
        await limiter.acquire(domain)
        try:
            return await operation()
        except ThrottledError as exc:
            if throttle_step >= len(ladder_ms):
                logger.warning("backoff ladder exhausted domain=%s", domain)
                raise BackoffExhaustedError(
                    f"rate limited by {domain} after {len(ladder_ms)} backoff attempts"
                ) from exc
            delay_ms = ladder_ms[throttle_step]
            throttle_step += 1
            logger.warning(
                "rate limited domain=%s backoff_ms=%s attempt=%s",
                domain,
                delay_ms,
                throttle_step,
            )
            await sleep(delay_ms / 1000.0)
        except TransientNetworkError as exc:
            network_failures += 1
            if network_failures > network_retries:
                logger.warning("network retries exhausted domain=%s error=%s", domain, exc)
                raise NetworkRetriesExhaustedError(
                    f"network fault for {domain} after {network_failures} attempts: {exc}"
                ) from exc
            logger.warning(
                "network fault domain=%s error=%s retry=%s/%s",
                domain,
                exc,
                network_failures,
                network_retries,
            )
            await sleep(network_retry_delay_seconds)
