from __future__ import annotations

import asyncio

import pytest

from jobagent.services.rate_limit import (
    BACKOFF_LADDER_MS,
    MIN_REQUEST_INTERVAL_SECONDS,
    BackoffExhaustedError,
    DomainRateLimiter,
    NetworkRetriesExhaustedError,
    ThrottledError,
    TransientNetworkError,
    call_with_backoff,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_defaults_match_documented_policy() -> None:
    assert MIN_REQUEST_INTERVAL_SECONDS == 30.0
    assert BACKOFF_LADDER_MS == (60_000, 120_000, 240_000)


def test_limiter_spaces_requests_per_domain() -> None:
    clock = FakeClock()
    limiter = DomainRateLimiter(30.0, clock=clock, sleep=clock.sleep)

    async def run() -> None:
        await limiter.acquire("example.com")
        clock.now += 10.0
        await limiter.acquire("example.com")
        await limiter.acquire("other.org")

    asyncio.run(run())
    assert clock.sleeps == [20.0]
    assert limiter.last_request_at("example.com") == 1030.0
    assert limiter.last_request_at("other.org") == 1030.0


def test_throttling_walks_the_ladder_then_gives_up() -> None:
    clock = FakeClock()
    limiter = DomainRateLimiter(0.0, clock=clock, sleep=clock.sleep)
    attempts = {"count": 0}

    async def always_throttled() -> str:
        attempts["count"] += 1
        raise ThrottledError("429")

    async def run() -> None:
        await call_with_backoff(always_throttled, domain="example.com", limiter=limiter, sleep=clock.sleep)

    with pytest.raises(BackoffExhaustedError):
        asyncio.run(run())
    assert attempts["count"] == 4
    assert clock.sleeps == [60.0, 120.0, 240.0]


def test_throttled_then_success_returns_value() -> None:
    clock = FakeClock()
    limiter = DomainRateLimiter(0.0, clock=clock, sleep=clock.sleep)
    responses: list[object] = [ThrottledError("429"), "ok"]

    async def operation() -> str:
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return str(response)

    result = asyncio.run(call_with_backoff(operation, domain="example.com", limiter=limiter, sleep=clock.sleep))
    assert result == "ok"
    assert clock.sleeps == [60.0]


def test_network_faults_use_fixed_delay_budget() -> None:
    clock = FakeClock()
    limiter = DomainRateLimiter(0.0, clock=clock, sleep=clock.sleep)
    attempts = {"count": 0}

    async def flaky() -> str:
        attempts["count"] += 1
        raise TransientNetworkError("connection reset")

    async def run() -> None:
        await call_with_backoff(flaky, domain="example.com", limiter=limiter, sleep=clock.sleep)

    with pytest.raises(NetworkRetriesExhaustedError):
        asyncio.run(run())
    assert attempts["count"] == 4
    assert clock.sleeps == [5.0, 5.0, 5.0]


def test_every_retry_goes_back_through_the_limiter() -> None:
    clock = FakeClock()
    limiter = DomainRateLimiter(30.0, clock=clock, sleep=clock.sleep)
    responses: list[object] = [TransientNetworkError("reset"), "ok"]

    async def operation() -> str:
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return str(response)

    asyncio.run(call_with_backoff(operation, domain="example.com", limiter=limiter, sleep=clock.sleep))
    # 5s network delay, then the limiter holds the remaining 25s of the interval.
    assert clock.sleeps == [5.0, 25.0]
