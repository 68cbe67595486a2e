"""
Tests for the rate limiter and the retry supervisor.
"""

import asyncio
import time

import pytest

from ingest.core.errors import (
    ConfigurationError,
    FetchError,
    NetworkError,
    ParseError,
    RateLimitTimeoutError,
)
from ingest.core.rate_limit import RateLimiter, RetryPolicy, run_with_retry, with_retry


class TestRetryPolicy:
    def test_exponential_delay_is_capped(self):
        policy = RetryPolicy(max_attempts=5, base_delay=2, max_delay=10, jitter=False)
        assert [policy.delay_for(n) for n in range(1, 5)] == [2, 4, 8, 10]

    def test_jitter_adds_at_most_half(self):
        policy = RetryPolicy(base_delay=4, max_delay=30, jitter=True)
        for _ in range(20):
            assert 4 <= policy.delay_for(1) <= 6


class TestRunWithRetry:
    async def test_succeeds_on_third_attempt(self, fast_retry):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise NetworkError("connection reset")
            return "ok"

        result, attempts = await run_with_retry(flaky, fast_retry)
        assert result == "ok"
        assert attempts == 3

    async def test_exhausted_retries_raise_last_error(self, fast_retry):
        async def always_down():
            raise FetchError(503, url="https://example.com")

        with pytest.raises(FetchError) as exc_info:
            await run_with_retry(always_down, fast_retry)
        assert exc_info.value.attempts == 3

    @pytest.mark.parametrize(
        "error",
        [
            FetchError(404),
            ParseError("markup changed"),
            ConfigurationError("bad url"),
        ],
    )
    async def test_permanent_errors_are_not_retried(self, fast_retry, error):
        calls = []

        async def broken():
            calls.append(1)
            raise error

        with pytest.raises(type(error)):
            await run_with_retry(broken, fast_retry)
        assert len(calls) == 1

    async def test_decorator(self, fast_retry):
        calls = []

        @with_retry(fast_retry)
        async def fetch_page(url):
            calls.append(url)
            if len(calls) == 1:
                raise FetchError(429, url=url)
            return url.upper()

        assert await fetch_page("abc") == "ABC"
        assert len(calls) == 2


class TestRateLimiter:
    async def test_bounds_concurrency(self):
        limiter = RateLimiter(max_concurrent=2, min_interval=0, max_wait=5)
        active = 0
        peak = 0

        async def request(i):
            nonlocal active, peak
            async with limiter.slot(f"https://host{i}.example/"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(request(i) for i in range(6)))
        assert peak == 2

    async def test_queued_request_times_out(self):
        limiter = RateLimiter(max_concurrent=1, min_interval=0, max_wait=0.05)
        async with limiter.slot("https://a.example/"):
            with pytest.raises(RateLimitTimeoutError):
                async with limiter.slot("https://b.example/"):
                    pass

        # The slot is free again afterwards
        async with limiter.slot("https://b.example/"):
            pass

    async def test_spaces_requests_to_same_host(self):
        limiter = RateLimiter(max_concurrent=4, min_interval=0.05, max_wait=5)
        started = []

        async def request():
            async with limiter.slot("https://boards.example/acme"):
                started.append(time.monotonic())

        await asyncio.gather(request(), request(), request())
        gaps = [b - a for a, b in zip(started, started[1:])]
        assert all(gap >= 0.045 for gap in gaps)

    async def test_spacing_beyond_deadline_times_out(self):
        limiter = RateLimiter(max_concurrent=4, min_interval=10, max_wait=0.1)
        async with limiter.slot("https://boards.example/acme"):
            pass
        with pytest.raises(RateLimitTimeoutError):
            async with limiter.slot("https://boards.example/acme"):
                pass
