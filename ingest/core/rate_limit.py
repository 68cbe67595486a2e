import asyncio
import random
import logging
import functools
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Any, Dict, Optional, Tuple, TypeVar, Coroutine
from urllib.parse import urlparse

from ingest.config.settings import settings
from ingest.core.errors import IngestError, RateLimitTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """
    Caps outbound requests: a global concurrency bound (asyncio.Semaphore)
    plus a minimum spacing between request starts to the same host.

    A request that cannot be admitted within ``max_wait`` seconds raises
    RateLimitTimeoutError, which the retry supervisor treats as transient.
    """

    def __init__(
        self,
        max_concurrent: int = settings.MAX_CONCURRENT_REQUESTS,
        min_interval: float = settings.DOMAIN_MIN_INTERVAL,
        max_wait: float = settings.RATE_LIMIT_MAX_WAIT,
    ):
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self.max_concurrent = max_concurrent
        self.min_interval = min_interval
        self.max_wait = max_wait
        self._domain_locks: Dict[str, asyncio.Lock] = {}
        self._last_start: Dict[str, float] = {}

    async def acquire(self, url: Optional[str] = None):
        deadline = time.monotonic() + self.max_wait
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self.max_wait)
        except asyncio.TimeoutError:
            raise RateLimitTimeoutError(
                f"Request not admitted within {self.max_wait:.1f}s", url
            ) from None

        if url and self.min_interval > 0:
            try:
                await self._space_domain(url, deadline)
            except BaseException:
                self._semaphore.release()
                raise

    def release(self):
        self._semaphore.release()

    async def _space_domain(self, url: str, deadline: float):
        host = (urlparse(url).hostname or "").lower()
        lock = self._domain_locks.setdefault(host, asyncio.Lock())
        async with lock:
            last = self._last_start.get(host)
            if last is not None:
                wait = last + self.min_interval - time.monotonic()
                if wait > 0:
                    if time.monotonic() + wait > deadline:
                        raise RateLimitTimeoutError(
                            f"Host {host} busy for another {wait:.1f}s", url
                        )
                    logger.debug(f"Spacing request to {host} by {wait:.2f}s")
                    await asyncio.sleep(wait)
            self._last_start[host] = time.monotonic()

    @asynccontextmanager
    async def slot(self, url: Optional[str] = None) -> AsyncIterator["RateLimiter"]:
        await self.acquire(url)
        try:
            yield self
        finally:
            self.release()

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.release()


@dataclass
class RetryPolicy:
    """
    Bounded retry with exponential backoff and jitter.
    ``max_attempts`` counts the first try.
    """

    max_attempts: int = settings.MAX_RETRIES
    base_delay: float = settings.RETRY_BASE_DELAY
    max_delay: float = settings.RETRY_MAX_DELAY
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Seconds to sleep after the given (1-based) failed attempt."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, 0.5 * delay)
        return delay


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, IngestError) and bool(error.retryable)


async def run_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    name: str = "operation",
) -> Tuple[T, int]:
    """
    Call ``func`` until it succeeds, a non-retryable error is raised, or the
    attempt budget is spent. Returns ``(result, attempts)``.

    The raised error gets an ``attempts`` attribute so callers can report how
    many tries were made before giving up.
    """
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        attempt += 1
        try:
            return await func(), attempt
        except Exception as e:
            if not is_retryable(e):
                e.attempts = attempt  # type: ignore[attr-defined]
                raise
            if attempt >= policy.max_attempts:
                logger.error(
                    f"Max attempts ({policy.max_attempts}) reached for {name}. Error: {e}"
                )
                e.attempts = attempt  # type: ignore[attr-defined]
                raise

            sleep_time = policy.delay_for(attempt)
            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} failed for {name}. "
                f"Retrying in {sleep_time:.2f}s. Error: {e}"
            )
            await asyncio.sleep(sleep_time)


def with_retry(policy: Optional[RetryPolicy] = None):
    """
    Decorator for async functions to retry transient pipeline errors with
    exponential backoff and jitter.
    """

    def decorator(
        func: Callable[..., Coroutine[Any, Any, T]],
    ) -> Callable[..., Coroutine[Any, Any, T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            result, _ = await run_with_retry(
                lambda: func(*args, **kwargs), policy, name=func.__name__
            )
            return result

        return wrapper

    return decorator
