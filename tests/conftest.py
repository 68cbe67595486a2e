"""
Shared fixtures for the ingestion tests.

HTTP is served by httpx.MockTransport, rendering by an in-memory fake, and
the store runs on an in-memory SQLite database.
"""

from typing import Callable, Dict, Optional

import httpx
import pytest

from ingest.core.models import Company
from ingest.core.rate_limit import RateLimiter, RetryPolicy
from ingest.fetch.html import HtmlFetcher
from ingest.storage.job_store import JobStore


class FakeRenderer:
    """Serves canned DOMs by URL instead of driving a browser."""

    def __init__(self, pages: Dict[str, str]):
        self.pages = pages
        self.calls = []

    async def render(self, url: str, wait_ms: Optional[int] = None) -> str:
        self.calls.append(url)
        return self.pages[url]


def html_pages(pages: Dict[str, str]) -> Callable[[httpx.Request], httpx.Response]:
    """MockTransport handler serving ``pages`` by full URL, 404 otherwise."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = pages.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=body)

    return handler


@pytest.fixture
async def store():
    """Create an initialized in-memory JobStore."""
    job_store = JobStore(":memory:")
    await job_store.initialize()
    yield job_store
    await job_store.close()


@pytest.fixture
async def make_fetcher():
    """Factory building HtmlFetchers over a MockTransport handler."""
    clients = []

    def factory(handler, renderer=None) -> HtmlFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        limiter = RateLimiter(max_concurrent=4, min_interval=0, max_wait=5)
        return HtmlFetcher(client, limiter, renderer)

    yield factory
    for client in clients:
        await client.aclose()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, jitter=False)


def make_company(**overrides) -> Company:
    data = {
        "id": "acme",
        "name": "Acme",
        "website": "https://acme.example",
        "jobBoardUrl": "https://jobs.ashbyhq.com/acme",
        "sourceType": "ashby",
    }
    data.update(overrides)
    return Company.from_mapping(data)


@pytest.fixture
def company_factory():
    return make_company
