"""
HTML fetching for job boards.

Two paths share one contract: a plain HTTP GET for server-rendered boards,
and a browser render for boards that build their listing client-side.
Neither raises past ``HtmlFetcher.fetch``; failures come back as a
FetchResult carrying a structured error.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlparse

import httpx
from playwright.async_api import Error as PlaywrightError

from ingest.config.settings import settings
from ingest.browser.user_agent import browser_headers
from ingest.core.errors import ConfigurationError, FetchError, IngestError, NetworkError
from ingest.core.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


class Renderer(Protocol):
    async def render(self, url: str, wait_ms: Optional[int] = None) -> str: ...


@dataclass
class FetchResult:
    success: bool
    url: str
    html: Optional[str] = None
    error: Optional[IngestError] = None
    status: Optional[int] = None

    def unwrap(self) -> str:
        """Return the HTML or raise the structured error."""
        if self.success and self.html is not None:
            return self.html
        raise self.error or IngestError("Fetch failed without an error", self.url)


class HtmlFetcher:
    """
    Fetches job-board HTML through an injected httpx client and, for
    script-rendered boards, an injected renderer. Every request goes through
    the rate limiter first.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        limiter: RateLimiter,
        renderer: Optional[Renderer] = None,
    ):
        self.client = client
        self.limiter = limiter
        self.renderer = renderer

    async def fetch(
        self, url: str, render: bool = False, wait_ms: Optional[int] = None
    ) -> FetchResult:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return FetchResult(
                success=False,
                url=url,
                error=ConfigurationError("URL must be absolute", url),
            )

        try:
            async with self.limiter.slot(url):
                if render:
                    html = await self._render(url, wait_ms)
                    return FetchResult(success=True, url=url, html=html)
                return await self._get(url)
        except IngestError as e:
            logger.warning(f"Fetch failed for {url}: {e}")
            return FetchResult(
                success=False,
                url=url,
                error=e,
                status=getattr(e, "status", None),
            )

    async def _get(self, url: str) -> FetchResult:
        try:
            response = await self.client.get(
                url, headers=browser_headers(), follow_redirects=True
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}", url) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request failed: {e}", url) from e

        if not response.is_success:
            raise FetchError(
                response.status_code,
                f"HTTP {response.status_code}: {response.reason_phrase}",
                url,
            )

        html = response.text
        logger.info(f"Fetched {url}, length: {len(html)}")
        return FetchResult(
            success=True, url=url, html=html, status=response.status_code
        )

    async def _render(self, url: str, wait_ms: Optional[int]) -> str:
        if self.renderer is None:
            raise ConfigurationError("No renderer configured for script-rendered board", url)
        try:
            return await self.renderer.render(url, wait_ms)
        except PlaywrightError as e:
            # Browser crashes are transient as far as the board is concerned
            raise NetworkError(f"Browser error: {e}", url) from e


def create_http_client(timeout: float = settings.REQUEST_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout))
