import asyncio
import logging
from typing import Optional
from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Playwright,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)

from ingest.config.settings import settings
from ingest.browser.launch import create_browser
from ingest.browser.context import create_context
from ingest.browser.user_agent import UserAgentProvider, BROWSER_HEADERS
from ingest.core.errors import FetchError, NetworkError, RenderTimeoutError

logger = logging.getLogger(__name__)


class PageRenderer:
    """
    Owns the Playwright browser for one ingestion run.

    The browser is launched lazily on the first render and torn down when the
    renderer is closed. Each render gets its own browser context, closed on
    every exit path, and runs under a hard timeout.

    Usage:
        async with PageRenderer() as renderer:
            html = await renderer.render("https://example.com/careers")
    """

    def __init__(
        self,
        timeout: float = settings.RENDER_TIMEOUT,
        wait_ms: int = settings.RENDER_WAIT_MS,
    ):
        self.timeout = timeout
        self.wait_ms = wait_ms
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "PageRenderer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_browser(self) -> Browser:
        async with self._lock:
            if self._playwright is None:
                UserAgentProvider.initialize()
                self._playwright = await async_playwright().start()
                logger.info("Playwright started.")
            if self._browser is None:
                self._browser = await create_browser(self._playwright)
            return self._browser

    async def render(self, url: str, wait_ms: Optional[int] = None) -> str:
        """
        Load ``url`` with scripts enabled, wait ``wait_ms`` for client-side
        rendering to settle, and return the serialized DOM.

        Raises:
            RenderTimeoutError: the render did not finish within ``timeout``
            FetchError: the document answered with a non-2xx status
            NetworkError: the browser could not be launched or crashed
        """
        wait_ms = self.wait_ms if wait_ms is None else wait_ms
        try:
            # Launch and context setup count against the same hard timeout
            return await asyncio.wait_for(
                self._render_with_context(url, wait_ms), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise RenderTimeoutError(
                f"Rendering did not settle within {self.timeout:.0f}s", url
            ) from None
        except PlaywrightTimeoutError:
            raise RenderTimeoutError("Browser operation timed out", url) from None
        except PlaywrightError as e:
            raise NetworkError(f"Browser error: {e.message}", url) from e

    async def _render_with_context(self, url: str, wait_ms: int) -> str:
        browser = await self._ensure_browser()
        context = await create_context(
            browser,
            user_agent=UserAgentProvider.get_random(),
            extra_headers=BROWSER_HEADERS,
        )
        try:
            return await self._render_in(context, url, wait_ms)
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing render context: {e}")

    async def _render_in(self, context: BrowserContext, url: str, wait_ms: int) -> str:
        page = await context.new_page()
        try:
            response = await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.timeout * 1000,
            )
        except PlaywrightTimeoutError:
            raise RenderTimeoutError("Navigation timed out", url) from None
        except PlaywrightError as e:
            raise NetworkError(f"Navigation failed: {e.message}", url) from e

        if response is not None and not response.ok:
            raise FetchError(response.status, f"HTTP {response.status}: {response.status_text}", url)

        # Let async scripts populate the listing
        await page.wait_for_timeout(wait_ms)
        html = await page.content()
        logger.info(f"Rendered {url}, final HTML length: {len(html)}")
        return html

    async def close(self):
        """
        Closes the browser and stops Playwright.
        """
        if self._browser:
            await self._browser.close()
            self._browser = None
            logger.info("Browser closed.")

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
            logger.info("Playwright stopped.")
