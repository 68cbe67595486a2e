"""
Browser Launch Module

Starts the browser used for script-rendered job boards. Only launched when a
run actually contains such a board.
"""

import logging
from playwright.async_api import Browser, Playwright

from ingest.config.settings import settings

logger = logging.getLogger(__name__)

# Keep renders lean: no GPU, no shared memory, no background throttling
LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--mute-audio",
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
]


async def create_browser(playwright: Playwright) -> Browser:
    """
    Launch a Chromium browser instance.

    Args:
        playwright: Playwright instance

    Returns:
        Browser instance
    """
    launch_options = {
        "headless": settings.HEADLESS,
        "args": LAUNCH_ARGS,
    }
    if settings.BROWSER_CHANNEL:
        launch_options["channel"] = settings.BROWSER_CHANNEL

    browser = await playwright.chromium.launch(**launch_options)

    logger.info(
        f"Browser launched (channel: {settings.BROWSER_CHANNEL or 'chromium'}, "
        f"Headless: {settings.HEADLESS})"
    )
    return browser
