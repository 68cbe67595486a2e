"""
Browser Context Factory

One short-lived context per rendered page so cookies, storage and open
connections never leak from one company's board to the next.
"""

import logging
from typing import Dict, Optional
from playwright.async_api import Browser, BrowserContext

from ingest.config.settings import settings

logger = logging.getLogger(__name__)


async def create_context(
    browser: Browser,
    user_agent: Optional[str] = None,
    extra_headers: Optional[Dict[str, str]] = None,
) -> BrowserContext:
    """
    Create a browser context with minimal overrides.

    Only configures what's necessary:
    - user_agent: matches the UA sent by the static fetch path
    - locale: For language preference
    - extra_headers: Accept/Accept-Language set shared with the static path

    Args:
        browser: Browser instance
        user_agent: Optional custom user agent (None = Chromium default)
        extra_headers: Optional headers added to every request

    Returns:
        BrowserContext instance
    """
    context_config = {
        "locale": "en-US",
        "ignore_https_errors": settings.IGNORE_HTTPS_ERRORS,
        "java_script_enabled": True,
    }

    if user_agent:
        context_config["user_agent"] = user_agent
    if extra_headers:
        context_config["extra_http_headers"] = extra_headers

    context = await browser.new_context(**context_config)

    logger.debug("Browser context created")
    return context
