import logging
from typing import Dict, Optional

from fake_useragent import UserAgent

logger = logging.getLogger(__name__)

# Default fallback user agent string
FALLBACK_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)

# Sent alongside the user agent on every board request
BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}


class UserAgentProvider:
    """
    Manages fake user-agent generation and rotation.
    """

    _ua: Optional[UserAgent] = None

    @classmethod
    def initialize(cls):
        """
        Initialize the UserAgent provider if not already done.
        """
        if cls._ua is None:
            try:
                cls._ua = UserAgent(
                    browsers=["chrome", "firefox", "safari"],
                    os=["windows", "macos"],
                    fallback=FALLBACK_UA,
                )
            except Exception as e:
                # fake_useragent ships its data file; a broken install must not stop a run
                logger.warning(
                    f"Failed to initialize fake_useragent, using fallback: {e}"
                )

    @classmethod
    def get_random(cls) -> str:
        """
        Return a random user-agent string, or the fallback if not initialized.
        """
        if cls._ua:
            return cls._ua.random
        return FALLBACK_UA


def browser_headers(user_agent: Optional[str] = None) -> Dict[str, str]:
    """Browser-like header set with a rotated user agent."""
    headers = dict(BROWSER_HEADERS)
    headers["User-Agent"] = user_agent or UserAgentProvider.get_random()
    return headers
