from abc import ABC, abstractmethod
from typing import List, Optional
import logging
import re
from urllib.parse import unquote, urljoin, urlparse

from ingest.core.models import Company, RawPosting
from ingest.fetch.html import HtmlFetcher

logger = logging.getLogger(__name__)

TAG_RE = re.compile(r"<[^>]*>")
JOB_COUNT_RE = re.compile(r"(\d+)\s+jobs?\b", re.IGNORECASE)


class BoardAdapter(ABC):
    """
    Abstract base class for all job-board adapters.

    An adapter turns one company's job board into raw postings. The fetcher is
    passed in per call so adapters hold no connection state of their own.
    """

    name: str = "base"

    @abstractmethod
    async def scrape_company(
        self, company: Company, fetcher: HtmlFetcher
    ) -> List[RawPosting]:
        """
        Scrape the company's job board.
        Args:
            company (Company): The company whose board is scraped.
            fetcher (HtmlFetcher): Fetcher for this run.
        Returns:
            List[RawPosting]: Postings currently listed on the board.
        Raises:
            IngestError: when the board could not be fetched or parsed.
        """
        pass

    # --- Optional base helpers for reuse across adapters ---

    def _clean_text(self, text: Optional[str]) -> str:
        """Strip tags and collapse whitespace."""
        if not text:
            return ""
        return " ".join(TAG_RE.sub(" ", text).split())

    def _resolve_url(self, url: str, base_url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return urljoin(base_url, url)

    def _extract_job_count(self, html: str) -> Optional[int]:
        """Read a "N jobs" style total from the page, if present."""
        match = JOB_COUNT_RE.search(self._clean_text(html))
        if match:
            return int(match.group(1))
        return None

    def _title_from_url(self, url: str) -> str:
        """Readable title from the last path segment, for anchors without text."""
        segment = unquote(urlparse(url).path.rstrip("/").rsplit("/", 1)[-1])
        return re.sub(r"[-_]+", " ", segment).strip()
