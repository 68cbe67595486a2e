"""
Greenhouse job boards (job-boards.greenhouse.io).
"""

import logging
import math
import re
from typing import List
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from ingest.adapters.base import BoardAdapter
from ingest.core.models import Company, RawPosting
from ingest.extract.links import parse_html, resolve_url
from ingest.fetch.html import HtmlFetcher

logger = logging.getLogger(__name__)

# https://job-boards.greenhouse.io/<slug>/jobs/<id>, also legacy boards.greenhouse.io
JOB_URL_PATTERN = re.compile(
    r"^https://(?:job-boards|boards)(?:\.eu)?\.greenhouse\.io/[^/?#]+/jobs/\d+"
)
JOBS_PER_PAGE = 50  # Greenhouse standard
MAX_PAGES = 20


class GreenhouseAdapter(BoardAdapter):
    name = "greenhouse"

    async def scrape_company(
        self, company: Company, fetcher: HtmlFetcher
    ) -> List[RawPosting]:
        base_url = company.job_board_url
        first = await fetcher.fetch(base_url)
        html = first.unwrap()

        postings = self.parse_page(html, base_url)
        total = self._extract_job_count(html)
        logger.info(f"Greenhouse: {company.name} lists {total or 'unknown'} jobs")

        if total and total > len(postings):
            total_pages = min(math.ceil(total / JOBS_PER_PAGE), MAX_PAGES)
            for page in range(2, total_pages + 1):
                page_url = self.build_page_url(base_url, page)
                result = await fetcher.fetch(page_url)
                if not result.success:
                    # One missing page should not cost the rest of the board
                    logger.warning(f"Skipping Greenhouse page {page}: {result.error}")
                    continue

                page_postings = self.parse_page(result.html, base_url)
                logger.info(f"Greenhouse page {page}: {len(page_postings)} jobs")
                if not page_postings:
                    break
                postings.extend(page_postings)

        unique = {}
        for posting in postings:
            unique.setdefault(posting.url, posting)
        logger.info(
            f"Greenhouse adapter found {len(unique)} unique postings for {company.name}"
        )
        return list(unique.values())

    def parse_page(self, html: str, base_url: str) -> List[RawPosting]:
        doc = parse_html(html)
        if doc is None:
            return []

        postings = []
        for anchor in doc.iter("a"):
            href = anchor.get("href")
            if not href:
                continue
            url = resolve_url(href, base_url)
            if not url or not JOB_URL_PATTERN.match(url):
                continue

            paragraphs = [
                " ".join(p.text_content().split()) for p in anchor.iter("p")
            ]
            paragraphs = [p for p in paragraphs if p]
            title = paragraphs[0] if paragraphs else " ".join(anchor.text_content().split())
            location = paragraphs[1] if len(paragraphs) > 1 else None

            postings.append(RawPosting(title=title, url=url, location=location))
        return postings

    def build_page_url(self, base_url: str, page: int) -> str:
        parts = urlparse(base_url)
        query = [(k, v) for k, v in parse_qsl(parts.query) if k != "page"]
        query.append(("page", str(page)))
        return urlunparse(parts._replace(query=urlencode(query)))
