"""
Generic adapter for boards that build their listing client-side.

The board is rendered in a browser, then anchors are collected from the
company's configured container XPath or, failing that, the first of a few
common containers that yields job-like links.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urlparse

from ingest.adapters.base import BoardAdapter
from ingest.core.models import Company, RawPosting
from ingest.extract.links import Anchor, extract_anchors
from ingest.fetch.html import HtmlFetcher

logger = logging.getLogger(__name__)

# Tried in order when the company has no container configured
CANDIDATE_CONTAINERS = [
    "//*[@id='jobs']",
    "//*[@id='careers']",
    "//*[contains(@class, 'job-list') or contains(@class, 'jobs-list')]",
    "//main",
    "//body",
]

JOB_PATH_RE = re.compile(
    r"/(?:jobs?|careers?|positions?|openings?|vacanc(?:y|ies)|roles?)/[^/]+",
    re.IGNORECASE,
)
ATS_HOSTS = (
    "greenhouse.io",
    "ashbyhq.com",
    "lever.co",
    "workable.com",
    "myworkdayjobs.com",
    "smartrecruiters.com",
)


class GenericAdapter(BoardAdapter):
    name = "other"

    def __init__(self, wait_ms: Optional[int] = None):
        self.wait_ms = wait_ms

    async def scrape_company(
        self, company: Company, fetcher: HtmlFetcher
    ) -> List[RawPosting]:
        result = await fetcher.fetch(
            company.job_board_url, render=True, wait_ms=self.wait_ms
        )
        html = result.unwrap()

        if company.container_xpath:
            containers = [company.container_xpath]
        else:
            containers = CANDIDATE_CONTAINERS

        for xpath in containers:
            anchors = [
                a
                for a in extract_anchors(html, company.job_board_url, xpath)
                if self.is_job_link(a.url, company.job_board_url)
            ]
            if anchors:
                logger.info(
                    f"Found {len(anchors)} job links for {company.name} under {xpath}"
                )
                return [self._to_posting(a) for a in anchors]

        logger.info(f"No job links found for {company.name}")
        return []

    def is_job_link(self, url: str, board_url: str) -> bool:
        if url.rstrip("/") == board_url.rstrip("/"):
            return False
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        if any(host == h or host.endswith("." + h) for h in ATS_HOSTS):
            # ATS hosts also serve board index pages; require a path below the slug
            return parsed.path.strip("/").count("/") >= 1
        return bool(JOB_PATH_RE.search(parsed.path))

    def _to_posting(self, anchor: Anchor) -> RawPosting:
        title = anchor.text or self._title_from_url(anchor.url)
        return RawPosting(title=title, url=anchor.url)
