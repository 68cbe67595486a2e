"""
Ashby job boards.

The static board page is matched with a deliberately narrow pattern: a job
anchor whose path starts with ``/jobs/`` immediately wrapping a ``<div>``
holding the title. Ashby changing that markup breaks this adapter and nothing
else. When the pattern finds nothing, the ``"jobPostings"`` array Ashby embeds
in the page's app data is used instead.
"""

import html as html_lib
import json
import logging
import re
from typing import Any, Dict, List, Optional

from ingest.adapters.base import BoardAdapter
from ingest.core.models import Company, RawPosting
from ingest.fetch.html import HtmlFetcher

logger = logging.getLogger(__name__)

# <a href="/jobs/..." ...> <div ...>Title</div>
JOB_ANCHOR_PATTERN = re.compile(
    r'<a href="(/jobs/[^\s"]+)"[^>]*>\s*<div[^>]*>([^<]+)</div>'
)
POSTINGS_KEY = '"jobPostings":'


class AshbyAdapter(BoardAdapter):
    name = "ashby"

    async def scrape_company(
        self, company: Company, fetcher: HtmlFetcher
    ) -> List[RawPosting]:
        result = await fetcher.fetch(company.job_board_url)
        html = result.unwrap()

        postings = self.parse_listing(html, company.job_board_url)
        if not postings:
            postings = self.parse_embedded_postings(html, company.job_board_url)

        logger.info(f"Found {len(postings)} Ashby postings for {company.name}")
        return postings

    def parse_listing(self, html: str, base_url: str) -> List[RawPosting]:
        postings = []
        for href, title in JOB_ANCHOR_PATTERN.findall(html):
            postings.append(
                RawPosting(
                    title=html_lib.unescape(title).strip(),
                    url=self._resolve_url(html_lib.unescape(href), base_url),
                )
            )
        return postings

    def parse_embedded_postings(self, html: str, base_url: str) -> List[RawPosting]:
        data = self._extract_postings_array(html)
        board_url = base_url.rstrip("/")
        postings = []
        for item in data:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            if item.get("isListed") is False:
                continue
            postings.append(
                RawPosting(
                    title=str(item.get("title") or "").strip(),
                    url=f"{board_url}/{item['id']}",
                    location=self._location_of(item),
                    department=item.get("departmentName") or item.get("teamName"),
                    compensation=item.get("compensationTierSummary"),
                )
            )
        return postings

    def _extract_postings_array(self, html: str) -> List[Any]:
        """
        Cut the JSON array following ``"jobPostings":`` out of the page by
        bracket matching, then parse it. Returns [] if absent or malformed.
        """
        key_index = html.find(POSTINGS_KEY)
        if key_index == -1:
            return []
        start = html.find("[", key_index)
        if start == -1:
            return []

        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(html)):
            ch = html[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "[":
                depth += 1
            elif ch == "]":
                depth -= 1
                if depth == 0:
                    try:
                        data = json.loads(html[start : i + 1])
                    except json.JSONDecodeError as e:
                        logger.warning(f"Failed to parse Ashby jobPostings JSON: {e}")
                        return []
                    return data if isinstance(data, list) else []
        return []

    def _location_of(self, item: Dict[str, Any]) -> Optional[str]:
        names = [item.get("locationName")]
        for extra in item.get("secondaryLocations") or []:
            if isinstance(extra, dict):
                names.append(extra.get("locationName"))
        return "; ".join(n for n in names if n) or None
