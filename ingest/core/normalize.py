"""
Maps raw adapter output onto the canonical job record. No I/O.
"""

import hashlib
import logging
import re
from datetime import datetime
from typing import List, Optional
from urllib.parse import urldefrag, urljoin

from ingest.core.errors import ValidationError
from ingest.core.models import Company, Compensation, JobRecord, RawPosting

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP", "¥": "JPY", "₹": "INR"}
CURRENCY_CODE_RE = re.compile(r"\b(USD|EUR|GBP|CAD|AUD|INR|JPY|CHF|SEK|NZD|SGD)\b")

# e.g. "$150K", "120,000", "45.50"
_AMOUNT = r"([$€£¥₹])?\s?(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)\s?([kKmM](?![a-zA-Z]))?"
RANGE_RE = re.compile(_AMOUNT + r"\s*(?:-|–|—|to)\s*" + _AMOUNT)
SINGLE_RE = re.compile(_AMOUNT)
HOURLY_RE = re.compile(r"(per\s+hour|/\s*h(ou)?r\b|\bhourly\b|\ban hour\b)", re.IGNORECASE)

LOCATION_SPLIT_RE = re.compile(r"\s*[;|\n]\s*|\s+or\s+")


def make_external_id(company_id: str, url: str) -> str:
    """Stable identifier for a posting: its resolved URL scoped to the company."""
    return hashlib.sha1(f"{company_id}|{url}".encode("utf-8")).hexdigest()[:16]


def _amount(number: str, suffix: Optional[str]) -> float:
    value = float(number.replace(",", ""))
    if suffix:
        value *= 1_000 if suffix.lower() == "k" else 1_000_000
    return value


def parse_compensation(text: Optional[str]) -> Optional[Compensation]:
    """
    Parse salary text such as "$150K – $200K" or "$45 - $60 per hour".
    Returns None when nothing recognizable is found.

    Raises:
        ValidationError: the range is inverted (min > max)
    """
    if not text:
        return None

    symbol = None
    match = RANGE_RE.search(text)
    if match:
        sym1, low, suf1, sym2, high, suf2 = match.groups()
        # "$150-200K": a suffix on the upper bound applies to both
        low_value = _amount(low, suf1 or suf2)
        high_value = _amount(high, suf2)
        symbol = sym1 or sym2
    else:
        match = SINGLE_RE.search(text)
        if not match:
            return None
        symbol, number, suffix = match.groups()
        low_value = high_value = _amount(number, suffix)

    code = CURRENCY_CODE_RE.search(text)
    currency = code.group(1) if code else CURRENCY_SYMBOLS.get(symbol) if symbol else None
    pay_type = "hourly" if HOURLY_RE.search(text) else "annual"

    return Compensation(min=low_value, max=high_value, currency=currency, type=pay_type)


def split_locations(text: Optional[str]) -> List[str]:
    if not text:
        return []
    locations: List[str] = []
    for part in LOCATION_SPLIT_RE.split(text):
        part = " ".join(part.split())
        if part and part not in locations:
            locations.append(part)
    return locations


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize(
    raw: RawPosting, company: Company, seen_at: Optional[datetime] = None
) -> JobRecord:
    """
    Build the canonical record for one raw posting.

    Raises:
        ValidationError: the posting has no usable title or URL
    """
    title = " ".join((raw.title or "").split())
    if not title:
        raise ValidationError("Posting has an empty title", raw.url)

    if not raw.url or not raw.url.strip():
        raise ValidationError(f"Posting {title!r} has no URL")
    url, _ = urldefrag(urljoin(company.job_board_url, raw.url.strip()))

    compensation = None
    if raw.compensation:
        try:
            compensation = parse_compensation(raw.compensation)
        except ValidationError as e:
            logger.warning(f"Dropping compensation for {url}: {e}")
        if compensation is None:
            logger.debug(f"Unrecognized compensation text for {url}: {raw.compensation!r}")

    return JobRecord(
        external_id=make_external_id(company.id, url),
        company_id=company.id,
        url=url,
        title=title,
        source=f"{company.source_type}-scraper",
        locations=split_locations(raw.location),
        compensation=compensation,
        description=_optional_text(raw.description),
        requirements=_optional_text(raw.requirements),
        department=_optional_text(raw.department),
        first_seen_at=seen_at,
        last_seen_at=seen_at,
    )
