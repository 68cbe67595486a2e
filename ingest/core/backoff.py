"""
Cross-run backoff for companies whose boards keep failing.

The retry supervisor handles blips inside one run; this module decides whether
a company should be attempted at all, based on its failure history: the
backoff level and counters in CompanyHealth, plus the log of errors recorded
over the last 24 hours.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from ingest.config.settings import settings
from ingest.core.errors import FetchError, IngestError

logger = logging.getLogger(__name__)

# Delay applied at each backoff level
LEVEL_DELAYS = [
    timedelta(0),
    timedelta(minutes=5),
    timedelta(minutes=30),
    timedelta(hours=2),
    timedelta(hours=6),
    timedelta(hours=24),
    timedelta(days=3),
    timedelta(weeks=1),
]
MAX_LEVEL = len(LEVEL_DELAYS) - 1

# Errors older than this no longer count towards severity or the error cap
ERROR_WINDOW = timedelta(hours=24)

ERROR_SEVERITY_WEIGHTS = {
    # connectivity, usually resolves quickly
    "fetch_failed": 1,
    "timeout": 1,
    "network_error": 1,
    # we are hitting limits
    "rate_limited": 2,
    "too_many_requests": 2,
    # the board markup probably changed
    "parse_error": 3,
    "validation_error": 2,
    # access problems
    "unauthorized": 4,
    "forbidden": 4,
    "blocked": 5,
    # server side
    "server_error": 3,
    "service_unavailable": 2,
    "configuration_error": 2,
    "unknown": 2,
}


@dataclass
class CompanyHealth:
    company_id: str
    level: int = 0
    consecutive_failures: int = 0
    total_failures: int = 0
    next_allowed_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None


@dataclass
class ErrorEntry:
    """One failed scrape, kept for ERROR_WINDOW."""

    occurred_at: datetime
    error_type: str
    message: str
    url: Optional[str] = None


def classify(error: BaseException) -> str:
    """Severity label for an error; finer than ``error_type`` for HTTP statuses."""
    if isinstance(error, FetchError):
        if error.status == 401:
            return "unauthorized"
        if error.status == 403:
            return "forbidden"
        if error.status == 429:
            return "too_many_requests"
        if error.status == 503:
            return "service_unavailable"
        if error.status >= 500:
            return "server_error"
    if isinstance(error, IngestError):
        return error.error_type
    return "unknown"


def error_entry(error: BaseException, now: datetime, url: Optional[str] = None) -> ErrorEntry:
    if isinstance(error, IngestError):
        message = error.message
        url = error.url or url
    else:
        message = str(error) or type(error).__name__
    return ErrorEntry(occurred_at=now, error_type=classify(error), message=message, url=url)


def recent_errors(errors: Iterable[ErrorEntry], now: datetime) -> List[ErrorEntry]:
    cutoff = now - ERROR_WINDOW
    return [e for e in errors if e.occurred_at > cutoff]


def error_severity(errors: Iterable[ErrorEntry]) -> int:
    return sum(
        ERROR_SEVERITY_WEIGHTS.get(e.error_type, ERROR_SEVERITY_WEIGHTS["unknown"])
        for e in errors
    )


def skip_reason(
    health: Optional[CompanyHealth],
    now: datetime,
    max_total_failures: int = settings.BACKOFF_MAX_TOTAL_FAILURES,
    errors: Iterable[ErrorEntry] = (),
    max_recent_errors: int = settings.BACKOFF_MAX_ERRORS_PER_DAY,
) -> Optional[str]:
    """Return why the company should be skipped right now, or None."""
    if health is not None:
        if health.total_failures >= max_total_failures:
            return f"permanent backoff after {health.total_failures} failures"
        if health.next_allowed_at and now < health.next_allowed_at:
            remaining = health.next_allowed_at - now
            minutes = int(remaining.total_seconds() // 60) + 1
            if minutes >= 120:
                return f"backoff level {health.level}, {minutes // 60} hours remaining"
            return f"backoff level {health.level}, {minutes} minutes remaining"

    recent = recent_errors(errors, now)
    if len(recent) >= max_recent_errors:
        return f"{len(recent)} errors in 24h"
    return None


def after_failure(
    health: Optional[CompanyHealth],
    company_id: str,
    error: BaseException,
    now: datetime,
    errors: Optional[Iterable[ErrorEntry]] = None,
    min_failures: int = settings.BACKOFF_MIN_FAILURES,
) -> CompanyHealth:
    """
    Health after a failed scrape. ``errors`` is the company's error log
    including this failure; when omitted only this failure is weighed.

    Once consecutive failures reach ``min_failures`` the level rises by one,
    or by two when the errors of the last 24 hours weigh 10 or more.
    """
    health = health or CompanyHealth(company_id=company_id)
    if errors is None:
        errors = [error_entry(error, now)]
    severity = error_severity(recent_errors(errors, now))

    consecutive = health.consecutive_failures + 1
    level = health.level
    if consecutive >= min_failures:
        level = min(MAX_LEVEL, level + min(2, max(1, severity // 5)))

    delay = LEVEL_DELAYS[level]
    # +/-10% so companies that failed together don't retry together
    jitter = delay * random.uniform(-0.1, 0.1)
    label = error.error_type if isinstance(error, IngestError) else "unexpected"

    logger.info(
        f"Backoff for {company_id}: level {health.level} -> {level}, "
        f"consecutive failures {consecutive}, recent severity {severity}"
    )
    return CompanyHealth(
        company_id=company_id,
        level=level,
        consecutive_failures=consecutive,
        total_failures=health.total_failures + 1,
        next_allowed_at=now + delay + jitter,
        last_success_at=health.last_success_at,
        last_error=f"{label}: {error}",
    )


def after_success(
    health: Optional[CompanyHealth], company_id: str, now: datetime
) -> CompanyHealth:
    if health is None:
        return CompanyHealth(company_id=company_id, last_success_at=now)
    return CompanyHealth(
        company_id=company_id,
        level=max(0, health.level - 1),
        consecutive_failures=0,
        total_failures=health.total_failures,
        next_allowed_at=now,
        last_success_at=now,
        last_error=health.last_error,
    )
