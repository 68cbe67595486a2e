"""
Error taxonomy for the ingestion pipeline.

Each error knows whether the retry supervisor may try again (``retryable``)
and carries a short ``error_type`` label used in reports and company health.
"""

from typing import Optional


class IngestError(Exception):
    """Base class for every error the pipeline raises on purpose."""

    retryable = False
    error_type = "ingest_error"

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url

    def __str__(self) -> str:
        if self.url:
            return f"{self.message} ({self.url})"
        return self.message


class NetworkError(IngestError):
    """Connection failure or request timeout."""

    retryable = True
    error_type = "network_error"


class FetchError(IngestError):
    """The server answered with a non-2xx status."""

    error_type = "fetch_failed"

    def __init__(self, status: int, message: str = "", url: Optional[str] = None):
        super().__init__(message or f"HTTP {status}", url)
        self.status = status

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        # 5xx and 429 are worth another attempt, other 4xx are not
        return self.status >= 500 or self.status == 429


class RenderTimeoutError(IngestError):
    """Client-side rendering did not settle within the hard timeout."""

    retryable = True
    error_type = "timeout"


class RateLimitTimeoutError(IngestError):
    """A request waited too long for the rate limiter to admit it."""

    retryable = True
    error_type = "rate_limited"


class ParseError(IngestError):
    """Expected page structure could not be located or understood."""

    error_type = "parse_error"


class ValidationError(IngestError):
    """A normalized record breaks a data invariant (e.g. empty title)."""

    error_type = "validation_error"


class ConfigurationError(IngestError):
    """Bad company configuration: unknown source type, malformed URL."""

    error_type = "configuration_error"
