from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent.parent

class Settings(BaseSettings):
    class Config:
        env_file = BASE_DIR / ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    """
    Configuration settings for the ingestion pipeline.
    """

    # Browser settings (only used for script-rendered boards)
    HEADLESS: bool = True
    # Empty string means the bundled Chromium; "chrome" uses the system install.
    BROWSER_CHANNEL: str = ""
    IGNORE_HTTPS_ERRORS: bool = True

    # Rate limiting & Concurrency
    MAX_CONCURRENT_COMPANIES: int = 4
    MAX_CONCURRENT_REQUESTS: int = 4
    DOMAIN_MIN_INTERVAL: float = 1.0  # seconds between requests to one host
    RATE_LIMIT_MAX_WAIT: float = 60.0  # seconds a request may queue

    # Retries
    MAX_RETRIES: int = 3  # total attempts per company scrape
    RETRY_BASE_DELAY: float = 2.0  # seconds
    RETRY_MAX_DELAY: float = 30.0  # seconds

    # Timeouts
    REQUEST_TIMEOUT: float = 30.0  # seconds
    RENDER_WAIT_MS: int = 2000  # ms to let client-side rendering settle
    RENDER_TIMEOUT: float = 45.0  # seconds, hard cap on one render

    # Persistence
    DATABASE_PATH: str = str(BASE_DIR / "jobs.db")
    RETENTION_POLICY: Literal["soft", "hard"] = "soft"

    # Cross-run company backoff
    BACKOFF_MIN_FAILURES: int = 3
    BACKOFF_MAX_TOTAL_FAILURES: int = 50
    BACKOFF_MAX_ERRORS_PER_DAY: int = 10  # skip after this many errors in 24h

    LOG_LEVEL: str = "INFO"

settings = Settings()
