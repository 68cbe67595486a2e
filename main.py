import argparse
import asyncio
import json
import logging
import sys
from datetime import timedelta
from typing import Any, List, Optional, Tuple

from ingest.browser.renderer import PageRenderer
from ingest.browser.user_agent import UserAgentProvider
from ingest.config.settings import settings
from ingest.core.errors import ConfigurationError
from ingest.core.models import Company, CompanyOutcome, OutcomeStatus
from ingest.core.rate_limit import RateLimiter, RetryPolicy
from ingest.core.runner import IngestionRunner, utc_now
from ingest.fetch.html import HtmlFetcher, create_http_client
from ingest.storage.job_store import JobStore

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def load_companies(path: str) -> Tuple[List[Company], List[CompanyOutcome]]:
    """
    Read company mappings from a JSON file: a list, or an object with a
    ``companies`` list. Invalid entries are returned as failed outcomes so the
    rest of the file still runs.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data: Any = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read companies file {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("companies")
    if not isinstance(data, list):
        raise ConfigurationError(f"{path} must contain a list of companies")

    companies: List[Company] = []
    rejected: List[CompanyOutcome] = []
    for position, item in enumerate(data):
        if not isinstance(item, dict):
            item = {}
        try:
            companies.append(Company.from_mapping(item))
        except ConfigurationError as e:
            logger.error(str(e))
            rejected.append(
                CompanyOutcome(
                    company_id=str(item.get("id") or f"#{position}"),
                    company_name=str(item.get("name") or item.get("id") or f"#{position}"),
                    status=OutcomeStatus.FAILED,
                    error_type=e.error_type,
                    error=str(e),
                )
            )
    return companies, rejected


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Ingest job postings from company job boards."
    )
    parser.add_argument("companies", help="JSON file of companies to ingest")
    parser.add_argument("--db", default=settings.DATABASE_PATH, help="SQLite database path")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.MAX_CONCURRENT_COMPANIES,
        help="Companies ingested in parallel",
    )
    parser.add_argument(
        "--retention",
        choices=["soft", "hard"],
        default=settings.RETENTION_POLICY,
        help="soft marks vanished postings removed, hard deletes them",
    )
    parser.add_argument(
        "--ignore-backoff",
        action="store_true",
        help="Scrape companies even if they are backing off",
    )
    parser.add_argument(
        "--purge-days",
        type=int,
        default=None,
        help="Delete postings removed more than N days ago",
    )
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    return parser.parse_args(argv)


async def main(args: argparse.Namespace) -> int:
    """
    Main entry point.
    """
    try:
        companies, rejected = load_companies(args.companies)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    UserAgentProvider.initialize()
    limiter = RateLimiter()
    async with create_http_client() as client, PageRenderer() as renderer, JobStore(
        args.db
    ) as store:
        fetcher = HtmlFetcher(client, limiter, renderer)
        runner = IngestionRunner(
            store,
            fetcher,
            RetryPolicy(),
            concurrency=args.concurrency,
            retention_policy=args.retention,
            ignore_backoff=args.ignore_backoff,
        )
        report = await runner.run(companies, rejected)

        if args.purge_days is not None:
            await store.purge_removed(utc_now() - timedelta(days=args.purge_days))

    print(report.format())
    return 0 if report.ok else 1


if __name__ == "__main__":
    arguments = parse_args()
    configure_logging(arguments.log_level)
    try:
        sys.exit(asyncio.run(main(arguments)))
    except KeyboardInterrupt:
        sys.exit(130)
