import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Type

from ingest.adapters.ashby import AshbyAdapter
from ingest.adapters.base import BoardAdapter
from ingest.adapters.generic import GenericAdapter
from ingest.adapters.greenhouse import GreenhouseAdapter
from ingest.config.settings import settings
from ingest.core.backoff import (
    ERROR_WINDOW,
    after_failure,
    after_success,
    error_entry,
    skip_reason,
)
from ingest.core.errors import ConfigurationError, IngestError, ValidationError
from ingest.core.models import (
    Company,
    CompanyOutcome,
    IngestionReport,
    JobRecord,
    OutcomeStatus,
)
from ingest.core.normalize import normalize
from ingest.core.rate_limit import RetryPolicy, run_with_retry
from ingest.core.reconcile import apply_plan, plan_reconciliation
from ingest.fetch.html import HtmlFetcher
from ingest.storage.job_store import JobStore

logger = logging.getLogger(__name__)

ADAPTERS: Dict[str, Type[BoardAdapter]] = {
    "ashby": AshbyAdapter,
    "greenhouse": GreenhouseAdapter,
    "other": GenericAdapter,
}


def get_adapter(source_type: str) -> BoardAdapter:
    adapter_cls = ADAPTERS.get((source_type or "").lower())
    if not adapter_cls:
        raise ConfigurationError(
            f"Source type '{source_type}' not supported. "
            f"Available source types: {list(ADAPTERS.keys())}"
        )
    return adapter_cls()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IngestionRunner:
    """
    Orchestrates ingestion across companies.

    Each company runs independently: backoff check, adapter resolution,
    supervised scrape, normalization, reconciliation against the store and a
    health update. A failure in one company is recorded in its outcome and
    never stops the others.
    """

    def __init__(
        self,
        store: JobStore,
        fetcher: HtmlFetcher,
        retry_policy: Optional[RetryPolicy] = None,
        concurrency: int = settings.MAX_CONCURRENT_COMPANIES,
        retention_policy: str = settings.RETENTION_POLICY,
        ignore_backoff: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        if retention_policy not in ("soft", "hard"):
            raise ConfigurationError(f"Unknown retention policy: {retention_policy!r}")
        self.store = store
        self.fetcher = fetcher
        self.retry_policy = retry_policy or RetryPolicy()
        self.concurrency = max(1, concurrency)
        self.retention_policy = retention_policy
        self.ignore_backoff = ignore_backoff
        self.clock = clock
        self._cancelled = False
        self._workers: List[asyncio.Task] = []

    def cancel(self):
        """Stop picking up companies and cancel the ones in flight."""
        logger.warning("Cancelling ingestion run")
        self._cancelled = True
        for worker in self._workers:
            worker.cancel()

    async def run(
        self,
        companies: List[Company],
        rejected: Optional[List[CompanyOutcome]] = None,
    ) -> IngestionReport:
        """
        Ingest every company and return the per-company report.

        ``rejected`` holds outcomes for company entries that failed validation
        before the run; they are reported first, unchanged.
        """
        report = IngestionReport(outcomes=list(rejected or []), started_at=self.clock())
        await self.store.prune_errors(report.started_at - ERROR_WINDOW)
        results: Dict[int, CompanyOutcome] = {}
        self._cancelled = False

        queue: asyncio.Queue = asyncio.Queue()
        for index, company in enumerate(companies):
            queue.put_nowait((index, company))

        logger.info(
            f"Starting ingestion of {len(companies)} companies "
            f"with {self.concurrency} workers"
        )
        self._workers = [
            asyncio.create_task(self._worker(queue, results))
            for _ in range(min(self.concurrency, len(companies)))
        ]

        try:
            await asyncio.gather(*self._workers, return_exceptions=True)
        except asyncio.CancelledError:
            for worker in self._workers:
                worker.cancel()
            await asyncio.gather(*self._workers, return_exceptions=True)
            self._collect(report, companies, results)
            raise
        finally:
            self._workers = []

        self._collect(report, companies, results)
        logger.info(
            f"Ingestion finished: {len(report.succeeded)} succeeded, "
            f"{len(report.failed)} failed"
        )
        return report

    def _collect(
        self,
        report: IngestionReport,
        companies: List[Company],
        results: Dict[int, CompanyOutcome],
    ):
        for index, company in enumerate(companies):
            outcome = results.get(index)
            if outcome is None:
                outcome = CompanyOutcome(
                    company_id=company.id,
                    company_name=company.name,
                    status=OutcomeStatus.CANCELLED,
                )
            report.outcomes.append(outcome)
        report.finished_at = self.clock()

    async def _worker(self, queue: asyncio.Queue, results: Dict[int, CompanyOutcome]):
        while not self._cancelled:
            try:
                index, company = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                results[index] = await self._ingest_company(company)
            except asyncio.CancelledError:
                logger.warning(f"Ingestion of {company.name} cancelled")
                raise

    async def _ingest_company(self, company: Company) -> CompanyOutcome:
        started = time.monotonic()
        try:
            outcome = await self._ingest(company)
        except IngestError as e:
            logger.error(f"Ingestion failed for {company.name}: {e}")
            outcome = CompanyOutcome(
                company_id=company.id,
                company_name=company.name,
                status=OutcomeStatus.FAILED,
                error_type=e.error_type,
                error=str(e),
            )
        except Exception as e:
            logger.exception(f"Unexpected error ingesting {company.name}: {e}")
            outcome = CompanyOutcome(
                company_id=company.id,
                company_name=company.name,
                status=OutcomeStatus.FAILED,
                error_type="unexpected",
                error=str(e),
            )
        outcome.duration = time.monotonic() - started
        return outcome

    async def _ingest(self, company: Company) -> CompanyOutcome:
        health = await self.store.get_health(company.id)

        if not self.ignore_backoff:
            now = self.clock()
            errors = await self.store.recent_errors(company.id, now - ERROR_WINDOW)
            reason = skip_reason(health, now, errors=errors)
            if reason:
                logger.info(f"Skipping {company.name}: {reason}")
                return CompanyOutcome(
                    company_id=company.id,
                    company_name=company.name,
                    status=OutcomeStatus.SKIPPED,
                    error_type="backoff",
                    error=reason,
                )

        try:
            adapter = get_adapter(company.source_type)
            logger.info(f"Scraping {company.name} with the {adapter.name} adapter")
            raw_postings, attempts = await run_with_retry(
                lambda: adapter.scrape_company(company, self.fetcher),
                self.retry_policy,
                name=f"scrape {company.name}",
            )
        except Exception as e:
            if isinstance(e, IngestError):
                logger.error(f"Scrape failed for {company.name}: {e}")
                error_type = e.error_type
            else:
                logger.exception(f"Unexpected error scraping {company.name}: {e}")
                error_type = "unexpected"
            failed_at = self.clock()
            await self.store.add_error(
                company.id, error_entry(e, failed_at, company.job_board_url)
            )
            errors = await self.store.recent_errors(company.id, failed_at - ERROR_WINDOW)
            await self.store.save_health(
                after_failure(health, company.id, e, failed_at, errors=errors)
            )
            return CompanyOutcome(
                company_id=company.id,
                company_name=company.name,
                status=OutcomeStatus.FAILED,
                attempts=getattr(e, "attempts", 0),
                error_type=error_type,
                error=str(e),
            )

        seen_at = self.clock()
        records: Dict[str, JobRecord] = {}
        invalid = 0
        for raw in raw_postings:
            try:
                record = normalize(raw, company, seen_at)
            except ValidationError as e:
                invalid += 1
                logger.warning(f"Skipping invalid posting from {company.name}: {e}")
                continue
            # Boards repeat postings across sections; first one wins
            records.setdefault(record.url, record)

        stored = await self.store.list_by_company(company.id)
        plan = plan_reconciliation(stored, records.values())
        result = await apply_plan(
            self.store, company.id, plan, seen_at, self.retention_policy
        )
        await self.store.save_health(after_success(health, company.id, seen_at))

        return CompanyOutcome(
            company_id=company.id,
            company_name=company.name,
            status=OutcomeStatus.SUCCESS,
            found=len(records),
            inserted=result.inserted,
            updated=result.updated,
            unchanged=result.unchanged,
            removed=result.removed,
            invalid=invalid,
            attempts=attempts,
        )
