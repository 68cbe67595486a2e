"""
Reconciliation: diff a fresh scrape against the postings stored for a
company and apply the difference.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List

from ingest.core.models import JobRecord
from ingest.storage.job_store import UpsertResult

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationPlan:
    to_insert: List[JobRecord] = field(default_factory=list)
    to_update: List[JobRecord] = field(default_factory=list)
    unchanged: List[JobRecord] = field(default_factory=list)
    to_remove: List[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not (self.to_insert or self.to_update or self.to_remove)


@dataclass
class ReconciliationResult:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    removed: int = 0


def plan_reconciliation(
    stored: Iterable[JobRecord], scraped: Iterable[JobRecord]
) -> ReconciliationPlan:
    """
    Split scraped records into inserts (new URLs), updates (known URLs whose
    compared fields changed) and unchanged ones; stored URLs missing from the
    scrape are listed for removal. Keyed by URL, both inputs belong to one
    company.
    """
    previous: Dict[str, JobRecord] = {r.url: r for r in stored}
    plan = ReconciliationPlan()
    seen = set()

    for record in scraped:
        if record.url in seen:
            continue
        seen.add(record.url)
        existing = previous.get(record.url)
        if existing is None:
            plan.to_insert.append(record)
        elif record.differs_from(existing):
            plan.to_update.append(record)
        else:
            plan.unchanged.append(record)

    plan.to_remove = [url for url in previous if url not in seen]
    return plan


async def apply_plan(
    store,
    company_id: str,
    plan: ReconciliationPlan,
    now: datetime,
    policy: str,
) -> ReconciliationResult:
    """
    Write the plan through the store. Counts come from what the store actually
    did, so a concurrent run that already inserted a URL is reported as an
    update or no-op rather than a second insert.
    """
    result = ReconciliationResult()

    for record in plan.to_insert + plan.to_update:
        outcome = await store.upsert(record)
        if outcome == UpsertResult.INSERTED:
            result.inserted += 1
        elif outcome == UpsertResult.UPDATED:
            result.updated += 1
        else:
            result.unchanged += 1

    if plan.unchanged:
        await store.touch(company_id, [r.url for r in plan.unchanged], now)
        result.unchanged += len(plan.unchanged)

    if plan.to_remove:
        result.removed = await store.mark_removed(company_id, plan.to_remove, now, policy)

    logger.info(
        f"Reconciled {company_id}: {result.inserted} new, {result.updated} updated, "
        f"{result.unchanged} unchanged, {result.removed} removed"
    )
    return result
