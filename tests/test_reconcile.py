"""
Tests for reconciliation planning and application.
"""

from datetime import datetime, timedelta, timezone

import pytest

from ingest.core.models import JobRecord
from ingest.core.normalize import make_external_id
from ingest.core.reconcile import apply_plan, plan_reconciliation

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
BOARD = "https://jobs.ashbyhq.com/acme"


def record(slug: str, title: str = None, seen_at: datetime = T0) -> JobRecord:
    url = f"{BOARD}/{slug}"
    return JobRecord(
        external_id=make_external_id("acme", url),
        company_id="acme",
        url=url,
        title=title or slug.upper(),
        source="ashby-scraper",
        first_seen_at=seen_at,
        last_seen_at=seen_at,
    )


class TestPlanReconciliation:
    def test_partitions_previous_and_new(self):
        stored = [record("a"), record("b"), record("c")]
        scraped = [record("b"), record("c", title="C (Remote)"), record("d")]

        plan = plan_reconciliation(stored, scraped)

        assert [r.url for r in plan.to_insert] == [f"{BOARD}/d"]
        assert [r.url for r in plan.to_update] == [f"{BOARD}/c"]
        assert [r.url for r in plan.unchanged] == [f"{BOARD}/b"]
        assert plan.to_remove == [f"{BOARD}/a"]

    def test_identical_scrape_is_noop(self):
        stored = [record("a"), record("b")]
        plan = plan_reconciliation(stored, [record("a"), record("b")])
        assert plan.is_noop
        assert len(plan.unchanged) == 2

    def test_seen_timestamps_do_not_count_as_change(self):
        later = T0 + timedelta(days=1)
        plan = plan_reconciliation([record("a")], [record("a", seen_at=later)])
        assert plan.to_update == []

    def test_duplicate_scraped_urls_collapse(self):
        plan = plan_reconciliation([], [record("a"), record("a", title="Other")])
        assert len(plan.to_insert) == 1
        assert plan.to_insert[0].title == "A"


class TestApplyPlan:
    async def test_applies_inserts_updates_and_removals(self, store):
        await apply_plan(
            store, "acme", plan_reconciliation([], [record("a"), record("b"), record("c")]), T0, "soft"
        )

        later = T0 + timedelta(hours=6)
        stored = await store.list_by_company("acme")
        scraped = [record("b", seen_at=later), record("c", "C (Remote)", later), record("d", seen_at=later)]
        result = await apply_plan(
            store, "acme", plan_reconciliation(stored, scraped), later, "soft"
        )

        assert (result.inserted, result.updated, result.unchanged, result.removed) == (1, 1, 1, 1)

        active = {r.url: r for r in await store.list_by_company("acme")}
        assert sorted(active) == [f"{BOARD}/b", f"{BOARD}/c", f"{BOARD}/d"]
        assert active[f"{BOARD}/c"].title == "C (Remote)"
        assert active[f"{BOARD}/b"].last_seen_at == later
        assert active[f"{BOARD}/b"].first_seen_at == T0

        removed = await store.get(make_external_id("acme", f"{BOARD}/a"))
        assert removed.removed_at == later
