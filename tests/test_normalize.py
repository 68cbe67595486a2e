"""
Tests for mapping raw postings onto canonical records.
"""

from datetime import datetime, timezone

import pytest

from ingest.core.errors import ValidationError
from ingest.core.models import Compensation, RawPosting
from ingest.core.normalize import (
    make_external_id,
    normalize,
    parse_compensation,
    split_locations,
)

SEEN = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


class TestNormalize:
    def test_builds_canonical_record(self, company_factory):
        company = company_factory()
        raw = RawPosting(
            title="  Senior   Engineer ",
            url="/jobs/42#apply",
            location="New York; Remote",
            department=" Engineering ",
            compensation="$150K - $200K",
        )
        record = normalize(raw, company, SEEN)

        assert record.title == "Senior Engineer"
        assert record.url == "https://jobs.ashbyhq.com/jobs/42"
        assert record.company_id == "acme"
        assert record.source == "ashby-scraper"
        assert record.locations == ["New York", "Remote"]
        assert record.department == "Engineering"
        assert record.compensation == Compensation(150_000, 200_000, "USD", "annual")
        assert record.first_seen_at == SEEN
        assert record.last_seen_at == SEEN
        assert record.removed_at is None

    def test_empty_title_rejected(self, company_factory):
        with pytest.raises(ValidationError):
            normalize(RawPosting(title="   ", url="/jobs/1"), company_factory(), SEEN)

    def test_missing_url_rejected(self, company_factory):
        with pytest.raises(ValidationError):
            normalize(RawPosting(title="Engineer", url=""), company_factory(), SEEN)

    def test_inverted_compensation_is_dropped(self, company_factory):
        raw = RawPosting(title="Engineer", url="/jobs/1", compensation="$200K - $150K")
        record = normalize(raw, company_factory(), SEEN)
        assert record.compensation is None

    def test_external_id_is_stable_and_scoped(self):
        url = "https://jobs.ashbyhq.com/acme/1"
        assert make_external_id("acme", url) == make_external_id("acme", url)
        assert make_external_id("acme", url) != make_external_id("other", url)
        assert len(make_external_id("acme", url)) == 16


class TestParseCompensation:
    def test_range_with_suffixes(self):
        comp = parse_compensation("$150K – $200K")
        assert (comp.min, comp.max, comp.currency, comp.type) == (150_000, 200_000, "USD", "annual")

    def test_suffix_on_upper_bound_applies_to_both(self):
        comp = parse_compensation("$150-200k")
        assert (comp.min, comp.max) == (150_000, 200_000)

    def test_hourly_rate(self):
        comp = parse_compensation("$45 - $60 per hour")
        assert comp.type == "hourly"
        assert (comp.min, comp.max) == (45, 60)

    def test_explicit_currency_code(self):
        comp = parse_compensation("120,000 to 140,000 EUR")
        assert comp.currency == "EUR"
        assert (comp.min, comp.max) == (120_000, 140_000)

    def test_single_value(self):
        comp = parse_compensation("£80,000")
        assert (comp.min, comp.max, comp.currency) == (80_000, 80_000, "GBP")

    def test_inverted_range_raises(self):
        with pytest.raises(ValidationError):
            parse_compensation("$200K - $100K")

    def test_unrecognized_text(self):
        assert parse_compensation("Competitive") is None
        assert parse_compensation(None) is None


class TestSplitLocations:
    def test_splits_and_deduplicates(self):
        assert split_locations("London | Berlin; London\nRemote") == [
            "London",
            "Berlin",
            "Remote",
        ]

    def test_or_separator(self):
        assert split_locations("San Francisco or New York") == ["San Francisco", "New York"]

    def test_empty(self):
        assert split_locations(None) == []
        assert split_locations("") == []
