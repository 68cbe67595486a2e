"""
Tests for company input validation and the companies file loader.
"""

import json

import pytest

from ingest.core.errors import ConfigurationError, ValidationError
from ingest.core.models import (
    Company,
    CompanyOutcome,
    Compensation,
    IngestionReport,
    OutcomeStatus,
)
from main import load_companies


class TestCompany:
    def test_accepts_camel_and_snake_case(self):
        camel = Company.from_mapping(
            {
                "id": "acme",
                "name": "Acme",
                "jobBoardUrl": "https://jobs.ashbyhq.com/acme",
                "sourceType": "Ashby",
                "containerXPath": "//main",
            }
        )
        snake = Company.from_mapping(
            {
                "id": "acme",
                "name": "Acme",
                "job_board_url": "https://jobs.ashbyhq.com/acme",
                "source_type": "ashby",
                "container_xpath": "//main",
            }
        )
        assert camel == snake
        assert camel.source_type == "ashby"

    @pytest.mark.parametrize(
        "url", ["jobs.ashbyhq.com/acme", "/careers", "ftp://example.com/jobs", ""]
    )
    def test_rejects_non_absolute_urls(self, url):
        with pytest.raises(ConfigurationError):
            Company.from_mapping(
                {"id": "acme", "name": "Acme", "jobBoardUrl": url, "sourceType": "ashby"}
            )

    def test_numeric_id_becomes_string(self):
        company = Company.from_mapping(
            {
                "id": 7,
                "name": "Acme",
                "jobBoardUrl": "https://jobs.ashbyhq.com/acme",
                "sourceType": "ashby",
            }
        )
        assert company.id == "7"

    def test_rejects_boolean_id(self):
        with pytest.raises(ConfigurationError):
            Company.from_mapping(
                {
                    "id": True,
                    "name": "Acme",
                    "jobBoardUrl": "https://jobs.ashbyhq.com/acme",
                    "sourceType": "ashby",
                }
            )

    def test_rejects_blank_name(self):
        with pytest.raises(ConfigurationError):
            Company.from_mapping(
                {
                    "id": "acme",
                    "name": "  ",
                    "jobBoardUrl": "https://jobs.ashbyhq.com/acme",
                    "sourceType": "ashby",
                }
            )


class TestCompensation:
    def test_inverted_range_is_invalid(self):
        with pytest.raises(ValidationError):
            Compensation(min=10, max=5)

    def test_unknown_pay_type_is_invalid(self):
        with pytest.raises(ValidationError):
            Compensation(min=1, max=2, type="weekly")


class TestLoadCompanies:
    def test_valid_and_invalid_entries(self, tmp_path):
        path = tmp_path / "companies.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "id": "acme",
                        "name": "Acme",
                        "jobBoardUrl": "https://jobs.ashbyhq.com/acme",
                        "sourceType": "ashby",
                    },
                    {"id": "broken", "name": "Broken", "jobBoardUrl": "nope", "sourceType": "ashby"},
                ]
            )
        )
        companies, rejected = load_companies(str(path))

        assert [c.id for c in companies] == ["acme"]
        assert rejected[0].company_id == "broken"
        assert rejected[0].status == OutcomeStatus.FAILED
        assert rejected[0].error_type == "configuration_error"

    def test_companies_key(self, tmp_path):
        path = tmp_path / "companies.json"
        path.write_text(
            json.dumps(
                {
                    "companies": [
                        {
                            "id": "globex",
                            "name": "Globex",
                            "job_board_url": "https://job-boards.greenhouse.io/globex",
                            "source_type": "greenhouse",
                        }
                    ]
                }
            )
        )
        companies, rejected = load_companies(str(path))
        assert companies[0].source_type == "greenhouse"
        assert rejected == []

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_companies(str(tmp_path / "missing.json"))


class TestIngestionReport:
    def test_skipped_companies_do_not_fail_the_run(self):
        report = IngestionReport(
            outcomes=[
                CompanyOutcome("acme", "Acme", OutcomeStatus.SUCCESS, found=2, inserted=2),
                CompanyOutcome("globex", "Globex", OutcomeStatus.SKIPPED, error="backoff"),
            ]
        )
        assert report.ok is True
        assert "2 companies: 1 succeeded, 0 failed" in report.format()

    def test_failed_company_fails_the_run(self):
        report = IngestionReport(
            outcomes=[
                CompanyOutcome(
                    "acme",
                    "Acme",
                    OutcomeStatus.FAILED,
                    error_type="fetch_failed",
                    error="HTTP 404",
                )
            ]
        )
        assert report.ok is False
        assert "fetch_failed: HTTP 404" in report.format()
