"""
Tests for XPath link extraction.
"""

import pytest

from ingest.core.errors import ParseError
from ingest.extract.links import extract_anchors, extract_links, resolve_url

BOARD = "https://jobs.example.com/boards/x"

LISTING = """
<html><body>
  <nav><a href="/about">About</a></nav>
  <ul id="jobs">
    <li><a href="/jobs/42">Backend Engineer</a></li>
    <li><a href="https://jobs.example.com/jobs/43#apply">Data Engineer</a></li>
    <li><a href="/jobs/42">Backend Engineer (again)</a></li>
    <li><a href="mailto:jobs@example.com">Email us</a></li>
    <li><a href="#top">Top</a></li>
  </ul>
</body></html>
"""


class TestExtractLinks:
    def test_relative_links_resolve_against_board(self):
        links = extract_links(LISTING, BOARD, "//ul[@id='jobs']")
        assert links[0] == "https://jobs.example.com/jobs/42"

    def test_duplicates_removed_first_occurrence_wins(self):
        anchors = extract_anchors(LISTING, BOARD, "//ul[@id='jobs']")
        urls = [a.url for a in anchors]
        assert urls == [
            "https://jobs.example.com/jobs/42",
            "https://jobs.example.com/jobs/43",
        ]
        assert anchors[0].text == "Backend Engineer"

    def test_container_scopes_extraction(self):
        links = extract_links(LISTING, BOARD, "//nav")
        assert links == ["https://jobs.example.com/about"]

    def test_no_match_returns_empty_list(self):
        assert extract_links(LISTING, BOARD, "//div[@id='missing']") == []

    def test_empty_document_returns_empty_list(self):
        assert extract_links("", BOARD, "//body") == []
        assert extract_links("   ", BOARD, "//body") == []

    def test_malformed_html_still_yields_links(self):
        broken = '<div id="jobs"><p><a href="/jobs/1">One<a href="/jobs/2">Two</div'
        links = extract_links(broken, BOARD, "//div[@id='jobs']")
        assert "https://jobs.example.com/jobs/1" in links
        assert "https://jobs.example.com/jobs/2" in links

    def test_href_attribute_expression(self):
        links = extract_links(LISTING, BOARD, "//ul[@id='jobs']//a/@href")
        assert links == [
            "https://jobs.example.com/jobs/42",
            "https://jobs.example.com/jobs/43",
        ]

    def test_invalid_xpath_raises_parse_error(self):
        with pytest.raises(ParseError):
            extract_links(LISTING, BOARD, "//ul[@id=")

    def test_xml_declaration_is_accepted(self):
        doc = '<?xml version="1.0" encoding="utf-8"?><html><body><a href="/jobs/9">Nine</a></body></html>'
        assert extract_links(doc, BOARD, "//body") == ["https://jobs.example.com/jobs/9"]


class TestResolveUrl:
    def test_skips_non_navigational_hrefs(self):
        assert resolve_url("javascript:void(0)", BOARD) is None
        assert resolve_url("tel:+15555555", BOARD) is None
        assert resolve_url("#section", BOARD) is None

    def test_drops_fragment(self):
        assert resolve_url("/jobs/1#top", BOARD) == "https://jobs.example.com/jobs/1"
