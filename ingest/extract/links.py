"""
XPath-based link extraction from job-board HTML.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urljoin, urldefrag

from lxml import etree, html as lxml_html

from ingest.core.errors import ParseError

logger = logging.getLogger(__name__)

SKIPPED_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")


@dataclass
class Anchor:
    url: str
    text: str = ""


def parse_html(html: str) -> Optional[etree._Element]:
    """
    Parse markup permissively. Returns None when nothing usable came out.
    """
    if not html or not html.strip():
        return None
    try:
        return lxml_html.document_fromstring(html)
    except ValueError:
        # str input with an XML encoding declaration must be parsed as bytes
        try:
            return lxml_html.document_fromstring(html.encode("utf-8"))
        except (etree.ParserError, ValueError) as e:
            logger.debug(f"HTML parsing failed: {e}")
            return None
    except etree.ParserError as e:
        logger.debug(f"HTML parsing failed: {e}")
        return None


def resolve_url(href: str, base_url: str) -> Optional[str]:
    href = href.strip()
    if not href or href.startswith("#") or href.lower().startswith(SKIPPED_SCHEMES):
        return None
    url, _ = urldefrag(urljoin(base_url, href))
    return url


def _anchor_text(node) -> str:
    return " ".join(node.text_content().split())


def extract_anchors(html: str, base_url: str, container_xpath: str) -> List[Anchor]:
    """
    Collect anchors under every node matched by ``container_xpath``.

    Results are in document order, de-duplicated by resolved URL (first
    occurrence wins). An expression that matches nothing gives an empty list.

    Raises:
        ParseError: the XPath expression itself is invalid
    """
    doc = parse_html(html)
    if doc is None:
        return []

    # Expressions that already select href attributes are used as-is
    if container_xpath.rstrip().endswith("@href"):
        expression = container_xpath
    else:
        expression = f"{container_xpath}//a"

    try:
        nodes = doc.xpath(expression)
    except etree.XPathError as e:
        raise ParseError(f"Invalid container XPath {container_xpath!r}: {e}") from e

    if not isinstance(nodes, list):
        return []

    anchors: List[Anchor] = []
    seen = set()
    for node in nodes:
        # Element nodes carry the attribute; expressions ending in @href hand
        # back attribute values as strings instead
        if isinstance(node, etree._Element):
            href = node.get("href")
            text = _anchor_text(node)
        elif isinstance(node, str):
            href = str(node)
            text = ""
        else:
            continue
        if not href:
            continue

        url = resolve_url(href, base_url)
        if url is None or url in seen:
            continue
        seen.add(url)
        anchors.append(Anchor(url=url, text=text))

    logger.debug(f"XPath '{container_xpath}' yielded {len(anchors)} links")
    return anchors


def extract_links(html: str, base_url: str, container_xpath: str) -> List[str]:
    """Absolute, de-duplicated hrefs of the anchors under ``container_xpath``."""
    return [a.url for a in extract_anchors(html, base_url, container_xpath)]
