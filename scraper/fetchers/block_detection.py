"""
Block page detection.

The source site answers aggressive crawling with an ordinary 200 page that
says "Too Many Requests" (or similar) instead of the product. Such pages are
detected by phrase matching in three regions of the document:
1. <title>
2. The first <h1>
3. The first 1000 characters of body text
"""

import logging
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

from scraper.extractors.base import collapse_whitespace

logger = logging.getLogger(__name__)


TITLE_PHRASES = ["too many requests", "429", "error", "blocked"]
HEADING_PHRASES = ["too many requests", "access denied"]
BODY_PHRASES = ["too many requests", "rate limit", "please try again later"]

BODY_PREFIX_LENGTH = 1000

# Phrases that must never appear in an extracted perfume name.
BLOCK_ARTIFACT_PHRASES = ["too many requests"]


@dataclass
class BlockDetectionResult:
    """Result of block page detection."""

    is_blocked: bool
    reason: str
    phrase_matched: Optional[str] = None


def _find_phrase(text: str, phrases) -> Optional[str]:
    for phrase in phrases:
        if phrase in text:
            return phrase
    return None


def detect_block_page(html: str) -> BlockDetectionResult:
    """
    Detect if rendered HTML is a block or rate-limit page.

    Args:
        html: Rendered page HTML

    Returns:
        BlockDetectionResult with detection status and reason
    """
    soup = BeautifulSoup(html or "", "lxml")

    title = soup.find("title")
    title_text = collapse_whitespace(title.get_text(" ")).lower() if title else ""
    phrase = _find_phrase(title_text, TITLE_PHRASES)
    if phrase:
        logger.debug(f"Block page detected in title: '{phrase}'")
        return BlockDetectionResult(True, f"title contains '{phrase}'", phrase)

    heading = soup.find("h1")
    heading_text = collapse_whitespace(heading.get_text(" ")).lower() if heading else ""
    phrase = _find_phrase(heading_text, HEADING_PHRASES)
    if phrase:
        logger.debug(f"Block page detected in heading: '{phrase}'")
        return BlockDetectionResult(True, f"heading contains '{phrase}'", phrase)

    body = soup.body or soup
    body_text = collapse_whitespace(body.get_text(" ")).lower()[:BODY_PREFIX_LENGTH]
    phrase = _find_phrase(body_text, BODY_PHRASES)
    if phrase:
        logger.debug(f"Block page detected in body: '{phrase}'")
        return BlockDetectionResult(True, f"body contains '{phrase}'", phrase)

    return BlockDetectionResult(False, "no block phrases found")


def contains_block_artifact(text: Optional[str]) -> bool:
    """Check whether an extracted value leaked from a block page."""
    if not text:
        return False
    lowered = text.lower()
    return any(phrase in lowered for phrase in BLOCK_ARTIFACT_PHRASES)
