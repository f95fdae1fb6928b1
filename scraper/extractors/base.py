"""
Building blocks shared by the field extractors.

Every field is extracted by an ordered list of Strategy objects, tried in
sequence until one yields an acceptable value. A strategy that raises is
logged and skipped: a broken selector on one page must never take down the
rest of the record.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from functools import cached_property
from typing import Any, Callable, Iterable, List, Optional, Sequence

import soupsieve as sv
from bs4 import BeautifulSoup, Comment, NavigableString, Tag

logger = logging.getLogger(__name__)


WHITESPACE_RE = re.compile(r"\s+")
FLOAT_PREFIX_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+))")
INT_PREFIX_RE = re.compile(r"^\s*([+-]?\d+)")


@dataclass
class PageDocument:
    """
    A parsed product page plus the text views most extractors need.

    Attributes:
        soup: Parsed document
        base_url: Site root used to absolutize site-relative URLs
    """

    soup: BeautifulSoup
    base_url: str = ""

    @classmethod
    def from_html(cls, html: str, base_url: str = "") -> "PageDocument":
        return cls(soup=BeautifulSoup(html or "", "lxml"), base_url=base_url.rstrip("/"))

    @cached_property
    def body_text(self) -> str:
        body = self.soup.body or self.soup
        return collapse_whitespace(body.get_text(" "))

    @cached_property
    def body_text_lower(self) -> str:
        return self.body_text.lower()

    def first(self, selector: str) -> Optional[Tag]:
        return self.soup.select_one(selector)

    def select(self, selector: str) -> List[Tag]:
        return self.soup.select(selector)


@dataclass(frozen=True)
class Strategy:
    """One way of finding a field value, with the test its result must pass."""

    name: str
    extract: Callable[[PageDocument], Any]
    accept: Callable[[Any], bool] = field(default=bool)


def run_cascade(
    field_name: str,
    strategies: Sequence[Strategy],
    doc: PageDocument,
    default: Any = None,
) -> Any:
    """
    Try each strategy in order and return the first accepted value.

    Args:
        field_name: Field being extracted (for logging)
        strategies: Ordered strategies, most specific first
        doc: Page to extract from
        default: Returned when no strategy produces an accepted value

    Returns:
        The first accepted value, or default
    """
    for strategy in strategies:
        try:
            value = strategy.extract(doc)
        except Exception as e:
            logger.debug(f"{field_name}: strategy '{strategy.name}' raised {type(e).__name__}: {e}")
            continue

        if strategy.accept(value):
            logger.debug(f"{field_name}: matched by '{strategy.name}'")
            return value

    return default


# Text helpers


def collapse_whitespace(text: Optional[str]) -> str:
    if not text:
        return ""
    return WHITESPACE_RE.sub(" ", text).strip()


def text_of(tag: Optional[Tag]) -> str:
    """Whitespace-collapsed text of a tag and its descendants."""
    if tag is None:
        return ""
    return collapse_whitespace(tag.get_text(" "))


def own_text(tag: Optional[Tag]) -> str:
    """Text of a tag's direct text nodes only, ignoring child elements."""
    if tag is None:
        return ""
    parts = [
        str(child)
        for child in tag.children
        if isinstance(child, NavigableString) and not isinstance(child, Comment)
    ]
    return collapse_whitespace(" ".join(parts))


def text_excluding(tag: Tag, selector: str) -> str:
    """Text of a tag, skipping direct children that match selector."""
    parts = []
    for child in tag.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, NavigableString):
            parts.append(str(child))
        elif isinstance(child, Tag) and not sv.match(selector, child):
            parts.append(child.get_text(" "))
    return collapse_whitespace(" ".join(parts))


def class_string(tag: Tag) -> str:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        return classes.lower()
    return " ".join(classes).lower()


def closest(tag: Tag, selector: str) -> Optional[Tag]:
    """Nearest ancestor-or-self matching selector."""
    node = tag
    while isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
        if sv.match(selector, node):
            return node
        node = node.parent
    return None


def unique(items: Iterable[str]) -> List[str]:
    """Drop repeats, keeping first-seen order."""
    return list(dict.fromkeys(item for item in items if item))


# Number helpers


def round_half_up(value: float, digits: int = 0):
    """Round halves away from zero (0.5 -> 1), unlike Python's round()."""
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    if digits == 0:
        return int(rounded)
    return float(rounded)


def parse_float_prefix(text: Optional[str]) -> Optional[float]:
    """Parse the leading number of a string ("4.2 out of 5" -> 4.2)."""
    if not text:
        return None
    match = FLOAT_PREFIX_RE.match(text)
    if not match:
        return None
    return float(match.group(1))


def parse_int_prefix(text: Optional[str]) -> Optional[int]:
    if not text:
        return None
    match = INT_PREFIX_RE.match(text)
    if not match:
        return None
    return int(match.group(1))


def parse_vote_count(text: Optional[str]) -> float:
    """
    Parse a vote count such as "1,204", "87" or "1.2k".

    Returns:
        The count, or 0 when the text carries no leading number
    """
    cleaned = (text or "").strip().replace(",", "").lower()
    if not cleaned:
        return 0
    value = parse_float_prefix(cleaned)
    if value is None:
        return 0
    if cleaned.endswith("k"):
        return value * 1000
    return value


def absolutize_url(src: Optional[str], base_url: str) -> Optional[str]:
    """Turn protocol-relative and site-relative URLs into absolute ones."""
    if not src:
        return None
    src = src.strip()
    if src.startswith("//"):
        return f"https:{src}"
    if src.startswith("/"):
        return f"{base_url}{src}"
    if src.startswith("http"):
        return src
    return None
