"""
Main accords, ordered by prominence.

Only accord names are kept; bar widths are used for ordering and then
dropped.
"""

import re
from typing import List, Optional

from scraper.extractors.base import (
    PageDocument,
    Strategy,
    class_string,
    closest,
    collapse_whitespace,
    run_cascade,
    text_excluding,
    text_of,
    unique,
)

ACCORD_BAR = '.accord-bar, [class*="accord-bar"]'
ACCORD_LINK = 'a[href*="/accords/"]'
COUNTER_CHILDREN = '[class*="vote"], [class*="count"], [class*="num"]'
WIDTH_RE = re.compile(r"width:\s*([\d.]+)%")
DIGITS_RE = re.compile(r"\d[\d,.]*")
VOTES_WORD_RE = re.compile(r"votes?", re.IGNORECASE)


def clean_accord_name(text: str) -> str:
    return collapse_whitespace(VOTES_WORD_RE.sub("", DIGITS_RE.sub("", text or "")))


def _valid_name(name: Optional[str], min_length: int = 2) -> bool:
    return bool(name) and min_length <= len(name) < 60


def _from_bars(doc: PageDocument) -> List[str]:
    """Accord bars, widest first; bars without a width follow in page order."""
    with_width = []
    without_width = []
    for bar in doc.select(ACCORD_BAR):
        span = bar.find("span", recursive=False)
        name = text_of(span) or clean_accord_name(text_excluding(bar, COUNTER_CHILDREN))
        if not name or not 2 <= len(name) <= 60:
            continue

        match = WIDTH_RE.search(bar.get("style") or "")
        if match:
            with_width.append((name, float(match.group(1))))
        else:
            without_width.append(name)

    # Stable sort: equal widths keep page order.
    with_width.sort(key=lambda item: item[1], reverse=True)
    return unique([name for name, _ in with_width] + without_width)


def _from_links(doc: PageDocument) -> List[str]:
    return unique(name for name in map(text_of, doc.select(ACCORD_LINK)) if _valid_name(name))


def _from_section_heading(doc: PageDocument) -> List[str]:
    names = []
    for heading in doc.select("b, strong, h3, h4"):
        heading_text = text_of(heading).lower()
        if "accord" not in heading_text and "acorde" not in heading_text:
            continue
        section = closest(heading, "div, section, .cell")
        if section is None:
            continue
        names.extend(name for name in map(text_of, section.select(ACCORD_LINK)) if _valid_name(name))
    return unique(names)


def _from_accord_classes(doc: PageDocument) -> List[str]:
    names = []
    for element in doc.select('[class*="accord"]'):
        # Containers of other accord elements are skipped; their leaves are visited.
        if any("accord" in class_string(child) for child in element.find_all(recursive=False)):
            continue
        name = clean_accord_name(element.get_text(" "))
        if _valid_name(name):
            names.append(name)
    return unique(names)


ACCORD_STRATEGIES = [
    Strategy("accord bars", _from_bars),
    Strategy("accord links", _from_links),
    Strategy("accord section heading", _from_section_heading),
    Strategy("accord classes", _from_accord_classes),
]


def extract_accords(doc: PageDocument) -> List[str]:
    return run_cascade("accords", ACCORD_STRATEGIES, doc, default=[])
