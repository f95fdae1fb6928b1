"""
Identity fields: name, brand, year, perfumer, gender and concentration.
"""

import re
from datetime import date
from typing import Optional, Tuple

from scraper.extractors.base import (
    PageDocument,
    Strategy,
    absolutize_url,
    run_cascade,
    text_of,
)
from scraper.types import Gender


NAME_HEADING = 'h1[itemprop="name"]'
GENDER_SUFFIX_RE = re.compile(r"\s+for\s+(men|women|women and men)\s*$", re.IGNORECASE)
TITLE_PREFIX_RE = re.compile(r"^([^|]+)")

BRAND_SELECTORS = [
    'p[itemprop="brand"] span[itemprop="name"]',
    'span[itemprop="name"]',
    '[itemprop="brand"] [itemprop="name"]',
]

YEAR_PATTERNS = [
    re.compile(r"launched\s+in\s+(\d{4})", re.IGNORECASE),
    re.compile(r"was\s+launched\s+in\s+(\d{4})", re.IGNORECASE),
    re.compile(r"from\s+(\d{4})", re.IGNORECASE),
    re.compile(r"\((\d{4})\)"),
]
MIN_YEAR = 1900

PERFUMER_LINK = 'a[href*="/noses/"]'
PERFUMER_PREFIX_RE = re.compile(r"^perfumers?[,:]?\s*", re.IGNORECASE)
PERFUMER_TEXT_RE = re.compile(r"(?i:created\s+by|noses?:?)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)")

# Checked in order; the combined phrase must come before its single-gender parts.
HEADING_GENDER_RULES = [
    (("for women and men",), Gender.UNISEX),
    (("for women", "pour femme"), Gender.FEMININE),
    (("for men", "pour homme"), Gender.MASCULINE),
    (("unisex",), Gender.UNISEX),
]
BODY_GENDER_RULES = [
    (("for women and men", "unisex"), Gender.UNISEX),
    (("for women",), Gender.FEMININE),
    (("for men",), Gender.MASCULINE),
]

# Most specific first: "parfum" alone would also match "eau de parfum".
CONCENTRATION_PATTERNS = [
    (re.compile(r"\bextrait\b|\bextract\b"), "Extrait de Parfum"),
    (re.compile(r"\beau\s+de\s+parfum\b|\bedp\b"), "Eau de Parfum"),
    (re.compile(r"\beau\s+de\s+toilette\b|\bedt\b"), "Eau de Toilette"),
    (re.compile(r"\beau\s+de\s+cologne\b|\bedc\b"), "Eau de Cologne"),
    (re.compile(r"\beau\s+fraiche\b"), "Eau Fraiche"),
    (re.compile(r"\bparfum\b"), "Parfum"),
]


# Name


def _name_from_heading(doc: PageDocument) -> Optional[str]:
    heading = text_of(doc.first(NAME_HEADING))
    if not heading:
        return None

    name = GENDER_SUFFIX_RE.sub("", heading).strip()
    brand = text_of(doc.first('span[itemprop="name"]')) or text_of(
        doc.first('p[itemprop="brand"] span[itemprop="name"]')
    )
    if brand and name.endswith(brand) and name != brand:
        name = name[: -len(brand)].strip()
    return name


def _name_from_title(doc: PageDocument) -> Optional[str]:
    title = text_of(doc.first("title"))
    if not title:
        return None
    match = TITLE_PREFIX_RE.match(title)
    return match.group(1).strip() if match else title


NAME_STRATEGIES = [
    Strategy("schema heading", _name_from_heading),
    Strategy("title prefix", _name_from_title),
]


def extract_name(doc: PageDocument) -> Optional[str]:
    return run_cascade("name", NAME_STRATEGIES, doc)


# Brand


def _selector_text(selector: str):
    return lambda doc: text_of(doc.first(selector))


BRAND_STRATEGIES = [
    *(Strategy(f"selector {selector}", _selector_text(selector)) for selector in BRAND_SELECTORS),
    Strategy("designer link", _selector_text('a[href*="/designers/"]')),
]


def extract_brand(doc: PageDocument) -> Optional[str]:
    return run_cascade("brand", BRAND_STRATEGIES, doc)


# Year


def extract_year(doc: PageDocument) -> Optional[int]:
    """
    Find the launch year in the page body.

    Each pattern is tried once; a match outside [1900, current year] moves
    on to the next pattern rather than searching further with the same one.
    """
    current_year = date.today().year
    for pattern in YEAR_PATTERNS:
        match = pattern.search(doc.body_text)
        if match:
            year = int(match.group(1))
            if MIN_YEAR <= year <= current_year:
                return year
    return None


# Perfumer


def _perfumers_from_links(doc: PageDocument) -> Optional[Tuple[str, Optional[str]]]:
    names = []
    image_url = None
    for link in doc.select(PERFUMER_LINK):
        name = PERFUMER_PREFIX_RE.sub("", text_of(link))
        if not name or name in names:
            continue
        names.append(name)

        img = link.find("img")
        if image_url is None and img is not None:
            image_url = absolutize_url(img.get("src") or img.get("data-src"), doc.base_url)

    if not names:
        return None
    return ", ".join(names), image_url


def _perfumer_from_text(doc: PageDocument) -> Optional[Tuple[str, Optional[str]]]:
    match = PERFUMER_TEXT_RE.search(doc.body_text)
    if not match:
        return None
    return match.group(1).strip(), None


PERFUMER_STRATEGIES = [
    Strategy("nose links", _perfumers_from_links),
    Strategy("credit text", _perfumer_from_text),
]


def extract_perfumer(doc: PageDocument) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract perfumer name(s) and the first perfumer portrait.

    Returns:
        (comma-joined names, image URL); either may be None
    """
    return run_cascade("perfumer", PERFUMER_STRATEGIES, doc, default=(None, None))


# Gender


def _match_gender(text: str, rules) -> Optional[str]:
    for phrases, gender in rules:
        if any(phrase in text for phrase in phrases):
            return gender.value
    return None


GENDER_STRATEGIES = [
    Strategy(
        "heading",
        lambda doc: _match_gender(text_of(doc.first(NAME_HEADING)).lower(), HEADING_GENDER_RULES),
    ),
    Strategy("body", lambda doc: _match_gender(doc.body_text_lower, BODY_GENDER_RULES)),
]


def extract_gender(doc: PageDocument) -> str:
    return run_cascade("gender", GENDER_STRATEGIES, doc, default=Gender.UNISEX.value)


# Concentration


def extract_concentration(doc: PageDocument) -> Optional[str]:
    full_text = f"{text_of(doc.first('h1'))} {doc.body_text}".lower()
    for pattern, value in CONCENTRATION_PATTERNS:
        if pattern.search(full_text):
            return value
    return None
