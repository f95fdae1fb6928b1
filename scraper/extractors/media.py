"""
Rating, description and image extraction.
"""

from typing import Optional

from scraper.extractors.base import (
    PageDocument,
    Strategy,
    absolutize_url,
    parse_float_prefix,
    round_half_up,
    run_cascade,
    text_of,
)

RATING_SELECTORS = [
    '[itemprop="ratingValue"]',
    ".rating-value",
    ".vote-button-legend",
    "[data-rating]",
]

DESCRIPTION_SELECTORS = [
    '[itemprop="description"]',
    ".fragrantica-blockquote",
    'div[class*="description"]',
    ".accord-text",
]
DESCRIPTION_MIN_TAGGED = 50
PARAGRAPH_MIN = 100
PARAGRAPH_MAX = 2000
BOILERPLATE_MARKERS = ("Login", "Register", "©")

IMAGE_SELECTORS = [
    'img[itemprop="image"]',
    'picture source[type="image/avif"]',
    'picture source[type="image/webp"]',
    "picture img",
    'img[alt*="perfume"]',
    'img[src*="perfume"]',
    ".perfume-image img",
]


def normalize_rating(value: float) -> float:
    """Bring a rating onto the 0-5 scale; anything above 5 is read as 0-10."""
    if value > 5:
        value = value / 2
    return round_half_up(value, 1)


def extract_rating(doc: PageDocument) -> Optional[float]:
    for selector in RATING_SELECTORS:
        element = doc.first(selector)
        if element is None:
            continue
        raw = element.get("content") or element.get("data-rating") or text_of(element)
        value = parse_float_prefix(raw)
        if value is not None:
            return normalize_rating(value)
    return None


def _tagged_description(doc: PageDocument) -> Optional[str]:
    for selector in DESCRIPTION_SELECTORS:
        text = text_of(doc.first(selector))
        if len(text) > DESCRIPTION_MIN_TAGGED:
            return text
    return None


def _longest_paragraph(doc: PageDocument) -> Optional[str]:
    longest = ""
    for paragraph in doc.select("p"):
        text = text_of(paragraph)
        if not PARAGRAPH_MIN < len(text) < PARAGRAPH_MAX or len(text) <= len(longest):
            continue
        if any(marker in text for marker in BOILERPLATE_MARKERS):
            continue
        longest = text
    return longest or None


DESCRIPTION_STRATEGIES = [
    Strategy("tagged description", _tagged_description),
    Strategy("longest paragraph", _longest_paragraph),
]


def extract_description(doc: PageDocument) -> Optional[str]:
    return run_cascade("description", DESCRIPTION_STRATEGIES, doc)


def _image_from(selector: str):
    def extract(doc: PageDocument) -> Optional[str]:
        element = doc.first(selector)
        if element is None:
            return None
        src = element.get("src") or element.get("srcset") or element.get("data-src")
        if not src:
            return None
        # srcset: keep the first candidate URL
        if " " in src.strip():
            src = src.strip().split(" ")[0].split(",")[0].strip()
        return absolutize_url(src, doc.base_url)

    return extract


IMAGE_STRATEGIES = [Strategy(f"image {selector}", _image_from(selector)) for selector in IMAGE_SELECTORS]


def extract_image_url(doc: PageDocument) -> Optional[str]:
    return run_cascade("image_url", IMAGE_STRATEGIES, doc)
