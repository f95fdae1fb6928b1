"""
Perfume page extractor.

Turns raw product page HTML into an ExtractedPerfume. Pure: no network, no
database. Every field degrades independently to None/empty, so a page with
unusual markup still yields whatever could be read; only the orchestrator
decides whether the result is usable.
"""

import logging
from typing import Optional

from django.conf import settings

from scraper.extractors.accords import extract_accords
from scraper.extractors.base import PageDocument
from scraper.extractors.identity import (
    extract_brand,
    extract_concentration,
    extract_gender,
    extract_name,
    extract_perfumer,
    extract_year,
)
from scraper.extractors.media import extract_description, extract_image_url, extract_rating
from scraper.extractors.notes import extract_notes
from scraper.extractors.performance import extract_longevity, extract_season_usage, extract_sillage
from scraper.types import ExtractedPerfume

logger = logging.getLogger(__name__)


class PerfumeExtractor:
    """
    Extracts perfume attributes from product page HTML.

    Usage:
        extractor = PerfumeExtractor()
        perfume = extractor.extract(html)
    """

    def __init__(self, base_url: Optional[str] = None):
        """
        Args:
            base_url: Site root for site-relative image URLs
                      (defaults to SCRAPER_SITE_BASE_URL)
        """
        if base_url is None:
            base_url = getattr(settings, "SCRAPER_SITE_BASE_URL", "https://www.fragrantica.com")
        self.base_url = base_url.rstrip("/")

    def extract(self, html: str) -> ExtractedPerfume:
        doc = PageDocument.from_html(html, self.base_url)
        perfumer, perfumer_image_url = extract_perfumer(doc)

        perfume = ExtractedPerfume(
            name=extract_name(doc),
            brand=extract_brand(doc),
            year=extract_year(doc),
            perfumer=perfumer,
            perfumer_image_url=perfumer_image_url,
            gender=extract_gender(doc),
            concentration=extract_concentration(doc),
            notes=extract_notes(doc),
            accords=extract_accords(doc),
            description=extract_description(doc),
            image_url=extract_image_url(doc),
            rating=extract_rating(doc),
            longevity=extract_longevity(doc),
            sillage=extract_sillage(doc),
            season_usage=extract_season_usage(doc),
        )

        logger.debug(
            f"Extracted '{perfume.name}' by '{perfume.brand}': "
            f"notes={len(perfume.notes.top)}/{len(perfume.notes.heart)}/{len(perfume.notes.base)}, "
            f"accords={len(perfume.accords)}"
        )
        return perfume
