"""
HTML extraction for perfume product pages.

Each field family lives in its own module as an ordered strategy cascade;
PerfumeExtractor combines them into a single ExtractedPerfume.
"""

from scraper.extractors.perfume_extractor import PerfumeExtractor

__all__ = ["PerfumeExtractor"]
