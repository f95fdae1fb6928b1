"""
Page fetching for the perfume scraper.

PageFetcher renders product pages with Playwright; block_detection
recognises rate-limit pages served in place of content.
"""

from scraper.fetchers.block_detection import BlockDetectionResult, detect_block_page
from scraper.fetchers.page_fetcher import PageFetcher, PageFetchResult

__all__ = ["BlockDetectionResult", "detect_block_page", "PageFetcher", "PageFetchResult"]
