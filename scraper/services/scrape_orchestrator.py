"""
Scrape Orchestrator - fetch, extract and validate one perfume page.

Flow for scrape_one(url):
1. Return a cached record if one is still fresh
2. Wait the fixed pre-fetch delay
3. Render the page (block pages come back classified as RATE_LIMITED)
4. Extract attributes
5. Validate name and brand; reject block-page leakage
6. Cache and return the record

Failures are returned as ScrapeOutcome values tagged with ScrapeErrorKind,
never raised, so the worker switches on the kind instead of parsing messages.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from asgiref.sync import sync_to_async
from django.conf import settings

from scraper.extractors import PerfumeExtractor
from scraper.fetchers.block_detection import contains_block_artifact
from scraper.fetchers.page_fetcher import PageFetcher
from scraper.monitoring import add_scrape_breadcrumb
from scraper.services.response_cache import ResponseCache
from scraper.types import PerfumeRecord, ScrapeErrorKind, ScrapeOutcome

logger = logging.getLogger(__name__)


class ScrapeOrchestrator:
    """
    Combines PageFetcher, PerfumeExtractor and ResponseCache.

    Usage:
        orchestrator = ScrapeOrchestrator()
        outcome = await orchestrator.scrape_one(url)
        if outcome.ok:
            catalog.upsert(outcome.record)
    """

    def __init__(
        self,
        fetcher: Optional[PageFetcher] = None,
        extractor: Optional[PerfumeExtractor] = None,
        cache: Optional[ResponseCache] = None,
        pre_fetch_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            fetcher: Page fetcher (default PageFetcher())
            extractor: HTML extractor (default PerfumeExtractor())
            cache: Result cache (default ResponseCache())
            pre_fetch_delay: Seconds to wait before each fetch
                             (default SCRAPER_PRE_FETCH_DELAY)
            sleep: Awaitable sleep, replaceable in tests
        """
        self.fetcher = fetcher or PageFetcher()
        self.extractor = extractor or PerfumeExtractor()
        self.cache = cache or ResponseCache()
        self.pre_fetch_delay = (
            pre_fetch_delay
            if pre_fetch_delay is not None
            else getattr(settings, "SCRAPER_PRE_FETCH_DELAY", 3)
        )
        self.sleep = sleep

    async def scrape_one(self, url: str, use_cache: bool = True) -> ScrapeOutcome:
        """
        Scrape a single product page.

        Args:
            url: Product page URL
            use_cache: Return a fresh cached record instead of fetching

        Returns:
            ScrapeOutcome with the record, or a classified failure
        """
        if use_cache:
            cached = await sync_to_async(self.cache.get)(url)
            if cached is not None:
                logger.info(f"Cache hit: {url}")
                return ScrapeOutcome.success(url, cached, from_cache=True)

        add_scrape_breadcrumb(url, "Fetching page")
        if self.pre_fetch_delay:
            await self.sleep(self.pre_fetch_delay)

        result = await self.fetcher.fetch(url)
        if not result.success:
            kind = result.error_kind or ScrapeErrorKind.FAILED
            logger.warning(f"Fetch failed for {url} ({kind.value}): {result.error}")
            return ScrapeOutcome.failure(url, kind, result.error or "Fetch failed")

        try:
            extracted = self.extractor.extract(result.html)
        except Exception as e:
            logger.error(f"Extraction crashed for {url}: {e}")
            return ScrapeOutcome.failure(url, ScrapeErrorKind.FAILED, f"Extraction error: {e}")

        if not extracted.name or contains_block_artifact(extracted.name):
            return ScrapeOutcome.failure(
                url,
                ScrapeErrorKind.INVALID_DATA,
                "Could not extract the perfume name; the page may be blocked",
            )
        if not extracted.brand:
            return ScrapeOutcome.failure(
                url,
                ScrapeErrorKind.INVALID_DATA,
                "Could not extract the perfume brand; the page may be incomplete or blocked",
            )

        record = PerfumeRecord.from_extracted(extracted, url)
        await sync_to_async(self.cache.set)(url, record)

        logger.info(
            f"Scraped '{record.name}' by {record.brand} "
            f"(year={record.year}, gender={record.gender}, accords={len(record.accords)})"
        )
        return ScrapeOutcome.success(url, record)
