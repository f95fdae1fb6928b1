"""
Tests for the scrape orchestrator.

The page fetcher is mocked; extraction and caching run for real.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from scraper.extractors import PerfumeExtractor
from scraper.fetchers.page_fetcher import PageFetchResult
from scraper.services.response_cache import ResponseCache
from scraper.services.scrape_orchestrator import ScrapeOrchestrator
from scraper.types import ScrapeErrorKind

URL = "https://www.fragrantica.com/perfume/Dior/Sauvage-31861.html"


def page(html):
    return PageFetchResult(url=URL, html=html, success=True)


@pytest.fixture
def fetcher(product_html):
    mock = MagicMock()
    mock.fetch = AsyncMock(return_value=page(product_html))
    return mock


@pytest.fixture
def orchestrator(fetcher):
    return ScrapeOrchestrator(
        fetcher=fetcher,
        extractor=PerfumeExtractor(base_url="https://www.fragrantica.com"),
        cache=ResponseCache(),
        pre_fetch_delay=0,
    )


@pytest.mark.asyncio
class TestScrapeOne:
    """Happy path and caching."""

    async def test_scrapes_and_assigns_identity(self, orchestrator):
        outcome = await orchestrator.scrape_one(URL)

        assert outcome.ok is True
        assert outcome.from_cache is False
        assert outcome.record.name == "Sauvage"
        assert outcome.record.brand == "Dior"
        assert outcome.record.source_url == URL
        assert outcome.record.id
        assert outcome.record.scraped_at is not None

    async def test_second_scrape_served_from_cache(self, orchestrator, fetcher):
        first = await orchestrator.scrape_one(URL)
        second = await orchestrator.scrape_one(URL)

        assert second.from_cache is True
        assert second.record.id == first.record.id
        assert fetcher.fetch.await_count == 1

    async def test_use_cache_false_refetches(self, orchestrator, fetcher):
        await orchestrator.scrape_one(URL)
        outcome = await orchestrator.scrape_one(URL, use_cache=False)

        assert outcome.from_cache is False
        assert fetcher.fetch.await_count == 2

    async def test_pre_fetch_delay_awaited(self, fetcher):
        sleep = AsyncMock()
        orchestrator = ScrapeOrchestrator(
            fetcher=fetcher, cache=ResponseCache(), pre_fetch_delay=3, sleep=sleep
        )

        await orchestrator.scrape_one(URL)
        await orchestrator.scrape_one(URL)

        # The cache hit does not wait
        sleep.assert_awaited_once_with(3)


@pytest.mark.asyncio
class TestScrapeFailures:
    """Failures come back classified, never raised."""

    @pytest.mark.parametrize(
        "kind",
        [ScrapeErrorKind.RATE_LIMITED, ScrapeErrorKind.TIMEOUT, ScrapeErrorKind.NAVIGATION_FAILURE],
    )
    async def test_fetch_failure_keeps_kind(self, orchestrator, fetcher, kind):
        fetcher.fetch.return_value = PageFetchResult(url=URL, error="boom", error_kind=kind)

        outcome = await orchestrator.scrape_one(URL)

        assert outcome.ok is False
        assert outcome.kind is kind
        assert outcome.error == "boom"

    async def test_unclassified_fetch_failure(self, orchestrator, fetcher):
        fetcher.fetch.return_value = PageFetchResult(url=URL, error="odd")

        outcome = await orchestrator.scrape_one(URL)

        assert outcome.kind is ScrapeErrorKind.FAILED

    async def test_missing_name_is_invalid_data(self, orchestrator, fetcher):
        fetcher.fetch.return_value = page("<html><body><p>Nothing useful</p></body></html>")

        outcome = await orchestrator.scrape_one(URL)

        assert outcome.kind is ScrapeErrorKind.INVALID_DATA
        assert "name" in outcome.error

    async def test_missing_brand_is_invalid_data(self, orchestrator, fetcher):
        fetcher.fetch.return_value = page(
            "<html><head><title>Aventus | Fragrantica</title></head><body><p>x</p></body></html>"
        )

        outcome = await orchestrator.scrape_one(URL)

        assert outcome.kind is ScrapeErrorKind.INVALID_DATA
        assert "brand" in outcome.error

    async def test_block_text_in_name_is_invalid_data(self, orchestrator, fetcher):
        fetcher.fetch.return_value = page(
            '<html><body><h1 itemprop="name">Too Many Requests</h1>'
            '<p itemprop="brand"><span itemprop="name">Dior</span></p></body></html>'
        )

        outcome = await orchestrator.scrape_one(URL)

        assert outcome.kind is ScrapeErrorKind.INVALID_DATA

    async def test_extractor_crash_is_failed(self, fetcher):
        extractor = MagicMock()
        extractor.extract.side_effect = ValueError("bad markup")
        orchestrator = ScrapeOrchestrator(
            fetcher=fetcher, extractor=extractor, cache=ResponseCache(), pre_fetch_delay=0
        )

        outcome = await orchestrator.scrape_one(URL)

        assert outcome.kind is ScrapeErrorKind.FAILED
        assert "bad markup" in outcome.error

    async def test_failures_are_not_cached(self, orchestrator, fetcher, product_html):
        fetcher.fetch.return_value = PageFetchResult(
            url=URL, error="429", error_kind=ScrapeErrorKind.RATE_LIMITED
        )
        await orchestrator.scrape_one(URL)

        fetcher.fetch.return_value = page(product_html)
        outcome = await orchestrator.scrape_one(URL)

        assert outcome.ok is True
        assert outcome.from_cache is False
