"""
Discovery Service - finds perfume URLs and feeds them into the scrape queue.

Two sources:
- Brand pages: <base>/designers/<slug>.html lists the brand's perfumes and
  carries its logo; the brand is recorded in the catalog as a side effect.
- Sitemaps: <base>/sitemap.xml points at sitemap_perfumes_<n>.xml files
  which list every perfume page.

URLs the catalog already holds are never queued.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from asgiref.sync import sync_to_async
from bs4 import BeautifulSoup
from django.conf import settings

from scraper.fetchers.page_fetcher import PageFetcher
from scraper.queue import ScrapeQueue
from scraper.services.catalog_store import CatalogStore
from scraper.services.sitemap_parser import SitemapParseError, SitemapParser, is_perfume_url

logger = logging.getLogger(__name__)


PERFUME_LINK_SELECTOR = 'a[href*="/perfume/"]'

# Brand CDN path first, then any CDN image, then page chrome
BRAND_LOGO_SELECTORS = [
    'img[src*="/dizajneri/"]',
    'img[src*="fimgs.net"][src*="/mdimg/"]',
    ".brand-header img",
    "header img",
    "#main-content img",
]

# Fallback when the sitemap index lists no perfume sitemaps
FALLBACK_SITEMAP_COUNT = 6

MAX_BRANDS_PER_JOB = 20
DEFAULT_BRAND_LIMIT = 500


def brand_slug(name: str) -> str:
    """
    URL slug of a brand name.

    "Tom Ford" -> "Tom-Ford", "Penhaligon's" -> "Penhaligons",
    "Dolce & Gabbana" -> "Dolce-and-Gabbana"
    """
    slug = re.sub(r"\s+", "-", name.strip())
    slug = re.sub(r"['’]", "", slug)
    return slug.replace("&", "and")


def brand_page_url(name: str, base_url: Optional[str] = None) -> str:
    base_url = (base_url or settings.SCRAPER_SITE_BASE_URL).rstrip("/")
    return f"{base_url}/designers/{brand_slug(name)}.html"


def extract_perfume_links(html: str, page_url: str, limit: Optional[int] = None) -> List[str]:
    """Absolute perfume detail URLs linked from a page, first occurrence order."""
    soup = BeautifulSoup(html, "lxml")
    links = []
    for anchor in soup.select(PERFUME_LINK_SELECTOR):
        href = urljoin(page_url, anchor.get("href", "").strip())
        if is_perfume_url(href):
            links.append(href)

    links = list(dict.fromkeys(links))
    return links[:limit] if limit else links


def extract_brand_logo(html: str, page_url: str) -> Optional[str]:
    soup = BeautifulSoup(html, "lxml")
    for selector in BRAND_LOGO_SELECTORS:
        img = soup.select_one(selector)
        src = img.get("src") if img else None
        # Generic site logos are not brand images
        if src and "logo" not in src:
            return urljoin(page_url, src)

    img = soup.select_one('img[src*="fimgs.net"]')
    return urljoin(page_url, img["src"]) if img else None


@dataclass
class BrandDiscovery:
    """Outcome of discovering one brand."""

    brand: str
    page_url: str
    urls: List[str] = field(default_factory=list)
    logo_url: Optional[str] = None
    queued: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "brand": self.brand,
            "page_url": self.page_url,
            "logo_url": self.logo_url,
            "total": len(self.urls),
            "queued": self.queued,
            "skipped": len(self.urls) - self.queued,
            "error": self.error,
        }


@dataclass
class DiscoveryReport:
    """Totals of a discovery run, copied onto its DiscoveryJob."""

    urls_found: int = 0
    urls_queued: int = 0
    urls_skipped: int = 0
    summary: Dict[str, Any] = field(default_factory=dict)


class DiscoveryService:
    """
    Crawls brand pages and sitemaps for perfume URLs.

    Usage:
        service = DiscoveryService()
        report = await service.discover_brands(["Dior", "Tom Ford"], limit=100)
    """

    def __init__(
        self,
        fetcher: Optional[PageFetcher] = None,
        sitemap_parser: Optional[SitemapParser] = None,
        queue: Optional[ScrapeQueue] = None,
        catalog: Optional[CatalogStore] = None,
        base_url: Optional[str] = None,
    ):
        self.fetcher = fetcher or PageFetcher()
        self.sitemap_parser = sitemap_parser or SitemapParser()
        self.catalog = catalog or CatalogStore()
        self.queue = queue or ScrapeQueue(catalog=self.catalog)
        self.base_url = (base_url or settings.SCRAPER_SITE_BASE_URL).rstrip("/")

    async def discover_brand(self, brand: str, limit: int = DEFAULT_BRAND_LIMIT) -> BrandDiscovery:
        """
        Collect a brand's perfume URLs and record the brand.

        Nothing is queued here; see discover_brands().
        """
        brand = brand.strip()
        page_url = brand_page_url(brand, self.base_url)
        result = BrandDiscovery(brand=brand, page_url=page_url)
        logger.info(f"Fetching brand page: {page_url}")

        page = await self.fetcher.fetch(
            page_url, wait_selector=PERFUME_LINK_SELECTOR, require_selector=False
        )
        if not page.success:
            result.error = page.error or "Could not load brand page"
            return result

        result.urls = extract_perfume_links(page.html, page_url, limit)
        result.logo_url = extract_brand_logo(page.html, page_url)
        logger.info(
            f"Found {len(result.urls)} URLs for brand '{brand}', "
            f"logo: {'yes' if result.logo_url else 'no'}"
        )

        if not result.urls:
            result.error = (
                f"No perfume URLs found for brand '{brand}'. "
                "Check the exact name as it appears on the site."
            )
            return result

        await sync_to_async(self.catalog.upsert_brand)(brand, result.logo_url, page_url)
        return result

    async def discover_brands(self, brands: List[str], limit: int = DEFAULT_BRAND_LIMIT) -> DiscoveryReport:
        """Discover each brand in turn and queue the new URLs."""
        report = DiscoveryReport()
        results = []

        for brand in brands:
            if not isinstance(brand, str) or not brand.strip():
                continue

            discovery = await self.discover_brand(brand, limit)
            if discovery.urls:
                discovery.queued = await sync_to_async(self.queue.enqueue)(discovery.urls)
                logger.info(f"Brand '{discovery.brand}': {discovery.queued} queued")

            report.urls_found += len(discovery.urls)
            report.urls_queued += discovery.queued
            results.append(discovery.to_dict())

        report.urls_skipped = report.urls_found - report.urls_queued
        report.summary = {"brands": results}
        return report

    async def sitemap_urls(self) -> List[str]:
        """Perfume sitemap files, from the index or the numbered fallback."""
        index_url = f"{self.base_url}/sitemap.xml"
        sitemaps = []
        try:
            index = await self.sitemap_parser.parse_sitemap(index_url)
            sitemaps = self.sitemap_parser.perfume_sitemaps(index)
            logger.info(f"Sitemap index: found {len(sitemaps)} perfume sub-sitemaps")
        except SitemapParseError as e:
            logger.warning(f"Could not read {index_url}: {e}")

        if not sitemaps:
            sitemaps = [
                f"{self.base_url}/sitemap_perfumes_{n}.xml"
                for n in range(1, FALLBACK_SITEMAP_COUNT + 1)
            ]
            logger.info(f"Probing {len(sitemaps)} candidate perfume sitemaps")
        return sitemaps

    async def discover_sitemap(self) -> DiscoveryReport:
        """
        Queue every perfume the sitemaps list that the catalog lacks.

        Sub-sitemaps that fail to load are skipped and reported in the summary.
        """
        found: List[str] = []
        per_sitemap = {}
        errors = {}

        for sitemap_url in await self.sitemap_urls():
            try:
                result = await self.sitemap_parser.parse_sitemap(sitemap_url)
            except SitemapParseError as e:
                logger.warning(f"Skipping {sitemap_url}: {e}")
                errors[sitemap_url] = str(e)
                continue

            urls = self.sitemap_parser.filter_perfume_urls(result.urls)
            per_sitemap[sitemap_url] = len(urls)
            found.extend(urls)

        unique_urls = list(dict.fromkeys(found))
        known = await sync_to_async(self.catalog.get_all_source_urls)()
        new_urls = [url for url in unique_urls if url not in known]
        queued = await sync_to_async(self.queue.enqueue)(new_urls, skip_known=False) if new_urls else 0

        if not unique_urls:
            logger.error("No perfume URLs found in any sitemap; the site may be blocking access")
        logger.info(
            f"Sitemap discovery done: {len(unique_urls)} unique found, {queued} new queued"
        )

        return DiscoveryReport(
            urls_found=len(unique_urls),
            urls_queued=queued,
            urls_skipped=len(unique_urls) - queued,
            summary={"sitemaps": per_sitemap, "errors": errors, "already_in_catalog": len(unique_urls) - len(new_urls)},
        )
