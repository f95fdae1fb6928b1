"""
Sitemap Parser Service.

Reads the catalog site's sitemap index and its perfume sub-sitemaps.

Features:
- Parse sitemap index files and urlsets (namespaced or bare)
- Gzipped sitemaps (.xml.gz or gzip magic bytes)
- Pick perfume sub-sitemaps out of an index
- Filter product URLs by pattern
"""

import gzip
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional
from xml.etree import ElementTree as ET

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


SITEMAP_NS = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}

PERFUME_SITEMAP_PATTERN = re.compile(r"sitemap_perfumes_\d+\.xml$")

# Perfume detail page: /perfume/<brand>/<name>.html
PERFUME_URL_PATTERN = re.compile(r"/perfume/[^/]+/[^/]+\.html$")


class SitemapParseError(Exception):
    """Exception raised for sitemap fetch or parse errors."""

    pass


@dataclass
class SitemapResult:
    """
    Result of parsing one sitemap file.

    Attributes:
        urls: Page URLs listed by a urlset
        is_index: Whether the file is a sitemap index
        child_sitemaps: Child sitemap URLs (index only)
        source: URL the file was read from
    """

    urls: List[str]
    is_index: bool
    child_sitemaps: List[str] = field(default_factory=list)
    source: str = ""

    @property
    def total_urls(self) -> int:
        return len(self.urls)


def is_perfume_url(url: str) -> bool:
    """True for perfume detail pages without fragments or query strings."""
    return "#" not in url and "?" not in url and bool(PERFUME_URL_PATTERN.search(url))


class SitemapParser:
    """
    Parser for XML sitemaps and sitemap indexes.

    Usage:
        parser = SitemapParser()
        index = await parser.parse_sitemap("https://www.fragrantica.com/sitemap.xml")
        for child in parser.perfume_sitemaps(index):
            result = await parser.parse_sitemap(child)
    """

    def __init__(
        self,
        timeout: float = 60.0,
        max_size_bytes: int = 50 * 1024 * 1024,  # 50MB
        user_agent: Optional[str] = None,
    ):
        """
        Initialize the sitemap parser.

        Args:
            timeout: HTTP request timeout in seconds
            max_size_bytes: Maximum sitemap size to download
            user_agent: User-Agent header (default SCRAPER_USER_AGENT)
        """
        self.timeout = timeout
        self.max_size_bytes = max_size_bytes
        self.user_agent = user_agent or settings.SCRAPER_USER_AGENT

    async def parse_sitemap(self, url: str) -> SitemapResult:
        """
        Fetch and parse a sitemap or sitemap index.

        Raises:
            SitemapParseError: If the sitemap cannot be fetched or parsed
        """
        logger.info(f"Parsing sitemap: {url}")

        try:
            content = await self._fetch(url)
        except SitemapParseError:
            raise
        except httpx.TimeoutException as e:
            raise SitemapParseError(f"Timeout fetching sitemap: {e}")
        except httpx.HTTPError as e:
            raise SitemapParseError(f"Failed to fetch sitemap: {e}")

        if url.endswith(".gz") or content[:2] == b"\x1f\x8b":
            try:
                content = gzip.decompress(content)
            except (OSError, EOFError) as e:
                raise SitemapParseError(f"Failed to decompress gzipped sitemap: {e}")

        return self.parse_xml(content, url)

    def perfume_sitemaps(self, index: SitemapResult) -> List[str]:
        """Child sitemaps of an index that list perfume pages, without repeats."""
        return list(
            dict.fromkeys(
                child for child in index.child_sitemaps if PERFUME_SITEMAP_PATTERN.search(child)
            )
        )

    def filter_perfume_urls(self, urls: List[str]) -> List[str]:
        filtered = [url for url in urls if is_perfume_url(url)]
        logger.debug(f"Filtered {len(urls)} URLs to {len(filtered)} perfume pages")
        return filtered

    async def _fetch(self, url: str) -> bytes:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/xml, text/xml, application/gzip, */*",
            "Accept-Language": "en-US,en;q=0.9",
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(url, headers=headers, follow_redirects=True)

            if response.status_code >= 400:
                raise SitemapParseError(f"HTTP {response.status_code}: {response.reason_phrase} - {url}")

            content_length = response.headers.get("content-length")
            if content_length and int(content_length) > self.max_size_bytes:
                raise SitemapParseError(
                    f"Sitemap too large: {content_length} bytes exceeds {self.max_size_bytes}"
                )

            return response.content

    def parse_xml(self, content, source_url: str) -> SitemapResult:
        """
        Parse sitemap XML.

        Raises:
            SitemapParseError: If the XML is invalid or not a sitemap
        """
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise SitemapParseError(f"Invalid XML: {e}")

        root_tag = root.tag.lower()
        if "sitemapindex" in root_tag:
            children = self._locs(root, "sitemap")
            logger.info(f"Parsed sitemap index with {len(children)} child sitemaps")
            return SitemapResult(urls=[], is_index=True, child_sitemaps=children, source=source_url)
        if "urlset" in root_tag:
            urls = self._locs(root, "url")
            logger.info(f"Parsed sitemap with {len(urls)} URLs")
            return SitemapResult(urls=urls, is_index=False, source=source_url)

        raise SitemapParseError(f"Unknown sitemap root element: {root.tag}")

    @staticmethod
    def _locs(root: ET.Element, entry_tag: str) -> List[str]:
        # Namespaced first, bare tags as fallback
        entries = root.findall(f"sm:{entry_tag}", SITEMAP_NS) or root.findall(entry_tag)
        locs = []
        for entry in entries:
            loc = entry.find("sm:loc", SITEMAP_NS)
            if loc is None:
                loc = entry.find("loc")
            if loc is not None and loc.text and loc.text.strip():
                locs.append(loc.text.strip())
        return locs
