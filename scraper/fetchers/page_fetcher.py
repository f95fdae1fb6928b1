"""
Page fetcher - Playwright headless browser.

Every fetch launches its own browser and context and tears both down before
returning, whatever happens in between. Pages are loaded with a fixed desktop
fingerprint, waited on until the network is idle and the main heading has
rendered, then checked for block pages.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from scraper.fetchers.block_detection import detect_block_page
from scraper.types import ScrapeErrorKind

logger = logging.getLogger(__name__)


BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--window-size=1920,1080",
    "--disable-blink-features=AutomationControlled",
]

DEFAULT_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
}


@dataclass
class PageFetchResult:
    """
    Result of a page fetch.

    Attributes:
        url: Requested URL
        html: Rendered HTML (also set for block pages, for inspection)
        success: True when usable content was loaded
        blocked: True when a block/rate-limit page was served
        error: Error description on failure
        error_kind: Classification of the failure
    """

    url: str
    html: str = ""
    success: bool = False
    blocked: bool = False
    error: Optional[str] = None
    error_kind: Optional[ScrapeErrorKind] = None


class PageFetcher:
    """
    Renders product pages in a headless browser.

    No browser state is shared between fetches, so one blocked session can
    not taint the next.
    """

    def __init__(
        self,
        navigation_timeout: Optional[float] = None,
        render_timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            navigation_timeout: Seconds allowed for navigation to settle
            render_timeout: Seconds allowed for the wait selector to appear
            user_agent: Browser User-Agent (default from settings)
        """
        self.navigation_timeout = navigation_timeout or getattr(settings, "SCRAPER_NAVIGATION_TIMEOUT", 60)
        self.render_timeout = render_timeout or getattr(settings, "SCRAPER_RENDER_TIMEOUT", 30)
        self.user_agent = user_agent or settings.SCRAPER_USER_AGENT
        self.viewport = {
            "width": getattr(settings, "SCRAPER_VIEWPORT_WIDTH", 1920),
            "height": getattr(settings, "SCRAPER_VIEWPORT_HEIGHT", 1080),
        }

    async def fetch(
        self, url: str, wait_selector: str = "h1", require_selector: bool = True
    ) -> PageFetchResult:
        """
        Fetch and render a URL.

        Args:
            url: URL to fetch
            wait_selector: Element that must be present before reading content
            require_selector: When False, a missing wait_selector is logged and
                              the page content is read anyway

        Returns:
            PageFetchResult; never raises for navigation or rendering problems
        """
        logger.info(f"Navigating to {url}")

        async with async_playwright() as playwright:
            browser = None
            try:
                browser = await playwright.chromium.launch(headless=True, args=BROWSER_ARGS)
                context = await browser.new_context(
                    viewport=self.viewport,
                    user_agent=self.user_agent,
                    extra_http_headers=DEFAULT_HEADERS,
                )
                page = await context.new_page()

                await page.goto(
                    url,
                    wait_until="networkidle",
                    timeout=self.navigation_timeout * 1000,
                )
                try:
                    await page.wait_for_selector(wait_selector, timeout=self.render_timeout * 1000)
                except PlaywrightTimeoutError:
                    if require_selector:
                        raise
                    logger.info(f"'{wait_selector}' not found on {url}, continuing")
                html = await page.content()

            except PlaywrightTimeoutError as e:
                logger.warning(f"Timed out loading {url}: {e}")
                return PageFetchResult(
                    url=url,
                    error=f"Timeout: {e}",
                    error_kind=ScrapeErrorKind.TIMEOUT,
                )

            except Exception as e:
                logger.error(f"Browser error for {url}: {e}")
                return PageFetchResult(
                    url=url,
                    error=str(e),
                    error_kind=ScrapeErrorKind.NAVIGATION_FAILURE,
                )

            finally:
                if browser is not None:
                    await browser.close()

        detection = detect_block_page(html)
        if detection.is_blocked:
            logger.warning(f"Block page served for {url}: {detection.reason}")
            return PageFetchResult(
                url=url,
                html=html,
                blocked=True,
                error=f"Rate limited by source site ({detection.reason})",
                error_kind=ScrapeErrorKind.RATE_LIMITED,
            )

        return PageFetchResult(url=url, html=html, success=True)
