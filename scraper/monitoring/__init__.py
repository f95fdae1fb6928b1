"""
Monitoring for the perfume scraper.

- Sentry error tracking with scrape context
"""

from .sentry_integration import add_scrape_breadcrumb, capture_scrape_error

__all__ = [
    "add_scrape_breadcrumb",
    "capture_scrape_error",
]
