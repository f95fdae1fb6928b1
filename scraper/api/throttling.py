"""
API throttling classes for the scraper endpoints.
"""

from rest_framework.throttling import UserRateThrottle


class ScrapeThrottle(UserRateThrottle):
    """
    Throttle for endpoints that hit the source site synchronously.

    Rate: REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"]["scrape"] (5/minute).
    Applied to: perfume/, batch/, rescrape/
    """

    scope = 'scrape'
