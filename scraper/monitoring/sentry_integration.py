"""
Sentry error tracking for the scraper.

- Breadcrumbs for scrape context (URL, stage, error kind)
- Sensitive data filtering (cookies, API keys)
- Exceptions and classified scrape failures captured with context

The SDK itself is initialised from settings (config.settings.base.init_sentry);
without a DSN every call here is a cheap no-op inside sentry_sdk.

Usage:
    from scraper.monitoring import add_scrape_breadcrumb, capture_scrape_error

    add_scrape_breadcrumb(url, "Fetching page")
    capture_scrape_error(outcome.error, url=url, kind=outcome.kind)
"""

import logging
from typing import Any, Dict, Optional, Union

import sentry_sdk

logger = logging.getLogger(__name__)

# Sensitive fields to filter from Sentry events
SENSITIVE_FIELDS = {
    "cookies",
    "cookie",
    "api_key",
    "apikey",
    "authorization",
    "password",
    "secret",
    "token",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values of sensitive keys, recursing into nested dicts.

    Args:
        data: Dictionary potentially containing sensitive data

    Returns:
        Filtered copy
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        if any(sensitive in key.lower() for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value
    return filtered


def add_scrape_breadcrumb(
    url: str,
    message: str = "Scrape operation",
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add a breadcrumb to Sentry for scrape context.

    Args:
        url: URL being scraped
        message: Description of the operation
        level: Log level (info, warning, error)
        extra_data: Additional context data
    """
    data = {"url": url}
    if extra_data:
        data.update(_filter_sensitive_data(extra_data))

    try:
        sentry_sdk.add_breadcrumb(category="scrape", message=message, level=level, data=data)
    except Exception as e:
        logger.warning(f"Failed to add Sentry breadcrumb: {e}")


def capture_scrape_error(
    error: Union[Exception, str],
    url: Optional[str] = None,
    kind=None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Report a scrape failure to Sentry.

    Args:
        error: Exception, or the message of a classified failure
        url: URL where the failure occurred
        kind: ScrapeErrorKind of the failure, if classified
        extra_context: Additional context (filtered for sensitive data)
    """
    kind_value = getattr(kind, "value", kind) or "unclassified"

    add_scrape_breadcrumb(
        url=url or "Unknown",
        message=f"Scrape failed: {kind_value}",
        level="error",
        extra_data=extra_context,
    )

    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("scraper.error_kind", kind_value)
            if url:
                scope.set_extra("scrape_url", url)
            if extra_context:
                scope.set_extra("scrape_context", _filter_sensitive_data(extra_context))

            if isinstance(error, BaseException):
                sentry_sdk.capture_exception(error)
            else:
                sentry_sdk.capture_message(f"Scrape failed ({kind_value}): {error}", level="warning")

    except Exception as e:
        logger.warning(f"Failed to capture scrape error to Sentry: {e}")
