"""
Tests for Sentry monitoring helpers.

- Breadcrumbs carry the scrape URL and filtered extra data
- Classified failures are captured as messages tagged with their kind
- Exceptions are captured as exceptions
- SDK errors never escape
"""

from unittest.mock import MagicMock, patch

import pytest

from scraper.monitoring.sentry_integration import (
    _filter_sensitive_data,
    add_scrape_breadcrumb,
    capture_scrape_error,
)
from scraper.types import ScrapeErrorKind

URL = "https://www.fragrantica.com/perfume/Dior/Sauvage-31861.html"


@pytest.fixture
def mock_sentry():
    """Patch the sentry_sdk module used by the integration."""
    with patch("scraper.monitoring.sentry_integration.sentry_sdk") as sentry:
        scope = MagicMock()
        sentry.new_scope.return_value.__enter__.return_value = scope
        sentry.scope = scope
        yield sentry


class TestSensitiveDataFilter:
    def test_filters_nested_keys(self):
        data = {
            "url": URL,
            "api_key": "abc",
            "headers": {"Authorization": "Bearer x", "Accept": "text/html"},
        }

        filtered = _filter_sensitive_data(data)

        assert filtered["url"] == URL
        assert filtered["api_key"] == "[Filtered]"
        assert filtered["headers"] == {"Authorization": "[Filtered]", "Accept": "text/html"}

    def test_non_dict_passes_through(self):
        assert _filter_sensitive_data("text") == "text"


class TestBreadcrumbs:
    def test_breadcrumb_has_url_and_extra(self, mock_sentry):
        add_scrape_breadcrumb(URL, "Fetching page", extra_data={"attempt": 2, "cookie": "x"})

        kwargs = mock_sentry.add_breadcrumb.call_args.kwargs
        assert kwargs["category"] == "scrape"
        assert kwargs["message"] == "Fetching page"
        assert kwargs["data"] == {"url": URL, "attempt": 2, "cookie": "[Filtered]"}

    def test_sdk_failure_is_logged_not_raised(self, mock_sentry, caplog):
        mock_sentry.add_breadcrumb.side_effect = RuntimeError("sdk down")

        add_scrape_breadcrumb(URL)

        assert "Failed to add Sentry breadcrumb" in caplog.text


class TestCaptureScrapeError:
    def test_classified_failure_captured_as_message(self, mock_sentry):
        capture_scrape_error("Timeout: 30000ms", url=URL, kind=ScrapeErrorKind.TIMEOUT)

        mock_sentry.scope.set_tag.assert_called_once_with("scraper.error_kind", "timeout")
        mock_sentry.scope.set_extra.assert_any_call("scrape_url", URL)
        mock_sentry.capture_message.assert_called_once()
        assert "timeout" in mock_sentry.capture_message.call_args.args[0]
        mock_sentry.capture_exception.assert_not_called()

    def test_exception_captured_as_exception(self, mock_sentry):
        error = ValueError("bad markup")

        capture_scrape_error(error, extra_context={"job_id": "123", "token": "secret"})

        mock_sentry.capture_exception.assert_called_once_with(error)
        mock_sentry.scope.set_tag.assert_called_once_with("scraper.error_kind", "unclassified")
        mock_sentry.scope.set_extra.assert_called_once_with(
            "scrape_context", {"job_id": "123", "token": "[Filtered]"}
        )

    def test_capture_failure_is_swallowed_with_warning(self, mock_sentry, caplog):
        mock_sentry.new_scope.side_effect = RuntimeError("sdk down")

        capture_scrape_error("boom", url=URL)

        assert "Failed to capture scrape error" in caplog.text


def test_installed_sdk_provides_scope_api():
    """capture_scrape_error relies on the 2.x scope API."""
    import sentry_sdk

    assert callable(getattr(sentry_sdk, "new_scope", None))
    assert int(sentry_sdk.VERSION.split(".")[0]) >= 2
