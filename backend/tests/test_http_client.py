"""
Tests for the rate-limited HTTP client.

The requests.Session is a Mock; time.sleep is patched so retry backoff does
not slow the suite down.
"""

import threading
from unittest.mock import Mock, patch

import pytest
import requests

from scrapers.http_client import (
    USER_AGENTS,
    ClientFetchError,
    FetchError,
    HttpClient,
)


def _response(status, text=""):
    resp = Mock()
    resp.status_code = status
    resp.text = text
    return resp


@pytest.fixture
def no_sleep():
    with patch("scrapers.http_client.time.sleep") as sleep:
        yield sleep


# =============================================================================
# Retry policy
# =============================================================================

class TestRetries:

    def test_success_returns_body(self, no_sleep):
        session = Mock()
        session.get.return_value = _response(200, "<html>ok</html>")
        client = HttpClient(delay_ms=0, session=session)

        assert client.fetch_page("https://apps.shopify.com/formful") == "<html>ok</html>"
        assert session.get.call_count == 1

    def test_client_error_is_not_retried(self, no_sleep):
        session = Mock()
        session.get.return_value = _response(404)
        client = HttpClient(delay_ms=0, max_retries=3, session=session)

        with pytest.raises(ClientFetchError) as exc:
            client.fetch_page("https://apps.shopify.com/missing")

        assert session.get.call_count == 1
        assert exc.value.status_code == 404
        assert exc.value.attempts == 1
        assert isinstance(exc.value, FetchError)

    def test_server_error_retried_max_retries_plus_one(self, no_sleep):
        session = Mock()
        session.get.return_value = _response(503)
        client = HttpClient(delay_ms=0, max_retries=3, session=session)

        with pytest.raises(FetchError) as exc:
            client.fetch_page("https://apps.shopify.com/formful")

        assert session.get.call_count == 4
        assert exc.value.attempts == 4
        assert exc.value.status_code == 503
        assert "https://apps.shopify.com/formful" in str(exc.value)
        assert "4 attempts" in str(exc.value)
        assert not isinstance(exc.value, ClientFetchError)

    def test_backoff_is_exponential(self, no_sleep):
        session = Mock()
        session.get.return_value = _response(500)
        client = HttpClient(delay_ms=0, max_retries=3, session=session)

        with pytest.raises(FetchError):
            client.fetch_page("https://apps.shopify.com/x")

        assert [c.args[0] for c in no_sleep.call_args_list] == [1, 2, 4]

    def test_network_error_then_success(self, no_sleep):
        session = Mock()
        session.get.side_effect = [
            requests.exceptions.ConnectionError("reset"),
            _response(200, "body"),
        ]
        client = HttpClient(delay_ms=0, max_retries=2, session=session)

        assert client.fetch_page("https://apps.shopify.com/x") == "body"
        assert session.get.call_count == 2

    def test_network_errors_exhausted(self, no_sleep):
        session = Mock()
        session.get.side_effect = requests.exceptions.Timeout("slow")
        client = HttpClient(delay_ms=0, max_retries=1, session=session)

        with pytest.raises(FetchError) as exc:
            client.fetch_page("https://apps.shopify.com/x")
        assert exc.value.status_code is None
        assert "slow" in str(exc.value)


# =============================================================================
# Headers
# =============================================================================

class TestHeaders:

    def test_extra_headers_and_rotating_user_agent(self, no_sleep):
        session = Mock()
        session.get.return_value = _response(200, "{}")
        client = HttpClient(delay_ms=0, session=session)

        client.fetch_page("https://apps.shopify.com/search", {"Turbo-Frame": "search_page"})

        headers = session.get.call_args.kwargs["headers"]
        assert headers["Turbo-Frame"] == "search_page"
        assert headers["User-Agent"] in USER_AGENTS

    def test_shared_limiter_consulted_per_request(self, no_sleep):
        session = Mock()
        session.get.return_value = _response(200, "x")
        limiter = Mock()
        client = HttpClient(delay_ms=0, session=session, shared_limiter=limiter)

        client.fetch_page("https://apps.shopify.com/a")
        client.fetch_page("https://apps.shopify.com/b")

        assert limiter.wait.call_count == 2


# =============================================================================
# Pacing
# =============================================================================

class TestPacing:

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            HttpClient(max_concurrency=0)

    def test_delay_between_request_starts(self):
        session = Mock()
        session.get.return_value = _response(200, "x")
        client = HttpClient(delay_ms=500, session=session)

        with patch("scrapers.http_client.time.sleep") as sleep, \
                patch("scrapers.http_client.time.monotonic", side_effect=[100.0, 100.1, 100.5]):
            client.fetch_page("https://apps.shopify.com/a")
            client.fetch_page("https://apps.shopify.com/b")

        # Second request started 100 ms after the first: wait the remaining 400 ms
        sleep.assert_called_once()
        assert sleep.call_args.args[0] == pytest.approx(0.4)

    def test_in_flight_never_exceeds_max_concurrency(self):
        max_concurrency = 2
        release = threading.Event()
        lock = threading.Lock()
        observed = []

        client = None

        def slow_get(url, headers=None, timeout=None):
            with lock:
                observed.append(client.active_requests)
            release.wait(timeout=2)
            return _response(200, url)

        session = Mock()
        session.get.side_effect = slow_get
        client = HttpClient(delay_ms=0, max_concurrency=max_concurrency, session=session)

        threads = [
            threading.Thread(target=client.fetch_page, args=(f"https://apps.shopify.com/{i}",))
            for i in range(5)
        ]
        for t in threads:
            t.start()

        # Let the first wave block, then release everyone
        threading.Event().wait(0.3)
        with lock:
            assert len(observed) <= max_concurrency
        release.set()
        for t in threads:
            t.join(timeout=5)

        assert len(observed) == 5
        assert max(observed) <= max_concurrency
        assert client.active_requests == 0


class TestFromConfig:

    def test_reads_app_config(self):
        client = HttpClient.from_config(
            {"SCRAPER_DELAY_MS": 10, "SCRAPER_MAX_RETRIES": 1, "SCRAPER_MAX_CONCURRENCY": 3}
        )
        assert client.delay_ms == 10
        assert client.max_retries == 1
        assert client.max_concurrency == 3
