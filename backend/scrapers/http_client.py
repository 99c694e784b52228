"""
Rate-Limited HTTP Client - Polite page fetcher for the marketplace.

Pacing (per client instance, not global):
- At most `max_concurrency` requests in flight at once
- At least `delay_ms` between the start of consecutive requests

Retries:
- 4xx: durable, fail immediately with ClientFetchError (status preserved)
- 5xx / network errors: retry with exponential backoff (2^attempt seconds)
  up to `max_retries` additional attempts, then raise FetchError

Each attempt picks a random browser signature from a small pool.

Usage:
    from scrapers.http_client import HttpClient

    client = HttpClient(delay_ms=2000, max_concurrency=2)
    html = client.fetch_page("https://apps.shopify.com/formful")

    # Search pages are rendered as a Turbo frame
    html = client.fetch_page(search_url("forms"), {"Turbo-Frame": "search_page"})
"""

import logging
import random
import threading
import time
from typing import Dict, Optional

import requests

from constants import SOURCE_DOMAIN

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_DELAY_MS = 2000
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_CONCURRENCY = 2
REQUEST_TIMEOUT_SECONDS = 30

# Slot polling interval while waiting for an in-flight request to finish
SLOT_POLL_SECONDS = 0.1

USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
]

BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class FetchError(Exception):
    """Page could not be fetched."""

    def __init__(self, message: str, url: str = None, status_code: int = None, attempts: int = 0):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.attempts = attempts


class ClientFetchError(FetchError):
    """4xx response - not retried."""
    pass


class HttpClient:
    """
    Page fetcher with per-instance concurrency/delay gates and retry.

    One instance is built per worker process and passed into every pipeline,
    so all requests from that process share the same pacing.
    """

    def __init__(
        self,
        delay_ms: int = DEFAULT_DELAY_MS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        session: Optional[requests.Session] = None,
        shared_limiter=None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        """
        Args:
            delay_ms: Minimum gap between request starts on this client.
            max_retries: Extra attempts after the first for transient errors.
            max_concurrency: Maximum in-flight requests on this client.
            session: Optional requests.Session (tests inject a mock).
            shared_limiter: Optional cross-process limiter with wait(domain, route_group).
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

        self.delay_ms = delay_ms
        self.max_retries = max_retries
        self.max_concurrency = max_concurrency
        self.timeout = timeout

        self._session = session or requests.Session()
        self._shared_limiter = shared_limiter

        self._slots = threading.Condition()
        self._active_requests = 0
        self._pace_lock = threading.Lock()
        self._last_request_time: Optional[float] = None

    @classmethod
    def from_config(cls, config, shared_limiter=None) -> "HttpClient":
        """Build a client from app.config (SCRAPER_* settings)."""
        return cls(
            delay_ms=config.get("SCRAPER_DELAY_MS", DEFAULT_DELAY_MS),
            max_retries=config.get("SCRAPER_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            max_concurrency=config.get("SCRAPER_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY),
            shared_limiter=shared_limiter,
        )

    @property
    def active_requests(self) -> int:
        return self._active_requests

    # =========================================================================
    # Pacing
    # =========================================================================

    def _acquire_slot(self) -> None:
        with self._slots:
            while self._active_requests >= self.max_concurrency:
                self._slots.wait(SLOT_POLL_SECONDS)
            self._active_requests += 1

    def _release_slot(self) -> None:
        with self._slots:
            self._active_requests -= 1
            self._slots.notify()

    def _wait_for_delay(self) -> None:
        with self._pace_lock:
            if self._last_request_time is not None:
                elapsed_ms = (time.monotonic() - self._last_request_time) * 1000
                if elapsed_ms < self.delay_ms:
                    time.sleep((self.delay_ms - elapsed_ms) / 1000)
            self._last_request_time = time.monotonic()

    # =========================================================================
    # Fetching
    # =========================================================================

    def fetch_page(self, url: str, extra_headers: Optional[Dict[str, str]] = None) -> str:
        """
        Fetch a page and return its body text.

        Raises:
            ClientFetchError: On a 4xx response (one attempt only).
            FetchError: After all attempts fail on 5xx/network errors.
        """
        self._acquire_slot()
        try:
            self._wait_for_delay()
            if self._shared_limiter is not None:
                self._shared_limiter.wait(SOURCE_DOMAIN, "pages")
            return self._fetch_with_retry(url, extra_headers)
        finally:
            self._release_slot()

    def _build_headers(self, extra_headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        headers = {"User-Agent": random.choice(USER_AGENTS)}
        headers.update(BASE_HEADERS)
        if extra_headers:
            headers.update(extra_headers)
        return headers

    def _fetch_with_retry(self, url: str, extra_headers: Optional[Dict[str, str]]) -> str:
        max_attempts = self.max_retries + 1
        last_error: Optional[Exception] = None
        last_status: Optional[int] = None

        for attempt in range(max_attempts):
            try:
                response = self._session.get(
                    url,
                    headers=self._build_headers(extra_headers),
                    timeout=self.timeout,
                )
            except requests.exceptions.RequestException as e:
                last_error = e
                last_status = None
            else:
                status = response.status_code
                if 200 <= status < 300:
                    logger.debug("fetch ok url=%s status=%d attempt=%d", url, status, attempt + 1)
                    return response.text

                if 400 <= status < 500:
                    logger.warning("non-retryable client error url=%s status=%d", url, status)
                    raise ClientFetchError(
                        f"HTTP {status} for {url}",
                        url=url,
                        status_code=status,
                        attempts=attempt + 1,
                    )

                last_error = FetchError(f"HTTP {status}", url=url, status_code=status)
                last_status = status

            logger.warning(
                "fetch attempt failed url=%s attempt=%d/%d err=%s",
                url, attempt + 1, max_attempts, last_error,
            )
            if attempt < max_attempts - 1:
                time.sleep(2 ** attempt)

        logger.error("all fetch attempts exhausted url=%s attempts=%d", url, max_attempts)
        raise FetchError(
            f"All {max_attempts} attempts failed for {url}: {last_error}",
            url=url,
            status_code=last_status,
            attempts=max_attempts,
        )

    def close(self) -> None:
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO)
    target = sys.argv[1] if len(sys.argv) > 1 else "https://apps.shopify.com"
    with HttpClient(delay_ms=0) as client:
        body = client.fetch_page(target)
        print(f"Fetched {len(body):,} chars from {target}")
