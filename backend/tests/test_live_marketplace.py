"""
Smoke tests against the live marketplace.

Skipped unless pytest is run with --run-integration. They catch markup
changes that the canned-page tests cannot.
"""

import pytest

from constants import BASE_URL, autocomplete_url, search_url
from scrapers import HttpClient
from scrapers.keyword_suggestion_scraper import JSON_HEADERS, parse_suggestions
from scrapers.keyword_scraper import SEARCH_HEADERS
from scrapers.parsers import parse_featured_sections, parse_search_page

pytestmark = pytest.mark.integration


@pytest.fixture(scope="module")
def http():
    return HttpClient(delay_ms=1000, max_retries=1, max_concurrency=1)


def test_homepage_has_featured_sections(http):
    sections = parse_featured_sections(http.fetch_page(BASE_URL))
    assert sections
    assert all(s.apps for s in sections)


def test_search_results_have_organic_positions(http):
    page = parse_search_page(http.fetch_page(search_url("form builder"), SEARCH_HEADERS), "form builder")
    assert page.organic_apps
    assert page.organic_apps[0].position == 1


def test_autocomplete_returns_suggestions(http):
    body = http.fetch_page(autocomplete_url("form"), JSON_HEADERS)
    assert isinstance(parse_suggestions(body, "form"), list)
