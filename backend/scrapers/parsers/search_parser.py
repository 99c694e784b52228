"""Keyword search results page parser (/search?q=...)."""
import logging
import re

from scrapers.parsers.cards import make_soup, parse_cards, has_next_page, parse_int
from scrapers.parsers.records import SearchPageRecord

logger = logging.getLogger(__name__)

TOTAL_RESULTS_RE = re.compile(r"(\d[\d,]*)\s+results?\s+for", re.IGNORECASE)
TOTAL_APPS_RE = re.compile(r"(\d[\d,]*)\s+apps?\b", re.IGNORECASE)


def parse_search_page(html: str, keyword: str, current_page: int = 1, position_offset: int = 0) -> SearchPageRecord:
    """
    Parse one page of search results.

    Organic results get consecutive positions starting after
    `position_offset`; sponsored and built-in results get no position.
    """
    soup = make_soup(html)

    text = soup.get_text(" ", strip=True)
    match = TOTAL_RESULTS_RE.search(text) or TOTAL_APPS_RE.search(text)
    total_results = parse_int(match.group(1)) if match else None

    apps = parse_cards(soup)
    position = position_offset
    for app in apps:
        if app.is_sponsored or app.is_built_in:
            app.position = None
        else:
            position += 1
            app.position = position

    if not apps:
        logger.warning("no apps found in search results, possible HTML structure change keyword=%s", keyword)

    return SearchPageRecord(
        keyword=keyword,
        total_results=total_results,
        apps=apps,
        has_next_page=has_next_page(soup),
        current_page=current_page,
    )
