"""
App card helpers shared by the category, search and app page parsers.

Cards are `[data-controller="app-card"]` elements carrying their identity in
data-app-card-* attributes; rating and review counts only exist as text.
"""
import re
from typing import Iterable, List, Optional, Set, Tuple

from bs4 import BeautifulSoup, Tag

from scrapers.parsers.records import AppCard

CARD_SELECTOR = '[data-controller="app-card"]'

RATING_RE = re.compile(r"(\d\.\d)\s*out of 5 stars")
COUNT_PAREN_RE = re.compile(r"\(([\d,]+)\)\s*[\d,]*\s*total reviews")
COUNT_RE = re.compile(r"([\d,]+)\s*total reviews")

SPONSORED_LINK_MARKERS = ("surface_type=search_ad", "surface_type=category_ad")

_AD_TEXT = ("app developer paid to promote", "This ad is based on", "paid search")


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def parse_int(text: Optional[str]) -> Optional[int]:
    if not text:
        return None
    digits = text.replace(",", "").strip()
    return int(digits) if digits.isdigit() else None


def extract_rating(text: str) -> Tuple[float, int]:
    """Pull (rating, review count) out of card text; zeros when absent."""
    rating_match = RATING_RE.search(text)
    rating = float(rating_match.group(1)) if rating_match else 0.0

    count_match = COUNT_PAREN_RE.search(text) or COUNT_RE.search(text)
    count = parse_int(count_match.group(1)) if count_match else 0
    return rating, count or 0


def extract_description(card: Tag) -> str:
    """Longest paragraph on the card that is not rating/ad boilerplate."""
    best = ""
    for p in card.find_all(["p", "div"]):
        if p.find(True):
            continue
        text = p.get_text(" ", strip=True)
        if (
            len(text) > 10
            and len(text) > len(best)
            and "out of 5 stars" not in text
            and "total reviews" not in text
            and "highest standards" not in text
            and not any(marker in text for marker in _AD_TEXT)
        ):
            best = text
    return best


def extract_pricing_hint(card: Tag) -> str:
    # One pricing span per card ("Free plan available", "$9.99/month", ...)
    span = card.select_one("span.tw-overflow-hidden.tw-whitespace-nowrap.tw-text-ellipsis")
    return span.get_text(" ", strip=True) if span else ""


def parse_card(card: Tag) -> Optional[AppCard]:
    slug = (card.get("data-app-card-handle-value") or "").strip()
    name = (card.get("data-app-card-name-value") or "").strip()
    if not slug or not name:
        return None

    link = card.get("data-app-card-app-link-value") or ""
    intra_position = card.get("data-app-card-intra-position-value")
    rating, count = extract_rating(card.get_text(" ", strip=True))

    is_built_in = slug.startswith("bif:")
    return AppCard(
        app_slug=slug,
        name=name,
        logo_url=card.get("data-app-card-icon-url-value") or "",
        short_description=extract_description(card),
        average_rating=rating,
        rating_count=count,
        position=parse_int(intra_position),
        pricing_hint=extract_pricing_hint(card),
        is_sponsored=not is_built_in and any(m in link for m in SPONSORED_LINK_MARKERS),
        is_built_in=is_built_in,
        is_built_for_shopify=card.select_one('[class*="built-for-shopify"]') is not None,
    )


def parse_cards(container, skip_slugs: Iterable[str] = ()) -> List[AppCard]:
    """All unique cards under `container`, in page order."""
    seen: Set[str] = set(skip_slugs)
    cards = []
    for element in container.select(CARD_SELECTOR):
        card = parse_card(element)
        if card is None or card.app_slug in seen:
            continue
        seen.add(card.app_slug)
        cards.append(card)
    return cards


def has_next_page(soup: BeautifulSoup) -> bool:
    # Only the explicit rel=next link; numbered links also match on the last page
    return soup.select_one('a[rel="next"]') is not None
