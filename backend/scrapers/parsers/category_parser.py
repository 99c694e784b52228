"""
Category page parser (/categories/{slug} and /categories/{slug}/all).

Extracts the category's own metadata, its direct subcategory links and the
first page of app cards (max 24) with summary metrics.
"""
import logging
import re
from typing import Any, Dict, List

from constants import category_url
from scrapers.parsers.cards import make_soup, parse_cards, parse_int, has_next_page
from scrapers.parsers.records import AppCard, CategoryPageRecord, SubcategoryLink

logger = logging.getLogger(__name__)

FIRST_PAGE_SIZE = 24

SLUG_RE = re.compile(r"/categories/([^/?]+)")
APP_COUNT_RE = re.compile(r"(\d[\d,]*)\s+apps?\b", re.IGNORECASE)
NAV_CLASSES = ("megamenu-component", "side-menu-component", "navbar")


def extract_category_slug(url: str) -> str:
    match = SLUG_RE.search(url or "")
    return match.group(1) if match else ""


def _in_navigation(element) -> bool:
    for parent in element.parents:
        classes = " ".join(parent.get("class") or [])
        if any(marker in classes for marker in NAV_CLASSES):
            return True
    return False


def _h1_text(soup) -> str:
    h1 = soup.find("h1")
    return h1.get_text(" ", strip=True) if h1 else ""


def _breadcrumb(soup) -> str:
    parts = []
    seen = set()
    for link in soup.select('a[href*="surface_type=category"]'):
        text = link.get_text(" ", strip=True)
        if not text or text in seen or not SLUG_RE.search(link.get("href", "")):
            continue
        seen.add(text)
        parts.append(text)

    h1 = _h1_text(soup)
    if h1 and h1 not in seen:
        parts.append(h1)
    return " > ".join(parts)


def _description(soup) -> str:
    meta = soup.find("meta", attrs={"name": "description"})
    if meta and (meta.get("content") or "").strip():
        return meta["content"].strip()

    h1 = soup.find("h1")
    following = h1.find_next_sibling("p") if h1 else None
    return following.get_text(" ", strip=True) if following else ""


def _subcategory_links(soup, current_slug: str) -> List[SubcategoryLink]:
    links = []
    seen = set()
    for link in soup.select('a[href*="/categories/"][href*="surface_detail"]'):
        if _in_navigation(link):
            continue
        clean = link.get("href", "").split("?")[0]
        if "/all" in clean:
            continue
        match = re.search(r"/categories/([^/?]+)$", clean)
        if not match:
            continue

        slug = match.group(1)
        # Direct children share the parent's slug as prefix
        if not slug.startswith(current_slug + "-") or slug in seen:
            continue
        seen.add(slug)

        lines = link.get_text("\n", strip=True).split("\n")
        title = re.sub(r"\s+apps?\s*$", "", lines[0] if lines else "", flags=re.IGNORECASE).strip()
        if title and len(title) < 200:
            links.append(SubcategoryLink(slug=slug, url=category_url(slug), title=title))
    return links


def compute_first_page_metrics(apps: List[AppCard]) -> Dict[str, Any]:
    """Review concentration and badge counts over the first page of a listing."""
    ranked = sorted(apps, key=lambda a: a.rating_count, reverse=True)
    total_reviews = sum(a.rating_count for a in apps)
    top4 = ranked[:4]
    top8 = ranked[:8]
    top4_reviews = sum(a.rating_count for a in top4)
    top8_reviews = sum(a.rating_count for a in top8)

    return {
        "sponsored_count": sum(1 for a in apps if a.is_sponsored),
        "built_for_shopify_count": sum(1 for a in apps if a.is_built_for_shopify),
        "count_100_plus_reviews": sum(1 for a in apps if a.rating_count >= 100),
        "count_1000_plus_reviews": sum(1 for a in apps if a.rating_count >= 1000),
        "total_reviews": total_reviews,
        "top_4_avg_rating": sum(a.average_rating for a in top4) / len(top4) if top4 else 0,
        "top_4_avg_rating_count": top4_reviews / len(top4) if top4 else 0,
        "top_1_pct_reviews": ranked[0].rating_count / total_reviews if total_reviews else 0,
        "top_4_pct_reviews": top4_reviews / total_reviews if total_reviews else 0,
        "top_8_pct_reviews": top8_reviews / total_reviews if total_reviews else 0,
    }


def parse_category_page(html: str, url: str) -> CategoryPageRecord:
    soup = make_soup(html)
    slug = extract_category_slug(url)

    raw_title = _h1_text(soup) or slug
    title = re.sub(r"\s+apps?\s*$", "", raw_title, flags=re.IGNORECASE)

    count_match = APP_COUNT_RE.search(soup.get_text(" ", strip=True))
    apps = parse_cards(soup)[:FIRST_PAGE_SIZE]

    if not apps:
        logger.debug("no app cards on category page slug=%s", slug)

    return CategoryPageRecord(
        slug=slug,
        url=url,
        data_source_url=url.split("?")[0],
        title=title,
        breadcrumb=_breadcrumb(soup),
        description=_description(soup),
        app_count=parse_int(count_match.group(1)) if count_match else None,
        first_page_metrics=compute_first_page_metrics(apps) if apps else None,
        first_page_apps=apps,
        subcategory_links=_subcategory_links(soup, slug),
    )


def should_use_all_page(html: str) -> bool:
    """True when the landing page has no cards or links to a "view all" list."""
    soup = make_soup(html)
    if not soup.select('[data-controller="app-card"]'):
        return True
    for link in soup.select('a[href*="/all"]'):
        text = link.get_text(" ", strip=True).lower()
        if "view all" in text or "see all" in text:
            return True
    return False


def category_has_next_page(html: str) -> bool:
    return has_next_page(make_soup(html))
