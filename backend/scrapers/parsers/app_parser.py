"""
App detail page parser (/{slug}).

Name, rating, review count and icon come from the SoftwareApplication JSON-LD
block; everything else from the markup. Each field is parsed independently so
one broken section only loses that field.
"""
import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import unquote

from constants import BASE_URL, category_url
from scrapers.parsers.cards import make_soup, parse_cards
from scrapers.parsers.records import AppPageRecord, AppCard

logger = logging.getLogger(__name__)

PRICING_PATTERNS = [
    re.compile(r"Free plan available", re.IGNORECASE),
    re.compile(r"Free trial available", re.IGNORECASE),
    re.compile(r"Free to install", re.IGNORECASE),
    re.compile(r"From \$[\d.]+/month", re.IGNORECASE),
]
FEATURE_HANDLE_RE = re.compile(r"feature_handles%5B%5D=([^&]+)")
SIMILAR_HEADINGS = ("more apps like this", "similar apps")


def _safe(name: str, slug: str, fn: Callable, fallback):
    try:
        return fn()
    except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
        logger.warning("failed to parse %s slug=%s err=%s", name, slug, e)
        return fallback


def _absolute(href: str) -> str:
    return href if href.startswith("http") else f"{BASE_URL}{href}"


# =============================================================================
# Field parsers
# =============================================================================

def _json_ld(soup) -> Optional[Dict[str, Any]]:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.string or "")
        except ValueError:
            continue
        if isinstance(data, dict) and data.get("@type") == "SoftwareApplication":
            rating = data.get("aggregateRating") or {}
            return {
                "name": data.get("name") or "",
                "rating_value": rating.get("ratingValue"),
                "rating_count": rating.get("ratingCount"),
                "image": data.get("image"),
            }
    return None


def _introduction(soup) -> str:
    details = soup.select_one("#app-details")
    if details is not None:
        h2 = details.find("h2")
        if h2 is not None:
            text = h2.get_text(" ", strip=True)
            if 5 < len(text) < 500:
                return text
    return ""


def _details(soup) -> str:
    details = soup.select_one("#app-details")
    if details is None:
        return ""
    desktop = details.select_one("p.lg\\:tw-block")
    if desktop is not None and len(desktop.get_text(strip=True)) > 10:
        return desktop.get_text(" ", strip=True)
    truncated = details.select_one("[data-truncate-content-copy]")
    if truncated is not None and len(truncated.get_text(strip=True)) > 10:
        return truncated.get_text(" ", strip=True)
    return ""


def _features(soup) -> List[str]:
    details = soup.select_one("#app-details")
    if details is None:
        return []
    features = []
    for li in details.select("ul.tw-list-disc li"):
        text = li.get_text(" ", strip=True)
        if 5 < len(text) < 500:
            features.append(text)
    return features


def _seo_title(soup) -> str:
    return soup.title.get_text(strip=True) if soup.title else ""


def _meta_description(soup) -> str:
    meta = soup.find("meta", attrs={"name": "description"})
    return (meta.get("content") or "").strip() if meta else ""


def _pricing(soup) -> str:
    text = soup.get_text("\n", strip=True)
    for pattern in PRICING_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return ""


def _developer(soup) -> Dict[str, Any]:
    name = ""
    url = ""
    website = None
    for link in soup.select('a[href*="/partners/"]'):
        name = link.get_text(" ", strip=True)
        url = _absolute(link.get("href", ""))
        if name:
            break
    section = soup.select_one("section#adp-developer")
    if section is not None:
        for link in section.select("a[href]"):
            if "website" in link.get_text(" ", strip=True).lower():
                website = link["href"]
                break
    return {"name": name, "url": url, "website": website}


def _demo_store_url(soup) -> Optional[str]:
    for link in soup.find_all("a", href=True):
        if "demo store" in link.get_text(" ", strip=True).lower():
            return link["href"]
    return None


def _labelled_list(soup, label: str) -> List[str]:
    """Values listed next to a "Languages"/"Works with" label."""
    for heading in soup.find_all(["p", "h3", "dt", "span"]):
        if heading.get_text(strip=True).lower() != label:
            continue
        container = heading.find_next_sibling()
        if container is None:
            continue
        items = [li.get_text(" ", strip=True) for li in container.find_all("li")]
        if not items:
            items = [part.strip() for part in container.get_text(",", strip=True).split(",")]
        return [item for item in items if item]
    return []


def _categories(soup) -> List[Dict[str, Any]]:
    by_category: Dict[str, Dict[str, Any]] = {}

    for link in soup.select('a[href*="feature_handles"]'):
        href = link.get("href", "")
        handle_match = FEATURE_HANDLE_RE.search(href)
        slug_match = re.search(r"/categories/([^/?]+)", href.split("?")[0])
        if not handle_match or not slug_match:
            continue
        slug = slug_match.group(1)
        entry = by_category.setdefault(slug, {"title": "", "url": category_url(slug), "features": []})
        entry["features"].append({
            "title": link.get_text(" ", strip=True),
            "url": _absolute(href),
            "feature_handle": unquote(handle_match.group(1)),
        })

    for link in soup.select('a[href*="/categories/"]'):
        href = link.get("href", "").split("?")[0]
        if href.endswith("/all"):
            href = href[: -len("/all")]
        slug_match = re.search(r"/categories/([^/?]+)$", href)
        entry = by_category.get(slug_match.group(1)) if slug_match else None
        text = link.get_text(" ", strip=True)
        if entry is not None and not entry["title"] and len(text) < 100:
            entry["title"] = text

    categories = []
    for index, entry in enumerate(by_category.values()):
        # Handle format cf.forms.form_types.feedback: group by the third segment
        groups: Dict[str, Dict[str, Any]] = {}
        for feature in entry["features"]:
            parts = feature["feature_handle"].split(".")
            key = parts[2] if len(parts) >= 3 else "general"
            group = groups.setdefault(key, {"title": key.replace("_", " ").title(), "features": []})
            group["features"].append(feature)
        categories.append({
            "type": "primary" if index == 0 else "secondary",
            "title": entry["title"] or "Unknown",
            "url": entry["url"],
            "subcategories": list(groups.values()),
        })
    return categories


def _pricing_plans(soup) -> List[Dict[str, Any]]:
    plans = []
    for card in soup.select(".app-details-pricing-plan-card"):
        lines = card.get_text("\n", strip=True).split("\n")
        if not lines:
            continue
        price_line = next((line for line in lines if "$" in line or line.lower() == "free"), None)
        plans.append({
            "name": lines[0],
            "price": price_line,
            "features": [li.get_text(" ", strip=True) for li in card.find_all("li")],
        })
    return plans


def _similar_apps(soup) -> List[AppCard]:
    for heading in soup.find_all(["h2", "h3"]):
        if heading.get_text(" ", strip=True).lower() not in SIMILAR_HEADINGS:
            continue
        container = heading.find_parent("section") or heading.parent
        cards = parse_cards(container)
        for index, card in enumerate(cards, start=1):
            card.position = card.position or index
        return cards
    return []


# =============================================================================
# Entry point
# =============================================================================

def parse_app_page(html: str, slug: str) -> AppPageRecord:
    soup = make_soup(html)
    json_ld = _json_ld(soup) or {}

    h1 = soup.find("h1")
    name = json_ld.get("name") or (h1.get_text(" ", strip=True) if h1 else "") or slug

    rating = json_ld.get("rating_value")
    rating_count = json_ld.get("rating_count")

    return AppPageRecord(
        app_slug=slug,
        app_name=name,
        icon_url=json_ld.get("image"),
        app_introduction=_safe("app_introduction", slug, lambda: _introduction(soup), ""),
        app_details=_safe("app_details", slug, lambda: _details(soup), ""),
        seo_title=_safe("seo_title", slug, lambda: _seo_title(soup), ""),
        seo_meta_description=_safe("seo_meta_description", slug, lambda: _meta_description(soup), ""),
        features=_safe("features", slug, lambda: _features(soup), []),
        pricing=_safe("pricing", slug, lambda: _pricing(soup), ""),
        average_rating=float(rating) if rating is not None else None,
        rating_count=int(rating_count) if rating_count is not None else None,
        developer=_safe("developer", slug, lambda: _developer(soup), {"name": "", "url": ""}),
        demo_store_url=_safe("demo_store_url", slug, lambda: _demo_store_url(soup), None),
        languages=_safe("languages", slug, lambda: _labelled_list(soup, "languages"), []),
        integrations=_safe("integrations", slug, lambda: _labelled_list(soup, "works with"), []),
        categories=_safe("categories", slug, lambda: _categories(soup), []),
        pricing_plans=_safe("pricing_plans", slug, lambda: _pricing_plans(soup), []),
        similar_apps=_safe("similar_apps", slug, lambda: _similar_apps(soup), []),
        is_built_for_shopify=soup.select_one('[class*="built-for-shopify"]') is not None,
    )
