"""
Featured section parser for the homepage and category pages.

Sections are `[data-monorail-waypoint="AppStoreSurfaceWaypoint"]` containers
tagged with a grouping handle, a surface and a surface detail.
"""
import logging
from typing import Dict, List, Tuple

from scrapers.parsers.cards import make_soup, parse_cards
from scrapers.parsers.records import FeaturedApp, FeaturedSection

logger = logging.getLogger(__name__)

# Editorial, testimonial and the marketplace's own promo sections
EXCLUDED_HANDLES = {
    "shopify-apps",
    "TestimonialComponent",
    "story-page-crosslink",
    "home",
    "category",
}


def _section_title(element) -> str:
    inner = element.find(["h2", "h3"])
    if inner is not None:
        return inner.get_text(" ", strip=True)

    previous = element.find_previous_sibling(["h2", "h3"])
    if previous is not None:
        return previous.get_text(" ", strip=True)

    if element.parent is not None:
        heading = element.parent.find(["h2", "h3"], recursive=False)
        if heading is not None:
            text = heading.get_text(" ", strip=True)
            if len(text) < 100:
                return text
    return ""


def _to_featured(cards) -> List[FeaturedApp]:
    return [
        FeaturedApp(slug=c.app_slug, name=c.name, icon_url=c.logo_url, position=c.position)
        for c in cards
    ]


def parse_featured_sections(html: str) -> List[FeaturedSection]:
    soup = make_soup(html)
    sections: List[FeaturedSection] = []
    by_key: Dict[Tuple[str, str, str], FeaturedSection] = {}

    for element in soup.select('[data-monorail-waypoint="AppStoreSurfaceWaypoint"]'):
        handle = element.get("data-waypoint-app-grouping-handle")
        surface = element.get("data-waypoint-surface")
        surface_detail = element.get("data-waypoint-surface-detail") or ""
        if not handle or not surface or handle in EXCLUDED_HANDLES:
            continue

        key = (surface, surface_detail, handle)
        existing = by_key.get(key)
        if existing is not None:
            # Same section split across containers: append unseen apps
            cards = parse_cards(element, skip_slugs=[a.slug for a in existing.apps])
            existing.apps.extend(_to_featured(cards))
            continue

        cards = parse_cards(element)
        if not cards:
            continue

        section = FeaturedSection(
            section_handle=handle,
            section_title=_section_title(element) or handle,
            surface=surface,
            surface_detail=surface_detail or ("home" if surface == "home" else ""),
            apps=_to_featured(cards),
        )
        by_key[key] = section
        sections.append(section)

    logger.info(
        "parsed featured sections sections=%d apps=%d",
        len(sections), sum(len(s.apps) for s in sections),
    )
    return sections
