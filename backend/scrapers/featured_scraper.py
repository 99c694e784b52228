"""
Featured placements pipeline.

Scrapes the homepage and every category page up to level 2 for curated
sections. Every app card becomes a featured sighting unique on
(app, section handle, surface detail, day).
"""
import logging
import re
from typing import List

from constants import BASE_URL, FEATURED_MAX_CATEGORY_LEVEL, JOB_FEATURED_APPS, category_url
from models.catalog import Category
from models.database import utcnow
from scrapers.base import BaseScraper, PipelineResult
from scrapers.parsers.featured_parser import parse_featured_sections
from scrapers.parsers.records import FeaturedSection
from services.sightings import record_featured

logger = logging.getLogger(__name__)

CATEGORY_URL_RE = re.compile(r"/categories/(.+?)(?:\?|$)")


def correct_section_handles(url: str, sections: List[FeaturedSection]) -> None:
    """
    Category pages sometimes label their main "Recommended ..." section with
    another category's handle. The URL slug is authoritative.
    """
    match = CATEGORY_URL_RE.search(url)
    if not match:
        return
    url_slug = match.group(1)
    main = next(
        (
            s for s in sections
            if s.section_title.lower().startswith("recommended") or s.section_handle == url_slug
        ),
        None,
    )
    if main is not None and main.section_handle != url_slug:
        logger.warning(
            "correcting mismatched section handle url=%s old=%s new=%s",
            url, main.section_handle, url_slug,
        )
        main.section_handle = url_slug
        main.surface_detail = url_slug


class FeaturedAppsScraper(BaseScraper):
    SCRAPER_TYPE = JOB_FEATURED_APPS

    def __init__(self, http_client, run):
        super().__init__(http_client, run)
        self._stats.update({"pages_scraped": 0, "pages_failed": 0, "sightings_recorded": 0})

    def scrape(self, **_) -> PipelineResult:
        logger.info("starting featured apps scrape")
        urls = [BASE_URL]
        categories = (
            Category.query.filter(Category.category_level <= FEATURED_MAX_CATEGORY_LEVEL)
            .order_by(Category.category_level, Category.slug)
            .all()
        )
        urls.extend(category_url(c.slug) for c in categories)
        logger.info("scraping featured pages count=%d", len(urls))

        for url in urls:
            count = self.process_item(url, lambda u=url: self.scrape_page(u))
            if count is None:
                self.increment_stat("pages_failed")
            else:
                self.increment_stat("pages_scraped")
                self.increment_stat("sightings_recorded", count)

        return PipelineResult(metadata=self.metadata())

    def scrape_page(self, url: str) -> int:
        sections = parse_featured_sections(self.fetch_page(url))
        if not sections:
            logger.debug("no featured sections found url=%s", url)
            return 0

        correct_section_handles(url, sections)

        observed_at = utcnow()
        count = 0
        for section in sections:
            for app in section.apps:
                self.upsert_app(app.slug, app.name, icon_url=app.icon_url or None)
                record_featured(
                    app.slug,
                    section.surface,
                    section.surface_detail,
                    section.section_handle,
                    section.section_title,
                    app.position,
                    self.run_id,
                    observed_at,
                )
                count += 1

        logger.info("recorded featured sightings url=%s sections=%d sightings=%d", url, len(sections), count)
        return count
