"""
App details pipeline.

For one slug, or every tracked app: fetch the app page, upsert the master
row, append a snapshot, diff it against the previous snapshot and record the
"more apps like this" block as similar-app sightings.
"""
import logging
from typing import Optional

from constants import JOB_APP_DETAILS, app_url
from models.catalog import App, AppSnapshot
from models.database import utcnow
from scrapers.base import BaseScraper, PipelineResult
from scrapers.parsers.app_parser import parse_app_page
from services.sightings import record_similar_app
from services.snapshot_store import detect_app_changes, record_snapshot, snapshot_fields

logger = logging.getLogger(__name__)


class AppDetailsScraper(BaseScraper):
    SCRAPER_TYPE = JOB_APP_DETAILS

    def scrape(self, slug: Optional[str] = None, **_) -> PipelineResult:
        self._changes = 0
        if slug:
            self.process_item(slug, lambda: self.scrape_app(slug), reraise=True)
            return PipelineResult(metadata=self.metadata(field_changes=self._changes))

        slugs = [a.slug for a in App.query.filter_by(is_tracked=True).order_by(App.slug).all()]
        if not slugs:
            logger.info("no tracked apps found")
        for tracked_slug in slugs:
            self.process_item(tracked_slug, lambda s=tracked_slug: self.scrape_app(s))

        return PipelineResult(metadata=self.metadata(field_changes=self._changes))

    def scrape_app(self, slug: str) -> AppSnapshot:
        logger.info("scraping app slug=%s", slug)
        html = self.fetch_page(app_url(slug))
        record = parse_app_page(html, slug)

        existing = App.query.filter_by(slug=slug).first()
        if existing is not None:
            # The page has no card subtitle; carry the one listings gave us
            record.app_card_subtitle = existing.app_card_subtitle

        self.upsert_app(
            slug,
            record.app_name,
            is_tracked=True,
            icon_url=record.icon_url,
            average_rating=record.average_rating,
            rating_count=record.rating_count,
            is_built_for_shopify=record.is_built_for_shopify or None,
        )

        snapshot = record_snapshot(
            AppSnapshot,
            app_slug=slug,
            scrape_run_id=self.run_id,
            **snapshot_fields(record),
        )
        self._changes += len(detect_app_changes(slug, self.run_id))

        observed_at = utcnow()
        for card in record.similar_apps:
            if card.is_built_in or card.app_slug == slug:
                continue
            self.upsert_app_from_card(card)
            record_similar_app(slug, card.app_slug, card.position, self.run_id, observed_at)

        return snapshot
