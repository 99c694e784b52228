"""
Category tree crawl.

Walks the category tree from the seed categories down to MAX_CATEGORY_DEPTH.
For each category it upserts the master row, appends a snapshot of the first
listing page, records app ranking positions and counts sponsored cards as
category ad sightings. Root categories without app cards get no snapshot.
"""
import logging
from typing import List, Optional, Set

from constants import (
    JOB_CATEGORY,
    MAX_CATEGORY_DEPTH,
    SEED_CATEGORY_SLUGS,
    category_all_url,
    category_url,
)
from db.upsert import upsert
from models.catalog import AppCategoryRanking, Category, CategorySnapshot
from models.database import db, utcnow
from scrapers.base import BaseScraper, PipelineResult
from scrapers.http_client import FetchError
from scrapers.parsers.category_parser import parse_category_page, should_use_all_page
from services.sightings import record_category_ad
from services.snapshot_store import record_snapshot

logger = logging.getLogger(__name__)


class CategoryScraper(BaseScraper):
    SCRAPER_TYPE = JOB_CATEGORY

    def __init__(self, http_client, run, max_depth: int = MAX_CATEGORY_DEPTH):
        super().__init__(http_client, run)
        self.max_depth = max_depth
        self._visited: Set[str] = set()
        self._discovered: List[str] = []

    def scrape(self, slug: Optional[str] = None, **_) -> PipelineResult:
        """
        Args:
            slug: crawl only this category (and its subtree) instead of all seeds
        """
        if slug:
            existing = Category.query.filter_by(slug=slug).first()
            parent = existing.parent_slug if existing else None
            depth = existing.category_level if existing else 0
            self._crawl(slug, parent, depth, reraise=True)
        else:
            logger.info("starting category tree crawl seeds=%d", len(SEED_CATEGORY_SLUGS))
            for seed in SEED_CATEGORY_SLUGS:
                self._crawl(seed, None, 0)

        discovered = list(dict.fromkeys(self._discovered))
        return PipelineResult(
            metadata=self.metadata(categories_visited=len(self._visited), apps_discovered=len(discovered)),
            discovered_slugs=discovered,
        )

    def _crawl(self, slug: str, parent_slug: Optional[str], depth: int, reraise: bool = False):
        if slug in self._visited:
            return
        self._visited.add(slug)

        logger.info("crawling category slug=%s depth=%d", slug, depth)
        page = self.process_item(
            slug, lambda: self._scrape_category(slug, parent_slug, depth), reraise=reraise
        )
        if page is None or depth >= self.max_depth:
            return

        for child in page.subcategory_links:
            self._crawl(child.slug, slug, depth + 1)

    def _fetch_listing(self, slug: str, depth: int):
        url = category_url(slug)
        html = self.fetch_page(url)
        source_url = url

        if depth > 0 and should_use_all_page(html):
            all_url = category_all_url(slug)
            try:
                html = self.fetch_page(all_url)
                source_url = all_url
            except FetchError as e:
                logger.warning("failed to fetch /all page, using main page slug=%s err=%s", slug, e)
        return html, source_url

    def _scrape_category(self, slug: str, parent_slug: Optional[str], depth: int):
        html, source_url = self._fetch_listing(slug, depth)
        page = parse_category_page(html, source_url)

        upsert(
            db.session,
            Category,
            {
                "slug": slug,
                "title": page.title or slug,
                "url": category_url(slug),
                "parent_slug": parent_slug,
                "category_level": depth,
                "description": page.description,
                "updated_at": utcnow(),
            },
            update=["title", "description", "parent_slug", "category_level", "updated_at"],
            index_elements=["slug"],
        )

        if depth > 0 or page.first_page_apps:
            if not page.first_page_apps:
                logger.warning("no apps on category listing slug=%s url=%s", slug, source_url)
            scraped_at = utcnow()
            record_snapshot(
                CategorySnapshot,
                scraped_at=scraped_at,
                category_slug=slug,
                scrape_run_id=self.run_id,
                data_source_url=page.data_source_url,
                app_count=page.app_count,
                first_page_metrics=page.first_page_metrics,
                first_page_apps=[a.to_dict() for a in page.first_page_apps],
                breadcrumb=page.breadcrumb,
            )
            self._record_rankings(page.first_page_apps, slug, scraped_at)

        return page

    def _record_rankings(self, apps, category_slug: str, scraped_at):
        for position, card in enumerate(apps, start=1):
            self.upsert_app_from_card(card)
            db.session.add(AppCategoryRanking(
                app_slug=card.app_slug,
                category_slug=category_slug,
                scrape_run_id=self.run_id,
                scraped_at=scraped_at,
                position=position,
            ))
            if card.is_sponsored:
                record_category_ad(card.app_slug, category_slug, self.run_id, scraped_at)
            self._discovered.append(card.app_slug)
