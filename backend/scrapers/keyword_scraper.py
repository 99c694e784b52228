"""
Keyword search pipeline.

For one keyword, or every active tracked keyword: fetch the search results,
append a keyword snapshot, record organic ranking positions and count
sponsored results as keyword ad sightings.
"""
import logging
from typing import List, Optional

from constants import JOB_KEYWORD_SEARCH, search_url
from db.upsert import upsert
from models.catalog import AppKeywordRanking, KeywordSnapshot, TrackedKeyword, keyword_to_slug
from models.database import db, utcnow
from scrapers.base import BaseScraper, PipelineResult
from scrapers.parsers.search_parser import parse_search_page
from services.sightings import record_keyword_ad
from services.snapshot_store import record_snapshot

logger = logging.getLogger(__name__)

# Search results are served inside a turbo frame; asking for it directly
# returns the results fragment without the page chrome
SEARCH_HEADERS = {"Turbo-Frame": "search_page"}


def get_or_create_keyword(keyword: str) -> TrackedKeyword:
    keyword = keyword.strip()
    upsert(
        db.session,
        TrackedKeyword,
        {"keyword": keyword, "slug": keyword_to_slug(keyword), "updated_at": utcnow()},
        update=["updated_at"],
        index_elements=["keyword"],
    )
    return TrackedKeyword.query.filter_by(keyword=keyword).one()


class KeywordScraper(BaseScraper):
    SCRAPER_TYPE = JOB_KEYWORD_SEARCH

    def __init__(self, http_client, run, pages: int = 1):
        super().__init__(http_client, run)
        self.pages = max(1, pages)
        self._discovered: List[str] = []

    def scrape(self, keyword: Optional[str] = None, pages: Optional[int] = None, **_) -> PipelineResult:
        if pages:
            self.pages = max(1, int(pages))

        if keyword:
            tracked = get_or_create_keyword(keyword)
            db.session.commit()
            self.process_item(keyword, lambda: self.scrape_keyword(tracked.id, tracked.keyword), reraise=True)
        else:
            keywords = TrackedKeyword.query.filter_by(is_active=True).order_by(TrackedKeyword.id).all()
            if not keywords:
                logger.info("no active keywords found")
            logger.info("scraping tracked keywords count=%d", len(keywords))
            for kw in keywords:
                self.process_item(kw.keyword, lambda k=kw: self.scrape_keyword(k.id, k.keyword))

        discovered = list(dict.fromkeys(self._discovered))
        return PipelineResult(
            metadata=self.metadata(apps_discovered=len(discovered)),
            discovered_slugs=discovered,
        )

    def scrape_keyword(self, keyword_id: int, keyword: str) -> KeywordSnapshot:
        logger.info("scraping keyword keyword=%s pages=%d", keyword, self.pages)

        apps = []
        total_results = None
        position_offset = 0
        for page_number in range(1, self.pages + 1):
            html = self.fetch_page(search_url(keyword, page_number), SEARCH_HEADERS)
            page = parse_search_page(html, keyword, page_number, position_offset)
            if page_number == 1:
                total_results = page.total_results
            apps.extend(page.apps)
            position_offset += len(page.organic_apps)
            if not page.has_next_page or not page.apps:
                break

        scraped_at = utcnow()
        snapshot = record_snapshot(
            KeywordSnapshot,
            scraped_at=scraped_at,
            keyword_id=keyword_id,
            scrape_run_id=self.run_id,
            total_results=total_results,
            results=[a.to_dict() for a in apps],
        )

        for card in apps:
            if card.is_built_in:
                continue
            self.upsert_app_from_card(card)
            if card.is_sponsored:
                record_keyword_ad(card.app_slug, keyword_id, self.run_id, scraped_at)
                continue
            db.session.add(AppKeywordRanking(
                app_slug=card.app_slug,
                keyword_id=keyword_id,
                scrape_run_id=self.run_id,
                scraped_at=scraped_at,
                position=card.position,
            ))
            self._discovered.append(card.app_slug)

        return snapshot
