"""
Review pipeline.

Walks an app's review pages newest first, up to REVIEW_MAX_PAGES, stopping at
the first review older than REVIEW_CUTOFF_DAYS. Reviews are insert-only,
deduplicated on (app, reviewer, date, rating); an existing review is never
overwritten and keeps the run that first saw it.
"""
import logging
from datetime import timedelta
from typing import Optional

from constants import JOB_REVIEWS, REVIEW_CUTOFF_DAYS, REVIEW_MAX_PAGES, app_reviews_url
from db.upsert import insert_ignore
from models.catalog import App, Review
from models.database import db, utcnow
from scrapers.base import BaseScraper, PipelineResult
from scrapers.parsers.review_parser import parse_review_date, parse_review_page

logger = logging.getLogger(__name__)

REVIEW_UNIQUE_KEY = ["app_slug", "reviewer_name", "review_date", "rating"]


class ReviewScraper(BaseScraper):
    SCRAPER_TYPE = JOB_REVIEWS

    def __init__(self, http_client, run, max_pages: int = REVIEW_MAX_PAGES, cutoff_days: int = REVIEW_CUTOFF_DAYS):
        super().__init__(http_client, run)
        self.max_pages = max_pages
        self.cutoff_days = cutoff_days
        self._new_reviews = 0

    def scrape(self, slug: Optional[str] = None, **_) -> PipelineResult:
        if slug:
            self.process_item(slug, lambda: self.scrape_app_reviews(slug), reraise=True)
        else:
            slugs = [a.slug for a in App.query.filter_by(is_tracked=True).order_by(App.slug).all()]
            if not slugs:
                logger.info("no tracked apps found")
            for tracked_slug in slugs:
                self.process_item(tracked_slug, lambda s=tracked_slug: self.scrape_app_reviews(s))
        return PipelineResult(metadata=self.metadata(new_reviews=self._new_reviews))

    def scrape_app_reviews(self, slug: str) -> int:
        logger.info("scraping reviews slug=%s", slug)
        cutoff = (utcnow() - timedelta(days=self.cutoff_days)).date()

        new_reviews = 0
        hit_cutoff = False
        page_number = 1
        while page_number <= self.max_pages:
            page = parse_review_page(self.fetch_page(app_reviews_url(slug, page_number)), page_number)
            if not page.reviews:
                break

            for review in page.reviews:
                review_date = parse_review_date(review.review_date)
                if review_date is None:
                    logger.warning("unparseable review date slug=%s value=%s", slug, review.review_date)
                    continue
                if review_date < cutoff:
                    hit_cutoff = True
                    break

                inserted = insert_ignore(
                    db.session,
                    Review,
                    {
                        "app_slug": slug,
                        "review_date": review_date,
                        "content": review.content,
                        "reviewer_name": review.reviewer_name,
                        "reviewer_country": review.reviewer_country or None,
                        "duration_using_app": review.duration_using_app or None,
                        "rating": review.rating,
                        "developer_reply_date": parse_review_date(review.developer_reply_date or ""),
                        "developer_reply_text": review.developer_reply_text,
                        "first_seen_run_id": self.run_id,
                    },
                    index_elements=REVIEW_UNIQUE_KEY,
                )
                if inserted:
                    new_reviews += 1

            if hit_cutoff or not page.has_next_page:
                break
            page_number += 1

        self._new_reviews += new_reviews
        logger.info(
            "reviews scraped slug=%s new_reviews=%d pages=%d hit_cutoff=%s",
            slug, new_reviews, page_number, hit_cutoff,
        )
        return new_reviews
