"""
Keyword autocomplete suggestions.

The marketplace's autocomplete endpoint returns JSON; the suggestion names
(minus the keyword itself) are stored as one row per keyword, replaced on
every scrape.
"""
import json
import logging
from typing import List, Optional

from constants import JOB_KEYWORD_SUGGESTIONS, autocomplete_url
from db.upsert import upsert
from models.catalog import KeywordAutoSuggestion, TrackedKeyword
from models.database import db, utcnow
from scrapers.base import BaseScraper, PipelineResult
from scrapers.keyword_scraper import get_or_create_keyword

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Accept": "application/json"}


def parse_suggestions(body: str, keyword: str) -> List[str]:
    try:
        data = json.loads(body)
    except ValueError:
        logger.warning("autocomplete response is not JSON keyword=%s", keyword)
        return []

    searches = data.get("searches") if isinstance(data, dict) else None
    names = []
    for item in searches or []:
        name = (item.get("name") or "").strip() if isinstance(item, dict) else ""
        if name and name.lower() != keyword.lower() and name not in names:
            names.append(name)
    return names


class KeywordSuggestionScraper(BaseScraper):
    SCRAPER_TYPE = JOB_KEYWORD_SUGGESTIONS

    def scrape(self, keyword: Optional[str] = None, **_) -> PipelineResult:
        if keyword:
            tracked = get_or_create_keyword(keyword)
            db.session.commit()
            self.process_item(keyword, lambda: self.scrape_suggestions(tracked.id, tracked.keyword), reraise=True)
        else:
            for kw in TrackedKeyword.query.filter_by(is_active=True).order_by(TrackedKeyword.id).all():
                self.process_item(kw.keyword, lambda k=kw: self.scrape_suggestions(k.id, k.keyword))
        return PipelineResult(metadata=self.metadata())

    def scrape_suggestions(self, keyword_id: int, keyword: str) -> List[str]:
        body = self.fetch_page(autocomplete_url(keyword), JSON_HEADERS)
        suggestions = parse_suggestions(body, keyword)
        upsert(
            db.session,
            KeywordAutoSuggestion,
            {
                "keyword_id": keyword_id,
                "suggestions": suggestions,
                "scraped_at": utcnow(),
                "scrape_run_id": self.run_id,
            },
            update=["suggestions", "scraped_at", "scrape_run_id"],
            index_elements=["keyword_id"],
        )
        logger.info("keyword suggestions stored keyword=%s count=%d", keyword, len(suggestions))
        return suggestions
