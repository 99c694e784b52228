"""
Base Scraper - Template for all marketplace pipelines.

Provides common functionality:
- Page fetching through the injected HttpClient (pages_fetched accounting)
- App master-row upserts shared by every pipeline
- Per-item commit/rollback so one bad entity does not sink the run
- Outcome metadata handed back to the worker for the ScrapeRun row

Pipelines never create or finish ScrapeRuns themselves: the worker owns the
run and passes it in; scrape() returns a PipelineResult.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from db.upsert import upsert
from models.catalog import App
from models.database import db, utcnow

logger = logging.getLogger(__name__)

# App columns a card or page may refresh on an existing master row
APP_MUTABLE_COLUMNS = (
    "name",
    "icon_url",
    "app_card_subtitle",
    "average_rating",
    "rating_count",
    "pricing_hint",
    "is_built_for_shopify",
)


@dataclass
class PipelineResult:
    """What a pipeline hands back to the worker."""
    metadata: Dict[str, Any] = field(default_factory=dict)
    # App slugs discovered along the way (category listings, search results)
    discovered_slugs: List[str] = field(default_factory=list)


class BaseScraper(ABC):
    """
    Abstract base class for all pipelines.

    Subclasses must implement:
    - scrape(**target): run the pipeline and return a PipelineResult

    Subclasses should set:
    - SCRAPER_TYPE: job type this pipeline serves
    """

    SCRAPER_TYPE: str = "base"

    def __init__(self, http_client, run):
        """
        Args:
            http_client: HttpClient owned by the worker process
            run: the ScrapeRun this execution is recorded under
        """
        self.http_client = http_client
        self.run = run
        self._stats = {
            "items_scraped": 0,
            "items_failed": 0,
            "pages_fetched": 0,
        }

    @property
    def run_id(self) -> str:
        return self.run.id

    @abstractmethod
    def scrape(self, **target) -> PipelineResult:
        pass

    def increment_stat(self, stat_name: str, amount: int = 1):
        self._stats[stat_name] = self._stats.get(stat_name, 0) + amount

    def fetch_page(self, url: str, extra_headers: Optional[Dict[str, str]] = None) -> str:
        html = self.http_client.fetch_page(url, extra_headers)
        self.increment_stat("pages_fetched")
        return html

    def upsert_app(self, slug: str, name: str, **fields) -> None:
        """
        Insert the app master row or refresh the given columns.

        Only non-None values are written on conflict, so a sparse card never
        blanks out fields a richer page filled in.
        """
        values = {"slug": slug, "name": name or slug}
        values.update({k: v for k, v in fields.items() if v is not None})
        values["updated_at"] = utcnow()
        update = [c for c in APP_MUTABLE_COLUMNS if c in values]
        upsert(db.session, App, values, update=update + ["updated_at"], index_elements=["slug"])

    def upsert_app_from_card(self, card) -> None:
        self.upsert_app(
            card.app_slug,
            card.name,
            icon_url=card.logo_url or None,
            app_card_subtitle=card.short_description or None,
            average_rating=card.average_rating or None,
            rating_count=card.rating_count or None,
            pricing_hint=card.pricing_hint or None,
            is_built_for_shopify=card.is_built_for_shopify or None,
        )

    def process_item(self, label: str, fn: Callable[[], Any], reraise: bool = False) -> Any:
        """
        Run one unit of work in its own transaction.

        A failing item is rolled back, counted in items_failed and logged;
        the pipeline continues with the next item. Single-target jobs pass
        reraise=True so the failure reaches the worker and the queue retry.
        """
        try:
            result = fn()
            db.session.commit()
            self.increment_stat("items_scraped")
            return result
        except Exception as e:
            db.session.rollback()
            self.increment_stat("items_failed")
            logger.error("item failed type=%s item=%s err=%s", self.SCRAPER_TYPE, label, e)
            if reraise:
                raise
            return None

    def metadata(self, **extra) -> Dict[str, Any]:
        merged = dict(self._stats)
        merged.update(extra)
        return merged
