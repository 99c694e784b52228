"""
Job processor - turns one queued job into one ScrapeRun.

For every job:
1. start_run() creates the run (`running`)
2. the pipeline for job["type"] executes against that run
3. complete_run() / fail_run() records the outcome, errors kept verbatim
4. follow-up jobs (cascades) are submitted to the background queue

Exceptions are re-raised after the run is marked failed so the queue's
retry policy applies to the whole job.

Job data:
    {
        "type": "keyword_search",
        "slug": "...", "keyword": "...",          # optional target
        "user_id": "...", "account_id": "...",    # daily_digest scope
        "triggered_by": "scheduler",
        "options": {"pages": 2, "scrape_app_details": True, "scrape_reviews": False},
    }
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from constants import (
    BACKGROUND_QUEUE,
    JOB_APP_DETAILS,
    JOB_CATEGORY,
    JOB_COMPUTE_REVIEW_METRICS,
    JOB_COMPUTE_SIMILARITY_SCORES,
    JOB_DAILY_DIGEST,
    JOB_FEATURED_APPS,
    JOB_KEYWORD_SEARCH,
    JOB_KEYWORD_SUGGESTIONS,
    JOB_REVIEWS,
)
from jobs.submit import submit_job
from scrapers import (
    AppDetailsScraper,
    CategoryScraper,
    FeaturedAppsScraper,
    KeywordScraper,
    KeywordSuggestionScraper,
    PipelineResult,
    ReviewScraper,
)
from services.digest import run_daily_digest
from services.metrics_jobs import compute_review_metrics, compute_similarity_scores
from services.run_tracker import complete_run, fail_orphaned_runs, fail_run, start_run

logger = logging.getLogger(__name__)


class UnknownJobTypeError(ValueError):
    pass


SCRAPER_PIPELINES = {
    JOB_CATEGORY: CategoryScraper,
    JOB_APP_DETAILS: AppDetailsScraper,
    JOB_KEYWORD_SEARCH: KeywordScraper,
    JOB_KEYWORD_SUGGESTIONS: KeywordSuggestionScraper,
    JOB_REVIEWS: ReviewScraper,
    JOB_FEATURED_APPS: FeaturedAppsScraper,
}

METRIC_JOBS: Dict[str, Callable[[], Dict[str, Any]]] = {
    JOB_COMPUTE_REVIEW_METRICS: compute_review_metrics,
    JOB_COMPUTE_SIMILARITY_SCORES: compute_similarity_scores,
}


def unique_slugs(slugs: List[str]) -> List[str]:
    seen = set()
    result = []
    for slug in slugs:
        if slug and slug not in seen:
            seen.add(slug)
            result.append(slug)
    return result


class JobProcessor:
    """
    One per worker process. The HTTP client, queues and mailer are built at
    startup and passed in; nothing here is a module-level singleton.
    """

    def __init__(self, http_client, queues: Dict[str, Any], mailer=None):
        self.http_client = http_client
        self.queues = queues
        self.mailer = mailer

    # =========================================================================
    # Execution
    # =========================================================================

    def process(self, data: Dict[str, Any], queue_name: Optional[str] = None, job_id: Optional[str] = None):
        """Run one job and return its finished ScrapeRun."""
        job_type = data.get("type") or "unknown"
        triggered_by = data.get("triggered_by") or "manual"

        # A redelivered job's earlier attempt died with its worker
        if job_id:
            fail_orphaned_runs(job_id)

        run = start_run(str(job_type)[:50], triggered_by=triggered_by, queue=queue_name, job_id=job_id)
        try:
            if job_type not in SCRAPER_PIPELINES and job_type not in METRIC_JOBS and job_type != JOB_DAILY_DIGEST:
                raise UnknownJobTypeError(f"Unknown job type: {job_type}")
            result = self._execute(job_type, data, run)
        except Exception as e:
            fail_run(run, e)
            raise
        complete_run(run, result.metadata)

        self._cascade(job_type, data, result, triggered_by)
        return run

    def _execute(self, job_type: str, data: Dict[str, Any], run) -> PipelineResult:
        options = data.get("options") or {}

        if job_type in SCRAPER_PIPELINES:
            if self.http_client is None:
                raise RuntimeError(f"{job_type} needs an HTTP client")
            scraper = SCRAPER_PIPELINES[job_type](self.http_client, run)
            return scraper.scrape(
                slug=data.get("slug"),
                keyword=data.get("keyword"),
                pages=options.get("pages"),
            )

        if job_type in METRIC_JOBS:
            return PipelineResult(metadata=METRIC_JOBS[job_type]())

        # JOB_DAILY_DIGEST
        if self.mailer is None:
            raise RuntimeError("daily_digest needs a mailer")
        stats = run_daily_digest(
            self.mailer,
            user_id=data.get("user_id"),
            account_id=data.get("account_id"),
        )
        return PipelineResult(metadata=stats)

    # =========================================================================
    # Cascades
    # =========================================================================

    def _submit(self, data: Dict[str, Any]) -> None:
        submit_job(self.queues[BACKGROUND_QUEUE], data)

    def _cascade(self, job_type: str, data: Dict[str, Any], result: PipelineResult, triggered_by: str) -> None:
        options = data.get("options") or {}
        cascade_by = f"{triggered_by}:cascade"

        if job_type in (JOB_CATEGORY, JOB_KEYWORD_SEARCH) and options.get("scrape_app_details"):
            slugs = unique_slugs(result.discovered_slugs)
            logger.info("cascading app details type=%s apps=%d", job_type, len(slugs))
            for slug in slugs:
                self._submit({
                    "type": JOB_APP_DETAILS,
                    "slug": slug,
                    "triggered_by": cascade_by,
                    "options": {"scrape_reviews": bool(options.get("scrape_reviews"))},
                })

        if job_type == JOB_APP_DETAILS:
            if options.get("scrape_reviews") and data.get("slug"):
                self._submit({"type": JOB_REVIEWS, "slug": data["slug"], "triggered_by": cascade_by})
            self._submit({"type": JOB_COMPUTE_SIMILARITY_SCORES, "triggered_by": cascade_by})

        elif job_type == JOB_KEYWORD_SEARCH:
            if data.get("keyword"):
                self._submit({"type": JOB_KEYWORD_SUGGESTIONS, "keyword": data["keyword"], "triggered_by": cascade_by})
            self._submit({"type": JOB_COMPUTE_SIMILARITY_SCORES, "triggered_by": cascade_by})

        elif job_type == JOB_REVIEWS:
            # Momentum depends on the reviews just stored; run it now under its own run
            try:
                self.process({"type": JOB_COMPUTE_REVIEW_METRICS, "triggered_by": f"{triggered_by}:reviews"})
            except Exception as e:
                logger.error("review metrics after reviews failed err=%s", e)
