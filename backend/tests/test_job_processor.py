"""
Tests for the job processor (run lifecycle, cascades) and the Celery tasks that run it.

Pipelines are replaced with small fakes so no page is fetched.
"""

from unittest.mock import Mock, patch

import pytest

from constants import (
    BACKGROUND_QUEUE,
    INTERACTIVE_QUEUE,
    JOB_APP_DETAILS,
    JOB_CATEGORY,
    JOB_COMPUTE_REVIEW_METRICS,
    JOB_COMPUTE_SIMILARITY_SCORES,
    JOB_KEYWORD_SEARCH,
    JOB_KEYWORD_SUGGESTIONS,
    JOB_REVIEWS,
    RUN_COMPLETED,
    RUN_FAILED,
    RUN_RUNNING,
)
from jobs.processor import JobProcessor, UnknownJobTypeError, unique_slugs
from jobs.tasks import run_background_job, run_interactive_job, run_job
from models.scrape_run import ScrapeRun
from scrapers import FetchError, PipelineResult
from services.run_tracker import ORPHANED_RUN_ERROR, start_run


def fake_pipeline(discovered=(), error=None, metadata=None):
    calls = []

    class FakeScraper:
        def __init__(self, http_client, run):
            self.run = run

        def scrape(self, **target):
            calls.append(target)
            if error is not None:
                raise error
            return PipelineResult(
                metadata=dict(metadata or {"items_scraped": len(discovered)}),
                discovered_slugs=list(discovered),
            )

    FakeScraper.calls = calls
    return FakeScraper


@pytest.fixture
def queues(app):
    return app.extensions["job_queues"]


@pytest.fixture
def processor(queues):
    return JobProcessor(http_client=Mock(), queues=queues, mailer=Mock())


def _queued(sent_jobs):
    return [message["data"] for message in sent_jobs(BACKGROUND_QUEUE)]


# =============================================================================
# Run lifecycle
# =============================================================================

class TestRunLifecycle:

    def test_success_completes_run_with_metadata(self, processor):
        scraper = fake_pipeline(discovered=["a"], metadata={"items_scraped": 7})
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_CATEGORY: scraper}):
            run = processor.process({"type": JOB_CATEGORY, "triggered_by": "admin"}, BACKGROUND_QUEUE, "5")

        assert run.status == RUN_COMPLETED
        assert run.triggered_by == "admin"
        assert run.queue == BACKGROUND_QUEUE
        assert run.job_id == "5"
        assert run.run_metadata["items_scraped"] == 7
        assert "duration_ms" in run.run_metadata

    def test_target_passed_to_pipeline(self, processor):
        scraper = fake_pipeline()
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_KEYWORD_SEARCH: scraper}):
            processor.process({"type": JOB_KEYWORD_SEARCH, "keyword": "forms", "options": {"pages": 2}})

        assert scraper.calls == [{"slug": None, "keyword": "forms", "pages": 2}]

    def test_failure_marks_run_failed_and_reraises(self, processor):
        error = FetchError("All 4 attempts failed for https://apps.shopify.com/x: HTTP 503")
        scraper = fake_pipeline(error=error)
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_REVIEWS: scraper}):
            with pytest.raises(FetchError):
                processor.process({"type": JOB_REVIEWS, "slug": "x"})

        run = ScrapeRun.query.one()
        assert run.status == RUN_FAILED
        assert run.error == str(error)

    def test_unknown_type_recorded_as_failed_run(self, processor, sent_jobs):
        with pytest.raises(UnknownJobTypeError):
            processor.process({"type": "nope", "triggered_by": "admin"}, BACKGROUND_QUEUE, "job-9")

        run = ScrapeRun.query.one()
        assert run.scraper_type == "nope"
        assert run.status == RUN_FAILED
        assert run.error == "Unknown job type: nope"
        assert run.job_id == "job-9"
        assert _queued(sent_jobs) == []

    def test_missing_type_recorded_as_failed_run(self, processor):
        with pytest.raises(UnknownJobTypeError):
            processor.process({})
        assert ScrapeRun.query.one().scraper_type == "unknown"

    def test_redelivered_job_fails_orphaned_run(self, processor):
        orphan = start_run(JOB_CATEGORY, triggered_by="admin", queue=BACKGROUND_QUEUE, job_id="job-3")
        other = start_run(JOB_CATEGORY, triggered_by="admin", queue=BACKGROUND_QUEUE, job_id="job-4")

        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_CATEGORY: fake_pipeline()}):
            run = processor.process({"type": JOB_CATEGORY}, BACKGROUND_QUEUE, "job-3")

        assert run.status == RUN_COMPLETED
        assert orphan.status == RUN_FAILED
        assert orphan.error == ORPHANED_RUN_ERROR
        assert other.status == RUN_RUNNING

    def test_default_triggered_by(self, processor):
        with patch.dict("jobs.processor.METRIC_JOBS", {JOB_COMPUTE_SIMILARITY_SCORES: lambda: {"pairs_computed": 0}}):
            run = processor.process({"type": JOB_COMPUTE_SIMILARITY_SCORES})
        assert run.triggered_by == "manual"
        assert run.run_metadata["pairs_computed"] == 0


# =============================================================================
# Cascades
# =============================================================================

class TestCascades:

    def test_category_cascades_app_details_for_unique_slugs(self, processor, sent_jobs):
        scraper = fake_pipeline(discovered=["a", "b", "a", "c"])
        data = {
            "type": JOB_CATEGORY,
            "triggered_by": "admin",
            "options": {"scrape_app_details": True, "scrape_reviews": True},
        }
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_CATEGORY: scraper}):
            processor.process(data)

        jobs = _queued(sent_jobs)
        assert [j["slug"] for j in jobs] == ["a", "b", "c"]
        assert all(j["type"] == JOB_APP_DETAILS for j in jobs)
        assert all(j["triggered_by"] == "admin:cascade" for j in jobs)
        assert jobs[0]["options"] == {"scrape_reviews": True}

    def test_category_without_option_cascades_nothing(self, processor, sent_jobs):
        scraper = fake_pipeline(discovered=["a"])
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_CATEGORY: scraper}):
            processor.process({"type": JOB_CATEGORY})
        assert _queued(sent_jobs) == []

    def test_keyword_search_cascades_suggestions_and_similarity(self, processor, sent_jobs):
        scraper = fake_pipeline(discovered=["a"])
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_KEYWORD_SEARCH: scraper}):
            processor.process({"type": JOB_KEYWORD_SEARCH, "keyword": "forms", "triggered_by": "scheduler"})

        jobs = _queued(sent_jobs)
        assert [j["type"] for j in jobs] == [JOB_KEYWORD_SUGGESTIONS, JOB_COMPUTE_SIMILARITY_SCORES]
        assert jobs[0]["keyword"] == "forms"
        assert jobs[0]["triggered_by"] == "scheduler:cascade"

    def test_app_details_cascades_reviews_when_asked(self, processor, sent_jobs):
        scraper = fake_pipeline()
        data = {"type": JOB_APP_DETAILS, "slug": "formful", "options": {"scrape_reviews": True}}
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_APP_DETAILS: scraper}):
            processor.process(data)

        jobs = _queued(sent_jobs)
        assert [j["type"] for j in jobs] == [JOB_REVIEWS, JOB_COMPUTE_SIMILARITY_SCORES]
        assert jobs[0]["slug"] == "formful"

    def test_reviews_runs_review_metrics_inline(self, processor, sent_jobs):
        scraper = fake_pipeline()
        metrics = Mock(return_value={"apps_computed": 3})
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_REVIEWS: scraper}), \
                patch.dict("jobs.processor.METRIC_JOBS", {JOB_COMPUTE_REVIEW_METRICS: metrics}):
            processor.process({"type": JOB_REVIEWS, "slug": "formful", "triggered_by": "scheduler"})

        metrics.assert_called_once()
        metric_run = ScrapeRun.query.filter_by(scraper_type=JOB_COMPUTE_REVIEW_METRICS).one()
        assert metric_run.status == RUN_COMPLETED
        assert metric_run.triggered_by == "scheduler:reviews"
        assert _queued(sent_jobs) == []

    def test_failed_job_cascades_nothing(self, processor, sent_jobs):
        scraper = fake_pipeline(error=RuntimeError("x"))
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_KEYWORD_SEARCH: scraper}):
            with pytest.raises(RuntimeError):
                processor.process({"type": JOB_KEYWORD_SEARCH, "keyword": "forms"})
        assert _queued(sent_jobs) == []

    def test_unique_slugs_keeps_order(self):
        assert unique_slugs(["b", "a", "", "b", None, "c"]) == ["b", "a", "c"]




# =============================================================================
# Tasks
# =============================================================================

class TestRunJob:

    def test_success_returns_run_id(self, processor):
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_CATEGORY: fake_pipeline()}):
            run_id = run_job({"type": JOB_CATEGORY, "triggered_by": "admin"}, BACKGROUND_QUEUE, "job-1", processor=processor)

        run = ScrapeRun.query.one()
        assert run.id == run_id
        assert run.status == RUN_COMPLETED
        assert run.job_id == "job-1"

    def test_failure_reraised_for_retry(self, processor):
        scraper = fake_pipeline(error=RuntimeError("HTTP 503"))
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_REVIEWS: scraper}):
            with pytest.raises(RuntimeError):
                run_job({"type": JOB_REVIEWS, "slug": "x"}, BACKGROUND_QUEUE, "job-2", processor=processor)

        run = ScrapeRun.query.one()
        assert run.status == RUN_FAILED
        assert run.error == "HTTP 503"

    def test_each_attempt_gets_its_own_run(self, processor):
        scraper = fake_pipeline(error=RuntimeError("HTTP 503"))
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_REVIEWS: scraper}):
            for attempt in (1, 2):
                with pytest.raises(RuntimeError):
                    run_job({"type": JOB_REVIEWS}, BACKGROUND_QUEUE, "job-2", attempt=attempt, processor=processor)

        runs = ScrapeRun.query.filter_by(job_id="job-2").all()
        assert len(runs) == 2
        assert all(r.status == RUN_FAILED and r.error == "HTTP 503" for r in runs)

    def test_queue_outage_during_cascade_keeps_job_completed(self, processor, fake_redis):
        scraper = fake_pipeline(discovered=["a"])
        fake_redis.down = True
        with patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_KEYWORD_SEARCH: scraper}):
            run_job({"type": JOB_KEYWORD_SEARCH, "keyword": "forms"}, BACKGROUND_QUEUE, "job-5", processor=processor)

        assert ScrapeRun.query.filter_by(job_id="job-5").one().status == RUN_COMPLETED
        pending = ScrapeRun.query.filter_by(status="pending").all()
        assert sorted(r.scraper_type for r in pending) == [JOB_COMPUTE_SIMILARITY_SCORES, JOB_KEYWORD_SUGGESTIONS]

    def test_interactive_task_tags_its_queue(self, processor):
        with patch("jobs.tasks.get_processor", return_value=processor), \
                patch.dict("jobs.processor.SCRAPER_PIPELINES", {JOB_APP_DETAILS: fake_pipeline()}):
            run_interactive_job.run({"type": JOB_APP_DETAILS, "slug": "formful"})

        run = ScrapeRun.query.filter_by(scraper_type=JOB_APP_DETAILS).one()
        assert run.queue == INTERACTIVE_QUEUE
        assert run.status == RUN_COMPLETED


class TestTaskPolicy:

    def test_two_attempts_with_30s_backoff(self, app):
        for task in (run_background_job, run_interactive_job):
            assert task.max_retries == 1
            assert task.retry_backoff == 30
            assert task.retry_jitter is False
            assert Exception in task.autoretry_for
            assert UnknownJobTypeError in task.dont_autoretry_for

    def test_acknowledged_after_the_job(self, app):
        for task in (run_background_job, run_interactive_job):
            assert task.acks_late is True
            assert task.reject_on_worker_lost is True

    def test_only_background_is_rate_limited(self, app):
        assert run_background_job.rate_limit == "12/m"
        assert run_interactive_job.rate_limit is None
