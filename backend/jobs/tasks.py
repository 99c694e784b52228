"""
Celery tasks - one per queue, both running a job through the JobProcessor.

- background queue: scheduled/admin jobs, at most one job started per 5 s
  per worker (task rate limit)
- interactive queue: user-initiated single lookups, no limit beyond the
  HttpClient's own pacing

A job that throws is retried once as a whole after 30 s. Every attempt
gets its own ScrapeRun; unknown job types fail once and are not retried.

Worker processes build their own HttpClient (plus the optional shared
Redis limiter) and mailer on first use.
"""
import logging
from typing import Any, Dict, Optional

from celery import shared_task
from flask import current_app

from constants import (
    BACKGROUND_QUEUE,
    BACKGROUND_RATE_LIMIT,
    BACKGROUND_TASK,
    DEFAULT_JOB_ATTEMPTS,
    DEFAULT_JOB_BACKOFF_SECONDS,
    INTERACTIVE_QUEUE,
    INTERACTIVE_TASK,
)
from jobs.processor import JobProcessor, UnknownJobTypeError
from models.database import db
from scrapers.http_client import HttpClient
from scrapers.rate_limiter import SharedRateLimiter
from services.mailer import Mailer

logger = logging.getLogger(__name__)

_processor: Optional[JobProcessor] = None


def build_processor(app) -> JobProcessor:
    config = app.config
    shared_limiter = None
    if config.get("SCRAPER_SHARED_RATE_LIMIT"):
        shared_limiter = SharedRateLimiter(app.extensions["redis"])

    http_client = HttpClient.from_config(config, shared_limiter=shared_limiter)
    return JobProcessor(http_client, app.extensions["job_queues"], mailer=Mailer.from_config(config))


def get_processor() -> JobProcessor:
    global _processor
    if _processor is None:
        _processor = build_processor(current_app)
    return _processor


def run_job(
    data: Dict[str, Any],
    queue_name: str,
    job_id: Optional[str] = None,
    attempt: int = 1,
    max_attempts: int = DEFAULT_JOB_ATTEMPTS,
    processor: Optional[JobProcessor] = None,
) -> str:
    """Process one delivered job. Returns the run id; re-raises pipeline errors."""
    processor = processor or get_processor()
    job_type = data.get("type")
    logger.info(
        "processing job job_id=%s type=%s attempt=%d/%d queue=%s",
        job_id, job_type, attempt, max_attempts, queue_name,
    )
    try:
        run = processor.process(data, queue_name=queue_name, job_id=job_id)
        run_id = run.id
    except Exception as e:
        logger.error(
            "job failed job_id=%s type=%s attempt=%d/%d error=%s",
            job_id, job_type, attempt, max_attempts, e,
        )
        raise
    finally:
        db.session.remove()

    logger.info("job completed job_id=%s type=%s run_id=%s", job_id, job_type, run_id)
    return run_id


RETRY_OPTIONS = {
    "bind": True,
    "acks_late": True,
    "reject_on_worker_lost": True,
    "autoretry_for": (Exception,),
    "dont_autoretry_for": (UnknownJobTypeError,),
    "max_retries": DEFAULT_JOB_ATTEMPTS - 1,
    "retry_backoff": DEFAULT_JOB_BACKOFF_SECONDS,
    "retry_backoff_max": 600,
    "retry_jitter": False,
}


@shared_task(name=BACKGROUND_TASK, rate_limit=BACKGROUND_RATE_LIMIT, **RETRY_OPTIONS)
def run_background_job(self, data):
    return run_job(data, BACKGROUND_QUEUE, self.request.id, self.request.retries + 1, self.max_retries + 1)


@shared_task(name=INTERACTIVE_TASK, **RETRY_OPTIONS)
def run_interactive_job(self, data):
    return run_job(data, INTERACTIVE_QUEUE, self.request.id, self.request.retries + 1, self.max_retries + 1)
