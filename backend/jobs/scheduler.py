"""
Cron scheduler for the background queue.

Schedule (all times UTC)
------------------------
  category         03:00 every day
  app_details      every 6 hours
  keyword_search   00:00 and 12:00
  reviews          06:00 and 18:00
  featured_apps    04:00 every day
  daily_digest     05:00 every day

Each tick enqueues one job with triggered_by="scheduler". An enqueue failure
is logged and recorded as a pending run; the next tick still fires, and the
first tick that reaches the queue again resubmits pending runs. Missed
ticks are not replayed.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List

from apscheduler.schedulers.blocking import BlockingScheduler

from constants import (
    BACKGROUND_QUEUE,
    JOB_APP_DETAILS,
    JOB_CATEGORY,
    JOB_DAILY_DIGEST,
    JOB_FEATURED_APPS,
    JOB_KEYWORD_SEARCH,
    JOB_REVIEWS,
)
from jobs.queue import JobQueue
from jobs.submit import requeue_pending_runs, submit_job

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Schedule:
    name: str
    job_type: str
    cron: Dict[str, str]


SCHEDULES: List[Schedule] = [
    Schedule("daily-category-scrape", JOB_CATEGORY, {"hour": "3", "minute": "0"}),
    Schedule("app-details-scrape", JOB_APP_DETAILS, {"hour": "*/6", "minute": "0"}),
    Schedule("keyword-search-scrape", JOB_KEYWORD_SEARCH, {"hour": "0,12", "minute": "0"}),
    Schedule("review-scrape", JOB_REVIEWS, {"hour": "6,18", "minute": "0"}),
    Schedule("daily-featured-apps-scrape", JOB_FEATURED_APPS, {"hour": "4", "minute": "0"}),
    Schedule("daily-digest", JOB_DAILY_DIGEST, {"hour": "5", "minute": "0"}),
]


def _tick(schedule: Schedule, queue: JobQueue) -> None:
    data = {"type": schedule.job_type, "triggered_by": "scheduler"}
    if submit_job(queue, data) is not None:
        # The queue is reachable again; drain requests recorded while it was down
        requeue_pending_runs({queue.name: queue})


def fire(schedule: Schedule, queue: JobQueue, app=None) -> None:
    """One scheduler tick. Never raises."""
    logger.info("cron triggered name=%s type=%s", schedule.name, schedule.job_type)
    try:
        if app is not None:
            with app.app_context():
                _tick(schedule, queue)
        else:
            _tick(schedule, queue)
    except Exception:
        # Pending-run fallback failed too (database down); keep the scheduler alive
        logger.exception("failed to enqueue job name=%s type=%s", schedule.name, schedule.job_type)


def build_scheduler(queue: JobQueue, app=None, scheduler=None, schedules: List[Schedule] = None):
    """
    Register every schedule on an APScheduler instance.

    Args:
        queue: the background JobQueue
        app: Flask app whose context the pending-run fallback runs in
        scheduler: scheduler to register on; defaults to a BlockingScheduler
    """
    if queue.name != BACKGROUND_QUEUE:
        logger.warning("scheduler targeting non-background queue=%s", queue.name)

    scheduler = scheduler or BlockingScheduler(timezone="UTC")
    for schedule in schedules or SCHEDULES:
        scheduler.add_job(
            fire,
            trigger="cron",
            args=[schedule, queue, app],
            id=schedule.name,
            name=schedule.name,
            replace_existing=True,
            misfire_grace_time=300,
            coalesce=True,
            **schedule.cron,
        )
        logger.info("schedule registered name=%s type=%s cron=%s", schedule.name, schedule.job_type, schedule.cron)
    return scheduler
