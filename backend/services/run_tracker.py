"""
Run Tracker - the only writer of scrape_runs.

Every job execution gets exactly one row: created `running` by the worker
that picked the job up, then moved once to `completed` or `failed`. When a
job cannot be enqueued at all, a `pending` row records the request instead.

Usage:
    from services.run_tracker import start_run, complete_run, fail_run

    run = start_run("reviews", triggered_by="scheduler", queue=..., job_id="42")
    try:
        metadata = pipeline(...)
        complete_run(run, metadata)
    except Exception as e:
        fail_run(run, e)
        raise
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from constants import RUN_PENDING, RUN_RUNNING
from models.database import db
from models.scrape_run import ScrapeRun

logger = logging.getLogger(__name__)

DEFAULT_RUN_LIST_LIMIT = 50
MAX_RUN_LIST_LIMIT = 500

ORPHANED_RUN_ERROR = "worker lost before the job finished; job redelivered"


def start_run(
    scraper_type: str,
    triggered_by: Optional[str] = None,
    queue: Optional[str] = None,
    job_id: Optional[str] = None,
) -> ScrapeRun:
    run = ScrapeRun(
        scraper_type=scraper_type,
        triggered_by=triggered_by,
        queue=queue,
        job_id=job_id,
    )
    run.start()
    db.session.add(run)
    db.session.commit()
    logger.info("run started run_id=%s type=%s job_id=%s", run.id, scraper_type, job_id)
    return run


def complete_run(run: ScrapeRun, metadata: Optional[Dict[str, Any]] = None) -> ScrapeRun:
    run.complete(metadata)
    db.session.commit()
    logger.info(
        "run completed run_id=%s type=%s duration_ms=%s",
        run.id, run.scraper_type, run.run_metadata.get("duration_ms"),
    )
    return run


def fail_run(run: ScrapeRun, error, metadata: Optional[Dict[str, Any]] = None) -> ScrapeRun:
    # The pipeline's transaction may be half-written; discard it before stamping the run
    db.session.rollback()
    run.fail(error, metadata)
    db.session.commit()
    logger.error("run failed run_id=%s type=%s error=%s", run.id, run.scraper_type, error)
    return run


def record_pending(
    scraper_type: str,
    triggered_by: Optional[str] = None,
    queue: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> ScrapeRun:
    """Persist a request that could not be enqueued so it is not lost."""
    run = ScrapeRun(
        scraper_type=scraper_type,
        status=RUN_PENDING,
        triggered_by=triggered_by,
        queue=queue,
        run_metadata={"job_data": payload or {}},
    )
    db.session.add(run)
    db.session.commit()
    logger.warning("recorded pending run run_id=%s type=%s", run.id, scraper_type)
    return run


def fail_orphaned_runs(job_id: str) -> int:
    """
    Fail runs of `job_id` still marked running.

    A job is redelivered when its worker died before acknowledging it; the
    run that worker started can never finish on its own.
    """
    orphans = ScrapeRun.query.filter_by(job_id=str(job_id), status=RUN_RUNNING).all()
    for run in orphans:
        run.fail(ORPHANED_RUN_ERROR)
        logger.warning("orphaned run failed run_id=%s type=%s job_id=%s", run.id, run.scraper_type, job_id)
    if orphans:
        db.session.commit()
    return len(orphans)


def pending_runs(limit: int = MAX_RUN_LIST_LIMIT) -> List[ScrapeRun]:
    """Pending runs, oldest first."""
    return (
        ScrapeRun.query.filter_by(status=RUN_PENDING)
        .order_by(ScrapeRun.created_at.asc())
        .limit(limit)
        .all()
    )


def close_pending_run(run: ScrapeRun, reason: str, metadata: Optional[Dict[str, Any]] = None) -> ScrapeRun:
    """Close a pending run once its request was resubmitted (or cannot be)."""
    run.fail(reason, metadata)
    db.session.commit()
    logger.info("pending run closed run_id=%s type=%s reason=%s", run.id, run.scraper_type, reason)
    return run


def list_runs(scraper_type: Optional[str] = None, limit: int = DEFAULT_RUN_LIST_LIMIT) -> List[ScrapeRun]:
    """Runs newest first; pending runs sort by their creation time."""
    limit = max(1, min(int(limit), MAX_RUN_LIST_LIMIT))
    query = ScrapeRun.query
    if scraper_type:
        query = query.filter(ScrapeRun.scraper_type == scraper_type)
    return (
        query.order_by(func.coalesce(ScrapeRun.started_at, ScrapeRun.created_at).desc())
        .limit(limit)
        .all()
    )
