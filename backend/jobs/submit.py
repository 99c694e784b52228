"""
Enqueue with a pending-run fallback, and the sweep that drains it.

Used by the scheduler, the admin API and pipeline cascades. When the queue
backend cannot be reached the request is recorded as a `pending` ScrapeRun
instead of being lost. requeue_pending_runs() resubmits those requests once
the queue is back (scheduler ticks and `cli.py requeue-pending`).
"""
import logging
from typing import Any, Dict, Optional

from constants import BACKGROUND_QUEUE
from jobs.queue import JobQueue, QueueError
from services.run_tracker import close_pending_run, pending_runs, record_pending

logger = logging.getLogger(__name__)


def submit_job(queue: JobQueue, data: Dict[str, Any]) -> Optional[str]:
    """
    Returns:
        The job id, or None if the job was recorded as pending instead.
    """
    try:
        job_id = queue.enqueue(data)
    except QueueError as e:
        logger.error(
            "failed to enqueue job queue=%s type=%s triggered_by=%s err=%s",
            queue.name, data.get("type"), data.get("triggered_by"), e,
        )
        record_pending(data.get("type"), data.get("triggered_by"), queue.name, data)
        return None

    logger.info(
        "job enqueued queue=%s job_id=%s type=%s triggered_by=%s",
        queue.name, job_id, data.get("type"), data.get("triggered_by"),
    )
    return job_id


def requeue_pending_runs(queues: Dict[str, JobQueue]) -> Dict[str, int]:
    """
    Resubmit every pending run's job data and close the pending row.

    Runs whose queue is not in `queues` go to the background queue. Stops at
    the first enqueue failure; the remaining rows stay pending.
    """
    stats = {"requeued": 0, "discarded": 0, "remaining": 0}
    runs = pending_runs()
    for index, run in enumerate(runs):
        data = (run.run_metadata or {}).get("job_data") or {}
        if not data.get("type"):
            close_pending_run(run, "pending run has no job data to resubmit")
            stats["discarded"] += 1
            continue

        queue = queues.get(run.queue) or queues[BACKGROUND_QUEUE]
        try:
            job_id = queue.enqueue(data)
        except QueueError as e:
            stats["remaining"] = len(runs) - index
            logger.warning("requeue stopped, queue still unavailable remaining=%d err=%s", stats["remaining"], e)
            break

        close_pending_run(run, f"requeued as job {job_id}", {"requeued_job_id": job_id, "requeued_to": queue.name})
        stats["requeued"] += 1

    if stats["requeued"] or stats["discarded"]:
        logger.info(
            "pending runs requeued requeued=%d discarded=%d remaining=%d",
            stats["requeued"], stats["discarded"], stats["remaining"],
        )
    return stats
