"""
Admin API Routes

Provides endpoints for:
- Triggering scrapes / metric jobs on demand
- Listing recent ScrapeRuns (observability)
- Queue depths
"""
import logging

from flask import Blueprint, current_app, jsonify, request

from constants import BACKGROUND_QUEUE, INTERACTIVE_QUEUE, JOB_TYPES
from jobs.queue import QueueError
from jobs.submit import submit_job
from services.run_tracker import DEFAULT_RUN_LIST_LIMIT, list_runs

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)

OPTION_KEYS = ("pages", "scrape_app_details", "scrape_reviews")
TARGET_KEYS = ("slug", "keyword", "user_id", "account_id")


def _error(code: str, message: str, status: int):
    return jsonify({"error": {"code": code, "message": message}}), status


def _queues():
    return current_app.extensions["job_queues"]


@admin_bp.route("/scrape", methods=["POST"])
def trigger_scrape():
    """
    Enqueue one job.

    Body:
        {"type": "keyword_search", "keyword": "form builder",
         "options": {"pages": 2, "scrape_app_details": true},
         "interactive": false}

    Returns:
        202 with the job id, or 202 with status "pending" when the queue
        could not be reached and the request was recorded as a pending run.
    """
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        return _error("INVALID_BODY", "body must be a JSON object", 400)

    job_type = body.get("type")
    if job_type not in JOB_TYPES:
        return _error("INVALID_JOB_TYPE", f"type must be one of: {', '.join(JOB_TYPES)}", 400)

    options = body.get("options") or {}
    if not isinstance(options, dict):
        return _error("INVALID_OPTIONS", "options must be an object", 400)

    pages = options.get("pages")
    if pages is not None and (isinstance(pages, bool) or not isinstance(pages, int) or pages < 1):
        return _error("INVALID_OPTIONS", "options.pages must be a positive integer", 400)

    for key in TARGET_KEYS:
        value = body.get(key)
        if value is not None and not isinstance(value, str):
            return _error("INVALID_TARGET", f"{key} must be a string", 400)

    data = {"type": job_type, "triggered_by": body.get("triggered_by") or "admin"}
    for key in TARGET_KEYS:
        if body.get(key):
            data[key] = body[key]
    clean_options = {k: options[k] for k in OPTION_KEYS if k in options}
    if clean_options:
        data["options"] = clean_options

    queue_name = INTERACTIVE_QUEUE if body.get("interactive") else BACKGROUND_QUEUE
    job_id = submit_job(_queues()[queue_name], data)

    if job_id is None:
        return jsonify({"status": "pending", "queue": queue_name, "type": job_type}), 202
    return jsonify({"status": "queued", "queue": queue_name, "type": job_type, "job_id": job_id}), 202


@admin_bp.route("/runs", methods=["GET"])
def get_runs():
    """
    Query params:
        - type: scraper type filter (optional)
        - limit: max results (default 50, max 500)
    """
    scraper_type = request.args.get("type")
    try:
        limit = int(request.args.get("limit", DEFAULT_RUN_LIST_LIMIT))
    except ValueError:
        return _error("INVALID_LIMIT", "limit must be an integer", 400)

    runs = list_runs(scraper_type, limit)
    return jsonify({"count": len(runs), "data": [r.to_dict() for r in runs]})


@admin_bp.route("/queues", methods=["GET"])
def get_queue_counts():
    try:
        counts = {name: queue.counts() for name, queue in _queues().items()}
    except QueueError as e:
        logger.error("queue counts unavailable err=%s", e)
        return _error("QUEUE_UNAVAILABLE", str(e), 503)
    return jsonify({"queues": counts})
