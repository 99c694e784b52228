#!/usr/bin/env python3
"""
CLI for the App Store Tracker

Commands:
    worker              - Process the background queue
    interactive-worker  - Process the interactive queue (single lookups)
    scheduler           - Run the cron scheduler (enqueues into background)
    enqueue             - Submit one job
    requeue-pending     - Resubmit jobs recorded while the queue was down
    runs                - List recent ScrapeRuns
    init-db             - Create all tables

Usage:
    python cli.py worker
    python cli.py enqueue keyword_search --keyword "form builder" --pages 2 --app-details
    python cli.py enqueue reviews --slug formful --interactive
    python cli.py runs --type reviews --limit 20
"""
import json
import logging
import sys

import click

from constants import BACKGROUND_QUEUE, INTERACTIVE_QUEUE, JOB_TYPES


def _configure_logging():
    from config import Config

    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_app():
    from app import create_app
    return create_app()


def _run_worker(queue_name, concurrency):
    from config import Config

    app = get_app()
    celery_app = app.extensions["celery"]
    celery_app.worker_main([
        "worker",
        "--queues", queue_name,
        "--concurrency", str(concurrency),
        "--hostname", f"{queue_name}@%h",
        "--loglevel", Config.LOG_LEVEL,
    ])


@click.group()
@click.version_option(version="1.0.0", prog_name="tracker-cli")
def cli():
    """App Store Tracker CLI - workers, scheduler and job submission."""
    _configure_logging()


@cli.command("worker")
@click.option("--concurrency", type=click.IntRange(min=1), help="Worker processes (default WORKER_CONCURRENCY)")
def worker(concurrency):
    """Process the background queue (each process starts at most one job per 5 seconds)."""
    from config import Config

    _run_worker(BACKGROUND_QUEUE, concurrency or Config.WORKER_CONCURRENCY)


@cli.command("interactive-worker")
def interactive_worker():
    """Process the interactive queue, one job at a time."""
    _run_worker(INTERACTIVE_QUEUE, 1)


@cli.command("scheduler")
def scheduler():
    """Run the cron scheduler in the foreground."""
    from jobs.scheduler import build_scheduler
    from jobs.submit import requeue_pending_runs

    app = get_app()
    queue = app.extensions["job_queues"][BACKGROUND_QUEUE]
    with app.app_context():
        requeue_pending_runs(app.extensions["job_queues"])
    sched = build_scheduler(queue, app=app)
    click.echo("Scheduler started (UTC). Ctrl+C to stop.")
    try:
        sched.start()
    except (KeyboardInterrupt, SystemExit):
        click.echo("Scheduler stopped")


@cli.command("enqueue")
@click.argument("job_type", type=click.Choice(JOB_TYPES))
@click.option("--slug", help="Single app or category slug")
@click.option("--keyword", help="Single keyword")
@click.option("--user-id", help="daily_digest: a single user")
@click.option("--account-id", help="daily_digest: a single account")
@click.option("--pages", type=click.IntRange(min=1), help="Search result pages")
@click.option("--app-details", is_flag=True, help="Cascade app_details for discovered apps")
@click.option("--reviews", is_flag=True, help="Cascade reviews after app_details")
@click.option("--interactive", is_flag=True, help="Use the interactive queue")
def enqueue(job_type, slug, keyword, user_id, account_id, pages, app_details, reviews, interactive):
    """Submit one job (falls back to a pending run if the queue is down)."""
    from jobs.submit import submit_job

    data = {"type": job_type, "triggered_by": "cli"}
    for key, value in (("slug", slug), ("keyword", keyword), ("user_id", user_id), ("account_id", account_id)):
        if value:
            data[key] = value
    options = {}
    if pages:
        options["pages"] = pages
    if app_details:
        options["scrape_app_details"] = True
    if reviews:
        options["scrape_reviews"] = True
    if options:
        data["options"] = options

    queue_name = INTERACTIVE_QUEUE if interactive else BACKGROUND_QUEUE
    app = get_app()
    with app.app_context():
        job_id = submit_job(app.extensions["job_queues"][queue_name], data)

    if job_id is None:
        click.secho("Queue unavailable - recorded as pending run", fg="yellow")
        sys.exit(1)
    click.secho(f"Enqueued {job_type} job {job_id} on {queue_name}", fg="green")


@cli.command("requeue-pending")
def requeue_pending():
    """Resubmit jobs recorded as pending while the queue was down."""
    from jobs.submit import requeue_pending_runs

    app = get_app()
    with app.app_context():
        stats = requeue_pending_runs(app.extensions["job_queues"])

    click.echo(f"Requeued {stats['requeued']}, discarded {stats['discarded']}, still pending {stats['remaining']}")
    if stats["remaining"]:
        sys.exit(1)


@cli.command("runs")
@click.option("--type", "scraper_type", type=click.Choice(JOB_TYPES), help="Filter by job type")
@click.option("--limit", default=20, show_default=True, type=click.IntRange(min=1, max=500))
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def runs(scraper_type, limit, output_json):
    """List recent runs, newest first."""
    from services.run_tracker import list_runs

    app = get_app()
    with app.app_context():
        rows = [r.to_dict() for r in list_runs(scraper_type, limit)]

    if output_json:
        click.echo(json.dumps(rows, indent=2, default=str))
        return

    colors = {"completed": "green", "failed": "red", "running": "cyan", "pending": "yellow"}
    for row in rows:
        status = click.style(f"{row['status']:<10}", fg=colors.get(row["status"], "white"))
        started = row["started_at"] or row["created_at"]
        click.echo(f"{started}  {row['scraper_type']:<26} {status} {row['triggered_by'] or '-'}")
        if row["error"]:
            click.echo(f"    error: {row['error']}")


@cli.command("init-db")
def init_db():
    """Create all tables."""
    from models.database import db

    app = get_app()
    with app.app_context():
        db.create_all()
    click.secho("Tables created", fg="green")


if __name__ == "__main__":
    cli()
