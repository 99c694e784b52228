"""
Celery application bound to the Flask app.

Both logical queues live on the Redis broker from REDIS_URL. Tasks run
inside the Flask app context of the worker process that executes them.

Delivery is at-least-once: a job is acknowledged only after its task
returns, and a job whose worker dies mid-run goes back on the queue
(task_acks_late + task_reject_on_worker_lost, plus the broker's
visibility timeout for whole-node loss).
"""
import logging

from celery import Celery, Task
from celery.signals import worker_process_init

from constants import BACKGROUND_QUEUE, BACKGROUND_TASK, INTERACTIVE_QUEUE, INTERACTIVE_TASK

logger = logging.getLogger(__name__)

# Long crawls must finish before an unacknowledged job is handed out again
VISIBILITY_TIMEOUT_SECONDS = 12 * 3600


def celery_settings(config) -> dict:
    redis_url = config.get("REDIS_URL", "redis://localhost:6379/0")
    return {
        "broker_url": redis_url,
        "result_backend": redis_url,
        "result_expires": 24 * 3600,
        "task_serializer": "json",
        "result_serializer": "json",
        "accept_content": ["json"],
        "timezone": "UTC",
        "enable_utc": True,
        "task_default_queue": BACKGROUND_QUEUE,
        "task_routes": {
            BACKGROUND_TASK: {"queue": BACKGROUND_QUEUE},
            INTERACTIVE_TASK: {"queue": INTERACTIVE_QUEUE},
        },
        "task_acks_late": True,
        "task_reject_on_worker_lost": True,
        "worker_prefetch_multiplier": 1,
        "broker_transport_options": {"visibility_timeout": VISIBILITY_TIMEOUT_SECONDS},
        # Workers ride out broker outages instead of exiting
        "broker_connection_retry_on_startup": True,
        "broker_connection_max_retries": None,
        # Producers give up quickly so callers can fall back to a pending run
        "task_publish_retry_policy": {
            "max_retries": 2,
            "interval_start": 0,
            "interval_step": 0.5,
            "interval_max": 1,
        },
    }


def celery_init_app(app) -> Celery:
    """Create the Celery app for a Flask app and register it as the default."""

    class FlaskTask(Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery_app = Celery("tracker", task_cls=FlaskTask, include=["jobs.tasks"])
    celery_app.conf.update(celery_settings(app.config))
    if app.config.get("CELERY"):
        celery_app.conf.update(app.config["CELERY"])
    celery_app.set_default()
    celery_app.flask_app = app
    app.extensions["celery"] = celery_app
    return celery_app


@worker_process_init.connect
def _reset_db_pool(**_):
    """Forked pool children must not share the parent's database connections."""
    from celery import current_app as celery_app
    from models.database import db

    flask_app = getattr(celery_app, "flask_app", None)
    if flask_app is None:
        return
    with flask_app.app_context():
        db.engine.dispose(close=False)
    logger.debug("worker process database pool reset")
