"""
Producer-side handles for the two Celery queues.

A JobQueue publishes job data to its queue by task name, so producers
(admin API, scheduler, cascades, CLI) never import the worker code. Retry,
backoff and late acknowledgement are properties of the tasks in jobs.tasks.

Job data:
    {"type": "reviews", "slug": "formful", "triggered_by": "admin",
     "options": {"pages": 2, "scrape_app_details": true}}
"""
import logging
from typing import Any, Dict

import redis
from kombu.exceptions import OperationalError

from constants import BACKGROUND_QUEUE, BACKGROUND_TASK, INTERACTIVE_QUEUE, INTERACTIVE_TASK

logger = logging.getLogger(__name__)

QUEUE_TASKS = {
    BACKGROUND_QUEUE: BACKGROUND_TASK,
    INTERACTIVE_QUEUE: INTERACTIVE_TASK,
}


class QueueError(Exception):
    pass


class QueueUnavailableError(QueueError):
    """The queue backend could not be reached."""
    pass


class JobQueue:
    def __init__(self, name: str, celery_app, redis_client):
        self.name = name
        self.task_name = QUEUE_TASKS[name]
        self.celery = celery_app
        self.redis = redis_client

    def enqueue(self, data: Dict[str, Any]) -> str:
        """Publish a job; returns its id."""
        try:
            result = self.celery.send_task(self.task_name, args=(dict(data),), queue=self.name)
        except (OperationalError, redis.exceptions.ConnectionError) as e:
            raise QueueUnavailableError(f"queue {self.name} unavailable: {e}") from e
        logger.debug("job added queue=%s job_id=%s type=%s", self.name, result.id, data.get("type"))
        return result.id

    def counts(self) -> Dict[str, int]:
        """Jobs waiting on the broker (the Redis transport keeps one list per queue)."""
        try:
            return {"waiting": self.redis.llen(self.name)}
        except redis.exceptions.ConnectionError as e:
            raise QueueUnavailableError(f"queue {self.name} unavailable: {e}") from e


def redis_from_config(config):
    return redis.Redis.from_url(config.get("REDIS_URL", "redis://localhost:6379/0"))


def build_queues(celery_app, redis_client) -> Dict[str, JobQueue]:
    return {name: JobQueue(name, celery_app, redis_client) for name in QUEUE_TASKS}
