# Celery queues, job processing and scheduler
from .queue import JobQueue, QueueError, QueueUnavailableError, build_queues
from .submit import requeue_pending_runs, submit_job
