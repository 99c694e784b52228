"""
Root pytest configuration for backend tests.

Provides:
- Shared fixtures (app, client, db_session, run)
- FakeRedis: in-memory stand-in for the broker lists the queues publish to
- sent_jobs: jobs published through Celery, read back per queue
"""

import json
import os
import sys
from itertools import count
from pathlib import Path

# Config reads DATABASE_URL at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Add backend directory to Python path so imports like
# `from db.upsert import ...` and `from scrapers import ...` work
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import pytest
import redis
from kombu.exceptions import OperationalError


class FakeRedis:
    """One list per queue, like the Celery Redis transport; `down` refuses every call."""

    def __init__(self):
        self.data = {}
        self.down = False

    def _check(self):
        if self.down:
            raise redis.exceptions.ConnectionError("Connection refused")

    def rpush(self, key, *values):
        self._check()
        lst = self.data.setdefault(key, [])
        lst.extend(values)
        return len(lst)

    def lpop(self, key):
        self._check()
        lst = self.data.get(key, [])
        return lst.pop(0) if lst else None

    def llen(self, key):
        self._check()
        return len(self.data.get(key, []))


class FakeSender:
    """Replaces Celery.send_task: publishes onto FakeRedis instead of a broker."""

    def __init__(self, fake_redis):
        self.redis = fake_redis
        self._ids = count(1)

    def __call__(self, name, args=None, kwargs=None, queue=None, **options):
        if self.redis.down:
            raise OperationalError("Error 111 connecting to localhost:6379. Connection refused.")
        job_id = f"job-{next(self._ids)}"
        self.redis.rpush(queue, json.dumps({"id": job_id, "task": name, "data": args[0]}))

        class Result:
            id = job_id

        return Result()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def app(fake_redis):
    """Create test Flask application on an in-memory SQLite database."""
    from app import create_app
    from models.database import db

    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "SQLALCHEMY_ENGINE_OPTIONS": {},
            "CELERY": {"broker_url": "memory://", "result_backend": "cache+memory://"},
        },
        redis_client=fake_redis,
    )
    app.extensions["celery"].send_task = FakeSender(fake_redis)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def sent_jobs(app, fake_redis):
    """Drain and return the messages published to a queue, oldest first."""
    from constants import BACKGROUND_QUEUE

    def drain(queue_name=BACKGROUND_QUEUE):
        was_down, fake_redis.down = fake_redis.down, False
        messages = []
        while True:
            raw = fake_redis.lpop(queue_name)
            if raw is None:
                break
            messages.append(json.loads(raw))
        fake_redis.down = was_down
        return messages

    return drain


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def db_session(app):
    from models.database import db
    return db.session


@pytest.fixture
def run(app):
    """A running ScrapeRun for pipelines and sightings to reference."""
    from services.run_tracker import start_run
    return start_run("test", triggered_by="pytest")
