"""
Shared Flask-SQLAlchemy handle.

All models import `db` from here; the Flask app binds it with db.init_app(app).
"""
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are stored without tz)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
