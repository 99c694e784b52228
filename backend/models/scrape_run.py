"""
Scrape Run Model - One row per job execution.

Tracks:
- Run lifecycle (pending -> running -> completed/failed)
- Outcome metadata (items_scraped, items_failed, duration_ms, ...)
- Which queue/job produced it and who triggered it

Runs are never deleted; terminal states never transition again.
"""
from uuid import uuid4

from constants import (
    RUN_PENDING,
    RUN_RUNNING,
    RUN_COMPLETED,
    RUN_FAILED,
    TERMINAL_RUN_STATUSES,
)
from models.database import db, utcnow


class RunStateError(RuntimeError):
    """Raised on an illegal status transition (e.g. out of a terminal state)."""
    pass


class ScrapeRun(db.Model):
    """Tracks individual scraper/compute job executions."""

    __tablename__ = "scrape_runs"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid4()))

    scraper_type = db.Column(db.String(50), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=RUN_PENDING, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)

    triggered_by = db.Column(db.String(100))
    queue = db.Column(db.String(100))
    job_id = db.Column(db.String(64))

    # items_scraped, items_failed, duration_ms, new_reviews, ...
    run_metadata = db.Column("metadata", db.JSON)
    error = db.Column(db.Text)

    __table_args__ = (
        db.Index("ix_scrape_runs_type_started", "scraper_type", "started_at"),
        db.CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed')",
            name="scrape_runs_status_check",
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES

    def _guard(self, target: str):
        if self.is_terminal:
            raise RunStateError(
                f"run {self.id} is already {self.status}, cannot move to {target}"
            )

    def start(self):
        """Mark run as started."""
        self._guard(RUN_RUNNING)
        self.status = RUN_RUNNING
        self.started_at = utcnow()

    def complete(self, metadata: dict = None):
        """Mark run as completed with outcome metadata."""
        self._guard(RUN_COMPLETED)
        self.status = RUN_COMPLETED
        self.completed_at = utcnow()
        self.run_metadata = self._merged(metadata)

    def fail(self, error, metadata: dict = None):
        """Mark run as failed, keeping the error text verbatim."""
        self._guard(RUN_FAILED)
        self.status = RUN_FAILED
        self.completed_at = utcnow()
        self.error = str(error)
        self.run_metadata = self._merged(metadata)

    def _merged(self, metadata):
        merged = dict(self.run_metadata or {})
        if metadata:
            merged.update(metadata)
        if "duration_ms" not in merged and self.started_at:
            merged["duration_ms"] = self.duration_ms
        return merged

    @property
    def duration_ms(self) -> int:
        if not self.started_at:
            return 0
        end = self.completed_at or utcnow()
        return int((end - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scraper_type": self.scraper_type,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "triggered_by": self.triggered_by,
            "queue": self.queue,
            "job_id": self.job_id,
            "metadata": self.run_metadata or {},
            "error": self.error,
        }

    def __repr__(self):
        return f"<ScrapeRun {self.id[:8]} {self.scraper_type} {self.status}>"
