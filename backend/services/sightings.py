"""
Sighting Aggregator.

Turns the stream of "subject seen in context at time T" observations into
one row per (subject, context, UTC day). The first observation of the day
inserts with times_seen_in_day=1; each later one increments the counter and
overwrites last_seen_run_id in the same INSERT ... ON CONFLICT statement.
"""
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Optional

from db.upsert import insert_or_increment
from models.database import db, utcnow
from models.sightings import (
    CategoryAdSighting,
    FeaturedAppSighting,
    KeywordAdSighting,
    SimilarAppSighting,
)


def seen_date_for(observed_at: Optional[datetime]) -> date:
    """Calendar day of the observation in UTC (naive datetimes are UTC)."""
    observed_at = observed_at or utcnow()
    if observed_at.tzinfo is not None:
        observed_at = observed_at.astimezone(timezone.utc)
    return observed_at.date()


def record_sighting(
    model,
    keys: Dict[str, Any],
    run_id: str,
    observed_at: Optional[datetime] = None,
    extra: Optional[Dict[str, Any]] = None,
    overwrite: Iterable[str] = (),
) -> None:
    """
    Args:
        model: sighting model (its UNIQUE_KEY is the conflict target)
        keys: subject and context columns, e.g. {"app_slug": ..., "keyword_id": ...}
        run_id: the observing scrape run
        extra: non-key columns written on insert
        overwrite: extra columns refreshed from the latest observation
    """
    values = dict(keys)
    values.update(extra or {})
    values.update({
        "seen_date": seen_date_for(observed_at),
        "first_seen_run_id": run_id,
        "last_seen_run_id": run_id,
        "times_seen_in_day": 1,
    })
    insert_or_increment(
        db.session,
        model,
        values,
        increment="times_seen_in_day",
        overwrite=["last_seen_run_id", *overwrite],
    )


def record_keyword_ad(app_slug: str, keyword_id: int, run_id: str, observed_at=None) -> None:
    record_sighting(
        KeywordAdSighting,
        {"app_slug": app_slug, "keyword_id": keyword_id},
        run_id,
        observed_at,
    )


def record_category_ad(app_slug: str, category_slug: str, run_id: str, observed_at=None) -> None:
    record_sighting(
        CategoryAdSighting,
        {"app_slug": app_slug, "category_slug": category_slug},
        run_id,
        observed_at,
    )


def record_featured(
    app_slug: str,
    surface: str,
    surface_detail: str,
    section_handle: str,
    section_title: str,
    position: Optional[int],
    run_id: str,
    observed_at=None,
) -> None:
    record_sighting(
        FeaturedAppSighting,
        {"app_slug": app_slug, "section_handle": section_handle, "surface_detail": surface_detail},
        run_id,
        observed_at,
        extra={"surface": surface, "section_title": section_title, "position": position},
        overwrite=["position", "section_title"],
    )


def record_similar_app(app_slug: str, similar_app_slug: str, position: Optional[int], run_id: str, observed_at=None) -> None:
    record_sighting(
        SimilarAppSighting,
        {"app_slug": app_slug, "similar_app_slug": similar_app_slug},
        run_id,
        observed_at,
        extra={"position": position},
        overwrite=["position"],
    )
