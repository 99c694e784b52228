"""
Snapshot Store & Change Detector.

Snapshots are append-only: record_snapshot() always inserts, never updates.
"Latest" is the row with the greatest scraped_at for an entity key (id breaks
ties between rows written in the same instant).

detect_app_changes() compares the newest app snapshot with the one before it
and writes one app_field_changes row per tracked field that differs. The
first snapshot of an app only establishes the baseline. Callers invoke it
exactly once per new snapshot.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.catalog import AppFieldChange, AppSnapshot
from models.database import db, utcnow

logger = logging.getLogger(__name__)

# Fields compared between consecutive app snapshots. Set-valued fields compare
# order-insensitively; everything else compares exactly.
TRACKED_APP_FIELDS = [
    "name",
    "app_introduction",
    "app_details",
    "features",
    "seo_title",
    "seo_meta_description",
    "app_card_subtitle",
]
SET_FIELDS = {"features"}


@dataclass
class FieldChange:
    """One field whose value differs between two snapshots."""
    field_name: str
    old_value: Any
    new_value: Any

    def serialized(self, value: Any) -> Optional[str]:
        # Lists are stored whole; consumers compute added/removed themselves
        if value is None:
            return None
        if isinstance(value, (list, dict)):
            return json.dumps(value)
        return str(value)


def record_snapshot(model, scraped_at: Optional[datetime] = None, **fields):
    """Insert one immutable snapshot row of `model`."""
    snapshot = model(scraped_at=scraped_at or utcnow(), **fields)
    db.session.add(snapshot)
    db.session.flush()
    return snapshot


def _ordered(model, key_column: str, key):
    column = getattr(model, key_column)
    return model.query.filter(column == key).order_by(model.scraped_at.desc(), model.id.desc())


def latest_snapshot(model, key_column: str, key):
    return _ordered(model, key_column, key).first()


def latest_two_snapshots(model, key_column: str, key) -> List[Any]:
    return _ordered(model, key_column, key).limit(2).all()


def _values_differ(field_name: str, old, new) -> bool:
    if field_name in SET_FIELDS:
        return set(old or []) != set(new or [])
    return (old or None) != (new or None)


def diff_snapshots(previous, current, fields: List[str] = None) -> List[FieldChange]:
    """Pairwise comparison of tracked fields between two snapshot rows (or dicts)."""
    changes = []
    for field_name in fields or TRACKED_APP_FIELDS:
        old = _field(previous, field_name)
        new = _field(current, field_name)
        if _values_differ(field_name, old, new):
            changes.append(FieldChange(field_name, old, new))
    return changes


def _field(row, name: str):
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def detect_app_changes(app_slug: str, run_id: str) -> List[AppFieldChange]:
    snapshots = latest_two_snapshots(AppSnapshot, "app_slug", app_slug)
    if len(snapshots) < 2:
        return []

    current, previous = snapshots
    detected_at = utcnow()
    rows = []
    for change in diff_snapshots(previous, current):
        row = AppFieldChange(
            app_slug=app_slug,
            field=change.field_name,
            old_value=change.serialized(change.old_value),
            new_value=change.serialized(change.new_value),
            detected_at=detected_at,
            scrape_run_id=run_id,
        )
        db.session.add(row)
        rows.append(row)

    if rows:
        logger.info(
            "app fields changed slug=%s fields=%s",
            app_slug, ",".join(r.field for r in rows),
        )
    return rows


def snapshot_fields(record) -> Dict[str, Any]:
    """AppPageRecord -> AppSnapshot column values."""
    return {
        "name": record.app_name,
        "app_introduction": record.app_introduction,
        "app_details": record.app_details,
        "seo_title": record.seo_title,
        "seo_meta_description": record.seo_meta_description,
        "app_card_subtitle": record.app_card_subtitle,
        "features": list(record.features),
        "pricing": record.pricing,
        "average_rating": record.average_rating,
        "rating_count": record.rating_count,
        "developer": record.developer,
        "demo_store_url": record.demo_store_url,
        "languages": list(record.languages),
        "integrations": list(record.integrations),
        "categories": list(record.categories),
        "pricing_plans": list(record.pricing_plans),
    }
