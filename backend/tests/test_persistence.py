"""
Tests for the persistence layer on SQLite:
- sighting aggregation (insert-or-increment)
- append-only snapshots and change detection
- run tracker lifecycle and listing
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from constants import RUN_COMPLETED, RUN_FAILED, RUN_PENDING, RUN_RUNNING
from db.upsert import insert_ignore, upsert
from models import (
    App,
    AppFieldChange,
    AppSnapshot,
    FeaturedAppSighting,
    KeywordAdSighting,
    Review,
    RunStateError,
    TrackedKeyword,
)
from services.run_tracker import complete_run, fail_run, list_runs, record_pending, start_run
from services.sightings import record_featured, record_keyword_ad, seen_date_for
from services.snapshot_store import (
    detect_app_changes,
    diff_snapshots,
    latest_snapshot,
    record_snapshot,
)


@pytest.fixture
def app_row(db_session):
    row = App(slug="formful", name="Formful")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture
def keyword(db_session):
    row = TrackedKeyword(keyword="form builder", slug="form-builder")
    db_session.add(row)
    db_session.commit()
    return row


# =============================================================================
# Sightings
# =============================================================================

class TestSightings:

    def test_three_sightings_same_day_collapse_to_one_row(self, db_session, app_row, keyword):
        runs = [start_run("keyword_search") for _ in range(3)]
        day = datetime(2026, 3, 1, 8, 0)

        for i, run in enumerate(runs):
            record_keyword_ad("formful", keyword.id, run.id, day + timedelta(hours=i))
        db_session.commit()
        db_session.expire_all()

        rows = KeywordAdSighting.query.all()
        assert len(rows) == 1
        assert rows[0].times_seen_in_day == 3
        assert rows[0].first_seen_run_id == runs[0].id
        assert rows[0].last_seen_run_id == runs[2].id

    def test_new_day_starts_new_row(self, db_session, app_row, keyword):
        run = start_run("keyword_search")
        record_keyword_ad("formful", keyword.id, run.id, datetime(2026, 3, 1, 23, 59))
        record_keyword_ad("formful", keyword.id, run.id, datetime(2026, 3, 2, 0, 1))
        db_session.commit()

        assert KeywordAdSighting.query.count() == 2

    def test_featured_repeat_updates_position_and_title(self, db_session, app_row):
        first, second = start_run("featured_apps"), start_run("featured_apps")
        observed = datetime(2026, 3, 1, 4, 0)

        record_featured("formful", "home", "home", "staff-picks", "Staff picks", 3, first.id, observed)
        record_featured("formful", "home", "home", "staff-picks", "Staff favourites", 1, second.id, observed)
        db_session.commit()
        db_session.expire_all()

        row = FeaturedAppSighting.query.one()
        assert row.position == 1
        assert row.section_title == "Staff favourites"
        assert row.times_seen_in_day == 2
        assert row.first_seen_run_id == first.id

    def test_seen_date_uses_utc(self):
        tz = timezone(timedelta(hours=8))
        assert str(seen_date_for(datetime(2026, 3, 2, 6, 0, tzinfo=tz))) == "2026-03-01"
        assert str(seen_date_for(datetime(2026, 3, 2, 6, 0))) == "2026-03-02"


# =============================================================================
# Upsert helpers
# =============================================================================

class TestUpsertHelpers:

    def test_insert_ignore_keeps_first_row(self, db_session, app_row):
        values = {
            "app_slug": "formful",
            "review_date": datetime(2026, 2, 1).date(),
            "reviewer_name": "Shop A",
            "rating": 5,
            "content": "original",
        }
        key = ["app_slug", "reviewer_name", "review_date", "rating"]
        assert insert_ignore(db_session, Review, values, index_elements=key) is True
        assert insert_ignore(db_session, Review, dict(values, content="edited"), index_elements=key) is False
        db_session.commit()

        assert Review.query.one().content == "original"

    def test_upsert_overwrites_named_columns(self, db_session):
        upsert(db_session, App, {"slug": "x", "name": "Old", "icon_url": "a.png"}, update=["name"], index_elements=["slug"])
        upsert(db_session, App, {"slug": "x", "name": "New", "icon_url": "b.png"}, update=["name"], index_elements=["slug"])
        db_session.commit()
        db_session.expire_all()

        row = App.query.filter_by(slug="x").one()
        assert row.name == "New"
        assert row.icon_url == "a.png"

    def test_missing_unique_key_rejected(self, db_session):
        with pytest.raises(ValueError):
            upsert(db_session, App, {"slug": "x", "name": "X"}, update=["name"])


# =============================================================================
# Snapshots and change detection
# =============================================================================

def _snapshot(run, scraped_at, **overrides):
    fields = {
        "app_slug": "formful",
        "scrape_run_id": run.id,
        "name": "Formful",
        "app_introduction": "Build forms fast",
        "app_details": "Details",
        "features": ["Drag and drop", "Templates"],
        "seo_title": "Formful",
        "seo_meta_description": "Forms",
        "app_card_subtitle": "Forms",
    }
    fields.update(overrides)
    return record_snapshot(AppSnapshot, scraped_at=scraped_at, **fields)


class TestSnapshots:

    def test_snapshots_are_append_only_and_latest_is_newest(self, db_session, app_row, run):
        first = _snapshot(run, datetime(2026, 3, 1, 0, 0))
        second = _snapshot(run, datetime(2026, 3, 1, 6, 0), name="Formful Pro")
        db_session.commit()

        assert AppSnapshot.query.count() == 2
        assert db_session.get(AppSnapshot, first.id).name == "Formful"
        assert latest_snapshot(AppSnapshot, "app_slug", "formful").id == second.id

    def test_first_snapshot_records_no_changes(self, db_session, app_row, run):
        _snapshot(run, datetime(2026, 3, 1))
        assert detect_app_changes("formful", run.id) == []

    def test_single_field_change_detected_once(self, db_session, app_row, run):
        _snapshot(run, datetime(2026, 3, 1))
        _snapshot(run, datetime(2026, 3, 2), app_introduction="Build forms faster")

        changes = detect_app_changes("formful", run.id)
        db_session.commit()

        assert [c.field for c in changes] == ["app_introduction"]
        row = AppFieldChange.query.one()
        assert row.old_value == "Build forms fast"
        assert row.new_value == "Build forms faster"
        assert row.scrape_run_id == run.id

    def test_feature_reorder_is_not_a_change(self, db_session, app_row, run):
        _snapshot(run, datetime(2026, 3, 1))
        _snapshot(run, datetime(2026, 3, 2), features=["Templates", "Drag and drop"])
        assert detect_app_changes("formful", run.id) == []

    def test_feature_list_change_stored_as_json(self, db_session, app_row, run):
        _snapshot(run, datetime(2026, 3, 1))
        _snapshot(run, datetime(2026, 3, 2), features=["Templates"])

        change = detect_app_changes("formful", run.id)[0]
        assert change.field == "features"
        assert json.loads(change.new_value) == ["Templates"]

    def test_diff_accepts_dicts(self):
        changes = diff_snapshots({"name": "A", "features": []}, {"name": "B", "features": None}, ["name", "features"])
        assert [c.field_name for c in changes] == ["name"]


# =============================================================================
# Run tracker
# =============================================================================

class TestRunTracker:

    def test_lifecycle_running_to_completed(self, db_session):
        run = start_run("reviews", triggered_by="scheduler", queue="q", job_id="9")
        assert run.status == RUN_RUNNING
        assert run.started_at is not None

        complete_run(run, {"items_scraped": 4})
        assert run.status == RUN_COMPLETED
        assert run.run_metadata["items_scraped"] == 4
        assert run.run_metadata["duration_ms"] >= 0

    def test_failed_run_keeps_error_verbatim(self, db_session):
        run = start_run("reviews")
        fail_run(run, RuntimeError("HTTP 503 for https://apps.shopify.com/x"))
        assert run.status == RUN_FAILED
        assert run.error == "HTTP 503 for https://apps.shopify.com/x"

    def test_terminal_state_cannot_transition(self, db_session):
        run = start_run("reviews")
        complete_run(run, {})
        with pytest.raises(RunStateError):
            run.fail("late error")

    def test_pending_run_stores_job_data(self, db_session):
        run = record_pending("category", "admin", "bg", {"type": "category"})
        assert run.status == RUN_PENDING
        assert run.started_at is None
        assert run.run_metadata == {"job_data": {"type": "category"}}

    def test_list_runs_newest_first_with_filter_and_limit(self, db_session):
        old = start_run("reviews")
        old.started_at = datetime(2026, 1, 1)
        new = start_run("reviews")
        new.started_at = datetime(2026, 2, 1)
        start_run("category").started_at = datetime(2026, 3, 1)
        db_session.commit()

        assert [r.id for r in list_runs("reviews")] == [new.id, old.id]
        assert len(list_runs(limit=1)) == 1
        assert list_runs(limit=1)[0].scraper_type == "category"
        # Limit is clamped to at least one row
        assert len(list_runs(limit=0)) == 1
