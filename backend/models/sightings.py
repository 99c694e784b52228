"""
Sighting Models - Day-granularity observation counters.

One row per (subject, context, seen_date). The first observation of the day
inserts the row; every later observation that day increments
times_seen_in_day and overwrites last_seen_run_id. first_seen_run_id is
never rewritten.
"""
from sqlalchemy.orm import declared_attr

from models.database import db


class SightingMixin:
    seen_date = db.Column(db.Date, nullable=False)
    times_seen_in_day = db.Column(db.SmallInteger, nullable=False, default=1)

    # FK columns on a mixin must be declared_attr so each table gets its own copy
    @declared_attr
    def first_seen_run_id(cls):
        return db.Column(db.String(36), db.ForeignKey("scrape_runs.id"), nullable=False)

    @declared_attr
    def last_seen_run_id(cls):
        return db.Column(db.String(36), db.ForeignKey("scrape_runs.id"), nullable=False)


class KeywordAdSighting(SightingMixin, db.Model):
    __tablename__ = "keyword_ad_sightings"

    # Columns forming the unique daily key (subject, context, day)
    UNIQUE_KEY = ("app_slug", "keyword_id", "seen_date")

    id = db.Column(db.Integer, primary_key=True)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    keyword_id = db.Column(db.Integer, db.ForeignKey("tracked_keywords.id"), nullable=False)

    __table_args__ = (
        db.UniqueConstraint(*UNIQUE_KEY, name="uq_kw_ad_sightings"),
        db.Index("ix_kw_ad_sightings_kw_date", "keyword_id", "seen_date"),
        db.Index("ix_kw_ad_sightings_app_date", "app_slug", "seen_date"),
    )


class CategoryAdSighting(SightingMixin, db.Model):
    __tablename__ = "category_ad_sightings"

    UNIQUE_KEY = ("app_slug", "category_slug", "seen_date")

    id = db.Column(db.Integer, primary_key=True)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    category_slug = db.Column(db.String(255), nullable=False)

    __table_args__ = (
        db.UniqueConstraint(*UNIQUE_KEY, name="uq_cat_ad_sightings"),
        db.Index("ix_cat_ad_sightings_cat_date", "category_slug", "seen_date"),
    )


class FeaturedAppSighting(SightingMixin, db.Model):
    __tablename__ = "featured_app_sightings"

    UNIQUE_KEY = ("app_slug", "section_handle", "surface_detail", "seen_date")

    id = db.Column(db.Integer, primary_key=True)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    surface = db.Column(db.String(50), nullable=False)
    surface_detail = db.Column(db.String(255), nullable=False)
    section_handle = db.Column(db.String(255), nullable=False)
    section_title = db.Column(db.String(500))
    position = db.Column(db.SmallInteger)

    __table_args__ = (
        db.UniqueConstraint(*UNIQUE_KEY, name="uq_featured_sightings"),
        db.Index("ix_featured_surface_date", "surface", "surface_detail", "seen_date"),
        db.Index("ix_featured_app_date", "app_slug", "seen_date"),
    )


class SimilarAppSighting(SightingMixin, db.Model):
    __tablename__ = "similar_app_sightings"

    UNIQUE_KEY = ("app_slug", "similar_app_slug", "seen_date")

    id = db.Column(db.Integer, primary_key=True)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    similar_app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    position = db.Column(db.SmallInteger)

    __table_args__ = (
        db.UniqueConstraint(*UNIQUE_KEY, name="uq_similar_sightings"),
        db.Index("ix_similar_sightings_app_date", "app_slug", "seen_date"),
    )
