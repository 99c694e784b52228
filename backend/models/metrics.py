"""
Derived Metric Models.

Each table carries a uniqueness constraint so recomputation is an upsert:
- app_review_metrics: one row per (app, computed day)
- app_similarity_scores: one row per canonical pair (app_slug_a < app_slug_b)
"""
from models.database import db, utcnow


class AppReviewMetric(db.Model):
    __tablename__ = "app_review_metrics"

    UNIQUE_KEY = ("app_slug", "computed_at")

    id = db.Column(db.Integer, primary_key=True)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    computed_at = db.Column(db.Date, nullable=False)
    rating_count = db.Column(db.Integer)
    average_rating = db.Column(db.Numeric(3, 2))
    v7d = db.Column(db.Integer)
    v30d = db.Column(db.Integer)
    v90d = db.Column(db.Integer)
    acc_micro = db.Column(db.Numeric(8, 2))
    acc_macro = db.Column(db.Numeric(8, 2))
    momentum = db.Column(db.String(20))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint(*UNIQUE_KEY, name="uq_app_review_metrics"),
        db.Index("ix_app_review_metrics_date", "computed_at"),
    )


class AppSimilarityScore(db.Model):
    __tablename__ = "app_similarity_scores"

    UNIQUE_KEY = ("app_slug_a", "app_slug_b")

    id = db.Column(db.Integer, primary_key=True)
    app_slug_a = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    app_slug_b = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    overall_score = db.Column(db.Numeric(5, 4), nullable=False)
    category_score = db.Column(db.Numeric(5, 4), nullable=False)
    feature_score = db.Column(db.Numeric(5, 4), nullable=False)
    keyword_score = db.Column(db.Numeric(5, 4), nullable=False)
    text_score = db.Column(db.Numeric(5, 4), nullable=False)
    computed_at = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint(*UNIQUE_KEY, name="uq_app_similarity_scores"),
        db.Index("ix_app_similarity_scores_a", "app_slug_a"),
        db.Index("ix_app_similarity_scores_b", "app_slug_b"),
    )
