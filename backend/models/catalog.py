"""
Catalog Models - Apps, categories and keywords, plus their append-only snapshots.

Master rows (apps, categories, tracked_keywords) are upserted; snapshot and
ranking rows are insert-only. "Latest" for an entity is the snapshot with the
greatest scraped_at.
"""
import re

from models.database import db, utcnow


class App(db.Model):
    __tablename__ = "apps"

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.Text, nullable=False)
    is_tracked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    is_built_for_shopify = db.Column(db.Boolean, nullable=False, default=False)
    icon_url = db.Column(db.Text)
    app_card_subtitle = db.Column(db.Text)
    average_rating = db.Column(db.Numeric(3, 2))
    rating_count = db.Column(db.Integer)
    pricing_hint = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<App {self.slug}>"


class AppSnapshot(db.Model):
    __tablename__ = "app_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    scrape_run_id = db.Column(db.String(36), db.ForeignKey("scrape_runs.id"), nullable=False)
    scraped_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    name = db.Column(db.Text)
    app_introduction = db.Column(db.Text, nullable=False, default="")
    app_details = db.Column(db.Text, nullable=False, default="")
    seo_title = db.Column(db.Text, nullable=False, default="")
    seo_meta_description = db.Column(db.Text, nullable=False, default="")
    app_card_subtitle = db.Column(db.Text)
    features = db.Column(db.JSON, nullable=False, default=list)
    pricing = db.Column(db.Text, nullable=False, default="")
    average_rating = db.Column(db.Numeric(3, 2))
    rating_count = db.Column(db.Integer)
    developer = db.Column(db.JSON)
    demo_store_url = db.Column(db.Text)
    languages = db.Column(db.JSON, nullable=False, default=list)
    integrations = db.Column(db.JSON, nullable=False, default=list)
    categories = db.Column(db.JSON, nullable=False, default=list)
    pricing_plans = db.Column(db.JSON, nullable=False, default=list)

    __table_args__ = (
        db.Index("ix_app_snapshots_slug_date", "app_slug", "scraped_at"),
    )


class AppFieldChange(db.Model):
    __tablename__ = "app_field_changes"

    id = db.Column(db.Integer, primary_key=True)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    field = db.Column(db.String(50), nullable=False)
    old_value = db.Column(db.Text)
    new_value = db.Column(db.Text)
    detected_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    scrape_run_id = db.Column(db.String(36), db.ForeignKey("scrape_runs.id"), nullable=False)

    __table_args__ = (
        db.Index("ix_app_field_changes_slug", "app_slug", "detected_at"),
    )

    def to_dict(self) -> dict:
        return {
            "app_slug": self.app_slug,
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "detected_at": self.detected_at.isoformat() if self.detected_at else None,
            "scrape_run_id": self.scrape_run_id,
        }


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(255), unique=True, nullable=False, index=True)
    title = db.Column(db.String(500), nullable=False)
    url = db.Column(db.String(500), nullable=False)
    parent_slug = db.Column(db.String(255))
    category_level = db.Column(db.SmallInteger, nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    is_tracked = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class CategorySnapshot(db.Model):
    __tablename__ = "category_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    category_slug = db.Column(db.String(255), db.ForeignKey("categories.slug"), nullable=False)
    scrape_run_id = db.Column(db.String(36), db.ForeignKey("scrape_runs.id"), nullable=False)
    scraped_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    data_source_url = db.Column(db.String(500), nullable=False)
    app_count = db.Column(db.Integer)
    first_page_metrics = db.Column(db.JSON)
    first_page_apps = db.Column(db.JSON, nullable=False, default=list)
    breadcrumb = db.Column(db.Text, nullable=False, default="")

    __table_args__ = (
        db.Index("ix_category_snapshots_slug_date", "category_slug", "scraped_at"),
    )


class AppCategoryRanking(db.Model):
    __tablename__ = "app_category_rankings"

    id = db.Column(db.Integer, primary_key=True)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    category_slug = db.Column(db.String(255), nullable=False)
    scrape_run_id = db.Column(db.String(36), db.ForeignKey("scrape_runs.id"), nullable=False)
    scraped_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    position = db.Column(db.SmallInteger, nullable=False)

    __table_args__ = (
        db.Index("ix_app_cat_rank", "app_slug", "category_slug", "scraped_at"),
    )


def keyword_to_slug(keyword: str) -> str:
    """URL-safe slug for a keyword ("Product Reviews!" -> "product-reviews")."""
    slug = re.sub(r"[^a-z0-9\s-]", "", keyword.lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


class TrackedKeyword(db.Model):
    __tablename__ = "tracked_keywords"

    id = db.Column(db.Integer, primary_key=True)
    keyword = db.Column(db.String(255), unique=True, nullable=False)
    slug = db.Column(db.String(255), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class KeywordSnapshot(db.Model):
    __tablename__ = "keyword_snapshots"

    id = db.Column(db.Integer, primary_key=True)
    keyword_id = db.Column(db.Integer, db.ForeignKey("tracked_keywords.id"), nullable=False)
    scrape_run_id = db.Column(db.String(36), db.ForeignKey("scrape_runs.id"), nullable=False)
    scraped_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    total_results = db.Column(db.Integer)
    results = db.Column(db.JSON, nullable=False, default=list)

    __table_args__ = (
        db.Index("ix_keyword_snapshots_kw_date", "keyword_id", "scraped_at"),
    )


class AppKeywordRanking(db.Model):
    __tablename__ = "app_keyword_rankings"

    id = db.Column(db.Integer, primary_key=True)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    keyword_id = db.Column(db.Integer, db.ForeignKey("tracked_keywords.id"), nullable=False)
    scrape_run_id = db.Column(db.String(36), db.ForeignKey("scrape_runs.id"), nullable=False)
    scraped_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    position = db.Column(db.SmallInteger)

    __table_args__ = (
        db.Index("ix_app_kw_rank", "app_slug", "keyword_id", "scraped_at"),
    )


class KeywordAutoSuggestion(db.Model):
    __tablename__ = "keyword_auto_suggestions"

    id = db.Column(db.Integer, primary_key=True)
    keyword_id = db.Column(
        db.Integer, db.ForeignKey("tracked_keywords.id"), nullable=False, unique=True
    )
    suggestions = db.Column(db.JSON, nullable=False, default=list)
    scraped_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    scrape_run_id = db.Column(db.String(36), db.ForeignKey("scrape_runs.id"))


class Review(db.Model):
    __tablename__ = "reviews"

    id = db.Column(db.Integer, primary_key=True)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    review_date = db.Column(db.Date, nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    reviewer_name = db.Column(db.String(500), nullable=False)
    reviewer_country = db.Column(db.String(255))
    duration_using_app = db.Column(db.String(255))
    rating = db.Column(db.SmallInteger, nullable=False)
    developer_reply_date = db.Column(db.Date)
    developer_reply_text = db.Column(db.Text)
    first_seen_run_id = db.Column(db.String(36), db.ForeignKey("scrape_runs.id"))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint(
            "app_slug", "reviewer_name", "review_date", "rating",
            name="uq_reviews_dedup",
        ),
        db.Index("ix_reviews_app_date", "app_slug", "review_date"),
    )
