"""
Account Models - The minimal account/user shape the digest and similarity jobs read.

An account tracks its own apps, its competitors' apps and a set of keywords.
Users belong to one account and opt into the daily digest email.
"""
from uuid import uuid4

from models.database import db, utcnow


def _uuid():
    return str(uuid4())


class Account(db.Model):
    __tablename__ = "accounts"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False)
    is_suspended = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    account_id = db.Column(db.String(36), db.ForeignKey("accounts.id"), nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255))
    email_digest_enabled = db.Column(db.Boolean, nullable=False, default=True)
    last_digest_sent_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class AccountTrackedApp(db.Model):
    __tablename__ = "account_tracked_apps"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    account_id = db.Column(db.String(36), db.ForeignKey("accounts.id"), nullable=False)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("account_id", "app_slug", name="uq_account_tracked_apps"),
    )


class AccountCompetitorApp(db.Model):
    __tablename__ = "account_competitor_apps"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    account_id = db.Column(db.String(36), db.ForeignKey("accounts.id"), nullable=False)
    app_slug = db.Column(db.String(255), db.ForeignKey("apps.slug"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("account_id", "app_slug", name="uq_account_competitor_apps"),
    )


class AccountTrackedKeyword(db.Model):
    __tablename__ = "account_tracked_keywords"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    account_id = db.Column(db.String(36), db.ForeignKey("accounts.id"), nullable=False)
    keyword_id = db.Column(db.Integer, db.ForeignKey("tracked_keywords.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("account_id", "keyword_id", name="uq_account_tracked_keywords"),
    )
