"""
Daily ranking digest.

For an account, compares today's and yesterday's keyword positions of its
tracked and competitor apps on its tracked keywords and mails the changes to
its users. Positions are the latest non-null ranking within each UTC day.

Modes (run_daily_digest):
    user_id    - one user (manual trigger)
    account_id - every user of one account
    neither    - every digest-enabled user of a non-suspended account
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from jinja2 import Environment, select_autoescape

from models.account import (
    Account,
    AccountCompetitorApp,
    AccountTrackedApp,
    AccountTrackedKeyword,
    User,
)
from models.catalog import App, AppKeywordRanking, AppSnapshot, TrackedKeyword
from models.database import db, utcnow
from services.mailer import MailerError

logger = logging.getLogger(__name__)

IMPROVED = "improved"
DROPPED = "dropped"
NEW_ENTRY = "new_entry"
DROPPED_OUT = "dropped_out"

CHANGE_ORDER = {IMPROVED: 0, NEW_ENTRY: 1, DROPPED: 2, DROPPED_OUT: 3}


@dataclass
class RankingChange:
    keyword: str
    keyword_slug: str
    app_slug: str
    app_name: str
    is_tracked: bool
    is_competitor: bool
    yesterday_position: Optional[int]
    today_position: Optional[int]
    change: Optional[int]  # positive = moved up
    type: str


@dataclass
class CompetitorSummary:
    app_slug: str
    app_name: str
    today_rating: Optional[float]
    yesterday_rating: Optional[float]
    rating_change: Optional[float]
    today_reviews: Optional[int]
    yesterday_reviews: Optional[int]
    reviews_change: Optional[int]


@dataclass
class DigestData:
    account_name: str
    date: str
    ranking_changes: List[RankingChange] = field(default_factory=list)
    competitor_summaries: List[CompetitorSummary] = field(default_factory=list)

    def count(self, change_type: str) -> int:
        return sum(1 for c in self.ranking_changes if c.type == change_type)

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "improved": self.count(IMPROVED),
            "dropped": self.count(DROPPED),
            "new_entries": self.count(NEW_ENTRY),
            "dropped_out": self.count(DROPPED_OUT),
        }


# =============================================================================
# CLASSIFICATION
# =============================================================================

def classify_change(yesterday: Optional[int], today: Optional[int]) -> Tuple[Optional[str], Optional[int]]:
    """(type, change) for a pair of positions; type is None when unchanged."""
    if today is not None and yesterday is not None:
        change = yesterday - today
        if change > 0:
            return IMPROVED, change
        if change < 0:
            return DROPPED, change
        return None, 0
    if today is not None:
        return NEW_ENTRY, None
    return DROPPED_OUT, None


def _day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return today_start - timedelta(days=1), today_start


def _latest_positions(keyword_ids, slugs, start, end=None) -> Dict[Tuple[str, int], int]:
    query = AppKeywordRanking.query.filter(
        AppKeywordRanking.keyword_id.in_(keyword_ids),
        AppKeywordRanking.app_slug.in_(slugs),
        AppKeywordRanking.scraped_at >= start,
    )
    if end is not None:
        query = query.filter(AppKeywordRanking.scraped_at < end)

    positions: Dict[Tuple[str, int], int] = {}
    for row in query.order_by(AppKeywordRanking.scraped_at.desc()).all():
        key = (row.app_slug, row.keyword_id)
        if key not in positions and row.position is not None:
            positions[key] = row.position
    return positions


def _snapshot_in(slug: str, start: datetime, end: Optional[datetime] = None):
    query = AppSnapshot.query.filter(AppSnapshot.app_slug == slug, AppSnapshot.scraped_at >= start)
    if end is not None:
        query = query.filter(AppSnapshot.scraped_at < end)
    return query.order_by(AppSnapshot.scraped_at.desc()).first()


def _competitor_summary(slug: str, name: str, yesterday_start: datetime, today_start: datetime) -> CompetitorSummary:
    today = _snapshot_in(slug, today_start)
    yesterday = _snapshot_in(slug, yesterday_start, today_start)

    today_rating = float(today.average_rating) if today and today.average_rating is not None else None
    yesterday_rating = (
        float(yesterday.average_rating) if yesterday and yesterday.average_rating is not None else None
    )
    today_reviews = today.rating_count if today else None
    yesterday_reviews = yesterday.rating_count if yesterday else None

    return CompetitorSummary(
        app_slug=slug,
        app_name=name,
        today_rating=today_rating,
        yesterday_rating=yesterday_rating,
        rating_change=(
            round(today_rating - yesterday_rating, 2)
            if today_rating is not None and yesterday_rating is not None else None
        ),
        today_reviews=today_reviews,
        yesterday_reviews=yesterday_reviews,
        reviews_change=(
            today_reviews - yesterday_reviews
            if today_reviews is not None and yesterday_reviews is not None else None
        ),
    )


# =============================================================================
# BUILD
# =============================================================================

def build_digest_for_account(account_id: str, now: Optional[datetime] = None) -> Optional[DigestData]:
    """None when the account has nothing to report."""
    account = db.session.get(Account, account_id)
    if account is None:
        return None

    keywords = (
        db.session.query(TrackedKeyword)
        .join(AccountTrackedKeyword, AccountTrackedKeyword.keyword_id == TrackedKeyword.id)
        .filter(AccountTrackedKeyword.account_id == account_id)
        .all()
    )
    if not keywords:
        return None

    tracked = {r.app_slug for r in AccountTrackedApp.query.filter_by(account_id=account_id)}
    competitors = {r.app_slug for r in AccountCompetitorApp.query.filter_by(account_id=account_id)}
    relevant = tracked | competitors
    if not relevant:
        return None

    now = now or utcnow()
    yesterday_start, today_start = _day_bounds(now)
    keyword_by_id = {k.id: k for k in keywords}

    today_positions = _latest_positions(list(keyword_by_id), list(relevant), today_start)
    yesterday_positions = _latest_positions(list(keyword_by_id), list(relevant), yesterday_start, today_start)
    names = {a.slug: a.name for a in App.query.filter(App.slug.in_(list(relevant)))}

    changes = []
    for key in set(today_positions) | set(yesterday_positions):
        slug, keyword_id = key
        change_type, change = classify_change(yesterday_positions.get(key), today_positions.get(key))
        if change_type is None:
            continue
        keyword = keyword_by_id[keyword_id]
        changes.append(RankingChange(
            keyword=keyword.keyword,
            keyword_slug=keyword.slug,
            app_slug=slug,
            app_name=names.get(slug, slug),
            is_tracked=slug in tracked,
            is_competitor=slug in competitors,
            yesterday_position=yesterday_positions.get(key),
            today_position=today_positions.get(key),
            change=change,
            type=change_type,
        ))
    changes.sort(key=lambda c: (CHANGE_ORDER[c.type], c.keyword, c.app_slug))

    summaries = [
        _competitor_summary(slug, names.get(slug, slug), yesterday_start, today_start)
        for slug in sorted(competitors)
    ]

    if not changes and all(s.rating_change is None and s.reviews_change is None for s in summaries):
        return None

    return DigestData(
        account_name=account.name,
        date=now.strftime("%Y-%m-%d"),
        ranking_changes=changes,
        competitor_summaries=summaries,
    )


# =============================================================================
# RENDER
# =============================================================================

_env = Environment(autoescape=select_autoescape(default_for_string=True))

DIGEST_TEMPLATE = _env.from_string("""\
<!DOCTYPE html>
<html>
<body style="font-family:sans-serif;color:#111827">
  <h2>Ranking Report for {{ data.account_name }}</h2>
  <p>{{ data.date }}</p>
  <p>
    {% if summary.improved %}<span style="color:#16a34a">{{ summary.improved }} improved</span> {% endif %}
    {% if summary.dropped %}<span style="color:#dc2626">{{ summary.dropped }} dropped</span> {% endif %}
    {% if summary.new_entries %}<span style="color:#2563eb">{{ summary.new_entries }} new</span> {% endif %}
    {% if summary.dropped_out %}<span style="color:#9ca3af">{{ summary.dropped_out }} dropped out</span>{% endif %}
  </p>
  {% if data.ranking_changes %}
  <table cellpadding="6">
    <tr><th align="left">Keyword</th><th align="left">App</th><th>Yesterday</th><th>Today</th><th>Change</th></tr>
    {% for c in data.ranking_changes %}
    <tr>
      <td>{{ c.keyword }}</td>
      <td>{{ c.app_name }}{% if c.is_tracked %} (yours){% endif %}</td>
      <td align="center">{{ c.yesterday_position if c.yesterday_position is not none else "-" }}</td>
      <td align="center">{{ c.today_position if c.today_position is not none else "Out" }}</td>
      <td align="center">
        {%- if c.type == "new_entry" %}New
        {%- elif c.type == "dropped_out" %}Out
        {%- elif c.change > 0 %}+{{ c.change }}
        {%- else %}{{ c.change }}{% endif -%}
      </td>
    </tr>
    {% endfor %}
  </table>
  {% endif %}
  {% if data.competitor_summaries %}
  <h3>Competitors</h3>
  <ul>
    {% for s in data.competitor_summaries %}
    <li>{{ s.app_name }}:
      rating {{ s.today_rating if s.today_rating is not none else "-" }}
      {% if s.rating_change %}({{ "%+.2f"|format(s.rating_change) }}){% endif %},
      reviews {{ s.today_reviews if s.today_reviews is not none else "-" }}
      {% if s.reviews_change %}({{ "%+d"|format(s.reviews_change) }}){% endif %}
    </li>
    {% endfor %}
  </ul>
  {% endif %}
</body>
</html>
""")


def render_digest_html(data: DigestData) -> str:
    return DIGEST_TEMPLATE.render(data=data, summary=data.summary)


def digest_subject(data: DigestData) -> str:
    summary = data.summary
    parts = []
    if summary["improved"]:
        parts.append(f"{summary['improved']} improved")
    if summary["dropped"]:
        parts.append(f"{summary['dropped']} dropped")
    if summary["new_entries"]:
        parts.append(f"{summary['new_entries']} new")
    detail = f" - {', '.join(parts)}" if parts else ""
    return f"Ranking Report {data.date}{detail}"


# =============================================================================
# SEND
# =============================================================================

def _send_to_users(mailer, users: List[User], data: DigestData, stats: Dict[str, int]) -> None:
    subject = digest_subject(data)
    html = render_digest_html(data)
    for user in users:
        try:
            mailer.send(user.email, subject, html)
        except MailerError as e:
            stats["failed"] += 1
            logger.error("failed to send digest email=%s err=%s", user.email, e)
            continue
        user.last_digest_sent_at = utcnow()
        db.session.commit()
        stats["sent"] += 1


def run_daily_digest(
    mailer,
    user_id: Optional[str] = None,
    account_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    stats = {"sent": 0, "failed": 0, "skipped_accounts": 0}

    if user_id:
        user = db.session.get(User, user_id)
        if user is None:
            logger.warning("user not found for manual digest user_id=%s", user_id)
            return stats
        groups = {user.account_id: [user]}
    elif account_id:
        users = User.query.filter_by(account_id=account_id).all()
        if not users:
            logger.warning("no users found for account digest account_id=%s", account_id)
            return stats
        groups = {account_id: users}
    else:
        recipients = (
            User.query.join(Account, Account.id == User.account_id)
            .filter(User.email_digest_enabled.is_(True), Account.is_suspended.is_(False))
            .all()
        )
        logger.info("digest recipients found count=%d", len(recipients))
        groups: Dict[str, List[User]] = {}
        for user in recipients:
            groups.setdefault(user.account_id, []).append(user)

    for group_account_id, users in groups.items():
        data = build_digest_for_account(group_account_id, now)
        if data is None:
            stats["skipped_accounts"] += 1
            logger.info("no digest data for account account_id=%s", group_account_id)
            continue
        _send_to_users(mailer, users, data, stats)

    logger.info(
        "digest completed sent=%d failed=%d skipped_accounts=%d",
        stats["sent"], stats["failed"], stats["skipped_accounts"],
    )
    return stats
