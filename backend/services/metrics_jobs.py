"""
Derived-metric jobs.

Read accumulated history, run the pure scorers in services.metrics and
upsert the results. Recomputing on the same day overwrites that day's row
instead of adding another.

Each job returns its run metadata; the worker owns the ScrapeRun.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlalchemy import case, func

from db.upsert import upsert
from models.account import AccountCompetitorApp, AccountTrackedApp
from models.catalog import App, AppKeywordRanking, AppSnapshot, KeywordSnapshot, Review
from models.database import db, utcnow
from models.metrics import AppReviewMetric, AppSimilarityScore
from services.metrics.keyword_opportunity import KeywordOpportunity, compute_keyword_opportunity
from services.metrics.review_momentum import compute_momentum
from services.metrics.similarity import SimilarityInput, build_similarity_input, compute_similarity
from services.snapshot_store import latest_snapshot

logger = logging.getLogger(__name__)


# =============================================================================
# REVIEW METRICS
# =============================================================================

def review_window_counts(today=None) -> List[Tuple[str, int, int, int]]:
    """(app_slug, v7, v30, v90) for every app with a review in the last 90 days."""
    today = today or utcnow().date()
    d7 = today - timedelta(days=7)
    d30 = today - timedelta(days=30)
    d90 = today - timedelta(days=90)

    rows = (
        db.session.query(
            Review.app_slug,
            func.sum(case((Review.review_date >= d7, 1), else_=0)),
            func.sum(case((Review.review_date >= d30, 1), else_=0)),
            func.count(Review.id),
        )
        .filter(Review.review_date >= d90)
        .group_by(Review.app_slug)
        .all()
    )
    return [(slug, int(v7 or 0), int(v30 or 0), int(v90 or 0)) for slug, v7, v30, v90 in rows]


def compute_review_metrics(today=None) -> Dict[str, Any]:
    today = today or utcnow().date()

    counts = {slug: (v7, v30, v90) for slug, v7, v30, v90 in review_window_counts(today)}
    # Tracked apps without recent reviews still get a (flat) row
    for app in App.query.filter_by(is_tracked=True).all():
        counts.setdefault(app.slug, (0, 0, 0))

    computed = 0
    for slug in sorted(counts):
        v7, v30, v90 = counts[slug]
        result = compute_momentum(v7, v30, v90)
        snapshot = latest_snapshot(AppSnapshot, "app_slug", slug)

        upsert(
            db.session,
            AppReviewMetric,
            {
                "app_slug": slug,
                "computed_at": today,
                "rating_count": snapshot.rating_count if snapshot else None,
                "average_rating": snapshot.average_rating if snapshot else None,
                "v7d": result.v7d,
                "v30d": result.v30d,
                "v90d": result.v90d,
                "acc_micro": result.acc_micro,
                "acc_macro": result.acc_macro,
                "momentum": result.momentum,
            },
            update=[
                "rating_count", "average_rating", "v7d", "v30d", "v90d",
                "acc_micro", "acc_macro", "momentum",
            ],
        )
        computed += 1

    db.session.commit()
    logger.info("review metrics computed apps=%d", computed)
    return {"apps_computed": computed}


# =============================================================================
# SIMILARITY SCORES
# =============================================================================

def competitor_pairs() -> List[Tuple[str, str]]:
    """Canonical (a, b) pairs, a < b, of each account's tracked x competitor apps."""
    tracked: Dict[str, Set[str]] = {}
    for row in AccountTrackedApp.query.all():
        tracked.setdefault(row.account_id, set()).add(row.app_slug)

    pairs = set()
    for row in AccountCompetitorApp.query.all():
        for tracked_slug in tracked.get(row.account_id, ()):
            if tracked_slug == row.app_slug:
                continue
            pairs.add(tuple(sorted((tracked_slug, row.app_slug))))
    return sorted(pairs)


def _ranked_keyword_ids(slugs: Set[str]) -> Dict[str, Set[str]]:
    rows = (
        db.session.query(AppKeywordRanking.app_slug, AppKeywordRanking.keyword_id)
        .filter(AppKeywordRanking.app_slug.in_(list(slugs)))
        .filter(AppKeywordRanking.position.isnot(None))
        .distinct()
        .all()
    )
    keyword_ids: Dict[str, Set[str]] = {}
    for slug, keyword_id in rows:
        keyword_ids.setdefault(slug, set()).add(str(keyword_id))
    return keyword_ids


def similarity_input_for(slug: str, keyword_ids: Set[str]) -> SimilarityInput:
    snapshot = latest_snapshot(AppSnapshot, "app_slug", slug)
    app = App.query.filter_by(slug=slug).first()
    return build_similarity_input(
        snapshot.categories if snapshot else [],
        keyword_ids,
        app.name if app else "",
        app.app_card_subtitle if app else "",
        snapshot.app_introduction if snapshot else "",
    )


def compute_similarity_scores(today=None) -> Dict[str, Any]:
    today = today or utcnow().date()
    pairs = competitor_pairs()
    if not pairs:
        logger.info("no competitor pairs found")
        return {"pairs_computed": 0}

    slugs = {slug for pair in pairs for slug in pair}
    keyword_ids = _ranked_keyword_ids(slugs)
    inputs = {slug: similarity_input_for(slug, keyword_ids.get(slug, set())) for slug in slugs}

    for slug_a, slug_b in pairs:
        scores = compute_similarity(inputs[slug_a], inputs[slug_b]).rounded(4)
        upsert(
            db.session,
            AppSimilarityScore,
            {
                "app_slug_a": slug_a,
                "app_slug_b": slug_b,
                "overall_score": scores["overall"],
                "category_score": scores["category"],
                "feature_score": scores["feature"],
                "keyword_score": scores["keyword"],
                "text_score": scores["text"],
                "computed_at": today,
            },
            update=[
                "overall_score", "category_score", "feature_score",
                "keyword_score", "text_score", "computed_at",
            ],
        )

    db.session.commit()
    logger.info("similarity scores computed pairs=%d", len(pairs))
    return {"pairs_computed": len(pairs)}


# =============================================================================
# KEYWORD OPPORTUNITY
# =============================================================================

def keyword_opportunity(keyword_id: int) -> Optional[KeywordOpportunity]:
    """Score the latest stored search results of a keyword (None if never scraped)."""
    snapshot = latest_snapshot(KeywordSnapshot, "keyword_id", keyword_id)
    if snapshot is None:
        return None
    return compute_keyword_opportunity(snapshot.results or [], snapshot.total_results)
