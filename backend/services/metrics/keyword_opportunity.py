"""
Keyword Opportunity Score - Pure Functions

Estimates how winnable the first results page of a keyword search is for a
new entrant, as a 0-100 composite of five sub-scores in [0, 1]:

    room      - little review mass held by the top 8 organic results
    demand    - many total results for the query
    organic   - few sponsored slots competing with organic ones
    maturity  - few first-page apps with 1000+ reviews
    quality   - few built-for-platform badges and a beatable top-4 rating

Input apps are dicts shaped like a stored keyword snapshot result
(app_slug, name, logo_url, average_rating, rating_count, is_sponsored,
is_built_in, is_built_for_shopify) or AppCard instances.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# =============================================================================
# WEIGHTS AND CAPS
# =============================================================================

OPPORTUNITY_WEIGHTS = {
    'room': 0.35,
    'demand': 0.20,
    'organic': 0.15,
    'maturity': 0.10,
    'quality': 0.20,
}

ROOM_CAP = 20_000
DEMAND_CAP = 1_000
MATURITY_APP_CAP = 12
PAGE_SIZE = 24
RATING_FLOOR = 3.5
RATING_CEIL = 5.0


@dataclass
class KeywordOpportunity:
    opportunity_score: int
    scores: Dict[str, float]
    stats: Dict[str, Any]
    top_apps: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'opportunity_score': self.opportunity_score,
            'scores': self.scores,
            'stats': self.stats,
            'top_apps': self.top_apps,
        }


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _get(app, key: str, default=None):
    if isinstance(app, dict):
        return app.get(key, default)
    return getattr(app, key, default)


def _reviews(app) -> int:
    return _get(app, 'rating_count') or 0


def _rating(app) -> float:
    return float(_get(app, 'average_rating') or 0)


def _avg_rating(apps) -> Optional[float]:
    rated = [_rating(a) for a in apps if _rating(a) > 0]
    return sum(rated) / len(rated) if rated else None


def compute_keyword_opportunity(results: List[Any], total_results: Optional[int]) -> KeywordOpportunity:
    """
    Args:
        results: search results in page order, sponsored and built-in included
        total_results: result count reported for the query (None if unknown)
    """
    organic = [r for r in results if not _get(r, 'is_sponsored') and not _get(r, 'is_built_in')]
    sponsored_count = sum(1 for r in results if _get(r, 'is_sponsored'))

    first_page = organic[:PAGE_SIZE]
    top4 = organic[:4]
    top8 = organic[:8]
    top1 = organic[0] if organic else None

    first_page_total_reviews = sum(_reviews(a) for a in first_page)
    top4_total_reviews = sum(_reviews(a) for a in top4)
    top8_total_reviews = sum(_reviews(a) for a in top8)
    top1_reviews = _reviews(top1) if top1 is not None else 0

    top4_avg_rating = _avg_rating(top4)

    bfs_count = sum(1 for a in first_page if _get(a, 'is_built_for_shopify'))
    count_1000 = sum(1 for a in first_page if _reviews(a) >= 1000)
    count_100 = sum(1 for a in first_page if _reviews(a) >= 100)

    safe_total = total_results or 0

    stats = {
        'total_results': safe_total,
        'organic_count': len(first_page),
        'sponsored_count': sponsored_count,
        'bfs_count': bfs_count,
        'count_1000': count_1000,
        'count_100': count_100,
        'top1_reviews': top1_reviews,
        'top4_total_reviews': top4_total_reviews,
        'top4_avg_rating': top4_avg_rating,
        'first_page_total_reviews': first_page_total_reviews,
        'first_page_avg_rating': _avg_rating(first_page),
        'top1_review_share': top1_reviews / first_page_total_reviews if first_page_total_reviews else 0,
        'top4_review_share': top4_total_reviews / first_page_total_reviews if first_page_total_reviews else 0,
    }

    bfs_factor = clamp01(1 - bfs_count / PAGE_SIZE)
    if top4_avg_rating is None:
        rating_factor = 0.5
    else:
        rating_factor = clamp01(1 - (top4_avg_rating - RATING_FLOOR) / (RATING_CEIL - RATING_FLOOR))

    scores = {
        'room': clamp01(1 - top8_total_reviews / ROOM_CAP),
        'demand': clamp01(safe_total / DEMAND_CAP),
        'organic': clamp01((PAGE_SIZE - sponsored_count) / PAGE_SIZE),
        'maturity': 1 - clamp01(count_1000 / MATURITY_APP_CAP),
        'quality': clamp01(bfs_factor * rating_factor),
    }

    raw = sum(OPPORTUNITY_WEIGHTS[name] * scores[name] for name in OPPORTUNITY_WEIGHTS)
    # Half-up rounding
    opportunity_score = max(0, min(100, int(math.floor(100 * raw + 0.5))))

    top_apps = [
        {
            'slug': _get(a, 'app_slug'),
            'name': _get(a, 'name') or _get(a, 'app_name'),
            'logo_url': _get(a, 'logo_url'),
            'rating': _rating(a),
            'reviews': _reviews(a),
            'is_built_for_shopify': bool(_get(a, 'is_built_for_shopify')),
        }
        for a in top4
    ]

    return KeywordOpportunity(
        opportunity_score=opportunity_score,
        scores=scores,
        stats=stats,
        top_apps=top_apps,
    )
