"""
Tests for the pure metric scorers (momentum, keyword opportunity, similarity).

No database or network: every scorer is called with literal inputs.
"""

import pytest

from services.metrics.keyword_opportunity import (
    OPPORTUNITY_WEIGHTS,
    clamp01,
    compute_keyword_opportunity,
)
from services.metrics.review_momentum import Momentum, compute_momentum, round2
from services.metrics.similarity import (
    SIMILARITY_WEIGHTS,
    SimilarityInput,
    build_similarity_input,
    compute_similarity,
    extract_category_slugs,
    extract_feature_handles,
    jaccard,
    tokenize,
)


def _app(slug, reviews=0, rating=None, sponsored=False, built_in=False, bfs=False):
    return {
        "app_slug": slug,
        "name": slug.title(),
        "rating_count": reviews,
        "average_rating": rating,
        "is_sponsored": sponsored,
        "is_built_in": built_in,
        "is_built_for_shopify": bfs,
    }


# =============================================================================
# Review Momentum
# =============================================================================

class TestReviewMomentum:

    def test_no_recent_reviews_is_flat(self):
        assert compute_momentum(0, 0, 0).momentum == Momentum.FLAT

    def test_flat_even_with_older_reviews(self):
        assert compute_momentum(0, 0, 30).momentum == Momentum.FLAT

    def test_week_far_above_monthly_rate_is_spike(self):
        result = compute_momentum(50, 40, 60)
        assert result.momentum == Momentum.SPIKE
        assert result.acc_micro == 40.67
        assert result.acc_macro == 20.0

    def test_both_accelerations_positive_is_accelerating(self):
        result = compute_momentum(12, 45, 120)
        assert result.acc_micro == 1.5
        assert result.acc_macro == 5.0
        assert result.momentum == Momentum.ACCELERATING

    def test_negative_macro_is_slowing(self):
        result = compute_momentum(10, 30, 150)
        assert result.acc_macro < 0
        assert result.momentum == Momentum.SLOWING

    def test_zero_macro_is_stable(self):
        # 40 in 30 days against 120 in 90 days: monthly pace unchanged
        result = compute_momentum(10, 40, 120)
        assert result.acc_macro == 0
        assert result.acc_micro > 0
        assert result.momentum == Momentum.STABLE

    def test_counts_echoed(self):
        result = compute_momentum(3, 9, 27)
        assert (result.v7d, result.v30d, result.v90d) == (3, 9, 27)

    @pytest.mark.parametrize("value,expected", [
        (0.125, 0.13),
        (1.375, 1.38),
        (-0.125, -0.12),
        (0.0, 0.0),
    ])
    def test_round2_is_half_up(self, value, expected):
        assert round2(value) == pytest.approx(expected)


# =============================================================================
# Keyword Opportunity
# =============================================================================

class TestKeywordOpportunity:

    def test_empty_results_stay_in_bounds(self):
        result = compute_keyword_opportunity([], None)
        assert 0 <= result.opportunity_score <= 100
        for value in result.scores.values():
            assert 0.0 <= value <= 1.0
        assert result.stats["organic_count"] == 0
        assert result.stats["top1_review_share"] == 0
        assert result.top_apps == []

    def test_open_market_scores_high(self):
        results = [_app(f"app-{i}", reviews=10) for i in range(24)]
        result = compute_keyword_opportunity(results, 2000)
        assert result.opportunity_score > 70
        assert result.scores["demand"] == 1.0
        assert result.scores["organic"] == 1.0
        assert result.scores["maturity"] == 1.0
        # Unrated top 4 gets the neutral rating factor
        assert result.scores["quality"] == 0.5

    def test_saturated_market_scores_low(self):
        results = [_app(f"app-{i}", reviews=5000, rating=4.9, bfs=True) for i in range(24)]
        result = compute_keyword_opportunity(results, 50)
        assert result.opportunity_score < 20
        assert result.scores["room"] == 0.0
        assert result.scores["maturity"] == 0.0
        assert result.scores["quality"] == 0.0

    def test_sponsored_and_built_in_excluded_from_organic(self):
        results = [
            _app("ad-1", reviews=9999, sponsored=True),
            _app("native", reviews=9999, built_in=True),
            _app("first", reviews=300, rating=4.0),
            _app("second", reviews=100, rating=5.0),
            _app("ad-2", sponsored=True),
        ]
        result = compute_keyword_opportunity(results, 400)
        stats = result.stats

        assert stats["organic_count"] == 2
        assert stats["sponsored_count"] == 2
        assert stats["top1_reviews"] == 300
        assert stats["first_page_total_reviews"] == 400
        assert stats["top1_review_share"] == pytest.approx(0.75)
        assert stats["top4_review_share"] == pytest.approx(1.0)
        assert stats["count_100"] == 2
        assert stats["count_1000"] == 0
        assert stats["top4_avg_rating"] == pytest.approx(4.5)
        assert [a["slug"] for a in result.top_apps] == ["first", "second"]
        assert result.scores["organic"] == pytest.approx(22 / 24)

    def test_only_first_eight_count_for_room(self):
        results = [_app(f"small-{i}", reviews=0) for i in range(8)]
        results += [_app(f"big-{i}", reviews=50_000) for i in range(4)]
        result = compute_keyword_opportunity(results, 100)
        assert result.scores["room"] == 1.0

    def test_accepts_objects_with_attributes(self):
        class Card:
            def __init__(self, slug):
                self.app_slug = slug
                self.name = slug
                self.rating_count = 50
                self.average_rating = 4.0
                self.is_sponsored = False
                self.is_built_in = False
                self.is_built_for_shopify = False

        result = compute_keyword_opportunity([Card("a"), Card("b")], 10)
        assert result.stats["organic_count"] == 2
        assert result.top_apps[0]["slug"] == "a"

    def test_weights_sum_to_one(self):
        assert sum(OPPORTUNITY_WEIGHTS.values()) == pytest.approx(1.0)

    def test_clamp01(self):
        assert clamp01(-3) == 0.0
        assert clamp01(0.4) == 0.4
        assert clamp01(7) == 1.0

    def test_to_dict_shape(self):
        data = compute_keyword_opportunity([_app("x", reviews=5)], 5).to_dict()
        assert set(data) == {"opportunity_score", "scores", "stats", "top_apps"}


# =============================================================================
# App Similarity
# =============================================================================

CATEGORIES = [
    {
        "title": "Forms",
        "url": "https://apps.shopify.com/categories/store-design-forms/all",
        "subcategories": [
            {"title": "Form types", "features": [
                {"title": "Contact form", "feature_handle": "sd-forms-contact-form"},
                {"title": "Survey", "feature_handle": "sd-forms-survey"},
            ]},
        ],
    },
]


class TestSimilarity:

    def test_jaccard_both_empty_is_zero(self):
        assert jaccard(set(), set()) == 0.0

    @pytest.mark.parametrize("a,b", [
        ({1, 2, 3}, {2, 3, 4}),
        ({"x"}, set()),
        (set(), set()),
        ({"a", "b"}, {"a", "b"}),
    ])
    def test_jaccard_symmetric(self, a, b):
        assert jaccard(a, b) == jaccard(b, a)

    def test_jaccard_value(self):
        assert jaccard({1, 2, 3}, {2, 3, 4}) == pytest.approx(0.5)

    def test_tokenize_drops_stop_words_short_tokens_and_punctuation(self):
        tokens = tokenize("The BEST form-builder for your store, by far!")
        assert "form" in tokens
        assert "builder" in tokens
        assert "best" in tokens
        assert "the" not in tokens
        assert "for" not in tokens
        assert "by" not in tokens

    def test_extract_category_slugs_and_features(self):
        assert extract_category_slugs(CATEGORIES) == {"store-design-forms"}
        assert extract_feature_handles(CATEGORIES) == {"sd-forms-contact-form", "sd-forms-survey"}

    def test_identical_inputs_score_one(self):
        a = build_similarity_input(CATEGORIES, [1, 2], "Formful", "Drag and drop contact forms")
        b = build_similarity_input(CATEGORIES, ["1", "2"], "Formful", "Drag and drop contact forms")
        assert compute_similarity(a, b).overall == pytest.approx(1.0)

    def test_disjoint_inputs_score_zero(self):
        a = SimilarityInput({"a"}, {"f1"}, {"1"}, {"alpha"})
        b = SimilarityInput({"b"}, {"f2"}, {"2"}, {"beta"})
        assert compute_similarity(a, b).overall == 0.0

    def test_overall_is_equal_weighted(self):
        a = SimilarityInput({"a"}, {"f1"}, set(), {"alpha"})
        b = SimilarityInput({"a"}, {"f2"}, set(), {"alpha", "beta"})
        result = compute_similarity(a, b)
        assert result.category == 1.0
        assert result.feature == 0.0
        assert result.keyword == 0.0
        assert result.text == pytest.approx(0.5)
        assert result.overall == pytest.approx(0.375)
        assert result.rounded(4)["overall"] == 0.375

    def test_weights_sum_to_exactly_one(self):
        assert sum(SIMILARITY_WEIGHTS.values()) == 1.0
