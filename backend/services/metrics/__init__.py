"""
Metric scorers - pure functions over historical data, no I/O.
"""
from .review_momentum import compute_momentum, Momentum, MomentumResult
from .keyword_opportunity import compute_keyword_opportunity, KeywordOpportunity
from .similarity import (
    compute_similarity,
    build_similarity_input,
    jaccard,
    tokenize,
    SimilarityInput,
    SimilarityResult,
    SIMILARITY_WEIGHTS,
)

__all__ = [
    'compute_momentum',
    'Momentum',
    'MomentumResult',
    'compute_keyword_opportunity',
    'KeywordOpportunity',
    'compute_similarity',
    'build_similarity_input',
    'jaccard',
    'tokenize',
    'SimilarityInput',
    'SimilarityResult',
    'SIMILARITY_WEIGHTS',
]
