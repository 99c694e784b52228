"""
Models package - SQLAlchemy models
"""
from models.database import db
from models.scrape_run import ScrapeRun, RunStateError
from models.catalog import (
    App,
    AppSnapshot,
    AppFieldChange,
    AppCategoryRanking,
    Category,
    CategorySnapshot,
    TrackedKeyword,
    KeywordSnapshot,
    AppKeywordRanking,
    KeywordAutoSuggestion,
    Review,
    keyword_to_slug,
)
from models.sightings import (
    KeywordAdSighting,
    CategoryAdSighting,
    FeaturedAppSighting,
    SimilarAppSighting,
)
from models.metrics import AppReviewMetric, AppSimilarityScore
from models.account import (
    Account,
    User,
    AccountTrackedApp,
    AccountCompetitorApp,
    AccountTrackedKeyword,
)

__all__ = [
    'db',
    'ScrapeRun',
    'RunStateError',
    'App',
    'AppSnapshot',
    'AppFieldChange',
    'AppCategoryRanking',
    'Category',
    'CategorySnapshot',
    'TrackedKeyword',
    'KeywordSnapshot',
    'AppKeywordRanking',
    'KeywordAutoSuggestion',
    'Review',
    'keyword_to_slug',
    'KeywordAdSighting',
    'CategoryAdSighting',
    'FeaturedAppSighting',
    'SimilarAppSighting',
    'AppReviewMetric',
    'AppSimilarityScore',
    'Account',
    'User',
    'AccountTrackedApp',
    'AccountCompetitorApp',
    'AccountTrackedKeyword',
]
