"""
Marketplace Scraping Package

- Paced, retrying HTTP client (per instance, optional shared Redis limiter)
- Page parsers turning one fetched page into one typed record
- Pipelines persisting records as snapshots, rankings and sightings
"""

from .http_client import HttpClient, FetchError, ClientFetchError
from .base import BaseScraper, PipelineResult
from .category_scraper import CategoryScraper
from .app_details_scraper import AppDetailsScraper
from .keyword_scraper import KeywordScraper
from .keyword_suggestion_scraper import KeywordSuggestionScraper
from .review_scraper import ReviewScraper
from .featured_scraper import FeaturedAppsScraper

__all__ = [
    "HttpClient",
    "FetchError",
    "ClientFetchError",
    "BaseScraper",
    "PipelineResult",
    "CategoryScraper",
    "AppDetailsScraper",
    "KeywordScraper",
    "KeywordSuggestionScraper",
    "ReviewScraper",
    "FeaturedAppsScraper",
]
