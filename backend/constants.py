"""
Centralized Constants - SINGLE SOURCE OF TRUTH

Marketplace URLs, seed categories, queue names and job types used by the
scrapers, the job queue and the scheduler.

DO NOT duplicate these definitions in other files.
"""
from urllib.parse import quote

# =============================================================================
# MARKETPLACE URLS
# =============================================================================

BASE_URL = "https://apps.shopify.com"
SOURCE_DOMAIN = "apps.shopify.com"


def app_url(slug: str) -> str:
    """App detail page: /formful"""
    return f"{BASE_URL}/{slug}"


def app_reviews_url(slug: str, page: int = 1) -> str:
    """App reviews page: /formful/reviews?page=1"""
    return f"{BASE_URL}/{slug}/reviews?page={page}"


def category_url(slug: str) -> str:
    """Category page: /categories/store-design"""
    return f"{BASE_URL}/categories/{slug}"


def category_all_url(slug: str, page: int = None) -> str:
    """Category full app list: /categories/store-design/all?page=2"""
    suffix = f"?page={page}" if page and page > 1 else ""
    return f"{BASE_URL}/categories/{slug}/all{suffix}"


def search_url(keyword: str, page: int = 1) -> str:
    """Keyword search: /search?q=form"""
    return f"{BASE_URL}/search?q={quote(keyword, safe='')}&st_source=autocomplete&page={page}"


def autocomplete_url(keyword: str) -> str:
    """Autocomplete suggestions (JSON): /search/autocomplete?q=form"""
    return f"{BASE_URL}/search/autocomplete?q={quote(keyword, safe='')}"


# =============================================================================
# CATEGORY TREE
# =============================================================================

SEED_CATEGORY_SLUGS = [
    "finding-products",
    "selling-products",
    "orders-and-shipping",
    "store-design",
    "marketing-and-conversion",
    "store-management",
]

MAX_CATEGORY_DEPTH = 4

# Featured sections are scraped on the homepage plus categories at or above this level
FEATURED_MAX_CATEGORY_LEVEL = 2

# =============================================================================
# REVIEWS
# =============================================================================

REVIEW_MAX_PAGES = 50
REVIEW_CUTOFF_DAYS = 90

# =============================================================================
# JOB QUEUE
# =============================================================================

BACKGROUND_QUEUE = "scraper-jobs-background"
INTERACTIVE_QUEUE = "scraper-jobs-interactive"

JOB_CATEGORY = "category"
JOB_APP_DETAILS = "app_details"
JOB_KEYWORD_SEARCH = "keyword_search"
JOB_KEYWORD_SUGGESTIONS = "keyword_suggestions"
JOB_REVIEWS = "reviews"
JOB_FEATURED_APPS = "featured_apps"
JOB_DAILY_DIGEST = "daily_digest"
JOB_COMPUTE_REVIEW_METRICS = "compute_review_metrics"
JOB_COMPUTE_SIMILARITY_SCORES = "compute_similarity_scores"

JOB_TYPES = [
    JOB_CATEGORY,
    JOB_APP_DETAILS,
    JOB_KEYWORD_SEARCH,
    JOB_KEYWORD_SUGGESTIONS,
    JOB_REVIEWS,
    JOB_FEATURED_APPS,
    JOB_DAILY_DIGEST,
    JOB_COMPUTE_REVIEW_METRICS,
    JOB_COMPUTE_SIMILARITY_SCORES,
]

# Celery task per queue
BACKGROUND_TASK = "jobs.run_background_job"
INTERACTIVE_TASK = "jobs.run_interactive_job"

# Queue-level retry policy (on top of the fetcher's own retries)
DEFAULT_JOB_ATTEMPTS = 2
DEFAULT_JOB_BACKOFF_SECONDS = 30

# Background worker: at most 1 job started per 5 seconds
BACKGROUND_RATE_LIMIT = "12/m"

# =============================================================================
# RUN STATUS
# =============================================================================

RUN_PENDING = "pending"
RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"

RUN_STATUSES = [RUN_PENDING, RUN_RUNNING, RUN_COMPLETED, RUN_FAILED]
TERMINAL_RUN_STATUSES = {RUN_COMPLETED, RUN_FAILED}
