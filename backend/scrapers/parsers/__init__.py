"""
Page parsers - one fetched page in, one typed record out.

Parsers never raise on unexpected markup; they return empty/partial records
and log a structure warning so the pipeline can continue.
"""
from .app_parser import parse_app_page
from .category_parser import (
    parse_category_page,
    should_use_all_page,
    compute_first_page_metrics,
    extract_category_slug,
)
from .featured_parser import parse_featured_sections
from .review_parser import parse_review_page, parse_review_date
from .search_parser import parse_search_page

__all__ = [
    "parse_app_page",
    "parse_category_page",
    "should_use_all_page",
    "compute_first_page_metrics",
    "extract_category_slug",
    "parse_featured_sections",
    "parse_review_page",
    "parse_review_date",
    "parse_search_page",
]
