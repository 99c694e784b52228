"""
Typed records produced by the page parsers.

One fetched page becomes one record. Records are plain dataclasses; the
pipelines persist them and snapshots store their `to_dict()` form.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class AppCard:
    """An app card as it appears in a category listing or search results."""
    app_slug: str
    name: str
    logo_url: str = ""
    short_description: str = ""
    average_rating: float = 0.0
    rating_count: int = 0
    position: Optional[int] = None
    pricing_hint: str = ""
    is_sponsored: bool = False
    is_built_in: bool = False
    is_built_for_shopify: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AppPageRecord:
    app_slug: str
    app_name: str
    icon_url: Optional[str] = None
    app_introduction: str = ""
    app_details: str = ""
    seo_title: str = ""
    seo_meta_description: str = ""
    app_card_subtitle: Optional[str] = None
    features: List[str] = field(default_factory=list)
    pricing: str = ""
    average_rating: Optional[float] = None
    rating_count: Optional[int] = None
    developer: Optional[Dict[str, Any]] = None
    demo_store_url: Optional[str] = None
    languages: List[str] = field(default_factory=list)
    integrations: List[str] = field(default_factory=list)
    # [{type, title, url, subcategories: [{title, features: [{title, url, feature_handle}]}]}]
    categories: List[Dict[str, Any]] = field(default_factory=list)
    pricing_plans: List[Dict[str, Any]] = field(default_factory=list)
    similar_apps: List[AppCard] = field(default_factory=list)
    is_built_for_shopify: bool = False


@dataclass
class SubcategoryLink:
    slug: str
    url: str
    title: str


@dataclass
class CategoryPageRecord:
    slug: str
    url: str
    data_source_url: str
    title: str
    breadcrumb: str = ""
    description: str = ""
    app_count: Optional[int] = None
    first_page_metrics: Optional[Dict[str, Any]] = None
    first_page_apps: List[AppCard] = field(default_factory=list)
    subcategory_links: List[SubcategoryLink] = field(default_factory=list)


@dataclass
class SearchPageRecord:
    keyword: str
    total_results: Optional[int]
    apps: List[AppCard] = field(default_factory=list)
    has_next_page: bool = False
    current_page: int = 1

    @property
    def organic_apps(self) -> List[AppCard]:
        return [a for a in self.apps if not a.is_sponsored and not a.is_built_in]

    @property
    def sponsored_apps(self) -> List[AppCard]:
        return [a for a in self.apps if a.is_sponsored]


@dataclass
class ReviewRecord:
    review_date: str  # as shown on the page, e.g. "December 29, 2025"
    content: str
    reviewer_name: str
    rating: int
    reviewer_country: str = ""
    duration_using_app: str = ""
    developer_reply_date: Optional[str] = None
    developer_reply_text: Optional[str] = None


@dataclass
class ReviewPageRecord:
    reviews: List[ReviewRecord] = field(default_factory=list)
    has_next_page: bool = False
    current_page: int = 1


@dataclass
class FeaturedApp:
    slug: str
    name: str
    icon_url: str = ""
    position: Optional[int] = None


@dataclass
class FeaturedSection:
    section_handle: str
    section_title: str
    surface: str
    surface_detail: str
    apps: List[FeaturedApp] = field(default_factory=list)
