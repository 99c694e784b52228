"""
App Similarity Score - Pure Functions

Compares two listings across four sets (category slugs, feature handles,
keyword ids, text tokens). Each dimension is a Jaccard index; the overall
score is their weighted sum.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Set

SIMILARITY_WEIGHTS = {
    'category': 0.25,
    'feature': 0.25,
    'keyword': 0.25,
    'text': 0.25,
}

STOP_WORDS = frozenset([
    "the", "a", "an", "is", "are", "am", "was", "were", "be", "been", "being",
    "in", "on", "at", "to", "for", "of", "and", "or", "but", "not", "with",
    "by", "from", "as", "it", "its", "this", "that", "these", "those",
    "i", "you", "he", "she", "we", "they", "my", "your", "our", "his", "her", "their",
    "me", "us", "him", "them", "do", "does", "did", "have", "has", "had",
    "will", "would", "can", "could", "shall", "should", "may", "might", "must",
    "so", "if", "then", "than", "no", "all", "any", "each", "every", "some",
    "such", "very", "just", "about", "up", "out", "how", "what", "which", "who",
    "when", "where", "also", "more", "other", "into", "over", "after", "before",
    # Marketplace boilerplate
    "app", "apps", "shopify", "store", "stores", "shop", "shops",
])

_NON_WORD_RE = re.compile(r"[^a-z0-9\s]")
_CATEGORY_PATH_RE = re.compile(r".*/categories/")


@dataclass
class SimilarityInput:
    category_slugs: Set[str] = field(default_factory=set)
    feature_handles: Set[str] = field(default_factory=set)
    keyword_ids: Set[str] = field(default_factory=set)
    text_tokens: Set[str] = field(default_factory=set)


@dataclass
class SimilarityResult:
    overall: float
    category: float
    feature: float
    keyword: float
    text: float

    def rounded(self, digits: int = 4) -> Dict[str, float]:
        return {
            'overall': round(self.overall, digits),
            'category': round(self.category, digits),
            'feature': round(self.feature, digits),
            'keyword': round(self.keyword, digits),
            'text': round(self.text, digits),
        }


def jaccard(a: Set[Any], b: Set[Any]) -> float:
    """|A & B| / |A | B|; 0 when both are empty."""
    if not a and not b:
        return 0.0
    union = len(a | b)
    return len(a & b) / union if union else 0.0


def tokenize(text: str) -> Set[str]:
    words = _NON_WORD_RE.sub(" ", (text or "").lower()).split()
    return {w for w in words if len(w) >= 3 and w not in STOP_WORDS}


def extract_category_slugs(categories: Iterable[Dict[str, Any]]) -> Set[str]:
    slugs = set()
    for category in categories or []:
        url = category.get('url')
        if not url:
            continue
        slug = _CATEGORY_PATH_RE.sub("", url).split("/")[0]
        if slug:
            slugs.add(slug)
    return slugs


def extract_feature_handles(categories: Iterable[Dict[str, Any]]) -> Set[str]:
    handles = set()
    for category in categories or []:
        for sub in category.get('subcategories') or []:
            for feature in sub.get('features') or []:
                if feature.get('feature_handle'):
                    handles.add(feature['feature_handle'])
    return handles


def build_similarity_input(
    categories: List[Dict[str, Any]],
    keyword_ids: Iterable[Any],
    *texts: str,
) -> SimilarityInput:
    return SimilarityInput(
        category_slugs=extract_category_slugs(categories),
        feature_handles=extract_feature_handles(categories),
        keyword_ids={str(k) for k in keyword_ids},
        text_tokens=tokenize(" ".join(t for t in texts if t)),
    )


def compute_similarity(a: SimilarityInput, b: SimilarityInput) -> SimilarityResult:
    category = jaccard(a.category_slugs, b.category_slugs)
    feature = jaccard(a.feature_handles, b.feature_handles)
    keyword = jaccard(a.keyword_ids, b.keyword_ids)
    text = jaccard(a.text_tokens, b.text_tokens)

    overall = (
        SIMILARITY_WEIGHTS['category'] * category
        + SIMILARITY_WEIGHTS['feature'] * feature
        + SIMILARITY_WEIGHTS['keyword'] * keyword
        + SIMILARITY_WEIGHTS['text'] * text
    )
    return SimilarityResult(
        overall=overall,
        category=category,
        feature=feature,
        keyword=keyword,
        text=text,
    )
