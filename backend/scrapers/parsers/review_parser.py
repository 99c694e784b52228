"""Review page parser (/{slug}/reviews?page=N)."""
import logging
import re
from datetime import date, datetime
from typing import Optional

from scrapers.parsers.cards import make_soup, has_next_page
from scrapers.parsers.records import ReviewPageRecord, ReviewRecord

logger = logging.getLogger(__name__)

MONTHS = (
    "January|February|March|April|May|June|July|August|"
    "September|October|November|December"
)
DATE_RE = re.compile(rf"\b((?:{MONTHS})\s+\d{{1,2}},\s+\d{{4}})\b")
STARS_RE = re.compile(r"(\d)\s*out of 5 stars")


def parse_review_date(value: str) -> Optional[date]:
    """"December 29, 2025" -> date(2025, 12, 29); None when unparseable."""
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), "%B %d, %Y").date()
    except ValueError:
        return None


def _parse_review(element) -> Optional[ReviewRecord]:
    labelled = element.select_one("[aria-label]")
    stars = STARS_RE.search(labelled.get("aria-label", "")) if labelled else None
    rating = int(stars.group(1)) if stars else 0
    if not 1 <= rating <= 5:
        return None

    review_date = ""
    for candidate in element.select(".tw-text-body-xs"):
        found = DATE_RE.search(candidate.get_text(" ", strip=True))
        if found:
            review_date = found.group(1)
            break
    if not review_date:
        return None

    content_el = element.select("[data-truncate-content-copy] p") or element.select("[data-truncate-review] p")
    content = " ".join(p.get_text(" ", strip=True) for p in content_el).strip()

    name_el = element.select_one(".tw-text-heading-xs span[title]")
    if name_el is not None:
        reviewer_name = name_el["title"].strip()
    else:
        fallback = element.select_one(".tw-text-heading-xs span")
        reviewer_name = fallback.get_text(strip=True) if fallback else ""

    reviewer_country = ""
    duration = ""
    heading = element.select_one(".tw-text-heading-xs")
    if heading is not None and heading.parent is not None:
        for div in heading.parent.find_all("div"):
            if "tw-text-heading-xs" in (div.get("class") or []):
                continue
            text = div.get_text(" ", strip=True)
            if re.search(r"using the app", text, re.IGNORECASE):
                duration = text
            elif 1 < len(text) < 80 and "stars" not in text and not reviewer_country:
                reviewer_country = text

    reply_date = None
    reply_text = None
    reply = element.select_one("[data-merchant-review-reply]")
    if reply is not None and reply.get_text(strip=True):
        found = DATE_RE.search(reply.get_text(" ", strip=True))
        reply_date = found.group(1) if found else None
        reply_text = " ".join(p.get_text(" ", strip=True) for p in reply.find_all("p")).strip() or None

    return ReviewRecord(
        review_date=review_date,
        content=content,
        reviewer_name=reviewer_name,
        rating=rating,
        reviewer_country=reviewer_country,
        duration_using_app=duration,
        developer_reply_date=reply_date,
        developer_reply_text=reply_text,
    )


def parse_review_page(html: str, current_page: int = 1) -> ReviewPageRecord:
    soup = make_soup(html)
    elements = soup.select("[data-merchant-review]")

    if not elements and current_page == 1:
        logger.warning("no [data-merchant-review] elements found, possible HTML structure change")

    reviews = []
    for element in elements:
        try:
            review = _parse_review(element)
        except (AttributeError, KeyError, ValueError) as e:
            logger.warning("failed to parse review element page=%d err=%s", current_page, e)
            continue
        if review is not None:
            reviews.append(review)

    return ReviewPageRecord(
        reviews=reviews,
        has_next_page=has_next_page(soup),
        current_page=current_page,
    )
