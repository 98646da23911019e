"""
Parser for RateMyProfessor professor pages.

RMP pages are styled-components markup whose class names carry generated
suffixes ("NameTitle__Name-dowf0z-0"), so lookups match on the stable prefix.

Attendance and textbook policy histograms use two strategies:
1. structured: walk the labelled rating metadata blocks
2. fallback: regex over the raw markup, only when the structured pass
   found nothing at all
"""

import re
from collections import Counter
from typing import Dict, Tuple

from bs4 import BeautifulSoup

from ..models.schema import ProfessorReview

NOT_AVAILABLE = "N/A"

NAME_SELECTOR = '[class*="NameTitle__Name-"]'
RATING_SELECTOR = '[class*="RatingValue__Numerator-"]'
NUM_RATINGS_SELECTOR = '[class*="RatingValue__NumRatings-"] a'
FEEDBACK_SELECTOR = '[class*="FeedbackItem__FeedbackNumber-"]'
TAG_SELECTOR = '[class*="Tag-bs9vf4"]'
META_ITEM_SELECTOR = '[class*="MetaItem__StyledMetaItem-"]'

ATTENDANCE_LABEL = "Attendance"
TEXTBOOK_LABEL = "Textbook"

# Label, then anything up to the next tag, then one or more tags, then the
# value text closed by </span>
FALLBACK_PATTERNS = {
    label: re.compile(label + r"[^<>]*(?:<[^<>]*>\s*)+([^<>]+?)\s*</span>")
    for label in (ATTENDANCE_LABEL, TEXTBOOK_LABEL)
}

PolicyStats = Tuple[Dict[str, int], Dict[str, int]]


def professor_id_from_url(url: str) -> str:
    """".../professor/2619048" -> "2619048" """
    return url.rstrip("/").split("/")[-1]


def _text(soup: BeautifulSoup, selector: str, index: int = 0) -> str:
    elements = soup.select(selector)
    if len(elements) <= index:
        return ""
    return elements[index].get_text().replace("\xa0", " ").strip()


def extract_policy_stats_structured(soup: BeautifulSoup) -> PolicyStats:
    """Count attendance/textbook values from the rating metadata blocks."""
    attendance: Counter = Counter()
    textbook: Counter = Counter()

    for item in soup.select(META_ITEM_SELECTOR):
        text = item.get_text().strip()
        spans = item.find_all("span")
        if not spans:
            continue
        value = spans[-1].get_text().strip()
        if not value:
            continue

        if ATTENDANCE_LABEL in text:
            attendance[value] += 1
        if TEXTBOOK_LABEL in text:
            textbook[value] += 1

    return dict(attendance), dict(textbook)


def extract_policy_stats_fallback(html: str) -> PolicyStats:
    """Best-effort regex scan of the raw markup."""
    attendance = Counter(
        match.strip() for match in FALLBACK_PATTERNS[ATTENDANCE_LABEL].findall(html)
    )
    textbook = Counter(
        match.strip() for match in FALLBACK_PATTERNS[TEXTBOOK_LABEL].findall(html)
    )
    return dict(attendance), dict(textbook)


def extract_policy_stats(soup: BeautifulSoup, html: str) -> PolicyStats:
    attendance, textbook = extract_policy_stats_structured(soup)
    if attendance or textbook:
        return attendance, textbook
    return extract_policy_stats_fallback(html)


def parse_professor_page(html: str, url: str) -> ProfessorReview:
    """Parse a professor page into a ProfessorReview.

    Missing fields come back as "N/A"; nothing here raises on markup drift.
    """
    prof_id = professor_id_from_url(url)
    soup = BeautifulSoup(html, "html.parser")

    attendance_stats, textbook_stats = extract_policy_stats(soup, html)

    return ProfessorReview(
        id=prof_id,
        name=_text(soup, NAME_SELECTOR) or f"Professor {prof_id}",
        url=url,
        rating=_text(soup, RATING_SELECTOR) or NOT_AVAILABLE,
        total_ratings=_text(soup, NUM_RATINGS_SELECTOR) or NOT_AVAILABLE,
        would_take_again=_text(soup, FEEDBACK_SELECTOR, 0) or NOT_AVAILABLE,
        difficulty=_text(soup, FEEDBACK_SELECTOR, 1) or NOT_AVAILABLE,
        top_tags=[tag.get_text().strip() for tag in soup.select(TAG_SELECTOR)],
        attendance_stats=attendance_stats,
        textbook_stats=textbook_stats,
    )
