"""
Free-text helpers for review messages.

WHAT: Recover review details from message content
WHY: Older review messages carry no structured review data
HOW: Marker check plus regex for the "<n> ★ - <text>" layout
"""

import re

from ..core.config import settings

_RATING_PATTERN = re.compile(r'(\d+)\s*★')


def is_review_text(content: str | None) -> bool:
    """True if content looks like a "... left a review: ..." message."""
    return isinstance(content, str) and settings.REVIEW_MARKER in content


def parse_review_rating(content: str) -> int | None:
    """Extract a 1..5 star rating from review text, if present."""
    match = _RATING_PATTERN.search(content)
    if not match:
        return None
    rating = int(match.group(1))
    if 1 <= rating <= 5:
        return rating
    return None


def parse_review_body(content: str) -> str | None:
    """Review text is whatever follows the first " - " separator."""
    _, sep, body = content.partition(" - ")
    if not sep:
        return None
    body = body.strip()
    return body or None
