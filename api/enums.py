"""
Centralized enums for values stored on video records.
Using str-based enums for database compatibility.
"""

from enum import Enum
from typing import Optional


class Visibility(str, Enum):
    """Exposure level of a video."""

    PUBLIC = "public"
    PRIVATE = "private"
    UNLISTED = "unlisted"


class Category(str, Enum):
    """Fixed set of video categories."""

    MUSIC = "music"
    GAMING = "gaming"
    COMEDY = "comedy"
    MOVIES = "movies"
    TECH = "tech"
    TRAVEL = "travel"
    OTHER = "other"


VISIBILITY_VALUES = frozenset(v.value for v in Visibility)
CATEGORY_VALUES = frozenset(c.value for c in Category)

# Category filter value meaning "no filter"
ALL_CATEGORIES = "all"


def parse_visibility(value) -> Optional[Visibility]:
    """Return the matching Visibility, or None if value is not one of them."""
    if isinstance(value, str) and value in VISIBILITY_VALUES:
        return Visibility(value)
    return None


def parse_category(value) -> Optional[Category]:
    """Return the matching Category (case-insensitive), or None."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in CATEGORY_VALUES:
            return Category(lowered)
    return None


def normalize_category(value) -> Category:
    """Like parse_category, but unknown or missing values fall back to OTHER."""
    return parse_category(value) or Category.OTHER


def category_filter(value: Optional[str]) -> Optional[str]:
    """
    Translate a listing ?category= parameter into a stored category value.

    Empty and "all" mean no filtering. Other values are lower-cased and passed
    through unchanged, so an unknown category simply matches nothing.
    """
    if not value:
        return None
    lowered = value.strip().lower()
    if not lowered or lowered == ALL_CATEGORIES:
        return None
    return lowered
