"""
Timezone utilities for CineMatch.
Provides consistent UTC date handling for release-date arithmetic.
"""
from datetime import date, datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.
    Replacement for deprecated datetime.utcnow().
    """
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Current calendar date in UTC."""
    return utc_now().date()


def parse_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a TMDB date string (YYYY-MM-DD).
    Returns None for empty or malformed values; TMDB sends "" for unknown dates.
    """
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def days_between(later: Optional[date], earlier: Optional[date]) -> Optional[int]:
    """
    Whole days from `earlier` to `later` (positive when `later` is in the future).
    Returns None if either date is missing.
    """
    if later is None or earlier is None:
        return None
    return (later - earlier).days
