from __future__ import annotations

from datetime import datetime, timedelta

from analytics.models import DateWindow
from utils.datetime_utils import shift_months

RANGE_WEEK = "Week"
RANGE_MONTH = "Month"
RANGE_3_MONTHS = "3 Months"
RANGE_6_MONTHS = "6 Months"
RANGE_YEAR = "Year"
RANGE_ALL_TIME = "All Time"
RANGE_CUSTOM = "Custom"

NAMED_RANGES = (RANGE_WEEK, RANGE_MONTH, RANGE_3_MONTHS, RANGE_6_MONTHS, RANGE_YEAR, RANGE_ALL_TIME)
RANGE_TOKENS = NAMED_RANGES + (RANGE_CUSTOM,)

_MONTHS_BACK = {
    RANGE_MONTH: 1,
    RANGE_3_MONTHS: 3,
    RANGE_6_MONTHS: 6,
    RANGE_YEAR: 12,
}
_CANONICAL = {token.lower(): token for token in RANGE_TOKENS}

RECONCILE_TOLERANCE = timedelta(days=1)


def canonical_range(token: str | None) -> str | None:
    """Return the canonical spelling of a range token, or None when it is not recognised."""
    if not isinstance(token, str):
        return None
    return _CANONICAL.get(" ".join(token.strip().split()).lower())


def is_custom(token: str | None) -> bool:
    return canonical_range(token) == RANGE_CUSTOM


def resolve_cutoff(token: str | None, now: datetime) -> datetime | None:
    """Map a range token to the earliest moment it covers.

    All Time, Custom and unknown tokens have no lower bound.
    """
    canonical = canonical_range(token)
    if canonical == RANGE_WEEK:
        return now - timedelta(days=7)
    months = _MONTHS_BACK.get(canonical or "")
    if months:
        return shift_months(now, -months)
    return None


def should_promote_to_custom(
    token: str | None,
    start: datetime | None,
    end: datetime | None,
    now: datetime,
) -> bool:
    """True when explicit dates have drifted more than a day from what ``token`` implies."""
    if start is None or end is None or is_custom(token):
        return False
    expected_start = resolve_cutoff(token, now)
    if expected_start is None:
        return True
    return abs(start - expected_start) > RECONCILE_TOLERANCE or abs(end - now) > RECONCILE_TOLERANCE


def build_window(
    token: str | None,
    now: datetime,
    start: datetime | None = None,
    end: datetime | None = None,
) -> DateWindow:
    if is_custom(token):
        return DateWindow(
            start=start.date() if start else None,
            end=end.date() if end else None,
        )
    cutoff = resolve_cutoff(token, now)
    return DateWindow(start=cutoff.date() if cutoff else None, end=now.date())
