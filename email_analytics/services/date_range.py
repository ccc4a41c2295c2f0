"""
Date-range resolution for analytics requests.

Maps a named range key (``7d`` ... ``730d``, ``all``, ``custom``) onto a
concrete UTC ``[startDate, endDate]`` window, derives the baseline window for
period-over-period comparison and computes the "smart opportunity window"
used for dollar estimates.

Anchoring:
    Preset ranges end at 23:59:59.999999 UTC of the day holding the most
    recent send, not at "today". An export downloaded weeks ago still yields
    a fully populated window.

Errors:
    Unknown keys and ``custom`` without both bounds raise ``ValueError``; the
    API layer turns these into HTTP 400 responses.

Usage:
    from email_analytics.services.date_range import resolve_date_range

    window = resolve_date_range("90d", last_date)
    prev = previous_period(window, CompareMode.PREV_YEAR)
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import CompareMode, DateRangeKey, Granularity
from email_analytics.models.schemas import ComparisonWindow, ResolvedDateRange, SendRecord
from email_analytics.services.bucketing import end_of_day, start_of_day, to_utc

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Every range, including "all", is capped at two years of history.
MAX_RANGE_DAYS: int = 730

# Granularity cut-offs: up to 60 days daily, up to a year weekly.
DAILY_MAX_DAYS: int = 60
WEEKLY_MAX_DAYS: int = 365


def _inclusive_days(start: datetime, end: datetime) -> int:
    return (start_of_day(end).date() - start_of_day(start).date()).days + 1


def _parse_bound(value: str) -> datetime:
    try:
        parsed = date.fromisoformat(value[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid custom date: {value!r}") from exc
    return to_utc(datetime(parsed.year, parsed.month, parsed.day))


def preset_days(key: DateRangeKey) -> Optional[int]:
    """Number of days for a preset key, None for ``all`` and ``custom``."""
    if key in (DateRangeKey.ALL, DateRangeKey.CUSTOM):
        return None
    return int(key.value.rstrip("d"))


def resolve_date_range(
    key,
    last_date: Optional[datetime],
    custom_from: Optional[str] = None,
    custom_to: Optional[str] = None,
    first_date: Optional[datetime] = None,
) -> Optional[ResolvedDateRange]:
    """
    Resolve a range selector into concrete UTC bounds.

    Args:
        key: A DateRangeKey or its string value.
        last_date: Most recent send in the dataset (anchor for presets).
        custom_from: ISO date, required when key is ``custom``.
        custom_to: ISO date, required when key is ``custom``.
        first_date: Earliest send in the dataset (needed for ``all``).

    Returns:
        ResolvedDateRange, or None when the dataset is empty and the key
        needs an anchor.

    Raises:
        ValueError: Unknown key, missing custom bounds or inverted bounds.

    Example:
        >>> r = resolve_date_range("7d", datetime(2024, 3, 10, 15, tzinfo=timezone.utc))
        >>> r.startDate.date(), r.endDate.date()
        (datetime.date(2024, 3, 4), datetime.date(2024, 3, 10))
    """
    try:
        key = DateRangeKey(key)
    except ValueError as exc:
        raise ValueError(f"Unknown date range: {key!r}") from exc

    if key == DateRangeKey.CUSTOM:
        if not custom_from or not custom_to:
            raise ValueError("Custom date range requires customFrom and customTo")
        start = start_of_day(_parse_bound(custom_from))
        end = end_of_day(_parse_bound(custom_to))
        if end < start:
            raise ValueError("customFrom must not be after customTo")
        return ResolvedDateRange(key=key, startDate=start, endDate=end, days=_inclusive_days(start, end))

    if last_date is None:
        logger.debug(f"No data to anchor date range {key.value}")
        return None

    end = end_of_day(last_date)
    if key == DateRangeKey.ALL:
        floor = start_of_day(end - timedelta(days=MAX_RANGE_DAYS))
        start = start_of_day(first_date) if first_date is not None else floor
        start = max(start, floor)
    else:
        days = min(preset_days(key), MAX_RANGE_DAYS)
        start = start_of_day(end - timedelta(days=days - 1))
    return ResolvedDateRange(key=key, startDate=start, endDate=end, days=_inclusive_days(start, end))


def _shift_year_back(dt: datetime) -> datetime:
    # Feb 29 maps to Feb 28 of the previous year
    try:
        return dt.replace(year=dt.year - 1)
    except ValueError:
        return dt.replace(year=dt.year - 1, day=28)


def previous_period(current: ResolvedDateRange, mode: CompareMode) -> ResolvedDateRange:
    """
    Baseline window for a period-over-period comparison.

    ``prev-period`` is the same number of days ending the day before the
    current start; ``prev-year`` is the same calendar window one year back.
    """
    if mode == CompareMode.PREV_YEAR:
        start = _shift_year_back(current.startDate)
        end = _shift_year_back(current.endDate)
    else:
        end = end_of_day(current.startDate - timedelta(days=1))
        start = start_of_day(end - timedelta(days=current.days - 1))
    return ResolvedDateRange(key=current.key, startDate=start, endDate=end, days=_inclusive_days(start, end))


def comparison_window(current: ResolvedDateRange, mode: CompareMode) -> ComparisonWindow:
    return ComparisonWindow(compareMode=mode, current=current, previous=previous_period(current, mode))


def granularity_for_range(window: ResolvedDateRange) -> Granularity:
    if window.days <= DAILY_MAX_DAYS:
        return Granularity.DAILY
    if window.days <= WEEKLY_MAX_DAYS:
        return Granularity.WEEKLY
    return Granularity.MONTHLY


# =============================================================================
# Smart Opportunity Window
# =============================================================================


def compute_smart_opportunity_window(
    campaigns: Sequence[SendRecord],
    flows: Sequence[SendRecord],
    settings: Optional[Settings] = None,
) -> Optional[ResolvedDateRange]:
    """
    Walk back from the latest send until enough volume is captured.

    Stops once ``smart_window_min_sends`` emails are accumulated and at least
    ``smart_window_min_days`` are covered, never reaching further back than
    ``smart_window_max_days``.

    Returns:
        A ``custom`` keyed ResolvedDateRange, or None for an empty dataset.
    """
    settings = settings or get_settings()
    events = sorted(
        [(r.sentDate, r.emailsSent) for r in list(campaigns) + list(flows)],
        key=lambda e: e[0],
        reverse=True,
    )
    if not events:
        return None

    anchor = events[0][0]
    min_boundary = anchor - timedelta(days=settings.smart_window_min_days)
    max_boundary = anchor - timedelta(days=settings.smart_window_max_days)

    accumulated = 0
    start = anchor
    for sent, emails in events:
        accumulated += emails
        start = sent
        if sent < max_boundary:
            start = max_boundary
            break
        if accumulated >= settings.smart_window_min_sends and sent <= min_boundary:
            break

    if start > min_boundary:
        start = min_boundary

    start = start_of_day(start)
    end = end_of_day(anchor)
    logger.debug(f"Smart window captured {accumulated} sends from {start.date()} to {end.date()}")
    return ResolvedDateRange(
        key=DateRangeKey.CUSTOM,
        startDate=start,
        endDate=end,
        days=_inclusive_days(start, end),
    )
