"""
Consent split metrics.

Compares subscribers whose export consent text is exactly ``SUBSCRIBED``
(case-insensitive, trimmed) with everyone else. The boolean meaning of
other consent values (``NEVER_SUBSCRIBED``, ``UNSUBSCRIBED``, blanks) is
not interpreted; they all fall into "Not Subscribed".

Count-like metrics (buyers, non-buyers, repeat buyers, engaged N days)
also report the value as a percent of the group. Value metrics (lifetime
value averages and total revenue) do not.

Usage:
    from email_analytics.services.consent_split import compute_consent_split

    result = compute_consent_split(subscribers, ConsentSplitMetric.BUYERS, anchor)
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from email_analytics.models.enums import ConsentGroupKey, ConsentSplitMetric, DateRangeKey
from email_analytics.models.schemas import (
    ConsentGroupValue,
    ConsentSplitResult,
    ResolvedDateRange,
    SubscriberRecord,
)

logger = logging.getLogger(__name__)


ENGAGEMENT_DAYS: Dict[ConsentSplitMetric, int] = {
    ConsentSplitMetric.ENGAGED_30: 30,
    ConsentSplitMetric.ENGAGED_60: 60,
    ConsentSplitMetric.ENGAGED_90: 90,
}


def consent_group(subscriber: SubscriberRecord) -> ConsentGroupKey:
    raw = (subscriber.emailConsentRaw or "").strip().upper()
    if raw == "SUBSCRIBED":
        return ConsentGroupKey.SUBSCRIBED
    return ConsentGroupKey.NOT_SUBSCRIBED


def is_engaged_within(subscriber: SubscriberRecord, anchor: datetime, days: int) -> bool:
    """True when the last open or click falls in ``[anchor - days, anchor]``."""
    window_start = anchor - timedelta(days=days)
    for ts in (subscriber.lastOpen, subscriber.lastClick):
        if ts is not None and window_start <= ts <= anchor:
            return True
    return False


def _percent(count: int, size: int) -> float:
    return count / size * 100 if size > 0 else 0.0


def _group_value(
    members: List[SubscriberRecord],
    metric: ConsentSplitMetric,
    anchor: datetime,
    key: ConsentGroupKey,
) -> ConsentGroupValue:
    size = len(members)
    if size == 0:
        return ConsentGroupValue(key=key, value=0.0, sampleSize=0, percentOfGroup=0.0)

    if metric == ConsentSplitMetric.COUNT:
        return ConsentGroupValue(key=key, value=size, sampleSize=size)

    if metric in (ConsentSplitMetric.LTV_BUYERS, ConsentSplitMetric.LTV_ALL, ConsentSplitMetric.TOTAL_REVENUE):
        if metric == ConsentSplitMetric.LTV_BUYERS:
            pool = [s for s in members if s.isBuyer]
        else:
            pool = members
        total = sum(s.totalClv for s in pool)
        if metric == ConsentSplitMetric.TOTAL_REVENUE:
            value = total
        else:
            value = total / len(pool) if pool else 0.0
        return ConsentGroupValue(key=key, value=value, sampleSize=size)

    if metric == ConsentSplitMetric.BUYERS:
        count = sum(1 for s in members if s.isBuyer)
    elif metric == ConsentSplitMetric.NON_BUYERS:
        count = size - sum(1 for s in members if s.isBuyer)
    elif metric == ConsentSplitMetric.REPEAT_BUYERS:
        count = sum(1 for s in members if s.totalOrders >= 2)
    else:
        days = ENGAGEMENT_DAYS[metric]
        count = sum(1 for s in members if is_engaged_within(s, anchor, days))
    return ConsentGroupValue(key=key, value=count, sampleSize=size, percentOfGroup=_percent(count, size))


def compute_consent_split(
    subscribers: Sequence[SubscriberRecord],
    metric: ConsentSplitMetric,
    anchor: datetime,
) -> ConsentSplitResult:
    """
    One metric for the Subscribed and Not Subscribed groups.

    Args:
        subscribers: Profiles, already limited to the window of interest.
        metric: Metric to compare.
        anchor: Reference date for the engaged-within-N-days metrics.

    Returns:
        ConsentSplitResult with Subscribed first. An empty group reports
        zero with a zero sample size.
    """
    groups: Dict[ConsentGroupKey, List[SubscriberRecord]] = {key: [] for key in ConsentGroupKey}
    for sub in subscribers:
        groups[consent_group(sub)].append(sub)

    return ConsentSplitResult(
        metric=metric,
        groups=[_group_value(members, metric, anchor, key) for key, members in groups.items()],
    )


def subscribers_created_in(
    subscribers: Sequence[SubscriberRecord],
    window: ResolvedDateRange,
) -> List[SubscriberRecord]:
    """
    Profiles created inside the window.

    Profiles without a creation date are kept, and the "all" range keeps
    every profile.
    """
    if window.key == DateRangeKey.ALL:
        return list(subscribers)
    return [
        s for s in subscribers
        if s.profileCreated is None or window.startDate <= s.profileCreated <= window.endDate
    ]


def analyze_consent_split(
    subscribers: Sequence[SubscriberRecord],
    metric: ConsentSplitMetric,
    window: Optional[ResolvedDateRange] = None,
    anchor: Optional[datetime] = None,
) -> ConsentSplitResult:
    """
    Consent split over the profiles created in ``window``.

    The anchor defaults to the window end. Without a window every profile
    is used and the anchor must be given.
    """
    if window is not None:
        subscribers = subscribers_created_in(subscribers, window)
        anchor = anchor or window.endDate
    if anchor is None:
        raise ValueError("An anchor date is required without a window")
    logger.debug(f"Consent split: {len(subscribers)} profiles, metric={metric.value}")
    return compute_consent_split(subscribers, metric, anchor)
