"""
Audience-size performance analysis.

Splits the distribution of campaign audience sizes (emails sent) into four
buckets and finds the audience size that earns the most per campaign.

Bucketing:
    - Campaigns with zero sends are ignored. When at least 12 campaigns are
      available a hybrid floor (the P5 audience size clamped to
      [100, 1000]) removes tiny test sends.
    - Boundaries are the quartiles of the remaining sizes when the sample is
      at least 12 and sizes differ, otherwise an equal split between the
      smallest and largest size. Bucket 0 is ``[lo, hi]`` and the others are
      ``(lo, hi]``; empty buckets are omitted.

Guidance:
    A bucket qualifies with >= 3 campaigns and >= 10,000 emails. The best
    qualified bucket outside the red deliverability zone (highest average
    campaign revenue) is recommended; when it is also the dominant bucket
    (most campaigns) the runner-up is offered as the safe choice.

Usage:
    from email_analytics.services.audience_size import analyze_audience_size

    analysis = analyze_audience_size(campaigns, start, end)
"""

import logging
import math
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import GuidanceStatus, RecommendationKind, RiskZone
from email_analytics.models.schemas import AudienceSizeAnalysis, AudienceSizeBucket, SendRecord
from email_analytics.services.bucketing import filter_in_range
from email_analytics.services.deliverability import get_risk_zone

logger = logging.getLogger(__name__)


# =============================================================================
# Range Labels
# =============================================================================


def round_audience_size(value: float) -> int:
    """Round to a readable precision that grows with magnitude."""
    if value >= 1_000_000:
        return int(round(value / 100_000) * 100_000)
    if value >= 100_000:
        return int(round(value / 10_000) * 10_000)
    if value >= 10_000:
        return int(round(value / 1_000) * 1_000)
    if value >= 1_000:
        return int(round(value / 100) * 100)
    return int(round(value))


def format_audience_size(value: int) -> str:
    if value >= 1_000_000:
        return f"{value / 1_000_000:.0f}M" if value % 1_000_000 == 0 else f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.0f}k" if value % 1_000 == 0 else f"{value / 1_000:.1f}k"
    return str(value)


def range_label(lo: float, hi: float) -> str:
    """
    Label for an audience range.

    Example:
        >>> range_label(1234, 15500)
        '1.2k–16k'
    """
    return f"{format_audience_size(round_audience_size(lo))}–{format_audience_size(round_audience_size(hi))}"


# =============================================================================
# Bucketing
# =============================================================================


def _interpolated(sorted_sizes: List[int], p: float) -> float:
    idx = (len(sorted_sizes) - 1) * p
    lo = math.floor(idx)
    hi = math.ceil(idx)
    if lo == hi:
        return float(sorted_sizes[lo])
    weight = idx - lo
    return float(round(sorted_sizes[lo] * (1 - weight) + sorted_sizes[hi] * weight))


def hybrid_floor(sizes: Sequence[int], settings: Optional[Settings] = None) -> Optional[float]:
    """P5 audience size clamped to the configured floor band; None below 12 campaigns."""
    settings = settings or get_settings()
    if len(sizes) < settings.audience_min_sample:
        return None
    ordered = sorted(sizes)
    p5 = ordered[max(0, math.floor(0.05 * (len(ordered) - 1)))]
    return float(max(settings.audience_floor_min, min(settings.audience_floor_max, p5)))


def compute_boundaries(sizes: Sequence[int], settings: Optional[Settings] = None) -> List[float]:
    """Five boundaries delimiting four buckets."""
    settings = settings or get_settings()
    ordered = sorted(sizes)
    lo, hi = float(ordered[0]), float(ordered[-1])
    if lo == hi:
        return [lo, hi, hi, hi, hi]
    if len(ordered) >= settings.audience_min_sample:
        return [lo] + [_interpolated(ordered, p) for p in (0.25, 0.5, 0.75)] + [hi]
    return [lo] + [float(round(lo + i * (hi - lo) / 4)) for i in range(1, 5)]


def _rate(count: float, denominator: float) -> float:
    return count / denominator * 100 if denominator > 0 else 0.0


def _build_bucket(
    idx: int,
    lo: float,
    hi: float,
    members: List[SendRecord],
    settings: Settings,
) -> AudienceSizeBucket:
    n = len(members)
    emails = sum(c.emailsSent for c in members)
    revenue = sum(c.revenue for c in members)
    orders = sum(c.totalOrders for c in members)
    opens = sum(c.uniqueOpens for c in members)
    clicks = sum(c.uniqueClicks for c in members)
    return AudienceSizeBucket(
        key=str(idx),
        rangeLabel=range_label(lo, hi),
        rangeMin=lo,
        rangeMax=hi,
        campaignCount=n,
        totalEmails=emails,
        totalRevenue=revenue,
        totalOrders=orders,
        avgCampaignRevenue=revenue / n,
        avgCampaignEmails=emails / n,
        avgOrderValue=revenue / orders if orders > 0 else 0.0,
        revenuePerEmail=revenue / emails if emails > 0 else 0.0,
        openRate=_rate(opens, emails),
        clickRate=_rate(clicks, emails),
        conversionRate=_rate(orders, clicks),
        unsubscribeRate=_rate(sum(c.unsubscribesCount for c in members), emails),
        spamRate=_rate(sum(c.spamComplaintsCount for c in members), emails),
        bounceRate=_rate(sum(c.bouncesCount for c in members), emails),
        qualified=n >= settings.audience_min_campaigns and emails >= settings.audience_min_emails,
    )


def compute_audience_size_buckets(
    campaigns: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    settings: Optional[Settings] = None,
) -> Tuple[List[AudienceSizeBucket], Optional[float], int]:
    """
    Audience-size buckets for the campaigns in range.

    Returns:
        Tuple of (buckets, floor applied or None, campaigns excluded by the
        floor).
    """
    settings = settings or get_settings()
    eligible = [c for c in filter_in_range(campaigns, start, end) if c.emailsSent > 0]
    if not eligible:
        return [], None, 0

    floor = hybrid_floor([c.emailsSent for c in eligible], settings)
    excluded = 0
    if floor is not None:
        kept = [c for c in eligible if c.emailsSent >= floor]
        excluded = len(eligible) - len(kept)
        eligible = kept

    ordered = sorted(eligible, key=lambda c: c.emailsSent)
    bounds = compute_boundaries([c.emailsSent for c in ordered], settings)

    buckets = []
    for idx in range(4):
        lo, hi = bounds[idx], bounds[idx + 1]
        if idx == 0:
            members = [c for c in ordered if lo <= c.emailsSent <= hi]
        else:
            members = [c for c in ordered if lo < c.emailsSent <= hi]
        if members:
            buckets.append(_build_bucket(idx, lo, hi, members, settings))
    return buckets, floor, excluded


# =============================================================================
# Guidance
# =============================================================================


def _insufficient(message: str, **kwargs) -> AudienceSizeAnalysis:
    return AudienceSizeAnalysis(
        status=GuidanceStatus.INSUFFICIENT,
        recommendationKind=RecommendationKind.NOT_ENOUGH_DATA,
        title="Not enough data for a recommendation",
        message=message,
        **kwargs,
    )


def analyze_audience_size(
    campaigns: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    settings: Optional[Settings] = None,
) -> AudienceSizeAnalysis:
    """
    Bucket campaigns by audience size and recommend a target range.

    Args:
        campaigns: Campaign records.
        start: Range start.
        end: Range end.
        settings: Threshold overrides.

    Returns:
        AudienceSizeAnalysis with ``focus`` status and a target (or safe)
        range, or ``insufficient`` when no bucket qualifies.
    """
    settings = settings or get_settings()
    buckets, floor, excluded = compute_audience_size_buckets(campaigns, start, end, settings)
    sample_size = sum(b.campaignCount for b in buckets)
    common = {
        "buckets": buckets,
        "sampleSize": sample_size,
        "limited": sample_size < settings.audience_min_sample,
        "floorApplied": floor,
        "excludedCampaigns": excluded,
        "sample": (
            f"Based on {sample_size} {'campaign' if sample_size == 1 else 'campaigns'}."
            if sample_size else None
        ),
    }

    if not buckets:
        return _insufficient("No campaigns with measurable audience sizes were found.", **common)

    qualified = [b for b in buckets if b.qualified]
    if not qualified:
        return _insufficient(
            "Each audience size bucket needs more campaigns before we can compare performance.",
            **common,
        )

    safe = [b for b in qualified if get_risk_zone(b.spamRate, b.bounceRate, settings) != RiskZone.RED]
    if not safe:
        return _insufficient(
            "Every qualifying audience size is above safe spam or bounce limits.",
            **common,
        )

    ranked = sorted(safe, key=lambda b: -b.avgCampaignRevenue)
    best = ranked[0]
    dominant = sorted(qualified, key=lambda b: (-b.campaignCount, int(b.key)))[0]

    target = best
    is_safe_choice = False
    if best.key == dominant.key and len(ranked) > 1:
        target = ranked[1]
        is_safe_choice = True

    if is_safe_choice:
        message = (
            f"{target.rangeLabel} recipients delivered reliable revenue with healthier engagement "
            "than larger blasts. Shift targeting toward this window."
        )
    else:
        message = (
            f"{target.rangeLabel} recipients produced the most revenue while staying within "
            "deliverability guardrails. Scale campaign targeting toward this range."
        )

    return AudienceSizeAnalysis(
        status=GuidanceStatus.FOCUS,
        recommendationKind=RecommendationKind.SAFE_RANGE if is_safe_choice else RecommendationKind.TARGET_RANGE,
        title=f"Focus on {target.rangeLabel} recipients per campaign",
        message=message,
        bestKey=best.key,
        recommendedKey=target.key,
        isSafeChoice=is_safe_choice,
        **common,
    )
