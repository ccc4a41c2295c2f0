"""
Campaign send-frequency analysis.

Groups the weeks of a range by how many campaigns were sent in them (1, 2,
3 or 4+ campaigns per week), aggregates each group and recommends a cadence.

Algorithm:
    1. Campaigns in range are grouped by UTC Monday week; only weeks with at
       least one campaign are bucketed.
    2. Seasonal filter: weeks whose campaign count exceeds the 90th
       percentile of weekly counts over the trailing 365 days (ending at the
       range end) are excluded. The filter is disabled when the trailing
       median already reaches that percentile, i.e. for a consistently
       high-volume sender.
    3. Within each bucket an IQR (1.5x) filter drops holiday-like spikes from
       weekly revenue before the recency-weighted mean and standard deviation
       are computed (weight = position of the week in the window).
    4. Guidance compares the best safe bucket's lower confidence bound
       (mean - 1.96 * stderr) with the dominant (most observed) cadence.

Usage:
    from email_analytics.services.send_frequency import (
        compute_campaign_send_frequency,
        compute_send_frequency_guidance,
    )

    buckets = compute_campaign_send_frequency(campaigns, start, end)
    guidance = compute_send_frequency_guidance(buckets)
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import FrequencyBucketKey, GuidanceStatus, RecommendationKind
from email_analytics.models.schemas import FrequencyBucketAggregate, FrequencyGuidance, SendRecord
from email_analytics.services.bucketing import filter_in_range, monday_of, to_utc
from email_analytics.services.stats import iqr_filter_mask, median, percentile, weighted_mean_std

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

BUCKET_ORDER: Dict[FrequencyBucketKey, int] = {
    FrequencyBucketKey.ONE: 1,
    FrequencyBucketKey.TWO: 2,
    FrequencyBucketKey.THREE: 3,
    FrequencyBucketKey.FOUR_PLUS: 4,
}


def bucket_key_for(count: int) -> FrequencyBucketKey:
    if count >= 4:
        return FrequencyBucketKey.FOUR_PLUS
    return FrequencyBucketKey(str(count))


def cadence_label(key: FrequencyBucketKey) -> str:
    """Human label, e.g. ``2 campaigns per week``."""
    if key == FrequencyBucketKey.FOUR_PLUS:
        return "4+ campaigns per week"
    return f"{key.value} campaign{'' if key == FrequencyBucketKey.ONE else 's'} per week"


@dataclass
class _Week:
    start: datetime
    position: int
    campaigns: List[SendRecord] = field(default_factory=list)

    @property
    def revenue(self) -> float:
        return sum(c.revenue for c in self.campaigns)


def _group_weeks(campaigns: Sequence[SendRecord], window_start: datetime) -> List[_Week]:
    origin = monday_of(window_start)
    weeks: Dict[datetime, _Week] = {}
    for c in campaigns:
        wk = monday_of(c.sentDate)
        if wk not in weeks:
            weeks[wk] = _Week(start=wk, position=(wk - origin).days // 7 + 1)
        weeks[wk].campaigns.append(c)
    return sorted(weeks.values(), key=lambda w: w.start)


# =============================================================================
# Seasonal Filter
# =============================================================================


def compute_seasonal_threshold(
    all_campaigns: Sequence[SendRecord],
    end: datetime,
    settings: Optional[Settings] = None,
) -> Optional[float]:
    """
    P90 of weekly campaign counts over the trailing lookback window.

    Returns:
        The threshold, or None when the filter does not apply (fewer weeks
        than the bucket minimum or the trailing median at/above the P90).
    """
    settings = settings or get_settings()
    end = to_utc(end)
    start = end - timedelta(days=settings.frequency_seasonal_lookback_days)
    counts: Dict[datetime, int] = defaultdict(int)
    for c in filter_in_range(all_campaigns, start, end):
        counts[monday_of(c.sentDate)] += 1
    values = list(counts.values())
    if len(values) < settings.frequency_min_bucket_weeks:
        return None
    p90 = percentile(values, settings.frequency_seasonal_percentile)
    if median(values) >= p90:
        return None
    return p90


# =============================================================================
# Bucket Aggregation
# =============================================================================


def _rate(count: float, denominator: float) -> float:
    return count / denominator * 100 if denominator > 0 else 0.0


def _aggregate_bucket(
    key: FrequencyBucketKey,
    weeks: List[_Week],
    settings: Settings,
) -> FrequencyBucketAggregate:
    campaigns = [c for w in weeks for c in w.campaigns]
    weeks_count = len(weeks)
    total_campaigns = len(campaigns)
    revenue = sum(c.revenue for c in campaigns)
    emails = sum(c.emailsSent for c in campaigns)
    orders = sum(c.totalOrders for c in campaigns)
    opens = sum(c.uniqueOpens for c in campaigns)
    clicks = sum(c.uniqueClicks for c in campaigns)
    unsubs = sum(c.unsubscribesCount for c in campaigns)
    spam = sum(c.spamComplaintsCount for c in campaigns)
    bounces = sum(c.bouncesCount for c in campaigns)

    weekly_revenue = [w.revenue for w in weeks]
    mask = iqr_filter_mask(weekly_revenue, settings.frequency_iqr_multiplier)
    kept = [w for w, keep in zip(weeks, mask) if keep]
    w_mean, w_std = weighted_mean_std(
        [w.revenue for w in kept],
        [float(w.position) for w in kept],
    )
    std_error = w_std / math.sqrt(len(kept)) if kept else 0.0

    return FrequencyBucketAggregate(
        key=key,
        weeksCount=weeks_count,
        weeksFiltered=weeks_count - len(kept),
        totalCampaigns=total_campaigns,
        totalEmails=emails,
        totalRevenue=revenue,
        totalOrders=orders,
        avgWeeklyRevenue=revenue / weeks_count if weeks_count else 0.0,
        weightedWeeklyRevenue=w_mean,
        weeklyRevenueStd=w_std,
        stdError=std_error,
        lowerConfidenceBound=w_mean - settings.lcb_z_score * std_error,
        avgWeeklyEmails=emails / weeks_count if weeks_count else 0.0,
        avgCampaignRevenue=revenue / total_campaigns if total_campaigns else 0.0,
        avgCampaignEmails=emails / total_campaigns if total_campaigns else 0.0,
        avgOrderValue=revenue / orders if orders > 0 else 0.0,
        revenuePerEmail=revenue / emails if emails > 0 else 0.0,
        openRate=_rate(opens, emails),
        clickRate=_rate(clicks, emails),
        clickToOpenRate=_rate(clicks, opens),
        conversionRate=_rate(orders, clicks),
        unsubscribeRate=_rate(unsubs, emails),
        spamRate=_rate(spam, emails),
        bounceRate=_rate(bounces, emails),
    )


def compute_campaign_send_frequency(
    campaigns: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    settings: Optional[Settings] = None,
    history: Optional[Sequence[SendRecord]] = None,
) -> List[FrequencyBucketAggregate]:
    """
    Frequency buckets for the campaigns in ``[start, end]``.

    Args:
        campaigns: Campaign records (filtered to the range here).
        start: Range start.
        end: Range end.
        settings: Threshold overrides.
        history: Campaigns used for the trailing seasonal threshold; the
            full campaign list when omitted.

    Returns:
        Buckets ordered 1, 2, 3, 4+; buckets without weeks are omitted.
    """
    buckets, _, _ = _compute_buckets(campaigns, start, end, settings or get_settings(), history)
    return buckets


def _compute_buckets(campaigns, start, end, settings, history):
    in_range = filter_in_range(campaigns, start, end)
    weeks = _group_weeks(in_range, start)
    threshold = compute_seasonal_threshold(history if history is not None else campaigns, end, settings)

    excluded = 0
    if threshold is not None:
        kept_weeks = [w for w in weeks if len(w.campaigns) <= threshold]
        excluded = len(weeks) - len(kept_weeks)
        weeks = kept_weeks
        if excluded:
            logger.debug(f"Seasonal filter excluded {excluded} weeks above {threshold:.1f} campaigns")

    grouped: Dict[FrequencyBucketKey, List[_Week]] = defaultdict(list)
    for w in weeks:
        grouped[bucket_key_for(len(w.campaigns))].append(w)

    buckets = [
        _aggregate_bucket(key, grouped[key], settings)
        for key in BUCKET_ORDER
        if grouped.get(key)
    ]
    return buckets, threshold, excluded


# =============================================================================
# Guidance
# =============================================================================


def _sample_line(buckets: List[FrequencyBucketAggregate]) -> Optional[str]:
    weeks = sum(b.weeksCount for b in buckets)
    if not weeks:
        return None
    return f"Based on {weeks} {'week' if weeks == 1 else 'weeks'} of campaign activity."


def compute_send_frequency_guidance(
    buckets: List[FrequencyBucketAggregate],
    settings: Optional[Settings] = None,
    seasonal_threshold: Optional[float] = None,
    weeks_excluded: int = 0,
) -> FrequencyGuidance:
    """
    Recommend a campaign cadence from frequency buckets.

    The baseline is the dominant cadence (most weeks, ties to the lower
    cadence). Among buckets within red deliverability limits the one with
    the highest weighted weekly revenue is the target; it is recommended
    only when its lower confidence bound beats the baseline mean. A target
    observed in fewer than ``frequency_test_weeks`` weeks becomes a test.

    Returns:
        FrequencyGuidance; ``insufficient`` when there are no buckets.
    """
    settings = settings or get_settings()
    common = {
        "buckets": buckets,
        "sample": _sample_line(buckets),
        "seasonalThreshold": seasonal_threshold,
        "weeksExcludedSeasonal": weeks_excluded,
    }
    if not buckets:
        logger.debug("Send frequency guidance: no campaign weeks in range")
        return FrequencyGuidance(
            status=GuidanceStatus.INSUFFICIENT,
            recommendationKind=RecommendationKind.NOT_ENOUGH_DATA,
            title="Not enough data for a recommendation",
            message="No campaigns were found in the selected date range.",
            **common,
        )

    baseline = sorted(buckets, key=lambda b: (-b.weeksCount, BUCKET_ORDER[b.key]))[0]
    safe = [
        b for b in buckets
        if b.spamRate <= settings.spam_red_limit and b.bounceRate <= settings.bounce_red_limit
    ]
    if not safe:
        return FrequencyGuidance(
            status=GuidanceStatus.KEEP_AS_IS,
            recommendationKind=RecommendationKind.STAY,
            cadenceLabel=cadence_label(baseline.key),
            title="Fix deliverability before changing cadence",
            message=(
                "Every cadence in this range is above safe spam or bounce limits. "
                "Clean up targeting and list hygiene before sending more often."
            ),
            baselineKey=baseline.key,
            **common,
        )

    target = sorted(
        safe, key=lambda b: (-b.weightedWeeklyRevenue, BUCKET_ORDER[b.key])
    )[0]
    baseline_label = cadence_label(baseline.key)

    if target.key == baseline.key or target.lowerConfidenceBound <= baseline.weightedWeeklyRevenue:
        return FrequencyGuidance(
            status=GuidanceStatus.KEEP_AS_IS,
            recommendationKind=RecommendationKind.STAY,
            cadenceLabel=baseline_label,
            title=f"Stay with {baseline_label}",
            message=(
                f"{baseline_label} is performing consistently and no other cadence "
                "beats it with confidence. Keep gathering data before changing cadence."
            ),
            baselineKey=baseline.key,
            targetKey=baseline.key,
            **common,
        )

    higher = BUCKET_ORDER[target.key] > BUCKET_ORDER[baseline.key]
    target_label = cadence_label(target.key)
    weekly_gain = (target.weightedWeeklyRevenue - baseline.weightedWeeklyRevenue) * settings.conservative_factor

    if target.weeksCount < settings.frequency_test_weeks:
        kind = RecommendationKind.TEST
        title = f"Test {target_label}"
        message = (
            f"{target_label} weeks look stronger than {baseline_label}, but only "
            f"{target.weeksCount} {'week was' if target.weeksCount == 1 else 'weeks were'} observed. "
            "Run a short test before committing."
        )
    else:
        kind = RecommendationKind.SCALE_UP if higher else RecommendationKind.SCALE_DOWN
        title = f"Send {target_label}" if higher else f"Shift to {target_label}"
        message = (
            f"{target_label} weeks earned more than {baseline_label} even at the low end of "
            "their confidence range, with spam and bounces inside safe limits."
        )

    return FrequencyGuidance(
        status=GuidanceStatus.SEND_MORE if higher else GuidanceStatus.SEND_LESS,
        recommendationKind=kind,
        cadenceLabel=target_label,
        title=title,
        message=message,
        baselineKey=baseline.key,
        targetKey=target.key,
        estimatedWeeklyGain=round(weekly_gain, 2) if weekly_gain > 0 else None,
        estimatedMonthlyGain=round(weekly_gain * settings.weeks_per_month, 2) if weekly_gain > 0 else None,
        **common,
    )


def analyze_send_frequency(
    campaigns: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    settings: Optional[Settings] = None,
    history: Optional[Sequence[SendRecord]] = None,
) -> FrequencyGuidance:
    """Bucket the range and produce guidance in one call."""
    settings = settings or get_settings()
    buckets, threshold, excluded = _compute_buckets(campaigns, start, end, settings, history)
    return compute_send_frequency_guidance(buckets, settings, threshold, excluded)
