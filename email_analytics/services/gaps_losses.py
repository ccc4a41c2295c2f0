"""
Campaign gaps and lost-revenue estimator.

Classifies the Monday weeks of a range as:
    - zero-send: no campaigns and no campaign revenue
    - zero-revenue: campaigns were sent but earned $0

Runs of consecutive zero-send weeks are detected among complete weeks only.
Lost revenue is estimated per run:

    Short runs (1-4 weeks)
        Up to 4 non-zero reference weeks on each side of the run are
        trimmed (IQR 3x when there are at least 5 references, otherwise
        winsorized at P10/P90). Their median, capped at the P75 of non-zero
        weeks in range, is multiplied by the run length.

    Long runs (5+ weeks)
        Each week is estimated separately from the non-zero weeks within
        +/- 8 weeks (falling back to the global median when fewer than 4
        local references exist), capped at P75, and decayed by 0.95 per
        week beyond week 12 of the run.

A run of 10+ weeks raises ``suspectedCsvCoverageGap`` since such gaps are
often missing export data rather than a true pause. The flag does not
change the estimate.

Usage:
    from email_analytics.services.gaps_losses import compute_campaign_gaps_and_losses

    result = compute_campaign_gaps_and_losses(campaigns, flows, start, end)
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.schemas import GapsLossesResult, SendRecord, WeeklyRevenueAggregate
from email_analytics.services.bucketing import build_weekly_revenue_aggregates, filter_in_range
from email_analytics.services.stats import iqr_bounds, median, percentile, winsorize

logger = logging.getLogger(__name__)


def is_zero_send(week: WeeklyRevenueAggregate) -> bool:
    return week.campaignsSent == 0 and week.campaignRevenue == 0


def is_zero_revenue(week: WeeklyRevenueAggregate) -> bool:
    return week.campaignsSent > 0 and week.campaignRevenue == 0


def is_reference_week(week: WeeklyRevenueAggregate) -> bool:
    return week.campaignsSent > 0 and week.campaignRevenue > 0


def find_zero_send_runs(weeks: Sequence[WeeklyRevenueAggregate]) -> List[Tuple[int, int]]:
    """
    Runs of consecutive zero-send weeks.

    Returns:
        List of (start index, run length) tuples in week order.
    """
    runs = []
    i = 0
    while i < len(weeks):
        if not is_zero_send(weeks[i]):
            i += 1
            continue
        j = i
        while j < len(weeks) and is_zero_send(weeks[j]):
            j += 1
        runs.append((i, j - i))
        i = j
    return runs


def _trim_references(values: List[float]) -> List[float]:
    if len(values) >= 5:
        lo, hi = iqr_bounds(values, multiplier=3.0)
        return [v for v in values if lo <= v <= hi]
    return winsorize(values, 0.10, 0.90)


def _short_run_references(
    weeks: Sequence[WeeklyRevenueAggregate],
    start_idx: int,
    length: int,
    per_side: int,
) -> List[float]:
    refs = []
    found = 0
    for k in range(start_idx - 1, -1, -1):
        if found >= per_side:
            break
        if is_reference_week(weeks[k]):
            refs.append(weeks[k].campaignRevenue)
            found += 1
    found = 0
    for k in range(start_idx + length, len(weeks)):
        if found >= per_side:
            break
        if is_reference_week(weeks[k]):
            refs.append(weeks[k].campaignRevenue)
            found += 1
    return refs


def estimate_short_run(
    weeks: Sequence[WeeklyRevenueAggregate],
    start_idx: int,
    length: int,
    cap: float,
    settings: Settings,
) -> float:
    refs = _short_run_references(weeks, start_idx, length, settings.gap_refs_per_side)
    if not refs:
        return 0.0
    trimmed = _trim_references(refs)
    if not trimmed:
        return 0.0
    return min(median(trimmed), cap) * length


def estimate_long_run(
    weeks: Sequence[WeeklyRevenueAggregate],
    start_idx: int,
    length: int,
    cap: float,
    global_median: float,
    settings: Settings,
) -> float:
    window = settings.gap_local_window_weeks
    total = 0.0
    for k in range(length):
        idx = start_idx + k
        lo, hi = max(0, idx - window), min(len(weeks), idx + window + 1)
        local = [w.campaignRevenue for w in weeks[lo:hi] if is_reference_week(w)]
        expected = median(local) if len(local) >= settings.gap_min_local_refs else global_median
        expected = min(expected, cap)
        week_number = k + 1
        if week_number > settings.gap_decay_after_weeks:
            expected *= settings.gap_decay_rate ** (week_number - settings.gap_decay_after_weeks)
        total += expected
    return total


def compute_campaign_gaps_and_losses(
    campaigns: Sequence[SendRecord],
    flows: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    settings: Optional[Settings] = None,
) -> GapsLossesResult:
    """
    Detect weeks without campaigns and estimate the revenue they cost.

    Args:
        campaigns: Campaign records.
        flows: Flow records (carried into the weekly split only).
        start: Range start.
        end: Range end.
        settings: Threshold overrides.

    Returns:
        GapsLossesResult. ``estimatedLostRevenue`` is None when there are
        fewer than ``gap_min_nonzero_weeks`` non-zero complete weeks.
    """
    settings = settings or get_settings()
    weeks = build_weekly_revenue_aggregates(campaigns, flows, start, end)
    complete = [w for w in weeks if w.isComplete]

    if not complete:
        return GapsLossesResult(insufficientHistoryForEstimator=True)

    runs = find_zero_send_runs(complete)
    zero_send_weeks = sum(length for _, length in runs)
    longest = max((length for _, length in runs), default=0)
    sent_weeks = sum(1 for w in complete if w.campaignsSent > 0)
    low_effectiveness = sum(1 for c in filter_in_range(campaigns, start, end) if c.revenue == 0)

    result = {
        "zeroCampaignSendWeeks": zero_send_weeks,
        "longestZeroSendGap": longest,
        "zeroSendWeekStarts": [w.weekStart for w in complete if is_zero_send(w)],
        "zeroRevenueWeekStarts": [w.weekStart for w in complete if is_zero_revenue(w)],
        "pctWeeksWithCampaignsSent": sent_weeks / len(complete) * 100,
        "lowEffectivenessCampaigns": low_effectiveness,
        "avgCampaignsPerWeek": sum(w.campaignsSent for w in complete) / len(complete),
        "allWeeksSent": zero_send_weeks == 0,
        "weeksInRangeFull": len(complete),
        "weeksWithCampaignsSent": sent_weeks,
        "suspectedCsvCoverageGap": longest >= settings.gap_coverage_hint_weeks,
    }

    non_zero = [w.campaignRevenue for w in complete if is_reference_week(w)]
    if len(non_zero) < settings.gap_min_nonzero_weeks:
        logger.debug(f"Gap estimator skipped: {len(non_zero)} non-zero complete weeks")
        return GapsLossesResult(insufficientHistoryForEstimator=True, **result)

    cap = percentile(non_zero, settings.gap_reference_cap_percentile)
    global_median = median(non_zero)
    lost = 0.0
    for start_idx, length in runs:
        if length <= settings.gap_short_run_max_weeks:
            lost += estimate_short_run(complete, start_idx, length, cap, settings)
        else:
            lost += estimate_long_run(complete, start_idx, length, cap, global_median, settings)

    return GapsLossesResult(
        insufficientHistoryForEstimator=False,
        estimatedLostRevenue=lost,
        **result,
    )
