"""
Revenue reliability score.

Measures how steady weekly revenue is over the most recent complete weeks
using a robust dispersion ratio:

    reliability = round(exp(-1.15 * MAD / median) * 100)

so a perfectly flat series scores 100 and a series whose typical deviation
equals its median scores about 32. The trend delta compares the score with
the same-sized window shifted one week back.

Points for charting carry a robust z-score ``(v - median) / (1.4826 * MAD)``
and are flagged as anomalies beyond |z| > 2.5.

Usage:
    from email_analytics.services.reliability import analyze_revenue_reliability

    result = analyze_revenue_reliability(campaigns, flows, start, end)
    print(result.reliability, result.trendDelta)
"""

import logging
import math
from datetime import datetime
from typing import List, Optional, Sequence

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import Channel
from email_analytics.models.schemas import (
    ReliabilityPoint,
    ReliabilityResult,
    SendRecord,
    WeeklyRevenueAggregate,
)
from email_analytics.services.bucketing import build_weekly_revenue_aggregates
from email_analytics.services.stats import MAD_SCALE, median

logger = logging.getLogger(__name__)

# Calibration constant of the exponential score
RELIABILITY_K = 1.15

# Conservative share of neighbouring campaign revenue assumed lost in a
# zero-campaign week
LOST_REVENUE_FACTOR = 0.75

# Extra weeks of context shown before the analysis window
CONTEXT_WEEKS = 4


def _scoped_revenue(week: WeeklyRevenueAggregate, scope: Optional[Channel]) -> float:
    if scope == Channel.CAMPAIGNS:
        return week.campaignRevenue
    if scope == Channel.FLOWS:
        return week.flowRevenue
    return week.totalRevenue


def _score(values: Sequence[float]):
    positives = [v for v in values if v > 0]
    med = median(positives or list(values))
    if med <= 0:
        return None, med, 0.0
    mad = median([abs(v - med) for v in values])
    return math.exp(-RELIABILITY_K * mad / med), med, mad


def _zero_campaign_losses(weeks: Sequence[WeeklyRevenueAggregate]):
    """Count complete zero-campaign weeks and value them from their neighbours."""
    series = [w.campaignRevenue for w in weeks]
    non_zero = [i for i, v in enumerate(series) if v > 0]
    if not non_zero:
        return 0, 0.0

    zero_idx = [i for i, w in enumerate(weeks) if w.isComplete and w.campaignRevenue == 0]
    lost = 0.0
    for zi in zero_idx:
        prev_idx = next((i for i in reversed(non_zero) if i < zi), None)
        next_idx = next((i for i in non_zero if i > zi), None)
        if prev_idx is not None and next_idx is not None:
            lost += LOST_REVENUE_FACTOR * (series[prev_idx] + series[next_idx]) / 2
        elif prev_idx is not None:
            lost += LOST_REVENUE_FACTOR * series[prev_idx]
        elif next_idx is not None:
            lost += LOST_REVENUE_FACTOR * series[next_idx]
    return len(zero_idx), lost


def compute_reliability(
    weeks: Sequence[WeeklyRevenueAggregate],
    scope: Optional[Channel] = None,
    settings: Optional[Settings] = None,
) -> ReliabilityResult:
    """
    Reliability of weekly revenue over the trailing complete weeks.

    Args:
        weeks: Ordered weekly aggregates (see ``build_weekly_revenue_aggregates``).
        scope: Campaign or flow revenue only; None for both.
        settings: Window size and minimum periods.

    Returns:
        ReliabilityResult, flagged ``insufficient`` with fewer than
        ``reliability_min_periods`` complete weeks.
    """
    settings = settings or get_settings()
    window_size = settings.reliability_window_weeks
    min_periods = settings.reliability_min_periods

    if not weeks:
        return ReliabilityResult(scope=scope, insufficient=True)

    series = [_scoped_revenue(w, scope) for w in weeks]
    complete = [v for v, w in zip(series, weeks) if w.isComplete]
    if len(complete) < min_periods:
        logger.debug(f"Reliability skipped: {len(complete)} complete weeks")
        return ReliabilityResult(scope=scope, insufficient=True, windowWeeks=len(complete))

    window = complete[-window_size:]
    # Expand backward when the recent window is mostly empty
    desired_non_zero = min(3, max(1, window_size // 4))
    non_zero = sum(1 for v in window if v > 0)
    if non_zero < desired_non_zero and len(complete) > len(window):
        idx = len(complete) - len(window) - 1
        while idx >= 0 and non_zero < desired_non_zero:
            if complete[idx] > 0:
                non_zero += 1
            idx -= 1
        window = complete[max(0, idx + 1):]

    raw, med, mad = _score(window)
    if raw is None:
        return ReliabilityResult(scope=scope, reliability=0, windowWeeks=len(window))

    trend_delta = None
    if len(complete) >= len(window) + min_periods:
        prev_window = complete[-(len(window) + 1):-1]
        prev_raw, _, _ = _score(prev_window)
        if prev_raw is not None:
            trend_delta = int(round(raw * 100 - prev_raw * 100))

    points: List[ReliabilityPoint] = []
    context = min(window_size + CONTEXT_WEEKS, len(weeks))
    for w, revenue in zip(weeks[-context:], series[-context:]):
        z = (revenue - med) / (MAD_SCALE * mad) if mad > 0 else None
        points.append(ReliabilityPoint(
            weekStart=w.weekStart,
            label=w.label,
            revenue=revenue,
            index=revenue / med,
            robustZ=z,
            isAnomaly=z is not None and abs(z) > settings.reliability_anomaly_z,
        ))

    zero_weeks, lost = (0, 0.0) if scope == Channel.FLOWS else _zero_campaign_losses(weeks)

    return ReliabilityResult(
        scope=scope,
        reliability=int(round(raw * 100)),
        trendDelta=trend_delta,
        median=med,
        mad=mad,
        windowWeeks=len(window),
        points=points,
        zeroCampaignWeeks=zero_weeks,
        estimatedLostRevenue=lost,
    )


def analyze_revenue_reliability(
    campaigns: Sequence[SendRecord],
    flows: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    scope: Optional[Channel] = None,
    settings: Optional[Settings] = None,
) -> ReliabilityResult:
    weeks = build_weekly_revenue_aggregates(campaigns, flows, start, end)
    return compute_reliability(weeks, scope=scope, settings=settings)
