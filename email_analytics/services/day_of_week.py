"""
Campaign day-of-week performance.

Aggregates campaigns by the UTC weekday they were sent on and recommends
the day (or cluster of days) to concentrate sends on.

Scoring per eligible day (relative to the volume-weighted account average):
    revenueIndex     RPE / weighted RPE, dampened x0.7 when a single
                     campaign dominates the day's emails and revenue
    engagementIndex  0.5 * open + 0.3 * click + 0.2 * orders-per-email
    riskIndex        1 - min(0.4, 0.6 * spam excess + 0.4 * unsub excess)
    compositeScore   0.55 * revenue + 0.25 * engagement + 0.20 * risk

A day is eligible with at least 3 campaigns or max(1000, 2% of range
emails) emails. At least 4 weeks must be spanned by the range.

Usage:
    from email_analytics.services.day_of_week import compute_campaign_day_performance

    guidance = compute_campaign_day_performance(campaigns, start, end)
    print(guidance.state, guidance.recommendedDays)
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import DayOfWeek, DayPerformanceState
from email_analytics.models.schemas import DayOfWeekAggregate, DayOfWeekGuidance, SendRecord
from email_analytics.services.bucketing import filter_in_range, monday_of

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DAY_ORDER: List[DayOfWeek] = list(DayOfWeek)

DAY_NAMES: Dict[DayOfWeek, str] = {
    DayOfWeek.MON: "Monday",
    DayOfWeek.TUE: "Tuesday",
    DayOfWeek.WED: "Wednesday",
    DayOfWeek.THU: "Thursday",
    DayOfWeek.FRI: "Friday",
    DayOfWeek.SAT: "Saturday",
    DayOfWeek.SUN: "Sunday",
}

# Composite weights
REVENUE_WEIGHT = 0.55
ENGAGEMENT_WEIGHT = 0.25
RISK_WEIGHT = 0.20

# Engagement blend
OPEN_WEIGHT = 0.5
CLICK_WEIGHT = 0.3
CONVERSION_WEIGHT = 0.2

MAX_RISK_PENALTY = 0.4
VOLATILITY_EMAIL_SHARE = 0.6
VOLATILITY_REVENUE_MULTIPLE = 2.5
VOLATILITY_DAMPENING = 0.7

# Score cut-off, relative to the top day, for the Nth recommended day
INCLUSION_RATIOS = (1.0, 0.92, 0.90, 0.88)

# Unsubscribe rate excess (fraction) that flags a day as risky
RISK_UNSUB_EXCESS = 0.0015


def count_weeks_spanned(start: datetime, end: datetime) -> int:
    """Inclusive count of Monday weeks touched by ``[start, end]``."""
    if end < start:
        return 0
    return (monday_of(end) - monday_of(start)).days // 7 + 1


def join_days(days: Sequence[DayOfWeek]) -> str:
    """``Monday``, ``Monday and Tuesday``, ``Monday, Tuesday and Friday``."""
    names = [DAY_NAMES[d] for d in days]
    if len(names) <= 1:
        return "".join(names)
    return f"{', '.join(names[:-1])} and {names[-1]}"


def _rate(count: float, denominator: float) -> float:
    return count / denominator * 100 if denominator > 0 else 0.0


# =============================================================================
# Aggregation
# =============================================================================


def build_day_aggregates(
    campaigns: Sequence[SendRecord],
    settings: Optional[Settings] = None,
) -> List[DayOfWeekAggregate]:
    """
    Per-weekday aggregates with eligibility and relative indices.

    Days without campaigns are omitted. Indices are left at their defaults
    for ineligible days.
    """
    settings = settings or get_settings()
    by_day: Dict[int, List[SendRecord]] = {}
    for c in campaigns:
        by_day.setdefault(c.sentDate.weekday(), []).append(c)
    if not by_day:
        return []

    total_emails = sum(c.emailsSent for c in campaigns)
    min_emails = max(settings.day_min_emails, round(settings.day_min_email_share * total_emails))

    # Weighted account-level proportions
    w_rpe = sum(c.revenue for c in campaigns) / total_emails if total_emails > 0 else 0.0
    w_open = sum(c.uniqueOpens for c in campaigns) / total_emails if total_emails > 0 else 0.0
    w_click = sum(c.uniqueClicks for c in campaigns) / total_emails if total_emails > 0 else 0.0
    w_conv = sum(c.totalOrders for c in campaigns) / total_emails if total_emails > 0 else 0.0
    w_unsub = sum(c.unsubscribesCount for c in campaigns) / total_emails if total_emails > 0 else 0.0
    w_spam = sum(c.spamComplaintsCount for c in campaigns) / total_emails if total_emails > 0 else 0.0

    out = []
    for idx in sorted(by_day):
        members = by_day[idx]
        n = len(members)
        emails = sum(c.emailsSent for c in members)
        revenue = sum(c.revenue for c in members)
        orders = sum(c.totalOrders for c in members)
        opens = sum(c.uniqueOpens for c in members)
        clicks = sum(c.uniqueClicks for c in members)
        unsubs = sum(c.unsubscribesCount for c in members)
        spam = sum(c.spamComplaintsCount for c in members)
        bounces = sum(c.bouncesCount for c in members)
        eligible = n >= settings.day_min_campaigns or emails >= min_emails

        agg = {
            "day": DAY_ORDER[idx],
            "dayIndex": idx,
            "campaignCount": n,
            "totalEmails": emails,
            "totalRevenue": revenue,
            "totalOrders": orders,
            "avgCampaignRevenue": revenue / n,
            "revenuePerEmail": revenue / emails if emails > 0 else 0.0,
            "openRate": _rate(opens, emails),
            "clickRate": _rate(clicks, emails),
            "conversionRate": _rate(orders, clicks),
            "unsubscribeRate": _rate(unsubs, emails),
            "spamRate": _rate(spam, emails),
            "bounceRate": _rate(bounces, emails),
            "eligible": eligible,
        }

        if eligible and emails > 0:
            rpe = revenue / emails
            revenue_index = rpe / w_rpe if w_rpe > 0 else 0.0

            engagement = 0.0
            if w_open > 0:
                engagement += OPEN_WEIGHT * (opens / emails) / w_open
            if w_click > 0:
                engagement += CLICK_WEIGHT * (clicks / emails) / w_click
            if w_conv > 0:
                engagement += CONVERSION_WEIGHT * (orders / emails) / w_conv

            unsub_delta = max(0.0, (unsubs / emails - w_unsub) / max(w_unsub, 0.0001))
            spam_delta = max(0.0, (spam / emails - w_spam) / max(w_spam, 0.00005))
            risk_index = 1 - min(MAX_RISK_PENALTY, 0.6 * spam_delta + 0.4 * unsub_delta)

            by_revenue = sorted(members, key=lambda c: -c.revenue)
            largest = by_revenue[0]
            second_revenue = by_revenue[1].revenue if len(by_revenue) > 1 else 0.0
            volatile = (
                largest.emailsSent / emails >= VOLATILITY_EMAIL_SHARE
                and largest.revenue >= VOLATILITY_REVENUE_MULTIPLE * max(1.0, second_revenue)
            )
            if volatile:
                revenue_index *= VOLATILITY_DAMPENING

            agg.update(
                revenueIndex=revenue_index,
                engagementIndex=engagement,
                riskIndex=risk_index,
                compositeScore=(
                    REVENUE_WEIGHT * revenue_index
                    + ENGAGEMENT_WEIGHT * engagement
                    + RISK_WEIGHT * risk_index
                ),
                volatile=volatile,
            )
        out.append(DayOfWeekAggregate(**agg))
    return out


# =============================================================================
# Guidance
# =============================================================================


def _is_risky(day: DayOfWeekAggregate, weighted_unsub_pct: float, settings: Settings) -> bool:
    return (
        day.spamRate >= settings.day_risk_spam_block
        or day.unsubscribeRate >= weighted_unsub_pct + RISK_UNSUB_EXCESS * 100
    )


def _pick_days(
    ranked: List[DayOfWeekAggregate],
    frequency: int,
    weighted_unsub_pct: float,
    settings: Settings,
):
    """Top-cluster days for a cadence, with risky days swapped out."""
    top = ranked[0].compositeScore
    ratio = INCLUSION_RATIOS[min(frequency, len(INCLUSION_RATIOS)) - 1]
    chosen = [d for d in ranked if d.compositeScore >= top * ratio][:frequency]
    for d in ranked:
        if len(chosen) >= frequency:
            break
        if d not in chosen:
            chosen.append(d)

    risky = [d for d in chosen if _is_risky(d, weighted_unsub_pct, settings)]
    if len(chosen) > 1 and risky:
        kept = [d for d in chosen if d not in risky]
        alternates = [
            d for d in ranked
            if d not in chosen and not _is_risky(d, weighted_unsub_pct, settings)
        ]
        while len(kept) < len(chosen) and alternates:
            kept.append(alternates.pop(0))
        if kept:
            chosen = kept
            risky = []
    return chosen, risky


def compute_campaign_day_performance(
    campaigns: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    settings: Optional[Settings] = None,
    frequency_recommendation: Optional[int] = None,
) -> DayOfWeekGuidance:
    """
    Day-of-week aggregates and send-day guidance for a range.

    Args:
        campaigns: Campaign records (filtered to the range here).
        start: Range start.
        end: Range end.
        settings: Threshold overrides.
        frequency_recommendation: Recommended campaigns per week from the
            send-frequency module. Derived from the observed cadence when
            omitted.

    Returns:
        DayOfWeekGuidance. ``recommendedDays`` is ordered by composite score.
    """
    settings = settings or get_settings()
    in_range = filter_in_range(campaigns, start, end)
    weeks = count_weeks_spanned(start, end)

    if not in_range:
        return DayOfWeekGuidance(
            state=DayPerformanceState.NOT_ENOUGH_DATA,
            headline="Not enough data for a recommendation",
            message="No campaigns were found in this date range.",
            fullWeeks=weeks,
        )

    days = build_day_aggregates(in_range, settings)
    total_emails = sum(c.emailsSent for c in in_range)
    campaigns_per_week = len(in_range) / weeks if weeks > 0 else 0.0
    common = {
        "fullWeeks": weeks,
        "campaignsPerWeek": campaigns_per_week,
        "days": days,
        "sampleLine": (
            f"Based on {weeks} weeks / {len(in_range)} campaigns ({total_emails:,} emails)."
        ),
    }

    if weeks < settings.day_min_weeks:
        return DayOfWeekGuidance(
            state=DayPerformanceState.NOT_ENOUGH_DATA,
            headline="Not enough data for a recommendation",
            message=(
                f"At least {settings.day_min_weeks} full weeks are required. "
                f"Only {weeks} observed."
            ),
            **common,
        )

    ranked = sorted(
        (d for d in days if d.eligible),
        key=lambda d: (-d.compositeScore, d.dayIndex),
    )
    if not ranked:
        logger.debug("Day-of-week analysis: no day met the sample bar")
        return DayOfWeekGuidance(
            state=DayPerformanceState.NOT_ENOUGH_DATA,
            headline="Not enough data for a recommendation",
            message=(
                "No day met the sample bar yet. Keep sending across different days "
                "to build a comparison."
            ),
            **common,
        )

    top = ranked[0]
    if len(ranked) == 1:
        name = DAY_NAMES[top.day]
        return DayOfWeekGuidance(
            state=DayPerformanceState.EXPLORATORY,
            headline=f"Use {name} as an anchor day.",
            message=(
                f"Only {name} passed sampling so far. Continue testing other days "
                "before locking a pattern."
            ),
            recommendedDays=[top.day],
            **common,
        )

    scores = [d.compositeScore for d in ranked]
    spread = (max(scores) - min(scores)) / max(scores) if max(scores) > 0 else 0.0
    if spread < settings.day_even_spread:
        return DayOfWeekGuidance(
            state=DayPerformanceState.EVEN,
            headline="Performance is even across days.",
            message=(
                f"Revenue and engagement vary <{settings.day_even_spread * 100:.0f}% among "
                "sampled days. Maintain consistency. Focus testing on creative rather than "
                "shifting send days."
            ),
            **common,
        )

    second = ranked[1]
    clear_winner = (
        top.compositeScore >= second.compositeScore * settings.day_clear_winner_ratio
        and top.revenueIndex >= settings.day_clear_winner_ratio
    )

    frequency = frequency_recommendation or round(campaigns_per_week)
    frequency = max(1, min(4, frequency))

    weighted_unsub_pct = _rate(sum(c.unsubscribesCount for c in in_range), total_emails)
    weighted_rpe = sum(c.revenue for c in in_range) / total_emails if total_emails > 0 else 0.0

    if frequency == 1:
        if clear_winner:
            lift = (top.revenuePerEmail / weighted_rpe - 1) * 100 if weighted_rpe > 0 else 0.0
            name = DAY_NAMES[top.day]
            return DayOfWeekGuidance(
                state=DayPerformanceState.NORMAL,
                headline=f"Prioritize {name} sends.",
                message=(
                    f"{name} leads with ${top.revenuePerEmail:.3f} revenue per email, "
                    f"{lift:.0f}% above the account average, without an engagement tradeoff."
                ),
                recommendedDays=[top.day],
                **common,
            )
        return DayOfWeekGuidance(
            state=DayPerformanceState.CONSIDER,
            headline=(
                f"No clear leader. Consider {DAY_NAMES[top.day]} or {DAY_NAMES[second.day]}."
            ),
            message=(
                "Performance differences are within normal variance. Keep testing while "
                "avoiding overfitting to short-term spikes."
            ),
            recommendedDays=[top.day, second.day],
            **common,
        )

    chosen, risky = _pick_days(ranked, frequency, weighted_unsub_pct, settings)
    cluster_emails = sum(d.totalEmails for d in chosen)
    cluster_rpe = sum(d.totalRevenue for d in chosen) / cluster_emails if cluster_emails > 0 else 0.0
    over = (cluster_rpe / weighted_rpe - 1) * 100 if weighted_rpe > 0 else 0.0
    message = (
        f"These days form the top performance cluster (avg revenue/email ${cluster_rpe:.3f}; "
        f"{over:.0f}% over baseline) without meaningful engagement tradeoffs."
    )
    if risky:
        message += (
            f" Monitoring elevated complaints on {join_days([d.day for d in risky])}, "
            "keep copy and segmentation tight."
        )
    return DayOfWeekGuidance(
        state=DayPerformanceState.MULTI,
        headline=f"Focus sends on {join_days([d.day for d in chosen])}.",
        message=message,
        recommendedDays=[d.day for d in chosen],
        **common,
    )
