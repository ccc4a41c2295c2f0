"""
Send-volume impact models.

Answers "should this channel send more, less or the same?" with one of two
interchangeable models selected by ``SendVolumeModel``:

correlation (default)
    Weekly series (monthly when there are fewer than 6 weekly points) of
    emails, revenue and unsubscribe/spam/bounce rates. Pearson r of volume
    against each metric is mapped to an integer score:

        r >= 0.35 -> 2, r >= 0.15 -> 1, r <= -0.35 -> -2, r <= -0.15 -> -1

    The risk score is the larger of the positive risk-correlation scores
    and a severity score from the worst observed rate relative to its
    threshold. Strong revenue correlation buys extra tolerance before the
    severity score kicks in.

log_regression
    Fits ``revenue = a + b * ln(volume)`` over weekly campaign volume with
    scikit-learn. A red-zone account average is an unconditional
    ``send-less`` (kill switch); a flat volume history cannot be modelled;
    the fit is trusted only above R^2 0.1.

Usage:
    from email_analytics.services.send_volume import compute_send_volume_guidance

    result = compute_send_volume_guidance(Channel.CAMPAIGNS, records, start, end)
    print(result.model, result.status, result.message)
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression
from sklearn.metrics import r2_score

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import Channel, Granularity, GuidanceStatus, RiskZone, SendVolumeModel, SendVolumePeriod
from email_analytics.models.schemas import (
    CorrelationSendVolumeResult,
    RegressionSendVolumeResult,
    SendRecord,
    SendVolumePoint,
    VolumeCorrelations,
)
from email_analytics.services.bucketing import build_period_aggregates, filter_in_range, monday_of
from email_analytics.services.deliverability import get_risk_zone
from email_analytics.services.stats import coefficient_of_variation, pearson_correlation

logger = logging.getLogger(__name__)


# =============================================================================
# Messages
# =============================================================================

STATUS_MESSAGES: Dict[Channel, Dict[GuidanceStatus, str]] = {
    Channel.CAMPAIGNS: {
        GuidanceStatus.SEND_MORE: (
            "When you sent more campaigns during the review period, revenue increased without "
            "hurting deliverability. Try sending more frequently and monitor reputation and engagement."
        ),
        GuidanceStatus.SEND_LESS: (
            "At the current campaign volume, deliverability and engagement have been declining, and "
            "sending more did not drive meaningful revenue. Reduce frequency to protect sender reputation."
        ),
        GuidanceStatus.KEEP_AS_IS: (
            "Your current campaign frequency supports healthy reputation. When you pushed higher, "
            "revenue gains were too small to justify the added risk. Stay on your current schedule."
        ),
    },
    Channel.FLOWS: {
        GuidanceStatus.SEND_MORE: (
            "When overall flow sends increased, revenue went up without damaging reputation. Review "
            "the flow step analysis to see which flows and steps drive these gains, and consider "
            "extending high-performing flows."
        ),
        GuidanceStatus.SEND_LESS: (
            "Increasing flow volume has not brought meaningful revenue and has strained deliverability. "
            "Use the flow step analysis to identify flows or steps that should be scaled back or removed."
        ),
        GuidanceStatus.KEEP_AS_IS: (
            "Your current flow volume supports good deliverability. Sending more added little revenue. "
            "Use the flow step analysis to refine: some flows may still be expandable while weaker "
            "steps might need trimming."
        ),
    },
}

INSUFFICIENT_MESSAGES: Dict[Channel, str] = {
    Channel.CAMPAIGNS: (
        "There is not enough consistent campaign data to measure how changes in send volume affect "
        "revenue or reputation. Try a longer date range before changing your sending frequency."
    ),
    Channel.FLOWS: (
        "There is not enough consistent flow data to measure how send volume impacts performance. "
        "Try a longer date range to uncover stronger patterns."
    ),
}

REGRESSION_MESSAGES: Dict[str, str] = {
    "kill_switch": "Critical deliverability risk detected. Reduce volume immediately.",
    "no_variance": "Volume is too consistent to model. Increase volume by 20-30% to generate data.",
    "weak_fit": (
        "There is no consistent relationship between your send volume and revenue. This often means "
        "content quality or offer timing matters more than how many emails you send."
    ),
    "positive": (
        "Your historical data shows a clear positive trend: as you increase send volume, revenue "
        "consistently grows. You have not hit the point of diminishing returns yet, so there is "
        "room to scale."
    ),
    "negative": (
        "Your data indicates diminishing returns. Recent high-volume weeks have yielded lower revenue "
        "efficiency. Scaling back could improve your ROI and protect deliverability."
    ),
    "flat": (
        "Your revenue is relatively flat regardless of volume changes. This suggests your audience is "
        "saturated at current levels. Focus on improving content relevance instead of sending more."
    ),
    "caution": " Proceed with caution: deliverability metrics are near warning thresholds.",
}

# Weeks averaged for the current volume baseline of the regression model
RECENT_WEEKS = 4
# Volume increase used for the projected gain
PROJECTION_LIFT = 1.2


# =============================================================================
# Shared Helpers
# =============================================================================


def correlation_to_score(r: Optional[float], settings: Optional[Settings] = None) -> int:
    """Map a correlation coefficient onto the -2..2 score scale."""
    settings = settings or get_settings()
    if r is None or not math.isfinite(r):
        return 0
    if r >= settings.volume_strong_correlation:
        return 2
    if r >= settings.volume_weak_correlation:
        return 1
    if r <= -settings.volume_strong_correlation:
        return -2
    if r <= -settings.volume_weak_correlation:
        return -1
    return 0


def _weighted_rates(records: Sequence[SendRecord]) -> Tuple[float, float]:
    emails = sum(r.emailsSent for r in records)
    if emails <= 0:
        return 0.0, 0.0
    spam = sum(r.spamComplaintsCount for r in records) / emails * 100
    bounce = sum(r.bouncesCount for r in records) / emails * 100
    return spam, bounce


def build_volume_series(
    records: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    period: SendVolumePeriod,
) -> List[SendVolumePoint]:
    """Weekly or monthly volume points; periods without sends are dropped."""
    granularity = Granularity.WEEKLY if period == SendVolumePeriod.WEEKLY else Granularity.MONTHLY
    return [
        SendVolumePoint(
            periodStart=agg.periodStart,
            emails=agg.emailsSent,
            revenue=agg.totalRevenue,
            unsubRate=agg.unsubscribeRate,
            spamRate=agg.spamRate,
            bounceRate=agg.bounceRate,
        )
        for agg in build_period_aggregates(records, start, end, granularity)
        if agg.emailsSent > 0
    ]


# =============================================================================
# Correlation Model
# =============================================================================


def _severity_score(points: List[SendVolumePoint], revenue_score: int, settings: Settings) -> int:
    """
    Severity from the worst observed rate relative to its threshold.

    2 when the worst ratio reaches the tolerance, 1 from three quarters of
    it, else 0. Tolerance is ``1 + 0.25 * max(0, revenue_score)``.
    """
    ratios = [
        max(p.unsubRate for p in points) / settings.unsubscribe_risk_limit,
        max(p.spamRate for p in points) / settings.spam_red_limit,
        max(p.bounceRate for p in points) / settings.bounce_red_limit,
    ]
    worst = max(ratios)
    tolerance = 1 + 0.25 * max(0, revenue_score)
    if worst >= tolerance:
        return 2
    if worst >= 0.75 * tolerance:
        return 1
    return 0


def compute_send_volume_correlation(
    channel: Channel,
    records: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    settings: Optional[Settings] = None,
) -> CorrelationSendVolumeResult:
    """
    Correlation-scored send-volume guidance for one channel.

    Args:
        channel: Campaigns or flows (selects the message set).
        records: Records of that channel.
        start: Range start.
        end: Range end.
        settings: Threshold overrides.

    Returns:
        CorrelationSendVolumeResult with ``send-more``, ``send-less``,
        ``keep-as-is`` or ``insufficient``.
    """
    settings = settings or get_settings()
    in_range = filter_in_range(records, start, end)

    period = SendVolumePeriod.WEEKLY
    points = build_volume_series(in_range, start, end, period)
    if len(points) < settings.volume_min_weekly_points:
        period = SendVolumePeriod.MONTHLY
        points = build_volume_series(in_range, start, end, period)
        if len(points) < settings.volume_min_monthly_points:
            logger.debug(f"Send volume ({channel.value}): {len(points)} monthly points, insufficient")
            return CorrelationSendVolumeResult(
                channel=channel,
                status=GuidanceStatus.INSUFFICIENT,
                message=INSUFFICIENT_MESSAGES[channel],
                sampleSize=len(points),
            )

    emails = [p.emails for p in points]
    correlations = VolumeCorrelations(
        revenue=pearson_correlation(emails, [p.revenue for p in points]),
        unsubRate=pearson_correlation(emails, [p.unsubRate for p in points]),
        spamRate=pearson_correlation(emails, [p.spamRate for p in points]),
        bounceRate=pearson_correlation(emails, [p.bounceRate for p in points]),
    )

    revenue_score = correlation_to_score(correlations.revenue, settings)
    correlation_risk = max(
        max(0, correlation_to_score(r, settings))
        for r in (correlations.unsubRate, correlations.spamRate, correlations.bounceRate)
    )
    risk_score = max(correlation_risk, _severity_score(points, revenue_score, settings))

    avg_spam, avg_bounce = _weighted_rates(in_range)
    breached = avg_spam > settings.spam_red_limit or avg_bounce > settings.bounce_red_limit

    if breached or risk_score >= 2 or revenue_score <= -1:
        status = GuidanceStatus.SEND_LESS
    elif (revenue_score >= 2 and risk_score <= 1) or (revenue_score >= 1 and risk_score == 0):
        status = GuidanceStatus.SEND_MORE
    else:
        status = GuidanceStatus.KEEP_AS_IS

    return CorrelationSendVolumeResult(
        channel=channel,
        status=status,
        message=STATUS_MESSAGES[channel][status],
        sampleSize=len(points),
        period=period,
        correlations=correlations,
        revenueScore=revenue_score,
        riskScore=risk_score,
        deliverabilityBreached=breached,
        avgSpamRate=avg_spam,
        avgBounceRate=avg_bounce,
        points=points,
    )


# =============================================================================
# Log Regression Model
# =============================================================================


def compute_optimal_volume_window(
    records: Sequence[SendRecord],
    settings: Optional[Settings] = None,
) -> Tuple[int, bool]:
    """
    Lookback suited to the sender's cadence.

    Returns:
        Tuple of (days, is_high_volume): 90 days for senders averaging 3+
        campaigns per week over the trailing 90 days, else 180.
    """
    settings = settings or get_settings()
    if not records:
        return 180, False
    last = max(r.sentDate for r in records)
    recent = [r for r in records if r.sentDate > last - timedelta(days=90)]
    first_recent = min(r.sentDate for r in recent)
    duration_days = max(1, (last - first_recent).days)
    weeks = max(1.0, duration_days / 7)
    is_high_volume = len(recent) / weeks >= 3
    return (90 if is_high_volume else 180), is_high_volume


def _weekly_frame(records: Sequence[SendRecord]) -> pd.DataFrame:
    frame = pd.DataFrame({
        "weekStart": [monday_of(r.sentDate) for r in records],
        "volume": [r.emailsSent for r in records],
        "revenue": [r.revenue for r in records],
    })
    weekly = frame.groupby("weekStart", as_index=False).sum().sort_values("weekStart")
    return weekly[weekly["volume"] > 0].reset_index(drop=True)


def compute_send_volume_regression(
    channel: Channel,
    records: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    settings: Optional[Settings] = None,
) -> RegressionSendVolumeResult:
    """
    Logarithmic-regression send-volume guidance.

    Sends under ``volume_regression_min_emails`` recipients are ignored as
    tests. Requires 12 qualified sends over at least 90 days.

    Returns:
        RegressionSendVolumeResult with ``send-more``, ``send-less``,
        ``optimize`` or ``insufficient``; ``projectedMonthlyGain`` is set
        only for a trusted positive slope.
    """
    settings = settings or get_settings()
    lookback_days = max(0, (end - start).days)
    window_days, is_high_volume = compute_optimal_volume_window(records, settings)
    qualified = [
        r for r in filter_in_range(records, start, end)
        if r.emailsSent >= settings.volume_regression_min_emails
    ]
    common = {
        "channel": channel,
        "sampleSize": len(qualified),
        "lookbackDays": lookback_days,
        "optimalWindowDays": window_days,
        "isHighVolume": is_high_volume,
    }

    if (
        len(qualified) < settings.volume_regression_min_campaigns
        or lookback_days < settings.volume_regression_min_days
    ):
        return RegressionSendVolumeResult(
            status=GuidanceStatus.INSUFFICIENT,
            message=(
                f"Not enough data. Need {settings.volume_regression_min_campaigns} sends and "
                f"{settings.volume_regression_min_days} days of history."
            ),
            **common,
        )

    avg_spam, avg_bounce = _weighted_rates(qualified)
    common.update(avgSpamRate=avg_spam, avgBounceRate=avg_bounce)
    if get_risk_zone(avg_spam, avg_bounce, settings) == RiskZone.RED:
        logger.info(f"Send volume kill switch: spam={avg_spam:.3f}% bounce={avg_bounce:.2f}%")
        return RegressionSendVolumeResult(
            status=GuidanceStatus.SEND_LESS,
            message=REGRESSION_MESSAGES["kill_switch"],
            killSwitch=True,
            **common,
        )

    weekly = _weekly_frame(qualified)
    cv = coefficient_of_variation(weekly["volume"].tolist())
    cv_pct = cv * 100 if cv is not None else 0.0
    common["coefficientOfVariation"] = cv_pct
    if cv_pct < settings.volume_min_variance_pct:
        return RegressionSendVolumeResult(
            status=GuidanceStatus.SEND_MORE,
            message=REGRESSION_MESSAGES["no_variance"],
            **common,
        )

    features = np.log(weekly[["volume"]].to_numpy(dtype=np.float64))
    target = weekly["revenue"].to_numpy(dtype=np.float64)
    model = LinearRegression().fit(features, target)
    slope = float(model.coef_[0])
    intercept = float(model.intercept_)
    r_squared = float(r2_score(target, model.predict(features)))

    current = float(weekly["volume"].iloc[-RECENT_WEEKS:].mean())
    common.update(
        slope=slope,
        intercept=intercept,
        rSquared=r_squared,
        currentWeeklyVolume=current,
    )

    projected = None
    if r_squared < settings.volume_regression_min_r2:
        status, message = GuidanceStatus.OPTIMIZE, REGRESSION_MESSAGES["weak_fit"]
    elif slope > settings.volume_regression_slope:
        status, message = GuidanceStatus.SEND_MORE, REGRESSION_MESSAGES["positive"]
        # f(1.2x) - f(x) for f = a + b·ln(x)
        weekly_gain = slope * math.log(PROJECTION_LIFT)
        projected = float(round(weekly_gain * settings.weeks_per_month))
    elif slope < -settings.volume_regression_slope:
        status, message = GuidanceStatus.SEND_LESS, REGRESSION_MESSAGES["negative"]
    else:
        status, message = GuidanceStatus.OPTIMIZE, REGRESSION_MESSAGES["flat"]

    caution = (
        status == GuidanceStatus.SEND_MORE
        and get_risk_zone(avg_spam, avg_bounce, settings) == RiskZone.YELLOW
    )
    if caution:
        message += REGRESSION_MESSAGES["caution"]

    return RegressionSendVolumeResult(
        status=status,
        message=message,
        projectedMonthlyGain=projected,
        cautionFlag=caution,
        **common,
    )


# =============================================================================
# Model Registry
# =============================================================================

SEND_VOLUME_MODELS: Dict[SendVolumeModel, Callable] = {
    SendVolumeModel.CORRELATION: compute_send_volume_correlation,
    SendVolumeModel.LOG_REGRESSION: compute_send_volume_regression,
}


def compute_send_volume_guidance(
    channel: Channel,
    records: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    model: SendVolumeModel = SendVolumeModel.CORRELATION,
    settings: Optional[Settings] = None,
):
    """
    Run the selected send-volume model.

    Returns:
        CorrelationSendVolumeResult or RegressionSendVolumeResult, tagged by
        their ``model`` field.
    """
    return SEND_VOLUME_MODELS[model](channel, records, start, end, settings)
