"""
Deliverability zone classifier.

Maps spam and bounce rates (both in percent) onto a green/yellow/red risk
zone and a 0-20 point deliverability score, with two refinements:

- Low-volume adjustment: a segment carrying under 0.5% of account sends
  whose zone would score under 15 points has its points pulled toward 20
  (at most half of the remaining gap), since a red verdict on a handful of
  sends is statistically unreliable.
- Context-aware zone: a raw red verdict is downgraded to yellow unless the
  segment is statistically significant AND either the account itself is
  unhealthy or the segment contributes disproportionately to account
  complaints/bounces, or unless the segment's rates are severe outright
  (over 3x the red limit).

Thresholds (from Settings):
    spam green < 0.10%, red > 0.20%
    bounce green < 2.0%, red > 3.0%

Usage:
    from email_analytics.services.deliverability import get_risk_zone

    zone = get_risk_zone(spam_rate=0.15, bounce_rate=1.0)  # RiskZone.YELLOW
"""

import logging
import math
from typing import Optional

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import RiskZone
from email_analytics.models.schemas import AccountContext, ContextualZone, DeliverabilityPoints

logger = logging.getLogger(__name__)


# =============================================================================
# Zone Classification
# =============================================================================


def get_risk_zone(
    spam_rate: float,
    bounce_rate: float,
    settings: Optional[Settings] = None,
) -> RiskZone:
    """
    Classify spam and bounce rates into a risk zone.

    Either metric alone can make a segment red.

    Args:
        spam_rate: Spam complaint rate in percent (0.05 means 0.05%).
        bounce_rate: Bounce rate in percent.
        settings: Threshold overrides.

    Returns:
        RiskZone.RED if either rate exceeds its red limit, RiskZone.YELLOW if
        either is at or above its green limit, else RiskZone.GREEN.

    Example:
        >>> get_risk_zone(0.05, 3.5)
        <RiskZone.RED: 'red'>
    """
    settings = settings or get_settings()
    if spam_rate > settings.spam_red_limit or bounce_rate > settings.bounce_red_limit:
        return RiskZone.RED
    if spam_rate >= settings.spam_green_limit or bounce_rate >= settings.bounce_green_limit:
        return RiskZone.YELLOW
    return RiskZone.GREEN


def zone_points(zone: RiskZone, settings: Optional[Settings] = None) -> float:
    settings = settings or get_settings()
    if zone == RiskZone.GREEN:
        return settings.green_zone_points
    if zone == RiskZone.YELLOW:
        return settings.yellow_zone_points
    return settings.red_zone_points


def _apply_low_volume(
    base: float,
    send_share: Optional[float],
    settings: Settings,
):
    threshold = settings.low_volume_share_threshold
    applies = (
        base < settings.low_volume_points_ceiling
        and send_share is not None
        and 0 < send_share < threshold
    )
    if not applies:
        return base, False
    factor = 1 - send_share / threshold
    boosted = base + (settings.green_zone_points - base) * factor * 0.5
    return boosted, True


def get_deliverability_points(
    spam_rate: float,
    bounce_rate: float,
    send_share: Optional[float] = None,
    settings: Optional[Settings] = None,
) -> DeliverabilityPoints:
    """
    Deliverability pillar points (0-20) with the low-volume adjustment.

    Args:
        spam_rate: Spam rate in percent.
        bounce_rate: Bounce rate in percent.
        send_share: Fraction (0-1) of account sends carried by the segment.
        settings: Threshold overrides.

    Returns:
        DeliverabilityPoints with the zone and whether the boost applied.
    """
    settings = settings or get_settings()
    zone = get_risk_zone(spam_rate, bounce_rate, settings)
    points, adjusted = _apply_low_volume(zone_points(zone, settings), send_share, settings)
    return DeliverabilityPoints(
        points=min(settings.green_zone_points, max(0.0, points)),
        zone=zone,
        lowVolumeAdjusted=adjusted,
    )


def get_deliverability_zone_with_context(
    spam_rate: float,
    bounce_rate: float,
    emails_sent: int,
    spam_complaints: int,
    bounces: int,
    account: Optional[AccountContext] = None,
    settings: Optional[Settings] = None,
) -> ContextualZone:
    """
    Context-aware zone for a single segment (typically a flow step).

    A raw red verdict stands only when:
        (a) the segment has at least ``context_min_sends`` sends AND either
            the account's own spam/bounce rate is above its red limit or the
            segment's share of account complaints (or bounces) exceeds
            ``context_disproportion_multiplier`` times its share of sends; or
        (b) a segment rate exceeds ``context_severe_multiplier`` times its
            red limit.
    Otherwise the segment is treated as yellow.

    Returns:
        ContextualZone with raw/effective zones, points and the reason.
    """
    settings = settings or get_settings()
    raw = get_risk_zone(spam_rate, bounce_rate, settings)
    # Without account context the segment is its own account
    account = account or AccountContext(
        accountSends=emails_sent,
        accountSpamComplaints=spam_complaints,
        accountBounces=bounces,
        accountSpamRate=spam_rate,
        accountBounceRate=bounce_rate,
    )

    send_share = emails_sent / account.accountSends if account.accountSends > 0 else None

    if raw != RiskZone.RED:
        points = get_deliverability_points(spam_rate, bounce_rate, send_share, settings)
        return ContextualZone(
            rawZone=raw,
            effectiveZone=raw,
            points=points.points,
            wasDowngraded=False,
            lowVolumeAdjusted=points.lowVolumeAdjusted,
        )

    severe = (
        spam_rate > settings.spam_red_limit * settings.context_severe_multiplier
        or bounce_rate > settings.bounce_red_limit * settings.context_severe_multiplier
    )

    significant = emails_sent >= settings.context_min_sends
    account_unhealthy = (
        account.accountSpamRate > settings.spam_red_limit
        or account.accountBounceRate > settings.bounce_red_limit
    )
    disproportionate = False
    if send_share is not None and send_share > 0:
        limit = settings.context_disproportion_multiplier * send_share
        if account.accountSpamComplaints > 0:
            disproportionate |= spam_complaints / account.accountSpamComplaints > limit
        if account.accountBounces > 0:
            disproportionate |= bounces / account.accountBounces > limit

    if severe:
        reason = "Rates exceed three times the safe limit"
    elif significant and account_unhealthy:
        reason = "Account-wide deliverability is above safe limits"
    elif significant and disproportionate:
        reason = "Segment drives a disproportionate share of account complaints or bounces"
    else:
        reason = None

    if reason is not None:
        return ContextualZone(
            rawZone=raw,
            effectiveZone=RiskZone.RED,
            points=settings.red_zone_points,
            wasDowngraded=False,
            reason=reason,
        )

    logger.debug(
        f"Downgrading red zone to yellow (sends={emails_sent}, spam={spam_rate:.3f}, bounce={bounce_rate:.2f})"
    )
    points, adjusted = _apply_low_volume(settings.yellow_zone_points, send_share, settings)
    return ContextualZone(
        rawZone=raw,
        effectiveZone=RiskZone.YELLOW,
        points=min(settings.green_zone_points, max(0.0, points)),
        wasDowngraded=True,
        lowVolumeAdjusted=adjusted,
        reason="Low volume or proportionate share of account complaints",
    )


# =============================================================================
# Sample Size Helpers
# =============================================================================


def compute_optimal_lookback_days(
    total_sends: float,
    days_in_range: int,
    settings: Optional[Settings] = None,
) -> int:
    """
    Days of history a segment needs to reach the minimum sample size.

    High-volume segments need shorter windows, low-volume ones longer; the
    result is clamped to ``[min_lookback_days, max_lookback_days]``.
    """
    settings = settings or get_settings()
    if days_in_range <= 0:
        return settings.max_lookback_days
    avg_daily = total_sends / days_in_range
    if avg_daily <= 0:
        return settings.max_lookback_days
    optimal = math.ceil(settings.min_sample_size / avg_daily)
    return max(settings.min_lookback_days, min(settings.max_lookback_days, optimal))


def has_statistical_significance(
    total_sends: float,
    days_in_range: int,
    optimal_lookback_days: int,
    settings: Optional[Settings] = None,
) -> bool:
    settings = settings or get_settings()
    if total_sends < settings.min_sample_size:
        return False
    return days_in_range >= optimal_lookback_days * settings.lookback_coverage_ratio


# =============================================================================
# Messages
# =============================================================================


def get_deliverability_risk_message(
    zone: RiskZone,
    spam_rate: float,
    bounce_rate: float,
    settings: Optional[Settings] = None,
) -> Optional[str]:
    """Business-friendly warning for a zone; None for green."""
    settings = settings or get_settings()
    if zone == RiskZone.GREEN:
        return None
    if zone == RiskZone.YELLOW:
        issues = []
        if spam_rate >= settings.spam_green_limit:
            issues.append("spam")
        if bounce_rate >= settings.bounce_green_limit:
            issues.append("bounce")
        which = " and ".join(issues) or "spam and bounce"
        return (
            f"Deliverability metrics are approaching warning thresholds ({which} rates). "
            "Monitor closely before scaling further."
        )
    issues = []
    if spam_rate > settings.spam_red_limit:
        issues.append(f"spam at {spam_rate:.2f}%")
    if bounce_rate > settings.bounce_red_limit:
        issues.append(f"bounce at {bounce_rate:.1f}%")
    return (
        f"Elevated deliverability risk: {' and '.join(issues)} exceed safe limits. "
        "Pause and review before continuing."
    )


def get_insufficient_data_message(
    total_sends: int,
    days_in_range: int,
    optimal_lookback_days: int,
    settings: Optional[Settings] = None,
) -> str:
    settings = settings or get_settings()
    if total_sends < settings.min_sample_size:
        return (
            f"Insufficient data for reliable analysis. This step has {total_sends} sends; "
            f"need at least {settings.min_sample_size} for meaningful recommendations."
        )
    return (
        f"Insufficient data: current date range is {days_in_range} days, but this step's "
        f"volume suggests at least {optimal_lookback_days} days for reliable insights."
    )
