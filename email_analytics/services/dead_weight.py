"""
Dead-weight audience savings.

Counts subscribers who cost money to keep on the list without engaging:

    - never active: no first or last activity, created 30+ days before the
      anchor date
    - inactive: created 90+ days before the anchor and no open or click in
      the last 90 days

The day counts are ``Settings.dead_weight_*`` defaults.

A subscriber in both groups is counted once. Savings compare the ESP
monthly price for the current list size with the price after suppressing
the dead weight; lists above 250,000 profiles are on custom pricing and get
no estimate.

Usage:
    from email_analytics.services.dead_weight import compute_dead_weight_savings

    result = compute_dead_weight_savings(subscribers, anchor=ctx.get_last_email_date())
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.schemas import DeadWeightResult, SubscriberRecord

logger = logging.getLogger(__name__)


# (max profiles, monthly price); tiers start one above the previous max
PRICING_TIERS: List[Tuple[int, float]] = [
    (250, 0), (500, 20), (1000, 30), (1500, 45), (2500, 60), (3000, 70),
    (3500, 80), (5000, 100), (5500, 110), (6000, 130), (6500, 140),
    (10000, 150), (10500, 175), (11000, 200), (11500, 225), (12000, 250),
    (12500, 275), (13000, 300), (13500, 325), (15000, 350), (20000, 375),
    (25000, 400), (26000, 425), (27000, 450), (28000, 475), (30000, 500),
    (35000, 550), (40000, 600), (45000, 650), (50000, 720), (55000, 790),
    (60000, 860), (65000, 930), (70000, 1000), (75000, 1070), (80000, 1140),
    (85000, 1205), (90000, 1265), (95000, 1325), (100000, 1380),
    (105000, 1440), (110000, 1495), (115000, 1555), (120000, 1610),
    (125000, 1670), (130000, 1725), (135000, 1785), (140000, 1840),
    (145000, 1900), (150000, 1955), (200000, 2070), (250000, 2300),
]


def price_for(count: int) -> Optional[float]:
    """
    Monthly price for a list size, None above the published tiers.

    Example:
        >>> price_for(4200)
        100
    """
    for max_profiles, price in PRICING_TIERS:
        if count <= max_profiles:
            return price
    return None


def _days_between(later: datetime, earlier: Optional[datetime]) -> Optional[int]:
    if earlier is None:
        return None
    return (later - earlier).days


def _default_anchor(subscribers: Sequence[SubscriberRecord]) -> Optional[datetime]:
    stamps = [
        ts
        for s in subscribers
        for ts in (s.lastActive, s.lastOpen, s.lastClick, s.profileCreated)
        if ts is not None
    ]
    return max(stamps) if stamps else None


def compute_dead_weight_savings(
    subscribers: Sequence[SubscriberRecord],
    anchor: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> Optional[DeadWeightResult]:
    """
    Dead-weight counts and suppression savings.

    Args:
        subscribers: Subscriber profiles.
        anchor: Reference date, normally the last email date of the dataset.
            Defaults to the latest timestamp on any profile.
        settings: Age and inactivity window overrides.

    Returns:
        DeadWeightResult, or None when there are no subscribers.
    """
    settings = settings or get_settings()
    if not subscribers:
        return None
    anchor = anchor or _default_anchor(subscribers)
    if anchor is None:
        logger.debug("Dead weight skipped: no dates to anchor on")
        return None

    never_active_age = settings.dead_weight_never_active_min_age_days
    inactive_age = settings.dead_weight_inactive_min_age_days
    window = settings.dead_weight_inactive_window_days

    never_active = set()
    inactive = set()
    for idx, sub in enumerate(subscribers):
        created_age = _days_between(anchor, sub.profileCreated) or 0

        if sub.firstActive is None and sub.lastActive is None and created_age >= never_active_age:
            never_active.add(idx)

        if created_age >= inactive_age:
            open_age = _days_between(anchor, sub.lastOpen)
            click_age = _days_between(anchor, sub.lastClick)
            opened = open_age is not None and open_age < window
            clicked = click_age is not None and click_age < window
            if not opened and not clicked:
                inactive.add(idx)

    total = len(subscribers)
    dead = len(never_active | inactive)
    projected = max(0, total - dead)

    current_price = price_for(total)
    projected_price = price_for(projected)
    custom = current_price is None or projected_price is None
    monthly = None if custom else current_price - projected_price

    return DeadWeightResult(
        totalSubscribers=total,
        deadWeightCount=dead,
        projectedSubscribers=projected,
        neverActiveCount=len(never_active),
        inactive90Count=len(inactive),
        deadWeightPct=dead / total * 100,
        currentMonthlyPrice=current_price,
        projectedMonthlyPrice=projected_price,
        monthlySavings=monthly,
        annualSavings=monthly * 12 if monthly is not None else None,
        customPricing=custom,
    )
