"""
Flow decay factors and new-step revenue projection.

A new step appended to a flow reaches only part of the previous step's
audience. The share depends on the kind of flow, which is inferred from
keywords in the flow name (first match wins):

    welcome 0.40, abandoned cart 0.55, browse abandon 0.50,
    post-purchase 0.60, winback 0.45, birthday 0.65, sunset 0.35,
    nurture 0.55, anything else 0.50

The projected revenue of the new step is reach x a conservative RPE (the
lowest of the P25 positive step RPE, the last step RPE and 70% of the flow
median), scaled by a sample-size confidence factor and spread into a
low/mid/high range whose width follows the variation of existing step RPEs.

Usage:
    from email_analytics.services.flow_decay import project_new_step_revenue

    projection = project_new_step_revenue("Welcome Series", 4000, 0.12, rpes, 0.15, 12)
"""

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import ConfidenceLevel, FlowType
from email_analytics.models.schemas import FlowStepProjection
from email_analytics.services.stats import mean, percentile, population_std

logger = logging.getLogger(__name__)


# =============================================================================
# Flow Types
# =============================================================================

FLOW_DECAY_FACTORS: Dict[FlowType, float] = {
    FlowType.WELCOME: 0.40,
    FlowType.ABANDONED_CART: 0.55,
    FlowType.BROWSE_ABANDON: 0.50,
    FlowType.POST_PURCHASE: 0.60,
    FlowType.WINBACK: 0.45,
    FlowType.BIRTHDAY: 0.65,
    FlowType.SUNSET: 0.35,
    FlowType.NURTURE: 0.55,
    FlowType.DEFAULT: 0.50,
}

# Ordered; the first pattern with a matching keyword wins
FLOW_TYPE_PATTERNS: List[Tuple[FlowType, Tuple[str, ...]]] = [
    (FlowType.WELCOME, ("welcome", "onboarding", "signup", "sign-up", "sign up", "new subscriber", "new customer")),
    (FlowType.ABANDONED_CART, ("abandoned cart", "cart abandon", "checkout abandon", "cart recovery")),
    (FlowType.BROWSE_ABANDON, ("browse abandon", "browsing", "viewed product", "product view")),
    (FlowType.POST_PURCHASE, ("post-purchase", "post purchase", "thank you", "order confirm", "purchase follow", "buyer")),
    (FlowType.WINBACK, ("winback", "win-back", "win back", "re-engage", "reengage", "lapsed", "inactive")),
    (FlowType.BIRTHDAY, ("birthday", "anniversary", "bday")),
    (FlowType.SUNSET, ("sunset", "suppression", "cleanup", "unengaged")),
    (FlowType.NURTURE, ("nurture", "education", "drip", "sequence", "series")),
]

FLOW_TYPE_LABELS: Dict[FlowType, str] = {
    FlowType.WELCOME: "Welcome/Onboarding",
    FlowType.ABANDONED_CART: "Abandoned Cart",
    FlowType.BROWSE_ABANDON: "Browse Abandonment",
    FlowType.POST_PURCHASE: "Post-Purchase",
    FlowType.WINBACK: "Win-Back",
    FlowType.BIRTHDAY: "Birthday/Anniversary",
    FlowType.SUNSET: "Sunset/Suppression",
    FlowType.NURTURE: "Nurture/Drip",
    FlowType.DEFAULT: "General",
}

CONFIDENCE_DESCRIPTIONS: Dict[ConfidenceLevel, str] = {
    ConfidenceLevel.LOW: "Limited data. Treat as a directional estimate only",
    ConfidenceLevel.MEDIUM: "Moderate confidence based on available data",
    ConfidenceLevel.HIGH: "High confidence based on substantial historical data",
}

DEFAULT_INTERVAL = (0.5, 1.2)


def infer_flow_type(flow_name: str) -> FlowType:
    """
    Infer the flow type from its name.

    Example:
        >>> infer_flow_type("Abandoned Cart - 3 emails")
        <FlowType.ABANDONED_CART: 'abandoned-cart'>
    """
    lowered = (flow_name or "").lower()
    for flow_type, keywords in FLOW_TYPE_PATTERNS:
        if any(keyword in lowered for keyword in keywords):
            return flow_type
    return FlowType.DEFAULT


def get_flow_decay_factor(flow_name: str) -> float:
    return FLOW_DECAY_FACTORS[infer_flow_type(flow_name)]


def get_flow_type_label(flow_type: FlowType) -> str:
    return FLOW_TYPE_LABELS[flow_type]


def get_confidence_description(level: ConfidenceLevel) -> str:
    return CONFIDENCE_DESCRIPTIONS[level]


# =============================================================================
# Projection
# =============================================================================


def calculate_variance_based_interval(step_rpes: Sequence[float]) -> Tuple[float, float]:
    """
    Low/high multipliers from the spread of existing step RPEs.

    A flat set of RPEs gives roughly (0.85, 1.15); the width grows with the
    coefficient of variation up to (0.3, 1.8).
    """
    positive = [r for r in step_rpes if r > 0]
    if len(positive) < 2:
        return DEFAULT_INTERVAL
    avg = mean(positive)
    cv = population_std(positive) / avg if avg > 0 else 0.0
    spread = min(0.6, cv * 0.6)
    return max(0.3, 1 - spread - 0.15), min(1.8, 1 + spread + 0.15)


def format_projection_range(low: float, high: float) -> str:
    """
    Example:
        >>> format_projection_range(450, 1250)
        '$450–$1.2k'
    """
    def fmt(value: float) -> str:
        if value >= 1000:
            return f"${value / 1000:.1f}k"
        return f"${value:.0f}"

    return f"{fmt(low)}–{fmt(high)}"


def _confidence_level(last_step_sends: float, step_count: int, settings: Settings) -> ConfidenceLevel:
    if (last_step_sends < settings.flow_projection_medium_sends
            or step_count < settings.flow_projection_medium_steps):
        return ConfidenceLevel.LOW
    if (last_step_sends < settings.flow_projection_high_sends
            or step_count < settings.flow_projection_high_steps):
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.HIGH


def project_new_step_revenue(
    flow_name: str,
    last_step_sends: float,
    last_step_rpe: float,
    step_rpes: Sequence[float],
    flow_median_rpe: float,
    weeks_in_range: float = 1,
    settings: Optional[Settings] = None,
) -> FlowStepProjection:
    """
    Project weekly revenue of a step appended to a flow.

    Args:
        flow_name: Flow name, used to infer the decay factor.
        last_step_sends: Emails sent by the current last step in the window.
        last_step_rpe: Revenue per email of the last step.
        step_rpes: RPE of every existing step.
        flow_median_rpe: Median step RPE of the flow.
        weeks_in_range: Weeks covered by the window, to express reach per week.
        settings: Confidence threshold overrides.

    Returns:
        FlowStepProjection with rounded low/mid/high weekly revenue.
    """
    settings = settings or get_settings()
    flow_type = infer_flow_type(flow_name)
    decay = FLOW_DECAY_FACTORS[flow_type]

    reach = last_step_sends * decay
    weekly_reach = reach / weeks_in_range if weeks_in_range > 0 else reach

    positive = [r for r in step_rpes if r > 0]
    p25 = percentile(positive, 0.25) if positive else 0.0
    conservative_rpe = min(
        p25 if p25 > 0 else last_step_rpe,
        last_step_rpe,
        flow_median_rpe * 0.7,
    )

    low_mult, high_mult = calculate_variance_based_interval(step_rpes)
    full_sends = settings.flow_projection_full_confidence_sends
    confidence_factor = min(1.0, math.sqrt(max(0.0, last_step_sends) / full_sends))
    mid = weekly_reach * conservative_rpe * confidence_factor
    low = round(mid * low_mult)
    high = round(mid * high_mult)
    level = _confidence_level(last_step_sends, len(step_rpes), settings)

    return FlowStepProjection(
        flowType=flow_type,
        flowTypeLabel=FLOW_TYPE_LABELS[flow_type],
        decayFactor=decay,
        conservativeRpe=conservative_rpe,
        projectedWeeklyReach=round(weekly_reach),
        projectedWeeklyRevenue=round(mid),
        projectedRevenueLow=low,
        projectedRevenueMid=round(mid),
        projectedRevenueHigh=high,
        rangeLabel=format_projection_range(low, high),
        confidence=level,
        confidenceDescription=CONFIDENCE_DESCRIPTIONS[level],
    )
