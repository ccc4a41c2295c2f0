"""
Flow step scoring and add-step suggestions.

Every step of a flow gets a 0-100 score from three pillars:

    Money (0-70)
        Revenue index (step RPE / flow median RPE, clipped to [0, 2]) worth
        up to 35 points, plus up to 35 points for the step's share of total
        store revenue (>=5% 35, >=3% 30, >=2% 25, >=1% 20, >=0.5% 15,
        >=0.25% 10, else 5).
    Deliverability (0-20)
        Context-aware zone points with the low-volume adjustment.
    Confidence (0-10)
        floor(sends / 100) capped at 10; 0 under 250 sends.

Decision table:

    +----------------------------+-----------+
    | low money and high risk    | pause     |
    | high money and high risk   | keep      |
    | score >= 75                | scale     |
    | score >= 60                | keep      |
    | score >= 40                | improve   |
    | else                       | pause     |
    +----------------------------+-----------+

A step earning >= $500 or >= 10% of its flow's revenue is never paused.
Steps under 250 sends are ``insufficient``.

Usage:
    from email_analytics.services.flow_scoring import analyze_flow_steps

    analysis = analyze_flow_steps(ctx, "Welcome Series", start, end)
    for score in analysis.scores:
        print(score.sequencePosition, score.score, score.action)
"""

import logging
import math
from datetime import datetime
from typing import List, Optional, Sequence

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import FlowStepAction, RiskZone
from email_analytics.models.schemas import (
    AccountContext,
    AddStepSuggestion,
    FlowSequenceInfo,
    FlowStepAnalysis,
    FlowStepMetrics,
    FlowStepScore,
    SendRecord,
)
from email_analytics.services.bucketing import aggregate_records, filter_in_range
from email_analytics.services.deliverability import get_deliverability_zone_with_context
from email_analytics.services.flow_decay import project_new_step_revenue
from email_analytics.services.stats import median

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MONEY_RI_POINTS = 35.0
MONEY_MAX_POINTS = 70.0
MAX_REVENUE_INDEX = 2.0

# (minimum share of store revenue in percent, points)
STORE_SHARE_POINTS = [
    (5.0, 35),
    (3.0, 30),
    (2.0, 25),
    (1.0, 20),
    (0.5, 15),
    (0.25, 10),
]

HIGH_MONEY_POINTS = 55.0
HIGH_REVENUE_INDEX = 1.4
LOW_MONEY_POINTS = 35.0

# Engagement floors (percent) below which a step counts as risky
RISK_MIN_OPEN_RATE = 20.0
RISK_MIN_CLICK_RATE = 1.0
RISK_MAX_UNSUB_RATE = 1.0


def store_share_points(share: float) -> int:
    """Points for a step's fraction (0-1) of total store revenue."""
    if not math.isfinite(share) or share <= 0:
        return 5
    pct = share * 100
    for floor, points in STORE_SHARE_POINTS:
        if pct >= floor:
            return points
    return 5


# =============================================================================
# Step Metrics
# =============================================================================


def _rate(count: float, denominator: float) -> float:
    return count / denominator * 100 if denominator > 0 else 0.0


def build_flow_step_metrics(
    flow_name: str,
    flow_emails: Sequence[SendRecord],
    sequence_info: FlowSequenceInfo,
) -> List[FlowStepMetrics]:
    """
    Summed metrics per step of a flow, in sequence order.

    Emails are matched to a step by message id, falling back to sequence
    position. Steps without sends in the window are kept as zero rows so
    the sequence stays complete.
    """
    own = [e for e in flow_emails if e.flowName == flow_name]
    steps = []
    for idx in range(sequence_info.sequenceLength):
        position = idx + 1
        message_id = sequence_info.messageIds[idx] if idx < len(sequence_info.messageIds) else None
        members = [e for e in own if message_id and (e.flowMessageId or e.emailName) == message_id]
        if not members:
            members = [e for e in own if e.sequencePosition == position]
        name = (
            sequence_info.emailNames[idx] if idx < len(sequence_info.emailNames) else None
        ) or f"Step {position}"

        emails = sum(e.emailsSent for e in members)
        revenue = sum(e.revenue for e in members)
        orders = sum(e.totalOrders for e in members)
        opens = sum(e.uniqueOpens for e in members)
        clicks = sum(e.uniqueClicks for e in members)
        unsubs = sum(e.unsubscribesCount for e in members)
        spam = sum(e.spamComplaintsCount for e in members)
        bounces = sum(e.bouncesCount for e in members)

        steps.append(FlowStepMetrics(
            flowName=flow_name,
            sequencePosition=position,
            flowMessageId=message_id,
            emailName=name,
            emailsSent=emails,
            revenue=revenue,
            totalOrders=orders,
            uniqueOpens=opens,
            uniqueClicks=clicks,
            unsubscribes=unsubs,
            spamComplaints=spam,
            bounces=bounces,
            openRate=_rate(opens, emails),
            clickRate=_rate(clicks, emails),
            clickToOpenRate=_rate(clicks, opens),
            conversionRate=_rate(orders, clicks),
            unsubscribeRate=_rate(unsubs, emails),
            spamRate=_rate(spam, emails),
            bounceRate=_rate(bounces, emails),
            revenuePerEmail=revenue / emails if emails > 0 else 0.0,
            avgOrderValue=revenue / orders if orders > 0 else 0.0,
        ))
    return steps


def flow_median_rpe(
    steps: Sequence[FlowStepMetrics],
    flow_only_rpe: Optional[float] = None,
) -> float:
    """
    Median RPE across steps with sends.

    A single-step flow has nothing to compare against, so the RPE of all
    flows combined is used instead when provided.
    """
    rpes = [s.revenuePerEmail for s in steps if s.emailsSent > 0]
    if len(steps) == 1 and flow_only_rpe:
        return flow_only_rpe
    return median(rpes)


# =============================================================================
# Scoring
# =============================================================================


def compute_flow_step_scores(
    steps: Sequence[FlowStepMetrics],
    account: Optional[AccountContext] = None,
    store_revenue: float = 0.0,
    flow_only_rpe: Optional[float] = None,
    settings: Optional[Settings] = None,
) -> List[FlowStepScore]:
    """
    Score every step of a flow.

    Args:
        steps: Step metrics in sequence order.
        account: Account totals over the same window, for the context-aware
            deliverability zone and the low-volume adjustment.
        store_revenue: Total store (campaign + flow) revenue in the window.
        flow_only_rpe: RPE across all flows, used as the baseline for
            single-step flows.
        settings: Threshold overrides.

    Returns:
        One FlowStepScore per step.
    """
    settings = settings or get_settings()
    if not steps:
        return []

    median_rpe = flow_median_rpe(steps, flow_only_rpe)
    flow_revenue = sum(s.revenue for s in steps)
    scores = []

    for s in steps:
        ri = s.revenuePerEmail / median_rpe if median_rpe > 0 else 0.0
        ri = max(0.0, min(MAX_REVENUE_INDEX, ri))
        ri_points = MONEY_RI_POINTS * ri / MAX_REVENUE_INDEX
        share_points = store_share_points(s.revenue / store_revenue if store_revenue > 0 else 0.0)
        money = min(MONEY_MAX_POINTS, ri_points + share_points)

        zone = get_deliverability_zone_with_context(
            s.spamRate,
            s.bounceRate,
            s.emailsSent,
            s.spamComplaints,
            s.bounces,
            account=account,
            settings=settings,
        )

        sufficient = s.emailsSent >= settings.flow_min_step_emails
        confidence = min(10, math.floor(s.emailsSent / 100)) if sufficient else 0
        score = max(0.0, min(100.0, money + zone.points + confidence))

        risk_high = (
            zone.effectiveZone == RiskZone.RED
            or s.openRate < RISK_MIN_OPEN_RATE
            or s.clickRate < RISK_MIN_CLICK_RATE
            or s.unsubscribeRate > RISK_MAX_UNSUB_RATE
        )
        high_money = money >= HIGH_MONEY_POINTS or ri >= HIGH_REVENUE_INDEX
        low_money = money <= LOW_MONEY_POINTS

        if low_money and risk_high:
            action = FlowStepAction.PAUSE
        elif risk_high and high_money:
            action = FlowStepAction.KEEP
        elif score >= 75:
            action = FlowStepAction.SCALE
        elif score >= 60:
            action = FlowStepAction.KEEP
        elif score >= 40:
            action = FlowStepAction.IMPROVE
        else:
            action = FlowStepAction.PAUSE

        guardrail = False
        flow_share = s.revenue / flow_revenue if flow_revenue > 0 else 0.0
        if action == FlowStepAction.PAUSE and (
            s.revenue >= settings.flow_step_revenue_guardrail
            or flow_share >= settings.flow_step_share_guardrail
        ):
            action = FlowStepAction.KEEP
            guardrail = True

        if not sufficient:
            action = FlowStepAction.INSUFFICIENT

        scores.append(FlowStepScore(
            sequencePosition=s.sequencePosition,
            flowMessageId=s.flowMessageId,
            emailName=s.emailName,
            emailsSent=s.emailsSent,
            revenue=s.revenue,
            revenuePerEmail=s.revenuePerEmail,
            score=score,
            moneyPoints=money,
            revenueIndex=ri,
            storeSharePoints=share_points,
            deliverabilityPoints=zone.points,
            confidencePoints=confidence,
            zone=zone.effectiveZone,
            lowVolumeAdjusted=zone.lowVolumeAdjusted,
            riskHigh=risk_high,
            highMoney=high_money,
            lowMoney=low_money,
            action=action,
            guardrailApplied=guardrail,
        ))
    return scores


# =============================================================================
# Add-Step Suggestion
# =============================================================================


def compute_add_step_suggestion(
    flow_name: str,
    steps: Sequence[FlowStepMetrics],
    scores: Sequence[FlowStepScore],
    start: datetime,
    end: datetime,
    last_email_date: Optional[datetime],
    settings: Optional[Settings] = None,
) -> AddStepSuggestion:
    """
    Decide whether the flow would benefit from another step.

    All checks must pass:
        - total flow sends >= ``flow_min_total_sends``
        - last step score >= 75
        - last step RPE >= the flow median RPE
        - last step RPE did not drop versus the previous step
        - last step volume >= max(250, 5% of step 1 sends)
        - last step revenue >= $500 or >= 5% of flow revenue
        - the window ends at the most recent data
        - projected weekly revenue of the new step >= ``flow_min_projection``

    Returns:
        AddStepSuggestion; ``failedChecks`` names every check that failed.
    """
    settings = settings or get_settings()
    days = max(1, math.ceil((end - start).total_seconds() / 86400))
    if not steps:
        return AddStepSuggestion(suggested=False, flowName=flow_name, failedChecks=["no_steps"])

    last = steps[-1]
    last_score = scores[-1].score if scores else 0.0
    prev = steps[-2] if len(steps) > 1 else None
    total_sends = sum(s.emailsSent for s in steps)
    flow_revenue = sum(s.revenue for s in steps)
    rpe_median = median([s.revenuePerEmail for s in steps])
    step1_sends = steps[0].emailsSent

    checks = {
        "total_sends": total_sends >= settings.flow_min_total_sends,
        "last_step_score": last_score >= settings.flow_add_step_min_score,
        "rpe_vs_median": last.revenuePerEmail >= rpe_median,
        "rpe_trend": prev is None or last.revenuePerEmail - prev.revenuePerEmail >= 0,
        "volume": last.emailsSent >= max(settings.flow_min_step_emails, round(0.05 * step1_sends)),
        "revenue": (
            last.revenue >= settings.flow_add_step_revenue_floor
            or (flow_revenue > 0 and last.revenue / flow_revenue >= settings.flow_add_step_revenue_share)
        ),
        "recent_window": last_email_date is not None and end.date() >= last_email_date.date(),
    }
    failed = [name for name, ok in checks.items() if not ok]
    if failed:
        logger.debug(f"No add-step suggestion for {flow_name}: {failed}")
        return AddStepSuggestion(suggested=False, flowName=flow_name, horizonDays=days, failedChecks=failed)

    projection = project_new_step_revenue(
        flow_name,
        last.emailsSent,
        last.revenuePerEmail,
        [s.revenuePerEmail for s in steps],
        rpe_median,
        weeks_in_range=days / 7,
        settings=settings,
    )
    if projection.projectedRevenueMid < settings.flow_min_projection:
        return AddStepSuggestion(
            suggested=False,
            flowName=flow_name,
            horizonDays=days,
            projection=projection,
            failedChecks=["projection"],
        )

    reason = (
        "Strong RPE and healthy deliverability"
        if len(steps) == 1
        else f"Step {last.sequencePosition} is performing well; a follow-up could add value"
    )
    weekly = projection.projectedRevenueMid
    return AddStepSuggestion(
        suggested=True,
        flowName=flow_name,
        title=f"Add a follow-up to {flow_name}",
        reason=reason,
        horizonDays=days,
        estimatedRevenue=round(weekly * days / 7, 2),
        weeklyGain=weekly,
        projection=projection,
    )


# =============================================================================
# Flow Analysis
# =============================================================================


def is_live(record: SendRecord) -> bool:
    """Flows without a status are assumed live."""
    return record.status is None or record.status.lower() == "live"


def analyze_flow_steps(
    ctx,
    flow_name: str,
    start: datetime,
    end: datetime,
    settings: Optional[Settings] = None,
) -> FlowStepAnalysis:
    """
    Step metrics, scores and the add-step suggestion for one flow.

    Args:
        ctx: DatasetContext holding the records.
        flow_name: Flow to analyze.
        start: Range start.
        end: Range end.
        settings: Threshold overrides.
    """
    settings = settings or get_settings()
    in_range_flows = filter_in_range(ctx.get_flow_emails(), start, end)
    account_metrics = aggregate_records(
        filter_in_range(ctx.get_campaigns(), start, end) + in_range_flows
    )
    account = AccountContext(
        accountSends=account_metrics.emailsSent,
        accountSpamComplaints=account_metrics.spamComplaints,
        accountBounces=account_metrics.bounces,
        accountSpamRate=account_metrics.spamRate,
        accountBounceRate=account_metrics.bounceRate,
    )
    flow_only_rpe = aggregate_records(in_range_flows).revenuePerEmail

    sequence = ctx.get_flow_sequence_info(flow_name)
    flow_emails = [e for e in in_range_flows if e.flowName == flow_name and is_live(e)]
    steps = build_flow_step_metrics(flow_name, flow_emails, sequence)
    scores = compute_flow_step_scores(
        steps,
        account=account,
        store_revenue=account_metrics.totalRevenue,
        flow_only_rpe=flow_only_rpe,
        settings=settings,
    )
    add_step = compute_add_step_suggestion(
        flow_name, steps, scores, start, end, ctx.get_last_email_date(), settings
    )

    return FlowStepAnalysis(
        flowName=flow_name,
        totalSends=sum(s.emailsSent for s in steps),
        totalRevenue=sum(s.revenue for s in steps),
        medianRpe=flow_median_rpe(steps, flow_only_rpe),
        steps=steps,
        scores=scores,
        addStep=add_step,
    )
