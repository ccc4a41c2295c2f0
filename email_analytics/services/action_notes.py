"""
Action notes.

Turns each analysis module into a ``ModuleActionNote``: a title, a plain
language message, a sample line and an optional dollar estimate.

Estimates follow one rule everywhere:

    weekly  = conservative delta (rounded to cents)
    monthly = weekly * 4
    annual  = weekly * 52

Theoretical deltas are halved (``conservative_factor``) before they are
shown, and an estimate whose monthly value falls below the module floor is
dropped (``estimatedImpact = None``) rather than presented. Floors are $500
for send frequency and audience size and $100 for everything else.

Usage:
    from email_analytics.services.action_notes import build_action_notes

    notes = build_action_notes(ctx, window)
"""

import logging
import math
from typing import List, Optional

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import (
    Channel,
    DayPerformanceState,
    FrequencyBucketKey,
    GuidanceStatus,
    ImpactType,
    ModuleSlug,
    RecommendationKind,
    SendVolumeModel,
)
from email_analytics.models.schemas import (
    AudienceNoteDetails,
    DayNoteDetails,
    DeadWeightNoteDetails,
    EstimatedImpact,
    FlowStepNoteDetails,
    FrequencyNoteDetails,
    GapNoteDetails,
    ModuleActionNote,
    ResolvedDateRange,
    SendVolumeNoteDetails,
)
from email_analytics.services.audience_size import analyze_audience_size
from email_analytics.services.day_of_week import compute_campaign_day_performance
from email_analytics.services.dead_weight import compute_dead_weight_savings
from email_analytics.services.flow_scoring import analyze_flow_steps
from email_analytics.services.gaps_losses import compute_campaign_gaps_and_losses
from email_analytics.services.send_frequency import analyze_send_frequency
from email_analytics.services.send_volume import compute_send_volume_guidance

logger = logging.getLogger(__name__)

NOT_ENOUGH_DATA_TITLE = "Not enough data for a recommendation"

FREQUENCY_PER_WEEK = {
    FrequencyBucketKey.ONE: 1,
    FrequencyBucketKey.TWO: 2,
    FrequencyBucketKey.THREE: 3,
    FrequencyBucketKey.FOUR_PLUS: 4,
}


# =============================================================================
# Estimates
# =============================================================================


def round_currency(value: Optional[float]) -> Optional[float]:
    """Round to cents; None for missing or non-finite values."""
    if value is None or not math.isfinite(value):
        return None
    return round(value, 2)


def make_estimate(
    weekly: Optional[float],
    description: Optional[str] = None,
    basis: Optional[str] = None,
    impact_type: ImpactType = ImpactType.LIFT,
    min_monthly: float = 0.0,
    settings: Optional[Settings] = None,
) -> Optional[EstimatedImpact]:
    """
    Build an estimate from a weekly amount.

    Args:
        weekly: Conservative weekly amount.
        description: What the estimate measures.
        basis: Sample the estimate is based on.
        impact_type: ``lift`` or ``savings``.
        min_monthly: Floor under which the estimate is suppressed.
        settings: Weeks per month / year.

    Returns:
        EstimatedImpact, or None when the amount is missing, not positive or
        under the floor.

    Example:
        >>> make_estimate(250).monthly
        1000.0
        >>> make_estimate(12.5, min_monthly=100) is None
        True
    """
    settings = settings or get_settings()
    weekly = round_currency(weekly)
    if weekly is None or weekly <= 0:
        return None
    monthly = round_currency(weekly * settings.weeks_per_month)
    if monthly < min_monthly:
        logger.debug(f"Estimate suppressed: ${monthly:.2f}/month below ${min_monthly:.0f} floor")
        return None
    return EstimatedImpact(
        weekly=weekly,
        monthly=monthly,
        annual=round_currency(weekly * settings.weeks_per_year),
        type=impact_type,
        description=description,
        basis=basis,
    )


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def _weeks_in_window(window: ResolvedDateRange) -> int:
    return max(1, round(window.days / 7))


# =============================================================================
# Send Volume
# =============================================================================


def _send_volume_title(channel: Channel, status: GuidanceStatus) -> str:
    label = "Campaigns" if channel == Channel.CAMPAIGNS else "Flows"
    if status == GuidanceStatus.INSUFFICIENT:
        return f"Not enough data to evaluate {label.lower()} volume"
    if channel == Channel.CAMPAIGNS:
        verbs = {GuidanceStatus.SEND_MORE: "Increase", GuidanceStatus.SEND_LESS: "Reduce"}
        return f"{label}: {verbs.get(status, 'Keep')} volume"
    verbs = {GuidanceStatus.SEND_MORE: "Scale", GuidanceStatus.SEND_LESS: "Trim"}
    return f"{label}: {verbs.get(status, 'Maintain')} send volume"


def build_send_volume_notes(
    ctx,
    window: ResolvedDateRange,
    model: SendVolumeModel = SendVolumeModel.CORRELATION,
    settings: Optional[Settings] = None,
) -> List[ModuleActionNote]:
    """One send-volume note per channel."""
    settings = settings or get_settings()
    notes = []
    for channel in (Channel.CAMPAIGNS, Channel.FLOWS):
        result = compute_send_volume_guidance(
            channel, ctx.get_records(channel), window.startDate, window.endDate, model, settings
        )

        sample = None
        period = getattr(result, "period", None)
        if result.model == SendVolumeModel.CORRELATION.value:
            if result.sampleSize and period is not None:
                unit = "week" if period.value == "weekly" else "month"
                sample = f"Based on {_plural(result.sampleSize, unit)} of {channel.value} activity in this range."
        elif result.sampleSize:
            sample = f"Based on {_plural(result.sampleSize, 'send')} over {result.lookbackDays} days."

        impact = None
        projected = getattr(result, "projectedMonthlyGain", None)
        if projected:
            impact = make_estimate(
                projected / settings.weeks_per_month * settings.conservative_factor,
                "Estimated revenue from a 20% volume increase",
                f"{result.lookbackDays} days analysed",
                min_monthly=settings.min_monthly_gain,
                settings=settings,
            )

        notes.append(ModuleActionNote(
            module=ModuleSlug.SEND_VOLUME_IMPACT,
            scope=channel.value,
            title=_send_volume_title(channel, result.status),
            message=result.message,
            sample=sample,
            estimatedImpact=impact,
            details=SendVolumeNoteDetails(
                channel=channel,
                status=result.status,
                model=SendVolumeModel(result.model),
                sampleSize=result.sampleSize,
                period=period,
            ),
        ))
    return notes


# =============================================================================
# Send Frequency
# =============================================================================


def build_send_frequency_note(
    ctx,
    window: ResolvedDateRange,
    settings: Optional[Settings] = None,
) -> ModuleActionNote:
    settings = settings or get_settings()
    guidance = analyze_send_frequency(
        ctx.get_campaigns(), window.startDate, window.endDate, settings, history=ctx.get_campaigns()
    )
    by_key = {b.key: b for b in guidance.buckets}
    baseline = by_key.get(guidance.baselineKey)
    target = by_key.get(guidance.targetKey)

    details = FrequencyNoteDetails(baselineKey=guidance.baselineKey, targetKey=guidance.targetKey)
    if baseline and target:
        details.baselineWeeklyRevenue = baseline.weightedWeeklyRevenue
        details.targetWeeklyRevenue = target.weightedWeeklyRevenue
        if baseline.weightedWeeklyRevenue > 0:
            details.lift = target.weightedWeeklyRevenue / baseline.weightedWeeklyRevenue - 1
        if guidance.status == GuidanceStatus.SEND_MORE:
            details.direction = "more"
        elif guidance.status == GuidanceStatus.SEND_LESS:
            details.direction = "less"

    impact = None
    committed = guidance.recommendationKind in (RecommendationKind.SCALE_UP, RecommendationKind.SCALE_DOWN)
    if committed and guidance.estimatedWeeklyGain:
        impact = make_estimate(
            guidance.estimatedWeeklyGain,
            "Estimated incremental revenue from adopting recommended cadence",
            f"{_weeks_in_window(window)} weeks analysed",
            min_monthly=settings.frequency_min_monthly_gain,
            settings=settings,
        )

    return ModuleActionNote(
        module=ModuleSlug.CAMPAIGN_SEND_FREQUENCY,
        scope=Channel.CAMPAIGNS.value,
        title=guidance.title,
        message=guidance.message,
        sample=guidance.sample,
        estimatedImpact=impact,
        details=details,
    )


# =============================================================================
# Audience Size
# =============================================================================


def build_audience_size_note(
    ctx,
    window: ResolvedDateRange,
    settings: Optional[Settings] = None,
) -> ModuleActionNote:
    """
    Audience-size note.

    The estimate is the conservative per-campaign revenue gap between the
    recommended bucket and the overall average, times the weekly number of
    campaigns already sent at that size.
    """
    settings = settings or get_settings()
    analysis = analyze_audience_size(ctx.get_campaigns(), window.startDate, window.endDate, settings)
    lookback_weeks = max(1.0, window.days / 7)
    sample = analysis.sample
    if analysis.sampleSize:
        sample = (
            f"Based on {_plural(analysis.sampleSize, 'campaign')} across "
            f"{_plural(_weeks_in_window(window), 'week')}."
        )

    details = AudienceNoteDetails(lookbackWeeks=lookback_weeks)
    impact = None
    target = next((b for b in analysis.buckets if b.key == analysis.recommendedKey), None)
    if analysis.status == GuidanceStatus.FOCUS and target is not None:
        total_campaigns = sum(b.campaignCount for b in analysis.buckets)
        total_revenue = sum(b.totalRevenue for b in analysis.buckets)
        overall_avg = total_revenue / total_campaigns if total_campaigns > 0 else 0.0
        weekly_campaigns = target.campaignCount / lookback_weeks
        delta = (target.avgCampaignRevenue - overall_avg) * settings.conservative_factor

        details = AudienceNoteDetails(
            targetKey=target.key,
            targetRange=target.rangeLabel,
            targetAvgRevenue=target.avgCampaignRevenue,
            overallAvgRevenue=overall_avg,
            targetCampaigns=target.campaignCount,
            lookbackWeeks=lookback_weeks,
        )
        if delta > 0 and weekly_campaigns > 0:
            impact = make_estimate(
                delta * weekly_campaigns,
                "Estimated incremental revenue by leaning into the recommended audience size",
                f"{analysis.sampleSize} campaigns analysed",
                min_monthly=settings.audience_min_monthly_gain,
                settings=settings,
            )

    return ModuleActionNote(
        module=ModuleSlug.AUDIENCE_SIZE_PERFORMANCE,
        scope=Channel.CAMPAIGNS.value,
        title=analysis.title,
        message=analysis.message,
        sample=sample,
        estimatedImpact=impact,
        details=details,
    )


# =============================================================================
# Campaign Gaps
# =============================================================================


def build_campaign_gaps_note(
    ctx,
    window: ResolvedDateRange,
    settings: Optional[Settings] = None,
) -> ModuleActionNote:
    """
    Gap note with the lost revenue annualised.

    The raw estimate is scaled up to a year (``365 / min(days, 365)``) and
    down by the share of full weeks that had campaigns, so sparse senders are
    not credited with a full year of recovered weeks.
    """
    settings = settings or get_settings()
    result = compute_campaign_gaps_and_losses(
        ctx.get_campaigns(), ctx.get_flow_emails(), window.startDate, window.endDate, settings
    )
    module = ModuleSlug.CAMPAIGN_GAPS_LOSSES
    scope = Channel.CAMPAIGNS.value
    sample = f"Based on {_plural(result.weeksInRangeFull, 'full week')}." if result.weeksInRangeFull else None

    if not result.weeksInRangeFull or not result.weeksWithCampaignsSent:
        return ModuleActionNote(
            module=module,
            scope=scope,
            title=NOT_ENOUGH_DATA_TITLE,
            message="The selected range does not contain a full week of campaigns.",
            sample=sample,
            details=GapNoteDetails(),
        )

    if result.zeroCampaignSendWeeks <= 0:
        return ModuleActionNote(
            module=module,
            scope=scope,
            title="Keep weekly cadence humming",
            message=(
                "You shipped campaigns every full week in this range. Maintain a backup promo or "
                "automation so coverage stays intact when volume shifts."
            ),
            sample=sample,
            details=GapNoteDetails(),
        )

    coverage = result.weeksWithCampaignsSent / result.weeksInRangeFull
    range_days = min(window.days, 365)
    range_factor = 365 / range_days if range_days > 0 else 1.0
    annual = None
    if result.estimatedLostRevenue is not None:
        annual = round_currency(result.estimatedLostRevenue * range_factor * coverage)

    impact = None
    if annual:
        impact = make_estimate(
            annual / settings.weeks_per_year,
            "Estimated revenue recovered by eliminating zero-send weeks",
            f"{range_days} days analysed",
            min_monthly=settings.min_monthly_gain,
            settings=settings,
        )

    missed = _plural(result.zeroCampaignSendWeeks, "week")
    if impact is not None:
        message = (
            f"Skipping {missed} could be costing roughly ${impact.annual:,.0f} per year. "
            "Build a backup send to protect that revenue."
        )
    else:
        message = f"Skipping {missed} likely costs meaningful revenue. Build a backup send to protect that revenue."
    paragraphs = []
    if result.suspectedCsvCoverageGap:
        paragraphs.append(
            f"The longest gap runs {result.longestZeroSendGap} weeks. Check that the export covers "
            "the whole range before acting on it."
        )

    return ModuleActionNote(
        module=module,
        scope=scope,
        title=f"Fill {result.zeroCampaignSendWeeks:,} missed {'week' if result.zeroCampaignSendWeeks == 1 else 'weeks'} to claw back revenue",
        message=message,
        paragraphs=paragraphs,
        sample=sample,
        estimatedImpact=impact,
        details=GapNoteDetails(
            zeroCampaignSendWeeks=result.zeroCampaignSendWeeks,
            longestZeroSendGap=result.longestZeroSendGap,
            estimatedLostRevenue=result.estimatedLostRevenue,
            coverageFactor=coverage,
            suspectedCsvCoverageGap=result.suspectedCsvCoverageGap,
        ),
    )


# =============================================================================
# Campaign Day
# =============================================================================


def build_campaign_day_note(
    ctx,
    window: ResolvedDateRange,
    frequency_recommendation: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> ModuleActionNote:
    settings = settings or get_settings()
    guidance = compute_campaign_day_performance(
        ctx.get_campaigns(),
        window.startDate,
        window.endDate,
        settings,
        frequency_recommendation=frequency_recommendation,
    )
    eligible = [d for d in guidance.days if d.eligible]
    details = DayNoteDetails(state=guidance.state, recommendedDays=guidance.recommendedDays)

    impact = None
    actionable = (DayPerformanceState.NORMAL, DayPerformanceState.CONSIDER, DayPerformanceState.MULTI)
    if guidance.state in actionable and guidance.recommendedDays and eligible:
        top = next(d for d in eligible if d.day == guidance.recommendedDays[0])
        average = sum(d.avgCampaignRevenue for d in eligible) / len(eligible)
        details.topDayRevenue = top.avgCampaignRevenue
        details.averageRevenue = average
        delta = (top.avgCampaignRevenue - average) * settings.conservative_factor
        if delta > 0:
            impact = make_estimate(
                delta * guidance.campaignsPerWeek,
                "Estimated revenue gain from prioritising the recommended send day",
                f"{guidance.fullWeeks} weeks analysed",
                min_monthly=settings.min_monthly_gain,
                settings=settings,
            )

    return ModuleActionNote(
        module=ModuleSlug.CAMPAIGN_DAY_PERFORMANCE,
        scope=Channel.CAMPAIGNS.value,
        title=guidance.headline,
        message=guidance.message or guidance.headline,
        summary=guidance.message,
        sample=guidance.sampleLine,
        estimatedImpact=impact,
        details=details,
    )


# =============================================================================
# Flows
# =============================================================================


def build_flow_add_step_notes(
    ctx,
    window: ResolvedDateRange,
    settings: Optional[Settings] = None,
) -> List[ModuleActionNote]:
    """One note per flow that qualifies for an extra step with a visible estimate."""
    settings = settings or get_settings()
    notes = []
    for flow_name in ctx.get_unique_flow_names():
        analysis = analyze_flow_steps(ctx, flow_name, window.startDate, window.endDate, settings)
        suggestion = analysis.addStep
        if suggestion is None or not suggestion.suggested:
            continue
        impact = make_estimate(
            suggestion.weeklyGain,
            "Estimated revenue from extending this flow",
            f"Flow: {flow_name}",
            min_monthly=settings.min_monthly_gain,
            settings=settings,
        )
        if impact is None:
            continue
        notes.append(ModuleActionNote(
            module=ModuleSlug.FLOW_STEP_ANALYSIS,
            scope=flow_name,
            title=suggestion.title or f"Add a follow-up to {flow_name}",
            message=suggestion.reason or "",
            sample=f"Based on {analysis.totalSends:,} emails in {flow_name} during the selected range.",
            estimatedImpact=impact,
            details=FlowStepNoteDetails(
                flowName=flow_name,
                horizonDays=suggestion.horizonDays,
                projection=suggestion.projection,
            ),
        ))
    return notes


# =============================================================================
# Dead Weight
# =============================================================================


def build_dead_weight_note(ctx, settings: Optional[Settings] = None) -> Optional[ModuleActionNote]:
    settings = settings or get_settings()
    result = compute_dead_weight_savings(ctx.get_subscribers(), ctx.get_last_email_date(), settings)
    if result is None:
        return None

    impact = None
    summary = None
    if result.customPricing:
        summary = "Savings estimate hidden for custom pricing tiers"
    elif result.monthlySavings:
        impact = make_estimate(
            result.monthlySavings / settings.weeks_per_month,
            "Suppression-driven subscription savings",
            f"{result.deadWeightCount:,} inactive profiles",
            impact_type=ImpactType.SAVINGS,
            min_monthly=settings.min_monthly_gain,
            settings=settings,
        )

    return ModuleActionNote(
        module=ModuleSlug.DEAD_WEIGHT_AUDIENCE,
        scope="audience",
        title="Suppress dead-weight subscribers to reduce platform costs",
        message=(
            f"Suppressing {result.deadWeightCount:,} inactive profiles would trim the list from "
            f"{result.totalSubscribers:,} to {result.projectedSubscribers:,} and reduce platform spend."
        ),
        summary=summary,
        estimatedImpact=impact,
        details=DeadWeightNoteDetails(
            deadWeightCount=result.deadWeightCount,
            totalSubscribers=result.totalSubscribers,
            currentMonthlyPrice=result.currentMonthlyPrice,
            projectedMonthlyPrice=result.projectedMonthlyPrice,
            customPricing=result.customPricing,
        ),
    )


# =============================================================================
# All Notes
# =============================================================================


def build_action_notes(
    ctx,
    window: ResolvedDateRange,
    send_volume_model: SendVolumeModel = SendVolumeModel.CORRELATION,
    settings: Optional[Settings] = None,
) -> List[ModuleActionNote]:
    """
    Every module note for a window.

    Campaign modules are skipped when there are no campaigns; the day note
    uses the cadence recommended by the frequency note.

    Args:
        ctx: DatasetContext.
        window: Resolved analysis window.
        send_volume_model: Model used for the send-volume notes.
        settings: Threshold overrides.
    """
    settings = settings or get_settings()
    notes: List[ModuleActionNote] = []

    if ctx.get_campaigns():
        frequency = build_send_frequency_note(ctx, window, settings)
        notes.append(frequency)
        notes.append(build_audience_size_note(ctx, window, settings))
        notes.append(build_campaign_gaps_note(ctx, window, settings))
        target_key = frequency.details.targetKey if frequency.details else None
        notes.append(build_campaign_day_note(
            ctx, window, FREQUENCY_PER_WEEK.get(target_key), settings
        ))

    if not ctx.is_empty():
        notes.extend(build_send_volume_notes(ctx, window, send_volume_model, settings))
    notes.extend(build_flow_add_step_notes(ctx, window, settings))

    dead_weight = build_dead_weight_note(ctx, settings)
    if dead_weight is not None:
        notes.append(dead_weight)

    with_impact = sum(1 for n in notes if n.estimatedImpact is not None)
    logger.info(f"Built {len(notes)} action notes ({with_impact} with estimates)")
    return notes
