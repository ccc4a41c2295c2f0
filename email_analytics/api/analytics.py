"""
FastAPI router module for analytics endpoints.

This module implements endpoints for:
- Period aggregates and metric time series
- Period-over-period comparison
- Deliverability risk zones and points
- Campaign segmentation: send frequency, audience size, day of week
- Gap/loss and revenue reliability estimators
- Send-volume guidance (correlation or log-regression model)
- Flow step scores and add-step suggestions
- Subject line features and the subscriber consent split

Every request carries its own dataset and date-range selector; the server
holds no state between calls.

Error handling:
- Unknown date range keys and incomplete custom ranges -> 400
- Empty datasets -> a well-formed "not enough data" result, never an error
- Anything unexpected -> logged and returned as 500
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from fastapi import APIRouter, HTTPException

from email_analytics.core.dependencies import SettingsDep
from email_analytics.models import (
    AggregatesResponse,
    AnalysisRequest,
    AudienceSizeAnalysis,
    Channel,
    ComparisonRequest,
    ConsentSplitRequest,
    ConsentSplitResult,
    DayOfWeekGuidance,
    DeliverabilityRequest,
    DeliverabilityResponse,
    FlowStepAnalysis,
    FrequencyGuidance,
    GapsLossesResult,
    MetricKey,
    PeriodComparison,
    ReliabilityResult,
    ResolvedDateRange,
    SendRecord,
    SendVolumeResult,
    SubjectAnalysisResult,
    SubjectLineRequest,
)
from email_analytics.services.audience_size import analyze_audience_size
from email_analytics.services.bucketing import (
    aggregate_records,
    build_period_aggregates,
    filter_in_range,
    get_metric_time_series,
)
from email_analytics.services.consent_split import analyze_consent_split
from email_analytics.services.dataset import DatasetContext
from email_analytics.services.date_range import granularity_for_range, resolve_date_range
from email_analytics.services.day_of_week import compute_campaign_day_performance
from email_analytics.services.deliverability import (
    get_deliverability_points,
    get_deliverability_risk_message,
    get_deliverability_zone_with_context,
    get_risk_zone,
)
from email_analytics.services.flow_scoring import analyze_flow_steps
from email_analytics.services.gaps_losses import compute_campaign_gaps_and_losses
from email_analytics.services.reliability import analyze_revenue_reliability
from email_analytics.services.send_frequency import analyze_send_frequency
from email_analytics.services.send_volume import compute_send_volume_guidance
from email_analytics.services.subject_lines import analyze_subject_lines

# Configure logging
logger = logging.getLogger(__name__)

# Create router with prefix and tags for OpenAPI documentation
router = APIRouter(prefix="/analytics", tags=["analytics"])


# Series returned alongside every aggregates response
DEFAULT_SERIES_METRICS: List[MetricKey] = [
    MetricKey.TOTAL_REVENUE,
    MetricKey.EMAILS_SENT,
    MetricKey.OPEN_RATE,
    MetricKey.CLICK_RATE,
    MetricKey.CONVERSION_RATE,
    MetricKey.REVENUE_PER_EMAIL,
]


# =============================================================================
# Helper Functions
# =============================================================================


def build_context(request: AnalysisRequest) -> Tuple[DatasetContext, Optional[ResolvedDateRange]]:
    """
    Build the dataset context and resolve the requested window.

    Args:
        request: Any analysis request.

    Returns:
        Tuple of (DatasetContext, window). The window is None only when the
        dataset has no sends and the selector needs a data anchor.

    Raises:
        HTTPException 400: Unknown range key or incomplete custom range.
    """
    ctx = DatasetContext.from_payload(request.dataset)
    try:
        window = ctx.get_resolved_date_range(
            request.range.dateRange,
            custom_from=request.range.customFrom,
            custom_to=request.range.customTo,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ctx, window


def analysis_window(request: AnalysisRequest) -> Tuple[DatasetContext, ResolvedDateRange]:
    """
    Like ``build_context`` but always returns a window.

    An empty dataset is anchored on today so the analyzers can report
    "not enough data" through their normal result models.
    """
    ctx, window = build_context(request)
    if window is None:
        window = resolve_date_range(request.range.dateRange, datetime.now(timezone.utc))
    return ctx, window


def _channel_records(ctx: DatasetContext, channel: Channel, flow_name: Optional[str]) -> List[SendRecord]:
    records = list(ctx.get_records(channel))
    if channel == Channel.FLOWS and flow_name:
        records = [r for r in records if r.flowName == flow_name]
    return records


def _server_error(action: str, e: Exception) -> HTTPException:
    logger.exception(f"Error {action}: {e}")
    return HTTPException(status_code=500, detail=f"Error {action}: {str(e)}")


# =============================================================================
# Aggregates and Comparison
# =============================================================================


@router.post("/aggregates", response_model=AggregatesResponse)
async def get_aggregates(request: AnalysisRequest) -> AggregatesResponse:
    """
    Period aggregates and metric series for one channel.

    Granularity defaults to daily up to 60 days, weekly up to 365 days and
    monthly beyond. Every bucket between the window bounds is returned,
    including empty ones.
    """
    ctx, window = analysis_window(request)
    try:
        granularity = request.granularity or granularity_for_range(window)
        records = _channel_records(ctx, request.channel, request.flowName)
        in_range = filter_in_range(records, window.startDate, window.endDate)
        series = {
            metric.value: get_metric_time_series(records, metric, window.startDate, window.endDate, granularity)
            for metric in DEFAULT_SERIES_METRICS
        }
        logger.info(
            f"Aggregates: {request.channel.value} {window.days} days "
            f"({granularity.value}, {len(in_range)} records)"
        )
        return AggregatesResponse(
            dateRange=window,
            granularity=granularity,
            totals=aggregate_records(in_range),
            aggregates=build_period_aggregates(records, window.startDate, window.endDate, granularity),
            series=series,
        )
    except Exception as e:
        raise _server_error("computing aggregates", e)


@router.post("/comparison", response_model=PeriodComparison)
async def get_comparison(request: ComparisonRequest) -> PeriodComparison:
    """
    Period-over-period change of one metric.

    ``previousValue`` and ``changePercent`` are null when the data does not
    cover the baseline window.
    """
    ctx, window = analysis_window(request)
    try:
        return ctx.calculate_period_over_period_change(
            request.metric,
            window,
            channel=None if request.allChannels else request.channel,
            compare_mode=request.compareMode,
            flow_name=request.flowName,
        )
    except Exception as e:
        raise _server_error("computing comparison", e)


# =============================================================================
# Deliverability
# =============================================================================


@router.post("/deliverability", response_model=DeliverabilityResponse)
async def get_deliverability(request: DeliverabilityRequest, settings: SettingsDep) -> DeliverabilityResponse:
    """
    Risk zone and scoring points for a spam/bounce pair.

    When ``emailsSent`` is supplied the context-aware zone is also returned,
    which can soften a red verdict for low-volume or proportionate segments.
    """
    zone = get_risk_zone(request.spamRate, request.bounceRate, settings)
    context = None
    if request.emailsSent is not None:
        context = get_deliverability_zone_with_context(
            request.spamRate,
            request.bounceRate,
            request.emailsSent,
            request.spamComplaints,
            request.bounces,
            account=request.account,
            settings=settings,
        )
    return DeliverabilityResponse(
        zone=zone,
        points=get_deliverability_points(request.spamRate, request.bounceRate, request.sendShare, settings),
        context=context,
        riskMessage=get_deliverability_risk_message(zone, request.spamRate, request.bounceRate, settings),
    )


# =============================================================================
# Campaign Segmentation
# =============================================================================


@router.post("/send-frequency", response_model=FrequencyGuidance)
async def get_send_frequency(request: AnalysisRequest, settings: SettingsDep) -> FrequencyGuidance:
    """Campaigns-per-week buckets and the cadence recommendation."""
    ctx, window = analysis_window(request)
    try:
        return analyze_send_frequency(
            ctx.get_campaigns(), window.startDate, window.endDate, settings, history=ctx.get_campaigns()
        )
    except Exception as e:
        raise _server_error("analyzing send frequency", e)


@router.post("/audience-size", response_model=AudienceSizeAnalysis)
async def get_audience_size(request: AnalysisRequest, settings: SettingsDep) -> AudienceSizeAnalysis:
    """Audience-size buckets and the recommended target range."""
    ctx, window = analysis_window(request)
    try:
        return analyze_audience_size(ctx.get_campaigns(), window.startDate, window.endDate, settings)
    except Exception as e:
        raise _server_error("analyzing audience size", e)


@router.post("/day-of-week", response_model=DayOfWeekGuidance)
async def get_day_of_week(request: AnalysisRequest, settings: SettingsDep) -> DayOfWeekGuidance:
    """Weekday performance and recommended send days."""
    ctx, window = analysis_window(request)
    try:
        return compute_campaign_day_performance(ctx.get_campaigns(), window.startDate, window.endDate, settings)
    except Exception as e:
        raise _server_error("analyzing send days", e)


# =============================================================================
# Estimators
# =============================================================================


@router.post("/gaps-losses", response_model=GapsLossesResult)
async def get_gaps_losses(request: AnalysisRequest, settings: SettingsDep) -> GapsLossesResult:
    """Zero-campaign weeks and the revenue they likely cost."""
    ctx, window = analysis_window(request)
    try:
        return compute_campaign_gaps_and_losses(
            ctx.get_campaigns(), ctx.get_flow_emails(), window.startDate, window.endDate, settings
        )
    except Exception as e:
        raise _server_error("computing gaps and losses", e)


@router.post("/reliability", response_model=ReliabilityResult)
async def get_reliability(request: AnalysisRequest, settings: SettingsDep) -> ReliabilityResult:
    """Weekly revenue reliability for the requested channel."""
    ctx, window = analysis_window(request)
    try:
        return analyze_revenue_reliability(
            ctx.get_campaigns(),
            ctx.get_flow_emails(),
            window.startDate,
            window.endDate,
            scope=request.channel,
            settings=settings,
        )
    except Exception as e:
        raise _server_error("computing revenue reliability", e)


@router.post("/send-volume", response_model=SendVolumeResult)
async def get_send_volume(request: AnalysisRequest, settings: SettingsDep):
    """Send-volume verdict using the requested model."""
    ctx, window = analysis_window(request)
    try:
        return compute_send_volume_guidance(
            request.channel,
            ctx.get_records(request.channel),
            window.startDate,
            window.endDate,
            request.sendVolumeModel,
            settings,
        )
    except Exception as e:
        raise _server_error("computing send volume guidance", e)


# =============================================================================
# Flows
# =============================================================================


@router.post("/flow-steps", response_model=FlowStepAnalysis)
async def get_flow_steps(request: AnalysisRequest, settings: SettingsDep) -> FlowStepAnalysis:
    """
    Step scores and add-step suggestion for one flow.

    Raises:
        HTTPException 400: If ``flowName`` is missing
        HTTPException 404: If the flow is not in the dataset
    """
    if not request.flowName:
        raise HTTPException(status_code=400, detail="flowName is required")
    ctx, window = analysis_window(request)
    if request.flowName not in ctx.get_unique_flow_names():
        raise HTTPException(status_code=404, detail=f"Flow {request.flowName} not found")
    try:
        return analyze_flow_steps(ctx, request.flowName, window.startDate, window.endDate, settings)
    except Exception as e:
        raise _server_error("analyzing flow steps", e)


# =============================================================================
# Subject Lines and Audience
# =============================================================================


@router.post("/subject-lines", response_model=SubjectAnalysisResult)
async def get_subject_lines(request: SubjectLineRequest, settings: SettingsDep) -> SubjectAnalysisResult:
    """Subject line feature groups scored on the requested metric."""
    ctx, window = analysis_window(request)
    try:
        return analyze_subject_lines(
            ctx.get_campaigns(), window.startDate, window.endDate, request.metric, window, settings
        )
    except Exception as e:
        raise _server_error("analyzing subject lines", e)


@router.post("/consent-split", response_model=ConsentSplitResult)
async def get_consent_split(request: ConsentSplitRequest) -> ConsentSplitResult:
    """
    Subscribed vs Not Subscribed profiles on one metric.

    Profiles are limited to those created in the window and engagement is
    measured back from the window end.
    """
    ctx, window = analysis_window(request)
    try:
        return analyze_consent_split(ctx.get_subscribers(), request.metric, window)
    except Exception as e:
        raise _server_error("computing consent split", e)
