"""
LLM export builder.

Packages a window into a compact, report-friendly JSON document: overall,
campaign-only and flow-only metrics plus a monthly campaign-vs-flow split of
revenue and emails. By default the window is trimmed to whole calendar
months so partial months do not skew month-over-month reading.

Usage:
    from email_analytics.services.export_builder import build_llm_export

    export = build_llm_export(ctx, window, include_opportunities=True)
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from email_analytics.core.config import Settings
from email_analytics.models.schemas import (
    AggregatedMetrics,
    LlmExport,
    MonthlySplitPoint,
    ResolvedDateRange,
)
from email_analytics.services.bucketing import (
    aggregate_records,
    build_monthly_revenue_aggregates,
    end_of_day,
    filter_in_range,
    month_start,
    next_month,
    start_of_day,
)
from email_analytics.services.opportunity_summary import compute_opportunity_summary

logger = logging.getLogger(__name__)

RATE_FIELDS = (
    "openRate",
    "clickRate",
    "clickToOpenRate",
    "conversionRate",
    "unsubscribeRate",
    "spamRate",
    "bounceRate",
)


def full_month_window(start: datetime, end: datetime) -> Optional[Tuple[datetime, datetime]]:
    """
    Trim ``[start, end]`` to whole calendar months.

    A start after the 1st moves to the next month; an end before the last
    day of its month moves back to the end of the previous month.

    Returns:
        (first day 00:00, last day 23:59:59.999999) or None when no whole
        month fits.

    Example:
        Jan 15 to Apr 10 trims to Feb 1 00:00 through Mar 31 23:59:59 UTC.
    """
    trimmed_start = start_of_day(start)
    if trimmed_start.day != 1:
        trimmed_start = next_month(trimmed_start)

    end_day = start_of_day(end)
    if (end_day + timedelta(days=1)).day != 1:
        end_day = month_start(end_day) - timedelta(days=1)
    trimmed_end = end_of_day(end_day)

    if trimmed_start > trimmed_end:
        return None
    return trimmed_start, trimmed_end


def clamp_rates(metrics: AggregatedMetrics) -> AggregatedMetrics:
    """Copy of ``metrics`` with every percentage clamped to [0, 100]."""
    updates = {name: min(100.0, max(0.0, getattr(metrics, name))) for name in RATE_FIELDS}
    return metrics.model_copy(update=updates)


def _split_point(month: datetime, label: str, campaign_value: float, flow_value: float) -> MonthlySplitPoint:
    total = campaign_value + flow_value
    return MonthlySplitPoint(
        monthStart=month,
        label=label,
        campaignValue=campaign_value,
        flowValue=flow_value,
        total=total,
        campaignPct=campaign_value / total * 100 if total > 0 else 0.0,
        flowPct=flow_value / total * 100 if total > 0 else 0.0,
    )


def build_monthly_splits(
    campaigns, flows, start: datetime, end: datetime
) -> Tuple[List[MonthlySplitPoint], List[MonthlySplitPoint]]:
    """Monthly campaign/flow split of revenue and of emails sent."""
    months = build_monthly_revenue_aggregates(campaigns, flows, start, end)
    revenue = [_split_point(m.monthStart, m.label, m.campaignRevenue, m.flowRevenue) for m in months]
    emails = [_split_point(m.monthStart, m.label, m.campaignEmails, m.flowEmails) for m in months]
    return revenue, emails


def _month_key(dt: datetime) -> str:
    return dt.strftime("%Y-%m")


def build_llm_export(
    ctx,
    window: Optional[ResolvedDateRange],
    full_months_only: bool = True,
    include_opportunities: bool = False,
    settings: Optional[Settings] = None,
) -> LlmExport:
    """
    Build the export for a resolved window.

    Args:
        ctx: DatasetContext.
        window: Resolved window; None for an empty dataset.
        full_months_only: Trim the window to whole calendar months.
        include_opportunities: Attach the opportunity summary of the
            original (untrimmed) window.
        settings: Threshold overrides for the opportunity summary.

    Returns:
        LlmExport with zeroed metrics when no window (or no whole month)
        is available.
    """
    empty = LlmExport(
        fullMonthsOnly=full_months_only,
        overall=AggregatedMetrics(),
        campaigns=AggregatedMetrics(),
        flows=AggregatedMetrics(),
    )
    if window is None:
        return empty

    bounds = (
        full_month_window(window.startDate, window.endDate)
        if full_months_only
        else (window.startDate, window.endDate)
    )
    if bounds is None:
        logger.info(f"Export: no whole month between {window.startDate:%Y-%m-%d} and {window.endDate:%Y-%m-%d}")
        return empty
    start, end = bounds

    campaigns = filter_in_range(ctx.get_campaigns(), start, end)
    flows = filter_in_range(ctx.get_flow_emails(), start, end)
    revenue_split, email_split = build_monthly_splits(campaigns, flows, start, end)

    months = (end.year - start.year) * 12 + (end.month - start.month) + 1
    opportunities = None
    if include_opportunities:
        opportunities = compute_opportunity_summary(ctx, window, settings=settings)

    return LlmExport(
        startDate=start,
        endDate=end,
        fromMonth=_month_key(start),
        toMonth=_month_key(end),
        months=months,
        days=(end.date() - start.date()).days + 1,
        fullMonthsOnly=full_months_only,
        overall=clamp_rates(aggregate_records(campaigns + flows)),
        campaigns=clamp_rates(aggregate_records(campaigns)),
        flows=clamp_rates(aggregate_records(flows)),
        monthlyRevenueSplit=revenue_split,
        monthlyEmailSplit=email_split,
        opportunities=opportunities,
    )
