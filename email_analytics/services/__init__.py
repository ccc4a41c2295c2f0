"""
Email Analytics Services Module

This module contains the analysis services of the engine. Every service is a
set of plain functions over immutable records and a ``Settings`` instance, so
each can be called and tested without the API layer.

Services:
- ingestion: Campaign, flow and subscriber CSV export parsing
- bucketing / dataset / date_range: Time bucketing, aggregates and windows
- deliverability: Risk zones, points and context-aware zones
- send_frequency / audience_size / day_of_week: Campaign segmentation
- gaps_losses / reliability: Missed-week and revenue stability estimators
- send_volume: Correlation and log-regression send-volume guidance
- flow_decay / flow_scoring: Flow step scores and add-step projections
- dead_weight: Inactive-subscriber suppression savings
- subject_lines / consent_split: Subject line features and consent groups
- action_notes / opportunity_summary / export_builder: Dollar-denominated
  recommendations, their roll-up and the report export

All services are consumed by the API layer (email_analytics/api/).
"""

# =============================================================================
# Ingestion Service Exports
# =============================================================================

from email_analytics.services.ingestion import (
    ingest_csv,
    parse_metric_date,
    clean_number,
    parse_decimal_rate,
    parse_campaigns,
    parse_flows,
    parse_subscribers,
)

# =============================================================================
# Dataset, Bucketing and Date Range Exports
# =============================================================================

from email_analytics.services.bucketing import (
    aggregate_records,
    build_period_aggregates,
    build_weekly_revenue_aggregates,
    build_monthly_revenue_aggregates,
    get_metric_time_series,
    filter_in_range,
)
from email_analytics.services.dataset import DatasetContext
from email_analytics.services.date_range import (
    resolve_date_range,
    previous_period,
    comparison_window,
    granularity_for_range,
    compute_smart_opportunity_window,
)

# =============================================================================
# Deliverability Exports
# =============================================================================

from email_analytics.services.deliverability import (
    get_risk_zone,
    get_deliverability_points,
    get_deliverability_zone_with_context,
    get_deliverability_risk_message,
)

# =============================================================================
# Campaign Segmentation and Estimator Exports
# =============================================================================

from email_analytics.services.send_frequency import analyze_send_frequency
from email_analytics.services.audience_size import analyze_audience_size
from email_analytics.services.day_of_week import compute_campaign_day_performance
from email_analytics.services.gaps_losses import compute_campaign_gaps_and_losses
from email_analytics.services.reliability import analyze_revenue_reliability
from email_analytics.services.send_volume import compute_send_volume_guidance

# =============================================================================
# Flow Exports
# =============================================================================

from email_analytics.services.flow_decay import project_new_step_revenue
from email_analytics.services.flow_scoring import analyze_flow_steps

# =============================================================================
# Opportunity Exports
# =============================================================================

from email_analytics.services.dead_weight import compute_dead_weight_savings
from email_analytics.services.action_notes import build_action_notes
from email_analytics.services.opportunity_summary import (
    summarize_opportunities,
    compute_opportunity_summary,
)
from email_analytics.services.export_builder import build_llm_export

# =============================================================================
# Subject Line and Consent Exports
# =============================================================================

from email_analytics.services.subject_lines import analyze_subject_lines, compute_subject_analysis
from email_analytics.services.consent_split import analyze_consent_split, compute_consent_split


__all__ = [
    # Ingestion
    'ingest_csv',
    'parse_metric_date',
    'clean_number',
    'parse_decimal_rate',
    'parse_campaigns',
    'parse_flows',
    'parse_subscribers',
    # Dataset, bucketing, date ranges
    'aggregate_records',
    'build_period_aggregates',
    'build_weekly_revenue_aggregates',
    'build_monthly_revenue_aggregates',
    'get_metric_time_series',
    'filter_in_range',
    'DatasetContext',
    'resolve_date_range',
    'previous_period',
    'comparison_window',
    'granularity_for_range',
    'compute_smart_opportunity_window',
    # Deliverability
    'get_risk_zone',
    'get_deliverability_points',
    'get_deliverability_zone_with_context',
    'get_deliverability_risk_message',
    # Campaign segmentation and estimators
    'analyze_send_frequency',
    'analyze_audience_size',
    'compute_campaign_day_performance',
    'compute_campaign_gaps_and_losses',
    'analyze_revenue_reliability',
    'compute_send_volume_guidance',
    # Flows
    'project_new_step_revenue',
    'analyze_flow_steps',
    # Opportunities
    'compute_dead_weight_savings',
    'build_action_notes',
    'summarize_opportunities',
    'compute_opportunity_summary',
    'build_llm_export',
    # Subject lines and consent split
    'analyze_subject_lines',
    'compute_subject_analysis',
    'analyze_consent_split',
    'compute_consent_split',
]
