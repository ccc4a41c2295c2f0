"""
Package initialization file for email analytics models.

This module exports all Pydantic schemas and enumerations from schemas.py and
enums.py, making them importable from ``email_analytics.models`` directly.

Usage:
    from email_analytics.models import (
        SendRecord,
        RiskZone,
        ModuleActionNote,
        OpportunitySummary,
        # ... etc
    )
"""

# =============================================================================
# Enums
# =============================================================================

from email_analytics.models.enums import (
    Channel,
    Granularity,
    DateRangeKey,
    CompareMode,
    MetricKey,
    RiskZone,
    GuidanceStatus,
    RecommendationKind,
    FrequencyBucketKey,
    DayOfWeek,
    DayPerformanceState,
    SendVolumeModel,
    SendVolumePeriod,
    FlowStepAction,
    FlowType,
    ConfidenceLevel,
    ModuleSlug,
    OpportunityCategoryKey,
    ImpactType,
    IngestKind,
    SubjectMetricKey,
    ConsentSplitMetric,
    ConsentGroupKey,
)

# =============================================================================
# Schemas
# =============================================================================

from email_analytics.models.schemas import (
    # -------------------------------------------------------------------------
    # Input records
    # -------------------------------------------------------------------------
    SendRecord,
    SubscriberRecord,

    # -------------------------------------------------------------------------
    # Date ranges and comparison
    # -------------------------------------------------------------------------
    ResolvedDateRange,
    ComparisonWindow,
    PeriodComparison,

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------
    AggregatedMetrics,
    PeriodAggregate,
    MetricPoint,
    WeeklyRevenueAggregate,
    MonthlyRevenueAggregate,

    # -------------------------------------------------------------------------
    # Deliverability
    # -------------------------------------------------------------------------
    AccountContext,
    DeliverabilityPoints,
    ContextualZone,

    # -------------------------------------------------------------------------
    # Segmentation and estimators
    # -------------------------------------------------------------------------
    FrequencyBucketAggregate,
    FrequencyGuidance,
    AudienceSizeBucket,
    AudienceSizeAnalysis,
    DayOfWeekAggregate,
    DayOfWeekGuidance,
    GapsLossesResult,
    ReliabilityPoint,
    ReliabilityResult,

    # -------------------------------------------------------------------------
    # Send volume
    # -------------------------------------------------------------------------
    SendVolumePoint,
    VolumeCorrelations,
    CorrelationSendVolumeResult,
    RegressionSendVolumeResult,
    SendVolumeResult,

    # -------------------------------------------------------------------------
    # Flows
    # -------------------------------------------------------------------------
    FlowSequenceInfo,
    FlowStepMetrics,
    FlowStepScore,
    FlowStepProjection,
    AddStepSuggestion,
    FlowStepAnalysis,

    # -------------------------------------------------------------------------
    # Audience savings
    # -------------------------------------------------------------------------
    DeadWeightResult,

    # -------------------------------------------------------------------------
    # Subject lines and consent split
    # -------------------------------------------------------------------------
    SubjectMetricAggregate,
    SubjectFeatureStat,
    SubjectLengthBin,
    SubjectReuseStat,
    SubjectAnalysisResult,
    ConsentGroupValue,
    ConsentSplitResult,

    # -------------------------------------------------------------------------
    # Action notes and opportunities
    # -------------------------------------------------------------------------
    EstimatedImpact,
    FrequencyNoteDetails,
    AudienceNoteDetails,
    GapNoteDetails,
    DayNoteDetails,
    SendVolumeNoteDetails,
    FlowStepNoteDetails,
    DeadWeightNoteDetails,
    NoteDetails,
    ModuleActionNote,
    OpportunityItem,
    OpportunityCategory,
    OpportunityTotals,
    OpportunitySummary,

    # -------------------------------------------------------------------------
    # Export and ingestion
    # -------------------------------------------------------------------------
    MonthlySplitPoint,
    LlmExport,
    IngestionError,
    IngestionResult,

    # -------------------------------------------------------------------------
    # API envelopes
    # -------------------------------------------------------------------------
    DatasetPayload,
    DateRangeRequest,
    AnalysisRequest,
    ComparisonRequest,
    SubjectLineRequest,
    ConsentSplitRequest,
    DeliverabilityRequest,
    DeliverabilityResponse,
    AggregatesResponse,
    CsvUploadRequest,
    HealthResponse,
)


__all__ = [
    # Enums
    'Channel',
    'Granularity',
    'DateRangeKey',
    'CompareMode',
    'MetricKey',
    'RiskZone',
    'GuidanceStatus',
    'RecommendationKind',
    'FrequencyBucketKey',
    'DayOfWeek',
    'DayPerformanceState',
    'SendVolumeModel',
    'SendVolumePeriod',
    'FlowStepAction',
    'FlowType',
    'ConfidenceLevel',
    'ModuleSlug',
    'OpportunityCategoryKey',
    'ImpactType',
    'IngestKind',
    'SubjectMetricKey',
    'ConsentSplitMetric',
    'ConsentGroupKey',
    # Schemas
    'SendRecord',
    'SubscriberRecord',
    'ResolvedDateRange',
    'ComparisonWindow',
    'PeriodComparison',
    'AggregatedMetrics',
    'PeriodAggregate',
    'MetricPoint',
    'WeeklyRevenueAggregate',
    'MonthlyRevenueAggregate',
    'AccountContext',
    'DeliverabilityPoints',
    'ContextualZone',
    'FrequencyBucketAggregate',
    'FrequencyGuidance',
    'AudienceSizeBucket',
    'AudienceSizeAnalysis',
    'DayOfWeekAggregate',
    'DayOfWeekGuidance',
    'GapsLossesResult',
    'ReliabilityPoint',
    'ReliabilityResult',
    'SendVolumePoint',
    'VolumeCorrelations',
    'CorrelationSendVolumeResult',
    'RegressionSendVolumeResult',
    'SendVolumeResult',
    'FlowSequenceInfo',
    'FlowStepMetrics',
    'FlowStepScore',
    'FlowStepProjection',
    'AddStepSuggestion',
    'FlowStepAnalysis',
    'DeadWeightResult',
    'SubjectMetricAggregate',
    'SubjectFeatureStat',
    'SubjectLengthBin',
    'SubjectReuseStat',
    'SubjectAnalysisResult',
    'ConsentGroupValue',
    'ConsentSplitResult',
    'EstimatedImpact',
    'FrequencyNoteDetails',
    'AudienceNoteDetails',
    'GapNoteDetails',
    'DayNoteDetails',
    'SendVolumeNoteDetails',
    'FlowStepNoteDetails',
    'DeadWeightNoteDetails',
    'NoteDetails',
    'ModuleActionNote',
    'OpportunityItem',
    'OpportunityCategory',
    'OpportunityTotals',
    'OpportunitySummary',
    'MonthlySplitPoint',
    'LlmExport',
    'IngestionError',
    'IngestionResult',
    'DatasetPayload',
    'DateRangeRequest',
    'AnalysisRequest',
    'ComparisonRequest',
    'SubjectLineRequest',
    'ConsentSplitRequest',
    'DeliverabilityRequest',
    'DeliverabilityResponse',
    'AggregatesResponse',
    'CsvUploadRequest',
    'HealthResponse',
]
