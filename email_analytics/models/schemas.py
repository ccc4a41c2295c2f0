"""
Pydantic request/response models for the email analytics engine.

This module provides type-safe data validation and serialization for every
contract of the engine: parsed send and subscriber records, time-bucketed
aggregates, segmentation buckets, guidance results, action notes, opportunity
summaries, export packages and the HTTP request envelopes.

Conventions:
- Field names are camelCase, the wire format consumed by the dashboard.
- Input snapshots (send and subscriber records) are frozen.
- Every result model is JSON serializable by construction so it can cross an
  HTTP boundary unchanged.
- Module-specific note details are explicit tagged variants discriminated on
  ``kind`` instead of loosely typed metadata dictionaries.

All models use Pydantic v2 syntax with proper field validation and examples.
"""

from datetime import datetime, timezone
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from email_analytics.models.enums import (
    Channel,
    CompareMode,
    ConfidenceLevel,
    ConsentGroupKey,
    ConsentSplitMetric,
    DateRangeKey,
    DayOfWeek,
    DayPerformanceState,
    FlowStepAction,
    FlowType,
    FrequencyBucketKey,
    Granularity,
    GuidanceStatus,
    ImpactType,
    IngestKind,
    MetricKey,
    ModuleSlug,
    OpportunityCategoryKey,
    RecommendationKind,
    RiskZone,
    SendVolumeModel,
    SendVolumePeriod,
    SubjectMetricKey,
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _safe_rate(count: float, denominator: float) -> float:
    return count / denominator * 100 if denominator > 0 else 0.0


# =============================================================================
# Input Records
# =============================================================================


class SendRecord(BaseModel):
    """
    A single campaign send or flow email, as parsed from a CSV export.

    Campaign records carry ``campaignName``/``subject``; flow records carry
    ``flowId``/``flowName``/``flowMessageId`` and a ``sequencePosition``
    (1-based order of the message inside its flow). Counts are non-negative
    and rates are derived on demand with zero guards.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "sentDate": "2024-03-04T15:00:00Z",
                "campaignName": "Spring Sale Launch",
                "subject": "20% off everything",
                "emailsSent": 24000,
                "revenue": 3120.50,
                "totalOrders": 41,
                "uniqueOpens": 9100,
                "uniqueClicks": 480,
                "unsubscribesCount": 31,
                "spamComplaintsCount": 4,
                "bouncesCount": 120,
            }
        }
    )

    sentDate: datetime = Field(
        ...,
        description="Send timestamp, normalized to UTC"
    )
    emailsSent: int = Field(default=0, ge=0)
    revenue: float = Field(default=0.0, ge=0)
    totalOrders: int = Field(default=0, ge=0)
    uniqueOpens: int = Field(default=0, ge=0)
    uniqueClicks: int = Field(default=0, ge=0)
    unsubscribesCount: int = Field(default=0, ge=0)
    spamComplaintsCount: int = Field(default=0, ge=0)
    bouncesCount: int = Field(default=0, ge=0)

    # Campaign identity
    campaignName: Optional[str] = None
    subject: Optional[str] = None

    # Flow identity
    flowId: Optional[str] = None
    flowName: Optional[str] = None
    flowMessageId: Optional[str] = None
    emailName: Optional[str] = None
    sequencePosition: Optional[int] = Field(default=None, ge=1)
    status: Optional[str] = Field(
        default=None,
        description="Flow status from the export (live, manual, draft)"
    )

    @field_validator("sentDate")
    @classmethod
    def _normalize_sent_date(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def open_rate(self) -> float:
        return _safe_rate(self.uniqueOpens, self.emailsSent)

    @property
    def click_rate(self) -> float:
        return _safe_rate(self.uniqueClicks, self.emailsSent)

    @property
    def click_to_open_rate(self) -> float:
        return _safe_rate(self.uniqueClicks, self.uniqueOpens)

    @property
    def conversion_rate(self) -> float:
        return _safe_rate(self.totalOrders, self.uniqueClicks)

    @property
    def unsubscribe_rate(self) -> float:
        return _safe_rate(self.unsubscribesCount, self.emailsSent)

    @property
    def spam_rate(self) -> float:
        return _safe_rate(self.spamComplaintsCount, self.emailsSent)

    @property
    def bounce_rate(self) -> float:
        return _safe_rate(self.bouncesCount, self.emailsSent)

    @property
    def revenue_per_email(self) -> float:
        return self.revenue / self.emailsSent if self.emailsSent > 0 else 0.0

    @property
    def avg_order_value(self) -> float:
        return self.revenue / self.totalOrders if self.totalOrders > 0 else 0.0


class SubscriberRecord(BaseModel):
    """
    A subscriber profile row from a list export.

    Only the activity timestamps matter to the engine: they drive the
    dead-weight audience estimate.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(..., min_length=1, description="Profile identifier")
    email: Optional[str] = None
    emailConsentRaw: Optional[str] = None
    profileCreated: Optional[datetime] = None
    firstActive: Optional[datetime] = None
    lastActive: Optional[datetime] = None
    lastOpen: Optional[datetime] = None
    lastClick: Optional[datetime] = None
    totalClv: float = 0.0
    totalOrders: int = Field(default=0, ge=0)
    isBuyer: bool = False

    @field_validator(
        "profileCreated", "firstActive", "lastActive", "lastOpen", "lastClick"
    )
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


# =============================================================================
# Date Ranges
# =============================================================================


class ResolvedDateRange(BaseModel):
    """Concrete ``[startDate, endDate]`` window produced by the resolver."""

    key: DateRangeKey
    startDate: datetime
    endDate: datetime
    days: int = Field(..., ge=0, description="Inclusive calendar days covered")


class ComparisonWindow(BaseModel):
    """Current and baseline windows for period-over-period comparison."""

    compareMode: CompareMode
    current: ResolvedDateRange
    previous: ResolvedDateRange


class PeriodComparison(BaseModel):
    """
    Period-over-period change for one metric.

    ``previousValue`` and ``changePercent`` are null when the dataset does not
    reach back far enough to cover the baseline window.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "metric": "totalRevenue",
                "channel": None,
                "compareMode": "prev-period",
                "currentValue": 18230.0,
                "previousValue": 15100.0,
                "changePercent": 20.73,
                "isPositive": True,
                "hasCoverage": True,
            }
        }
    )

    metric: MetricKey
    channel: Optional[Channel] = None
    compareMode: CompareMode
    currentValue: float
    previousValue: Optional[float] = None
    changePercent: Optional[float] = None
    isPositive: Optional[bool] = Field(
        default=None,
        description="Whether the change is good news (inverted for unsub/spam/bounce)"
    )
    hasCoverage: bool
    window: ComparisonWindow


# =============================================================================
# Aggregates
# =============================================================================


class AggregatedMetrics(BaseModel):
    """Sums and zero-guarded rates over a set of send records."""

    totalRevenue: float = 0.0
    emailsSent: int = 0
    totalOrders: int = 0
    uniqueOpens: int = 0
    uniqueClicks: int = 0
    unsubscribes: int = 0
    spamComplaints: int = 0
    bounces: int = 0
    emailCount: int = Field(default=0, description="Number of records aggregated")

    avgOrderValue: float = 0.0
    revenuePerEmail: float = 0.0
    openRate: float = 0.0
    clickRate: float = 0.0
    clickToOpenRate: float = 0.0
    conversionRate: float = 0.0
    unsubscribeRate: float = 0.0
    spamRate: float = 0.0
    bounceRate: float = 0.0


class PeriodAggregate(AggregatedMetrics):
    """
    One calendar bucket (day, Monday week or month).

    ``isComplete`` is true only when the whole calendar period lies inside the
    requested range; partial boundary buckets are kept for gap detection but
    excluded from revenue reference statistics.
    """

    periodStart: datetime
    periodEnd: datetime
    label: str
    isComplete: bool


class MetricPoint(BaseModel):
    """A single point of a metric time series."""

    periodStart: datetime
    label: str
    value: float


class RevenueAggregateBase(BaseModel):
    totalRevenue: float = 0.0
    campaignRevenue: float = 0.0
    flowRevenue: float = 0.0
    campaignsSent: int = 0
    campaignEmails: int = 0
    flowEmails: int = 0
    activeDays: int = 0
    isComplete: bool = True


class WeeklyRevenueAggregate(RevenueAggregateBase):
    """Monday-start week with a campaign/flow revenue split."""

    weekStart: datetime
    label: str


class MonthlyRevenueAggregate(RevenueAggregateBase):
    """Calendar month with a campaign/flow revenue split."""

    monthStart: datetime
    label: str


# =============================================================================
# Deliverability
# =============================================================================


class AccountContext(BaseModel):
    """Account-wide deliverability context for the context-aware zone."""

    accountSends: int = Field(default=0, ge=0)
    accountSpamComplaints: int = Field(default=0, ge=0)
    accountBounces: int = Field(default=0, ge=0)
    accountSpamRate: float = Field(default=0.0, ge=0)
    accountBounceRate: float = Field(default=0.0, ge=0)


class DeliverabilityPoints(BaseModel):
    points: float = Field(..., ge=0, le=20)
    zone: RiskZone
    lowVolumeAdjusted: bool = False


class ContextualZone(BaseModel):
    """Raw vs effective zone once account context is considered."""

    rawZone: RiskZone
    effectiveZone: RiskZone
    points: float
    wasDowngraded: bool
    lowVolumeAdjusted: bool = False
    reason: Optional[str] = None


# =============================================================================
# Segmentation: Send Frequency
# =============================================================================


class FrequencyBucketAggregate(BaseModel):
    """
    Weeks grouped by the number of campaigns sent in them.

    Weekly revenue statistics are computed after the IQR outlier filter;
    ``weightedWeeklyRevenue`` weights recent weeks linearly higher.
    """

    key: FrequencyBucketKey
    weeksCount: int
    weeksFiltered: int = Field(default=0, description="Weeks dropped by the IQR filter")
    totalCampaigns: int
    totalEmails: int
    totalRevenue: float
    totalOrders: int

    avgWeeklyRevenue: float
    weightedWeeklyRevenue: float
    weeklyRevenueStd: float
    stdError: float
    lowerConfidenceBound: float
    avgWeeklyEmails: float
    avgCampaignRevenue: float
    avgCampaignEmails: float

    avgOrderValue: float
    revenuePerEmail: float
    openRate: float
    clickRate: float
    clickToOpenRate: float
    conversionRate: float
    unsubscribeRate: float
    spamRate: float
    bounceRate: float


class FrequencyGuidance(BaseModel):
    """Send-frequency guidance result."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "send-more",
                "recommendationKind": "scale-up",
                "cadenceLabel": "2 campaigns per week",
                "title": "Send 2 campaigns per week",
                "message": "Weeks with 2 campaigns earned more...",
                "sample": "Based on 22 weeks of campaign activity.",
                "baselineKey": "1",
                "targetKey": "2",
            }
        }
    )

    status: GuidanceStatus
    recommendationKind: RecommendationKind
    cadenceLabel: Optional[str] = None
    title: str
    message: str
    sample: Optional[str] = None
    baselineKey: Optional[FrequencyBucketKey] = None
    targetKey: Optional[FrequencyBucketKey] = None
    estimatedWeeklyGain: Optional[float] = None
    estimatedMonthlyGain: Optional[float] = None
    seasonalThreshold: Optional[float] = None
    weeksExcludedSeasonal: int = 0
    buckets: List[FrequencyBucketAggregate] = Field(default_factory=list)


# =============================================================================
# Segmentation: Audience Size
# =============================================================================


class AudienceSizeBucket(BaseModel):
    """Campaigns grouped by audience size (emails sent)."""

    key: str
    rangeLabel: str
    rangeMin: float
    rangeMax: float
    campaignCount: int
    totalEmails: int
    totalRevenue: float
    totalOrders: int
    avgCampaignRevenue: float
    avgCampaignEmails: float
    avgOrderValue: float
    revenuePerEmail: float
    openRate: float
    clickRate: float
    conversionRate: float
    unsubscribeRate: float
    spamRate: float
    bounceRate: float
    qualified: bool = Field(
        ...,
        description="Bucket meets the minimum campaigns and emails gates"
    )


class AudienceSizeAnalysis(BaseModel):
    status: GuidanceStatus
    recommendationKind: RecommendationKind
    title: str
    message: str
    sample: Optional[str] = None
    buckets: List[AudienceSizeBucket] = Field(default_factory=list)
    sampleSize: int = 0
    limited: bool = False
    floorApplied: Optional[float] = None
    excludedCampaigns: int = 0
    bestKey: Optional[str] = None
    recommendedKey: Optional[str] = None
    isSafeChoice: bool = False


# =============================================================================
# Segmentation: Day of Week
# =============================================================================


class DayOfWeekAggregate(BaseModel):
    """
    Per-weekday campaign aggregate.

    Index fields are only meaningful when ``eligible`` is true; ineligible
    days keep them at zero.
    """

    day: DayOfWeek
    dayIndex: int = Field(..., ge=0, le=6, description="0 = Monday")
    campaignCount: int
    totalEmails: int
    totalRevenue: float
    totalOrders: int
    avgCampaignRevenue: float
    revenuePerEmail: float
    openRate: float
    clickRate: float
    conversionRate: float
    unsubscribeRate: float
    spamRate: float
    bounceRate: float
    eligible: bool = False
    revenueIndex: float = 0.0
    engagementIndex: float = 0.0
    riskIndex: float = 0.0
    compositeScore: float = 0.0
    volatile: bool = False


class DayOfWeekGuidance(BaseModel):
    state: DayPerformanceState
    headline: str
    message: Optional[str] = None
    sampleLine: Optional[str] = None
    recommendedDays: List[DayOfWeek] = Field(default_factory=list)
    fullWeeks: int = 0
    campaignsPerWeek: float = 0.0
    days: List[DayOfWeekAggregate] = Field(default_factory=list)


# =============================================================================
# Gaps & Losses / Reliability
# =============================================================================


class GapsLossesResult(BaseModel):
    """
    Campaign coverage and lost-revenue estimate over a range.

    Only complete weeks count toward zero-send runs.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "zeroCampaignSendWeeks": 3,
                "longestZeroSendGap": 3,
                "pctWeeksWithCampaignsSent": 70.0,
                "estimatedLostRevenue": 4200.0,
                "suspectedCsvCoverageGap": False,
            }
        }
    )

    zeroCampaignSendWeeks: int = 0
    longestZeroSendGap: int = 0
    zeroSendWeekStarts: List[datetime] = Field(default_factory=list)
    zeroRevenueWeekStarts: List[datetime] = Field(default_factory=list)
    pctWeeksWithCampaignsSent: float = 0.0
    lowEffectivenessCampaigns: int = 0
    avgCampaignsPerWeek: float = 0.0
    allWeeksSent: bool = False
    weeksInRangeFull: int = 0
    weeksWithCampaignsSent: int = 0
    insufficientHistoryForEstimator: bool = False
    suspectedCsvCoverageGap: bool = False
    estimatedLostRevenue: Optional[float] = None


class ReliabilityPoint(BaseModel):
    weekStart: datetime
    label: str = ""
    revenue: float
    index: float = Field(default=0.0, description="Revenue relative to the window median")
    robustZ: Optional[float] = None
    isAnomaly: bool = False


class ReliabilityResult(BaseModel):
    """Revenue reliability over the trailing complete weeks."""

    scope: Optional[Channel] = Field(
        default=None,
        description="Revenue stream measured; null for campaigns and flows combined"
    )
    reliability: Optional[int] = Field(
        default=None,
        description="0-100, higher means steadier weekly revenue"
    )
    trendDelta: Optional[int] = None
    median: float = 0.0
    mad: float = 0.0
    windowWeeks: int = 0
    insufficient: bool = False
    points: List[ReliabilityPoint] = Field(default_factory=list)
    zeroCampaignWeeks: int = 0
    estimatedLostRevenue: float = 0.0


# =============================================================================
# Send Volume
# =============================================================================


class SendVolumePoint(BaseModel):
    periodStart: datetime
    emails: int
    revenue: float
    unsubRate: float
    spamRate: float
    bounceRate: float


class VolumeCorrelations(BaseModel):
    """Pearson r of volume against each metric; null when undefined."""

    revenue: Optional[float] = None
    unsubRate: Optional[float] = None
    spamRate: Optional[float] = None
    bounceRate: Optional[float] = None


class CorrelationSendVolumeResult(BaseModel):
    """Send-volume verdict from correlation scoring."""

    model: Literal["correlation"] = "correlation"
    channel: Channel
    status: GuidanceStatus
    message: str
    sampleSize: int = 0
    period: Optional[SendVolumePeriod] = None
    correlations: VolumeCorrelations = Field(default_factory=VolumeCorrelations)
    revenueScore: int = 0
    riskScore: int = 0
    deliverabilityBreached: bool = False
    avgSpamRate: float = 0.0
    avgBounceRate: float = 0.0
    points: List[SendVolumePoint] = Field(default_factory=list)


class RegressionSendVolumeResult(BaseModel):
    """Send-volume verdict from the ``revenue = a + b·ln(volume)`` fit."""

    model: Literal["log_regression"] = "log_regression"
    channel: Channel
    status: GuidanceStatus
    message: str
    sampleSize: int = 0
    lookbackDays: int = 0
    optimalWindowDays: Optional[int] = None
    isHighVolume: bool = False
    slope: Optional[float] = None
    intercept: Optional[float] = None
    rSquared: Optional[float] = None
    coefficientOfVariation: Optional[float] = None
    currentWeeklyVolume: Optional[float] = None
    projectedMonthlyGain: Optional[float] = None
    killSwitch: bool = False
    cautionFlag: bool = False
    avgSpamRate: float = 0.0
    avgBounceRate: float = 0.0


SendVolumeResult = Annotated[
    Union[CorrelationSendVolumeResult, RegressionSendVolumeResult],
    Field(discriminator="model"),
]


# =============================================================================
# Flows
# =============================================================================


class FlowSequenceInfo(BaseModel):
    """Message ids and names of a flow ordered by sequence position."""

    flowName: str
    flowId: Optional[str] = None
    messageIds: List[str]
    emailNames: List[str]
    sequenceLength: int


class FlowStepMetrics(BaseModel):
    """Summed metrics for one step of a flow over a window."""

    flowName: str
    sequencePosition: int
    flowMessageId: Optional[str] = None
    emailName: Optional[str] = None
    emailsSent: int = 0
    revenue: float = 0.0
    totalOrders: int = 0
    uniqueOpens: int = 0
    uniqueClicks: int = 0
    unsubscribes: int = 0
    spamComplaints: int = 0
    bounces: int = 0
    openRate: float = 0.0
    clickRate: float = 0.0
    clickToOpenRate: float = 0.0
    conversionRate: float = 0.0
    unsubscribeRate: float = 0.0
    spamRate: float = 0.0
    bounceRate: float = 0.0
    revenuePerEmail: float = 0.0
    avgOrderValue: float = 0.0


class FlowStepScore(BaseModel):
    """Money/Deliverability/Confidence pillar score and action for a step."""

    sequencePosition: int
    flowMessageId: Optional[str] = None
    emailName: Optional[str] = None
    emailsSent: int
    revenue: float
    revenuePerEmail: float
    score: float = Field(..., ge=0, le=100)
    moneyPoints: float
    revenueIndex: float
    storeSharePoints: float
    deliverabilityPoints: float
    confidencePoints: float
    zone: RiskZone
    lowVolumeAdjusted: bool = False
    riskHigh: bool
    highMoney: bool
    lowMoney: bool
    action: FlowStepAction
    guardrailApplied: bool = False


class FlowStepProjection(BaseModel):
    """Projected revenue for a hypothetical additional flow step."""

    flowType: FlowType
    flowTypeLabel: str
    decayFactor: float
    conservativeRpe: float
    projectedWeeklyReach: float
    projectedWeeklyRevenue: float
    projectedRevenueLow: float
    projectedRevenueMid: float
    projectedRevenueHigh: float
    rangeLabel: str
    confidence: ConfidenceLevel
    confidenceDescription: str


class AddStepSuggestion(BaseModel):
    suggested: bool
    flowName: str
    title: Optional[str] = None
    reason: Optional[str] = None
    horizonDays: int = 0
    estimatedRevenue: Optional[float] = None
    weeklyGain: Optional[float] = None
    projection: Optional[FlowStepProjection] = None
    failedChecks: List[str] = Field(default_factory=list)


class FlowStepAnalysis(BaseModel):
    flowName: str
    totalSends: int
    totalRevenue: float
    medianRpe: float
    steps: List[FlowStepMetrics]
    scores: List[FlowStepScore]
    addStep: Optional[AddStepSuggestion] = None


# =============================================================================
# Dead Weight Audience
# =============================================================================


class DeadWeightResult(BaseModel):
    """Inactive subscribers and the platform-cost savings from suppressing them."""

    totalSubscribers: int = 0
    deadWeightCount: int = 0
    projectedSubscribers: int = 0
    neverActiveCount: int = 0
    inactive90Count: int = 0
    deadWeightPct: float = 0.0
    currentMonthlyPrice: Optional[float] = None
    projectedMonthlyPrice: Optional[float] = None
    monthlySavings: Optional[float] = None
    annualSavings: Optional[float] = None
    customPricing: bool = False


# =============================================================================
# Subject Lines
# =============================================================================


class SubjectMetricAggregate(BaseModel):
    """Totals of a group of campaigns and the selected metric over them."""
    countCampaigns: int = 0
    totalEmails: int = 0
    totalOpens: int = 0
    totalClicks: int = 0
    totalRevenue: float = 0.0
    value: float = Field(
        default=0.0,
        description="Metric value; percent for rates, currency for revenuePerEmail"
    )


class SubjectFeatureStat(SubjectMetricAggregate):
    key: str
    label: str
    liftVsBaseline: float = Field(
        default=0.0,
        description="value - baseline (points for rates, currency for revenuePerEmail)"
    )
    examples: List[str] = Field(default_factory=list)


class SubjectLengthBin(SubjectFeatureStat):
    rangeMin: int
    rangeMax: Optional[int] = None


class SubjectReuseStat(BaseModel):
    """A subject sent verbatim more than once, first vs last send."""
    subject: str
    occurrences: int
    firstValue: float
    lastValue: float
    change: float
    totalEmails: int


class SubjectAnalysisResult(BaseModel):
    metric: SubjectMetricKey
    dateRange: Optional[ResolvedDateRange] = None
    sufficientData: bool = False
    baseline: SubjectMetricAggregate
    lengthBins: List[SubjectLengthBin] = Field(default_factory=list)
    keywordEmojis: List[SubjectFeatureStat] = Field(default_factory=list)
    punctuationCasing: List[SubjectFeatureStat] = Field(default_factory=list)
    deadlines: List[SubjectFeatureStat] = Field(default_factory=list)
    personalization: List[SubjectFeatureStat] = Field(default_factory=list)
    priceAnchoring: List[SubjectFeatureStat] = Field(default_factory=list)
    imperativeStart: List[SubjectFeatureStat] = Field(default_factory=list)
    reuse: List[SubjectReuseStat] = Field(default_factory=list)


# =============================================================================
# Consent Split
# =============================================================================


class ConsentGroupValue(BaseModel):
    key: ConsentGroupKey
    value: float
    sampleSize: int
    percentOfGroup: Optional[float] = Field(
        default=None,
        description="Value as a percent of the group, for count-like metrics"
    )


class ConsentSplitResult(BaseModel):
    metric: ConsentSplitMetric
    groups: List[ConsentGroupValue]


# =============================================================================
# Action Notes
# =============================================================================


class EstimatedImpact(BaseModel):
    """Dollar impact of a recommendation: weekly × {1, 4, 52}."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "weekly": 250.0,
                "monthly": 1000.0,
                "annual": 13000.0,
                "type": "lift",
                "description": "Conservative estimate at 50% of observed lift",
                "basis": "2 vs 1 campaigns per week",
            }
        }
    )

    weekly: float
    monthly: float
    annual: float
    type: ImpactType = ImpactType.LIFT
    description: Optional[str] = None
    basis: Optional[str] = None


class FrequencyNoteDetails(BaseModel):
    kind: Literal["frequency"] = "frequency"
    baselineKey: Optional[FrequencyBucketKey] = None
    targetKey: Optional[FrequencyBucketKey] = None
    baselineWeeklyRevenue: Optional[float] = None
    targetWeeklyRevenue: Optional[float] = None
    lift: Optional[float] = None
    direction: Optional[Literal["more", "less"]] = None


class AudienceNoteDetails(BaseModel):
    kind: Literal["audience"] = "audience"
    targetKey: Optional[str] = None
    targetRange: Optional[str] = None
    targetAvgRevenue: Optional[float] = None
    overallAvgRevenue: Optional[float] = None
    targetCampaigns: int = 0
    lookbackWeeks: float = 0.0


class GapNoteDetails(BaseModel):
    kind: Literal["gaps"] = "gaps"
    zeroCampaignSendWeeks: int = 0
    longestZeroSendGap: int = 0
    estimatedLostRevenue: Optional[float] = None
    coverageFactor: float = 1.0
    suspectedCsvCoverageGap: bool = False


class DayNoteDetails(BaseModel):
    kind: Literal["day"] = "day"
    state: DayPerformanceState
    recommendedDays: List[DayOfWeek] = Field(default_factory=list)
    topDayRevenue: Optional[float] = None
    averageRevenue: Optional[float] = None


class SendVolumeNoteDetails(BaseModel):
    kind: Literal["sendVolume"] = "sendVolume"
    channel: Channel
    status: GuidanceStatus
    model: SendVolumeModel
    sampleSize: int = 0
    period: Optional[SendVolumePeriod] = None


class FlowStepNoteDetails(BaseModel):
    kind: Literal["flowStep"] = "flowStep"
    flowName: str
    horizonDays: int = 0
    projection: Optional[FlowStepProjection] = None


class DeadWeightNoteDetails(BaseModel):
    kind: Literal["deadWeight"] = "deadWeight"
    deadWeightCount: int = 0
    totalSubscribers: int = 0
    currentMonthlyPrice: Optional[float] = None
    projectedMonthlyPrice: Optional[float] = None
    customPricing: bool = False


NoteDetails = Annotated[
    Union[
        FrequencyNoteDetails,
        AudienceNoteDetails,
        GapNoteDetails,
        DayNoteDetails,
        SendVolumeNoteDetails,
        FlowStepNoteDetails,
        DeadWeightNoteDetails,
    ],
    Field(discriminator="kind"),
]


class ModuleActionNote(BaseModel):
    """
    Natural-language recommendation emitted by one analysis module.

    ``estimatedImpact`` is null when the module has nothing to recommend or
    when the estimate falls under the module's minimum monthly floor.
    """

    module: ModuleSlug
    scope: str = Field(..., description="campaigns, flows, audience or a flow name")
    title: str
    message: str
    summary: Optional[str] = None
    paragraphs: List[str] = Field(default_factory=list)
    sample: Optional[str] = None
    estimatedImpact: Optional[EstimatedImpact] = None
    details: Optional[NoteDetails] = None


# =============================================================================
# Opportunity Summary
# =============================================================================


class OpportunityItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    module: ModuleSlug
    label: str
    amountAnnual: float
    type: ImpactType
    category: OpportunityCategoryKey
    percentOfCategory: float = 0.0
    percentOfOverall: float = 0.0


class OpportunityCategory(BaseModel):
    key: OpportunityCategoryKey
    label: str
    totalAnnual: float
    percentOfOverall: float = 0.0
    items: List[OpportunityItem] = Field(default_factory=list)


class OpportunityTotals(BaseModel):
    weekly: float = 0.0
    monthly: float = 0.0
    annual: float = 0.0


class OpportunitySummary(BaseModel):
    """Categorized opportunities for a date range."""

    dateRange: Optional[ResolvedDateRange] = None
    totals: OpportunityTotals = Field(default_factory=OpportunityTotals)
    categories: List[OpportunityCategory] = Field(default_factory=list)
    breakdown: List[OpportunityItem] = Field(default_factory=list)
    notes: List[ModuleActionNote] = Field(default_factory=list)


# =============================================================================
# Export
# =============================================================================


class MonthlySplitPoint(BaseModel):
    monthStart: datetime
    label: str
    campaignValue: float
    flowValue: float
    total: float
    campaignPct: float
    flowPct: float


class LlmExport(BaseModel):
    """
    Aggregated package for external (LLM/report) consumption.

    With ``fullMonthsOnly`` the window is trimmed to whole calendar months;
    when no whole month fits, the dates are null and every metric is zero.
    """

    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    fromMonth: Optional[str] = Field(default=None, description="YYYY-MM of the first month")
    toMonth: Optional[str] = Field(default=None, description="YYYY-MM of the last month")
    months: int = 0
    days: int = 0
    fullMonthsOnly: bool = True
    overall: AggregatedMetrics
    campaigns: AggregatedMetrics
    flows: AggregatedMetrics
    monthlyRevenueSplit: List[MonthlySplitPoint] = Field(default_factory=list)
    monthlyEmailSplit: List[MonthlySplitPoint] = Field(default_factory=list)
    opportunities: Optional[OpportunitySummary] = None


# =============================================================================
# Ingestion
# =============================================================================


class IngestionError(BaseModel):
    """A structural problem in an uploaded CSV (e.g. missing columns)."""

    kind: IngestKind
    message: str
    column: Optional[str] = None
    row: Optional[int] = None


class IngestionResult(BaseModel):
    kind: IngestKind
    campaigns: List[SendRecord] = Field(default_factory=list)
    flowEmails: List[SendRecord] = Field(default_factory=list)
    subscribers: List[SubscriberRecord] = Field(default_factory=list)
    rowsParsed: int = 0
    rowsSkipped: int = 0
    errors: List[IngestionError] = Field(default_factory=list)


# =============================================================================
# API Request / Response Envelopes
# =============================================================================


class DatasetPayload(BaseModel):
    """Parsed dataset sent with every analysis request (no server-side state)."""

    campaigns: List[SendRecord] = Field(default_factory=list)
    flowEmails: List[SendRecord] = Field(default_factory=list)
    subscribers: List[SubscriberRecord] = Field(default_factory=list)


class DateRangeRequest(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {"dateRange": "custom", "customFrom": "2024-01-01", "customTo": "2024-03-31"}
        }
    )

    dateRange: DateRangeKey = DateRangeKey.LAST_90_DAYS
    customFrom: Optional[str] = Field(default=None, description="ISO date, required for custom")
    customTo: Optional[str] = Field(default=None, description="ISO date, required for custom")


class AnalysisRequest(BaseModel):
    dataset: DatasetPayload = Field(default_factory=DatasetPayload)
    range: DateRangeRequest = Field(default_factory=DateRangeRequest)
    channel: Channel = Channel.CAMPAIGNS
    granularity: Optional[Granularity] = None
    sendVolumeModel: SendVolumeModel = SendVolumeModel.CORRELATION
    flowName: Optional[str] = None


class ComparisonRequest(AnalysisRequest):
    metric: MetricKey = MetricKey.TOTAL_REVENUE
    compareMode: CompareMode = CompareMode.PREV_PERIOD
    allChannels: bool = Field(
        default=True,
        description="Compare over all records instead of the selected channel"
    )


class SubjectLineRequest(AnalysisRequest):
    metric: SubjectMetricKey = SubjectMetricKey.OPEN_RATE


class ConsentSplitRequest(AnalysisRequest):
    metric: ConsentSplitMetric = ConsentSplitMetric.COUNT


class DeliverabilityRequest(BaseModel):
    spamRate: float = Field(..., ge=0)
    bounceRate: float = Field(..., ge=0)
    sendShare: Optional[float] = Field(default=None, ge=0, le=1)
    emailsSent: Optional[int] = Field(default=None, ge=0)
    spamComplaints: int = Field(default=0, ge=0)
    bounces: int = Field(default=0, ge=0)
    account: Optional[AccountContext] = None


class DeliverabilityResponse(BaseModel):
    zone: RiskZone
    points: DeliverabilityPoints
    context: Optional[ContextualZone] = None
    riskMessage: Optional[str] = None


class AggregatesResponse(BaseModel):
    dateRange: ResolvedDateRange
    granularity: Granularity
    totals: AggregatedMetrics
    aggregates: List[PeriodAggregate]
    series: Dict[str, List[MetricPoint]] = Field(default_factory=dict)


class CsvUploadRequest(BaseModel):
    content: str = Field(..., description="Raw CSV text of the export")
    filename: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    version: str
