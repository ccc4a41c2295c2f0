"""
Enumeration definitions for the email analytics engine.

All enums inherit from both ``str`` and ``Enum`` so they serialize as plain
strings inside pydantic models and JSON responses.
"""

from enum import Enum


class Channel(str, Enum):
    """
    Sending channel of a record or analysis.

    - campaigns: One-off broadcast sends
    - flows: Automated, trigger-based sequences
    """
    CAMPAIGNS = "campaigns"
    FLOWS = "flows"


class Granularity(str, Enum):
    """Time bucket size for aggregates and series."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class DateRangeKey(str, Enum):
    """
    Named date range selectors.

    Preset ranges end at the last day that contains data, not today, so a
    stale export still produces a populated window.
    """
    LAST_7_DAYS = "7d"
    LAST_14_DAYS = "14d"
    LAST_30_DAYS = "30d"
    LAST_60_DAYS = "60d"
    LAST_90_DAYS = "90d"
    LAST_120_DAYS = "120d"
    LAST_180_DAYS = "180d"
    LAST_365_DAYS = "365d"
    LAST_730_DAYS = "730d"
    ALL = "all"
    CUSTOM = "custom"


class CompareMode(str, Enum):
    """Baseline window for period-over-period comparison."""
    PREV_PERIOD = "prev-period"
    PREV_YEAR = "prev-year"


class MetricKey(str, Enum):
    """Metrics that can be derived from bucket sums."""
    REVENUE = "revenue"
    TOTAL_REVENUE = "totalRevenue"
    EMAILS_SENT = "emailsSent"
    TOTAL_ORDERS = "totalOrders"
    AVG_ORDER_VALUE = "avgOrderValue"
    REVENUE_PER_EMAIL = "revenuePerEmail"
    OPEN_RATE = "openRate"
    CLICK_RATE = "clickRate"
    CLICK_TO_OPEN_RATE = "clickToOpenRate"
    CONVERSION_RATE = "conversionRate"
    UNSUBSCRIBE_RATE = "unsubscribeRate"
    SPAM_RATE = "spamRate"
    BOUNCE_RATE = "bounceRate"


class RiskZone(str, Enum):
    """
    Deliverability risk zone.

    - green: spam < 0.10% and bounce < 2.0%
    - yellow: between green and red limits
    - red: spam > 0.20% or bounce > 3.0%
    """
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class GuidanceStatus(str, Enum):
    """
    Headline verdict of a guidance module.

    send-more/send-less/keep-as-is are volume verdicts, optimize is the
    log-regression "flat curve" verdict, focus and fill-gaps are targeting
    verdicts and insufficient marks a not-enough-data result.
    """
    SEND_MORE = "send-more"
    SEND_LESS = "send-less"
    KEEP_AS_IS = "keep-as-is"
    OPTIMIZE = "optimize"
    FOCUS = "focus"
    FILL_GAPS = "fill-gaps"
    INSUFFICIENT = "insufficient"


class RecommendationKind(str, Enum):
    """
    Concrete action attached to a guidance status.

    - scale-up / scale-down: move to a higher / lower cadence
    - stay: keep the current cadence
    - test: the better option has too few observations to commit
    - target-range / safe-range: audience size to aim for
    - eliminate-gaps / maintain: campaign coverage
    - not-enough-data: no recommendation
    """
    SCALE_UP = "scale-up"
    SCALE_DOWN = "scale-down"
    STAY = "stay"
    TEST = "test"
    TARGET_RANGE = "target-range"
    SAFE_RANGE = "safe-range"
    ELIMINATE_GAPS = "eliminate-gaps"
    MAINTAIN = "maintain"
    NOT_ENOUGH_DATA = "not-enough-data"


class FrequencyBucketKey(str, Enum):
    """Campaigns-per-week bucket keys."""
    ONE = "1"
    TWO = "2"
    THREE = "3"
    FOUR_PLUS = "4+"


class DayOfWeek(str, Enum):
    """Monday-first weekday labels."""
    MON = "Mon"
    TUE = "Tue"
    WED = "Wed"
    THU = "Thu"
    FRI = "Fri"
    SAT = "Sat"
    SUN = "Sun"


class DayPerformanceState(str, Enum):
    """
    Outcome of the day-of-week analysis.

    - not_enough_data: too few full weeks or no eligible day
    - exploratory: only one day passed the sample bar
    - even: composite scores within 6% of each other
    - normal: a clear single-day winner
    - consider: two close leaders for a once-a-week sender
    - multi: a cluster of days for multi-send cadences
    """
    NOT_ENOUGH_DATA = "not_enough_data"
    EXPLORATORY = "exploratory"
    EVEN = "even"
    NORMAL = "normal"
    CONSIDER = "consider"
    MULTI = "multi"


class SendVolumeModel(str, Enum):
    """
    Send-volume algorithm variants.

    - correlation: Pearson correlation scoring (canonical)
    - log_regression: revenue = a + b·ln(volume) with a red-zone kill switch
    """
    CORRELATION = "correlation"
    LOG_REGRESSION = "log_regression"


class SendVolumePeriod(str, Enum):
    """Series granularity used by the correlation model."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class FlowStepAction(str, Enum):
    """Decision for an individual flow step."""
    SCALE = "scale"
    KEEP = "keep"
    IMPROVE = "improve"
    PAUSE = "pause"
    INSUFFICIENT = "insufficient"


class FlowType(str, Enum):
    """Flow archetype inferred from the flow name."""
    WELCOME = "welcome"
    ABANDONED_CART = "abandoned-cart"
    BROWSE_ABANDON = "browse-abandon"
    POST_PURCHASE = "post-purchase"
    WINBACK = "winback"
    BIRTHDAY = "birthday"
    SUNSET = "sunset"
    NURTURE = "nurture"
    DEFAULT = "default"


class ConfidenceLevel(str, Enum):
    """Confidence attached to a revenue projection."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ModuleSlug(str, Enum):
    """Analysis modules that can emit an action note."""
    SEND_VOLUME_IMPACT = "sendVolumeImpact"
    CAMPAIGN_SEND_FREQUENCY = "campaignSendFrequency"
    AUDIENCE_SIZE_PERFORMANCE = "audienceSizePerformance"
    CAMPAIGN_GAPS_LOSSES = "campaignGapsLosses"
    CAMPAIGN_DAY_PERFORMANCE = "campaignDayPerformance"
    FLOW_STEP_ANALYSIS = "flowStepAnalysis"
    DEAD_WEIGHT_AUDIENCE = "deadWeightAudience"


class OpportunityCategoryKey(str, Enum):
    """Closed set of opportunity categories."""
    CAMPAIGNS = "campaigns"
    FLOWS = "flows"
    AUDIENCE = "audience"


class ImpactType(str, Enum):
    """
    Nature of an estimated dollar impact.

    - lift: incremental revenue
    - savings: reduced platform cost
    """
    LIFT = "lift"
    SAVINGS = "savings"


class IngestKind(str, Enum):
    """CSV export kinds accepted by the ingestion service."""
    CAMPAIGNS = "campaigns"
    FLOWS = "flows"
    SUBSCRIBERS = "subscribers"


class SubjectMetricKey(str, Enum):
    """Metric a subject-line feature is scored on."""
    OPEN_RATE = "openRate"
    CLICK_TO_OPEN_RATE = "clickToOpenRate"
    CLICK_RATE = "clickRate"
    REVENUE_PER_EMAIL = "revenuePerEmail"


class ConsentSplitMetric(str, Enum):
    """
    Metric compared between consenting and non-consenting subscribers.

    engaged30/60/90 count profiles with an open or click in the last N days.
    """
    COUNT = "count"
    BUYERS = "buyers"
    NON_BUYERS = "nonBuyers"
    REPEAT_BUYERS = "repeatBuyers"
    LTV_BUYERS = "ltvBuyers"
    LTV_ALL = "ltvAll"
    TOTAL_REVENUE = "totalRevenue"
    ENGAGED_30 = "engaged30"
    ENGAGED_60 = "engaged60"
    ENGAGED_90 = "engaged90"


class ConsentGroupKey(str, Enum):
    SUBSCRIBED = "Subscribed"
    NOT_SUBSCRIBED = "Not Subscribed"
