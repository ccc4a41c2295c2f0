"""
Settings and threshold management for the email analytics engine.

Every analyzer in ``email_analytics.services`` reads its thresholds from a
single ``Settings`` instance instead of module-level constants scattered
across files. The instance is loaded by pydantic-settings from environment
variables (prefix ``EMAIL_ANALYTICS_``) and an optional ``.env`` file, so a
deployment can tune gates without code changes and tests can build a
``Settings(...)`` with overridden values.

Key Features:
- Environment variable validation and type coercion
- Sensible production defaults for every statistical gate
- Singleton pattern via @lru_cache for efficient access

Threshold groups:
- Deliverability: spam/bounce green and red limits, low-volume adjustment
- Sample size: minimum weeks, campaigns, emails per analysis
- Opportunity presentation: conservative factor and minimum monthly floors
- Flow scoring: minimum step and flow sends, score bands, guardrails,
  new-step projection confidence
- Dead-weight audience: profile age and inactivity windows
- Subject lines: minimum campaigns and emails, example count
- Send volume: correlation score cut-offs, regression gates

Usage:
    from email_analytics.core.config import get_settings

    settings = get_settings()
    red = settings.spam_red_limit
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Analytics configuration loaded from environment variables.

    All rates are expressed in percent (0.2 means 0.2%), all money in the
    account currency and all windows in days or weeks as named.

    Attributes:
        spam_green_limit: Spam rate below which an audience is green.
        spam_red_limit: Spam rate above which an audience is red.
        bounce_green_limit: Bounce rate below which an audience is green.
        bounce_red_limit: Bounce rate above which an audience is red.
        conservative_factor: Multiplier applied to theoretical revenue deltas.
        min_monthly_gain: Default floor under which an estimate is hidden.
        frequency_min_monthly_gain: Floor for send-frequency estimates.
        audience_min_monthly_gain: Floor for audience-size estimates.
    """

    model_config = SettingsConfigDict(
        env_prefix='EMAIL_ANALYTICS_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Service
    # =========================================================================

    app_name: str = 'Email Analytics API'
    log_level: str = 'INFO'
    cors_origins: List[str] = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ]

    # =========================================================================
    # Deliverability zones (percent)
    # =========================================================================

    spam_green_limit: float = 0.10
    spam_red_limit: float = 0.20
    bounce_green_limit: float = 2.0
    bounce_red_limit: float = 3.0

    # Zone → points used by the flow step deliverability pillar
    green_zone_points: float = 20.0
    yellow_zone_points: float = 12.0
    red_zone_points: float = 0.0

    # Segments carrying less than this share of account sends get their
    # points pulled toward 20 (at most half of the remaining gap)
    low_volume_share_threshold: float = 0.005
    low_volume_points_ceiling: float = 15.0

    # Context-aware zone: minimum sends for a red verdict to stand, the
    # disproportion multiplier and the unconditional severity multiplier
    context_min_sends: int = 500
    context_disproportion_multiplier: float = 2.0
    context_severe_multiplier: float = 3.0

    # Statistical significance of a deliverability read
    min_sample_size: int = 250
    min_lookback_days: int = 14
    max_lookback_days: int = 365
    lookback_coverage_ratio: float = 0.8

    # Unsubscribe rate treated as the risk ceiling for send-volume severity
    unsubscribe_risk_limit: float = 1.0

    # =========================================================================
    # Opportunity presentation
    # =========================================================================

    conservative_factor: float = 0.5
    min_monthly_gain: float = 100.0
    frequency_min_monthly_gain: float = 500.0
    audience_min_monthly_gain: float = 500.0
    weeks_per_month: float = 4.0
    weeks_per_year: float = 52.0

    # Campaign category blending: secondary of frequency/audience counts at
    # this weight when both modules fire
    campaign_overlap_weight: float = 0.5

    # =========================================================================
    # Send frequency
    # =========================================================================

    frequency_min_bucket_weeks: int = 4
    frequency_min_bucket_emails: int = 2500
    frequency_min_lift: float = 0.05
    frequency_test_weeks: int = 3
    frequency_seasonal_percentile: float = 0.90
    frequency_seasonal_lookback_days: int = 365
    frequency_iqr_multiplier: float = 1.5
    lcb_z_score: float = 1.96

    # =========================================================================
    # Audience size
    # =========================================================================

    audience_min_campaigns: int = 3
    audience_min_emails: int = 10000
    audience_min_sample: int = 12
    audience_floor_min: int = 100
    audience_floor_max: int = 1000

    # =========================================================================
    # Day of week
    # =========================================================================

    day_min_weeks: int = 4
    day_min_campaigns: int = 3
    day_min_emails: int = 1000
    day_min_email_share: float = 0.02
    day_even_spread: float = 0.06
    day_clear_winner_ratio: float = 1.05
    day_risk_spam_block: float = 0.5

    # =========================================================================
    # Gaps & losses
    # =========================================================================

    gap_short_run_max_weeks: int = 4
    gap_refs_per_side: int = 4
    gap_local_window_weeks: int = 8
    gap_min_local_refs: int = 4
    gap_decay_after_weeks: int = 12
    gap_decay_rate: float = 0.95
    gap_coverage_hint_weeks: int = 10
    gap_min_nonzero_weeks: int = 4
    gap_reference_cap_percentile: float = 0.75

    # =========================================================================
    # Reliability
    # =========================================================================

    reliability_window_weeks: int = 12
    reliability_min_periods: int = 4
    reliability_anomaly_z: float = 2.5

    # =========================================================================
    # Send volume
    # =========================================================================

    volume_min_weekly_points: int = 6
    volume_min_monthly_points: int = 3
    volume_strong_correlation: float = 0.35
    volume_weak_correlation: float = 0.15
    volume_regression_min_campaigns: int = 12
    volume_regression_min_days: int = 90
    volume_regression_min_emails: int = 500
    volume_regression_min_r2: float = 0.1
    volume_regression_slope: float = 50.0
    volume_min_variance_pct: float = 5.0

    # =========================================================================
    # Flows
    # =========================================================================

    flow_min_step_emails: int = 250
    flow_min_total_sends: int = 2000
    flow_add_step_min_score: float = 75.0
    flow_step_revenue_guardrail: float = 500.0
    flow_step_share_guardrail: float = 0.10
    flow_add_step_revenue_floor: float = 500.0
    flow_add_step_revenue_share: float = 0.05
    flow_min_projection: float = 10.0

    # New-step projection: sends at which the estimate reaches full
    # confidence, and the last-step sends/step count for medium and high
    flow_projection_full_confidence_sends: float = 1000.0
    flow_projection_medium_sends: int = 500
    flow_projection_high_sends: int = 2000
    flow_projection_medium_steps: int = 3
    flow_projection_high_steps: int = 5

    # =========================================================================
    # Dead-weight audience
    # =========================================================================

    dead_weight_never_active_min_age_days: int = 30
    dead_weight_inactive_min_age_days: int = 90
    dead_weight_inactive_window_days: int = 90

    # =========================================================================
    # Subject lines
    # =========================================================================

    subject_min_campaigns: int = 5
    subject_min_emails: int = 5000
    subject_example_limit: int = 5

    # =========================================================================
    # Date ranges
    # =========================================================================

    smart_window_min_sends: int = 5000
    smart_window_min_days: int = 90
    smart_window_max_days: int = 365


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The cached Settings instance.

    Example:
        >>> settings = get_settings()
        >>> settings.spam_red_limit
        0.2

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
