"""
Test Module for the deliverability zone classifier.

Validates:
- Green/yellow/red classification (either metric alone can trigger red)
- Zone points and the low-volume adjustment
- Context-aware downgrading of red segments
- Lookback and significance helpers
"""

import pytest

from email_analytics.models import AccountContext, RiskZone
from email_analytics.services.deliverability import (
    compute_optimal_lookback_days,
    get_deliverability_points,
    get_deliverability_risk_message,
    get_deliverability_zone_with_context,
    get_risk_zone,
    has_statistical_significance,
)


class TestGetRiskZone:
    """Tests for get_risk_zone."""

    @pytest.mark.parity
    @pytest.mark.parametrize("spam,bounce,expected", [
        (0.05, 1.0, RiskZone.GREEN),
        (0.15, 1.0, RiskZone.YELLOW),
        (0.25, 1.0, RiskZone.RED),
        (0.05, 3.5, RiskZone.RED),
    ])
    def test_documented_examples(self, spam, bounce, expected, settings):
        assert get_risk_zone(spam, bounce, settings) == expected

    @pytest.mark.parametrize("spam,bounce,expected", [
        (0.10, 0.0, RiskZone.YELLOW),   # green limit is inclusive for yellow
        (0.20, 0.0, RiskZone.YELLOW),   # red requires strictly above
        (0.0, 2.0, RiskZone.YELLOW),
        (0.0, 3.0, RiskZone.YELLOW),
        (0.0, 3.01, RiskZone.RED),
    ])
    def test_boundaries(self, spam, bounce, expected, settings):
        assert get_risk_zone(spam, bounce, settings) == expected


class TestDeliverabilityPoints:
    """Tests for zone points and the low-volume adjustment."""

    def test_zone_points(self, settings):
        assert get_deliverability_points(0.0, 0.0, settings=settings).points == 20
        assert get_deliverability_points(0.15, 0.0, settings=settings).points == 12
        assert get_deliverability_points(0.5, 0.0, settings=settings).points == 0

    def test_low_volume_red_segment(self, settings):
        result = get_deliverability_points(0.5, 0.0, send_share=0.001, settings=settings)
        # 0 + (20 - 0) * (1 - 0.2) * 0.5
        assert result.points == pytest.approx(8.0)
        assert result.lowVolumeAdjusted is True

    def test_low_volume_yellow_segment(self, settings):
        result = get_deliverability_points(0.15, 0.0, send_share=0.0025, settings=settings)
        assert result.points == pytest.approx(14.0)

    def test_green_is_never_adjusted(self, settings):
        result = get_deliverability_points(0.0, 0.0, send_share=0.001, settings=settings)
        assert result.points == 20
        assert result.lowVolumeAdjusted is False

    def test_share_above_threshold_not_adjusted(self, settings):
        result = get_deliverability_points(0.5, 0.0, send_share=0.01, settings=settings)
        assert result.points == 0
        assert result.lowVolumeAdjusted is False


class TestZoneWithContext:
    """Tests for get_deliverability_zone_with_context."""

    def test_non_red_passes_through(self, settings):
        result = get_deliverability_zone_with_context(0.05, 1.0, 5000, 2, 50, settings=settings)
        assert result.rawZone == RiskZone.GREEN
        assert result.effectiveZone == RiskZone.GREEN
        assert result.wasDowngraded is False

    def test_low_volume_red_downgraded(self, settings):
        result = get_deliverability_zone_with_context(0.25, 0.5, 200, 1, 1, settings=settings)
        assert result.rawZone == RiskZone.RED
        assert result.effectiveZone == RiskZone.YELLOW
        assert result.wasDowngraded is True
        assert result.points == pytest.approx(12.0)

    def test_low_share_downgrade_gets_volume_boost(self, settings):
        account = AccountContext(accountSends=100000, accountSpamComplaints=50, accountBounces=500,
                                 accountSpamRate=0.05, accountBounceRate=0.5)
        result = get_deliverability_zone_with_context(0.25, 0.5, 200, 1, 1, account=account, settings=settings)
        assert result.effectiveZone == RiskZone.YELLOW
        # 12 + (20 - 12) * (1 - 0.002 / 0.005) * 0.5
        assert result.points == pytest.approx(14.4)
        assert result.lowVolumeAdjusted is True

    def test_severe_rates_stay_red(self, settings):
        result = get_deliverability_zone_with_context(0.7, 0.5, 100, 1, 0, settings=settings)
        assert result.effectiveZone == RiskZone.RED
        assert result.points == 0
        assert result.reason is not None

    def test_disproportionate_share_stays_red(self, settings):
        account = AccountContext(accountSends=100000, accountSpamComplaints=10, accountBounces=500,
                                 accountSpamRate=0.01, accountBounceRate=0.5)
        result = get_deliverability_zone_with_context(0.3, 0.5, 1000, 3, 5, account=account, settings=settings)
        assert result.effectiveZone == RiskZone.RED
        assert result.wasDowngraded is False

    def test_proportionate_share_downgraded(self, settings):
        account = AccountContext(accountSends=100000, accountSpamComplaints=1000, accountBounces=5000,
                                 accountSpamRate=0.01, accountBounceRate=0.5)
        result = get_deliverability_zone_with_context(0.3, 0.5, 1000, 3, 5, account=account, settings=settings)
        assert result.effectiveZone == RiskZone.YELLOW
        assert result.wasDowngraded is True

    def test_unhealthy_account_stays_red(self, settings):
        account = AccountContext(accountSends=100000, accountSpamComplaints=1000, accountBounces=5000,
                                 accountSpamRate=0.25, accountBounceRate=0.5)
        result = get_deliverability_zone_with_context(0.3, 0.5, 1000, 3, 5, account=account, settings=settings)
        assert result.effectiveZone == RiskZone.RED


class TestSampleSizeHelpers:
    """Tests for lookback and significance helpers."""

    @pytest.mark.parametrize("sends,days,expected", [
        (100, 10, 25),
        (1000, 10, 14),
        (0, 10, 365),
        (10, 100, 365),
    ])
    def test_optimal_lookback(self, sends, days, expected, settings):
        assert compute_optimal_lookback_days(sends, days, settings) == expected

    def test_significance(self, settings):
        assert has_statistical_significance(1000, 30, 30, settings) is True
        assert has_statistical_significance(100, 30, 30, settings) is False
        assert has_statistical_significance(1000, 20, 30, settings) is False


class TestRiskMessage:
    """Tests for get_deliverability_risk_message."""

    def test_messages(self, settings):
        assert get_deliverability_risk_message(RiskZone.GREEN, 0.0, 0.0, settings) is None
        assert "spam" in get_deliverability_risk_message(RiskZone.YELLOW, 0.15, 1.0, settings)
        assert "spam at 0.25%" in get_deliverability_risk_message(RiskZone.RED, 0.25, 1.0, settings)
