"""
Test Module for the revenue reliability score.
"""

import math
from datetime import timedelta
from typing import List

import pytest

from email_analytics.models import Channel
from email_analytics.services.bucketing import end_of_day
from email_analytics.services.reliability import analyze_revenue_reliability
from email_analytics.tests.conftest import BASE_MONDAY, make_campaign, weekly_campaigns


def _range(weeks: int):
    return BASE_MONDAY, end_of_day(BASE_MONDAY + timedelta(weeks=weeks, days=-1))


def _weekly(revenues: List[float]):
    return [
        make_campaign(BASE_MONDAY + timedelta(weeks=i, days=1, hours=15), revenue=v)
        for i, v in enumerate(revenues)
    ]


class TestReliability:
    """Tests for analyze_revenue_reliability."""

    def test_flat_revenue_scores_100(self, settings):
        result = analyze_revenue_reliability(weekly_campaigns(12), [], *_range(12), settings=settings)
        assert result.reliability == 100
        assert result.mad == 0
        assert result.windowWeeks == 12
        assert all(p.robustZ is None for p in result.points)

    def test_alternating_revenue(self, settings):
        result = analyze_revenue_reliability(_weekly([1000.0, 2000.0] * 6), [], *_range(12), settings=settings)
        assert result.median == pytest.approx(1500.0)
        assert result.mad == pytest.approx(500.0)
        assert result.reliability == round(math.exp(-1.15 / 3) * 100)

    def test_insufficient_weeks(self, settings):
        result = analyze_revenue_reliability(weekly_campaigns(3), [], *_range(3), settings=settings)
        assert result.insufficient is True
        assert result.reliability is None

    def test_spike_flagged_as_anomaly(self, settings):
        revenues = [1000.0] * 6 + [1200.0] * 5 + [8000.0]
        result = analyze_revenue_reliability(_weekly(revenues), [], *_range(12), settings=settings)
        assert result.median == pytest.approx(1100.0)
        assert result.mad == pytest.approx(100.0)
        flagged = [p for p in result.points if p.isAnomaly]
        assert len(flagged) == 1
        assert flagged[0].revenue == pytest.approx(8000.0)

    def test_zero_campaign_week_loss(self, settings):
        campaigns = weekly_campaigns(12, skip_weeks=(5,))
        result = analyze_revenue_reliability(campaigns, [], *_range(12), settings=settings)
        assert result.zeroCampaignWeeks == 1
        assert result.estimatedLostRevenue == pytest.approx(750.0)

    def test_flow_scope_ignores_campaign_gaps(self, welcome_flow, settings):
        campaigns = weekly_campaigns(12, skip_weeks=(5,))
        result = analyze_revenue_reliability(
            campaigns, welcome_flow, *_range(12), scope=Channel.FLOWS, settings=settings
        )
        assert result.scope == Channel.FLOWS
        assert result.reliability == 100
        assert result.zeroCampaignWeeks == 0

    def test_trend_delta_needs_history(self, settings):
        short = analyze_revenue_reliability(weekly_campaigns(12), [], *_range(12), settings=settings)
        long = analyze_revenue_reliability(weekly_campaigns(16), [], *_range(16), settings=settings)
        assert short.trendDelta is None
        assert long.trendDelta == 0
