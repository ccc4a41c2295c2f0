"""
Test Module for dead-weight audience savings.
"""

from datetime import timedelta

import pytest

from email_analytics.core.config import Settings
from email_analytics.services.dead_weight import compute_dead_weight_savings, price_for
from email_analytics.tests.conftest import make_subscriber, utc

ANCHOR = utc(2024, 6, 1)


def _days_ago(days: int):
    return ANCHOR - timedelta(days=days)


def _list():
    subscribers = []
    for i in range(100):
        subscribers.append(make_subscriber(f"never-{i}", created=_days_ago(60)))
    for i in range(100):
        subscribers.append(make_subscriber(
            f"lapsed-{i}", created=_days_ago(200), first_active=_days_ago(190),
            last_active=_days_ago(120), last_open=_days_ago(120),
        ))
    for i in range(50):
        subscribers.append(make_subscriber(f"both-{i}", created=_days_ago(200)))
    for i in range(350):
        subscribers.append(make_subscriber(
            f"engaged-{i}", created=_days_ago(200), first_active=_days_ago(190),
            last_active=_days_ago(10), last_open=_days_ago(10),
        ))
    return subscribers


class TestPricing:
    """Tests for price_for."""

    @pytest.mark.parametrize("count,expected", [
        (0, 0),
        (250, 0),
        (251, 20),
        (4200, 100),
        (250000, 2300),
        (250001, None),
    ])
    def test_tiers(self, count, expected):
        assert price_for(count) == expected


class TestDeadWeight:
    """Tests for compute_dead_weight_savings."""

    def test_counts_and_savings(self):
        result = compute_dead_weight_savings(_list(), anchor=ANCHOR)
        assert result.totalSubscribers == 600
        assert result.neverActiveCount == 150
        assert result.inactive90Count == 150
        # The 50 profiles in both groups are counted once
        assert result.deadWeightCount == 250
        assert result.projectedSubscribers == 350
        assert result.currentMonthlyPrice == 30
        assert result.projectedMonthlyPrice == 20
        assert result.monthlySavings == pytest.approx(10)
        assert result.annualSavings == pytest.approx(120)
        assert result.customPricing is False

    def test_recent_signups_are_not_dead_weight(self):
        subscribers = [make_subscriber("new", created=_days_ago(10))]
        result = compute_dead_weight_savings(subscribers, anchor=ANCHOR)
        assert result.deadWeightCount == 0
        assert result.monthlySavings == 0

    def test_click_counts_as_engagement(self):
        subscribers = [make_subscriber(
            "clicker", created=_days_ago(200), first_active=_days_ago(190), last_click=_days_ago(30)
        )]
        result = compute_dead_weight_savings(subscribers, anchor=ANCHOR)
        assert result.inactive90Count == 0

    def test_anchor_defaults_to_latest_profile_date(self):
        result = compute_dead_weight_savings(_list())
        assert result.deadWeightCount == 250

    def test_no_subscribers(self):
        assert compute_dead_weight_savings([]) is None

    def test_inactivity_window_override(self):
        settings = Settings(dead_weight_inactive_window_days=150)
        result = compute_dead_weight_savings(_list(), anchor=ANCHOR, settings=settings)
        # Opens 120 days ago now count as engaged; only the 50 never-active
        # profiles old enough remain in the inactive group
        assert result.inactive90Count == 50
        assert result.neverActiveCount == 150
        assert result.deadWeightCount == 150
