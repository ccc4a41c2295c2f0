"""
Test Module for time bucketing and aggregation primitives.

Validates:
- Monday-start weeks (Sunday belongs to the previous Monday)
- Zero-filled buckets and the completeness flag at range boundaries
- Rates derived from summed counts with zero guards
- Weekly/monthly revenue splits between campaigns and flows
"""

from datetime import datetime, timedelta, timezone

import pytest

from email_analytics.models import Granularity, MetricKey, SendRecord
from email_analytics.services.bucketing import (
    aggregate_records,
    build_monthly_revenue_aggregates,
    build_period_aggregates,
    build_weekly_revenue_aggregates,
    count_full_weeks,
    end_of_day,
    get_metric_time_series,
    monday_of,
    next_month,
)
from email_analytics.tests.conftest import make_campaign, make_flow_email, utc, weekly_campaigns


RATE_FIELDS = [
    "openRate", "clickRate", "clickToOpenRate", "conversionRate",
    "unsubscribeRate", "spamRate", "bounceRate",
]


class TestCalendarHelpers:
    """Tests for week and month boundaries."""

    @pytest.mark.parametrize("day,expected", [
        (utc(2024, 3, 4, 10), utc(2024, 3, 4)),   # Monday
        (utc(2024, 3, 6, 23), utc(2024, 3, 4)),   # Wednesday
        (utc(2024, 3, 10, 23), utc(2024, 3, 4)),  # Sunday
        (utc(2024, 3, 11), utc(2024, 3, 11)),     # next Monday
    ])
    def test_monday_of(self, day, expected):
        assert monday_of(day) == expected

    def test_monday_of_converts_to_utc(self):
        # Monday 01:00 at UTC+3 is still Sunday in UTC
        local = datetime(2024, 3, 11, 1, tzinfo=timezone(timedelta(hours=3)))
        assert monday_of(local) == utc(2024, 3, 4)

    def test_next_month_rolls_year(self):
        assert next_month(utc(2024, 12, 15)) == utc(2025, 1, 1)


class TestAggregateRecords:
    """Tests for sums and zero-guarded rates."""

    def test_rates_from_sums(self):
        records = [
            make_campaign(utc(2024, 1, 2), emails=1000, revenue=100, open_rate=0.5, click_rate=0.1),
            make_campaign(utc(2024, 1, 3), emails=3000, revenue=300, open_rate=0.1, click_rate=0.1),
        ]
        agg = aggregate_records(records)
        assert agg.emailsSent == 4000
        assert agg.totalRevenue == pytest.approx(400.0)
        # (500 + 300) / 4000, not the mean of 50% and 10%
        assert agg.openRate == pytest.approx(20.0)
        assert agg.revenuePerEmail == pytest.approx(0.1)
        assert agg.emailCount == 2

    def test_zero_sends_yield_zero_rates(self):
        agg = aggregate_records([SendRecord(sentDate=utc(2024, 1, 1))])
        for field in RATE_FIELDS:
            assert getattr(agg, field) == 0.0
        assert agg.avgOrderValue == 0.0
        assert agg.revenuePerEmail == 0.0

    def test_empty_input(self):
        agg = aggregate_records([])
        assert agg.emailCount == 0
        assert agg.totalRevenue == 0.0

    def test_rates_stay_in_bounds(self):
        records = weekly_campaigns(8, per_week=2, noise=0.3)
        agg = aggregate_records(records)
        for field in RATE_FIELDS:
            assert 0.0 <= getattr(agg, field) <= 100.0


class TestBuildPeriodAggregates:
    """Tests for calendar buckets over a range."""

    def test_weekly_completeness_at_boundaries(self):
        # Wednesday Jan 3 through Tuesday Jan 30
        start, end = utc(2024, 1, 3), end_of_day(utc(2024, 1, 30))
        weeks = build_period_aggregates([], start, end, Granularity.WEEKLY)

        assert [w.periodStart for w in weeks] == [
            utc(2024, 1, 1), utc(2024, 1, 8), utc(2024, 1, 15), utc(2024, 1, 22), utc(2024, 1, 29)
        ]
        complete = [w.periodStart for w in weeks if w.isComplete]
        assert complete == [utc(2024, 1, 8), utc(2024, 1, 15), utc(2024, 1, 22)]
        assert count_full_weeks(start, end) == 3

    def test_no_bucket_appears_twice(self):
        start, end = utc(2024, 1, 1), end_of_day(utc(2024, 6, 30))
        for granularity in Granularity:
            buckets = build_period_aggregates([], start, end, granularity)
            starts = [b.periodStart for b in buckets]
            assert len(starts) == len(set(starts))
            assert starts == sorted(starts)

    def test_zero_weeks_are_filled(self):
        records = weekly_campaigns(6, skip_weeks=[2, 3])
        weeks = build_period_aggregates(records, utc(2024, 1, 1), end_of_day(utc(2024, 2, 11)), Granularity.WEEKLY)
        assert len(weeks) == 6
        assert [w.emailCount for w in weeks] == [1, 1, 0, 0, 1, 1]
        assert weeks[2].totalRevenue == 0.0

    def test_records_outside_range_ignored(self):
        records = [make_campaign(utc(2023, 12, 31)), make_campaign(utc(2024, 1, 2))]
        days = build_period_aggregates(records, utc(2024, 1, 1), end_of_day(utc(2024, 1, 3)), Granularity.DAILY)
        assert sum(d.emailCount for d in days) == 1

    def test_monthly_labels(self):
        months = build_period_aggregates([], utc(2024, 1, 15), end_of_day(utc(2024, 3, 31)), Granularity.MONTHLY)
        assert [m.label for m in months] == ["Jan 2024", "Feb 2024", "Mar 2024"]
        assert [m.isComplete for m in months] == [False, True, True]


class TestRevenueAggregates:
    """Tests for the campaign/flow revenue split."""

    def test_weekly_split(self):
        campaigns = [make_campaign(utc(2024, 1, 2), revenue=1000), make_campaign(utc(2024, 1, 4), revenue=500)]
        flows = [make_flow_email(utc(2024, 1, 3), revenue=200), make_flow_email(utc(2024, 1, 9), revenue=100)]
        weeks = build_weekly_revenue_aggregates(campaigns, flows, utc(2024, 1, 1), end_of_day(utc(2024, 1, 14)))

        assert len(weeks) == 2
        first, second = weeks
        assert first.campaignRevenue == pytest.approx(1500)
        assert first.flowRevenue == pytest.approx(200)
        assert first.totalRevenue == pytest.approx(1700)
        assert first.campaignsSent == 2
        assert first.activeDays == 3
        assert second.campaignsSent == 0
        assert second.flowRevenue == pytest.approx(100)

    def test_monthly_split(self):
        campaigns = [make_campaign(utc(2024, 1, 10), emails=5000), make_campaign(utc(2024, 2, 10), emails=7000)]
        months = build_monthly_revenue_aggregates(campaigns, [], utc(2024, 1, 1), end_of_day(utc(2024, 2, 29)))
        assert [m.campaignEmails for m in months] == [5000, 7000]
        assert all(m.isComplete for m in months)


class TestMetricTimeSeries:
    """Tests for metric series derived from bucket sums."""

    def test_revenue_series(self):
        records = weekly_campaigns(4, revenue=250.0)
        series = get_metric_time_series(
            records, MetricKey.TOTAL_REVENUE, utc(2024, 1, 1), end_of_day(utc(2024, 1, 28)), Granularity.WEEKLY
        )
        assert [p.value for p in series] == pytest.approx([250.0] * 4)

    def test_idempotent(self):
        records = weekly_campaigns(10, per_week=2, noise=0.2)
        args = (records, MetricKey.OPEN_RATE, utc(2024, 1, 1), end_of_day(utc(2024, 3, 10)), Granularity.WEEKLY)
        assert get_metric_time_series(*args) == get_metric_time_series(*args)
