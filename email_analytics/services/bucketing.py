"""
Time-bucketing and aggregation primitives.

Groups raw send records into calendar buckets (UTC days, Monday-start weeks,
calendar months) and computes sums and zero-guarded rates per bucket. Almost
every analyzer is built on top of these functions.

Bucket rules:
    - Week keys are the UTC Monday 00:00 of the week; Sunday belongs to the
      week that started six days earlier.
    - Buckets span ``[start, end]`` inclusive of partial boundary periods and
      zero-send periods are filled with empty buckets.
    - ``isComplete`` is true only when the bucket's whole calendar period lies
      inside ``[start, end]``. Partial buckets are kept for gap detection and
      excluded from revenue reference statistics by the callers.
    - Every rate is ``count / denominator * 100`` with 0 for a zero
      denominator; never NaN.

Usage:
    from email_analytics.services.bucketing import build_period_aggregates

    weeks = build_period_aggregates(campaigns, start, end, Granularity.WEEKLY)
"""

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from email_analytics.models.enums import Granularity, MetricKey
from email_analytics.models.schemas import (
    AggregatedMetrics,
    MetricPoint,
    MonthlyRevenueAggregate,
    PeriodAggregate,
    SendRecord,
    WeeklyRevenueAggregate,
)


# =============================================================================
# Calendar Helpers
# =============================================================================

# Slack for range ends stored with millisecond precision (23:59:59.999).
_END_TOLERANCE = timedelta(milliseconds=1)


def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def start_of_day(dt: datetime) -> datetime:
    return to_utc(dt).replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    return to_utc(dt).replace(hour=23, minute=59, second=59, microsecond=999999)


def monday_of(dt: datetime) -> datetime:
    """
    UTC Monday 00:00 of the week containing ``dt``.

    Example:
        >>> monday_of(datetime(2024, 3, 10, tzinfo=timezone.utc))  # a Sunday
        datetime.datetime(2024, 3, 4, 0, 0, tzinfo=datetime.timezone.utc)
    """
    day = start_of_day(dt)
    return day - timedelta(days=day.weekday())


def month_start(dt: datetime) -> datetime:
    return start_of_day(dt).replace(day=1)


def next_month(dt: datetime) -> datetime:
    first = month_start(dt)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def period_start(dt: datetime, granularity: Granularity) -> datetime:
    if granularity == Granularity.DAILY:
        return start_of_day(dt)
    if granularity == Granularity.WEEKLY:
        return monday_of(dt)
    return month_start(dt)


def next_period(dt: datetime, granularity: Granularity) -> datetime:
    if granularity == Granularity.DAILY:
        return dt + timedelta(days=1)
    if granularity == Granularity.WEEKLY:
        return dt + timedelta(days=7)
    return next_month(dt)


def period_label(dt: datetime, granularity: Granularity) -> str:
    if granularity == Granularity.MONTHLY:
        return dt.strftime("%b %Y")
    return f"{dt.strftime('%b')} {dt.day}"


def iter_periods(
    start: datetime,
    end: datetime,
    granularity: Granularity,
) -> List[Tuple[datetime, datetime, bool]]:
    """
    Calendar periods overlapping ``[start, end]``.

    Returns:
        List of ``(period_start, next_period_start, is_complete)`` tuples in
        chronological order, each period appearing exactly once.
    """
    start = to_utc(start)
    end = to_utc(end)
    if end < start:
        return []
    periods = []
    cursor = period_start(start, granularity)
    while cursor <= end:
        following = next_period(cursor, granularity)
        is_complete = cursor >= start and following <= end + _END_TOLERANCE
        periods.append((cursor, following, is_complete))
        cursor = following
    return periods


def filter_in_range(
    records: Iterable[SendRecord],
    start: datetime,
    end: datetime,
) -> List[SendRecord]:
    start = to_utc(start)
    end = to_utc(end)
    return [r for r in records if start <= r.sentDate <= end]


# =============================================================================
# Aggregation
# =============================================================================


def _rate(count: float, denominator: float) -> float:
    return count / denominator * 100 if denominator > 0 else 0.0


def _metrics_from_sums(sums: Dict[str, float], email_count: int) -> Dict:
    emails = sums["emailsSent"]
    opens = sums["uniqueOpens"]
    clicks = sums["uniqueClicks"]
    orders = sums["totalOrders"]
    revenue = sums["totalRevenue"]
    return {
        "totalRevenue": revenue,
        "emailsSent": int(emails),
        "totalOrders": int(orders),
        "uniqueOpens": int(opens),
        "uniqueClicks": int(clicks),
        "unsubscribes": int(sums["unsubscribes"]),
        "spamComplaints": int(sums["spamComplaints"]),
        "bounces": int(sums["bounces"]),
        "emailCount": email_count,
        "avgOrderValue": revenue / orders if orders > 0 else 0.0,
        "revenuePerEmail": revenue / emails if emails > 0 else 0.0,
        "openRate": _rate(opens, emails),
        "clickRate": _rate(clicks, emails),
        "clickToOpenRate": _rate(clicks, opens),
        "conversionRate": _rate(orders, clicks),
        "unsubscribeRate": _rate(sums["unsubscribes"], emails),
        "spamRate": _rate(sums["spamComplaints"], emails),
        "bounceRate": _rate(sums["bounces"], emails),
    }


def _sum_records(records: Iterable[SendRecord]) -> Tuple[Dict[str, float], int]:
    sums = {
        "totalRevenue": 0.0,
        "emailsSent": 0,
        "totalOrders": 0,
        "uniqueOpens": 0,
        "uniqueClicks": 0,
        "unsubscribes": 0,
        "spamComplaints": 0,
        "bounces": 0,
    }
    count = 0
    for r in records:
        sums["totalRevenue"] += r.revenue
        sums["emailsSent"] += r.emailsSent
        sums["totalOrders"] += r.totalOrders
        sums["uniqueOpens"] += r.uniqueOpens
        sums["uniqueClicks"] += r.uniqueClicks
        sums["unsubscribes"] += r.unsubscribesCount
        sums["spamComplaints"] += r.spamComplaintsCount
        sums["bounces"] += r.bouncesCount
        count += 1
    return sums, count


def aggregate_records(records: Iterable[SendRecord]) -> AggregatedMetrics:
    """
    Sum a set of send records and derive their rates.

    Args:
        records: Campaign and/or flow send records.

    Returns:
        AggregatedMetrics with all rates zero when nothing was sent.
    """
    sums, count = _sum_records(records)
    return AggregatedMetrics(**_metrics_from_sums(sums, count))


def build_period_aggregates(
    records: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    granularity: Granularity,
) -> List[PeriodAggregate]:
    """
    One aggregate per calendar period spanning ``[start, end]``.

    Args:
        records: Send records; those outside the range are ignored.
        start: Range start (inclusive).
        end: Range end (inclusive).
        granularity: Daily, weekly (Monday start) or monthly buckets.

    Returns:
        Chronological list of PeriodAggregate, zero-filled where no record
        fell into the period.
    """
    grouped: Dict[datetime, List[SendRecord]] = defaultdict(list)
    for r in filter_in_range(records, start, end):
        grouped[period_start(r.sentDate, granularity)].append(r)

    aggregates = []
    for p_start, p_next, is_complete in iter_periods(start, end, granularity):
        sums, count = _sum_records(grouped.get(p_start, []))
        aggregates.append(
            PeriodAggregate(
                periodStart=p_start,
                periodEnd=p_next - timedelta(microseconds=1),
                label=period_label(p_start, granularity),
                isComplete=is_complete,
                **_metrics_from_sums(sums, count),
            )
        )
    return aggregates


def _revenue_buckets(
    campaigns: Sequence[SendRecord],
    flows: Sequence[SendRecord],
    start: datetime,
    end: datetime,
    granularity: Granularity,
) -> List[Tuple[datetime, bool, Dict]]:
    buckets: Dict[datetime, Dict] = defaultdict(lambda: {
        "campaignRevenue": 0.0,
        "flowRevenue": 0.0,
        "campaignsSent": 0,
        "campaignEmails": 0,
        "flowEmails": 0,
        "days": set(),
    })
    for r in filter_in_range(campaigns, start, end):
        b = buckets[period_start(r.sentDate, granularity)]
        b["campaignRevenue"] += r.revenue
        b["campaignsSent"] += 1
        b["campaignEmails"] += r.emailsSent
        b["days"].add(start_of_day(r.sentDate))
    for r in filter_in_range(flows, start, end):
        b = buckets[period_start(r.sentDate, granularity)]
        b["flowRevenue"] += r.revenue
        b["flowEmails"] += r.emailsSent
        b["days"].add(start_of_day(r.sentDate))

    out = []
    for p_start, _, is_complete in iter_periods(start, end, granularity):
        b = buckets.get(p_start)
        if b is None:
            fields = {
                "totalRevenue": 0.0, "campaignRevenue": 0.0, "flowRevenue": 0.0,
                "campaignsSent": 0, "campaignEmails": 0, "flowEmails": 0,
                "activeDays": 0,
            }
        else:
            fields = {
                "totalRevenue": b["campaignRevenue"] + b["flowRevenue"],
                "campaignRevenue": b["campaignRevenue"],
                "flowRevenue": b["flowRevenue"],
                "campaignsSent": b["campaignsSent"],
                "campaignEmails": b["campaignEmails"],
                "flowEmails": b["flowEmails"],
                "activeDays": len(b["days"]),
            }
        out.append((p_start, is_complete, fields))
    return out


def build_weekly_revenue_aggregates(
    campaigns: Sequence[SendRecord],
    flows: Sequence[SendRecord],
    start: datetime,
    end: datetime,
) -> List[WeeklyRevenueAggregate]:
    """Monday weeks over ``[start, end]`` with a campaign/flow revenue split."""
    return [
        WeeklyRevenueAggregate(
            weekStart=p_start,
            label=period_label(p_start, Granularity.WEEKLY),
            isComplete=is_complete,
            **fields,
        )
        for p_start, is_complete, fields in _revenue_buckets(
            campaigns, flows, start, end, Granularity.WEEKLY
        )
    ]


def build_monthly_revenue_aggregates(
    campaigns: Sequence[SendRecord],
    flows: Sequence[SendRecord],
    start: datetime,
    end: datetime,
) -> List[MonthlyRevenueAggregate]:
    return [
        MonthlyRevenueAggregate(
            monthStart=p_start,
            label=period_label(p_start, Granularity.MONTHLY),
            isComplete=is_complete,
            **fields,
        )
        for p_start, is_complete, fields in _revenue_buckets(
            campaigns, flows, start, end, Granularity.MONTHLY
        )
    ]


# =============================================================================
# Metric Series
# =============================================================================


def metric_value(metrics: AggregatedMetrics, metric: MetricKey) -> float:
    """Read one metric off an aggregate (``revenue`` aliases total revenue)."""
    if metric in (MetricKey.REVENUE, MetricKey.TOTAL_REVENUE):
        return metrics.totalRevenue
    return float(getattr(metrics, metric.value))


def get_metric_time_series(
    records: Sequence[SendRecord],
    metric: MetricKey,
    start: datetime,
    end: datetime,
    granularity: Granularity,
) -> List[MetricPoint]:
    """
    Ordered metric series, each value derived from its bucket's sums.

    Rates are recomputed from summed counts rather than averaged across
    records, so a bucket with one tiny send cannot dominate its rate.
    """
    return [
        MetricPoint(
            periodStart=agg.periodStart,
            label=agg.label,
            value=metric_value(agg, metric),
        )
        for agg in build_period_aggregates(records, start, end, granularity)
    ]


def count_full_weeks(start: datetime, end: datetime) -> int:
    return sum(1 for _, _, complete in iter_periods(start, end, Granularity.WEEKLY) if complete)


def latest_record_date(*record_sets: Sequence[SendRecord]) -> Optional[datetime]:
    latest = None
    for records in record_sets:
        for r in records:
            if latest is None or r.sentDate > latest:
                latest = r.sentDate
    return latest
