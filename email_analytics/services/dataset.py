"""
Immutable dataset context passed to every analyzer.

``DatasetContext`` holds the three parsed record collections (campaigns, flow
emails, subscribers) as tuples plus a few derived indices computed once at
construction. It is the data-access collaborator of the analytics core:
analyzers read from it and never mutate it, so two contexts built from
different datasets can be analyzed side by side (e.g. in parallel tests).

Usage:
    from email_analytics.services.dataset import DatasetContext

    ctx = DatasetContext(campaigns=campaigns, flow_emails=flows)
    window = ctx.get_resolved_date_range("90d")
    metrics = ctx.get_aggregated_metrics_for_period(
        ctx.get_campaigns(), ctx.get_flow_emails(), window.startDate, window.endDate
    )
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from email_analytics.models.enums import Channel, CompareMode, Granularity, MetricKey
from email_analytics.models.schemas import (
    AggregatedMetrics,
    DatasetPayload,
    FlowSequenceInfo,
    MetricPoint,
    PeriodComparison,
    ResolvedDateRange,
    SendRecord,
    SubscriberRecord,
)
from email_analytics.services.bucketing import (
    aggregate_records,
    filter_in_range,
    get_metric_time_series,
    metric_value,
)
from email_analytics.services.date_range import comparison_window, resolve_date_range

logger = logging.getLogger(__name__)


# Metrics where a decrease is good news.
NEGATIVE_METRICS = frozenset({
    MetricKey.UNSUBSCRIBE_RATE,
    MetricKey.SPAM_RATE,
    MetricKey.BOUNCE_RATE,
})


class DatasetContext:
    """
    Parsed dataset plus derived indices.

    Args:
        campaigns: Campaign send records.
        flow_emails: Flow email send records.
        subscribers: Subscriber profiles.
    """

    __slots__ = (
        "_campaigns",
        "_flow_emails",
        "_subscribers",
        "_first_date",
        "_last_date",
        "_flow_names",
    )

    def __init__(
        self,
        campaigns: Sequence[SendRecord] = (),
        flow_emails: Sequence[SendRecord] = (),
        subscribers: Sequence[SubscriberRecord] = (),
    ):
        self._campaigns: Tuple[SendRecord, ...] = tuple(
            sorted(campaigns, key=lambda r: r.sentDate)
        )
        self._flow_emails: Tuple[SendRecord, ...] = tuple(
            sorted(flow_emails, key=lambda r: r.sentDate)
        )
        self._subscribers: Tuple[SubscriberRecord, ...] = tuple(subscribers)

        dates = [r.sentDate for r in self._campaigns + self._flow_emails]
        self._first_date: Optional[datetime] = min(dates) if dates else None
        self._last_date: Optional[datetime] = max(dates) if dates else None
        self._flow_names: Tuple[str, ...] = tuple(
            sorted({r.flowName for r in self._flow_emails if r.flowName})
        )

    @classmethod
    def from_payload(cls, payload: DatasetPayload) -> "DatasetContext":
        return cls(
            campaigns=payload.campaigns,
            flow_emails=payload.flowEmails,
            subscribers=payload.subscribers,
        )

    # -------------------------------------------------------------------------
    # Record access
    # -------------------------------------------------------------------------

    def get_campaigns(self) -> Tuple[SendRecord, ...]:
        return self._campaigns

    def get_flow_emails(self) -> Tuple[SendRecord, ...]:
        return self._flow_emails

    def get_subscribers(self) -> Tuple[SubscriberRecord, ...]:
        return self._subscribers

    def get_records(self, channel: Optional[Channel] = None) -> Tuple[SendRecord, ...]:
        """Records of one channel, or both channels when ``channel`` is None."""
        if channel == Channel.CAMPAIGNS:
            return self._campaigns
        if channel == Channel.FLOWS:
            return self._flow_emails
        return self._campaigns + self._flow_emails

    def get_first_email_date(self) -> Optional[datetime]:
        return self._first_date

    def get_last_email_date(self) -> Optional[datetime]:
        return self._last_date

    def get_unique_flow_names(self) -> Tuple[str, ...]:
        return self._flow_names

    def is_empty(self) -> bool:
        return not self._campaigns and not self._flow_emails

    # -------------------------------------------------------------------------
    # Flows
    # -------------------------------------------------------------------------

    def get_flow_sequence_info(self, flow_name: str) -> FlowSequenceInfo:
        """
        Messages of a flow ordered by their earliest sequence position.

        The display name of a message is the one on its most recent send,
        since message names are often edited while ids stay stable.
        """
        emails = [r for r in self._flow_emails if r.flowName == flow_name]
        if not emails:
            return FlowSequenceInfo(flowName=flow_name, messageIds=[], emailNames=[], sequenceLength=0)

        by_message: Dict[str, Dict] = {}
        for r in emails:
            key = r.flowMessageId or r.emailName or ""
            seq = r.sequencePosition or 1
            entry = by_message.get(key)
            if entry is None:
                by_message[key] = {"seq": seq, "latest": r.sentDate, "name": r.emailName or key}
                continue
            entry["seq"] = min(entry["seq"], seq)
            if r.sentDate > entry["latest"]:
                entry["latest"] = r.sentDate
                entry["name"] = r.emailName or key

        ordered = sorted(by_message.items(), key=lambda kv: kv[1]["seq"])
        return FlowSequenceInfo(
            flowName=flow_name,
            flowId=emails[0].flowId,
            messageIds=[k for k, _ in ordered],
            emailNames=[v["name"] for _, v in ordered],
            sequenceLength=len(ordered),
        )

    # -------------------------------------------------------------------------
    # Ranges and aggregates
    # -------------------------------------------------------------------------

    def get_resolved_date_range(
        self,
        date_range,
        custom_from: Optional[str] = None,
        custom_to: Optional[str] = None,
    ) -> Optional[ResolvedDateRange]:
        return resolve_date_range(
            date_range,
            self._last_date,
            custom_from=custom_from,
            custom_to=custom_to,
            first_date=self._first_date,
        )

    def get_aggregated_metrics_for_period(
        self,
        campaigns: Sequence[SendRecord],
        flows: Sequence[SendRecord],
        start: datetime,
        end: datetime,
    ) -> AggregatedMetrics:
        in_range = filter_in_range(list(campaigns) + list(flows), start, end)
        return aggregate_records(in_range)

    def get_metric_time_series(
        self,
        records: Sequence[SendRecord],
        metric: MetricKey,
        start: datetime,
        end: datetime,
        granularity: Granularity,
    ) -> List[MetricPoint]:
        return get_metric_time_series(records, metric, start, end, granularity)

    def calculate_period_over_period_change(
        self,
        metric: MetricKey,
        current: ResolvedDateRange,
        channel: Optional[Channel] = None,
        compare_mode: CompareMode = CompareMode.PREV_PERIOD,
        flow_name: Optional[str] = None,
    ) -> PeriodComparison:
        """
        Compare a metric between the current window and its baseline.

        The baseline is only used when the records reach back to its start
        and forward to its end and it shows any activity. A zero baseline
        value yields a null previous value rather than an infinite change.

        Args:
            metric: Metric to compare.
            current: Resolved current window.
            channel: Restrict to campaigns or flows; None uses both.
            compare_mode: ``prev-period`` or ``prev-year``.
            flow_name: Restrict flow records to a single flow.

        Returns:
            PeriodComparison with ``hasCoverage`` describing the baseline.
        """
        window = comparison_window(current, compare_mode)
        campaigns = [] if channel == Channel.FLOWS else list(self._campaigns)
        flows = [] if channel == Channel.CAMPAIGNS else list(self._flow_emails)
        if flow_name:
            flows = [r for r in flows if r.flowName == flow_name]

        current_metrics = self.get_aggregated_metrics_for_period(
            campaigns, flows, current.startDate, current.endDate
        )
        current_value = metric_value(current_metrics, metric)

        dates = [r.sentDate for r in campaigns + flows]
        prev = window.previous
        covered = bool(dates) and min(dates) <= prev.startDate and max(dates) >= prev.endDate
        previous_metrics = (
            self.get_aggregated_metrics_for_period(campaigns, flows, prev.startDate, prev.endDate)
            if covered else None
        )
        has_activity = previous_metrics is not None and (
            previous_metrics.emailsSent + previous_metrics.totalRevenue + previous_metrics.totalOrders
        ) > 0

        if not covered or not has_activity:
            logger.debug(f"No baseline coverage for {metric.value} ({compare_mode.value})")
            return PeriodComparison(
                metric=metric,
                channel=channel,
                compareMode=compare_mode,
                currentValue=current_value,
                hasCoverage=False,
                window=window,
            )

        previous_value = metric_value(previous_metrics, metric)
        if previous_value == 0:
            return PeriodComparison(
                metric=metric,
                channel=channel,
                compareMode=compare_mode,
                currentValue=current_value,
                changePercent=0.0,
                isPositive=True,
                hasCoverage=True,
                window=window,
            )

        change = (current_value - previous_value) / previous_value * 100
        is_positive = change <= 0 if metric in NEGATIVE_METRICS else change >= 0
        return PeriodComparison(
            metric=metric,
            channel=channel,
            compareMode=compare_mode,
            currentValue=current_value,
            previousValue=previous_value,
            changePercent=change,
            isPositive=is_positive,
            hasCoverage=True,
            window=window,
        )
