"""
Test Module for CSV export ingestion.

Validates:
- Date parsing across export formats, unparseable dates skipped
- Number and rate cleaning
- Tolerant header matching
- Campaign, flow and subscriber parsing with skip counts
- Structural errors for missing columns and empty files
"""

from datetime import datetime, timezone

import pandas as pd
import pytest

from email_analytics.models import IngestKind
from email_analytics.services.ingestion import (
    clean_number,
    find_column,
    ingest_csv,
    normalize_key,
    parse_decimal_rate,
    parse_metric_date,
)
from email_analytics.tests.conftest import create_csv_text


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def campaign_csv() -> str:
    return create_csv_text(pd.DataFrame({
        "Campaign Name": ["Spring Sale", "SMS Blast", "Broken Date"],
        "Send Time": ["2024-03-04 10:30:00", "2024-03-05 10:30:00", "not a date"],
        "Send channel": ["Email", "SMS", "Email"],
        "Total Recipients": ["10,000", "5000", "2000"],
        "Unique Opens": ["4000", "0", "800"],
        "Unique Clicks": ["200", "0", "40"],
        "Unique Placed Order": ["25", "3", "2"],
        "Revenue": ["$1,234.50", "$100", "$50"],
        "Unsubscribes": ["10", "0", "2"],
        "Spam Complaints": ["1", "0", "0"],
        "Bounces": ["50", "0", "10"],
    }))


@pytest.fixture
def flow_csv() -> str:
    return create_csv_text(pd.DataFrame({
        "Day": ["2024-01-05", "2024-01-01", "2024-01-02", "2024-01-02"],
        "Flow ID": ["F1", "F1", "F1", "F1"],
        "Flow Name": ["Welcome Series"] * 4,
        "Flow Message ID": ["msg-b", "msg-a", "msg-a", "msg-sms"],
        "Flow Message Name": ["Second", "First", "First", "Text"],
        "Flow Message Channel": ["Email", "Email", "Email", "SMS"],
        "Status": ["Live", "Live", "Live", "Live"],
        "Delivered": ["1000", "2000", "1500", "500"],
        "Unique Opens": ["400", "900", "700", "0"],
        "Revenue": ["300", "600", "450", "0"],
        "Bounce Rate": ["0.5%", "0.005", "0.005", "0"],
        "Unsub Rate": ["0.002", "0.1%", "0.001", "0"],
        "Spam Rate": ["0.1%", "0", "0", "0"],
    }))


@pytest.fixture
def subscriber_csv() -> str:
    return create_csv_text(pd.DataFrame({
        "Email": ["buyer@example.com", "not-an-email", "lurker@example.com"],
        "Klaviyo ID": ["p1", "p2", "p3"],
        "Profile Created On": ["2023-01-01", "2023-01-01", "2023-06-01"],
        "First Active": ["2023-01-02", "", ""],
        "Last Active": ["2024-05-01", "", ""],
        "Last Open": ["2024-05-01", "", ""],
        "Last Click": ["", "", ""],
        "Historic Number Of Orders": ["3", "0", "0"],
        "Historic Customer Lifetime Value": ["150.00", "0", "0"],
    }))


# ============================================================
# VALUE PARSING
# ============================================================

class TestParseMetricDate:
    """Tests for parse_metric_date."""

    @pytest.mark.parametrize("raw,expected", [
        ("3/4/24", datetime(2024, 3, 4, tzinfo=timezone.utc)),
        ("2024-03-04", datetime(2024, 3, 4, tzinfo=timezone.utc)),
        ("2024/03/04", datetime(2024, 3, 4, tzinfo=timezone.utc)),
        ("03/04/2024", datetime(2024, 3, 4, tzinfo=timezone.utc)),
        ("1709510400", datetime(2024, 3, 4, tzinfo=timezone.utc)),
        ("1709510400000", datetime(2024, 3, 4, tzinfo=timezone.utc)),
        ("2024-03-04T10:30:00Z", datetime(2024, 3, 4, 10, 30, tzinfo=timezone.utc)),
        ("Mar 4, 2024", datetime(2024, 3, 4, tzinfo=timezone.utc)),
    ])
    def test_formats(self, raw, expected):
        assert parse_metric_date(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "not a date", "2/30/24", "999999999999"])
    def test_unparseable(self, raw):
        assert parse_metric_date(raw) is None

    def test_naive_datetime_treated_as_utc(self):
        parsed = parse_metric_date(datetime(2024, 3, 4, 9))
        assert parsed.tzinfo is not None
        assert parsed.hour == 9


class TestNumbers:
    """Tests for clean_number and parse_decimal_rate."""

    @pytest.mark.parametrize("raw,expected", [
        ("$1,234.50", 1234.5),
        ("12%", 12.0),
        ("abc", 0.0),
        ("", 0.0),
        ("inf", 0.0),
        (7, 7.0),
    ])
    def test_clean_number(self, raw, expected):
        assert clean_number(raw) == expected

    def test_percent_and_decimal_rates(self):
        assert parse_decimal_rate("0.5%") == pytest.approx(0.005)
        assert parse_decimal_rate("0.005") == pytest.approx(0.005)
        assert parse_decimal_rate("") == 0.0


class TestColumnMatching:
    """Tests for normalize_key and find_column."""

    def test_normalize_key(self):
        assert normalize_key("Send Time_2") == "send time 2"

    def test_duplicate_suffix(self):
        assert find_column(["Campaign Name", "Send Time_2"], ["Send Time"]) == "Send Time_2"

    def test_exact_match_wins(self):
        assert find_column(["Email Marketing Consent", "Email"], ["Email"]) == "Email"

    def test_missing(self):
        assert find_column(["Foo"], ["Bar"]) is None


# ============================================================
# INGESTION
# ============================================================

class TestIngestCampaigns:
    """Tests for campaign CSV ingestion."""

    def test_parses_email_rows(self, campaign_csv):
        result = ingest_csv(campaign_csv, IngestKind.CAMPAIGNS)
        assert result.errors == []
        assert result.rowsParsed == 1
        # SMS row and unparseable date
        assert result.rowsSkipped == 2

        record = result.campaigns[0]
        assert record.campaignName == "Spring Sale"
        assert record.sentDate == datetime(2024, 3, 4, 10, 30, tzinfo=timezone.utc)
        assert record.emailsSent == 10000
        assert record.revenue == pytest.approx(1234.5)
        assert record.totalOrders == 25
        assert record.bouncesCount == 50

    def test_out_of_range_epoch_row_is_skipped(self):
        text = (
            "Campaign Name,Send Time,Total Recipients,Revenue\n"
            "Good,2024-03-04,1000,$50\n"
            "Bad,999999999999,1000,$50\n"
        )
        result = ingest_csv(text, IngestKind.CAMPAIGNS)
        assert result.rowsParsed == 1
        assert result.rowsSkipped == 1
        assert result.campaigns[0].campaignName == "Good"

    def test_bytes_with_bom(self, campaign_csv):
        result = ingest_csv(("\ufeff" + campaign_csv).encode("utf-8"), IngestKind.CAMPAIGNS)
        assert result.rowsParsed == 1

    def test_missing_columns(self):
        result = ingest_csv("Foo,Bar\n1,2\n", IngestKind.CAMPAIGNS)
        assert result.rowsParsed == 0
        assert result.rowsSkipped == 1
        assert {e.column for e in result.errors} == {"Campaign Name", "Send Time"}

    def test_no_valid_rows(self):
        text = "Campaign Name,Send Time,Send channel\nBlast,2024-03-04,SMS\n"
        result = ingest_csv(text, IngestKind.CAMPAIGNS)
        assert result.rowsParsed == 0
        assert result.errors[0].message == "No valid campaigns rows found"

    @pytest.mark.parametrize("text", ["", "Campaign Name,Send Time\n"])
    def test_empty_files(self, text):
        result = ingest_csv(text, IngestKind.CAMPAIGNS)
        assert result.rowsParsed == 0
        assert len(result.errors) == 1


class TestIngestFlows:
    """Tests for flow CSV ingestion."""

    def test_sequence_positions_follow_first_seen_day(self, flow_csv):
        result = ingest_csv(flow_csv, IngestKind.FLOWS)
        assert result.rowsParsed == 3
        assert result.rowsSkipped == 1
        positions = {r.flowMessageId: r.sequencePosition for r in result.flowEmails}
        assert positions == {"msg-a": 1, "msg-b": 2}

    def test_counts_rebuilt_from_rates(self, flow_csv):
        result = ingest_csv(flow_csv, IngestKind.FLOWS)
        second = next(r for r in result.flowEmails if r.flowMessageId == "msg-b")
        assert second.emailsSent == 1000
        assert second.bouncesCount == 5
        assert second.unsubscribesCount == 2
        assert second.spamComplaintsCount == 1
        assert second.status == "live"
        assert second.emailName == "Second"

    def test_missing_required_column(self):
        text = "Day,Flow ID,Flow Name,Flow Message ID\n2024-01-01,F1,Welcome,m1\n"
        result = ingest_csv(text, IngestKind.FLOWS)
        assert [e.column for e in result.errors] == ["Delivered"]


class TestIngestSubscribers:
    """Tests for subscriber CSV ingestion."""

    def test_parses_profiles(self, subscriber_csv):
        result = ingest_csv(subscriber_csv, IngestKind.SUBSCRIBERS)
        assert result.rowsParsed == 2
        assert result.rowsSkipped == 1

        by_id = {s.id: s for s in result.subscribers}
        assert by_id["p1"].isBuyer is True
        assert by_id["p1"].totalOrders == 3
        assert by_id["p1"].lastOpen == datetime(2024, 5, 1, tzinfo=timezone.utc)
        assert by_id["p3"].isBuyer is False
        assert by_id["p3"].firstActive is None

    def test_missing_id_column(self):
        result = ingest_csv("Email\na@example.com\n", IngestKind.SUBSCRIBERS)
        assert [e.column for e in result.errors] == ["Klaviyo ID"]
