"""
Test Module for subject line analysis.

Validates:
- Subject predicates (whole-word tokens, caps codes, merge tags, verbs)
- Ratio-of-sums baseline and length bins
- Feature groups, lift ordering and dropped empty groups
- Verbatim reuse first vs last send
- Data sufficiency gate and window filtering
"""

import pytest

from email_analytics.core.config import Settings
from email_analytics.models import SendRecord, SubjectMetricKey
from email_analytics.services.subject_lines import (
    analyze_subject_lines,
    compute_subject_analysis,
    has_all_caps_word,
    has_emoji,
    has_first_name_token,
    has_price,
    has_you,
    includes_word,
    length_bin_for,
    starts_with_imperative,
)
from email_analytics.tests.conftest import utc


def _campaign(subject: str, day: int, emails: int, opens: int, clicks: int, revenue: float) -> SendRecord:
    return SendRecord(
        sentDate=utc(2024, 3, day, 15),
        campaignName=f"Campaign {day}",
        subject=subject,
        emailsSent=emails,
        uniqueOpens=opens,
        uniqueClicks=clicks,
        revenue=revenue,
    )


@pytest.fixture
def subject_campaigns():
    return [
        _campaign("Shop the SALE today!", 4, 10000, 5000, 500, 2000.0),
        _campaign("Your weekly update", 6, 10000, 3000, 150, 500.0),
        _campaign("Last chance: 20% off ends tonight", 8, 20000, 8000, 800, 6000.0),
        _campaign("Your weekly update", 13, 5000, 1000, 50, 100.0),
        _campaign("{first_name}, a new drop just in 🎉", 15, 5000, 3000, 300, 1400.0),
    ]


class TestPredicates:
    """Tests for the subject predicates."""

    @pytest.mark.parametrize("subject,token,expected", [
        ("Flash SALE ends soon", "sale", True),
        ("Wholesale pricing", "sale", False),
        ("Take 20% off", "% off", True),
        ("Now 30% OFF", "off", True),
        ("Offload your cart", "off", False),
        ("New arrivals just in", "just in", True),
    ])
    def test_includes_word(self, subject, token, expected):
        assert includes_word(subject, token) is expected

    @pytest.mark.parametrize("subject,expected", [
        ("HUGE news inside", True),
        ("Use code SAVE20 at checkout", False),
        ("A quiet Tuesday", False),
    ])
    def test_all_caps(self, subject, expected):
        assert has_all_caps_word(subject) is expected

    @pytest.mark.parametrize("subject,expected", [
        ("Hi {first_name}, we miss you", True),
        ("*|FIRST_NAME|*, your cart", True),
        ("{ First Name } picked this", True),
        ("First name basis", False),
    ])
    def test_first_name_token(self, subject, expected):
        assert has_first_name_token(subject) is expected

    @pytest.mark.parametrize("subject,expected", [
        ("Shop new arrivals", True),
        ("** Save big this weekend", True),
        ("We think you will like this", False),
        ("", False),
    ])
    def test_imperative_start(self, subject, expected):
        assert starts_with_imperative(subject) is expected

    def test_emoji_you_and_price(self):
        assert has_emoji("Party time 🎉") is True
        assert has_emoji("Plain text") is False
        assert has_you("You're invited") is True
        assert has_you("Yourself excluded") is False
        assert has_price("Now $19.99") is True
        assert has_price("No digits here") is False

    @pytest.mark.parametrize("length,key", [(0, "0-30"), (30, "0-30"), (31, "31-50"), (70, "51-70"), (71, "71+")])
    def test_length_bin_for(self, length, key):
        assert length_bin_for(length)[0] == key


class TestSubjectAnalysis:
    """Tests for compute_subject_analysis."""

    def test_baseline_is_ratio_of_sums(self, subject_campaigns, settings):
        result = compute_subject_analysis(subject_campaigns, SubjectMetricKey.OPEN_RATE, settings)
        assert result.baseline.countCampaigns == 5
        assert result.baseline.totalEmails == 50000
        assert result.baseline.totalOpens == 20000
        assert result.baseline.value == pytest.approx(40.0)
        assert result.sufficientData is True

    def test_length_bins(self, subject_campaigns, settings):
        result = compute_subject_analysis(subject_campaigns, SubjectMetricKey.OPEN_RATE, settings)
        assert [b.key for b in result.lengthBins] == ["0-30", "31-50"]
        short, medium = result.lengthBins
        assert (short.rangeMin, short.rangeMax) == (0, 30)
        assert short.value == pytest.approx(36.0)
        assert short.liftVsBaseline == pytest.approx(-4.0)
        assert medium.value == pytest.approx(44.0)
        assert medium.countCampaigns == 2

    def test_keyword_groups_ranked_by_lift(self, subject_campaigns, settings):
        result = compute_subject_analysis(subject_campaigns, SubjectMetricKey.OPEN_RATE, settings)
        keys = [f.key for f in result.keywordEmojis]
        assert keys == ["emoji", "kw:new", "kw:just in", "kw:sale", "kw:% off", "kw:off"]
        assert result.keywordEmojis[0].liftVsBaseline == pytest.approx(20.0)
        sale = result.keywordEmojis[3]
        assert sale.value == pytest.approx(50.0)
        assert sale.examples == ["Shop the SALE today!"]

    def test_other_feature_groups(self, subject_campaigns, settings):
        result = compute_subject_analysis(subject_campaigns, SubjectMetricKey.OPEN_RATE, settings)
        assert {f.key for f in result.deadlines} == {
            "deadline:today", "deadline:tonight", "deadline:ends", "deadline:last chance",
        }
        assert {f.key for f in result.punctuationCasing} == {
            "exclaim", "allcaps", "number", "percent", "brackets",
        }
        assert [f.key for f in result.personalization] == ["p:first", "p:you"]
        assert result.personalization[1].value == pytest.approx(4000 / 15000 * 100)
        assert [f.key for f in result.priceAnchoring] == ["price", "pct"]
        assert len(result.imperativeStart) == 1
        assert result.imperativeStart[0].value == pytest.approx(50.0)

    def test_reuse(self, subject_campaigns, settings):
        result = compute_subject_analysis(subject_campaigns, SubjectMetricKey.OPEN_RATE, settings)
        assert len(result.reuse) == 1
        reuse = result.reuse[0]
        assert reuse.subject == "Your weekly update"
        assert reuse.occurrences == 2
        assert reuse.firstValue == pytest.approx(30.0)
        assert reuse.lastValue == pytest.approx(20.0)
        assert reuse.change == pytest.approx(-10.0)
        assert reuse.totalEmails == 15000

    def test_revenue_per_email_is_currency(self, subject_campaigns, settings):
        result = compute_subject_analysis(subject_campaigns, SubjectMetricKey.REVENUE_PER_EMAIL, settings)
        assert result.baseline.value == pytest.approx(0.2)
        assert result.lengthBins[0].value == pytest.approx(2600 / 25000)
        assert result.lengthBins[0].liftVsBaseline == pytest.approx(2600 / 25000 - 0.2)

    def test_click_to_open_rate(self, subject_campaigns, settings):
        result = compute_subject_analysis(subject_campaigns, SubjectMetricKey.CLICK_TO_OPEN_RATE, settings)
        assert result.baseline.value == pytest.approx(9.0)

    def test_sufficiency_and_example_limit(self, subject_campaigns):
        result = compute_subject_analysis(
            subject_campaigns,
            SubjectMetricKey.OPEN_RATE,
            Settings(subject_min_campaigns=6, subject_example_limit=1),
        )
        assert result.sufficientData is False
        assert result.lengthBins[0].examples == ["Shop the SALE today!"]

    def test_no_campaigns(self, settings):
        result = compute_subject_analysis([], SubjectMetricKey.OPEN_RATE, settings)
        assert result.baseline.value == 0
        assert result.lengthBins == []
        assert result.keywordEmojis == []
        assert result.imperativeStart[0].countCampaigns == 0
        assert result.sufficientData is False

    def test_missing_subject_falls_back_to_name(self, settings):
        record = SendRecord(
            sentDate=utc(2024, 3, 4), campaignName="Flash sale", emailsSent=100, uniqueOpens=50
        )
        result = compute_subject_analysis([record], SubjectMetricKey.OPEN_RATE, settings)
        assert [f.key for f in result.keywordEmojis] == ["kw:sale"]


class TestAnalyzeSubjectLines:
    """Tests for the windowed entry point."""

    def test_window_filters_campaigns(self, subject_campaigns, settings):
        result = analyze_subject_lines(
            subject_campaigns, utc(2024, 3, 1), utc(2024, 3, 10), SubjectMetricKey.OPEN_RATE,
            settings=settings,
        )
        assert result.baseline.countCampaigns == 3
        assert result.reuse == []
        assert result.sufficientData is False
        assert result.dateRange is None
