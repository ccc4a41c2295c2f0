"""
Test Module for flow step scoring, add-step suggestions and decay projections.

Validates:
- Store-share points ladder
- Step decision table and the revenue guardrail
- Flow type inference and decay factors
- New-step revenue projection
- End-to-end flow analysis on a synthetic welcome series
"""

from datetime import timedelta

import pytest

from email_analytics.core.config import Settings
from email_analytics.models import (
    ConfidenceLevel,
    FlowStepAction,
    FlowStepMetrics,
    FlowType,
)
from email_analytics.services.bucketing import end_of_day
from email_analytics.services.dataset import DatasetContext
from email_analytics.services.flow_decay import (
    calculate_variance_based_interval,
    format_projection_range,
    get_flow_decay_factor,
    infer_flow_type,
    project_new_step_revenue,
)
from email_analytics.services.flow_scoring import (
    analyze_flow_steps,
    compute_flow_step_scores,
    store_share_points,
)
from email_analytics.tests.conftest import BASE_MONDAY


def _step(
    position: int,
    emails: int = 5000,
    revenue: float = 1000.0,
    open_rate: float = 45.0,
    click_rate: float = 4.0,
    unsub_rate: float = 0.2,
    bounce_rate: float = 0.5,
) -> FlowStepMetrics:
    return FlowStepMetrics(
        flowName="Welcome Series",
        sequencePosition=position,
        flowMessageId=f"msg-{position}",
        emailName=f"Email {position}",
        emailsSent=emails,
        revenue=revenue,
        uniqueOpens=int(emails * open_rate / 100),
        uniqueClicks=int(emails * click_rate / 100),
        unsubscribes=int(emails * unsub_rate / 100),
        bounces=int(emails * bounce_rate / 100),
        openRate=open_rate,
        clickRate=click_rate,
        unsubscribeRate=unsub_rate,
        bounceRate=bounce_rate,
        revenuePerEmail=revenue / emails if emails > 0 else 0.0,
    )


class TestStoreSharePoints:
    """Tests for store_share_points."""

    @pytest.mark.parametrize("share,expected", [
        (0.06, 35),
        (0.03, 30),
        (0.02, 25),
        (0.004, 10),
        (0.001, 5),
        (0.0, 5),
        (float("nan"), 5),
    ])
    def test_ladder(self, share, expected):
        assert store_share_points(share) == expected


class TestStepScores:
    """Tests for compute_flow_step_scores."""

    def test_healthy_step_scales(self, settings):
        steps = [_step(1), _step(2), _step(3)]
        scores = compute_flow_step_scores(steps, store_revenue=10000.0, settings=settings)
        first = scores[0]
        # 17.5 revenue index + 35 share + 20 green + 10 confidence
        assert first.score == pytest.approx(82.5)
        assert first.confidencePoints == 10
        assert first.action == FlowStepAction.SCALE

    def test_low_money_high_risk_pauses(self, settings):
        steps = [_step(1), _step(2), _step(3, revenue=10.0, open_rate=10.0)]
        scores = compute_flow_step_scores(steps, store_revenue=100000.0, settings=settings)
        assert scores[2].riskHigh is True
        assert scores[2].lowMoney is True
        assert scores[2].action == FlowStepAction.PAUSE

    def test_revenue_guardrail_prevents_pause(self, settings):
        steps = [_step(1), _step(2), _step(3, emails=50000, revenue=600.0, open_rate=10.0)]
        scores = compute_flow_step_scores(steps, store_revenue=100000.0, settings=settings)
        assert scores[2].action == FlowStepAction.KEEP
        assert scores[2].guardrailApplied is True

    def test_high_money_high_risk_keeps(self, settings):
        steps = [_step(1), _step(2), _step(3, revenue=2000.0, unsub_rate=1.5)]
        scores = compute_flow_step_scores(steps, store_revenue=100000.0, settings=settings)
        assert scores[2].revenueIndex == pytest.approx(2.0)
        assert scores[2].highMoney is True
        assert scores[2].action == FlowStepAction.KEEP

    def test_mid_money_high_risk_uses_score_bands(self, settings):
        steps = [_step(p, open_rate=15.0) for p in (1, 2, 3)]
        scores = compute_flow_step_scores(steps, store_revenue=3000.0, settings=settings)
        step = scores[0]
        assert step.riskHigh is True
        assert step.lowMoney is False
        assert step.highMoney is False
        assert step.moneyPoints == pytest.approx(52.5)
        assert step.score == pytest.approx(82.5)
        assert step.action == FlowStepAction.SCALE

    def test_small_step_is_insufficient(self, settings):
        steps = [_step(1), _step(2, emails=200, revenue=40.0)]
        scores = compute_flow_step_scores(steps, store_revenue=10000.0, settings=settings)
        assert scores[1].action == FlowStepAction.INSUFFICIENT
        assert scores[1].confidencePoints == 0

    def test_single_step_uses_flow_baseline(self, settings):
        scores = compute_flow_step_scores(
            [_step(1)], store_revenue=10000.0, flow_only_rpe=0.1, settings=settings
        )
        assert scores[0].revenueIndex == pytest.approx(2.0)

    def test_no_steps(self, settings):
        assert compute_flow_step_scores([], settings=settings) == []


class TestFlowDecay:
    """Tests for flow type inference and projections."""

    @pytest.mark.parametrize("name,expected", [
        ("Welcome Series", FlowType.WELCOME),
        ("Abandoned Cart - 3 emails", FlowType.ABANDONED_CART),
        ("Browse Abandonment", FlowType.BROWSE_ABANDON),
        ("Post-Purchase Thank You", FlowType.POST_PURCHASE),
        ("Win-back 90 days", FlowType.WINBACK),
        ("Birthday", FlowType.BIRTHDAY),
        ("Sunset unengaged", FlowType.SUNSET),
        ("Education drip", FlowType.NURTURE),
        ("VIP", FlowType.DEFAULT),
        ("", FlowType.DEFAULT),
    ])
    def test_infer_flow_type(self, name, expected):
        assert infer_flow_type(name) == expected

    def test_decay_factor(self):
        assert get_flow_decay_factor("Welcome Series") == pytest.approx(0.40)
        assert get_flow_decay_factor("Something else") == pytest.approx(0.50)

    def test_interval(self):
        assert calculate_variance_based_interval([0.2]) == (0.5, 1.2)
        low, high = calculate_variance_based_interval([0.2, 0.2, 0.2])
        assert low == pytest.approx(0.85)
        assert high == pytest.approx(1.15)

    def test_format_projection_range(self):
        assert format_projection_range(450, 1250) == "$450–$1.2k"

    def test_projection(self):
        projection = project_new_step_revenue("Welcome Series", 4000, 0.12, [0.2, 0.15, 0.12], 0.15, 4)
        assert projection.flowType == FlowType.WELCOME
        assert projection.projectedWeeklyReach == 400
        # min(P25 0.135, last 0.12, 0.7 * median 0.105)
        assert projection.conservativeRpe == pytest.approx(0.105)
        assert projection.projectedRevenueMid == 42
        assert projection.projectedRevenueLow < 42 < projection.projectedRevenueHigh
        assert projection.confidence == ConfidenceLevel.MEDIUM

    def test_small_last_step_lowers_confidence(self):
        projection = project_new_step_revenue("VIP", 250, 0.2, [0.2, 0.2, 0.2], 0.2, 1)
        assert projection.confidence == ConfidenceLevel.LOW
        # sqrt(250 / 1000) scaling of 125 * 0.14
        assert projection.projectedRevenueMid == round(125 * 0.14 * 0.5)

    def test_projection_thresholds_from_settings(self):
        args = ("VIP", 250, 0.2, [0.2, 0.2, 0.2], 0.2, 1)
        default = project_new_step_revenue(*args)
        relaxed = project_new_step_revenue(
            *args,
            settings=Settings(flow_projection_medium_sends=200, flow_projection_full_confidence_sends=250),
        )
        assert default.confidence == ConfidenceLevel.LOW
        assert relaxed.confidence == ConfidenceLevel.MEDIUM
        assert relaxed.projectedRevenueMid > default.projectedRevenueMid


class TestAnalyzeFlowSteps:
    """End-to-end tests for analyze_flow_steps."""

    def test_welcome_series_suggests_new_step(self, welcome_flow, settings):
        ctx = DatasetContext(flow_emails=welcome_flow)
        end = end_of_day(BASE_MONDAY + timedelta(days=83))
        analysis = analyze_flow_steps(ctx, "Welcome Series", BASE_MONDAY, end, settings)

        assert [s.sequencePosition for s in analysis.steps] == [1, 2, 3]
        assert analysis.totalSends == 84 * (1000 + 800 + 640)
        assert analysis.medianRpe == pytest.approx(0.3)
        assert all(s.action == FlowStepAction.SCALE for s in analysis.scores)

        add_step = analysis.addStep
        assert add_step.suggested is True
        assert add_step.horizonDays == 84
        # 53,760 last-step sends x 0.40 over 12 weeks at 0.7 x 0.3 RPE
        assert add_step.weeklyGain == pytest.approx(376.0)
        assert add_step.estimatedRevenue == pytest.approx(4512.0)

    def test_stale_window_blocks_suggestion(self, welcome_flow, settings):
        ctx = DatasetContext(flow_emails=welcome_flow)
        end = end_of_day(BASE_MONDAY + timedelta(days=59))
        analysis = analyze_flow_steps(ctx, "Welcome Series", BASE_MONDAY, end, settings)
        assert analysis.addStep.suggested is False
        assert "recent_window" in analysis.addStep.failedChecks

    def test_unknown_flow(self, welcome_flow, settings):
        ctx = DatasetContext(flow_emails=welcome_flow)
        analysis = analyze_flow_steps(ctx, "Nope", BASE_MONDAY, end_of_day(BASE_MONDAY), settings)
        assert analysis.steps == []
        assert analysis.addStep.failedChecks == ["no_steps"]
