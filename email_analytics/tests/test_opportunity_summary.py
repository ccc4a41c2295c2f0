"""
Test Module for the opportunity summary.

Validates:
- Categorisation of note estimates
- Frequency/audience overlap blending in the campaigns total
- Suppressed estimates never reach the breakdown
- Percentages and derived totals
"""

from typing import Optional

import pytest
from pydantic import ValidationError

from email_analytics.models import (
    EstimatedImpact,
    ImpactType,
    ModuleActionNote,
    ModuleSlug,
    OpportunityCategoryKey,
)
from email_analytics.services.opportunity_summary import (
    blended_campaigns_total,
    build_items,
    compute_opportunity_summary,
    summarize_opportunities,
)


def _note(
    module: ModuleSlug,
    annual: Optional[float],
    scope: str = "campaigns",
    impact_type: ImpactType = ImpactType.LIFT,
) -> ModuleActionNote:
    impact = None
    if annual is not None:
        impact = EstimatedImpact(
            weekly=annual / 52, monthly=annual / 13, annual=annual, type=impact_type
        )
    return ModuleActionNote(
        module=module, scope=scope, title="Title", message="Message", estimatedImpact=impact
    )


class TestBlending:
    """Tests for blended_campaigns_total."""

    @pytest.mark.parity
    def test_documented_example(self, settings):
        items = build_items([
            _note(ModuleSlug.CAMPAIGN_SEND_FREQUENCY, 10000.0),
            _note(ModuleSlug.AUDIENCE_SIZE_PERFORMANCE, 4000.0),
            _note(ModuleSlug.CAMPAIGN_GAPS_LOSSES, 3000.0),
        ])
        assert blended_campaigns_total(items, settings) == pytest.approx(15000.0)

    def test_single_overlapping_item_is_not_discounted(self, settings):
        items = build_items([
            _note(ModuleSlug.AUDIENCE_SIZE_PERFORMANCE, 4000.0),
            _note(ModuleSlug.CAMPAIGN_DAY_PERFORMANCE, 1000.0),
        ])
        assert blended_campaigns_total(items, settings) == pytest.approx(5000.0)


class TestSummarize:
    """Tests for summarize_opportunities."""

    def test_categories_and_totals(self, settings):
        notes = [
            _note(ModuleSlug.CAMPAIGN_SEND_FREQUENCY, 10000.0),
            _note(ModuleSlug.AUDIENCE_SIZE_PERFORMANCE, 4000.0),
            _note(ModuleSlug.FLOW_STEP_ANALYSIS, 5200.0, scope="Welcome Series"),
            _note(ModuleSlug.SEND_VOLUME_IMPACT, 2600.0, scope="flows"),
            _note(ModuleSlug.DEAD_WEIGHT_AUDIENCE, 1200.0, scope="audience",
                  impact_type=ImpactType.SAVINGS),
        ]
        summary = summarize_opportunities(notes, settings=settings)
        by_key = {c.key: c for c in summary.categories}

        assert [c.key for c in summary.categories] == [
            OpportunityCategoryKey.CAMPAIGNS,
            OpportunityCategoryKey.FLOWS,
            OpportunityCategoryKey.AUDIENCE,
        ]
        assert by_key[OpportunityCategoryKey.CAMPAIGNS].totalAnnual == pytest.approx(12000.0)
        assert by_key[OpportunityCategoryKey.FLOWS].totalAnnual == pytest.approx(7800.0)
        assert by_key[OpportunityCategoryKey.AUDIENCE].totalAnnual == pytest.approx(1200.0)

        assert summary.totals.annual == pytest.approx(21000.0)
        assert summary.totals.weekly == pytest.approx(round(21000.0 / 52, 2))
        assert summary.totals.monthly == pytest.approx(round(21000.0 / 52 * 4, 2))
        assert sum(c.percentOfOverall for c in summary.categories) == pytest.approx(100.0)

    def test_breakdown_sorted_and_labelled(self, settings):
        notes = [
            _note(ModuleSlug.CAMPAIGN_GAPS_LOSSES, 3000.0),
            _note(ModuleSlug.FLOW_STEP_ANALYSIS, 5200.0, scope="Welcome Series"),
            _note(ModuleSlug.SEND_VOLUME_IMPACT, 900.0, scope="campaigns"),
        ]
        summary = summarize_opportunities(notes, settings=settings)
        assert [i.label for i in summary.breakdown] == [
            "Add step: Welcome Series",
            "Campaign gaps",
            "Campaign volume",
        ]
        gaps = summary.breakdown[1]
        assert gaps.category == OpportunityCategoryKey.CAMPAIGNS
        assert gaps.percentOfCategory == pytest.approx(3000 / 3900 * 100)

    def test_items_built_with_percentages(self, settings):
        notes = [
            _note(ModuleSlug.CAMPAIGN_GAPS_LOSSES, 3000.0),
            _note(ModuleSlug.FLOW_STEP_ANALYSIS, 1000.0, scope="Welcome Series"),
        ]
        unscaled = build_items(notes)
        assert all(i.percentOfOverall == 0.0 for i in unscaled)

        summary = summarize_opportunities(notes, settings=settings)
        assert [i.percentOfOverall for i in summary.breakdown] == pytest.approx([75.0, 25.0])
        assert [i.percentOfCategory for i in summary.breakdown] == pytest.approx([100.0, 100.0])
        with pytest.raises(ValidationError):
            summary.breakdown[0].percentOfOverall = 0.0

    def test_suppressed_estimates_are_absent(self, settings):
        notes = [
            _note(ModuleSlug.CAMPAIGN_SEND_FREQUENCY, None),
            _note(ModuleSlug.CAMPAIGN_GAPS_LOSSES, 3000.0),
        ]
        summary = summarize_opportunities(notes, settings=settings)
        assert [i.module for i in summary.breakdown] == [ModuleSlug.CAMPAIGN_GAPS_LOSSES]
        assert len(summary.notes) == 2

    def test_no_notes(self, settings):
        summary = summarize_opportunities([], settings=settings)
        assert summary.totals.annual == 0
        assert len(summary.categories) == 3
        assert all(c.totalAnnual == 0 for c in summary.categories)
        assert summary.breakdown == []


class TestComputeOpportunitySummary:
    """End-to-end summary over a dataset."""

    def test_totals_match_breakdown(self, sample_context, settings):
        window = sample_context.get_resolved_date_range("90d")
        summary = compute_opportunity_summary(sample_context, window, settings=settings)
        assert summary.dateRange == window
        assert summary.totals.annual == pytest.approx(
            sum(c.totalAnnual for c in summary.categories), abs=0.05
        )
