"""
Opportunity summary.

Collects the action notes of a window and rolls their annual estimates up
into three categories:

    campaigns  send frequency, audience size, gaps, send day, campaign volume
    flows      flow add-step suggestions, flow volume
    audience   dead-weight suppression

Category totals are plain sums except for campaigns, where send frequency
and audience size chase the same revenue. When both fire the campaign total
uses ``max(freq, aud) + 0.5 * min(freq, aud)``; gaps and the other campaign
items are added in full.

Notes without an estimate never become items, so suppressed estimates are
absent from ``breakdown``.
"""

import logging
from typing import Dict, List, Optional, Sequence

from email_analytics.core.config import Settings, get_settings
from email_analytics.models.enums import ModuleSlug, OpportunityCategoryKey, SendVolumeModel
from email_analytics.models.schemas import (
    ModuleActionNote,
    OpportunityCategory,
    OpportunityItem,
    OpportunitySummary,
    OpportunityTotals,
    ResolvedDateRange,
)
from email_analytics.services.action_notes import build_action_notes

logger = logging.getLogger(__name__)


CATEGORY_LABELS: Dict[OpportunityCategoryKey, str] = {
    OpportunityCategoryKey.CAMPAIGNS: "Campaigns",
    OpportunityCategoryKey.FLOWS: "Flows",
    OpportunityCategoryKey.AUDIENCE: "Audience",
}

MODULE_CATEGORIES: Dict[ModuleSlug, OpportunityCategoryKey] = {
    ModuleSlug.CAMPAIGN_SEND_FREQUENCY: OpportunityCategoryKey.CAMPAIGNS,
    ModuleSlug.AUDIENCE_SIZE_PERFORMANCE: OpportunityCategoryKey.CAMPAIGNS,
    ModuleSlug.CAMPAIGN_GAPS_LOSSES: OpportunityCategoryKey.CAMPAIGNS,
    ModuleSlug.CAMPAIGN_DAY_PERFORMANCE: OpportunityCategoryKey.CAMPAIGNS,
    ModuleSlug.FLOW_STEP_ANALYSIS: OpportunityCategoryKey.FLOWS,
    ModuleSlug.DEAD_WEIGHT_AUDIENCE: OpportunityCategoryKey.AUDIENCE,
}

MODULE_LABELS: Dict[ModuleSlug, str] = {
    ModuleSlug.CAMPAIGN_SEND_FREQUENCY: "Send frequency",
    ModuleSlug.AUDIENCE_SIZE_PERFORMANCE: "Audience size",
    ModuleSlug.CAMPAIGN_GAPS_LOSSES: "Campaign gaps",
    ModuleSlug.CAMPAIGN_DAY_PERFORMANCE: "Send day",
    ModuleSlug.DEAD_WEIGHT_AUDIENCE: "Dead-weight suppression",
}


def category_for(note: ModuleActionNote) -> OpportunityCategoryKey:
    """Send-volume notes follow their channel; everything else is fixed per module."""
    if note.module == ModuleSlug.SEND_VOLUME_IMPACT:
        if note.scope == "flows":
            return OpportunityCategoryKey.FLOWS
        return OpportunityCategoryKey.CAMPAIGNS
    return MODULE_CATEGORIES[note.module]


def item_label(note: ModuleActionNote) -> str:
    if note.module == ModuleSlug.SEND_VOLUME_IMPACT:
        return "Flow volume" if note.scope == "flows" else "Campaign volume"
    if note.module == ModuleSlug.FLOW_STEP_ANALYSIS:
        return f"Add step: {note.scope}"
    return MODULE_LABELS[note.module]


def build_items(
    notes: Sequence[ModuleActionNote],
    category_totals: Optional[Dict[OpportunityCategoryKey, float]] = None,
    overall: float = 0.0,
) -> List[OpportunityItem]:
    """
    Items for notes that carry a positive estimate.

    Percentages are filled in when the category totals and the overall
    total are supplied; otherwise they are zero.
    """
    items = []
    for note in notes:
        impact = note.estimatedImpact
        if impact is None or impact.annual <= 0:
            continue
        category = category_for(note)
        category_total = (category_totals or {}).get(category, 0.0)
        items.append(OpportunityItem(
            module=note.module,
            label=item_label(note),
            amountAnnual=impact.annual,
            type=impact.type,
            category=category,
            percentOfCategory=impact.annual / category_total * 100 if category_total > 0 else 0.0,
            percentOfOverall=impact.annual / overall * 100 if overall > 0 else 0.0,
        ))
    return items


def blended_campaigns_total(items: Sequence[OpportunityItem], settings: Optional[Settings] = None) -> float:
    """
    Campaign category total with the frequency/audience overlap removed.

    Example:
        freq 10,000 and audience 4,000 blend to 12,000; a 3,000 gap item
        brings the total to 15,000.
    """
    settings = settings or get_settings()
    weight = settings.campaign_overlap_weight
    frequency = sum(i.amountAnnual for i in items if i.module == ModuleSlug.CAMPAIGN_SEND_FREQUENCY)
    audience = sum(i.amountAnnual for i in items if i.module == ModuleSlug.AUDIENCE_SIZE_PERFORMANCE)
    others = sum(
        i.amountAnnual for i in items
        if i.module not in (ModuleSlug.CAMPAIGN_SEND_FREQUENCY, ModuleSlug.AUDIENCE_SIZE_PERFORMANCE)
    )
    if frequency > 0 and audience > 0:
        blended = max(frequency, audience) + weight * min(frequency, audience)
    else:
        blended = frequency + audience
    return blended + others


def summarize_opportunities(
    notes: Sequence[ModuleActionNote],
    window: Optional[ResolvedDateRange] = None,
    settings: Optional[Settings] = None,
) -> OpportunitySummary:
    """
    Categorize note estimates and compute percentage breakdowns.

    Args:
        notes: Action notes for one window.
        window: Window the notes describe, echoed on the result.
        settings: Overlap weight and weeks per month / year.

    Returns:
        OpportunitySummary. ``breakdown`` lists every item by descending
        annual amount; totals are derived from the blended annual total.
    """
    settings = settings or get_settings()
    unscaled = build_items(notes)

    totals_by_key = {}
    for key in CATEGORY_LABELS:
        members = [i for i in unscaled if i.category == key]
        if key == OpportunityCategoryKey.CAMPAIGNS:
            totals_by_key[key] = round(blended_campaigns_total(members, settings), 2)
        else:
            totals_by_key[key] = round(sum(i.amountAnnual for i in members), 2)
    overall = sum(totals_by_key.values())

    items = build_items(notes, totals_by_key, overall)

    categories = [
        OpportunityCategory(
            key=key,
            label=label,
            totalAnnual=totals_by_key[key],
            percentOfOverall=totals_by_key[key] / overall * 100 if overall > 0 else 0.0,
            items=[i for i in items if i.category == key],
        )
        for key, label in CATEGORY_LABELS.items()
    ]

    weekly = overall / settings.weeks_per_year
    totals = OpportunityTotals(
        weekly=round(weekly, 2),
        monthly=round(weekly * settings.weeks_per_month, 2),
        annual=round(overall, 2),
    )
    logger.debug(f"Opportunity summary: {len(items)} items, ${overall:,.0f}/year")

    return OpportunitySummary(
        dateRange=window,
        totals=totals,
        categories=categories,
        breakdown=sorted(items, key=lambda i: -i.amountAnnual),
        notes=list(notes),
    )


def compute_opportunity_summary(
    ctx,
    window: ResolvedDateRange,
    send_volume_model: SendVolumeModel = SendVolumeModel.CORRELATION,
    settings: Optional[Settings] = None,
) -> OpportunitySummary:
    """Build the notes for a window and summarize them."""
    notes = build_action_notes(ctx, window, send_volume_model, settings)
    return summarize_opportunities(notes, window, settings)
