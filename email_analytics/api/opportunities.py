"""
FastAPI router module for opportunity endpoints.

This module implements endpoints for:
- Action notes: one dollar-denominated recommendation per analysis module
- Opportunity summary: notes rolled up into campaigns / flows / audience
- LLM export: compact report JSON with monthly campaign/flow splits

``smart_window=true`` replaces the requested range with the smart
opportunity window (walk back from the latest send until enough volume is
covered).
"""

import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, HTTPException, Query

from email_analytics.core.dependencies import SettingsDep
from email_analytics.models import (
    AnalysisRequest,
    LlmExport,
    ModuleActionNote,
    OpportunitySummary,
    ResolvedDateRange,
)
from email_analytics.services.action_notes import build_action_notes
from email_analytics.services.dataset import DatasetContext
from email_analytics.services.date_range import compute_smart_opportunity_window
from email_analytics.services.export_builder import build_llm_export
from email_analytics.services.opportunity_summary import summarize_opportunities
from email_analytics.api.analytics import build_context

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/opportunities", tags=["opportunities"])


def _opportunity_window(
    request: AnalysisRequest, smart_window: bool, settings
) -> Tuple[DatasetContext, Optional[ResolvedDateRange]]:
    ctx, window = build_context(request)
    if smart_window:
        window = compute_smart_opportunity_window(ctx.get_campaigns(), ctx.get_flow_emails(), settings)
    return ctx, window


@router.post("/notes", response_model=List[ModuleActionNote])
async def get_action_notes(
    request: AnalysisRequest,
    settings: SettingsDep,
    smart_window: bool = Query(default=False, description="Use the smart opportunity window"),
) -> List[ModuleActionNote]:
    """
    Every module action note for the window.

    Returns an empty list for an empty dataset.
    """
    ctx, window = _opportunity_window(request, smart_window, settings)
    if window is None:
        return []
    try:
        return build_action_notes(ctx, window, request.sendVolumeModel, settings)
    except Exception as e:
        logger.exception(f"Error building action notes: {e}")
        raise HTTPException(status_code=500, detail=f"Error building action notes: {str(e)}")


@router.post("/summary", response_model=OpportunitySummary)
async def get_opportunity_summary(
    request: AnalysisRequest,
    settings: SettingsDep,
    smart_window: bool = Query(default=False, description="Use the smart opportunity window"),
) -> OpportunitySummary:
    """
    Categorized opportunity totals.

    Campaign totals blend send frequency and audience size so overlapping
    revenue is not counted twice.
    """
    ctx, window = _opportunity_window(request, smart_window, settings)
    try:
        notes = build_action_notes(ctx, window, request.sendVolumeModel, settings) if window else []
        summary = summarize_opportunities(notes, window, settings)
        logger.info(f"Opportunity summary: {len(summary.breakdown)} items, ${summary.totals.annual:,.0f}/year")
        return summary
    except Exception as e:
        logger.exception(f"Error summarizing opportunities: {e}")
        raise HTTPException(status_code=500, detail=f"Error summarizing opportunities: {str(e)}")


@router.post("/export", response_model=LlmExport)
async def get_llm_export(
    request: AnalysisRequest,
    settings: SettingsDep,
    full_months_only: bool = Query(default=True, description="Trim the window to whole calendar months"),
    include_opportunities: bool = Query(default=False, description="Attach the opportunity summary"),
) -> LlmExport:
    """Report export of the requested window."""
    ctx, window = build_context(request)
    try:
        return build_llm_export(
            ctx,
            window,
            full_months_only=full_months_only,
            include_opportunities=include_opportunities,
            settings=settings,
        )
    except Exception as e:
        logger.exception(f"Error building export: {e}")
        raise HTTPException(status_code=500, detail=f"Error building export: {str(e)}")
