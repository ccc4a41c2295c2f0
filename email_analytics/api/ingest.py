"""
FastAPI router module for CSV ingestion.

``POST /ingest/{kind}`` accepts the raw text of a campaign, flow or
subscriber export and returns the parsed records. The client keeps the
records and sends them back as the ``dataset`` of analysis requests.
"""

import logging

from fastapi import APIRouter, HTTPException

from email_analytics.models import CsvUploadRequest, IngestionResult, IngestKind
from email_analytics.services.ingestion import ingest_csv

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ingest", tags=["ingest"])


@router.post("/{kind}", response_model=IngestionResult)
async def ingest_export(kind: IngestKind, request: CsvUploadRequest) -> IngestionResult:
    """
    Parse one CSV export.

    Args:
        kind: campaigns, flows or subscribers.
        request: CSV text and optional file name.

    Returns:
        IngestionResult with parsed records and skipped-row counts.

    Raises:
        HTTPException 400: If the file is empty, unparseable or missing
            required columns.
    """
    result = ingest_csv(request.content, kind)
    if result.errors and result.rowsParsed == 0:
        name = request.filename or f"{kind.value} export"
        logger.warning(f"Rejected {name}: {'; '.join(e.message for e in result.errors)}")
        raise HTTPException(
            status_code=400,
            detail=[e.model_dump() for e in result.errors],
        )
    return result
