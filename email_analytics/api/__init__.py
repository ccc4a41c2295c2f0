"""
Email analytics API package initialization.

This package contains FastAPI router modules:
- analytics: Aggregates, comparison, deliverability and per-module guidance
- opportunities: Action notes, opportunity summary and report export
- ingest: CSV export parsing
"""

from fastapi import APIRouter

# Import router modules
from email_analytics.api.analytics import router as analytics_router
from email_analytics.api.opportunities import router as opportunities_router
from email_analytics.api.ingest import router as ingest_router

# Create main API router
api_router = APIRouter()

# Each router carries its own prefix
api_router.include_router(analytics_router)
api_router.include_router(opportunities_router)
api_router.include_router(ingest_router)

__all__ = [
    "api_router",
    "analytics_router",
    "opportunities_router",
    "ingest_router",
]
