"""
FastAPI application entry point for the Email Analytics API.

This module configures logging and CORS, registers the API routers and
starts the ASGI server when executed directly.

The service is stateless: every analysis request carries its own dataset,
so there are no connections to open or close during the lifespan.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from email_analytics import __version__
from email_analytics.api import api_router
from email_analytics.core.config import get_settings
from email_analytics.models import HealthResponse

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    Logs the active deliverability limits on startup so a misconfigured
    environment is visible in the first lines of the log.
    """
    logger.info(f"{settings.app_name} starting")
    logger.info(
        f"Deliverability limits: spam {settings.spam_green_limit}%/{settings.spam_red_limit}%, "
        f"bounce {settings.bounce_green_limit}%/{settings.bounce_red_limit}%"
    )

    yield

    logger.info(f"{settings.app_name} shutting down")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description=(
        "Email marketing analytics and guidance engine. "
        "Provides endpoints for CSV ingestion, period aggregates, "
        "deliverability zones, campaign and flow guidance, "
        "and dollar-denominated opportunity summaries."
    ),
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers (each carries its own prefix)
app.include_router(api_router)


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        HealthResponse with status 'healthy'
    """
    return HealthResponse(status="healthy", version=__version__)


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "email_analytics.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
