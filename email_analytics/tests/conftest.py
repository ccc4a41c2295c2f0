"""
Pytest Configuration and Shared Fixtures for Email Analytics Tests.

This module provides fixtures and configuration for all tests, supporting:
- Async test execution with pytest-asyncio
- Deterministic synthetic send records (numpy RNG seeded with 42)
- A fresh ``Settings`` instance per test
- A FastAPI ``TestClient`` bound to the application
- CSV text builders for ingestion tests

Builders are plain functions so tests can shape records precisely; fixtures
wrap the most common datasets.
"""

import io
from datetime import datetime, timedelta, timezone
from typing import Generator, Iterable, List, Optional

import numpy as np
import pandas as pd
import pytest
from fastapi.testclient import TestClient

from email_analytics.core.config import Settings, get_settings
from email_analytics.models import SendRecord, SubscriberRecord
from email_analytics.services.dataset import DatasetContext


# ============================================================
# PYTEST PLUGINS CONFIGURATION
# ============================================================

pytest_plugins: List[str] = ['pytest_asyncio']


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - slow: Marks tests as slow (deselect with -m "not slow")
    - integration: Marks end-to-end tests going through the HTTP layer
    - parity: Marks tests pinning documented worked examples
    """
    config.addinivalue_line(
        'markers',
        'slow: marks tests as slow (deselect with -m "not slow")'
    )
    config.addinivalue_line(
        'markers',
        'integration: marks end-to-end tests through the HTTP layer'
    )
    config.addinivalue_line(
        'markers',
        'parity: marks tests pinning documented worked examples'
    )


# ============================================================
# RECORD BUILDERS
# ============================================================

# A Monday, so week-based tests line up with calendar weeks
BASE_MONDAY = datetime(2024, 1, 1, tzinfo=timezone.utc)


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def make_campaign(
    sent: datetime,
    emails: int = 10000,
    revenue: float = 1000.0,
    name: str = "Campaign",
    open_rate: float = 0.40,
    click_rate: float = 0.02,
    orders: Optional[int] = None,
    unsubs: Optional[int] = None,
    spam: Optional[int] = None,
    bounces: Optional[int] = None,
) -> SendRecord:
    """
    Campaign SendRecord with counts derived from simple rates.

    Defaults: 40% opens, 2% clicks, 0.1% unsubscribes, 0.01% spam and 0.5%
    bounces, one order per $50 of revenue.
    """
    return SendRecord(
        sentDate=sent,
        campaignName=name,
        subject=name,
        emailsSent=emails,
        revenue=revenue,
        totalOrders=orders if orders is not None else int(revenue // 50),
        uniqueOpens=int(emails * open_rate),
        uniqueClicks=int(emails * click_rate),
        unsubscribesCount=unsubs if unsubs is not None else int(emails * 0.001),
        spamComplaintsCount=spam if spam is not None else int(emails * 0.0001),
        bouncesCount=bounces if bounces is not None else int(emails * 0.005),
    )


def make_flow_email(
    sent: datetime,
    flow_name: str = "Welcome Series",
    position: int = 1,
    emails: int = 1000,
    revenue: float = 500.0,
    status: str = "live",
    open_rate: float = 0.45,
    click_rate: float = 0.04,
    unsubs: Optional[int] = None,
    spam: int = 0,
    bounces: Optional[int] = None,
) -> SendRecord:
    """Flow SendRecord for one message of one flow on one day."""
    return SendRecord(
        sentDate=sent,
        flowId=f"flow-{flow_name.lower().replace(' ', '-')}",
        flowName=flow_name,
        flowMessageId=f"msg-{position}",
        emailName=f"Email {position}",
        sequencePosition=position,
        status=status,
        emailsSent=emails,
        revenue=revenue,
        totalOrders=int(revenue // 50),
        uniqueOpens=int(emails * open_rate),
        uniqueClicks=int(emails * click_rate),
        unsubscribesCount=unsubs if unsubs is not None else int(emails * 0.002),
        spamComplaintsCount=spam,
        bouncesCount=bounces if bounces is not None else int(emails * 0.005),
    )


def weekly_campaigns(
    weeks: int,
    per_week: int = 1,
    start: datetime = BASE_MONDAY,
    skip_weeks: Iterable[int] = (),
    emails: int = 10000,
    revenue: float = 1000.0,
    noise: float = 0.0,
    seed: int = 42,
) -> List[SendRecord]:
    """
    ``per_week`` campaigns in each of ``weeks`` Monday weeks.

    Campaigns go out Tuesday onwards at 15:00 UTC; weeks listed in
    ``skip_weeks`` (0-based) have no campaigns. ``noise`` is the relative
    standard deviation applied to revenue.
    """
    rng = np.random.RandomState(seed)
    skip = set(skip_weeks)
    records = []
    for week in range(weeks):
        if week in skip:
            continue
        for i in range(per_week):
            sent = start + timedelta(weeks=week, days=1 + i, hours=15)
            factor = max(0.1, 1 + rng.normal(0, noise)) if noise else 1.0
            records.append(make_campaign(sent, emails=emails, revenue=round(revenue * factor, 2),
                                         name=f"Campaign W{week + 1}-{i + 1}"))
    return records


def daily_flow_emails(
    days: int,
    flow_name: str = "Welcome Series",
    steps: int = 3,
    start: datetime = BASE_MONDAY,
    emails: int = 1000,
    revenue: float = 300.0,
) -> List[SendRecord]:
    """One record per step per day, each later step sending 20% fewer emails."""
    records = []
    for day in range(days):
        sent = start + timedelta(days=day, hours=9)
        for position in range(1, steps + 1):
            decay = 0.8 ** (position - 1)
            records.append(make_flow_email(
                sent,
                flow_name=flow_name,
                position=position,
                emails=int(emails * decay),
                revenue=round(revenue * decay, 2),
            ))
    return records


def make_subscriber(
    subscriber_id: str,
    created: Optional[datetime] = None,
    first_active: Optional[datetime] = None,
    last_active: Optional[datetime] = None,
    last_open: Optional[datetime] = None,
    last_click: Optional[datetime] = None,
    consent: Optional[str] = None,
    clv: float = 0.0,
    orders: int = 0,
) -> SubscriberRecord:
    return SubscriberRecord(
        id=subscriber_id,
        email=f"{subscriber_id}@example.com",
        emailConsentRaw=consent,
        totalClv=clv,
        totalOrders=orders,
        isBuyer=orders > 0,
        profileCreated=created,
        firstActive=first_active,
        lastActive=last_active,
        lastOpen=last_open,
        lastClick=last_click,
    )


def create_csv_text(df: pd.DataFrame) -> str:
    """Serialize a DataFrame to CSV text the way an ESP export looks."""
    buffer = io.StringIO()
    df.to_csv(buffer, index=False)
    return buffer.getvalue()


def payload(
    campaigns: Iterable[SendRecord] = (),
    flows: Iterable[SendRecord] = (),
    subscribers: Iterable[SubscriberRecord] = (),
) -> dict:
    """JSON-ready ``DatasetPayload`` body."""
    return {
        "campaigns": [r.model_dump(mode="json") for r in campaigns],
        "flowEmails": [r.model_dump(mode="json") for r in flows],
        "subscribers": [s.model_dump(mode="json") for s in subscribers],
    }


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def settings() -> Settings:
    """Default thresholds, independent of the process environment cache."""
    return Settings()


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def steady_campaigns() -> List[SendRecord]:
    """12 weeks of two campaigns per week with 10% revenue noise."""
    return weekly_campaigns(12, per_week=2, noise=0.10)


@pytest.fixture
def welcome_flow() -> List[SendRecord]:
    """84 days of a three-step welcome flow."""
    return daily_flow_emails(84)


@pytest.fixture
def sample_context(steady_campaigns, welcome_flow) -> DatasetContext:
    return DatasetContext(campaigns=steady_campaigns, flow_emails=welcome_flow)


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """TestClient bound to the FastAPI app."""
    from email_analytics.main import app

    with TestClient(app) as test_client:
        yield test_client
