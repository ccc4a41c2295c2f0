"""
Test Module for the HTTP layer.

Validates:
- Health and root endpoints
- Analytics endpoints accept a dataset payload and return their models
- Subject line and consent split endpoints
- 400 for bad selectors and missing parameters, 404 for unknown flows
- Opportunity notes, summary and export endpoints
- CSV ingestion endpoint, including rejection of unusable files
"""

import pandas as pd
import pytest

from email_analytics.tests.conftest import create_csv_text, make_subscriber, payload


pytestmark = pytest.mark.integration


def _body(campaigns=(), flows=(), subscribers=(), **extra) -> dict:
    body = {"dataset": payload(campaigns, flows, subscribers)}
    body.update(extra)
    return body


class TestServiceEndpoints:
    """Tests for /health and /."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "version" in response.json()

    def test_root(self, client):
        data = client.get("/").json()
        assert data["docs"] == "/docs"
        assert data["openapi"] == "/openapi.json"


class TestAnalyticsEndpoints:
    """Tests for the /analytics router."""

    def test_aggregates(self, client, steady_campaigns):
        response = client.post("/analytics/aggregates", json=_body(steady_campaigns))
        assert response.status_code == 200
        data = response.json()
        assert data["dateRange"]["key"] == "90d"
        assert data["granularity"] == "weekly"
        assert data["totals"]["emailsSent"] > 0
        assert "totalRevenue" in data["series"]

    def test_aggregates_empty_dataset(self, client):
        response = client.post("/analytics/aggregates", json=_body())
        assert response.status_code == 200
        assert response.json()["totals"]["emailsSent"] == 0

    def test_unknown_range_key(self, client, steady_campaigns):
        body = _body(steady_campaigns, range={"dateRange": "28d"})
        assert client.post("/analytics/aggregates", json=body).status_code == 422

    def test_incomplete_custom_range(self, client, steady_campaigns):
        body = _body(steady_campaigns, range={"dateRange": "custom", "customFrom": "2024-01-01"})
        assert client.post("/analytics/aggregates", json=body).status_code == 400

    def test_comparison(self, client, steady_campaigns):
        response = client.post("/analytics/comparison", json=_body(steady_campaigns))
        assert response.status_code == 200
        assert response.json()["metric"] == "totalRevenue"

    def test_deliverability(self, client):
        response = client.post("/analytics/deliverability", json={"spamRate": 0.05, "bounceRate": 1.0})
        assert response.status_code == 200
        data = response.json()
        assert data["zone"] == "green"
        assert data["context"] is None

    @pytest.mark.parametrize("path", [
        "/analytics/send-frequency",
        "/analytics/audience-size",
        "/analytics/day-of-week",
        "/analytics/gaps-losses",
        "/analytics/reliability",
        "/analytics/send-volume",
    ])
    def test_campaign_guidance(self, client, steady_campaigns, path):
        assert client.post(path, json=_body(steady_campaigns)).status_code == 200

    @pytest.mark.parametrize("path", [
        "/analytics/send-frequency",
        "/analytics/day-of-week",
        "/analytics/gaps-losses",
        "/analytics/reliability",
    ])
    def test_campaign_guidance_without_data(self, client, path):
        assert client.post(path, json=_body()).status_code == 200

    def test_flow_steps(self, client, welcome_flow):
        body = _body(flows=welcome_flow, flowName="Welcome Series")
        response = client.post("/analytics/flow-steps", json=body)
        assert response.status_code == 200
        assert response.json()["flowName"] == "Welcome Series"

    def test_flow_steps_requires_name(self, client, welcome_flow):
        assert client.post("/analytics/flow-steps", json=_body(flows=welcome_flow)).status_code == 400

    def test_flow_steps_unknown_flow(self, client, welcome_flow):
        body = _body(flows=welcome_flow, flowName="Browse Abandonment")
        assert client.post("/analytics/flow-steps", json=body).status_code == 404

    def test_subject_lines(self, client, steady_campaigns):
        body = _body(steady_campaigns, metric="revenuePerEmail")
        response = client.post("/analytics/subject-lines", json=body)
        assert response.status_code == 200
        data = response.json()
        assert data["metric"] == "revenuePerEmail"
        assert data["dateRange"]["key"] == "90d"
        assert data["baseline"]["countCampaigns"] > 0

    def test_subject_lines_bad_metric(self, client, steady_campaigns):
        body = _body(steady_campaigns, metric="subjectScore")
        assert client.post("/analytics/subject-lines", json=body).status_code == 422

    def test_consent_split(self, client, steady_campaigns):
        subscribers = [
            make_subscriber("a", consent="SUBSCRIBED", orders=2, clv=80.0),
            make_subscriber("b", consent="NEVER_SUBSCRIBED"),
        ]
        body = _body(steady_campaigns, subscribers=subscribers, metric="buyers", range={"dateRange": "all"})
        response = client.post("/analytics/consent-split", json=body)
        assert response.status_code == 200
        groups = {g["key"]: g for g in response.json()["groups"]}
        assert groups["Subscribed"]["value"] == 1
        assert groups["Subscribed"]["percentOfGroup"] == pytest.approx(100.0)
        assert groups["Not Subscribed"]["value"] == 0


class TestOpportunityEndpoints:
    """Tests for the /opportunities router."""

    def test_notes(self, client, steady_campaigns, welcome_flow):
        response = client.post("/opportunities/notes", json=_body(steady_campaigns, welcome_flow))
        assert response.status_code == 200
        assert len(response.json()) > 0

    def test_notes_empty_dataset(self, client):
        response = client.post("/opportunities/notes", json=_body())
        assert response.status_code == 200
        assert response.json() == []

    def test_summary(self, client, steady_campaigns, welcome_flow):
        response = client.post("/opportunities/summary", json=_body(steady_campaigns, welcome_flow))
        assert response.status_code == 200
        data = response.json()
        assert [c["key"] for c in data["categories"]] == ["campaigns", "flows", "audience"]
        assert data["totals"]["annual"] >= 0

    def test_summary_smart_window(self, client, steady_campaigns, welcome_flow):
        response = client.post(
            "/opportunities/summary",
            params={"smart_window": True},
            json=_body(steady_campaigns, welcome_flow),
        )
        assert response.status_code == 200
        assert response.json()["dateRange"] is not None

    def test_export(self, client, steady_campaigns, welcome_flow):
        body = _body(
            steady_campaigns,
            welcome_flow,
            range={"dateRange": "custom", "customFrom": "2024-01-01", "customTo": "2024-03-31"},
        )
        response = client.post("/opportunities/export", params={"include_opportunities": True}, json=body)
        assert response.status_code == 200
        data = response.json()
        assert data["fromMonth"] == "2024-01"
        assert data["months"] == 3
        assert data["opportunities"] is not None

    def test_export_empty_dataset(self, client):
        response = client.post("/opportunities/export", json=_body())
        assert response.status_code == 200
        assert response.json()["startDate"] is None


class TestIngestEndpoint:
    """Tests for POST /ingest/{kind}."""

    def test_campaign_upload(self, client):
        content = create_csv_text(pd.DataFrame({
            "Campaign Name": ["Spring Sale"],
            "Send Time": ["2024-03-04 10:30:00"],
            "Total Recipients": ["10000"],
            "Revenue": ["$500"],
        }))
        response = client.post("/ingest/campaigns", json={"content": content, "filename": "campaigns.csv"})
        assert response.status_code == 200
        data = response.json()
        assert data["rowsParsed"] == 1
        assert data["campaigns"][0]["campaignName"] == "Spring Sale"

    def test_rejects_missing_columns(self, client):
        response = client.post("/ingest/campaigns", json={"content": "Foo,Bar\n1,2\n"})
        assert response.status_code == 400
        assert {e["column"] for e in response.json()["detail"]} == {"Campaign Name", "Send Time"}

    def test_unknown_kind(self, client):
        assert client.post("/ingest/orders", json={"content": "a\n1\n"}).status_code == 422
