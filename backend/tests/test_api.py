"""
HTTP-level tests: routing, auth and error mapping.

Services are wired to in-memory gateways through dependency overrides.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.auth_middleware import create_access_token, create_client_token
from app.config import Settings
from app.gateways.base import ClientRecord
from app.main import app
from app.routers.dependencies import get_analytics_service, get_ranking_scorer, get_recommendation_service
from app.services.analytics import AnalyticsService
from app.services.recommendations import RecommendationService
from fakes import TENANT, FakeCatalog, FakeClients, FakeInventory, FakeSales, make_line, make_product, make_sale

NOW = datetime(2024, 6, 30, 12, 0, 0)


@pytest.fixture
def store():
    catalog = FakeCatalog([
        make_product("p1", name="Alpha Tee", category="Shirts", prices=(40.0,)),
        make_product("p2", name="Beta Tee", category="Shirts", prices=(50.0,)),
        make_product("p3", name="Gamma Dress", category="Dresses", prices=(120.0,), quantity=2),
    ])
    sales = FakeSales([
        make_sale("s1", "c1", NOW - timedelta(days=3), [make_line(catalog.by_id("p1"), quantity=2)]),
        make_sale("s2", "c1", NOW - timedelta(days=1), [make_line(catalog.by_id("p3"))]),
    ], catalog=catalog)
    clients = FakeClients([ClientRecord(id="c1", email="c1@example.com")])
    return {"catalog": catalog, "sales": sales, "clients": clients, "inventory": FakeInventory()}


@pytest.fixture
def client(store):
    app.dependency_overrides[get_recommendation_service] = lambda: RecommendationService(
        products=store["catalog"], sales=store["sales"], clients=store["clients"], current_date=NOW,
    )
    app.dependency_overrides[get_analytics_service] = lambda: AnalyticsService(
        products=store["catalog"], sales=store["sales"], inventory=store["inventory"], current_date=NOW,
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


def _tenant_headers():
    return {"Authorization": f"Bearer {create_access_token(TENANT)}"}


def _client_headers(client_id="c1"):
    return {"Authorization": f"Bearer {create_client_token(TENANT, client_id)}"}


class TestRecommendationsApi:

    def test_requires_authentication(self, client):
        response = client.get("/api/recommendations")
        assert response.status_code == 401

    def test_bestsellers(self, client):
        response = client.get("/api/recommendations", params={"limit": 2}, headers=_tenant_headers())

        assert response.status_code == 200
        body = response.json()
        assert [r["id"] for r in body["recommendations"]] == ["p1", "p3"]
        assert body["recommendations"][0]["price"] == {"min": 40.0, "max": 40.0}
        assert body["sales_data_points"] == 2
        assert set(body["insights"]) == {"trending_categories", "popular_price_range", "top_colors", "top_sizes"}

    def test_similar_without_base_is_400(self, client):
        response = client.get("/api/recommendations", params={"type": "similar"}, headers=_tenant_headers())

        assert response.status_code == 400
        assert "based_on_product_id" in response.json()["detail"]

    @pytest.mark.parametrize("params", [
        {"type": "trending"},
        {"limit": 100},
        {"min_price": 50, "max_price": 10},
        {"min_confidence": 2},
    ])
    def test_invalid_parameters_are_400(self, client, params):
        response = client.get("/api/recommendations", params=params, headers=_tenant_headers())
        assert response.status_code == 400

    def test_unknown_base_product_is_404(self, client):
        response = client.get(
            "/api/recommendations",
            params={"type": "similar", "based_on_product_id": "nope"},
            headers=_tenant_headers(),
        )
        assert response.status_code == 404

    def test_personalized_for_client_token(self, client):
        response = client.get(
            "/api/recommendations", params={"type": "personalized"}, headers=_client_headers()
        )

        assert response.status_code == 200
        ids = [r["id"] for r in response.json()["recommendations"]]
        assert "p1" not in ids
        assert "p3" not in ids

    def test_unknown_client_is_404(self, client):
        response = client.get(
            "/api/recommendations", params={"type": "personalized"}, headers=_client_headers("ghost")
        )
        assert response.status_code == 404

    def test_gateway_outage_is_503(self, client, store):
        store["sales"].unavailable = True

        response = client.get("/api/recommendations", headers=_tenant_headers())

        assert response.status_code == 503
        assert response.json() == {"detail": "transaction gateway is temporarily unavailable"}


class TestBehaviorApi:

    def test_single_client(self, client):
        response = client.get("/api/recommendations/clients/c1/behavior", headers=_tenant_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["preferred_categories"] == ["Shirts", "Dresses"]
        assert body["order_count"] == 2

    def test_bulk(self, client):
        response = client.post(
            "/api/recommendations/clients/behavior",
            json={"client_ids": ["c1", "ghost"], "days_period": 30},
            headers=_tenant_headers(),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["missing_client_ids"] == ["ghost"]
        assert body["summary"]["total_clients"] == 1

    def test_client_tokens_are_rejected(self, client):
        response = client.get("/api/recommendations/clients/c1/behavior", headers=_client_headers())
        assert response.status_code == 403

    def test_tenant_insights(self, client):
        response = client.get("/api/recommendations/insights", headers=_tenant_headers())

        assert response.status_code == 200
        assert response.json()["total_sales"] == 2


class TestReportsApi:

    def test_sales_summary(self, client):
        response = client.get("/api/reports/sales/summary", headers=_tenant_headers())

        assert response.status_code == 200
        assert response.json()["totals"]["revenue"] == 200.0

    def test_inverted_dates_are_400(self, client):
        response = client.get(
            "/api/reports/sales/summary",
            params={"start_date": "2024-06-10", "end_date": "2024-06-01"},
            headers=_tenant_headers(),
        )
        assert response.status_code == 400

    @pytest.mark.parametrize("path", [
        "/api/reports/sales/top-products",
        "/api/reports/sales/trends",
        "/api/reports/sales/trend-analysis",
        "/api/reports/customers",
        "/api/reports/customers/segmentation",
        "/api/reports/inventory/low-stock",
        "/api/reports/inventory/movements",
        "/api/reports/inventory/rotation",
        "/api/reports/inventory/valuation",
        "/api/reports/suppliers",
        "/api/reports/suppliers/replenishment",
        "/api/reports/executive",
        "/api/reports/alerts",
        "/api/reports/daily",
        "/api/reports/weekly-inventory",
    ])
    def test_reports_respond(self, client, path):
        response = client.get(path, headers=_tenant_headers())
        assert response.status_code == 200

    def test_reports_are_back_office_only(self, client):
        response = client.get("/api/reports/alerts", headers=_client_headers())
        assert response.status_code == 403


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["ranking"] == "heuristic"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_recommendation_service_reads_configured_windows():
    settings = Settings(DEBUG=True, RECOMMENDATION_LOOKBACK_DAYS=30, INSIGHTS_WINDOW_DAYS=7)
    get_ranking_scorer.cache_clear()
    try:
        with patch("app.routers.dependencies.get_settings", return_value=settings):
            service = get_recommendation_service()
    finally:
        get_ranking_scorer.cache_clear()

    assert service.lookback_days == 30
    assert service.insights_window_days == 7
