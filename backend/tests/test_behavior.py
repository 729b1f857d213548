"""
Tests for behavioral profiles.

Verifies the cold-start sentinel, preference ranking, price tiers and the
bulk analysis summary.
"""

from datetime import datetime, timedelta

import pytest

from app.exceptions import CollaboratorUnavailable, InvalidRequest, NotFound
from app.gateways.base import ClientRecord
from app.services.behavior import (
    BehaviorAnalyzer,
    build_profile,
    classify_price_preference,
    classify_purchase_frequency,
)
from fakes import TENANT, FakeClients, FakeSales, make_line, make_product, make_sale

NOW = datetime(2024, 6, 30, 12, 0, 0)

SHIRT = make_product("shirt", category="Shirts", prices=(40.0,), sizes=("M",), colors=("Blue",))
DRESS = make_product("dress", category="Dresses", prices=(120.0,), sizes=("S",), colors=("Red",))


def _analyzer(sales=(), clients=("c1",)):
    return BehaviorAnalyzer(
        FakeSales(sales),
        FakeClients([ClientRecord(id=cid, email=f"{cid}@example.com") for cid in clients]),
        current_date=NOW,
    )


class TestClassifiers:

    def test_frequency_needs_a_time_span(self):
        assert classify_purchase_frequency(5, NOW, NOW) == "low"

    def test_frequency_bands(self):
        start = NOW - timedelta(days=10)
        assert classify_purchase_frequency(2, start, NOW) == "high"      # 0.2 / day
        assert classify_purchase_frequency(1, start - timedelta(days=5), NOW) == "medium"  # 0.066
        assert classify_purchase_frequency(1, start - timedelta(days=30), NOW) == "low"

    @pytest.mark.parametrize("aov,expected", [
        (80, "budget"),
        (80.01, "mid-range"),
        (200, "mid-range"),
        (200.01, "premium"),
    ])
    def test_price_preference(self, aov, expected):
        assert classify_price_preference(aov) == expected


class TestBuildProfile:

    def test_no_sales_is_cold_start(self):
        profile = build_profile("c1", [], NOW)

        assert profile.is_cold_start
        assert profile.preferred_categories == []
        assert profile.average_order_value == 0.0
        assert profile.last_purchase_date == NOW
        assert profile.purchase_frequency == "low"
        assert profile.price_preference == "budget"

    def test_two_shirt_orders(self):
        sales = [
            make_sale("s1", "c1", NOW - timedelta(days=20), [make_line(SHIRT)]),
            make_sale("s2", "c1", NOW - timedelta(days=5), [make_line(SHIRT)]),
        ]

        profile = build_profile("c1", sales, NOW)

        assert profile.preferred_categories == ["Shirts"]
        assert profile.average_order_value == 40.0
        assert profile.frequent_sizes == ["M"]
        assert profile.frequent_colors == ["Blue"]
        assert profile.price_preference == "budget"
        assert profile.purchase_frequency == "high"  # 2 orders over 15 days
        assert profile.last_purchase_date == NOW - timedelta(days=5)

    def test_preferences_ranked_by_units(self):
        sales = [
            make_sale("s1", "c1", NOW - timedelta(days=3), [make_line(SHIRT, quantity=1), make_line(DRESS, quantity=3)]),
        ]

        profile = build_profile("c1", sales, NOW)

        assert profile.preferred_categories == ["Dresses", "Shirts"]
        assert profile.frequent_colors == ["Red", "Blue"]


class TestBehaviorAnalyzer:

    @pytest.mark.asyncio
    async def test_end_to_end_profile(self):
        """Two $40 shirt orders 30 and 60 days back."""
        analyzer = _analyzer([
            make_sale("s1", "c1", NOW - timedelta(days=60), [make_line(SHIRT)]),
            make_sale("s2", "c1", NOW - timedelta(days=30), [make_line(SHIRT)]),
        ])

        profile = await analyzer.analyze(TENANT, "c1", 90)

        assert profile.preferred_categories == ["Shirts"]
        assert profile.average_order_value == 40.0
        assert profile.order_count == 2
        assert profile.price_preference == "budget"
        assert profile.purchase_frequency == "medium"

    @pytest.mark.asyncio
    async def test_one_order_of_two_40_dollar_shirts(self):
        analyzer = _analyzer([
            make_sale("s1", "c1", NOW - timedelta(days=10), [make_line(SHIRT, quantity=2)]),
        ])

        profile = await analyzer.analyze(TENANT, "c1")

        assert profile.preferred_categories == ["Shirts"]
        assert profile.average_order_value == 80.0
        assert profile.price_preference == "budget"
        assert profile.purchase_frequency == "low"

    @pytest.mark.asyncio
    async def test_sales_outside_lookback_are_ignored(self):
        analyzer = _analyzer([
            make_sale("old", "c1", NOW - timedelta(days=200), [make_line(DRESS)]),
        ])

        profile = await analyzer.analyze(TENANT, "c1", 90)

        assert profile.is_cold_start

    @pytest.mark.asyncio
    async def test_unknown_client_raises_not_found(self):
        analyzer = _analyzer(clients=())

        with pytest.raises(NotFound) as exc_info:
            await analyzer.analyze(TENANT, "ghost")

        assert "ghost" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_see_client(self):
        analyzer = _analyzer()

        with pytest.raises(NotFound):
            await analyzer.analyze("tenant-2", "c1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [0, 366, -5])
    async def test_lookback_is_validated_first(self, days):
        analyzer = _analyzer()

        with pytest.raises(InvalidRequest) as exc_info:
            await analyzer.analyze(TENANT, "c1", days)

        assert exc_info.value.field == "lookback_days"
        assert analyzer.clients.calls == []

    @pytest.mark.asyncio
    async def test_history_outage_degrades_to_cold_start(self):
        analyzer = _analyzer()
        analyzer.sales.unavailable = True

        profile = await analyzer.analyze(TENANT, "c1")

        assert profile.is_cold_start

    @pytest.mark.asyncio
    async def test_client_lookup_outage_surfaces(self):
        analyzer = _analyzer()
        analyzer.clients.unavailable = True

        with pytest.raises(CollaboratorUnavailable):
            await analyzer.analyze(TENANT, "c1")


class TestBulkAnalysis:

    @pytest.mark.asyncio
    async def test_summary_and_missing_clients(self):
        analyzer = _analyzer(
            [
                make_sale("s1", "c1", NOW - timedelta(days=3), [make_line(SHIRT)]),
                make_sale("s2", "c2", NOW - timedelta(days=3), [make_line(DRESS)]),
            ],
            clients=("c1", "c2"),
        )

        result = await analyzer.analyze_many(TENANT, ["c1", "c2", "c1", "ghost"])

        assert [p.client_id for p in result.profiles] == ["c1", "c2"]
        assert result.missing_client_ids == ["ghost"]
        assert result.summary["total_clients"] == 2
        assert result.summary["average_order_value"] == 80.0
        assert result.summary["common_categories"] == ["Shirts", "Dresses"]

    @pytest.mark.asyncio
    async def test_empty_request_is_rejected(self):
        analyzer = _analyzer()

        with pytest.raises(InvalidRequest) as exc_info:
            await analyzer.analyze_many(TENANT, [])

        assert exc_info.value.field == "client_ids"
