"""Tests for campaign and product performance rollups."""

from datetime import date, datetime

import pytest

from analytics import (
    CampaignMetrics,
    aggregate_campaign,
    allocate_campaign_cost,
    campaign_status,
    dashboard_stats,
    performance,
    product_rollups,
    profit,
    roi,
    sales_over_time,
    sort_rollups,
    summarize_campaigns,
    total_stock_value,
)


@pytest.fixture
def products():
    return [
        {"id": "tote", "name": "Tote", "cost": 40.0, "price": 100.0, "stock_quantity": 3, "category_id": "bags"},
        {"id": "belt", "name": "Belt", "cost": 5.0, "price": 20.0, "stock_quantity": 10, "category_id": "acc"},
    ]


@pytest.fixture
def orders():
    return [
        {
            "status": "delivered",
            "created_at": datetime(2026, 10, 1, 10, 0),
            "subtotal": 220.0, "delivery_fee": 600.0, "discount_amount": 20.0,
            "items": [{"product_id": "tote", "unit_price": 100.0, "quantity": 2},
                      {"product_id": "belt", "unit_price": 20.0, "quantity": 1}],
        },
        {
            "status": "pending",
            "created_at": "2026-10-03T09:30:00+00:00",
            "subtotal": 20.0, "delivery_fee": 0.0, "discount_amount": 0.0,
            "items": [{"product_id": "belt", "unit_price": 20.0, "quantity": 1}],
        },
        {
            "status": "cancelled",
            "created_at": datetime(2026, 10, 3, 12, 0),
            "subtotal": 100.0, "delivery_fee": 0.0, "discount_amount": 0.0,
            "items": [{"product_id": "tote", "unit_price": 100.0, "quantity": 1}],
        },
    ]


@pytest.fixture
def campaigns():
    return [
        {
            "name": "Autumn push", "cost": 100.0, "is_active": True,
            "start_date": "2026-09-25T00:00:00", "end_date": None,
            "campaign_products": [
                {"product_id": "tote", "impressions": 1000, "clicks": 50, "conversions": 5, "revenue": 300.0},
                {"product_id": "belt", "impressions": 500, "clicks": None, "conversions": 1, "revenue": 40.0},
            ],
        },
        {
            "name": "Summer", "cost": 0.0, "is_active": False,
            "start_date": "2026-06-01T00:00:00", "end_date": "2026-06-30T00:00:00",
            "campaign_products": [],
        },
    ]


class TestCampaignMetrics:
    def test_aggregate_sums_linked_rows(self, campaigns):
        assert aggregate_campaign(campaigns[0]) == CampaignMetrics(
            impressions=1500, clicks=50, conversions=6, revenue=340.0
        )

    def test_aggregate_without_rows(self, campaigns):
        assert aggregate_campaign(campaigns[1]) == CampaignMetrics()

    def test_roi(self):
        assert roi(100, 340) == pytest.approx(240.0)
        assert roi(200, 100) == pytest.approx(-50.0)

    def test_roi_zero_cost_is_zero(self):
        assert roi(0, 500) == 0
        assert roi(None, 500) == 0

    def test_performance_and_profit_are_distinct(self):
        assert performance(500, 120) == 380
        assert profit(500, 200) == 300

    def test_cost_split_evenly_over_linked_products(self, campaigns):
        extra = {"cost": 30.0, "campaign_products": [{"product_id": "tote"}, {"product_id": "x"}, {"product_id": "y"}]}
        spend = allocate_campaign_cost(campaigns + [extra])
        assert spend == {"tote": 60.0, "belt": 50.0, "x": 10.0, "y": 10.0}


class TestCampaignStatus:
    def test_inactive(self, campaigns):
        assert campaign_status(campaigns[1], datetime(2026, 6, 10)) == "inactive"

    def test_open_ended_is_active(self, campaigns):
        assert campaign_status(campaigns[0], datetime(2030, 1, 1)) == "active"

    def test_past_end_date_is_completed(self):
        campaign = {"is_active": True, "end_date": "2026-01-31T00:00:00"}
        assert campaign_status(campaign, datetime(2026, 2, 1)) == "completed"

    def test_summary(self, campaigns):
        summary = summarize_campaigns(campaigns)
        assert summary.total_spend == 100
        assert summary.active_campaigns == 1
        assert summary.total_revenue == 340
        assert summary.overall_roi == pytest.approx(240.0)


class TestProductRollups:
    def test_sales_cost_profit_and_performance(self, products, orders, campaigns):
        rows = {r.product_id: r for r in product_rollups(products, orders, campaigns)}

        tote = rows["tote"]
        assert tote.units_sold == 2
        assert tote.revenue == 200
        assert tote.total_cost == 80
        assert tote.profit == 120
        assert tote.profit_margin == 60.0
        assert tote.campaign_spend == 50
        assert tote.performance == 150

        belt = rows["belt"]
        assert belt.units_sold == 2
        assert belt.revenue == 40
        assert belt.profit == 30

    def test_unsold_product_has_zero_margin(self, products):
        rows = product_rollups(products, [], [])
        assert all(r.profit_margin == 0 for r in rows)

    def test_sorting_and_filtering(self, products, orders, campaigns):
        rows = product_rollups(products, orders, campaigns)
        assert [r.product_id for r in sort_rollups(rows, "profit")] == ["tote", "belt"]
        assert [r.product_id for r in sort_rollups(rows, "margin", "asc")] == ["tote", "belt"]
        assert [r.product_id for r in sort_rollups(rows, category_id="acc")] == ["belt"]
        assert len(sort_rollups(rows, limit=1)) == 1


class TestDashboard:
    def test_headline_numbers(self, products, orders, campaigns):
        stats = dashboard_stats(orders, products, campaigns)

        assert stats.orders_count == 2
        assert stats.revenue == 220
        assert stats.delivery_fees == 600
        assert stats.campaign_spend == 100
        # 220 revenue - (2*40 + 2*5) goods - 100 campaigns
        assert stats.net_profit == 30

    def test_date_range_includes_whole_end_day(self, products, orders, campaigns):
        stats = dashboard_stats(orders, products, campaigns, from_date=date(2026, 10, 2), to_date=date(2026, 10, 3))
        assert stats.orders_count == 1
        assert stats.revenue == 20
        # only the autumn campaign overlaps
        assert stats.campaign_spend == 100

    def test_sales_over_time_buckets(self, orders):
        series = sales_over_time(orders, days=5, today=date(2026, 10, 3))
        assert [d["date"] for d in series] == ["2026-09-29", "2026-09-30", "2026-10-01", "2026-10-02", "2026-10-03"]
        assert series[2] == {"date": "2026-10-01", "revenue": 200.0, "orders": 1}
        assert series[4] == {"date": "2026-10-03", "revenue": 20.0, "orders": 1}

    def test_stock_value_at_cost(self, products):
        assert total_stock_value(products) == 170.0
