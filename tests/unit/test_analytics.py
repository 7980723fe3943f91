"""Tests for tenant-scoped analytics over ingested store data."""

from datetime import datetime, timezone

import pytest

from xenofy_engine.analytics.service import AnalyticsService
from xenofy_engine.common.exceptions import ValidationError
from xenofy_engine.ingestion.service import IngestionService
from xenofy_engine.store.models import OrderModel
from xenofy_engine.tenants.service import TenantService
from tests.conftest import OTHER_DOMAIN, OTHER_TOKEN


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def analytics():
    return AnalyticsService()


@pytest.fixture
async def ingested(db, settings, shopify, tenant_id):
    run = await IngestionService(settings, shopify).run_for_tenant(db, tenant_id)
    assert run.status == "succeeded"
    return tenant_id


async def query(db, analytics, method, tenant_id, **kwargs):
    async with db.get_session() as session:
        return await getattr(analytics, method)(session, tenant_id, **kwargs)


class TestEmptyTenant:
    async def test_dashboard_zeroes(self, db, analytics, tenant_id):
        result = await query(db, analytics, "dashboard", tenant_id)
        assert result.customers.total == 0
        assert result.orders.total == 0
        assert result.orders.revenue == 0.0
        assert result.products.total == 0

    async def test_insights_without_data(self, db, analytics, tenant_id):
        result = await query(db, analytics, "insights", tenant_id)
        assert result.conversion_metrics.cart_abandon_rate == 0.0
        assert result.revenue.growth_rate == 0.0
        assert result.store_info.name is None
        assert result.top_products == []

    async def test_abandoned_average_without_carts(self, db, analytics, tenant_id):
        result = await query(db, analytics, "abandoned_carts", tenant_id)
        assert (result.total, result.total_value, result.average_value) == (0, 0.0, 0.0)


class TestSummaries:
    async def test_dashboard(self, db, analytics, ingested):
        result = await query(db, analytics, "dashboard", ingested)
        assert result.customers.total == 3
        assert result.orders.total == 1
        assert result.orders.revenue == 250.0
        assert result.products.total == 2

    async def test_dashboard_matches_stats_endpoints(self, db, analytics, ingested):
        dashboard = await query(db, analytics, "dashboard", ingested)
        customers = await query(db, analytics, "customer_stats", ingested)
        orders = await query(db, analytics, "order_stats", ingested)
        products = await query(db, analytics, "product_stats", ingested)
        assert dashboard.customers.total == customers.total_customers
        assert dashboard.orders.total == orders.total_orders
        assert dashboard.orders.revenue == orders.total_revenue
        assert dashboard.products.total == products.total_products

    async def test_customer_stats(self, db, analytics, ingested):
        result = await query(db, analytics, "customer_stats", ingested, now=utc(2025, 1, 20))
        assert result.total_customers == 3
        assert result.new_customers_this_month == 1
        assert [c.email for c in result.customers_by_email] == [
            "alice@example.com", "bob@example.com",
        ]

    async def test_orders_by_month(self, db, analytics, ingested):
        result = await query(db, analytics, "order_stats", ingested)
        assert list(result.orders_by_month) == ["2025-01"]
        assert result.orders_by_month["2025-01"].count == 1
        assert result.orders_by_month["2025-01"].revenue == 250.0
        order = result.recent_orders[0]
        assert order.customer.first_name == "Alice"
        assert {item.title for item in order.items} == {"Alpha Tee", "Beta Mug"}

    async def test_best_sellers_count_order_lines(self, db, analytics, ingested):
        result = await query(db, analytics, "product_stats", ingested)
        best = [(p.title, p.order_count) for p in result.best_selling_products]
        assert best == [("Alpha Tee", 1), ("Beta Mug", 1)]


class TestDetailed:
    async def test_products_detailed_sales(self, db, analytics, ingested):
        result = await query(db, analytics, "products_detailed", ingested)
        assert result.total == 2
        alpha = next(p for p in result.products if p.title == "Alpha Tee")
        assert alpha.total_sold == 2
        assert alpha.total_revenue == 200.0
        assert alpha.inventory_quantity == 7

    async def test_customers_detailed_embeds_orders(self, db, analytics, ingested):
        result = await query(db, analytics, "customers_detailed", ingested)
        assert result.total == 3
        alice = next(c for c in result.customers if c.first_name == "Alice")
        assert [o.shopify_id for o in alice.orders] == ["5001"]
        bob = next(c for c in result.customers if c.first_name == "Bob")
        assert bob.orders == []

    async def test_orders_detailed(self, db, analytics, ingested):
        result = await query(db, analytics, "orders_detailed", ingested)
        assert result.total == 1
        assert result.orders[0].name == "#1001"
        assert result.orders[0].total_price == 250.0


class TestDerived:
    async def test_insights(self, db, analytics, ingested):
        result = await query(db, analytics, "insights", ingested, now=utc(2025, 1, 20))
        assert result.total_revenue == 250.0
        assert result.total_customers == 3
        assert result.revenue.current_month == 250.0
        assert result.revenue.last_month == 0.0
        assert result.revenue.growth_rate == 0.0
        assert result.conversion_metrics.cart_abandon_rate == 50.0
        assert result.conversion_metrics.abandoned_carts == 1
        assert result.conversion_metrics.completed_orders == 1
        assert result.store_info.name == "Acme Store"
        assert result.top_products[0].title == "Alpha Tee"
        assert [a.type for a in result.recent_activity] == ["Order", "Product"]

    async def test_insights_growth_against_last_month(self, db, analytics, ingested):
        result = await query(db, analytics, "insights", ingested, now=utc(2025, 2, 10))
        assert result.revenue.current_month == 0.0
        assert result.revenue.last_month == 250.0
        assert result.revenue.growth_rate == -100.0

    async def test_abandoned_carts(self, db, analytics, ingested):
        result = await query(db, analytics, "abandoned_carts", ingested)
        assert result.total == 1
        assert result.total_value == 120.0
        assert result.average_value == 120.0
        assert result.recent_carts[0].checkout_id == "7001"

    async def test_events(self, db, analytics, ingested):
        result = await query(db, analytics, "events", ingested)
        assert result.total == 2
        assert result.events_by_type == {"Order": 1, "Product": 1}
        assert result.events[0].event_id == "8002"

    async def test_inventory(self, db, analytics, ingested):
        result = await query(db, analytics, "inventory", ingested)
        stats = result.inventory_stats
        assert (stats.total_products, stats.in_stock, stats.out_of_stock, stats.low_stock) == (2, 1, 1, 0)
        quantities = {p.title: p.inventory_quantity for p in result.products_with_stock}
        assert quantities == {"Alpha Tee": 7, "Beta Mug": 0}
        assert result.products_with_stock[0].stock_value == 700.0

    async def test_fulfillment(self, db, analytics, ingested):
        result = await query(db, analytics, "fulfillment", ingested)
        assert result.total == 1
        assert result.status_breakdown["fulfilled"].count == 1
        assert result.status_breakdown["fulfilled"].value == 250.0

    async def test_top_spenders_orders_ties_stably(self, db, analytics, ingested):
        result = await query(db, analytics, "top_spenders", ingested)
        assert [c.first_name for c in result.top_customers] == ["Alice", "Bob", "Carol"]
        alice = result.top_customers[0]
        assert alice.total_spend == 250.0
        assert alice.total_orders == 1
        assert alice.total_items == 3
        assert alice.avg_order_value == 250.0
        assert result.top_customers[1].last_order_date is None

    async def test_customer_segments(self, db, analytics, ingested):
        result = await query(db, analytics, "customer_segments", ingested, now=utc(2025, 2, 1))
        assert result.total_customers == 3
        assert result.segments.new == 1
        assert result.segments.low_value == 3
        assert result.segments.high_value == 0
        assert result.segments.regular == 0


class TestFilteredOrders:
    @pytest.fixture
    async def boundary_orders(self, db, tenant_id):
        moments = {
            "start-of-day": utc(2025, 1, 1, 0, 0, 0),
            "end-of-day": utc(2025, 1, 1, 23, 59, 59, 999000),
            "next-day": utc(2025, 1, 2, 0, 0, 0),
            "day-before": utc(2024, 12, 31, 23, 59, 59),
        }
        async with db.get_session() as session:
            for key, moment in moments.items():
                session.add(OrderModel(
                    tenant_id=tenant_id, external_id=key, name=key, total_price=10.0,
                    created_at=moment, items=[], addresses=[],
                ))
        return tenant_id

    async def test_single_day_window_is_inclusive(self, db, analytics, boundary_orders):
        result = await query(
            db, analytics, "filtered_orders", boundary_orders,
            start_date="2025-01-01", end_date="2025-01-01",
        )
        assert {o.shopify_id for o in result.orders} == {"start-of-day", "end-of-day"}
        assert result.total_orders == 2
        assert result.total_revenue == 20.0
        assert list(result.orders_by_date) == ["2025-01-01"]

    async def test_open_ended_start(self, db, analytics, boundary_orders):
        result = await query(db, analytics, "filtered_orders", boundary_orders, start_date="2025-01-02")
        assert [o.shopify_id for o in result.orders] == ["next-day"]

    async def test_open_ended_end(self, db, analytics, boundary_orders):
        result = await query(db, analytics, "filtered_orders", boundary_orders, end_date="2024-12-31")
        assert [o.shopify_id for o in result.orders] == ["day-before"]

    async def test_no_bounds_returns_all(self, db, analytics, boundary_orders):
        result = await query(db, analytics, "filtered_orders", boundary_orders)
        assert result.total_orders == 4
        assert result.orders[0].shopify_id == "next-day"

    async def test_malformed_date(self, db, analytics, boundary_orders):
        with pytest.raises(ValidationError):
            await query(db, analytics, "filtered_orders", boundary_orders, start_date="01/02/2025")

    async def test_reversed_range(self, db, analytics, boundary_orders):
        with pytest.raises(ValidationError):
            await query(
                db, analytics, "filtered_orders", boundary_orders,
                start_date="2025-01-02", end_date="2025-01-01",
            )


class TestTenantIsolation:
    async def test_other_tenant_sees_nothing(self, db, analytics, ingested):
        async with db.get_session() as session:
            other = await TenantService().create_tenant(
                session, name="Globex", domain=OTHER_DOMAIN, api_credential=OTHER_TOKEN
            )
            other_id = other.id
        dashboard = await query(db, analytics, "dashboard", other_id)
        assert (dashboard.customers.total, dashboard.orders.total, dashboard.products.total) == (0, 0, 0)
        spenders = await query(db, analytics, "top_spenders", other_id)
        assert spenders.top_customers == []

    async def test_same_shopify_ids_kept_apart(self, db, settings, shopify, analytics, ingested):
        shopify.add_store(OTHER_DOMAIN)
        async with db.get_session() as session:
            other = await TenantService().create_tenant(
                session, name="Globex", domain=OTHER_DOMAIN, api_credential=OTHER_TOKEN
            )
            other_id = other.id
        await IngestionService(settings, shopify).run_for_tenant(db, other_id)

        for tenant in (ingested, other_id):
            dashboard = await query(db, analytics, "dashboard", tenant)
            assert dashboard.customers.total == 3
            assert dashboard.orders.revenue == 250.0
