"""Integration tests for the analytics router under /api/data."""

import pytest

from tests.conftest import OTHER_DOMAIN, OTHER_TOKEN


ENDPOINTS = [
    "/api/data/dashboard",
    "/api/data/customers/stats",
    "/api/data/orders/stats",
    "/api/data/products/stats",
    "/api/data/customers/detailed",
    "/api/data/products/detailed",
    "/api/data/orders/detailed",
    "/api/data/orders/filtered",
    "/api/data/customers/top-spenders",
    "/api/data/analytics/insights",
    "/api/data/analytics/abandoned-carts",
    "/api/data/analytics/events",
    "/api/data/analytics/inventory",
    "/api/data/analytics/fulfillment",
    "/api/data/analytics/customer-segments",
]


@pytest.fixture
async def ingested(client, register):
    headers, _ = await register()
    resp = await client.post("/api/ingestion/trigger", headers=headers)
    assert resp.status_code == 200, resp.text
    return headers


class TestAuthRequired:
    @pytest.mark.parametrize("path", ENDPOINTS)
    async def test_requires_token(self, client, path):
        resp = await client.get(path)
        assert resp.status_code == 401

    @pytest.mark.parametrize("path", ENDPOINTS)
    async def test_empty_tenant_succeeds(self, client, register, path):
        headers, _ = await register()
        resp = await client.get(path, headers=headers)
        assert resp.status_code == 200, resp.text


class TestSummaries:
    async def test_dashboard(self, client, ingested):
        resp = await client.get("/api/data/dashboard", headers=ingested)
        assert resp.status_code == 200
        assert resp.json() == {
            "customers": {"total": 3},
            "orders": {"total": 1, "revenue": 250.0},
            "products": {"total": 2},
        }

    async def test_dashboard_agrees_with_stats(self, client, ingested):
        dashboard = (await client.get("/api/data/dashboard", headers=ingested)).json()
        customers = (await client.get("/api/data/customers/stats", headers=ingested)).json()
        orders = (await client.get("/api/data/orders/stats", headers=ingested)).json()
        products = (await client.get("/api/data/products/stats", headers=ingested)).json()
        assert dashboard["customers"]["total"] == customers["totalCustomers"]
        assert dashboard["orders"]["total"] == orders["totalOrders"]
        assert dashboard["orders"]["revenue"] == orders["totalRevenue"]
        assert dashboard["products"]["total"] == products["totalProducts"]

    async def test_camel_case_keys(self, client, ingested):
        data = (await client.get("/api/data/orders/stats", headers=ingested)).json()
        assert set(data) == {"totalOrders", "totalRevenue", "recentOrders", "ordersByMonth"}
        order = data["recentOrders"][0]
        assert order["shopifyId"] == "5001"
        assert order["totalPrice"] == 250.0
        assert "fulfillmentStatus" in order
        assert data["ordersByMonth"] == {"2025-01": {"count": 1, "revenue": 250.0}}


class TestFilteredOrders:
    async def test_single_day(self, client, ingested):
        resp = await client.get(
            "/api/data/orders/filtered",
            params={"startDate": "2025-01-15", "endDate": "2025-01-15"},
            headers=ingested,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["totalOrders"] == 1
        assert data["totalRevenue"] == 250.0
        assert list(data["ordersByDate"]) == ["2025-01-15"]

    async def test_start_after_order(self, client, ingested):
        resp = await client.get(
            "/api/data/orders/filtered", params={"startDate": "2025-01-16"}, headers=ingested
        )
        assert resp.status_code == 200
        assert resp.json()["totalOrders"] == 0

    async def test_far_future_end_date(self, client, ingested):
        resp = await client.get(
            "/api/data/orders/filtered", params={"endDate": "9999-12-31"}, headers=ingested
        )
        assert resp.status_code == 200
        assert resp.json()["totalOrders"] == 1

    async def test_malformed_date(self, client, ingested):
        resp = await client.get(
            "/api/data/orders/filtered", params={"startDate": "yesterday"}, headers=ingested
        )
        assert resp.status_code == 400
        assert "startDate" in resp.json()["error"]


class TestDerived:
    async def test_top_spenders(self, client, ingested):
        data = (await client.get("/api/data/customers/top-spenders", headers=ingested)).json()
        top = data["topCustomers"]
        assert top[0]["firstName"] == "Alice"
        assert top[0]["totalSpend"] == 250.0
        assert top[0]["totalItems"] == 3

    async def test_abandoned_carts(self, client, ingested):
        data = (await client.get("/api/data/analytics/abandoned-carts", headers=ingested)).json()
        assert data["total"] == 1
        assert data["totalValue"] == 120.0

    async def test_inventory(self, client, ingested):
        data = (await client.get("/api/data/analytics/inventory", headers=ingested)).json()
        assert data["inventoryStats"]["outOfStock"] == 1
        assert data["inventoryStats"]["inStock"] == 1

    async def test_segments_shape(self, client, ingested):
        data = (await client.get("/api/data/analytics/customer-segments", headers=ingested)).json()
        assert data["totalCustomers"] == 3
        assert set(data["segments"]) == {"highValue", "regular", "new", "lowValue"}
        assert data["segments"]["lowValue"] == 3


class TestTenantIsolation:
    async def test_each_tenant_sees_only_its_data(self, client, register, ingested):
        other_headers, _ = await register(
            email="owner@globex.example", domain=OTHER_DOMAIN, api_key=OTHER_TOKEN, name="Globex"
        )
        other = (await client.get("/api/data/dashboard", headers=other_headers)).json()
        assert other["customers"]["total"] == 0
        assert other["orders"]["total"] == 0

        mine = (await client.get("/api/data/dashboard", headers=ingested)).json()
        assert mine["customers"]["total"] == 3
