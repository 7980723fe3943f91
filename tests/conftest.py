"""Shared test fixtures for Xenofy-Engine."""

import copy

import pytest
from httpx import ASGITransport, AsyncClient

from xenofy_engine.common.config import XenofySettings
from xenofy_engine.common.database import DatabaseManager
from xenofy_engine.common.exceptions import UpstreamError, ValidationError


SECRET_KEY = "test-secret-key-for-unit-tests"
SHOP_DOMAIN = "acme-store.myshopify.com"
SHOP_TOKEN = "shpat_test_token_acme_0123456789"
OTHER_DOMAIN = "globex-store.myshopify.com"
OTHER_TOKEN = "shpat_test_token_globex_987654321"
PASSWORD = "correct-horse-battery"


def make_settings(**overrides) -> XenofySettings:
    defaults = {
        "secret_key": SECRET_KEY,
        "db_url": "sqlite+aiosqlite://",
        "bcrypt_rounds": 4,
        "scheduler_enabled": False,
        "auto_ingest_on_register": False,
    }
    defaults.update(overrides)
    return XenofySettings(**defaults)


def sample_store() -> dict:
    """Three customers, two products, one order for the first customer."""
    return {
        "shop": {
            "id": 1,
            "name": "Acme Store",
            "domain": "acme.example",
            "myshopify_domain": SHOP_DOMAIN,
            "plan_display_name": "Basic",
            "shop_owner": "Wile E.",
            "email": "owner@acme.example",
            "currency": "INR",
            "country_name": "India",
            "iana_timezone": "Asia/Kolkata",
        },
        "customers": [
            {"id": 1001, "email": "alice@example.com", "first_name": "Alice", "last_name": "A",
             "created_at": "2024-11-05T09:00:00Z", "updated_at": "2024-11-05T09:00:00Z"},
            {"id": 1002, "email": "bob@example.com", "first_name": "Bob", "last_name": "B",
             "created_at": "2024-12-10T09:00:00Z"},
            {"id": 1003, "email": None, "first_name": "Carol", "last_name": "C",
             "created_at": "2025-01-03T09:00:00Z"},
        ],
        "products": [
            {"id": 2001, "title": "Alpha Tee", "handle": "alpha-tee",
             "created_at": "2024-10-01T00:00:00Z",
             "variants": [{"id": 3001, "price": "100.00", "inventory_item_id": 4001,
                           "inventory_quantity": 10, "inventory_policy": "deny"}]},
            {"id": 2002, "title": "Beta Mug", "handle": "beta-mug",
             "created_at": "2024-10-02T00:00:00Z",
             "variants": [{"id": 3002, "price": "50.00", "inventory_item_id": 4002,
                           "inventory_quantity": 3, "inventory_policy": "deny"}]},
        ],
        "inventory_levels": [
            {"inventory_item_id": 4001, "location_id": 9001, "available": 7},
            {"inventory_item_id": 4002, "location_id": 9001, "available": 0},
        ],
        "orders": [
            {
                "id": 5001,
                "name": "#1001",
                "email": "alice@example.com",
                "currency": "INR",
                "customer": {"id": 1001},
                "total_price": "250.00",
                "subtotal_price": "250.00",
                "total_tax": "0.00",
                "total_discounts": "0.00",
                "financial_status": "paid",
                "fulfillment_status": "fulfilled",
                "created_at": "2025-01-15T10:30:00Z",
                "line_items": [
                    {"id": 6001, "product_id": 2001, "variant_id": 3001, "title": "Alpha Tee",
                     "quantity": 2, "price": "100.00"},
                    {"id": 6002, "product_id": 2002, "variant_id": 3002, "title": "Beta Mug",
                     "quantity": 1, "price": "50.00"},
                ],
                "shipping_address": {"first_name": "Alice", "address1": "1 Ship St", "city": "Pune"},
                "billing_address": {"first_name": "Alice", "address1": "9 Bill Rd", "city": "Mumbai"},
            },
        ],
        "checkouts": [
            {"id": 7001, "email": "dave@example.com", "total_price": "120.00",
             "subtotal_price": "120.00", "currency": "INR", "created_at": "2025-01-10T08:00:00Z"},
        ],
        "events": [
            {"id": 8001, "subject_type": "Product", "verb": "create",
             "message": "Alpha Tee was created", "created_at": "2025-01-01T08:00:00Z"},
            {"id": 8002, "subject_type": "Order", "verb": "placed",
             "message": "Order #1001 was placed", "created_at": "2025-01-15T10:30:00Z"},
        ],
        "reports": [],
    }


class FakeShopifyClient:
    """In-memory stand-in for ShopifyClient bound to one shop."""

    def __init__(self, backend: "FakeShopify", domain: str, credential: str):
        self.backend = backend
        self.domain = domain
        self.credential = credential
        self.closed = False

    def _read(self, method: str, key: str):
        failure = self.backend.failures.get(method)
        if failure is not None:
            raise failure
        if self.credential in self.backend.bad_credentials:
            raise UpstreamError("Shopify returned 401: Invalid API key", http_status=401)
        store = self.backend.stores.get(self.domain)
        if store is None:
            raise UpstreamError("Shopify returned 404: Not Found", http_status=404)
        return copy.deepcopy(store.get(key, []))

    async def get_shop(self):
        return self._read("get_shop", "shop")

    async def list_customers(self):
        return self._read("list_customers", "customers")

    async def list_products(self):
        return self._read("list_products", "products")

    async def list_orders(self):
        return self._read("list_orders", "orders")

    async def list_inventory_levels(self):
        return self._read("list_inventory_levels", "inventory_levels")

    async def list_abandoned_checkouts(self):
        return self._read("list_abandoned_checkouts", "checkouts")

    async def list_events(self):
        return self._read("list_events", "events")

    async def list_reports(self):
        return self._read("list_reports", "reports")

    async def close(self):
        self.closed = True


class FakeShopify:
    """Client factory serving canned store data per shop domain."""

    def __init__(self):
        self.stores: dict[str, dict] = {}
        self.failures: dict[str, Exception] = {}
        self.bad_credentials: set[str] = set()
        self.clients: list[FakeShopifyClient] = []

    def add_store(self, domain: str = SHOP_DOMAIN, data: dict | None = None) -> dict:
        self.stores[domain] = data if data is not None else sample_store()
        return self.stores[domain]

    def fail(self, method: str, exc: Exception) -> None:
        self.failures[method] = exc

    def __call__(self, domain: str, credential: str | None) -> FakeShopifyClient:
        if not credential or len(credential) < 20:
            raise ValidationError("Shopify access token is too short (minimum 20 characters)")
        client = FakeShopifyClient(self, domain, credential)
        self.clients.append(client)
        return client


@pytest.fixture
def shopify():
    fake = FakeShopify()
    fake.add_store(SHOP_DOMAIN)
    return fake


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
async def db(settings):
    manager = DatabaseManager(settings)
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
async def tenant_id(db):
    """An Acme tenant holding a valid-looking credential."""
    from xenofy_engine.tenants.service import TenantService

    async with db.get_session() as session:
        tenant = await TenantService().create_tenant(
            session, name="Acme Store", domain=SHOP_DOMAIN, api_credential=SHOP_TOKEN
        )
        return tenant.id


@pytest.fixture
def app(monkeypatch, shopify):
    """Create a test app with in-memory DB and a fake Shopify backend."""
    monkeypatch.setenv("XENOFY_DB_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("XENOFY_SECRET_KEY", SECRET_KEY)
    monkeypatch.setenv("XENOFY_BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("XENOFY_SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("XENOFY_AUTO_INGEST_ON_REGISTER", "false")

    # Clear caches and singletons so new env vars take effect
    from xenofy_engine.common.config import get_settings
    get_settings.cache_clear()

    from xenofy_engine.deps import reset_singletons, set_client_factory
    reset_singletons()
    set_client_factory(shopify)

    from xenofy_engine.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from xenofy_engine.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def register(client, shopify):
    """Register a tenant through the API; returns (auth headers, response body)."""

    async def _register(
        email: str = "owner@acme.example",
        domain: str = SHOP_DOMAIN,
        api_key: str = SHOP_TOKEN,
        name: str = "Acme Store",
        password: str = PASSWORD,
    ):
        if domain not in shopify.stores:
            shopify.add_store(domain)
        resp = await client.post("/auth/register", json={
            "email": email,
            "password": password,
            "name": name,
            "domain": domain,
            "apiKey": api_key,
        })
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return {"Authorization": f"Bearer {body['token']}"}, body

    return _register
