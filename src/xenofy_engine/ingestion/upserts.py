"""Map Shopify payloads onto store rows and upsert them per tenant.

Each ``upsert_*`` function takes the records of one resource, loads the
tenant's existing rows keyed by vendor id, then updates matches in place and
inserts the rest. Returns the number of records written.
"""

import logging
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from xenofy_engine.common.models import as_utc, utcnow
from xenofy_engine.store.models import (
    AbandonedCartModel,
    CustomerModel,
    OrderAddressModel,
    OrderItemModel,
    OrderModel,
    ProductModel,
    StoreEventModel,
    StoreInfoModel,
)

logger = logging.getLogger(__name__)

ADDRESS_TYPES = ("shipping", "billing")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a Shopify ISO-8601 timestamp into an aware UTC datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        logger.warning("Unparseable timestamp from Shopify: %r", value)
        return None


def to_money(value: Any) -> float:
    try:
        return round(float(value), 2) if value not in (None, "") else 0.0
    except (TypeError, ValueError):
        return 0.0


def to_int(value: Any) -> int:
    try:
        return int(value) if value not in (None, "") else 0
    except (TypeError, ValueError):
        return 0


def external_id(value: Any) -> str | None:
    return str(value) if value not in (None, "") else None


async def _existing_by(
    session: AsyncSession, model, tenant_id: str, key: str, *options
) -> dict[str, Any]:
    result = await session.execute(
        select(model).where(model.tenant_id == tenant_id).options(*options)
    )
    return {getattr(row, key): row for row in result.scalars().all()}


def _apply(row, values: dict[str, Any]) -> None:
    for field, value in values.items():
        setattr(row, field, value)


def _stamp_insert(row, payload: dict[str, Any]) -> None:
    created = parse_timestamp(payload.get("created_at"))
    if created is not None:
        row.created_at = created
    row.updated_at = parse_timestamp(payload.get("updated_at")) or created or utcnow()


# ── Store profile ──

def store_info_values(shop: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": shop.get("name"),
        "domain": shop.get("domain"),
        "myshopify_domain": shop.get("myshopify_domain"),
        "plan_name": shop.get("plan_display_name") or shop.get("plan_name"),
        "shop_owner": shop.get("shop_owner"),
        "email": shop.get("email"),
        "currency": shop.get("currency"),
        "country": shop.get("country_name") or shop.get("country"),
        "province": shop.get("province"),
        "city": shop.get("city"),
        "address1": shop.get("address1"),
        "zip": shop.get("zip"),
        "phone": shop.get("phone"),
        "timezone": shop.get("iana_timezone") or shop.get("timezone"),
    }


async def upsert_store_info(
    session: AsyncSession, tenant_id: str, shop: dict[str, Any]
) -> int:
    if not shop:
        return 0
    result = await session.execute(
        select(StoreInfoModel).where(StoreInfoModel.tenant_id == tenant_id)
    )
    row = result.scalar_one_or_none()
    values = store_info_values(shop)
    if row is None:
        session.add(StoreInfoModel(tenant_id=tenant_id, **values))
    else:
        _apply(row, values)
        row.updated_at = utcnow()
    await session.flush()
    return 1


# ── Customers ──

def customer_values(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "email": payload.get("email"),
        "first_name": payload.get("first_name"),
        "last_name": payload.get("last_name"),
    }


async def upsert_customers(
    session: AsyncSession, tenant_id: str, records: Iterable[dict[str, Any]]
) -> int:
    existing = await _existing_by(session, CustomerModel, tenant_id, "external_id")
    count = 0
    for payload in records:
        ext_id = external_id(payload.get("id"))
        if ext_id is None:
            continue
        values = customer_values(payload)
        row = existing.get(ext_id)
        if row is None:
            row = CustomerModel(tenant_id=tenant_id, external_id=ext_id, **values)
            _stamp_insert(row, payload)
            session.add(row)
            existing[ext_id] = row
        else:
            _apply(row, values)
            row.updated_at = utcnow()
        count += 1
    await session.flush()
    return count


# ── Products ──

def product_values(payload: dict[str, Any]) -> dict[str, Any]:
    variants = payload.get("variants") or []
    first = variants[0] if variants else {}
    return {
        "title": payload.get("title") or "",
        "handle": payload.get("handle"),
        "vendor": payload.get("vendor"),
        "product_type": payload.get("product_type"),
        "price": to_money(first.get("price")),
        "inventory_item_id": external_id(first.get("inventory_item_id")),
        "inventory_quantity": to_int(first.get("inventory_quantity")),
        "inventory_policy": first.get("inventory_policy"),
        "fulfillment_service": first.get("fulfillment_service"),
    }


async def upsert_products(
    session: AsyncSession, tenant_id: str, records: Iterable[dict[str, Any]]
) -> int:
    existing = await _existing_by(session, ProductModel, tenant_id, "external_id")
    count = 0
    for payload in records:
        ext_id = external_id(payload.get("id"))
        if ext_id is None:
            continue
        values = product_values(payload)
        row = existing.get(ext_id)
        if row is None:
            row = ProductModel(tenant_id=tenant_id, external_id=ext_id, **values)
            _stamp_insert(row, payload)
            session.add(row)
            existing[ext_id] = row
        else:
            _apply(row, values)
            row.updated_at = utcnow()
        count += 1
    await session.flush()
    return count


async def apply_inventory_levels(
    session: AsyncSession, tenant_id: str, levels: Iterable[dict[str, Any]]
) -> int:
    """Set stock on products matched by inventory item id.

    Quantities are summed across locations; the first location seen is kept
    as the product's fulfillment location.
    """
    per_item: dict[str, dict[str, Any]] = {}
    for level in levels:
        item_id = external_id(level.get("inventory_item_id"))
        if item_id is None:
            continue
        entry = per_item.setdefault(
            item_id, {"available": 0, "location": external_id(level.get("location_id"))}
        )
        entry["available"] += to_int(level.get("available"))

    if not per_item:
        return 0

    result = await session.execute(
        select(ProductModel).where(
            ProductModel.tenant_id == tenant_id,
            ProductModel.inventory_item_id.in_(list(per_item)),
        )
    )
    count = 0
    for product in result.scalars().all():
        entry = per_item[product.inventory_item_id]
        product.inventory_quantity = entry["available"]
        product.inventory_policy = "deny" if entry["available"] == 0 else "continue"
        product.fulfillment_service = entry["location"]
        product.updated_at = utcnow()
        count += 1
    await session.flush()
    return count


# ── Orders ──

def order_values(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": payload.get("name"),
        "email": payload.get("email"),
        "currency": payload.get("currency"),
        "total_price": to_money(payload.get("total_price")),
        "subtotal_price": to_money(payload.get("subtotal_price")),
        "total_tax": to_money(payload.get("total_tax")),
        "total_discounts": to_money(payload.get("total_discounts")),
        "financial_status": payload.get("financial_status"),
        "fulfillment_status": payload.get("fulfillment_status"),
    }


def line_item_key(payload: dict[str, Any], position: int) -> str:
    return external_id(payload.get("id")) or f"seq-{position}"


def line_item_values(payload: dict[str, Any]) -> dict[str, Any]:
    quantity = to_int(payload.get("quantity"))
    price = to_money(payload.get("price"))
    return {
        "variant_id": external_id(payload.get("variant_id")),
        "title": payload.get("title"),
        "variant_title": payload.get("variant_title"),
        "sku": payload.get("sku"),
        "quantity": quantity,
        "price": price,
        "line_price": (
            to_money(payload["line_price"])
            if payload.get("line_price") is not None
            else round(quantity * price, 2)
        ),
    }


def address_values(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        field: payload.get(field)
        for field in (
            "first_name", "last_name", "company", "address1", "address2",
            "city", "province", "country", "zip", "phone",
        )
    }


def _sync_items(order: OrderModel, payload: dict[str, Any], products: dict[str, ProductModel]) -> None:
    current = {item.external_id: item for item in order.items}
    for position, line in enumerate(payload.get("line_items") or []):
        key = line_item_key(line, position)
        values = line_item_values(line)
        product = products.get(external_id(line.get("product_id")) or "")
        values["product_id"] = product.id if product is not None else None
        item = current.get(key)
        if item is None:
            item = OrderItemModel(external_id=key, **values)
            order.items.append(item)
            current[key] = item
        else:
            _apply(item, values)


def _sync_addresses(order: OrderModel, payload: dict[str, Any]) -> None:
    current = {addr.address_type: addr for addr in order.addresses}
    for address_type in ADDRESS_TYPES:
        data = payload.get(f"{address_type}_address")
        if not data:
            continue
        values = address_values(data)
        address = current.get(address_type)
        if address is None:
            order.addresses.append(OrderAddressModel(address_type=address_type, **values))
        else:
            _apply(address, values)


async def upsert_orders(
    session: AsyncSession, tenant_id: str, records: Iterable[dict[str, Any]]
) -> int:
    customers = await _existing_by(session, CustomerModel, tenant_id, "external_id")
    products = await _existing_by(session, ProductModel, tenant_id, "external_id")
    existing = await _existing_by(
        session, OrderModel, tenant_id, "external_id",
        selectinload(OrderModel.items), selectinload(OrderModel.addresses),
    )
    count = 0
    for payload in records:
        ext_id = external_id(payload.get("id"))
        if ext_id is None:
            continue
        values = order_values(payload)
        customer_ext = external_id((payload.get("customer") or {}).get("id"))
        customer = customers.get(customer_ext) if customer_ext else None
        values["customer_id"] = customer.id if customer is not None else None

        order = existing.get(ext_id)
        if order is None:
            order = OrderModel(
                tenant_id=tenant_id, external_id=ext_id, items=[], addresses=[], **values
            )
            _stamp_insert(order, payload)
            session.add(order)
            existing[ext_id] = order
        else:
            _apply(order, values)
            order.updated_at = utcnow()

        _sync_items(order, payload, products)
        _sync_addresses(order, payload)
        count += 1
    await session.flush()
    return count


# ── Abandoned checkouts ──

def cart_values(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "email": payload.get("email"),
        "currency": payload.get("currency") or payload.get("presentment_currency"),
        "total_price": to_money(payload.get("total_price")),
        "subtotal_price": to_money(payload.get("subtotal_price")),
    }


async def upsert_abandoned_checkouts(
    session: AsyncSession, tenant_id: str, records: Iterable[dict[str, Any]]
) -> int:
    existing = await _existing_by(session, AbandonedCartModel, tenant_id, "checkout_id")
    count = 0
    for payload in records:
        checkout_id = external_id(payload.get("id"))
        if checkout_id is None:
            continue
        values = cart_values(payload)
        row = existing.get(checkout_id)
        if row is None:
            row = AbandonedCartModel(tenant_id=tenant_id, checkout_id=checkout_id, **values)
            _stamp_insert(row, payload)
            session.add(row)
            existing[checkout_id] = row
        else:
            _apply(row, values)
            row.updated_at = utcnow()
        count += 1
    await session.flush()
    return count


# ── Events ──

def event_values(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "event_type": payload.get("subject_type"),
        "verb": payload.get("verb"),
        "subject_id": external_id(payload.get("subject_id")),
        "description": payload.get("message") or payload.get("description") or payload.get("body"),
    }


async def upsert_events(
    session: AsyncSession, tenant_id: str, records: Iterable[dict[str, Any]]
) -> int:
    existing = await _existing_by(session, StoreEventModel, tenant_id, "event_id")
    count = 0
    for payload in records:
        event_id = external_id(payload.get("id"))
        if event_id is None:
            continue
        values = event_values(payload)
        row = existing.get(event_id)
        if row is None:
            row = StoreEventModel(tenant_id=tenant_id, event_id=event_id, **values)
            _stamp_insert(row, payload)
            session.add(row)
            existing[event_id] = row
        else:
            _apply(row, values)
            row.updated_at = utcnow()
        count += 1
    await session.flush()
    return count
