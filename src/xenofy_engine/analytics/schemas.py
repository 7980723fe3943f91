"""Pydantic schemas for analytics responses (camelCase on the wire)."""

from datetime import datetime
from typing import Optional

from xenofy_engine.common.schemas import CamelModel


# ── Shared row shapes ──

class CustomerRef(CamelModel):
    id: str
    shopify_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class ProductRef(CamelModel):
    id: str
    shopify_id: str
    title: str
    price: float = 0.0


class OrderItemOut(CamelModel):
    id: str
    title: Optional[str] = None
    variant_title: Optional[str] = None
    sku: Optional[str] = None
    quantity: int = 0
    price: float = 0.0
    product: Optional[ProductRef] = None


class OrderBrief(CamelModel):
    id: str
    shopify_id: str
    name: Optional[str] = None
    total_price: float = 0.0
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    created_at: datetime


class OrderOut(OrderBrief):
    currency: Optional[str] = None
    subtotal_price: float = 0.0
    total_tax: float = 0.0
    total_discounts: float = 0.0
    customer: Optional[CustomerRef] = None
    items: list[OrderItemOut] = []


class CartOut(CamelModel):
    id: str
    checkout_id: str
    email: Optional[str] = None
    currency: Optional[str] = None
    total_price: float = 0.0
    subtotal_price: float = 0.0
    created_at: datetime


class EventOut(CamelModel):
    id: str
    event_id: str
    event_type: Optional[str] = None
    verb: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


# ── Dashboard ──

class CountTotal(CamelModel):
    total: int = 0


class OrderTotals(CamelModel):
    total: int = 0
    revenue: float = 0.0


class DashboardResponse(CamelModel):
    customers: CountTotal
    orders: OrderTotals
    products: CountTotal


# ── Stats ──

class CustomerEmail(CamelModel):
    id: str
    email: Optional[str] = None
    created_at: datetime


class CustomerStatsResponse(CamelModel):
    total_customers: int
    new_customers_this_month: int
    customers_by_email: list[CustomerEmail]


class MonthBucket(CamelModel):
    count: int = 0
    revenue: float = 0.0


class OrderStatsResponse(CamelModel):
    total_orders: int
    total_revenue: float
    recent_orders: list[OrderOut]
    orders_by_month: dict[str, MonthBucket]


class ProductListing(CamelModel):
    id: str
    title: str
    price: float = 0.0
    created_at: datetime


class BestSeller(ProductRef):
    order_count: int = 0


class ProductStatsResponse(CamelModel):
    total_products: int
    products: list[ProductListing]
    best_selling_products: list[BestSeller]


# ── Detailed listings ──

class CustomerDetail(CustomerRef):
    created_at: datetime
    orders: list[OrderBrief] = []


class CustomersDetailedResponse(CamelModel):
    total: int
    customers: list[CustomerDetail]


class ProductDetail(ProductRef):
    handle: Optional[str] = None
    inventory_quantity: int = 0
    inventory_policy: Optional[str] = None
    total_sold: int = 0
    total_revenue: float = 0.0
    created_at: datetime


class ProductsDetailedResponse(CamelModel):
    total: int
    products: list[ProductDetail]


class OrdersDetailedResponse(CamelModel):
    total: int
    orders: list[OrderOut]


# ── Insights ──

class ProductSales(ProductRef):
    total_sold: int = 0
    total_revenue: float = 0.0
    inventory_quantity: int = 0
    inventory_policy: Optional[str] = None


class ConversionMetrics(CamelModel):
    cart_abandon_rate: float = 0.0
    abandoned_carts: int = 0
    completed_orders: int = 0


class StoreSummary(CamelModel):
    name: Optional[str] = None
    plan_name: Optional[str] = None
    currency: Optional[str] = None
    country: Optional[str] = None


class ActivityOut(CamelModel):
    type: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class RevenueTrend(CamelModel):
    current_month: float = 0.0
    last_month: float = 0.0
    growth_rate: float = 0.0


class InsightsResponse(CamelModel):
    top_products: list[ProductSales]
    total_revenue: float
    total_customers: int
    recent_orders: int
    conversion_metrics: ConversionMetrics
    store_info: StoreSummary
    recent_activity: list[ActivityOut]
    revenue: RevenueTrend


class AbandonedCartsResponse(CamelModel):
    total: int
    total_value: float
    average_value: float
    recent_carts: list[CartOut]


class EventsResponse(CamelModel):
    total: int
    events: list[EventOut]
    events_by_type: dict[str, int]


class InventoryStats(CamelModel):
    total_products: int = 0
    in_stock: int = 0
    out_of_stock: int = 0
    low_stock: int = 0


class StockValue(CamelModel):
    id: str
    title: str
    price: float = 0.0
    inventory_quantity: int = 0
    inventory_policy: Optional[str] = None
    stock_value: float = 0.0


class InventoryResponse(CamelModel):
    inventory_stats: InventoryStats
    products_with_stock: list[StockValue]


class StatusBucket(CamelModel):
    count: int = 0
    value: float = 0.0


class FulfillmentResponse(CamelModel):
    total: int
    status_breakdown: dict[str, StatusBucket]


class SegmentCounts(CamelModel):
    high_value: int = 0
    regular: int = 0
    new: int = 0
    low_value: int = 0


class CustomerSegmentsResponse(CamelModel):
    total_customers: int
    segments: SegmentCounts


# ── Date filtering and spenders ──

class DayBucket(CamelModel):
    total_orders: int = 0
    total_revenue: float = 0.0
    orders: list[OrderOut] = []


class FilteredOrdersResponse(CamelModel):
    total_orders: int
    total_revenue: float
    orders_by_date: dict[str, DayBucket]
    orders: list[OrderOut]


class TopSpender(CustomerRef):
    total_spend: float = 0.0
    total_orders: int = 0
    total_items: int = 0
    avg_order_value: float = 0.0
    last_order_date: Optional[datetime] = None


class TopSpendersResponse(CamelModel):
    top_customers: list[TopSpender]
