"""Tenant-scoped read queries and derived metrics for the dashboard."""

from collections import Counter
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from xenofy_engine.analytics import metrics
from xenofy_engine.analytics.schemas import (
    AbandonedCartsResponse,
    ActivityOut,
    BestSeller,
    CartOut,
    ConversionMetrics,
    CountTotal,
    CustomerDetail,
    CustomerEmail,
    CustomerRef,
    CustomerSegmentsResponse,
    CustomersDetailedResponse,
    CustomerStatsResponse,
    DashboardResponse,
    DayBucket,
    EventOut,
    EventsResponse,
    FilteredOrdersResponse,
    FulfillmentResponse,
    InsightsResponse,
    InventoryResponse,
    InventoryStats,
    MonthBucket,
    OrderBrief,
    OrderItemOut,
    OrderOut,
    OrdersDetailedResponse,
    OrderStatsResponse,
    OrderTotals,
    ProductDetail,
    ProductListing,
    ProductRef,
    ProductSales,
    ProductsDetailedResponse,
    ProductStatsResponse,
    RevenueTrend,
    SegmentCounts,
    StatusBucket,
    StockValue,
    StoreSummary,
    TopSpender,
    TopSpendersResponse,
)
from xenofy_engine.common.models import as_utc, utcnow
from xenofy_engine.store.models import (
    AbandonedCartModel,
    CustomerModel,
    OrderItemModel,
    OrderModel,
    ProductModel,
    StoreEventModel,
    StoreInfoModel,
)

RECENT_ORDERS_LIMIT = 10
BEST_SELLERS_LIMIT = 10
DETAILED_CUSTOMERS_LIMIT = 10
DETAILED_PRODUCTS_LIMIT = 20
DETAILED_ORDERS_LIMIT = 20
TOP_PRODUCTS_LIMIT = 5
RECENT_ACTIVITY_LIMIT = 5
ABANDONED_SAMPLE_LIMIT = 20
RECENT_CARTS_LIMIT = 10
EVENT_WINDOW_LIMIT = 50
EVENT_LIST_LIMIT = 20
STOCK_VALUE_LIMIT = 10
FILTERED_ORDERS_LIMIT = 50


# ── Row converters ──

def customer_ref(customer: CustomerModel) -> CustomerRef:
    return CustomerRef(
        id=customer.id,
        shopify_id=customer.external_id,
        email=customer.email,
        first_name=customer.first_name,
        last_name=customer.last_name,
    )


def product_ref(product: ProductModel) -> ProductRef:
    return ProductRef(
        id=product.id, shopify_id=product.external_id, title=product.title, price=product.price
    )


def order_brief(order: OrderModel) -> OrderBrief:
    return OrderBrief(
        id=order.id,
        shopify_id=order.external_id,
        name=order.name,
        total_price=order.total_price,
        financial_status=order.financial_status,
        fulfillment_status=order.fulfillment_status,
        created_at=as_utc(order.created_at),
    )


def order_out(order: OrderModel) -> OrderOut:
    """Requires ``customer`` and ``items.product`` to be eager-loaded."""
    return OrderOut(
        **order_brief(order).model_dump(),
        currency=order.currency,
        subtotal_price=order.subtotal_price,
        total_tax=order.total_tax,
        total_discounts=order.total_discounts,
        customer=customer_ref(order.customer) if order.customer is not None else None,
        items=[
            OrderItemOut(
                id=item.id,
                title=item.title,
                variant_title=item.variant_title,
                sku=item.sku,
                quantity=item.quantity,
                price=item.price,
                product=product_ref(item.product) if item.product is not None else None,
            )
            for item in order.items
        ],
    )


def cart_out(cart: AbandonedCartModel) -> CartOut:
    return CartOut(
        id=cart.id,
        checkout_id=cart.checkout_id,
        email=cart.email,
        currency=cart.currency,
        total_price=cart.total_price,
        subtotal_price=cart.subtotal_price,
        created_at=as_utc(cart.created_at),
    )


def event_out(event: StoreEventModel) -> EventOut:
    return EventOut(
        id=event.id,
        event_id=event.event_id,
        event_type=event.event_type,
        verb=event.verb,
        description=event.description,
        created_at=as_utc(event.created_at),
    )


def _full_order_options():
    return (
        selectinload(OrderModel.customer),
        selectinload(OrderModel.items).selectinload(OrderItemModel.product),
    )


def _product_sales(product: ProductModel) -> tuple[int, float]:
    sold = sum(item.quantity for item in product.order_items)
    revenue = sum(item.quantity * item.price for item in product.order_items)
    return sold, round(revenue, 2)


class AnalyticsService:
    """Aggregations over one tenant's ingested store data."""

    # ── Counting helpers ──

    async def _count(self, session: AsyncSession, model, tenant_id: str, *where) -> int:
        result = await session.execute(
            select(func.count()).select_from(model).where(model.tenant_id == tenant_id, *where)
        )
        return int(result.scalar_one())

    async def _revenue(self, session: AsyncSession, tenant_id: str, *where) -> float:
        result = await session.execute(
            select(func.coalesce(func.sum(OrderModel.total_price), 0.0)).where(
                OrderModel.tenant_id == tenant_id, *where
            )
        )
        return round(float(result.scalar_one()), 2)

    async def _recent_orders(
        self, session: AsyncSession, tenant_id: str, limit: int
    ) -> list[OrderModel]:
        result = await session.execute(
            select(OrderModel)
            .where(OrderModel.tenant_id == tenant_id)
            .options(*_full_order_options())
            .order_by(OrderModel.created_at.desc(), OrderModel.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def _customer_spends(
        self, session: AsyncSession, tenant_id: str
    ) -> list[tuple[CustomerModel, metrics.CustomerSpend]]:
        result = await session.execute(
            select(CustomerModel)
            .where(CustomerModel.tenant_id == tenant_id)
            .options(selectinload(CustomerModel.orders).selectinload(OrderModel.items))
            .order_by(CustomerModel.created_at, CustomerModel.id)
        )
        rows = []
        for customer in result.scalars().all():
            spend = metrics.CustomerSpend(customer_id=customer.id)
            for order in customer.orders:
                spend.add_order(
                    order.total_price,
                    order.created_at,
                    items=sum(item.quantity for item in order.items),
                )
            rows.append((customer, spend))
        return rows

    # ── Summary endpoints ──

    async def dashboard(self, session: AsyncSession, tenant_id: str) -> DashboardResponse:
        return DashboardResponse(
            customers=CountTotal(total=await self._count(session, CustomerModel, tenant_id)),
            orders=OrderTotals(
                total=await self._count(session, OrderModel, tenant_id),
                revenue=await self._revenue(session, tenant_id),
            ),
            products=CountTotal(total=await self._count(session, ProductModel, tenant_id)),
        )

    async def customer_stats(
        self, session: AsyncSession, tenant_id: str, now: Optional[datetime] = None
    ) -> CustomerStatsResponse:
        since = metrics.month_start(now or utcnow())
        result = await session.execute(
            select(CustomerModel)
            .where(CustomerModel.tenant_id == tenant_id, CustomerModel.email.is_not(None))
            .order_by(CustomerModel.created_at, CustomerModel.id)
        )
        return CustomerStatsResponse(
            total_customers=await self._count(session, CustomerModel, tenant_id),
            new_customers_this_month=await self._count(
                session, CustomerModel, tenant_id, CustomerModel.created_at >= since
            ),
            customers_by_email=[
                CustomerEmail(id=c.id, email=c.email, created_at=as_utc(c.created_at))
                for c in result.scalars().all()
            ],
        )

    async def order_stats(self, session: AsyncSession, tenant_id: str) -> OrderStatsResponse:
        result = await session.execute(
            select(OrderModel.created_at, OrderModel.total_price).where(
                OrderModel.tenant_id == tenant_id
            )
        )
        by_month: dict[str, MonthBucket] = {}
        for created_at, total_price in result.all():
            bucket = by_month.setdefault(metrics.month_key(created_at), MonthBucket())
            bucket.count += 1
            bucket.revenue = round(bucket.revenue + (total_price or 0.0), 2)

        recent = await self._recent_orders(session, tenant_id, RECENT_ORDERS_LIMIT)
        return OrderStatsResponse(
            total_orders=await self._count(session, OrderModel, tenant_id),
            total_revenue=await self._revenue(session, tenant_id),
            recent_orders=[order_out(o) for o in recent],
            orders_by_month=dict(sorted(by_month.items())),
        )

    async def product_stats(self, session: AsyncSession, tenant_id: str) -> ProductStatsResponse:
        result = await session.execute(
            select(ProductModel)
            .where(ProductModel.tenant_id == tenant_id)
            .order_by(ProductModel.created_at, ProductModel.id)
        )
        products = list(result.scalars().all())

        line_count = func.count(OrderItemModel.id)
        best = await session.execute(
            select(ProductModel, line_count)
            .outerjoin(OrderItemModel, OrderItemModel.product_id == ProductModel.id)
            .where(ProductModel.tenant_id == tenant_id)
            .group_by(ProductModel.id)
            .order_by(line_count.desc(), ProductModel.title, ProductModel.id)
            .limit(BEST_SELLERS_LIMIT)
        )
        return ProductStatsResponse(
            total_products=len(products),
            products=[
                ProductListing(id=p.id, title=p.title, price=p.price, created_at=as_utc(p.created_at))
                for p in products
            ],
            best_selling_products=[
                BestSeller(**product_ref(p).model_dump(), order_count=count)
                for p, count in best.all()
            ],
        )

    # ── Detailed listings ──

    async def customers_detailed(
        self, session: AsyncSession, tenant_id: str
    ) -> CustomersDetailedResponse:
        result = await session.execute(
            select(CustomerModel)
            .where(CustomerModel.tenant_id == tenant_id)
            .options(selectinload(CustomerModel.orders))
            .order_by(CustomerModel.created_at.desc(), CustomerModel.id)
            .limit(DETAILED_CUSTOMERS_LIMIT)
        )
        customers = []
        for c in result.scalars().all():
            orders = sorted(c.orders, key=lambda o: as_utc(o.created_at), reverse=True)
            customers.append(
                CustomerDetail(
                    **customer_ref(c).model_dump(),
                    created_at=as_utc(c.created_at),
                    orders=[order_brief(o) for o in orders],
                )
            )
        return CustomersDetailedResponse(
            total=await self._count(session, CustomerModel, tenant_id), customers=customers
        )

    async def products_detailed(
        self, session: AsyncSession, tenant_id: str
    ) -> ProductsDetailedResponse:
        result = await session.execute(
            select(ProductModel)
            .where(ProductModel.tenant_id == tenant_id)
            .options(selectinload(ProductModel.order_items))
            .order_by(ProductModel.title, ProductModel.id)
            .limit(DETAILED_PRODUCTS_LIMIT)
        )
        products = []
        for p in result.scalars().all():
            sold, revenue = _product_sales(p)
            products.append(
                ProductDetail(
                    **product_ref(p).model_dump(),
                    handle=p.handle,
                    inventory_quantity=p.inventory_quantity or 0,
                    inventory_policy=p.inventory_policy,
                    total_sold=sold,
                    total_revenue=revenue,
                    created_at=as_utc(p.created_at),
                )
            )
        return ProductsDetailedResponse(
            total=await self._count(session, ProductModel, tenant_id), products=products
        )

    async def orders_detailed(
        self, session: AsyncSession, tenant_id: str
    ) -> OrdersDetailedResponse:
        orders = await self._recent_orders(session, tenant_id, DETAILED_ORDERS_LIMIT)
        return OrdersDetailedResponse(
            total=await self._count(session, OrderModel, tenant_id),
            orders=[order_out(o) for o in orders],
        )

    # ── Derived analytics ──

    async def insights(
        self, session: AsyncSession, tenant_id: str, now: Optional[datetime] = None
    ) -> InsightsResponse:
        now = now or utcnow()
        product_rows = await session.execute(
            select(ProductModel)
            .where(ProductModel.tenant_id == tenant_id)
            .options(selectinload(ProductModel.order_items))
            .order_by(ProductModel.title, ProductModel.id)
        )
        sales = []
        for p in product_rows.scalars().all():
            sold, revenue = _product_sales(p)
            sales.append(
                ProductSales(
                    **product_ref(p).model_dump(),
                    total_sold=sold,
                    total_revenue=revenue,
                    inventory_quantity=p.inventory_quantity or 0,
                    inventory_policy=p.inventory_policy,
                )
            )
        top_products = sorted(sales, key=lambda s: s.total_sold, reverse=True)[:TOP_PRODUCTS_LIMIT]

        current_start = metrics.month_start(now)
        last_start = metrics.previous_month_start(now)
        current_month = await self._revenue(
            session, tenant_id, OrderModel.created_at >= current_start
        )
        last_month = await self._revenue(
            session,
            tenant_id,
            OrderModel.created_at >= last_start,
            OrderModel.created_at < current_start,
        )

        completed = await self._count(session, OrderModel, tenant_id)
        abandoned = await self._count(session, AbandonedCartModel, tenant_id)

        info = (
            await session.execute(
                select(StoreInfoModel).where(StoreInfoModel.tenant_id == tenant_id)
            )
        ).scalar_one_or_none()

        events = await session.execute(
            select(StoreEventModel)
            .where(StoreEventModel.tenant_id == tenant_id)
            .order_by(StoreEventModel.created_at.desc(), StoreEventModel.id)
            .limit(RECENT_ACTIVITY_LIMIT)
        )

        return InsightsResponse(
            top_products=top_products,
            total_revenue=await self._revenue(session, tenant_id),
            total_customers=await self._count(session, CustomerModel, tenant_id),
            recent_orders=completed,
            conversion_metrics=ConversionMetrics(
                cart_abandon_rate=metrics.abandonment_rate(abandoned, completed),
                abandoned_carts=abandoned,
                completed_orders=completed,
            ),
            store_info=StoreSummary(
                name=info.name if info else None,
                plan_name=info.plan_name if info else None,
                currency=info.currency if info else None,
                country=info.country if info else None,
            ),
            recent_activity=[
                ActivityOut(
                    type=e.event_type, description=e.description, created_at=as_utc(e.created_at)
                )
                for e in events.scalars().all()
            ],
            revenue=RevenueTrend(
                current_month=current_month,
                last_month=last_month,
                growth_rate=metrics.growth_rate(current_month, last_month),
            ),
        )

    async def abandoned_carts(
        self, session: AsyncSession, tenant_id: str
    ) -> AbandonedCartsResponse:
        totals = await session.execute(
            select(
                func.count(AbandonedCartModel.id),
                func.coalesce(func.sum(AbandonedCartModel.total_price), 0.0),
            ).where(AbandonedCartModel.tenant_id == tenant_id)
        )
        count, value = totals.one()
        recent = await session.execute(
            select(AbandonedCartModel)
            .where(AbandonedCartModel.tenant_id == tenant_id)
            .order_by(AbandonedCartModel.created_at.desc(), AbandonedCartModel.id)
            .limit(RECENT_CARTS_LIMIT)
        )
        value = round(float(value), 2)
        return AbandonedCartsResponse(
            total=int(count),
            total_value=value,
            average_value=round(value / count, 2) if count else 0.0,
            recent_carts=[cart_out(c) for c in recent.scalars().all()],
        )

    async def events(self, session: AsyncSession, tenant_id: str) -> EventsResponse:
        result = await session.execute(
            select(StoreEventModel)
            .where(StoreEventModel.tenant_id == tenant_id)
            .order_by(StoreEventModel.created_at.desc(), StoreEventModel.id)
            .limit(EVENT_WINDOW_LIMIT)
        )
        window = list(result.scalars().all())
        by_type = Counter(e.event_type or "Other" for e in window)
        return EventsResponse(
            total=await self._count(session, StoreEventModel, tenant_id),
            events=[event_out(e) for e in window[:EVENT_LIST_LIMIT]],
            events_by_type=dict(by_type),
        )

    async def inventory(self, session: AsyncSession, tenant_id: str) -> InventoryResponse:
        result = await session.execute(
            select(ProductModel)
            .where(ProductModel.tenant_id == tenant_id)
            .order_by(ProductModel.title, ProductModel.id)
        )
        products = list(result.scalars().all())
        quantities = [p.inventory_quantity or 0 for p in products]
        stock = [
            StockValue(
                id=p.id,
                title=p.title,
                price=p.price or 0.0,
                inventory_quantity=p.inventory_quantity or 0,
                inventory_policy=p.inventory_policy,
                stock_value=round((p.inventory_quantity or 0) * (p.price or 0.0), 2),
            )
            for p in products
        ]
        return InventoryResponse(
            inventory_stats=InventoryStats(
                total_products=len(products),
                in_stock=sum(1 for q in quantities if q > 0),
                out_of_stock=sum(1 for q in quantities if q == 0),
                low_stock=sum(1 for q in quantities if 0 < q <= metrics.LOW_STOCK_MAX),
            ),
            products_with_stock=sorted(stock, key=lambda s: s.stock_value, reverse=True)[
                :STOCK_VALUE_LIMIT
            ],
        )

    async def fulfillment(self, session: AsyncSession, tenant_id: str) -> FulfillmentResponse:
        result = await session.execute(
            select(
                OrderModel.fulfillment_status,
                func.count(OrderModel.id),
                func.coalesce(func.sum(OrderModel.total_price), 0.0),
            )
            .where(OrderModel.tenant_id == tenant_id, OrderModel.fulfillment_status.is_not(None))
            .group_by(OrderModel.fulfillment_status)
            .order_by(OrderModel.fulfillment_status)
        )
        breakdown = {
            status: StatusBucket(count=int(count), value=round(float(value), 2))
            for status, count, value in result.all()
        }
        return FulfillmentResponse(total=len(breakdown), status_breakdown=breakdown)

    async def customer_segments(
        self, session: AsyncSession, tenant_id: str, now: Optional[datetime] = None
    ) -> CustomerSegmentsResponse:
        rows = await self._customer_spends(session, tenant_id)
        counts = metrics.segment_counts((spend for _, spend in rows), now or utcnow())
        return CustomerSegmentsResponse(
            total_customers=len(rows),
            segments=SegmentCounts(
                high_value=counts["highValue"],
                regular=counts["regular"],
                new=counts["new"],
                low_value=counts["lowValue"],
            ),
        )

    async def filtered_orders(
        self,
        session: AsyncSession,
        tenant_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> FilteredOrdersResponse:
        start_at, end_at = metrics.parse_date_range(start_date, end_date)
        query = (
            select(OrderModel)
            .where(OrderModel.tenant_id == tenant_id)
            .options(*_full_order_options())
            .order_by(OrderModel.created_at.desc(), OrderModel.id)
        )
        if start_at is not None:
            query = query.where(OrderModel.created_at >= start_at)
        if end_at is not None:
            query = query.where(OrderModel.created_at <= end_at)
        orders = [order_out(o) for o in (await session.execute(query)).scalars().all()]

        by_date: dict[str, DayBucket] = {}
        for order in orders:
            bucket = by_date.setdefault(metrics.day_key(order.created_at), DayBucket())
            bucket.total_orders += 1
            bucket.total_revenue = round(bucket.total_revenue + order.total_price, 2)
            bucket.orders.append(order)

        return FilteredOrdersResponse(
            total_orders=len(orders),
            total_revenue=round(sum(o.total_price for o in orders), 2),
            orders_by_date=by_date,
            orders=orders[:FILTERED_ORDERS_LIMIT],
        )

    async def top_spenders(self, session: AsyncSession, tenant_id: str) -> TopSpendersResponse:
        rows = await self._customer_spends(session, tenant_id)
        customers = {customer.id: customer for customer, _ in rows}
        top = metrics.top_spenders(spend for _, spend in rows)
        return TopSpendersResponse(
            top_customers=[
                TopSpender(
                    **customer_ref(customers[s.customer_id]).model_dump(),
                    total_spend=round(s.total_spend, 2),
                    total_orders=s.total_orders,
                    total_items=s.total_items,
                    avg_order_value=round(s.avg_order_value, 2),
                    last_order_date=s.last_order_at,
                )
                for s in top
            ]
        )
