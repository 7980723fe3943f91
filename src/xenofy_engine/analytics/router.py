"""Analytics API router: tenant-scoped dashboard data."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from xenofy_engine.analytics.schemas import (
    AbandonedCartsResponse,
    CustomerSegmentsResponse,
    CustomersDetailedResponse,
    CustomerStatsResponse,
    DashboardResponse,
    EventsResponse,
    FilteredOrdersResponse,
    FulfillmentResponse,
    InsightsResponse,
    InventoryResponse,
    OrdersDetailedResponse,
    OrderStatsResponse,
    ProductsDetailedResponse,
    ProductStatsResponse,
    TopSpendersResponse,
)
from xenofy_engine.common.exceptions import XenofyError
from xenofy_engine.common.security import SessionContext, require_session

router = APIRouter(prefix="/api/data", tags=["analytics"])


def _get_service():
    from xenofy_engine.deps import get_analytics_service
    return get_analytics_service()


def _get_db():
    from xenofy_engine.deps import get_db
    return get_db()


async def _query(method: str, ctx: SessionContext, **kwargs):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await getattr(svc, method)(session, ctx.tenant_id, **kwargs)


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(ctx: SessionContext = Depends(require_session)):
    return await _query("dashboard", ctx)


@router.get("/customers/stats", response_model=CustomerStatsResponse)
async def customer_stats(ctx: SessionContext = Depends(require_session)):
    return await _query("customer_stats", ctx)


@router.get("/orders/stats", response_model=OrderStatsResponse)
async def order_stats(ctx: SessionContext = Depends(require_session)):
    return await _query("order_stats", ctx)


@router.get("/products/stats", response_model=ProductStatsResponse)
async def product_stats(ctx: SessionContext = Depends(require_session)):
    return await _query("product_stats", ctx)


@router.get("/customers/detailed", response_model=CustomersDetailedResponse)
async def customers_detailed(ctx: SessionContext = Depends(require_session)):
    return await _query("customers_detailed", ctx)


@router.get("/products/detailed", response_model=ProductsDetailedResponse)
async def products_detailed(ctx: SessionContext = Depends(require_session)):
    return await _query("products_detailed", ctx)


@router.get("/orders/detailed", response_model=OrdersDetailedResponse)
async def orders_detailed(ctx: SessionContext = Depends(require_session)):
    return await _query("orders_detailed", ctx)


@router.get("/orders/filtered", response_model=FilteredOrdersResponse)
async def filtered_orders(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    ctx: SessionContext = Depends(require_session),
):
    try:
        return await _query("filtered_orders", ctx, start_date=start_date, end_date=end_date)
    except XenofyError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/customers/top-spenders", response_model=TopSpendersResponse)
async def top_spenders(ctx: SessionContext = Depends(require_session)):
    return await _query("top_spenders", ctx)


@router.get("/analytics/insights", response_model=InsightsResponse)
async def insights(ctx: SessionContext = Depends(require_session)):
    return await _query("insights", ctx)


@router.get("/analytics/abandoned-carts", response_model=AbandonedCartsResponse)
async def abandoned_carts(ctx: SessionContext = Depends(require_session)):
    return await _query("abandoned_carts", ctx)


@router.get("/analytics/events", response_model=EventsResponse)
async def events(ctx: SessionContext = Depends(require_session)):
    return await _query("events", ctx)


@router.get("/analytics/inventory", response_model=InventoryResponse)
async def inventory(ctx: SessionContext = Depends(require_session)):
    return await _query("inventory", ctx)


@router.get("/analytics/fulfillment", response_model=FulfillmentResponse)
async def fulfillment(ctx: SessionContext = Depends(require_session)):
    return await _query("fulfillment", ctx)


@router.get("/analytics/customer-segments", response_model=CustomerSegmentsResponse)
async def customer_segments(ctx: SessionContext = Depends(require_session)):
    return await _query("customer_segments", ctx)
