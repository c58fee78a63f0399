"""Dashboard and sales analytics."""
from __future__ import annotations

from typing import Sequence

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from .. import analytics, schemas
from ..authorization import TenantContext
from ..database import get_session
from ..deps import get_tenant_context
from ..inventory import list_low_stock
from ..models import utcnow

router = APIRouter(prefix="/analytics", tags=["analytics"])


async def analytics_context(
    context: TenantContext = Depends(get_tenant_context),
) -> TenantContext:
    context.require_analytics()
    return context


@router.get("/dashboard", response_model=schemas.DashboardStats)
async def dashboard(
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> schemas.DashboardStats:
    return await analytics.dashboard_stats(session, context.tenant_id, utcnow())


@router.get("/low-stock", response_model=list[schemas.LowStockItem])
async def low_stock(
    store_id: int | None = Query(default=None),
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.LowStockItem]:
    return await list_low_stock(session, context.tenant_id, store_id)


@router.get("/sales-by-category", response_model=list[schemas.NamedValue])
async def sales_by_category(
    time_range: schemas.TimeRange = Query(default="month", alias="range"),
    store_id: int | None = Query(default=None),
    context: TenantContext = Depends(analytics_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.NamedValue]:
    return await analytics.sales_by_category(
        session, context.tenant_id, time_range, utcnow(), store_id
    )


@router.get("/store-performance", response_model=list[schemas.StorePerformance])
async def store_performance(
    time_range: schemas.TimeRange = Query(default="month", alias="range"),
    context: TenantContext = Depends(analytics_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.StorePerformance]:
    return await analytics.store_performance(session, context.tenant_id, time_range, utcnow())


@router.get("/sales-trend", response_model=list[schemas.TrendPoint])
async def sales_trend(
    time_range: schemas.TimeRange = Query(default="month", alias="range"),
    store_id: int | None = Query(default=None),
    context: TenantContext = Depends(analytics_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.TrendPoint]:
    return await analytics.sales_trend(session, context.tenant_id, time_range, utcnow(), store_id)


@router.get("/hourly", response_model=list[schemas.HourlyBucket])
async def hourly(
    time_range: schemas.TimeRange = Query(default="month", alias="range"),
    store_id: int | None = Query(default=None),
    context: TenantContext = Depends(analytics_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.HourlyBucket]:
    return await analytics.hourly_distribution(
        session, context.tenant_id, time_range, utcnow(), store_id
    )


@router.get("/top-products", response_model=list[schemas.NamedValue])
async def top_products(
    time_range: schemas.TimeRange = Query(default="month", alias="range"),
    store_id: int | None = Query(default=None),
    limit: int = Query(default=5, ge=1, le=50),
    context: TenantContext = Depends(analytics_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.NamedValue]:
    return await analytics.top_products(
        session, context.tenant_id, time_range, utcnow(), store_id, limit=limit
    )


@router.get("/profitability", response_model=list[schemas.ProductProfitability])
async def profitability(
    time_range: schemas.TimeRange = Query(default="month", alias="range"),
    store_id: int | None = Query(default=None),
    context: TenantContext = Depends(analytics_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.ProductProfitability]:
    return await analytics.product_profitability(
        session, context.tenant_id, time_range, utcnow(), store_id
    )


@router.get("/non-selling", response_model=list[schemas.NonSellingProduct])
async def non_selling(
    time_range: schemas.TimeRange = Query(default="month", alias="range"),
    store_id: int | None = Query(default=None),
    context: TenantContext = Depends(analytics_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.NonSellingProduct]:
    return await analytics.non_selling_products(
        session, context.tenant_id, time_range, utcnow(), store_id
    )


@router.get("/sales-by-store", response_model=list[schemas.NamedValue])
async def sales_by_store(
    time_range: schemas.TimeRange = Query(default="month", alias="range"),
    context: TenantContext = Depends(analytics_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.NamedValue]:
    return await analytics.total_sales_by_store(session, context.tenant_id, time_range, utcnow())


@router.get("/store-monthly", response_model=list[schemas.StoreMonthlySales])
async def store_monthly(
    time_range: schemas.TimeRange = Query(default="month", alias="range"),
    store_ids: list[int] | None = Query(default=None, alias="store_id"),
    context: TenantContext = Depends(analytics_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.StoreMonthlySales]:
    return await analytics.store_monthly_sales(
        session, context.tenant_id, time_range, utcnow(), store_ids
    )


__all__ = ["router"]
