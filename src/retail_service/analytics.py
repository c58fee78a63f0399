"""Sales analytics computed from completed sales.

Every function takes an explicit ``now`` so results are reproducible; the
routers pass the current UTC time.  Sale rows for the requested window are
fetched once and aggregated in Python.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .models import Category, Movement, Product, Sale, SaleDetail, Store, as_utc
from .sales import quantize

RANGE_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}
MONTHS_FOR_RANGE = {"day": 1, "week": 1, "month": 3, "year": 12}
ZERO = Decimal("0")


@dataclass(frozen=True)
class DetailRow:
    sale_id: int
    store_id: int | None
    created_at: datetime
    product_id: int | None
    product_name: str
    category_id: int | None
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    purchase_price: Decimal

    @property
    def profit(self) -> Decimal:
        return (self.unit_price - self.purchase_price) * self.quantity


def range_start(time_range: str, now: datetime) -> datetime:
    return as_utc(now) - timedelta(days=RANGE_DAYS.get(time_range, 30))


def percent_change(current: Decimal | int, previous: Decimal | int) -> int:
    """Rounded percentage change; a zero baseline counts as one."""

    baseline = Decimal(previous) or Decimal(1)
    change = (Decimal(current) - Decimal(previous)) / baseline * 100
    return int(change.quantize(Decimal(1), rounding=ROUND_HALF_UP))


async def _detail_rows(
    session: AsyncSession,
    tenant_id: int,
    start: datetime,
    end: datetime,
    store_id: int | None = None,
) -> list[DetailRow]:
    stmt = (
        select(
            Sale.id.label("sale_id"),
            Sale.store_id,
            Sale.created_at,
            SaleDetail.product_id,
            Product.name.label("product_name"),
            Product.category_id,
            SaleDetail.quantity,
            SaleDetail.unit_price,
            SaleDetail.subtotal,
            Product.purchase_price,
        )
        .join(SaleDetail, SaleDetail.sale_id == Sale.id)
        .outerjoin(Product, SaleDetail.product_id == Product.id)
        .where(
            Sale.tenant_id == tenant_id,
            Sale.created_at >= as_utc(start),
            Sale.created_at < as_utc(end),
        )
    )
    if store_id is not None:
        stmt = stmt.where(Sale.store_id == store_id)
    result = await session.execute(stmt)
    return [
        DetailRow(
            sale_id=row.sale_id,
            store_id=row.store_id,
            created_at=as_utc(row.created_at),
            product_id=row.product_id,
            product_name=row.product_name or "N/A",
            category_id=row.category_id,
            quantity=row.quantity,
            unit_price=Decimal(row.unit_price),
            subtotal=Decimal(row.subtotal),
            purchase_price=Decimal(row.purchase_price or 0),
        )
        for row in result.all()
    ]


async def _sales_in_window(
    session: AsyncSession,
    tenant_id: int,
    start: datetime,
    end: datetime,
    store_id: int | None = None,
) -> list[Sale]:
    stmt = select(Sale).where(
        Sale.tenant_id == tenant_id,
        Sale.created_at >= as_utc(start),
        Sale.created_at < as_utc(end),
    )
    if store_id is not None:
        stmt = stmt.where(Sale.store_id == store_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


def _end_of(now: datetime) -> datetime:
    # upper bounds are exclusive; include sales stamped exactly at ``now``
    return as_utc(now) + timedelta(microseconds=1)


async def dashboard_stats(
    session: AsyncSession, tenant_id: int, now: datetime
) -> schemas.DashboardStats:
    now = as_utc(now)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)
    yesterday = today - timedelta(days=1)

    sales_today = await _sales_in_window(session, tenant_id, today, tomorrow)
    sales_yesterday = await _sales_in_window(session, tenant_id, yesterday, today)
    total_today = quantize(sum((sale.total for sale in sales_today), ZERO))
    total_yesterday = quantize(sum((sale.total for sale in sales_yesterday), ZERO))

    customers_today = len({sale.customer for sale in sales_today if sale.customer})
    customers_yesterday = len({sale.customer for sale in sales_yesterday if sale.customer})

    units_today = sum(
        row.quantity for row in await _detail_rows(session, tenant_id, today, tomorrow)
    )
    units_yesterday = sum(
        row.quantity for row in await _detail_rows(session, tenant_id, yesterday, today)
    )

    async def count_transfers(start: datetime, end: datetime) -> int:
        stmt = select(func.count(Movement.id)).where(
            Movement.tenant_id == tenant_id,
            Movement.type == "transferencia",
            Movement.created_at >= start,
            Movement.created_at < end,
        )
        return int((await session.execute(stmt)).scalar_one())

    transfers_today = await count_transfers(today, tomorrow)
    transfers_yesterday = await count_transfers(yesterday, today)

    all_time_stmt = select(func.coalesce(func.sum(Sale.total), 0)).where(
        Sale.tenant_id == tenant_id
    )
    all_time = quantize(Decimal((await session.execute(all_time_stmt)).scalar_one()))

    return schemas.DashboardStats(
        sales_today=schemas.StatWithChange(
            total=total_today, change_percent=percent_change(total_today, total_yesterday)
        ),
        customers_today=schemas.StatWithChange(
            total=customers_today,
            change_percent=percent_change(customers_today, customers_yesterday),
        ),
        units_sold_today=schemas.StatWithChange(
            total=units_today, change_percent=percent_change(units_today, units_yesterday)
        ),
        transfers_today=schemas.StatWithChange(
            total=transfers_today,
            change_percent=percent_change(transfers_today, transfers_yesterday),
        ),
        sales_all_time=all_time,
    )


async def sales_by_category(
    session: AsyncSession,
    tenant_id: int,
    time_range: str,
    now: datetime,
    store_id: int | None = None,
) -> list[schemas.NamedValue]:
    """Share of revenue per category, as rounded percentages."""

    categories_stmt = (
        select(Category.id, Category.name)
        .where(
            Category.tenant_id == tenant_id,
            Category.id.in_(select(Product.category_id).where(Product.tenant_id == tenant_id)),
        )
        .order_by(Category.name)
    )
    categories = (await session.execute(categories_stmt)).all()
    rows = await _detail_rows(
        session, tenant_id, range_start(time_range, now), _end_of(now), store_id
    )
    totals: dict[int | None, Decimal] = defaultdict(lambda: ZERO)
    for row in rows:
        totals[row.category_id] += row.subtotal

    grand_total = sum((totals[category.id] for category in categories), ZERO)
    if grand_total == 0:
        return []
    return [
        schemas.NamedValue(
            name=category.name,
            value=int(
                (totals[category.id] / grand_total * 100).quantize(
                    Decimal(1), rounding=ROUND_HALF_UP
                )
            ),
        )
        for category in categories
    ]


async def store_performance(
    session: AsyncSession, tenant_id: int, time_range: str, now: datetime
) -> list[schemas.StorePerformance]:
    stores = (
        await session.execute(
            select(Store).where(Store.tenant_id == tenant_id).order_by(Store.name)
        )
    ).scalars().all()
    rows = await _detail_rows(session, tenant_id, range_start(time_range, now), _end_of(now))
    sales: dict[int | None, Decimal] = defaultdict(lambda: ZERO)
    profit: dict[int | None, Decimal] = defaultdict(lambda: ZERO)
    for row in rows:
        sales[row.store_id] += row.subtotal
        profit[row.store_id] += row.profit
    return [
        schemas.StorePerformance(
            store_id=store.id,
            name=store.name,
            sales=quantize(sales[store.id]),
            profit=quantize(profit[store.id]),
        )
        for store in stores
    ]


def trend_buckets(time_range: str, now: datetime) -> tuple[list[str], str, datetime]:
    """Return bucket labels, the strftime pattern mapping a timestamp to a label,
    and the start of the earliest bucket."""

    now = as_utc(now)
    if time_range == "day":
        pattern = "%Y-%m-%d %H:00"
        first = now.replace(minute=0, second=0, microsecond=0) - timedelta(hours=23)
        labels = [(first + timedelta(hours=i)).strftime(pattern) for i in range(24)]
        return labels, pattern, first
    if time_range == "year":
        pattern = "%Y-%m"
        year, month = now.year, now.month
        months = []
        for _ in range(12):
            months.append((year, month))
            month -= 1
            if month == 0:
                year, month = year - 1, 12
        months.reverse()
        first = datetime(months[0][0], months[0][1], 1, tzinfo=timezone.utc)
        labels = [f"{y:04d}-{m:02d}" for y, m in months]
        return labels, pattern, first
    pattern = "%Y-%m-%d"
    days = RANGE_DAYS.get(time_range, 30)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    first = today - timedelta(days=days - 1)
    labels = [(first + timedelta(days=i)).strftime(pattern) for i in range(days)]
    return labels, pattern, first


async def sales_trend(
    session: AsyncSession,
    tenant_id: int,
    time_range: str,
    now: datetime,
    store_id: int | None = None,
) -> list[schemas.TrendPoint]:
    labels, pattern, first = trend_buckets(time_range, now)
    revenue = {label: ZERO for label in labels}
    profit = {label: ZERO for label in labels}
    for row in await _detail_rows(session, tenant_id, first, _end_of(now), store_id):
        label = row.created_at.strftime(pattern)
        if label in revenue:
            revenue[label] += row.subtotal
            profit[label] += row.profit
    return [
        schemas.TrendPoint(
            period=label, revenue=quantize(revenue[label]), profit=quantize(profit[label])
        )
        for label in labels
    ]


async def hourly_distribution(
    session: AsyncSession,
    tenant_id: int,
    time_range: str,
    now: datetime,
    store_id: int | None = None,
) -> list[schemas.HourlyBucket]:
    transactions = [0] * 24
    amounts = [ZERO] * 24
    for sale in await _sales_in_window(
        session, tenant_id, range_start(time_range, now), _end_of(now), store_id
    ):
        hour = as_utc(sale.created_at).hour
        transactions[hour] += 1
        amounts[hour] += sale.total
    return [
        schemas.HourlyBucket(hour=hour, transactions=transactions[hour], amount=quantize(amounts[hour]))
        for hour in range(24)
    ]


async def top_products(
    session: AsyncSession,
    tenant_id: int,
    time_range: str,
    now: datetime,
    store_id: int | None = None,
    limit: int = 5,
) -> list[schemas.NamedValue]:
    units: dict[int, int] = defaultdict(int)
    names: dict[int, str] = {}
    for row in await _detail_rows(
        session, tenant_id, range_start(time_range, now), _end_of(now), store_id
    ):
        if row.product_id is None:
            continue
        units[row.product_id] += row.quantity
        names[row.product_id] = row.product_name
    ranked = sorted(units.items(), key=lambda item: (-item[1], names[item[0]]))
    return [schemas.NamedValue(name=names[pid], value=qty) for pid, qty in ranked[:limit]]


async def product_profitability(
    session: AsyncSession,
    tenant_id: int,
    time_range: str,
    now: datetime,
    store_id: int | None = None,
) -> list[schemas.ProductProfitability]:
    units: dict[int, int] = defaultdict(int)
    revenue: dict[int, Decimal] = defaultdict(lambda: ZERO)
    profit: dict[int, Decimal] = defaultdict(lambda: ZERO)
    names: dict[int, str] = {}
    for row in await _detail_rows(
        session, tenant_id, range_start(time_range, now), _end_of(now), store_id
    ):
        if row.product_id is None:
            continue
        units[row.product_id] += row.quantity
        revenue[row.product_id] += row.subtotal
        profit[row.product_id] += row.profit
        names[row.product_id] = row.product_name

    results = []
    for product_id in sorted(revenue, key=lambda pid: (-revenue[pid], names[pid])):
        product_revenue = revenue[product_id]
        margin = (
            float((profit[product_id] / product_revenue * 100).quantize(Decimal("0.1")))
            if product_revenue
            else 0.0
        )
        results.append(
            schemas.ProductProfitability(
                product_id=product_id,
                name=names[product_id],
                units=units[product_id],
                revenue=quantize(product_revenue),
                margin=margin,
            )
        )
    return results


async def non_selling_products(
    session: AsyncSession,
    tenant_id: int,
    time_range: str,
    now: datetime,
    store_id: int | None = None,
    limit: int = 8,
) -> list[schemas.NonSellingProduct]:
    """Products whose units sold fell against the previous period of equal length."""

    now = as_utc(now)
    current_start = range_start(time_range, now)
    previous_start = current_start - (now - current_start)

    products = (
        await session.execute(
            select(Product.id, Product.name).where(Product.tenant_id == tenant_id)
        )
    ).all()
    current: dict[int, int] = defaultdict(int)
    previous: dict[int, int] = defaultdict(int)
    for row in await _detail_rows(session, tenant_id, current_start, _end_of(now), store_id):
        if row.product_id is not None:
            current[row.product_id] += row.quantity
    for row in await _detail_rows(session, tenant_id, previous_start, current_start, store_id):
        if row.product_id is not None:
            previous[row.product_id] += row.quantity

    changes = []
    for product in products:
        before, after = previous[product.id], current[product.id]
        if before <= 0:
            continue
        change = round((after - before) / before * 100, 1)
        if change < 0:
            changes.append(
                schemas.NonSellingProduct(
                    product_id=product.id,
                    name=product.name,
                    current=after,
                    previous=before,
                    change=change,
                )
            )
    changes.sort(key=lambda item: (item.change, item.name))
    return changes[:limit]


async def total_sales_by_store(
    session: AsyncSession, tenant_id: int, time_range: str, now: datetime
) -> list[schemas.NamedValue]:
    stores = (
        await session.execute(
            select(Store.id, Store.name).where(Store.tenant_id == tenant_id).order_by(Store.name)
        )
    ).all()
    totals: dict[int | None, Decimal] = defaultdict(lambda: ZERO)
    for sale in await _sales_in_window(
        session, tenant_id, range_start(time_range, now), _end_of(now)
    ):
        totals[sale.store_id] += sale.total
    return [schemas.NamedValue(name=store.name, value=quantize(totals[store.id])) for store in stores]


async def store_monthly_sales(
    session: AsyncSession,
    tenant_id: int,
    time_range: str,
    now: datetime,
    store_ids: list[int] | None = None,
) -> list[schemas.StoreMonthlySales]:
    now = as_utc(now)
    stores_stmt = select(Store.id, Store.name).where(Store.tenant_id == tenant_id)
    if store_ids:
        stores_stmt = stores_stmt.where(Store.id.in_(store_ids))
    stores = (await session.execute(stores_stmt.order_by(Store.name))).all()
    if not stores:
        return []

    months = []
    year, month = now.year, now.month
    for _ in range(MONTHS_FOR_RANGE.get(time_range, 3)):
        months.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    months.reverse()
    first_year, first_month = (int(part) for part in months[0].split("-"))
    start = datetime(first_year, first_month, 1, tzinfo=timezone.utc)

    table = {label: {store.name: ZERO for store in stores} for label in months}
    names = {store.id: store.name for store in stores}
    for sale in await _sales_in_window(session, tenant_id, start, _end_of(now)):
        if sale.store_id not in names:
            continue
        label = as_utc(sale.created_at).strftime("%Y-%m")
        if label in table:
            table[label][names[sale.store_id]] += sale.total
    return [
        schemas.StoreMonthlySales(
            month=label, totals={name: quantize(value) for name, value in table[label].items()}
        )
        for label in months
    ]


__all__ = [
    "RANGE_DAYS",
    "as_utc",
    "dashboard_stats",
    "hourly_distribution",
    "non_selling_products",
    "percent_change",
    "product_profitability",
    "range_start",
    "sales_by_category",
    "sales_trend",
    "store_monthly_sales",
    "store_performance",
    "top_products",
    "total_sales_by_store",
    "trend_buckets",
]
