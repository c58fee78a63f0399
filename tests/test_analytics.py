from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from retail_service import analytics
from retail_service.models import Sale

NOW = datetime(2024, 3, 15, 12, 30, tzinfo=timezone.utc)


@dataclass
class Shop:
    tenant_id: int
    north: int
    south: int
    mug: int
    pen: int


async def _sell(owner, session, store_id, items, when, customer=None) -> int:
    response = await owner.post(
        "/sales",
        json={"store_id": store_id, "payment_method": "card", "customer": customer, "items": items},
    )
    assert response.status_code == 201, response.text
    sale_id = response.json()["id"]
    await session.execute(update(Sale).where(Sale.id == sale_id).values(created_at=when))
    await session.commit()
    return sale_id


@pytest.fixture()
async def shop(owner, session) -> Shop:
    await owner.set_plan("standard")
    north = await owner.store("North")
    south = await owner.store("South")
    kitchen = (await owner.post("/categories", json={"name": "Kitchen"})).json()["id"]
    office = (await owner.post("/categories", json={"name": "Office"})).json()["id"]
    await owner.post("/categories", json={"name": "Unused"})
    mug = await owner.product(
        "Mug", sale_price="10.00", purchase_price="6.00", category_id=kitchen,
        store_id=north, initial_stock=20,
    )
    pen = await owner.product(
        "Pen", sale_price="2.50", purchase_price="1.00", category_id=office,
        store_id=north, initial_stock=20,
    )
    await owner.post(
        "/inventory/adjustments",
        json={"type": "entrada", "product_id": pen, "store_id": south, "quantity": 20},
    )

    await _sell(owner, session, north, [{"product_id": mug, "quantity": 2}],
                datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc), customer="Ana")
    await _sell(owner, session, north, [{"product_id": mug, "quantity": 1}],
                datetime(2024, 3, 14, 9, 0, tzinfo=timezone.utc), customer="Ben")
    await _sell(owner, session, south, [{"product_id": pen, "quantity": 4}],
                datetime(2024, 3, 5, 15, 0, tzinfo=timezone.utc))
    await _sell(owner, session, north, [{"product_id": pen, "quantity": 5}],
                datetime(2024, 2, 4, 8, 0, tzinfo=timezone.utc))
    return Shop(owner.tenant_id, north, south, mug, pen)


def test_percent_change() -> None:
    assert analytics.percent_change(Decimal("20"), Decimal("10")) == 100
    assert analytics.percent_change(1, 3) == -67
    assert analytics.percent_change(5, 0) == 500
    assert analytics.percent_change(0, 0) == 0


def test_trend_buckets() -> None:
    labels, _, first = analytics.trend_buckets("day", NOW)
    assert len(labels) == 24
    assert labels[0] == "2024-03-14 13:00"
    assert labels[-1] == "2024-03-15 12:00"
    assert first == datetime(2024, 3, 14, 13, 0, tzinfo=timezone.utc)

    labels, _, _ = analytics.trend_buckets("week", NOW)
    assert labels == [f"2024-03-{day:02d}" for day in range(9, 16)]

    labels, _, _ = analytics.trend_buckets("month", NOW)
    assert len(labels) == 30
    assert labels[0] == "2024-02-15"

    labels, _, first = analytics.trend_buckets("year", NOW)
    assert labels[0] == "2023-04"
    assert labels[-1] == "2024-03"
    assert first == datetime(2023, 4, 1, tzinfo=timezone.utc)


async def test_dashboard_compares_today_with_yesterday(shop, session) -> None:
    stats = await analytics.dashboard_stats(session, shop.tenant_id, NOW)
    assert stats.sales_today.total == Decimal("20.00")
    assert stats.sales_today.change_percent == 100
    assert stats.customers_today.total == 1
    assert stats.customers_today.change_percent == 0
    assert stats.units_sold_today.total == 2
    assert stats.units_sold_today.change_percent == 100
    assert stats.transfers_today.total == 0
    assert stats.sales_all_time == Decimal("52.50")


async def test_category_share_and_store_performance(shop, session) -> None:
    shares = await analytics.sales_by_category(session, shop.tenant_id, "month", NOW)
    assert [(item.name, item.value) for item in shares] == [("Kitchen", 75), ("Office", 25)]

    only_south = await analytics.sales_by_category(
        session, shop.tenant_id, "month", NOW, shop.south
    )
    assert [(item.name, item.value) for item in only_south] == [("Kitchen", 0), ("Office", 100)]

    performance = await analytics.store_performance(session, shop.tenant_id, "month", NOW)
    assert [(item.name, item.sales, item.profit) for item in performance] == [
        ("North", Decimal("30.00"), Decimal("12.00")),
        ("South", Decimal("10.00"), Decimal("6.00")),
    ]

    totals = await analytics.total_sales_by_store(session, shop.tenant_id, "month", NOW)
    assert [(item.name, item.value) for item in totals] == [
        ("North", Decimal("30.00")),
        ("South", Decimal("10.00")),
    ]


async def test_no_sales_gives_empty_category_share(owner, session) -> None:
    await owner.post("/categories", json={"name": "Kitchen"})
    assert await analytics.sales_by_category(session, owner.tenant_id, "month", NOW) == []


async def test_sales_trend_and_hourly(shop, session) -> None:
    trend = await analytics.sales_trend(session, shop.tenant_id, "week", NOW)
    assert len(trend) == 7
    assert [(point.period, point.revenue, point.profit) for point in trend[-2:]] == [
        ("2024-03-14", Decimal("10.00"), Decimal("4.00")),
        ("2024-03-15", Decimal("20.00"), Decimal("8.00")),
    ]
    assert all(point.revenue == 0 for point in trend[:-2])

    yearly = await analytics.sales_trend(session, shop.tenant_id, "year", NOW)
    assert [(point.period, point.revenue) for point in yearly[-2:]] == [
        ("2024-02", Decimal("12.50")),
        ("2024-03", Decimal("40.00")),
    ]

    hourly = await analytics.hourly_distribution(session, shop.tenant_id, "month", NOW)
    assert len(hourly) == 24
    busy = {bucket.hour: (bucket.transactions, bucket.amount) for bucket in hourly if bucket.transactions}
    assert busy == {9: (1, Decimal("10.00")), 10: (1, Decimal("20.00")), 15: (1, Decimal("10.00"))}


async def test_product_rankings(shop, session) -> None:
    top = await analytics.top_products(session, shop.tenant_id, "month", NOW)
    assert [(item.name, item.value) for item in top] == [("Pen", 4), ("Mug", 3)]
    assert len(await analytics.top_products(session, shop.tenant_id, "month", NOW, limit=1)) == 1

    profitability = await analytics.product_profitability(session, shop.tenant_id, "month", NOW)
    assert [(item.name, item.units, item.revenue, item.margin) for item in profitability] == [
        ("Mug", 3, Decimal("30.00"), 40.0),
        ("Pen", 4, Decimal("10.00"), 60.0),
    ]

    falling = await analytics.non_selling_products(session, shop.tenant_id, "month", NOW)
    assert [(item.name, item.current, item.previous, item.change) for item in falling] == [
        ("Pen", 4, 5, -20.0)
    ]


async def test_store_monthly_sales(shop, session) -> None:
    table = await analytics.store_monthly_sales(session, shop.tenant_id, "month", NOW)
    assert [row.month for row in table] == ["2024-01", "2024-02", "2024-03"]
    assert table[0].totals == {"North": Decimal("0"), "South": Decimal("0")}
    assert table[1].totals == {"North": Decimal("12.50"), "South": Decimal("0")}
    assert table[2].totals == {"North": Decimal("30.00"), "South": Decimal("10.00")}

    south_only = await analytics.store_monthly_sales(
        session, shop.tenant_id, "year", NOW, [shop.south]
    )
    assert len(south_only) == 12
    assert south_only[-1].totals == {"South": Decimal("10.00")}


async def test_advanced_analytics_need_a_paid_plan(owner) -> None:
    assert (await owner.get("/analytics/dashboard")).status_code == 200
    assert (await owner.get("/analytics/low-stock")).status_code == 200

    blocked = await owner.get("/analytics/sales-trend")
    assert blocked.status_code == 402
    assert blocked.json()["code"] == "plan_limit_exceeded"

    await owner.set_plan("standard")
    trend = await owner.get("/analytics/sales-trend", params={"range": "week"})
    assert trend.status_code == 200
    assert len(trend.json()) == 7
    assert (await owner.get("/analytics/sales-trend", params={"range": "decade"})).status_code == 422
    assert (await owner.get("/analytics/store-monthly")).json() == []
