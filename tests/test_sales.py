from __future__ import annotations

from datetime import datetime, timedelta, timezone


async def test_cash_sale_returns_change(owner) -> None:
    store_id = await owner.store("Main")
    mug = await owner.product("Mug", sale_price="4.50", store_id=store_id, initial_stock=10)
    pen = await owner.product("Pen", sale_price="1.25", store_id=store_id, initial_stock=10)

    response = await owner.post(
        "/sales",
        json={
            "store_id": store_id,
            "payment_method": "cash",
            "customer": "  Ana  ",
            "cash_received": "20",
            "items": [{"product_id": mug, "quantity": 2}, {"product_id": pen, "quantity": 3}],
        },
    )
    assert response.status_code == 201
    sale = response.json()
    assert sale["total"] == "12.75"
    assert sale["cash_received"] == "20.00"
    assert sale["change_due"] == "7.25"
    assert sale["customer"] == "Ana"
    assert sale["status"] == "completed"
    assert sale["user_id"] == owner.user_id
    assert [(line["product_id"], line["subtotal"]) for line in sale["details"]] == [
        (mug, "9.00"),
        (pen, "3.75"),
    ]

    assert await owner.stock(mug, store_id) == 8
    assert await owner.stock(pen, store_id) == 7

    outflows = (await owner.get("/inventory/movements", params={"type": "salida"})).json()
    assert {item["notes"] for item in outflows} == {f"Sale #{sale['id']}"}
    assert sorted(item["quantity"] for item in outflows) == [2, 3]


async def test_cash_must_cover_total(owner) -> None:
    store_id = await owner.store("Main")
    mug = await owner.product("Mug", sale_price="4.50", store_id=store_id, initial_stock=10)

    short = await owner.post(
        "/sales",
        json={
            "store_id": store_id,
            "payment_method": "cash",
            "cash_received": "4.00",
            "items": [{"product_id": mug, "quantity": 1}],
        },
    )
    assert short.status_code == 400
    missing = await owner.post(
        "/sales",
        json={"store_id": store_id, "payment_method": "cash", "items": [{"product_id": mug, "quantity": 1}]},
    )
    assert missing.status_code == 400
    assert await owner.stock(mug, store_id) == 10
    assert (await owner.get("/sales")).json() == []


async def test_card_sale_with_price_override(owner) -> None:
    store_id = await owner.store("Main")
    mug = await owner.product("Mug", sale_price="4.50", store_id=store_id, initial_stock=5)

    response = await owner.post(
        "/sales",
        json={
            "store_id": store_id,
            "payment_method": "card",
            "items": [{"product_id": mug, "quantity": 2, "unit_price": "3.99"}],
        },
    )
    assert response.status_code == 201
    sale = response.json()
    assert sale["total"] == "7.98"
    assert sale["cash_received"] is None
    assert sale["change_due"] is None
    assert sale["details"][0]["unit_price"] == "3.99"

    fetched = await owner.get(f"/sales/{sale['id']}")
    assert fetched.json() == sale


async def test_sale_fails_without_stock(owner) -> None:
    store_id = await owner.store("Main")
    stocked = await owner.product("Mug", store_id=store_id, initial_stock=5)
    scarce = await owner.product("Pen", store_id=store_id, initial_stock=1)
    unstocked = await owner.product("Cup")

    over = await owner.post(
        "/sales",
        json={
            "store_id": store_id,
            "payment_method": "card",
            "items": [{"product_id": stocked, "quantity": 2}, {"product_id": scarce, "quantity": 2}],
        },
    )
    assert over.status_code == 409
    assert over.json()["code"] == "insufficient_stock"
    assert await owner.stock(stocked, store_id) == 5

    absent = await owner.post(
        "/sales",
        json={"store_id": store_id, "payment_method": "card", "items": [{"product_id": unstocked, "quantity": 1}]},
    )
    assert absent.status_code == 409
    assert (await owner.get("/sales")).json() == []


async def test_sale_validation(owner) -> None:
    store_id = await owner.store("Main")
    mug = await owner.product("Mug", store_id=store_id, initial_stock=5)

    empty = await owner.post("/sales", json={"store_id": store_id, "payment_method": "card", "items": []})
    assert empty.status_code == 422
    barter = await owner.post(
        "/sales",
        json={"store_id": store_id, "payment_method": "barter", "items": [{"product_id": mug, "quantity": 1}]},
    )
    assert barter.status_code == 422
    unknown = await owner.post(
        "/sales",
        json={"store_id": store_id, "payment_method": "card", "items": [{"product_id": 999, "quantity": 1}]},
    )
    assert unknown.status_code == 404
    assert (await owner.get("/sales/999")).status_code == 404


async def test_sales_permissions(owner, make_member) -> None:
    await owner.set_plan("standard")
    north = await owner.store("North")
    south = await owner.store("South")
    mug = await owner.product("Mug", store_id=north, initial_stock=5)
    await owner.post(
        "/inventory/adjustments",
        json={"type": "entrada", "product_id": mug, "store_id": south, "quantity": 5},
    )

    viewer = await make_member("viewer@example.com", "viewer")
    seller = await make_member("seller@example.com", "sales", north)
    line = [{"product_id": mug, "quantity": 1}]

    denied = await viewer.post("/sales", json={"store_id": north, "payment_method": "card", "items": line})
    assert denied.status_code == 403

    allowed = await seller.post("/sales", json={"store_id": north, "payment_method": "card", "items": line})
    assert allowed.status_code == 201
    elsewhere = await seller.post("/sales", json={"store_id": south, "payment_method": "card", "items": line})
    assert elsewhere.status_code == 403

    listed = (await viewer.get("/sales", params={"store_id": north})).json()
    assert [sale["id"] for sale in listed] == [allowed.json()["id"]]
    assert (await viewer.get("/sales", params={"store_id": south})).json() == []


async def test_sales_window_with_utc_offset(owner) -> None:
    store_id = await owner.store("Main")
    mug = await owner.product("Mug", store_id=store_id, initial_stock=5)
    sale = (
        await owner.post(
            "/sales",
            json={"store_id": store_id, "payment_method": "card", "items": [{"product_id": mug, "quantity": 1}]},
        )
    ).json()
    created = datetime.fromisoformat(sale["created_at"].replace("Z", "+00:00"))
    assert created.utcoffset() == timedelta(0)

    karachi = timezone(timedelta(hours=5))
    around = {
        "start": (created - timedelta(minutes=30)).astimezone(karachi).isoformat(),
        "end": (created + timedelta(minutes=30)).astimezone(karachi).isoformat(),
    }
    listed = (await owner.get("/sales", params=around)).json()
    assert [item["id"] for item in listed] == [sale["id"]]

    before = {
        "start": (created - timedelta(hours=2)).astimezone(karachi).isoformat(),
        "end": (created - timedelta(hours=1)).astimezone(karachi).isoformat(),
    }
    assert (await owner.get("/sales", params=before)).json() == []
