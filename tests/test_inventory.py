from __future__ import annotations

import pytest
from sqlalchemy import select

from retail_service import schemas
from retail_service.errors import InsufficientStockError
from retail_service.inventory import update_inventory
from retail_service.models import Inventory


async def test_adjustments_update_balances_and_ledger(owner) -> None:
    store_id = await owner.store("Main")
    product_id = await owner.product("Soap", min_stock=3)

    stock_in = await owner.post(
        "/inventory/adjustments",
        json={
            "type": "entrada",
            "product_id": product_id,
            "store_id": store_id,
            "quantity": 10,
            "notes": "Delivery",
        },
    )
    assert stock_in.status_code == 201
    movement = stock_in.json()
    assert movement["type"] == "entrada"
    assert movement["target_store_name"] == "Main"
    assert movement["source_store_id"] is None
    assert movement["product_name"] == "Soap"
    assert movement["user_id"] == owner.user_id

    stock_out = await owner.post(
        "/inventory/adjustments",
        json={"type": "salida", "product_id": product_id, "store_id": store_id, "quantity": 8},
    )
    assert stock_out.status_code == 201
    assert stock_out.json()["source_store_name"] == "Main"

    balances = (await owner.get("/inventory/balances")).json()
    assert balances == [
        {
            "product_id": product_id,
            "product_name": "Soap",
            "store_id": store_id,
            "store_name": "Main",
            "quantity": 2,
            "min_stock": 3,
        }
    ]

    low = (await owner.get("/inventory/low-stock")).json()
    assert [item["product_name"] for item in low] == ["Soap"]

    movements = (await owner.get("/inventory/movements", params={"type": "salida"})).json()
    assert [item["quantity"] for item in movements] == [8]
    everything = (await owner.get("/inventory/movements")).json()
    assert [item["type"] for item in everything] == ["salida", "entrada"]


async def test_stock_cannot_go_negative(owner) -> None:
    store_id = await owner.store("Main")
    product_id = await owner.product("Soap", store_id=store_id, initial_stock=2)

    response = await owner.post(
        "/inventory/adjustments",
        json={"type": "salida", "product_id": product_id, "store_id": store_id, "quantity": 3},
    )
    assert response.status_code == 409
    assert response.json()["code"] == "insufficient_stock"
    assert await owner.stock(product_id, store_id) == 2

    movements = (await owner.get("/inventory/movements")).json()
    assert len(movements) == 1


async def test_adjustment_validation(owner) -> None:
    store_id = await owner.store("Main")
    product_id = await owner.product("Soap")

    zero = await owner.post(
        "/inventory/adjustments",
        json={"type": "entrada", "product_id": product_id, "store_id": store_id, "quantity": 0},
    )
    assert zero.status_code == 422

    bad_type = await owner.post(
        "/inventory/adjustments",
        json={"type": "transferencia", "product_id": product_id, "store_id": store_id, "quantity": 1},
    )
    assert bad_type.status_code == 422

    missing_store = await owner.post(
        "/inventory/adjustments",
        json={"type": "entrada", "product_id": product_id, "store_id": 999, "quantity": 1},
    )
    assert missing_store.status_code == 404


async def test_low_stock_ignores_products_without_minimum(owner) -> None:
    store_id = await owner.store("Main")
    await owner.product("Untracked", store_id=store_id, initial_stock=1, min_stock=0)
    await owner.product("Tracked", store_id=store_id, initial_stock=5, min_stock=5)
    await owner.product("Plenty", store_id=store_id, initial_stock=9, min_stock=5)

    low = (await owner.get("/inventory/low-stock", params={"store_id": store_id})).json()
    assert [item["product_name"] for item in low] == ["Tracked"]


async def test_update_inventory_creates_rows_on_stock_in(client, owner, session) -> None:
    store_id = await owner.store("Main")
    product_id = await owner.product("Soap")

    balance = await update_inventory(
        session, tenant_id=owner.tenant_id, product_id=product_id, store_id=store_id, delta=4
    )
    assert balance.quantity == 4

    with pytest.raises(InsufficientStockError):
        await update_inventory(
            session, tenant_id=owner.tenant_id, product_id=product_id, store_id=store_id, delta=-5
        )
    assert balance.quantity == 4
    await session.rollback()


def test_adjustment_schema_rejects_unknown_types() -> None:
    with pytest.raises(ValueError):
        schemas.InventoryAdjustment(type="robo", product_id=1, store_id=1, quantity=1)


async def test_concurrent_decrements_are_not_lost(owner, session_factory) -> None:
    store_id = await owner.store("Main")
    product_id = await owner.product("Soap", store_id=store_id, initial_stock=5)
    scope = {"tenant_id": owner.tenant_id, "product_id": product_id, "store_id": store_id}

    async with session_factory() as first, session_factory() as second:
        for db_session in (first, second):
            loaded = await db_session.execute(select(Inventory).where(Inventory.product_id == product_id))
            assert loaded.scalar_one().quantity == 5

        await update_inventory(first, delta=-2, **scope)
        await first.commit()
        balance = await update_inventory(second, delta=-2, **scope)
        await second.commit()

    assert balance.quantity == 1
    assert await owner.stock(product_id, store_id) == 1


async def test_concurrent_decrements_cannot_oversell(owner, session_factory) -> None:
    store_id = await owner.store("Main")
    product_id = await owner.product("Soap", store_id=store_id, initial_stock=5)
    scope = {"tenant_id": owner.tenant_id, "product_id": product_id, "store_id": store_id}

    async with session_factory() as first, session_factory() as second:
        for db_session in (first, second):
            loaded = await db_session.execute(select(Inventory).where(Inventory.product_id == product_id))
            assert loaded.scalar_one().quantity == 5

        await update_inventory(first, delta=-4, **scope)
        await first.commit()
        with pytest.raises(InsufficientStockError, match="available 1"):
            await update_inventory(second, delta=-4, **scope)
        await second.rollback()

    assert await owner.stock(product_id, store_id) == 1
