"""Inventory balances and the movement ledger."""
from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import Select, and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .errors import InsufficientStockError
from .models import Inventory, Movement, Product, Store
from .queries import get_scoped

logger = logging.getLogger(__name__)


async def _get_balance(
    session: AsyncSession, *, tenant_id: int, product_id: int, store_id: int
) -> Inventory | None:
    stmt = (
        select(Inventory)
        .where(
            Inventory.tenant_id == tenant_id,
            Inventory.product_id == product_id,
            Inventory.store_id == store_id,
        )
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def update_inventory(
    session: AsyncSession,
    *,
    tenant_id: int,
    product_id: int,
    store_id: int,
    delta: int,
    create_missing: bool = True,
) -> Inventory:
    """Apply ``delta`` to a product's stock in one store.

    The change is a single conditional ``UPDATE`` evaluated against the
    stored quantity, so concurrent requests cannot overwrite each other or
    drive stock below zero.  The row is created on first stock-in.  Results
    below zero raise :class:`InsufficientStockError` without touching the row.
    """

    stmt = (
        update(Inventory)
        .where(
            Inventory.tenant_id == tenant_id,
            Inventory.product_id == product_id,
            Inventory.store_id == store_id,
            Inventory.quantity + delta >= 0,
        )
        .values(quantity=Inventory.quantity + delta)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    balance = await _get_balance(
        session, tenant_id=tenant_id, product_id=product_id, store_id=store_id
    )
    if result.rowcount:
        return balance

    current = 0 if balance is None else balance.quantity
    if current + delta < 0:
        raise InsufficientStockError(
            f"Insufficient stock for product {product_id} in store {store_id}: "
            f"available {current}, requested {-delta}"
        )
    if not create_missing:
        raise InsufficientStockError(f"Product {product_id} has no inventory in store {store_id}")
    # a concurrent first stock-in trips uq_inventory_product_store
    balance = Inventory(
        tenant_id=tenant_id, product_id=product_id, store_id=store_id, quantity=delta
    )
    session.add(balance)
    await session.flush()
    return balance


def record_movement(
    session: AsyncSession,
    *,
    tenant_id: int,
    movement_type: str,
    product_id: int,
    quantity: int,
    source_store_id: int | None = None,
    target_store_id: int | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> Movement:
    movement = Movement(
        tenant_id=tenant_id,
        type=movement_type,
        product_id=product_id,
        quantity=quantity,
        source_store_id=source_store_id,
        target_store_id=target_store_id,
        notes=notes,
        user_id=user_id,
    )
    session.add(movement)
    return movement


async def adjust_inventory(
    session: AsyncSession,
    tenant_id: int,
    data: schemas.InventoryAdjustment,
    *,
    user_id: int | None = None,
) -> Movement:
    await get_scoped(session, Product, tenant_id, data.product_id)
    await get_scoped(session, Store, tenant_id, data.store_id)

    if data.type == "entrada":
        delta = data.quantity
        source, target = None, data.store_id
    else:
        delta = -data.quantity
        source, target = data.store_id, None
    await update_inventory(
        session,
        tenant_id=tenant_id,
        product_id=data.product_id,
        store_id=data.store_id,
        delta=delta,
    )
    movement = record_movement(
        session,
        tenant_id=tenant_id,
        movement_type=data.type,
        product_id=data.product_id,
        quantity=data.quantity,
        source_store_id=source,
        target_store_id=target,
        notes=data.notes,
        user_id=user_id,
    )
    await session.flush()
    logger.info(
        "Inventory %s of %s for product %s in store %s",
        data.type,
        data.quantity,
        data.product_id,
        data.store_id,
    )
    return movement


def _balance_query(tenant_id: int, store_id: int | None) -> Select:
    stmt = (
        select(
            Inventory.product_id,
            Product.name.label("product_name"),
            Inventory.store_id,
            Store.name.label("store_name"),
            Inventory.quantity,
            Product.min_stock,
        )
        .join(Product, Inventory.product_id == Product.id)
        .join(Store, Inventory.store_id == Store.id)
        .where(Inventory.tenant_id == tenant_id)
        .order_by(Product.name, Store.name)
    )
    if store_id is not None:
        stmt = stmt.where(Inventory.store_id == store_id)
    return stmt


async def list_balances(
    session: AsyncSession, tenant_id: int, store_id: int | None = None
) -> Sequence[schemas.InventoryBalanceOut]:
    result = await session.execute(_balance_query(tenant_id, store_id))
    return [schemas.InventoryBalanceOut.model_validate(row._asdict()) for row in result.all()]


async def list_low_stock(
    session: AsyncSession, tenant_id: int, store_id: int | None = None
) -> Sequence[schemas.LowStockItem]:
    stmt = _balance_query(tenant_id, store_id).where(
        and_(
            Product.min_stock > 0,
            Inventory.quantity <= Product.min_stock,
        )
    )
    result = await session.execute(stmt)
    return [schemas.LowStockItem.model_validate(row._asdict()) for row in result.all()]


async def list_movements(
    session: AsyncSession,
    tenant_id: int,
    *,
    movement_type: str | None = None,
    product_id: int | None = None,
    store_id: int | None = None,
    limit: int = 100,
) -> Sequence[Movement]:
    stmt = select(Movement).where(Movement.tenant_id == tenant_id)
    if movement_type is not None:
        stmt = stmt.where(Movement.type == movement_type)
    if product_id is not None:
        stmt = stmt.where(Movement.product_id == product_id)
    if store_id is not None:
        stmt = stmt.where(
            or_(Movement.source_store_id == store_id, Movement.target_store_id == store_id)
        )
    stmt = stmt.order_by(Movement.created_at.desc(), Movement.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return result.scalars().all()


def movement_to_schema(movement: Movement) -> schemas.MovementOut:
    return schemas.MovementOut(
        id=movement.id,
        type=movement.type,
        quantity=movement.quantity,
        product_id=movement.product_id,
        product_name=movement.product.name if movement.product is not None else "N/A",
        source_store_id=movement.source_store_id,
        source_store_name=movement.source_store.name if movement.source_store else None,
        target_store_id=movement.target_store_id,
        target_store_name=movement.target_store.name if movement.target_store else None,
        notes=movement.notes,
        user_id=movement.user_id,
        created_at=movement.created_at,
    )


__all__ = [
    "adjust_inventory",
    "list_balances",
    "list_low_stock",
    "list_movements",
    "movement_to_schema",
    "record_movement",
    "update_inventory",
]
