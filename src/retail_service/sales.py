"""Point of sale checkout."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .inventory import record_movement, update_inventory
from .models import Product, Sale, SaleDetail, Store
from .queries import get_scoped

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
PAYMENT_METHODS = ("cash", "card")


def quantize(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def _validate(data: schemas.SaleCreate) -> None:
    if not data.store_id:
        raise ValueError("A store is required")
    if data.payment_method not in PAYMENT_METHODS:
        raise ValueError("A valid payment method is required")
    if not data.items:
        raise ValueError("A sale needs at least one item")


async def create_sale(
    session: AsyncSession,
    tenant_id: int,
    data: schemas.SaleCreate,
    *,
    user_id: int | None = None,
) -> Sale:
    """Record a completed sale and take its items out of the store's stock."""

    _validate(data)
    await get_scoped(session, Store, tenant_id, data.store_id)

    lines: list[tuple[Product, int, Decimal]] = []
    for item in data.items:
        product = await get_scoped(session, Product, tenant_id, item.product_id)
        unit_price = quantize(item.unit_price if item.unit_price is not None else product.sale_price)
        lines.append((product, item.quantity, unit_price))

    total = quantize(sum((price * quantity for _, quantity, price in lines), Decimal("0")))

    change_due = None
    cash_received = None
    if data.payment_method == "cash":
        if data.cash_received is None or quantize(data.cash_received) < total:
            raise ValueError("Cash received does not cover the sale total")
        cash_received = quantize(data.cash_received)
        change_due = cash_received - total

    sale = Sale(
        tenant_id=tenant_id,
        store_id=data.store_id,
        user_id=user_id,
        total=total,
        payment_method=data.payment_method,
        customer=(data.customer or "").strip() or None,
        status="completed",
        cash_received=cash_received,
        change_due=change_due,
    )
    session.add(sale)
    await session.flush()

    for product, quantity, unit_price in lines:
        session.add(
            SaleDetail(
                tenant_id=tenant_id,
                sale_id=sale.id,
                product_id=product.id,
                quantity=quantity,
                unit_price=unit_price,
                subtotal=quantize(unit_price * quantity),
            )
        )
        await update_inventory(
            session,
            tenant_id=tenant_id,
            product_id=product.id,
            store_id=data.store_id,
            delta=-quantity,
            create_missing=False,
        )
        record_movement(
            session,
            tenant_id=tenant_id,
            movement_type="salida",
            product_id=product.id,
            quantity=quantity,
            source_store_id=data.store_id,
            notes=f"Sale #{sale.id}",
            user_id=user_id,
        )
    await session.flush()
    logger.info(
        "Sale %s completed in store %s: %s items, total %s",
        sale.id,
        data.store_id,
        len(lines),
        total,
    )
    return await get_sale(session, tenant_id, sale.id)


async def get_sale(session: AsyncSession, tenant_id: int, sale_id: int) -> Sale:
    return await get_scoped(session, Sale, tenant_id, sale_id)


async def list_sales(
    session: AsyncSession,
    tenant_id: int,
    *,
    store_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
) -> Sequence[Sale]:
    stmt = select(Sale).where(Sale.tenant_id == tenant_id)
    if store_id is not None:
        stmt = stmt.where(Sale.store_id == store_id)
    if start is not None:
        stmt = stmt.where(Sale.created_at >= start)
    if end is not None:
        stmt = stmt.where(Sale.created_at < end)
    stmt = stmt.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return result.scalars().all()


__all__ = ["PAYMENT_METHODS", "create_sale", "get_sale", "list_sales", "quantize"]
