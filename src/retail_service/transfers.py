"""Stock transfers between stores.

A transfer decrements the source store, increments (or creates) the target
store's inventory and appends one ``transferencia`` movement.  The caller owns
the transaction; every step only flushes, so a failure anywhere leaves the
session to be rolled back as a unit.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .inventory import list_movements, record_movement, update_inventory
from .models import Movement, Product, Store
from .queries import get_scoped

logger = logging.getLogger(__name__)

TRANSFER = "transferencia"


async def _check_stores(
    session: AsyncSession, tenant_id: int, source_store_id: int, target_store_id: int
) -> None:
    if source_store_id == target_store_id:
        raise ValueError("Source and target stores must be different")
    await get_scoped(session, Store, tenant_id, source_store_id)
    await get_scoped(session, Store, tenant_id, target_store_id)


async def _move(
    session: AsyncSession,
    *,
    tenant_id: int,
    product_id: int,
    source_store_id: int,
    target_store_id: int,
    quantity: int,
    notes: str | None,
    user_id: int | None,
) -> Movement:
    if quantity <= 0:
        raise ValueError("Transfer quantity must be positive")
    await get_scoped(session, Product, tenant_id, product_id)
    await update_inventory(
        session,
        tenant_id=tenant_id,
        product_id=product_id,
        store_id=source_store_id,
        delta=-quantity,
    )
    await update_inventory(
        session,
        tenant_id=tenant_id,
        product_id=product_id,
        store_id=target_store_id,
        delta=quantity,
    )
    return record_movement(
        session,
        tenant_id=tenant_id,
        movement_type=TRANSFER,
        product_id=product_id,
        quantity=quantity,
        source_store_id=source_store_id,
        target_store_id=target_store_id,
        notes=notes,
        user_id=user_id,
    )


async def transfer_stock(
    session: AsyncSession,
    tenant_id: int,
    data: schemas.TransferCreate,
    *,
    user_id: int | None = None,
) -> Movement:
    await _check_stores(session, tenant_id, data.source_store_id, data.target_store_id)
    movement = await _move(
        session,
        tenant_id=tenant_id,
        product_id=data.product_id,
        source_store_id=data.source_store_id,
        target_store_id=data.target_store_id,
        quantity=data.quantity,
        notes=data.notes,
        user_id=user_id,
    )
    await session.flush()
    logger.info(
        "Transferred %s of product %s from store %s to store %s",
        data.quantity,
        data.product_id,
        data.source_store_id,
        data.target_store_id,
    )
    return movement


async def bulk_transfer(
    session: AsyncSession,
    tenant_id: int,
    data: schemas.BulkTransferCreate,
    *,
    user_id: int | None = None,
) -> list[Movement]:
    await _check_stores(session, tenant_id, data.source_store_id, data.target_store_id)

    merged: OrderedDict[int, int] = OrderedDict()
    for line in data.items:
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity

    movements = []
    for product_id, quantity in merged.items():
        movements.append(
            await _move(
                session,
                tenant_id=tenant_id,
                product_id=product_id,
                source_store_id=data.source_store_id,
                target_store_id=data.target_store_id,
                quantity=quantity,
                notes=data.notes,
                user_id=user_id,
            )
        )
    await session.flush()
    logger.info(
        "Bulk transfer of %s products from store %s to store %s",
        len(movements),
        data.source_store_id,
        data.target_store_id,
    )
    return movements


async def list_transfers(
    session: AsyncSession, tenant_id: int, limit: int = 10
) -> Sequence[schemas.TransferRecord]:
    movements = await list_movements(session, tenant_id, movement_type=TRANSFER, limit=limit)
    return [
        schemas.TransferRecord(
            id=movement.id,
            created_at=movement.created_at,
            source=movement.source_store.name if movement.source_store else "N/A",
            target=movement.target_store.name if movement.target_store else "N/A",
            product=movement.product.name if movement.product else "N/A",
            quantity=movement.quantity,
            notes=movement.notes,
        )
        for movement in movements
    ]


__all__ = ["TRANSFER", "bulk_transfer", "list_transfers", "transfer_stock"]
