"""Inventory balances, adjustments and the movement ledger."""
from __future__ import annotations

from typing import Sequence

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import inventory, schemas
from ..authorization import TenantContext
from ..database import get_session
from ..deps import get_tenant_context
from ..models import Movement
from ..queries import get_scoped

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.get("/balances", response_model=list[schemas.InventoryBalanceOut])
async def list_balances(
    store_id: int | None = Query(default=None),
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.InventoryBalanceOut]:
    return await inventory.list_balances(session, context.tenant_id, store_id)


@router.get("/movements", response_model=list[schemas.MovementOut])
async def list_movements(
    movement_type: schemas.MovementType | None = Query(default=None, alias="type"),
    product_id: int | None = Query(default=None),
    store_id: int | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.MovementOut]:
    movements = await inventory.list_movements(
        session,
        context.tenant_id,
        movement_type=movement_type,
        product_id=product_id,
        store_id=store_id,
        limit=limit,
    )
    return [inventory.movement_to_schema(movement) for movement in movements]


@router.get("/low-stock", response_model=list[schemas.LowStockItem])
async def list_low_stock(
    store_id: int | None = Query(default=None),
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.LowStockItem]:
    return await inventory.list_low_stock(session, context.tenant_id, store_id)


@router.post(
    "/adjustments", response_model=schemas.MovementOut, status_code=status.HTTP_201_CREATED
)
async def adjust_inventory(
    payload: schemas.InventoryAdjustment,
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> schemas.MovementOut:
    context.require("admin", "manager", store_id=payload.store_id)
    movement = await inventory.adjust_inventory(
        session, context.tenant_id, payload, user_id=context.user.id
    )
    await session.commit()
    movement = await get_scoped(session, Movement, context.tenant_id, movement.id)
    return inventory.movement_to_schema(movement)


__all__ = ["router"]
