"""Stock transfers between stores."""
from __future__ import annotations

from typing import Sequence

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas, transfers
from ..authorization import TenantContext
from ..database import get_session
from ..deps import get_tenant_context
from ..inventory import movement_to_schema
from ..models import Movement
from ..queries import get_scoped

router = APIRouter(prefix="/transfers", tags=["transfers"])


@router.get("", response_model=list[schemas.TransferRecord])
async def list_transfers(
    limit: int = Query(default=10, ge=1, le=500),
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.TransferRecord]:
    return await transfers.list_transfers(session, context.tenant_id, limit=limit)


@router.post("", response_model=schemas.MovementOut, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    payload: schemas.TransferCreate,
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> schemas.MovementOut:
    context.require("admin", "manager", store_id=payload.source_store_id)
    try:
        movement = await transfers.transfer_stock(
            session, context.tenant_id, payload, user_id=context.user.id
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await session.commit()
    movement = await get_scoped(session, Movement, context.tenant_id, movement.id)
    return movement_to_schema(movement)


@router.post("/bulk", response_model=list[schemas.MovementOut], status_code=status.HTTP_201_CREATED)
async def create_bulk_transfer(
    payload: schemas.BulkTransferCreate,
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.MovementOut]:
    context.require("admin", "manager", store_id=payload.source_store_id)
    try:
        movements = await transfers.bulk_transfer(
            session, context.tenant_id, payload, user_id=context.user.id
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await session.commit()
    return [
        movement_to_schema(await get_scoped(session, Movement, context.tenant_id, movement.id))
        for movement in movements
    ]


__all__ = ["router"]
