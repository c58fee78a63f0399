"""Point of sale endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Sequence

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import sales, schemas
from ..authorization import TenantContext
from ..database import get_session
from ..deps import get_tenant_context

router = APIRouter(prefix="/sales", tags=["sales"])


@router.get("", response_model=list[schemas.SaleOut])
async def list_sales(
    store_id: int | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.SaleOut]:
    results = await sales.list_sales(
        session, context.tenant_id, store_id=store_id, start=start, end=end, limit=limit
    )
    return [schemas.SaleOut.model_validate(sale) for sale in results]


@router.post("", response_model=schemas.SaleOut, status_code=status.HTTP_201_CREATED)
async def create_sale(
    payload: schemas.SaleCreate,
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> schemas.SaleOut:
    context.require("sales", store_id=payload.store_id)
    try:
        sale = await sales.create_sale(session, context.tenant_id, payload, user_id=context.user.id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await session.commit()
    return schemas.SaleOut.model_validate(sale)


@router.get("/{sale_id}", response_model=schemas.SaleOut)
async def get_sale(
    sale_id: int,
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> schemas.SaleOut:
    sale = await sales.get_sale(session, context.tenant_id, sale_id)
    return schemas.SaleOut.model_validate(sale)


__all__ = ["router"]
