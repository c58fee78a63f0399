"""Store endpoints."""
from __future__ import annotations

from typing import Sequence

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud, schemas
from ..authorization import TenantContext
from ..database import get_session
from ..deps import get_tenant_context, require_role

router = APIRouter(prefix="/stores", tags=["stores"])


@router.get("", response_model=list[schemas.StoreOut])
async def list_stores(
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.StoreOut]:
    stores = await crud.list_stores(session, context.tenant_id)
    return [schemas.StoreOut.model_validate(store) for store in stores]


@router.post("", response_model=schemas.StoreOut, status_code=status.HTTP_201_CREATED)
async def create_store(
    payload: schemas.StoreCreate,
    context: TenantContext = Depends(require_role("admin")),
    session: AsyncSession = Depends(get_session),
) -> schemas.StoreOut:
    store = await crud.create_store(session, context.tenant, payload)
    await session.commit()
    store = await crud.get_store(session, context.tenant_id, store.id)
    return schemas.StoreOut.model_validate(store)


@router.get("/{store_id}", response_model=schemas.StoreOut)
async def get_store(
    store_id: int,
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> schemas.StoreOut:
    store = await crud.get_store(session, context.tenant_id, store_id)
    return schemas.StoreOut.model_validate(store)


@router.put("/{store_id}", response_model=schemas.StoreOut)
async def update_store(
    store_id: int,
    payload: schemas.StoreUpdate,
    context: TenantContext = Depends(require_role("admin")),
    session: AsyncSession = Depends(get_session),
) -> schemas.StoreOut:
    store = await crud.get_store(session, context.tenant_id, store_id)
    await crud.update_store(session, store, payload)
    await session.commit()
    store = await crud.get_store(session, context.tenant_id, store_id)
    return schemas.StoreOut.model_validate(store)


@router.delete("/{store_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_store(
    store_id: int,
    context: TenantContext = Depends(require_role("admin")),
    session: AsyncSession = Depends(get_session),
) -> None:
    store = await crud.get_store(session, context.tenant_id, store_id)
    await crud.delete_store(session, store)
    await session.commit()


@router.get("/{store_id}/stock", response_model=list[schemas.StoreStockItem])
async def store_stock(
    store_id: int,
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.StoreStockItem]:
    return await crud.list_store_stock(session, context.tenant_id, store_id)


__all__ = ["router"]
