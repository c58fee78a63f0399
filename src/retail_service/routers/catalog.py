"""Categories, units and products."""
from __future__ import annotations

from typing import Sequence

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud, schemas
from ..authorization import TenantContext
from ..database import get_session
from ..deps import get_tenant_context, require_role
from ..inventory import list_movements, movement_to_schema
from ..models import Category, Unit
from ..queries import get_scoped

router = APIRouter(tags=["catalog"])

editor = require_role("admin", "manager")


# categories -----------------------------------------------------------------
@router.get("/categories", response_model=list[schemas.CategoryOut])
async def list_categories(
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.CategoryOut]:
    categories = await crud.list_categories(session, context.tenant_id)
    return [schemas.CategoryOut.model_validate(category) for category in categories]


@router.post("/categories", response_model=schemas.CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: schemas.CategoryCreate,
    context: TenantContext = Depends(editor),
    session: AsyncSession = Depends(get_session),
) -> schemas.CategoryOut:
    category = await crud.create_category(session, context.tenant_id, payload)
    await session.commit()
    return schemas.CategoryOut.model_validate(category)


@router.put("/categories/{category_id}", response_model=schemas.CategoryOut)
async def update_category(
    category_id: int,
    payload: schemas.CategoryCreate,
    context: TenantContext = Depends(editor),
    session: AsyncSession = Depends(get_session),
) -> schemas.CategoryOut:
    category = await get_scoped(session, Category, context.tenant_id, category_id)
    category = await crud.update_category(session, category, payload)
    await session.commit()
    return schemas.CategoryOut.model_validate(category)


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: int,
    context: TenantContext = Depends(editor),
    session: AsyncSession = Depends(get_session),
) -> None:
    category = await get_scoped(session, Category, context.tenant_id, category_id)
    await crud.delete_lookup(session, category)
    await session.commit()


# units ----------------------------------------------------------------------
@router.get("/units", response_model=list[schemas.UnitOut])
async def list_units(
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.UnitOut]:
    units = await crud.list_units(session, context.tenant_id)
    return [schemas.UnitOut.model_validate(unit) for unit in units]


@router.post("/units", response_model=schemas.UnitOut, status_code=status.HTTP_201_CREATED)
async def create_unit(
    payload: schemas.UnitCreate,
    context: TenantContext = Depends(editor),
    session: AsyncSession = Depends(get_session),
) -> schemas.UnitOut:
    unit = await crud.create_unit(session, context.tenant_id, payload)
    await session.commit()
    return schemas.UnitOut.model_validate(unit)


@router.put("/units/{unit_id}", response_model=schemas.UnitOut)
async def update_unit(
    unit_id: int,
    payload: schemas.UnitUpdate,
    context: TenantContext = Depends(editor),
    session: AsyncSession = Depends(get_session),
) -> schemas.UnitOut:
    unit = await get_scoped(session, Unit, context.tenant_id, unit_id)
    unit = await crud.update_unit(session, unit, payload)
    await session.commit()
    return schemas.UnitOut.model_validate(unit)


@router.delete("/units/{unit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_unit(
    unit_id: int,
    context: TenantContext = Depends(editor),
    session: AsyncSession = Depends(get_session),
) -> None:
    unit = await get_scoped(session, Unit, context.tenant_id, unit_id)
    await crud.delete_lookup(session, unit)
    await session.commit()


# products -------------------------------------------------------------------
@router.get("/products", response_model=list[schemas.ProductOut])
async def list_products(
    search: str | None = Query(default=None),
    category_id: int | None = Query(default=None),
    store_id: int | None = Query(default=None),
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.ProductOut]:
    products = await crud.list_products(
        session, context.tenant_id, search=search, category_id=category_id, store_id=store_id
    )
    return [
        crud.product_to_schema(
            product,
            include_purchase_price=context.can_view_purchase_price,
            store_id=store_id,
        )
        for product in products
    ]


@router.post("/products", response_model=schemas.ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: schemas.ProductCreate,
    context: TenantContext = Depends(editor),
    session: AsyncSession = Depends(get_session),
) -> schemas.ProductOut:
    try:
        product = await crud.create_product(
            session, context.tenant, payload, user_id=context.user.id
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await session.commit()
    return crud.product_to_schema(product)


@router.get("/products/{product_id}", response_model=schemas.ProductOut)
async def get_product(
    product_id: int,
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> schemas.ProductOut:
    product = await crud.get_product(session, context.tenant_id, product_id)
    return crud.product_to_schema(
        product, include_purchase_price=context.can_view_purchase_price
    )


@router.put("/products/{product_id}", response_model=schemas.ProductOut)
async def update_product(
    product_id: int,
    payload: schemas.ProductUpdate,
    context: TenantContext = Depends(editor),
    session: AsyncSession = Depends(get_session),
) -> schemas.ProductOut:
    product = await crud.get_product(session, context.tenant_id, product_id)
    try:
        product = await crud.update_product(session, product, payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await session.commit()
    return crud.product_to_schema(product)


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: int,
    context: TenantContext = Depends(editor),
    session: AsyncSession = Depends(get_session),
) -> None:
    product = await crud.get_product(session, context.tenant_id, product_id)
    await crud.delete_product(session, product)
    await session.commit()


@router.get("/products/{product_id}/history", response_model=list[schemas.MovementOut])
async def product_history(
    product_id: int,
    limit: int = Query(default=100, ge=1, le=1000),
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.MovementOut]:
    await crud.get_product(session, context.tenant_id, product_id)
    movements = await list_movements(
        session, context.tenant_id, product_id=product_id, limit=limit
    )
    return [movement_to_schema(movement) for movement in movements]


__all__ = ["router"]
