"""Tenant creation, selection and subscription plans."""
from __future__ import annotations

from typing import Sequence

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas, tenants
from ..authorization import TenantContext
from ..config import Settings
from ..database import get_session
from ..deps import get_current_user, get_tenant_context, provide_settings, require_role
from ..models import User

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.post("", response_model=schemas.TenantDetail, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    payload: schemas.TenantCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(provide_settings),
) -> schemas.TenantDetail:
    tenant = await tenants.create_tenant(session, user, payload, trial_days=settings.trial_days)
    await session.commit()
    return tenants.describe_tenant(tenant)


@router.get("", response_model=list[schemas.TenantOut])
async def list_tenants(
    user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)
) -> Sequence[schemas.TenantOut]:
    return [
        schemas.TenantOut.model_validate(tenant)
        for tenant in await tenants.list_user_tenants(session, user.id)
    ]


@router.get("/current", response_model=schemas.TenantDetail)
async def current_tenant(
    context: TenantContext = Depends(get_tenant_context),
) -> schemas.TenantDetail:
    return tenants.describe_tenant(context.tenant)


@router.put("/current/plan", response_model=schemas.TenantDetail)
async def change_plan(
    payload: schemas.PlanChange,
    context: TenantContext = Depends(require_role("admin")),
    session: AsyncSession = Depends(get_session),
) -> schemas.TenantDetail:
    try:
        tenant = await tenants.change_plan(session, context.tenant, payload.plan)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await session.commit()
    return tenants.describe_tenant(tenant)


__all__ = ["router"]
