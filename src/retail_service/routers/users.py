"""Tenant user administration."""
from __future__ import annotations

from typing import Sequence

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas, users
from ..authorization import TenantContext
from ..database import get_session
from ..deps import require_role

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[schemas.MemberOut])
async def list_members(
    search: str | None = Query(default=None),
    context: TenantContext = Depends(require_role("admin")),
    session: AsyncSession = Depends(get_session),
) -> Sequence[schemas.MemberOut]:
    return await users.list_members(session, context.tenant_id, search)


@router.post("", response_model=schemas.MemberOut, status_code=status.HTTP_201_CREATED)
async def add_member(
    payload: schemas.MemberCreate,
    context: TenantContext = Depends(require_role("admin")),
    session: AsyncSession = Depends(get_session),
) -> schemas.MemberOut:
    try:
        user = await users.add_member(session, context.tenant, payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await session.commit()
    roles = await users.list_roles(session, context.tenant_id, user.id)
    return schemas.MemberOut(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        roles=[schemas.UserRoleOut.model_validate(role) for role in roles],
    )


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    user_id: int,
    context: TenantContext = Depends(require_role("admin")),
    session: AsyncSession = Depends(get_session),
) -> None:
    await users.remove_member(session, context.tenant_id, user_id)
    await session.commit()


@router.post(
    "/{user_id}/roles", response_model=schemas.UserRoleOut, status_code=status.HTTP_201_CREATED
)
async def assign_role(
    user_id: int,
    payload: schemas.RoleAssignment,
    context: TenantContext = Depends(require_role("admin")),
    session: AsyncSession = Depends(get_session),
) -> schemas.UserRoleOut:
    try:
        user_role = await users.assign_role(
            session, context.tenant_id, user_id, payload.role, payload.store_id
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await session.commit()
    return schemas.UserRoleOut.model_validate(user_role)


@router.delete("/{user_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_role(
    user_id: int,
    role_id: int,
    context: TenantContext = Depends(require_role("admin")),
    session: AsyncSession = Depends(get_session),
) -> None:
    await users.revoke_role(session, context.tenant_id, user_id, role_id)
    await session.commit()


__all__ = ["router"]
