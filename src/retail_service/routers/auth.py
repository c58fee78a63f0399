"""Signup, token issuing and the current user's profile."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas, users
from ..authorization import load_user_roles
from ..database import get_session
from ..deps import get_current_user, get_token_signer
from ..errors import AuthenticationError, PermissionDenied, ServiceError
from ..models import User
from ..security import TokenSigner
from ..tenants import list_user_tenants

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=schemas.UserOut, status_code=status.HTTP_201_CREATED)
async def signup(
    payload: schemas.SignupRequest, session: AsyncSession = Depends(get_session)
) -> schemas.UserOut:
    try:
        user = await users.create_user(session, payload.email, payload.password, payload.full_name)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    await session.commit()
    return schemas.UserOut.model_validate(user)


@router.post("/token", response_model=schemas.TokenOut)
async def issue_token(
    payload: schemas.TokenRequest,
    session: AsyncSession = Depends(get_session),
    signer: TokenSigner = Depends(get_token_signer),
) -> schemas.TokenOut:
    email = (payload.email or "").strip()
    if not email or not payload.password:
        raise ServiceError("Email and password are required", code="missing_credentials")
    user = await users.authenticate(session, email, payload.password)
    if user is None:
        raise AuthenticationError("Invalid email or password", code="invalid_credentials")
    issued = signer.issue(user.id, payload.expires_in)
    return schemas.TokenOut(
        token=issued.token,
        issued_at=issued.issued_at,
        expires_at=issued.expires_at,
        expires_in=issued.expires_in,
        user=schemas.UserOut.model_validate(user),
    )


@router.get("/me", response_model=schemas.ProfileOut)
async def read_profile(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    x_tenant_id: int | None = Header(default=None),
) -> schemas.ProfileOut:
    tenants = list(await list_user_tenants(session, user.id))
    current = None
    if x_tenant_id is not None:
        current = next((tenant for tenant in tenants if tenant.id == x_tenant_id), None)
        if current is None:
            raise PermissionDenied("User is not a member of this tenant", code="not_a_member")
    elif tenants:
        current = tenants[0]

    roles = []
    if current is not None:
        roles = [
            schemas.UserRoleOut.model_validate(role)
            for role in await load_user_roles(session, user.id, current.id)
        ]
        await session.commit()
    return schemas.ProfileOut(
        user=schemas.UserOut.model_validate(user),
        tenants=[schemas.TenantOut.model_validate(tenant) for tenant in tenants],
        current_tenant_id=None if current is None else current.id,
        roles=roles,
    )


@router.put("/me", response_model=schemas.UserOut)
async def update_profile(
    payload: schemas.ProfileUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> schemas.UserOut:
    user = await users.update_profile(session, user, payload)
    await session.commit()
    return schemas.UserOut.model_validate(user)


__all__ = ["router"]
