"""FastAPI dependencies shared by the routers."""
from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from typing import Any

from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .authorization import TenantContext, load_user_roles
from .config import Settings, get_settings
from .database import get_session
from .errors import AuthenticationError, PermissionDenied
from .models import Tenant, TenantMember, User
from .security import TokenSigner, extract_token

logger = logging.getLogger(__name__)


def provide_settings() -> Settings:
    """Dependency returning the active :class:`Settings` instance."""

    return get_settings()


def get_token_signer(settings: Settings = Depends(provide_settings)) -> TokenSigner:
    return TokenSigner(settings)


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_session),
    signer: TokenSigner = Depends(get_token_signer),
) -> User:
    token = extract_token(request.headers)
    if token is None:
        raise AuthenticationError("Authentication credentials were not provided")
    user_id = signer.verify(token)
    if user_id is None:
        raise AuthenticationError("Token is invalid or expired", code="invalid_token")
    user = await session.get(User, user_id)
    if user is None:
        raise AuthenticationError("Token is invalid or expired", code="invalid_token")
    return user


async def get_tenant_context(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    x_tenant_id: int | None = Header(default=None),
) -> TenantContext:
    stmt = (
        select(Tenant)
        .join(TenantMember, TenantMember.tenant_id == Tenant.id)
        .where(TenantMember.user_id == user.id)
        .order_by(TenantMember.created_at, Tenant.id)
    )
    if x_tenant_id is not None:
        stmt = stmt.where(Tenant.id == x_tenant_id)
    result = await session.execute(stmt.limit(1))
    tenant = result.scalar_one_or_none()
    if tenant is None:
        if x_tenant_id is None:
            raise PermissionDenied("User does not belong to any tenant", code="no_tenant")
        logger.warning("User %s is not a member of tenant %s", user.id, x_tenant_id)
        raise PermissionDenied("User is not a member of this tenant", code="not_a_member")
    if not tenant.active:
        raise PermissionDenied("Tenant is inactive", code="tenant_inactive")
    try:
        roles = await load_user_roles(session, user.id, tenant.id)
    except IntegrityError:
        # another request granted the default role first
        await session.rollback()
        await session.refresh(user)
        await session.refresh(tenant)
        roles = await load_user_roles(session, user.id, tenant.id)
    await session.commit()
    return TenantContext(user=user, tenant=tenant, roles=list(roles))


def require_role(
    *roles: str,
) -> Callable[..., Coroutine[Any, Any, TenantContext]]:
    """Dependency factory enforcing that the member holds one of ``roles``."""

    async def dependency(context: TenantContext = Depends(get_tenant_context)) -> TenantContext:
        context.require(*roles)
        return context

    return dependency


__all__ = [
    "get_current_user",
    "get_tenant_context",
    "get_token_signer",
    "provide_settings",
    "require_role",
]
