"""Role based authorization for tenant members.

Roles are stored per tenant and optionally scoped to a single store.  An
``admin`` role anywhere in the tenant grants every permission; other roles
only match when they are tenant-wide or bound to the requested store.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import PermissionDenied, PlanLimitExceeded
from .models import Tenant, User, UserRole
from .tenants import PlanLimits, plan_limits

logger = logging.getLogger(__name__)

VALID_ROLES = ("admin", "manager", "sales", "viewer")
DEFAULT_ROLE = "viewer"


def safe_role(value: str | None) -> str:
    """Coerce unknown role names to the least privileged role."""

    if value in VALID_ROLES:
        return value
    return DEFAULT_ROLE


def check_has_role(roles: Iterable[UserRole], role: str, store_id: int | None = None) -> bool:
    roles = list(roles)
    if any(safe_role(entry.role) == "admin" for entry in roles):
        return True
    for entry in roles:
        if safe_role(entry.role) != role:
            continue
        if store_id is None or entry.store_id is None or entry.store_id == store_id:
            return True
    return False


async def load_user_roles(
    session: AsyncSession, user_id: int, tenant_id: int
) -> Sequence[UserRole]:
    """Return the member's roles, creating the default viewer role when none exist.

    The default role is only flushed; callers commit it.  A concurrent grant of
    the same default role raises :class:`~sqlalchemy.exc.IntegrityError`.
    """

    stmt = (
        select(UserRole)
        .where(UserRole.user_id == user_id, UserRole.tenant_id == tenant_id)
        .order_by(UserRole.id)
    )
    result = await session.execute(stmt)
    roles = result.scalars().all()
    if roles:
        return roles

    default_role = UserRole(
        tenant_id=tenant_id, user_id=user_id, role=DEFAULT_ROLE, store_id=None
    )
    session.add(default_role)
    await session.flush()
    logger.info("Granted default %s role to user %s in tenant %s", DEFAULT_ROLE, user_id, tenant_id)
    result = await session.execute(stmt)
    return result.scalars().all()


@dataclass
class TenantContext:
    """Authenticated user acting inside one tenant."""

    user: User
    tenant: Tenant
    roles: list[UserRole] = field(default_factory=list)

    @property
    def tenant_id(self) -> int:
        return self.tenant.id

    @property
    def limits(self) -> PlanLimits:
        return plan_limits(self.tenant)

    def has_role(self, role: str, store_id: int | None = None) -> bool:
        return check_has_role(self.roles, role, store_id)

    def has_any_role(self, roles: Iterable[str], store_id: int | None = None) -> bool:
        return any(self.has_role(role, store_id) for role in roles)

    def require(self, *roles: str, store_id: int | None = None) -> None:
        if self.has_any_role(roles, store_id):
            return
        logger.warning(
            "User %s denied in tenant %s: requires %s (store=%s)",
            self.user.id,
            self.tenant.id,
            "/".join(roles),
            store_id,
        )
        scope = f" for store {store_id}" if store_id is not None else ""
        raise PermissionDenied(f"Requires one of the roles: {', '.join(roles)}{scope}")

    def require_analytics(self) -> None:
        if not self.limits.allow_analytics:
            raise PlanLimitExceeded("Advanced analytics are not included in the current plan")

    @property
    def can_view_purchase_price(self) -> bool:
        if self.has_any_role(("admin", "manager")):
            return True
        return not self.has_role("sales")


__all__ = [
    "DEFAULT_ROLE",
    "VALID_ROLES",
    "TenantContext",
    "check_has_role",
    "load_user_roles",
    "safe_role",
]
