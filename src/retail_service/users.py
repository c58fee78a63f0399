"""User accounts and tenant membership administration."""
from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .authorization import VALID_ROLES
from .errors import ConflictError
from .models import Store, Tenant, TenantMember, User, UserRole
from .security import hash_password, verify_password
from .tenants import ensure_within_limit

logger = logging.getLogger(__name__)

_MIN_PASSWORD_LENGTH = 6


def _normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    stmt = select(User).where(User.email == _normalize_email(email))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession, email: str, password: str, full_name: str | None = None
) -> User:
    email = _normalize_email(email)
    if not email or "@" not in email:
        raise ValueError("A valid email address is required")
    if not password or len(password) < _MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {_MIN_PASSWORD_LENGTH} characters")
    if await get_user_by_email(session, email) is not None:
        raise ConflictError(f"Email '{email}' is already registered", code="email_taken")
    user = User(email=email, full_name=full_name, password_hash=hash_password(password))
    session.add(user)
    await session.flush()
    logger.info("User %s registered", user.id)
    return user


async def authenticate(session: AsyncSession, email: str, password: str) -> User | None:
    user = await get_user_by_email(session, email)
    if user is None or not verify_password(user.password_hash, password):
        logger.warning("Failed login for %s", _normalize_email(email))
        return None
    return user


async def update_profile(
    session: AsyncSession, user: User, data: schemas.ProfileUpdate
) -> User:
    if data.full_name is not None:
        user.full_name = data.full_name.strip() or None
    if data.password:
        user.password_hash = hash_password(data.password)
    await session.flush()
    return user


# membership ---------------------------------------------------------------
async def _get_membership(
    session: AsyncSession, tenant_id: int, user_id: int
) -> TenantMember | None:
    stmt = select(TenantMember).where(
        TenantMember.tenant_id == tenant_id, TenantMember.user_id == user_id
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _ensure_store_in_tenant(
    session: AsyncSession, tenant_id: int, store_id: int | None
) -> None:
    if store_id is None:
        return
    store = await session.get(Store, store_id)
    if store is None or store.tenant_id != tenant_id:
        raise NoResultFound(f"Store {store_id} not found")


async def _count_admins(session: AsyncSession, tenant_id: int) -> int:
    stmt = select(func.count(UserRole.id)).where(
        UserRole.tenant_id == tenant_id, UserRole.role == "admin"
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def list_members(
    session: AsyncSession, tenant_id: int, search: str | None = None
) -> list[schemas.MemberOut]:
    stmt = (
        select(User)
        .join(TenantMember, TenantMember.user_id == User.id)
        .where(TenantMember.tenant_id == tenant_id)
        .order_by(User.email)
    )
    if search:
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(func.lower(User.email).like(pattern), func.lower(User.full_name).like(pattern))
        )
    users = (await session.execute(stmt)).scalars().all()

    roles_stmt = (
        select(UserRole)
        .where(UserRole.tenant_id == tenant_id)
        .order_by(UserRole.id)
    )
    roles_by_user: dict[int, list[UserRole]] = {}
    for role in (await session.execute(roles_stmt)).scalars():
        roles_by_user.setdefault(role.user_id, []).append(role)

    return [
        schemas.MemberOut(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            roles=[
                schemas.UserRoleOut.model_validate(role)
                for role in roles_by_user.get(user.id, [])
            ],
        )
        for user in users
    ]


async def add_member(
    session: AsyncSession, tenant: Tenant, data: schemas.MemberCreate
) -> User:
    await _ensure_store_in_tenant(session, tenant.id, data.store_id)
    user = await get_user_by_email(session, data.email)
    if user is not None and await _get_membership(session, tenant.id, user.id) is not None:
        raise ConflictError(f"{data.email} is already a member", code="already_member")
    await ensure_within_limit(session, tenant, "users")
    if user is None:
        if not data.password:
            raise ValueError("A password is required to create a new user")
        user = await create_user(session, data.email, data.password, data.full_name)
    session.add(TenantMember(tenant_id=tenant.id, user_id=user.id))
    session.add(
        UserRole(tenant_id=tenant.id, user_id=user.id, role=data.role, store_id=data.store_id)
    )
    await session.flush()
    logger.info("User %s added to tenant %s as %s", user.id, tenant.id, data.role)
    return user


async def assign_role(
    session: AsyncSession,
    tenant_id: int,
    user_id: int,
    role: str,
    store_id: int | None = None,
) -> UserRole:
    if role not in VALID_ROLES:
        raise ValueError(f"Invalid role '{role}'")
    if await _get_membership(session, tenant_id, user_id) is None:
        raise NoResultFound(f"User {user_id} is not a member of this tenant")
    await _ensure_store_in_tenant(session, tenant_id, store_id)

    stmt = select(UserRole.id).where(
        UserRole.tenant_id == tenant_id,
        UserRole.user_id == user_id,
        UserRole.role == role,
        UserRole.store_id.is_(None) if store_id is None else UserRole.store_id == store_id,
    )
    if (await session.execute(stmt)).first() is not None:
        raise ConflictError("The user already has this role", code="role_exists")

    user_role = UserRole(tenant_id=tenant_id, user_id=user_id, role=role, store_id=store_id)
    session.add(user_role)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise ConflictError("The user already has this role", code="role_exists") from exc
    reload = (
        select(UserRole)
        .where(UserRole.id == user_role.id)
        .execution_options(populate_existing=True)
    )
    user_role = (await session.execute(reload)).scalar_one()
    logger.info(
        "Role %s (store=%s) assigned to user %s in tenant %s", role, store_id, user_id, tenant_id
    )
    return user_role


async def revoke_role(session: AsyncSession, tenant_id: int, user_id: int, role_id: int) -> None:
    user_role = await session.get(UserRole, role_id)
    if user_role is None or user_role.tenant_id != tenant_id or user_role.user_id != user_id:
        raise NoResultFound(f"Role {role_id} not found")
    if user_role.role == "admin" and await _count_admins(session, tenant_id) <= 1:
        raise ConflictError("At least one admin must remain in the tenant", code="last_admin")
    await session.delete(user_role)
    await session.flush()
    logger.info("Role %s revoked from user %s in tenant %s", role_id, user_id, tenant_id)


async def remove_member(session: AsyncSession, tenant_id: int, user_id: int) -> None:
    membership = await _get_membership(session, tenant_id, user_id)
    if membership is None:
        raise NoResultFound(f"User {user_id} is not a member of this tenant")
    admin_stmt = select(func.count(UserRole.id)).where(
        UserRole.tenant_id == tenant_id,
        UserRole.role == "admin",
        UserRole.user_id != user_id,
    )
    user_is_admin_stmt = select(UserRole.id).where(
        UserRole.tenant_id == tenant_id,
        UserRole.role == "admin",
        UserRole.user_id == user_id,
    )
    is_admin = (await session.execute(user_is_admin_stmt)).first() is not None
    if is_admin and int((await session.execute(admin_stmt)).scalar_one()) == 0:
        raise ConflictError("At least one admin must remain in the tenant", code="last_admin")

    await session.execute(
        delete(UserRole).where(UserRole.tenant_id == tenant_id, UserRole.user_id == user_id)
    )
    await session.delete(membership)
    await session.flush()
    logger.info("User %s removed from tenant %s", user_id, tenant_id)


async def list_roles(session: AsyncSession, tenant_id: int, user_id: int) -> Sequence[UserRole]:
    stmt = (
        select(UserRole)
        .where(UserRole.tenant_id == tenant_id, UserRole.user_id == user_id)
        .order_by(UserRole.id)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


__all__ = [
    "add_member",
    "assign_role",
    "authenticate",
    "create_user",
    "get_user_by_email",
    "list_members",
    "list_roles",
    "remove_member",
    "revoke_role",
    "update_profile",
]
