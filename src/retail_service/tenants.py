"""Tenants, subscriptions and plan limits."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .errors import ConflictError, PlanLimitExceeded
from .models import (
    Product,
    Store,
    Subscription,
    Tenant,
    TenantMember,
    User,
    UserRole,
    utcnow,
)

logger = logging.getLogger(__name__)

Resource = Literal["stores", "products", "users"]


@dataclass(frozen=True)
class PlanLimits:
    max_products: int | None
    max_stores: int | None
    max_users: int | None
    allow_analytics: bool
    allow_api_access: bool
    allow_custom_domain: bool

    def limit_for(self, resource: Resource) -> int | None:
        return {
            "stores": self.max_stores,
            "products": self.max_products,
            "users": self.max_users,
        }[resource]

    def to_dict(self) -> dict:
        return asdict(self)


PLAN_LIMITS: dict[str, PlanLimits] = {
    "basic": PlanLimits(
        max_products=100,
        max_stores=1,
        max_users=3,
        allow_analytics=False,
        allow_api_access=False,
        allow_custom_domain=False,
    ),
    "standard": PlanLimits(
        max_products=1000,
        max_stores=5,
        max_users=10,
        allow_analytics=True,
        allow_api_access=False,
        allow_custom_domain=False,
    ),
    "premium": PlanLimits(
        max_products=None,
        max_stores=None,
        max_users=100,
        allow_analytics=True,
        allow_api_access=True,
        allow_custom_domain=True,
    ),
}
DEFAULT_PLAN = "basic"


def effective_plan(tenant: Tenant) -> tuple[str, str]:
    """Return ``(plan, status)``; tenants without a subscription are trialing basic."""

    subscription = tenant.subscription
    if subscription is None:
        return DEFAULT_PLAN, "trialing"
    plan = subscription.plan if subscription.plan in PLAN_LIMITS else DEFAULT_PLAN
    return plan, subscription.status


def plan_limits(tenant: Tenant) -> PlanLimits:
    plan, _ = effective_plan(tenant)
    return PLAN_LIMITS[plan]


async def create_tenant(
    session: AsyncSession,
    user: User,
    data: schemas.TenantCreate,
    *,
    trial_days: int = 14,
) -> Tenant:
    existing = await session.execute(select(Tenant.id).where(Tenant.slug == data.slug))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"Slug '{data.slug}' is already in use", code="tenant_slug_taken")

    tenant = Tenant(**data.model_dump())
    session.add(tenant)
    await session.flush()

    now = utcnow()
    session.add(
        Subscription(
            tenant_id=tenant.id,
            plan=DEFAULT_PLAN,
            status="trialing",
            trial_ends_at=now + timedelta(days=trial_days),
        )
    )
    session.add(TenantMember(tenant_id=tenant.id, user_id=user.id))
    session.add(UserRole(tenant_id=tenant.id, user_id=user.id, role="admin", store_id=None))
    await session.flush()
    logger.info("Tenant %s (%s) created by user %s", tenant.id, tenant.slug, user.id)
    return await get_tenant(session, tenant.id)


async def get_tenant(session: AsyncSession, tenant_id: int) -> Tenant:
    stmt = (
        select(Tenant)
        .where(Tenant.id == tenant_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    tenant = result.scalar_one_or_none()
    if tenant is None:
        raise NoResultFound(f"Tenant {tenant_id} not found")
    return tenant


async def list_user_tenants(session: AsyncSession, user_id: int) -> Sequence[Tenant]:
    stmt = (
        select(Tenant)
        .join(TenantMember, TenantMember.tenant_id == Tenant.id)
        .where(TenantMember.user_id == user_id)
        .order_by(TenantMember.created_at, Tenant.id)
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def change_plan(session: AsyncSession, tenant: Tenant, plan: str) -> Tenant:
    if plan not in PLAN_LIMITS:
        raise ValueError(f"Unknown plan '{plan}'")
    subscription = tenant.subscription
    if subscription is None:
        subscription = Subscription(tenant_id=tenant.id)
        session.add(subscription)
    subscription.plan = plan
    subscription.status = "active"
    subscription.trial_ends_at = None
    await session.flush()
    logger.info("Tenant %s switched to plan %s", tenant.id, plan)
    return await get_tenant(session, tenant.id)


async def count_resource(session: AsyncSession, tenant_id: int, resource: Resource) -> int:
    if resource == "stores":
        stmt = select(func.count(Store.id)).where(Store.tenant_id == tenant_id)
    elif resource == "products":
        stmt = select(func.count(Product.id)).where(Product.tenant_id == tenant_id)
    else:
        stmt = select(func.count(TenantMember.id)).where(TenantMember.tenant_id == tenant_id)
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def ensure_within_limit(
    session: AsyncSession, tenant: Tenant, resource: Resource, *, adding: int = 1
) -> None:
    limit = plan_limits(tenant).limit_for(resource)
    if limit is None:
        return
    current = await count_resource(session, tenant.id, resource)
    if current + adding > limit:
        plan, _ = effective_plan(tenant)
        raise PlanLimitExceeded(
            f"The {plan} plan allows at most {limit} {resource}; upgrade to add more"
        )


def describe_tenant(tenant: Tenant) -> schemas.TenantDetail:
    plan, status = effective_plan(tenant)
    subscription = tenant.subscription
    return schemas.TenantDetail(
        tenant=schemas.TenantOut.model_validate(tenant),
        subscription=schemas.SubscriptionOut(
            plan=plan,
            status=status,
            trial_ends_at=None if subscription is None else subscription.trial_ends_at,
            current_period_end=None if subscription is None else subscription.current_period_end,
        ),
        limits=schemas.PlanLimitsOut(**PLAN_LIMITS[plan].to_dict()),
    )


__all__ = [
    "PLAN_LIMITS",
    "DEFAULT_PLAN",
    "PlanLimits",
    "change_plan",
    "count_resource",
    "create_tenant",
    "describe_tenant",
    "effective_plan",
    "ensure_within_limit",
    "get_tenant",
    "list_user_tenants",
    "plan_limits",
]
