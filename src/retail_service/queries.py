"""Tenant scoped lookups shared by the service modules."""
from __future__ import annotations

from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT")


async def get_scoped(
    session: AsyncSession, model: type[ModelT], tenant_id: int, object_id: int
) -> ModelT:
    """Load ``model`` by id, treating rows of other tenants as missing."""

    stmt = (
        select(model)
        .where(model.id == object_id, model.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    instance = result.scalar_one_or_none()
    if instance is None:
        raise NoResultFound(f"{model.__name__} {object_id} not found")
    return instance


__all__ = ["get_scoped"]
