"""Utility helpers for administrative tasks."""
from __future__ import annotations

import argparse
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from . import schemas
from .config import get_settings
from .database import Base, engine
from .models import Tenant, User
from .tenants import create_tenant, get_tenant
from .users import create_user, get_user_by_email

logger = logging.getLogger(__name__)


async def init_database(db_engine: AsyncEngine | None = None) -> None:
    """Create database tables for the application."""

    engine_to_use = db_engine or engine
    async with engine_to_use.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def bootstrap(
    email: str,
    password: str,
    tenant_name: str,
    tenant_slug: str,
    *,
    full_name: str | None = None,
    db_engine: AsyncEngine | None = None,
) -> tuple[User, Tenant]:
    """Create the tables, the first admin user and their tenant.

    An existing user with ``email`` is reused; the password is then left
    untouched.
    """

    engine_to_use = db_engine or engine
    await init_database(engine_to_use)
    session_factory = async_sessionmaker(bind=engine_to_use, expire_on_commit=False)
    async with session_factory() as session:
        user = await get_user_by_email(session, email)
        if user is None:
            user = await create_user(session, email, password, full_name)
        tenant = await create_tenant(
            session,
            user,
            schemas.TenantCreate(name=tenant_name, slug=tenant_slug),
            trial_days=get_settings().trial_days,
        )
        await session.commit()
        tenant = await get_tenant(session, tenant.id)
    logger.info("Bootstrapped tenant %s with admin %s", tenant.slug, user.email)
    return user, tenant


def cli_init_database() -> None:
    """CLI wrapper executed from :mod:`python -m`."""

    asyncio.run(init_database())


def cli_bootstrap(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create the first tenant and its admin user.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--tenant-name", required=True)
    parser.add_argument("--tenant-slug", required=True)
    parser.add_argument("--full-name")
    args = parser.parse_args(argv)
    asyncio.run(
        bootstrap(
            args.email,
            args.password,
            args.tenant_name,
            args.tenant_slug,
            full_name=args.full_name,
        )
    )


if __name__ == "__main__":
    cli_init_database()
