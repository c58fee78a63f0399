from __future__ import annotations

import logging

from retail_service.config import Settings
from retail_service.main import configure_logging
from retail_service.management import bootstrap, init_database


async def test_bootstrap_creates_admin_and_tenant(client, engine) -> None:
    await init_database(engine)
    user, tenant = await bootstrap(
        "Admin@Example.com", "secret123", "First Shop", "first-shop",
        full_name="Ada Admin", db_engine=engine,
    )
    assert user.email == "admin@example.com"
    assert tenant.slug == "first-shop"

    token = await client.post(
        "/auth/token", json={"email": "admin@example.com", "password": "secret123"}
    )
    assert token.status_code == 200
    profile = await client.get(
        "/auth/me", headers={"Authorization": f"Bearer {token.json()['token']}"}
    )
    body = profile.json()
    assert body["user"]["full_name"] == "Ada Admin"
    assert body["current_tenant_id"] == tenant.id
    assert [role["role"] for role in body["roles"]] == ["admin"]


async def test_bootstrap_reuses_existing_user(engine) -> None:
    first, _ = await bootstrap("admin@example.com", "secret123", "One", "one", db_engine=engine)
    second, tenant = await bootstrap("admin@example.com", "ignored", "Two", "two", db_engine=engine)
    assert second.id == first.id
    assert tenant.slug == "two"


def test_configure_logging_sets_package_level() -> None:
    configure_logging(Settings(log_level="DEBUG"))
    assert logging.getLogger("retail_service").level == logging.DEBUG
