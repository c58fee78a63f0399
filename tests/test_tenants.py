from __future__ import annotations

from sqlalchemy import update

from retail_service.models import Tenant
from retail_service.tenants import PLAN_LIMITS, effective_plan


async def test_create_tenant_starts_basic_trial(client, newcomer) -> None:
    response = await newcomer.post("/tenants", json={"name": "Corner Shop", "slug": "corner-shop"})
    assert response.status_code == 201
    body = response.json()
    assert body["tenant"]["slug"] == "corner-shop"
    assert body["tenant"]["active"] is True
    assert body["subscription"]["plan"] == "basic"
    assert body["subscription"]["status"] == "trialing"
    assert body["subscription"]["trial_ends_at"] is not None
    assert body["limits"] == {
        "max_products": 100,
        "max_stores": 1,
        "max_users": 3,
        "allow_analytics": False,
        "allow_api_access": False,
        "allow_custom_domain": False,
    }

    listing = await newcomer.get("/tenants")
    assert [tenant["slug"] for tenant in listing.json()] == ["corner-shop"]


async def test_tenant_slug_rules(owner, newcomer) -> None:
    duplicate = await newcomer.post("/tenants", json={"name": "Another Acme", "slug": "acme"})
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "tenant_slug_taken"

    invalid = await newcomer.post("/tenants", json={"name": "Bad Slug", "slug": "Bad Slug!"})
    assert invalid.status_code == 422


async def test_tenant_selection(owner, outsider, newcomer) -> None:
    current = await owner.get("/tenants/current")
    assert current.status_code == 200
    assert current.json()["tenant"]["id"] == owner.tenant_id

    no_tenant = await newcomer.get("/tenants/current")
    assert no_tenant.status_code == 403
    assert no_tenant.json()["code"] == "no_tenant"

    owner.tenant_id = outsider.tenant_id
    foreign = await owner.get("/tenants/current")
    assert foreign.status_code == 403
    assert foreign.json()["code"] == "not_a_member"


async def test_tenant_defaults_to_first_membership(client, owner) -> None:
    response = await client.get("/tenants/current", headers=owner.headers)
    assert response.status_code == 200
    assert response.json()["tenant"]["slug"] == "acme"


async def test_change_plan_is_admin_only(owner, make_member) -> None:
    viewer = await make_member("viewer@example.com", "viewer")
    denied = await viewer.put("/tenants/current/plan", json={"plan": "premium"})
    assert denied.status_code == 403
    assert denied.json()["code"] == "forbidden"

    response = await owner.put("/tenants/current/plan", json={"plan": "premium"})
    assert response.status_code == 200
    body = response.json()
    assert body["subscription"] == {
        "plan": "premium",
        "status": "active",
        "trial_ends_at": None,
        "current_period_end": None,
    }
    assert body["limits"]["max_stores"] is None

    unknown = await owner.put("/tenants/current/plan", json={"plan": "platinum"})
    assert unknown.status_code == 422


async def test_store_limit_follows_plan(owner) -> None:
    await owner.store("Main")
    blocked = await owner.post("/stores", json={"name": "Second"})
    assert blocked.status_code == 402
    assert blocked.json()["code"] == "plan_limit_exceeded"

    await owner.set_plan("standard")
    allowed = await owner.post("/stores", json={"name": "Second"})
    assert allowed.status_code == 201


async def test_inactive_tenant_rejects_requests(owner, session) -> None:
    await session.execute(update(Tenant).where(Tenant.id == owner.tenant_id).values(active=False))
    await session.commit()

    response = await owner.get("/stores")
    assert response.status_code == 403
    assert response.json()["code"] == "tenant_inactive"


def test_effective_plan_without_subscription() -> None:
    tenant = Tenant(name="Bare", slug="bare")
    tenant.subscription = None
    assert effective_plan(tenant) == ("basic", "trialing")
    assert PLAN_LIMITS["premium"].limit_for("users") == 100
    assert PLAN_LIMITS["standard"].limit_for("products") == 1000
