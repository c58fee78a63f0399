from __future__ import annotations


async def test_add_and_list_members(owner) -> None:
    response = await owner.post(
        "/users",
        json={
            "email": "Sam@Example.com",
            "password": "secret123",
            "full_name": "Sam Seller",
            "role": "sales",
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "sam@example.com"
    assert [role["role"] for role in body["roles"]] == ["sales"]

    members = await owner.get("/users")
    assert [member["email"] for member in members.json()] == [
        "owner@example.com",
        "sam@example.com",
    ]
    search = await owner.get("/users", params={"search": "seller"})
    assert [member["email"] for member in search.json()] == ["sam@example.com"]


async def test_add_member_rules(owner, outsider) -> None:
    missing_password = await owner.post("/users", json={"email": "new@example.com"})
    assert missing_password.status_code == 400

    existing = await owner.post("/users", json={"email": "other@example.com", "role": "viewer"})
    assert existing.status_code == 201

    again = await owner.post("/users", json={"email": "other@example.com"})
    assert again.status_code == 409
    assert again.json()["code"] == "already_member"


async def test_user_limit_on_basic_plan(owner, make_member) -> None:
    await make_member("one@example.com", "viewer")
    await make_member("two@example.com", "viewer")
    response = await owner.post(
        "/users", json={"email": "three@example.com", "password": "secret123"}
    )
    assert response.status_code == 402
    assert response.json()["code"] == "plan_limit_exceeded"


async def test_assign_and_revoke_roles(owner, outsider, make_member) -> None:
    store_id = await owner.store("Main")
    member = await make_member("staff@example.com", "viewer")

    response = await owner.post(
        f"/users/{member.user_id}/roles", json={"role": "sales", "store_id": store_id}
    )
    assert response.status_code == 201
    role = response.json()
    assert role["store_id"] == store_id
    assert role["store_name"] == "Main"

    duplicate = await owner.post(
        f"/users/{member.user_id}/roles", json={"role": "sales", "store_id": store_id}
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "role_exists"

    foreign_store = await outsider.store("Elsewhere")
    foreign = await owner.post(
        f"/users/{member.user_id}/roles", json={"role": "manager", "store_id": foreign_store}
    )
    assert foreign.status_code == 404

    revoked = await owner.delete(f"/users/{member.user_id}/roles/{role['id']}")
    assert revoked.status_code == 204

    profile = await member.get("/auth/me")
    assert [item["role"] for item in profile.json()["roles"]] == ["viewer"]


async def test_last_admin_is_protected(owner) -> None:
    profile = await owner.get("/auth/me")
    admin_role_id = profile.json()["roles"][0]["id"]

    revoke = await owner.delete(f"/users/{owner.user_id}/roles/{admin_role_id}")
    assert revoke.status_code == 409
    assert revoke.json()["code"] == "last_admin"

    remove = await owner.delete(f"/users/{owner.user_id}")
    assert remove.status_code == 409
    assert remove.json()["code"] == "last_admin"


async def test_remove_member(owner, make_member) -> None:
    member = await make_member("temp@example.com", "manager")
    response = await owner.delete(f"/users/{member.user_id}")
    assert response.status_code == 204

    denied = await member.get("/stores")
    assert denied.status_code == 403
    assert denied.json()["code"] == "not_a_member"

    missing = await owner.delete(f"/users/{member.user_id}")
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"
