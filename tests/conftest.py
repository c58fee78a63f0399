from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient, Response
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from retail_service.api import create_app
from retail_service.config import Settings
from retail_service.database import Base, create_engine, get_session

PASSWORD = "secret123"


@pytest.fixture()
def settings(tmp_path) -> Settings:
    db_path = tmp_path / "test.db"
    return Settings(
        database_url=f"sqlite+aiosqlite:///{db_path}",
        environment="test",
        access_control_allow_origin="*",
        app_name="Test Retail Service",
        secret_key="test-secret",
    )


@pytest.fixture()
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    db_engine = create_engine(settings)
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture()
async def session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture()
async def app(settings: Settings, session_factory) -> AsyncIterator[FastAPI]:
    async def override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as db_session:
            yield db_session

    application = create_app(settings)
    application.dependency_overrides[get_session] = override_get_session
    yield application


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client


@dataclass
class Api:
    """A signed-in user acting inside one tenant."""

    client: AsyncClient
    headers: dict[str, str]
    user_id: int
    tenant_id: int | None = None

    def _headers(self) -> dict[str, str]:
        headers = dict(self.headers)
        if self.tenant_id is not None:
            headers["X-Tenant-ID"] = str(self.tenant_id)
        return headers

    async def get(self, url: str, **kwargs: Any) -> Response:
        return await self.client.get(url, headers=self._headers(), **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Response:
        return await self.client.post(url, headers=self._headers(), **kwargs)

    async def put(self, url: str, **kwargs: Any) -> Response:
        return await self.client.put(url, headers=self._headers(), **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Response:
        return await self.client.delete(url, headers=self._headers(), **kwargs)

    async def set_plan(self, plan: str) -> None:
        response = await self.put("/tenants/current/plan", json={"plan": plan})
        assert response.status_code == 200, response.text

    async def store(self, name: str) -> int:
        response = await self.post("/stores", json={"name": name})
        assert response.status_code == 201, response.text
        return response.json()["id"]

    async def product(
        self,
        name: str,
        *,
        sale_price: str = "10.00",
        purchase_price: str | None = "6.00",
        store_id: int | None = None,
        initial_stock: int = 0,
        min_stock: int = 0,
        category_id: int | None = None,
    ) -> int:
        payload: dict[str, Any] = {
            "name": name,
            "sale_price": sale_price,
            "purchase_price": purchase_price,
            "min_stock": min_stock,
            "initial_stock": initial_stock,
            "store_id": store_id,
            "category_id": category_id,
        }
        response = await self.post("/products", json=payload)
        assert response.status_code == 201, response.text
        return response.json()["id"]

    async def stock(self, product_id: int, store_id: int) -> int:
        response = await self.get(f"/products/{product_id}")
        assert response.status_code == 200, response.text
        return response.json()["stock_by_store"].get(str(store_id), 0)


async def signup_and_login(client: AsyncClient, email: str, password: str = PASSWORD) -> Api:
    response = await client.post("/auth/signup", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    response = await client.post("/auth/token", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    body = response.json()
    return Api(
        client=client,
        headers={"Authorization": f"Bearer {body['token']}"},
        user_id=body["user"]["id"],
    )


@pytest.fixture()
async def owner(client: AsyncClient) -> Api:
    api = await signup_and_login(client, "owner@example.com")
    response = await api.post("/tenants", json={"name": "Acme Retail", "slug": "acme"})
    assert response.status_code == 201, response.text
    api.tenant_id = response.json()["tenant"]["id"]
    return api


@pytest.fixture()
def make_member(client: AsyncClient, owner: Api) -> Callable[..., Awaitable[Api]]:
    """Add a user to the owner's tenant with one role and sign them in."""

    async def factory(email: str, role: str, store_id: int | None = None) -> Api:
        response = await owner.post(
            "/users",
            json={"email": email, "password": PASSWORD, "role": role, "store_id": store_id},
        )
        assert response.status_code == 201, response.text
        response = await client.post("/auth/token", json={"email": email, "password": PASSWORD})
        assert response.status_code == 200, response.text
        body = response.json()
        return Api(
            client=client,
            headers={"Authorization": f"Bearer {body['token']}"},
            user_id=body["user"]["id"],
            tenant_id=owner.tenant_id,
        )

    return factory


@pytest.fixture()
async def outsider(client: AsyncClient) -> Api:
    """A user who owns a separate tenant."""

    api = await signup_and_login(client, "other@example.com")
    response = await api.post("/tenants", json={"name": "Globex", "slug": "globex"})
    assert response.status_code == 201, response.text
    api.tenant_id = response.json()["tenant"]["id"]
    return api


@pytest.fixture()
async def newcomer(client: AsyncClient) -> Api:
    """A signed-in user without any tenant."""

    return await signup_and_login(client, "newcomer@example.com")
