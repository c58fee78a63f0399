"""FastAPI application factory."""
from __future__ import annotations

from fastapi import APIRouter, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import schemas
from .config import Settings, get_settings
from .deps import provide_settings
from .errors import register_error_handlers
from .routers import (
    analytics,
    auth,
    catalog,
    importing,
    inventory,
    sales,
    stores,
    tenants,
    transfers,
    users,
)

router = APIRouter()


@router.get("/health", response_model=schemas.HealthStatus, tags=["system"])
async def health_check(settings: Settings = Depends(provide_settings)) -> schemas.HealthStatus:
    return schemas.HealthStatus(environment=settings.environment)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name)
    app.dependency_overrides[provide_settings] = lambda: settings

    origins = [
        origin.strip()
        for origin in settings.access_control_allow_origin.split(",")
        if origin.strip()
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(router)
    for module in (
        auth,
        tenants,
        users,
        stores,
        catalog,
        inventory,
        transfers,
        sales,
        analytics,
        importing,
    ):
        app.include_router(module.router)
    return app


app = create_app()


__all__ = ["app", "create_app"]
