"""Excel/CSV product import and export."""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from .. import importing, schemas
from ..authorization import TenantContext
from ..database import get_session
from ..deps import get_tenant_context, require_role

router = APIRouter(prefix="/import", tags=["importing"])

XLS_MEDIA_TYPE = "application/vnd.ms-excel"


def _xls_response(content: bytes, filename: str) -> Response:
    return Response(
        content,
        media_type=XLS_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}.xls"},
    )


def _timestamped_filename(prefix: str) -> str:
    return f"{prefix}_{datetime.now().strftime('%Y%m%d-%H%M%S')}"


@router.get("/template")
async def download_template(
    context: TenantContext = Depends(get_tenant_context),
) -> Response:
    return _xls_response(importing.export_template(), "product_import_template")


@router.post("/products", response_model=schemas.ImportResult)
async def import_products(
    file: UploadFile = File(...),
    dry_run: bool = Query(default=False),
    context: TenantContext = Depends(require_role("admin", "manager")),
    session: AsyncSession = Depends(get_session),
) -> schemas.ImportResult:
    try:
        data = await file.read()
    finally:
        await file.close()
    try:
        rows = importing.parse_upload(file.filename or "", data)
        result = await importing.import_products(
            session, context.tenant, rows, dry_run=dry_run, user_id=context.user.id
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if result.errors and not dry_run:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.errors)
    if not dry_run:
        await session.commit()
    return result


@router.get("/export")
async def export_products(
    context: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
) -> Response:
    content = await importing.export_products(
        session,
        context.tenant_id,
        include_purchase_price=context.can_view_purchase_price,
    )
    return _xls_response(content, _timestamped_filename("products"))


__all__ = ["router"]
