"""Business logic for the store and catalog tables."""
from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .errors import ConflictError
from .inventory import record_movement, update_inventory
from .models import Category, Inventory, Product, Store, Tenant, Unit, UserRole
from .queries import get_scoped
from .tenants import ensure_within_limit

logger = logging.getLogger(__name__)


async def _ensure_unique_name(
    session: AsyncSession,
    model: type,
    tenant_id: int,
    name: str,
    *,
    exclude_id: int | None = None,
) -> None:
    stmt = select(model.id).where(
        model.tenant_id == tenant_id, func.lower(model.name) == name.strip().lower()
    )
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if (await session.execute(stmt)).first() is not None:
        label = model.__name__.lower()
        raise ConflictError(f"A {label} named '{name}' already exists", code=f"{label}_exists")


# stores -------------------------------------------------------------------
async def create_store(
    session: AsyncSession, tenant: Tenant, data: schemas.StoreCreate
) -> Store:
    await _ensure_unique_name(session, Store, tenant.id, data.name)
    await ensure_within_limit(session, tenant, "stores")
    store = Store(tenant_id=tenant.id, **data.model_dump())
    session.add(store)
    await session.flush()
    logger.info("Store %s created in tenant %s", store.id, tenant.id)
    return store


async def list_stores(session: AsyncSession, tenant_id: int) -> Sequence[Store]:
    stmt = select(Store).where(Store.tenant_id == tenant_id).order_by(Store.name)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_store(session: AsyncSession, tenant_id: int, store_id: int) -> Store:
    return await get_scoped(session, Store, tenant_id, store_id)


async def update_store(
    session: AsyncSession, store: Store, data: schemas.StoreUpdate
) -> Store:
    values = data.model_dump(exclude_unset=True)
    if values.get("name") is not None:
        await _ensure_unique_name(
            session, Store, store.tenant_id, values["name"], exclude_id=store.id
        )
    for field, value in values.items():
        setattr(store, field, value)
    await session.flush()
    return store


async def delete_store(session: AsyncSession, store: Store) -> None:
    stmt = select(func.count(Inventory.id)).where(
        Inventory.store_id == store.id, Inventory.quantity > 0
    )
    if (await session.execute(stmt)).scalar_one() > 0:
        raise ConflictError(
            f"Store '{store.name}' still holds stock", code="store_has_stock"
        )
    await session.execute(delete(Inventory).where(Inventory.store_id == store.id))
    await session.execute(delete(UserRole).where(UserRole.store_id == store.id))
    await session.delete(store)
    await session.flush()
    logger.info("Store %s deleted from tenant %s", store.id, store.tenant_id)


async def list_store_stock(
    session: AsyncSession, tenant_id: int, store_id: int
) -> list[schemas.StoreStockItem]:
    await get_store(session, tenant_id, store_id)
    stmt = (
        select(Product.id, Product.name, Unit.abbreviation, Inventory.quantity)
        .join(Inventory, Inventory.product_id == Product.id)
        .outerjoin(Unit, Product.unit_id == Unit.id)
        .where(
            Inventory.tenant_id == tenant_id,
            Inventory.store_id == store_id,
            Inventory.quantity > 0,
        )
        .order_by(Product.name)
    )
    result = await session.execute(stmt)
    return [
        schemas.StoreStockItem(id=row.id, name=row.name, unit=row.abbreviation or "u", stock=row.quantity)
        for row in result.all()
    ]


# categories and units -------------------------------------------------------
async def create_category(
    session: AsyncSession, tenant_id: int, data: schemas.CategoryCreate
) -> Category:
    await _ensure_unique_name(session, Category, tenant_id, data.name)
    category = Category(tenant_id=tenant_id, name=data.name.strip())
    session.add(category)
    await session.flush()
    return category


async def list_categories(session: AsyncSession, tenant_id: int) -> Sequence[Category]:
    stmt = select(Category).where(Category.tenant_id == tenant_id).order_by(Category.name)
    result = await session.execute(stmt)
    return result.scalars().all()


async def update_category(
    session: AsyncSession, category: Category, data: schemas.CategoryCreate
) -> Category:
    await _ensure_unique_name(
        session, Category, category.tenant_id, data.name, exclude_id=category.id
    )
    category.name = data.name.strip()
    await session.flush()
    return category


async def create_unit(session: AsyncSession, tenant_id: int, data: schemas.UnitCreate) -> Unit:
    await _ensure_unique_name(session, Unit, tenant_id, data.name)
    unit = Unit(tenant_id=tenant_id, name=data.name.strip(), abbreviation=data.abbreviation)
    session.add(unit)
    await session.flush()
    return unit


async def list_units(session: AsyncSession, tenant_id: int) -> Sequence[Unit]:
    stmt = select(Unit).where(Unit.tenant_id == tenant_id).order_by(Unit.name)
    result = await session.execute(stmt)
    return result.scalars().all()


async def update_unit(session: AsyncSession, unit: Unit, data: schemas.UnitUpdate) -> Unit:
    values = data.model_dump(exclude_unset=True)
    if values.get("name") is not None:
        await _ensure_unique_name(session, Unit, unit.tenant_id, values["name"], exclude_id=unit.id)
    for field, value in values.items():
        setattr(unit, field, value)
    await session.flush()
    return unit


async def delete_lookup(session: AsyncSession, instance: Category | Unit) -> None:
    """Delete a category or unit that no product references."""

    column = Product.category_id if isinstance(instance, Category) else Product.unit_id
    stmt = select(func.count(Product.id)).where(column == instance.id)
    if (await session.execute(stmt)).scalar_one() > 0:
        raise ConflictError(f"'{instance.name}' is used by existing products", code="in_use")
    await session.delete(instance)
    await session.flush()


# products -----------------------------------------------------------------
async def _check_references(
    session: AsyncSession, tenant_id: int, category_id: int | None, unit_id: int | None
) -> None:
    if category_id is not None:
        await get_scoped(session, Category, tenant_id, category_id)
    if unit_id is not None:
        await get_scoped(session, Unit, tenant_id, unit_id)


async def create_product(
    session: AsyncSession,
    tenant: Tenant,
    data: schemas.ProductCreate,
    *,
    user_id: int | None = None,
) -> Product:
    await ensure_within_limit(session, tenant, "products")
    await _check_references(session, tenant.id, data.category_id, data.unit_id)
    if data.initial_stock > 0:
        if data.store_id is None:
            raise ValueError("A store is required to record initial stock")
        await get_store(session, tenant.id, data.store_id)

    product = Product(
        tenant_id=tenant.id, **data.model_dump(exclude={"initial_stock", "store_id"})
    )
    session.add(product)
    await session.flush()

    if data.initial_stock > 0:
        await update_inventory(
            session,
            tenant_id=tenant.id,
            product_id=product.id,
            store_id=data.store_id,
            delta=data.initial_stock,
        )
        record_movement(
            session,
            tenant_id=tenant.id,
            movement_type="entrada",
            product_id=product.id,
            quantity=data.initial_stock,
            target_store_id=data.store_id,
            notes="Initial stock",
            user_id=user_id,
        )
        await session.flush()
    logger.info("Product %s created in tenant %s", product.id, tenant.id)
    return await get_product(session, tenant.id, product.id)


async def list_products(
    session: AsyncSession,
    tenant_id: int,
    *,
    search: str | None = None,
    category_id: int | None = None,
    store_id: int | None = None,
) -> Sequence[Product]:
    stmt = (
        select(Product)
        .where(Product.tenant_id == tenant_id)
        .order_by(Product.name)
        .execution_options(populate_existing=True)
    )
    if search:
        stmt = stmt.where(func.lower(Product.name).like(f"%{search.strip().lower()}%"))
    if category_id is not None:
        stmt = stmt.where(Product.category_id == category_id)
    if store_id is not None:
        stocked = select(Inventory.product_id).where(Inventory.store_id == store_id)
        stmt = stmt.where(Product.id.in_(stocked))
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_product(session: AsyncSession, tenant_id: int, product_id: int) -> Product:
    return await get_scoped(session, Product, tenant_id, product_id)


async def update_product(
    session: AsyncSession, product: Product, data: schemas.ProductUpdate
) -> Product:
    values = data.model_dump(exclude_unset=True)
    await _check_references(
        session, product.tenant_id, values.get("category_id"), values.get("unit_id")
    )
    for required in ("name", "sale_price", "min_stock"):
        if required in values and values[required] is None:
            raise ValueError(f"'{required}' cannot be cleared")
    min_stock = values.get("min_stock", product.min_stock)
    max_stock = values.get("max_stock", product.max_stock)
    if max_stock is not None and max_stock < min_stock:
        raise ValueError("max_stock must be greater than or equal to min_stock")
    for field, value in values.items():
        setattr(product, field, value)
    await session.flush()
    return await get_product(session, product.tenant_id, product.id)


async def delete_product(session: AsyncSession, product: Product) -> None:
    await session.delete(product)
    await session.flush()
    logger.info("Product %s deleted from tenant %s", product.id, product.tenant_id)


def product_to_schema(
    product: Product,
    *,
    include_purchase_price: bool = True,
    store_id: int | None = None,
) -> schemas.ProductOut:
    stock_by_store = {row.store_id: row.quantity for row in product.inventory}
    store_names = {row.store_id: row.store.name for row in product.inventory}
    if store_id is not None:
        stock_total = stock_by_store.get(store_id, 0)
    else:
        stock_total = sum(stock_by_store.values())
    return schemas.ProductOut(
        id=product.id,
        name=product.name,
        description=product.description,
        category_id=product.category_id,
        category=product.category.name if product.category else None,
        unit_id=product.unit_id,
        unit=product.unit.abbreviation or product.unit.name if product.unit else None,
        purchase_price=product.purchase_price if include_purchase_price else None,
        sale_price=product.sale_price,
        min_stock=product.min_stock,
        max_stock=product.max_stock,
        color=product.color,
        size=product.size,
        stock_total=stock_total,
        stock_by_store=stock_by_store,
        store_names=store_names,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


__all__ = [name for name in globals() if not name.startswith("_")]
