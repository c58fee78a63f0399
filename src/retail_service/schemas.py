"""Pydantic schemas used by the API."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

RoleName = Literal["admin", "manager", "sales", "viewer"]
PlanName = Literal["basic", "standard", "premium"]
TimeRange = Literal["day", "week", "month", "year"]
AdjustmentType = Literal["entrada", "salida"]
MovementType = Literal["entrada", "salida", "transferencia"]
PaymentMethod = Literal["cash", "card"]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# auth -------------------------------------------------------------------
class SignupRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)
    full_name: str | None = None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value:
            raise ValueError("A valid email address is required")
        return value


class TokenRequest(BaseModel):
    email: str | None = None
    password: str | None = None
    expires_in: int | None = None


class UserOut(ORMModel):
    id: int
    email: str
    full_name: str | None = None
    created_at: datetime


class TokenOut(BaseModel):
    status: Literal["success"] = "success"
    token: str
    token_type: Literal["Bearer"] = "Bearer"
    issued_at: int
    expires_at: int
    expires_in: int
    user: UserOut


class ProfileUpdate(BaseModel):
    full_name: str | None = None
    password: str | None = Field(default=None, min_length=6)


class UserRoleOut(ORMModel):
    id: int
    user_id: int
    role: str
    store_id: int | None = None
    store_name: str | None = None
    created_at: datetime


# tenants ----------------------------------------------------------------
class TenantCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    slug: str = Field(..., min_length=2, max_length=64, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    logo_url: str | None = None
    primary_color: str | None = None
    secondary_color: str | None = None


class TenantOut(ORMModel):
    id: int
    name: str
    slug: str
    active: bool
    logo_url: str | None = None
    primary_color: str | None = None
    secondary_color: str | None = None
    created_at: datetime


class SubscriptionOut(BaseModel):
    plan: PlanName
    status: Literal["active", "past_due", "canceled", "trialing"]
    trial_ends_at: datetime | None = None
    current_period_end: datetime | None = None


class PlanLimitsOut(BaseModel):
    max_products: int | None
    max_stores: int | None
    max_users: int | None
    allow_analytics: bool
    allow_api_access: bool
    allow_custom_domain: bool


class TenantDetail(BaseModel):
    tenant: TenantOut
    subscription: SubscriptionOut
    limits: PlanLimitsOut


class PlanChange(BaseModel):
    plan: PlanName


class ProfileOut(BaseModel):
    user: UserOut
    tenants: list[TenantOut]
    current_tenant_id: int | None = None
    roles: list[UserRoleOut]


# users ------------------------------------------------------------------
class MemberCreate(BaseModel):
    email: str
    password: str | None = Field(default=None, min_length=6)
    full_name: str | None = None
    role: RoleName = "viewer"
    store_id: int | None = None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class RoleAssignment(BaseModel):
    role: RoleName
    store_id: int | None = None


class MemberOut(BaseModel):
    id: int
    email: str
    full_name: str | None = None
    roles: list[UserRoleOut]


# stores -----------------------------------------------------------------
class StoreBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: str | None = None


class StoreCreate(StoreBase):
    pass


class StoreUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    address: str | None = None


class StoreOut(StoreBase, ORMModel):
    id: int
    created_at: datetime
    updated_at: datetime


class StoreStockItem(BaseModel):
    id: int
    name: str
    unit: str
    stock: int


# categories and units ---------------------------------------------------
class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)


class CategoryOut(ORMModel):
    id: int
    name: str


class UnitCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    abbreviation: str | None = Field(default=None, max_length=16)


class UnitUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=64)
    abbreviation: str | None = Field(default=None, max_length=16)


class UnitOut(ORMModel):
    id: int
    name: str
    abbreviation: str | None = None


# products ---------------------------------------------------------------
class ProductBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    description: str | None = None
    category_id: int | None = None
    unit_id: int | None = None
    purchase_price: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    sale_price: Decimal = Field(..., gt=0, decimal_places=2)
    min_stock: int = Field(0, ge=0)
    max_stock: int | None = Field(default=None, gt=0)
    color: str | None = None
    size: str | None = None

    @model_validator(mode="after")
    def _check_stock_bounds(self) -> "ProductBase":
        if self.max_stock is not None and self.max_stock < self.min_stock:
            raise ValueError("max_stock must be greater than or equal to min_stock")
        return self


class ProductCreate(ProductBase):
    initial_stock: int = Field(0, ge=0)
    store_id: int | None = None


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=255)
    description: str | None = None
    category_id: int | None = None
    unit_id: int | None = None
    purchase_price: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    sale_price: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    min_stock: int | None = Field(default=None, ge=0)
    max_stock: int | None = Field(default=None, gt=0)
    color: str | None = None
    size: str | None = None


class ProductOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    category_id: int | None = None
    category: str | None = None
    unit_id: int | None = None
    unit: str | None = None
    purchase_price: Decimal | None = None
    sale_price: Decimal
    min_stock: int
    max_stock: int | None = None
    color: str | None = None
    size: str | None = None
    stock_total: int
    stock_by_store: dict[int, int]
    store_names: dict[int, str]
    created_at: datetime
    updated_at: datetime


# inventory --------------------------------------------------------------
class InventoryAdjustment(BaseModel):
    type: AdjustmentType
    product_id: int
    store_id: int
    quantity: int = Field(..., gt=0)
    notes: str | None = None


class InventoryBalanceOut(BaseModel):
    product_id: int
    product_name: str
    store_id: int
    store_name: str
    quantity: int
    min_stock: int


class LowStockItem(InventoryBalanceOut):
    pass


class MovementOut(BaseModel):
    id: int
    type: MovementType
    quantity: int
    product_id: int | None = None
    product_name: str
    source_store_id: int | None = None
    source_store_name: str | None = None
    target_store_id: int | None = None
    target_store_name: str | None = None
    notes: str | None = None
    user_id: int | None = None
    created_at: datetime


# transfers --------------------------------------------------------------
class TransferCreate(BaseModel):
    product_id: int
    source_store_id: int
    target_store_id: int
    quantity: int = Field(..., gt=0)
    notes: str | None = None

    @model_validator(mode="after")
    def _check_distinct_stores(self) -> "TransferCreate":
        if self.source_store_id == self.target_store_id:
            raise ValueError("Source and target stores must be different")
        return self


class TransferLine(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)


class BulkTransferCreate(BaseModel):
    source_store_id: int
    target_store_id: int
    items: list[TransferLine] = Field(..., min_length=1)
    notes: str | None = None

    @model_validator(mode="after")
    def _check_distinct_stores(self) -> "BulkTransferCreate":
        if self.source_store_id == self.target_store_id:
            raise ValueError("Source and target stores must be different")
        return self


class TransferRecord(BaseModel):
    id: int
    created_at: datetime
    source: str
    target: str
    product: str
    quantity: int
    notes: str | None = None


# sales ------------------------------------------------------------------
class SaleLine(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    unit_price: Decimal | None = Field(default=None, gt=0, decimal_places=2)


class SaleCreate(BaseModel):
    store_id: int
    payment_method: PaymentMethod
    items: list[SaleLine] = Field(..., min_length=1)
    customer: str | None = None
    cash_received: Decimal | None = Field(default=None, ge=0)


class SaleDetailOut(ORMModel):
    id: int
    product_id: int | None = None
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class SaleOut(ORMModel):
    id: int
    store_id: int | None = None
    user_id: int | None = None
    total: Decimal
    payment_method: str
    customer: str | None = None
    status: str
    cash_received: Decimal | None = None
    change_due: Decimal | None = None
    created_at: datetime
    details: list[SaleDetailOut]


# analytics --------------------------------------------------------------
class StatWithChange(BaseModel):
    total: Decimal | int
    change_percent: int


class DashboardStats(BaseModel):
    sales_today: StatWithChange
    customers_today: StatWithChange
    units_sold_today: StatWithChange
    transfers_today: StatWithChange
    sales_all_time: Decimal


class NamedValue(BaseModel):
    name: str
    value: Decimal | int


class StorePerformance(BaseModel):
    store_id: int
    name: str
    sales: Decimal
    profit: Decimal


class TrendPoint(BaseModel):
    period: str
    revenue: Decimal
    profit: Decimal


class HourlyBucket(BaseModel):
    hour: int
    transactions: int
    amount: Decimal


class ProductProfitability(BaseModel):
    product_id: int
    name: str
    units: int
    revenue: Decimal
    margin: float


class NonSellingProduct(BaseModel):
    product_id: int
    name: str
    current: int
    previous: int
    change: float


class StoreMonthlySales(BaseModel):
    month: str
    totals: dict[str, Decimal]


# importing --------------------------------------------------------------
class ImportResult(BaseModel):
    created: int
    dry_run: bool
    errors: list[str]


class HealthStatus(BaseModel):
    status: Literal["ok"] = "ok"
    environment: str


__all__ = [name for name in globals() if not name.startswith("_")]
