"""Bulk product import and export through Excel (.xls) and CSV files."""
from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from io import BytesIO, StringIO
from typing import Any, Dict, Iterable, List, Optional, Sequence

import xlrd
import xlwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .crud import create_category, create_product, create_unit, list_products
from .models import Category, Store, Tenant, Unit
from .sales import CENTS
from .tenants import ensure_within_limit

logger = logging.getLogger(__name__)

TEMPLATE_SHEET = "Template"
INSTRUCTIONS_SHEET = "Instructions"

# (field, column label, required)
COLUMNS: Sequence[tuple[str, str, bool]] = (
    ("name", "Name", True),
    ("description", "Description", False),
    ("purchase_price", "Purchase Price", True),
    ("sale_price", "Sale Price", True),
    ("category", "Category", True),
    ("unit", "Unit", True),
    ("min_stock", "Min Stock", True),
    ("max_stock", "Max Stock", False),
    ("store", "Store", False),
    ("initial_stock", "Initial Stock", True),
    ("color", "Color", False),
    ("size", "Size", False),
)
TEMPLATE_HEADERS = [f"{label}*" if required else label for _, label, required in COLUMNS]

INSTRUCTIONS = (
    "Fill one product per row in the Template sheet.",
    "Columns marked with * are required.",
    "Prices must be numbers greater than 0.",
    "Min Stock and Initial Stock must be whole numbers greater than or equal to 0.",
    "Max Stock is optional; when present it must be greater than or equal to Min Stock.",
    "Categories and units that do not exist yet are created automatically.",
    "Store must match the name of an existing store and is required when Initial Stock is above 0.",
)

_HEADER_STYLE = "font: bold on; align: horiz center, vert center;" \
    "borders: left thin, right thin, top thin, bottom thin"


def _normalize_key(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).replace("\ufeff", "").strip().lower()
    return text.rstrip("*").strip()


_LABEL_TO_FIELD: Dict[str, str] = {_normalize_key(label): name for name, label, _ in COLUMNS}
_REQUIRED_LABELS: Dict[str, str] = {
    _normalize_key(label): f"{label}*" for _, label, required in COLUMNS if required
}


@dataclass
class ImportRow:
    """Raw cell values of one spreadsheet row, keyed by field name."""

    row_number: int
    values: Dict[str, str] = field(default_factory=dict)

    def get(self, name: str) -> str:
        return (self.values.get(name) or "").strip()


@dataclass
class ProductDraft:
    row_number: int
    name: str
    description: Optional[str]
    purchase_price: Decimal
    sale_price: Decimal
    category: str
    unit: str
    min_stock: int
    max_stock: Optional[int]
    initial_stock: int
    store: Optional[str]
    color: Optional[str]
    size: Optional[str]


def _check_headers(labels: Iterable[Any]) -> None:
    present = {_normalize_key(label) for label in labels}
    missing = [header for key, header in _REQUIRED_LABELS.items() if key not in present]
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(missing)}")


def _record(row_number: int, normalized: Dict[str, Any]) -> Optional[ImportRow]:
    if not any(str(value or "").strip() for value in normalized.values()):
        return None
    values = {
        _LABEL_TO_FIELD[key]: str(value or "").strip()
        for key, value in normalized.items()
        if key in _LABEL_TO_FIELD
    }
    return ImportRow(row_number=row_number, values=values)


def parse_csv(text: str) -> List[ImportRow]:
    reader = csv.DictReader(StringIO(text))
    if reader.fieldnames is None:
        raise ValueError("Missing header row")
    _check_headers(reader.fieldnames)

    rows: List[ImportRow] = []
    for row_number, row in enumerate(reader, start=2):
        normalized = {_normalize_key(key): value for key, value in row.items() if key is not None}
        record = _record(row_number, normalized)
        if record is not None:
            rows.append(record)
    return rows


def parse_workbook(data: bytes) -> List[ImportRow]:
    try:
        workbook = xlrd.open_workbook(file_contents=data)
    except Exception as exc:
        raise ValueError("Invalid XLS file") from exc
    names = workbook.sheet_names()
    if not names:
        raise ValueError("Missing worksheet")
    sheet_name = next((name for name in names if name != INSTRUCTIONS_SHEET), names[0])
    sheet = workbook.sheet_by_name(sheet_name)
    if sheet.nrows == 0:
        raise ValueError("Missing header row")
    header_labels = [str(sheet.cell_value(0, col) or "").strip() for col in range(sheet.ncols)]
    _check_headers(header_labels)

    rows: List[ImportRow] = []
    for row_index in range(1, sheet.nrows):
        normalized: Dict[str, Any] = {}
        for col_index, label in enumerate(header_labels):
            key = _normalize_key(label)
            if not key:
                continue
            cell = sheet.cell(row_index, col_index)
            if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
                processed = ""
            elif cell.ctype == xlrd.XL_CELL_NUMBER:
                value = float(cell.value)
                processed = str(int(value)) if value.is_integer() else str(value)
            else:
                processed = str(cell.value).strip()
            normalized[key] = processed
        record = _record(row_index + 1, normalized)
        if record is not None:
            rows.append(record)
    return rows


def parse_upload(filename: str, data: bytes) -> List[ImportRow]:
    """Dispatch on the file extension; anything that is not ``.xls`` is read as CSV."""

    if not data:
        raise ValueError("Empty file")
    if filename.lower().endswith(".xls"):
        return parse_workbook(data)
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return parse_workbook(data)
    return parse_csv(text)


def _decimal(value: str) -> Decimal:
    try:
        number = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(value) from exc
    if not number.is_finite():
        raise ValueError(value)
    return number


def _integer(value: str) -> int:
    number = _decimal(value)
    if number != number.to_integral_value():
        raise ValueError(value)
    return int(number)


def validate_row(row: ImportRow) -> tuple[Optional[ProductDraft], List[str]]:
    errors: List[str] = []
    prefix = f"Row {row.row_number}:"

    for name, label, required in COLUMNS:
        if required and not row.get(name):
            errors.append(f"{prefix} {label} is required")

    name = row.get("name")
    if name and len(name) < 2:
        errors.append(f"{prefix} Name must have at least 2 characters")

    prices: Dict[str, Decimal] = {}
    for key, label in (("purchase_price", "Purchase Price"), ("sale_price", "Sale Price")):
        if not row.get(key):
            continue
        try:
            prices[key] = _decimal(row.get(key)).quantize(CENTS, rounding=ROUND_HALF_UP)
        except ValueError:
            errors.append(f"{prefix} {label} must be a number")
            continue
        if prices[key] <= 0:
            errors.append(f"{prefix} {label} must be greater than 0")

    stocks: Dict[str, int] = {}
    for key, label in (
        ("min_stock", "Min Stock"),
        ("max_stock", "Max Stock"),
        ("initial_stock", "Initial Stock"),
    ):
        if not row.get(key):
            continue
        try:
            stocks[key] = _integer(row.get(key))
        except ValueError:
            errors.append(f"{prefix} {label} must be a whole number")
            continue
        if key == "max_stock" and stocks[key] <= 0:
            errors.append(f"{prefix} Max Stock must be greater than 0")
        elif stocks[key] < 0:
            errors.append(f"{prefix} {label} cannot be negative")

    max_stock = stocks.get("max_stock")
    if max_stock is not None and "min_stock" in stocks and max_stock < stocks["min_stock"]:
        errors.append(f"{prefix} Max Stock must be greater than or equal to Min Stock")

    if stocks.get("initial_stock", 0) > 0 and not row.get("store"):
        errors.append(f"{prefix} Store is required when Initial Stock is above 0")

    if errors:
        return None, errors
    return (
        ProductDraft(
            row_number=row.row_number,
            name=name,
            description=row.get("description") or None,
            purchase_price=prices["purchase_price"],
            sale_price=prices["sale_price"],
            category=row.get("category"),
            unit=row.get("unit"),
            min_stock=stocks["min_stock"],
            max_stock=max_stock,
            initial_stock=stocks["initial_stock"],
            store=row.get("store") or None,
            color=row.get("color") or None,
            size=row.get("size") or None,
        ),
        [],
    )


async def _name_index(session: AsyncSession, model: type, tenant_id: int) -> Dict[str, int]:
    result = await session.execute(select(model.id, model.name).where(model.tenant_id == tenant_id))
    return {row.name.strip().lower(): row.id for row in result.all()}


async def import_products(
    session: AsyncSession,
    tenant: Tenant,
    rows: Sequence[ImportRow],
    *,
    dry_run: bool = False,
    user_id: Optional[int] = None,
) -> schemas.ImportResult:
    """Validate ``rows`` and create one product per row.

    Nothing is written when any row is invalid or ``dry_run`` is set; the
    result then reports how many products would have been created.
    """

    if not rows:
        raise ValueError("The file does not contain any product rows")

    stores = await _name_index(session, Store, tenant.id)
    drafts: List[ProductDraft] = []
    errors: List[str] = []
    for row in rows:
        draft, row_errors = validate_row(row)
        if draft is not None and draft.store and draft.store.lower() not in stores:
            row_errors = [f"Row {row.row_number}: Store '{draft.store}' does not exist"]
            draft = None
        errors.extend(row_errors)
        if draft is not None:
            drafts.append(draft)

    if errors or dry_run:
        return schemas.ImportResult(created=0 if errors else len(drafts), dry_run=dry_run, errors=errors)

    await ensure_within_limit(session, tenant, "products", adding=len(drafts))
    categories = await _name_index(session, Category, tenant.id)
    units = await _name_index(session, Unit, tenant.id)

    for draft in drafts:
        category_key = draft.category.lower()
        if category_key not in categories:
            category = await create_category(
                session, tenant.id, schemas.CategoryCreate(name=draft.category)
            )
            categories[category_key] = category.id
        unit_key = draft.unit.lower()
        if unit_key not in units:
            unit = await create_unit(
                session,
                tenant.id,
                schemas.UnitCreate(name=draft.unit, abbreviation=draft.unit[:16]),
            )
            units[unit_key] = unit.id

        await create_product(
            session,
            tenant,
            schemas.ProductCreate(
                name=draft.name,
                description=draft.description,
                category_id=categories[category_key],
                unit_id=units[unit_key],
                purchase_price=draft.purchase_price,
                sale_price=draft.sale_price,
                min_stock=draft.min_stock,
                max_stock=draft.max_stock,
                color=draft.color,
                size=draft.size,
                initial_stock=draft.initial_stock,
                store_id=stores[draft.store.lower()] if draft.store else None,
            ),
            user_id=user_id,
        )
    logger.info("Imported %s products into tenant %s", len(drafts), tenant.id)
    return schemas.ImportResult(created=len(drafts), dry_run=False, errors=[])


def export_template() -> bytes:
    workbook = xlwt.Workbook()
    sheet = workbook.add_sheet(TEMPLATE_SHEET)
    header_style = xlwt.easyxf(_HEADER_STYLE)
    for col_index, header in enumerate(TEMPLATE_HEADERS):
        sheet.col(col_index).width = 256 * max(14, len(header) + 4)
        sheet.write(0, col_index, header, header_style)

    instructions = workbook.add_sheet(INSTRUCTIONS_SHEET)
    instructions.col(0).width = 256 * 90
    instructions.write(0, 0, "How to import products", xlwt.easyxf("font: bold on"))
    for offset, line in enumerate(INSTRUCTIONS, start=2):
        instructions.write(offset, 0, line)

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _rows_to_xls(fieldnames: Sequence[str], rows: Iterable[Dict[str, Any]]) -> bytes:
    workbook = xlwt.Workbook()
    sheet = workbook.add_sheet("Products")
    header_style = xlwt.easyxf(_HEADER_STYLE)
    for col_index, name in enumerate(fieldnames):
        sheet.write(0, col_index, name, header_style)
    for row_index, row in enumerate(rows, start=1):
        for col_index, name in enumerate(fieldnames):
            value = row.get(name)
            if value is None:
                value = ""
            elif isinstance(value, Decimal):
                value = float(value)
            sheet.write(row_index, col_index, value)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


async def export_products(
    session: AsyncSession, tenant_id: int, *, include_purchase_price: bool = True
) -> bytes:
    fieldnames = ["Name", "Category", "Unit", "Sale Price", "Min Stock", "Max Stock", "Stock"]
    if include_purchase_price:
        fieldnames.insert(3, "Purchase Price")
    rows = []
    for product in await list_products(session, tenant_id):
        rows.append(
            {
                "Name": product.name,
                "Category": product.category.name if product.category else "",
                "Unit": product.unit.name if product.unit else "",
                "Purchase Price": product.purchase_price,
                "Sale Price": product.sale_price,
                "Min Stock": product.min_stock,
                "Max Stock": product.max_stock,
                "Stock": sum(balance.quantity for balance in product.inventory),
            }
        )
    return _rows_to_xls(fieldnames, rows)


__all__ = [
    "COLUMNS",
    "ImportRow",
    "ProductDraft",
    "TEMPLATE_HEADERS",
    "export_products",
    "export_template",
    "import_products",
    "parse_csv",
    "parse_upload",
    "parse_workbook",
    "validate_row",
]
