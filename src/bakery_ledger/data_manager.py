"""Data access layer for Bakery Ledger.

This module provides low-level helpers that read from and write to the
``bakery_master.xlsx`` workbook. Business logic belongs elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Record types: the frozen dataclasses every other layer passes around,
   plus :class:`LedgerState`, the single owned store they live in.
3. Workbook lifecycle: opening, validating, and persisting the Excel file.
4. Sheet operations: converting between worksheet rows and records.

Journal sheets (sales, purchases, salaries, general expenses) hold both the
active period and archived days. An ``ArchiveID`` column tells them apart:
blank for the active period, the owning ``History`` row's ``DayID``
otherwise.
"""


from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import log
from .constants import (
    DEFAULT_TRAILING_DAYS,
    EXPECTED_SCHEMA_VERSION,
    PaymentStatus,
    SaleType,
    SheetName,
    UnitType,
)


CONFIG_FILE_NAME = "config.ini"

# Column layout of every sheet, in worksheet order.
SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.SETTINGS.value: ["Key", "Value"],
    SheetName.PRODUCTS.value: [
        "ProductID",
        "Name",
        "Price",
        "WholesalePrice",
        "CostPrice",
        "UnitType",
        "Barcode",
    ],
    SheetName.CUSTOMERS.value: ["CustomerID", "Name", "Phone"],
    SheetName.SUPPLIERS.value: ["SupplierID", "Name", "Phone", "Notes"],
    SheetName.EMPLOYEES.value: ["EmployeeID", "Name", "Position"],
    SheetName.EXPENSE_CATEGORIES.value: ["Name"],
    SheetName.INVENTORY.value: [
        "StockItemID",
        "Name",
        "CurrentQuantity",
        "UnitType",
        "MinThreshold",
        "LastUpdated",
    ],
    SheetName.SALES.value: [
        "SaleItemID",
        "ArchiveID",
        "OrderID",
        "CustomerNumber",
        "CustomerName",
        "CustomerID",
        "SaleType",
        "Name",
        "Price",
        "Quantity",
        "UnitType",
        "CostPrice",
        "Timestamp",
    ],
    SheetName.PURCHASE_INVOICES.value: [
        "InvoiceID",
        "ArchiveID",
        "SupplierName",
        "Timestamp",
        "PaymentStatus",
        "TotalAmount",
    ],
    SheetName.PURCHASE_ITEMS.value: [
        "PurchaseItemID",
        "InvoiceID",
        "Name",
        "Quantity",
        "Cost",
        "Total",
        "Received",
    ],
    SheetName.SALARY_PAYMENTS.value: [
        "PaymentID",
        "ArchiveID",
        "EmployeeID",
        "EmployeeName",
        "Amount",
        "Timestamp",
        "PeriodYear",
        "PeriodMonth",
        "Notes",
    ],
    SheetName.GENERAL_EXPENSES.value: [
        "ExpenseID",
        "ArchiveID",
        "Category",
        "Amount",
        "Timestamp",
        "Notes",
    ],
    SheetName.HISTORY.value: [
        "DayID",
        "Date",
        "Timestamp",
        "TotalRevenue",
        "TotalExpenses",
        "TotalItems",
    ],
}

SETTING_SCHEMA_VERSION = "SchemaVersion"
SETTING_SAVED_AT = "SavedAt"
SETTING_LOGIN_HASH = "LoginPasswordHash"
SETTING_OPERATIONS_HASH = "OperationsPasswordHash"

ZERO = Decimal("0")


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    bakery_name: str
    schema_version: str
    currency: str = "SYP"
    trailing_days: int = DEFAULT_TRAILING_DAYS


class MonthKey(NamedTuple):
    """Locale-independent calendar month used for grouping and navigation."""

    year: int
    month: int

    @classmethod
    def of(cls, moment: date) -> "MonthKey":
        return cls(moment.year, moment.month)


# ---------------------------------------------------------------------------
# Catalog records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Product:
    """Sellable catalog entry; prices are copied onto sale items at checkout."""

    product_id: str
    name: str
    price: Decimal
    wholesale_price: Decimal
    cost_price: Decimal
    unit_type: UnitType
    barcode: Optional[str] = None


@dataclass(frozen=True)
class Customer:
    customer_id: str
    name: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class Supplier:
    supplier_id: str
    name: str
    phone: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Employee:
    employee_id: str
    name: str
    position: Optional[str] = None


@dataclass(frozen=True)
class ExpenseCategory:
    name: str


@dataclass(frozen=True)
class StockItem:
    """Raw-material stock level. Quantities are signed and never floored."""

    item_id: str
    name: str
    current_quantity: Decimal
    unit_type: UnitType
    min_threshold: Decimal
    last_updated: date

    @property
    def is_low_stock(self) -> bool:
        return self.current_quantity < self.min_threshold


# ---------------------------------------------------------------------------
# Journal records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SaleItem:
    """One cart line of a completed order.

    ``price`` and ``cost_price`` are snapshots taken at checkout and do not
    follow later catalog edits. An absent ``cost_price`` counts as zero when
    computing profit.
    """

    item_id: str
    order_id: str
    customer_number: int
    sale_type: SaleType
    name: str
    price: Decimal
    quantity: Decimal
    unit_type: UnitType
    timestamp: datetime
    customer_name: Optional[str] = None
    customer_id: Optional[str] = None
    cost_price: Optional[Decimal] = None

    @property
    def date(self) -> date:
        return self.timestamp.date()

    @property
    def unit_cost(self) -> Decimal:
        return self.cost_price if self.cost_price is not None else ZERO

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    @property
    def line_profit(self) -> Decimal:
        return (self.price - self.unit_cost) * self.quantity


@dataclass(frozen=True)
class PurchaseItem:
    """One invoice line. ``received`` records whether it moved inventory when saved."""

    item_id: str
    name: str
    quantity: Decimal
    cost: Decimal
    received: bool = True

    @property
    def total(self) -> Decimal:
        return self.quantity * self.cost


@dataclass(frozen=True)
class PurchaseInvoice:
    """Supplier invoice. ``total_amount`` is always derived from the items."""

    invoice_id: str
    supplier_name: str
    timestamp: datetime
    items: Tuple[PurchaseItem, ...]
    payment_status: PaymentStatus = PaymentStatus.PAID

    @property
    def date(self) -> date:
        return self.timestamp.date()

    @property
    def total_amount(self) -> Decimal:
        return sum((item.total for item in self.items), ZERO)


@dataclass(frozen=True)
class SalaryPayment:
    payment_id: str
    employee_id: str
    employee_name: str
    amount: Decimal
    timestamp: datetime
    period: MonthKey
    notes: Optional[str] = None

    @property
    def date(self) -> date:
        return self.timestamp.date()


@dataclass(frozen=True)
class GeneralExpense:
    expense_id: str
    category: str
    amount: Decimal
    timestamp: datetime
    notes: Optional[str] = None

    @property
    def date(self) -> date:
        return self.timestamp.date()


@dataclass(frozen=True)
class ArchivedDay:
    """Immutable snapshot of one closed period."""

    day_id: str
    date: date
    timestamp: datetime
    total_revenue: Decimal
    total_expenses: Decimal
    total_items: Decimal
    items: Tuple[SaleItem, ...] = ()
    purchase_invoices: Tuple[PurchaseInvoice, ...] = ()
    salary_payments: Tuple[SalaryPayment, ...] = ()
    general_expenses: Tuple[GeneralExpense, ...] = ()


@dataclass
class LedgerState:
    """The single owned store holding every registry, journal, and the history.

    Only the business logic layer mutates it, and only while holding the
    runtime context's lock.
    """

    products: List[Product] = field(default_factory=list)
    customers: List[Customer] = field(default_factory=list)
    suppliers: List[Supplier] = field(default_factory=list)
    employees: List[Employee] = field(default_factory=list)
    expense_categories: List[ExpenseCategory] = field(default_factory=list)
    inventory: List[StockItem] = field(default_factory=list)
    sales: List[SaleItem] = field(default_factory=list)
    purchase_invoices: List[PurchaseInvoice] = field(default_factory=list)
    salary_payments: List[SalaryPayment] = field(default_factory=list)
    general_expenses: List[GeneralExpense] = field(default_factory=list)
    history: List[ArchivedDay] = field(default_factory=list)
    login_password_hash: Optional[str] = None
    operations_password_hash: Optional[str] = None
    schema_version: str = EXPECTED_SCHEMA_VERSION

    def replace_with(self, other: "LedgerState") -> None:
        """Overwrite every field with the contents of ``other`` in one step."""

        self.__dict__.update(other.__dict__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    The function expands user home references (``~``), resolves the absolute
    path, and validates that the file exists before parsing it. Validation of
    required entries happens in :func:`parse_settings`.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` entries are mandatory. ``[Defaults]`` entries fall back to
    the package defaults when absent. Relative ``DataFile`` paths are anchored
    to ``base_path`` (or the current working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to use as the anchor for relative
            ``DataFile`` entries. Defaults to :func:`Path.cwd` when omitted.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing from the
            configuration.
        ValueError: If ``TrailingDays`` is not a positive integer.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        bakery_name = parser.get("System", "BakeryName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    currency = parser.get("Defaults", "Currency", fallback="SYP")
    trailing_days = parser.getint("Defaults", "TrailingDays", fallback=DEFAULT_TRAILING_DAYS)
    if trailing_days <= 0:
        raise ValueError(f"TrailingDays must be positive, got {trailing_days}")

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        bakery_name=bakery_name,
        schema_version=schema_version,
        currency=currency,
        trailing_days=trailing_days,
    )


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def open_workbook(data_file: Path) -> Workbook:
    """Open an Excel workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the workbook.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook at ``destination`` without partial writes.

    The workbook is serialized to a temporary sibling file first and then
    moved over the target with :func:`os.replace`, so readers observe either
    the previous file or the complete new one. Parent directories are created
    on demand.

    Args:
        workbook (Workbook): Workbook instance to persist.
        destination (Path): Filesystem path that should receive the serialized
            workbook.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    staging = dest.with_name(f".{dest.name}.tmp")
    try:
        workbook.save(staging)
        os.replace(staging, dest)
    finally:
        if staging.exists():
            staging.unlink()


def new_workbook() -> Workbook:
    """Return an empty workbook carrying every sheet with bold headers."""

    workbook = openpyxl.Workbook()
    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active is not None and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    for sheet_name, columns in SHEET_COLUMNS.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font
    return workbook


def validate_layout(workbook: Workbook) -> None:
    """Check that every expected sheet exists with the expected header row.

    Raises:
        KeyError: If a sheet is missing.
        ValueError: If a header row deviates from :data:`SHEET_COLUMNS`.
    """

    for sheet_name, columns in SHEET_COLUMNS.items():
        if sheet_name not in workbook.sheetnames:
            raise KeyError(f"Missing worksheet: {sheet_name}")
        header = [cell.value for cell in workbook[sheet_name][1]][: len(columns)]
        if header != list(columns):
            raise ValueError(f"Unexpected header on sheet '{sheet_name}': {header}")


def iter_rows(workbook: Workbook, sheet_name: str) -> Iterable[Tuple[object, ...]]:
    """Yield the data rows of ``sheet_name``, skipping the header and blank rows."""

    width = len(SHEET_COLUMNS[sheet_name])
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, max_col=width, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield tuple(raw) + (None,) * (width - len(raw))


# ---------------------------------------------------------------------------
# Value conversion
# ---------------------------------------------------------------------------


def _to_decimal(raw: object, *, default: Optional[Decimal] = ZERO) -> Optional[Decimal]:
    if raw is None or raw == "":
        return default
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal value: {raw!r}") from exc


def _to_optional_str(raw: object) -> Optional[str]:
    if raw is None or raw == "":
        return None
    return str(raw)


def _to_datetime(raw: object) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if raw is None:
        raise ValueError("Missing timestamp")
    return datetime.fromisoformat(str(raw))


def _to_date(raw: object) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if raw is None:
        raise ValueError("Missing date")
    return date.fromisoformat(str(raw))


def _to_bool(raw: object, *, default: bool = True) -> bool:
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise ValueError(f"Not a boolean value: {raw!r}")


def _to_int(raw: object) -> int:
    if raw is None:
        raise ValueError("Missing integer value")
    value = Decimal(str(raw))
    if value != value.to_integral_value():
        raise ValueError(f"Not an integer value: {raw!r}")
    return int(value)


# ---------------------------------------------------------------------------
# Row serialization
# ---------------------------------------------------------------------------


def serialize_product(record: Product) -> list[object]:
    return [
        record.product_id,
        record.name,
        record.price,
        record.wholesale_price,
        record.cost_price,
        record.unit_type.value,
        record.barcode,
    ]


def deserialize_product(raw_row: Sequence[object]) -> Product:
    product_id, name, price, wholesale_price, cost_price, unit_type, barcode = raw_row
    return Product(
        product_id=str(product_id),
        name=str(name),
        price=_to_decimal(price),
        wholesale_price=_to_decimal(wholesale_price),
        cost_price=_to_decimal(cost_price),
        unit_type=UnitType(unit_type),
        barcode=_to_optional_str(barcode),
    )


def serialize_customer(record: Customer) -> list[object]:
    return [record.customer_id, record.name, record.phone]


def deserialize_customer(raw_row: Sequence[object]) -> Customer:
    customer_id, name, phone = raw_row
    return Customer(customer_id=str(customer_id), name=str(name), phone=_to_optional_str(phone))


def serialize_supplier(record: Supplier) -> list[object]:
    return [record.supplier_id, record.name, record.phone, record.notes]


def deserialize_supplier(raw_row: Sequence[object]) -> Supplier:
    supplier_id, name, phone, notes = raw_row
    return Supplier(
        supplier_id=str(supplier_id),
        name=str(name),
        phone=_to_optional_str(phone),
        notes=_to_optional_str(notes),
    )


def serialize_employee(record: Employee) -> list[object]:
    return [record.employee_id, record.name, record.position]


def deserialize_employee(raw_row: Sequence[object]) -> Employee:
    employee_id, name, position = raw_row
    return Employee(employee_id=str(employee_id), name=str(name), position=_to_optional_str(position))


def serialize_stock_item(record: StockItem) -> list[object]:
    return [
        record.item_id,
        record.name,
        record.current_quantity,
        record.unit_type.value,
        record.min_threshold,
        record.last_updated.isoformat(),
    ]


def deserialize_stock_item(raw_row: Sequence[object]) -> StockItem:
    item_id, name, quantity, unit_type, min_threshold, last_updated = raw_row
    return StockItem(
        item_id=str(item_id),
        name=str(name),
        current_quantity=_to_decimal(quantity),
        unit_type=UnitType(unit_type),
        min_threshold=_to_decimal(min_threshold),
        last_updated=_to_date(last_updated),
    )


def serialize_sale_item(record: SaleItem, archive_id: Optional[str] = None) -> list[object]:
    """Convert a sale item into the ``Sales`` column ordering.

    Timestamps are written as ISO strings so microseconds survive the round
    trip; Excel's native date serials would truncate them.
    """

    return [
        record.item_id,
        archive_id,
        record.order_id,
        record.customer_number,
        record.customer_name,
        record.customer_id,
        record.sale_type.value,
        record.name,
        record.price,
        record.quantity,
        record.unit_type.value,
        record.cost_price,
        record.timestamp.isoformat(),
    ]


def deserialize_sale_item(raw_row: Sequence[object]) -> Tuple[Optional[str], SaleItem]:
    """Convert a ``Sales`` row into ``(archive_id, SaleItem)``."""

    (
        item_id,
        archive_id,
        order_id,
        customer_number,
        customer_name,
        customer_id,
        sale_type,
        name,
        price,
        quantity,
        unit_type,
        cost_price,
        timestamp,
    ) = raw_row
    record = SaleItem(
        item_id=str(item_id),
        order_id=str(order_id),
        customer_number=_to_int(customer_number),
        sale_type=SaleType(sale_type),
        name=str(name),
        price=_to_decimal(price),
        quantity=_to_decimal(quantity),
        unit_type=UnitType(unit_type),
        timestamp=_to_datetime(timestamp),
        customer_name=_to_optional_str(customer_name),
        customer_id=_to_optional_str(customer_id),
        cost_price=_to_decimal(cost_price, default=None),
    )
    return _to_optional_str(archive_id), record


def serialize_purchase_invoice(record: PurchaseInvoice, archive_id: Optional[str] = None) -> list[object]:
    return [
        record.invoice_id,
        archive_id,
        record.supplier_name,
        record.timestamp.isoformat(),
        record.payment_status.value,
        record.total_amount,
    ]


def serialize_purchase_item(record: PurchaseItem, invoice_id: str) -> list[object]:
    return [record.item_id, invoice_id, record.name, record.quantity, record.cost, record.total, record.received]


def deserialize_purchase_item(raw_row: Sequence[object]) -> Tuple[str, PurchaseItem]:
    """Convert a ``PurchaseItems`` row into ``(invoice_id, PurchaseItem)``.

    The stored ``Total`` column is informational only; the record recomputes
    it from quantity and cost.
    """

    item_id, invoice_id, name, quantity, cost, _total, received = raw_row
    record = PurchaseItem(
        item_id=str(item_id),
        name=str(name),
        quantity=_to_decimal(quantity),
        cost=_to_decimal(cost),
        received=_to_bool(received),
    )
    return str(invoice_id), record


def deserialize_purchase_invoice(
    raw_row: Sequence[object],
    items_by_invoice: Mapping[str, Sequence[PurchaseItem]],
) -> Tuple[Optional[str], PurchaseInvoice]:
    invoice_id, archive_id, supplier_name, timestamp, payment_status, _total = raw_row
    record = PurchaseInvoice(
        invoice_id=str(invoice_id),
        supplier_name=str(supplier_name),
        timestamp=_to_datetime(timestamp),
        items=tuple(items_by_invoice.get(str(invoice_id), ())),
        payment_status=PaymentStatus(payment_status),
    )
    return _to_optional_str(archive_id), record


def serialize_salary_payment(record: SalaryPayment, archive_id: Optional[str] = None) -> list[object]:
    return [
        record.payment_id,
        archive_id,
        record.employee_id,
        record.employee_name,
        record.amount,
        record.timestamp.isoformat(),
        record.period.year,
        record.period.month,
        record.notes,
    ]


def deserialize_salary_payment(raw_row: Sequence[object]) -> Tuple[Optional[str], SalaryPayment]:
    (
        payment_id,
        archive_id,
        employee_id,
        employee_name,
        amount,
        timestamp,
        period_year,
        period_month,
        notes,
    ) = raw_row
    month = _to_int(period_month)
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid salary period month: {period_month!r}")
    record = SalaryPayment(
        payment_id=str(payment_id),
        employee_id=str(employee_id),
        employee_name=str(employee_name),
        amount=_to_decimal(amount),
        timestamp=_to_datetime(timestamp),
        period=MonthKey(_to_int(period_year), month),
        notes=_to_optional_str(notes),
    )
    return _to_optional_str(archive_id), record


def serialize_general_expense(record: GeneralExpense, archive_id: Optional[str] = None) -> list[object]:
    return [
        record.expense_id,
        archive_id,
        record.category,
        record.amount,
        record.timestamp.isoformat(),
        record.notes,
    ]


def deserialize_general_expense(raw_row: Sequence[object]) -> Tuple[Optional[str], GeneralExpense]:
    expense_id, archive_id, category, amount, timestamp, notes = raw_row
    record = GeneralExpense(
        expense_id=str(expense_id),
        category=str(category),
        amount=_to_decimal(amount),
        timestamp=_to_datetime(timestamp),
        notes=_to_optional_str(notes),
    )
    return _to_optional_str(archive_id), record


def serialize_archived_day(record: ArchivedDay) -> list[object]:
    return [
        record.day_id,
        record.date.isoformat(),
        record.timestamp.isoformat(),
        record.total_revenue,
        record.total_expenses,
        record.total_items,
    ]


# ---------------------------------------------------------------------------
# Whole-state conversion
# ---------------------------------------------------------------------------


def _split_by_archive(rows: Iterable[Tuple[Optional[str], Any]]) -> Tuple[List[Any], Dict[str, List[Any]]]:
    active: List[Any] = []
    archived: Dict[str, List[Any]] = {}
    for archive_id, record in rows:
        if archive_id is None:
            active.append(record)
        else:
            archived.setdefault(archive_id, []).append(record)
    return active, archived


def read_state(workbook: Workbook) -> LedgerState:
    """Parse every sheet of ``workbook`` into a fresh :class:`LedgerState`.

    Parsing is all-or-nothing: the function either returns a complete state
    or raises before the caller has touched anything. Archived journal rows
    are attached to their ``History`` day; rows pointing at an unknown day are
    rejected rather than silently dropped.

    Args:
        workbook (Workbook): Workbook laid out per :data:`SHEET_COLUMNS`.

    Returns:
        LedgerState: Newly built state with active journals and history.

    Raises:
        KeyError: If a sheet is missing.
        ValueError: If a header, value, or archive reference is malformed.
    """

    validate_layout(workbook)

    settings = {str(key): value for key, value in iter_rows(workbook, SheetName.SETTINGS.value)}

    purchase_items: Dict[str, List[PurchaseItem]] = {}
    for invoice_id, item in map(deserialize_purchase_item, iter_rows(workbook, SheetName.PURCHASE_ITEMS.value)):
        purchase_items.setdefault(invoice_id, []).append(item)

    active_sales, archived_sales = _split_by_archive(
        deserialize_sale_item(row) for row in iter_rows(workbook, SheetName.SALES.value)
    )
    active_invoices, archived_invoices = _split_by_archive(
        deserialize_purchase_invoice(row, purchase_items)
        for row in iter_rows(workbook, SheetName.PURCHASE_INVOICES.value)
    )
    active_salaries, archived_salaries = _split_by_archive(
        deserialize_salary_payment(row) for row in iter_rows(workbook, SheetName.SALARY_PAYMENTS.value)
    )
    active_expenses, archived_expenses = _split_by_archive(
        deserialize_general_expense(row) for row in iter_rows(workbook, SheetName.GENERAL_EXPENSES.value)
    )

    history: List[ArchivedDay] = []
    for day_id, day_date, timestamp, revenue, expenses, items in iter_rows(workbook, SheetName.HISTORY.value):
        key = str(day_id)
        history.append(
            ArchivedDay(
                day_id=key,
                date=_to_date(day_date),
                timestamp=_to_datetime(timestamp),
                total_revenue=_to_decimal(revenue),
                total_expenses=_to_decimal(expenses),
                total_items=_to_decimal(items),
                items=tuple(archived_sales.pop(key, ())),
                purchase_invoices=tuple(archived_invoices.pop(key, ())),
                salary_payments=tuple(archived_salaries.pop(key, ())),
                general_expenses=tuple(archived_expenses.pop(key, ())),
            )
        )

    orphans = set(archived_sales) | set(archived_invoices) | set(archived_salaries) | set(archived_expenses)
    if orphans:
        raise ValueError(f"Journal rows reference unknown archived days: {sorted(orphans)}")

    known_invoices = {invoice.invoice_id for invoice in active_invoices}
    known_invoices.update(invoice.invoice_id for day in history for invoice in day.purchase_invoices)
    stray_items = set(purchase_items) - known_invoices
    if stray_items:
        raise ValueError(f"Purchase items reference unknown invoices: {sorted(stray_items)}")

    state = LedgerState(
        products=[deserialize_product(row) for row in iter_rows(workbook, SheetName.PRODUCTS.value)],
        customers=[deserialize_customer(row) for row in iter_rows(workbook, SheetName.CUSTOMERS.value)],
        suppliers=[deserialize_supplier(row) for row in iter_rows(workbook, SheetName.SUPPLIERS.value)],
        employees=[deserialize_employee(row) for row in iter_rows(workbook, SheetName.EMPLOYEES.value)],
        expense_categories=[
            ExpenseCategory(name=str(name)) for (name,) in iter_rows(workbook, SheetName.EXPENSE_CATEGORIES.value)
        ],
        inventory=[deserialize_stock_item(row) for row in iter_rows(workbook, SheetName.INVENTORY.value)],
        sales=active_sales,
        purchase_invoices=active_invoices,
        salary_payments=active_salaries,
        general_expenses=active_expenses,
        history=sorted(history, key=lambda day: day.timestamp),
        login_password_hash=_to_optional_str(settings.get(SETTING_LOGIN_HASH)),
        operations_password_hash=_to_optional_str(settings.get(SETTING_OPERATIONS_HASH)),
        schema_version=str(settings.get(SETTING_SCHEMA_VERSION) or EXPECTED_SCHEMA_VERSION),
    )
    log.debug(
        "Read ledger state: %d active sales, %d archived days",
        len(state.sales),
        len(state.history),
    )
    return state


def build_workbook(state: LedgerState, *, saved_at: Optional[datetime] = None) -> Workbook:
    """Serialize ``state`` into a brand-new workbook.

    The workbook is rebuilt from scratch on every save so deleted records
    disappear from disk without row-level bookkeeping.

    Args:
        state (LedgerState): State to serialize.
        saved_at (datetime | None): Timestamp recorded in the ``Settings``
            sheet; omitted when ``None``.

    Returns:
        Workbook: In-memory workbook ready for :func:`save_workbook`.
    """

    workbook = new_workbook()

    settings_sheet = workbook[SheetName.SETTINGS.value]
    settings_sheet.append([SETTING_SCHEMA_VERSION, state.schema_version])
    if saved_at is not None:
        settings_sheet.append([SETTING_SAVED_AT, saved_at.isoformat()])
    if state.login_password_hash:
        settings_sheet.append([SETTING_LOGIN_HASH, state.login_password_hash])
    if state.operations_password_hash:
        settings_sheet.append([SETTING_OPERATIONS_HASH, state.operations_password_hash])

    for record in state.products:
        workbook[SheetName.PRODUCTS.value].append(serialize_product(record))
    for record in state.customers:
        workbook[SheetName.CUSTOMERS.value].append(serialize_customer(record))
    for record in state.suppliers:
        workbook[SheetName.SUPPLIERS.value].append(serialize_supplier(record))
    for record in state.employees:
        workbook[SheetName.EMPLOYEES.value].append(serialize_employee(record))
    for category in state.expense_categories:
        workbook[SheetName.EXPENSE_CATEGORIES.value].append([category.name])
    for record in state.inventory:
        workbook[SheetName.INVENTORY.value].append(serialize_stock_item(record))

    _append_journals(
        workbook,
        None,
        state.sales,
        state.purchase_invoices,
        state.salary_payments,
        state.general_expenses,
    )
    for day in state.history:
        workbook[SheetName.HISTORY.value].append(serialize_archived_day(day))
        _append_journals(
            workbook,
            day.day_id,
            day.items,
            day.purchase_invoices,
            day.salary_payments,
            day.general_expenses,
        )

    return workbook


def _append_journals(
    workbook: Workbook,
    archive_id: Optional[str],
    sales: Iterable[SaleItem],
    invoices: Iterable[PurchaseInvoice],
    salaries: Iterable[SalaryPayment],
    expenses: Iterable[GeneralExpense],
) -> None:
    for sale in sales:
        workbook[SheetName.SALES.value].append(serialize_sale_item(sale, archive_id))
    for invoice in invoices:
        workbook[SheetName.PURCHASE_INVOICES.value].append(serialize_purchase_invoice(invoice, archive_id))
        for item in invoice.items:
            workbook[SheetName.PURCHASE_ITEMS.value].append(serialize_purchase_item(item, invoice.invoice_id))
    for payment in salaries:
        workbook[SheetName.SALARY_PAYMENTS.value].append(serialize_salary_payment(payment, archive_id))
    for expense in expenses:
        workbook[SheetName.GENERAL_EXPENSES.value].append(serialize_general_expense(expense, archive_id))
