"""Business logic layer for Bakery Ledger.

This module contains the rule engine for the daily ledger. It owns every
mutation of :class:`~bakery_ledger.data_manager.LedgerState`: catalog
registries, the raw-material inventory, the four active-period journals
(sales, purchase invoices, salary payments, general expenses), and the
archive manager that closes a day into immutable history. It consumes the
Data Access Layer (DAL) for all I/O.

Every mutating function validates its input completely before touching the
state and performs the change while holding the context lock, so the store
has exactly one writer at a time.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from . import data_manager, log, security
from .constants import EXPECTED_SCHEMA_VERSION, PasswordKind, PaymentStatus, SaleType, UnitType
from .data_manager import (
    ArchivedDay,
    Customer,
    Employee,
    ExpenseCategory,
    GeneralExpense,
    LedgerState,
    MonthKey,
    Product,
    PurchaseInvoice,
    PurchaseItem,
    SaleItem,
    SalaryPayment,
    StockItem,
    Supplier,
)


ZERO = Decimal("0")


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced record (product, customer, invoice, ...) is unknown."""


class AuthenticationError(BusinessRuleViolation):
    """Raised when an operator password is wrong or has not been configured."""


class SystemClock:
    """Clock backed by the local wall time."""

    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return self.now().date()


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, the owned ledger state, and collaborators."""

    settings: data_manager.ConfigSettings
    state: LedgerState = field(default_factory=LedgerState)
    clock: SystemClock = field(default_factory=SystemClock)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)


@dataclass(frozen=True)
class CartLine:
    """One line of a checkout.

    Catalog lines name a ``product_id`` and may override its price with
    ``price``. Custom lines leave ``product_id`` empty and carry their own
    ``name``, ``price``, ``cost_price``, and ``unit_type``.
    """

    product_id: Optional[str]
    quantity: Decimal
    price: Optional[Decimal] = None
    name: Optional[str] = None
    cost_price: Optional[Decimal] = None
    unit_type: UnitType = UnitType.PIECE

    @classmethod
    def custom(
        cls,
        name: str,
        quantity: Decimal,
        price: Decimal,
        *,
        cost_price: Optional[Decimal] = None,
        unit_type: UnitType = UnitType.PIECE,
    ) -> "CartLine":
        return cls(None, quantity, price, name=name, cost_price=cost_price, unit_type=unit_type)


@dataclass(frozen=True)
class CheckoutCommand:
    """User intent for completing an order."""

    lines: Sequence[CartLine]
    sale_type: SaleType = SaleType.RETAIL
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PurchaseLine:
    name: str
    quantity: Decimal
    cost: Decimal


@dataclass(frozen=True)
class PurchaseInvoiceCommand:
    """User intent for saving (or re-saving) a supplier invoice."""

    supplier_name: str
    lines: Sequence[PurchaseLine]
    payment_status: PaymentStatus = PaymentStatus.PAID
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class SalaryPaymentCommand:
    """User intent for paying an employee. ``period`` defaults to the current month."""

    employee_id: str
    amount: Decimal
    period: Optional[MonthKey] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class GeneralExpenseCommand:
    category: str
    amount: Decimal
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _resolve_timestamp(context: RuntimeContext, candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` when provided, otherwise the context clock's ``now``."""

    return candidate if candidate is not None else context.clock.now()


def generate_record_id(prefix: str, *, when: datetime) -> str:
    """Generate a sortable identifier such as ``S20250101093000123456-1a2b3c``.

    The timestamp part keeps identifiers chronologically sortable; the random
    suffix separates records created within the same microsecond, which
    happens for every line of a multi-item checkout.
    """

    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}-{uuid4().hex[:6]}"


def require_positive_quantity(quantity: Decimal) -> None:
    """Validate that a quantity is strictly positive.

    Raises:
        ValueError: If ``quantity`` is zero or negative.
    """
    if quantity <= ZERO:
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be greater than zero")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


def require_positive_money(amount: Decimal) -> None:
    if amount <= ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be greater than zero")


def require_unit_quantity(quantity: Decimal, unit_type: UnitType) -> None:
    """Reject fractional quantities for items sold by the piece."""

    if unit_type is UnitType.PIECE and quantity != quantity.to_integral_value():
        log.error("Fractional quantity %s for a piece-unit item", quantity)
        raise ValueError("Piece quantities must be whole numbers")


def _require_text(value: Optional[str], label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        log.error("Validation failed: %s is required", label)
        raise BusinessRuleViolation(f"{label} is required")
    return cleaned


def _find(records: Iterable, attribute: str, key: str):
    for record in records:
        if getattr(record, attribute) == key:
            return record
    return None


# ---------------------------------------------------------------------------
# Runtime/context management
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None, *, clock: Optional[SystemClock] = None) -> RuntimeContext:
    """Load configuration settings and the ledger state from the workbook.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.
        clock (SystemClock | None): Clock collaborator; defaults to the system
            clock.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    state = data_manager.read_state(workbook)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, state=state, clock=clock or SystemClock())


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate configuration and workbook compatibility before mutating state.

    Raises:
        RuntimeError: If either the configured or the stored schema version
            differs from ``EXPECTED_SCHEMA_VERSION``.
    """
    for source, version in (
        ("configuration", context.settings.schema_version),
        ("workbook", context.state.schema_version),
    ):
        if version != EXPECTED_SCHEMA_VERSION:
            log.error(
                "Schema mismatch in %s: expected %s, found %s",
                source,
                EXPECTED_SCHEMA_VERSION,
                version,
            )
            raise RuntimeError(
                "Schema mismatch in %s: expected %s, found %s"
                % (source, EXPECTED_SCHEMA_VERSION, version)
            )

    log.debug("Schema version '%s' validated", EXPECTED_SCHEMA_VERSION)


def persist_context(context: RuntimeContext) -> None:
    """Write the whole ledger state to the configured workbook path."""
    with context.lock:
        workbook = data_manager.build_workbook(context.state, saved_at=context.clock.now())
        data_manager.save_workbook(workbook, destination=context.settings.data_file)
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the state from disk, discarding unsaved modifications.

    Returns:
        RuntimeContext: Fresh context sharing settings and clock with
            ``context``.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.open_workbook(context.settings.data_file)
    state = data_manager.read_state(workbook)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, state=state, clock=context.clock)


# ---------------------------------------------------------------------------
# Catalog registries
# ---------------------------------------------------------------------------


def add_product(
    context: RuntimeContext,
    *,
    name: str,
    price: Decimal,
    unit_type: UnitType,
    wholesale_price: Optional[Decimal] = None,
    cost_price: Decimal = ZERO,
    barcode: Optional[str] = None,
) -> Product:
    """Register a sellable product.

    Product names double as the grouping key of product performance
    reports, so they must be unique.

    Args:
        context (RuntimeContext): Active runtime context.
        name (str): Display name, unique within the catalog.
        price (Decimal): Retail unit price.
        unit_type (UnitType): Whether the product is sold by weight or piece.
        wholesale_price (Decimal | None): Wholesale unit price; defaults to
            ``price``.
        cost_price (Decimal): Unit cost used for profit reporting.
        barcode (str | None): Optional scanner code.

    Returns:
        Product: The registered product.

    Raises:
        BusinessRuleViolation: If the name is blank or already registered.
        ValueError: If any price is negative.
    """
    clean_name = _require_text(name, "Product name")
    wholesale = price if wholesale_price is None else wholesale_price
    for amount in (price, wholesale, cost_price):
        require_nonnegative_money(amount)

    with context.lock:
        if _find(context.state.products, "name", clean_name) is not None:
            log.warning("Duplicate product name '%s'", clean_name)
            raise BusinessRuleViolation(f"Product '{clean_name}' already exists")
        product = Product(
            product_id=generate_record_id("P", when=context.clock.now()),
            name=clean_name,
            price=price,
            wholesale_price=wholesale,
            cost_price=cost_price,
            unit_type=UnitType(unit_type),
            barcode=barcode or None,
        )
        context.state.products.append(product)
    log.info("Registered product '%s' (%s)", product.name, product.product_id)
    return product


def get_product(context: RuntimeContext, product_id: str) -> Product:
    """Resolve a product by id.

    Raises:
        MissingReferenceError: If ``product_id`` is not in the catalog.
    """
    product = _find(context.state.products, "product_id", product_id)
    if product is None:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError(f"Unknown product id: {product_id}")
    return product


def list_products(context: RuntimeContext) -> List[Product]:
    return list(context.state.products)


def update_product(
    context: RuntimeContext,
    product_id: str,
    *,
    name: Optional[str] = None,
    price: Optional[Decimal] = None,
    wholesale_price: Optional[Decimal] = None,
    cost_price: Optional[Decimal] = None,
    unit_type: Optional[UnitType] = None,
    barcode: Optional[str] = None,
) -> Product:
    """Edit a catalog entry in place; omitted fields keep their values.

    Sale items already recorded keep the price and cost they were sold at.

    Raises:
        MissingReferenceError: If ``product_id`` is unknown.
        BusinessRuleViolation: If the new name is blank or taken by another
            product.
        ValueError: If any price is negative.
    """
    with context.lock:
        current = get_product(context, product_id)
        changes: Dict[str, Any] = {}
        if name is not None:
            clean_name = _require_text(name, "Product name")
            other = _find(context.state.products, "name", clean_name)
            if other is not None and other.product_id != product_id:
                log.warning("Duplicate product name '%s'", clean_name)
                raise BusinessRuleViolation(f"Product '{clean_name}' already exists")
            changes["name"] = clean_name
        for field_name, amount in (
            ("price", price),
            ("wholesale_price", wholesale_price),
            ("cost_price", cost_price),
        ):
            if amount is not None:
                require_nonnegative_money(amount)
                changes[field_name] = amount
        if unit_type is not None:
            changes["unit_type"] = UnitType(unit_type)
        if barcode is not None:
            changes["barcode"] = barcode or None
        updated = replace(current, **changes)
        _replace_record(context.state.products, current, updated)
    log.info("Updated product '%s' (%s)", updated.name, ", ".join(sorted(changes)) or "no changes")
    return updated


def delete_product(context: RuntimeContext, product_id: str) -> None:
    """Remove a product. Past sale items keep their own snapshots."""
    with context.lock:
        product = get_product(context, product_id)
        context.state.products.remove(product)
    log.info("Deleted product '%s'", product_id)


def add_customer(context: RuntimeContext, *, name: str, phone: Optional[str] = None) -> Customer:
    clean_name = _require_text(name, "Customer name")
    with context.lock:
        customer = Customer(
            customer_id=generate_record_id("C", when=context.clock.now()),
            name=clean_name,
            phone=phone or None,
        )
        context.state.customers.append(customer)
    log.info("Registered customer '%s' (%s)", customer.name, customer.customer_id)
    return customer


def get_customer(context: RuntimeContext, customer_id: str) -> Customer:
    customer = _find(context.state.customers, "customer_id", customer_id)
    if customer is None:
        log.warning("Customer lookup failed for id '%s'", customer_id)
        raise MissingReferenceError(f"Unknown customer id: {customer_id}")
    return customer


def list_customers(context: RuntimeContext) -> List[Customer]:
    return list(context.state.customers)


def delete_customer(context: RuntimeContext, customer_id: str) -> None:
    with context.lock:
        customer = get_customer(context, customer_id)
        context.state.customers.remove(customer)
    log.info("Deleted customer '%s'", customer_id)


def add_supplier(
    context: RuntimeContext,
    *,
    name: str,
    phone: Optional[str] = None,
    notes: Optional[str] = None,
) -> Supplier:
    """Register a supplier; invoices reference suppliers by name, so names are unique."""
    clean_name = _require_text(name, "Supplier name")
    with context.lock:
        if _find(context.state.suppliers, "name", clean_name) is not None:
            log.warning("Duplicate supplier name '%s'", clean_name)
            raise BusinessRuleViolation(f"Supplier '{clean_name}' already exists")
        supplier = Supplier(
            supplier_id=generate_record_id("U", when=context.clock.now()),
            name=clean_name,
            phone=phone or None,
            notes=notes or None,
        )
        context.state.suppliers.append(supplier)
    log.info("Registered supplier '%s' (%s)", supplier.name, supplier.supplier_id)
    return supplier


def get_supplier(context: RuntimeContext, supplier_id: str) -> Supplier:
    supplier = _find(context.state.suppliers, "supplier_id", supplier_id)
    if supplier is None:
        log.warning("Supplier lookup failed for id '%s'", supplier_id)
        raise MissingReferenceError(f"Unknown supplier id: {supplier_id}")
    return supplier


def list_suppliers(context: RuntimeContext) -> List[Supplier]:
    return list(context.state.suppliers)


def delete_supplier(context: RuntimeContext, supplier_id: str) -> None:
    with context.lock:
        supplier = get_supplier(context, supplier_id)
        context.state.suppliers.remove(supplier)
    log.info("Deleted supplier '%s'", supplier_id)


def add_employee(context: RuntimeContext, *, name: str, position: Optional[str] = None) -> Employee:
    clean_name = _require_text(name, "Employee name")
    with context.lock:
        employee = Employee(
            employee_id=generate_record_id("E", when=context.clock.now()),
            name=clean_name,
            position=position or None,
        )
        context.state.employees.append(employee)
    log.info("Registered employee '%s' (%s)", employee.name, employee.employee_id)
    return employee


def get_employee(context: RuntimeContext, employee_id: str) -> Employee:
    employee = _find(context.state.employees, "employee_id", employee_id)
    if employee is None:
        log.warning("Employee lookup failed for id '%s'", employee_id)
        raise MissingReferenceError(f"Unknown employee id: {employee_id}")
    return employee


def list_employees(context: RuntimeContext) -> List[Employee]:
    return list(context.state.employees)


def delete_employee(context: RuntimeContext, employee_id: str) -> None:
    with context.lock:
        employee = get_employee(context, employee_id)
        context.state.employees.remove(employee)
    log.info("Deleted employee '%s'", employee_id)


def add_expense_category(context: RuntimeContext, name: str) -> ExpenseCategory:
    clean_name = _require_text(name, "Expense category")
    with context.lock:
        if _find(context.state.expense_categories, "name", clean_name) is not None:
            raise BusinessRuleViolation(f"Expense category '{clean_name}' already exists")
        category = ExpenseCategory(name=clean_name)
        context.state.expense_categories.append(category)
    log.info("Registered expense category '%s'", clean_name)
    return category


def list_expense_categories(context: RuntimeContext) -> List[ExpenseCategory]:
    return list(context.state.expense_categories)


def delete_expense_category(context: RuntimeContext, name: str) -> None:
    with context.lock:
        category = _find(context.state.expense_categories, "name", name)
        if category is None:
            raise MissingReferenceError(f"Unknown expense category: {name}")
        context.state.expense_categories.remove(category)
    log.info("Deleted expense category '%s'", name)


# ---------------------------------------------------------------------------
# Inventory store
# ---------------------------------------------------------------------------


def define_stock_item(
    context: RuntimeContext,
    *,
    name: str,
    unit_type: UnitType,
    min_threshold: Decimal = ZERO,
) -> StockItem:
    """Create a raw-material stock item at quantity zero.

    Stock names are matched case-sensitively against purchase invoice lines,
    so a second item with the same name would make receipts ambiguous.

    Raises:
        BusinessRuleViolation: If the name is blank or already defined.
        ValueError: If ``min_threshold`` is negative.
    """
    clean_name = _require_text(name, "Stock item name")
    require_nonnegative_money(min_threshold)
    with context.lock:
        if _find(context.state.inventory, "name", clean_name) is not None:
            log.warning("Duplicate stock item name '%s'", clean_name)
            raise BusinessRuleViolation(f"Stock item '{clean_name}' already exists")
        item = StockItem(
            item_id=generate_record_id("K", when=context.clock.now()),
            name=clean_name,
            current_quantity=ZERO,
            unit_type=UnitType(unit_type),
            min_threshold=min_threshold,
            last_updated=context.clock.today(),
        )
        context.state.inventory.append(item)
    log.info("Defined stock item '%s' (%s)", item.name, item.item_id)
    return item


def get_stock_item(context: RuntimeContext, item_id: str) -> StockItem:
    item = _find(context.state.inventory, "item_id", item_id)
    if item is None:
        log.warning("Stock item lookup failed for id '%s'", item_id)
        raise MissingReferenceError(f"Unknown stock item id: {item_id}")
    return item


def find_stock_item(context: RuntimeContext, name: str) -> Optional[StockItem]:
    """Return the stock item whose name matches exactly, or ``None``."""
    return _find(context.state.inventory, "name", name)


def list_stock(context: RuntimeContext) -> List[StockItem]:
    return list(context.state.inventory)


def list_low_stock(context: RuntimeContext) -> List[StockItem]:
    return [item for item in context.state.inventory if item.is_low_stock]


def apply_receipts(
    inventory: Sequence[StockItem],
    movements: Iterable[Tuple[str, Decimal]],
    *,
    today: date,
) -> Tuple[List[StockItem], List[str]]:
    """Return a new inventory list with signed quantity movements applied by name.

    The input sequence is left untouched so callers can compute the outcome
    first and commit it together with the related journal change.

    Args:
        inventory (Sequence[StockItem]): Current stock items.
        movements (Iterable[tuple[str, Decimal]]): ``(name, delta)`` pairs;
            positive deltas receive stock, negative deltas reverse a receipt.
        today (date): Value written to ``last_updated`` of touched items.

    Returns:
        tuple[list[StockItem], list[str]]: The updated inventory and the
            names that matched no stock item.
    """
    updated = list(inventory)
    index_by_name = {item.name: position for position, item in enumerate(updated)}
    untracked: List[str] = []
    for name, delta in movements:
        position = index_by_name.get(name)
        if position is None:
            untracked.append(name)
            continue
        current = updated[position]
        updated[position] = replace(
            current,
            current_quantity=current.current_quantity + delta,
            last_updated=today,
        )
    return updated, untracked


def receive_stock(context: RuntimeContext, name: str, quantity: Decimal) -> Optional[StockItem]:
    """Increase the stock item called ``name`` by ``quantity``.

    A name that matches no stock item is treated as "not tracked": nothing
    changes, a warning is logged, and ``None`` is returned.

    Raises:
        ValueError: If ``quantity`` is not positive.
    """
    require_positive_quantity(quantity)
    with context.lock:
        inventory, untracked = apply_receipts(
            context.state.inventory, [(name, quantity)], today=context.clock.today()
        )
        if untracked:
            log.warning("Received '%s' is not a tracked stock item; skipping", name)
            return None
        context.state.inventory = inventory
        item = find_stock_item(context, name)
    log.info("Received %s of '%s' (now %s)", quantity, name, item.current_quantity)
    return item


def consume_stock(context: RuntimeContext, item_id: str, quantity: Decimal) -> StockItem:
    """Decrease a stock item. The result may go below zero."""
    require_positive_quantity(quantity)
    with context.lock:
        item = get_stock_item(context, item_id)
        updated = replace(
            item,
            current_quantity=item.current_quantity - quantity,
            last_updated=context.clock.today(),
        )
        _replace_record(context.state.inventory, item, updated)
    if updated.current_quantity < ZERO:
        log.warning("Stock item '%s' is now negative (%s)", updated.name, updated.current_quantity)
    log.info("Consumed %s of '%s' (now %s)", quantity, updated.name, updated.current_quantity)
    return updated


def set_stock_quantity(context: RuntimeContext, item_id: str, new_quantity: Decimal) -> StockItem:
    """Overwrite the on-hand quantity after a physical stock count."""
    with context.lock:
        item = get_stock_item(context, item_id)
        updated = replace(item, current_quantity=new_quantity, last_updated=context.clock.today())
        _replace_record(context.state.inventory, item, updated)
    log.info("Set '%s' quantity from %s to %s", item.name, item.current_quantity, new_quantity)
    return updated


def delete_stock_item(context: RuntimeContext, item_id: str) -> None:
    with context.lock:
        item = get_stock_item(context, item_id)
        context.state.inventory.remove(item)
    log.info("Deleted stock item '%s'", item.name)


def _replace_record(records: list, old, new) -> None:
    records[records.index(old)] = new


# ---------------------------------------------------------------------------
# Sales journal
# ---------------------------------------------------------------------------


def next_customer_number(context: RuntimeContext) -> int:
    """Return the display number for the next order of the active period."""
    return max((item.customer_number for item in context.state.sales), default=0) + 1


def _price_line(
    context: RuntimeContext,
    line: CartLine,
    sale_type: SaleType,
) -> Tuple[str, Decimal, Decimal, UnitType, Optional[Decimal]]:
    """Resolve a cart line to ``(name, quantity, price, unit_type, cost_price)``."""

    require_positive_quantity(line.quantity)
    if line.product_id is None:
        name = _require_text(line.name, "Custom item name")
        if line.price is None:
            log.error("Custom item '%s' has no price", name)
            raise BusinessRuleViolation(f"Custom item '{name}' needs a price")
        unit_type = UnitType(line.unit_type)
        require_unit_quantity(line.quantity, unit_type)
        require_nonnegative_money(line.price)
        if line.cost_price is not None:
            require_nonnegative_money(line.cost_price)
        return name, line.quantity, line.price, unit_type, line.cost_price

    product = get_product(context, line.product_id)
    require_unit_quantity(line.quantity, product.unit_type)
    if line.price is not None:
        price = line.price
    elif sale_type is SaleType.WHOLESALE:
        price = product.wholesale_price
    else:
        price = product.price
    require_nonnegative_money(price)
    return product.name, line.quantity, price, product.unit_type, product.cost_price


def complete_order(context: RuntimeContext, command: CheckoutCommand) -> List[SaleItem]:
    """Validate a checkout and append one sale item per cart line.

    All lines share a fresh order id, the next customer number, the sale
    type, and the resolved customer. Unit prices come from the catalog
    (retail or wholesale tier) unless a line overrides them, and each line
    snapshots the product's cost price. Custom lines bring their own name,
    price, cost, and unit. Nothing is appended unless every line validates.

    Args:
        context (RuntimeContext): Active runtime context.
        command (CheckoutCommand): Cart contents and customer details.

    Returns:
        list[SaleItem]: The appended sale items in cart order.

    Raises:
        BusinessRuleViolation: If the cart is empty or a wholesale order has
            no customer.
        MissingReferenceError: If a product or customer id is unknown.
        ValueError: If a quantity or price fails validation.
    """
    sale_type = SaleType(command.sale_type)
    if not command.lines:
        log.error("Checkout rejected: empty cart")
        raise BusinessRuleViolation("Cannot complete an order without items")

    with context.lock:
        customer_id: Optional[str] = None
        customer_name = (command.customer_name or "").strip() or None
        if sale_type is SaleType.WHOLESALE and not command.customer_id:
            log.warning("Checkout rejected: wholesale order without a customer")
            raise BusinessRuleViolation("Wholesale sales require a registered customer")
        if command.customer_id:
            customer = get_customer(context, command.customer_id)
            customer_id = customer.customer_id
            customer_name = customer.name

        priced = [_price_line(context, line, sale_type) for line in command.lines]

        timestamp = _resolve_timestamp(context, command.timestamp)
        order_id = generate_record_id("O", when=timestamp)
        customer_number = next_customer_number(context)
        items = [
            SaleItem(
                item_id=generate_record_id("S", when=timestamp),
                order_id=order_id,
                customer_number=customer_number,
                sale_type=sale_type,
                name=name,
                price=price,
                quantity=quantity,
                unit_type=unit_type,
                timestamp=timestamp,
                customer_name=customer_name,
                customer_id=customer_id,
                cost_price=cost_price,
            )
            for name, quantity, price, unit_type, cost_price in priced
        ]
        context.state.sales.extend(items)

    log.info(
        "Completed %s order '%s' #%d with %d line(s), total=%s",
        sale_type.value,
        order_id,
        customer_number,
        len(items),
        sales_revenue(items),
    )
    return items


def list_sales(context: RuntimeContext) -> List[SaleItem]:
    return list(context.state.sales)


def delete_sale_item(context: RuntimeContext, item_id: str) -> SaleItem:
    """Remove a single active sale line. Inventory is not restored."""
    with context.lock:
        item = _find(context.state.sales, "item_id", item_id)
        if item is None:
            log.warning("Sale item lookup failed for id '%s'", item_id)
            raise MissingReferenceError(f"Unknown sale item id: {item_id}")
        context.state.sales.remove(item)
    log.info("Deleted sale item '%s' from order '%s'", item_id, item.order_id)
    return item


def delete_order(context: RuntimeContext, order_id: str) -> List[SaleItem]:
    """Remove every active sale line of ``order_id``."""
    with context.lock:
        removed = [item for item in context.state.sales if item.order_id == order_id]
        if not removed:
            log.warning("Order lookup failed for id '%s'", order_id)
            raise MissingReferenceError(f"Unknown order id: {order_id}")
        context.state.sales = [item for item in context.state.sales if item.order_id != order_id]
    log.info("Deleted order '%s' (%d line(s))", order_id, len(removed))
    return removed


# ---------------------------------------------------------------------------
# Purchase journal
# ---------------------------------------------------------------------------


def build_purchase_invoice(
    command: PurchaseInvoiceCommand,
    *,
    invoice_id: str,
    timestamp: datetime,
) -> PurchaseInvoice:
    """Validate a :class:`PurchaseInvoiceCommand` and materialize the invoice.

    Raises:
        BusinessRuleViolation: If the supplier is blank or there are no lines.
        ValueError: If a line quantity or cost fails validation.
    """
    supplier_name = _require_text(command.supplier_name, "Supplier")
    if not command.lines:
        log.error("Purchase invoice rejected: no items")
        raise BusinessRuleViolation("A purchase invoice needs at least one item")
    items = []
    for line in command.lines:
        name = _require_text(line.name, "Purchase item name")
        require_positive_quantity(line.quantity)
        require_nonnegative_money(line.cost)
        items.append(
            PurchaseItem(
                item_id=generate_record_id("I", when=timestamp),
                name=name,
                quantity=line.quantity,
                cost=line.cost,
            )
        )
    return PurchaseInvoice(
        invoice_id=invoice_id,
        supplier_name=supplier_name,
        timestamp=timestamp,
        items=tuple(items),
        payment_status=PaymentStatus(command.payment_status),
    )


def _require_supplier(context: RuntimeContext, supplier_name: str) -> None:
    if _find(context.state.suppliers, "name", supplier_name.strip()) is None:
        log.warning("Purchase invoice references unknown supplier '%s'", supplier_name)
        raise MissingReferenceError(f"Unknown supplier: {supplier_name}")


def _mark_received(invoice: PurchaseInvoice, untracked: Sequence[str]) -> PurchaseInvoice:
    missing = set(untracked)
    items = tuple(replace(item, received=item.name not in missing) for item in invoice.items)
    return replace(invoice, items=items)


def _log_untracked(invoice: PurchaseInvoice, untracked: Sequence[str]) -> None:
    for name in dict.fromkeys(untracked):
        log.warning(
            "Purchase invoice '%s' line '%s' matches no stock item; inventory not updated",
            invoice.invoice_id,
            name,
        )


def add_purchase_invoice(context: RuntimeContext, command: PurchaseInvoiceCommand) -> PurchaseInvoice:
    """Save a supplier invoice and receive its lines into inventory.

    The journal append and the inventory receipt are computed first and then
    committed together, so either both happen or neither does. Lines whose
    name matches no stock item are logged and otherwise ignored.

    Args:
        context (RuntimeContext): Active runtime context.
        command (PurchaseInvoiceCommand): Supplier, lines, and payment status.

    Returns:
        PurchaseInvoice: The stored invoice.

    Raises:
        BusinessRuleViolation: If the invoice fails validation.
        MissingReferenceError: If the supplier is not registered.
        ValueError: If a line quantity or cost fails validation.
    """
    with context.lock:
        _require_supplier(context, command.supplier_name)
        timestamp = _resolve_timestamp(context, command.timestamp)
        invoice = build_purchase_invoice(
            command,
            invoice_id=generate_record_id("B", when=timestamp),
            timestamp=timestamp,
        )
        inventory, untracked = apply_receipts(
            context.state.inventory,
            ((item.name, item.quantity) for item in invoice.items),
            today=context.clock.today(),
        )
        context.state.inventory = inventory
        invoice = _mark_received(invoice, untracked)
        context.state.purchase_invoices = [*context.state.purchase_invoices, invoice]

    _log_untracked(invoice, untracked)
    log.info(
        "Recorded purchase invoice '%s' from '%s' (total=%s, %s)",
        invoice.invoice_id,
        invoice.supplier_name,
        invoice.total_amount,
        invoice.payment_status.value,
    )
    return invoice


def get_purchase_invoice(context: RuntimeContext, invoice_id: str) -> PurchaseInvoice:
    invoice = _find(context.state.purchase_invoices, "invoice_id", invoice_id)
    if invoice is None:
        log.warning("Purchase invoice lookup failed for id '%s'", invoice_id)
        raise MissingReferenceError(f"Unknown purchase invoice id: {invoice_id}")
    return invoice


def update_purchase_invoice(
    context: RuntimeContext,
    invoice_id: str,
    command: PurchaseInvoiceCommand,
) -> PurchaseInvoice:
    """Replace an active invoice's contents and re-apply its inventory effect.

    The previous receipt is reversed before the new item list is received,
    so inventory always reflects the net effect of the invoice's current
    lines. Only lines that actually moved stock when saved are reversed.
    The invoice keeps its id and original timestamp.

    Raises:
        MissingReferenceError: If the invoice or supplier is unknown.
        BusinessRuleViolation: If the new contents fail validation.
    """
    with context.lock:
        existing = get_purchase_invoice(context, invoice_id)
        _require_supplier(context, command.supplier_name)
        invoice = build_purchase_invoice(command, invoice_id=existing.invoice_id, timestamp=existing.timestamp)
        today = context.clock.today()
        inventory, _ = apply_receipts(
            context.state.inventory,
            ((item.name, -item.quantity) for item in existing.items if item.received),
            today=today,
        )
        inventory, untracked = apply_receipts(
            inventory,
            ((item.name, item.quantity) for item in invoice.items),
            today=today,
        )
        invoice = _mark_received(invoice, untracked)
        invoices = list(context.state.purchase_invoices)
        _replace_record(invoices, existing, invoice)
        context.state.inventory = inventory
        context.state.purchase_invoices = invoices

    _log_untracked(invoice, untracked)
    log.info(
        "Updated purchase invoice '%s' (total %s -> %s)",
        invoice_id,
        existing.total_amount,
        invoice.total_amount,
    )
    return invoice


def delete_purchase_invoice(context: RuntimeContext, invoice_id: str) -> PurchaseInvoice:
    """Remove an active invoice. Received stock is not reversed."""
    with context.lock:
        invoice = get_purchase_invoice(context, invoice_id)
        context.state.purchase_invoices.remove(invoice)
    log.info("Deleted purchase invoice '%s'", invoice_id)
    return invoice


def list_purchase_invoices(context: RuntimeContext) -> List[PurchaseInvoice]:
    return list(context.state.purchase_invoices)


# ---------------------------------------------------------------------------
# Salary and general expense journals
# ---------------------------------------------------------------------------


def record_salary_payment(context: RuntimeContext, command: SalaryPaymentCommand) -> SalaryPayment:
    """Append a salary payment for a registered employee.

    The employee's name is snapshotted so later renames or deletions do not
    rewrite payroll history.

    Raises:
        MissingReferenceError: If the employee is unknown.
        ValueError: If ``amount`` is not positive.
    """
    require_positive_money(command.amount)
    with context.lock:
        employee = get_employee(context, command.employee_id)
        timestamp = _resolve_timestamp(context, command.timestamp)
        payment = SalaryPayment(
            payment_id=generate_record_id("W", when=timestamp),
            employee_id=employee.employee_id,
            employee_name=employee.name,
            amount=command.amount,
            timestamp=timestamp,
            period=command.period or MonthKey.of(timestamp),
            notes=command.notes or None,
        )
        context.state.salary_payments.append(payment)
    log.info(
        "Recorded salary payment '%s' to '%s' (amount=%s, period=%04d-%02d)",
        payment.payment_id,
        payment.employee_name,
        payment.amount,
        payment.period.year,
        payment.period.month,
    )
    return payment


def delete_salary_payment(context: RuntimeContext, payment_id: str) -> SalaryPayment:
    with context.lock:
        payment = _find(context.state.salary_payments, "payment_id", payment_id)
        if payment is None:
            raise MissingReferenceError(f"Unknown salary payment id: {payment_id}")
        context.state.salary_payments.remove(payment)
    log.info("Deleted salary payment '%s'", payment_id)
    return payment


def list_salary_payments(context: RuntimeContext) -> List[SalaryPayment]:
    return list(context.state.salary_payments)


def record_general_expense(context: RuntimeContext, command: GeneralExpenseCommand) -> GeneralExpense:
    """Append a general expense filed under a registered category.

    Raises:
        MissingReferenceError: If the category is not registered.
        ValueError: If ``amount`` is not positive.
    """
    require_positive_money(command.amount)
    with context.lock:
        category = _find(context.state.expense_categories, "name", (command.category or "").strip())
        if category is None:
            log.warning("General expense references unknown category '%s'", command.category)
            raise MissingReferenceError(f"Unknown expense category: {command.category}")
        timestamp = _resolve_timestamp(context, command.timestamp)
        expense = GeneralExpense(
            expense_id=generate_record_id("X", when=timestamp),
            category=category.name,
            amount=command.amount,
            timestamp=timestamp,
            notes=command.notes or None,
        )
        context.state.general_expenses.append(expense)
    log.info("Recorded general expense '%s' (%s, amount=%s)", expense.expense_id, expense.category, expense.amount)
    return expense


def delete_general_expense(context: RuntimeContext, expense_id: str) -> GeneralExpense:
    with context.lock:
        expense = _find(context.state.general_expenses, "expense_id", expense_id)
        if expense is None:
            raise MissingReferenceError(f"Unknown general expense id: {expense_id}")
        context.state.general_expenses.remove(expense)
    log.info("Deleted general expense '%s'", expense_id)
    return expense


def list_general_expenses(context: RuntimeContext) -> List[GeneralExpense]:
    return list(context.state.general_expenses)


# ---------------------------------------------------------------------------
# Journal totals (shared with the reporting layer)
# ---------------------------------------------------------------------------


def sales_revenue(items: Iterable[SaleItem]) -> Decimal:
    return sum((item.line_total for item in items), ZERO)


def sales_quantity(items: Iterable[SaleItem]) -> Decimal:
    return sum((item.quantity for item in items), ZERO)


def sales_profit(items: Iterable[SaleItem]) -> Decimal:
    return sum((item.line_profit for item in items), ZERO)


def purchases_total(invoices: Iterable[PurchaseInvoice]) -> Decimal:
    return sum((invoice.total_amount for invoice in invoices), ZERO)


def salaries_total(payments: Iterable[SalaryPayment]) -> Decimal:
    return sum((payment.amount for payment in payments), ZERO)


def general_expenses_total(expenses: Iterable[GeneralExpense]) -> Decimal:
    return sum((expense.amount for expense in expenses), ZERO)


# ---------------------------------------------------------------------------
# Archive manager
# ---------------------------------------------------------------------------


def close_day(context: RuntimeContext) -> ArchivedDay:
    """Archive the active period and start a new, empty one.

    The four journals are snapshotted by value into a new
    :class:`ArchivedDay` appended to history, then cleared. Inventory and
    the catalog registries carry over unchanged.

    Args:
        context (RuntimeContext): Active runtime context.

    Returns:
        ArchivedDay: The newly archived day.

    Raises:
        BusinessRuleViolation: If all four journals are empty.
    """
    with context.lock:
        state = context.state
        if not (state.sales or state.purchase_invoices or state.salary_payments or state.general_expenses):
            log.warning("Close-day requested with empty journals")
            raise BusinessRuleViolation("There is nothing to archive for the current period")

        sales = tuple(state.sales)
        invoices = tuple(state.purchase_invoices)
        salaries = tuple(state.salary_payments)
        expenses = tuple(state.general_expenses)
        timestamp = context.clock.now()
        day = ArchivedDay(
            day_id=generate_record_id("D", when=timestamp),
            date=context.clock.today(),
            timestamp=timestamp,
            total_revenue=sales_revenue(sales),
            total_expenses=purchases_total(invoices) + salaries_total(salaries) + general_expenses_total(expenses),
            total_items=sales_quantity(sales),
            items=sales,
            purchase_invoices=invoices,
            salary_payments=salaries,
            general_expenses=expenses,
        )
        state.history.append(day)
        state.sales = []
        state.purchase_invoices = []
        state.salary_payments = []
        state.general_expenses = []

    log.info(
        "Closed day '%s' (%s): revenue=%s expenses=%s items=%s",
        day.day_id,
        day.date.isoformat(),
        day.total_revenue,
        day.total_expenses,
        day.total_items,
    )
    return day


def list_history(context: RuntimeContext) -> List[ArchivedDay]:
    return list(context.state.history)


def clear_history(context: RuntimeContext, operations_password: str) -> int:
    """Irreversibly delete every archived day after password confirmation.

    Returns:
        int: Number of archived days removed.

    Raises:
        AuthenticationError: If the operations password does not match.
    """
    with context.lock:
        require_password(context, PasswordKind.OPERATIONS, operations_password)
        removed = len(context.state.history)
        context.state.history = []
    log.warning("Cleared sales history (%d archived day(s) removed)", removed)
    return removed


# ---------------------------------------------------------------------------
# Operator passwords
# ---------------------------------------------------------------------------


def _password_hash(context: RuntimeContext, kind: PasswordKind) -> Optional[str]:
    if PasswordKind(kind) is PasswordKind.LOGIN:
        return context.state.login_password_hash
    return context.state.operations_password_hash


def verify_password(context: RuntimeContext, kind: PasswordKind, candidate: str) -> bool:
    return security.check_password(candidate, _password_hash(context, kind))


def require_password(context: RuntimeContext, kind: PasswordKind, candidate: str) -> None:
    """Raise :class:`AuthenticationError` unless ``candidate`` matches.

    Failures change nothing and may be retried without limit.
    """
    kind = PasswordKind(kind)
    if _password_hash(context, kind) is None:
        log.warning("The %s password has not been configured", kind.value)
        raise AuthenticationError(f"The {kind.value} password has not been configured")
    if not verify_password(context, kind, candidate):
        log.warning("Rejected %s password attempt", kind.value)
        raise AuthenticationError(f"Incorrect {kind.value} password")


def set_password(
    context: RuntimeContext,
    kind: PasswordKind,
    new_password: str,
    *,
    current_password: Optional[str] = None,
) -> None:
    """Store a new bcrypt hash for ``kind``.

    When a password is already configured, ``current_password`` must match
    it. Only the hash is kept in the state.

    Raises:
        AuthenticationError: If the current password is missing or wrong.
        security.PasswordPolicyError: If the new password is too short.
    """
    kind = PasswordKind(kind)
    with context.lock:
        if _password_hash(context, kind) is not None:
            require_password(context, kind, current_password or "")
        hashed = security.hash_password(new_password)
        if kind is PasswordKind.LOGIN:
            context.state.login_password_hash = hashed
        else:
            context.state.operations_password_hash = hashed
    log.info("Updated the %s password", kind.value)
