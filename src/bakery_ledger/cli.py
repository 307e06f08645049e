"""Command-line entry points for the Bakery Ledger toolkit.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the command objects consumed by the business
layer. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end that wants to expose
the package capabilities.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, exports, log, reporting, set_console_level
from .constants import FilterKind, PasswordKind, PaymentStatus, SaleType, UnitType
from .data_manager import ConfigSettings, MonthKey


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    persist: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="bakery-ledger",
        description="Command-line tools for the Bakery Ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Echo informational ledger log messages to stderr.",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def _command(
    name: str,
    help_text: str,
    add_arguments: Callable[[argparse.ArgumentParser], None],
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    *,
    persist: bool = True,
) -> CommandSpec:
    """Build a :class:`CommandSpec` whose registrar adds ``name`` with ``add_arguments``."""

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        add_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute, persist=persist)


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales, purchases, and close-day."""
    specs = {
        "add-product": register_add_product_command(),
        "update-product": register_update_product_command(),
        "add-customer": register_add_customer_command(),
        "add-supplier": register_add_supplier_command(),
        "add-employee": register_add_employee_command(),
        "add-category": register_add_category_command(),
        "define-stock": register_define_stock_command(),
        "receive-stock": register_receive_stock_command(),
        "consume-stock": register_consume_stock_command(),
        "set-stock": register_set_stock_command(),
        "sale": register_sale_command(),
        "delete-order": register_delete_order_command(),
        "purchase": register_purchase_command(),
        "salary": register_salary_command(),
        "expense": register_expense_command(),
        "close-day": register_close_day_command(),
        "clear-history": register_clear_history_command(),
        "set-password": register_set_password_command(),
        "import-backup": register_import_backup_command(),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports and exports."""
    specs = {
        "totals": register_totals_command(),
        "products": register_products_command(),
        "stock": register_stock_command(),
        "history": register_history_command(),
        "search": register_search_command(),
        "export-backup": register_export_backup_command(),
        "export-report": register_export_report_command(),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Write command registration
# ---------------------------------------------------------------------------


def register_add_product_command() -> CommandSpec:
    """Register the parser and executor for ``add-product``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--price", required=True)
        parser.add_argument("--unit", choices=[member.value for member in UnitType], required=True)
        parser.add_argument("--wholesale-price", default=None)
        parser.add_argument("--cost-price", default="0")
        parser.add_argument("--barcode", default=None)

    return _command("add-product", "Register a product in the catalog.", arguments, run_add_product)


def register_update_product_command() -> CommandSpec:
    """Register the parser and executor for ``update-product``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--name", default=None)
        parser.add_argument("--price", default=None)
        parser.add_argument("--unit", choices=[member.value for member in UnitType], default=None)
        parser.add_argument("--wholesale-price", default=None)
        parser.add_argument("--cost-price", default=None)
        parser.add_argument("--barcode", default=None)

    return _command(
        "update-product",
        "Edit a catalog product; past sales keep their prices.",
        arguments,
        run_update_product,
    )


def register_add_customer_command() -> CommandSpec:
    """Register the parser and executor for ``add-customer``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--phone", default=None)

    return _command("add-customer", "Register a wholesale customer.", arguments, run_add_customer)


def register_add_supplier_command() -> CommandSpec:
    """Register the parser and executor for ``add-supplier``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--phone", default=None)
        parser.add_argument("--notes", default=None)

    return _command("add-supplier", "Register a supplier.", arguments, run_add_supplier)


def register_add_employee_command() -> CommandSpec:
    """Register the parser and executor for ``add-employee``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--position", default=None)

    return _command("add-employee", "Register an employee.", arguments, run_add_employee)


def register_add_category_command() -> CommandSpec:
    """Register the parser and executor for ``add-category``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)

    return _command("add-category", "Register a general expense category.", arguments, run_add_category)


def register_define_stock_command() -> CommandSpec:
    """Register the parser and executor for ``define-stock``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--unit", choices=[member.value for member in UnitType], required=True)
        parser.add_argument("--min-threshold", default="0")

    return _command("define-stock", "Define a raw-material stock item.", arguments, run_define_stock)


def register_receive_stock_command() -> CommandSpec:
    """Register the parser and executor for ``receive-stock``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--quantity", required=True)

    return _command("receive-stock", "Add received quantity to a stock item.", arguments, run_receive_stock)


def register_consume_stock_command() -> CommandSpec:
    """Register the parser and executor for ``consume-stock``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--item-id", required=True)
        parser.add_argument("--quantity", required=True)

    return _command("consume-stock", "Record consumption of a stock item.", arguments, run_consume_stock)


def register_set_stock_command() -> CommandSpec:
    """Register the parser and executor for ``set-stock``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--item-id", required=True)
        parser.add_argument("--quantity", required=True)

    return _command("set-stock", "Overwrite a stock item's quantity after a count.", arguments, run_set_stock)


def register_sale_command() -> CommandSpec:
    """Register the parser and executor for ``sale``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            required=True,
            help=(
                "Cart line as PRODUCT_ID:QUANTITY[:PRICE] or custom:NAME:QUANTITY:PRICE[:COST[:UNIT]]; "
                "repeat for more lines."
            ),
        )
        parser.add_argument(
            "--sale-type",
            choices=[member.value for member in SaleType],
            default=SaleType.RETAIL.value,
        )
        parser.add_argument("--customer-id", default=None)
        parser.add_argument("--customer-name", default=None)

    return _command("sale", "Complete an order.", arguments, run_sale)


def register_delete_order_command() -> CommandSpec:
    """Register the parser and executor for ``delete-order``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--order-id", required=True)

    return _command("delete-order", "Delete every line of an active order.", arguments, run_delete_order)


def register_purchase_command() -> CommandSpec:
    """Register the parser and executor for ``purchase``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--supplier", required=True)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            required=True,
            help="Invoice line as NAME:QUANTITY:COST; repeat for more lines.",
        )
        parser.add_argument(
            "--payment-status",
            choices=[member.value for member in PaymentStatus],
            default=PaymentStatus.PAID.value,
        )

    return _command("purchase", "Record a supplier invoice.", arguments, run_purchase)


def register_salary_command() -> CommandSpec:
    """Register the parser and executor for ``salary``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--employee-id", required=True)
        parser.add_argument("--amount", required=True)
        parser.add_argument("--period", default=None, help="Salary month as YYYY-MM.")
        parser.add_argument("--notes", default=None)

    return _command("salary", "Record a salary payment.", arguments, run_salary)


def register_expense_command() -> CommandSpec:
    """Register the parser and executor for ``expense``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--category", required=True)
        parser.add_argument("--amount", required=True)
        parser.add_argument("--notes", default=None)

    return _command("expense", "Record a general expense.", arguments, run_expense)


def register_close_day_command() -> CommandSpec:
    """Register the parser and executor for ``close-day``."""

    return _command("close-day", "Archive the active period and start a new one.", lambda parser: None, run_close_day)


def register_clear_history_command() -> CommandSpec:
    """Register the parser and executor for ``clear-history``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--operations-password", required=True)

    return _command("clear-history", "Irreversibly delete all archived days.", arguments, run_clear_history)


def register_set_password_command() -> CommandSpec:
    """Register the parser and executor for ``set-password``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--kind", choices=[member.value for member in PasswordKind], required=True)
        parser.add_argument("--new", dest="new_password", required=True)
        parser.add_argument("--current", dest="current_password", default=None)

    return _command("set-password", "Set the login or operations password.", arguments, run_set_password)


def register_import_backup_command() -> CommandSpec:
    """Register the parser and executor for ``import-backup``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--file", type=Path, required=True)
        parser.add_argument("--operations-password", required=True)

    return _command("import-backup", "Replace all data with a backup file.", arguments, run_import_backup)


# ---------------------------------------------------------------------------
# Read command registration
# ---------------------------------------------------------------------------


def add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    """Add the date-range and sale-type options shared by report commands."""
    parser.add_argument(
        "--filter",
        dest="filter_kind",
        choices=[member.value for member in FilterKind],
        default=FilterKind.TODAY.value,
    )
    parser.add_argument("--date", default=None, help="Day for the specific filter (YYYY-MM-DD).")
    parser.add_argument("--month", default=None, help="Month for the monthly filter (YYYY-MM).")
    parser.add_argument("--start", default=None, help="First day of the range filter (YYYY-MM-DD).")
    parser.add_argument("--end", default=None, help="Last day of the range filter (YYYY-MM-DD).")
    parser.add_argument("--days", type=int, default=None, help="Window of the trailing-days filter.")
    parser.add_argument("--sale-type", choices=[member.value for member in SaleType], default=None)


def register_totals_command() -> CommandSpec:
    """Register the parser and executor for ``totals``."""
    return _command(
        "totals",
        "Display revenue, expenses, and profit for a period.",
        add_filter_arguments,
        run_totals_report,
        persist=False,
    )


def register_products_command() -> CommandSpec:
    """Register the parser and executor for ``products``."""
    return _command(
        "products",
        "Display product performance for a period.",
        add_filter_arguments,
        run_products_report,
        persist=False,
    )


def register_stock_command() -> CommandSpec:
    """Register the parser and executor for ``stock``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--low", action="store_true", help="Only show items below their threshold.")

    return _command("stock", "Display current stock levels.", arguments, run_stock_report, persist=False)


def register_history_command() -> CommandSpec:
    """Register the parser and executor for ``history``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--year", type=int, default=None)
        parser.add_argument("--month", default=None, help="Month to list days for (YYYY-MM).")
        parser.add_argument(
            "--purchases",
            action="store_true",
            help="Browse purchase invoices, including those of the open period.",
        )
        parser.add_argument(
            "--include-active",
            action="store_true",
            help="Count the open period when listing years and months.",
        )

    return _command("history", "Browse archived days by year and month.", arguments, run_history_report, persist=False)


def register_search_command() -> CommandSpec:
    """Register the parser and executor for ``search``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--term", required=True)
        parser.add_argument("--purchases", action="store_true", help="Search purchase invoices instead of orders.")

    return _command("search", "Search orders or purchase invoices.", arguments, run_search, persist=False)


def register_export_backup_command() -> CommandSpec:
    """Register the parser and executor for ``export-backup``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--file", type=Path, required=True)

    return _command("export-backup", "Write a full backup workbook.", arguments, run_export_backup, persist=False)


def register_export_report_command() -> CommandSpec:
    """Register the parser and executor for ``export-report``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        add_filter_arguments(parser)
        parser.add_argument("--file", type=Path, required=True)

    return _command("export-report", "Write a report workbook for a period.", arguments, run_export_report, persist=False)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Argument translation
# ---------------------------------------------------------------------------


def parse_decimal(raw: str, label: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid {label}: {raw!r}") from exc


def parse_month(raw: str) -> MonthKey:
    """Parse ``YYYY-MM`` into a :class:`MonthKey`."""
    try:
        year_text, month_text = raw.split("-")
        key = MonthKey(int(year_text), int(month_text))
    except ValueError as exc:
        raise ValueError(f"Invalid month {raw!r}; expected YYYY-MM") from exc
    if not 1 <= key.month <= 12:
        raise ValueError(f"Invalid month {raw!r}; expected YYYY-MM")
    return key


CUSTOM_LINE_PREFIX = "custom"


def parse_custom_line(parts: Sequence[str], raw: str) -> core_logic.CartLine:
    """Parse the fields after ``custom:`` as ``NAME:QUANTITY:PRICE[:COST[:UNIT]]``."""
    if len(parts) not in (3, 4, 5):
        raise ValueError(f"Invalid custom line {raw!r}; expected custom:NAME:QUANTITY:PRICE[:COST[:UNIT]]")
    cost = parse_decimal(parts[3], "cost") if len(parts) >= 4 and parts[3] else None
    unit = UnitType(parts[4]) if len(parts) == 5 else UnitType.PIECE
    return core_logic.CartLine.custom(
        parts[0],
        parse_decimal(parts[1], "quantity"),
        parse_decimal(parts[2], "price"),
        cost_price=cost,
        unit_type=unit,
    )


def parse_cart_line(raw: str) -> core_logic.CartLine:
    """Parse ``PRODUCT_ID:QUANTITY[:PRICE]`` or a ``custom:`` line for off-catalog items."""
    parts = raw.split(":")
    if parts[0] == CUSTOM_LINE_PREFIX:
        return parse_custom_line(parts[1:], raw)
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid cart line {raw!r}; expected PRODUCT_ID:QUANTITY[:PRICE]")
    price = parse_decimal(parts[2], "price") if len(parts) == 3 else None
    return core_logic.CartLine(product_id=parts[0], quantity=parse_decimal(parts[1], "quantity"), price=price)


def parse_purchase_line(raw: str) -> core_logic.PurchaseLine:
    """Parse ``NAME:QUANTITY:COST``; the name itself may not contain colons."""
    parts = raw.split(":")
    if len(parts) != 3:
        raise ValueError(f"Invalid purchase line {raw!r}; expected NAME:QUANTITY:COST")
    return core_logic.PurchaseLine(
        name=parts[0],
        quantity=parse_decimal(parts[1], "quantity"),
        cost=parse_decimal(parts[2], "cost"),
    )


def translate_filter(args: argparse.Namespace, settings: ConfigSettings) -> reporting.ReportFilter:
    """Translate the shared filter options into a :class:`reporting.ReportFilter`."""
    kind = FilterKind(args.filter_kind)
    if kind is FilterKind.SPECIFIC:
        if not args.date:
            raise ValueError("--date is required for the specific filter")
        return reporting.ReportFilter.specific(date.fromisoformat(args.date))
    if kind is FilterKind.LAST_DAYS:
        return reporting.ReportFilter.last_days(args.days or settings.trailing_days)
    if kind is FilterKind.MONTHLY:
        if not args.month:
            raise ValueError("--month is required for the monthly filter")
        key = parse_month(args.month)
        return reporting.ReportFilter.monthly(key.year, key.month)
    if kind is FilterKind.RANGE:
        if not args.start or not args.end:
            raise ValueError("--start and --end are required for the range filter")
        return reporting.ReportFilter.between(date.fromisoformat(args.start), date.fromisoformat(args.end))
    return reporting.ReportFilter.today()


def translate_sale_type(args: argparse.Namespace) -> Optional[SaleType]:
    return SaleType(args.sale_type) if getattr(args, "sale_type", None) else None


def translate_add_product(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-product request."""
    return {
        "name": args.name,
        "price": parse_decimal(args.price, "price"),
        "unit_type": UnitType(args.unit),
        "wholesale_price": parse_decimal(args.wholesale_price, "wholesale price") if args.wholesale_price else None,
        "cost_price": parse_decimal(args.cost_price, "cost price"),
        "barcode": args.barcode,
    }


def translate_update_product(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into keyword changes, leaving out options not given."""

    def money(raw: Optional[str], label: str) -> Optional[Decimal]:
        return parse_decimal(raw, label) if raw is not None else None

    return {
        "name": args.name,
        "price": money(args.price, "price"),
        "unit_type": UnitType(args.unit) if args.unit else None,
        "wholesale_price": money(args.wholesale_price, "wholesale price"),
        "cost_price": money(args.cost_price, "cost price"),
        "barcode": args.barcode,
    }


def translate_sale(args: argparse.Namespace) -> core_logic.CheckoutCommand:
    """Translate CLI args into a checkout command object."""
    return core_logic.CheckoutCommand(
        lines=[parse_cart_line(raw) for raw in args.items],
        sale_type=SaleType(args.sale_type),
        customer_id=args.customer_id,
        customer_name=args.customer_name,
    )


def translate_purchase(args: argparse.Namespace) -> core_logic.PurchaseInvoiceCommand:
    """Translate CLI args into a purchase invoice command object."""
    return core_logic.PurchaseInvoiceCommand(
        supplier_name=args.supplier,
        lines=[parse_purchase_line(raw) for raw in args.items],
        payment_status=PaymentStatus(args.payment_status),
    )


def translate_salary(args: argparse.Namespace) -> core_logic.SalaryPaymentCommand:
    return core_logic.SalaryPaymentCommand(
        employee_id=args.employee_id,
        amount=parse_decimal(args.amount, "amount"),
        period=parse_month(args.period) if args.period else None,
        notes=args.notes,
    )


def translate_expense(args: argparse.Namespace) -> core_logic.GeneralExpenseCommand:
    return core_logic.GeneralExpenseCommand(
        category=args.category,
        amount=parse_decimal(args.amount, "amount"),
        notes=args.notes,
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    product = core_logic.add_product(context, **translate_add_product(args))
    print(f"Product {product.product_id}: {product.name}")
    return 0


def run_update_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    product = core_logic.update_product(context, args.product_id, **translate_update_product(args))
    print(f"Product {product.product_id}: {product.name} @ {product.price}")
    return 0


def run_add_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    customer = core_logic.add_customer(context, name=args.name, phone=args.phone)
    print(f"Customer {customer.customer_id}: {customer.name}")
    return 0


def run_add_supplier(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    supplier = core_logic.add_supplier(context, name=args.name, phone=args.phone, notes=args.notes)
    print(f"Supplier {supplier.supplier_id}: {supplier.name}")
    return 0


def run_add_employee(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    employee = core_logic.add_employee(context, name=args.name, position=args.position)
    print(f"Employee {employee.employee_id}: {employee.name}")
    return 0


def run_add_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.add_expense_category(context, args.name)
    return 0


def run_define_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    item = core_logic.define_stock_item(
        context,
        name=args.name,
        unit_type=UnitType(args.unit),
        min_threshold=parse_decimal(args.min_threshold, "minimum threshold"),
    )
    print(f"Stock item {item.item_id}: {item.name}")
    return 0


def run_receive_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    item = core_logic.receive_stock(context, args.name, parse_decimal(args.quantity, "quantity"))
    if item is None:
        print(f"'{args.name}' is not a tracked stock item; nothing changed.")
    return 0


def run_consume_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.consume_stock(context, args.item_id, parse_decimal(args.quantity, "quantity"))
    return 0


def run_set_stock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.set_stock_quantity(context, args.item_id, parse_decimal(args.quantity, "quantity"))
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the checkout workflow via the BLL."""
    items = core_logic.complete_order(context, translate_sale(args))
    print(f"Order {items[0].order_id} (customer #{items[0].customer_number}): {core_logic.sales_revenue(items)}")
    return 0


def run_delete_order(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_order(context, args.order_id)
    return 0


def run_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase invoice workflow via the BLL."""
    invoice = core_logic.add_purchase_invoice(context, translate_purchase(args))
    print(f"Invoice {invoice.invoice_id}: {invoice.total_amount}")
    return 0


def run_salary(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.record_salary_payment(context, translate_salary(args))
    return 0


def run_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.record_general_expense(context, translate_expense(args))
    return 0


def run_close_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the close-day workflow via the BLL."""
    day = core_logic.close_day(context)
    print(
        f"Archived {day.date.isoformat()}: revenue {day.total_revenue}, "
        f"expenses {day.total_expenses}, items {day.total_items}"
    )
    return 0


def run_clear_history(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    removed = core_logic.clear_history(context, args.operations_password)
    print(f"Removed {removed} archived day(s).")
    return 0


def run_set_password(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.set_password(
        context,
        PasswordKind(args.kind),
        args.new_password,
        current_password=args.current_password,
    )
    return 0


def run_import_backup(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    exports.import_backup(context, args.file, args.operations_password)
    return 0


def format_totals(totals: reporting.RangeTotals, currency: str) -> List[str]:
    return [
        f"Days:             {totals.day_count}",
        f"Revenue:          {totals.revenue} {currency}",
        f"Purchases:        {totals.purchases} {currency}",
        f"Salaries:         {totals.salaries} {currency}",
        f"General expenses: {totals.general} {currency}",
        f"Total expenses:   {totals.expenses} {currency}",
        f"Profit:           {totals.profit} {currency}",
        f"Profit margin:    {round(totals.profit_margin, 1)}%",
    ]


def run_totals_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the totals reporting workflow."""
    report_filter = translate_filter(args, context.settings)
    totals = reporting.compute_totals(context, report_filter, sale_type=translate_sale_type(args))
    print(f"{context.settings.bakery_name}: {report_filter.describe()}")
    for line in format_totals(totals, context.settings.currency):
        print(line)
    return 0


def run_products_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the product performance reporting workflow."""
    report_filter = translate_filter(args, context.settings)
    stats = reporting.compute_product_stats(context, report_filter, sale_type=translate_sale_type(args))
    for stat in stats:
        print(f"{stat.name}\tqty={stat.qty}\trevenue={stat.revenue}\tprofit={stat.profit}")
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    items = core_logic.list_low_stock(context) if args.low else core_logic.list_stock(context)
    for item in items:
        marker = " LOW" if item.is_low_stock else ""
        print(f"{item.item_id}\t{item.name}\t{item.current_quantity} {item.unit_type.value}{marker}")
    return 0


def run_purchase_history(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.month:
        for invoice in reporting.purchase_invoices_in_month(context, parse_month(args.month)):
            print(
                f"{invoice.date.isoformat()}\t{invoice.invoice_id}\t{invoice.supplier_name}"
                f"\t{invoice.total_amount}\t{invoice.payment_status.value}"
            )
    elif args.year is not None:
        for key in reporting.purchase_invoice_months(context, args.year):
            print(f"{key.year:04d}-{key.month:02d}\t{reporting.month_label(key)}")
    else:
        for year in reporting.purchase_invoice_years(context):
            print(year)
    return 0


def run_history_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Walk the archive: years, then months of a year, then days of a month."""
    if args.purchases:
        return run_purchase_history(context, args)
    if args.month:
        for day in reporting.days_in_month(context, parse_month(args.month)):
            print(f"{day.date.isoformat()}\trevenue={day.total_revenue}\texpenses={day.total_expenses}")
    elif args.year is not None:
        for key in reporting.available_months(context, args.year, include_active=args.include_active):
            print(f"{key.year:04d}-{key.month:02d}\t{reporting.month_label(key)}")
    else:
        for year in reporting.available_years(context, include_active=args.include_active):
            print(year)
    return 0


def run_search(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.purchases:
        for invoice in reporting.search_purchase_invoices(context, args.term):
            print(f"{invoice.date.isoformat()}\t{invoice.supplier_name}\t{invoice.total_amount}")
    else:
        for order in reporting.search_orders(context, args.term):
            print(f"{order.date.isoformat()}\t{order.display_name}\t{order.sale_type.value}\t{order.total}")
    return 0


def run_export_backup(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    target = exports.export_backup(context, args.file)
    print(f"Backup written to {target}")
    return 0


def run_export_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    report_filter = translate_filter(args, context.settings)
    target = exports.export_report(context, report_filter, args.file, sale_type=translate_sale_type(args))
    print(f"Report written to {target}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    if args.verbose:
        set_console_level(logging.INFO)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].persist:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
