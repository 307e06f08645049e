"""Backup files and Excel report export.

A backup is a workbook with the same layout as the master workbook. Export
writes the complete state; import parses and validates an entire backup
before the operations password is checked and the current state is
replaced in one step, so a bad or foreign file never leaves a half-restored
ledger behind.
"""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Optional

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException

from . import core_logic, data_manager, log, reporting
from .constants import EXPECTED_SCHEMA_VERSION, PasswordKind, SaleType
from .core_logic import BusinessRuleViolation, RuntimeContext
from .data_manager import LedgerState


class BackupFormatError(BusinessRuleViolation):
    """Raised when a backup file cannot be parsed or is internally inconsistent."""


def export_backup(context: RuntimeContext, destination: Path) -> Path:
    """Write the full ledger state, password hashes included, to ``destination``."""
    with context.lock:
        workbook = data_manager.build_workbook(context.state, saved_at=context.clock.now())
    data_manager.save_workbook(workbook, destination)
    target = Path(destination).expanduser().resolve()
    log.info("Exported backup to '%s'", target)
    return target


def verify_archive_totals(state: LedgerState) -> None:
    """Check that every archived day's stored totals match its contents.

    Raises:
        BackupFormatError: On the first day whose totals do not reconcile.
    """
    for day in state.history:
        expected_revenue = core_logic.sales_revenue(day.items)
        expected_items = core_logic.sales_quantity(day.items)
        expected_expenses = (
            core_logic.purchases_total(day.purchase_invoices)
            + core_logic.salaries_total(day.salary_payments)
            + core_logic.general_expenses_total(day.general_expenses)
        )
        if (
            day.total_revenue != expected_revenue
            or day.total_items != expected_items
            or day.total_expenses != expected_expenses
        ):
            raise BackupFormatError(f"Archived day '{day.day_id}' totals do not match its records")


def load_backup(source: Path) -> LedgerState:
    """Parse a backup workbook into a detached :class:`LedgerState`.

    Nothing in the running context is touched.

    Raises:
        FileNotFoundError: If ``source`` does not exist.
        BackupFormatError: If the file is not a readable backup, was written
            by a different schema version, or fails reconciliation.
    """
    path = Path(source).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Backup file not found: {path}")
    try:
        workbook = openpyxl.load_workbook(path)
        state = data_manager.read_state(workbook)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, TypeError, ArithmeticError) as exc:
        log.error("Rejected backup '%s': %s", path, exc)
        raise BackupFormatError(f"Invalid backup file '{path.name}': {exc}") from exc

    if state.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error("Rejected backup '%s': schema version %s", path, state.schema_version)
        raise BackupFormatError(
            f"Backup schema version {state.schema_version} is not supported (expected {EXPECTED_SCHEMA_VERSION})"
        )
    verify_archive_totals(state)
    return state


def import_backup(context: RuntimeContext, source: Path, operations_password: str) -> LedgerState:
    """Replace the whole ledger state with the contents of a backup file.

    The backup is parsed and validated first, then the operations password
    of the *current* state is checked, and only then is the state replaced.
    Any failure leaves the current state exactly as it was.

    Args:
        context (RuntimeContext): Active runtime context.
        source (Path): Backup workbook produced by :func:`export_backup`.
        operations_password (str): Confirmation password.

    Returns:
        LedgerState: The context's state after replacement.

    Raises:
        BackupFormatError: If the backup is invalid.
        core_logic.AuthenticationError: If the password does not match.
    """
    candidate = load_backup(source)
    with context.lock:
        core_logic.require_password(context, PasswordKind.OPERATIONS, operations_password)
        context.state.replace_with(candidate)
    log.warning(
        "Restored ledger from backup '%s' (%d archived day(s), %d active sale line(s))",
        source,
        len(candidate.history),
        len(candidate.sales),
    )
    return context.state


def export_report(
    context: RuntimeContext,
    report_filter: reporting.ReportFilter,
    destination: Path,
    *,
    sale_type: Optional[SaleType] = None,
) -> Path:
    """Write a report workbook with summary, per-day, and product sheets.

    Args:
        context (RuntimeContext): Active runtime context.
        report_filter (reporting.ReportFilter): Date range to report on.
        destination (Path): Target ``.xlsx`` path.
        sale_type (SaleType | None): Optional retail/wholesale restriction.

    Returns:
        Path: The resolved destination path.
    """
    days = reporting.select_days(context, report_filter, sale_type=sale_type)
    totals = reporting.summarize(days)
    stats = reporting.product_stats(days)

    workbook = openpyxl.Workbook()
    bold_font = Font(bold=True)

    summary = workbook.active
    summary.title = "Summary"
    summary.append([context.settings.bakery_name])
    summary["A1"].font = bold_font
    summary.append(["Period", report_filter.describe()])
    summary.append(["Sale type", SaleType(sale_type).value if sale_type else "all"])
    summary.append(["Generated", context.clock.now().isoformat(timespec="seconds")])
    summary.append(["Currency", context.settings.currency])
    summary.append([])
    for label, value in (
        ("Revenue", totals.revenue),
        ("Purchases", totals.purchases),
        ("Salaries", totals.salaries),
        ("General expenses", totals.general),
        ("Total expenses", totals.expenses),
        ("Profit", totals.profit),
        ("Profit margin %", round(totals.profit_margin, 2)),
        ("Days", totals.day_count),
    ):
        summary.append([label, value])

    day_sheet = workbook.create_sheet("Days")
    day_sheet.append(["Date", "Status", "Revenue", "Purchases", "Salaries", "General", "Expenses", "Profit"])
    for day in days:
        day_sheet.append(
            [
                day.date.isoformat(),
                "active" if day.is_active else "archived",
                day.revenue,
                day.purchase_total,
                day.salary_total,
                day.general_total,
                day.expenses,
                day.profit,
            ]
        )

    product_sheet = workbook.create_sheet("Products")
    product_sheet.append(["Product", "Quantity", "Revenue", "Profit"])
    for stat in stats:
        product_sheet.append([stat.name, stat.qty, stat.revenue, stat.profit])

    for sheet in (day_sheet, product_sheet):
        for cell in sheet[1]:
            cell.font = bold_font

    data_manager.save_workbook(workbook, destination)
    target = Path(destination).expanduser().resolve()
    log.info("Exported %s report to '%s'", report_filter.describe(), target)
    return target
