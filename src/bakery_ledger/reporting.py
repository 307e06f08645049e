"""Aggregation engine and report filters for Bakery Ledger.

Reports operate on a unified list of *day records*: one per archived day
plus a synthetic record for the active period, sorted by timestamp. Every
filter selects from that same list, so history and analytics views always
agree on what "last week" or "this month" contains.

Profit is computed per sale line as ``(price - cost) * quantity``. At the
range level general expenses are deducted once more, while purchases and
salaries are reported but not subtracted: cost of goods is already priced
into each sale line and salaries are not attributed to products.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import core_logic, log
from .constants import DEFAULT_TRAILING_DAYS, FilterKind, SaleType
from .core_logic import RuntimeContext
from .data_manager import ArchivedDay, MonthKey, PurchaseInvoice, SaleItem


ZERO = Decimal("0")
HUNDRED = Decimal("100")

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


@dataclass(frozen=True)
class DayRecord:
    """Derived figures for one archived day or for the active period."""

    day_id: Optional[str]
    date: date
    timestamp: datetime
    revenue: Decimal
    purchase_total: Decimal
    salary_total: Decimal
    general_total: Decimal
    profit: Decimal
    items: Tuple[SaleItem, ...]
    is_active: bool = False

    @property
    def expenses(self) -> Decimal:
        return self.purchase_total + self.salary_total + self.general_total


@dataclass(frozen=True)
class RangeTotals:
    revenue: Decimal
    purchases: Decimal
    salaries: Decimal
    general: Decimal
    expenses: Decimal
    profit: Decimal
    profit_margin: Decimal
    day_count: int


@dataclass(frozen=True)
class ProductStat:
    name: str
    qty: Decimal
    revenue: Decimal
    profit: Decimal


def _require_calendar_month(month: int) -> None:
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")


@dataclass(frozen=True)
class ReportFilter:
    """A date-range selection over the unified day records.

    Use the constructors (:meth:`today`, :meth:`specific`,
    :meth:`last_days`, :meth:`monthly`, :meth:`between`) rather than filling
    the fields by hand.
    """

    kind: FilterKind
    day: Optional[date] = None
    month: Optional[MonthKey] = None
    start: Optional[date] = None
    end: Optional[date] = None
    count: int = DEFAULT_TRAILING_DAYS

    @classmethod
    def today(cls) -> "ReportFilter":
        return cls(FilterKind.TODAY)

    @classmethod
    def specific(cls, day: date) -> "ReportFilter":
        return cls(FilterKind.SPECIFIC, day=day)

    @classmethod
    def last_days(cls, count: int = DEFAULT_TRAILING_DAYS) -> "ReportFilter":
        return cls(FilterKind.LAST_DAYS, count=count)

    @classmethod
    def monthly(cls, year: int, month: int) -> "ReportFilter":
        _require_calendar_month(month)
        return cls(FilterKind.MONTHLY, month=MonthKey(year, month))

    @classmethod
    def between(cls, start: date, end: date) -> "ReportFilter":
        return cls(FilterKind.RANGE, start=start, end=end)

    def describe(self) -> str:
        kind = FilterKind(self.kind)
        if kind is FilterKind.SPECIFIC and self.day is not None:
            return self.day.isoformat()
        if kind is FilterKind.LAST_DAYS:
            return f"last {self.count} days"
        if kind is FilterKind.MONTHLY and self.month is not None:
            return month_label(self.month)
        if kind is FilterKind.RANGE and self.start is not None and self.end is not None:
            return f"{self.start.isoformat()} to {self.end.isoformat()}"
        return kind.value


# ---------------------------------------------------------------------------
# Day records
# ---------------------------------------------------------------------------


def _filter_items(items: Iterable[SaleItem], sale_type: Optional[SaleType]) -> Tuple[SaleItem, ...]:
    if sale_type is None:
        return tuple(items)
    wanted = SaleType(sale_type)
    return tuple(item for item in items if item.sale_type is wanted)


def _make_record(
    *,
    day_id: Optional[str],
    day: date,
    timestamp: datetime,
    items: Tuple[SaleItem, ...],
    invoices: Iterable[PurchaseInvoice],
    salaries: Iterable,
    expenses: Iterable,
    is_active: bool,
) -> DayRecord:
    return DayRecord(
        day_id=day_id,
        date=day,
        timestamp=timestamp,
        revenue=core_logic.sales_revenue(items),
        purchase_total=core_logic.purchases_total(invoices),
        salary_total=core_logic.salaries_total(salaries),
        general_total=core_logic.general_expenses_total(expenses),
        profit=core_logic.sales_profit(items),
        items=items,
        is_active=is_active,
    )


def archived_day_record(day: ArchivedDay, *, sale_type: Optional[SaleType] = None) -> DayRecord:
    return _make_record(
        day_id=day.day_id,
        day=day.date,
        timestamp=day.timestamp,
        items=_filter_items(day.items, sale_type),
        invoices=day.purchase_invoices,
        salaries=day.salary_payments,
        expenses=day.general_expenses,
        is_active=False,
    )


def active_day_record(context: RuntimeContext, *, sale_type: Optional[SaleType] = None) -> DayRecord:
    """Build the synthetic record for the not-yet-archived period."""
    state = context.state
    return _make_record(
        day_id=None,
        day=context.clock.today(),
        timestamp=context.clock.now(),
        items=_filter_items(state.sales, sale_type),
        invoices=state.purchase_invoices,
        salaries=state.salary_payments,
        expenses=state.general_expenses,
        is_active=True,
    )


def build_day_records(context: RuntimeContext, *, sale_type: Optional[SaleType] = None) -> List[DayRecord]:
    """Return archived days plus the active period, oldest first."""
    with context.lock:
        records = [archived_day_record(day, sale_type=sale_type) for day in context.state.history]
        records.append(active_day_record(context, sale_type=sale_type))
    return sorted(records, key=lambda record: record.timestamp)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def apply_filter(days: Sequence[DayRecord], report_filter: ReportFilter, *, today: date) -> List[DayRecord]:
    """Select the day records matched by ``report_filter``.

    ``days`` must already be in ascending timestamp order. The trailing-days
    filter counts entries, not calendar days, and returns everything when
    fewer entries exist.

    Args:
        days (Sequence[DayRecord]): Unified, ascending day records.
        report_filter (ReportFilter): Selection to apply.
        today (date): The current calendar day.

    Returns:
        list[DayRecord]: Matching records in their original order.

    Raises:
        ValueError: If the filter lacks the parameters its kind needs.
    """
    kind = FilterKind(report_filter.kind)
    if kind is FilterKind.TODAY:
        return [day for day in days if day.date == today]
    if kind is FilterKind.SPECIFIC:
        if report_filter.day is None:
            raise ValueError("A specific-day filter needs a day")
        return [day for day in days if day.date == report_filter.day]
    if kind is FilterKind.LAST_DAYS:
        if report_filter.count <= 0:
            raise ValueError("The trailing-days filter needs a positive count")
        return list(days[-report_filter.count:])
    if kind is FilterKind.MONTHLY:
        if report_filter.month is None:
            raise ValueError("A monthly filter needs a year and month")
        year, month = report_filter.month
        _require_calendar_month(month)
        return [day for day in days if day.timestamp.year == year and day.timestamp.month == month]
    if report_filter.start is None or report_filter.end is None:
        raise ValueError("A range filter needs both start and end dates")
    lower = datetime.combine(report_filter.start, time.min)
    upper = datetime.combine(report_filter.end, time.max)
    return [day for day in days if lower <= day.timestamp <= upper]


def select_days(
    context: RuntimeContext,
    report_filter: ReportFilter,
    *,
    sale_type: Optional[SaleType] = None,
) -> List[DayRecord]:
    days = build_day_records(context, sale_type=sale_type)
    return apply_filter(days, report_filter, today=context.clock.today())


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def profit_margin(profit: Decimal, revenue: Decimal) -> Decimal:
    """Return ``profit / revenue * 100``, or exactly zero when revenue is zero."""
    if revenue == ZERO:
        return ZERO
    return profit / revenue * HUNDRED


def summarize(days: Iterable[DayRecord]) -> RangeTotals:
    """Reduce day records into range totals."""
    days = list(days)
    revenue = sum((day.revenue for day in days), ZERO)
    purchases = sum((day.purchase_total for day in days), ZERO)
    salaries = sum((day.salary_total for day in days), ZERO)
    general = sum((day.general_total for day in days), ZERO)
    profit = sum((day.profit for day in days), ZERO) - general
    totals = RangeTotals(
        revenue=revenue,
        purchases=purchases,
        salaries=salaries,
        general=general,
        expenses=purchases + salaries + general,
        profit=profit,
        profit_margin=profit_margin(profit, revenue),
        day_count=len(days),
    )
    log.debug("Summarized %d day(s): revenue=%s profit=%s", totals.day_count, revenue, profit)
    return totals


def compute_totals(
    context: RuntimeContext,
    report_filter: ReportFilter,
    *,
    sale_type: Optional[SaleType] = None,
) -> RangeTotals:
    return summarize(select_days(context, report_filter, sale_type=sale_type))


def product_stats(days: Iterable[DayRecord]) -> List[ProductStat]:
    """Group sale items by product name, highest revenue first.

    Products with equal revenue keep the order in which they were first
    encountered.
    """
    grouped: Dict[str, List[Decimal]] = {}
    for day in days:
        for item in day.items:
            bucket = grouped.setdefault(item.name, [ZERO, ZERO, ZERO])
            bucket[0] += item.quantity
            bucket[1] += item.line_total
            bucket[2] += item.line_profit
    stats = [ProductStat(name, qty, revenue, profit) for name, (qty, revenue, profit) in grouped.items()]
    return sorted(stats, key=lambda stat: stat.revenue, reverse=True)


def compute_product_stats(
    context: RuntimeContext,
    report_filter: ReportFilter,
    *,
    sale_type: Optional[SaleType] = None,
) -> List[ProductStat]:
    return product_stats(select_days(context, report_filter, sale_type=sale_type))


# ---------------------------------------------------------------------------
# Search and drill-down
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderSummary:
    order_id: str
    date: date
    customer_number: int
    customer_name: Optional[str]
    sale_type: SaleType
    items: Tuple[SaleItem, ...]
    archived: bool

    @property
    def total(self) -> Decimal:
        return core_logic.sales_revenue(self.items)

    @property
    def display_name(self) -> str:
        return self.customer_name or f"Customer {self.customer_number}"


def group_orders(items: Iterable[SaleItem], *, archived: bool) -> List[OrderSummary]:
    """Group sale items into orders, in order of first appearance."""
    grouped: Dict[str, List[SaleItem]] = {}
    for item in items:
        grouped.setdefault(item.order_id, []).append(item)
    orders = []
    for order_id, lines in grouped.items():
        first = lines[0]
        orders.append(
            OrderSummary(
                order_id=order_id,
                date=first.date,
                customer_number=first.customer_number,
                customer_name=first.customer_name,
                sale_type=first.sale_type,
                items=tuple(lines),
                archived=archived,
            )
        )
    return orders


def search_orders(context: RuntimeContext, term: str) -> List[OrderSummary]:
    """Find archived and active orders by customer name or customer number."""
    needle = term.strip().lower()
    if not needle:
        return []
    with context.lock:
        orders: List[OrderSummary] = []
        for day in context.state.history:
            orders.extend(group_orders(day.items, archived=True))
        orders.extend(group_orders(context.state.sales, archived=False))
    return [
        order
        for order in orders
        if needle in order.display_name.lower() or needle in str(order.customer_number)
    ]


def all_purchase_invoices(context: RuntimeContext) -> List[PurchaseInvoice]:
    """Archived and active purchase invoices, newest first."""
    with context.lock:
        invoices = list(context.state.purchase_invoices)
        for day in context.state.history:
            invoices.extend(day.purchase_invoices)
    return sorted(invoices, key=lambda invoice: invoice.timestamp, reverse=True)


def search_purchase_invoices(context: RuntimeContext, term: str) -> List[PurchaseInvoice]:
    """Find invoices whose supplier or any item name contains ``term``."""
    needle = term.strip().lower()
    if not needle:
        return []
    return [
        invoice
        for invoice in all_purchase_invoices(context)
        if needle in invoice.supplier_name.lower()
        or any(needle in item.name.lower() for item in invoice.items)
    ]


def month_label(key: MonthKey) -> str:
    """Display label for a month key, independent of the process locale."""
    return f"{MONTH_NAMES[key.month - 1]} {key.year}"


def _activity_moments(context: RuntimeContext, include_active: bool) -> List[datetime]:
    with context.lock:
        state = context.state
        moments = [day.timestamp for day in state.history]
        if include_active:
            for journal in (state.sales, state.purchase_invoices, state.salary_payments, state.general_expenses):
                moments.extend(entry.timestamp for entry in journal)
    return moments


def available_years(context: RuntimeContext, *, include_active: bool = False) -> List[int]:
    """Years that contain archived days, newest first.

    With ``include_active`` the entries of the open period count as well.
    """
    return sorted({moment.year for moment in _activity_moments(context, include_active)}, reverse=True)


def available_months(context: RuntimeContext, year: int, *, include_active: bool = False) -> List[MonthKey]:
    """Months of ``year`` with archived (or, optionally, active) entries, newest first."""
    return sorted(
        {MonthKey.of(moment) for moment in _activity_moments(context, include_active) if moment.year == year},
        reverse=True,
    )


def purchase_invoice_years(context: RuntimeContext) -> List[int]:
    return sorted({invoice.timestamp.year for invoice in all_purchase_invoices(context)}, reverse=True)


def purchase_invoice_months(context: RuntimeContext, year: int) -> List[MonthKey]:
    return sorted(
        {
            MonthKey.of(invoice.timestamp)
            for invoice in all_purchase_invoices(context)
            if invoice.timestamp.year == year
        },
        reverse=True,
    )


def purchase_invoices_in_month(context: RuntimeContext, key: MonthKey) -> List[PurchaseInvoice]:
    """Archived and active invoices dated in ``key``, newest first."""
    return [
        invoice
        for invoice in all_purchase_invoices(context)
        if invoice.timestamp.year == key.year and invoice.timestamp.month == key.month
    ]


def days_in_month(context: RuntimeContext, key: MonthKey) -> List[ArchivedDay]:
    return [
        day
        for day in context.state.history
        if day.timestamp.year == key.year and day.timestamp.month == key.month
    ]
