"""Enumerations shared across Bakery Ledger modules.

Centralises domain constants so that the data access layer (DAL), business
logic layer (BLL), reporting, and the command line rely on a single source
of truth for critical identifiers.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Default window for the trailing-days report filter.
DEFAULT_TRAILING_DAYS = 7


class UnitType(str, Enum):
    """Enumerate how products and stock items are measured."""

    KG = "kg"
    PIECE = "piece"


class SaleType(str, Enum):
    """Enumerate the pricing tiers a checkout can use."""

    RETAIL = "retail"
    WHOLESALE = "wholesale"


class PaymentStatus(str, Enum):
    """Enumerate settlement states of a purchase invoice."""

    PAID = "paid"
    CREDIT = "credit"


class FilterKind(str, Enum):
    """Enumerate the date-range selections shared by history and analytics."""

    TODAY = "today"
    SPECIFIC = "specific"
    LAST_DAYS = "last-7"
    MONTHLY = "monthly"
    RANGE = "range"


class PasswordKind(str, Enum):
    """Enumerate the operator passwords gating the application."""

    LOGIN = "login"
    OPERATIONS = "operations"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    SETTINGS = "Settings"
    PRODUCTS = "Products"
    CUSTOMERS = "Customers"
    SUPPLIERS = "Suppliers"
    EMPLOYEES = "Employees"
    EXPENSE_CATEGORIES = "ExpenseCategories"
    INVENTORY = "Inventory"
    SALES = "Sales"
    PURCHASE_INVOICES = "PurchaseInvoices"
    PURCHASE_ITEMS = "PurchaseItems"
    SALARY_PAYMENTS = "SalaryPayments"
    GENERAL_EXPENSES = "GeneralExpenses"
    HISTORY = "History"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_TRAILING_DAYS",
    "UnitType",
    "SaleType",
    "PaymentStatus",
    "FilterKind",
    "PasswordKind",
    "SheetName",
]
