"""Unit tests verifying the business logic layer against an in-memory ledger."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from unittest.mock import Mock

import pytest

from bakery_ledger import constants, core_logic, data_manager
from bakery_ledger.constants import PasswordKind, PaymentStatus, SaleType, UnitType
from bakery_ledger.data_manager import MonthKey

from conftest import OPERATIONS_PASSWORD, product_id, purchase, sell


def stock_quantity(context, name):
    return core_logic.find_stock_item(context, name).current_quantity


# ---------------------------------------------------------------------------
# Runtime/context management
# ---------------------------------------------------------------------------


def test_load_runtime_context_returns_context(monkeypatch, tmp_path):
    """load_runtime_context should assemble settings and the parsed state."""

    config_path = tmp_path / "config.ini"
    parser = Mock(name="parser")
    parsed_settings = data_manager.ConfigSettings(
        data_file=tmp_path / "bakery_master.xlsx",
        bakery_name="Bakery",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )
    workbook = Mock(name="workbook")
    state = data_manager.LedgerState()

    find_config_file = Mock(return_value=config_path)
    read_config = Mock(return_value=parser)
    parse_settings = Mock(return_value=parsed_settings)
    open_workbook = Mock(return_value=workbook)
    read_state = Mock(return_value=state)

    monkeypatch.setattr(data_manager, "find_config_file", find_config_file)
    monkeypatch.setattr(data_manager, "read_config", read_config)
    monkeypatch.setattr(data_manager, "parse_settings", parse_settings)
    monkeypatch.setattr(data_manager, "open_workbook", open_workbook)
    monkeypatch.setattr(data_manager, "read_state", read_state)

    context = core_logic.load_runtime_context(config_path)

    assert context.settings is parsed_settings
    assert context.state is state
    assert isinstance(context.clock, core_logic.SystemClock)
    find_config_file.assert_called_once_with(config_path)
    parse_settings.assert_called_once_with(parser, base_path=config_path.resolve().parent)
    open_workbook.assert_called_once_with(parsed_settings.data_file)
    read_state.assert_called_once_with(workbook)


def test_ensure_schema_version_accepts_expected(context):
    core_logic.ensure_schema_version(context)


def test_ensure_schema_version_rejects_mismatched_workbook(context):
    context.state.schema_version = "0.9.0"
    with pytest.raises(RuntimeError, match="workbook"):
        core_logic.ensure_schema_version(context)


def test_ensure_schema_version_rejects_mismatched_configuration(settings, clock):
    context = core_logic.RuntimeContext(settings=replace(settings, schema_version="2.0.0"), clock=clock)
    with pytest.raises(RuntimeError, match="configuration"):
        core_logic.ensure_schema_version(context)


def test_persist_and_refresh_roundtrip(runtime_context):
    """Changes persisted to disk should be visible after a refresh."""

    core_logic.add_expense_category(runtime_context, "Packaging")
    core_logic.persist_context(runtime_context)

    refreshed = core_logic.refresh_context(runtime_context)
    assert "Packaging" in [category.name for category in refreshed.state.expense_categories]
    assert refreshed.clock is runtime_context.clock


def test_refresh_discards_unsaved_changes(runtime_context):
    core_logic.add_expense_category(runtime_context, "Unsaved")
    refreshed = core_logic.refresh_context(runtime_context)
    assert "Unsaved" not in [category.name for category in refreshed.state.expense_categories]


def test_generate_record_id_is_sortable_and_unique():
    when = datetime(2025, 1, 2, 3, 4, 5, 6)
    first = core_logic.generate_record_id("S", when=when)
    second = core_logic.generate_record_id("S", when=when)
    assert re.fullmatch(r"S20250102030405000006-[0-9a-f]{6}", first)
    assert first != second


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1")])
def test_require_positive_quantity_rejects_non_positive(quantity):
    with pytest.raises(ValueError):
        core_logic.require_positive_quantity(quantity)


def test_require_nonnegative_money_allows_zero():
    core_logic.require_nonnegative_money(Decimal("0"))
    with pytest.raises(ValueError):
        core_logic.require_nonnegative_money(Decimal("-0.01"))


def test_require_unit_quantity_rejects_fractional_pieces():
    core_logic.require_unit_quantity(Decimal("1.5"), UnitType.KG)
    core_logic.require_unit_quantity(Decimal("2.0"), UnitType.PIECE)
    with pytest.raises(ValueError):
        core_logic.require_unit_quantity(Decimal("1.5"), UnitType.PIECE)


# ---------------------------------------------------------------------------
# Catalog registries
# ---------------------------------------------------------------------------


def test_add_product_defaults_wholesale_price_to_retail(context):
    product = core_logic.add_product(context, name=" Baguette ", price=Decimal("3"), unit_type=UnitType.PIECE)
    assert product.name == "Baguette"
    assert product.wholesale_price == Decimal("3")
    assert product.cost_price == Decimal("0")
    assert core_logic.get_product(context, product.product_id) == product


def test_add_product_rejects_duplicate_name(stocked_context):
    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.add_product(stocked_context, name="Croissant", price=Decimal("1"), unit_type=UnitType.PIECE)


def test_add_product_rejects_negative_price(context):
    with pytest.raises(ValueError):
        core_logic.add_product(context, name="Bad", price=Decimal("-1"), unit_type=UnitType.PIECE)
    assert context.state.products == []


def test_add_product_rejects_blank_name(context):
    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.add_product(context, name="  ", price=Decimal("1"), unit_type=UnitType.PIECE)


def test_update_product_changes_only_given_fields(stocked_context):
    croissant_id = product_id(stocked_context, "Croissant")

    updated = core_logic.update_product(stocked_context, croissant_id, price=Decimal("6"), name="Butter Croissant")

    assert updated.product_id == croissant_id
    assert (updated.name, updated.price, updated.wholesale_price, updated.cost_price) == (
        "Butter Croissant",
        Decimal("6"),
        Decimal("4"),
        Decimal("2"),
    )
    assert core_logic.get_product(stocked_context, croissant_id) == updated
    assert [product.name for product in stocked_context.state.products] == ["Butter Croissant", "Cookies"]


def test_update_product_keeps_own_name_but_rejects_anothers(stocked_context):
    croissant_id = product_id(stocked_context, "Croissant")
    assert core_logic.update_product(stocked_context, croissant_id, name="Croissant").name == "Croissant"
    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.update_product(stocked_context, croissant_id, name="Cookies")


def test_update_product_rejects_negative_money_without_change(stocked_context):
    croissant_id = product_id(stocked_context, "Croissant")
    before = core_logic.get_product(stocked_context, croissant_id)
    with pytest.raises(ValueError):
        core_logic.update_product(stocked_context, croissant_id, price=Decimal("7"), cost_price=Decimal("-1"))
    assert core_logic.get_product(stocked_context, croissant_id) == before


def test_update_product_unknown_raises(context):
    with pytest.raises(core_logic.MissingReferenceError):
        core_logic.update_product(context, "P-missing", price=Decimal("1"))


def test_delete_product_unknown_raises(context):
    with pytest.raises(core_logic.MissingReferenceError):
        core_logic.delete_product(context, "P-missing")


def test_registries_add_list_and_delete(context):
    customer = core_logic.add_customer(context, name="Cafe Nord")
    supplier = core_logic.add_supplier(context, name="Mill Co", phone="555")
    employee = core_logic.add_employee(context, name="Rana")
    core_logic.add_expense_category(context, "Rent")

    assert core_logic.list_customers(context) == [customer]
    assert core_logic.list_suppliers(context) == [supplier]
    assert core_logic.list_employees(context) == [employee]
    assert [category.name for category in core_logic.list_expense_categories(context)] == ["Rent"]

    core_logic.delete_customer(context, customer.customer_id)
    core_logic.delete_supplier(context, supplier.supplier_id)
    core_logic.delete_employee(context, employee.employee_id)
    core_logic.delete_expense_category(context, "Rent")

    state = context.state
    assert (state.customers, state.suppliers, state.employees, state.expense_categories) == ([], [], [], [])


def test_duplicate_supplier_and_category_names_are_rejected(stocked_context):
    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.add_supplier(stocked_context, name="Mill Co")
    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.add_expense_category(stocked_context, "Rent")


# ---------------------------------------------------------------------------
# Inventory store
# ---------------------------------------------------------------------------


def test_define_stock_item_starts_at_zero(context, clock):
    item = core_logic.define_stock_item(context, name="Sugar", unit_type=UnitType.KG, min_threshold=Decimal("5"))
    assert item.current_quantity == Decimal("0")
    assert item.last_updated == clock.today()
    assert item.is_low_stock


def test_define_stock_item_rejects_duplicate_name(stocked_context):
    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.define_stock_item(stocked_context, name="Flour", unit_type=UnitType.KG)


def test_receive_stock_increases_quantity(stocked_context):
    item = core_logic.receive_stock(stocked_context, "Flour", Decimal("12.5"))
    assert item.current_quantity == Decimal("12.5")
    assert not item.is_low_stock


def test_receive_stock_for_untracked_name_changes_nothing(stocked_context, caplog):
    before = list(stocked_context.state.inventory)
    with caplog.at_level(logging.WARNING, logger="bakery_ledger"):
        assert core_logic.receive_stock(stocked_context, "flour", Decimal("1")) is None
    assert stocked_context.state.inventory == before
    assert "not a tracked stock item" in caplog.text


def test_consume_stock_may_go_negative(stocked_context):
    item_id = core_logic.find_stock_item(stocked_context, "Flour").item_id
    updated = core_logic.consume_stock(stocked_context, item_id, Decimal("3"))
    assert updated.current_quantity == Decimal("-3")


def test_set_stock_quantity_overwrites_count(stocked_context, clock):
    item_id = core_logic.find_stock_item(stocked_context, "Flour").item_id
    clock.advance(days=1)
    updated = core_logic.set_stock_quantity(stocked_context, item_id, Decimal("42"))
    assert updated.current_quantity == Decimal("42")
    assert updated.last_updated == clock.today()


def test_list_low_stock_filters_by_threshold(stocked_context):
    core_logic.define_stock_item(stocked_context, name="Salt", unit_type=UnitType.KG)
    assert [item.name for item in core_logic.list_low_stock(stocked_context)] == ["Flour"]


def test_apply_receipts_leaves_input_untouched(stocked_context, clock):
    original = list(stocked_context.state.inventory)
    updated, untracked = core_logic.apply_receipts(
        original, [("Flour", Decimal("5")), ("Yeast", Decimal("1"))], today=clock.today()
    )
    assert original == stocked_context.state.inventory
    assert updated[0].current_quantity == Decimal("5")
    assert untracked == ["Yeast"]


def test_delete_stock_item(stocked_context):
    item_id = core_logic.find_stock_item(stocked_context, "Flour").item_id
    core_logic.delete_stock_item(stocked_context, item_id)
    assert core_logic.list_stock(stocked_context) == []


# ---------------------------------------------------------------------------
# Sales journal
# ---------------------------------------------------------------------------


def test_complete_order_prices_retail_lines_from_catalog(stocked_context, clock):
    items = sell(stocked_context, ("Croissant", "3"), ("Cookies", "0.5"))

    assert [item.name for item in items] == ["Croissant", "Cookies"]
    assert [item.price for item in items] == [Decimal("5"), Decimal("20")]
    assert {item.order_id for item in items} == {items[0].order_id}
    assert {item.customer_number for item in items} == {1}
    assert all(item.timestamp == clock.now() for item in items)
    assert items[0].cost_price == Decimal("2")
    assert core_logic.sales_revenue(items) == Decimal("25")
    assert core_logic.list_sales(stocked_context) == items


def test_complete_order_wholesale_uses_wholesale_price_and_customer(stocked_context):
    customer = stocked_context.state.customers[0]
    items = sell(stocked_context, ("Croissant", "10"), sale_type=SaleType.WHOLESALE, customer_id=customer.customer_id)

    assert items[0].price == Decimal("4")
    assert items[0].sale_type is SaleType.WHOLESALE
    assert items[0].customer_id == customer.customer_id
    assert items[0].customer_name == "Cafe Nord"


def test_complete_order_wholesale_requires_customer(stocked_context):
    with pytest.raises(core_logic.BusinessRuleViolation):
        sell(stocked_context, ("Croissant", "1"), sale_type=SaleType.WHOLESALE)
    assert stocked_context.state.sales == []


def test_complete_order_retail_keeps_free_text_customer_name(stocked_context):
    command = core_logic.CheckoutCommand(
        lines=[core_logic.CartLine(product_id(stocked_context, "Croissant"), Decimal("1"))],
        customer_name="  Walk-in Sam ",
    )
    items = core_logic.complete_order(stocked_context, command)
    assert items[0].customer_name == "Walk-in Sam"
    assert items[0].customer_id is None


def test_complete_order_price_override(stocked_context):
    command = core_logic.CheckoutCommand(
        lines=[core_logic.CartLine(product_id(stocked_context, "Cookies"), Decimal("1"), price=Decimal("18"))],
    )
    items = core_logic.complete_order(stocked_context, command)
    assert items[0].price == Decimal("18")


def test_complete_order_is_all_or_nothing(stocked_context):
    """A single bad line should keep every other line out of the journal."""

    command = core_logic.CheckoutCommand(
        lines=[
            core_logic.CartLine(product_id(stocked_context, "Cookies"), Decimal("1")),
            core_logic.CartLine("P-missing", Decimal("1")),
        ],
    )
    with pytest.raises(core_logic.MissingReferenceError):
        core_logic.complete_order(stocked_context, command)
    assert stocked_context.state.sales == []


def test_complete_order_rejects_fractional_piece_quantity(stocked_context):
    with pytest.raises(ValueError):
        sell(stocked_context, ("Croissant", "1.5"))


def test_complete_order_rejects_empty_cart(stocked_context):
    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.complete_order(stocked_context, core_logic.CheckoutCommand(lines=[]))


def test_customer_numbers_increase_per_order(stocked_context):
    first = sell(stocked_context, ("Croissant", "1"))
    second = sell(stocked_context, ("Croissant", "2"))
    assert (first[0].customer_number, second[0].customer_number) == (1, 2)
    assert first[0].order_id != second[0].order_id


def test_sale_items_keep_price_snapshot_after_product_removal(stocked_context):
    items = sell(stocked_context, ("Croissant", "2"))
    core_logic.delete_product(stocked_context, product_id(stocked_context, "Croissant"))
    assert stocked_context.state.sales == items
    assert stocked_context.state.sales[0].price == Decimal("5")


def test_complete_order_sells_custom_line_beside_catalog_line(stocked_context):
    command = core_logic.CheckoutCommand(
        lines=[
            core_logic.CartLine(product_id(stocked_context, "Croissant"), Decimal("2")),
            core_logic.CartLine.custom("Birthday cake", Decimal("1"), Decimal("250"), cost_price=Decimal("120")),
        ]
    )

    croissants, cake = core_logic.complete_order(stocked_context, command)

    assert croissants.order_id == cake.order_id
    assert (cake.name, cake.price, cake.cost_price, cake.unit_type) == (
        "Birthday cake",
        Decimal("250"),
        Decimal("120"),
        UnitType.PIECE,
    )
    assert cake.line_profit == Decimal("130")
    assert [product.name for product in stocked_context.state.products] == ["Croissant", "Cookies"]


def test_custom_line_without_cost_counts_zero_cost(stocked_context):
    line = core_logic.CartLine.custom("Cake slices", Decimal("0.5"), Decimal("30"), unit_type=UnitType.KG)
    (item,) = core_logic.complete_order(stocked_context, core_logic.CheckoutCommand(lines=[line]))
    assert item.cost_price is None
    assert item.line_profit == Decimal("15")


@pytest.mark.parametrize(
    ("line", "error"),
    [
        (core_logic.CartLine.custom("Cake", Decimal("1.5"), Decimal("10")), ValueError),
        (core_logic.CartLine.custom("Cake", Decimal("0"), Decimal("10")), ValueError),
        (core_logic.CartLine.custom("Cake", Decimal("1"), Decimal("-1")), ValueError),
        (core_logic.CartLine.custom("Cake", Decimal("1"), Decimal("10"), cost_price=Decimal("-1")), ValueError),
        (core_logic.CartLine.custom("  ", Decimal("1"), Decimal("10")), core_logic.BusinessRuleViolation),
        (core_logic.CartLine(None, Decimal("1"), name="Cake"), core_logic.BusinessRuleViolation),
    ],
)
def test_custom_line_validation_rejects_whole_order(stocked_context, line, error):
    command = core_logic.CheckoutCommand(
        lines=[core_logic.CartLine(product_id(stocked_context, "Croissant"), Decimal("1")), line]
    )
    with pytest.raises(error):
        core_logic.complete_order(stocked_context, command)
    assert stocked_context.state.sales == []


def test_sale_items_keep_price_snapshot_after_catalog_edit(stocked_context):
    items = sell(stocked_context, ("Croissant", "2"))
    core_logic.update_product(
        stocked_context,
        product_id(stocked_context, "Croissant"),
        price=Decimal("9"),
        cost_price=Decimal("7"),
    )

    active = stocked_context.state.sales[0]
    assert active == items[0]
    assert (active.price, active.cost_price, active.line_profit) == (Decimal("5"), Decimal("2"), Decimal("6"))
    assert sell(stocked_context, ("Croissant", "1"))[0].price == Decimal("9")


def test_delete_order_removes_all_lines(stocked_context):
    items = sell(stocked_context, ("Croissant", "1"), ("Cookies", "1"))
    kept = sell(stocked_context, ("Croissant", "4"))

    removed = core_logic.delete_order(stocked_context, items[0].order_id)

    assert removed == items
    assert stocked_context.state.sales == kept
    with pytest.raises(core_logic.MissingReferenceError):
        core_logic.delete_order(stocked_context, items[0].order_id)


def test_delete_sale_item_removes_single_line(stocked_context):
    items = sell(stocked_context, ("Croissant", "1"), ("Cookies", "1"))
    core_logic.delete_sale_item(stocked_context, items[0].item_id)
    assert stocked_context.state.sales == [items[1]]


# ---------------------------------------------------------------------------
# Purchase journal
# ---------------------------------------------------------------------------


def test_add_purchase_invoice_receives_tracked_lines(stocked_context):
    invoice = purchase(stocked_context, ("Flour", "25", "1.2"), ("Butter", "2", "8"))

    assert invoice.total_amount == Decimal("46")
    assert invoice.payment_status is PaymentStatus.PAID
    assert stock_quantity(stocked_context, "Flour") == Decimal("25")
    assert core_logic.list_purchase_invoices(stocked_context) == [invoice]


def test_add_purchase_invoice_warns_for_untracked_line(stocked_context, caplog):
    with caplog.at_level(logging.WARNING, logger="bakery_ledger"):
        purchase(stocked_context, ("Butter", "2", "8"))
    assert "matches no stock item" in caplog.text


def test_add_purchase_invoice_requires_registered_supplier(stocked_context):
    with pytest.raises(core_logic.MissingReferenceError):
        purchase(stocked_context, ("Flour", "1", "1"), supplier="Nobody")
    assert stocked_context.state.purchase_invoices == []
    assert stock_quantity(stocked_context, "Flour") == Decimal("0")


def test_add_purchase_invoice_rejects_bad_line_without_side_effects(stocked_context):
    with pytest.raises(ValueError):
        purchase(stocked_context, ("Flour", "5", "1"), ("Sugar", "0", "1"))
    assert stocked_context.state.purchase_invoices == []
    assert stock_quantity(stocked_context, "Flour") == Decimal("0")


def test_add_purchase_invoice_requires_lines(stocked_context):
    command = core_logic.PurchaseInvoiceCommand(supplier_name="Mill Co", lines=[])
    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.add_purchase_invoice(stocked_context, command)


def test_update_purchase_invoice_applies_net_effect(stocked_context):
    """Editing an invoice should leave inventory at the new lines' quantities."""

    invoice = purchase(stocked_context, ("Flour", "25", "1.2"))
    command = core_logic.PurchaseInvoiceCommand(
        supplier_name="Mill Co",
        lines=[core_logic.PurchaseLine("Flour", Decimal("20"), Decimal("1.2"))],
        payment_status=PaymentStatus.CREDIT,
    )

    updated = core_logic.update_purchase_invoice(stocked_context, invoice.invoice_id, command)

    assert stock_quantity(stocked_context, "Flour") == Decimal("20")
    assert updated.invoice_id == invoice.invoice_id
    assert updated.timestamp == invoice.timestamp
    assert updated.payment_status is PaymentStatus.CREDIT
    assert core_logic.list_purchase_invoices(stocked_context) == [updated]


def test_add_purchase_invoice_marks_which_lines_moved_stock(stocked_context):
    invoice = purchase(stocked_context, ("Flour", "5", "1"), ("Sugar", "5", "100"))
    assert [(item.name, item.received) for item in invoice.items] == [("Flour", True), ("Sugar", False)]


def test_update_purchase_invoice_skips_reversal_of_unreceived_lines(stocked_context):
    """A line saved before its stock item existed is received once, on edit."""

    invoice = purchase(stocked_context, ("Sugar", "5", "100"))
    core_logic.define_stock_item(stocked_context, name="Sugar", unit_type=UnitType.KG)
    command = core_logic.PurchaseInvoiceCommand(
        supplier_name="Mill Co",
        lines=[core_logic.PurchaseLine("Sugar", Decimal("5"), Decimal("100"))],
    )

    updated = core_logic.update_purchase_invoice(stocked_context, invoice.invoice_id, command)
    assert stock_quantity(stocked_context, "Sugar") == Decimal("5")
    assert updated.items[0].received

    core_logic.update_purchase_invoice(stocked_context, invoice.invoice_id, command)
    assert stock_quantity(stocked_context, "Sugar") == Decimal("5")


def test_update_unknown_invoice_raises(stocked_context):
    command = core_logic.PurchaseInvoiceCommand(
        supplier_name="Mill Co", lines=[core_logic.PurchaseLine("Flour", Decimal("1"), Decimal("1"))]
    )
    with pytest.raises(core_logic.MissingReferenceError):
        core_logic.update_purchase_invoice(stocked_context, "B-missing", command)


def test_delete_purchase_invoice_keeps_received_stock(stocked_context):
    invoice = purchase(stocked_context, ("Flour", "25", "1.2"))
    core_logic.delete_purchase_invoice(stocked_context, invoice.invoice_id)
    assert stocked_context.state.purchase_invoices == []
    assert stock_quantity(stocked_context, "Flour") == Decimal("25")


# ---------------------------------------------------------------------------
# Salary and general expense journals
# ---------------------------------------------------------------------------


def test_record_salary_payment_defaults_period_to_current_month(stocked_context, clock):
    employee = stocked_context.state.employees[0]
    payment = core_logic.record_salary_payment(
        stocked_context, core_logic.SalaryPaymentCommand(employee_id=employee.employee_id, amount=Decimal("300"))
    )
    assert payment.period == MonthKey(2025, 3)
    assert payment.employee_name == "Rana"
    assert payment.timestamp == clock.now()


def test_record_salary_payment_keeps_name_after_employee_removal(stocked_context):
    employee = stocked_context.state.employees[0]
    payment = core_logic.record_salary_payment(
        stocked_context,
        core_logic.SalaryPaymentCommand(
            employee_id=employee.employee_id, amount=Decimal("300"), period=MonthKey(2025, 2)
        ),
    )
    core_logic.delete_employee(stocked_context, employee.employee_id)
    assert core_logic.list_salary_payments(stocked_context) == [payment]
    assert payment.period == MonthKey(2025, 2)


def test_record_salary_payment_validations(stocked_context):
    with pytest.raises(core_logic.MissingReferenceError):
        core_logic.record_salary_payment(
            stocked_context, core_logic.SalaryPaymentCommand(employee_id="E-missing", amount=Decimal("1"))
        )
    employee_id = stocked_context.state.employees[0].employee_id
    with pytest.raises(ValueError):
        core_logic.record_salary_payment(
            stocked_context, core_logic.SalaryPaymentCommand(employee_id=employee_id, amount=Decimal("0"))
        )


def test_record_general_expense_requires_registered_category(stocked_context):
    expense = core_logic.record_general_expense(
        stocked_context, core_logic.GeneralExpenseCommand(category="Rent", amount=Decimal("100"), notes="March")
    )
    assert expense.category == "Rent"
    with pytest.raises(core_logic.MissingReferenceError):
        core_logic.record_general_expense(
            stocked_context, core_logic.GeneralExpenseCommand(category="Parties", amount=Decimal("1"))
        )
    assert core_logic.list_general_expenses(stocked_context) == [expense]


def test_delete_salary_and_expense_records(stocked_context):
    employee_id = stocked_context.state.employees[0].employee_id
    payment = core_logic.record_salary_payment(
        stocked_context, core_logic.SalaryPaymentCommand(employee_id=employee_id, amount=Decimal("10"))
    )
    expense = core_logic.record_general_expense(
        stocked_context, core_logic.GeneralExpenseCommand(category="Rent", amount=Decimal("5"))
    )
    core_logic.delete_salary_payment(stocked_context, payment.payment_id)
    core_logic.delete_general_expense(stocked_context, expense.expense_id)
    assert stocked_context.state.salary_payments == []
    assert stocked_context.state.general_expenses == []


# ---------------------------------------------------------------------------
# Archive manager
# ---------------------------------------------------------------------------


def test_close_day_archives_and_clears_journals(stocked_context, clock):
    sell(stocked_context, ("Croissant", "3"))
    purchase(stocked_context, ("Flour", "10", "1"))
    employee_id = stocked_context.state.employees[0].employee_id
    core_logic.record_salary_payment(
        stocked_context, core_logic.SalaryPaymentCommand(employee_id=employee_id, amount=Decimal("50"))
    )
    core_logic.record_general_expense(
        stocked_context, core_logic.GeneralExpenseCommand(category="Rent", amount=Decimal("5"))
    )
    inventory_before = list(stocked_context.state.inventory)
    catalog_before = list(stocked_context.state.products)

    day = core_logic.close_day(stocked_context)

    assert day.date == clock.today()
    assert day.total_revenue == Decimal("15")
    assert day.total_items == Decimal("3")
    assert day.total_expenses == Decimal("65")
    assert len(day.items) == 1 and len(day.purchase_invoices) == 1
    assert core_logic.list_history(stocked_context) == [day]
    state = stocked_context.state
    assert (state.sales, state.purchase_invoices, state.salary_payments, state.general_expenses) == ([], [], [], [])
    assert state.inventory == inventory_before
    assert state.products == catalog_before


def test_close_day_restarts_customer_numbers(stocked_context):
    sell(stocked_context, ("Croissant", "1"))
    sell(stocked_context, ("Croissant", "1"))
    core_logic.close_day(stocked_context)
    assert sell(stocked_context, ("Croissant", "1"))[0].customer_number == 1


def test_close_day_with_only_expenses_archives_zero_revenue(stocked_context):
    core_logic.record_general_expense(
        stocked_context, core_logic.GeneralExpenseCommand(category="Rent", amount=Decimal("5"))
    )
    day = core_logic.close_day(stocked_context)
    assert day.total_revenue == Decimal("0")
    assert day.total_expenses == Decimal("5")


def test_close_day_rejects_empty_period(stocked_context):
    with pytest.raises(core_logic.BusinessRuleViolation):
        core_logic.close_day(stocked_context)
    assert stocked_context.state.history == []


def test_clear_history_requires_operations_password(secured_context, clock):
    core_logic.add_expense_category(secured_context, "Rent")
    core_logic.record_general_expense(
        secured_context, core_logic.GeneralExpenseCommand(category="Rent", amount=Decimal("5"))
    )
    core_logic.close_day(secured_context)

    with pytest.raises(core_logic.AuthenticationError):
        core_logic.clear_history(secured_context, "wrong")
    assert len(secured_context.state.history) == 1

    assert core_logic.clear_history(secured_context, OPERATIONS_PASSWORD) == 1
    assert secured_context.state.history == []


def test_clear_history_without_configured_password_is_refused(context):
    with pytest.raises(core_logic.AuthenticationError):
        core_logic.clear_history(context, "anything")


def test_verify_password_kinds_are_independent(secured_context):
    assert core_logic.verify_password(secured_context, PasswordKind.OPERATIONS, OPERATIONS_PASSWORD)
    assert not core_logic.verify_password(secured_context, PasswordKind.LOGIN, OPERATIONS_PASSWORD)
