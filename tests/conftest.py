"""Shared pytest fixtures and utilities for Bakery Ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from bakery_ledger import cli, constants, core_logic, data_manager, security  # noqa: E402
from bakery_ledger.setup_workbook import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
OPERATIONS_PASSWORD = "ops-secret"
LOGIN_PASSWORD = "login-secret"
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "BakeryName = {bakery_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "Currency = SYP\n"
    "TrailingDays = {trailing_days}\n"
)


class FixedClock:
    """Controllable clock; ``advance`` moves it forward."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def today(self) -> date:
        return self.moment.date()

    def advance(self, **delta: float) -> datetime:
        self.moment = self.moment + timedelta(**delta)
        return self.moment

    def set(self, moment: datetime) -> datetime:
        self.moment = moment
        return moment


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    bakery_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture(autouse=True)
def _fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    """Use the cheapest bcrypt cost so password tests stay fast."""

    monkeypatch.setattr(security, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 3, 14, 9, 30, 0))


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized master workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        filename: str = "bakery_master.xlsx",
        operations_password: str | None = OPERATIONS_PASSWORD,
        login_password: str | None = None,
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(
            workbook_path,
            operations_password=operations_password,
            login_password=login_password,
            overwrite=True,
        )
        return workbook_path

    return _create_workbook


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        bakery_name: str = "Test Bakery",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        trailing_days: int = 7,
    ) -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_dir_name
        workbook_path = workbook_factory(subdir=bundle_dir_name)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                bakery_name=bakery_name,
                schema_version=schema_version,
                trailing_days=trailing_days,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            bakery_name=bakery_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path, clock: FixedClock) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file, clock=clock)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="bakery-ledger", description="Bakery CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for in-memory context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "bakery_master.xlsx",
        bakery_name="Test Bakery",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def context(settings: data_manager.ConfigSettings, clock: FixedClock) -> core_logic.RuntimeContext:
    """Assemble an in-memory runtime context with an empty ledger."""

    return core_logic.RuntimeContext(settings=settings, state=data_manager.LedgerState(), clock=clock)


@pytest.fixture
def secured_context(context: core_logic.RuntimeContext) -> core_logic.RuntimeContext:
    """An in-memory context whose operations password is configured."""

    core_logic.set_password(context, constants.PasswordKind.OPERATIONS, OPERATIONS_PASSWORD)
    return context


@pytest.fixture
def stocked_context(context: core_logic.RuntimeContext) -> core_logic.RuntimeContext:
    """An in-memory context with a small catalog, registries, and stock items."""

    core_logic.add_product(
        context,
        name="Croissant",
        price=Decimal("5"),
        wholesale_price=Decimal("4"),
        cost_price=Decimal("2"),
        unit_type=constants.UnitType.PIECE,
    )
    core_logic.add_product(
        context,
        name="Cookies",
        price=Decimal("20"),
        wholesale_price=Decimal("16"),
        cost_price=Decimal("12"),
        unit_type=constants.UnitType.KG,
    )
    core_logic.add_customer(context, name="Cafe Nord", phone="555-0101")
    core_logic.add_supplier(context, name="Mill Co")
    core_logic.add_employee(context, name="Rana", position="Baker")
    core_logic.add_expense_category(context, "Rent")
    core_logic.define_stock_item(
        context,
        name="Flour",
        unit_type=constants.UnitType.KG,
        min_threshold=Decimal("10"),
    )
    return context


def product_id(context: core_logic.RuntimeContext, name: str) -> str:
    """Look up a product id by name."""

    return next(product.product_id for product in context.state.products if product.name == name)


def sell(
    context: core_logic.RuntimeContext,
    *lines: tuple[str, str],
    sale_type: constants.SaleType = constants.SaleType.RETAIL,
    customer_id: str | None = None,
) -> list[data_manager.SaleItem]:
    """Complete an order given ``(product name, quantity)`` pairs."""

    command = core_logic.CheckoutCommand(
        lines=[core_logic.CartLine(product_id(context, name), Decimal(qty)) for name, qty in lines],
        sale_type=sale_type,
        customer_id=customer_id,
    )
    return core_logic.complete_order(context, command)


def purchase(
    context: core_logic.RuntimeContext,
    *lines: tuple[str, str, str],
    supplier: str = "Mill Co",
) -> data_manager.PurchaseInvoice:
    """Record a paid invoice given ``(name, quantity, cost)`` triples."""

    command = core_logic.PurchaseInvoiceCommand(
        supplier_name=supplier,
        lines=[core_logic.PurchaseLine(name, Decimal(qty), Decimal(cost)) for name, qty, cost in lines],
    )
    return core_logic.add_purchase_invoice(context, command)
