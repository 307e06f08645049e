"""Tests for the workbook bootstrap script."""

from __future__ import annotations

from pathlib import Path

import pytest

from bakery_ledger import data_manager, security, setup_workbook

from conftest import DEFAULT_SCHEMA_VERSION, OPERATIONS_PASSWORD


def write_config(directory: Path, data_file: str = "ledger.xlsx") -> Path:
    config_path = directory / "config.ini"
    config_path.write_text(
        "[System]\n"
        f"DataFile = {data_file}\n"
        "BakeryName = Setup Bakery\n"
        f"SchemaVersion = {DEFAULT_SCHEMA_VERSION}\n",
        encoding="utf-8",
    )
    return config_path


def load_state(path: Path) -> data_manager.LedgerState:
    return data_manager.read_state(data_manager.open_workbook(path))


def test_create_master_workbook_writes_empty_ledger(tmp_path):
    target = setup_workbook.create_master_workbook(tmp_path / "ledger.xlsx")

    state = load_state(target)
    assert [category.name for category in state.expense_categories] == list(
        setup_workbook.DEFAULT_EXPENSE_CATEGORIES
    )
    assert state.sales == state.inventory == state.history == []
    assert state.operations_password_hash is None


def test_create_master_workbook_hashes_passwords(tmp_path):
    target = setup_workbook.create_master_workbook(
        tmp_path / "ledger.xlsx", operations_password=OPERATIONS_PASSWORD
    )

    stored = load_state(target).operations_password_hash
    assert stored != OPERATIONS_PASSWORD
    assert security.check_password(OPERATIONS_PASSWORD, stored)


def test_create_master_workbook_dedupes_categories(tmp_path):
    target = setup_workbook.create_master_workbook(
        tmp_path / "ledger.xlsx", expense_categories=["Gas", " Gas ", "", "Flour delivery"]
    )
    assert [category.name for category in load_state(target).expense_categories] == ["Gas", "Flour delivery"]


def test_create_master_workbook_refuses_overwrite(tmp_path):
    target = setup_workbook.create_master_workbook(tmp_path / "ledger.xlsx")
    with pytest.raises(FileExistsError):
        setup_workbook.create_master_workbook(target)
    assert setup_workbook.create_master_workbook(target, overwrite=True) == target


def test_main_creates_workbook_next_to_config(tmp_path, capsys):
    config_path = write_config(tmp_path)

    exit_code = setup_workbook.main(["--config", str(config_path), "--category", "Gas"])

    assert exit_code == 0
    assert "[SUCCESS]" in capsys.readouterr().out
    state = load_state(tmp_path / "ledger.xlsx")
    assert [category.name for category in state.expense_categories] == ["Gas"]


def test_main_reports_existing_workbook(tmp_path, capsys):
    config_path = write_config(tmp_path)
    assert setup_workbook.main(["--config", str(config_path)]) == 0

    assert setup_workbook.main(["--config", str(config_path)]) == 1
    assert "--force" in capsys.readouterr().out
    assert setup_workbook.main(["--config", str(config_path), "--force"]) == 0


def test_main_rejects_short_password(tmp_path):
    config_path = write_config(tmp_path)
    assert setup_workbook.main(["--config", str(config_path), "--operations-password", "ab"]) == 1
    assert not (tmp_path / "ledger.xlsx").exists()


def test_main_missing_config_returns_error(tmp_path):
    assert setup_workbook.main(["--config", str(tmp_path / "absent.ini")]) == 1
