"""Bootstrap an empty Bakery Ledger master workbook.

Run as ``bakery-ledger-setup`` before the first shift, or call
:func:`create_master_workbook` directly. The new file holds every sheet with
its header row, a starter set of expense categories, and optional bcrypt
hashes for the login and operations passwords. Journals, inventory, and
history start empty.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable, Optional, Sequence

from . import data_manager, log, security
from .data_manager import ExpenseCategory, LedgerState

CONFIG_FILE = "config.ini"

# Categories the bakery files most general expenses under.
DEFAULT_EXPENSE_CATEGORIES = ("Rent", "Electricity", "Water", "Fuel", "Maintenance")


def _hash_optional(password: Optional[str]) -> Optional[str]:
    return security.hash_password(password) if password else None


def create_master_workbook(
    destination: Path,
    *,
    login_password: Optional[str] = None,
    operations_password: Optional[str] = None,
    expense_categories: Iterable[str] = DEFAULT_EXPENSE_CATEGORIES,
    overwrite: bool = False,
) -> Path:
    """Write a fresh ledger workbook to ``destination`` and return its path.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
        security.PasswordPolicyError: If a supplied password is too short.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"A ledger workbook already exists at {destination}")

    categories = list(dict.fromkeys(name.strip() for name in expense_categories if name.strip()))
    state = LedgerState(
        expense_categories=[ExpenseCategory(name=name) for name in categories],
        login_password_hash=_hash_optional(login_password),
        operations_password_hash=_hash_optional(operations_password),
    )
    data_manager.save_workbook(data_manager.build_workbook(state), destination)
    log.info(
        "Initialized ledger workbook '%s' with %d expense categor(ies)",
        destination,
        len(categories),
    )
    return destination


def run_from_config(
    config_path: Path,
    *,
    overwrite: bool = False,
    login_password: Optional[str] = None,
    operations_password: Optional[str] = None,
    expense_categories: Optional[Sequence[str]] = None,
) -> Path:
    """Create the workbook that ``DataFile`` in ``config_path`` points to."""

    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.expanduser().resolve().parent)
    return create_master_workbook(
        settings.data_file,
        login_password=login_password,
        operations_password=operations_password,
        expense_categories=expense_categories or DEFAULT_EXPENSE_CATEGORIES,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="bakery-ledger-setup",
        description="Create an empty Bakery Ledger workbook for the file named in config.ini.",
    )
    parser.add_argument("--config", default=CONFIG_FILE, help="Configuration file to read (default: config.ini).")
    parser.add_argument("--force", action="store_true", help="Replace an existing ledger workbook.")
    parser.add_argument("--login-password", default=None, help="Initial till login password.")
    parser.add_argument(
        "--operations-password",
        default=None,
        help="Initial password guarding history clearing and backup import.",
    )
    parser.add_argument(
        "--category",
        dest="categories",
        action="append",
        default=None,
        help="Starter expense category; repeat to add several (replaces the defaults).",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Bakery Ledger Setup ---")
    print(f"Reading configuration from {config_path}")

    try:
        output_path = run_from_config(
            config_path,
            overwrite=args.force,
            login_password=args.login_password,
            operations_password=args.operations_password,
            expense_categories=args.categories,
        )
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Pass --force to start over with an empty ledger.")
        return 1
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except OSError as exc:
        log.error("Could not write ledger workbook: %s", exc)
        print(f"\n[ERROR] Could not write ledger workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Ledger workbook ready at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
