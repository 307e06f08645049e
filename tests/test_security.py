"""Unit tests for bcrypt password helpers and the operator password rules."""

from __future__ import annotations

import pytest

from bakery_ledger import core_logic, security
from bakery_ledger.constants import PasswordKind

from conftest import OPERATIONS_PASSWORD


def test_hash_password_produces_verifiable_bcrypt_hash():
    hashed = security.hash_password("letmein")
    assert hashed.startswith("$2")
    assert "letmein" not in hashed
    assert security.check_password("letmein", hashed)
    assert not security.check_password("letmeout", hashed)


def test_hash_password_uses_fresh_salt():
    assert security.hash_password("letmein") != security.hash_password("letmein")


def test_hash_password_honours_configured_rounds():
    assert security.hash_password("letmein").startswith("$2b$04$")
    assert security.hash_password("letmein", rounds=5).startswith("$2b$05$")


@pytest.mark.parametrize("password", ["", "   ", "abc", " ab "])
def test_validate_password_rejects_short_values(password):
    with pytest.raises(security.PasswordPolicyError):
        security.validate_password(password)


def test_check_password_rejects_unset_or_malformed_hash():
    assert not security.check_password("anything", None)
    assert not security.check_password("anything", "")
    assert not security.check_password("anything", "not-a-bcrypt-hash")


def test_set_password_stores_only_a_hash(context):
    core_logic.set_password(context, PasswordKind.LOGIN, "front-desk")

    assert context.state.login_password_hash is not None
    assert context.state.login_password_hash != "front-desk"
    assert context.state.operations_password_hash is None
    assert core_logic.verify_password(context, PasswordKind.LOGIN, "front-desk")


def test_changing_password_requires_current_one(secured_context):
    with pytest.raises(core_logic.AuthenticationError):
        core_logic.set_password(secured_context, PasswordKind.OPERATIONS, "brand-new")
    with pytest.raises(core_logic.AuthenticationError):
        core_logic.set_password(
            secured_context, PasswordKind.OPERATIONS, "brand-new", current_password="wrong"
        )

    core_logic.set_password(
        secured_context,
        PasswordKind.OPERATIONS,
        "brand-new",
        current_password=OPERATIONS_PASSWORD,
    )
    assert core_logic.verify_password(secured_context, PasswordKind.OPERATIONS, "brand-new")
    assert not core_logic.verify_password(secured_context, PasswordKind.OPERATIONS, OPERATIONS_PASSWORD)


def test_set_password_rejects_policy_violation_without_changing_hash(secured_context):
    before = secured_context.state.operations_password_hash
    with pytest.raises(security.PasswordPolicyError):
        core_logic.set_password(
            secured_context, PasswordKind.OPERATIONS, "abc", current_password=OPERATIONS_PASSWORD
        )
    assert secured_context.state.operations_password_hash == before


def test_require_password_fails_when_unconfigured(context):
    with pytest.raises(core_logic.AuthenticationError, match="not been configured"):
        core_logic.require_password(context, PasswordKind.OPERATIONS, "anything")


def test_require_password_allows_unlimited_retries(secured_context):
    for _ in range(5):
        with pytest.raises(core_logic.AuthenticationError):
            core_logic.require_password(secured_context, PasswordKind.OPERATIONS, "nope")
    core_logic.require_password(secured_context, PasswordKind.OPERATIONS, OPERATIONS_PASSWORD)
