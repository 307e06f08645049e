"""Password hashing helpers.

Operator passwords are persisted only as bcrypt hashes. The business layer
decides which password gates which action; this module only turns
plaintext into hashes and checks candidates against them.
"""

from __future__ import annotations

import bcrypt


BCRYPT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 4


class PasswordPolicyError(ValueError):
    """Raised when a new password does not satisfy the minimal policy."""


def validate_password(password: str) -> None:
    """Reject blank or too-short passwords.

    Raises:
        PasswordPolicyError: If ``password`` is shorter than
            ``MIN_PASSWORD_LENGTH`` once surrounding whitespace is removed.
    """

    if len(password.strip()) < MIN_PASSWORD_LENGTH:
        raise PasswordPolicyError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str, *, rounds: int | None = None) -> str:
    """Validate and hash ``password`` with a fresh bcrypt salt.

    ``rounds`` defaults to ``BCRYPT_ROUNDS``, read at call time.
    """

    validate_password(password)
    salt = bcrypt.gensalt(rounds=rounds or BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def check_password(candidate: str, password_hash: str | None) -> bool:
    """Return ``True`` when ``candidate`` matches ``password_hash``.

    An unset hash never matches. A malformed hash is treated as a mismatch
    rather than an error so callers get a plain yes/no answer.
    """

    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(candidate.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
