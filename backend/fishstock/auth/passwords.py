"""bcrypt password hashing for worker credentials."""

from __future__ import annotations

import logging
import re

import bcrypt

logger = logging.getLogger("fishstock.auth")

# bcrypt only looks at the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 8

# Verified against when the email is unknown, so a failed lookup costs the
# same as a failed password check.
_DUMMY_HASH = bcrypt.hashpw(b"fishstock-dummy-password", bcrypt.gensalt(rounds=12)).decode()


def hash_password(password: str, rounds: int = 12) -> str:
    """Return a self-describing salted bcrypt hash (cost factor embedded)."""
    raw = password.encode("utf-8")
    if not raw:
        raise ValueError("password must not be empty")
    if len(raw) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(plain: str, hashed: str) -> bool:
    """Check *plain* against *hashed*.

    Never raises: empty input, an over-long password or a malformed stored
    hash all count as a failed verification.
    """
    if not plain or not hashed:
        return False
    raw = plain.encode("utf-8")
    if len(raw) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(raw, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        logger.warning("Malformed password hash encountered during verification")
        return False


def burn_verification(plain: str) -> None:
    """Spend one verification's worth of work against the dummy hash."""
    verify_password(plain or "x", _DUMMY_HASH)


def validate_password_strength(password: str) -> list[str]:
    """Return the list of rule violations for *password* (empty when acceptable)."""
    errors: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        errors.append(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")
    if not re.search(r"[A-Za-z]", password):
        errors.append("Password must contain at least one letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    return errors
