"""Password hashing for the user store, backed by Passlib (Argon2)."""

from __future__ import annotations

import logging

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

_pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    """Return an Argon2 hash for ``password``.

    Raises:
        ValueError: If ``password`` is empty.
    """

    if not password:
        raise ValueError("Password must be non-empty.")
    return _pwd_context.hash(password)


def verify_password(password: str, hashed_password: str | None) -> bool:
    """Check ``password`` against a stored hash.

    Hashes in a scheme this process cannot read count as a mismatch.
    """

    if not password or not hashed_password:
        return False
    try:
        return _pwd_context.verify(password, hashed_password)
    except ValueError:
        logger.warning("Stored password hash has an unsupported format")
        return False


def password_needs_rehash(hashed_password: str) -> bool:
    return _pwd_context.needs_update(hashed_password)


__all__ = ["hash_password", "password_needs_rehash", "verify_password"]
