"""Security utilities exposed for convenience."""

from .auth import get_db_session, get_session_claims, require_session_email
from .passwords import hash_password, verify_password
from .tokens import (
    SessionClaims,
    SessionTokenError,
    create_session_token,
    decode_session_token,
)

__all__ = [
    "SessionClaims",
    "SessionTokenError",
    "create_session_token",
    "decode_session_token",
    "get_db_session",
    "get_session_claims",
    "hash_password",
    "require_session_email",
    "verify_password",
]
