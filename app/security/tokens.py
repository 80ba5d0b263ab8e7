"""Helpers for issuing and validating signed session tokens."""

from __future__ import annotations

import dataclasses
import datetime as dt
from typing import Any

import jwt

from app.config import Settings, get_settings

SESSION_TOKEN_TYPE = "session"


class SessionTokenError(ValueError):
    """Raised when a session token is missing, expired or tampered with."""


@dataclasses.dataclass(frozen=True)
class SessionClaims:
    """Identity carried by a valid session token."""

    email: str
    issued_at: dt.datetime
    expires_at: dt.datetime


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def create_session_token(
    email: str, *, settings: Settings | None = None
) -> tuple[str, dt.datetime]:
    """Issue a signed JWT identifying ``email``.

    Returns:
        The encoded token and its expiry.
    """

    settings = settings or get_settings()
    now = _utcnow()
    expires_at = now + dt.timedelta(seconds=settings.session_ttl_seconds)
    payload: dict[str, Any] = {
        "sub": email,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        "type": SESSION_TOKEN_TYPE,
    }
    token = jwt.encode(payload, settings.session_secret, algorithm=settings.session_algorithm)
    return str(token), expires_at


def decode_session_token(token: str, *, settings: Settings | None = None) -> SessionClaims:
    """Validate ``token`` and return its claims.

    Raises:
        SessionTokenError: If the token is expired, malformed, signed with a
            different key or lacks a subject.
    """

    settings = settings or get_settings()
    if not token:
        raise SessionTokenError("Session token is missing.")
    try:
        decoded = jwt.decode(
            token,
            settings.session_secret,
            algorithms=[settings.session_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise SessionTokenError("Session token has expired.") from exc
    except jwt.InvalidTokenError as exc:
        raise SessionTokenError("Session token is invalid.") from exc

    if decoded.get("type") != SESSION_TOKEN_TYPE:
        raise SessionTokenError("Unexpected token type.")
    email = decoded.get("sub")
    if not isinstance(email, str) or not email.strip():
        raise SessionTokenError("Session token has no subject.")

    return SessionClaims(
        email=email.strip().lower(),
        issued_at=dt.datetime.fromtimestamp(int(decoded.get("iat", 0)), dt.timezone.utc),
        expires_at=dt.datetime.fromtimestamp(int(decoded["exp"]), dt.timezone.utc),
    )


__all__ = [
    "SESSION_TOKEN_TYPE",
    "SessionClaims",
    "SessionTokenError",
    "create_session_token",
    "decode_session_token",
]
