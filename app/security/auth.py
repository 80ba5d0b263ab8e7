"""Session-backed authentication dependencies for FastAPI routers."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from fastapi import Depends, Request, status
from sqlalchemy.orm import Session

from app.config import Settings
from app.core.envelope import BffError
from app.resources import AppResources, get_resources

from .tokens import SessionClaims, SessionTokenError, decode_session_token

logger = logging.getLogger(__name__)


def get_app_settings(resources: AppResources = Depends(get_resources)) -> Settings:
    return resources.settings


def get_db_session(resources: AppResources = Depends(get_resources)) -> Iterator[Session]:
    """Yield a SQLAlchemy session for request-scoped dependencies."""

    session = resources.session_factory()
    try:
        yield session
    finally:
        session.close()


def read_session_token(request: Request, settings: Settings) -> str | None:
    """Return the raw session token from the cookie or a bearer header."""

    cookie = request.cookies.get(settings.session_cookie_name)
    if cookie:
        return cookie
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def get_session_claims(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> SessionClaims | None:
    """Decode the caller's session, returning ``None`` when there is none."""

    token = read_session_token(request, settings)
    if not token:
        return None
    try:
        return decode_session_token(token, settings=settings)
    except SessionTokenError as exc:
        logger.info("Rejected session token: %s", exc)
        return None


def require_session_email(
    claims: SessionClaims | None = Depends(get_session_claims),
) -> str:
    """Return the authenticated email or fail with ``401 UNAUTHORIZED``."""

    if claims is None:
        raise BffError(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED")
    return claims.email


__all__ = [
    "get_app_settings",
    "get_db_session",
    "get_session_claims",
    "read_session_token",
    "require_session_email",
]
