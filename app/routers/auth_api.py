"""Credential registration and cookie-based sessions."""

import logging
from typing import Annotated

from email_validator import EmailNotValidError, validate_email
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import Settings
from app.core.envelope import BffError, envelope_response
from app.core.limiter import limiter, login_rate_limit
from app.models import User
from app.security import (
    create_session_token,
    get_db_session,
    hash_password,
    require_session_email,
    verify_password,
)
from app.security.auth import get_app_settings
from app.security.passwords import password_needs_rehash

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

SessionDep = Annotated[Session, Depends(get_db_session)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
EmailDep = Annotated[str, Depends(require_session_email)]


class RegisterRequest(BaseModel):
    email: str | None = None
    password: str | None = None
    name: str | None = None
    phone_number: str | None = None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


def _user_payload(user: User) -> dict[str, object]:
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "phone_number": user.phone_number,
    }


def _normalise_email(raw: str | None) -> str:
    return (raw or "").strip().lower()


@router.post("/register")
def register(payload: RegisterRequest, session: SessionDep) -> JSONResponse:
    """Create a user; the email is stored trimmed and lower-cased."""

    email = _normalise_email(payload.email)
    password = payload.password or ""
    if not email or not password:
        raise BffError(status.HTTP_400_BAD_REQUEST, "EMAIL_AND_PASSWORD_REQUIRED")
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise BffError(status.HTTP_400_BAD_REQUEST, "INVALID_EMAIL", str(exc)) from exc

    existing = session.execute(select(User.id).where(User.email == email)).scalar_one_or_none()
    if existing is not None:
        raise BffError(status.HTTP_409_CONFLICT, "EMAIL_ALREADY_REGISTERED")

    user = User(
        email=email,
        name=(payload.name or "").strip() or None,
        password_hash=hash_password(password),
        phone_number=(payload.phone_number or "").strip() or None,
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise BffError(status.HTTP_409_CONFLICT, "EMAIL_ALREADY_REGISTERED") from exc

    logger.info("Registered user %s", user.id)
    return envelope_response(_user_payload(user), status_code=status.HTTP_201_CREATED)


@router.post("/login")
@limiter.limit(login_rate_limit)
def login(
    request: Request,
    payload: LoginRequest,
    session: SessionDep,
    settings: SettingsDep,
) -> JSONResponse:
    email = _normalise_email(payload.email)
    if not email or not payload.password:
        raise BffError(status.HTTP_400_BAD_REQUEST, "EMAIL_AND_PASSWORD_REQUIRED")

    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.password_hash):
        raise BffError(status.HTTP_401_UNAUTHORIZED, "INVALID_CREDENTIALS")

    if password_needs_rehash(user.password_hash):
        user.password_hash = hash_password(payload.password)
        session.commit()

    token, expires_at = create_session_token(user.email, settings=settings)
    response = envelope_response(
        {
            "user": _user_payload(user),
            "token": token,
            "expires_at": expires_at.isoformat(),
        }
    )
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )
    return response


@router.post("/logout")
def logout(settings: SettingsDep) -> Response:
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(settings.session_cookie_name, path="/")
    return response


@router.get("/session")
def current_session(email: EmailDep, session: SessionDep) -> JSONResponse:
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None:
        raise BffError(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED")
    return envelope_response(_user_payload(user))
