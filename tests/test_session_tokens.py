"""Tests for session token issuing and validation."""

from __future__ import annotations

import datetime as dt

import jwt
import pytest

from app.config import Settings
from app.security import SessionTokenError, create_session_token, decode_session_token
from app.security.passwords import hash_password, verify_password

SETTINGS = Settings(session_secret="secret-key", session_ttl_seconds=60)


def test_round_trip_lowercases_subject():
    token, expires_at = create_session_token("Someone@Acme.com", settings=SETTINGS)

    claims = decode_session_token(token, settings=SETTINGS)

    assert claims.email == "someone@acme.com"
    assert claims.expires_at == expires_at.replace(microsecond=0)


def test_expired_token_is_rejected():
    now = int(dt.datetime.now(dt.timezone.utc).timestamp())
    token = jwt.encode(
        {"sub": "a@b.com", "iat": now - 120, "exp": now - 60, "type": "session"},
        "secret-key",
        algorithm="HS256",
    )
    with pytest.raises(SessionTokenError, match="expired"):
        decode_session_token(token, settings=SETTINGS)


@pytest.mark.parametrize(
    "claims, secret",
    [
        ({"sub": "a@b.com", "type": "session"}, "other-key"),
        ({"sub": "a@b.com", "type": "refresh"}, "secret-key"),
        ({"sub": " ", "type": "session"}, "secret-key"),
    ],
)
def test_invalid_tokens_are_rejected(claims, secret):
    exp = int(dt.datetime.now(dt.timezone.utc).timestamp()) + 60
    token = jwt.encode({**claims, "exp": exp}, secret, algorithm="HS256")
    with pytest.raises(SessionTokenError):
        decode_session_token(token, settings=SETTINGS)


def test_password_hashing():
    hashed = hash_password("correct horse")
    assert hashed.startswith("$argon2")
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("correct horse", "not-a-hash")
    with pytest.raises(ValueError):
        hash_password("")
