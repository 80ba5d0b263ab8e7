"""Uniform ``{data | error, meta}`` response envelope.

Every route answers with the same JSON shape::

    {"data": ...}                                    # success
    {"data": [...], "meta": {"total": 10, ...}}      # paginated success
    {"error": {"code": "NODES_FETCH_FAILED", "details": ...}}

Failures are raised as :class:`BffError` anywhere below the router and turned
into an envelope by the exception handlers registered through
:func:`install_exception_handlers`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class _Missing:
    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return "MISSING"


MISSING: Any = _Missing()


class EnvelopeError(BaseModel):
    code: str
    details: Any = None


class Envelope(BaseModel):
    data: Any = None
    error: EnvelopeError | None = None
    meta: dict[str, Any] | None = None

    def to_content(self) -> dict[str, Any]:
        """Serialise only the members that were explicitly populated."""

        return self.model_dump(mode="json", exclude_unset=True)


class BffError(Exception):
    """An error that maps directly onto an error envelope.

    Args:
        status_code: HTTP status returned to the caller.
        code: Machine readable identifier such as ``NODE_NOT_FOUND``.
        details: Optional diagnostic payload, typically the raw upstream body.
    """

    def __init__(self, status_code: int, code: str, details: Any = MISSING) -> None:
        super().__init__(code)
        self.status_code = status_code
        self.code = code
        self.details = details

    def to_envelope(self) -> Envelope:
        if self.details is MISSING:
            return Envelope(error=EnvelopeError(code=self.code))
        return Envelope(error=EnvelopeError(code=self.code, details=self.details))


def envelope_response(
    data: Any,
    *,
    status_code: int = status.HTTP_200_OK,
    meta: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Build a success response carrying ``data`` (and ``meta`` when given)."""

    envelope = Envelope(data=data, meta=dict(meta)) if meta else Envelope(data=data)
    return JSONResponse(
        envelope.to_content(),
        status_code=status_code,
        headers=dict(headers) if headers else None,
    )


def error_response(
    status_code: int,
    code: str,
    details: Any = MISSING,
    *,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Build an error envelope response."""

    error = BffError(status_code, code, details)
    return JSONResponse(
        error.to_envelope().to_content(),
        status_code=status_code,
        headers=dict(headers) if headers else None,
    )


def no_content_response() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def private_cache_headers(max_age: int) -> dict[str, str]:
    """Headers for per-user list responses the browser may briefly reuse."""

    return {
        "Cache-Control": f"private, max-age={max_age}, stale-while-revalidate={max_age * 2}",
        "Vary": "Cookie",
    }


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


async def bff_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, BffError)
    if exc.status_code >= 500:
        logger.warning(
            "%s %s failed with %s (%s)",
            request.method,
            request.url.path,
            exc.code,
            exc.status_code,
        )
    return error_response(exc.status_code, exc.code, exc.details)


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    details = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg"),
            "type": error.get("type"),
        }
        for error in exc.errors()
    ]
    return error_response(status.HTTP_400_BAD_REQUEST, "INVALID_BODY", details)


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StarletteHTTPException)
    return error_response(
        exc.status_code,
        f"HTTP_{exc.status_code}",
        exc.detail,
        headers=getattr(exc, "headers", None),
    )


async def rate_limit_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RateLimitExceeded)
    return error_response(
        status.HTTP_429_TOO_MANY_REQUESTS, "RATE_LIMITED", str(exc.detail)
    )


def install_exception_handlers(app: FastAPI) -> None:
    """Register the envelope exception handlers on ``app``."""

    app.add_exception_handler(BffError, bff_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)


__all__ = [
    "BffError",
    "Envelope",
    "EnvelopeError",
    "MISSING",
    "envelope_response",
    "error_response",
    "install_exception_handlers",
    "no_content_response",
    "private_cache_headers",
]
