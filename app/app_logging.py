"""Application and access logging setup.

- ``LOG_JSON`` switches between a JSON formatter and a human-readable one.
- ``app.log`` and ``access.log`` rotate at midnight, keeping
  ``LOG_RETENTION_DAYS`` files (``LOG_ROTATE_UTC`` picks the clock).
- An HTTP middleware writes one JSON access line per request with method,
  path, status, latency, client IP, scrubbed headers and, when
  ``LOG_REQUEST_BODIES=true``, the scrubbed request body.

The request id of the current request (``X-Request-Id``, generated when the
client sends none) is attached to every application log record as
``request_id`` so upstream failures can be traced back to the request that
caused them.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler
from typing import Any, cast
from uuid import uuid4

from fastapi import FastAPI, Request

_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)

SKIP_PATHS = frozenset({"/api/health", "/api/metrics"})

SENSITIVE_FIELDS = {
    "authorization",
    "cookie",
    "set-cookie",
    "password",
    "token",
    "session_token",
    "access_token",
    "refresh_token",
}


def current_request_id() -> str | None:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    """Copy the active request id onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = current_request_id()
        return True


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter used when LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:
        log_record: dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            log_record["request_id"] = request_id
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


def _scrub(data: object) -> object:
    """Recursively scrub sensitive fields from dictionaries and lists."""

    if isinstance(data, dict):
        return {
            k: ("***" if str(k).lower() in SENSITIVE_FIELDS else _scrub(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_scrub(v) for v in data]
    return data


def _rotating_handler(
    log_dir: str, filename: str, formatter: logging.Formatter, retention_days: int, utc: bool
) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        os.path.join(log_dir, filename),
        when="midnight",
        backupCount=retention_days,
        utc=utc,
    )
    handler.setFormatter(formatter)
    return handler


def _install_access_logging(app: FastAPI) -> None:
    """Install request/response access logging middleware."""

    log_request_bodies = os.getenv("LOG_REQUEST_BODIES", "false").lower() == "true"
    access_logger = logging.getLogger("uvicorn.access")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        token = _request_id.set(request_id)
        try:
            if request.url.path in SKIP_PATHS:
                return await call_next(request)

            start = time.perf_counter()
            body_content = None
            if log_request_bodies:
                body_bytes = await request.body()
                if body_bytes:
                    try:
                        body_content = _scrub(json.loads(body_bytes))
                    except ValueError:
                        body_content = body_bytes.decode("utf-8", errors="replace")

            response = await call_next(request)

            client_ip = request.headers.get("X-Forwarded-For")
            if not client_ip and request.client is not None:
                client_ip = request.client.host

            log_data: dict[str, Any] = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "query": _scrub(dict(request.query_params)),
                "status": response.status_code,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                "client_ip": client_ip,
                "headers": _scrub(dict(request.headers)),
            }
            if body_content is not None:
                log_data["body"] = body_content

            response.headers["X-Request-Id"] = request_id
            access_logger.info(json.dumps(log_data, default=str))
            return response
        finally:
            _request_id.reset(token)


def init_logging(app: FastAPI | None = None) -> None:
    """Initialise application and access loggers."""

    log_dir = os.getenv("LOG_DIR", "logs")
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_json = os.getenv("LOG_JSON", "false").lower() == "true"
    retention_days = int(os.getenv("LOG_RETENTION_DAYS", "7"))
    rotate_utc = os.getenv("LOG_ROTATE_UTC", "false").lower() == "true"

    os.makedirs(log_dir, exist_ok=True)

    formatter = _get_formatter(log_json)
    log_level = getattr(logging, log_level_str, logging.INFO)

    app_logger = logging.getLogger("app")
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()
    app_handler = _rotating_handler(log_dir, "app.log", formatter, retention_days, rotate_utc)
    app_handler.addFilter(RequestIdFilter())
    app_logger.addHandler(app_handler)
    app_logger.setLevel(log_level)

    access_logger = logging.getLogger("uvicorn.access")
    for handler in list(access_logger.handlers):
        access_logger.removeHandler(handler)
        handler.close()
    access_logger.addHandler(
        _rotating_handler(log_dir, "access.log", formatter, retention_days, rotate_utc)
    )
    access_logger.setLevel(log_level)

    if app is not None:
        cast(Any, app).logger = app_logger
        _install_access_logging(app)


__all__ = ["JsonFormatter", "RequestIdFilter", "current_request_id", "init_logging"]
