"""Parsing helpers that turn bad client input into 400 envelopes."""

from __future__ import annotations

import datetime as dt
import re
from typing import Any

from .envelope import BffError

_DIGITS_RE = re.compile(r"[0-9]+")


def coerce_positive_int(raw: Any) -> int | None:
    """Return ``raw`` as a positive integer, or ``None`` if it is not one.

    Integers, integral floats and digit-only strings are accepted. Booleans are
    rejected even though Python treats them as integers.
    """

    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    if isinstance(raw, float):
        if raw.is_integer() and raw > 0:
            return int(raw)
        return None
    if isinstance(raw, str):
        trimmed = raw.strip()
        if not _DIGITS_RE.fullmatch(trimmed):
            return None
        try:
            value = int(trimmed)
        except ValueError:
            # beyond the interpreter's integer string conversion limit
            return None
        return value if value > 0 else None
    return None


def parse_positive_int(raw: Any, *, required_code: str, invalid_code: str) -> int:
    """Parse an identifier, raising ``required_code`` or ``invalid_code``."""

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise BffError(400, required_code)
    value = coerce_positive_int(raw)
    if value is None:
        raise BffError(400, invalid_code)
    return value


def require_text(raw: Any, code: str) -> str:
    """Return ``raw`` stripped, raising ``code`` when it is blank or not a string."""

    if not isinstance(raw, str) or not raw.strip():
        raise BffError(400, code)
    return raw.strip()


def optional_text(raw: Any) -> str | None:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return None


def now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and ``Z`` suffix."""

    now = dt.datetime.now(dt.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_timestamp(raw: Any, code: str) -> str:
    """Validate that ``raw`` is an ISO-8601 timestamp and return it unchanged."""

    if not isinstance(raw, str) or not raw.strip():
        raise BffError(400, code)
    text = raw.strip()
    candidate = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        dt.datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise BffError(400, code) from exc
    return text


__all__ = [
    "coerce_positive_int",
    "now_iso",
    "optional_text",
    "parse_iso_timestamp",
    "parse_positive_int",
    "require_text",
]
