"""Delivery status reconciliation for outbound messages.

Messaging providers report delivery progress as a list of status events
(``sent``, ``delivered``, ``read``) that may arrive out of order, share a
timestamp, or carry no timestamp at all. :func:`pick_latest_status` walks that
list once and returns the single most authoritative label:

1. the event with the latest concrete time wins (``timestamp`` first, then
   ``created_at``); a concrete time always beats an unknown one,
2. equal times are broken by the parsed ``created_at``,
3. then by rank (``read`` > ``delivered`` > ``sent``),
4. and finally by list position, the later entry winning.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import math
import re
from collections.abc import Iterable, Mapping
from typing import Any, Literal

NormalizedStatus = Literal["sent", "delivered", "read"]

# Epoch values above this are already expressed in milliseconds.
MILLISECONDS_THRESHOLD = 1_000_000_000_000

_STATUS_RANKS: dict[str, int] = {"sent": 1, "delivered": 2, "read": 3}
_DIGITS_RE = re.compile(r"[0-9]+")
_FRACTION_RE = re.compile(r"(\.[0-9]{3})[0-9]+")


def normalize_message_status(status: object) -> NormalizedStatus | None:
    """Map a raw provider status onto ``sent``/``delivered``/``read``.

    Matching is case-insensitive and ignores surrounding whitespace. Provider
    sub-states such as ``delivered_to_device`` or ``read_pending`` collapse onto
    their base label. Anything else yields ``None``.
    """

    if not isinstance(status, str):
        return None
    value = status.strip().lower()
    if value == "sent":
        return "sent"
    if value == "delivered" or value.startswith("delivered_"):
        return "delivered"
    if value == "read" or value.startswith("read_"):
        return "read"
    return None


def status_rank(status: object) -> int:
    """Return the priority rank of ``status`` (0 when unrecognised)."""

    normalized = normalize_message_status(status)
    if normalized is None:
        return 0
    return _STATUS_RANKS[normalized]


def _scale_epoch(value: float) -> float:
    return value if value > MILLISECONDS_THRESHOLD else value * 1000


def to_epoch_ms(value: object) -> float | None:
    """Convert an epoch timestamp in seconds or milliseconds to milliseconds.

    Numbers and digit-only strings are accepted. The unit is inferred solely from
    magnitude using :data:`MILLISECONDS_THRESHOLD`.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return _scale_epoch(value)
    if isinstance(value, str):
        trimmed = value.strip()
        if not _DIGITS_RE.fullmatch(trimmed):
            return None
        parsed = float(trimmed)
        if not math.isfinite(parsed):
            return None
        return _scale_epoch(parsed)
    return None


def parse_created_at_ms(value: object) -> float | None:
    """Parse an ISO-8601 ``created_at`` value into epoch milliseconds.

    Fractional seconds beyond millisecond precision are truncated before
    parsing and a missing timezone is read as UTC.
    """

    if not isinstance(value, str) or not value.strip():
        return None
    normalized = _FRACTION_RE.sub(r"\1", value.strip(), count=1)
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.timestamp() * 1000


@dataclasses.dataclass(frozen=True)
class _Candidate:
    status: NormalizedStatus
    time_ms: float | None
    created_at_ms: float | None
    rank: int
    index: int


def _compare_times(current: float | None, candidate: float | None) -> int:
    """Return 1 when ``candidate`` is newer, -1 when older, 0 when undecided."""

    if candidate is None and current is None:
        return 0
    if current is None:
        return 1
    if candidate is None:
        return -1
    if candidate > current:
        return 1
    if candidate < current:
        return -1
    return 0


def _beats(candidate: _Candidate, best: _Candidate) -> bool:
    for outcome in (
        _compare_times(best.time_ms, candidate.time_ms),
        _compare_times(best.created_at_ms, candidate.created_at_ms),
    ):
        if outcome:
            return outcome > 0
    if candidate.rank != best.rank:
        return candidate.rank > best.rank
    return candidate.index > best.index


def pick_latest_status(events: Iterable[Any] | None) -> NormalizedStatus | None:
    """Select the most authoritative delivery status from ``events``.

    Args:
        events: Raw status entries, each a mapping with ``status`` and optional
            ``timestamp``/``created_at`` fields. Entries that are not mappings or
            whose status is unrecognised are skipped but still count towards
            list position.

    Returns:
        ``"sent"``, ``"delivered"`` or ``"read"``; ``None`` when no entry carries
        a recognised status.
    """

    if events is None or isinstance(events, (str, bytes, Mapping)):
        return None

    best: _Candidate | None = None
    for index, event in enumerate(events):
        if not isinstance(event, Mapping):
            continue
        status = normalize_message_status(event.get("status"))
        if status is None:
            continue
        created_at_ms = parse_created_at_ms(event.get("created_at"))
        time_ms = to_epoch_ms(event.get("timestamp"))
        candidate = _Candidate(
            status=status,
            time_ms=time_ms if time_ms is not None else created_at_ms,
            created_at_ms=created_at_ms,
            rank=_STATUS_RANKS[status],
            index=index,
        )
        if best is None or _beats(candidate, best):
            best = candidate

    return best.status if best is not None else None


def annotate_latest_status(message: Any) -> Any:
    """Return ``message`` with ``latest_status`` derived from its ``statuses``.

    Non-mapping values and messages without a ``statuses`` list are returned
    unchanged.
    """

    if not isinstance(message, Mapping):
        return message
    statuses = message.get("statuses")
    if not isinstance(statuses, list):
        return message
    annotated = dict(message)
    annotated["latest_status"] = pick_latest_status(statuses)
    return annotated


__all__ = [
    "MILLISECONDS_THRESHOLD",
    "NormalizedStatus",
    "annotate_latest_status",
    "normalize_message_status",
    "parse_created_at_ms",
    "pick_latest_status",
    "status_rank",
    "to_epoch_ms",
]
