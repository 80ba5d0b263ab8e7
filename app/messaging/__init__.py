"""Message helpers shared by the inbox routes."""

from .statuses import (
    NormalizedStatus,
    annotate_latest_status,
    normalize_message_status,
    parse_created_at_ms,
    pick_latest_status,
    status_rank,
    to_epoch_ms,
)

__all__ = [
    "NormalizedStatus",
    "annotate_latest_status",
    "normalize_message_status",
    "parse_created_at_ms",
    "pick_latest_status",
    "status_rank",
    "to_epoch_ms",
]
