"""Retired human-handoff endpoint kept so old clients get a clear answer."""

from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.core.envelope import error_response
from app.core.validation import coerce_positive_int

router = APIRouter(prefix="/api/humans", tags=["humans"])

REMOVAL_REASON = (
    "Flow Manager integration was removed; "
    "use Communications conversations/messages APIs instead."
)
CACHE_SECONDS = 30


@router.get("/{human_id}")
def get_human(human_id: str) -> JSONResponse:
    parsed_id = coerce_positive_int(human_id)
    if parsed_id is None:
        return error_response(status.HTTP_400_BAD_REQUEST, "INVALID_HUMAN_ID")
    return error_response(
        status.HTTP_410_GONE,
        "HUMANS_ENDPOINT_REMOVED",
        {"human_id": parsed_id, "reason": REMOVAL_REASON},
        headers={
            "Cache-Control": f"public, max-age={CACHE_SECONDS}, "
            f"stale-while-revalidate={CACHE_SECONDS * 2}"
        },
    )
