"""Outbound WhatsApp messages relayed to the communications service."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from app.core.company import get_user_phone_number
from app.core.context import BffContext, get_bff_context
from app.core.envelope import BffError, envelope_response
from app.core.upstream import expect_ok
from app.core.validation import now_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/meta", tags=["meta"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]

_NON_DIGITS_RE = re.compile(r"[^0-9]+")


def _digits(value: str) -> str:
    return _NON_DIGITS_RE.sub("", value)


def iter_sender_numbers(payload: Any) -> Iterator[str]:
    """Yield every ``display_phone_number`` found anywhere in ``payload``."""

    if isinstance(payload, Mapping):
        for key, value in payload.items():
            if key == "display_phone_number" and isinstance(value, str):
                yield value
            else:
                yield from iter_sender_numbers(value)
    elif isinstance(payload, list):
        for value in payload:
            yield from iter_sender_numbers(value)


def _assert_sender_is_company(ctx: BffContext, payload: Any) -> None:
    declared = {_digits(number) for number in iter_sender_numbers(payload)}
    declared.discard("")
    if not declared:
        return
    own_number = _digits(get_user_phone_number(ctx.db, ctx.email) or "")
    if not own_number or declared != {own_number}:
        logger.warning("Rejected outbound message from %s for foreign sender number", ctx.email)
        raise BffError(403, "FORBIDDEN_COMPANY_NUMBER")


@router.post("/outbound")
def send_outbound(
    ctx: ContextDep,
    payload: Annotated[dict[str, Any], Body()],
) -> JSONResponse:
    """Queue an outbound message; the communications service sends it later."""

    outbound_url = ctx.communications_url("meta", "outbound")
    _assert_sender_is_company(ctx, payload)
    response = expect_ok(
        ctx.upstream.post(outbound_url, error_code="META_OUTBOUND_FAILED", json=payload),
        "META_OUTBOUND_FAILED",
    )
    return envelope_response(
        response.payload,
        status_code=response.status_code,
        meta={"forwarded_at": now_iso()},
    )
