"""Message feed from the communications service."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.context import BffContext, get_bff_context
from app.core.envelope import envelope_response
from app.messaging import annotate_latest_status

router = APIRouter(prefix="/api/messages", tags=["messages"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]


@router.get("")
def list_messages(ctx: ContextDep) -> JSONResponse:
    messages_url = ctx.communications_url("messages")
    collection = ctx.upstream.fetch_collection(
        messages_url,
        error_code="MESSAGES_FETCH_FAILED",
        params=ctx.forwarded_query(),
    )
    return envelope_response(
        [annotate_latest_status(message) for message in collection.items],
        meta=collection.meta(),
    )
