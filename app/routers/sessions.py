"""Inbox conversations and their messages, served by the communications service."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.context import BffContext, get_bff_context
from app.core.envelope import envelope_response
from app.core.validation import coerce_positive_int, parse_positive_int
from app.messaging import annotate_latest_status

router = APIRouter(prefix="/api/sessions", tags=["sessions"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]

DEFAULT_MESSAGE_LIMIT = "50"
DEFAULT_MESSAGE_OFFSET = "0"


def _belongs_to(message: Any, conversation_id: int) -> bool:
    return (
        isinstance(message, Mapping)
        and coerce_positive_int(message.get("conversation_id")) == conversation_id
    )


@router.get("")
def list_conversations(ctx: ContextDep) -> JSONResponse:
    conversations_url = ctx.communications_url("conversations")
    collection = ctx.upstream.fetch_collection(
        conversations_url,
        error_code="CONVERSATIONS_FETCH_FAILED",
        params=ctx.forwarded_query(),
    )
    return envelope_response(collection.items, meta=collection.meta())


@router.get("/{session_id}")
def list_conversation_messages(
    session_id: str,
    ctx: ContextDep,
    limit: str = DEFAULT_MESSAGE_LIMIT,
    offset: str = DEFAULT_MESSAGE_OFFSET,
) -> JSONResponse:
    """Messages of one conversation, each annotated with ``latest_status``.

    Messages the upstream returns for other conversations are dropped.
    """

    conversation_id = parse_positive_int(
        session_id,
        required_code="INVALID_CONVERSATION_ID",
        invalid_code="INVALID_CONVERSATION_ID",
    )
    messages_url = ctx.communications_url("messages")
    collection = ctx.upstream.fetch_collection(
        messages_url,
        error_code="MESSAGES_FETCH_FAILED",
        params=ctx.forwarded_query(
            {"limit": limit, "offset": offset, "conversation_id": conversation_id}
        ),
    )
    messages = [
        annotate_latest_status(message)
        for message in collection.items
        if _belongs_to(message, conversation_id)
    ]
    return envelope_response(messages, meta=collection.meta())
