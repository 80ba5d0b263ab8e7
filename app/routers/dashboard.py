"""Aggregated inbox activity for the dashboard."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.context import BffContext, get_bff_context
from app.core.envelope import BffError, envelope_response, private_cache_headers
from app.core.validation import coerce_positive_int, now_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]

PAGE_SIZE = 200
MAX_PAGES = 10
MAX_CONVERSATIONS = 500
COUNT_BATCH_SIZE = 10


def _fetch_conversations(ctx: BffContext) -> tuple[list[Any], int | None]:
    conversations_url = ctx.communications_url("conversations")
    conversations: list[Any] = []
    total: int | None = None
    offset = 0
    for _ in range(MAX_PAGES):
        page = ctx.upstream.fetch_collection(
            conversations_url,
            error_code="CONVERSATIONS_FETCH_FAILED",
            params=[("limit", str(PAGE_SIZE)), ("offset", str(offset))],
        )
        conversations.extend(page.items)
        if total is None:
            total = page.total
        if len(page.items) < PAGE_SIZE:
            break
        offset += PAGE_SIZE
        if total is not None and len(conversations) >= total:
            break
    return conversations[:MAX_CONVERSATIONS], total


def _count_messages(ctx: BffContext, conversation_id: int) -> int | None:
    messages_url = ctx.communications_url("messages")
    try:
        page = ctx.upstream.fetch_collection(
            messages_url,
            error_code="MESSAGES_FETCH_FAILED",
            params=[
                ("conversation_id", str(conversation_id)),
                ("limit", "1"),
                ("offset", "0"),
            ],
        )
    except BffError as exc:
        logger.warning("Skipping message count for conversation %s: %s", conversation_id, exc.code)
        return None
    return page.total


def _last_activity(conversations: list[Any]) -> str | None:
    stamps = [
        conversation["last_message"]["created_at"]
        for conversation in conversations
        if isinstance(conversation, Mapping)
        and isinstance(conversation.get("last_message"), Mapping)
        and isinstance(conversation["last_message"].get("created_at"), str)
    ]
    return max(stamps) if stamps else None


@router.get("/insights")
def get_insights(ctx: ContextDep) -> JSONResponse:
    """Summarise conversations and message volume.

    Conversations are paged in bounded batches; message totals per
    conversation are fetched concurrently, ``COUNT_BATCH_SIZE`` at a time.
    Conversations whose count cannot be read are left out of the totals.
    """

    conversations, total_from_meta = _fetch_conversations(ctx)
    conversation_ids = [
        cid
        for cid in (
            coerce_positive_int(c.get("id")) for c in conversations if isinstance(c, Mapping)
        )
        if cid is not None
    ]

    counts: dict[int, int] = {}
    with ThreadPoolExecutor(max_workers=COUNT_BATCH_SIZE) as executor:
        for start in range(0, len(conversation_ids), COUNT_BATCH_SIZE):
            batch = conversation_ids[start : start + COUNT_BATCH_SIZE]
            for cid, total in zip(batch, executor.map(lambda c: _count_messages(ctx, c), batch)):
                if total is not None:
                    counts[cid] = total

    most_active_id: int | None = None
    most_active_messages = 0
    for cid, count in counts.items():
        if count > most_active_messages:
            most_active_id, most_active_messages = cid, count

    data = {
        "conversations_total": total_from_meta if total_from_meta is not None else len(conversations),
        "conversations_fetched": len(conversations),
        "conversations_with_counts": len(counts),
        "messages_total": sum(counts.values()),
        "active_conversations": sum(1 for count in counts.values() if count > 0),
        "most_active_conversation_id": most_active_id,
        "most_active_conversation_messages": most_active_messages,
        "last_activity_iso": _last_activity(conversations),
        "generated_at": now_iso(),
    }
    return envelope_response(
        data, headers=private_cache_headers(ctx.settings.cache_max_age_seconds)
    )
