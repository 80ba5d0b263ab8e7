"""Notifications fired when a workflow node is reached."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from app.core.context import BffContext, get_bff_context
from app.core.envelope import envelope_response, no_content_response
from app.core.ownership import assert_node_belongs_to_company, assert_notification_belongs_to_company
from app.core.upstream import build_url, expect_ok
from app.core.validation import parse_positive_int

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]

NOT_CONFIGURED = "NOTIFICATIONS_SERVICE_URL_NOT_CONFIGURED"


class NotificationPayload(BaseModel):
    trigger_node_id: int | str | None = None
    subject: str | None = None
    active: bool | None = None


@router.get("")
def list_notifications(ctx: ContextDep) -> JSONResponse:
    """Forward the query string with ``company_id`` forced to the caller's."""

    base_url = ctx.flow_manager_url("/notifications", not_configured_code=NOT_CONFIGURED)
    collection = ctx.upstream.fetch_collection(
        base_url,
        error_code="NOTIFICATIONS_FETCH_FAILED",
        params=ctx.forwarded_query({"company_id": ctx.company_id()}),
    )
    return envelope_response(collection.items, meta=collection.meta())


@router.post("")
def create_notification(ctx: ContextDep, payload: NotificationPayload) -> JSONResponse:
    base_url = ctx.flow_manager_url("/notifications", not_configured_code=NOT_CONFIGURED)
    trigger_node_id = parse_positive_int(
        payload.trigger_node_id,
        required_code="TRIGGER_NODE_ID_REQUIRED",
        invalid_code="INVALID_TRIGGER_NODE_ID",
    )
    assert_node_belongs_to_company(ctx, trigger_node_id)
    body = {
        "trigger_node_id": trigger_node_id,
        "company_id": ctx.company_id(),
        "subject": payload.subject or "",
        "active": True if payload.active is None else payload.active,
    }
    response = expect_ok(
        ctx.upstream.post(base_url, error_code="NOTIFICATION_CREATE_FAILED", json=body),
        "NOTIFICATION_CREATE_FAILED",
    )
    return envelope_response(response.payload, status_code=response.status_code)


@router.delete("/{notification_id}")
def delete_notification(notification_id: str, ctx: ContextDep) -> Response:
    parsed_id = parse_positive_int(
        notification_id,
        required_code="NOTIFICATION_ID_REQUIRED",
        invalid_code="INVALID_NOTIFICATION_ID",
    )
    base_url = ctx.flow_manager_url("/notifications", not_configured_code=NOT_CONFIGURED)
    assert_notification_belongs_to_company(ctx, parsed_id)
    expect_ok(
        ctx.upstream.delete(build_url(base_url, parsed_id), error_code="NOTIFICATION_DELETE_FAILED"),
        "NOTIFICATION_DELETE_FAILED",
    )
    return no_content_response()
