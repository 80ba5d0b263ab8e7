"""Recipients of a workflow notification."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from app.core.context import BffContext, get_bff_context
from app.core.envelope import BffError, envelope_response, no_content_response
from app.core.ownership import assert_notification_belongs_to_company, find_by_id
from app.core.upstream import build_url, expect_ok
from app.core.validation import parse_positive_int, require_text

router = APIRouter(prefix="/api/notification-recipients", tags=["notification-recipients"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]

NOT_CONFIGURED = "NOTIFICATION_RECIPIENTS_SERVICE_URL_NOT_CONFIGURED"


class RecipientPayload(BaseModel):
    notification_id: int | str | None = None
    recipient_type: str | None = None
    recipient_value: str | None = None


def _notification_id(raw: object) -> int:
    return parse_positive_int(
        raw, required_code="NOTIFICATION_ID_REQUIRED", invalid_code="INVALID_NOTIFICATION_ID"
    )


@router.get("")
def list_recipients(ctx: ContextDep, notification_id: str | None = None) -> JSONResponse:
    """List the recipients of one of the caller's notifications."""

    base_url = ctx.flow_manager_url("/notification-recipients", not_configured_code=NOT_CONFIGURED)
    parsed_notification = _notification_id(notification_id)
    assert_notification_belongs_to_company(ctx, parsed_notification)
    collection = ctx.upstream.fetch_collection(
        base_url,
        error_code="NOTIFICATION_RECIPIENTS_FETCH_FAILED",
        params=ctx.forwarded_query({"notification_id": parsed_notification}),
    )
    return envelope_response(collection.items, meta=collection.meta())


@router.post("")
def create_recipient(ctx: ContextDep, payload: RecipientPayload) -> JSONResponse:
    base_url = ctx.flow_manager_url("/notification-recipients", not_configured_code=NOT_CONFIGURED)
    parsed_notification = _notification_id(payload.notification_id)
    body = {
        "notification_id": parsed_notification,
        "recipient_type": require_text(payload.recipient_type, "RECIPIENT_TYPE_REQUIRED"),
        "recipient_value": require_text(payload.recipient_value, "RECIPIENT_VALUE_REQUIRED"),
    }
    assert_notification_belongs_to_company(ctx, parsed_notification)
    response = expect_ok(
        ctx.upstream.post(base_url, error_code="NOTIFICATION_RECIPIENT_CREATE_FAILED", json=body),
        "NOTIFICATION_RECIPIENT_CREATE_FAILED",
    )
    return envelope_response(response.payload, status_code=response.status_code)


@router.delete("/{recipient_id}")
def delete_recipient(
    recipient_id: str, ctx: ContextDep, notification_id: str | None = None
) -> Response:
    """Delete a recipient.

    When ``notification_id`` is given the recipient must belong to one of the
    caller's notifications.
    """

    parsed_id = parse_positive_int(
        recipient_id, required_code="INVALID_RECIPIENT_ID", invalid_code="INVALID_RECIPIENT_ID"
    )
    base_url = ctx.flow_manager_url("/notification-recipients", not_configured_code=NOT_CONFIGURED)
    if notification_id is not None:
        parsed_notification = _notification_id(notification_id)
        assert_notification_belongs_to_company(ctx, parsed_notification)
        recipients = ctx.upstream.fetch_collection(
            base_url,
            error_code="NOTIFICATION_RECIPIENTS_FETCH_FAILED",
            params=[("notification_id", str(parsed_notification))],
        )
        if find_by_id(recipients.items, parsed_id) is None:
            raise BffError(404, "RECIPIENT_NOT_FOUND")
    expect_ok(
        ctx.upstream.delete(
            build_url(base_url, parsed_id, trailing_slash=True),
            error_code="NOTIFICATION_RECIPIENT_DELETE_FAILED",
        ),
        "NOTIFICATION_RECIPIENT_DELETE_FAILED",
    )
    return no_content_response()
