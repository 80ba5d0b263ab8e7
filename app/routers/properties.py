"""Company-wide properties that nodes and conditions refer to."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.context import BffContext, get_bff_context
from app.core.envelope import envelope_response, private_cache_headers
from app.core.ownership import assert_property_belongs_to_company
from app.core.upstream import build_url, expect_ok
from app.core.validation import parse_positive_int, require_text

router = APIRouter(prefix="/api/properties", tags=["properties"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]


class PropertyPayload(BaseModel):
    name: str | None = None
    type: str | None = None
    description: str | None = None


def _property_id(raw: str) -> int:
    return parse_positive_int(
        raw, required_code="PROPERTY_ID_REQUIRED", invalid_code="INVALID_PROPERTY_ID"
    )


def _property_body(payload: PropertyPayload) -> dict[str, object]:
    body: dict[str, object] = {
        "name": require_text(payload.name, "NAME_REQUIRED"),
        "type": require_text(payload.type, "TYPE_REQUIRED"),
    }
    if payload.description is not None:
        body["description"] = payload.description.strip()
    return body


@router.get("")
def list_properties(ctx: ContextDep) -> JSONResponse:
    base_url = ctx.flow_manager_url("/properties")
    collection = ctx.upstream.fetch_collection(
        base_url,
        error_code="PROPERTIES_FETCH_FAILED",
        params=ctx.forwarded_query({"company_id": ctx.company_id()}),
    )
    return envelope_response(
        collection.items,
        meta=collection.meta(),
        headers=private_cache_headers(ctx.settings.cache_max_age_seconds),
    )


@router.post("")
def create_property(ctx: ContextDep, payload: PropertyPayload) -> JSONResponse:
    base_url = ctx.flow_manager_url("/properties")
    body = _property_body(payload)
    body["company_id"] = ctx.company_id()
    response = expect_ok(
        ctx.upstream.post(base_url, error_code="PROPERTIES_CREATE_FAILED", json=body),
        "PROPERTIES_CREATE_FAILED",
    )
    return envelope_response(response.payload, status_code=response.status_code)


@router.api_route("/{property_id}", methods=["PUT", "PATCH"])
def update_property(property_id: str, ctx: ContextDep, payload: PropertyPayload) -> JSONResponse:
    parsed_id = _property_id(property_id)
    base_url = ctx.flow_manager_url("/properties")
    assert_property_belongs_to_company(ctx, parsed_id)
    response = expect_ok(
        ctx.upstream.put(
            build_url(base_url, parsed_id),
            error_code="PROPERTIES_UPDATE_FAILED",
            json=_property_body(payload),
        ),
        "PROPERTIES_UPDATE_FAILED",
    )
    return envelope_response(response.payload)


@router.delete("/{property_id}")
def delete_property(property_id: str, ctx: ContextDep) -> JSONResponse:
    parsed_id = _property_id(property_id)
    base_url = ctx.flow_manager_url("/properties")
    assert_property_belongs_to_company(ctx, parsed_id)
    response = expect_ok(
        ctx.upstream.delete(build_url(base_url, parsed_id), error_code="PROPERTIES_DELETE_FAILED"),
        "PROPERTIES_DELETE_FAILED",
    )
    return envelope_response(response.payload)
