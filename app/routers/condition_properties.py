"""Properties a condition compares against.

Every route is scoped by ``condition_id``, ``edge_id`` and ``source_node_id``
query parameters and walks the chain node → edge → condition before touching
the upstream.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.context import BffContext, get_bff_context
from app.core.envelope import BffError, envelope_response
from app.core.ownership import (
    assert_condition_belongs_to_edge,
    assert_edge_belongs_to_company,
    assert_property_belongs_to_company,
    parse_edge_scope,
)
from app.core.upstream import build_url, expect_ok
from app.core.validation import coerce_positive_int, parse_positive_int

router = APIRouter(prefix="/api/condition-properties", tags=["condition-properties"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]


class ConditionPropertyPayload(BaseModel):
    condition_id: int | str | None = None
    property_id: int | str | None = None


def _condition_property_id(raw: str) -> int:
    return parse_positive_int(
        raw,
        required_code="CONDITION_PROPERTY_ID_REQUIRED",
        invalid_code="INVALID_CONDITION_PROPERTY_ID",
    )


def _scope(
    condition_id: str | None, edge_id: str | None, source_node_id: str | None
) -> tuple[int, int, int]:
    parsed_condition = parse_positive_int(
        condition_id, required_code="CONDITION_ID_REQUIRED", invalid_code="INVALID_CONDITION_ID"
    )
    parsed_edge, parsed_source = parse_edge_scope(edge_id, source_node_id)
    return parsed_condition, parsed_edge, parsed_source


def _verify_chain(ctx: BffContext, condition_id: int, edge_id: int, source_node_id: int) -> None:
    assert_edge_belongs_to_company(ctx, edge_id, source_node_id)
    assert_condition_belongs_to_edge(ctx, condition_id, edge_id)


def _link_body(payload: ConditionPropertyPayload, condition_id: int) -> dict[str, int]:
    if payload.condition_id is not None:
        body_condition = coerce_positive_int(payload.condition_id)
        if body_condition is None:
            raise BffError(400, "INVALID_CONDITION_ID")
        if body_condition != condition_id:
            raise BffError(400, "CONDITION_ID_MISMATCH")
    property_id = parse_positive_int(
        payload.property_id, required_code="PROPERTY_ID_REQUIRED", invalid_code="INVALID_PROPERTY_ID"
    )
    return {"condition_id": condition_id, "property_id": property_id}


@router.get("")
def list_condition_properties(
    ctx: ContextDep,
    condition_id: str | None = None,
    edge_id: str | None = None,
    source_node_id: str | None = None,
) -> JSONResponse:
    parsed_condition, parsed_edge, parsed_source = _scope(condition_id, edge_id, source_node_id)
    base_url = ctx.flow_manager_url("/condition-properties")
    _verify_chain(ctx, parsed_condition, parsed_edge, parsed_source)
    collection = ctx.upstream.fetch_collection(
        base_url,
        error_code="CONDITION_PROPERTIES_FETCH_FAILED",
        params=ctx.forwarded_query(
            {"condition_id": parsed_condition}, exclude=("edge_id", "source_node_id")
        ),
    )
    return envelope_response(collection.items, meta=collection.meta())


@router.post("")
def create_condition_property(
    ctx: ContextDep,
    payload: ConditionPropertyPayload,
    condition_id: str | None = None,
    edge_id: str | None = None,
    source_node_id: str | None = None,
) -> JSONResponse:
    parsed_condition, parsed_edge, parsed_source = _scope(condition_id, edge_id, source_node_id)
    base_url = ctx.flow_manager_url("/condition-properties")
    body = _link_body(payload, parsed_condition)
    _verify_chain(ctx, parsed_condition, parsed_edge, parsed_source)
    assert_property_belongs_to_company(ctx, body["property_id"])
    response = expect_ok(
        ctx.upstream.post(base_url, error_code="CONDITION_PROPERTIES_CREATE_FAILED", json=body),
        "CONDITION_PROPERTIES_CREATE_FAILED",
    )
    return envelope_response(response.payload, status_code=status.HTTP_201_CREATED)


@router.get("/{condition_property_id}")
def get_condition_property(
    condition_property_id: str,
    ctx: ContextDep,
    condition_id: str | None = None,
    edge_id: str | None = None,
    source_node_id: str | None = None,
) -> JSONResponse:
    """Fetch one link, refusing links that belong to a different condition."""

    parsed_condition, parsed_edge, parsed_source = _scope(condition_id, edge_id, source_node_id)
    parsed_id = _condition_property_id(condition_property_id)
    base_url = ctx.flow_manager_url("/condition-properties")
    _verify_chain(ctx, parsed_condition, parsed_edge, parsed_source)
    response = expect_ok(
        ctx.upstream.get(
            build_url(base_url, parsed_id), error_code="CONDITION_PROPERTIES_FETCH_FAILED"
        ),
        "CONDITION_PROPERTIES_FETCH_FAILED",
    )
    data: Any = response.payload
    if isinstance(data, Mapping) and "condition_id" in data:
        if coerce_positive_int(data.get("condition_id")) != parsed_condition:
            raise BffError(404, "CONDITION_PROPERTY_MISMATCH")
    return envelope_response(data)


@router.api_route("/{condition_property_id}", methods=["PUT", "PATCH"])
def update_condition_property(
    condition_property_id: str,
    ctx: ContextDep,
    payload: ConditionPropertyPayload,
    condition_id: str | None = None,
    edge_id: str | None = None,
    source_node_id: str | None = None,
) -> JSONResponse:
    parsed_condition, parsed_edge, parsed_source = _scope(condition_id, edge_id, source_node_id)
    parsed_id = _condition_property_id(condition_property_id)
    base_url = ctx.flow_manager_url("/condition-properties")
    _verify_chain(ctx, parsed_condition, parsed_edge, parsed_source)
    body = _link_body(payload, parsed_condition)
    assert_property_belongs_to_company(ctx, body["property_id"])
    response = expect_ok(
        ctx.upstream.put(
            build_url(base_url, parsed_id),
            error_code="CONDITION_PROPERTIES_UPDATE_FAILED",
            json=body,
        ),
        "CONDITION_PROPERTIES_UPDATE_FAILED",
    )
    return envelope_response(response.payload)


@router.delete("/{condition_property_id}")
def delete_condition_property(
    condition_property_id: str,
    ctx: ContextDep,
    condition_id: str | None = None,
    edge_id: str | None = None,
    source_node_id: str | None = None,
) -> JSONResponse:
    parsed_condition, parsed_edge, parsed_source = _scope(condition_id, edge_id, source_node_id)
    parsed_id = _condition_property_id(condition_property_id)
    base_url = ctx.flow_manager_url("/condition-properties")
    _verify_chain(ctx, parsed_condition, parsed_edge, parsed_source)
    response = expect_ok(
        ctx.upstream.delete(
            build_url(base_url, parsed_condition, parsed_id),
            error_code="CONDITION_PROPERTIES_DELETE_FAILED",
        ),
        "CONDITION_PROPERTIES_DELETE_FAILED",
    )
    return envelope_response(response.payload)
