"""Links between workflow nodes and company properties."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.context import BffContext, get_bff_context
from app.core.envelope import envelope_response
from app.core.ownership import assert_node_belongs_to_company, assert_property_belongs_to_company
from app.core.upstream import build_url, expect_ok
from app.core.validation import parse_positive_int

router = APIRouter(prefix="/api/node-properties", tags=["node-properties"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]


class NodePropertyLink(BaseModel):
    node_id: int | str | None = None
    property_id: int | str | None = None


def _node_id(raw: object) -> int:
    return parse_positive_int(raw, required_code="NODE_ID_REQUIRED", invalid_code="INVALID_NODE_ID")


def _property_id(raw: object) -> int:
    return parse_positive_int(
        raw, required_code="PROPERTY_ID_REQUIRED", invalid_code="INVALID_PROPERTY_ID"
    )


@router.get("")
def list_node_properties(ctx: ContextDep, node_id: str | None = None) -> JSONResponse:
    parsed_node = _node_id(node_id)
    base_url = ctx.flow_manager_url("/node-properties")
    assert_node_belongs_to_company(ctx, parsed_node)
    collection = ctx.upstream.fetch_collection(
        base_url,
        error_code="NODE_PROPERTIES_FETCH_FAILED",
        params=ctx.forwarded_query({"node_id": parsed_node}),
    )
    return envelope_response(collection.items, meta=collection.meta())


@router.post("")
def link_property(ctx: ContextDep, payload: NodePropertyLink) -> JSONResponse:
    parsed_node = _node_id(payload.node_id)
    parsed_property = _property_id(payload.property_id)
    base_url = ctx.flow_manager_url("/node-properties")
    assert_node_belongs_to_company(ctx, parsed_node)
    assert_property_belongs_to_company(ctx, parsed_property)
    response = expect_ok(
        ctx.upstream.post(
            base_url,
            error_code="NODE_PROPERTIES_CREATE_FAILED",
            json={"node_id": parsed_node, "property_id": parsed_property},
        ),
        "NODE_PROPERTIES_CREATE_FAILED",
    )
    return envelope_response(response.payload, status_code=response.status_code)


@router.delete("/{node_id}/{property_id}")
def unlink_property(node_id: str, property_id: str, ctx: ContextDep) -> JSONResponse:
    """Remove a property from a node after checking the node is the caller's."""

    parsed_node = _node_id(node_id)
    parsed_property = _property_id(property_id)
    base_url = ctx.flow_manager_url("/node-properties")
    assert_node_belongs_to_company(ctx, parsed_node)
    response = expect_ok(
        ctx.upstream.delete(
            build_url(base_url, parsed_node, parsed_property),
            error_code="NODE_PROPERTIES_DELETE_FAILED",
        ),
        "NODE_PROPERTIES_DELETE_FAILED",
    )
    return envelope_response(response.payload)
