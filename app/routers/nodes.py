"""Workflow nodes, scoped to the caller's company on the flow manager."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.context import BffContext, get_bff_context
from app.core.envelope import envelope_response, private_cache_headers
from app.core.ownership import assert_node_belongs_to_company
from app.core.upstream import build_url, expect_ok
from app.core.validation import now_iso, optional_text, parse_positive_int, require_text

router = APIRouter(prefix="/api/nodes", tags=["nodes"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]


class NodePayload(BaseModel):
    prompt: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


def _parse_node_id(raw: str) -> int:
    return parse_positive_int(raw, required_code="NODE_ID_REQUIRED", invalid_code="INVALID_NODE_ID")


def _node_body(ctx: BffContext, payload: NodePayload, *, include_company: bool) -> dict[str, object]:
    prompt = require_text(payload.prompt, "PROMPT_REQUIRED")
    now = now_iso()
    body: dict[str, object] = {
        "prompt": prompt,
        "created_at": optional_text(payload.created_at) or now,
        "updated_at": optional_text(payload.updated_at) or now,
    }
    if include_company:
        body["company_id"] = ctx.company_id()
    return body


@router.get("")
def list_nodes(ctx: ContextDep) -> JSONResponse:
    """List the caller's nodes; any client ``company_id`` is replaced."""

    nodes_url = ctx.flow_manager_url("/nodes")
    params = ctx.forwarded_query({"company_id": ctx.company_id()})
    collection = ctx.upstream.fetch_collection(
        nodes_url, error_code="NODES_FETCH_FAILED", params=params
    )
    return envelope_response(
        collection.items,
        meta=collection.meta(),
        headers=private_cache_headers(ctx.settings.cache_max_age_seconds),
    )


@router.post("")
def create_node(ctx: ContextDep, payload: NodePayload) -> JSONResponse:
    nodes_url = ctx.flow_manager_url("/nodes")
    body = _node_body(ctx, payload, include_company=True)
    response = expect_ok(
        ctx.upstream.post(nodes_url, error_code="NODES_CREATE_FAILED", json=body),
        "NODES_CREATE_FAILED",
    )
    return envelope_response(response.payload, status_code=response.status_code)


@router.get("/{node_id}")
def get_node(node_id: str, ctx: ContextDep) -> JSONResponse:
    parsed_id = _parse_node_id(node_id)
    nodes_url = ctx.flow_manager_url("/nodes")
    assert_node_belongs_to_company(ctx, parsed_id)
    response = expect_ok(
        ctx.upstream.get(build_url(nodes_url, parsed_id), error_code="NODES_FETCH_FAILED"),
        "NODES_FETCH_FAILED",
    )
    return envelope_response(response.payload)


@router.api_route("/{node_id}", methods=["PUT", "PATCH"])
def update_node(node_id: str, ctx: ContextDep, payload: NodePayload) -> JSONResponse:
    parsed_id = _parse_node_id(node_id)
    nodes_url = ctx.flow_manager_url("/nodes")
    assert_node_belongs_to_company(ctx, parsed_id)
    body = _node_body(ctx, payload, include_company=False)
    response = expect_ok(
        ctx.upstream.put(
            build_url(nodes_url, parsed_id), error_code="NODES_UPDATE_FAILED", json=body
        ),
        "NODES_UPDATE_FAILED",
    )
    return envelope_response(response.payload)


@router.delete("/{node_id}")
def delete_node(node_id: str, ctx: ContextDep) -> JSONResponse:
    parsed_id = _parse_node_id(node_id)
    nodes_url = ctx.flow_manager_url("/nodes")
    assert_node_belongs_to_company(ctx, parsed_id)
    response = expect_ok(
        ctx.upstream.delete(build_url(nodes_url, parsed_id), error_code="NODES_DELETE_FAILED"),
        "NODES_DELETE_FAILED",
    )
    return envelope_response(response.payload)
