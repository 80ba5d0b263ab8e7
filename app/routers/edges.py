"""Edges connecting two workflow nodes."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.context import BffContext, get_bff_context
from app.core.envelope import BffError, envelope_response
from app.core.ownership import assert_edge_belongs_to_company, assert_node_belongs_to_company
from app.core.upstream import build_url, expect_ok
from app.core.validation import (
    coerce_positive_int,
    now_iso,
    optional_text,
    parse_iso_timestamp,
    parse_positive_int,
)

router = APIRouter(prefix="/api/edges", tags=["edges"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]


class EdgePayload(BaseModel):
    source_node_id: int | str | None = None
    destination_node_id: int | str | None = None
    label: str | None = None
    priority: int | float | str | None = None
    created_at: str | None = None
    updated_at: str | None = None


def _source_node_id(raw: object) -> int:
    return parse_positive_int(
        raw, required_code="SOURCE_NODE_ID_REQUIRED", invalid_code="INVALID_SOURCE_NODE_ID"
    )


def _edge_id(raw: str) -> int:
    return parse_positive_int(raw, required_code="EDGE_ID_REQUIRED", invalid_code="INVALID_EDGE_ID")


def _node_ref(raw: Any, code: str) -> int:
    value = coerce_positive_int(raw)
    if value is None:
        raise BffError(400, code)
    return value


def _label(raw: Any) -> str:
    label = raw.strip() if isinstance(raw, str) else ""
    if not label:
        raise BffError(400, "LABEL_REQUIRED")
    return label


def _priority(raw: Any) -> int:
    if isinstance(raw, bool):
        raise BffError(400, "INVALID_PRIORITY")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            pass
    raise BffError(400, "INVALID_PRIORITY")


@router.get("")
def list_edges(ctx: ContextDep, source_node_id: str | None = None) -> JSONResponse:
    """List the edges leaving ``source_node_id``."""

    parsed_source = _source_node_id(source_node_id)
    edges_url = ctx.flow_manager_url("/edges")
    assert_node_belongs_to_company(ctx, parsed_source)
    collection = ctx.upstream.fetch_collection(
        edges_url,
        error_code="EDGES_FETCH_FAILED",
        params=ctx.forwarded_query({"source_node_id": parsed_source}),
    )
    return envelope_response(collection.items, meta=collection.meta())


@router.post("")
def create_edge(ctx: ContextDep, payload: EdgePayload) -> JSONResponse:
    edges_url = ctx.flow_manager_url("/edges")
    source = _node_ref(payload.source_node_id, "INVALID_SOURCE_NODE_ID")
    destination = _node_ref(payload.destination_node_id, "INVALID_DESTINATION_NODE_ID")
    label = _label(payload.label)
    priority = _priority(payload.priority)

    assert_node_belongs_to_company(ctx, source)
    assert_node_belongs_to_company(ctx, destination)

    now = now_iso()
    body = {
        "source_node_id": source,
        "destination_node_id": destination,
        "label": label,
        "priority": priority,
        "created_at": optional_text(payload.created_at) or now,
        "updated_at": optional_text(payload.updated_at) or now,
    }
    response = expect_ok(
        ctx.upstream.post(edges_url, error_code="EDGES_CREATE_FAILED", json=body),
        "EDGES_CREATE_FAILED",
    )
    return envelope_response(response.payload, status_code=status.HTTP_201_CREATED)


@router.api_route("/{edge_id}", methods=["PUT", "PATCH"])
def update_edge(
    edge_id: str,
    ctx: ContextDep,
    payload: EdgePayload,
    source_node_id: str | None = None,
) -> JSONResponse:
    """Partially update an edge.

    Only the fields present in the body are forwarded. The edge must hang off
    ``source_node_id`` and every node it would touch after the update must
    belong to the caller's company.
    """

    parsed_id = _edge_id(edge_id)
    edges_url = ctx.flow_manager_url("/edges")
    fields = payload.model_fields_set

    body: dict[str, Any] = {}
    if "source_node_id" in fields:
        body["source_node_id"] = _node_ref(payload.source_node_id, "INVALID_SOURCE_NODE_ID")
    if "destination_node_id" in fields:
        body["destination_node_id"] = _node_ref(
            payload.destination_node_id, "INVALID_DESTINATION_NODE_ID"
        )
    if "label" in fields:
        body["label"] = _label(payload.label)
    if "priority" in fields:
        body["priority"] = _priority(payload.priority)
    if "updated_at" in fields:
        body["updated_at"] = parse_iso_timestamp(payload.updated_at, "INVALID_UPDATED_AT")
    if not body:
        raise BffError(400, "NO_UPDATABLE_FIELDS")

    assert_edge_belongs_to_company(ctx, parsed_id, _source_node_id(source_node_id))
    for key in ("source_node_id", "destination_node_id"):
        if key in body:
            assert_node_belongs_to_company(ctx, body[key])

    body.setdefault("updated_at", now_iso())
    response = expect_ok(
        ctx.upstream.put(build_url(edges_url, parsed_id), error_code="EDGES_UPDATE_FAILED", json=body),
        "EDGES_UPDATE_FAILED",
    )
    return envelope_response(response.payload)


@router.delete("/{edge_id}")
def delete_edge(edge_id: str, ctx: ContextDep, source_node_id: str | None = None) -> JSONResponse:
    parsed_source = _source_node_id(source_node_id)
    parsed_id = _edge_id(edge_id)
    edges_url = ctx.flow_manager_url("/edges")
    assert_edge_belongs_to_company(ctx, parsed_id, parsed_source)
    response = expect_ok(
        ctx.upstream.delete(build_url(edges_url, parsed_id), error_code="EDGES_DELETE_FAILED"),
        "EDGES_DELETE_FAILED",
    )
    return envelope_response(response.payload)
