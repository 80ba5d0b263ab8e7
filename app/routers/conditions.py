"""Conditions attached to a workflow edge."""

from __future__ import annotations

from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.context import BffContext, get_bff_context
from app.core.envelope import BffError, envelope_response
from app.core.ownership import (
    assert_condition_belongs_to_edge,
    assert_edge_belongs_to_company,
    parse_edge_scope,
)
from app.core.upstream import Collection, build_url, expect_ok
from app.core.validation import (
    coerce_positive_int,
    now_iso,
    optional_text,
    parse_iso_timestamp,
    parse_positive_int,
)

router = APIRouter(prefix="/api/conditions", tags=["conditions"])

ContextDep = Annotated[BffContext, Depends(get_bff_context)]

PROPERTY_FETCH_WORKERS = 8


class ConditionPayload(BaseModel):
    operator: str | None = None
    compare_value: Any = None
    edge_id: int | str | None = None
    created_at: str | None = None
    updated_at: str | None = None


def _condition_id(raw: str) -> int:
    return parse_positive_int(
        raw, required_code="CONDITION_ID_REQUIRED", invalid_code="INVALID_CONDITION_ID"
    )


def _operator(raw: Any) -> str:
    operator = raw.strip() if isinstance(raw, str) else ""
    if not operator:
        raise BffError(400, "OPERATOR_REQUIRED")
    return operator


def _compare_value(raw: Any) -> str:
    if raw is None:
        return ""
    return raw if isinstance(raw, str) else str(raw)


def fetch_condition_properties(ctx: BffContext, condition_ids: list[int]) -> dict[int, Collection]:
    """Fetch the property sets of several conditions concurrently.

    The first failure is re-raised once every request has finished.
    """

    if not condition_ids:
        return {}
    base_url = ctx.flow_manager_url("/condition-properties")

    def _fetch(condition_id: int) -> Collection:
        return ctx.upstream.fetch_collection(
            base_url,
            error_code="CONDITION_PROPERTIES_FETCH_FAILED",
            params=[("condition_id", str(condition_id))],
        )

    workers = min(PROPERTY_FETCH_WORKERS, len(condition_ids))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {cid: executor.submit(_fetch, cid) for cid in condition_ids}
    return {cid: future.result() for cid, future in futures.items()}


@router.get("")
def list_conditions(
    ctx: ContextDep,
    edge_id: str | None = None,
    source_node_id: str | None = None,
    include_properties: bool = False,
) -> JSONResponse:
    """List an edge's conditions, optionally with each condition's properties."""

    parsed_edge, parsed_source = parse_edge_scope(edge_id, source_node_id)
    conditions_url = ctx.flow_manager_url("/conditions")
    assert_edge_belongs_to_company(ctx, parsed_edge, parsed_source)
    collection = ctx.upstream.fetch_collection(
        conditions_url,
        error_code="CONDITIONS_FETCH_FAILED",
        params=ctx.forwarded_query(
            {"edge_id": parsed_edge},
            exclude=("source_node_id", "include_properties"),
        ),
    )
    items = collection.items
    if include_properties:
        ids = [
            cid
            for cid in (
                coerce_positive_int(item.get("id")) for item in items if isinstance(item, Mapping)
            )
            if cid is not None
        ]
        properties = fetch_condition_properties(ctx, ids)
        items = [_with_properties(item, properties) for item in items]
    return envelope_response(items, meta=collection.meta())


def _with_properties(item: Any, properties: dict[int, Collection]) -> Any:
    if not isinstance(item, Mapping):
        return item
    cid = coerce_positive_int(item.get("id"))
    if cid is None or cid not in properties:
        return item
    return {**item, "properties": properties[cid].items}


@router.post("")
def create_condition(
    ctx: ContextDep,
    payload: ConditionPayload,
    edge_id: str | None = None,
    source_node_id: str | None = None,
) -> JSONResponse:
    parsed_edge, parsed_source = parse_edge_scope(edge_id, source_node_id)
    conditions_url = ctx.flow_manager_url("/conditions")
    operator = _operator(payload.operator)
    if payload.edge_id is not None and coerce_positive_int(payload.edge_id) != parsed_edge:
        raise BffError(400, "EDGE_ID_MISMATCH")

    assert_edge_belongs_to_company(ctx, parsed_edge, parsed_source)

    now = now_iso()
    body = {
        "edge_id": parsed_edge,
        "operator": operator,
        "compare_value": _compare_value(payload.compare_value),
        "created_at": optional_text(payload.created_at) or now,
        "updated_at": optional_text(payload.updated_at) or now,
    }
    response = expect_ok(
        ctx.upstream.post(conditions_url, error_code="CONDITIONS_CREATE_FAILED", json=body),
        "CONDITIONS_CREATE_FAILED",
    )
    return envelope_response(response.payload, status_code=status.HTTP_201_CREATED)


@router.get("/{condition_id}")
def get_condition(
    condition_id: str,
    ctx: ContextDep,
    edge_id: str | None = None,
    source_node_id: str | None = None,
) -> JSONResponse:
    """Fetch one condition; the edge chain is verified when it is supplied."""

    parsed_id = _condition_id(condition_id)
    conditions_url = ctx.flow_manager_url("/conditions")
    if edge_id is not None or source_node_id is not None:
        parsed_edge, parsed_source = parse_edge_scope(edge_id, source_node_id)
        assert_edge_belongs_to_company(ctx, parsed_edge, parsed_source)
        assert_condition_belongs_to_edge(ctx, parsed_id, parsed_edge)
    response = expect_ok(
        ctx.upstream.get(build_url(conditions_url, parsed_id), error_code="CONDITION_FETCH_FAILED"),
        "CONDITION_FETCH_FAILED",
    )
    return envelope_response(response.payload)


@router.api_route("/{condition_id}", methods=["PUT", "PATCH"])
def update_condition(
    condition_id: str,
    ctx: ContextDep,
    payload: ConditionPayload,
    edge_id: str | None = None,
    source_node_id: str | None = None,
) -> JSONResponse:
    parsed_edge, parsed_source = parse_edge_scope(edge_id, source_node_id)
    parsed_id = _condition_id(condition_id)
    conditions_url = ctx.flow_manager_url("/conditions")
    assert_edge_belongs_to_company(ctx, parsed_edge, parsed_source)
    assert_condition_belongs_to_edge(ctx, parsed_id, parsed_edge)

    fields = payload.model_fields_set
    body: dict[str, Any] = {}
    if "operator" in fields:
        body["operator"] = _operator(payload.operator)
    if "compare_value" in fields:
        body["compare_value"] = _compare_value(payload.compare_value)
    if "updated_at" in fields:
        body["updated_at"] = parse_iso_timestamp(payload.updated_at, "INVALID_UPDATED_AT")
    if not body:
        raise BffError(400, "NO_UPDATABLE_FIELDS")
    body.setdefault("updated_at", now_iso())

    response = expect_ok(
        ctx.upstream.put(
            build_url(conditions_url, parsed_id), error_code="CONDITIONS_UPDATE_FAILED", json=body
        ),
        "CONDITIONS_UPDATE_FAILED",
    )
    return envelope_response(response.payload)


@router.delete("/{condition_id}")
def delete_condition(
    condition_id: str,
    ctx: ContextDep,
    edge_id: str | None = None,
    source_node_id: str | None = None,
) -> JSONResponse:
    parsed_edge, parsed_source = parse_edge_scope(edge_id, source_node_id)
    parsed_id = _condition_id(condition_id)
    conditions_url = ctx.flow_manager_url("/conditions")
    assert_edge_belongs_to_company(ctx, parsed_edge, parsed_source)
    assert_condition_belongs_to_edge(ctx, parsed_id, parsed_edge)
    response = expect_ok(
        ctx.upstream.delete(
            build_url(conditions_url, parsed_id), error_code="CONDITIONS_DELETE_FAILED"
        ),
        "CONDITIONS_DELETE_FAILED",
    )
    return envelope_response(response.payload)
