"""Ownership checks for nested flow manager resources.

The flow manager does not scope nested resources to a company, so before
touching one the BFF re-reads the parent collection for the caller's company
and looks for the target id. A miss is a 404 and the upstream write is never
issued.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .context import FLOW_MANAGER_NOT_CONFIGURED, BffContext
from .envelope import BffError
from .validation import coerce_positive_int, parse_positive_int


def find_by_id(items: Iterable[Any], target_id: int, *, key: str = "id") -> Mapping[str, Any] | None:
    """Return the first mapping in ``items`` whose ``key`` equals ``target_id``."""

    for item in items:
        if isinstance(item, Mapping) and coerce_positive_int(item.get(key)) == target_id:
            return item
    return None


def parse_edge_scope(edge_id: object, source_node_id: object) -> tuple[int, int]:
    """Parse the ``edge_id``/``source_node_id`` pair nested routes are scoped by."""

    return (
        parse_positive_int(edge_id, required_code="EDGE_ID_REQUIRED", invalid_code="INVALID_EDGE_ID"),
        parse_positive_int(
            source_node_id,
            required_code="SOURCE_NODE_ID_REQUIRED",
            invalid_code="INVALID_SOURCE_NODE_ID",
        ),
    )


def _require_member(
    ctx: BffContext,
    resource: str,
    target_id: int,
    *,
    params: list[tuple[str, str]],
    fetch_code: str,
    missing_code: str,
    not_configured_code: str = FLOW_MANAGER_NOT_CONFIGURED,
) -> Mapping[str, Any]:
    url = ctx.flow_manager_url(resource, not_configured_code=not_configured_code)
    collection = ctx.upstream.fetch_collection(url, error_code=fetch_code, params=params)
    found = find_by_id(collection.items, target_id)
    if found is None:
        raise BffError(404, missing_code)
    return found


def assert_node_belongs_to_company(ctx: BffContext, node_id: int) -> Mapping[str, Any]:
    return _require_member(
        ctx,
        "/nodes",
        node_id,
        params=[("company_id", str(ctx.company_id()))],
        fetch_code="NODES_FETCH_FAILED",
        missing_code="NODE_NOT_FOUND",
    )


def assert_property_belongs_to_company(ctx: BffContext, property_id: int) -> Mapping[str, Any]:
    return _require_member(
        ctx,
        "/properties",
        property_id,
        params=[("company_id", str(ctx.company_id()))],
        fetch_code="PROPERTIES_FETCH_FAILED",
        missing_code="PROPERTY_NOT_FOUND",
    )


def assert_notification_belongs_to_company(
    ctx: BffContext, notification_id: int
) -> Mapping[str, Any]:
    return _require_member(
        ctx,
        "/notifications",
        notification_id,
        params=[("company_id", str(ctx.company_id()))],
        fetch_code="NOTIFICATIONS_FETCH_FAILED",
        missing_code="NOTIFICATION_NOT_FOUND",
        not_configured_code="NOTIFICATIONS_SERVICE_URL_NOT_CONFIGURED",
    )


def assert_edge_belongs_to_company(
    ctx: BffContext, edge_id: int, source_node_id: int
) -> Mapping[str, Any]:
    """Check the source node is the caller's and the edge leaves from it."""

    assert_node_belongs_to_company(ctx, source_node_id)
    return _require_member(
        ctx,
        "/edges",
        edge_id,
        params=[("source_node_id", str(source_node_id))],
        fetch_code="EDGES_FETCH_FAILED",
        missing_code="EDGE_NOT_FOUND",
    )


def assert_condition_belongs_to_edge(
    ctx: BffContext, condition_id: int, edge_id: int
) -> Mapping[str, Any]:
    return _require_member(
        ctx,
        "/conditions",
        condition_id,
        params=[("edge_id", str(edge_id))],
        fetch_code="CONDITIONS_FETCH_FAILED",
        missing_code="CONDITION_NOT_FOUND",
    )


__all__ = [
    "assert_condition_belongs_to_edge",
    "assert_edge_belongs_to_company",
    "assert_node_belongs_to_company",
    "assert_notification_belongs_to_company",
    "assert_property_belongs_to_company",
    "find_by_id",
    "parse_edge_scope",
]
