from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from conftest import COMPANY_ID, FakeResponse, flow, register_nodes


def test_requires_session(client, upstream):
    response = client.get("/api/nodes")
    assert response.status_code == 401
    assert response.json() == {"error": {"code": "UNAUTHORIZED"}}
    assert upstream.requests == []


def test_list_forces_company_scope(client, upstream, company, auth_headers):
    upstream.add(
        "GET",
        flow("nodes"),
        FakeResponse(200, {"items": [{"id": 1}], "total": 1, "limit": 10, "offset": 0}),
    )

    response = client.get("/api/nodes?company_id=999&limit=10", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {
        "data": [{"id": 1}],
        "meta": {"total": 1, "limit": 10, "offset": 0},
    }
    assert "private" in response.headers["Cache-Control"]
    assert response.headers["Vary"] == "Cookie"

    (call,) = upstream.calls("GET", flow("nodes"))
    assert ("company_id", "999") not in call.query_items
    assert call.query == {"limit": "10", "company_id": str(COMPANY_ID)}


def test_unexpected_collection_shape_is_bad_gateway(client, upstream, company, auth_headers):
    upstream.add("GET", flow("nodes"), FakeResponse(200, {"data": []}))

    response = client.get("/api/nodes", headers=auth_headers)

    assert response.status_code == 502
    error = response.json()["error"]
    assert error["code"] == "NODES_FETCH_FAILED"
    assert error["details"]["reason"] == "UNEXPECTED_COLLECTION_SHAPE"


def test_create_injects_company_and_passes_status_through(
    client, upstream, company, auth_headers
):
    upstream.add("POST", flow("nodes"), FakeResponse(201, {"id": 12, "prompt": "Hello"}))

    response = client.post(
        "/api/nodes", json={"prompt": "  Hello ", "company_id": 999}, headers=auth_headers
    )

    assert response.status_code == 201
    assert response.json() == {"data": {"id": 12, "prompt": "Hello"}}
    (call,) = upstream.calls("POST", flow("nodes"))
    assert call.json["company_id"] == COMPANY_ID
    assert call.json["prompt"] == "Hello"
    assert call.json["created_at"].endswith("Z")


def test_create_requires_prompt(client, upstream, company, auth_headers):
    response = client.post("/api/nodes", json={"prompt": "   "}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PROMPT_REQUIRED"
    assert upstream.calls("POST") == []


def test_upstream_error_status_and_body_are_passed_through(
    client, upstream, company, auth_headers
):
    register_nodes(upstream, 5)
    upstream.add("GET", flow("nodes", 5), FakeResponse(404, {"detail": "gone"}))

    response = client.get("/api/nodes/5", headers=auth_headers)

    assert response.status_code == 404
    assert response.json() == {"error": {"code": "NODES_FETCH_FAILED", "details": {"detail": "gone"}}}


def test_text_error_bodies_become_details(client, upstream, company, auth_headers):
    register_nodes(upstream, 5)
    upstream.add(
        "DELETE",
        flow("nodes", 5),
        FakeResponse(503, text="upstream down", content_type="text/plain"),
    )

    response = client.delete("/api/nodes/5", headers=auth_headers)

    assert response.status_code == 503
    assert response.json()["error"] == {"code": "NODES_DELETE_FAILED", "details": "upstream down"}


def test_foreign_node_is_not_found_and_never_written(client, upstream, company, auth_headers):
    register_nodes(upstream, 1, 2)

    response = client.put("/api/nodes/3", json={"prompt": "x"}, headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NODE_NOT_FOUND"
    assert upstream.calls("PUT") == []


def test_patch_updates_owned_node(client, upstream, company, auth_headers):
    register_nodes(upstream, 3)
    upstream.add("PUT", flow("nodes", 3), FakeResponse(200, {"id": 3, "prompt": "new"}))

    response = client.patch("/api/nodes/3", json={"prompt": "new"}, headers=auth_headers)

    assert response.status_code == 200
    (call,) = upstream.calls("PUT")
    assert "company_id" not in call.json


def test_invalid_node_id(client, upstream, auth_headers):
    response = client.get("/api/nodes/abc", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_NODE_ID"
    assert upstream.requests == []


def test_oversized_and_non_ascii_node_ids_are_invalid(client, upstream, auth_headers):
    oversized = client.get("/api/nodes/" + "9" * 5000, headers=auth_headers)
    arabic_digits = client.get("/api/nodes/١٢", headers=auth_headers)

    assert oversized.status_code == 400
    assert oversized.json()["error"]["code"] == "INVALID_NODE_ID"
    assert arabic_digits.status_code == 400
    assert arabic_digits.json()["error"]["code"] == "INVALID_NODE_ID"
    assert upstream.requests == []


def test_missing_phone_number_blocks_company_scope(client, upstream, auth_headers, session_factory):
    from app.models import User

    with session_factory.begin() as session:
        session.query(User).update({User.phone_number: None})

    response = client.get("/api/nodes", headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "COMPANY_NUMBER_REQUIRED"


def test_unknown_company_is_not_found(client, upstream, auth_headers):
    upstream.add("GET", flow("companies"), FakeResponse(200, []))

    response = client.get("/api/nodes", headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "COMPANY_ID_NOT_FOUND"


def test_unconfigured_flow_manager(engine, upstream, auth_headers):
    app = create_app(Settings(session_secret="test-secret"), engine=engine, http_session=upstream)
    with TestClient(app) as client:
        response = client.get("/api/nodes", headers=auth_headers)

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "FLOW_MANAGER_SERVICE_URL_NOT_CONFIGURED"
    assert upstream.requests == []


def test_company_lookup_with_unexpected_shape_is_bad_gateway(client, upstream, auth_headers):
    upstream.add("GET", flow("companies"), FakeResponse(200, {"company": {"id": 7}}))

    response = client.get("/api/properties", headers=auth_headers)

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "COMPANIES_FETCH_FAILED"
    assert upstream.calls("GET", flow("properties")) == []


def test_company_lookup_accepts_company_id_key(client, upstream, auth_headers):
    upstream.add("GET", flow("companies"), FakeResponse(200, {"items": [{"company_id": "7"}]}))
    upstream.add("GET", flow("properties"), FakeResponse(200, []))

    response = client.get("/api/properties", headers=auth_headers)

    assert response.status_code == 200
    (call,) = upstream.calls("GET", flow("properties"))
    assert call.query == {"company_id": str(COMPANY_ID)}
