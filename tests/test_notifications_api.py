from conftest import COMPANY_ID, FakeResponse, flow, register_nodes


def _register_notifications(upstream, *notification_ids):
    def _notifications(request):
        assert request.query["company_id"] == str(COMPANY_ID)
        return FakeResponse(200, [{"id": nid, "company_id": COMPANY_ID} for nid in notification_ids])

    upstream.add("GET", flow("notifications"), _notifications)


def test_list_notifications_forces_company(client, upstream, company, auth_headers):
    _register_notifications(upstream, 4)

    response = client.get("/api/notifications?company_id=1&active=true", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"] == [{"id": 4, "company_id": COMPANY_ID}]
    (call,) = upstream.calls("GET", flow("notifications"))
    assert call.query_items == [("active", "true"), ("company_id", str(COMPANY_ID))]


def test_create_notification_defaults(client, upstream, company, auth_headers):
    register_nodes(upstream, 3)
    upstream.add("POST", flow("notifications"), FakeResponse(201, {"id": 9}))

    missing = client.post("/api/notifications", json={}, headers=auth_headers)
    response = client.post("/api/notifications", json={"trigger_node_id": 3}, headers=auth_headers)

    assert missing.json()["error"]["code"] == "TRIGGER_NODE_ID_REQUIRED"
    assert response.status_code == 201
    (call,) = upstream.calls("POST")
    assert call.json == {
        "trigger_node_id": 3,
        "company_id": COMPANY_ID,
        "subject": "",
        "active": True,
    }


def test_create_notification_for_foreign_node(client, upstream, company, auth_headers):
    register_nodes(upstream, 3)

    response = client.post("/api/notifications", json={"trigger_node_id": 4}, headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NODE_NOT_FOUND"
    assert upstream.calls("POST") == []


def test_delete_notification_returns_no_content(client, upstream, company, auth_headers):
    _register_notifications(upstream, 4)
    upstream.add("DELETE", flow("notifications", 4), FakeResponse(204, content_type=None))

    foreign = client.delete("/api/notifications/5", headers=auth_headers)
    response = client.delete("/api/notifications/4", headers=auth_headers)

    assert foreign.status_code == 404
    assert foreign.json()["error"]["code"] == "NOTIFICATION_NOT_FOUND"
    assert response.status_code == 204
    assert response.content == b""
    assert len(upstream.calls("DELETE")) == 1


def test_recipients_require_owned_notification(client, upstream, company, auth_headers):
    _register_notifications(upstream, 4)
    upstream.add(
        "GET",
        flow("notification-recipients"),
        FakeResponse(200, [{"id": 70, "notification_id": 4}]),
    )

    missing = client.get("/api/notification-recipients", headers=auth_headers)
    foreign = client.get("/api/notification-recipients?notification_id=5", headers=auth_headers)
    owned = client.get("/api/notification-recipients?notification_id=4", headers=auth_headers)

    assert missing.json()["error"]["code"] == "NOTIFICATION_ID_REQUIRED"
    assert foreign.json()["error"]["code"] == "NOTIFICATION_NOT_FOUND"
    assert owned.json()["data"] == [{"id": 70, "notification_id": 4}]


def test_create_recipient_validates_fields(client, upstream, company, auth_headers):
    _register_notifications(upstream, 4)
    upstream.add("POST", flow("notification-recipients"), FakeResponse(201, {"id": 71}))

    missing_value = client.post(
        "/api/notification-recipients",
        json={"notification_id": 4, "recipient_type": "email"},
        headers=auth_headers,
    )
    created = client.post(
        "/api/notification-recipients",
        json={"notification_id": "4", "recipient_type": " email ", "recipient_value": "a@b.c"},
        headers=auth_headers,
    )

    assert missing_value.json()["error"]["code"] == "RECIPIENT_VALUE_REQUIRED"
    assert created.status_code == 201
    (call,) = upstream.calls("POST")
    assert call.json == {"notification_id": 4, "recipient_type": "email", "recipient_value": "a@b.c"}


def test_delete_recipient_uses_trailing_slash(client, upstream, company, auth_headers):
    _register_notifications(upstream, 4)
    upstream.add(
        "GET",
        flow("notification-recipients"),
        FakeResponse(200, [{"id": 70, "notification_id": 4}]),
    )
    upstream.add("DELETE", flow("notification-recipients", 70) + "/", FakeResponse(204, content_type=None))

    invalid = client.delete("/api/notification-recipients/x", headers=auth_headers)
    not_listed = client.delete(
        "/api/notification-recipients/71?notification_id=4", headers=auth_headers
    )
    deleted = client.delete(
        "/api/notification-recipients/70?notification_id=4", headers=auth_headers
    )

    assert invalid.json()["error"]["code"] == "INVALID_RECIPIENT_ID"
    assert not_listed.json()["error"]["code"] == "RECIPIENT_NOT_FOUND"
    assert deleted.status_code == 204
    assert [c.url for c in upstream.calls("DELETE")] == [
        "http://flow.test/api/notification-recipients/70/"
    ]
