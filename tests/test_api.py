"""
HTTP and WebSocket tests against the FastAPI app.
"""

import uuid

import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import make_token

API = "/api/v1"


@pytest.fixture
def order_body(vendor, shop_id):
    return {
        "vendor_id": str(vendor.id),
        "shop_id": str(shop_id),
        "items": [
            {"menu_item_id": "i1", "name": "Burger", "unit_price": 8.99, "quantity": 2}
        ],
        "delivery_location": "Hostel A",
    }


@pytest.fixture
def placed(client, auth_headers, student, order_body):
    response = client.post(f"{API}/orders", json=order_body, headers=auth_headers(student))
    assert response.status_code == 201
    return response.json()


# Tests for health and auth

def test_health(client):
    assert client.get("/").json() == {"status": "ok", "service": "campusgrub-orders"}


def test_placing_order_requires_token(client, order_body):
    assert client.post(f"{API}/orders", json=order_body).status_code == 401


def test_bad_token_is_rejected(client, order_body, student):
    headers = {"Authorization": f"Bearer {make_token(student, secret='wrong')}"}
    assert client.post(f"{API}/orders", json=order_body, headers=headers).status_code == 401


def test_vendor_cannot_place_orders(client, auth_headers, vendor, order_body):
    response = client.post(f"{API}/orders", json=order_body, headers=auth_headers(vendor))
    assert response.status_code == 403


# Tests for the order lifecycle over HTTP

def test_place_order(placed, student):
    assert placed["status"] == "pending"
    assert placed["total_amount"] == pytest.approx(47.98)
    assert placed["student_id"] == str(student.id)


def test_empty_cart_is_rejected(client, auth_headers, student, order_body):
    order_body["items"] = []
    response = client.post(f"{API}/orders", json=order_body, headers=auth_headers(student))
    assert response.status_code == 422


def test_vendor_transition_and_student_notification(
    client, auth_headers, placed, vendor, student
):
    response = client.patch(
        f"{API}/orders/{placed['id']}/status",
        json={"status": "preparing"},
        headers=auth_headers(vendor),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "preparing"

    notes = client.get(f"{API}/notifications/me", headers=auth_headers(student)).json()
    assert [n["type"] for n in notes] == ["order_update"]

    marked = client.patch(
        f"{API}/notifications/{notes[0]['id']}/read", headers=auth_headers(student)
    )
    assert marked.json()["is_read"] is True
    assert client.get(f"{API}/notifications/me", headers=auth_headers(student)).json() == []


def test_vendor_gets_new_order_notification(client, auth_headers, placed, vendor, student):
    notes = client.get(f"{API}/notifications/me", headers=auth_headers(vendor)).json()
    assert notes[0]["type"] == "new_order"
    assert notes[0]["data"]["order_id"] == placed["id"]

    # Not the student's to mark
    response = client.patch(
        f"{API}/notifications/{notes[0]['id']}/read", headers=auth_headers(student)
    )
    assert response.status_code == 403


def test_invalid_transition_body(client, auth_headers, placed, vendor):
    response = client.patch(
        f"{API}/orders/{placed['id']}/status",
        json={"status": "delivered"},
        headers=auth_headers(vendor),
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "invalid_transition"
    assert "pending -> delivered" in body["detail"]
    assert body["context"]["current_status"] == "pending"


def test_stale_expected_status_is_conflict(client, auth_headers, placed, vendor):
    client.post(f"{API}/orders/{placed['id']}/advance", headers=auth_headers(vendor))

    response = client.patch(
        f"{API}/orders/{placed['id']}/status",
        json={"status": "cancelled", "expected_status": "pending"},
        headers=auth_headers(vendor),
    )
    assert response.status_code == 409
    assert response.json()["error"] == "conflict"


def test_other_vendor_is_forbidden(client, auth_headers, placed, other_vendor):
    response = client.post(
        f"{API}/orders/{placed['id']}/advance", headers=auth_headers(other_vendor)
    )
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


def test_unknown_order_is_404(client, auth_headers, vendor):
    response = client.get(f"{API}/orders/{uuid.uuid4()}", headers=auth_headers(vendor))
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_order_lists(client, auth_headers, placed, student, vendor, shop_id):
    mine = client.get(f"{API}/orders/me?scope=active", headers=auth_headers(student)).json()
    assert [o["id"] for o in mine] == [placed["id"]]

    dashboard = client.get(
        f"{API}/orders/vendor", params={"shop_id": str(shop_id)}, headers=auth_headers(vendor)
    ).json()
    assert [o["id"] for o in dashboard] == [placed["id"]]

    feed = client.get(f"{API}/orders/feed").json()
    assert [o["id"] for o in feed] == [placed["id"]]


# Tests for admin endpoints

def test_reap_requires_admin(client, auth_headers, vendor):
    response = client.post(f"{API}/admin/orders/reap", headers=auth_headers(vendor))
    assert response.status_code == 403


def test_reap_with_zero_threshold(client, auth_headers, placed, admin):
    response = client.post(
        f"{API}/admin/orders/reap", params={"threshold_hours": 0}, headers=auth_headers(admin)
    )
    assert response.status_code == 200
    assert response.json()["order_ids"] == [placed["id"]]

    order = client.get(f"{API}/orders/{placed['id']}", headers=auth_headers(admin)).json()
    assert order["status"] == "delivered"


def test_admin_delete(client, auth_headers, placed, admin):
    response = client.delete(f"{API}/admin/orders/{placed['id']}", headers=auth_headers(admin))
    assert response.status_code == 204
    assert client.get(f"{API}/orders/{placed['id']}", headers=auth_headers(admin)).status_code == 404


# Tests for websocket streams

def test_order_stream_sends_snapshot_then_updates(
    client, auth_headers, placed, student, vendor
):
    url = f"{API}/ws/orders/{placed['id']}?token={make_token(student)}"
    with client.websocket_connect(url) as ws:
        initial = ws.receive_json()
        assert initial["type"] == "snapshot"
        assert initial["live"] is True
        assert initial["orders"][0]["status"] == "pending"

        client.post(f"{API}/orders/{placed['id']}/advance", headers=auth_headers(vendor))

        update = ws.receive_json()
        assert update["orders"][0]["status"] == "preparing"


def test_vendor_stream_requires_vendor_role(client, student):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"{API}/ws/vendor/orders?token={make_token(student)}") as ws:
            ws.receive_json()
    assert exc.value.code == 1008


def test_order_stream_rejects_other_students(client, placed, other_student):
    url = f"{API}/ws/orders/{placed['id']}?token={make_token(other_student)}"
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(url) as ws:
            ws.receive_json()


def test_public_feed_stream_sees_new_orders(client, auth_headers, student, order_body):
    with client.websocket_connect(f"{API}/ws/feed") as ws:
        assert ws.receive_json()["orders"] == []

        client.post(f"{API}/orders", json=order_body, headers=auth_headers(student))

        update = ws.receive_json()
        assert len(update["orders"]) == 1
