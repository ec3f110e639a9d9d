import pytest

from qrtruck.services.pickup import generate_pickup_code, validate_pickup_code_format


def test_generated_codes_are_four_ascii_digits():
    codes = [generate_pickup_code() for _ in range(10_000)]
    assert all(validate_pickup_code_format(c) for c in codes)
    # Leading zeros are kept
    assert all(len(c) == 4 for c in codes)
    assert len(set(codes)) > 5000


@pytest.mark.parametrize("code", ["123", "12345", "12a4", " 123", "", None, 1234, "١٢٣٤"])
def test_invalid_code_formats(code):
    assert validate_pickup_code_format(code) is False


def _wrong_code(code: str) -> str:
    return f"{(int(code) + 1) % 10000:04d}"


def test_pickup_confirm_flow(client, paid_order):
    order_id = paid_order["id"]
    code = paid_order["pickup_code"]

    resp = client.post(
        "/api/pickup/confirm",
        json={"order_id": order_id, "pickup_code": _wrong_code(code)},
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Invalid pickup code"

    resp = client.post(
        "/api/pickup/confirm",
        json={"order_id": order_id, "pickup_code": code, "staff_name": "Jo"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["order_number"] == paid_order["order_number"]

    order = client.get(f"/api/orders/{order_id}").json()
    assert order["status"] == "PICKED_UP"
    assert order["completed_at"] is not None

    # Second confirmation fails whatever code is sent
    for attempt in (code, _wrong_code(code)):
        resp = client.post("/api/pickup/confirm", json={"order_id": order_id, "pickup_code": attempt})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Order already picked up"


def test_pickup_rejects_bad_format_before_lookup(client):
    resp = client.post("/api/pickup/confirm", json={"order_id": "missing", "pickup_code": "12a4"})
    assert resp.status_code == 400
    assert "4 digits" in resp.json()["detail"]


def test_pickup_unknown_order(client):
    resp = client.post("/api/pickup/confirm", json={"order_id": "missing", "pickup_code": "1234"})
    assert resp.status_code == 404


def test_cancelled_order_cannot_be_picked_up(client, paid_order):
    owner = paid_order["truck"]["owner"]
    resp = client.patch(
        f"/api/orders/{paid_order['id']}",
        json={"status": "CANCELLED"},
        headers=owner["headers"],
    )
    assert resp.status_code == 200

    resp = client.post(
        "/api/pickup/confirm",
        json={"order_id": paid_order["id"], "pickup_code": paid_order["pickup_code"]},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Order was cancelled"
