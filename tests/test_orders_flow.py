import asyncio
import json
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError

from qrtruck.services.orders import OrderAlreadyExists, create_order_from_payment, generate_order_number


def test_order_number_format():
    number = generate_order_number(now_ms=36 ** 3)
    prefix, stamp, suffix = number.split("-")
    assert prefix == "ORD"
    assert stamp == "1000"
    assert len(suffix) == 4 and suffix.isalnum() and suffix.upper() == suffix


def test_create_intent_prices_from_menu(client, truck, checkout):
    intent = checkout(truck)

    assert intent["payment_intent_id"].startswith("pi_mock_")
    assert intent["order_number"].startswith("ORD-")
    assert intent["breakdown"] == {
        "subtotal": 15.5,
        "tax": 2.02,
        "tax_rate": 0.13,
        "platform_fee": 0.72,
        "total": 18.24,
        "fee_percentage": 4.65,
        "merchant_payout": 17.52,
    }

    # Nothing is written before payment
    resp = client.get("/api/orders", params={"order_number": intent["order_number"]})
    assert resp.json() == {"total": 0, "orders": []}


def test_duplicate_lines_are_merged(client, truck):
    taco = truck["menu"][0]["id"]
    resp = client.post(
        "/api/payment/create-intent",
        json={
            "truck_id": truck["id"],
            "items": [{"menu_item_id": taco, "quantity": 1}, {"menu_item_id": taco, "quantity": 2}],
        },
    )
    assert resp.status_code == 200
    assert resp.json()["breakdown"]["subtotal"] == 19.5


def test_create_intent_rejects_unknown_items(client, truck):
    resp = client.post(
        "/api/payment/create-intent",
        json={"truck_id": truck["id"], "items": [{"menu_item_id": "nope", "quantity": 1}]},
    )
    assert resp.status_code == 400
    assert "nope" in resp.json()["detail"]


def test_create_intent_requires_open_truck(client, truck):
    resp = client.patch(
        f"/api/trucks/{truck['id']}/status",
        json={"shop_status": "PAUSED"},
        headers=truck["owner"]["headers"],
    )
    assert resp.status_code == 200

    resp = client.post(
        "/api/payment/create-intent",
        json={"truck_id": truck["id"], "items": [{"menu_item_id": truck["menu"][0]["id"], "quantity": 1}]},
    )
    assert resp.status_code == 400


def test_create_intent_unknown_truck(client):
    resp = client.post(
        "/api/payment/create-intent",
        json={"truck_id": "missing", "items": [{"menu_item_id": "x", "quantity": 1}]},
    )
    assert resp.status_code == 404


def test_create_intent_validates_quantities(client, truck):
    resp = client.post(
        "/api/payment/create-intent",
        json={"truck_id": truck["id"], "items": [{"menu_item_id": truck["menu"][0]["id"], "quantity": 0}]},
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "Validation Error"


def test_webhook_creates_pending_order(client, truck, checkout, simulate_payment):
    intent = checkout(truck, [2, 1, 1])
    body = simulate_payment(intent)

    order = body["order"]
    assert order["order_number"] == intent["order_number"]
    assert order["status"] == "PENDING"
    assert order["stripe_status"] == "succeeded"
    assert order["total"] == intent["breakdown"]["total"]
    assert len(order["pickup_code"]) == 4
    assert {i["name"]: i["quantity"] for i in order["items"]} == {
        "Fish Taco": 2,
        "Carne Asada Taco": 1,
        "Horchata": 1,
    }
    assert order["customer_name"] == "Pat"

    # Public lookup by number, as the success page does
    resp = client.get("/api/orders", params={"order_number": intent["order_number"]})
    assert resp.json()["orders"][0]["id"] == order["id"]

    detail = client.get(f"/api/orders/{order['id']}").json()
    assert detail["truck"]["name"] == "Taco Loco"


def test_fallback_creates_order_when_webhook_is_lost(client, truck, checkout, simulate_payment):
    intent = checkout(truck)
    assert simulate_payment(intent, deliver_webhook=False) == {"received": False, "order": None}

    payload = {"payment_intent_id": intent["payment_intent_id"], "order_number": intent["order_number"]}
    resp = client.post("/api/orders/create-from-payment", json=payload)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["message"] == "Order created from payment intent"
    order_id = body["order"]["id"]

    # A second call returns the same order
    resp = client.post("/api/orders/create-from-payment", json=payload)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Order already exists"
    assert resp.json()["order"]["id"] == order_id


def test_webhook_after_fallback_is_idempotent(client, truck, checkout, simulate_payment):
    intent = checkout(truck)
    simulate_payment(intent, deliver_webhook=False)
    payload = {"payment_intent_id": intent["payment_intent_id"], "order_number": intent["order_number"]}
    created = client.post("/api/orders/create-from-payment", json=payload).json()["order"]

    # The late webhook finds the existing order
    body = simulate_payment(intent)
    assert body["order"]["id"] == created["id"]

    resp = client.get("/api/orders", params={"order_number": intent["order_number"]})
    assert resp.json()["total"] == 1


def test_fallback_rejects_unpaid_intent(client, truck, checkout):
    intent = checkout(truck)
    resp = client.post(
        "/api/orders/create-from-payment",
        json={"payment_intent_id": intent["payment_intent_id"], "order_number": intent["order_number"]},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Payment not succeeded. Status: requires_payment_method"


def test_fallback_unknown_intent(client):
    resp = client.post(
        "/api/orders/create-from-payment",
        json={"payment_intent_id": "pi_missing", "order_number": "ORD-X-0000"},
    )
    assert resp.status_code == 404


def test_fallback_order_number_must_match(client, truck, checkout, simulate_payment):
    intent = checkout(truck)
    simulate_payment(intent, deliver_webhook=False)
    resp = client.post(
        "/api/orders/create-from-payment",
        json={"payment_intent_id": intent["payment_intent_id"], "order_number": "ORD-OTHER-0000"},
    )
    assert resp.status_code == 400


def test_stripe_webhook_endpoint(client, truck, checkout, simulate_payment):
    from qrtruck.services.payment import get_payment_service

    intent = checkout(truck)
    simulate_payment(intent, deliver_webhook=False)
    event = get_payment_service().build_event("payment_intent.succeeded", intent["payment_intent_id"])

    resp = client.post("/api/webhooks/stripe", content=json.dumps(event))
    assert resp.status_code == 400

    for _ in range(2):
        resp = client.post(
            "/api/webhooks/stripe",
            content=json.dumps(event),
            headers={"stripe-signature": "t=1,v1=mock"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"received": True}

    resp = client.get("/api/orders", params={"order_number": intent["order_number"]})
    assert resp.json()["total"] == 1


def test_stripe_webhook_rejects_garbage(client):
    resp = client.post(
        "/api/webhooks/stripe",
        content=b"not json",
        headers={"stripe-signature": "t=1,v1=mock"},
    )
    assert resp.status_code == 400


def test_simulation_unknown_intent(client):
    resp = client.post("/webhook/simulation/payment-succeeded", json={"payment_intent_id": "pi_nope"})
    assert resp.status_code == 404


def test_owner_manages_order_status(client, paid_order, other_owner):
    owner = paid_order["truck"]["owner"]
    url = f"/api/orders/{paid_order['id']}"

    resp = client.patch(url, json={"status": "PREPARING"}, headers=other_owner["headers"])
    assert resp.status_code == 403

    resp = client.patch(url, json={"status": "PREPARING"}, headers=owner["headers"])
    assert resp.status_code == 200
    assert resp.json()["completed_at"] is None

    resp = client.patch(url, json={"status": "COMPLETED"}, headers=owner["headers"])
    assert resp.json()["status"] == "COMPLETED"
    assert resp.json()["completed_at"] is not None

    resp = client.patch(url, json={"status": "EATEN"}, headers=owner["headers"])
    assert resp.status_code == 400


def test_listing_orders(client, paid_order, other_owner, admin):
    truck_id = paid_order["truck"]["id"]
    owner = paid_order["truck"]["owner"]

    assert client.get("/api/orders", params={"truck_id": truck_id}).status_code == 401
    assert client.get(
        "/api/orders", params={"truck_id": truck_id}, headers=other_owner["headers"]
    ).status_code == 403
    assert client.get("/api/orders", headers=owner["headers"]).status_code == 403

    resp = client.get(
        "/api/orders",
        params={"truck_id": truck_id, "status": "pending,preparing"},
        headers=owner["headers"],
    )
    assert resp.status_code == 200
    assert [o["id"] for o in resp.json()["orders"]] == [paid_order["id"]]

    resp = client.get(
        "/api/orders", params={"truck_id": truck_id, "status": "READY"}, headers=owner["headers"]
    )
    assert resp.json()["total"] == 0

    resp = client.get(
        "/api/orders", params={"truck_id": truck_id, "status": "bogus"}, headers=owner["headers"]
    )
    assert resp.status_code == 400

    resp = client.get("/api/orders", headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.json()["total"] >= 1


@pytest.mark.parametrize("path", ["/api/orders/missing"])
def test_unknown_order(client, path):
    assert client.get(path).status_code == 404


def test_order_page(client, paid_order):
    resp = client.get(f"/order/{paid_order['id']}")
    assert resp.status_code == 200
    assert paid_order["pickup_code"] in resp.text
    assert paid_order["order_number"] in resp.text

    assert client.get("/order/missing").status_code == 404


def _paid_intent(truck, checkout, simulate_payment):
    """A succeeded mock intent whose webhook never arrived."""
    from qrtruck.services.payment import get_payment_service

    intent = checkout(truck)
    simulate_payment(intent, deliver_webhook=False)
    info = asyncio.run(get_payment_service().retrieve_payment_intent(intent["payment_intent_id"]))
    assert info.succeeded
    return intent, info


def _store_order(info, commit_error=None):
    from qrtruck.database import async_session_maker

    async def _run():
        async with async_session_maker() as db:
            if commit_error is not None:
                async def failing_commit():
                    raise commit_error

                db.commit = failing_commit
            return await create_order_from_payment(db, info)

    return asyncio.run(_run())


def _foreign_key_error():
    return IntegrityError("INSERT INTO orders", {}, Exception("FOREIGN KEY constraint failed"))


def test_second_insert_for_same_payment_is_a_duplicate(truck, checkout, simulate_payment):
    intent, info = _paid_intent(truck, checkout, simulate_payment)

    order = _store_order(info)
    assert order.order_number == intent["order_number"]

    with pytest.raises(OrderAlreadyExists) as excinfo:
        _store_order(info)
    assert excinfo.value.order_number == intent["order_number"]


def test_failed_insert_is_not_reported_as_duplicate(client, truck, checkout, simulate_payment):
    intent, info = _paid_intent(truck, checkout, simulate_payment)

    with pytest.raises(IntegrityError):
        _store_order(info, commit_error=_foreign_key_error())

    resp = client.get("/api/orders", params={"order_number": intent["order_number"]})
    assert resp.json()["total"] == 0


def test_fallback_insert_collision_returns_409(client, truck, checkout, simulate_payment, monkeypatch):
    from qrtruck.routes import orders as order_routes

    intent, _ = _paid_intent(truck, checkout, simulate_payment)
    payload = {"payment_intent_id": intent["payment_intent_id"], "order_number": intent["order_number"]}
    assert client.post("/api/orders/create-from-payment", json=payload).status_code == 200

    # The webhook's insert lands between the existence check and our insert
    async def not_yet_visible(db, order_number):
        return None

    monkeypatch.setattr(order_routes, "get_order_by_number", not_yet_visible)

    resp = client.post("/api/orders/create-from-payment", json=payload)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Order already exists"


def test_webhook_store_failure_returns_500_so_stripe_retries(client, truck, checkout, simulate_payment, monkeypatch):
    from sqlalchemy.ext.asyncio import AsyncSession

    from qrtruck.services.payment import get_payment_service

    intent, _ = _paid_intent(truck, checkout, simulate_payment)
    event = get_payment_service().build_event("payment_intent.succeeded", intent["payment_intent_id"])
    def deliver():
        return client.post(
            "/api/webhooks/stripe",
            content=json.dumps(event),
            headers={"stripe-signature": "t=1,v1=mock"},
        )

    async def failing_commit(self):
        raise _foreign_key_error()

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)
    resp = deliver()
    assert resp.status_code == 500
    monkeypatch.undo()

    lookup = client.get("/api/orders", params={"order_number": intent["order_number"]})
    assert lookup.json()["total"] == 0

    # Redelivery stores the order
    assert deliver().status_code == 200
    lookup = client.get("/api/orders", params={"order_number": intent["order_number"]})
    assert lookup.json()["total"] == 1


def test_simulation_is_refused_outside_development(client, truck, checkout, monkeypatch):
    from qrtruck.routes import payments

    intent = checkout(truck)
    monkeypatch.setattr(payments, "settings", SimpleNamespace(is_development=False))

    resp = client.post(
        "/webhook/simulation/payment-succeeded",
        json={"payment_intent_id": intent["payment_intent_id"]},
    )
    assert resp.status_code == 403
