def test_admin_stats_requires_admin(client, owner):
    assert client.get("/api/admin/stats").status_code == 401
    assert client.get("/api/admin/stats", headers=owner["headers"]).status_code == 403


def test_admin_stats(client, admin, paid_order):
    resp = client.get("/api/admin/stats", headers=admin["headers"])
    assert resp.status_code == 200
    stats = resp.json()

    assert stats["total_trucks"] >= 1
    assert stats["total_orders"] >= 1
    assert stats["platform_revenue"] >= paid_order["platform_fee"]
    ontario = next(p for p in stats["by_province"] if p["province"] == "ON")
    assert ontario["tax_label"] == "HST"
    assert paid_order["id"] in [o["id"] for o in stats["recent_orders"]]


def test_soft_delete_clears_orders_only(client, admin, paid_order):
    truck = paid_order["truck"]
    # Picked-up orders have pickup events that go too
    client.post(
        "/api/pickup/confirm",
        json={"order_id": paid_order["id"], "pickup_code": paid_order["pickup_code"]},
    )

    resp = client.post(f"/api/admin/trucks/{truck['id']}/soft-delete", headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.json()["orders_deleted"] == 1

    assert client.get(f"/api/orders/{paid_order['id']}").status_code == 404
    detail = client.get(f"/api/trucks/{truck['id']}")
    assert detail.status_code == 200
    assert len(detail.json()["menu_items"]) == 3


def test_admin_deletes_truck(client, admin, paid_order, owner):
    truck = paid_order["truck"]
    assert client.delete(f"/api/admin/trucks/{truck['id']}", headers=owner["headers"]).status_code == 403

    resp = client.delete(f"/api/admin/trucks/{truck['id']}", headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.json()["orders_deleted"] == 1

    assert client.get(f"/api/trucks/check/{truck['id']}").status_code == 404
    assert client.get("/api/menu", params={"truck_id": truck["id"]}).json() == []
    assert client.delete(f"/api/admin/trucks/{truck['id']}", headers=admin["headers"]).status_code == 404


def test_admin_deletes_merchant(client, admin, truck):
    owner = truck["owner"]

    resp = client.delete(f"/api/merchants/{owner['user']['id']}", headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.json()["trucks_deleted"] == 1

    # The token now points at a deleted account
    assert client.get("/api/auth/me", headers=owner["headers"]).status_code == 401
    assert client.get(f"/api/trucks/check/{truck['id']}").status_code == 404


def test_admin_accounts_are_protected(client, admin):
    resp = client.delete(f"/api/merchants/{admin['user']['id']}", headers=admin["headers"])
    assert resp.status_code == 400
    assert client.delete("/api/merchants/missing", headers=admin["headers"]).status_code == 404


def test_admin_can_manage_any_truck(client, admin, truck):
    resp = client.get(f"/api/trucks/{truck['id']}/stats", headers=admin["headers"])
    assert resp.status_code == 200

    # Shop status stays with the owner
    resp = client.patch(
        f"/api/trucks/{truck['id']}/status", json={"shop_status": "CLOSED"}, headers=admin["headers"]
    )
    assert resp.status_code == 403
