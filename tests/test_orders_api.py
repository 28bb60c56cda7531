"""Order endpoints: checkout, ownership, admin status changes and tracking."""

import pytest

from config import settings
from conftest import auth_headers, make_product, stock_of
from models.log import Log

ADDRESS = {"street": "12 Farm Lane", "city": "Pune", "state": "MH", "zipCode": "411001"}


def _payload(lines, total=50.0, **overrides):
    body = {
        "items": [{"productId": pid, "quantity": qty} for pid, qty in lines],
        "totalAmount": total,
        "shippingAddress": ADDRESS,
        "paymentMethod": "card",
    }
    body.update(overrides)
    return body


def _checkout(client, user, lines, **overrides):
    return client.post("/api/orders/create", json=_payload(lines, **overrides), headers=auth_headers(user))


class TestCreateOrder:

    def test_created_order_shape(self, client, db, alice):
        p = make_product(db, name="A2 Milk", price=5.0, stock=4)
        headers = auth_headers(alice)
        client.post("/api/cart/add", json={"productId": p.id, "quantity": 2}, headers=headers)

        resp = _checkout(client, alice, [(p.id, 2)], total=10.0)

        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Order created successfully"
        order = body["data"]
        assert order["ownerId"] == f"user:{alice.id}"
        assert order["userId"] == alice.id
        assert order["status"] == "pending"
        assert order["isPaid"] is False
        assert order["isDelivered"] is False
        assert order["totalAmount"] == 10.0
        assert order["paymentMethod"] == "card"
        assert order["shippingAddress"] == {
            "street": "12 Farm Lane", "city": "Pune", "state": "MH", "zipCode": "411001", "country": "India",
        }
        assert order["items"] == [{
            "productId": p.id, "source": "local", "name": "A2 Milk", "quantity": 2, "price": 5.0,
            "image": "/images/p.png",
        }]
        assert "paidAt" not in order

        assert stock_of(db, p.id) == 2
        assert client.get("/api/cart", headers=headers).json()["data"]["items"] == []

    def test_records_audit_event(self, client, db, alice):
        p = make_product(db)
        order_id = _checkout(client, alice, [(p.id, 1)]).json()["data"]["id"]
        log = db.query(Log).filter(Log.action == "ORDER_CREATED").one()
        assert log.user_id == alice.id
        assert log.meta["order_id"] == order_id

    def test_accepts_legacy_field_names(self, client, db, alice):
        p = make_product(db)
        body = {
            "products": [{"product": str(p.id), "quantity": 1}],
            "totalAmount": 10,
            "address": {"address": "1 Main", "city": "Pune", "state": "MH", "pincode": 411001, "country": "IN"},
            "paymentMethod": "upi",
        }
        resp = client.post("/api/orders/create", json=body, headers=auth_headers(alice))
        assert resp.status_code == 201
        address = resp.json()["data"]["shippingAddress"]
        assert address == {"street": "1 Main", "city": "Pune", "state": "MH", "zipCode": "411001", "country": "IN"}

    def test_external_lines_pass_through(self, client, db, alice):
        body = _payload([], total=9.0)
        body["items"] = [{"productId": "off-737628064502", "quantity": 1, "name": "Almond Butter", "price": 9.0}]
        resp = client.post("/api/orders/create", json=body, headers=auth_headers(alice))
        assert resp.status_code == 201
        item = resp.json()["data"]["items"][0]
        assert item["productId"] == "off-737628064502"
        assert item["source"] == "external"
        assert item["name"] == "Almond Butter"

    def test_validation_errors_are_listed(self, client, alice):
        resp = client.post("/api/orders/create", json={}, headers=auth_headers(alice))
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "Validation error"
        assert body["errors"] == [
            "Order must contain at least one product",
            "Valid total amount is required",
            "Complete shipping address is required",
            "Payment method is required",
        ]

    def test_insufficient_stock_is_409_and_changes_nothing(self, client, db, alice):
        a = make_product(db, stock=5)
        b = make_product(db, name="Saffron", stock=1)

        resp = _checkout(client, alice, [(a.id, 1), (b.id, 2)])

        assert resp.status_code == 409
        assert resp.json()["message"] == "Insufficient stock for Saffron"
        assert stock_of(db, a.id) == 5
        assert stock_of(db, b.id) == 1

    def test_negative_declared_price_is_400(self, client, db, alice):
        body = _payload([], total=5.0)
        body["items"] = [{"productId": "ext-1", "quantity": 1, "name": "Gift Card", "price": -5}]
        resp = client.post("/api/orders/create", json=body, headers=auth_headers(alice))
        assert resp.status_code == 400
        errors = resp.json()["errors"]
        assert len(errors) == 1
        assert errors[0].startswith("items.0.price")

    def test_audit_failure_still_returns_the_order(self, client, db, alice, monkeypatch):
        def unavailable(*args, **kwargs):
            raise RuntimeError("logs table locked")

        monkeypatch.setattr("utils.audit.write_log", unavailable)
        p = make_product(db, stock=3)

        resp = _checkout(client, alice, [(p.id, 1)])

        assert resp.status_code == 201
        order_id = resp.json()["data"]["id"]
        assert client.get(f"/api/orders/{order_id}", headers=auth_headers(alice)).status_code == 200
        assert stock_of(db, p.id) == 2
        assert db.query(Log).count() == 0

    def test_requires_login(self, client, db):
        p = make_product(db)
        resp = client.post("/api/orders/create", json=_payload([(p.id, 1)]))
        assert resp.status_code == 401


class TestReadOrders:

    def test_my_orders_are_newest_first_and_private(self, client, db, alice, bob):
        p = make_product(db, stock=10)
        first = _checkout(client, alice, [(p.id, 1)]).json()["data"]["id"]
        second = _checkout(client, alice, [(p.id, 1)]).json()["data"]["id"]
        _checkout(client, bob, [(p.id, 1)])

        data = client.get("/api/orders/my", headers=auth_headers(alice)).json()["data"]

        assert [o["id"] for o in data] == [second, first]

    def test_detail_for_owner_and_admin_only(self, client, db, alice, bob, admin):
        p = make_product(db)
        order_id = _checkout(client, alice, [(p.id, 1)]).json()["data"]["id"]

        assert client.get(f"/api/orders/{order_id}", headers=auth_headers(alice)).status_code == 200
        assert client.get(f"/api/orders/{order_id}", headers=auth_headers(admin)).status_code == 200
        resp = client.get(f"/api/orders/{order_id}", headers=auth_headers(bob))
        assert resp.status_code == 403
        assert resp.json()["message"] == "Not authorized to view this order"

    def test_missing_order_is_404(self, client, alice):
        resp = client.get("/api/orders/9999", headers=auth_headers(alice))
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "message": "Order not found"}

    def test_listing_all_orders_is_admin_only(self, client, db, alice, admin):
        p = make_product(db, stock=10)
        first = _checkout(client, alice, [(p.id, 1)]).json()["data"]["id"]
        second = _checkout(client, alice, [(p.id, 1)]).json()["data"]["id"]
        client.put(f"/api/orders/{second}/status", json={"status": "shipped"}, headers=auth_headers(admin))

        assert client.get("/api/orders", headers=auth_headers(alice)).status_code == 403
        everything = client.get("/api/orders", headers=auth_headers(admin)).json()["data"]
        assert {o["id"] for o in everything} == {first, second}
        shipped = client.get("/api/orders?status=shipped", headers=auth_headers(admin)).json()["data"]
        assert [o["id"] for o in shipped] == [second]

    def test_tracking(self, client, db, alice, admin):
        p = make_product(db)
        order_id = _checkout(client, alice, [(p.id, 1)]).json()["data"]["id"]
        client.put(f"/api/orders/{order_id}/deliver", headers=auth_headers(admin))

        data = client.get(f"/api/orders/{order_id}/track", headers=auth_headers(alice)).json()["data"]

        assert data["orderId"] == order_id
        assert data["status"] == "delivered"
        assert [step["completed"] for step in data["timeline"]] == [True, True, True]
        assert data["timeline"][2]["date"] is not None


class TestOrderLifecycle:

    @pytest.fixture()
    def order_id(self, client, db, alice):
        p = make_product(db, stock=5)
        return _checkout(client, alice, [(p.id, 2)]).json()["data"]["id"]

    def test_admin_changes_status(self, client, db, admin, order_id):
        resp = client.put(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "shipped"
        log = db.query(Log).filter(Log.action == "ORDER_STATUS_CHANGE").one()
        assert log.meta == {"order_id": order_id, "old": "pending", "new": "shipped"}

    def test_status_change_is_admin_only(self, client, alice, order_id):
        resp = client.put(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=auth_headers(alice))
        assert resp.status_code == 403

    def test_unknown_status_is_400(self, client, admin, order_id):
        resp = client.put(f"/api/orders/{order_id}/status", json={"status": "lost"}, headers=auth_headers(admin))
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid status"

    def test_transitions_enforced_when_configured(self, client, admin, order_id, monkeypatch):
        monkeypatch.setattr(settings, "ENFORCE_STATUS_TRANSITIONS", True)
        headers = auth_headers(admin)
        client.put(f"/api/orders/{order_id}/status", json={"status": "cancelled"}, headers=headers)
        resp = client.put(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=headers)
        assert resp.status_code == 400

    def test_cancel_restocks_when_configured(self, client, db, admin, order_id, monkeypatch):
        monkeypatch.setattr(settings, "RESTOCK_ON_CANCEL", True)
        detail = client.get(f"/api/orders/{order_id}", headers=auth_headers(admin)).json()["data"]
        pid = detail["items"][0]["productId"]

        client.put(f"/api/orders/{order_id}/status", json={"status": "cancelled"}, headers=auth_headers(admin))

        assert stock_of(db, pid) == 5

    def test_deliver_is_idempotent(self, client, admin, order_id):
        headers = auth_headers(admin)
        first = client.put(f"/api/orders/{order_id}/deliver", headers=headers).json()["data"]
        second = client.put(f"/api/orders/{order_id}/deliver", headers=headers).json()["data"]
        assert first["isDelivered"] is True
        assert second["deliveredAt"] == first["deliveredAt"]

    def test_owner_marks_paid(self, client, alice, order_id):
        payment = {"id": "PAY-9", "status": "COMPLETED", "update_time": "2025-05-01T10:00:00Z",
                   "payer": {"email_address": "alice@example.com"}}
        resp = client.put(f"/api/orders/{order_id}/pay", json=payment, headers=auth_headers(alice))
        data = resp.json()["data"]
        assert data["isPaid"] is True
        assert data["paidAt"] is not None
        assert data["paymentResult"] == {
            "id": "PAY-9", "status": "COMPLETED", "updateTime": "2025-05-01T10:00:00Z",
            "emailAddress": "alice@example.com",
        }

    def test_other_users_cannot_pay(self, client, bob, order_id):
        resp = client.put(f"/api/orders/{order_id}/pay", json={"id": "PAY-1"}, headers=auth_headers(bob))
        assert resp.status_code == 403
