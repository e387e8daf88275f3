# Overview: Pytest coverage for the HTTP surface; status codes and payload shapes.

import pytest

from conftest import admin_headers, checkout_payload
from storefront.extensions import db
from storefront.models import Order, Product
from storefront.services import order_service


def _stock(product_id):
    db.session.expire_all()
    return db.session.get(Product, product_id).stock_qty


class TestOrderRoutes:

    def test_place_bank_transfer_order(self, client, mailer, make_product):
        mug = make_product(price_cents=1000, stock_qty=10)

        response = client.post("/api/orders", json=checkout_payload([(mug.id, None, 2)]))

        assert response.status_code == 201
        data = response.get_json()
        assert data["orderNumber"].startswith("ORD-")
        db.session.expire_all()
        order = db.session.get(Order, data["orderId"])
        assert (order.status, order.total_cents) == ("pending_payment", 8000)
        assert mailer.bank_transfer == [order.id]
        assert _stock(mug.id) == 10

    def test_invalid_body(self, client, db_session):
        response = client.post("/api/orders", json={"items": []})

        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_request"

    def test_fractional_quantity_rejected(self, client, make_product):
        mug = make_product()
        payload = checkout_payload([(mug.id, None, 1)])
        payload["items"][0]["qty"] = 1.5

        response = client.post("/api/orders", json=payload)

        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "items[0].qty"

    def test_out_of_stock(self, client, mailer, make_product):
        mug = make_product(stock_qty=1)

        response = client.post("/api/orders", json=checkout_payload([(mug.id, None, 2)]))

        assert response.status_code == 409
        assert response.get_json()["error"] == "out_of_stock"
        assert db.session.query(Order).count() == 0

    def test_unknown_coupon(self, client, mailer, make_product):
        mug = make_product()

        response = client.post("/api/orders", json=checkout_payload([(mug.id, None, 1)], coupon_code="NOPE"))

        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_coupon"

    def test_get_order_by_email(self, client, mailer, make_product):
        mug = make_product()
        order_id = client.post("/api/orders", json=checkout_payload([(mug.id, None, 1)])).get_json()["orderId"]

        found = client.get(f"/api/orders/{order_id}?email=THANDI@example.co.za")
        hidden = client.get(f"/api/orders/{order_id}?email=someone@else.com")

        assert found.status_code == 200
        assert found.get_json()["order"]["items"][0]["qty"] == 1
        assert hidden.status_code == 404

    def test_get_order_by_user(self, client, mailer, make_product):
        mug = make_product()
        order_id = client.post(
            "/api/orders", json=checkout_payload([(mug.id, None, 1)]), headers={"X-User-Id": "user-1"},
        ).get_json()["orderId"]

        assert client.get(f"/api/orders/{order_id}", headers={"X-User-Id": "user-1"}).status_code == 200
        assert client.get(f"/api/orders/{order_id}", headers={"X-User-Id": "user-2"}).status_code == 404

    def test_user_order_not_readable_by_email(self, client, mailer, make_product):
        mug = make_product()
        order_id = client.post(
            "/api/orders", json=checkout_payload([(mug.id, None, 1)]), headers={"X-User-Id": "user-1"},
        ).get_json()["orderId"]

        response = client.get(f"/api/orders/{order_id}?email=thandi@example.co.za")

        assert response.status_code == 404
        assert response.get_json()["error"] == "order_not_found"

    def test_get_order_storage_failure(self, client, monkeypatch):
        def _boom(order_id, **kwargs):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(order_service, "get_order", _boom)

        response = client.get("/api/orders/1?email=thandi@example.co.za")

        assert response.status_code == 500
        assert response.get_json() == {"error": "order_load_failed",
                                       "details": {"message": "database unavailable"}}


class TestCouponQuoteRoute:

    def test_quote_with_coupon(self, client, make_product, make_coupon):
        mug = make_product(price_cents=1000)
        make_coupon(code="SAVE20", discount_value=20)

        response = client.post("/api/checkout/coupon", json={
            "items": [{"productId": mug.id, "qty": 2}],
            "couponCode": "save20",
            "province": "gauteng",
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data["coupon"] == {"code": "SAVE20", "discountCents": 400}
        assert (data["subtotalCents"], data["shippingCents"], data["totalCents"]) == (2000, 6000, 7600)

    def test_minimum_not_met(self, client, make_product, make_coupon):
        mug = make_product(price_cents=1000)
        make_coupon(code="BIG", min_order_value_cents=50000)

        response = client.post("/api/checkout/coupon", json={
            "items": [{"productId": mug.id, "qty": 1}],
            "couponCode": "BIG",
            "province": "Gauteng",
        })

        assert response.status_code == 400
        assert response.get_json()["error"] == "coupon_not_applicable"


class TestYocoRoutes:

    def test_start_finalize_status(self, client, provider, mailer, make_product):
        mug = make_product(price_cents=1000, stock_qty=10)

        start = client.post("/api/payments/yoco/start", json=checkout_payload([(mug.id, None, 2)]))
        assert start.status_code == 200
        pending_id = start.get_json()["pendingCheckoutId"]
        assert start.get_json()["redirectUrl"] == "https://pay.example/ch_test_1"
        assert provider.calls[0]["amount_cents"] == 8000
        assert db.session.query(Order).count() == 0

        status = client.post("/api/payments/yoco/status", json={"pendingCheckoutId": pending_id})
        assert status.get_json()["status"] == "initiated"
        assert status.get_json()["orderId"] is None

        first = client.post("/api/payments/yoco/finalize", json={"pendingCheckoutId": pending_id})
        second = client.post("/api/payments/yoco/finalize", json={"pendingCheckoutId": pending_id})

        assert first.status_code == 200
        assert first.get_json()["status"] == "completed"
        assert second.get_json() == first.get_json()
        assert _stock(mug.id) == 8
        assert db.session.query(Order).count() == 1

        status = client.post("/api/payments/yoco/status", json={"pendingCheckoutId": pending_id})
        assert status.get_json()["status"] == "completed"
        assert status.get_json()["order"]["status"] == "paid"

    def test_finalize_unknown(self, client, mailer, db_session):
        response = client.post("/api/payments/yoco/finalize",
                               json={"pendingCheckoutId": "00000000-0000-0000-0000-000000000000"})
        assert response.status_code == 404

    def test_provider_failure(self, client, provider, make_product):
        from storefront.integrations import PaymentProviderError
        provider.fail_with = PaymentProviderError("yoco_checkout_create_failed", "HTTP 503")
        mug = make_product()

        response = client.post("/api/payments/yoco/start", json=checkout_payload([(mug.id, None, 1)]))

        assert response.status_code == 502
        assert response.get_json()["error"] == "yoco_checkout_create_failed"

    def test_pay_existing_order(self, client, provider, mailer, make_product):
        mug = make_product()
        headers = {"X-User-Id": "user-1"}
        order_id = client.post("/api/orders", json=checkout_payload([(mug.id, None, 1)]),
                               headers=headers).get_json()["orderId"]

        anonymous = client.post("/api/payments/yoco/pay-order", json={"orderId": order_id})
        response = client.post("/api/payments/yoco/pay-order", json={"orderId": order_id}, headers=headers)

        assert anonymous.status_code == 401
        assert response.status_code == 200
        assert response.get_json()["redirectUrl"] == "https://pay.example/ch_test_1"
        assert provider.calls[0]["metadata"] == {"existingOrderId": order_id}


class TestAdminRoutes:

    def test_token_required(self, client, db_session):
        assert client.post("/api/admin/invoices", json={}).status_code == 401
        wrong = client.post("/api/admin/invoices", json={}, headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401
        assert wrong.get_json() == {"error": "unauthorized"}

    def test_order_status_paid_deducts_stock(self, client, mailer, make_product):
        mug = make_product(stock_qty=10)
        order_id = client.post("/api/orders", json=checkout_payload([(mug.id, None, 3)])).get_json()["orderId"]

        paid = client.patch(f"/api/admin/orders/{order_id}/status", json={"status": "PAID"},
                            headers=admin_headers())
        assert paid.status_code == 200
        assert paid.get_json()["order"]["status"] == "paid"
        assert paid.get_json()["order"]["stock_deducted"] is True
        assert _stock(mug.id) == 7

        back = client.patch(f"/api/admin/orders/{order_id}/status", json={"status": "pending_payment"},
                            headers=admin_headers())
        assert back.status_code == 409
        assert back.get_json()["error"] == "invalid_status_transition"

        cancelled = client.patch(f"/api/admin/orders/{order_id}/status", json={"status": "cancelled"},
                                 headers=admin_headers())
        assert cancelled.status_code == 200
        assert _stock(mug.id) == 10

    def test_invoice_flow(self, client, make_product):
        mug = make_product(price_cents=1500, stock_qty=10)
        headers = admin_headers()

        created = client.post("/api/admin/invoices", json={"customer_snapshot": {"name": "Acme"}}, headers=headers)
        assert created.status_code == 201
        invoice_id = created.get_json()["invoice"]["id"]
        assert created.get_json()["invoice"]["invoice_number"] == "INV-000001"

        added = client.post(f"/api/admin/invoices/{invoice_id}/lines",
                            json={"product_id": mug.id, "qty": 1}, headers=headers)
        assert added.status_code == 201
        assert added.get_json()["invoice"]["total_cents"] == 1500

        issued = client.post(f"/api/admin/invoices/{invoice_id}/issue", headers=headers)
        assert issued.get_json()["invoice"]["status"] == "issued"
        assert _stock(mug.id) == 9

        cancelled = client.post(f"/api/admin/invoices/{invoice_id}/cancel", headers=headers)
        assert cancelled.get_json()["invoice"]["status"] == "cancelled"
        assert cancelled.get_json()["invoice"]["total_cents"] == 1500
        assert _stock(mug.id) == 10

        again = client.post(f"/api/admin/invoices/{invoice_id}/cancel", headers=headers)
        assert again.status_code == 409
        assert again.get_json()["error"] == "invalid_status"

    def test_draft_cancel_rejected(self, client, db_session):
        headers = admin_headers()
        invoice_id = client.post("/api/admin/invoices", json={}, headers=headers).get_json()["invoice"]["id"]

        response = client.post(f"/api/admin/invoices/{invoice_id}/cancel", headers=headers)

        assert response.status_code == 409

    def test_unknown_invoice(self, client, db_session):
        response = client.get("/api/admin/invoices/999", headers=admin_headers())
        assert response.status_code == 404


class TestHealthRoute:

    def test_reports_database_and_integrations(self, client, db_session):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.get_json()
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["integrations"]["webhooks"] is True
        assert data["status"] in ("healthy", "degraded")

    @pytest.mark.parametrize("origin, allowed", [
        ("https://shop.example", True),
        ("https://evil.example", False),
    ])
    def test_cors(self, client, db_session, origin, allowed):
        response = client.get("/api/health", headers={"Origin": origin})
        assert ("Access-Control-Allow-Origin" in response.headers) is allowed


class TestInvoiceCatalogRoute:

    def test_search(self, client, make_product):
        make_product(name="Enamel Mug", stock_qty=3)

        response = client.get("/api/admin/invoice-catalog?q=mug", headers=admin_headers())

        assert response.status_code == 200
        assert [item["title"] for item in response.get_json()["items"]] == ["Enamel Mug"]

    def test_requires_token(self, client, db_session):
        assert client.get("/api/admin/invoice-catalog?q=mug").status_code == 401
