# Overview: Pytest coverage for Yoco webhook verification and event processing.

import base64
import hashlib
import hmac
import json

import pytest

from conftest import WEBHOOK_SECRET
from storefront.extensions import db
from storefront.integrations import verify_yoco_webhook
from storefront.models import Order, Payment, PaymentEvent, PendingCheckout, Product
from storefront.services import checkout_service


def sign(body: bytes, webhook_id="msg_1", timestamp="1700000000", secret=WEBHOOK_SECRET) -> dict:
    key = base64.b64decode(secret.split("_", 1)[1])
    signed = f"{webhook_id}.{timestamp}.".encode() + body
    signature = base64.b64encode(hmac.new(key, signed, hashlib.sha256).digest()).decode()
    return {
        "webhook-id": webhook_id,
        "webhook-timestamp": timestamp,
        "webhook-signature": f"v1,{signature}",
    }


def event(event_id, checkout_id, event_type="payment.succeeded", amount=None):
    payload = {"metadata": {"checkoutId": checkout_id}}
    if amount is not None:
        payload["amount"] = amount
    return {"id": event_id, "type": event_type, "payload": payload}


class TestVerifySignature:

    def test_valid(self):
        body = b'{"id":"evt_1"}'
        assert verify_yoco_webhook(body, sign(body), WEBHOOK_SECRET) is True

    def test_tampered_body(self):
        headers = sign(b'{"id":"evt_1"}')
        assert verify_yoco_webhook(b'{"id":"evt_2"}', headers, WEBHOOK_SECRET) is False

    def test_wrong_secret(self):
        body = b"{}"
        other = "whsec_" + base64.b64encode(b"another-secret").decode()
        assert verify_yoco_webhook(body, sign(body, secret=other), WEBHOOK_SECRET) is False

    def test_any_v1_candidate_may_match(self):
        body = b"{}"
        headers = sign(body)
        headers["webhook-signature"] = "v1,bm90LWl0 " + headers["webhook-signature"]
        assert verify_yoco_webhook(body, headers, WEBHOOK_SECRET) is True

    def test_missing_headers(self):
        assert verify_yoco_webhook(b"{}", {}, WEBHOOK_SECRET) is False

    def test_non_ascii_body(self):
        body = "{\"name\": \"Zoë\"}".encode("utf-8")
        assert verify_yoco_webhook(body, sign(body), WEBHOOK_SECRET) is True


@pytest.fixture
def started(db_session, make_product, make_checkout, provider):
    mug = make_product(price_cents=1000, stock_qty=10)
    pending, hosted = checkout_service.start_card_checkout(make_checkout([(mug.id, None, 2)]), provider=provider)
    return pending.id, hosted.id, mug.id


class TestHandleWebhook:

    def test_succeeded_finalizes_checkout(self, started, mailer):
        pending_id, checkout_id, mug_id = started

        result = checkout_service.handle_yoco_webhook(event("evt_1", checkout_id), mailer=mailer)

        order = db.session.get(Order, result["orderId"])
        assert order.status == "paid"
        assert db.session.get(PendingCheckout, pending_id).status == "completed"
        assert db.session.get(Product, mug_id).stock_qty == 8
        assert db.session.query(PaymentEvent).count() == 1
        assert mailer.paid == [order.id]

    def test_duplicate_event_ignored(self, started, mailer):
        _, checkout_id, _ = started
        checkout_service.handle_yoco_webhook(event("evt_1", checkout_id), mailer=mailer)

        result = checkout_service.handle_yoco_webhook(event("evt_1", checkout_id), mailer=mailer)

        assert result == {"ok": True, "duplicate": True}
        assert db.session.query(Order).count() == 1

    def test_webhook_then_fallback_yield_one_order(self, started):
        pending_id, checkout_id, mug_id = started

        from_webhook = checkout_service.handle_yoco_webhook(event("evt_1", checkout_id))
        from_fallback = checkout_service.finalize_pending_checkout(pending_id)

        assert from_fallback.order_id == from_webhook["orderId"]
        assert db.session.query(Order).count() == 1
        assert db.session.get(Product, mug_id).stock_qty == 8

    def test_fallback_then_webhook_yield_one_order(self, started):
        pending_id, checkout_id, _ = started

        from_fallback = checkout_service.finalize_pending_checkout(pending_id)
        from_webhook = checkout_service.handle_yoco_webhook(event("evt_1", checkout_id))

        assert from_webhook["ok"] is True
        assert db.session.query(Order).count() == 1
        assert db.session.query(Payment).one().order_id == from_fallback.order_id

    def test_unknown_checkout_acknowledged(self, db_session):
        result = checkout_service.handle_yoco_webhook(event("evt_9", "ch_unknown"))

        assert result == {"ok": True}
        assert db.session.query(PaymentEvent).count() == 1

    def test_domain_failure_acknowledged(self, started):
        """A paid checkout that can no longer be fulfilled is logged, not retried forever."""
        _, checkout_id, mug_id = started
        mug = db.session.get(Product, mug_id)
        mug.stock_qty = 0
        db.session.commit()

        result = checkout_service.handle_yoco_webhook(event("evt_1", checkout_id))

        assert result["ignored"] == "out_of_stock"
        assert db.session.query(Order).count() == 0

    def test_event_without_id_rejected(self, db_session):
        with pytest.raises(checkout_service.CheckoutError) as exc:
            checkout_service.handle_yoco_webhook({"type": "payment.succeeded"})
        assert exc.value.code == "invalid_event"


class TestPayOrderWebhook:

    @pytest.fixture
    def pay_order(self, db_session, make_product, make_checkout, provider):
        mug = make_product(price_cents=1000, stock_qty=10)
        order = checkout_service.place_bank_transfer_order(make_checkout([(mug.id, None, 2)]), user_id="user-1")
        hosted = checkout_service.start_order_payment(order.id, user_id="user-1", provider=provider)
        return order.id, hosted.id, mug.id

    def test_succeeded_marks_order_paid(self, pay_order, mailer):
        order_id, checkout_id, mug_id = pay_order

        checkout_service.handle_yoco_webhook(event("evt_1", checkout_id, amount=8000), mailer=mailer)

        order = db.session.get(Order, order_id)
        assert order.status == "paid"
        assert order.stock_deducted is True
        assert db.session.get(Product, mug_id).stock_qty == 8
        assert db.session.query(Payment).one().status == "succeeded"
        assert mailer.paid == [order_id]

    def test_failed_marks_payment_failed(self, pay_order):
        order_id, checkout_id, _ = pay_order

        checkout_service.handle_yoco_webhook(event("evt_1", checkout_id, event_type="payment.failed"))

        assert db.session.query(Payment).one().status == "failed"
        assert db.session.get(Order, order_id).status == "pending_payment"

    def test_failed_after_success_keeps_success(self, pay_order):
        _, checkout_id, _ = pay_order

        checkout_service.handle_yoco_webhook(event("evt_1", checkout_id))
        checkout_service.handle_yoco_webhook(event("evt_2", checkout_id, event_type="payment.failed"))

        assert db.session.query(Payment).one().status == "succeeded"


class TestWebhookRoute:

    def _post(self, client, payload, headers=None):
        body = json.dumps(payload).encode()
        return client.post("/api/payments/yoco/webhook", data=body,
                           headers=headers if headers is not None else sign(body),
                           content_type="application/json")

    def test_valid_signature(self, client, started, mailer):
        _, checkout_id, _ = started

        response = self._post(client, event("evt_1", checkout_id))

        assert response.status_code == 200
        assert response.get_json()["ok"] is True
        db.session.expire_all()
        assert db.session.query(Order).count() == 1

    def test_invalid_signature(self, client, db_session):
        response = self._post(client, event("evt_1", "ch_x"), headers=sign(b"something else"))

        assert response.status_code == 403
        assert response.get_json() == {"error": "invalid_signature"}

    def test_missing_secret(self, app, client, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "YOCO_WEBHOOK_SECRET", None)

        response = self._post(client, event("evt_1", "ch_x"))

        assert response.status_code == 500
        assert response.get_json() == {"error": "missing_webhook_secret"}
