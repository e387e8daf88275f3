# Overview: Flask API routes for card payments through Yoco hosted checkout.

"""
Payment Processing API Routes

FLOW (card):
1. POST /yoco/start      cart -> PendingCheckout + hosted checkout redirect
2. customer pays on the provider's page
3. POST /yoco/webhook    provider notifies payment.succeeded
   POST /yoco/finalize   browser fallback after the redirect back
   Either (or both, concurrently) finalizes the PendingCheckout into
   exactly one paid Order.
4. POST /yoco/status     where a PendingCheckout stands

POST /yoco/pay-order pays an existing pending_payment order by card; the
webhook settles it.

SECURITY:
- Webhook bodies are only trusted after the signature check
- pay-order requires a signed-in customer (X-User-Id) who owns the order
"""

import json

from flask import Blueprint, request, jsonify, current_app

from ..decorators import current_user_id
from ..errors import DomainError
from ..extensions import get_mailer, get_payment_provider
from ..integrations.yoco import verify_yoco_webhook
from ..services import checkout_service
from ..validation import ValidationError, coerce_int, parse_checkout_request, parse_pending_checkout_id


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _internal_error(code: str, e: Exception):
    return jsonify({"error": code, "details": {"message": str(e)}}), 500


# =============================================================================
# HOSTED CHECKOUT
# =============================================================================

@payments_bp.post("/yoco/start")
def start_checkout_route():
    """
    Start a card checkout.

    Request body: same as POST /api/orders.

    Returns:
        200: {redirectUrl, pendingCheckoutId}
        400/409: cart, coupon or stock errors
        502: provider failure
    """
    try:
        checkout = parse_checkout_request(request.get_json(silent=True))
        pending, hosted = checkout_service.start_card_checkout(
            checkout, provider=get_payment_provider(), user_id=current_user_id(),
        )
        return jsonify({"redirectUrl": hosted.redirect_url, "pendingCheckoutId": pending.id}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to start card checkout")
        return _internal_error("checkout_start_failed", e)


@payments_bp.post("/yoco/finalize")
def finalize_checkout_route():
    """
    Fallback finalize after the redirect back. Safe to call repeatedly.

    Request body: {"pendingCheckoutId": "..."}

    Returns {status, orderId}
    """
    try:
        pending_checkout_id = parse_pending_checkout_id(request.get_json(silent=True))
        result = checkout_service.finalize_pending_checkout(pending_checkout_id, mailer=get_mailer())
        return jsonify(result.to_dict()), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to finalize checkout")
        return _internal_error("finalize_failed", e)


@payments_bp.post("/yoco/status")
def checkout_status_route():
    try:
        pending_checkout_id = parse_pending_checkout_id(request.get_json(silent=True))
        return jsonify(checkout_service.checkout_status(pending_checkout_id)), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to load checkout status")
        return _internal_error("status_failed", e)


@payments_bp.post("/yoco/pay-order")
def pay_order_route():
    """
    Pay an existing pending_payment order by card.

    Request body: {"orderId": 12}

    Returns:
        200: {redirectUrl}
        401: no signed-in customer
        404: order not found / not owned
        400: order_already_paid_or_not_pending
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("body must be a JSON object")
        order_id = coerce_int(data.get("orderId"), "orderId", minimum=1)
        hosted = checkout_service.start_order_payment(
            order_id, user_id=current_user_id(), provider=get_payment_provider(),
        )
        return jsonify({"redirectUrl": hosted.redirect_url}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to start order payment")
        return _internal_error("pay_order_failed", e)


# =============================================================================
# WEBHOOK
# =============================================================================

@payments_bp.post("/yoco/webhook")
def yoco_webhook_route():
    """
    Yoco webhook receiver.

    Returns:
        200: {ok: true} (also for duplicates and events that could not be applied)
        400: invalid JSON / event without id
        403: invalid_signature
        500: missing_webhook_secret, or a storage failure (the provider retries)
    """
    secret = current_app.config.get("YOCO_WEBHOOK_SECRET")
    if not secret:
        current_app.logger.error("YOCO_WEBHOOK_SECRET is not configured")
        return jsonify({"error": "missing_webhook_secret"}), 500

    raw_body = request.get_data()
    if not verify_yoco_webhook(raw_body, request.headers, secret):
        current_app.logger.warning("Rejected webhook with invalid signature")
        return jsonify({"error": "invalid_signature"}), 403

    try:
        event = json.loads(raw_body)
    except ValueError:
        return jsonify({"error": "invalid_json"}), 400
    if not isinstance(event, dict):
        return jsonify({"error": "invalid_json"}), 400

    try:
        result = checkout_service.handle_yoco_webhook(event, mailer=get_mailer())
        return jsonify(result), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to process webhook")
        return _internal_error("webhook_failed", e)
