# Overview: Storefront order routes; bank-transfer checkout and order lookup.

"""
Order API Routes

- POST /api/orders: place a bank-transfer order (pending_payment)
- GET /api/orders/<id>: order with items, visible to its owner only

Ownership: the X-User-Id header (signed-in customer) or the ?email=
query parameter (guest checkout) must match the order.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import current_user_id
from ..errors import DomainError
from ..extensions import get_mailer
from ..services import checkout_service, order_service
from ..validation import parse_checkout_request


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
def create_order_route():
    """
    Place a bank-transfer order.

    Request body:
    {
        "customer": {"email": "a@b.co", "name": "...", "phone": "..."},
        "shippingAddress": {"line1": "...", "city": "...", "province": "Gauteng", "postal_code": "2000"},
        "items": [{"productId": 1, "variantId": null, "qty": 2}],
        "couponCode": "SAVE20"  (optional)
    }

    Returns:
        201: {orderId, orderNumber}
        400: invalid_request, invalid_product, invalid_variant, invalid_coupon, coupon_not_applicable
        409: out_of_stock
    """
    try:
        checkout = parse_checkout_request(request.get_json(silent=True))
        order = checkout_service.place_bank_transfer_order(
            checkout, user_id=current_user_id(), mailer=get_mailer(),
        )
        return jsonify({"orderId": order.id, "orderNumber": order.order_number}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "order_create_failed", "details": {"message": str(e)}}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(
            order_id, user_id=current_user_id(), email=request.args.get("email"),
        )
        return jsonify({"order": order.to_dict(include_items=True)}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "order_load_failed", "details": {"message": str(e)}}), 500
