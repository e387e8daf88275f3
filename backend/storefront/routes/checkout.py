# Overview: Storefront cart pricing routes.

from flask import Blueprint, request, jsonify, current_app

from ..errors import DomainError
from ..services import order_service
from ..validation import parse_coupon_quote_request


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("/coupon")
def coupon_quote_route():
    """
    Price a cart with a coupon applied. Nothing is written.

    Request body: {"items": [...], "couponCode": "SAVE20", "province": "Gauteng"}

    Returns {coupon: {code, discountCents}, subtotalCents, shippingCents, totalCents, ...}
    """
    try:
        quote_request = parse_coupon_quote_request(request.get_json(silent=True))
        priced = order_service.quote(quote_request.items, quote_request.province, quote_request.coupon_code)
        return jsonify(priced.to_dict()), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to quote coupon")
        return jsonify({"error": "coupon_quote_failed", "details": {"message": str(e)}}), 500
