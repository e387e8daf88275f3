# Overview: Flask API routes for back office operations; order status and invoices.

"""
Admin routes for the back office.

Provides endpoints for:
- Order status changes (paid, processing, shipped, delivered, cancelled)
- Invoice catalog search for the line picker
- Invoice management (create, edit header, lines, issue, cancel,
  payment and fulfilment flags)

All endpoints require the ADMIN_API_TOKEN bearer token.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_admin
from ..errors import DomainError
from ..services import catalog_service, invoice_service, order_service
from ..validation import (
    ValidationError,
    coerce_str,
    parse_invoice_create,
    parse_invoice_line_create,
    parse_invoice_line_patch,
    parse_invoice_patch,
)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _invoice_response(action, description: str, status: int = 200):
    """Run an invoice mutation and answer with the refreshed invoice payload."""
    try:
        invoice = action()
        return jsonify({"invoice": invoice_service.invoice_to_dict(invoice)}), status

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to %s", description)
        return jsonify({"error": "internal_error", "details": {"message": str(e)}}), 500


# =============================================================================
# ORDERS
# =============================================================================

@admin_bp.patch("/orders/<int:order_id>/status")
@require_admin
def update_order_status_route(order_id: int):
    """
    Move an order along its lifecycle.

    Request body: {"status": "paid"}

    Moving to paid deducts stock (once); moving to cancelled restores it.

    Returns:
        200: {order}
        404: order not found
        409: invalid_status_transition, out_of_stock
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("body must be a JSON object")
        new_status = coerce_str(data.get("status"), "status", max_length=32).lower()

        order = order_service.update_order_status(order_id, new_status)
        return jsonify({"order": order.to_dict(include_items=True)}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "internal_error", "details": {"message": str(e)}}), 500


# =============================================================================
# INVOICES
# =============================================================================

@admin_bp.get("/invoice-catalog")
@require_admin
def invoice_catalog_route():
    """
    Search in-stock products and variants for the invoice line picker.

    Query: ?q=mug

    Returns {items: [{kind, product_id, variant_id, title, sku, stock_qty,
    unit_price_cents_default, variant_snapshot}, ...]}
    """
    try:
        items = catalog_service.search_invoice_catalog(request.args.get("q"))
        return jsonify({"items": items}), 200

    except Exception as e:
        current_app.logger.exception("Failed to search invoice catalog")
        return jsonify({"error": "internal_error", "details": {"message": str(e)}}), 500


@admin_bp.post("/invoices")
@require_admin
def create_invoice_route():
    """
    Create a draft invoice.

    Request body (all optional):
    {
        "customer_id": 3,
        "customer_snapshot": {"name": "...", "email": "...", "company": "..."}
    }
    """
    def _create():
        fields = parse_invoice_create(request.get_json(silent=True))
        return invoice_service.create_invoice(**fields)

    return _invoice_response(_create, "create invoice", status=201)


@admin_bp.get("/invoices/<int:invoice_id>")
@require_admin
def get_invoice_route(invoice_id: int):
    return _invoice_response(lambda: invoice_service.get_invoice(invoice_id), "load invoice")


@admin_bp.patch("/invoices/<int:invoice_id>")
@require_admin
def update_invoice_route(invoice_id: int):
    """
    Edit the invoice header.

    Allowed fields: customer_id, customer_snapshot, delivery_cents, discount_cents.
    Not allowed once cancelled.
    """
    def _update():
        patch = parse_invoice_patch(request.get_json(silent=True))
        return invoice_service.update_invoice(invoice_id, patch)

    return _invoice_response(_update, "update invoice")


@admin_bp.post("/invoices/<int:invoice_id>/lines")
@require_admin
def add_invoice_line_route(invoice_id: int):
    """
    Add a line.

    Request body:
    {
        "product_id": 1,
        "variant_id": 4,  (optional)
        "qty": 2,
        "unit_price_cents": 1500,  (optional, defaults to the catalog price)
        "title_snapshot": "..."  (optional, defaults to the product name)
    }

    On an issued invoice the quantity is deducted from stock (409 out_of_stock).
    """
    def _add():
        fields = parse_invoice_line_create(request.get_json(silent=True))
        return invoice_service.add_line(invoice_id, **fields)

    return _invoice_response(_add, "add invoice line", status=201)


@admin_bp.patch("/invoices/<int:invoice_id>/lines/<int:line_id>")
@require_admin
def update_invoice_line_route(invoice_id: int, line_id: int):
    def _update():
        fields = parse_invoice_line_patch(request.get_json(silent=True))
        return invoice_service.update_line(invoice_id, line_id, **fields)

    return _invoice_response(_update, "update invoice line")


@admin_bp.delete("/invoices/<int:invoice_id>/lines/<int:line_id>")
@require_admin
def remove_invoice_line_route(invoice_id: int, line_id: int):
    return _invoice_response(lambda: invoice_service.remove_line(invoice_id, line_id), "remove invoice line")


@admin_bp.post("/invoices/<int:invoice_id>/issue")
@require_admin
def issue_invoice_route(invoice_id: int):
    """draft -> issued. Deducts stock for every line or fails with 409 out_of_stock."""
    return _invoice_response(lambda: invoice_service.issue_invoice(invoice_id), "issue invoice")


@admin_bp.post("/invoices/<int:invoice_id>/cancel")
@require_admin
def cancel_invoice_route(invoice_id: int):
    """issued -> cancelled. Restores stock for every line."""
    return _invoice_response(lambda: invoice_service.cancel_invoice(invoice_id), "cancel invoice")


@admin_bp.post("/invoices/<int:invoice_id>/mark-paid")
@require_admin
def mark_invoice_paid_route(invoice_id: int):
    return _invoice_response(lambda: invoice_service.mark_invoice_paid(invoice_id), "mark invoice paid")


@admin_bp.post("/invoices/<int:invoice_id>/mark-dispatched")
@require_admin
def mark_invoice_dispatched_route(invoice_id: int):
    return _invoice_response(lambda: invoice_service.mark_invoice_dispatched(invoice_id),
                             "mark invoice dispatched")
