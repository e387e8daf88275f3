# Overview: Invoice state machine; draft editing, issuance, cancellation and their stock effects.

"""
Invoice Service - back office invoices

LIFECYCLE: draft -> issued -> cancelled
- draft: lines added/edited/removed freely; no stock effect
- issue: every line deducted from stock in one transaction, or none
- issued: line edits adjust stock by the quantity change only;
  removing a line restores its full quantity
- cancel: every line restored; totals are kept as they were
- draft -> cancelled is not a transition

payment_status (unpaid -> paid) and fulfilment_status
(pending -> dispatched) only move forward and only once issued.

Every mutation recomputes:
    line_total = qty * unit_price
    subtotal = sum(line_total)
    total = max(0, subtotal + delivery - discount)
"""

from __future__ import annotations

from flask import current_app

from ..errors import DomainError, NotFoundError
from ..extensions import db
from ..models import Customer, Invoice, InvoiceLine, Product, ProductVariant
from ..models.documents import (
    FULFILMENT_DISPATCHED,
    INVOICE_CANCELLED,
    INVOICE_DRAFT,
    INVOICE_ISSUED,
    INVOICE_PAID,
)
from ..snapshots import InvoiceCustomer
from ..time_utils import utcnow
from . import stock_service
from .catalog_service import current_stock_levels, resolve_reference
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_invoice_number
from .pricing import invoice_totals, line_total


class InvoiceError(DomainError):
    """Raised for invoice operation errors."""
    pass


INVOICE_REFERENCE = "invoice"


def _invalid_status(invoice: Invoice, action: str) -> InvoiceError:
    return InvoiceError(
        "invalid_status",
        f"Cannot {action} a {invoice.status} invoice",
        status_code=409,
        details={"status": invoice.status},
    )


def _load_locked(invoice_id: int) -> Invoice:
    invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
    if not invoice:
        raise NotFoundError("invoice_not_found", f"Invoice {invoice_id} not found")
    return invoice


def _find_line(invoice: Invoice, line_id: int) -> InvoiceLine:
    for line in invoice.lines:
        if line.id == line_id:
            return line
    raise NotFoundError("invoice_line_not_found", f"Line {line_id} not found on invoice {invoice.id}")


def _recompute_totals(invoice: Invoice) -> None:
    for line in invoice.lines:
        line.line_total_cents = line_total(line.unit_price_cents, line.qty)
    invoice.subtotal_cents, invoice.total_cents = invoice_totals(
        (line.line_total_cents for line in invoice.lines),
        invoice.delivery_cents or 0,
        invoice.discount_cents or 0,
    )


def _stock_kwargs(invoice: Invoice, reason: str) -> dict:
    return {"reason": reason, "reference_type": INVOICE_REFERENCE, "reference_id": invoice.id}


# =============================================================================
# READS
# =============================================================================

def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError("invoice_not_found", f"Invoice {invoice_id} not found")
    return invoice


def invoice_to_dict(invoice: Invoice) -> dict:
    """Invoice payload with each line's live stock (bulk loaded) for the editor."""
    levels = current_stock_levels({(line.product_id, line.variant_id) for line in invoice.lines})
    return invoice.to_dict(stock_levels=levels)


# =============================================================================
# HEADER
# =============================================================================

def create_invoice(customer_id: int | None = None, customer_snapshot: InvoiceCustomer | None = None) -> Invoice:
    """Create an empty draft invoice with the next INV- number."""
    def _op():
        snapshot = customer_snapshot or InvoiceCustomer()
        if customer_id is not None:
            customer = db.session.get(Customer, customer_id)
            if customer is None:
                raise NotFoundError("customer_not_found", f"Customer {customer_id} not found")
            if snapshot == InvoiceCustomer():
                snapshot = InvoiceCustomer(name=customer.full_name, email=customer.email, phone=customer.phone)

        invoice = Invoice(
            invoice_number=next_invoice_number(),
            status=INVOICE_DRAFT,
            customer_id=customer_id,
            customer_snapshot=snapshot.to_dict(),
            subtotal_cents=0,
            discount_cents=0,
            delivery_cents=0,
            total_cents=0,
            currency=current_app.config.get("STORE_CURRENCY", "ZAR"),
        )
        db.session.add(invoice)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def update_invoice(invoice_id: int, patch: dict) -> Invoice:
    """
    Update header fields: customer_id, customer_snapshot, delivery_cents,
    discount_cents. Not allowed once cancelled.
    """
    def _op():
        invoice = _load_locked(invoice_id)
        if invoice.status == INVOICE_CANCELLED:
            raise _invalid_status(invoice, "edit")

        if "customer_id" in patch:
            customer_id = patch["customer_id"]
            if customer_id is not None and db.session.get(Customer, customer_id) is None:
                raise NotFoundError("customer_not_found", f"Customer {customer_id} not found")
            invoice.customer_id = customer_id
        if "customer_snapshot" in patch:
            invoice.customer_snapshot = patch["customer_snapshot"].to_dict()
        if "delivery_cents" in patch:
            invoice.delivery_cents = patch["delivery_cents"]
        if "discount_cents" in patch:
            invoice.discount_cents = patch["discount_cents"]

        _recompute_totals(invoice)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


# =============================================================================
# LINES
# =============================================================================

def add_line(
    invoice_id: int,
    *,
    product_id: int,
    variant_id: int | None = None,
    qty: int,
    unit_price_cents: int | None = None,
    title_snapshot: str | None = None,
) -> Invoice:
    """
    Add a line priced from the catalog unless the admin sets a price.

    On a draft this only records the line. On an issued invoice the
    quantity is deducted from stock immediately; out_of_stock leaves the
    invoice unchanged.
    """
    if qty < 1:
        raise InvoiceError("invalid_quantity", "qty must be >= 1")

    def _op():
        invoice = _load_locked(invoice_id)
        if invoice.status == INVOICE_CANCELLED:
            raise _invalid_status(invoice, "add lines to")

        product = db.session.get(Product, product_id)
        variant = db.session.get(ProductVariant, variant_id) if variant_id is not None else None
        catalog_price, variant_snapshot = resolve_reference(product, variant, product_id, variant_id)

        price = catalog_price if unit_price_cents is None else unit_price_cents
        line = InvoiceLine(
            product_id=product_id,
            variant_id=variant_id,
            qty=qty,
            unit_price_cents=price,
            line_total_cents=line_total(price, qty),
            title_snapshot=(title_snapshot or "").strip() or product.name,
            variant_snapshot=variant_snapshot.to_dict() if variant_snapshot else None,
        )
        invoice.lines.append(line)

        if invoice.status == INVOICE_ISSUED:
            stock_service.deduct(product_id, variant_id, qty,
                                 **_stock_kwargs(invoice, stock_service.REASON_INVOICE_LINE_ADDED))

        _recompute_totals(invoice)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def update_line(invoice_id: int, line_id: int, *, qty: int | None = None,
                unit_price_cents: int | None = None) -> Invoice:
    """
    Change a line's quantity and/or unit price.

    On an issued invoice only the quantity change touches stock; an
    increase that stock cannot cover fails the whole edit.
    """
    if qty is not None and qty < 1:
        raise InvoiceError("invalid_quantity", "qty must be >= 1")
    if unit_price_cents is not None and unit_price_cents < 0:
        raise InvoiceError("invalid_price", "unit_price_cents must be >= 0")

    def _op():
        invoice = _load_locked(invoice_id)
        if invoice.status == INVOICE_CANCELLED:
            raise _invalid_status(invoice, "edit lines on")
        line = _find_line(invoice, line_id)

        if qty is not None and qty != line.qty:
            if invoice.status == INVOICE_ISSUED:
                stock_service.adjust_delta(
                    line.product_id, line.variant_id, line.qty, qty,
                    **_stock_kwargs(invoice, stock_service.REASON_INVOICE_LINE_CHANGED),
                )
            line.qty = qty
        if unit_price_cents is not None:
            line.unit_price_cents = unit_price_cents

        _recompute_totals(invoice)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def remove_line(invoice_id: int, line_id: int) -> Invoice:
    """Remove a line; on an issued invoice its quantity goes back to stock first."""
    def _op():
        invoice = _load_locked(invoice_id)
        if invoice.status == INVOICE_CANCELLED:
            raise _invalid_status(invoice, "remove lines from")
        line = _find_line(invoice, line_id)

        if invoice.status == INVOICE_ISSUED:
            stock_service.restore(line.product_id, line.variant_id, line.qty,
                                  **_stock_kwargs(invoice, stock_service.REASON_INVOICE_LINE_REMOVED))

        invoice.lines.remove(line)
        _recompute_totals(invoice)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


# =============================================================================
# TRANSITIONS
# =============================================================================

def issue_invoice(invoice_id: int) -> Invoice:
    """draft -> issued; deducts stock for every line, all or nothing."""
    def _op():
        invoice = _load_locked(invoice_id)
        if invoice.status != INVOICE_DRAFT:
            raise _invalid_status(invoice, "issue")
        if not invoice.lines:
            raise InvoiceError("invoice_has_no_lines", "Add at least one line before issuing")

        stock_service.deduct_lines(invoice.lines, **_stock_kwargs(invoice, stock_service.REASON_INVOICE_ISSUED))

        invoice.status = INVOICE_ISSUED
        invoice.issued_at = utcnow()
        _recompute_totals(invoice)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def cancel_invoice(invoice_id: int) -> Invoice:
    """issued -> cancelled; restores stock for every line. Totals are left as issued."""
    def _op():
        invoice = _load_locked(invoice_id)
        if invoice.status != INVOICE_ISSUED:
            raise _invalid_status(invoice, "cancel")

        stock_service.restore_lines(invoice.lines, **_stock_kwargs(invoice, stock_service.REASON_INVOICE_CANCELLED))

        invoice.status = INVOICE_CANCELLED
        invoice.cancelled_at = utcnow()
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def mark_invoice_paid(invoice_id: int) -> Invoice:
    def _op():
        invoice = _load_locked(invoice_id)
        if invoice.status != INVOICE_ISSUED:
            raise _invalid_status(invoice, "mark paid")
        if invoice.payment_status != INVOICE_PAID:
            invoice.payment_status = INVOICE_PAID
            invoice.payment_status_updated_at = utcnow()
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def mark_invoice_dispatched(invoice_id: int) -> Invoice:
    def _op():
        invoice = _load_locked(invoice_id)
        if invoice.status != INVOICE_ISSUED:
            raise _invalid_status(invoice, "mark dispatched")
        if invoice.fulfilment_status != FULFILMENT_DISPATCHED:
            invoice.fulfilment_status = FULFILMENT_DISPATCHED
            invoice.fulfilment_status_updated_at = utcnow()
        db.session.commit()
        return invoice

    return run_with_retry(_op)
