from __future__ import annotations

from ..extensions import db
from ..snapshots import InvoiceCustomer, VariantSnapshot
from ..time_utils import to_utc_z, utcnow


INVOICE_DRAFT = "draft"
INVOICE_ISSUED = "issued"
INVOICE_CANCELLED = "cancelled"

INVOICE_UNPAID = "unpaid"
INVOICE_PAID = "paid"

FULFILMENT_PENDING = "pending"
FULFILMENT_DISPATCHED = "dispatched"


class Invoice(db.Model):
    """
    Manually issued invoice (back office sale outside the storefront).

    LIFECYCLE: draft -> issued -> cancelled.
    - draft: lines freely editable, no stock effect
    - issued: every line holds deducted stock; line edits adjust stock
    - cancelled: stock restored, no further line changes; totals kept as issued

    payment_status and fulfilment_status are independent flags that only
    move forward once the invoice is issued.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        db.CheckConstraint("total_cents >= 0", name="total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=INVOICE_DRAFT, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_snapshot = db.Column(db.JSON, nullable=False, default=dict)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    delivery_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="ZAR")

    payment_status = db.Column(db.String(16), nullable=False, default=INVOICE_UNPAID)
    payment_status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    fulfilment_status = db.Column(db.String(16), nullable=False, default=FULFILMENT_PENDING)
    fulfilment_status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "InvoiceLine",
        backref="invoice",
        lazy=True,
        order_by="InvoiceLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def customer(self) -> InvoiceCustomer:
        return InvoiceCustomer.from_dict(self.customer_snapshot)

    def to_dict(self, stock_levels: dict | None = None) -> dict:
        stock_levels = stock_levels or {}
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "status": self.status,
            "customer_id": self.customer_id,
            "customer_snapshot": self.customer.to_dict(),
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "delivery_cents": self.delivery_cents,
            "total_cents": self.total_cents,
            "currency": self.currency,
            "payment_status": self.payment_status,
            "payment_status_updated_at": to_utc_z(self.payment_status_updated_at),
            "fulfilment_status": self.fulfilment_status,
            "fulfilment_status_updated_at": to_utc_z(self.fulfilment_status_updated_at),
            "created_at": to_utc_z(self.created_at),
            "issued_at": to_utc_z(self.issued_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "lines": [
                line.to_dict(stock_qty=stock_levels.get((line.product_id, line.variant_id)))
                for line in self.lines
            ],
        }


class InvoiceLine(db.Model):
    """Invoice line; line_total_cents is always qty * unit_price_cents."""
    __tablename__ = "invoice_lines"
    __table_args__ = (
        db.CheckConstraint("qty >= 1", name="qty_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    qty = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    title_snapshot = db.Column(db.String(255), nullable=False)
    variant_snapshot = db.Column(db.JSON, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def variant(self) -> VariantSnapshot | None:
        return VariantSnapshot.from_dict(self.variant_snapshot)

    def to_dict(self, stock_qty: int | None = None) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "qty": self.qty,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "title_snapshot": self.title_snapshot,
            "variant_snapshot": self.variant_snapshot or {},
            "stock_qty": stock_qty,
        }


class DocumentSequence(db.Model):
    """
    Atomic document number sequences.

    WHY: Prevent race conditions when generating order and invoice numbers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
