from __future__ import annotations

import uuid

from ..extensions import db
from ..snapshots import CustomerContact, ShippingAddress, VariantSnapshot
from ..time_utils import to_utc_z, utcnow


# Order lifecycle
ORDER_PENDING_PAYMENT = "pending_payment"
ORDER_PAID = "paid"
ORDER_PROCESSING = "processing"
ORDER_SHIPPED = "shipped"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_PENDING_PAYMENT,
    ORDER_PAID,
    ORDER_PROCESSING,
    ORDER_SHIPPED,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
)

PAYMENT_METHOD_BANK_TRANSFER = "bank_transfer"
PAYMENT_METHOD_CARD = "card"

# Pending checkout lifecycle ("expired" is derived from age, never stored)
CHECKOUT_INITIATED = "initiated"
CHECKOUT_COMPLETED = "completed"
CHECKOUT_EXPIRED = "expired"

PROVIDER_YOCO = "yoco"

PAYMENT_PENDING = "pending"
PAYMENT_SUCCEEDED = "succeeded"
PAYMENT_FAILED = "failed"


class Order(db.Model):
    """
    Customer order.

    MONEY: subtotal/shipping/discount/total are integer cents fixed at
    creation; total_cents = subtotal_cents + shipping_cents - discount_cents,
    floored at 0. Only status (and the stock flag) changes afterwards.

    SNAPSHOTS: customer contact and shipping address are copied at order
    time and never follow later profile edits.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.CheckConstraint("total_cents >= 0", name="total_non_negative"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    user_id = db.Column(db.String(64), nullable=True, index=True)

    customer_email = db.Column(db.String(255), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(24), nullable=False, default=ORDER_PENDING_PAYMENT, index=True)
    payment_method = db.Column(db.String(24), nullable=False, default=PAYMENT_METHOD_BANK_TRANSFER)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    shipping_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="ZAR")
    coupon_code = db.Column(db.String(64), nullable=True)

    shipping_address_snapshot = db.Column(db.JSON, nullable=False)

    # True once the Stock Ledger has deducted this order's lines
    stock_deducted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def customer(self) -> CustomerContact:
        return CustomerContact(email=self.customer_email, name=self.customer_name, phone=self.customer_phone)

    @property
    def shipping_address(self) -> ShippingAddress:
        return ShippingAddress.from_dict(self.shipping_address_snapshot)

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "status": self.status,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "shipping_cents": self.shipping_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "currency": self.currency,
            "coupon_code": self.coupon_code,
            "shipping_address_snapshot": self.shipping_address.to_dict(),
            "stock_deducted": self.stock_deducted,
            "created_at": to_utc_z(self.created_at),
            "status_updated_at": to_utc_z(self.status_updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Immutable order line; prices and titles are snapshots, never re-read."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("qty >= 1", name="qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    qty = db.Column(db.Integer, nullable=False)
    unit_price_cents_snapshot = db.Column(db.Integer, nullable=False)
    title_snapshot = db.Column(db.String(255), nullable=False)
    variant_snapshot = db.Column(db.JSON, nullable=True)

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents_snapshot * self.qty

    @property
    def variant(self) -> VariantSnapshot | None:
        return VariantSnapshot.from_dict(self.variant_snapshot)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "qty": self.qty,
            "unit_price_cents_snapshot": self.unit_price_cents_snapshot,
            "line_total_cents": self.line_total_cents,
            "title_snapshot": self.title_snapshot,
            "variant_snapshot": self.variant_snapshot or {},
        }


def _new_checkout_id() -> str:
    return str(uuid.uuid4())


class PendingCheckout(db.Model):
    """
    Card checkout intent recorded before redirecting to the hosted payment page.

    items holds the raw cart references ({productId, variantId, qty}); they
    are validated again against the catalog when the order is finally built.
    The id is a UUID because the browser carries it back after the redirect.
    """
    __tablename__ = "pending_checkouts"
    __table_args__ = (
        db.UniqueConstraint("checkout_id", name="uq_pending_checkouts_checkout_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_checkout_id)
    user_id = db.Column(db.String(64), nullable=True, index=True)

    customer_email = db.Column(db.String(255), nullable=False)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    shipping_address_snapshot = db.Column(db.JSON, nullable=False)

    items = db.Column(db.JSON, nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    shipping_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="ZAR")
    coupon_code = db.Column(db.String(64), nullable=True)

    # Provider checkout id; NULL until the provider call succeeds
    checkout_id = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=CHECKOUT_INITIATED, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def customer(self) -> CustomerContact:
        return CustomerContact(email=self.customer_email, name=self.customer_name, phone=self.customer_phone)

    @property
    def shipping_address(self) -> ShippingAddress:
        return ShippingAddress.from_dict(self.shipping_address_snapshot)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "checkout_id": self.checkout_id,
            "subtotal_cents": self.subtotal_cents,
            "shipping_cents": self.shipping_cents,
            "discount_cents": self.discount_cents,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "coupon_code": self.coupon_code,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }


class Payment(db.Model):
    """
    Provider payment attached to an order.

    IDEMPOTENCY: (provider, provider_payment_id) is unique, so one provider
    checkout can never produce a second order.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("provider", "provider_payment_id", name="uq_payments_provider_payment"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    provider = db.Column(db.String(32), nullable=False)
    provider_payment_id = db.Column(db.String(128), nullable=False)

    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="ZAR")
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING, index=True)
    raw_payload = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "provider": self.provider,
            "provider_payment_id": self.provider_payment_id,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PaymentEvent(db.Model):
    """Webhook deliveries, stored once per provider event id."""
    __tablename__ = "payment_events"
    __table_args__ = (
        db.UniqueConstraint("provider", "provider_event_id", name="uq_payment_events_provider_event"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(32), nullable=False)
    provider_event_id = db.Column(db.String(128), nullable=False)
    event_type = db.Column(db.String(64), nullable=True)
    raw_payload = db.Column(db.JSON, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
