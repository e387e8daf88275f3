# Overview: Order assembly; turns a validated cart into priced, immutable order snapshots.

"""
Order Assembly

assemble_order() is the one place a storefront Order is written. It
prices the cart from the catalog, applies and redeems an optional coupon,
resolves shipping server-side and persists the header and its items in
the caller's transaction.

update_order_status() drives the order lifecycle after creation and owns
the stock side effects of paying and cancelling an order.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import DomainError, NotFoundError
from ..extensions import db
from ..models import Order, OrderItem
from ..models.sales import (
    ORDER_CANCELLED,
    ORDER_DELIVERED,
    ORDER_PAID,
    ORDER_PENDING_PAYMENT,
    ORDER_PROCESSING,
    ORDER_SHIPPED,
    ORDER_STATUSES,
    PAYMENT_METHOD_BANK_TRANSFER,
)
from ..snapshots import CustomerContact, ShippingAddress
from ..time_utils import utcnow
from . import stock_service
from .catalog_service import PricedLine, load_catalog_snapshot
from .concurrency import best_effort, lock_for_update, run_with_retry
from .coupon_service import apply_coupon, normalize_code, redeem_coupon
from .customer_service import record_order_paid, upsert_customer_from_order
from .document_service import next_order_number
from .pricing import order_total
from .shipping_service import get_effective_shipping_cents


class OrderError(DomainError):
    """Raised for order lifecycle errors."""
    pass


ALLOWED_TRANSITIONS = {
    ORDER_PENDING_PAYMENT: {ORDER_PAID, ORDER_CANCELLED},
    ORDER_PAID: {ORDER_PROCESSING, ORDER_CANCELLED},
    ORDER_PROCESSING: {ORDER_SHIPPED, ORDER_CANCELLED},
    ORDER_SHIPPED: {ORDER_DELIVERED},
    ORDER_DELIVERED: set(),
    ORDER_CANCELLED: set(),
}

ORDER_REFERENCE = "order"


@dataclass(frozen=True)
class Quote:
    """Server-computed totals for a cart; nothing persisted."""
    lines: tuple[PricedLine, ...]
    subtotal_cents: int
    shipping_cents: int
    discount_cents: int
    total_cents: int
    coupon_code: str | None = None
    currency: str = "ZAR"

    def to_dict(self) -> dict:
        data = {
            "lines": [line.to_dict() for line in self.lines],
            "subtotalCents": self.subtotal_cents,
            "shippingCents": self.shipping_cents,
            "discountCents": self.discount_cents,
            "totalCents": self.total_cents,
            "currency": self.currency,
        }
        if self.coupon_code:
            data["coupon"] = {"code": self.coupon_code, "discountCents": self.discount_cents}
        return data


def _currency() -> str:
    return current_app.config.get("STORE_CURRENCY", "ZAR")


def quote(items, province: str | None, coupon_code: str | None = None, *, check_stock: bool = True) -> Quote:
    """
    Price a cart without writing anything.

    Catalog failures (invalid_product / invalid_variant / out_of_stock) and
    coupon failures (invalid_coupon / coupon_not_applicable) propagate.
    A cart with no coupon code never fails for coupon reasons.
    """
    lines = tuple(load_catalog_snapshot(items, check_stock=check_stock))
    subtotal = sum(line.line_total_cents for line in lines)
    shipping = get_effective_shipping_cents(province)

    discount = 0
    code = None
    if coupon_code:
        coupon, discount = apply_coupon(coupon_code, subtotal)
        code = coupon.code

    return Quote(
        lines=lines,
        subtotal_cents=subtotal,
        shipping_cents=shipping,
        discount_cents=discount,
        total_cents=order_total(subtotal, shipping, discount),
        coupon_code=code,
        currency=_currency(),
    )


def assemble_order(
    *,
    items,
    customer: CustomerContact,
    shipping_address: ShippingAddress,
    shipping_cents: int,
    status: str = ORDER_PENDING_PAYMENT,
    payment_method: str = PAYMENT_METHOD_BANK_TRANSFER,
    coupon_code: str | None = None,
    locked_discount_cents: int | None = None,
    user_id: str | None = None,
) -> Order:
    """
    Build and persist an Order with its items (flush only, no commit).

    locked_discount_cents: a discount already agreed with the customer (card
    checkout start). It is clamped to the recomputed subtotal and the coupon
    use is recorded without re-checking the usage cap, because the customer
    has already been charged.

    The header is flushed before the items; both belong to the caller's
    transaction, so a failure part-way leaves no orphan header behind once
    the caller rolls back.
    """
    if status not in ORDER_STATUSES:
        raise OrderError("invalid_status", f"Unknown order status {status!r}")

    lines = load_catalog_snapshot(items)
    subtotal = sum(line.line_total_cents for line in lines)

    discount = 0
    code = None
    if coupon_code:
        code = normalize_code(coupon_code)
        if locked_discount_cents is not None:
            discount = max(0, min(locked_discount_cents, subtotal))
            redeem_coupon(code, enforce_cap=False)
        else:
            _, discount = apply_coupon(code, subtotal)
            redeem_coupon(code)

    order = Order(
        order_number=next_order_number(),
        user_id=user_id,
        customer_email=customer.email,
        customer_name=customer.name,
        customer_phone=customer.phone,
        status=status,
        payment_method=payment_method,
        subtotal_cents=subtotal,
        shipping_cents=shipping_cents,
        discount_cents=discount,
        total_cents=order_total(subtotal, shipping_cents, discount),
        currency=_currency(),
        coupon_code=code,
        shipping_address_snapshot=shipping_address.to_dict(),
        stock_deducted=False,
        status_updated_at=utcnow(),
    )
    db.session.add(order)
    db.session.flush()

    for line in lines:
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=line.product_id,
            variant_id=line.variant_id,
            qty=line.qty,
            unit_price_cents_snapshot=line.unit_price_cents,
            title_snapshot=line.title,
            variant_snapshot=line.variant.to_dict() if line.variant else None,
        ))
    db.session.flush()

    with best_effort(f"Customer upsert for order {order.order_number}"):
        upsert_customer_from_order(order, is_paid=(status == ORDER_PAID))

    return order


def deduct_order_stock(order: Order) -> None:
    """Deduct stock for every order line once; no-op if already deducted."""
    if order.stock_deducted:
        return
    stock_service.deduct_lines(
        order.items,
        reason=stock_service.REASON_ORDER_PAID,
        reference_type=ORDER_REFERENCE,
        reference_id=order.id,
    )
    order.stock_deducted = True


def restore_order_stock(order: Order) -> None:
    if not order.stock_deducted:
        return
    stock_service.restore_lines(
        order.items,
        reason=stock_service.REASON_ORDER_CANCELLED,
        reference_type=ORDER_REFERENCE,
        reference_id=order.id,
    )
    order.stock_deducted = False


def get_order(order_id: int, *, user_id: str | None = None, email: str | None = None) -> Order:
    """
    Load an order for its owner.

    Orders placed by a signed-in user are visible to that user; guest
    orders are visible to whoever presents the order's customer email.
    Anything else is reported as not found.
    """
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("order_not_found", f"Order {order_id} not found")

    owns_by_user = bool(order.user_id) and user_id == order.user_id
    owns_by_email = (not order.user_id and bool(email)
                     and email.strip().lower() == (order.customer_email or "").lower())
    if not (owns_by_user or owns_by_email):
        raise NotFoundError("order_not_found", f"Order {order_id} not found")
    return order


def _transition_locked(order: Order, new_status: str) -> Order:
    if new_status not in ORDER_STATUSES:
        raise OrderError("invalid_status", f"Unknown order status {new_status!r}")
    if order.status == new_status:
        return order
    if new_status not in ALLOWED_TRANSITIONS.get(order.status, set()):
        raise OrderError(
            "invalid_status_transition",
            f"Cannot move order from {order.status} to {new_status}",
            status_code=409,
            details={"from": order.status, "to": new_status},
        )

    if new_status == ORDER_PAID:
        deduct_order_stock(order)
    elif new_status == ORDER_CANCELLED:
        restore_order_stock(order)

    order.status = new_status
    order.status_updated_at = utcnow()

    if new_status == ORDER_PAID:
        with best_effort(f"Customer paid-order update for {order.order_number}"):
            record_order_paid(order)

    return order


def mark_order_paid_locked(order: Order) -> Order:
    """Move an order to paid inside the caller's transaction (webhook path)."""
    return _transition_locked(order, ORDER_PAID)


def update_order_status(order_id: int, new_status: str) -> Order:
    """
    Admin status change.

    pending_payment -> paid | cancelled
    paid -> processing | cancelled
    processing -> shipped | cancelled
    shipped -> delivered

    Paying deducts stock if it was not deducted at creation; cancelling
    restores whatever was deducted.
    """
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError("order_not_found", f"Order {order_id} not found")

        _transition_locked(order, new_status)
        db.session.commit()
        return order

    return run_with_retry(_op)
