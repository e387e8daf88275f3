# Overview: Checkout orchestration; bank-transfer orders and the deferred card-payment flow.

"""
Checkout Orchestration

Bank transfer
    place_bank_transfer_order() assembles a pending_payment order
    synchronously. No PendingCheckout is involved.

Card (Yoco hosted checkout)
    start_card_checkout() prices the cart, stores a PendingCheckout
    (status "initiated") and asks the provider for a hosted checkout.
    finalize_pending_checkout() turns a paid PendingCheckout into exactly
    one Order. It is called by the webhook handler and by the browser's
    fallback poll after the redirect back; both may run at the same time.

    Exactly-once is enforced by the database, not by this module:
    - payments has a unique (provider, provider_payment_id) constraint
    - the initiated -> completed switch is a conditional UPDATE
    Whoever loses either race rolls back and returns the winner's order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import DomainError, NotFoundError
from ..extensions import db
from ..models import Order, Payment, PaymentEvent, PendingCheckout
from ..models.sales import (
    CHECKOUT_COMPLETED,
    CHECKOUT_EXPIRED,
    CHECKOUT_INITIATED,
    ORDER_PAID,
    ORDER_PENDING_PAYMENT,
    PAYMENT_FAILED,
    PAYMENT_METHOD_BANK_TRANSFER,
    PAYMENT_METHOD_CARD,
    PAYMENT_PENDING,
    PAYMENT_SUCCEEDED,
    PROVIDER_YOCO,
)
from ..time_utils import is_older_than, utcnow
from ..validation import CartItem, CheckoutRequest
from .concurrency import lock_for_update, run_with_retry
from .order_service import assemble_order, deduct_order_stock, get_order, mark_order_paid_locked, quote
from .shipping_service import get_effective_shipping_cents


class CheckoutError(DomainError):
    """Raised for checkout flow errors."""
    pass


class _CheckoutAlreadyCompleted(Exception):
    """Internal signal: another finalize call completed this checkout first."""


SOURCE_FALLBACK = "fallback"
SOURCE_WEBHOOK = "webhook"

EVENT_PAYMENT_SUCCEEDED = "payment.succeeded"
EVENT_PAYMENT_FAILED = "payment.failed"


@dataclass(frozen=True)
class FinalizeResult:
    status: str
    order_id: int | None
    created: bool = False

    def to_dict(self) -> dict:
        return {"status": self.status, "orderId": self.order_id}


def _max_age() -> timedelta:
    return timedelta(hours=int(current_app.config["PENDING_CHECKOUT_MAX_AGE_HOURS"]))


def _site_url() -> str:
    return current_app.config["SITE_URL"].rstrip("/")


def _notify(description: str, send, order_id: int) -> None:
    """Fire-and-forget email; failures are logged, never raised."""
    if send is None:
        return
    try:
        send(order_id)
    except Exception:
        current_app.logger.exception("%s failed for order %s", description, order_id)


def _order_id_for_checkout(checkout_id: str | None) -> int | None:
    if not checkout_id:
        return None
    return (
        db.session.query(Payment.order_id)
        .filter_by(provider=PROVIDER_YOCO, provider_payment_id=checkout_id)
        .scalar()
    )


# =============================================================================
# BANK TRANSFER
# =============================================================================

def place_bank_transfer_order(request: CheckoutRequest, *, user_id: str | None = None, mailer=None) -> Order:
    """
    Create a pending_payment order immediately.

    Stock is deducted later, when the order is marked paid, unless
    BANK_TRANSFER_RESERVES_STOCK is enabled, in which case it is deducted
    now. Either way stock_deducted guarantees a single deduction.
    """
    def _op():
        order = assemble_order(
            items=request.items,
            customer=request.customer,
            shipping_address=request.shipping_address,
            shipping_cents=get_effective_shipping_cents(request.shipping_address.province),
            status=ORDER_PENDING_PAYMENT,
            payment_method=PAYMENT_METHOD_BANK_TRANSFER,
            coupon_code=request.coupon_code,
            user_id=user_id,
        )
        if current_app.config.get("BANK_TRANSFER_RESERVES_STOCK"):
            deduct_order_stock(order)

        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Bank transfer order %s created (total %s)", order.order_number, order.total_cents)

    _notify("Bank transfer order email", getattr(mailer, "send_bank_transfer_order_email", None), order.id)
    return order


# =============================================================================
# CARD CHECKOUT
# =============================================================================

def start_card_checkout(request: CheckoutRequest, *, provider, user_id: str | None = None):
    """
    Record a PendingCheckout and create the provider's hosted checkout.

    Returns (pending_checkout, hosted_checkout). No Order is written here.
    If the provider call fails the PendingCheckout stays without a
    checkout_id and can never be finalized.
    """
    priced = quote(request.items, request.shipping_address.province, request.coupon_code)

    def _create():
        pending = PendingCheckout(
            user_id=user_id,
            customer_email=request.customer.email,
            customer_name=request.customer.name,
            customer_phone=request.customer.phone,
            shipping_address_snapshot=request.shipping_address.to_dict(),
            items=[item.to_dict() for item in request.items],
            subtotal_cents=priced.subtotal_cents,
            shipping_cents=priced.shipping_cents,
            discount_cents=priced.discount_cents,
            amount_cents=priced.total_cents,
            currency=priced.currency,
            coupon_code=priced.coupon_code,
            status=CHECKOUT_INITIATED,
        )
        db.session.add(pending)
        db.session.commit()
        return pending

    pending = run_with_retry(_create)
    pending_id = pending.id

    site = _site_url()
    hosted = provider.create_hosted_checkout(
        amount_cents=pending.amount_cents,
        currency=pending.currency,
        success_url=f"{site}/checkout/success?method=yoco&pendingCheckoutId={pending_id}",
        cancel_url=f"{site}/checkout/cancelled",
        failure_url=f"{site}/checkout/failed",
        metadata={"pendingCheckoutId": pending_id},
    )

    def _attach():
        row = lock_for_update(db.session.query(PendingCheckout).filter_by(id=pending_id)).first()
        row.checkout_id = hosted.id
        db.session.commit()
        return row

    pending = run_with_retry(_attach)
    current_app.logger.info("Pending checkout %s sent to provider as %s", pending_id, hosted.id)
    return pending, hosted


def _complete_pending(pending_id: str) -> int:
    """Conditional initiated -> completed switch; returns rows changed (0 or 1)."""
    result = db.session.execute(
        update(PendingCheckout)
        .where(PendingCheckout.id == pending_id, PendingCheckout.status == CHECKOUT_INITIATED)
        .values(
            status=CHECKOUT_COMPLETED,
            completed_at=utcnow(),
            version_id=PendingCheckout.version_id + 1,
        )
    )
    return result.rowcount


def finalize_pending_checkout(pending_checkout_id: str, *, mailer=None, source: str = SOURCE_FALLBACK,
                              raw_payload: dict | None = None) -> FinalizeResult:
    """
    Idempotently turn a paid PendingCheckout into an Order.

    - already completed: return the existing order
    - no checkout_id: no_checkout_id (the provider was never involved)
    - not initiated, or older than PENDING_CHECKOUT_MAX_AGE_HOURS: rejected
    - otherwise: paid Order + succeeded Payment + completed checkout +
      stock deduction in one transaction, then a best-effort email
    """
    pending = db.session.get(PendingCheckout, pending_checkout_id)
    if pending is None:
        raise NotFoundError("pending_checkout_not_found", f"Pending checkout {pending_checkout_id} not found")

    if pending.status == CHECKOUT_COMPLETED:
        return FinalizeResult(CHECKOUT_COMPLETED, _order_id_for_checkout(pending.checkout_id))

    if not pending.checkout_id:
        raise CheckoutError("no_checkout_id", "Checkout was never sent to the payment provider")

    if pending.status != CHECKOUT_INITIATED:
        raise CheckoutError(
            "checkout_not_in_initiated_state",
            f"Checkout is {pending.status}",
            status_code=409,
            details={"status": pending.status},
        )

    if is_older_than(pending.created_at, _max_age()):
        raise CheckoutError("checkout_expired", "Checkout is too old to finalize", status_code=409)

    checkout_id = pending.checkout_id

    # The webhook may have finished between the first read and now.
    existing_order_id = _order_id_for_checkout(checkout_id)
    if existing_order_id is not None:
        def _mark_completed():
            _complete_pending(pending_checkout_id)
            db.session.commit()

        run_with_retry(_mark_completed)
        return FinalizeResult(CHECKOUT_COMPLETED, existing_order_id)

    items = [CartItem.from_dict(entry) for entry in pending.items]
    snapshot = {
        "customer": pending.customer,
        "shipping_address": pending.shipping_address,
        "shipping_cents": pending.shipping_cents,
        "coupon_code": pending.coupon_code,
        "discount_cents": pending.discount_cents,
        "amount_cents": pending.amount_cents,
        "currency": pending.currency,
        "user_id": pending.user_id,
    }

    def _op():
        order = assemble_order(
            items=items,
            customer=snapshot["customer"],
            shipping_address=snapshot["shipping_address"],
            shipping_cents=snapshot["shipping_cents"],
            status=ORDER_PAID,
            payment_method=PAYMENT_METHOD_CARD,
            coupon_code=snapshot["coupon_code"],
            locked_discount_cents=snapshot["discount_cents"] if snapshot["coupon_code"] else None,
            user_id=snapshot["user_id"],
        )

        db.session.add(Payment(
            order_id=order.id,
            provider=PROVIDER_YOCO,
            provider_payment_id=checkout_id,
            amount_cents=snapshot["amount_cents"],
            currency=snapshot["currency"],
            status=PAYMENT_SUCCEEDED,
            raw_payload=raw_payload or {"checkout_id": checkout_id, "source": source},
        ))
        db.session.flush()

        if not _complete_pending(pending_checkout_id):
            raise _CheckoutAlreadyCompleted()

        deduct_order_stock(order)
        db.session.commit()
        return order

    try:
        order = run_with_retry(_op)
    except (_CheckoutAlreadyCompleted, IntegrityError):
        winner = _order_id_for_checkout(checkout_id)
        if winner is None:
            raise
        current_app.logger.info("Pending checkout %s was finalized concurrently (order %s)",
                                pending_checkout_id, winner)
        return FinalizeResult(CHECKOUT_COMPLETED, winner)
    except DomainError as e:
        current_app.logger.error("Paid checkout %s could not be turned into an order: %s",
                                 pending_checkout_id, e.code)
        raise

    current_app.logger.info("Pending checkout %s finalized into order %s via %s",
                            pending_checkout_id, order.order_number, source)
    if order.total_cents != snapshot["amount_cents"]:
        current_app.logger.warning(
            "Order %s total %s differs from charged amount %s",
            order.order_number, order.total_cents, snapshot["amount_cents"],
        )

    _notify("Order paid email", getattr(mailer, "send_order_paid_email", None), order.id)
    return FinalizeResult(CHECKOUT_COMPLETED, order.id, created=True)


def checkout_status(pending_checkout_id: str) -> dict:
    """Where a PendingCheckout stands, plus its order once one exists."""
    pending = db.session.get(PendingCheckout, pending_checkout_id)
    if pending is None:
        raise NotFoundError("pending_checkout_not_found", f"Pending checkout {pending_checkout_id} not found")

    status = pending.status
    if status == CHECKOUT_INITIATED and is_older_than(pending.created_at, _max_age()):
        status = CHECKOUT_EXPIRED

    order_id = _order_id_for_checkout(pending.checkout_id)
    order = db.session.get(Order, order_id) if order_id is not None else None

    return {
        "pendingCheckoutId": pending.id,
        "status": status,
        "amountCents": pending.amount_cents,
        "currency": pending.currency,
        "orderId": order_id,
        "order": order.to_dict(include_items=True) if order else None,
    }


def start_order_payment(order_id: int, *, user_id: str | None, provider):
    """
    Card payment for an existing pending_payment order (e.g. a bank
    transfer order the customer now wants to pay by card).
    """
    if not user_id:
        raise CheckoutError("unauthorized", "Sign in to pay for an order", status_code=401)

    order = get_order(order_id, user_id=user_id)
    if order.status != ORDER_PENDING_PAYMENT:
        raise CheckoutError("order_already_paid_or_not_pending", f"Order is {order.status}")

    site = _site_url()
    hosted = provider.create_hosted_checkout(
        amount_cents=order.total_cents,
        currency=order.currency,
        success_url=f"{site}/account/orders/{order.id}?payment=success",
        cancel_url=f"{site}/account/orders/{order.id}?payment=cancelled",
        failure_url=f"{site}/account/orders/{order.id}?payment=failed",
        metadata={"existingOrderId": order.id},
    )

    def _op():
        db.session.add(Payment(
            order_id=order.id,
            provider=PROVIDER_YOCO,
            provider_payment_id=hosted.id,
            amount_cents=order.total_cents,
            currency=order.currency,
            status=PAYMENT_PENDING,
            raw_payload={"checkout_id": hosted.id},
        ))
        db.session.commit()

    run_with_retry(_op)
    return hosted


# =============================================================================
# WEBHOOK
# =============================================================================

def _record_event(event_id: str, event_type: str | None, event: dict) -> None:
    try:
        db.session.add(PaymentEvent(
            provider=PROVIDER_YOCO,
            provider_event_id=event_id,
            event_type=event_type,
            raw_payload=event,
        ))
        db.session.commit()
    except IntegrityError:
        # Concurrent delivery of the same event recorded it first.
        db.session.rollback()


def _settle_existing_payment(payment: Payment, event_type: str, event: dict, mailer) -> None:
    """Apply an event to a Payment created by the pay-order flow."""
    paid_order_id = None

    def _op():
        nonlocal paid_order_id
        row = lock_for_update(db.session.query(Payment).filter_by(id=payment.id)).first()
        if event_type == EVENT_PAYMENT_SUCCEEDED:
            if row.status == PAYMENT_SUCCEEDED:
                return
            row.status = PAYMENT_SUCCEEDED
            row.raw_payload = event
            order = row.order
            if order.status == ORDER_PENDING_PAYMENT:
                mark_order_paid_locked(order)
                paid_order_id = order.id
            amount = (event.get("payload") or {}).get("amount")
            if isinstance(amount, int) and amount != row.amount_cents:
                current_app.logger.warning("Payment %s charged %s, expected %s", row.id, amount, row.amount_cents)
        elif event_type == EVENT_PAYMENT_FAILED:
            if row.status == PAYMENT_SUCCEEDED:
                return
            row.status = PAYMENT_FAILED
            row.raw_payload = event
        db.session.commit()

    run_with_retry(_op)
    if paid_order_id is not None:
        _notify("Order paid email", getattr(mailer, "send_order_paid_email", None), paid_order_id)


def handle_yoco_webhook(event: dict, *, mailer=None) -> dict:
    """
    Process a verified Yoco webhook event.

    Events are processed at most once per provider event id. Processing is
    idempotent on its own, so the event row is written after processing:
    a failure mid-way leaves no record and the provider's retry runs again.
    """
    event_id = event.get("id")
    if not event_id or not isinstance(event_id, str):
        raise CheckoutError("invalid_event", "Webhook event has no id")
    event_type = event.get("type")

    seen = (
        db.session.query(PaymentEvent.id)
        .filter_by(provider=PROVIDER_YOCO, provider_event_id=event_id)
        .first()
    )
    if seen:
        return {"ok": True, "duplicate": True}

    payload = event.get("payload") or {}
    checkout_id = (payload.get("metadata") or {}).get("checkoutId")
    result = {"ok": True}

    if checkout_id and event_type in (EVENT_PAYMENT_SUCCEEDED, EVENT_PAYMENT_FAILED):
        payment = (
            db.session.query(Payment)
            .filter_by(provider=PROVIDER_YOCO, provider_payment_id=checkout_id)
            .first()
        )
        try:
            if payment is not None:
                _settle_existing_payment(payment, event_type, event, mailer)
            elif event_type == EVENT_PAYMENT_SUCCEEDED:
                pending = db.session.query(PendingCheckout).filter_by(checkout_id=checkout_id).first()
                if pending is None:
                    current_app.logger.warning("Webhook %s references unknown checkout %s", event_id, checkout_id)
                else:
                    finalized = finalize_pending_checkout(
                        pending.id, mailer=mailer, source=SOURCE_WEBHOOK, raw_payload=event,
                    )
                    result["orderId"] = finalized.order_id
        except DomainError as e:
            # Domain failures are acknowledged (2xx) and logged.
            current_app.logger.warning("Webhook %s for checkout %s not applied: %s", event_id, checkout_id, e.code)
            result["ignored"] = e.code

    _record_event(event_id, event_type, event)
    return result


def list_stale_checkouts(max_age: timedelta | None = None) -> list[PendingCheckout]:
    """Initiated checkouts older than the age threshold (abandoned or never paid)."""
    cutoff = utcnow() - (max_age if max_age is not None else _max_age())
    return (
        db.session.query(PendingCheckout)
        .filter(PendingCheckout.status == CHECKOUT_INITIATED, PendingCheckout.created_at < cutoff)
        .order_by(PendingCheckout.created_at)
        .all()
    )
