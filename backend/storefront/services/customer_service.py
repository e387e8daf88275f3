# Overview: Service-layer operations for customer profiles derived from storefront orders.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import Customer, Order


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_customer_by_email(email: str) -> Customer | None:
    return db.session.query(Customer).filter_by(email=normalize_email(email)).first()


def upsert_customer_from_order(order: Order, *, is_paid: bool) -> Customer:
    """
    Create or refresh the customer profile for an order's contact details.

    Aggregates (total_orders, total_spent_cents, last_order_at) only move
    for paid orders. Does not commit; callers run this inside best_effort().
    """
    email = normalize_email(order.customer_email)
    customer = get_customer_by_email(email)

    if customer is None:
        customer = Customer(
            user_id=order.user_id,
            email=email,
            full_name=order.customer_name,
            phone=order.customer_phone,
            total_orders=0,
            total_spent_cents=0,
        )
        db.session.add(customer)
        db.session.flush()
    else:
        if order.user_id:
            customer.user_id = order.user_id
        if order.customer_name:
            customer.full_name = order.customer_name
        if order.customer_phone:
            customer.phone = order.customer_phone

    if is_paid:
        record_paid_order(customer, order)
    return customer


def record_paid_order(customer: Customer, order: Order) -> None:
    """Add one paid order to the profile aggregates (single UPDATE, no read-modify-write)."""
    db.session.execute(
        update(Customer)
        .where(Customer.id == customer.id)
        .values(
            total_orders=Customer.total_orders + 1,
            total_spent_cents=Customer.total_spent_cents + order.total_cents,
            last_order_at=order.created_at,
        )
    )


def record_order_paid(order: Order) -> Customer:
    """Paid transition of an existing order (e.g. bank transfer confirmed)."""
    return upsert_customer_from_order(order, is_paid=True)
