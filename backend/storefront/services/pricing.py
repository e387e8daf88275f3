# Overview: Pure money arithmetic on integer cents (coupon discounts, totals, display formatting).

"""
Pricing primitives.

All amounts are integer cents. Nothing here touches the database, so the
same functions price a storefront order, a card checkout quote and a back
office invoice.
"""

from __future__ import annotations

from typing import Iterable

from ..models.promotions import DISCOUNT_FIXED, DISCOUNT_PERCENTAGE


def calculate_coupon_discount(coupon, subtotal_cents: int) -> int:
    """
    Discount in cents a coupon grants on a subtotal.

    - percentage: value clamped to 0..100, floor(subtotal * pct / 100)
    - fixed: value clamped to 0..subtotal
    - 0 when the subtotal is not positive or is below the coupon minimum

    coupon only needs discount_type, discount_value and
    min_order_value_cents. The result is always 0 <= discount <= subtotal.
    """
    if subtotal_cents <= 0:
        return 0

    minimum = coupon.min_order_value_cents
    if minimum is not None and subtotal_cents < minimum:
        return 0

    value = int(coupon.discount_value or 0)
    if coupon.discount_type == DISCOUNT_PERCENTAGE:
        pct = min(max(value, 0), 100)
        return (subtotal_cents * pct) // 100
    if coupon.discount_type == DISCOUNT_FIXED:
        return min(max(value, 0), subtotal_cents)
    return 0


def line_total(unit_price_cents: int, qty: int) -> int:
    return unit_price_cents * qty


def order_total(subtotal_cents: int, shipping_cents: int, discount_cents: int) -> int:
    """subtotal + shipping - discount, never below zero."""
    return max(0, subtotal_cents + shipping_cents - discount_cents)


def invoice_totals(line_totals: Iterable[int], delivery_cents: int, discount_cents: int) -> tuple[int, int]:
    """(subtotal_cents, total_cents) for an invoice; total floored at zero."""
    subtotal = sum(line_totals)
    return subtotal, max(0, subtotal + delivery_cents - discount_cents)


def format_zar(cents: int | None) -> str:
    """Display helper: 6000 -> 'R60.00', 123456 -> 'R1234.56'."""
    if cents is None:
        cents = 0
    sign = "-" if cents < 0 else ""
    rands, remainder = divmod(abs(int(cents)), 100)
    return f"{sign}R{rands}.{remainder:02d}"
