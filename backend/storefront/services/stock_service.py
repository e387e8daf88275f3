# Overview: Stock ledger; atomic conditional stock updates plus an append-only movement log.

"""
Stock Ledger

Every stock quantity change in the system goes through this module.

- deduct() is a single conditional UPDATE (... WHERE stock_qty >= qty).
  If it matches no row the stock is left untouched and out_of_stock is
  raised. Stock is never read into Python, decremented and written back.
- None of these functions commit. They run inside the caller's
  transaction so the stock change, its StockMovement row and the
  document change that caused it land (or roll back) together.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import update

from ..errors import DomainError
from ..extensions import db
from ..models import Product, ProductVariant, StockMovement


# Movement reasons
REASON_ORDER_PAID = "order_paid"
REASON_ORDER_CANCELLED = "order_cancelled"
REASON_INVOICE_ISSUED = "invoice_issued"
REASON_INVOICE_CANCELLED = "invoice_cancelled"
REASON_INVOICE_LINE_ADDED = "invoice_line_added"
REASON_INVOICE_LINE_CHANGED = "invoice_line_changed"
REASON_INVOICE_LINE_REMOVED = "invoice_line_removed"


class StockError(DomainError):
    """Raised when a stock change cannot be applied."""
    pass


def _target(product_id: int, variant_id: int | None):
    """
    Resolve which row holds the stock for a reference.

    Returns the model class to update, or None when the reference carries
    no stock (a product with variants referenced without a variant).
    """
    if variant_id is not None:
        return ProductVariant

    has_variants = db.session.query(Product.has_variants).filter(Product.id == product_id).scalar()
    if has_variants is None:
        raise StockError("invalid_product", f"Product {product_id} not found", details={"product_id": product_id})
    if has_variants:
        return None
    return Product


def _where(model, product_id: int, variant_id: int | None):
    if model is ProductVariant:
        return [ProductVariant.id == variant_id, ProductVariant.product_id == product_id]
    return [Product.id == product_id]


def _record(product_id, variant_id, delta, reason, reference_type, reference_id) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        variant_id=variant_id,
        quantity_delta=delta,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.session.add(movement)
    return movement


def _require_positive(qty: int) -> None:
    if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
        raise StockError("invalid_quantity", "Quantity must be a positive integer", details={"qty": qty})


def deduct(
    product_id: int,
    variant_id: int | None,
    qty: int,
    *,
    reason: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> StockMovement | None:
    """
    Take qty units out of stock.

    Raises StockError(out_of_stock, 409) if fewer than qty units are
    available at the moment of the update; nothing is changed in that case.
    """
    _require_positive(qty)
    model = _target(product_id, variant_id)
    if model is None:
        return None

    stmt = (
        update(model)
        .where(*_where(model, product_id, variant_id), model.stock_qty >= qty)
        .values(stock_qty=model.stock_qty - qty)
    )
    result = db.session.execute(stmt)

    if not result.rowcount:
        available = (
            db.session.query(model.stock_qty)
            .filter(*_where(model, product_id, variant_id))
            .scalar()
        )
        if available is None:
            raise StockError(
                "invalid_variant",
                f"Variant {variant_id} not found for product {product_id}",
                details={"product_id": product_id, "variant_id": variant_id},
            )
        raise StockError(
            "out_of_stock",
            f"Insufficient stock for product {product_id}",
            status_code=409,
            details={
                "product_id": product_id,
                "variant_id": variant_id,
                "requested": qty,
                "available": available,
            },
        )

    return _record(product_id, variant_id, -qty, reason, reference_type, reference_id)


def restore(
    product_id: int,
    variant_id: int | None,
    qty: int,
    *,
    reason: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> StockMovement | None:
    """Put qty units back into stock."""
    _require_positive(qty)
    model = _target(product_id, variant_id)
    if model is None:
        return None

    stmt = (
        update(model)
        .where(*_where(model, product_id, variant_id))
        .values(stock_qty=model.stock_qty + qty)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise StockError(
            "invalid_variant",
            f"Variant {variant_id} not found for product {product_id}",
            details={"product_id": product_id, "variant_id": variant_id},
        )

    return _record(product_id, variant_id, qty, reason, reference_type, reference_id)


def adjust_delta(
    product_id: int,
    variant_id: int | None,
    old_qty: int,
    new_qty: int,
    *,
    reason: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> StockMovement | None:
    """
    Apply the stock effect of a quantity change from old_qty to new_qty.

    An increase deducts the difference (and can fail with out_of_stock);
    a decrease restores it; no change is a no-op.
    """
    delta = new_qty - old_qty
    kwargs = {"reason": reason, "reference_type": reference_type, "reference_id": reference_id}
    if delta > 0:
        return deduct(product_id, variant_id, delta, **kwargs)
    if delta < 0:
        return restore(product_id, variant_id, -delta, **kwargs)
    return None


def deduct_lines(lines: Iterable, *, reason: str, reference_type: str, reference_id: int) -> None:
    """Deduct every line (objects with product_id, variant_id, qty); all or nothing within the transaction."""
    for line in lines:
        deduct(line.product_id, line.variant_id, line.qty,
               reason=reason, reference_type=reference_type, reference_id=reference_id)


def restore_lines(lines: Iterable, *, reason: str, reference_type: str, reference_id: int) -> None:
    for line in lines:
        restore(line.product_id, line.variant_id, line.qty,
                reason=reason, reference_type=reference_type, reference_id=reference_id)


def list_movements(*, reference_type: str | None = None, reference_id: int | None = None) -> list[StockMovement]:
    query = db.session.query(StockMovement)
    if reference_type is not None:
        query = query.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        query = query.filter(StockMovement.reference_id == reference_id)
    return query.order_by(StockMovement.id.asc()).all()
