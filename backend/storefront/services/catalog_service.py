# Overview: Service-layer catalog reads; resolves cart references into priced, stock-checked lines.

"""
Catalog Snapshot Loader

Turns requested (product, variant, qty) references into authoritative
priced lines read from the catalog tables. Prices are never taken from the
client. Any invalid reference fails the whole batch so a mixed cart can
never produce a partial order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import or_

from ..errors import DomainError
from ..extensions import db
from ..models import Product, ProductVariant
from ..snapshots import VariantSnapshot


class CatalogError(DomainError):
    """Raised when a cart reference is unknown, inactive or unavailable."""
    pass


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    variant_id: int | None
    qty: int
    unit_price_cents: int
    title: str
    variant: VariantSnapshot | None = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.qty

    @property
    def stock_key(self) -> tuple[int, int | None]:
        return (self.product_id, self.variant_id)

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "variantId": self.variant_id,
            "qty": self.qty,
            "unitPriceCents": self.unit_price_cents,
            "lineTotalCents": self.line_total_cents,
            "title": self.title,
            "variant": self.variant.to_dict() if self.variant else None,
        }


def _load_rows(product_ids, variant_ids) -> tuple[dict[int, Product], dict[int, ProductVariant]]:
    """Bulk-load every referenced product and variant (two queries, never N+1)."""
    products = {}
    if product_ids:
        products = {
            p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
        }

    variants = {}
    if variant_ids:
        variants = {
            v.id: v for v in db.session.query(ProductVariant).filter(ProductVariant.id.in_(variant_ids)).all()
        }

    return products, variants


def variant_snapshot_for(variant: ProductVariant) -> VariantSnapshot:
    return VariantSnapshot(
        sku=variant.sku,
        name=variant.name,
        attributes=VariantSnapshot.normalize_attributes(variant.attributes),
    )


def resolve_reference(product: Product | None, variant: ProductVariant | None, product_id: int,
                      variant_id: int | None) -> tuple[int, VariantSnapshot | None]:
    """
    Validate one reference and return (unit_price_cents, variant snapshot).

    A variant owned by a different product is rejected, never silently
    re-pointed at its real owner.
    """
    if product is None or not product.active:
        raise CatalogError(
            "invalid_product",
            f"Product {product_id} not found or inactive",
            details={"product_id": product_id},
        )

    if variant_id is None:
        return product.price_cents, None

    if variant is None or not variant.active or variant.product_id != product.id:
        raise CatalogError(
            "invalid_variant",
            f"Variant {variant_id} not found or inactive",
            details={"product_id": product_id, "variant_id": variant_id},
        )

    price = variant.price_cents_override if variant.price_cents_override is not None else product.price_cents
    return price, variant_snapshot_for(variant)


def available_stock(product: Product, variant: ProductVariant | None) -> int | None:
    """
    Stock that applies to a (product, variant) reference.

    None means the reference has no meaningful stock figure: a product
    with variants referenced without a variant.
    """
    if variant is not None:
        return variant.stock_qty
    if product.has_variants:
        return None
    return product.stock_qty


def load_catalog_snapshot(items: Iterable, *, check_stock: bool = True) -> list[PricedLine]:
    """
    Resolve cart items into priced lines.

    items: objects with product_id, variant_id and qty (see CartItem).

    Raises CatalogError with code invalid_product, invalid_variant or
    out_of_stock (409). Requested quantities are summed per
    (product, variant) before comparing with stock, so two lines for the
    same variant cannot each pass on their own and oversell together.
    """
    items = list(items)
    products, variants = _load_rows(
        {item.product_id for item in items},
        {item.variant_id for item in items if item.variant_id is not None},
    )

    lines: list[PricedLine] = []
    for item in items:
        product = products.get(item.product_id)
        variant = variants.get(item.variant_id) if item.variant_id is not None else None
        unit_price, snapshot = resolve_reference(product, variant, item.product_id, item.variant_id)

        lines.append(PricedLine(
            product_id=product.id,
            variant_id=item.variant_id,
            qty=item.qty,
            unit_price_cents=unit_price,
            title=product.name,
            variant=snapshot,
        ))

    if check_stock:
        requested: dict[tuple[int, int | None], int] = {}
        for line in lines:
            requested[line.stock_key] = requested.get(line.stock_key, 0) + line.qty

        for (product_id, variant_id), qty in requested.items():
            variant = variants.get(variant_id) if variant_id is not None else None
            available = available_stock(products[product_id], variant)
            if available is not None and available < qty:
                raise CatalogError(
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

    return lines


def current_stock_levels(refs: Iterable[tuple[int, int | None]]) -> dict[tuple[int, int | None], int | None]:
    """Bulk lookup of live stock for (product_id, variant_id) pairs."""
    refs = list(refs)
    products, variants = _load_rows({p for p, _ in refs}, {v for _, v in refs if v is not None})

    levels = {}
    for product_id, variant_id in refs:
        product = products.get(product_id)
        if product is None:
            levels[(product_id, variant_id)] = None
            continue
        variant = variants.get(variant_id) if variant_id is not None else None
        if variant_id is not None and variant is None:
            levels[(product_id, variant_id)] = None
            continue
        levels[(product_id, variant_id)] = available_stock(product, variant)
    return levels


def search_invoice_catalog(query: str | None, *, limit: int = 60) -> list[dict]:
    """
    Line picker for the invoice editor.

    Matches product name/slug and variant sku/name case-insensitively.
    Only active rows with stock_qty > 0 are offered: simple products by
    themselves, products with variants through their variants. Exact
    name/sku matches sort first. The stock shown is advisory; nothing is
    held until the invoice is issued.
    """
    q = (query or "").strip()
    if not q:
        return []
    pattern = f"%{q}%"
    wanted = q.lower()

    products = (
        db.session.query(Product)
        .filter(
            Product.active.is_(True),
            Product.has_variants.is_(False),
            Product.stock_qty > 0,
            or_(Product.name.ilike(pattern), Product.slug.ilike(pattern)),
        )
        .limit(limit)
        .all()
    )
    variant_rows = (
        db.session.query(ProductVariant, Product)
        .join(Product, ProductVariant.product_id == Product.id)
        .filter(
            ProductVariant.active.is_(True),
            ProductVariant.stock_qty > 0,
            Product.active.is_(True),
            or_(
                ProductVariant.sku.ilike(pattern),
                ProductVariant.name.ilike(pattern),
                Product.name.ilike(pattern),
            ),
        )
        .limit(limit)
        .all()
    )

    items = []
    for product in products:
        exact = wanted in (product.name.lower(), (product.slug or "").lower())
        items.append((exact, {
            "kind": "simple",
            "product_id": product.id,
            "variant_id": None,
            "title": product.name,
            "variant_name": None,
            "sku": None,
            "stock_qty": product.stock_qty,
            "unit_price_cents_default": product.price_cents,
            "variant_snapshot": {},
        }))
    for variant, product in variant_rows:
        exact = wanted in ((variant.sku or "").lower(), (variant.name or "").lower())
        price, snapshot = resolve_reference(product, variant, product.id, variant.id)
        items.append((exact, {
            "kind": "variant",
            "product_id": product.id,
            "variant_id": variant.id,
            "title": product.name,
            "variant_name": variant.name,
            "sku": variant.sku,
            "stock_qty": variant.stock_qty,
            "unit_price_cents_default": price,
            "variant_snapshot": snapshot.to_dict(),
        }))

    items.sort(key=lambda pair: (not pair[0], pair[1]["title"].lower(), pair[1]["sku"] or ""))
    return [item for _, item in items[:limit]]
