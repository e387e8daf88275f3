from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from .errors import DomainError
from .models.settings import PROVINCES
from .snapshots import CustomerContact, InvoiceCustomer, ShippingAddress


# Maximum price: R9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999
MAX_LINE_QTY = 99
MAX_COUPON_CODE_LENGTH = 64

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PROVINCES_BY_KEY = {p.lower(): p for p in PROVINCES}


class ValidationError(DomainError):
    """400-level input problem."""

    def __init__(self, message: str, field: str | None = None):
        details = {"message": message}
        if field:
            details["field"] = field
        super().__init__("invalid_request", message, details=details)


@dataclass(frozen=True)
class CartItem:
    """One requested cart line, not yet checked against the catalog."""
    product_id: int
    variant_id: int | None
    qty: int

    def to_dict(self) -> dict:
        return {"productId": self.product_id, "variantId": self.variant_id, "qty": self.qty}

    @classmethod
    def from_dict(cls, data: dict) -> "CartItem":
        return cls(
            product_id=int(data["productId"]),
            variant_id=int(data["variantId"]) if data.get("variantId") is not None else None,
            qty=int(data["qty"]),
        )


@dataclass(frozen=True)
class CheckoutRequest:
    customer: CustomerContact
    shipping_address: ShippingAddress
    items: tuple[CartItem, ...]
    coupon_code: str | None = None


@dataclass(frozen=True)
class CouponQuoteRequest:
    items: tuple[CartItem, ...]
    coupon_code: str
    province: str


# =============================================================================
# PRIMITIVE COERCION
# =============================================================================

def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """Strict integer coercion: rejects floats, booleans and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field)
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field)
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field)
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field)
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field)
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field)
    else:
        raise ValidationError(f"{field} must be an integer", field)

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", field)
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", field)
    return result


def coerce_optional_int(value: Any, field: str, **kwargs) -> int | None:
    if value is None:
        return None
    return coerce_int(value, field, **kwargs)


def coerce_str(value: Any, field: str, *, required: bool = True, min_length: int = 1,
               max_length: int | None = None) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", field)
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field)
    text = value.strip()
    if not text:
        if required:
            raise ValidationError(f"{field} cannot be blank", field)
        return None
    if len(text) < min_length:
        raise ValidationError(f"{field} must be at least {min_length} characters", field)
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", field)
    return text


def _require_object(payload: Any, field: str = "body") -> dict:
    if not isinstance(payload, dict):
        raise ValidationError(f"{field} must be a JSON object", None if field == "body" else field)
    return payload


def _normalize_province(value: str, field: str) -> str:
    province = _PROVINCES_BY_KEY.get(value.strip().lower())
    if province is None:
        raise ValidationError(f"{field} must be a South African province", field)
    return province


def normalize_coupon_code(value: Any) -> str:
    """Coupon codes are case-insensitive; the canonical form is upper-case."""
    return coerce_str(value, "couponCode", max_length=MAX_COUPON_CODE_LENGTH).upper()


# =============================================================================
# STOREFRONT PAYLOADS
# =============================================================================

def parse_cart_items(raw: Any) -> tuple[CartItem, ...]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list", "items")

    items = []
    for i, entry in enumerate(raw):
        entry = _require_object(entry, f"items[{i}]")
        items.append(CartItem(
            product_id=coerce_int(entry.get("productId"), f"items[{i}].productId", minimum=1),
            variant_id=coerce_optional_int(entry.get("variantId"), f"items[{i}].variantId", minimum=1),
            qty=coerce_int(entry.get("qty"), f"items[{i}].qty", minimum=1, maximum=MAX_LINE_QTY),
        ))
    return tuple(items)


def parse_customer(raw: Any) -> CustomerContact:
    data = _require_object(raw, "customer")
    email = coerce_str(data.get("email"), "customer.email", max_length=255)
    if not _EMAIL_RE.match(email):
        raise ValidationError("customer.email must be a valid email address", "customer.email")
    return CustomerContact(
        email=email.lower(),
        name=coerce_str(data.get("name"), "customer.name", required=False, max_length=255),
        phone=coerce_str(data.get("phone"), "customer.phone", required=False, min_length=5, max_length=32),
    )


def parse_shipping_address(raw: Any) -> ShippingAddress:
    data = _require_object(raw, "shippingAddress")
    return ShippingAddress(
        line1=coerce_str(data.get("line1"), "shippingAddress.line1", max_length=255),
        line2=coerce_str(data.get("line2"), "shippingAddress.line2", required=False, max_length=255),
        city=coerce_str(data.get("city"), "shippingAddress.city", max_length=128),
        province=_normalize_province(
            coerce_str(data.get("province"), "shippingAddress.province"), "shippingAddress.province"
        ),
        postal_code=coerce_str(data.get("postal_code"), "shippingAddress.postal_code", max_length=16),
        country=(coerce_str(data.get("country"), "shippingAddress.country", required=False,
                            min_length=2, max_length=2) or "ZA").upper(),
    )


def parse_checkout_request(payload: Any) -> CheckoutRequest:
    """Validate the cart + address body shared by bank-transfer and card checkout."""
    data = _require_object(payload)
    coupon_raw = data.get("couponCode")
    coupon_code = None
    if coupon_raw is not None and not (isinstance(coupon_raw, str) and not coupon_raw.strip()):
        coupon_code = normalize_coupon_code(coupon_raw)

    return CheckoutRequest(
        customer=parse_customer(data.get("customer")),
        shipping_address=parse_shipping_address(data.get("shippingAddress")),
        items=parse_cart_items(data.get("items")),
        coupon_code=coupon_code,
    )


def parse_coupon_quote_request(payload: Any) -> CouponQuoteRequest:
    data = _require_object(payload)
    return CouponQuoteRequest(
        items=parse_cart_items(data.get("items")),
        coupon_code=normalize_coupon_code(data.get("couponCode")),
        province=_normalize_province(coerce_str(data.get("province"), "province"), "province"),
    )


def parse_pending_checkout_id(payload: Any) -> str:
    data = _require_object(payload)
    return coerce_str(data.get("pendingCheckoutId"), "pendingCheckoutId", max_length=36)


# =============================================================================
# BACK OFFICE PAYLOADS
# =============================================================================

def parse_invoice_create(payload: Any) -> dict:
    data = _require_object(payload or {})
    return {
        "customer_id": coerce_optional_int(data.get("customer_id"), "customer_id", minimum=1),
        "customer_snapshot": InvoiceCustomer.from_dict(
            _require_object(data.get("customer_snapshot") or {}, "customer_snapshot")
        ),
    }


def parse_invoice_patch(payload: Any) -> dict:
    data = _require_object(payload)
    allowed = {"customer_id", "customer_snapshot", "delivery_cents", "discount_cents"}
    unknown = set(data) - allowed
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    patch: dict = {}
    if "customer_id" in data:
        patch["customer_id"] = coerce_optional_int(data["customer_id"], "customer_id", minimum=1)
    if "customer_snapshot" in data:
        patch["customer_snapshot"] = InvoiceCustomer.from_dict(
            _require_object(data["customer_snapshot"], "customer_snapshot")
        )
    for key in ("delivery_cents", "discount_cents"):
        if key in data:
            patch[key] = coerce_int(data[key], key, minimum=0, maximum=MAX_PRICE_CENTS)
    return patch


def parse_invoice_line_create(payload: Any) -> dict:
    data = _require_object(payload)
    return {
        "product_id": coerce_int(data.get("product_id"), "product_id", minimum=1),
        "variant_id": coerce_optional_int(data.get("variant_id"), "variant_id", minimum=1),
        "qty": coerce_int(data.get("qty"), "qty", minimum=1),
        "unit_price_cents": coerce_optional_int(
            data.get("unit_price_cents"), "unit_price_cents", minimum=0, maximum=MAX_PRICE_CENTS
        ),
        "title_snapshot": coerce_str(data.get("title_snapshot"), "title_snapshot", required=False,
                                     max_length=255),
    }


def parse_invoice_line_patch(payload: Any) -> dict:
    data = _require_object(payload)
    qty = coerce_optional_int(data.get("qty"), "qty", minimum=1)
    unit_price = coerce_optional_int(data.get("unit_price_cents"), "unit_price_cents", minimum=0,
                                     maximum=MAX_PRICE_CENTS)
    if qty is None and unit_price is None:
        raise ValidationError("qty or unit_price_cents is required")
    return {"qty": qty, "unit_price_cents": unit_price}
