# Overview: Service-layer operations for coupons; lookup, applicability and atomic redemption.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, update

from ..errors import DomainError
from ..extensions import db
from ..models import Coupon
from ..models.promotions import DISCOUNT_PERCENTAGE, DISCOUNT_TYPES
from ..time_utils import to_utc_naive, utcnow
from .concurrency import run_with_retry
from .pricing import calculate_coupon_discount


class CouponError(DomainError):
    """Raised when an explicitly supplied coupon code cannot be used."""
    pass


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _is_capped(coupon: Coupon) -> bool:
    return coupon.max_uses is not None and coupon.max_uses > 0


def find_valid_coupon(code: str, *, now: datetime | None = None) -> Coupon:
    """
    Look up a coupon by code and check it can currently be used.

    Raises CouponError(invalid_coupon) when the code is unknown, inactive,
    expired or has reached max_uses.
    """
    normalized = normalize_code(code)
    coupon = db.session.query(Coupon).filter_by(code=normalized).first() if normalized else None
    if coupon is None or not coupon.active:
        raise CouponError("invalid_coupon", f"Coupon {normalized!r} is not valid", details={"code": normalized})

    now = now or utcnow()
    if coupon.expires_at is not None and to_utc_naive(coupon.expires_at) <= now:
        raise CouponError("invalid_coupon", f"Coupon {normalized!r} has expired", details={"code": normalized})

    if _is_capped(coupon) and (coupon.usage_count or 0) >= coupon.max_uses:
        raise CouponError("invalid_coupon", f"Coupon {normalized!r} is used up", details={"code": normalized})

    return coupon


def apply_coupon(code: str, subtotal_cents: int) -> tuple[Coupon, int]:
    """
    Validate a coupon against a subtotal and return (coupon, discount_cents).

    A coupon that grants nothing on a positive subtotal (e.g. minimum
    order value not met) is coupon_not_applicable.
    """
    coupon = find_valid_coupon(code)
    discount = calculate_coupon_discount(coupon, subtotal_cents)
    if discount <= 0 and subtotal_cents > 0:
        details = {"code": coupon.code}
        if coupon.min_order_value_cents is not None:
            details["min_order_value_cents"] = coupon.min_order_value_cents
        raise CouponError(
            "coupon_not_applicable",
            f"Coupon {coupon.code!r} does not apply to this order",
            details=details,
        )
    return coupon, discount


def redeem_coupon(code: str, *, enforce_cap: bool = True) -> None:
    """
    Count one use of a coupon inside the caller's transaction (no commit).

    The increment is a single conditional UPDATE, so concurrent checkouts
    cannot push usage_count past max_uses. Losing that race raises
    invalid_coupon and the caller's order must not be written.

    enforce_cap=False records a use that has already been paid for.
    """
    normalized = normalize_code(code)
    stmt = update(Coupon).where(Coupon.code == normalized)
    if enforce_cap:
        stmt = stmt.where(
            Coupon.active.is_(True),
            or_(
                Coupon.max_uses.is_(None),
                Coupon.max_uses <= 0,
                Coupon.usage_count < Coupon.max_uses,
            ),
        )
    stmt = stmt.values(usage_count=Coupon.usage_count + 1).execution_options(synchronize_session=False)

    result = db.session.execute(stmt)
    if enforce_cap and not result.rowcount:
        raise CouponError("invalid_coupon", f"Coupon {normalized!r} is used up", details={"code": normalized})


def create_coupon(
    *,
    code: str,
    discount_type: str = DISCOUNT_PERCENTAGE,
    discount_value: int,
    min_order_value_cents: int | None = None,
    max_uses: int | None = None,
    expires_at: datetime | None = None,
    active: bool = True,
) -> Coupon:
    """Create a coupon (back office / CLI)."""
    normalized = normalize_code(code)
    if not normalized:
        raise CouponError("invalid_request", "code is required")
    if discount_type not in DISCOUNT_TYPES:
        raise CouponError("invalid_request", f"discount_type must be one of {', '.join(DISCOUNT_TYPES)}")
    if discount_value < 0:
        raise CouponError("invalid_request", "discount_value must be >= 0")
    if discount_type == DISCOUNT_PERCENTAGE and discount_value > 100:
        raise CouponError("invalid_request", "percentage discount_value must be <= 100")

    def _op():
        if db.session.query(Coupon.id).filter_by(code=normalized).first():
            raise CouponError("duplicate_coupon", f"Coupon {normalized!r} already exists", status_code=409)

        coupon = Coupon(
            code=normalized,
            discount_type=discount_type,
            discount_value=discount_value,
            min_order_value_cents=min_order_value_cents,
            max_uses=max_uses,
            usage_count=0,
            expires_at=to_utc_naive(expires_at),
            active=active,
        )
        db.session.add(coupon)
        db.session.commit()
        return coupon

    return run_with_retry(_op)
