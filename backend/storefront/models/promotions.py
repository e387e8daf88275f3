from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED)


class Coupon(db.Model):
    """
    Checkout coupon code.

    code is stored upper-cased; lookups upper-case the input first, which
    makes codes case-insensitive. discount_value is a whole percentage
    (0-100) for "percentage" coupons and cents for "fixed" coupons.
    """
    __tablename__ = "coupons"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_coupons_code"),
        db.CheckConstraint("usage_count >= 0", name="usage_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False)

    discount_type = db.Column(db.String(16), nullable=False, default=DISCOUNT_PERCENTAGE)
    discount_value = db.Column(db.Integer, nullable=False, default=0)

    min_order_value_cents = db.Column(db.Integer, nullable=True)
    max_uses = db.Column(db.Integer, nullable=True)  # NULL or 0 = unlimited
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "min_order_value_cents": self.min_order_value_cents,
            "max_uses": self.max_uses,
            "usage_count": self.usage_count,
            "expires_at": to_utc_z(self.expires_at),
            "active": self.active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
