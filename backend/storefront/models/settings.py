from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


DELIVERY_MODE_FLAT = "flat"
DELIVERY_MODE_PER_PROVINCE = "per_province"

PROVINCES = (
    "Western Cape",
    "Eastern Cape",
    "Northern Cape",
    "Gauteng",
    "KwaZulu-Natal",
    "Limpopo",
    "Mpumalanga",
    "North West",
    "Free State",
)


class DeliverySettings(db.Model):
    """
    Store-wide delivery pricing.

    The oldest row is authoritative. In per_province mode a matching
    DeliveryProvinceRate overrides flat_rate_cents.
    """
    __tablename__ = "delivery_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    mode = db.Column(db.String(16), nullable=False, default=DELIVERY_MODE_FLAT)
    flat_rate_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    province_rates = db.relationship("DeliveryProvinceRate", backref="settings", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "mode": self.mode,
            "flat_rate_cents": self.flat_rate_cents,
            "province_rates": {r.province: r.rate_cents for r in self.province_rates},
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DeliveryProvinceRate(db.Model):
    __tablename__ = "delivery_province_rates"
    __table_args__ = (
        db.UniqueConstraint("settings_id", "province", name="uq_delivery_province_rates_settings_province"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    settings_id = db.Column(db.Integer, db.ForeignKey("delivery_settings.id"), nullable=False, index=True)
    province = db.Column(db.String(64), nullable=False)
    rate_cents = db.Column(db.Integer, nullable=False)
