# Overview: Service-layer operations for delivery pricing; resolves shipping cents by province.

from __future__ import annotations

from flask import current_app

from ..errors import DomainError
from ..extensions import db
from ..models import DeliverySettings, DeliveryProvinceRate
from ..models.settings import DELIVERY_MODE_FLAT, DELIVERY_MODE_PER_PROVINCE, PROVINCES
from .concurrency import run_with_retry


class ShippingSettingsError(DomainError):
    """Raised for invalid delivery settings input."""

    def __init__(self, message: str):
        super().__init__("invalid_delivery_settings", message, details={"message": message})


def _normalize(province: str | None) -> str:
    return (province or "").strip().lower()


def get_delivery_settings() -> DeliverySettings | None:
    """The oldest settings row is authoritative."""
    return db.session.query(DeliverySettings).order_by(DeliverySettings.id.asc()).first()


def get_effective_shipping_cents(province: str | None) -> int:
    """
    Shipping cost in cents for a delivery province.

    - no settings row: DEFAULT_SHIPPING_CENTS
    - flat mode: flat_rate_cents
    - per_province mode: the matching province rate (case-insensitive,
      trimmed), otherwise flat_rate_cents
    """
    settings = get_delivery_settings()
    if settings is None:
        return int(current_app.config["DEFAULT_SHIPPING_CENTS"])

    if settings.mode == DELIVERY_MODE_PER_PROVINCE:
        wanted = _normalize(province)
        if wanted:
            for rate in settings.province_rates:
                if _normalize(rate.province) == wanted:
                    return int(rate.rate_cents)

    return int(settings.flat_rate_cents)


def _get_or_create_settings() -> DeliverySettings:
    settings = get_delivery_settings()
    if settings is None:
        settings = DeliverySettings(
            mode=DELIVERY_MODE_FLAT,
            flat_rate_cents=int(current_app.config["DEFAULT_SHIPPING_CENTS"]),
        )
        db.session.add(settings)
        db.session.flush()
    return settings


def set_flat_rate(rate_cents: int) -> DeliverySettings:
    """Switch to flat mode with the given rate."""
    if rate_cents < 0:
        raise ShippingSettingsError("rate_cents must be >= 0")

    def _op():
        settings = _get_or_create_settings()
        settings.mode = DELIVERY_MODE_FLAT
        settings.flat_rate_cents = rate_cents
        db.session.commit()
        return settings

    return run_with_retry(_op)


def set_province_rate(province: str, rate_cents: int) -> DeliverySettings:
    """Upsert a province override and switch to per_province mode."""
    if rate_cents < 0:
        raise ShippingSettingsError("rate_cents must be >= 0")
    canonical = {_normalize(p): p for p in PROVINCES}.get(_normalize(province))
    if canonical is None:
        raise ShippingSettingsError(f"Unknown province: {province!r}")
    province = canonical

    def _op():
        settings = _get_or_create_settings()
        settings.mode = DELIVERY_MODE_PER_PROVINCE

        existing = next(
            (r for r in settings.province_rates if _normalize(r.province) == _normalize(province)),
            None,
        )
        if existing is None:
            db.session.add(DeliveryProvinceRate(settings_id=settings.id, province=province, rate_cents=rate_cents))
        else:
            existing.rate_cents = rate_cents

        db.session.commit()
        return settings

    return run_with_retry(_op)
