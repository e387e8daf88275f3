# Overview: Pytest coverage for delivery pricing and settings.

import pytest

from storefront.services import shipping_service
from storefront.services.shipping_service import ShippingSettingsError


class TestEffectiveShipping:

    def test_default_when_no_settings(self, db_session):
        """No settings row falls back to DEFAULT_SHIPPING_CENTS."""
        assert shipping_service.get_effective_shipping_cents("Gauteng") == 6000
        assert shipping_service.get_effective_shipping_cents(None) == 6000

    def test_flat_rate(self, db_session):
        shipping_service.set_flat_rate(4500)
        assert shipping_service.get_effective_shipping_cents("Gauteng") == 4500
        assert shipping_service.get_effective_shipping_cents("Limpopo") == 4500

    def test_per_province_matches_case_insensitively(self, db_session):
        shipping_service.set_flat_rate(6000)
        shipping_service.set_province_rate("Western Cape", 8000)

        assert shipping_service.get_effective_shipping_cents("western cape") == 8000
        assert shipping_service.get_effective_shipping_cents("  WESTERN CAPE ") == 8000

    def test_per_province_falls_back_to_flat_rate(self, db_session):
        shipping_service.set_flat_rate(5000)
        shipping_service.set_province_rate("Western Cape", 8000)

        assert shipping_service.get_effective_shipping_cents("Gauteng") == 5000
        assert shipping_service.get_effective_shipping_cents(None) == 5000


class TestDeliverySettings:

    def test_province_rate_upserts(self, db_session):
        shipping_service.set_province_rate("gauteng", 3000)
        settings = shipping_service.set_province_rate("Gauteng", 3500)

        assert settings.mode == "per_province"
        assert [(r.province, r.rate_cents) for r in settings.province_rates] == [("Gauteng", 3500)]

    def test_flat_rate_switches_mode_back(self, db_session):
        shipping_service.set_province_rate("Gauteng", 3000)
        settings = shipping_service.set_flat_rate(7000)

        assert settings.mode == "flat"
        assert shipping_service.get_effective_shipping_cents("Gauteng") == 7000

    def test_unknown_province_rejected(self, db_session):
        with pytest.raises(ShippingSettingsError):
            shipping_service.set_province_rate("Atlantis", 1000)

    def test_negative_rate_rejected(self, db_session):
        with pytest.raises(ShippingSettingsError):
            shipping_service.set_flat_rate(-1)
