# Overview: Pytest coverage for the Flask CLI command groups.

from datetime import timedelta

import pytest

from storefront.extensions import db
from storefront.models import Coupon, Product, ProductVariant
from storefront.services import shipping_service
from storefront.services.checkout_service import start_card_checkout
from storefront.time_utils import utcnow


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestShopCommands:

    def test_seed_demo(self, runner, db_session):
        result = runner.invoke(args=["shop", "seed-demo"])

        assert "PASS Seeded 2 products" in result.output
        assert db.session.query(Product).count() == 2
        large = db.session.query(ProductVariant).filter_by(sku="TEE-L").one()
        assert large.price_cents_override == 27500

    def test_seed_demo_skips_existing_catalog(self, runner, make_product):
        make_product()

        result = runner.invoke(args=["shop", "seed-demo"])

        assert "skipping" in result.output
        assert db.session.query(Product).count() == 1


class TestCouponCommands:

    def test_create(self, runner, db_session):
        result = runner.invoke(args=[
            "coupons", "create", "--code", "winter10", "--type", "fixed", "--value", "1000",
            "--min-order", "5000", "--expires", "2030-06-30T23:59Z",
        ])

        assert "PASS Created coupon WINTER10" in result.output
        coupon = db.session.query(Coupon).filter_by(code="WINTER10").one()
        assert (coupon.discount_type, coupon.discount_value, coupon.min_order_value_cents) == ("fixed", 1000, 5000)
        assert coupon.expires_at.year == 2030

    def test_duplicate(self, runner, make_coupon):
        make_coupon(code="SAVE20")

        result = runner.invoke(args=["coupons", "create", "--code", "save20", "--value", "20"])

        assert "FAIL duplicate_coupon" in result.output

    def test_percentage_over_100(self, runner, db_session):
        result = runner.invoke(args=["coupons", "create", "--code", "HUGE", "--value", "150"])

        assert "FAIL invalid_request" in result.output
        assert db.session.query(Coupon).count() == 0

    def test_bad_expiry(self, runner, db_session):
        result = runner.invoke(args=["coupons", "create", "--code", "X", "--value", "5", "--expires", "soon"])

        assert "FAIL Invalid --expires value" in result.output


class TestDeliveryCommands:

    def test_set_flat(self, runner, db_session):
        result = runner.invoke(args=["delivery", "set-flat", "4500"])

        assert "PASS Flat delivery rate set to R45.00" in result.output
        assert shipping_service.get_effective_shipping_cents("Gauteng") == 4500

    def test_set_province(self, runner, db_session):
        runner.invoke(args=["delivery", "set-flat", "4500"])
        result = runner.invoke(args=["delivery", "set-province", "western cape", "8000"])

        assert "PASS" in result.output
        assert shipping_service.get_effective_shipping_cents("Western Cape") == 8000

    def test_unknown_province(self, runner, db_session):
        result = runner.invoke(args=["delivery", "set-province", "Atlantis", "8000"])

        assert "FAIL invalid_delivery_settings" in result.output


class TestCheckoutCommands:

    def test_no_stale(self, runner, db_session):
        result = runner.invoke(args=["checkouts", "stale"])

        assert "No stale checkouts." in result.output

    def test_lists_old_initiated_checkouts(self, runner, provider, make_product, make_checkout):
        mug = make_product()
        pending, _ = start_card_checkout(make_checkout([(mug.id, None, 1)]), provider=provider)
        pending.created_at = utcnow() - timedelta(hours=48)
        db.session.commit()

        listed = runner.invoke(args=["checkouts", "stale"])
        recent = runner.invoke(args=["checkouts", "stale", "--hours", "72"])

        assert pending.id in listed.output
        assert "ch_test_1" in listed.output
        assert "1 stale checkout(s)" in listed.output
        assert "No stale checkouts." in recent.output
