# Overview: Pytest coverage for coupon validation, applicability and redemption.

from datetime import timedelta

import pytest

from storefront.extensions import db
from storefront.models import Coupon
from storefront.services import coupon_service
from storefront.services.coupon_service import CouponError
from storefront.time_utils import utcnow


class TestFindValidCoupon:

    def test_lookup_is_case_insensitive(self, db_session, make_coupon):
        make_coupon(code="SAVE20")
        assert coupon_service.find_valid_coupon("  save20 ").code == "SAVE20"

    @pytest.mark.parametrize("overrides", [
        {"active": False},
        {"max_uses": 5, "usage_count": 5},
    ])
    def test_unusable_coupons(self, db_session, make_coupon, overrides):
        make_coupon(code="SAVE20", **overrides)
        with pytest.raises(CouponError) as exc:
            coupon_service.find_valid_coupon("SAVE20")
        assert exc.value.code == "invalid_coupon"

    def test_expired(self, db_session, make_coupon):
        make_coupon(code="OLD", expires_at=utcnow() - timedelta(days=1))
        with pytest.raises(CouponError) as exc:
            coupon_service.find_valid_coupon("OLD")
        assert exc.value.code == "invalid_coupon"

    def test_expiring_now_is_rejected(self, db_session, make_coupon):
        now = utcnow()
        make_coupon(code="EDGE", expires_at=now)
        with pytest.raises(CouponError) as exc:
            coupon_service.find_valid_coupon("EDGE", now=now)
        assert exc.value.code == "invalid_coupon"

    def test_unknown(self, db_session):
        with pytest.raises(CouponError) as exc:
            coupon_service.find_valid_coupon("NOPE")
        assert exc.value.code == "invalid_coupon"

    def test_zero_max_uses_is_unlimited(self, db_session, make_coupon):
        make_coupon(code="FOREVER", max_uses=0, usage_count=1000)
        assert coupon_service.find_valid_coupon("FOREVER").code == "FOREVER"


class TestApplyCoupon:

    def test_discount(self, db_session, make_coupon):
        make_coupon(code="SAVE20", discount_value=20)
        coupon, discount = coupon_service.apply_coupon("save20", 2000)
        assert coupon.code == "SAVE20"
        assert discount == 400

    def test_minimum_not_met(self, db_session, make_coupon):
        make_coupon(code="BIG", min_order_value_cents=50000)
        with pytest.raises(CouponError) as exc:
            coupon_service.apply_coupon("BIG", 2000)
        assert exc.value.code == "coupon_not_applicable"
        assert exc.value.details["min_order_value_cents"] == 50000


class TestRedeemCoupon:

    def test_increments_usage(self, db_session, make_coupon):
        coupon = make_coupon(code="SAVE20")
        coupon_service.redeem_coupon("save20")
        db.session.commit()

        assert db.session.get(Coupon, coupon.id).usage_count == 1

    def test_cap_enforced(self, db_session, make_coupon):
        coupon = make_coupon(code="LAST", max_uses=1, usage_count=1)
        with pytest.raises(CouponError) as exc:
            coupon_service.redeem_coupon("LAST")
        assert exc.value.code == "invalid_coupon"
        db.session.rollback()

        assert db.session.get(Coupon, coupon.id).usage_count == 1

    def test_paid_redemption_ignores_cap(self, db_session, make_coupon):
        coupon = make_coupon(code="LAST", max_uses=1, usage_count=1)
        coupon_service.redeem_coupon("LAST", enforce_cap=False)
        db.session.commit()

        assert db.session.get(Coupon, coupon.id).usage_count == 2


class TestCreateCoupon:

    def test_create(self, db_session):
        coupon = coupon_service.create_coupon(code="winter", discount_type="fixed", discount_value=5000)
        assert coupon.code == "WINTER"
        assert coupon.usage_count == 0

    def test_duplicate(self, db_session, make_coupon):
        make_coupon(code="WINTER")
        with pytest.raises(CouponError) as exc:
            coupon_service.create_coupon(code="Winter", discount_value=10)
        assert exc.value.code == "duplicate_coupon"
        assert exc.value.status_code == 409

    def test_percentage_over_100_rejected(self, db_session):
        with pytest.raises(CouponError):
            coupon_service.create_coupon(code="TOO-MUCH", discount_value=150)
