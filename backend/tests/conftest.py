"""
Pytest fixtures for storefront backend tests.

Provides test database setup, fake payment provider / mailer, catalog
factories, and test client.
"""

import pytest
from storefront import create_app
from storefront.extensions import db, MAILER_KEY, PAYMENT_PROVIDER_KEY
from storefront.integrations import HostedCheckout
from storefront.models import Coupon, Product, ProductVariant
from storefront.snapshots import CustomerContact, ShippingAddress
from storefront.validation import CartItem, CheckoutRequest


ADMIN_TOKEN = "test-admin-token"
WEBHOOK_SECRET = "whsec_dGVzdC13ZWJob29rLXNlY3JldA=="


class FakePaymentProvider:
    """Records hosted checkout requests and hands out sequential ids."""

    def __init__(self):
        self.calls = []
        self.fail_with = None

    def create_hosted_checkout(self, *, amount_cents, currency, success_url, cancel_url, failure_url,
                               metadata=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append({
            "amount_cents": amount_cents,
            "currency": currency,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "failure_url": failure_url,
            "metadata": metadata,
        })
        checkout_id = f"ch_test_{len(self.calls)}"
        return HostedCheckout(id=checkout_id, redirect_url=f"https://pay.example/{checkout_id}")


class FakeMailer:
    def __init__(self):
        self.paid = []
        self.bank_transfer = []
        self.fail = False

    def send_order_paid_email(self, order_id):
        if self.fail:
            raise RuntimeError("mail server down")
        self.paid.append(order_id)

    def send_bank_transfer_order_email(self, order_id):
        if self.fail:
            raise RuntimeError("mail server down")
        self.bank_transfer.append(order_id)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADMIN_API_TOKEN': ADMIN_TOKEN,
        'YOCO_WEBHOOK_SECRET': WEBHOOK_SECRET,
        'SITE_URL': 'https://shop.example',
        'DEFAULT_SHIPPING_CENTS': 6000,
        'BANK_TRANSFER_RESERVES_STOCK': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def provider(app):
    fake = FakePaymentProvider()
    app.extensions[PAYMENT_PROVIDER_KEY] = fake
    return fake


@pytest.fixture(scope='function')
def mailer(app):
    fake = FakeMailer()
    app.extensions[MAILER_KEY] = fake
    return fake


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(price_cents=1000, stock_qty=10, ...)."""
    def _make(name="Enamel Mug", price_cents=1000, stock_qty=10, has_variants=False, active=True):
        product = Product(name=name, price_cents=price_cents, stock_qty=stock_qty,
                          has_variants=has_variants, active=active)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_variant(db_session):
    def _make(product, sku="TEE-M", stock_qty=5, price_cents_override=None, attributes=None, active=True):
        variant = ProductVariant(
            product_id=product.id,
            sku=sku,
            name=sku,
            stock_qty=stock_qty,
            price_cents_override=price_cents_override,
            attributes=attributes if attributes is not None else {"size": "M"},
            active=active,
        )
        db_session.add(variant)
        db_session.commit()
        return variant
    return _make


@pytest.fixture(scope='function')
def make_coupon(db_session):
    def _make(code="SAVE20", discount_type="percentage", discount_value=20, min_order_value_cents=None,
              max_uses=None, usage_count=0, expires_at=None, active=True):
        coupon = Coupon(code=code, discount_type=discount_type, discount_value=discount_value,
                        min_order_value_cents=min_order_value_cents, max_uses=max_uses,
                        usage_count=usage_count, expires_at=expires_at, active=active)
        db_session.add(coupon)
        db_session.commit()
        return coupon
    return _make


@pytest.fixture(scope='function')
def customer():
    return CustomerContact(email="thandi@example.co.za", name="Thandi Nkosi", phone="0821234567")


@pytest.fixture(scope='function')
def address():
    return ShippingAddress(line1="12 Long Street", city="Cape Town", province="Western Cape",
                           postal_code="8001")


@pytest.fixture(scope='function')
def make_checkout(customer, address):
    """Factory: make_checkout([(product_id, variant_id, qty), ...], coupon_code=None)."""
    def _make(lines, coupon_code=None):
        items = tuple(CartItem(product_id=p, variant_id=v, qty=q) for p, v, q in lines)
        return CheckoutRequest(customer=customer, shipping_address=address, items=items,
                               coupon_code=coupon_code)
    return _make


def checkout_payload(lines, coupon_code=None, email="thandi@example.co.za"):
    """JSON body accepted by POST /api/orders and /api/payments/yoco/start."""
    body = {
        "customer": {"email": email, "name": "Thandi Nkosi", "phone": "0821234567"},
        "shippingAddress": {
            "line1": "12 Long Street",
            "city": "Cape Town",
            "province": "Western Cape",
            "postal_code": "8001",
        },
        "items": [{"productId": p, "variantId": v, "qty": q} for p, v, q in lines],
    }
    if coupon_code is not None:
        body["couponCode"] = coupon_code
    return body


def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
