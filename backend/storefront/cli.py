# Overview: Flask CLI command groups for bootstrap, back office setup, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Bootstrap:
# - python -m flask shop init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask shop seed-demo
#   Insert a small demo catalog (skipped when products already exist).
#
# Coupons:
# - python -m flask coupons create --code SAVE20 --type percentage --value 20 [--min-order 10000] [--max-uses 50] [--expires 2026-12-31T23:59Z]
#   Create a coupon (codes are stored upper-cased).
#
# Delivery:
# - python -m flask delivery set-flat 6000
#   Charge one flat rate for every province.
# - python -m flask delivery set-province "Western Cape" 8000
#   Set a province rate and switch to per-province mode.
#
# Maintenance:
# - python -m flask checkouts stale [--hours 24]
#   List initiated card checkouts older than the threshold.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Product, ProductVariant
from .models.promotions import DISCOUNT_PERCENTAGE, DISCOUNT_TYPES
from .services import checkout_service, coupon_service, shipping_service
from .services.pricing import format_zar
from .time_utils import parse_iso_datetime, to_utc_z


@click.group('shop')
def shop_group():
    """Database bootstrap commands."""


@shop_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left untouched)."""
    db.create_all()
    click.echo("PASS Database tables created")


@shop_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Insert a demo catalog: one simple product and one product with variants.

    Does nothing when the catalog already has products.
    """
    if db.session.query(Product.id).first():
        click.echo("WARN Catalog already has products, skipping...")
        return

    mug = Product(name="Enamel Mug", slug="enamel-mug", price_cents=1000, stock_qty=25)
    tee = Product(name="Logo T-Shirt", slug="logo-t-shirt", price_cents=25000, has_variants=True)
    db.session.add_all([mug, tee])
    db.session.flush()

    db.session.add_all([
        ProductVariant(product_id=tee.id, sku="TEE-S", name="Small", stock_qty=10,
                       attributes={"size": "S"}),
        ProductVariant(product_id=tee.id, sku="TEE-M", name="Medium", stock_qty=10,
                       attributes={"size": "M"}),
        ProductVariant(product_id=tee.id, sku="TEE-L", name="Large", stock_qty=5,
                       price_cents_override=27500, attributes={"size": "L"}),
    ])
    db.session.commit()
    click.echo(f"PASS Seeded 2 products (IDs: {mug.id}, {tee.id}) and 3 variants")


# =============================================================================
# COUPONS
# =============================================================================

@click.group('coupons')
def coupons_group():
    """Coupon management commands."""


@coupons_group.command('create')
@click.option('--code', required=True, help='Coupon code (case-insensitive)')
@click.option('--type', 'discount_type', type=click.Choice(DISCOUNT_TYPES), default=DISCOUNT_PERCENTAGE,
              show_default=True, help='percentage (0-100) or fixed (cents)')
@click.option('--value', 'discount_value', type=int, required=True, help='Percentage or cents')
@click.option('--min-order', 'min_order_value_cents', type=int, default=None, help='Minimum subtotal in cents')
@click.option('--max-uses', type=int, default=None, help='Usage cap (0 or omitted = unlimited)')
@click.option('--expires', default=None, help='ISO-8601 expiry, e.g. 2026-12-31T23:59Z')
@click.option('--inactive', is_flag=True, help='Create the coupon disabled')
@with_appcontext
def create_coupon_cmd(code, discount_type, discount_value, min_order_value_cents, max_uses, expires, inactive):
    """Create a coupon."""
    try:
        expires_at = parse_iso_datetime(expires)
    except ValueError:
        click.echo(f"FAIL Invalid --expires value: {expires}")
        return

    try:
        coupon = coupon_service.create_coupon(
            code=code,
            discount_type=discount_type,
            discount_value=discount_value,
            min_order_value_cents=min_order_value_cents,
            max_uses=max_uses,
            expires_at=expires_at,
            active=not inactive,
        )
    except DomainError as e:
        click.echo(f"FAIL {e.code}: {e}")
        return

    click.echo(f"PASS Created coupon {coupon.code} ({coupon.discount_type} {coupon.discount_value})")


# =============================================================================
# DELIVERY
# =============================================================================

@click.group('delivery')
def delivery_group():
    """Delivery fee settings."""


@delivery_group.command('set-flat')
@click.argument('rate_cents', type=int)
@with_appcontext
def set_flat(rate_cents):
    """Charge RATE_CENTS for every order regardless of province."""
    try:
        shipping_service.set_flat_rate(rate_cents)
    except DomainError as e:
        click.echo(f"FAIL {e.code}: {e}")
        return
    click.echo(f"PASS Flat delivery rate set to {format_zar(rate_cents)}")


@delivery_group.command('set-province')
@click.argument('province')
@click.argument('rate_cents', type=int)
@with_appcontext
def set_province(province, rate_cents):
    """Set PROVINCE's delivery rate and switch to per-province mode."""
    try:
        shipping_service.set_province_rate(province, rate_cents)
    except DomainError as e:
        click.echo(f"FAIL {e.code}: {e}")
        return
    click.echo(f"PASS {province.strip()} delivery rate set to {format_zar(rate_cents)}")


# =============================================================================
# MAINTENANCE
# =============================================================================

@click.group('checkouts')
def checkouts_group():
    """Card checkout maintenance."""


@checkouts_group.command('stale')
@click.option('--hours', type=int, default=None, help='Age threshold (default PENDING_CHECKOUT_MAX_AGE_HOURS)')
@with_appcontext
def stale_checkouts(hours):
    """List initiated checkouts past the age threshold."""
    max_age = timedelta(hours=hours) if hours is not None else None
    stale = checkout_service.list_stale_checkouts(max_age)

    if not stale:
        click.echo("No stale checkouts.")
        return

    click.echo(f"{'ID':<38} {'Created':<22} {'Amount':>12} {'Provider ID':<24} Email")
    click.echo("-" * 110)
    for pending in stale:
        click.echo(
            f"{pending.id:<38} {to_utc_z(pending.created_at):<22} {format_zar(pending.amount_cents):>12} "
            f"{pending.checkout_id or '-':<24} {pending.customer_email}"
        )
    click.echo(f"\n{len(stale)} stale checkout(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(shop_group)
    app.cli.add_command(coupons_group)
    app.cli.add_command(delivery_group)
    app.cli.add_command(checkouts_group)
