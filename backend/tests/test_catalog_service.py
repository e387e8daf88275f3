# Overview: Pytest coverage for catalog snapshot loading (prices, variants, stock checks).

import pytest

from storefront.services.catalog_service import (
    CatalogError,
    current_stock_levels,
    load_catalog_snapshot,
    search_invoice_catalog,
)
from storefront.validation import CartItem


class TestLoadCatalogSnapshot:

    def test_prices_from_catalog(self, db_session, make_product):
        """Unit price and title always come from the catalog."""
        mug = make_product(price_cents=1000, stock_qty=10)

        lines = load_catalog_snapshot([CartItem(mug.id, None, 2)])

        assert len(lines) == 1
        assert lines[0].unit_price_cents == 1000
        assert lines[0].line_total_cents == 2000
        assert lines[0].title == "Enamel Mug"
        assert lines[0].variant is None

    def test_variant_price_override_and_snapshot(self, db_session, make_product, make_variant):
        tee = make_product(name="Logo Tee", price_cents=25000, has_variants=True, stock_qty=0)
        large = make_variant(tee, sku="TEE-L", price_cents_override=27500, attributes={"size": "L"})

        lines = load_catalog_snapshot([CartItem(tee.id, large.id, 1)])

        assert lines[0].unit_price_cents == 27500
        assert lines[0].variant.sku == "TEE-L"
        assert lines[0].variant.attribute_map == {"size": "L"}

    def test_variant_inherits_product_price(self, db_session, make_product, make_variant):
        tee = make_product(price_cents=25000, has_variants=True, stock_qty=0)
        medium = make_variant(tee)

        lines = load_catalog_snapshot([CartItem(tee.id, medium.id, 1)])
        assert lines[0].unit_price_cents == 25000

    def test_unknown_product(self, db_session):
        with pytest.raises(CatalogError) as exc:
            load_catalog_snapshot([CartItem(999, None, 1)])
        assert exc.value.code == "invalid_product"

    def test_inactive_product(self, db_session, make_product):
        retired = make_product(active=False)
        with pytest.raises(CatalogError) as exc:
            load_catalog_snapshot([CartItem(retired.id, None, 1)])
        assert exc.value.code == "invalid_product"

    def test_variant_of_another_product_rejected(self, db_session, make_product, make_variant):
        """A variant is never re-pointed at its real owner."""
        tee = make_product(name="Tee", has_variants=True, stock_qty=0)
        mug = make_product(name="Mug")
        medium = make_variant(tee)

        with pytest.raises(CatalogError) as exc:
            load_catalog_snapshot([CartItem(mug.id, medium.id, 1)])
        assert exc.value.code == "invalid_variant"

    def test_out_of_stock(self, db_session, make_product):
        mug = make_product(stock_qty=3)

        with pytest.raises(CatalogError) as exc:
            load_catalog_snapshot([CartItem(mug.id, None, 5)])

        assert exc.value.code == "out_of_stock"
        assert exc.value.status_code == 409
        assert exc.value.details == {"product_id": mug.id, "variant_id": None, "requested": 5, "available": 3}

    def test_quantities_aggregated_across_lines(self, db_session, make_product):
        """Two lines of 2 against stock 3 oversell together."""
        mug = make_product(stock_qty=3)

        with pytest.raises(CatalogError) as exc:
            load_catalog_snapshot([CartItem(mug.id, None, 2), CartItem(mug.id, None, 2)])
        assert exc.value.details["requested"] == 4

    def test_stock_check_can_be_skipped(self, db_session, make_product):
        mug = make_product(stock_qty=0)
        lines = load_catalog_snapshot([CartItem(mug.id, None, 5)], check_stock=False)
        assert lines[0].qty == 5

    def test_variant_product_without_variant_skips_stock(self, db_session, make_product):
        tee = make_product(has_variants=True, stock_qty=0)
        lines = load_catalog_snapshot([CartItem(tee.id, None, 1)])
        assert lines[0].unit_price_cents == tee.price_cents


class TestCurrentStockLevels:

    def test_bulk_levels(self, db_session, make_product, make_variant):
        mug = make_product(stock_qty=7)
        tee = make_product(name="Tee", has_variants=True, stock_qty=0)
        medium = make_variant(tee, stock_qty=4)

        levels = current_stock_levels([(mug.id, None), (tee.id, medium.id), (tee.id, None), (999, None)])

        assert levels == {
            (mug.id, None): 7,
            (tee.id, medium.id): 4,
            (tee.id, None): None,
            (999, None): None,
        }


class TestSearchInvoiceCatalog:

    def test_blank_query(self, db_session, make_product):
        make_product()
        assert search_invoice_catalog("  ") == []
        assert search_invoice_catalog(None) == []

    def test_only_active_in_stock_rows(self, db_session, make_product):
        make_product(name="Enamel Mug", stock_qty=3)
        make_product(name="Enamel Bowl", stock_qty=0)
        make_product(name="Enamel Plate", active=False)

        items = search_invoice_catalog("enamel")

        assert [item["title"] for item in items] == ["Enamel Mug"]
        assert items[0]["kind"] == "simple"
        assert items[0]["stock_qty"] == 3
        assert items[0]["unit_price_cents_default"] == 1000

    def test_variants_listed_with_override_price(self, db_session, make_product, make_variant):
        tee = make_product(name="Logo Tee", price_cents=25000, has_variants=True, stock_qty=0)
        make_variant(tee, sku="TEE-M", stock_qty=4)
        make_variant(tee, sku="TEE-L", stock_qty=2, price_cents_override=27500, attributes={"size": "L"})
        make_variant(tee, sku="TEE-XL", stock_qty=0)

        items = search_invoice_catalog("tee")

        assert [item["sku"] for item in items] == ["TEE-L", "TEE-M"]
        assert items[0]["kind"] == "variant"
        assert items[0]["unit_price_cents_default"] == 27500
        assert items[0]["variant_snapshot"]["attributes"] == {"size": "L"}

    def test_exact_sku_first(self, db_session, make_product, make_variant):
        tee = make_product(name="Logo Tee", has_variants=True, stock_qty=0)
        make_variant(tee, sku="TEE-M")
        make_product(name="Tee Towel")

        items = search_invoice_catalog("tee-m")

        assert items[0]["sku"] == "TEE-M"
