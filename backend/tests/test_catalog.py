"""
Product catalog tests.
"""

from datetime import date, timedelta

import pytest

from dairy_pos.errors import ValidationError, NotFound, InternalError
from dairy_pos.models import Product, LedgerEntry


class TestCreateProduct:
    def test_opening_stock_is_booked_through_the_ledger(self, make_product, stock_of, entries_for):
        product = make_product(stock=12)

        [entry] = entries_for(product.id)
        assert entry.type == "In"
        assert entry.reason == "Opening stock"
        assert entry.previous_stock == 0
        assert entry.new_stock == 12
        assert stock_of(product.id) == 12

    def test_product_without_stock_has_no_entries(self, make_product, stock_of, entries_for):
        product = make_product()

        assert stock_of(product.id) == 0
        assert entries_for(product.id) == []
        assert product.min_stock_level == 10
        assert product.is_active is True

    def test_missing_required_fields(self, catalog):
        with pytest.raises(ValidationError) as exc:
            catalog.create_product({"name": "Kefir", "category": "Milk"})

        assert exc.value.details["fields"] == ["cost_cents", "price_cents", "unit"]

    @pytest.mark.parametrize("performed_by", ["", "   ", None])
    def test_blank_performer_writes_nothing(self, catalog, db_session, performed_by):
        patch = {
            "name": "Kefir", "category": "Milk", "price_cents": 250,
            "cost_cents": 90, "unit": "Liter", "stock_quantity": 5,
        }

        with pytest.raises(ValidationError):
            catalog.create_product(patch, performed_by=performed_by)

        assert db_session.query(Product).count() == 0
        assert db_session.query(LedgerEntry).count() == 0

    def test_failed_opening_entry_rolls_back_product(self, catalog, db_session, monkeypatch):
        def fail(*args, **kwargs):
            raise InternalError("storage failure")

        monkeypatch.setattr(catalog.ledger, "post_entry", fail)

        with pytest.raises(InternalError):
            catalog.create_product({
                "name": "Kefir", "category": "Milk", "price_cents": 250,
                "cost_cents": 90, "unit": "Liter", "stock_quantity": 5,
            })

        assert db_session.query(Product).count() == 0

    @pytest.mark.parametrize("overrides", [
        {"category": "Bread"},
        {"unit": "Gallon"},
        {"price_cents": -1},
        {"cost_cents": -5},
        {"stock": -1},
        {"min_stock_level": -1},
    ])
    def test_rejects_invalid_fields(self, make_product, db_session, overrides):
        with pytest.raises(ValidationError):
            make_product(**overrides)


class TestUpdateProduct:
    def test_update_fields(self, catalog, make_product):
        product = make_product(price_cents=300)
        version = product.version_id

        updated = catalog.update_product(product.id, {"price_cents": 325, "supplier": "Valley Farms"})

        assert updated.price_cents == 325
        assert updated.supplier == "Valley Farms"
        assert updated.version_id > version

    def test_stock_quantity_cannot_be_patched(self, catalog, make_product, stock_of):
        product = make_product(stock=7)

        with pytest.raises(ValidationError):
            catalog.update_product(product.id, {"stock_quantity": 100})

        assert stock_of(product.id) == 7

    def test_update_unknown_product(self, catalog, db_session):
        with pytest.raises(NotFound):
            catalog.update_product(31337, {"price_cents": 1})


class TestDeactivateProduct:
    def test_soft_delete_keeps_history(self, catalog, make_product, entries_for):
        product = make_product(stock=3)

        catalog.deactivate_product(product.id)

        assert product.id not in [p.id for p in catalog.list_products()]
        assert product.id in [p.id for p in catalog.list_products(include_inactive=True)]
        assert catalog.get_product(product.id).is_active is False
        assert len(entries_for(product.id)) == 1

    def test_get_unknown_product(self, catalog, db_session):
        with pytest.raises(NotFound):
            catalog.get_product(55555)


class TestAlerts:
    def test_low_stock_lists_active_products_at_or_below_minimum(self, catalog, make_product):
        at_min = make_product(name="At Min", stock=10)
        below = make_product(name="Below", stock=2)
        make_product(name="Plenty", stock=11)
        retired = make_product(name="Retired", stock=0)
        catalog.deactivate_product(retired.id)

        low = catalog.low_stock_products()

        assert [p.id for p in low] == [below.id, at_min.id]

    def test_expiring_products_within_window(self, catalog, make_product):
        today = date(2024, 6, 1)
        soon = make_product(name="Soon", expiry_date=today + timedelta(days=3))
        expired = make_product(name="Expired", expiry_date=today - timedelta(days=1))
        make_product(name="Later", expiry_date=today + timedelta(days=30))
        make_product(name="No Date")

        expiring = catalog.expiring_products(within_days=7, today=today)

        assert [p.id for p in expiring] == [expired.id, soon.id]

    def test_list_filters_by_category(self, catalog, make_product):
        milk = make_product(name="Milk")
        make_product(name="Gouda", category="Cheese", unit="Kilogram")

        assert [p.id for p in catalog.list_products(category="Milk")] == [milk.id]
