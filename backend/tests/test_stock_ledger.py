"""
Stock ledger tests.

Every stock mutation appends exactly one entry whose snapshot matches the
product's stock before and after; rejected mutations leave both untouched.
"""

import pytest

from dairy_pos.errors import ValidationError, NotFound, InvariantViolation, InternalError
from dairy_pos.models import LedgerEntry
from dairy_pos.services.reconcile_service import reconcile_ledger


class TestReceiveStock:
    def test_receive_increments_stock_and_appends_in_entry(self, ledger, make_product, stock_of, entries_for):
        product = make_product(stock=10)
        before = len(entries_for(product.id))

        entry = ledger.receive_stock(
            product.id, 5, reason="Delivery", performed_by="alice", reference="INV-100"
        )

        assert entry.type == "In"
        assert entry.quantity == 5
        assert entry.previous_stock == 10
        assert entry.new_stock == 15
        assert entry.reference == "INV-100"
        assert entry.performed_by == "alice"
        assert stock_of(product.id) == 15
        assert len(entries_for(product.id)) == before + 1

    @pytest.mark.parametrize("quantity", [0, -1, 2.5, True, "3"])
    def test_receive_rejects_non_positive_or_non_integer_quantity(self, ledger, make_product, stock_of, entries_for, quantity):
        product = make_product(stock=10)

        with pytest.raises(ValidationError):
            ledger.receive_stock(product.id, quantity, reason="Delivery", performed_by="alice")

        assert stock_of(product.id) == 10
        assert len(entries_for(product.id)) == 1

    @pytest.mark.parametrize("reason,performed_by", [("", "alice"), ("Delivery", "   "), (None, "alice")])
    def test_receive_requires_reason_and_performer(self, ledger, make_product, stock_of, reason, performed_by):
        product = make_product(stock=3)

        with pytest.raises(ValidationError):
            ledger.receive_stock(product.id, 1, reason=reason, performed_by=performed_by)

        assert stock_of(product.id) == 3

    def test_receive_unknown_product(self, ledger, db_session):
        with pytest.raises(NotFound):
            ledger.receive_stock(999999, 1, reason="Delivery", performed_by="alice")

        assert db_session.query(LedgerEntry).count() == 0

    def test_inactive_product_still_accepts_stock_operations(self, ledger, catalog, make_product, stock_of):
        product = make_product(stock=2)
        catalog.deactivate_product(product.id)

        ledger.receive_stock(product.id, 3, reason="Return from shelf", performed_by="alice")

        assert stock_of(product.id) == 5


class TestAdjustStock:
    def test_negative_adjustment_within_stock(self, ledger, make_product, stock_of):
        product = make_product(stock=5)

        entry = ledger.adjust_stock(product.id, -3, reason="Count correction", performed_by="bob")

        assert entry.type == "Adjustment"
        assert entry.quantity == -3
        assert entry.previous_stock == 5
        assert entry.new_stock == 2
        assert stock_of(product.id) == 2

    def test_positive_adjustment(self, ledger, make_product, stock_of):
        product = make_product(stock=5)

        entry = ledger.adjust_stock(product.id, 4, reason="Found in back room", performed_by="bob")

        assert entry.new_stock == 9
        assert stock_of(product.id) == 9

    def test_adjustment_below_zero_is_rejected(self, ledger, make_product, stock_of, entries_for):
        product = make_product(stock=5)

        with pytest.raises(InvariantViolation) as exc:
            ledger.adjust_stock(product.id, -10, reason="Count correction", performed_by="bob")

        assert exc.value.message == "Insufficient stock for adjustment"
        assert exc.value.details["requested_quantity"] == 10
        assert exc.value.details["available_quantity"] == 5
        assert stock_of(product.id) == 5
        assert len(entries_for(product.id)) == 1

    def test_adjustment_to_exactly_zero_is_allowed(self, ledger, make_product, stock_of):
        product = make_product(stock=5)

        ledger.adjust_stock(product.id, -5, reason="Count correction", performed_by="bob")

        assert stock_of(product.id) == 0

    def test_zero_adjustment_is_rejected(self, ledger, make_product, entries_for):
        product = make_product(stock=5)

        with pytest.raises(ValidationError):
            ledger.adjust_stock(product.id, 0, reason="Nothing", performed_by="bob")

        assert len(entries_for(product.id)) == 1


class TestRecordLoss:
    def test_expiry_loss_decrements_stock(self, ledger, make_product, stock_of):
        product = make_product(stock=10)

        entry = ledger.record_loss(product.id, 4, "Expiry", reason="Past date", performed_by="carol")

        assert entry.type == "Expiry"
        assert entry.quantity == 4
        assert entry.previous_stock == 10
        assert entry.new_stock == 6
        assert stock_of(product.id) == 6

    def test_damage_loss_larger_than_stock_is_rejected(self, ledger, make_product, stock_of, entries_for):
        product = make_product(stock=10)

        with pytest.raises(InvariantViolation) as exc:
            ledger.record_loss(product.id, 20, "Damage", reason="Dropped crate", performed_by="carol")

        assert exc.value.details["requested_quantity"] == 20
        assert exc.value.details["available_quantity"] == 10
        assert stock_of(product.id) == 10
        assert [e.type for e in entries_for(product.id)] == ["In"]

    @pytest.mark.parametrize("loss_type", ["In", "Out", "Adjustment", "Theft", None])
    def test_loss_type_must_be_expiry_or_damage(self, ledger, make_product, stock_of, loss_type):
        product = make_product(stock=10)

        with pytest.raises(ValidationError):
            ledger.record_loss(product.id, 1, loss_type, reason="Gone", performed_by="carol")

        assert stock_of(product.id) == 10


class TestLedgerHistory:
    def test_entries_form_an_unbroken_chain(self, ledger, make_product, stock_of, entries_for):
        product = make_product(stock=10)
        ledger.receive_stock(product.id, 5, reason="Delivery", performed_by="alice")
        ledger.adjust_stock(product.id, -2, reason="Count", performed_by="bob")
        ledger.record_loss(product.id, 3, "Damage", reason="Broken", performed_by="carol")

        entries = entries_for(product.id)
        assert [e.type for e in entries] == ["In", "In", "Adjustment", "Damage"]

        balance = 0
        for entry in entries:
            assert entry.previous_stock == balance
            assert entry.new_stock == entry.previous_stock + entry.effect
            balance = entry.new_stock

        assert stock_of(product.id) == balance == 10
        assert reconcile_ledger(ledger.session) == []

    def test_list_entries_newest_first_and_filtered(self, ledger, make_product):
        milk = make_product(name="Whole Milk", stock=1)
        cheese = make_product(name="Cheddar", stock=2, category="Cheese", unit="Kilogram")
        ledger.receive_stock(milk.id, 1, reason="Delivery", performed_by="alice")

        milk_entries = ledger.list_entries(product_id=milk.id)
        assert [e.new_stock for e in milk_entries] == [2, 1]

        all_entries = ledger.list_entries()
        assert {e.product_id for e in all_entries} == {milk.id, cheese.id}

        assert len(ledger.list_entries(limit=1)) == 1

    def test_list_entries_unknown_product(self, ledger, db_session):
        with pytest.raises(NotFound):
            ledger.list_entries(product_id=424242)


class TestLedgerImmutability:
    def test_entry_cannot_be_updated(self, ledger, make_product, db_session):
        product = make_product(stock=1)
        entry = ledger.list_entries(product_id=product.id)[0]

        entry.reason = "Rewritten history"
        with pytest.raises(InternalError):
            db_session.commit()
        db_session.rollback()

        assert ledger.list_entries(product_id=product.id)[0].reason == "Opening stock"

    def test_entry_cannot_be_deleted(self, ledger, make_product, db_session, entries_for):
        product = make_product(stock=1)
        entry = ledger.list_entries(product_id=product.id)[0]

        db_session.delete(entry)
        with pytest.raises(InternalError):
            db_session.commit()
        db_session.rollback()

        assert len(entries_for(product.id)) == 1
