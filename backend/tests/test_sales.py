"""
Sale commit tests.

A sale either commits whole (sale row, lines, one Out entry per line, stock
decremented) or leaves nothing behind.
"""

import pytest

from dairy_pos.errors import ValidationError, NotFound, InvariantViolation
from dairy_pos.models import Sale, SaleLine, LedgerEntry
from dairy_pos.services.sales_service import get_sale, list_sales


def _sell(sale_builder, *lines, **kwargs):
    kwargs.setdefault("customer_name", "Walk-in Customer")
    kwargs.setdefault("payment_method", "Cash")
    return sale_builder.propose_sale(
        lines=[{"product_id": pid, "quantity": qty} for pid, qty in lines],
        **kwargs,
    )


class TestSaleCommit:
    def test_sale_prices_lines_and_books_out_entries(self, sale_builder, make_product, stock_of, entries_for):
        milk = make_product(name="Whole Milk", stock=10, price_cents=300)

        sale = _sell(sale_builder, (milk.id, 2), discount_cents=100, customer_name="Dana")

        assert sale.subtotal_cents == 600
        assert sale.discount_cents == 100
        assert sale.total_amount_cents == 500
        assert sale.payment_status == "Paid"
        assert stock_of(milk.id) == 8

        out = [e for e in entries_for(milk.id) if e.type == "Out"]
        assert len(out) == 1
        assert out[0].quantity == 2
        assert out[0].previous_stock == 10
        assert out[0].new_stock == 8
        assert out[0].reference == str(sale.id)
        assert out[0].reason == "Sale"
        assert out[0].performed_by == "Dana"

        [line] = sale.lines
        assert line.unit_price_cents == 300
        assert line.total_price_cents == 600
        assert line.ledger_entry_id == out[0].id

    def test_multi_line_sale_writes_one_entry_per_line(self, sale_builder, make_product, db_session):
        milk = make_product(name="Whole Milk", stock=10, price_cents=300)
        yogurt = make_product(name="Greek Yogurt", stock=4, price_cents=450, category="Yogurt", unit="Piece")

        sale = _sell(sale_builder, (milk.id, 1), (yogurt.id, 2))

        assert sale.subtotal_cents == 300 + 900
        assert sale.total_items == 3
        assert [l.line_number for l in sale.lines] == [1, 2]
        refs = db_session.query(LedgerEntry).filter_by(type="Out", reference=str(sale.id)).count()
        assert refs == 2

    def test_insufficient_line_rejects_whole_sale(self, sale_builder, make_product, stock_of, db_session):
        scarce = make_product(name="Cream", stock=1, category="Cream")
        plenty = make_product(name="Butter", stock=5, category="Butter", unit="Pack")

        with pytest.raises(InvariantViolation) as exc:
            _sell(sale_builder, (scarce.id, 2), (plenty.id, 1))

        assert "Cream" in exc.value.message
        assert exc.value.details["product_id"] == scarce.id
        assert exc.value.details["requested_quantity"] == 2
        assert exc.value.details["available_quantity"] == 1
        assert stock_of(scarce.id) == 1
        assert stock_of(plenty.id) == 5
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleLine).count() == 0
        assert db_session.query(LedgerEntry).filter_by(type="Out").count() == 0

    def test_duplicate_lines_are_checked_against_combined_quantity(self, sale_builder, make_product, stock_of):
        milk = make_product(stock=4)

        with pytest.raises(InvariantViolation) as exc:
            _sell(sale_builder, (milk.id, 2), (milk.id, 3))

        assert exc.value.details["requested_quantity"] == 5
        assert stock_of(milk.id) == 4

    def test_duplicate_lines_chain_their_entries(self, sale_builder, make_product, stock_of, entries_for):
        milk = make_product(stock=4)

        _sell(sale_builder, (milk.id, 2), (milk.id, 2))

        out = [(e.previous_stock, e.new_stock) for e in entries_for(milk.id) if e.type == "Out"]
        assert out == [(4, 2), (2, 0)]
        assert stock_of(milk.id) == 0

    def test_unknown_product_rejects_sale(self, sale_builder, make_product, stock_of, db_session):
        milk = make_product(stock=4)

        with pytest.raises(NotFound) as exc:
            _sell(sale_builder, (milk.id, 1), (987654, 1))

        assert exc.value.details["line"] == 2
        assert stock_of(milk.id) == 4
        assert db_session.query(Sale).count() == 0

    def test_inactive_product_cannot_be_sold(self, sale_builder, catalog, make_product, stock_of):
        milk = make_product(stock=4)
        catalog.deactivate_product(milk.id)

        with pytest.raises(NotFound):
            _sell(sale_builder, (milk.id, 1))

        assert stock_of(milk.id) == 4

    def test_discount_larger_than_subtotal_gives_negative_total(self, sale_builder, make_product):
        milk = make_product(stock=4, price_cents=300)

        sale = _sell(sale_builder, (milk.id, 1), discount_cents=500)

        assert sale.total_amount_cents == -200

    def test_line_prices_are_snapshots(self, sale_builder, catalog, make_product, db_session):
        milk = make_product(stock=4, price_cents=300)
        sale = _sell(sale_builder, (milk.id, 1))

        catalog.update_product(milk.id, {"price_cents": 350})

        reloaded = get_sale(db_session, sale.id)
        assert reloaded.lines[0].unit_price_cents == 300
        assert reloaded.total_amount_cents == 300

    def test_sale_to_dict_embeds_product_summary(self, sale_builder, make_product):
        milk = make_product(name="Whole Milk", stock=4, price_cents=300)

        data = _sell(sale_builder, (milk.id, 1), customer_phone="555-0101").to_dict()

        assert data["customer_phone"] == "555-0101"
        assert data["items"][0]["product"]["name"] == "Whole Milk"
        assert data["items"][0]["ledger_entry_id"] is not None


class TestSaleValidation:
    @pytest.mark.parametrize("kwargs", [
        {"customer_name": "   "},
        {"payment_method": "Barter"},
        {"payment_status": "Refunded"},
        {"discount_cents": -1},
        {"discount_cents": 1.5},
    ])
    def test_rejects_bad_header(self, sale_builder, make_product, stock_of, kwargs):
        milk = make_product(stock=4)

        with pytest.raises(ValidationError):
            _sell(sale_builder, (milk.id, 1), **kwargs)

        assert stock_of(milk.id) == 4

    def test_requires_at_least_one_line(self, sale_builder, db_session):
        with pytest.raises(ValidationError) as exc:
            sale_builder.propose_sale(customer_name="Dana", payment_method="Card", lines=[])

        assert exc.value.message == "At least one item is required"

    def test_reports_every_bad_line(self, sale_builder, make_product):
        milk = make_product(stock=4)

        with pytest.raises(ValidationError) as exc:
            sale_builder.propose_sale(
                customer_name="Dana",
                payment_method="Card",
                lines=[
                    {"product_id": milk.id, "quantity": 0},
                    {"quantity": 1},
                    {"product_id": milk.id, "quantity": 1},
                ],
            )

        errors = exc.value.details["errors"]
        assert [(e["line"], e["field"]) for e in errors] == [(1, "quantity"), (2, "product_id")]

    def test_accepts_product_key_alias(self, sale_builder, make_product, stock_of):
        milk = make_product(stock=4)

        sale_builder.propose_sale(
            customer_name="Dana",
            payment_method="Digital Payment",
            lines=[{"product": milk.id, "quantity": 3}],
        )

        assert stock_of(milk.id) == 1


class TestSaleReads:
    def test_list_and_get(self, sale_builder, make_product, db_session):
        milk = make_product(stock=10)
        first = _sell(sale_builder, (milk.id, 1))
        second = _sell(sale_builder, (milk.id, 1))

        assert [s.id for s in list_sales(db_session)] == [second.id, first.id]
        assert get_sale(db_session, first.id).id == first.id

        with pytest.raises(NotFound):
            get_sale(db_session, 123456)
