"""
Reconciliation sweep tests.

The sweep must come back clean after any sequence of service operations and
flag stock or ledger rows that were changed behind the services' back.
"""

from sqlalchemy import text

from dairy_pos.services.reconcile_service import reconcile_ledger


def test_clean_after_mixed_operations(db_session, ledger, sale_builder, make_product):
    milk = make_product(name="Milk", stock=10)
    cheese = make_product(name="Cheddar", stock=6, category="Cheese", unit="Kilogram")
    make_product(name="Empty Shelf")

    ledger.receive_stock(milk.id, 5, reason="Delivery", performed_by="alice")
    ledger.adjust_stock(cheese.id, -1, reason="Count", performed_by="bob")
    ledger.record_loss(milk.id, 2, "Expiry", reason="Past date", performed_by="carol")
    sale_builder.propose_sale(
        customer_name="Dana",
        payment_method="Card",
        lines=[{"product_id": milk.id, "quantity": 3}, {"product_id": cheese.id, "quantity": 5}],
    )

    assert reconcile_ledger(db_session) == []


def test_detects_stock_written_outside_the_ledger(db_session, make_product):
    milk = make_product(stock=10)

    db_session.execute(
        text("UPDATE products SET stock_quantity = 99 WHERE id = :id"), {"id": milk.id}
    )
    db_session.commit()

    problems = reconcile_ledger(db_session)

    assert problems == [{
        "product_id": milk.id,
        "problem": "stock_mismatch",
        "ledger_balance": 10,
        "stock_quantity": 99,
    }]


def test_detects_tampered_entry(db_session, ledger, make_product, entries_for):
    milk = make_product(stock=10)
    ledger.receive_stock(milk.id, 5, reason="Delivery", performed_by="alice")
    opening, received = entries_for(milk.id)

    db_session.execute(
        text("UPDATE stock_ledger_entries SET new_stock = 11 WHERE id = :id"), {"id": opening.id}
    )
    db_session.commit()

    kinds = {(p["problem"], p.get("entry_id")) for p in reconcile_ledger(db_session)}

    assert ("entry_arithmetic", opening.id) in kinds
    assert ("stock_mismatch", None) not in kinds
    assert ("chain_break", received.id) not in kinds
