# Overview: Reconciliation sweep that checks product stock against the stock ledger.

from __future__ import annotations

from ..models import Product, LedgerEntry


def reconcile_product(product: Product, entries: list[LedgerEntry]) -> list[dict]:
    """
    Check one product against its ledger entries (oldest first).

    Products start at zero stock, so the balance is the sum of effects.
    Reports arithmetic errors inside an entry, breaks in the
    previous_stock/new_stock chain, and a stock_quantity that differs from
    the ledger balance.
    """
    problems: list[dict] = []
    balance = 0
    for entry in entries:
        if entry.previous_stock != balance:
            problems.append({
                "product_id": product.id,
                "entry_id": entry.id,
                "problem": "chain_break",
                "expected_previous_stock": balance,
                "previous_stock": entry.previous_stock,
            })
        expected_new = entry.previous_stock + entry.effect
        if entry.new_stock != expected_new:
            problems.append({
                "product_id": product.id,
                "entry_id": entry.id,
                "problem": "entry_arithmetic",
                "expected_new_stock": expected_new,
                "new_stock": entry.new_stock,
            })
        balance += entry.effect

    if product.stock_quantity != balance:
        problems.append({
            "product_id": product.id,
            "problem": "stock_mismatch",
            "ledger_balance": balance,
            "stock_quantity": product.stock_quantity,
        })
    return problems


def reconcile_ledger(session) -> list[dict]:
    """Run the sweep over every product, active or not. Read-only."""
    entries_by_product: dict[int, list[LedgerEntry]] = {}
    for entry in session.query(LedgerEntry).order_by(LedgerEntry.id.asc()):
        entries_by_product.setdefault(entry.product_id, []).append(entry)

    problems: list[dict] = []
    for product in session.query(Product).order_by(Product.id.asc()):
        problems.extend(reconcile_product(product, entries_by_product.get(product.id, [])))
    return problems
