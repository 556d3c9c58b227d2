# Overview: Service-layer operations for the stock ledger; the only sanctioned stock mutations.

# backend/dairy_pos/services/stock_ledger_service.py

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import ValidationError, NotFound, insufficient_stock
from ..models import (
    Product,
    LedgerEntry,
    Sale,
    SaleLine,
    LOSS_TYPES,
    signed_effect,
)
from ..models.inventory import ENTRY_IN, ENTRY_OUT, ENTRY_ADJUSTMENT
from .concurrency import ProductLockRegistry, get_product_locks, lock_for_update, run_with_retry
"""
Stock Ledger Invariants (authoritative)

- Product.stock_quantity is the balance of the ledger: it only changes through
  receive_stock / adjust_stock / record_loss / commit_sale, and each change
  appends exactly one LedgerEntry.
- stock_quantity >= 0 at all times; checked before any write, never clamped.
- Each entry snapshots previous_stock and new_stock with
  new_stock = previous_stock + signed_effect(type, quantity).
- Product write and ledger insert share one DB transaction. Either both are
  committed or neither is.
- Same-product operations are serialized by the ProductLockRegistry (ascending
  id order for multi-product sales), row locks where the DB honors them and
  the optimistic version column on Product. Contention is retried a bounded
  number of times and then surfaces as TransientFailure.
"""

SALE_REASON = "Sale"


def _require_text(value, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", details={"field": field})
    return str(value).strip()


def _optional_text(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _require_int(value, field: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    return value


def _require_positive(value, field: str = "quantity") -> int:
    value = _require_int(value, field)
    if value < 1:
        raise ValidationError(f"{field} must be at least 1", details={"field": field})
    return value


class StockLedger:
    """
    Stock-ledger consistency engine.

    The session and lock registry are injected so the engine can be used from
    request handlers, CLI commands and tests alike.
    """

    def __init__(
        self,
        session,
        locks: ProductLockRegistry,
        *,
        attempts: int = 3,
        backoff_base: float = 0.05,
        lock_timeout: float = 5.0,
    ):
        self.session = session
        self.locks = locks
        self.attempts = attempts
        self.backoff_base = backoff_base
        self.lock_timeout = lock_timeout

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def receive_stock(
        self,
        product_id: int,
        quantity: int,
        *,
        reason: str,
        performed_by: str,
        reference: str | None = None,
        notes: str | None = None,
    ) -> LedgerEntry:
        """Book incoming stock (type In): new = previous + quantity."""
        product_id = _require_int(product_id, "product_id")
        quantity = _require_positive(quantity)
        reason = _require_text(reason, "reason")
        performed_by = _require_text(performed_by, "performed_by")

        def _apply():
            product = self.load_locked(product_id)
            return self.post_entry(
                product,
                ENTRY_IN,
                quantity,
                reason=reason,
                performed_by=performed_by,
                reference=reference,
                notes=notes,
            )

        return self.run_locked([product_id], _apply)

    def adjust_stock(
        self,
        product_id: int,
        quantity: int,
        *,
        reason: str,
        performed_by: str,
        reference: str | None = None,
        notes: str | None = None,
    ) -> LedgerEntry:
        """Manual correction (type Adjustment): new = previous + signed quantity."""
        product_id = _require_int(product_id, "product_id")
        quantity = _require_int(quantity, "quantity")
        if quantity == 0:
            raise ValidationError("quantity must be non-zero for Adjustment", details={"field": "quantity"})
        reason = _require_text(reason, "reason")
        performed_by = _require_text(performed_by, "performed_by")

        def _apply():
            product = self.load_locked(product_id)
            return self.post_entry(
                product,
                ENTRY_ADJUSTMENT,
                quantity,
                reason=reason,
                performed_by=performed_by,
                reference=reference,
                notes=notes,
                action="adjustment",
            )

        return self.run_locked([product_id], _apply)

    def record_loss(
        self,
        product_id: int,
        quantity: int,
        loss_type: str,
        *,
        reason: str,
        performed_by: str,
        reference: str | None = None,
        notes: str | None = None,
    ) -> LedgerEntry:
        """Write off expired or damaged stock: new = previous - quantity."""
        product_id = _require_int(product_id, "product_id")
        quantity = _require_positive(quantity)
        if loss_type not in LOSS_TYPES:
            raise ValidationError(
                "type must be Expiry or Damage",
                details={"field": "type", "allowed": list(LOSS_TYPES)},
            )
        reason = _require_text(reason, "reason")
        performed_by = _require_text(performed_by, "performed_by")

        def _apply():
            product = self.load_locked(product_id)
            return self.post_entry(
                product,
                loss_type,
                quantity,
                reason=reason,
                performed_by=performed_by,
                reference=reference,
                notes=notes,
                action="loss recording",
            )

        return self.run_locked([product_id], _apply)

    def commit_sale(self, request) -> Sale:
        """
        Commit a validated SaleRequest as one unit.

        All product locks are held across availability check, pricing and the
        per-line Out decrements, so the check and the decrement see the same
        stock and price. One Out entry is written per line, referencing the
        sale id.
        """
        from .sales_service import price_sale

        product_ids = [line.product_id for line in request.lines]

        def _apply():
            products = {
                pid: self.load_locked(pid, required=False)
                for pid in sorted(set(product_ids))
            }
            priced = price_sale(request, products)

            sale = Sale(
                customer_name=request.customer_name,
                customer_phone=request.customer_phone,
                payment_method=request.payment_method,
                payment_status=request.payment_status,
                subtotal_cents=priced.subtotal_cents,
                discount_cents=request.discount_cents,
                total_amount_cents=priced.total_amount_cents,
                notes=request.notes,
            )
            self.session.add(sale)
            self.session.flush()

            for priced_line in priced.lines:
                line = SaleLine(
                    sale_id=sale.id,
                    line_number=priced_line.line_number,
                    product_id=priced_line.product_id,
                    quantity=priced_line.quantity,
                    unit_price_cents=priced_line.unit_price_cents,
                    total_price_cents=priced_line.total_price_cents,
                )
                self.session.add(line)
                entry = self.post_entry(
                    products[priced_line.product_id],
                    ENTRY_OUT,
                    priced_line.quantity,
                    reason=SALE_REASON,
                    performed_by=request.performed_by,
                    reference=str(sale.id),
                    notes=None,
                )
                line.ledger_entry_id = entry.id

            self.session.flush()
            return sale

        return self.run_locked(product_ids, _apply)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_entries(self, product_id: int | None = None, limit: int | None = None) -> list[LedgerEntry]:
        """Ledger entries, newest first. Never mutates state."""
        q = self.session.query(LedgerEntry)
        if product_id is not None:
            if self.session.get(Product, product_id) is None:
                raise NotFound("Product not found", details={"product_id": product_id})
            q = q.filter(LedgerEntry.product_id == product_id)
        q = q.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def run_locked(self, product_ids, apply):
        """Run apply() under the given products' locks, commit, retry on contention."""
        def _op():
            with self.locks.hold(product_ids, timeout=self.lock_timeout):
                result = apply()
                self.session.commit()
                return result

        return run_with_retry(
            self.session, _op, attempts=self.attempts, backoff_base=self.backoff_base
        )

    def load_locked(self, product_id: int, *, required: bool = True) -> Product | None:
        product = lock_for_update(self.session.query(Product).filter_by(id=product_id)).first()
        if product is None and required:
            raise NotFound("Product not found", details={"product_id": product_id})
        return product

    def post_entry(
        self,
        product: Product,
        entry_type: str,
        quantity: int,
        *,
        reason: str,
        performed_by: str,
        reference: str | None = None,
        notes: str | None = None,
        action: str | None = None,
    ) -> LedgerEntry:
        """
        Apply one stock mutation and its ledger entry in the current transaction.

        The caller holds the product lock (or owns a product row that is not
        committed yet) and commits.
        """
        previous_stock = product.stock_quantity
        new_stock = previous_stock + signed_effect(entry_type, quantity)
        if new_stock < 0:
            raise insufficient_stock(product, abs(quantity), action)

        entry = LedgerEntry(
            product_id=product.id,
            type=entry_type,
            quantity=quantity,
            previous_stock=previous_stock,
            new_stock=new_stock,
            reason=reason,
            reference=_optional_text(reference),
            notes=_optional_text(notes),
            performed_by=performed_by,
        )
        self.session.add(entry)
        product.stock_quantity = new_stock
        self.session.flush()
        return entry


def build_stock_ledger() -> StockLedger:
    """StockLedger bound to the app's session, lock registry and retry policy."""
    cfg = current_app.config
    return StockLedger(
        db.session,
        get_product_locks(),
        attempts=cfg["LEDGER_RETRY_ATTEMPTS"],
        backoff_base=cfg["LEDGER_RETRY_BACKOFF_SECONDS"],
        lock_timeout=cfg["LEDGER_LOCK_TIMEOUT_SECONDS"],
    )
