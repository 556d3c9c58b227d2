"""
Sales Service - multi-line sale validation, pricing and commit

WHY: A sale must check every line's product and stock before any stock moves,
price every line from the catalog at that moment, and then commit the sale
together with one Out ledger entry per line. The builder does the input
checks; StockLedger.commit_sale runs pricing and posting under the product
locks so nothing can change in between.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..errors import ValidationError, NotFound, insufficient_stock
from ..models import Sale, Product, PAYMENT_METHODS, PAYMENT_STATUSES


@dataclass(frozen=True)
class SaleLineRequest:
    line_number: int
    product_id: int
    quantity: int


@dataclass(frozen=True)
class SaleRequest:
    customer_name: str
    payment_method: str
    lines: tuple[SaleLineRequest, ...]
    performed_by: str
    customer_phone: str | None = None
    payment_status: str = "Paid"
    discount_cents: int = 0
    notes: str | None = None


@dataclass(frozen=True)
class PricedLine:
    line_number: int
    product_id: int
    quantity: int
    unit_price_cents: int
    total_price_cents: int


@dataclass
class PricedSale:
    lines: list[PricedLine] = field(default_factory=list)
    subtotal_cents: int = 0
    total_amount_cents: int = 0


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _clean(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def price_sale(request: SaleRequest, products: dict[int, Product | None]) -> PricedSale:
    """
    Check availability and price every line of a sale.

    products maps each requested id to the (locked) Product, or None if it
    does not exist. Quantities are summed per product, so two lines of the
    same product cannot together oversell it. Raises before anything is
    written: NotFound for a missing/inactive product, InvariantViolation for
    insufficient stock.
    """
    demand: dict[int, int] = {}
    for line in request.lines:
        product = products.get(line.product_id)
        if product is None or not product.is_active:
            raise NotFound(
                f"Product {line.product_id} not found",
                details={"line": line.line_number, "product_id": line.product_id},
            )
        demand[line.product_id] = demand.get(line.product_id, 0) + line.quantity

    insufficient = [
        (products[pid], qty)
        for pid, qty in demand.items()
        if qty > products[pid].stock_quantity
    ]
    if insufficient:
        product, qty = insufficient[0]
        err = insufficient_stock(product, qty)
        err.details["items"] = [
            {
                "product_id": p.id,
                "product_name": p.name,
                "requested_quantity": q,
                "available_quantity": p.stock_quantity,
            }
            for p, q in insufficient
        ]
        raise err

    priced = PricedSale()
    for line in request.lines:
        unit_price = products[line.product_id].price_cents
        total = unit_price * line.quantity
        priced.lines.append(PricedLine(
            line_number=line.line_number,
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price_cents=unit_price,
            total_price_cents=total,
        ))
        priced.subtotal_cents += total

    # Discount is not capped at the subtotal; the total may go negative.
    priced.total_amount_cents = priced.subtotal_cents - request.discount_cents
    return priced


class SaleTransactionBuilder:
    """Validates a proposed sale and hands it to the stock ledger to commit."""

    def __init__(self, ledger):
        self.ledger = ledger

    def build_request(
        self,
        *,
        customer_name,
        payment_method,
        lines,
        customer_phone=None,
        discount_cents=0,
        notes=None,
        payment_status="Paid",
    ) -> SaleRequest:
        """Input checks that need no stored state. Reports every line problem at once."""
        name = _clean(customer_name)
        if not name:
            raise ValidationError("customer_name is required", details={"field": "customer_name"})

        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
                details={"field": "payment_method", "allowed": list(PAYMENT_METHODS)},
            )

        status = payment_status if payment_status is not None else "Paid"
        if status not in PAYMENT_STATUSES:
            raise ValidationError(
                f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}",
                details={"field": "payment_status", "allowed": list(PAYMENT_STATUSES)},
            )

        discount = 0 if discount_cents is None else discount_cents
        if not _is_int(discount) or discount < 0:
            raise ValidationError("discount_cents must be an integer >= 0", details={"field": "discount_cents"})

        if not isinstance(lines, (list, tuple)) or not lines:
            raise ValidationError("At least one item is required", details={"field": "items"})

        parsed: list[SaleLineRequest] = []
        errors: list[dict] = []
        for number, raw in enumerate(lines, start=1):
            if not isinstance(raw, dict):
                errors.append({"line": number, "field": "items", "message": "item must be an object"})
                continue
            product_id = raw.get("product_id", raw.get("product"))
            quantity = raw.get("quantity")
            if not _is_int(product_id):
                errors.append({"line": number, "field": "product_id", "message": "Product ID is required"})
            if not _is_int(quantity) or quantity < 1:
                errors.append({"line": number, "field": "quantity", "message": "Quantity must be at least 1"})
            if _is_int(product_id) and _is_int(quantity) and quantity >= 1:
                parsed.append(SaleLineRequest(line_number=number, product_id=product_id, quantity=quantity))

        if errors:
            raise ValidationError("Invalid sale items", details={"errors": errors})

        return SaleRequest(
            customer_name=name,
            customer_phone=_clean(customer_phone),
            payment_method=payment_method,
            payment_status=status,
            discount_cents=discount,
            notes=_clean(notes),
            lines=tuple(parsed),
            performed_by=name,
        )

    def propose_sale(self, **kwargs) -> Sale:
        """
        Validate, price and commit a sale.

        Returns the persisted Sale; each line carries its product summary and
        the id of its Out ledger entry.
        """
        request = self.build_request(**kwargs)
        return self.ledger.commit_sale(request)


def list_sales(session, limit: int | None = None) -> list[Sale]:
    q = session.query(Sale).order_by(Sale.created_at.desc(), Sale.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def get_sale(session, sale_id: int) -> Sale:
    sale = session.get(Sale, sale_id)
    if sale is None:
        raise NotFound("Sale not found", details={"sale_id": sale_id})
    return sale


def build_sale_builder() -> SaleTransactionBuilder:
    from .stock_ledger_service import build_stock_ledger

    return SaleTransactionBuilder(build_stock_ledger())
