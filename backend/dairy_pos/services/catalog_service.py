# backend/dairy_pos/services/catalog_service.py
"""
Product catalog.

Plain CRUD with field validation. Stock levels are owned by the stock ledger:
a product is created with zero stock and any opening quantity is booked as an
In entry, and catalog updates can never set stock_quantity. Products are only
soft-deleted so ledger entries and sale lines keep their reference.
"""
from __future__ import annotations

from datetime import date, timedelta

from ..extensions import db
from ..errors import ValidationError, NotFound
from ..models import Product
from ..models.inventory import ENTRY_IN
from ..validation import enforce_rules_product
from .concurrency import run_with_retry
from dairy_pos.time_utils import utcnow

PRODUCT_CREATE_FIELDS = {
    "name", "category", "description", "price_cents", "cost_cents", "unit",
    "min_stock_level", "supplier", "expiry_date", "is_active",
}
PRODUCT_REQUIRED_FIELDS = {"name", "category", "price_cents", "cost_cents", "unit"}
PRODUCT_MUTABLE_FIELDS = PRODUCT_CREATE_FIELDS

OPENING_STOCK_REASON = "Opening stock"


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


class ProductCatalog:
    def __init__(self, session, ledger):
        self.session = session
        self.ledger = ledger

    def list_products(self, *, include_inactive: bool = False, category: str | None = None) -> list[Product]:
        q = self.session.query(Product)
        if not include_inactive:
            q = q.filter(Product.is_active.is_(True))
        if category is not None:
            q = q.filter(Product.category == category)
        return q.order_by(Product.created_at.desc(), Product.id.desc()).all()

    def get_product(self, product_id: int) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFound("Product not found", details={"product_id": product_id})
        return product

    def create_product(self, patch: dict, *, performed_by: str = "System") -> Product:
        """
        Register a product.

        A non-zero stock_quantity in the patch is the opening balance and is
        booked as an In entry in the same transaction as the product row,
        never written onto the product directly.
        """
        missing = sorted(f for f in PRODUCT_REQUIRED_FIELDS if patch.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})
        enforce_rules_product(patch)

        opening = patch.get("stock_quantity") or 0
        if not isinstance(opening, int) or isinstance(opening, bool):
            raise ValidationError("stock_quantity must be an integer", details={"field": "stock_quantity"})
        if performed_by is None or not str(performed_by).strip():
            raise ValidationError("performed_by is required", details={"field": "performed_by"})
        performed_by = str(performed_by).strip()

        # Product row and opening In entry commit together or not at all.
        def _op():
            product = Product(
                **{k: v for k, v in patch.items() if k in PRODUCT_CREATE_FIELDS},
                stock_quantity=0,
            )
            self.session.add(product)
            self.session.flush()
            if opening:
                self.ledger.post_entry(
                    product,
                    ENTRY_IN,
                    opening,
                    reason=OPENING_STOCK_REASON,
                    performed_by=performed_by,
                )
            self.session.commit()
            return product

        return run_with_retry(
            self.session, _op, attempts=self.ledger.attempts, backoff_base=self.ledger.backoff_base
        )

    def update_product(self, product_id: int, patch: dict) -> Product:
        if "stock_quantity" in patch:
            raise ValidationError(
                "stock_quantity can only change through stock operations",
                details={"field": "stock_quantity"},
            )
        enforce_rules_product(patch)

        def _apply():
            product = self.ledger.load_locked(product_id)
            apply_product_patch(product, patch)
            return product

        return self.ledger.run_locked([product_id], _apply)

    def deactivate_product(self, product_id: int) -> Product:
        """Soft delete."""
        def _apply():
            product = self.ledger.load_locked(product_id)
            product.is_active = False
            return product

        return self.ledger.run_locked([product_id], _apply)

    def low_stock_products(self) -> list[Product]:
        return (
            self.session.query(Product)
            .filter(
                Product.is_active.is_(True),
                Product.stock_quantity <= Product.min_stock_level,
            )
            .order_by(Product.stock_quantity.asc(), Product.id.asc())
            .all()
        )

    def expiring_products(self, *, within_days: int = 7, today: date | None = None) -> list[Product]:
        """Active products whose expiry date is on or before today + within_days."""
        today = today or utcnow().date()
        horizon = today + timedelta(days=within_days)
        return (
            self.session.query(Product)
            .filter(
                Product.is_active.is_(True),
                Product.expiry_date.isnot(None),
                Product.expiry_date <= horizon,
            )
            .order_by(Product.expiry_date.asc(), Product.id.asc())
            .all()
        )


def build_catalog() -> ProductCatalog:
    from .stock_ledger_service import build_stock_ledger

    return ProductCatalog(db.session, build_stock_ledger())
