from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import object_session

from ..extensions import db
from ..errors import InternalError
from dairy_pos.time_utils import utcnow, to_utc_z

PRODUCT_CATEGORIES = ("Milk", "Cheese", "Yogurt", "Butter", "Cream", "Ice Cream", "Other")
PRODUCT_UNITS = ("Liter", "Kilogram", "Piece", "Pack")
DEFAULT_MIN_STOCK_LEVEL = 10

ENTRY_IN = "In"
ENTRY_OUT = "Out"
ENTRY_ADJUSTMENT = "Adjustment"
ENTRY_EXPIRY = "Expiry"
ENTRY_DAMAGE = "Damage"
ENTRY_TYPES = (ENTRY_IN, ENTRY_OUT, ENTRY_ADJUSTMENT, ENTRY_EXPIRY, ENTRY_DAMAGE)
LOSS_TYPES = (ENTRY_EXPIRY, ENTRY_DAMAGE)


def signed_effect(entry_type: str, quantity: int) -> int:
    """
    Stock effect of a ledger entry.

    In adds the magnitude, Adjustment carries its own sign,
    Out/Expiry/Damage subtract the magnitude.
    """
    if entry_type == ENTRY_IN:
        return quantity
    if entry_type == ENTRY_ADJUSTMENT:
        return quantity
    if entry_type in (ENTRY_OUT, ENTRY_EXPIRY, ENTRY_DAMAGE):
        return -quantity
    raise ValueError(f"unknown ledger entry type: {entry_type}")


class Product(db.Model):
    """
    Product master data with its current stock level.

    STOCK DESIGN DECISION:
    stock_quantity is a cached balance of the stock ledger. It is only
    written by StockLedger operations, each of which appends exactly one
    LedgerEntry in the same DB transaction. Catalog updates never touch it.

    Products are never hard-deleted (is_active=False is the soft delete) so
    historical ledger entries and sale lines keep a valid reference.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        db.CheckConstraint("cost_cents >= 0", name="ck_products_cost_non_negative"),
        db.CheckConstraint("min_stock_level >= 0", name="ck_products_min_stock_non_negative"),
        db.Index("ix_products_name_category", "name", "category"),
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False)

    unit = db.Column(db.String(16), nullable=False)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=DEFAULT_MIN_STOCK_LEVEL)

    supplier = db.Column(db.String(255), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Optimistic compare-and-set on every UPDATE
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock_quantity}>"

    @property
    def is_low_stock(self) -> bool:
        return bool(self.is_active) and self.stock_quantity <= self.min_stock_level

    def summary(self) -> dict:
        """Short form embedded in ledger entries and sale lines."""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price_cents": self.price_cents,
            "unit": self.unit,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "unit": self.unit,
            "stock_quantity": self.stock_quantity,
            "min_stock_level": self.min_stock_level,
            "supplier": self.supplier,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "is_active": self.is_active,
            "is_low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class LedgerEntry(db.Model):
    """
    Append-only record of one stock mutation.

    quantity is stored as recorded: a magnitude for In/Out/Expiry/Damage,
    a signed delta for Adjustment. previous_stock/new_stock are the snapshot
    taken at write time and are never recomputed.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_product_created", "product_id", "created_at"),
        db.Index("ix_ledger_reference", "reference"),
        db.CheckConstraint("new_stock >= 0", name="ck_ledger_new_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # In, Out, Adjustment, Expiry, Damage
    quantity = db.Column(db.Integer, nullable=False)

    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=False)
    reference = db.Column(db.String(128), nullable=True)  # invoice number, sale id
    notes = db.Column(db.Text, nullable=True)
    performed_by = db.Column(db.String(128), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("ledger_entries", lazy=True))

    @property
    def effect(self) -> int:
        return signed_effect(self.type, self.quantity)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "category": self.product.category,
            } if self.product else None,
            "type": self.type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reason": self.reason,
            "reference": self.reference,
            "notes": self.notes,
            "performed_by": self.performed_by,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(LedgerEntry, "before_update")
def _reject_ledger_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    raise InternalError("ledger entries are immutable", details={"entry_id": target.id})


@event.listens_for(LedgerEntry, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise InternalError("ledger entries cannot be deleted", details={"entry_id": target.id})
