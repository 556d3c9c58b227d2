# backend/dairy_pos/routes/inventory.py
"""
Stock ledger routes.

Every stock mutation goes through the StockLedger service:
- add-stock:    In entry, stock increases
- adjust-stock: Adjustment entry, signed delta, may not make stock negative
- record-loss:  Expiry/Damage entry, may not exceed stock on hand

Responses carry the populated ledger entry. Failures are reported as
{"error", "kind", "details"} with 400 (ValidationError, InvariantViolation),
404 (NotFound), 503 (TransientFailure) or 500.
"""
from flask import Blueprint, request, current_app

from ..models import LedgerEntry
from ..errors import LedgerError
from ..extensions import db
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    normalize_keys,
    coerce_int,
    enforce_rules_receive,
    enforce_rules_adjust,
    enforce_rules_loss,
)
from ..services.stock_ledger_service import build_stock_ledger
from ..services.reporting_service import inventory_summary


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

_ENTRY_FIELDS = {"product_id", "quantity", "reason", "performed_by", "reference", "notes"}

RECEIVE_POLICY = ModelValidationPolicy(
    writable_fields=_ENTRY_FIELDS,
    required_on_create={"product_id", "quantity", "reason", "performed_by"},
)

ADJUST_POLICY = ModelValidationPolicy(
    writable_fields=_ENTRY_FIELDS,
    required_on_create={"product_id", "quantity", "reason", "performed_by"},
)

LOSS_POLICY = ModelValidationPolicy(
    writable_fields=_ENTRY_FIELDS | {"type"},
    required_on_create={"product_id", "quantity", "type", "reason", "performed_by"},
)


def _entry_payload(policy: ModelValidationPolicy) -> dict:
    payload = normalize_keys(request.get_json(silent=True) or {})
    return validate_payload(model=LedgerEntry, payload=payload, policy=policy, partial=False)


@inventory_bp.get("")
def list_ledger_route():
    """
    List ledger entries, newest first.

    Query params:
    - product: int (optional) - only entries for this product
    - limit: int (optional)
    """
    try:
        product_raw = request.args.get("product")
        product_id = coerce_int("product", product_raw) if product_raw else None
        limit = request.args.get("limit", type=int)
        rows = build_stock_ledger().list_entries(product_id=product_id, limit=limit)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return [r.to_dict() for r in rows], 200


@inventory_bp.get("/product/<int:product_id>")
def list_product_ledger_route(product_id: int):
    """List one product's ledger entries, newest first."""
    try:
        rows = build_stock_ledger().list_entries(product_id=product_id)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return [r.to_dict() for r in rows], 200


@inventory_bp.post("/add-stock")
def add_stock_route():
    """Receive stock into inventory (In)."""
    try:
        patch = _entry_payload(RECEIVE_POLICY)
        enforce_rules_receive(patch)
        entry = build_stock_ledger().receive_stock(
            patch["product_id"],
            patch["quantity"],
            reason=patch["reason"],
            performed_by=patch["performed_by"],
            reference=patch.get("reference"),
            notes=patch.get("notes"),
        )
        return entry.to_dict(), 201
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add stock")
        return {"error": "Internal server error", "kind": "InternalError", "details": {}}, 500


@inventory_bp.post("/adjust-stock")
def adjust_stock_route():
    """Correct stock by a signed delta (Adjustment)."""
    try:
        patch = _entry_payload(ADJUST_POLICY)
        enforce_rules_adjust(patch)
        entry = build_stock_ledger().adjust_stock(
            patch["product_id"],
            patch["quantity"],
            reason=patch["reason"],
            performed_by=patch["performed_by"],
            reference=patch.get("reference"),
            notes=patch.get("notes"),
        )
        return entry.to_dict(), 201
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Internal server error", "kind": "InternalError", "details": {}}, 500


@inventory_bp.post("/record-loss")
def record_loss_route():
    """Write off expired or damaged stock (Expiry / Damage)."""
    try:
        patch = _entry_payload(LOSS_POLICY)
        enforce_rules_loss(patch)
        entry = build_stock_ledger().record_loss(
            patch["product_id"],
            patch["quantity"],
            patch["type"],
            reason=patch["reason"],
            performed_by=patch["performed_by"],
            reference=patch.get("reference"),
            notes=patch.get("notes"),
        )
        return entry.to_dict(), 201
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record loss")
        return {"error": "Internal server error", "kind": "InternalError", "details": {}}, 500


@inventory_bp.get("/summary")
def inventory_summary_route():
    """Totals over active products plus the most recent movements."""
    try:
        return inventory_summary(
            db.session, recent_limit=current_app.config["RECENT_MOVEMENTS_LIMIT"]
        ), 200
    except Exception:
        current_app.logger.exception("Failed to load inventory summary")
        return {"error": "Internal server error", "kind": "InternalError", "details": {}}, 500
