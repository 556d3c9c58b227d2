# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/dairy_pos/routes/products.py
"""
Product catalog routes.

Products are only soft-deleted. stock_quantity on create is the opening
balance and is booked as an In ledger entry; it cannot be set on update.
"""
from flask import Blueprint, request, current_app

from ..models import Product
from ..errors import LedgerError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    normalize_keys,
    enforce_rules_product,
)
from ..services.catalog_service import build_catalog

PRODUCT_FIELDS = {
    "name", "category", "description", "price_cents", "cost_cents", "unit",
    "stock_quantity", "min_stock_level", "supplier", "expiry_date", "is_active",
}

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS,
    required_on_create={"name", "category", "price_cents", "cost_cents", "unit"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """
    List products, newest first.

    Query params:
    - include_inactive: "true" to include soft-deleted products
    - category: filter by category
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    category = request.args.get("category")
    products = build_catalog().list_products(include_inactive=include_inactive, category=category)
    return [p.to_dict() for p in products], 200


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return build_catalog().get_product(product_id).to_dict(), 200
    except LedgerError as e:
        return e.to_dict(), e.status_code


@products_bp.post("")
def create_product_route():
    """Create a product; optional stock_quantity is booked as opening stock."""
    payload = normalize_keys(request.get_json(silent=True) or {})
    performed_by = payload.pop("performed_by", None) or "System"

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = build_catalog().create_product(patch, performed_by=performed_by)
        return created.to_dict(), 201
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error", "kind": "InternalError", "details": {}}, 500


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = normalize_keys(request.get_json(silent=True) or {})

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        updated = build_catalog().update_product(product_id, patch)
        return updated.to_dict(), 200
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error", "kind": "InternalError", "details": {}}, 500


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Soft delete (is_active=False)."""
    try:
        build_catalog().deactivate_product(product_id)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return {"message": "Product deleted successfully"}, 200


@products_bp.get("/alerts/low-stock")
def low_stock_route():
    products = build_catalog().low_stock_products()
    return [p.to_dict() for p in products], 200


@products_bp.get("/alerts/expiring")
def expiring_route():
    days = request.args.get("days", default=7, type=int)
    products = build_catalog().expiring_products(within_days=days)
    return [p.to_dict() for p in products], 200
