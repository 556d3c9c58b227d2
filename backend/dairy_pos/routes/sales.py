# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/dairy_pos/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, current_app

from ..models import Sale
from ..extensions import db
from ..errors import LedgerError, ValidationError
from ..services import sales_service
from ..services.reporting_service import sales_summary, sales_in_range
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    normalize_keys,
    enforce_rules_sale,
)


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SALE_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_name",
        "customer_phone",
        "payment_method",
        "payment_status",
        "discount_cents",
        "notes",
    },
    required_on_create={"customer_name", "payment_method", "items"},
    extra_fields={"items"},
)


@sales_bp.get("")
def list_sales_route():
    """List sales, newest first."""
    limit = request.args.get("limit", type=int)
    sales = sales_service.list_sales(db.session, limit=limit)
    return [s.to_dict() for s in sales], 200


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    """Get sale with its lines and product summaries."""
    try:
        sale = sales_service.get_sale(db.session, sale_id)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return sale.to_dict(), 200


@sales_bp.post("")
def create_sale_route():
    """
    Create a sale.

    Validates every line, prices it from the catalog, then commits the sale
    and one Out ledger entry per line as a single unit. If any line fails,
    nothing is written.
    """
    try:
        payload = normalize_keys(request.get_json(silent=True) or {})
        if "discount" in payload:
            # Money travels as integer cents under *_cents keys only.
            raise ValidationError(
                "discount is not accepted; send discount_cents as integer cents",
                details={"field": "discount", "use": "discount_cents"},
            )
        patch = validate_payload(model=Sale, payload=payload, policy=SALE_POLICY, partial=False)
        enforce_rules_sale(patch)

        builder = sales_service.build_sale_builder()
        sale = builder.propose_sale(
            customer_name=patch["customer_name"],
            customer_phone=patch.get("customer_phone"),
            payment_method=patch["payment_method"],
            payment_status=patch.get("payment_status"),
            discount_cents=patch.get("discount_cents"),
            notes=patch.get("notes"),
            lines=patch["items"],
        )
        return sale.to_dict(), 201

    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return {"error": "Internal server error", "kind": "InternalError", "details": {}}, 500


@sales_bp.get("/stats/summary")
def sales_stats_summary_route():
    """Today's and all-time sale counts and revenue."""
    return sales_summary(db.session), 200


@sales_bp.get("/stats/range")
def sales_stats_range_route():
    """
    Sales between two dates.

    Query params (both required):
    - startDate / start_date: ISO-8601 date or datetime
    - endDate / end_date: ISO-8601 date or datetime (a date covers the whole day)
    """
    start = request.args.get("startDate") or request.args.get("start_date")
    end = request.args.get("endDate") or request.args.get("end_date")
    try:
        return sales_in_range(db.session, start, end), 200
    except LedgerError as e:
        return e.to_dict(), e.status_code
