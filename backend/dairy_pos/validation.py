from __future__ import annotations
from datetime import date, datetime
from dairy_pos.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime, Date
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models import PRODUCT_CATEGORIES, PRODUCT_UNITS, LOSS_TYPES, PAYMENT_METHODS, PAYMENT_STATUSES


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - extra_fields: request-only keys that are not model columns (passed through untouched)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    extra_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer", details={"field": key})
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(
                f"{key} must be a plain integer (scientific notation not allowed)", details={"field": key}
            )
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)", details={"field": key})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", details={"field": key})
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal", details={"field": key})
    raise ValidationError(f"{key} must be an integer", details={"field": key})


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean", details={"field": col.key})

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", details={"field": col.key})
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", details={"field": col.key})
            return dt
        raise ValidationError(f"{col.key} must be a datetime", details={"field": col.key})

    # Dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date", details={"field": col.key})
            if d is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date", details={"field": col.key})
            return d
        raise ValidationError(f"{col.key} must be a date", details={"field": col.key})

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}", details={"fields": missing}
            )

    cols = _columns_by_key(model)
    extra = policy.extra_fields or set()

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k in extra:
            continue
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", details={"field": k})
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", details={"field": k})

    patch: dict = {}

    for k, raw in payload.items():
        if k in extra:
            patch[k] = raw
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", details={"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", details={"field": k})

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", details={"field": k})

        patch[k] = val

    return patch


def _require_choice(patch: dict, key: str, choices: tuple[str, ...]) -> None:
    if key in patch and patch[key] is not None and patch[key] not in choices:
        raise ValidationError(
            f"{key} must be one of: {', '.join(choices)}",
            details={"field": key, "allowed": list(choices)},
        )


def _require_min(patch: dict, key: str, minimum: int) -> None:
    if key in patch and patch[key] is not None and patch[key] < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", details={"field": key})


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("price_cents", "cost_cents"):
        _require_min(patch, key, 0)
        if key in patch and patch[key] is not None and patch[key] > MAX_PRICE_CENTS:
            raise ValidationError(
                f"{key} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})",
                details={"field": key},
            )

    _require_min(patch, "stock_quantity", 0)
    _require_min(patch, "min_stock_level", 0)
    _require_choice(patch, "category", PRODUCT_CATEGORIES)
    _require_choice(patch, "unit", PRODUCT_UNITS)


def enforce_rules_receive(patch: dict) -> None:
    # In requires qty >= 1
    _require_min(patch, "quantity", 1)


def enforce_rules_adjust(patch: dict) -> None:
    # Adjustment requires a non-zero signed delta
    if "quantity" in patch and patch["quantity"] == 0:
        raise ValidationError("quantity must be non-zero for Adjustment", details={"field": "quantity"})


def enforce_rules_loss(patch: dict) -> None:
    # Loss requires qty >= 1 and a loss type
    _require_min(patch, "quantity", 1)
    if "type" not in patch or patch["type"] is None:
        raise ValidationError("type is required", details={"field": "type"})
    _require_choice(patch, "type", LOSS_TYPES)


def enforce_rules_sale(patch: dict) -> None:
    _require_choice(patch, "payment_method", PAYMENT_METHODS)
    _require_choice(patch, "payment_status", PAYMENT_STATUSES)
    _require_min(patch, "discount_cents", 0)


def _snake(key: str) -> str:
    out = []
    for ch in key:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def normalize_keys(payload):
    """
    Accept camelCase request keys (productId, performedBy, customerName, ...)
    alongside the canonical snake_case ones. Nested item lists are normalized too.
    """
    if not isinstance(payload, dict):
        return payload
    out = {}
    for k, v in payload.items():
        key = _snake(k) if isinstance(k, str) else k
        if isinstance(v, list):
            v = [normalize_keys(item) for item in v]
        out[key] = v
    return out
