# Overview: Read-only aggregations over products, sales and the stock ledger.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..errors import ValidationError
from ..models import Product, LedgerEntry, Sale, SaleLine
from dairy_pos.time_utils import utcnow, parse_iso_datetime, is_date_only, day_bounds, to_utc_z


def inventory_summary(session, *, recent_limit: int = 10) -> dict:
    """Dashboard totals over active products plus the latest ledger movements."""
    active = Product.is_active.is_(True)

    total_products = session.query(func.count(Product.id)).filter(active).scalar() or 0
    low_stock_products = (
        session.query(func.count(Product.id))
        .filter(active, Product.stock_quantity <= Product.min_stock_level)
        .scalar()
        or 0
    )
    total_stock_value = (
        session.query(func.coalesce(func.sum(Product.stock_quantity * Product.price_cents), 0))
        .filter(active)
        .scalar()
    )

    recent = (
        session.query(LedgerEntry)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        .limit(recent_limit)
        .all()
    )

    return {
        "total_products": int(total_products),
        "low_stock_products": int(low_stock_products),
        "total_stock_value_cents": int(total_stock_value or 0),
        "recent_movements": [e.to_dict() for e in recent],
    }


def _sales_totals(session, *filters) -> tuple[int, int]:
    row = session.query(
        func.count(Sale.id).label("count"),
        func.coalesce(func.sum(Sale.total_amount_cents), 0).label("revenue"),
    ).filter(*filters).one()
    return int(row.count or 0), int(row.revenue or 0)


def sales_summary(session, *, now: datetime | None = None) -> dict:
    """Today's (UTC) and all-time sale counts and revenue."""
    now = now or utcnow()
    start, end = day_bounds(now.date())

    today_sales, today_revenue = _sales_totals(session, Sale.created_at >= start, Sale.created_at < end)
    total_sales, total_revenue = _sales_totals(session)

    return {
        "today_sales": today_sales,
        "today_revenue_cents": today_revenue,
        "total_sales": total_sales,
        "total_revenue_cents": total_revenue,
    }


def _parse_bound(raw: str, field: str) -> datetime:
    try:
        value = parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime", details={"field": field})
    if value is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    return value


def sales_in_range(session, start_date: str | None, end_date: str | None) -> dict:
    """
    Sales created between start_date and end_date, inclusive.

    A date-only end_date ("2024-01-31") covers that whole day.
    """
    if not start_date or not end_date:
        raise ValidationError(
            "Start date and end date are required",
            details={"fields": ["startDate", "endDate"]},
        )

    start = _parse_bound(start_date, "startDate")
    end = _parse_bound(end_date, "endDate")

    q = session.query(Sale).filter(Sale.created_at >= start)
    if is_date_only(end_date):
        q = q.filter(Sale.created_at < end + timedelta(days=1))
    else:
        q = q.filter(Sale.created_at <= end)

    sales = q.order_by(Sale.created_at.desc(), Sale.id.desc()).all()

    total_items = 0
    if sales:
        total_items = (
            session.query(func.coalesce(func.sum(SaleLine.quantity), 0))
            .filter(SaleLine.sale_id.in_([s.id for s in sales]))
            .scalar()
        )

    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "sales": [s.to_dict() for s in sales],
        "total_revenue_cents": sum(s.total_amount_cents for s in sales),
        "total_items": int(total_items or 0),
        "total_sales": len(sales),
    }
