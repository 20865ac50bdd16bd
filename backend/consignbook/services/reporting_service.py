"""
Dashboard and report figures.

Read-only aggregates over committed data; no writes, no sync messages.
"""
from __future__ import annotations

from sqlalchemy import func

from ..domain import quantities_by_product, remaining_by_product
from ..errors import ValidationError
from ..extensions import db
from ..models import ConsignmentOrder, Partner, Product, SaleRecord
from ..models.consignments import CONSIGNMENT_STATUS_CONFIRMED
from ..models.sales import SALE_TYPE_CONSIGNMENT, SALE_TYPE_DIRECT


def sales_totals_by_type() -> dict[str, int]:
    rows = (
        db.session.query(SaleRecord.type, func.coalesce(func.sum(SaleRecord.total_amount_cents), 0))
        .group_by(SaleRecord.type)
        .all()
    )
    totals = {SALE_TYPE_DIRECT: 0, SALE_TYPE_CONSIGNMENT: 0}
    for sale_type, total in rows:
        totals[sale_type] = int(total or 0)
    return totals


def top_products(limit: int = 5) -> list[dict]:
    """
    Best sellers by units, across direct and consignment sales.

    Ties rank by product id. A product deleted since its sales keeps its
    place with name None.
    """
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("limit must be a positive integer")

    units: dict[str, int] = {}
    for (items,) in db.session.query(SaleRecord.items):
        for pid, qty in quantities_by_product(items).items():
            units[pid] = units.get(pid, 0) + qty
    ranked = sorted(units.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]
    if not ranked:
        return []

    names = dict(
        db.session.query(Product.id, Product.name)
        .filter(Product.id.in_([pid for pid, _ in ranked]))
        .all()
    )
    return [{"product_id": pid, "name": names.get(pid), "quantity": qty} for pid, qty in ranked]


def dashboard_summary() -> dict:
    by_type = sales_totals_by_type()
    low_stock = (
        db.session.query(Product)
        .filter(Product.stock <= Product.min_stock_alert)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )
    active = (
        db.session.query(ConsignmentOrder)
        .filter(ConsignmentOrder.status == CONSIGNMENT_STATUS_CONFIRMED)
        .all()
    )
    outstanding_units = sum(
        sum(remaining_by_product(o.items, o.sold_items, o.returned_items).values())
        for o in active
    )

    return {
        "total_sales_cents": sum(by_type.values()),
        "sales_by_type": by_type,
        "product_count": db.session.query(func.count(Product.id)).scalar() or 0,
        "partner_count": db.session.query(func.count(Partner.id)).scalar() or 0,
        "low_stock_count": len(low_stock),
        "low_stock": [
            {"id": p.id, "sku": p.sku, "name": p.name, "stock": p.stock, "min_stock_alert": p.min_stock_alert}
            for p in low_stock
        ],
        "active_consignments": len(active),
        "outstanding_consignment_units": outstanding_units,
        "top_products": top_products(),
    }
