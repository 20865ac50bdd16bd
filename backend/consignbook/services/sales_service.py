"""
Direct sales: checkout of owned stock.

WHY: A direct sale is the only path that sells goods we still hold.
It deducts stock under the same non-negative policy as consignment
confirm and appends a DIRECT_SALE log, so every stock-decreasing
operation leaves an audit entry.
"""
from __future__ import annotations

from ..domain import normalize_movement, sale_total_cents, stock_deltas, validate_payment_method
from ..errors import SaleNotFound, ValidationError
from ..extensions import db
from ..models import SaleRecord
from ..models.logs import LOG_DIRECT_SALE
from ..models.sales import SALE_TYPE_CONSIGNMENT, SALE_TYPE_DIRECT
from ..state import publish_change
from ..sync import ADD_SALE
from .concurrency import run_with_retry
from .ledger_service import append_inventory_log
from .stock_service import apply_stock_deltas, negative_stock_allowed, stock_patch

def add_sale(items, *, payment_method: str | None = None, type: str = SALE_TYPE_DIRECT) -> SaleRecord:
    """
    Record a direct sale and deduct stock.

    items: [{product_id, quantity, price_cents}]
    total_amount_cents = sum(quantity * price_cents)

    Consignment sales are registered against their order with
    consignment_service.register_consignment_sale().
    """
    if type != SALE_TYPE_DIRECT:
        if type == SALE_TYPE_CONSIGNMENT:
            raise ValidationError("Consignment sales must be registered against a consignment")
        raise ValidationError(f"Unknown sale type: {type}")
    validate_payment_method(payment_method)

    entries = normalize_movement(items, require_price=True)

    def _op():
        products = apply_stock_deltas(
            stock_deltas(entries, -1),
            enforce_non_negative=not negative_stock_allowed(),
        )
        sale = SaleRecord(
            type=SALE_TYPE_DIRECT,
            items=entries,
            total_amount_cents=sale_total_cents(entries),
            payment_method=payment_method,
        )
        db.session.add(sale)
        db.session.flush()

        append_inventory_log(
            log_type=LOG_DIRECT_SALE,
            items=entries,
            details={"sale_id": sale.id},
        )
        db.session.commit()
        return sale, products

    sale, products = run_with_retry(_op)
    publish_change(ADD_SALE, sales=[sale.to_dict()], products=stock_patch(products))
    return sale


def get_sale(sale_id: str) -> SaleRecord:
    sale = db.session.get(SaleRecord, sale_id)
    if sale is None:
        raise SaleNotFound(f"Sale {sale_id} not found")
    return sale


def list_sales(*, type: str | None = None, consignment_id: str | None = None) -> list[SaleRecord]:
    q = db.session.query(SaleRecord)
    if type is not None:
        q = q.filter(SaleRecord.type == type)
    if consignment_id is not None:
        q = q.filter(SaleRecord.related_consignment_id == consignment_id)
    return q.order_by(SaleRecord.date.desc(), SaleRecord.id.desc()).all()
