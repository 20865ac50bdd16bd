# Overview: Stock counters: shared delta application and manual stock adjustments.

from __future__ import annotations

from typing import Iterable

from flask import current_app

from ..domain import as_positive_int
from ..errors import InsufficientStock, ProductNotFound, ValidationError
from ..extensions import db
from ..models import InventoryLogEntry, Product
from ..models.logs import LOG_ADJUSTMENT_IN, LOG_ADJUSTMENT_OUT
from ..state import publish_change
from ..sync import STOCK_ADJUSTMENT
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_inventory_log
"""
Stock Invariants (authoritative)

- Product.stock is the owned on-hand quantity.
- Stock may never go below zero through a manual adjustment.
- Consignment confirm and direct sales use the same guard unless
  ALLOW_NEGATIVE_STOCK is set, in which case they may overdraw.
- Every change to Product.stock happens inside a service transaction that
  also appends an inventory log entry.
"""

ADJUST_IN = "IN"
ADJUST_OUT = "OUT"

ADJUSTMENT_REASONS = {
    ADJUST_IN: ("PURCHASE", "RETURN", "INVENTORY_GAIN", "OTHER"),
    ADJUST_OUT: ("DAMAGE", "INVENTORY_LOSS", "OTHER"),
}


def negative_stock_allowed() -> bool:
    return bool(current_app.config.get("ALLOW_NEGATIVE_STOCK", False))


def load_products(product_ids: Iterable[str], *, lock: bool = False) -> dict[str, Product]:
    """Load products by id or raise ProductNotFound naming every missing id."""
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    q = db.session.query(Product).filter(Product.id.in_(ids))
    if lock:
        q = lock_for_update(q)
    found = {p.id: p for p in q.all()}
    missing = [pid for pid in ids if pid not in found]
    if missing:
        raise ProductNotFound(
            f"Product {missing[0]} not found",
            details={"product_ids": missing},
        )
    return found


def apply_stock_deltas(deltas: dict[str, int], *, enforce_non_negative: bool = True) -> list[Product]:
    """
    Change Product.stock by the given per-product deltas (no commit).

    All products are checked before any is modified, so an InsufficientStock
    failure leaves every row untouched.
    """
    products = load_products(deltas.keys(), lock=True)

    if enforce_non_negative:
        short = [
            {"product_id": pid, "stock": products[pid].stock, "requested": -delta}
            for pid, delta in deltas.items()
            if products[pid].stock + delta < 0
        ]
        if short:
            raise InsufficientStock("Insufficient stock", details={"items": short})

    for pid, delta in deltas.items():
        products[pid].stock = products[pid].stock + delta
    db.session.flush()
    return [products[pid] for pid in deltas]


def stock_patch(products: Iterable[Product]) -> list[dict]:
    return [{"id": p.id, "stock": p.stock, "version_id": p.version_id} for p in products]


def add_stock_adjustment(
    *,
    product_id: str,
    type: str,
    reason: str,
    quantity,
    note: str | None = None,
) -> InventoryLogEntry:
    """
    Manually move a product's stock IN or OUT.

    Raises:
        ValidationError: bad type, reason or quantity
        ProductNotFound: unknown product
        InsufficientStock: OUT larger than current stock (stock unchanged)
    """
    if type not in ADJUSTMENT_REASONS:
        raise ValidationError("type must be IN or OUT")
    if reason not in ADJUSTMENT_REASONS[type]:
        raise ValidationError(
            f"reason must be one of {', '.join(ADJUSTMENT_REASONS[type])} for {type}"
        )
    qty = as_positive_int(quantity, "quantity")
    delta = qty if type == ADJUST_IN else -qty

    def _op():
        product = apply_stock_deltas({product_id: delta}, enforce_non_negative=True)[0]
        entry = append_inventory_log(
            log_type=LOG_ADJUSTMENT_IN if type == ADJUST_IN else LOG_ADJUSTMENT_OUT,
            product_id=product.id,
            items=[{"product_id": product.id, "quantity": qty}],
            reason=reason,
            note=note or "",
        )
        db.session.commit()
        return entry, product

    entry, product = run_with_retry(_op)
    publish_change(STOCK_ADJUSTMENT, products=stock_patch([product]))
    return entry
