# backend/consignbook/services/consignment_service.py
"""
Consignment lifecycle service.

WHY: Goods handed to a partner leave owned stock but are not sold yet.
This service moves them out (confirm), records what the partner sold or
sent back, folds several open orders of one partner into one (merge), and
closes an order once nothing is outstanding.

LIFECYCLE:
1. DRAFT: created, items editable or deletable, no stock effect
2. CONFIRMED: stock deducted for every item, SEND logged
   - register_consignment_sale: sold_items grow, SaleRecord + SOLD log
   - return_consignment_items: returned_items grow, stock returns, RETURN log
3. COMPLETED: only when every item's remaining quantity is zero

There is no way back from CONFIRMED to DRAFT and no cancel/void.

Every public operation runs in one transaction via run_with_retry() and
publishes one sync message after the commit.
"""
from __future__ import annotations

from ..domain import (
    accumulate,
    check_allocation,
    is_fully_reconciled,
    merge_orders,
    normalize_movement,
    normalize_order_items,
    order_total_cents,
    progress_rows,
    quantities_by_product,
    remaining_by_product,
    sale_total_cents,
    stock_deltas,
    validate_payment_method,
)
from ..errors import ConsignmentNotFound, PartnerMismatch, PartnerNotFound, StateError, ValidationError
from ..extensions import db
from ..models import ConsignmentOrder, Partner, SaleRecord
from ..models.consignments import (
    CONSIGNMENT_STATUS_COMPLETED,
    CONSIGNMENT_STATUS_CONFIRMED,
    CONSIGNMENT_STATUS_DRAFT,
)
from ..models.logs import LOG_MERGE, LOG_RETURN, LOG_SEND, LOG_SOLD
from ..models.sales import SALE_TYPE_CONSIGNMENT
from ..state import publish_change
from ..sync import (
    ADD_CONSIGNMENT,
    ADD_SALE,
    DELETE_CONSIGNMENT,
    UPDATE_CONSIGNMENT,
    UPDATE_CONSIGNMENT_STATUS,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_inventory_log
from .stock_service import apply_stock_deltas, load_products, negative_stock_allowed, stock_patch


def _get_order(order_id: str, *, lock: bool = False) -> ConsignmentOrder:
    q = db.session.query(ConsignmentOrder).filter_by(id=order_id)
    if lock:
        q = lock_for_update(q)
    order = q.first()
    if order is None:
        raise ConsignmentNotFound(f"Consignment {order_id} not found")
    return order


def _require_status(order: ConsignmentOrder, status: str, action: str) -> None:
    if order.status != status:
        raise StateError(
            f"Cannot {action} consignment in {order.status} status",
            details={"consignment_id": order.id, "status": order.status},
        )


def _build_items(partner: Partner, items) -> list[dict]:
    if not items or not isinstance(items, (list, tuple)):
        raise ValidationError("At least one item is required")
    product_ids = [
        str(raw["product_id"]) for raw in items
        if isinstance(raw, dict) and raw.get("product_id")
    ]
    products = load_products(product_ids)
    return normalize_order_items(
        items,
        default_prices={pid: p.retail_price_cents for pid, p in products.items()},
        default_commission=partner.default_commission_rate,
    )


def _ship(items: list[dict]) -> list:
    """Deduct owned stock for goods leaving to a partner."""
    return apply_stock_deltas(
        stock_deltas(items, -1),
        enforce_non_negative=not negative_stock_allowed(),
    )


def get_consignment(order_id: str) -> ConsignmentOrder:
    return _get_order(order_id)


def list_consignments(*, partner_id: str | None = None, status: str | None = None) -> list[ConsignmentOrder]:
    q = db.session.query(ConsignmentOrder)
    if partner_id is not None:
        q = q.filter(ConsignmentOrder.partner_id == partner_id)
    if status is not None:
        q = q.filter(ConsignmentOrder.status == status)
    return q.order_by(ConsignmentOrder.created_at.asc(), ConsignmentOrder.id.asc()).all()


def consignment_progress(order: ConsignmentOrder) -> dict:
    lines = progress_rows(order.items, order.sold_items, order.returned_items)
    return {
        "consignment": order.to_dict(),
        "lines": lines,
        "remaining_total": sum(line["remaining"] for line in lines),
        "sold_value_cents": sum(line["sold"] * line["unit_price_cents"] for line in lines),
        "is_reconciled": is_fully_reconciled(order.items, order.sold_items, order.returned_items),
    }


def list_mergeable(partner_id: str) -> list[ConsignmentOrder]:
    """CONFIRMED orders of a partner that still have goods outstanding, oldest first."""
    orders = list_consignments(partner_id=partner_id, status=CONSIGNMENT_STATUS_CONFIRMED)
    return [
        o for o in orders
        if sum(remaining_by_product(o.items, o.sold_items, o.returned_items).values()) > 0
    ]


def create_consignment(*, partner_id: str, items, note: str | None = None) -> ConsignmentOrder:
    """Create a DRAFT order. No stock moves until confirm."""
    def _op():
        partner = db.session.get(Partner, partner_id)
        if partner is None:
            raise PartnerNotFound(f"Partner {partner_id} not found")
        order_items = _build_items(partner, items)
        order = ConsignmentOrder(
            partner_id=partner.id,
            status=CONSIGNMENT_STATUS_DRAFT,
            items=order_items,
            sold_items=[],
            returned_items=[],
            total_value_cents=order_total_cents(order_items),
            note=note,
        )
        db.session.add(order)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    publish_change(ADD_CONSIGNMENT, consignments=[order.to_dict()])
    return order


def update_consignment(order_id: str, *, items=None, note: str | None = None) -> ConsignmentOrder:
    """Replace the items and/or note of a DRAFT order."""
    if items is None and note is None:
        raise ValidationError("Nothing to update")

    def _op():
        order = _get_order(order_id, lock=True)
        _require_status(order, CONSIGNMENT_STATUS_DRAFT, "edit")
        if items is not None:
            partner = db.session.get(Partner, order.partner_id)
            order.items = _build_items(partner, items)
            order.total_value_cents = order_total_cents(order.items)
        if note is not None:
            order.note = note
        db.session.commit()
        return order

    order = run_with_retry(_op)
    publish_change(UPDATE_CONSIGNMENT, consignments=[order.to_dict()])
    return order


def delete_consignment(order_id: str) -> None:
    """Delete a DRAFT order. Confirmed orders carry stock history and stay."""
    def _op():
        order = _get_order(order_id, lock=True)
        _require_status(order, CONSIGNMENT_STATUS_DRAFT, "delete")
        db.session.delete(order)
        db.session.commit()

    run_with_retry(_op)
    publish_change(DELETE_CONSIGNMENT, deleted={"consignments": [order_id]})


def confirm_consignment(order_id: str) -> ConsignmentOrder:
    """
    DRAFT -> CONFIRMED.

    Deducts Product.stock by every item quantity and appends one SEND log
    snapshotting the full items list, all in one transaction.

    Raises:
        ConsignmentNotFound, StateError (not DRAFT), ProductNotFound,
        InsufficientStock (unless ALLOW_NEGATIVE_STOCK)
    """
    def _op():
        order = _get_order(order_id, lock=True)
        _require_status(order, CONSIGNMENT_STATUS_DRAFT, "confirm")
        if not order.items:
            raise ValidationError("Cannot confirm a consignment with no items")

        products = _ship(order.items)

        order.status = CONSIGNMENT_STATUS_CONFIRMED
        order.confirmed_at = utcnow()

        append_inventory_log(
            log_type=LOG_SEND,
            partner_id=order.partner_id,
            consignment_id=order.id,
            items=order.items,
        )
        db.session.commit()
        return order, products

    order, products = run_with_retry(_op)
    publish_change(
        UPDATE_CONSIGNMENT_STATUS,
        consignments=[order.to_dict()],
        products=stock_patch(products),
    )
    return order


def complete_consignment(order_id: str) -> ConsignmentOrder:
    """CONFIRMED -> COMPLETED, only when nothing remains with the partner."""
    def _op():
        order = _get_order(order_id, lock=True)
        _require_status(order, CONSIGNMENT_STATUS_CONFIRMED, "complete")
        remaining = remaining_by_product(order.items, order.sold_items, order.returned_items)
        outstanding = {pid: qty for pid, qty in remaining.items() if qty != 0}
        if outstanding:
            raise StateError(
                "Consignment still has outstanding items",
                details={"consignment_id": order.id, "remaining": outstanding},
            )
        order.status = CONSIGNMENT_STATUS_COMPLETED
        order.completed_at = utcnow()
        db.session.commit()
        return order

    order = run_with_retry(_op)
    publish_change(UPDATE_CONSIGNMENT_STATUS, consignments=[order.to_dict()])
    return order


def update_consignment_status(order_id: str, status: str) -> ConsignmentOrder:
    if status == CONSIGNMENT_STATUS_CONFIRMED:
        return confirm_consignment(order_id)
    if status == CONSIGNMENT_STATUS_COMPLETED:
        return complete_consignment(order_id)
    raise StateError(f"Unsupported status transition to {status}")


def register_consignment_sale(order_id: str, items, *, payment_method: str | None = None) -> SaleRecord:
    """
    Record goods the partner reports as sold.

    items: [{product_id, quantity, price_cents}]. Adds into sold_items,
    creates one CONSIGNMENT SaleRecord and appends one SOLD log.
    Stock does not move: it already left at confirm.

    Raises:
        ValidationError, ConsignmentNotFound, StateError (not CONFIRMED),
        OverAllocation (sold + returned would exceed shipped)
    """
    validate_payment_method(payment_method)
    entries = normalize_movement(items, require_price=True)

    def _op():
        order = _get_order(order_id, lock=True)
        _require_status(order, CONSIGNMENT_STATUS_CONFIRMED, "register sales on")
        check_allocation(order.items, order.sold_items, order.returned_items, entries)

        order.sold_items = accumulate(order.sold_items, entries)

        sale = SaleRecord(
            type=SALE_TYPE_CONSIGNMENT,
            items=entries,
            total_amount_cents=sale_total_cents(entries),
            related_consignment_id=order.id,
            payment_method=payment_method,
        )
        db.session.add(sale)

        append_inventory_log(
            log_type=LOG_SOLD,
            partner_id=order.partner_id,
            consignment_id=order.id,
            items=entries,
        )
        db.session.commit()
        return order, sale

    order, sale = run_with_retry(_op)
    publish_change(ADD_SALE, consignments=[order.to_dict()], sales=[sale.to_dict()])
    return sale


def return_consignment_items(order_id: str, items) -> ConsignmentOrder:
    """
    Record goods the partner sends back.

    items: [{product_id, quantity}]. Adds into returned_items, puts the
    quantity back on Product.stock and appends one RETURN log.
    """
    entries = normalize_movement(items)

    def _op():
        order = _get_order(order_id, lock=True)
        _require_status(order, CONSIGNMENT_STATUS_CONFIRMED, "return items on")
        check_allocation(order.items, order.sold_items, order.returned_items, entries)

        order.returned_items = accumulate(order.returned_items, entries)
        products = apply_stock_deltas(stock_deltas(entries, +1), enforce_non_negative=False)

        append_inventory_log(
            log_type=LOG_RETURN,
            partner_id=order.partner_id,
            consignment_id=order.id,
            items=entries,
        )
        db.session.commit()
        return order, products

    order, products = run_with_retry(_op)
    publish_change(
        UPDATE_CONSIGNMENT,
        consignments=[order.to_dict()],
        products=stock_patch(products),
    )
    return order


def merge_consignments(target_id: str, source_ids) -> ConsignmentOrder:
    """
    Fold source orders into a CONFIRMED target of the same partner.

    items, sold_items and returned_items merge by product_id (quantities
    add; new products keep the source's pricing). total_value_cents is
    recomputed, the sources are deleted and one MERGE log names them.

    DRAFT sources never had stock deducted, so their items are shipped as
    part of the merge (stock deducted, SEND logged against the target).

    Raises:
        ValidationError (no/duplicate sources, target among sources),
        ConsignmentNotFound, StateError (target not CONFIRMED, source
        COMPLETED), PartnerMismatch, InsufficientStock
    """
    if source_ids is None:
        source_ids = []
    if not isinstance(source_ids, (list, tuple)):
        raise ValidationError("source_ids must be a list")
    source_ids = [str(sid) for sid in source_ids]
    if not source_ids:
        raise ValidationError("At least one source consignment is required")
    if len(set(source_ids)) != len(source_ids):
        raise ValidationError("Duplicate source consignment ids")
    if target_id in source_ids:
        raise ValidationError("A consignment cannot be merged into itself")

    def _op():
        target = _get_order(target_id, lock=True)
        _require_status(target, CONSIGNMENT_STATUS_CONFIRMED, "merge into")

        rows = lock_for_update(
            db.session.query(ConsignmentOrder).filter(ConsignmentOrder.id.in_(source_ids))
        ).all()
        by_id = {row.id: row for row in rows}
        missing = [sid for sid in source_ids if sid not in by_id]
        if missing:
            raise ConsignmentNotFound(
                f"Consignment {missing[0]} not found",
                details={"consignment_ids": missing},
            )
        sources = [by_id[sid] for sid in source_ids]

        mismatched = [s.id for s in sources if s.partner_id != target.partner_id]
        if mismatched:
            raise PartnerMismatch(
                "Consignments belong to different partners",
                details={"target_partner_id": target.partner_id, "consignment_ids": mismatched},
            )
        completed = [s.id for s in sources if s.status == CONSIGNMENT_STATUS_COMPLETED]
        if completed:
            raise StateError(
                "Completed consignments cannot be merged",
                details={"consignment_ids": completed},
            )

        drafts = [s for s in sources if s.status == CONSIGNMENT_STATUS_DRAFT]
        products = []
        if drafts:
            draft_items = [item for s in drafts for item in s.items]
            products = _ship(draft_items)
            append_inventory_log(
                log_type=LOG_SEND,
                partner_id=target.partner_id,
                consignment_id=target.id,
                items=draft_items,
                note=f"shipped on merge of {', '.join(s.id for s in drafts)}",
            )

        merged = merge_orders(
            {
                "items": target.items,
                "sold_items": target.sold_items,
                "returned_items": target.returned_items,
            },
            [
                {"items": s.items, "sold_items": s.sold_items, "returned_items": s.returned_items}
                for s in sources
            ],
        )
        target.items = merged["items"]
        target.sold_items = merged["sold_items"]
        target.returned_items = merged["returned_items"]
        target.total_value_cents = merged["total_value_cents"]

        moved = quantities_by_product(item for s in sources for item in s.items)
        append_inventory_log(
            log_type=LOG_MERGE,
            partner_id=target.partner_id,
            consignment_id=target.id,
            items=[{"product_id": pid, "quantity": qty} for pid, qty in moved.items()],
            details={"target_id": target.id, "source_ids": source_ids},
        )

        for source in sources:
            db.session.delete(source)
        db.session.commit()
        return target, products

    target, products = run_with_retry(_op)
    publish_change(
        UPDATE_CONSIGNMENT,
        consignments=[target.to_dict()],
        products=stock_patch(products),
        deleted={"consignments": source_ids},
    )
    return target
