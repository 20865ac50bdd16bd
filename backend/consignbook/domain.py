# backend/consignbook/domain.py
"""
Consignment ledger arithmetic.

Pure functions over plain item dicts. Nothing here touches the database,
the cache or the sync channel: services load rows, call these to compute
the next state, then persist the result in one transaction.

Item collections are lists of dicts keyed by product_id, at most one row
per product. Every function returns new lists; inputs are never mutated.

Invariant enforced here:
    for every product on an order: sold + returned <= shipped
"""
from __future__ import annotations

from typing import Iterable

from .errors import OverAllocation, ValidationError

# 9,999,999.99 in cents; larger values are typos, not prices
MAX_PRICE_CENTS = 999_999_999
# units per line or per product counter
MAX_QUANTITY = 1_000_000

PAYMENT_METHODS = ("CASH", "CARD", "WECHAT", "ALIPAY", "TRANSFER", "OTHER")


def as_positive_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be a whole number")
        value = int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.isdigit():
            raise ValidationError(f"{field} must be a positive integer")
        value = int(stripped)
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    if value > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
    return value


def as_cents(value, field: str) -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer number of cents")
        value = int(value)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError(f"{field} must be an integer number of cents")
    if not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return value


def normalize_movement(entries, *, require_price: bool = False) -> list[dict]:
    """
    Validate caller-supplied movement lines ({product_id, quantity, price_cents?}).

    Quantities must be positive integers. The list must not be empty.
    Row order and duplicates are preserved; use quantities_by_product() to
    aggregate.
    """
    if not entries:
        raise ValidationError("At least one item is required")
    if not isinstance(entries, (list, tuple)):
        raise ValidationError("items must be a list")

    cleaned = []
    for index, raw in enumerate(entries):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = raw.get("product_id")
        if not product_id:
            raise ValidationError(f"items[{index}].product_id is required")
        row = {
            "product_id": str(product_id),
            "quantity": as_positive_int(raw.get("quantity"), f"items[{index}].quantity"),
        }
        if require_price or raw.get("price_cents") is not None:
            row["price_cents"] = as_cents(raw.get("price_cents"), f"items[{index}].price_cents")
        cleaned.append(row)
    return cleaned


def normalize_order_items(entries, *, default_prices: dict[str, int], default_commission: float) -> list[dict]:
    """
    Build the shipped-items list of a DRAFT order.

    unit_price_cents falls back to the product's retail price and
    commission_rate to the partner default. A product may appear only once.
    """
    if not entries:
        raise ValidationError("At least one item is required")

    seen: set[str] = set()
    items = []
    for index, raw in enumerate(entries):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = raw.get("product_id")
        if not product_id:
            raise ValidationError(f"items[{index}].product_id is required")
        product_id = str(product_id)
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once")
        seen.add(product_id)

        unit_price = raw.get("unit_price_cents")
        if unit_price is None:
            unit_price = default_prices.get(product_id, 0)
        commission = raw.get("commission_rate")
        if commission is None:
            commission = default_commission
        items.append({
            "product_id": product_id,
            "quantity": as_positive_int(raw.get("quantity"), f"items[{index}].quantity"),
            "unit_price_cents": as_cents(unit_price, f"items[{index}].unit_price_cents"),
            "commission_rate": validate_commission_rate(commission, f"items[{index}].commission_rate"),
        })
    return items


def validate_commission_rate(value, field: str = "commission_rate") -> float:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if rate < 0 or rate > 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return rate


def validate_payment_method(value: str | None) -> str | None:
    """None means unrecorded."""
    if value is not None and value not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
    return value


def quantities_by_product(entries: Iterable[dict] | None) -> dict[str, int]:
    totals: dict[str, int] = {}
    for entry in entries or ():
        pid = entry["product_id"]
        totals[pid] = totals.get(pid, 0) + int(entry["quantity"])
    return totals


def accumulate(collection: list[dict] | None, entries: Iterable[dict]) -> list[dict]:
    """
    Add quantities into a {product_id, quantity} accumulator.

    Existing rows grow; unseen products are appended in first-seen order.
    """
    result = [dict(row) for row in (collection or [])]
    index = {row["product_id"]: row for row in result}
    for entry in entries:
        pid = entry["product_id"]
        qty = int(entry["quantity"])
        if pid in index:
            index[pid]["quantity"] += qty
        else:
            row = {"product_id": pid, "quantity": qty}
            result.append(row)
            index[pid] = row
    return result


def remaining_by_product(items, sold_items, returned_items) -> dict[str, int]:
    shipped = quantities_by_product(items)
    sold = quantities_by_product(sold_items)
    returned = quantities_by_product(returned_items)
    return {
        pid: qty - sold.get(pid, 0) - returned.get(pid, 0)
        for pid, qty in shipped.items()
    }


def progress_rows(items, sold_items, returned_items) -> list[dict]:
    sold = quantities_by_product(sold_items)
    returned = quantities_by_product(returned_items)
    rows = []
    for item in items or ():
        pid = item["product_id"]
        shipped = int(item["quantity"])
        rows.append({
            "product_id": pid,
            "shipped": shipped,
            "sold": sold.get(pid, 0),
            "returned": returned.get(pid, 0),
            "remaining": shipped - sold.get(pid, 0) - returned.get(pid, 0),
            "unit_price_cents": item.get("unit_price_cents", 0),
            "commission_rate": item.get("commission_rate", 0),
        })
    return rows


def is_fully_reconciled(items, sold_items, returned_items) -> bool:
    return all(r == 0 for r in remaining_by_product(items, sold_items, returned_items).values())


def check_allocation(items, sold_items, returned_items, incoming: Iterable[dict]) -> None:
    """
    Reject a registration that would push sold + returned past shipped.

    Incoming quantities are summed per product first, so a request that
    lists the same product twice is checked as a whole.
    """
    remaining = remaining_by_product(items, sold_items, returned_items)
    requested = quantities_by_product(incoming)

    over = []
    for pid, qty in requested.items():
        if pid not in remaining:
            raise ValidationError(f"Product {pid} is not on this consignment")
        if qty > remaining[pid]:
            over.append({"product_id": pid, "requested": qty, "remaining": remaining[pid]})
    if over:
        raise OverAllocation(
            "Quantity exceeds remaining consignment balance",
            details={"items": over},
        )


def order_total_cents(items) -> int:
    return sum(int(i["quantity"]) * int(i.get("unit_price_cents", 0)) for i in items or ())


def sale_total_cents(entries) -> int:
    return sum(int(e["quantity"]) * int(e.get("price_cents", 0)) for e in entries or ())


def merge_collection(target: list[dict] | None, source: list[dict] | None, *, keep_pricing: bool = False) -> list[dict]:
    """
    Fold one item collection into another by product_id.

    Matching rows add quantities (the target keeps its own pricing);
    unmatched source rows are appended. With keep_pricing the appended row
    carries the source's unit_price_cents and commission_rate.
    """
    result = [dict(row) for row in (target or [])]
    index = {row["product_id"]: row for row in result}
    for row in source or ():
        pid = row["product_id"]
        if pid in index:
            index[pid]["quantity"] += int(row["quantity"])
            continue
        if keep_pricing:
            new_row = dict(row)
        else:
            new_row = {"product_id": pid, "quantity": int(row["quantity"])}
        result.append(new_row)
        index[pid] = new_row
    return result


def merge_orders(target: dict, sources: list[dict]) -> dict:
    """
    Compute the merged collections of a target order and its sources.

    Returns {"items", "sold_items", "returned_items", "total_value_cents"}.
    """
    items = target.get("items") or []
    sold = target.get("sold_items") or []
    returned = target.get("returned_items") or []
    for source in sources:
        items = merge_collection(items, source.get("items"), keep_pricing=True)
        sold = merge_collection(sold, source.get("sold_items"))
        returned = merge_collection(returned, source.get("returned_items"))
    return {
        "items": items,
        "sold_items": sold,
        "returned_items": returned,
        "total_value_cents": order_total_cents(items),
    }


def stock_deltas(entries: Iterable[dict], sign: int) -> dict[str, int]:
    """Per-product stock change for a movement: sign=-1 out, +1 in."""
    return {pid: sign * qty for pid, qty in quantities_by_product(entries).items()}
