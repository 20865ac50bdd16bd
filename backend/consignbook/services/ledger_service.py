# Overview: Append-only inventory log: writes within the caller's transaction, and reads.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..errors import ValidationError
from ..extensions import db
from ..models import InventoryLogEntry
from ..models.logs import LOG_TYPES
"""
Inventory Log Invariants (authoritative)

- Append-only audit trail of every stock movement tied to a consignment,
  a direct sale, or a manual adjustment.
- No domain/business logic in the log itself.
- Entries are written inside the same DB transaction as the movement they
  record; the caller commits.
- No update/delete helpers exist on purpose; entries are immutable.
"""


def append_inventory_log(
    *,
    log_type: str,
    items: list[dict],
    partner_id: str | None = None,
    product_id: str | None = None,
    consignment_id: str | None = None,
    reason: str | None = None,
    note: str | None = None,
    details: dict | None = None,
    date: Optional[datetime] = None,
) -> InventoryLogEntry:
    """
    Append one log entry to the current session (flush, no commit).

    items is snapshotted: later changes to the caller's list do not leak in.
    """
    if log_type not in LOG_TYPES:
        raise ValidationError(f"Unknown inventory log type: {log_type}")

    entry = InventoryLogEntry(
        type=log_type,
        partner_id=partner_id,
        product_id=product_id,
        consignment_id=consignment_id,
        items=[dict(item) for item in items],
        reason=reason,
        note=note,
        details=details,
    )
    if date is not None:
        entry.date = date
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_inventory_logs(
    *,
    partner_id: str | None = None,
    product_id: str | None = None,
    log_type: str | None = None,
    consignment_id: str | None = None,
    limit: int = 500,
) -> list[InventoryLogEntry]:
    """
    Newest first. product_id matches adjustment entries and any entry whose
    items mention the product.
    """
    q = db.session.query(InventoryLogEntry)
    if partner_id is not None:
        q = q.filter(InventoryLogEntry.partner_id == partner_id)
    if log_type is not None:
        if log_type not in LOG_TYPES:
            raise ValidationError(f"Unknown inventory log type: {log_type}")
        q = q.filter(InventoryLogEntry.type == log_type)
    if consignment_id is not None:
        q = q.filter(InventoryLogEntry.consignment_id == consignment_id)

    q = q.order_by(InventoryLogEntry.date.desc(), InventoryLogEntry.id.desc())

    if product_id is None:
        return q.limit(limit).all()

    # JSON item lists are filtered in Python to stay portable across backends
    matched = []
    for entry in q:
        if entry.product_id == product_id or any(
            item.get("product_id") == product_id for item in entry.items or ()
        ):
            matched.append(entry)
            if len(matched) >= limit:
                break
    return matched
