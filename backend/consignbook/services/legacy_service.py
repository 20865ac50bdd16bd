# Overview: One-time conversion of the pre-unification log tables into inventory_logs.

from __future__ import annotations

import logging
from typing import Iterable, Mapping

import sqlalchemy as sa

from ..errors import ValidationError
from ..extensions import db
from ..models import InventoryLogEntry
from ..models.logs import CONSIGNMENT_LOG_TYPES, LOG_ADJUSTMENT_IN, LOG_ADJUSTMENT_OUT

# Legacy schema (before inventory_logs existed):
#
# - consignment_logs(id, type SEND|SOLD|RETURN, date, partner_id, items)
# - stock_adjustments(id, product_id, type IN|OUT, reason, quantity, note, date)
#
# Conversion rules:
# - date and items are carried over unchanged.
# - Consignment logs keep their type; product_id/reason/note are null.
# - Adjustments become ADJUSTMENT_IN / ADJUSTMENT_OUT with a single item
#   {product_id, quantity}; note defaults to "".
# - Legacy ids are not kept: unified ids are assigned in conversion order
#   (all consignment logs first, then adjustments).

logger = logging.getLogger(__name__)

legacy_metadata = sa.MetaData()

consignment_logs_table = sa.Table(
    "consignment_logs",
    legacy_metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("type", sa.String(16), nullable=False),
    sa.Column("date", sa.DateTime, nullable=False),
    sa.Column("partner_id", sa.String(32), nullable=True),
    sa.Column("items", sa.JSON, nullable=False),
)

stock_adjustments_table = sa.Table(
    "stock_adjustments",
    legacy_metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("product_id", sa.String(32), nullable=False),
    sa.Column("type", sa.String(8), nullable=False),
    sa.Column("reason", sa.String(32), nullable=True),
    sa.Column("quantity", sa.Integer, nullable=False),
    sa.Column("note", sa.Text, nullable=True),
    sa.Column("date", sa.DateTime, nullable=False),
)


def convert_consignment_log(row: Mapping) -> dict:
    log_type = row.get("type")
    if log_type not in CONSIGNMENT_LOG_TYPES:
        raise ValidationError(f"Unknown legacy consignment log type: {log_type}")
    return {
        "type": log_type,
        "date": row.get("date"),
        "partner_id": row.get("partner_id"),
        "product_id": None,
        "items": row.get("items") or [],
        "reason": None,
        "note": None,
    }


def convert_stock_adjustment(row: Mapping) -> dict:
    direction = row.get("type")
    if direction == "IN":
        log_type = LOG_ADJUSTMENT_IN
    elif direction == "OUT":
        log_type = LOG_ADJUSTMENT_OUT
    else:
        raise ValidationError(f"Unknown legacy stock adjustment type: {direction}")
    product_id = row.get("product_id")
    return {
        "type": log_type,
        "date": row.get("date"),
        "partner_id": None,
        "product_id": product_id,
        "items": [{"product_id": product_id, "quantity": row.get("quantity")}],
        "reason": row.get("reason"),
        "note": row.get("note") or "",
    }


def convert_legacy_records(
    consignment_logs: Iterable[Mapping] = (),
    stock_adjustments: Iterable[Mapping] = (),
) -> list[dict]:
    converted = [convert_consignment_log(row) for row in consignment_logs]
    converted.extend(convert_stock_adjustment(row) for row in stock_adjustments)
    return converted


def add_converted_logs(records: Iterable[dict]) -> int:
    """Insert converted records into the current session (no commit)."""
    count = 0
    for record in records:
        db.session.add(InventoryLogEntry(**record))
        count += 1
    db.session.flush()
    return count


def legacy_tables_present() -> list[str]:
    inspector = sa.inspect(db.session.connection())
    return [t.name for t in (consignment_logs_table, stock_adjustments_table) if inspector.has_table(t.name)]


def migrate_legacy_tables(*, drop: bool = True) -> dict:
    """
    Move rows from the legacy tables into inventory_logs, then drop them.

    Runs as one transaction. Safe to call again: once the legacy tables
    are gone there is nothing to do.
    """
    present = legacy_tables_present()
    if not present:
        return {"consignment_logs": 0, "stock_adjustments": 0}

    try:
        conn = db.session.connection()
        old_logs = []
        old_adjustments = []
        if consignment_logs_table.name in present:
            old_logs = conn.execute(
                sa.select(consignment_logs_table).order_by(consignment_logs_table.c.id)
            ).mappings().all()
        if stock_adjustments_table.name in present:
            old_adjustments = conn.execute(
                sa.select(stock_adjustments_table).order_by(stock_adjustments_table.c.id)
            ).mappings().all()

        add_converted_logs(convert_legacy_records(old_logs, old_adjustments))

        if drop:
            for table in (consignment_logs_table, stock_adjustments_table):
                if table.name in present:
                    table.drop(bind=conn)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "migrated %d consignment logs and %d stock adjustments into inventory_logs",
        len(old_logs), len(old_adjustments),
    )
    return {"consignment_logs": len(old_logs), "stock_adjustments": len(old_adjustments)}
