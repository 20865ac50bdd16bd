from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

LOG_SEND = "SEND"
LOG_SOLD = "SOLD"
LOG_RETURN = "RETURN"
LOG_ADJUSTMENT_IN = "ADJUSTMENT_IN"
LOG_ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
LOG_DIRECT_SALE = "DIRECT_SALE"
LOG_MERGE = "MERGE"

CONSIGNMENT_LOG_TYPES = (LOG_SEND, LOG_SOLD, LOG_RETURN)
ADJUSTMENT_LOG_TYPES = (LOG_ADJUSTMENT_IN, LOG_ADJUSTMENT_OUT)

LOG_TYPES = (
    LOG_SEND,
    LOG_SOLD,
    LOG_RETURN,
    LOG_ADJUSTMENT_IN,
    LOG_ADJUSTMENT_OUT,
    LOG_DIRECT_SALE,
    LOG_MERGE,
)


class InventoryLogEntry(db.Model):
    """
    Append-only audit record of a stock movement.

    - Rows are never updated or deleted after insert.
    - Written in the same DB transaction as the movement they record.
    - product_id is set only for adjustment entries; partner_id only for
      consignment entries (SEND/SOLD/RETURN/MERGE).
    - product_id values inside items may refer to deleted products.
    """
    __tablename__ = "inventory_logs"
    __table_args__ = (
        db.Index("ix_inventory_logs_partner_date", "partner_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(32), nullable=False, index=True)
    date = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    partner_id = db.Column(db.String(32), nullable=True, index=True)
    product_id = db.Column(db.String(32), nullable=True, index=True)
    consignment_id = db.Column(db.String(32), nullable=True, index=True)

    # [{product_id, quantity, price_cents?}]
    items = db.Column(db.JSON, nullable=False, default=list)

    reason = db.Column(db.String(32), nullable=True)
    note = db.Column(db.Text, nullable=True)

    # Structured extras, e.g. {"source_ids": [...]} for MERGE
    details = db.Column(db.JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<InventoryLogEntry id={self.id} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "date": to_utc_z(self.date),
            "partner_id": self.partner_id,
            "product_id": self.product_id,
            "consignment_id": self.consignment_id,
            "items": list(self.items or []),
            "reason": self.reason,
            "note": self.note,
            "details": self.details,
        }
