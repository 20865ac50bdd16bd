from __future__ import annotations

from ..extensions import db
from ..ids import new_id
from ..time_utils import to_utc_z, utcnow

SALE_TYPE_DIRECT = "DIRECT"
SALE_TYPE_CONSIGNMENT = "CONSIGNMENT"


class SaleRecord(db.Model):
    """
    Immutable record of money in.

    DIRECT sales come from checkout and deduct owned stock.
    CONSIGNMENT sales are reported by a partner against a confirmed order
    (related_consignment_id) and touch no stock: the goods already left
    inventory when the order was confirmed.
    """
    __tablename__ = "sales"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    type = db.Column(db.String(16), nullable=False, index=True)

    # [{product_id, quantity, price_cents}]
    items = db.Column(db.JSON, nullable=False, default=list)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    date = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    # Not a foreign key: merged orders are deleted, their sales remain
    related_consignment_id = db.Column(db.String(32), nullable=True, index=True)
    payment_method = db.Column(db.String(32), nullable=True)

    def __repr__(self) -> str:
        return f"<SaleRecord id={self.id} type={self.type} total={self.total_amount_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "items": list(self.items or []),
            "total_amount_cents": self.total_amount_cents,
            "date": to_utc_z(self.date),
            "related_consignment_id": self.related_consignment_id,
            "payment_method": self.payment_method,
        }
