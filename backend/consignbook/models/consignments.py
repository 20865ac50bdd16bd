from __future__ import annotations

from ..extensions import db
from ..ids import new_id
from ..time_utils import to_utc_z, utcnow

CONSIGNMENT_STATUS_DRAFT = "DRAFT"
CONSIGNMENT_STATUS_CONFIRMED = "CONFIRMED"
CONSIGNMENT_STATUS_COMPLETED = "COMPLETED"

CONSIGNMENT_STATUSES = (
    CONSIGNMENT_STATUS_DRAFT,
    CONSIGNMENT_STATUS_CONFIRMED,
    CONSIGNMENT_STATUS_COMPLETED,
)


class ConsignmentOrder(db.Model):
    """
    A batch of goods shipped to one partner.

    LIFECYCLE:
    1. DRAFT: items editable, no stock effect
    2. CONFIRMED: stock deducted for every item, SEND logged;
       sold_items / returned_items accumulate as the partner reports
    3. COMPLETED: every item fully reconciled (remaining == 0)

    COLLECTIONS (JSON lists of dicts, one row per product_id):
    - items: {product_id, quantity, unit_price_cents, commission_rate}
    - sold_items: {product_id, quantity}
    - returned_items: {product_id, quantity}

    INVARIANT: for every item, sold + returned <= quantity.

    JSON columns are replaced wholesale on change, never mutated in place,
    so SQLAlchemy sees every write.
    """
    __tablename__ = "consignments"
    __table_args__ = (
        db.Index("ix_consignments_partner_status", "partner_id", "status"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    partner_id = db.Column(db.String(32), db.ForeignKey("partners.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=CONSIGNMENT_STATUS_DRAFT, index=True)

    items = db.Column(db.JSON, nullable=False, default=list)
    sold_items = db.Column(db.JSON, nullable=False, default=list)
    returned_items = db.Column(db.JSON, nullable=False, default=list)

    # Cached sum of items quantity * unit_price_cents
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)

    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    confirmed_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    partner = db.relationship("Partner", backref=db.backref("consignments", lazy=True))

    def __repr__(self) -> str:
        return f"<ConsignmentOrder id={self.id} partner_id={self.partner_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "partner_id": self.partner_id,
            "status": self.status,
            "items": list(self.items or []),
            "sold_items": list(self.sold_items or []),
            "returned_items": list(self.returned_items or []),
            "total_value_cents": self.total_value_cents,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "completed_at": to_utc_z(self.completed_at),
            "version_id": self.version_id,
        }
