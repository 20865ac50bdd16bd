from __future__ import annotations

from ..extensions import db
from ..ids import new_id
from ..time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data with an on-hand stock counter.

    STOCK:
    - stock is the owned, on-hand quantity. Goods out on consignment are not
      part of it until returned.
    - stock >= 0 is enforced by the services, not by the column.
    - Deleting a product leaves its id in historical inventory logs; readers
      treat those references as dangling, not as errors.

    CONCURRENCY: version_id is an optimistic-concurrency counter. A writer
    holding a stale row fails at flush with StaleDataError and retries.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category", "name"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)

    sku = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    retail_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0, index=True)
    min_stock_alert = db.Column(db.Integer, nullable=False, default=0)

    # "local:img_<id>" for uploaded images, or an external URL
    image_url = db.Column(db.String(512), nullable=True)
    material = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock_alert

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "cost_price_cents": self.cost_price_cents,
            "retail_price_cents": self.retail_price_cents,
            "stock": self.stock,
            "min_stock_alert": self.min_stock_alert,
            "image_url": self.image_url,
            "material": self.material,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class Partner(db.Model):
    """A consignee: sells our goods on our behalf for a commission."""
    __tablename__ = "partners"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False, index=True)
    contact = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)

    # Percentage 0-100, informational only
    default_commission_rate = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Partner id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact": self.contact,
            "phone": self.phone,
            "address": self.address,
            "default_commission_rate": self.default_commission_rate,
            "created_at": to_utc_z(self.created_at),
        }


class ProductImage(db.Model):
    """Binary image payload referenced from Product.image_url as local:<id>."""
    __tablename__ = "images"

    id = db.Column(db.String(64), primary_key=True)
    blob = db.Column(db.LargeBinary, nullable=False)
    content_type = db.Column(db.String(64), nullable=False, default="application/octet-stream")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content_type": self.content_type,
            "size": len(self.blob or b""),
        }
