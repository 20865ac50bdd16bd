# backend/consignbook/services/products_service.py
"""
Products and partners: master data CRUD.

Product.stock is writable only on create (opening balance). Afterwards it
moves exclusively through consignment, sale and adjustment operations so
that every change is logged.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import PartnerNotFound, ProductNotFound, ValidationError
from ..extensions import db
from ..models import Partner, Product, ProductImage
from ..state import publish_change
from ..sync import ADD_PARTNER, ADD_PRODUCT, DELETE_PRODUCT, UPDATE_PARTNER, UPDATE_PRODUCT
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_partner,
    enforce_rules_product,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry

LOCAL_IMAGE_PREFIX = "local:"

_PRODUCT_FIELDS = frozenset({
    "sku", "name", "category", "cost_price_cents", "retail_price_cents",
    "min_stock_alert", "image_url", "material", "description",
})

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=_PRODUCT_FIELDS | {"stock"},
    required_on_create=frozenset({"sku", "name"}),
)
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(writable_fields=_PRODUCT_FIELDS)

PARTNER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "contact", "phone", "address", "default_commission_rate"}),
    required_on_create=frozenset({"name"}),
)


def image_id_for(product_id: str) -> str:
    return f"img_{product_id}"


def _store_image(product: Product, image: bytes, content_type: str | None) -> None:
    if not image:
        raise ValidationError("image is empty")
    image_id = image_id_for(product.id)
    row = db.session.get(ProductImage, image_id)
    if row is None:
        row = ProductImage(id=image_id)
        db.session.add(row)
    row.blob = image
    row.content_type = content_type or "application/octet-stream"
    product.image_url = f"{LOCAL_IMAGE_PREFIX}{image_id}"


def get_product(product_id: str) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found")
    return product


def list_products(*, category: str | None = None, search: str | None = None) -> list[Product]:
    q = db.session.query(Product)
    if category:
        q = q.filter(Product.category == category)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(like), Product.sku.ilike(like)))
    return q.order_by(Product.created_at.asc(), Product.id.asc()).all()


def list_low_stock() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.stock <= Product.min_stock_alert)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )


def get_image(image_id: str) -> ProductImage:
    row = db.session.get(ProductImage, image_id)
    if row is None:
        raise ProductNotFound(f"Image {image_id} not found")
    return row


def create_product(payload: dict, *, image: bytes | None = None, image_type: str | None = None) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    if patch.get("min_stock_alert") is None:
        patch["min_stock_alert"] = current_app.config.get("DEFAULT_MIN_STOCK_ALERT", 0)
    if patch.get("stock") is None:
        patch["stock"] = 0

    def _op():
        product = Product(**patch)
        db.session.add(product)
        db.session.flush()
        if image is not None:
            _store_image(product, image, image_type)
        db.session.commit()
        return product

    product = run_with_retry(_op)
    publish_change(ADD_PRODUCT, products=[product.to_dict()])
    return product


def update_product(
    product_id: str,
    payload: dict,
    *,
    image: bytes | None = None,
    image_type: str | None = None,
) -> Product:
    if payload and "stock" in payload:
        raise ValidationError("stock changes must go through a stock adjustment")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)
    if not patch and image is None:
        raise ValidationError("Nothing to update")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found")
        for key, value in patch.items():
            setattr(product, key, value)
        if image is not None:
            _store_image(product, image, image_type)
        db.session.commit()
        return product

    product = run_with_retry(_op)
    publish_change(UPDATE_PRODUCT, products=[product.to_dict()])
    return product


def delete_product(product_id: str) -> None:
    """
    Hard delete. Inventory logs keep the product id as a dangling reference.
    """
    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found")
        image = db.session.get(ProductImage, image_id_for(product_id))
        if image is not None:
            db.session.delete(image)
        db.session.delete(product)
        db.session.commit()

    run_with_retry(_op)
    publish_change(DELETE_PRODUCT, deleted={"products": [product_id]})


def get_partner(partner_id: str) -> Partner:
    partner = db.session.get(Partner, partner_id)
    if partner is None:
        raise PartnerNotFound(f"Partner {partner_id} not found")
    return partner


def list_partners() -> list[Partner]:
    return db.session.query(Partner).order_by(Partner.name.asc()).all()


def create_partner(payload: dict) -> Partner:
    patch = validate_payload(model=Partner, payload=payload, policy=PARTNER_POLICY, partial=False)
    enforce_rules_partner(patch)

    def _op():
        partner = Partner(**patch)
        db.session.add(partner)
        db.session.commit()
        return partner

    partner = run_with_retry(_op)
    publish_change(ADD_PARTNER, partners=[partner.to_dict()])
    return partner


def update_partner(partner_id: str, payload: dict) -> Partner:
    patch = validate_payload(model=Partner, payload=payload, policy=PARTNER_POLICY, partial=True)
    enforce_rules_partner(patch)
    if not patch:
        raise ValidationError("Nothing to update")

    def _op():
        partner = db.session.get(Partner, partner_id)
        if partner is None:
            raise PartnerNotFound(f"Partner {partner_id} not found")
        for key, value in patch.items():
            setattr(partner, key, value)
        db.session.commit()
        return partner

    partner = run_with_retry(_op)
    publish_change(UPDATE_PARTNER, partners=[partner.to_dict()])
    return partner
