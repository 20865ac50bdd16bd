# Overview: Flask API routes for products, partners and product images.

from flask import Blueprint, Response, current_app, jsonify, request

from ..errors import LedgerError, ValidationError
from ..services import products_service

products_bp = Blueprint("products", __name__, url_prefix="/api")


@products_bp.get("/products")
def list_products_route():
    """
    List products.

    Query params:
    - category: str (optional)
    - q: str (optional) - substring match on name or SKU
    - low_stock: "1" to list only products at or below their alert threshold
    """
    if request.args.get("low_stock") == "1":
        products = products_service.list_low_stock()
    else:
        products = products_service.list_products(
            category=request.args.get("category"),
            search=request.args.get("q"),
        )
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})


@products_bp.get("/products/<product_id>")
def get_product_route(product_id: str):
    try:
        return jsonify(products_service.get_product(product_id).to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.post("/products")
def create_product_route():
    """
    Create a product.

    Request body: {sku, name, category?, cost_price_cents?, retail_price_cents?,
    stock?, min_stock_alert?, image_url?, material?, description?}
    """
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.create_product(payload)
        return jsonify(product.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/products/<product_id>")
def update_product_route(product_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.update_product(product_id, payload)
        return jsonify(product.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/products/<product_id>/image")
def upload_product_image_route(product_id: str):
    """
    Attach an image. Accepts multipart (field "image") or a raw body
    with its Content-Type.
    """
    upload = request.files.get("image")
    if upload is not None:
        blob, content_type = upload.read(), upload.mimetype
    else:
        blob, content_type = request.get_data(), request.mimetype
    try:
        if not blob:
            raise ValidationError("image is required")
        product = products_service.update_product(product_id, {}, image=blob, image_type=content_type)
        return jsonify(product.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to store product image")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/products/<product_id>")
def delete_product_route(product_id: str):
    try:
        products_service.delete_product(product_id)
        return jsonify({"ok": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/images/<image_id>")
def get_image_route(image_id: str):
    try:
        image = products_service.get_image(image_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    return Response(image.blob, mimetype=image.content_type)


@products_bp.get("/partners")
def list_partners_route():
    partners = products_service.list_partners()
    return jsonify({"items": [p.to_dict() for p in partners], "count": len(partners)})


@products_bp.get("/partners/<partner_id>")
def get_partner_route(partner_id: str):
    try:
        return jsonify(products_service.get_partner(partner_id).to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@products_bp.post("/partners")
def create_partner_route():
    """
    Request body: {name, contact?, phone?, address?, default_commission_rate?}
    """
    payload = request.get_json(silent=True) or {}
    try:
        partner = products_service.create_partner(payload)
        return jsonify(partner.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create partner")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/partners/<partner_id>")
def update_partner_route(partner_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        partner = products_service.update_partner(partner_id, payload)
        return jsonify(partner.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update partner")
        return jsonify({"error": "Internal server error"}), 500
