# Overview: Flask API routes for direct sales and the sales journal.

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError
from ..services import sales_service

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def list_sales_route():
    sales = sales_service.list_sales(
        type=request.args.get("type"),
        consignment_id=request.args.get("consignment_id"),
    )
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)})


@sales_bp.get("/<sale_id>")
def get_sale_route(sale_id: str):
    try:
        return jsonify(sales_service.get_sale(sale_id).to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.post("")
def create_sale_route():
    """
    Direct sale checkout.

    Request body:
    {
        "items": [{"product_id": str, "quantity": int, "price_cents": int}],
        "payment_method": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.add_sale(
            data.get("items"),
            payment_method=data.get("payment_method"),
            type=data.get("type", "DIRECT"),
        )
        return jsonify(sale.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500
