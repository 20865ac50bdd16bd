# Overview: Flask API routes for stock adjustments and the inventory log.

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError
from ..services import ledger_service, stock_service

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/adjustments")
def create_adjustment_route():
    """
    Request body:
    {
        "product_id": str,
        "type": "IN" | "OUT",
        "reason": str,
        "quantity": int,
        "note": str (optional)
    }

    Returns:
        201: Log entry of the adjustment
        400: Invalid input
        404: Product not found
        409: OUT larger than stock
    """
    data = request.get_json(silent=True) or {}
    try:
        entry = stock_service.add_stock_adjustment(
            product_id=data["product_id"],
            type=data.get("type"),
            reason=data.get("reason"),
            quantity=data.get("quantity"),
            note=data.get("note"),
        )
        return jsonify(entry.to_dict()), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/reasons")
def list_reasons_route():
    return jsonify({k: list(v) for k, v in stock_service.ADJUSTMENT_REASONS.items()})


@inventory_bp.get("/logs")
def list_logs_route():
    """
    Query params: partner_id, product_id, consignment_id, type, limit (default 500)
    """
    try:
        entries = ledger_service.list_inventory_logs(
            partner_id=request.args.get("partner_id"),
            product_id=request.args.get("product_id"),
            consignment_id=request.args.get("consignment_id"),
            log_type=request.args.get("type"),
            limit=request.args.get("limit", default=500, type=int),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})
