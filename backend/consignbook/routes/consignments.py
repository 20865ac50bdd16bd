# backend/consignbook/routes/consignments.py
"""
Consignment API routes: lifecycle, partner sales/returns, merge.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError, ValidationError
from ..services import consignment_service

consignments_bp = Blueprint("consignments", __name__, url_prefix="/api/consignments")


@consignments_bp.get("")
def list_consignments_route():
    """
    Query params:
    - partner_id: str (optional)
    - status: DRAFT | CONFIRMED | COMPLETED (optional)
    """
    orders = consignment_service.list_consignments(
        partner_id=request.args.get("partner_id"),
        status=request.args.get("status"),
    )
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)})


@consignments_bp.get("/mergeable")
def list_mergeable_route():
    partner_id = request.args.get("partner_id")
    if not partner_id:
        return jsonify({"error": "partner_id required"}), 400
    orders = consignment_service.list_mergeable(partner_id)
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)})


@consignments_bp.get("/<order_id>")
def get_consignment_route(order_id: str):
    """Order with per-product shipped/sold/returned/remaining lines."""
    try:
        order = consignment_service.get_consignment(order_id)
        return jsonify(consignment_service.consignment_progress(order))
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@consignments_bp.post("")
def create_consignment_route():
    """
    Create a DRAFT consignment.

    Request body:
    {
        "partner_id": str,
        "items": [{"product_id": str, "quantity": int,
                   "unit_price_cents": int?, "commission_rate": float?}],
        "note": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        order = consignment_service.create_consignment(
            partner_id=data["partner_id"],
            items=data.get("items"),
            note=data.get("note"),
        )
        return jsonify(order.to_dict()), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create consignment")
        return jsonify({"error": "Internal server error"}), 500


@consignments_bp.put("/<order_id>")
def update_consignment_route(order_id: str):
    data = request.get_json(silent=True) or {}
    try:
        order = consignment_service.update_consignment(
            order_id,
            items=data.get("items"),
            note=data.get("note"),
        )
        return jsonify(order.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update consignment")
        return jsonify({"error": "Internal server error"}), 500


@consignments_bp.delete("/<order_id>")
def delete_consignment_route(order_id: str):
    try:
        consignment_service.delete_consignment(order_id)
        return jsonify({"ok": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete consignment")
        return jsonify({"error": "Internal server error"}), 500


@consignments_bp.post("/<order_id>/status")
def update_status_route(order_id: str):
    """
    Request body: {"status": "CONFIRMED" | "COMPLETED"}

    Returns:
        200: Status changed
        404: Consignment or product not found
        409: Invalid transition, outstanding items or insufficient stock
    """
    data = request.get_json(silent=True) or {}
    try:
        if not data.get("status"):
            raise ValidationError("status required")
        order = consignment_service.update_consignment_status(order_id, data["status"])
        return jsonify(order.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update consignment status")
        return jsonify({"error": "Internal server error"}), 500


@consignments_bp.post("/<order_id>/sales")
def register_sale_route(order_id: str):
    """
    Request body:
    {
        "items": [{"product_id": str, "quantity": int, "price_cents": int}],
        "payment_method": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        sale = consignment_service.register_consignment_sale(
            order_id,
            data.get("items"),
            payment_method=data.get("payment_method"),
        )
        return jsonify(sale.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to register consignment sale")
        return jsonify({"error": "Internal server error"}), 500


@consignments_bp.post("/<order_id>/returns")
def return_items_route(order_id: str):
    """Request body: {"items": [{"product_id": str, "quantity": int}]}"""
    data = request.get_json(silent=True) or {}
    try:
        order = consignment_service.return_consignment_items(order_id, data.get("items"))
        return jsonify(order.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to return consignment items")
        return jsonify({"error": "Internal server error"}), 500


@consignments_bp.post("/<target_id>/merge")
def merge_route(target_id: str):
    """Request body: {"source_ids": [str, ...]}"""
    data = request.get_json(silent=True) or {}
    try:
        order = consignment_service.merge_consignments(target_id, data.get("source_ids"))
        return jsonify(order.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to merge consignments")
        return jsonify({"error": "Internal server error"}), 500
