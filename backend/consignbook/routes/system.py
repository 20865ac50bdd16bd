# backend/consignbook/routes/system.py
"""
System endpoints: health, dashboard, cache snapshot, backup/restore.
"""
import time

from flask import Blueprint, Response, current_app, jsonify, request

from ..errors import LedgerError
from ..extensions import db
from ..models import Product
from ..services import backup_service, reporting_service
from ..state import get_state
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"products": product_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status = 200 if database["status"] == "healthy" else 503
    return jsonify({
        "status": database["status"],
        "time": to_utc_z(utcnow()),
        "database": database,
    }), status


@system_bp.get("/api/dashboard")
def dashboard_route():
    return jsonify(reporting_service.dashboard_summary())


@system_bp.get("/api/reports/top-products")
def top_products_route():
    """Query: ?limit=5"""
    try:
        rows = reporting_service.top_products(request.args.get("limit", default=5, type=int))
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    return jsonify({"items": rows, "count": len(rows)})


@system_bp.get("/api/state")
def state_snapshot_route():
    """Application state cache, as a presentation layer would read it."""
    cache = get_state().cache
    cache.ensure_loaded()
    return jsonify(cache.snapshot())


@system_bp.get("/api/backup")
def export_backup_route():
    body = backup_service.export_json()
    filename = f"consignbook-backup-{utcnow().date().isoformat()}.json"
    return Response(
        body,
        mimetype="application/json",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@system_bp.post("/api/backup")
def import_backup_route():
    try:
        counts = backup_service.import_data(request.get_data(as_text=True))
        return jsonify({"ok": True, "imported": counts}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to import backup")
        return jsonify({"error": "Internal server error"}), 500
