# backend/retailcore/routes/stock.py
"""
Stock ledger routes.

Quantities returned by GET are a snapshot for display; every mutation
re-reads under the row lock.
"""
from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy.exc import OperationalError

from ..core import current_core
from ..decorators import require_identity
from ..errors import CoreError, LockTimeout
from ..validation import coerce_int, coerce_positive_int, require_json_object, require_fields


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/adjustments")
@require_identity
def list_adjustments():
    """
    Tenant-wide adjustment log, newest first.

    Query params (all optional):
        branch_id, variant_id, reason, start_date, end_date,
        page (default 1), limit (default 50, max 500)
    """
    try:
        result = current_core().ledger.search_adjustments(
            g.tenant_id,
            branch_id=request.args.get("branch_id"),
            variant_id=request.args.get("variant_id"),
            reason=request.args.get("reason"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            page=request.args.get("page", "1"),
            limit=request.args.get("limit", "50"),
        )
        return jsonify({
            "adjustments": [a.to_dict() for a in result["adjustments"]],
            "pagination": {
                "page": result["page"],
                "limit": result["limit"],
                "total": result["total"],
                "total_pages": result["total_pages"],
            },
        }), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock adjustments")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/alerts/low")
@require_identity
def low_stock_alerts():
    """Stock rows below their alert threshold. Query param: branch_id (optional)."""
    try:
        rows = current_core().ledger.low_stock(g.tenant_id, branch_id=request.args.get("branch_id"))
        return jsonify({"items": [s.to_dict() for s in rows]}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:variant_id>/<int:branch_id>")
@require_identity
def get_stock(variant_id: int, branch_id: int):
    try:
        stock = current_core().ledger.get_stock(g.tenant_id, variant_id, branch_id)
        if stock is None:
            return jsonify({
                "variant_id": variant_id,
                "branch_id": branch_id,
                "quantity": 0,
                "min_stock": 0,
                "is_low": False,
            }), 200
        return jsonify(stock.to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to read stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/adjustment")
@require_identity
def adjust_stock():
    """
    Manual stock correction.

    Request body:
    {
        "variant_id": int,
        "branch_id": int,
        "delta": int (signed, non-zero),
        "reason": "STOCK_OPNAME" | "DAMAGED" | "LOST" | "SUPPLIER_RETURN" | "INPUT_ERROR" | "RESTOCK" | "OTHER",
        "note": str (optional)
    }

    Returns:
        201: Adjustment recorded
        400: Invalid request
        409: Adjustment would make stock negative
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "variant_id", "branch_id", "delta", "reason")

        adjustment = current_core().ledger.adjust(
            g.tenant_id,
            coerce_positive_int(data["variant_id"], "variant_id"),
            coerce_positive_int(data["branch_id"], "branch_id"),
            data["delta"],
            data["reason"],
            actor_id=g.actor_id,
            note=data.get("note"),
        )
        return jsonify(adjustment.to_dict()), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except (LockTimeout, OperationalError):
        current_app.logger.warning("Stock adjustment gave up on lock contention")
        return jsonify({"error": "Stock is busy, retry the request", "code": "busy", "details": {}}), 503
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:variant_id>/<int:branch_id>/history")
@require_identity
def stock_history(variant_id: int, branch_id: int):
    """Adjustment log, newest first. Query param: limit (default 100, max 1000)."""
    try:
        adjustments = current_core().ledger.history(
            g.tenant_id,
            variant_id,
            branch_id,
            limit=coerce_int(request.args.get("limit", "100"), "limit"),
        )
        return jsonify({"adjustments": [a.to_dict() for a in adjustments]}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to read stock history")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/alert")
@require_identity
def set_stock_alert():
    """
    Set the low-stock alert threshold for one variant at one branch.

    Request body:
    {
        "variant_id": int,
        "branch_id": int,
        "min_stock": int (0 disables the alert)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "variant_id", "branch_id", "min_stock")

        stock = current_core().ledger.set_min_stock(
            g.tenant_id,
            coerce_positive_int(data["variant_id"], "variant_id"),
            coerce_positive_int(data["branch_id"], "branch_id"),
            data["min_stock"],
        )
        return jsonify(stock.to_dict()), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set stock alert")
        return jsonify({"error": "Internal server error"}), 500
