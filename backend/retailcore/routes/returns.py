# backend/retailcore/routes/returns.py
"""
Customer return API routes.

The tenant's return policy (enabled, approval required, deadline) is resolved
by the configured PolicyProvider; when approval is not required a return is
approved and refunded in the same request.
"""
from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy.exc import OperationalError

from ..core import current_core
from ..decorators import require_identity
from ..errors import CoreError, LockTimeout
from ..validation import coerce_optional_int, coerce_positive_int, require_json_object, require_fields


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_identity
def create_return():
    """
    Request a return against a transaction.

    Request body:
    {
        "transaction_id": int,
        "items": [{"variant_id": int, "quantity": int}],
        "reason": "CUSTOMER_REQUEST" | "WRONG_SIZE" | "WRONG_ITEM" | "DEFECTIVE" | "EXPIRED" | "OTHER",
        "refund_method": str (optional, defaults to the transaction's payment method),
        "notes": str (optional)
    }

    Returns:
        201: Return created (PENDING, or APPROVED when no approval is required)
        400: Invalid request, returns disabled, or over-return
        404: Transaction not found
        422: Return window has passed
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "transaction_id", "items", "reason")

        ret = current_core().returns.request_return(
            g.tenant_id,
            coerce_positive_int(data["transaction_id"], "transaction_id"),
            data["items"],
            data["reason"],
            refund_method=data.get("refund_method"),
            requested_by=g.actor_id,
            notes=data.get("notes"),
        )
        return jsonify(ret.to_dict()), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except (LockTimeout, OperationalError):
        current_app.logger.warning("Return request gave up on lock contention")
        return jsonify({"error": "Transaction is busy, retry the request", "code": "busy", "details": {}}), 503
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
@require_identity
def list_returns():
    """Query params: status, transaction_id (both optional)."""
    try:
        returns = current_core().returns.list_returns(
            g.tenant_id,
            status=request.args.get("status"),
            transaction_id=coerce_optional_int(request.args.get("transaction_id"), "transaction_id"),
        )
        return jsonify({"returns": [r.to_dict() for r in returns]}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/stats")
@require_identity
def return_stats():
    try:
        return jsonify(current_core().returns.stats(g.tenant_id)), 200
    except Exception:
        current_app.logger.exception("Failed to compute return stats")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
@require_identity
def get_return(return_id: int):
    try:
        ret = current_core().returns.get_return(g.tenant_id, return_id)
        return jsonify(ret.to_dict()), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/approve")
@require_identity
def approve_return(return_id: int):
    """
    Approve a pending return: credit stock and issue the refund.

    Returns:
        200: Return approved
        404: Return not found
        409: Return is not PENDING
    """
    try:
        ret = current_core().returns.approve_return(g.tenant_id, return_id, decided_by=g.actor_id)
        return jsonify(ret.to_dict()), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except (LockTimeout, OperationalError):
        current_app.logger.warning("Return approval gave up on lock contention")
        return jsonify({"error": "Stock is busy, retry the request", "code": "busy", "details": {}}), 503
    except Exception:
        current_app.logger.exception("Failed to approve return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/reject")
@require_identity
def reject_return(return_id: int):
    """
    Request body:
    {
        "reason": str (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        ret = current_core().returns.reject_return(
            g.tenant_id,
            return_id,
            reason=data.get("reason"),
            decided_by=g.actor_id,
        )
        return jsonify(ret.to_dict()), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject return")
        return jsonify({"error": "Internal server error"}), 500
