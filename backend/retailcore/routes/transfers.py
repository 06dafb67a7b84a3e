# backend/retailcore/routes/transfers.py
"""
Inter-branch transfer API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy.exc import OperationalError

from ..core import current_core
from ..decorators import require_identity
from ..errors import CoreError, LockTimeout
from ..validation import coerce_optional_int, coerce_positive_int, require_json_object, require_fields


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.route("", methods=["POST"])
@require_identity
def create_transfer():
    """
    Request a transfer (status: PENDING).

    Request body:
    {
        "variant_id": int,
        "from_branch_id": int,
        "to_branch_id": int,
        "quantity": int,
        "notes": str (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request
        404: Unknown variant
        409: Same source and destination branch
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(data, "variant_id", "from_branch_id", "to_branch_id", "quantity")

        transfer = current_core().transfers.request_transfer(
            g.tenant_id,
            coerce_positive_int(data["variant_id"], "variant_id"),
            coerce_positive_int(data["from_branch_id"], "from_branch_id"),
            coerce_positive_int(data["to_branch_id"], "to_branch_id"),
            data["quantity"],
            requested_by=g.actor_id,
            notes=data.get("notes"),
        )
        return jsonify(transfer.to_dict()), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except (LockTimeout, OperationalError):
        current_app.logger.warning("Transfer request gave up on lock contention")
        return jsonify({"error": "Transfers are busy, retry the request", "code": "busy", "details": {}}), 503
    except Exception:
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("", methods=["GET"])
@require_identity
def list_transfers():
    """
    List transfers, newest first.

    Query params: status, branch_id, variant_id (all optional)
    """
    try:
        transfers = current_core().transfers.list_transfers(
            g.tenant_id,
            status=request.args.get("status"),
            branch_id=coerce_optional_int(request.args.get("branch_id"), "branch_id"),
            variant_id=coerce_optional_int(request.args.get("variant_id"), "variant_id"),
        )
        return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/stats/summary", methods=["GET"])
@require_identity
def transfer_stats():
    """Transfer counts and unit totals. Query param: branch_id (matches either end)."""
    try:
        stats = current_core().transfers.stats(g.tenant_id, branch_id=request.args.get("branch_id"))
        return jsonify(stats), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute transfer stats")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
@require_identity
def get_transfer(transfer_id: int):
    try:
        transfer = current_core().transfers.get_transfer(g.tenant_id, transfer_id)
        return jsonify(transfer.to_dict()), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/<int:transfer_id>/approve", methods=["POST"])
@require_identity
def approve_transfer(transfer_id: int):
    """
    Approve a transfer: debit source, credit destination.

    Returns:
        200: Transfer approved
        404: Transfer not found
        409: Not PENDING, or insufficient stock at source (transfer stays PENDING)
    """
    try:
        transfer = current_core().transfers.approve_transfer(
            g.tenant_id,
            transfer_id,
            decided_by=g.actor_id,
        )
        return jsonify(transfer.to_dict()), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except (LockTimeout, OperationalError):
        current_app.logger.warning("Transfer approval gave up on lock contention")
        return jsonify({"error": "Stock is busy, retry the request", "code": "busy", "details": {}}), 503
    except Exception:
        current_app.logger.exception("Failed to approve transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("/<int:transfer_id>/reject", methods=["POST"])
@require_identity
def reject_transfer(transfer_id: int):
    """
    Reject a pending transfer.

    Request body:
    {
        "reason": str (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        transfer = current_core().transfers.reject_transfer(
            g.tenant_id,
            transfer_id,
            reason=data.get("reason"),
            decided_by=g.actor_id,
        )
        return jsonify(transfer.to_dict()), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject transfer")
        return jsonify({"error": "Internal server error"}), 500
