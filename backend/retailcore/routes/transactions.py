# backend/retailcore/routes/transactions.py
"""
Point-of-sale transaction routes.

Identity comes from the gateway headers (see require_identity).
Amounts are integer cents.
"""
from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy.exc import OperationalError

from ..core import current_core
from ..decorators import require_identity
from ..errors import CoreError, LockTimeout
from ..validation import coerce_positive_int, require_json_object


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("")
@require_identity
def create_transaction():
    """
    Record a sale and debit stock for every line.

    Request body:
    {
        "branch_id": int (optional, defaults to X-Branch-Id),
        "items": [{"variant_id": int, "quantity": int, "unit_price_cents": int}],
        "discount_cents": int (optional),
        "tax_cents": int (optional),
        "payment_method": "CASH" | "DEBIT" | "TRANSFER" | "QRIS",
        "payment_amount_cents": int (optional unless split),
        "payment_method2": str (split payment only),
        "payment_amount2_cents": int (split payment only),
        "customer_name": str (optional),
        "customer_phone": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Transaction committed
        400: Invalid request
        404: Unknown variant
        409: Insufficient stock (nothing was deducted)
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        branch_id = coerce_positive_int(data.get("branch_id", g.branch_id), "branch_id")

        txn = current_core().transactions.create_transaction(
            g.tenant_id,
            branch_id,
            data.get("items"),
            payment_method=data.get("payment_method"),
            payment_amount_cents=data.get("payment_amount_cents"),
            payment_method2=data.get("payment_method2"),
            payment_amount2_cents=data.get("payment_amount2_cents"),
            discount_cents=data.get("discount_cents", 0),
            tax_cents=data.get("tax_cents", 0),
            cashier_id=g.actor_id,
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            notes=data.get("notes"),
        )
        return jsonify(txn.to_dict()), 201

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except (LockTimeout, OperationalError):
        current_app.logger.warning("Transaction create gave up on lock contention")
        return jsonify({"error": "Stock is busy, retry the request", "code": "busy", "details": {}}), 503
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
@require_identity
def list_transactions():
    """
    List transactions, newest first.

    Query params (all optional):
        branch_id, status (COMPLETED | CANCELLED), payment_method,
        start_date, end_date (ISO-8601; a date-only end_date covers the whole day),
        limit (default 100, max 1000)
    """
    try:
        transactions = current_core().transactions.list_transactions(
            g.tenant_id,
            branch_id=request.args.get("branch_id"),
            status=request.args.get("status"),
            payment_method=request.args.get("payment_method"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            limit=request.args.get("limit", "100"),
        )
        return jsonify({"transactions": [t.to_dict(include_items=False) for t in transactions]}), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<int:transaction_id>")
@require_identity
def get_transaction(transaction_id: int):
    try:
        txn = current_core().transactions.get_transaction(g.tenant_id, transaction_id)
        return jsonify(txn.to_dict()), 200
    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<int:transaction_id>/cancel")
@require_identity
def cancel_transaction(transaction_id: int):
    """
    Cancel a completed transaction and put its items back on the shelf.

    Returns:
        200: Transaction cancelled
        404: Transaction not found
        409: Already cancelled, or has returns
    """
    try:
        txn = current_core().transactions.cancel_transaction(
            g.tenant_id,
            transaction_id,
            actor_id=g.actor_id,
        )
        return jsonify(txn.to_dict()), 200

    except CoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except (LockTimeout, OperationalError):
        current_app.logger.warning("Transaction cancel gave up on lock contention")
        return jsonify({"error": "Stock is busy, retry the request", "code": "busy", "details": {}}), 503
    except Exception:
        current_app.logger.exception("Failed to cancel transaction")
        return jsonify({"error": "Internal server error"}), 500
