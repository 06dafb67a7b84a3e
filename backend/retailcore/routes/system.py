# backend/retailcore/routes/system.py
"""
System health endpoint.

Reports the state of the persistence layer behind the consistency core for
deployment debugging and load balancer probes.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..core import current_core
from ..extensions import db
from ..models import Stock, Transaction
from ..persistence import SqlAlchemyStore
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        stock_rows = db.session.query(Stock).count()
        transaction_count = db.session.query(Transaction).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "dialect": db.engine.dialect.name,
                "stock_rows": stock_rows,
                "transactions": transaction_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy
    - 503: the database behind the store is unreachable
    """
    start_time = time.time()
    core = current_core()

    if isinstance(core.store, SqlAlchemyStore):
        store_health = check_database_health()
    else:
        store_health = {"status": "healthy", "latency_ms": 0.0, "details": {"store": type(core.store).__name__}}

    http_status = 503 if store_health["status"] == "unhealthy" else 200

    response = {
        "status": store_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "store": store_health,
        }
    }

    return response, http_status
